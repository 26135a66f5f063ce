"""
Audit Log Database Model.

Tracks security events and back-office changes for accountability.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from vems.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    ``target_type``/``target_id`` name the record acted upon (a vehicle, a
    trip, a user ...); ``meta_data`` carries action specific context.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    action = Column(String(100), nullable=False, index=True)

    target_type = Column(String(50), nullable=True, index=True)
    target_id = Column(Integer, nullable=True, index=True)
    target_label = Column(String(255), nullable=True)

    meta_data = Column(JSON, nullable=True)
    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, target={self.target_type}:{self.target_id})>"
