"""
User group database model.

Groups are ad-hoc collections of users (car pools, shift teams). Membership
rows record who added the member and when.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, Table, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from vems.app.db.session import Base
from vems.app.models.enums import db_enum, ActiveStatus


group_user = Table(
    "group_user",
    Base.metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_group_id", Integer, ForeignKey("user_groups.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("added_by", Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    Column("added_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint("user_group_id", "user_id", name="uq_group_user"),
)


class UserGroup(Base):
    __tablename__ = "user_groups"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(db_enum(ActiveStatus), default=ActiveStatus.ACTIVE, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<UserGroup(id={self.id}, name='{self.name}')>"
