"""
Department database model.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON, ForeignKey
from sqlalchemy.sql import func
from vems.app.db.session import Base

BUDGET_KEYS = ("vehicle_maintenance", "fuel", "operations", "equipment")


class Department(Base):
    """
    Organisational unit that users belong to.

    ``budget_allocation`` holds one amount per BUDGET_KEYS entry.
    """
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    code = Column(String(10), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    # users.department_id points back here, so this side is added after both tables exist
    head_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL", use_alter=True, name="fk_departments_head_id"),
        nullable=True,
    )
    location = Column(String(500), nullable=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    budget_allocation = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def status(self) -> str:
        return "active" if self.is_active else "inactive"

    @property
    def total_budget(self) -> float:
        if not self.budget_allocation:
            return 0.0
        return float(sum(float(value or 0) for value in self.budget_allocation.values()))

    def __repr__(self):
        return f"<Department(id={self.id}, code='{self.code}', name='{self.name}')>"
