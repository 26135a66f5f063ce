"""
Vehicle driver assignment history model.

One row per period a driver was the regular driver of a vehicle. Rows are
only ever appended or closed; at most one row per vehicle has
``is_current`` set.
"""

from sqlalchemy import Column, Integer, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from vems.app.db.session import Base


class VehicleDriverAssignment(Base):
    __tablename__ = "vehicle_driver_assignments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    is_current = Column(Boolean, default=True, nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return (
            f"<VehicleDriverAssignment(id={self.id}, vehicle_id={self.vehicle_id}, "
            f"driver_id={self.driver_id}, current={self.is_current})>"
        )
