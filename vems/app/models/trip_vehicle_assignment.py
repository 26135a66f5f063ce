"""
Trip vehicle assignment history model.

Records every vehicle that served a trip, with the reason it was put on the
trip (``initial`` for the vehicle chosen at creation).
"""

from sqlalchemy import Column, Integer, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from vems.app.db.session import Base
from vems.app.models.enums import db_enum, AssignmentReason


class TripVehicleAssignment(Base):
    __tablename__ = "trip_vehicle_assignments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    assigned_at = Column(DateTime(timezone=True), nullable=False)
    unassigned_at = Column(DateTime(timezone=True), nullable=True)
    is_current = Column(Boolean, default=True, nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reason = Column(db_enum(AssignmentReason), default=AssignmentReason.INITIAL, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return (
            f"<TripVehicleAssignment(id={self.id}, trip_id={self.trip_id}, "
            f"vehicle_id={self.vehicle_id}, reason='{self.reason}')>"
        )
