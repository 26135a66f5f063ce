"""
Trip and trip passenger models.

A trip is a request for a vehicle on a given date. It moves through the
approval workflow in TripStatus and, once completed, carries odometer
readings and costs.
"""

from sqlalchemy import (
    Column, Integer, String, Date, DateTime, Float, Text, JSON, ForeignKey, UniqueConstraint,
)
from sqlalchemy.sql import func
from vems.app.db.session import Base
from vems.app.models.enums import db_enum, TripStatus, ScheduleType, TripPriority, PassengerStatus


class Trip(Base):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    trip_number = Column(String(30), unique=True, nullable=False, index=True)

    # Links
    vehicle_route_id = Column(Integer, ForeignKey("vehicle_routes.id", ondelete="SET NULL"), nullable=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True, index=True)
    driver_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True)
    requested_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Request
    purpose = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    schedule_type = Column(db_enum(ScheduleType), default=ScheduleType.ADHOC, nullable=False, index=True)
    priority = Column(db_enum(TripPriority), default=TripPriority.MEDIUM, nullable=False)

    # Schedule (times are HH:MM strings)
    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_start_time = Column(String(5), nullable=False)
    scheduled_end_time = Column(String(5), nullable=False)
    actual_start_time = Column(DateTime(timezone=True), nullable=True)
    actual_end_time = Column(DateTime(timezone=True), nullable=True)

    # Execution
    odometer_start = Column(Float, nullable=True)
    odometer_end = Column(Float, nullable=True)
    distance_traveled = Column(Float, nullable=True)
    actual_duration = Column(Integer, nullable=True)  # minutes
    fuel_consumed = Column(Float, nullable=True)
    fuel_cost = Column(Float, nullable=True)
    other_costs = Column(Float, nullable=True)
    total_cost = Column(Float, nullable=True)

    status = Column(db_enum(TripStatus), default=TripStatus.PENDING, nullable=False, index=True)

    # Feedback
    driver_rating = Column(Integer, nullable=True)
    vehicle_rating = Column(Integer, nullable=True)
    feedback = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    trip_documents = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)

    def __repr__(self):
        return f"<Trip(id={self.id}, number='{self.trip_number}', status='{self.status}')>"


class TripPassenger(Base):
    __tablename__ = "trip_passengers"
    __table_args__ = (
        UniqueConstraint("trip_id", "user_id", name="uq_trip_passenger"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    pickup_stop_id = Column(Integer, ForeignKey("stops.id", ondelete="SET NULL"), nullable=True)
    dropoff_stop_id = Column(Integer, ForeignKey("stops.id", ondelete="SET NULL"), nullable=True)
    status = Column(db_enum(PassengerStatus), default=PassengerStatus.PENDING, nullable=False)
    boarded_at = Column(DateTime(timezone=True), nullable=True)
    dropped_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<TripPassenger(trip_id={self.trip_id}, user_id={self.user_id}, status='{self.status}')>"
