"""
Trip workflow rules.

Holds the status machine, trip number generation and the completion
bookkeeping so the endpoints stay thin.
"""

import logging
from datetime import date, datetime, timezone
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from vems.app.core.exceptions import InvalidStateTransitionError, ValidationFailedError
from vems.app.models.trip import Trip
from vems.app.models.user import User
from vems.app.models.vehicle import Vehicle
from vems.app.models.enums import TripStatus

logger = logging.getLogger(__name__)

TRIP_NUMBER_PREFIX = "TRP"

# action -> statuses the action may start from
ALLOWED_FROM = {
    "edit": (TripStatus.PENDING, TripStatus.APPROVED),
    "approve": (TripStatus.PENDING,),
    "reject": (TripStatus.PENDING, TripStatus.APPROVED),
    "start": (TripStatus.APPROVED, TripStatus.ASSIGNED),
    "complete": (TripStatus.IN_PROGRESS,),
    "cancel": (TripStatus.PENDING, TripStatus.APPROVED, TripStatus.ASSIGNED),
    "reassign": (TripStatus.PENDING, TripStatus.APPROVED, TripStatus.ASSIGNED, TripStatus.IN_PROGRESS),
    "feedback": (TripStatus.COMPLETED,),
    "delete": (TripStatus.PENDING,),
}


def ensure_transition(trip: Trip, action: str) -> None:
    """Raise InvalidStateTransitionError unless ``action`` is allowed in the trip's status."""
    if trip.status not in ALLOWED_FROM[action]:
        raise InvalidStateTransitionError("Trip", trip.status.value, action)


async def generate_trip_number(db: AsyncSession, today: Optional[date] = None) -> str:
    """
    Next trip number for the day: ``TRP-YYYYMMDD-NNNN``.

    Soft-deleted trips still hold their number, so they are counted too.
    """
    today = today or date.today()
    prefix = f"{TRIP_NUMBER_PREFIX}-{today:%Y%m%d}-"
    issued = (await db.execute(
        select(func.count(Trip.id)).where(Trip.trip_number.like(f"{prefix}%"))
    )).scalar() or 0
    return f"{prefix}{issued + 1:04d}"


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def start_trip(trip: Trip, odometer_start: float) -> None:
    ensure_transition(trip, "start")
    trip.odometer_start = odometer_start
    trip.actual_start_time = datetime.now(timezone.utc)
    trip.status = TripStatus.IN_PROGRESS


async def complete_trip(
    db: AsyncSession,
    trip: Trip,
    odometer_end: float,
    fuel_consumed: Optional[float] = None,
    fuel_cost: Optional[float] = None,
    other_costs: Optional[float] = None,
    notes: Optional[str] = None,
) -> None:
    """
    Close an in-progress trip.

    Sets distance, duration and total cost. When the trip's vehicle has a
    driver and the trip covered some distance, the driver's lifetime
    counters are incremented. Does not commit.
    """
    ensure_transition(trip, "complete")
    if trip.odometer_start is not None and odometer_end < trip.odometer_start:
        raise ValidationFailedError({"odometer_end": "The odometer end must be at least the odometer start."})

    now = datetime.now(timezone.utc)
    trip.odometer_end = odometer_end
    trip.actual_end_time = now
    if trip.odometer_start is not None:
        trip.distance_traveled = round(odometer_end - trip.odometer_start, 2)
    if trip.actual_start_time is not None:
        trip.actual_duration = int((now - _aware(trip.actual_start_time)).total_seconds() // 60)
    trip.fuel_consumed = fuel_consumed
    trip.fuel_cost = fuel_cost
    trip.other_costs = other_costs
    trip.total_cost = (fuel_cost or 0) + (other_costs or 0)
    if notes is not None:
        trip.notes = notes
    trip.status = TripStatus.COMPLETED

    if not trip.vehicle_id or not trip.distance_traveled:
        return
    driver_id = (await db.execute(
        select(Vehicle.driver_id).where(Vehicle.id == trip.vehicle_id)
    )).scalar_one_or_none()
    if driver_id is None:
        return
    driver = (await db.execute(select(User).where(User.id == driver_id))).scalar_one()
    driver.total_distance_covered = (driver.total_distance_covered or 0) + trip.distance_traveled
    driver.total_trips_completed = (driver.total_trips_completed or 0) + 1
    logger.info("Driver %s credited %.2f km for trip %s", driver_id, trip.distance_traveled, trip.trip_number)
