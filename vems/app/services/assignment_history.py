"""
Assignment history tracking.

Keeps the "current assignment" records in step with the live foreign keys:

* ``vehicles.driver_id``  -> vehicle_driver_assignments
* ``trips.vehicle_id``    -> trip_vehicle_assignments

Endpoints call these helpers right after changing the foreign key and before
committing, so the history rows land in the same transaction as the change.
History rows are append-only: a change closes the open row and opens a new
one; closed rows are never reopened or edited.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from vems.app.models.vehicle import Vehicle
from vems.app.models.vehicle_driver_assignment import VehicleDriverAssignment
from vems.app.models.trip import Trip
from vems.app.models.trip_vehicle_assignment import TripVehicleAssignment
from vems.app.models.enums import AssignmentReason

logger = logging.getLogger(__name__)

BACKFILL_CHUNK_SIZE = 200
BACKFILL_SAMPLE_SIZE = 10


def _now() -> datetime:
    return datetime.now(timezone.utc)


# Vehicle -> driver

async def _close_current_driver_assignments(db: AsyncSession, vehicle_id: int, ended_at: datetime) -> int:
    result = await db.execute(
        update(VehicleDriverAssignment)
        .where(
            VehicleDriverAssignment.vehicle_id == vehicle_id,
            VehicleDriverAssignment.is_current.is_(True),
        )
        .values(ended_at=ended_at, is_current=False)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def start_vehicle_driver_assignment(
    db: AsyncSession,
    vehicle: Vehicle,
    actor_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> Optional[VehicleDriverAssignment]:
    """
    Open the first assignment for a newly created vehicle.

    Returns None when the vehicle was created without a driver.
    """
    if vehicle.driver_id is None:
        return None
    assignment = VehicleDriverAssignment(
        vehicle_id=vehicle.id,
        driver_id=vehicle.driver_id,
        started_at=_now(),
        is_current=True,
        assigned_by=actor_id,
        notes=notes,
    )
    db.add(assignment)
    await db.flush()
    logger.info("Driver %s assigned to new vehicle %s", vehicle.driver_id, vehicle.id)
    return assignment


async def record_vehicle_driver_change(
    db: AsyncSession,
    vehicle: Vehicle,
    previous_driver_id: Optional[int],
    actor_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> Optional[VehicleDriverAssignment]:
    """
    Reconcile history after ``vehicle.driver_id`` may have changed.

    Args:
        db: Database session (not committed here)
        vehicle: Vehicle with its new driver_id already set
        previous_driver_id: driver_id before the update
        actor_id: User making the change
        notes: Optional note stored on the new assignment

    Returns:
        The newly opened assignment, or None when nothing was opened
        (driver unchanged or removed).
    """
    if vehicle.driver_id == previous_driver_id:
        return None

    now = _now()
    closed = await _close_current_driver_assignments(db, vehicle.id, now)

    assignment = None
    if vehicle.driver_id is not None:
        assignment = VehicleDriverAssignment(
            vehicle_id=vehicle.id,
            driver_id=vehicle.driver_id,
            started_at=now,
            is_current=True,
            assigned_by=actor_id,
            notes=notes,
        )
        db.add(assignment)

    await db.flush()
    logger.info(
        "Vehicle driver changed",
        extra={
            "vehicle_id": vehicle.id,
            "previous_driver_id": previous_driver_id,
            "driver_id": vehicle.driver_id,
            "closed_assignments": closed,
        },
    )
    return assignment


async def get_vehicle_driver_history(db: AsyncSession, vehicle_id: int) -> List[VehicleDriverAssignment]:
    """All driver assignments for a vehicle, newest first."""
    result = await db.execute(
        select(VehicleDriverAssignment)
        .where(VehicleDriverAssignment.vehicle_id == vehicle_id)
        .order_by(VehicleDriverAssignment.started_at.desc(), VehicleDriverAssignment.id.desc())
    )
    return list(result.scalars().all())


async def get_current_driver_assignment(db: AsyncSession, vehicle_id: int) -> Optional[VehicleDriverAssignment]:
    result = await db.execute(
        select(VehicleDriverAssignment)
        .where(
            VehicleDriverAssignment.vehicle_id == vehicle_id,
            VehicleDriverAssignment.is_current.is_(True),
        )
        .order_by(VehicleDriverAssignment.started_at.desc(), VehicleDriverAssignment.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


# Trip -> vehicle

async def start_trip_vehicle_assignment(
    db: AsyncSession,
    trip: Trip,
    actor_id: Optional[int] = None,
) -> Optional[TripVehicleAssignment]:
    """Open the initial vehicle assignment for a newly created trip."""
    if trip.vehicle_id is None:
        return None
    assignment = TripVehicleAssignment(
        trip_id=trip.id,
        vehicle_id=trip.vehicle_id,
        assigned_at=_now(),
        is_current=True,
        assigned_by=actor_id,
        reason=AssignmentReason.INITIAL,
    )
    db.add(assignment)
    await db.flush()
    return assignment


async def record_trip_vehicle_change(
    db: AsyncSession,
    trip: Trip,
    previous_vehicle_id: Optional[int],
    actor_id: Optional[int] = None,
    reason: AssignmentReason = AssignmentReason.REPLACEMENT,
    notes: Optional[str] = None,
) -> Optional[TripVehicleAssignment]:
    """
    Reconcile trip history after ``trip.vehicle_id`` may have changed.

    Same contract as ``record_vehicle_driver_change``; the new row carries
    ``reason`` (replacement unless the caller says otherwise).
    """
    if trip.vehicle_id == previous_vehicle_id:
        return None

    now = _now()
    await db.execute(
        update(TripVehicleAssignment)
        .where(
            TripVehicleAssignment.trip_id == trip.id,
            TripVehicleAssignment.is_current.is_(True),
        )
        .values(unassigned_at=now, is_current=False)
        .execution_options(synchronize_session=False)
    )

    assignment = None
    if trip.vehicle_id is not None:
        assignment = TripVehicleAssignment(
            trip_id=trip.id,
            vehicle_id=trip.vehicle_id,
            assigned_at=now,
            is_current=True,
            assigned_by=actor_id,
            reason=reason,
            notes=notes,
        )
        db.add(assignment)

    await db.flush()
    logger.info(
        "Trip vehicle changed",
        extra={
            "trip_id": trip.id,
            "previous_vehicle_id": previous_vehicle_id,
            "vehicle_id": trip.vehicle_id,
            "reason": reason.value,
        },
    )
    return assignment


async def get_trip_vehicle_history(db: AsyncSession, trip_id: int) -> List[TripVehicleAssignment]:
    """All vehicle assignments for a trip, newest first."""
    result = await db.execute(
        select(TripVehicleAssignment)
        .where(TripVehicleAssignment.trip_id == trip_id)
        .order_by(TripVehicleAssignment.assigned_at.desc(), TripVehicleAssignment.id.desc())
    )
    return list(result.scalars().all())


# Backfill

@dataclass
class BackfillReport:
    vehicles_total: int = 0
    vehicles_with_driver: int = 0
    assignments_total: int = 0
    vehicles_with_current: int = 0
    candidates: int = 0
    samples: List[Dict[str, Any]] = field(default_factory=list)
    created: int = 0
    closed: int = 0
    dry_run: bool = False
    forced: bool = False


async def collect_backfill_diagnostics(db: AsyncSession, force: bool = False) -> BackfillReport:
    """
    Count vehicles and assignments and pick the backfill candidates.

    Candidates are vehicles with a driver and no current assignment, or every
    vehicle with a driver when ``force`` is set.
    """
    report = BackfillReport(forced=force)
    report.vehicles_total = (await db.execute(select(func.count(Vehicle.id)))).scalar() or 0
    report.vehicles_with_driver = (await db.execute(
        select(func.count(Vehicle.id)).where(Vehicle.driver_id.is_not(None))
    )).scalar() or 0
    report.assignments_total = (await db.execute(select(func.count(VehicleDriverAssignment.id)))).scalar() or 0
    report.vehicles_with_current = (await db.execute(
        select(func.count(func.distinct(VehicleDriverAssignment.vehicle_id)))
        .where(VehicleDriverAssignment.is_current.is_(True))
    )).scalar() or 0

    candidates = _candidate_query(force)
    report.candidates = (await db.execute(
        select(func.count()).select_from(candidates.subquery())
    )).scalar() or 0

    sample_rows = await db.execute(candidates.limit(BACKFILL_SAMPLE_SIZE))
    report.samples = [
        {"vehicle_id": vehicle.id, "registration_number": vehicle.registration_number, "driver_id": vehicle.driver_id}
        for vehicle in sample_rows.scalars().all()
    ]
    return report


def _candidate_query(force: bool):
    query = select(Vehicle).where(Vehicle.driver_id.is_not(None)).order_by(Vehicle.id)
    if not force:
        has_current = (
            select(VehicleDriverAssignment.id)
            .where(
                VehicleDriverAssignment.vehicle_id == Vehicle.id,
                VehicleDriverAssignment.is_current.is_(True),
            )
            .exists()
        )
        query = query.where(~has_current)
    return query


async def backfill_vehicle_assignments(
    db: AsyncSession,
    dry_run: bool = False,
    force: bool = False,
    chunk_size: int = BACKFILL_CHUNK_SIZE,
) -> BackfillReport:
    """
    Create current driver assignments for vehicles that are missing one.

    Args:
        db: Database session
        dry_run: Only collect diagnostics, write nothing
        force: Close every current assignment of vehicles with a driver and
            open a fresh one, even where a current assignment exists
        chunk_size: Vehicles processed (and committed) per batch

    Returns:
        BackfillReport with diagnostics and write counts
    """
    report = await collect_backfill_diagnostics(db, force=force)
    report.dry_run = dry_run
    if dry_run or report.candidates == 0:
        return report

    last_id = 0
    while True:
        batch = await db.execute(
            _candidate_query(force).where(Vehicle.id > last_id).limit(chunk_size)
        )
        vehicles = list(batch.scalars().all())
        if not vehicles:
            break
        now = _now()
        for vehicle in vehicles:
            if force:
                report.closed += await _close_current_driver_assignments(db, vehicle.id, now)
            db.add(VehicleDriverAssignment(
                vehicle_id=vehicle.id,
                driver_id=vehicle.driver_id,
                started_at=now,
                is_current=True,
                assigned_by=None,
                notes="Backfilled from vehicles.driver_id",
            ))
            report.created += 1
        last_id = vehicles[-1].id
        await db.commit()
        logger.info("Backfilled %d vehicle assignments (up to vehicle %s)", len(vehicles), last_id)

    return report
