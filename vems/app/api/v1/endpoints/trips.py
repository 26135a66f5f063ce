"""
Trip API endpoints.

Trip requests, the approval workflow and vehicle reassignment. Vehicle
changes on a trip are recorded in the trip's vehicle assignment history.
"""

from datetime import date, datetime, timezone
from typing import Annotated, List
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete
from vems.app.db.session import get_db
from vems.app.models.department import Department
from vems.app.models.stop import Stop
from vems.app.models.trip import Trip, TripPassenger
from vems.app.models.user import User
from vems.app.models.vehicle import Vehicle
from vems.app.models.vehicle_route import VehicleRoute, RouteStop
from vems.app.models.enums import TripStatus, ScheduleType, TripPriority, UserStatus, AssignmentReason
from vems.app.schemas.common import SelectOption
from vems.app.schemas.trip import (
    TripCreate, TripUpdate, TripReject, TripStart, TripComplete, TripFeedback, ReassignVehicle,
    TripIndexQuery, TripResponse, TripListItem, TripListResponse, TripStats, PassengerIn,
    PassengerResponse, VehicleAssignmentResponse, TripDetailResponse, RouteOption, TripFormOptions,
)
from vems.app.core.guards import require_permission
from vems.app.core.exceptions import ResourceNotFoundError, ValidationFailedError
from vems.app.services.audit import log_event, AuditAction
from vems.app.services.listing import search_clause, apply_sort, paginate, count
from vems.app.services.permissions import find_missing_ids
from vems.app.services.assignment_history import (
    start_trip_vehicle_assignment, record_trip_vehicle_change, get_trip_vehicle_history,
)
from vems.app.services.trips import ensure_transition, generate_trip_number, start_trip, complete_trip

router = APIRouter(prefix="/trips", tags=["Trips"])

SORT_COLUMNS = {
    "id": Trip.id,
    "trip_number": Trip.trip_number,
    "scheduled_date": Trip.scheduled_date,
    "status": Trip.status,
    "priority": Trip.priority,
    "created_at": Trip.created_at,
}

REQUEST_FIELDS = (
    "vehicle_route_id", "vehicle_id", "department_id", "purpose", "description", "schedule_type",
    "priority", "scheduled_date", "scheduled_start_time", "scheduled_end_time", "notes",
)


def _vehicle_label(vehicle: Vehicle) -> str:
    return f"{vehicle.brand} {vehicle.model} ({vehicle.registration_number})"


async def get_trip_or_404(db: AsyncSession, trip_id: int) -> Trip:
    result = await db.execute(select(Trip).where(Trip.id == trip_id, Trip.deleted_at.is_(None)))
    trip = result.scalar_one_or_none()
    if not trip:
        raise ResourceNotFoundError("Trip", trip_id)
    return trip


async def _get_vehicle(db: AsyncSession, vehicle_id: int, field: str = "vehicle_id") -> Vehicle:
    vehicle = (await db.execute(select(Vehicle).where(Vehicle.id == vehicle_id))).scalar_one_or_none()
    if vehicle is None:
        raise ValidationFailedError({field: "The selected vehicle does not exist."})
    return vehicle


async def _validate_trip(db: AsyncSession, data: dict) -> None:
    errors = {}
    checks = (
        ("vehicle_route_id", VehicleRoute, "route"),
        ("department_id", Department, "department"),
    )
    for field, model, label in checks:
        if data.get(field) is not None:
            found = await db.execute(select(model.id).where(model.id == data[field]))
            if not found.first():
                errors[field] = f"The selected {label} does not exist."

    passengers = data.get("passengers") or []
    missing_users = await find_missing_ids(db, User, [p["user_id"] for p in passengers])
    if missing_users:
        errors["passengers"] = f"Unknown user ids: {missing_users}"
    stop_ids = [
        stop_id for p in passengers
        for stop_id in (p.get("pickup_stop_id"), p.get("dropoff_stop_id")) if stop_id is not None
    ]
    missing_stops = await find_missing_ids(db, Stop, stop_ids)
    if missing_stops:
        errors["passenger_stops"] = f"Unknown stop ids: {missing_stops}"

    if errors:
        raise ValidationFailedError(errors)


async def _replace_passengers(db: AsyncSession, trip: Trip, passengers: List[PassengerIn]) -> None:
    await db.execute(delete(TripPassenger).where(TripPassenger.trip_id == trip.id))
    for passenger in passengers:
        db.add(TripPassenger(trip_id=trip.id, **passenger.model_dump()))
    await db.flush()


async def _audit(db: AsyncSession, action: str, trip: Trip, current_user: dict, metadata: dict = None) -> None:
    await log_event(
        db=db,
        action=action,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="trip",
        target_id=trip.id,
        target_label=trip.trip_number,
        metadata=metadata
    )


async def _active_vehicle_options(db: AsyncSession) -> List[SelectOption]:
    result = await db.execute(select(Vehicle).where(Vehicle.is_active.is_(True)).order_by(Vehicle.brand, Vehicle.model))
    return [SelectOption(label=_vehicle_label(v), value=v.id) for v in result.scalars().all()]


@router.get("", response_model=TripListResponse)
async def list_trips(
    params: Annotated[TripIndexQuery, Query()],
    current_user: dict = Depends(require_permission("view-trips")),
    db: AsyncSession = Depends(get_db)
):
    """
    List trips.

    Search covers trip number, purpose, vehicle registration and requester
    name.
    """
    passengers_count = (
        select(func.count(TripPassenger.id)).where(TripPassenger.trip_id == Trip.id)
        .correlate(Trip).scalar_subquery()
    )
    query = (
        select(Trip, Vehicle.registration_number, User.name, passengers_count.label("passengers_count"))
        .outerjoin(Vehicle, Vehicle.id == Trip.vehicle_id)
        .outerjoin(User, User.id == Trip.requested_by)
        .where(Trip.deleted_at.is_(None))
    )
    if params.search:
        query = query.where(search_clause(params.search, [
            Trip.trip_number, Trip.purpose, Vehicle.registration_number, User.name,
        ]))
    if params.status:
        query = query.where(Trip.status == params.status)
    if params.schedule_type:
        query = query.where(Trip.schedule_type == params.schedule_type)
    if params.date_from:
        query = query.where(Trip.scheduled_date >= params.date_from)
    if params.date_to:
        query = query.where(Trip.scheduled_date <= params.date_to)
    if params.vehicle_id:
        query = query.where(Trip.vehicle_id == params.vehicle_id)

    query = apply_sort(query, SORT_COLUMNS[params.sort], params.direction)
    rows, meta = await paginate(db, query, params.page, params.per_page)

    trips = []
    for trip, registration, requester, passengers in rows:
        item = TripListItem.model_validate(trip)
        item.vehicle_registration = registration
        item.requester_name = requester
        item.passengers_count = passengers or 0
        trips.append(item)

    live = Trip.deleted_at.is_(None)
    stats = TripStats(
        total=await count(db, Trip.id, live),
        pending=await count(db, Trip.id, live, Trip.status == TripStatus.PENDING),
        approved=await count(db, Trip.id, live, Trip.status == TripStatus.APPROVED),
        in_progress=await count(db, Trip.id, live, Trip.status == TripStatus.IN_PROGRESS),
        completed=await count(db, Trip.id, live, Trip.status == TripStatus.COMPLETED),
        today=await count(db, Trip.id, live, Trip.scheduled_date == date.today()),
    )
    return TripListResponse(trips=trips, meta=meta, stats=stats)


@router.get("/form-options", response_model=TripFormOptions)
async def trip_form_options(
    current_user: dict = Depends(require_permission("view-trips")),
    db: AsyncSession = Depends(get_db)
):
    """Vehicles, routes with their stops, departments and people for the trip form."""
    routes = (await db.execute(select(VehicleRoute).order_by(VehicleRoute.name))).scalars().all()
    route_stops = await db.execute(
        select(RouteStop.vehicle_route_id, Stop.id, Stop.name)
        .join(Stop, Stop.id == RouteStop.stop_id)
        .order_by(RouteStop.vehicle_route_id, RouteStop.stop_order)
    )
    stops_by_route = {}
    for route_id, stop_id, stop_name in route_stops.all():
        stops_by_route.setdefault(route_id, []).append(SelectOption(label=stop_name, value=stop_id))

    departments = await db.execute(
        select(Department).where(Department.is_active.is_(True)).order_by(Department.name)
    )
    employees = await db.execute(
        select(User).where(User.status == UserStatus.ACTIVE).order_by(User.name)
    )
    return TripFormOptions(
        vehicles=await _active_vehicle_options(db),
        routes=[
            RouteOption(
                id=route.id,
                name=route.name,
                total_distance=route.total_distance or 0,
                stops=stops_by_route.get(route.id, []),
            )
            for route in routes
        ],
        departments=[SelectOption(label=d.name, value=d.id) for d in departments.scalars().all()],
        employees=[SelectOption(label=u.name, value=u.id) for u in employees.scalars().all()],
        schedule_types=[s.value for s in ScheduleType],
        priorities=[p.value for p in TripPriority],
    )


@router.post("", response_model=TripDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_trip(
    trip_data: TripCreate,
    current_user: dict = Depends(require_permission("create-trips")),
    db: AsyncSession = Depends(get_db)
):
    """
    Request a trip.

    The trip starts pending, takes its driver from the chosen vehicle and
    opens the initial vehicle assignment.
    """
    data = trip_data.model_dump()
    vehicle = await _get_vehicle(db, data["vehicle_id"])
    await _validate_trip(db, data)

    trip = Trip(
        **{field: data[field] for field in REQUEST_FIELDS},
        trip_number=await generate_trip_number(db),
        driver_id=vehicle.driver_id,
        requested_by=current_user["user_id"],
        status=TripStatus.PENDING,
    )
    db.add(trip)
    await db.flush()
    await _replace_passengers(db, trip, trip_data.passengers)
    await start_trip_vehicle_assignment(db, trip, actor_id=current_user["user_id"])
    await db.commit()
    await db.refresh(trip)

    await _audit(db, AuditAction.TRIP_CREATED, trip, current_user, {"vehicle_id": trip.vehicle_id})
    return await get_trip(trip.id, current_user, db)


@router.get("/{trip_id}", response_model=TripDetailResponse)
async def get_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_permission("view-trips")),
    db: AsyncSession = Depends(get_db)
):
    """Trip with passengers, vehicle assignment history and vehicles available for reassignment."""
    trip = await get_trip_or_404(db, trip_id)

    passengers = await db.execute(
        select(TripPassenger, User.name)
        .join(User, User.id == TripPassenger.user_id)
        .where(TripPassenger.trip_id == trip.id)
        .order_by(TripPassenger.id)
    )
    history = await get_trip_vehicle_history(db, trip.id)
    vehicle_ids = {a.vehicle_id for a in history} | ({trip.vehicle_id} if trip.vehicle_id else set())
    registrations = {}
    if vehicle_ids:
        result = await db.execute(
            select(Vehicle.id, Vehicle.registration_number).where(Vehicle.id.in_(vehicle_ids))
        )
        registrations = dict(result.all())

    people = {uid for uid in (trip.requested_by, trip.approved_by) if uid}
    names = {}
    if people:
        names = dict((await db.execute(select(User.id, User.name).where(User.id.in_(people)))).all())

    return TripDetailResponse(
        **TripResponse.model_validate(trip).model_dump(),
        vehicle_registration=registrations.get(trip.vehicle_id),
        requester_name=names.get(trip.requested_by),
        approver_name=names.get(trip.approved_by),
        passengers=[
            PassengerResponse(
                id=p.id,
                user_id=p.user_id,
                user_name=user_name,
                pickup_stop_id=p.pickup_stop_id,
                dropoff_stop_id=p.dropoff_stop_id,
                status=p.status,
                boarded_at=p.boarded_at,
                dropped_at=p.dropped_at,
                notes=p.notes,
            )
            for p, user_name in passengers.all()
        ],
        vehicle_assignments=[
            VehicleAssignmentResponse(
                id=a.id,
                vehicle_id=a.vehicle_id,
                vehicle_registration=registrations.get(a.vehicle_id),
                assigned_at=a.assigned_at,
                unassigned_at=a.unassigned_at,
                is_current=a.is_current,
                assigned_by=a.assigned_by,
                reason=a.reason,
                notes=a.notes,
            )
            for a in history
        ],
        available_vehicles=await _active_vehicle_options(db),
    )


@router.put("/{trip_id}", response_model=TripDetailResponse)
async def update_trip(
    trip_data: TripUpdate,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_permission("edit-trips")),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit a pending or approved trip.

    Passengers are replaced when sent. A different vehicle closes the current
    vehicle assignment and opens a replacement one.
    """
    trip = await get_trip_or_404(db, trip_id)
    ensure_transition(trip, "edit")

    data = trip_data.model_dump()
    vehicle = await _get_vehicle(db, data["vehicle_id"])
    await _validate_trip(db, data)

    previous_vehicle_id = trip.vehicle_id
    for field in REQUEST_FIELDS:
        setattr(trip, field, data[field])
    if trip.vehicle_id != previous_vehicle_id:
        trip.driver_id = vehicle.driver_id
    if trip_data.passengers is not None:
        await _replace_passengers(db, trip, trip_data.passengers)

    await record_trip_vehicle_change(db, trip, previous_vehicle_id, actor_id=current_user["user_id"])
    await db.commit()
    await db.refresh(trip)

    await _audit(db, AuditAction.TRIP_UPDATED, trip, current_user, {"vehicle_id": trip.vehicle_id})
    return await get_trip(trip.id, current_user, db)


@router.post("/{trip_id}/approve", response_model=TripResponse)
async def approve_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_permission("approve-trips")),
    db: AsyncSession = Depends(get_db)
):
    """Approve a pending trip."""
    trip = await get_trip_or_404(db, trip_id)
    ensure_transition(trip, "approve")
    trip.status = TripStatus.APPROVED
    trip.approved_by = current_user["user_id"]
    await db.commit()
    await db.refresh(trip)

    await _audit(db, AuditAction.TRIP_APPROVED, trip, current_user)
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/reject", response_model=TripResponse)
async def reject_trip(
    request: TripReject,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_permission("reject-trips")),
    db: AsyncSession = Depends(get_db)
):
    """Reject a pending or approved trip with a reason."""
    trip = await get_trip_or_404(db, trip_id)
    ensure_transition(trip, "reject")
    trip.status = TripStatus.REJECTED
    trip.rejection_reason = request.rejection_reason
    await db.commit()
    await db.refresh(trip)

    await _audit(db, AuditAction.TRIP_REJECTED, trip, current_user, {"reason": request.rejection_reason})
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/start", response_model=TripResponse)
async def start_trip_endpoint(
    request: TripStart,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_permission("edit-trips")),
    db: AsyncSession = Depends(get_db)
):
    """Start an approved trip, recording the odometer reading."""
    trip = await get_trip_or_404(db, trip_id)
    start_trip(trip, request.odometer_start)
    await db.commit()
    await db.refresh(trip)

    await _audit(db, AuditAction.TRIP_STARTED, trip, current_user, {"odometer_start": trip.odometer_start})
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/complete", response_model=TripResponse)
async def complete_trip_endpoint(
    request: TripComplete,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_permission("edit-trips")),
    db: AsyncSession = Depends(get_db)
):
    """Complete an in-progress trip with closing odometer and costs."""
    trip = await get_trip_or_404(db, trip_id)
    await complete_trip(db, trip, **request.model_dump())
    await db.commit()
    await db.refresh(trip)

    await _audit(db, AuditAction.TRIP_COMPLETED, trip, current_user, {
        "distance_traveled": trip.distance_traveled,
        "total_cost": trip.total_cost,
    })
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/cancel", response_model=TripResponse)
async def cancel_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_permission("edit-trips")),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a trip that has not started."""
    trip = await get_trip_or_404(db, trip_id)
    ensure_transition(trip, "cancel")
    trip.status = TripStatus.CANCELLED
    await db.commit()
    await db.refresh(trip)

    await _audit(db, AuditAction.TRIP_CANCELLED, trip, current_user)
    return TripResponse.model_validate(trip)


@router.post("/{trip_id}/reassign-vehicle", response_model=TripDetailResponse)
async def reassign_vehicle(
    request: ReassignVehicle,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_permission("assign-vehicles")),
    db: AsyncSession = Depends(get_db)
):
    """Put another vehicle on the trip, recording why."""
    trip = await get_trip_or_404(db, trip_id)
    ensure_transition(trip, "reassign")
    vehicle = await _get_vehicle(db, request.vehicle_id)
    if vehicle.id == trip.vehicle_id:
        raise ValidationFailedError({"vehicle_id": "The trip already uses this vehicle."})

    previous_vehicle_id = trip.vehicle_id
    trip.vehicle_id = vehicle.id
    trip.driver_id = vehicle.driver_id
    await record_trip_vehicle_change(
        db, trip, previous_vehicle_id,
        actor_id=current_user["user_id"],
        reason=AssignmentReason(request.reason),
        notes=request.notes,
    )
    await db.commit()
    await db.refresh(trip)

    await _audit(db, AuditAction.TRIP_VEHICLE_REASSIGNED, trip, current_user, {
        "from": previous_vehicle_id,
        "to": vehicle.id,
        "reason": request.reason,
    })
    return await get_trip(trip.id, current_user, db)


@router.post("/{trip_id}/feedback", response_model=TripResponse)
async def trip_feedback(
    request: TripFeedback,
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_permission("view-trips")),
    db: AsyncSession = Depends(get_db)
):
    """Rate the driver and vehicle of a completed trip."""
    trip = await get_trip_or_404(db, trip_id)
    ensure_transition(trip, "feedback")
    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(trip, field, value)
    await db.commit()
    await db.refresh(trip)

    await _audit(db, AuditAction.TRIP_UPDATED, trip, current_user, {"feedback": True})
    return TripResponse.model_validate(trip)


@router.delete("/{trip_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_trip(
    trip_id: int = Path(..., description="Trip ID"),
    current_user: dict = Depends(require_permission("delete-trips")),
    db: AsyncSession = Depends(get_db)
):
    """Soft delete a pending trip."""
    trip = await get_trip_or_404(db, trip_id)
    ensure_transition(trip, "delete")
    trip.deleted_at = datetime.now(timezone.utc)
    await db.commit()

    await _audit(db, AuditAction.TRIP_DELETED, trip, current_user)
