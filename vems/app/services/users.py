"""
User helpers shared by the users and drivers endpoints.
"""

from typing import Dict, List, Iterable, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from vems.app.core.exceptions import ValidationFailedError, ResourceNotFoundError
from vems.app.models.department import Department
from vems.app.models.permission import Role, model_has_roles
from vems.app.models.trip import Trip
from vems.app.models.user import User
from vems.app.models.vehicle import Vehicle
from vems.app.models.enums import TripStatus
from vems.app.schemas.user import DriverPerformance
from vems.app.services.permissions import find_missing_ids

UNIQUE_USER_FIELDS = ("username", "employee_id", "email", "nid_number")
NOT_NULL_USER_FIELDS = {"name", "email", "user_type", "status"}

OPEN_TRIP_STATUSES = (TripStatus.APPROVED, TripStatus.ASSIGNED, TripStatus.IN_PROGRESS)


async def get_user_or_404(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise ResourceNotFoundError("User", user_id)
    return user


async def validate_user_data(db: AsyncSession, data: dict, user_id: Optional[int] = None) -> None:
    """
    Database-level checks for user input: unique fields, department and
    role existence.

    Raises:
        ValidationFailedError with one message per offending field
    """
    errors = {}
    for field in UNIQUE_USER_FIELDS:
        value = data.get(field)
        if value is None:
            continue
        query = select(User.id).where(getattr(User, field) == value)
        if user_id:
            query = query.where(User.id != user_id)
        if (await db.execute(query)).first():
            errors[field] = f"The {field.replace('_', ' ')} has already been taken."

    if data.get("department_id") is not None:
        found = await db.execute(select(Department.id).where(Department.id == data["department_id"]))
        if not found.first():
            errors["department_id"] = "The selected department does not exist."

    if data.get("role_ids"):
        missing = await find_missing_ids(db, Role, data["role_ids"])
        if missing:
            errors["role_ids"] = f"Unknown role ids: {missing}"

    if errors:
        raise ValidationFailedError(errors)


async def roles_by_user(db: AsyncSession, user_ids: Iterable[int]) -> Dict[int, List[str]]:
    ids = list(user_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(model_has_roles.c.user_id, Role.name)
        .join(Role, Role.id == model_has_roles.c.role_id)
        .where(model_has_roles.c.user_id.in_(ids))
        .order_by(Role.name)
    )
    grouped: Dict[int, List[str]] = {user_id: [] for user_id in ids}
    for user_id, role_name in result.all():
        grouped[user_id].append(role_name)
    return grouped


async def department_names(db: AsyncSession, department_ids: Iterable[int]) -> Dict[int, str]:
    ids = {dept_id for dept_id in department_ids if dept_id}
    if not ids:
        return {}
    result = await db.execute(select(Department.id, Department.name).where(Department.id.in_(ids)))
    return dict(result.all())


async def driver_performance(db: AsyncSession, user: User) -> DriverPerformance:
    """Trip counters and licence state for a driver's profile page."""
    total = (await db.execute(
        select(func.count(Trip.id)).where(Trip.driver_id == user.id, Trip.deleted_at.is_(None))
    )).scalar() or 0
    completed = (await db.execute(
        select(func.count(Trip.id)).where(
            Trip.driver_id == user.id,
            Trip.status == TripStatus.COMPLETED,
            Trip.deleted_at.is_(None),
        )
    )).scalar() or 0
    vehicle = (await db.execute(
        select(Vehicle.id).where(Vehicle.driver_id == user.id).order_by(Vehicle.id).limit(1)
    )).scalar_one_or_none()

    return DriverPerformance(
        license_status=user.license_status(),
        can_drive=user.can_drive(),
        total_trips=total,
        completed_trips=completed,
        completion_rate=round(completed / total * 100, 2) if total else 0.0,
        total_distance_covered=user.total_distance_covered or 0,
        average_rating=user.average_rating or 0,
        current_vehicle_id=vehicle,
    )


async def user_blockers(db: AsyncSession, user_id: int) -> Dict[str, int]:
    """Records that keep a user from being deleted."""
    vehicles = (await db.execute(
        select(func.count(Vehicle.id)).where(Vehicle.driver_id == user_id)
    )).scalar() or 0
    open_trips = (await db.execute(
        select(func.count(Trip.id)).where(
            Trip.driver_id == user_id,
            Trip.status.in_(OPEN_TRIP_STATUSES),
            Trip.deleted_at.is_(None),
        )
    )).scalar() or 0
    blockers = {}
    if vehicles:
        blockers["vehicles"] = vehicles
    if open_trips:
        blockers["open_trips"] = open_trips
    return blockers
