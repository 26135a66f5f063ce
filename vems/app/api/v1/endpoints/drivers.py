"""
Driver API endpoints.

Drivers are users whose user_type is driver or transport manager; this
router is a filtered view over the users table with licence-aware fields.
"""

from typing import Annotated
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from vems.app.db.session import get_db
from vems.app.models.department import Department
from vems.app.models.user import User
from vems.app.models.enums import UserType, DriverStatus, DRIVER_USER_TYPES
from vems.app.schemas.user import (
    DriverCreate, UserUpdate, DriverIndexQuery, DriverListResponse, DriverStats, UserDetailResponse,
)
from vems.app.core.guards import require_permission
from vems.app.core.exceptions import ResourceNotFoundError, ResourceInUseError
from vems.app.core.security import get_password_hash
from vems.app.core.token_revocation import revoke_all_user_tokens
from vems.app.services.audit import log_event, AuditAction
from vems.app.services.listing import search_clause, apply_sort, paginate, count
from vems.app.services.permissions import sync_user_roles
from vems.app.services.users import validate_user_data, user_blockers, NOT_NULL_USER_FIELDS
from vems.app.api.v1.endpoints.users import build_user_items, apply_status_change, get_user

router = APIRouter(prefix="/drivers", tags=["Drivers"])

SORT_COLUMNS = {
    "id": User.id,
    "name": User.name,
    "email": User.email,
    "driving_license_no": User.driving_license_no,
    "license_expiry_date": User.license_expiry_date,
    "created_at": User.created_at,
}


def _driver_fields(user: User) -> dict:
    return {"license_status": user.license_status(), "can_drive": user.can_drive()}


async def get_driver_or_404(db: AsyncSession, driver_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == driver_id, User.user_type.in_(DRIVER_USER_TYPES))
    )
    driver = result.scalar_one_or_none()
    if not driver:
        raise ResourceNotFoundError("Driver", driver_id)
    return driver


@router.get("", response_model=DriverListResponse)
async def list_drivers(
    params: Annotated[DriverIndexQuery, Query()],
    current_user: dict = Depends(require_permission("view-drivers")),
    db: AsyncSession = Depends(get_db)
):
    """
    List drivers.

    Search covers name, email, employee id and driving licence number.
    """
    is_driver = User.user_type.in_(DRIVER_USER_TYPES)
    query = select(User).outerjoin(Department, Department.id == User.department_id).where(is_driver)

    if params.search:
        query = query.where(search_clause(params.search, [
            User.name, User.email, User.employee_id, User.driving_license_no,
        ]))
    if params.status:
        query = query.where(User.status.in_(params.status))
    if params.driver_status:
        query = query.where(User.driver_status.in_(params.driver_status))
    if params.department_id:
        query = query.where(User.department_id == params.department_id)

    query = apply_sort(query, SORT_COLUMNS[params.sort], params.direction)
    drivers, meta = await paginate(db, query, params.page, params.per_page)

    all_drivers = (await db.execute(select(User).where(is_driver))).scalars().all()
    stats = DriverStats(
        total=len(all_drivers),
        available=await count(db, User.id, is_driver, User.driver_status == DriverStatus.AVAILABLE),
        on_trip=await count(db, User.id, is_driver, User.driver_status == DriverStatus.ON_TRIP),
        license_expired=sum(1 for driver in all_drivers if driver.license_status() == "expired"),
    )

    return DriverListResponse(
        drivers=await build_user_items(db, drivers, extra=_driver_fields),
        meta=meta,
        stats=stats,
    )


@router.post("", response_model=UserDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_driver(
    driver_data: DriverCreate,
    current_user: dict = Depends(require_permission("create-drivers")),
    db: AsyncSession = Depends(get_db)
):
    """Register a driver; user_type is fixed to driver and availability starts as available."""
    data = driver_data.model_dump()
    await validate_user_data(db, data)

    role_ids = data.pop("role_ids")
    password = data.pop("password")
    data["user_type"] = UserType.DRIVER
    data["driver_status"] = data.get("driver_status") or DriverStatus.AVAILABLE

    driver = User(**data, hashed_password=get_password_hash(password))
    db.add(driver)
    await db.flush()
    if role_ids:
        await sync_user_roles(db, driver.id, role_ids)
    await db.commit()
    await db.refresh(driver)

    await log_event(
        db=db,
        action=AuditAction.USER_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user",
        target_id=driver.id,
        target_label=driver.username or driver.email,
        metadata={"user_type": UserType.DRIVER.value}
    )
    return await get_user(driver.id, current_user, db)


@router.get("/{driver_id}", response_model=UserDetailResponse)
async def get_driver(
    driver_id: int = Path(..., description="Driver ID"),
    current_user: dict = Depends(require_permission("view-drivers")),
    db: AsyncSession = Depends(get_db)
):
    """Driver profile with performance figures."""
    driver = await get_driver_or_404(db, driver_id)
    return await get_user(driver.id, current_user, db)


@router.put("/{driver_id}", response_model=UserDetailResponse)
async def update_driver(
    driver_data: UserUpdate,
    driver_id: int = Path(..., description="Driver ID"),
    current_user: dict = Depends(require_permission("edit-drivers")),
    db: AsyncSession = Depends(get_db)
):
    """Update a driver profile."""
    driver = await get_driver_or_404(db, driver_id)
    update_data = driver_data.model_dump(exclude_unset=True)
    await validate_user_data(db, update_data, user_id=driver.id)

    role_ids = update_data.pop("role_ids", None)
    password = update_data.pop("password", None)
    previous_status = driver.status

    for field, value in update_data.items():
        if value is None and field in NOT_NULL_USER_FIELDS:
            continue
        setattr(driver, field, value)
    if password:
        driver.hashed_password = get_password_hash(password)
    if role_ids is not None:
        await sync_user_roles(db, driver.id, role_ids)

    await db.commit()
    await db.refresh(driver)

    await log_event(
        db=db,
        action=AuditAction.USER_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user",
        target_id=driver.id,
        target_label=driver.username or driver.email,
        metadata={"updated_fields": sorted(update_data.keys())}
    )
    await apply_status_change(driver, previous_status, current_user, db)
    return await get_user(driver.id, current_user, db)


@router.delete("/{driver_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_driver(
    driver_id: int = Path(..., description="Driver ID"),
    current_user: dict = Depends(require_permission("delete-drivers")),
    db: AsyncSession = Depends(get_db)
):
    """Delete a driver who has no vehicle and no open trip."""
    driver = await get_driver_or_404(db, driver_id)
    blockers = await user_blockers(db, driver.id)
    if blockers:
        raise ResourceInUseError("Driver is still assigned to vehicles or open trips.", details=blockers)

    label = driver.username or driver.email
    await db.delete(driver)
    await db.commit()
    await revoke_all_user_tokens(driver_id)

    await log_event(
        db=db,
        action=AuditAction.USER_DELETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user",
        target_id=driver_id,
        target_label=label,
    )
