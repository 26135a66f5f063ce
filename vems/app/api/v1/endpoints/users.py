"""
User management API endpoints.

Staff records, role assignment, account status and driver availability.
Suspending or deactivating a user revokes every token they hold.
"""

from typing import Annotated, List
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from vems.app.db.session import get_db
from vems.app.models.department import Department
from vems.app.models.permission import Role, model_has_roles
from vems.app.models.user import User
from vems.app.models.enums import UserType, UserStatus, DriverStatus, BloodGroup, DRIVER_USER_TYPES
from vems.app.schemas.common import SelectOption
from vems.app.schemas.user import (
    UserCreate, UserUpdate, UserIndexQuery, UserResponse, UserListResponse,
    UserStats, UserFilterOptions, UserDetailResponse, DriverStatusUpdate, AvailableDriver,
)
from vems.app.core.guards import require_permission
from vems.app.core.exceptions import ResourceInUseError, InsufficientPermissionsError
from vems.app.core.security import get_password_hash
from vems.app.core.token_revocation import revoke_all_user_tokens, clear_user_token_revocation
from vems.app.services.audit import log_event, AuditAction
from vems.app.services.listing import search_clause, apply_sort, paginate, count
from vems.app.services.permissions import sync_user_roles, get_effective_permissions
from vems.app.services.users import (
    get_user_or_404, validate_user_data, roles_by_user, department_names,
    driver_performance, user_blockers, NOT_NULL_USER_FIELDS,
)

router = APIRouter(prefix="/users", tags=["Users"])

SORT_COLUMNS = {
    "id": User.id,
    "name": User.name,
    "email": User.email,
    "employee_id": User.employee_id,
    "user_type": User.user_type,
    "status": User.status,
    "department": Department.name,
    "created_at": User.created_at,
}


async def build_user_items(db: AsyncSession, users: List[User], extra=None) -> List[dict]:
    """Serialize users with role names and department name; ``extra(user)`` adds fields."""
    roles = await roles_by_user(db, [user.id for user in users])
    departments = await department_names(db, [user.department_id for user in users])
    items = []
    for user in users:
        item = UserResponse.model_validate(user).model_dump()
        item["roles"] = roles.get(user.id, [])
        item["department_name"] = departments.get(user.department_id)
        if extra:
            item.update(extra(user))
        items.append(item)
    return items


async def apply_status_change(user: User, previous_status: UserStatus, current_user: dict, db: AsyncSession) -> None:
    """Revoke or restore sessions when the account status changes."""
    if user.status == previous_status:
        return
    if user.status != UserStatus.ACTIVE:
        await revoke_all_user_tokens(user.id)
        action = AuditAction.USER_BLOCKED
    else:
        await clear_user_token_revocation(user.id)
        action = AuditAction.USER_UNBLOCKED
    await log_event(
        db=db,
        action=action,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user",
        target_id=user.id,
        target_label=user.username or user.email,
        metadata={"from": previous_status.value, "to": user.status.value}
    )


@router.get("", response_model=UserListResponse)
async def list_users(
    params: Annotated[UserIndexQuery, Query()],
    current_user: dict = Depends(require_permission("view-users")),
    db: AsyncSession = Depends(get_db)
):
    """
    List users with search, filters, sorting, stats and filter options.

    Search covers name, username, employee id, email and department name.
    """
    query = select(User).outerjoin(Department, Department.id == User.department_id)

    if params.search:
        query = query.where(search_clause(params.search, [
            User.name, User.username, User.employee_id, User.email, Department.name,
        ]))
    if params.user_type:
        query = query.where(User.user_type.in_(params.user_type))
    if params.status:
        query = query.where(User.status.in_(params.status))
    if params.department_id:
        query = query.where(User.department_id == params.department_id)
    if params.blood_group:
        query = query.where(User.blood_group.in_(params.blood_group))
    if params.roles:
        with_roles = (
            select(model_has_roles.c.user_id)
            .join(Role, Role.id == model_has_roles.c.role_id)
            .where(Role.name.in_(params.roles))
        )
        query = query.where(User.id.in_(with_roles))

    query = apply_sort(query, SORT_COLUMNS[params.sort], params.direction)
    users, meta = await paginate(db, query, params.page, params.per_page)

    stats = UserStats(
        total=await count(db, User.id),
        active=await count(db, User.id, User.status == UserStatus.ACTIVE),
        drivers=await count(db, User.id, User.user_type.in_(DRIVER_USER_TYPES)),
        inactive=await count(db, User.id, User.status != UserStatus.ACTIVE),
    )

    departments = await db.execute(select(Department).order_by(Department.name))
    role_names = await db.execute(select(Role.name).order_by(Role.name))
    filter_options = UserFilterOptions(
        user_types=[t.value for t in UserType],
        statuses=[s.value for s in UserStatus],
        blood_groups=[b.value for b in BloodGroup],
        departments=[SelectOption(label=d.name, value=d.id) for d in departments.scalars().all()],
        roles=list(role_names.scalars().all()),
    )

    return UserListResponse(
        users=await build_user_items(db, users),
        meta=meta,
        stats=stats,
        filter_options=filter_options,
    )


@router.get("/available-drivers", response_model=List[AvailableDriver])
async def available_drivers(
    current_user: dict = Depends(require_permission("view-drivers")),
    db: AsyncSession = Depends(get_db)
):
    """Active drivers whose driver status is available."""
    result = await db.execute(
        select(User)
        .where(
            User.user_type.in_(DRIVER_USER_TYPES),
            User.driver_status == DriverStatus.AVAILABLE,
            User.status == UserStatus.ACTIVE,
        )
        .order_by(User.name)
    )
    return [
        AvailableDriver(
            id=user.id,
            name=user.name,
            email=user.email,
            driving_license_no=user.driving_license_no,
            license_status=user.license_status(),
        )
        for user in result.scalars().all()
    ]


@router.post("", response_model=UserDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    current_user: dict = Depends(require_permission("create-users")),
    db: AsyncSession = Depends(get_db)
):
    """Create a user and assign the given roles."""
    data = user_data.model_dump()
    await validate_user_data(db, data)

    role_ids = data.pop("role_ids")
    password = data.pop("password")
    if data["user_type"] in DRIVER_USER_TYPES and data.get("driver_status") is None:
        data["driver_status"] = DriverStatus.AVAILABLE

    user = User(**data, hashed_password=get_password_hash(password))
    db.add(user)
    await db.flush()
    await sync_user_roles(db, user.id, role_ids)
    await db.commit()
    await db.refresh(user)

    await log_event(
        db=db,
        action=AuditAction.USER_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user",
        target_id=user.id,
        target_label=user.username or user.email,
        metadata={"user_type": user.user_type.value, "role_ids": role_ids}
    )
    return await get_user(user.id, current_user, db)


@router.get("/{user_id}", response_model=UserDetailResponse)
async def get_user(
    user_id: int = Path(..., description="User ID"),
    current_user: dict = Depends(require_permission("view-users")),
    db: AsyncSession = Depends(get_db)
):
    """User profile with roles, effective permissions and driver performance."""
    user = await get_user_or_404(db, user_id)
    roles = await roles_by_user(db, [user.id])
    departments = await department_names(db, [user.department_id])

    detail = UserDetailResponse.model_validate({
        **UserResponse.model_validate(user).model_dump(),
        "department_name": departments.get(user.department_id),
        "roles": roles.get(user.id, []),
        "permissions": sorted(await get_effective_permissions(db, user.id)),
        "driver_performance": await driver_performance(db, user) if user.is_driver else None,
    })
    return detail


@router.put("/{user_id}", response_model=UserDetailResponse)
async def update_user(
    user_data: UserUpdate,
    user_id: int = Path(..., description="User ID"),
    current_user: dict = Depends(require_permission("edit-users")),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a user.

    A missing or blank password keeps the current one. ``role_ids`` replaces
    the user's roles when sent.
    """
    user = await get_user_or_404(db, user_id)
    update_data = user_data.model_dump(exclude_unset=True)
    await validate_user_data(db, update_data, user_id=user.id)

    role_ids = update_data.pop("role_ids", None)
    password = update_data.pop("password", None)
    previous_status = user.status

    for field, value in update_data.items():
        if value is None and field in NOT_NULL_USER_FIELDS:
            continue
        setattr(user, field, value)
    if password:
        user.hashed_password = get_password_hash(password)
    if role_ids is not None:
        await sync_user_roles(db, user.id, role_ids)

    await db.commit()
    await db.refresh(user)

    await log_event(
        db=db,
        action=AuditAction.USER_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user",
        target_id=user.id,
        target_label=user.username or user.email,
        metadata={"updated_fields": sorted(update_data.keys()) + (["password"] if password else [])}
    )
    await apply_status_change(user, previous_status, current_user, db)
    return await get_user(user.id, current_user, db)


@router.patch("/{user_id}/driver-status", response_model=UserResponse)
async def update_driver_status(
    status_data: DriverStatusUpdate,
    user_id: int = Path(..., description="User ID"),
    current_user: dict = Depends(require_permission("edit-drivers")),
    db: AsyncSession = Depends(get_db)
):
    """Change a driver's availability."""
    user = await get_user_or_404(db, user_id)
    previous = user.driver_status
    user.driver_status = status_data.driver_status
    await db.commit()
    await db.refresh(user)

    await log_event(
        db=db,
        action=AuditAction.DRIVER_STATUS_CHANGED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user",
        target_id=user.id,
        target_label=user.username or user.email,
        metadata={"from": previous.value if previous else None, "to": user.driver_status.value}
    )
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int = Path(..., description="User ID"),
    current_user: dict = Depends(require_permission("delete-users")),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a user.

    Refused for the caller's own account and for drivers that still have a
    vehicle or an open trip.
    """
    if user_id == current_user["user_id"]:
        raise InsufficientPermissionsError(message="You cannot delete your own account")

    user = await get_user_or_404(db, user_id)
    blockers = await user_blockers(db, user.id)
    if blockers:
        raise ResourceInUseError("User is still assigned to vehicles or open trips.", details=blockers)

    label = user.username or user.email
    await db.delete(user)
    await db.commit()
    await revoke_all_user_tokens(user_id)

    await log_event(
        db=db,
        action=AuditAction.USER_DELETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="user",
        target_id=user_id,
        target_label=label,
    )
