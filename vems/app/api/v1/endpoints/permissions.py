"""
Permission API endpoints.

Permissions are created by administrators and linked to roles. A permission
still held by a role or a user cannot be deleted.
"""

from typing import Annotated
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from vems.app.db.session import get_db
from vems.app.models.permission import Permission, Role, role_has_permissions, model_has_permissions
from vems.app.models.user import User
from vems.app.schemas.permission import (
    PermissionCreate, PermissionUpdate, PermissionIndexQuery, PermissionResponse,
    PermissionListItem, PermissionListResponse, PermissionStats, PermissionDetailResponse, NamedRef,
)
from vems.app.core.guards import require_permission
from vems.app.core.exceptions import ResourceNotFoundError, ValidationFailedError, ResourceInUseError
from vems.app.services.audit import log_event, AuditAction
from vems.app.services.listing import search_clause, apply_sort, paginate
from vems.app.services.permissions import sync_permission_roles, find_missing_ids

router = APIRouter(prefix="/permissions", tags=["Permissions"])

SORT_COLUMNS = {
    "id": Permission.id,
    "name": Permission.name,
    "guard_name": Permission.guard_name,
    "created_at": Permission.created_at,
}


def _roles_count():
    return (
        select(func.count()).select_from(role_has_permissions)
        .where(role_has_permissions.c.permission_id == Permission.id)
        .correlate(Permission).scalar_subquery()
    )


def _users_count():
    return (
        select(func.count()).select_from(model_has_permissions)
        .where(model_has_permissions.c.permission_id == Permission.id)
        .correlate(Permission).scalar_subquery()
    )


async def get_permission_or_404(db: AsyncSession, permission_id: int) -> Permission:
    result = await db.execute(select(Permission).where(Permission.id == permission_id))
    permission = result.scalar_one_or_none()
    if not permission:
        raise ResourceNotFoundError("Permission", permission_id)
    return permission


async def _validate_permission(db: AsyncSession, data: dict, permission_id: int = None) -> None:
    errors = {}
    if data.get("name") is not None:
        query = select(Permission.id).where(Permission.name == data["name"])
        if permission_id:
            query = query.where(Permission.id != permission_id)
        if (await db.execute(query)).first():
            errors["name"] = "The name has already been taken."
    if data.get("role_ids"):
        missing = await find_missing_ids(db, Role, data["role_ids"])
        if missing:
            errors["role_ids"] = f"Unknown role ids: {missing}"
    if errors:
        raise ValidationFailedError(errors)


@router.get("", response_model=PermissionListResponse)
async def list_permissions(
    params: Annotated[PermissionIndexQuery, Query()],
    current_user: dict = Depends(require_permission("view-permissions")),
    db: AsyncSession = Depends(get_db)
):
    """List permissions with role/user counts and usage statistics."""
    query = select(Permission, _roles_count().label("roles_count"), _users_count().label("users_count"))
    if params.search:
        query = query.where(search_clause(params.search, [Permission.name, Permission.guard_name]))
    query = apply_sort(query, SORT_COLUMNS[params.sort], params.direction)
    rows, meta = await paginate(db, query, params.page, params.per_page)

    items = []
    for permission, roles_count, users_count in rows:
        item = PermissionListItem.model_validate(permission)
        item.roles_count = roles_count or 0
        item.users_count = users_count or 0
        items.append(item)

    totals = (await db.execute(
        select(Permission.id, _roles_count().label("r"), _users_count().label("u"))
    )).all()
    stats = PermissionStats(
        total=len(totals),
        with_roles=sum(1 for row in totals if row.r),
        with_users=sum(1 for row in totals if row.u),
        unused=sum(1 for row in totals if not row.r and not row.u),
    )

    roles = await db.execute(select(Role).order_by(Role.name))
    return PermissionListResponse(
        permissions=items,
        meta=meta,
        stats=stats,
        roles=[NamedRef(id=role.id, name=role.name) for role in roles.scalars().all()],
    )


@router.post("", response_model=PermissionDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission_data: PermissionCreate,
    current_user: dict = Depends(require_permission("create-permissions")),
    db: AsyncSession = Depends(get_db)
):
    """Create a permission and optionally grant it to roles."""
    data = permission_data.model_dump()
    await _validate_permission(db, data)

    permission = Permission(name=data["name"], guard_name=data["guard_name"])
    db.add(permission)
    await db.flush()
    if data["role_ids"]:
        await sync_permission_roles(db, permission.id, data["role_ids"])
    await db.commit()
    await db.refresh(permission)

    await log_event(
        db=db,
        action=AuditAction.PERMISSION_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="permission",
        target_id=permission.id,
        target_label=permission.name,
        metadata={"role_ids": data["role_ids"]}
    )
    return await get_permission(permission.id, current_user, db)


@router.get("/{permission_id}", response_model=PermissionDetailResponse)
async def get_permission(
    permission_id: int = Path(..., description="Permission ID"),
    current_user: dict = Depends(require_permission("view-permissions")),
    db: AsyncSession = Depends(get_db)
):
    """Permission with the roles and users holding it."""
    permission = await get_permission_or_404(db, permission_id)

    roles = await db.execute(
        select(Role)
        .join(role_has_permissions, role_has_permissions.c.role_id == Role.id)
        .where(role_has_permissions.c.permission_id == permission.id)
        .order_by(Role.name)
    )
    users = await db.execute(
        select(User)
        .join(model_has_permissions, model_has_permissions.c.user_id == User.id)
        .where(model_has_permissions.c.permission_id == permission.id)
        .order_by(User.name)
    )
    return PermissionDetailResponse(
        **PermissionResponse.model_validate(permission).model_dump(),
        roles=[NamedRef(id=role.id, name=role.name) for role in roles.scalars().all()],
        users=[NamedRef(id=user.id, name=user.name) for user in users.scalars().all()],
    )


@router.put("/{permission_id}", response_model=PermissionDetailResponse)
async def update_permission(
    permission_data: PermissionUpdate,
    permission_id: int = Path(..., description="Permission ID"),
    current_user: dict = Depends(require_permission("edit-permissions")),
    db: AsyncSession = Depends(get_db)
):
    """Rename a permission and, when ``role_ids`` is sent, replace its roles."""
    permission = await get_permission_or_404(db, permission_id)
    update_data = permission_data.model_dump(exclude_unset=True)
    await _validate_permission(db, update_data, permission_id=permission.id)

    role_ids = update_data.pop("role_ids", None)
    for field, value in update_data.items():
        if value is not None:
            setattr(permission, field, value)
    if role_ids is not None:
        await sync_permission_roles(db, permission.id, role_ids)

    await db.commit()
    await db.refresh(permission)

    await log_event(
        db=db,
        action=AuditAction.PERMISSION_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="permission",
        target_id=permission.id,
        target_label=permission.name,
        metadata={"updated_fields": sorted(update_data.keys()), "role_ids": role_ids}
    )
    return await get_permission(permission.id, current_user, db)


@router.delete("/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: int = Path(..., description="Permission ID"),
    current_user: dict = Depends(require_permission("delete-permissions")),
    db: AsyncSession = Depends(get_db)
):
    """Delete a permission that no role or user holds."""
    permission = await get_permission_or_404(db, permission_id)

    usage = (await db.execute(
        select(_roles_count().label("roles"), _users_count().label("users")).where(Permission.id == permission.id)
    )).one()
    if usage.roles or usage.users:
        raise ResourceInUseError(
            "Cannot delete permission that is assigned to roles or users.",
            details={"roles_count": usage.roles, "users_count": usage.users}
        )

    name = permission.name
    await db.delete(permission)
    await db.commit()

    await log_event(
        db=db,
        action=AuditAction.PERMISSION_DELETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="permission",
        target_id=permission_id,
        target_label=name,
    )
