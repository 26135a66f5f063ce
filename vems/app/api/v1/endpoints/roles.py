"""
Role API endpoints.

Roles bundle permissions. A role held by any user cannot be deleted.
"""

from typing import Annotated
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from vems.app.db.session import get_db
from vems.app.models.permission import Permission, Role, role_has_permissions, model_has_roles
from vems.app.models.user import User
from vems.app.schemas.permission import (
    RoleCreate, RoleUpdate, RoleIndexQuery, RoleListItem, RoleListResponse, RoleStats,
    RoleDetailResponse, NamedRef,
)
from vems.app.core.guards import require_permission
from vems.app.core.exceptions import ResourceNotFoundError, ValidationFailedError, ResourceInUseError
from vems.app.services.audit import log_event, AuditAction
from vems.app.services.listing import search_clause, apply_sort, paginate
from vems.app.services.permissions import sync_role_permissions, find_missing_ids

router = APIRouter(prefix="/roles", tags=["Roles"])

SORT_COLUMNS = {
    "id": Role.id,
    "name": Role.name,
    "created_at": Role.created_at,
}


def _permissions_count():
    return (
        select(func.count()).select_from(role_has_permissions)
        .where(role_has_permissions.c.role_id == Role.id)
        .correlate(Role).scalar_subquery()
    )


def _users_count():
    return (
        select(func.count()).select_from(model_has_roles)
        .where(model_has_roles.c.role_id == Role.id)
        .correlate(Role).scalar_subquery()
    )


async def get_role_or_404(db: AsyncSession, role_id: int) -> Role:
    result = await db.execute(select(Role).where(Role.id == role_id))
    role = result.scalar_one_or_none()
    if not role:
        raise ResourceNotFoundError("Role", role_id)
    return role


async def _validate_role(db: AsyncSession, data: dict, role_id: int = None) -> None:
    errors = {}
    if data.get("name") is not None:
        query = select(Role.id).where(Role.name == data["name"])
        if role_id:
            query = query.where(Role.id != role_id)
        if (await db.execute(query)).first():
            errors["name"] = "The name has already been taken."
    if data.get("permission_ids"):
        missing = await find_missing_ids(db, Permission, data["permission_ids"])
        if missing:
            errors["permission_ids"] = f"Unknown permission ids: {missing}"
    if errors:
        raise ValidationFailedError(errors)


@router.get("", response_model=RoleListResponse)
async def list_roles(
    params: Annotated[RoleIndexQuery, Query()],
    current_user: dict = Depends(require_permission("view-roles")),
    db: AsyncSession = Depends(get_db)
):
    """List roles with permission and user counts."""
    query = select(Role, _permissions_count().label("permissions_count"), _users_count().label("users_count"))
    if params.search:
        query = query.where(search_clause(params.search, [Role.name]))
    query = apply_sort(query, SORT_COLUMNS[params.sort], params.direction)
    rows, meta = await paginate(db, query, params.page, params.per_page)

    roles = [
        RoleListItem(
            id=role.id,
            name=role.name,
            guard_name=role.guard_name,
            permissions_count=permissions_count or 0,
            users_count=users_count or 0,
            created_at=role.created_at,
        )
        for role, permissions_count, users_count in rows
    ]

    totals = (await db.execute(
        select(Role.id, _permissions_count().label("p"), _users_count().label("u"))
    )).all()
    stats = RoleStats(
        total=len(totals),
        with_users=sum(1 for row in totals if row.u),
        with_permissions=sum(1 for row in totals if row.p),
    )
    return RoleListResponse(roles=roles, meta=meta, stats=stats)


@router.post("", response_model=RoleDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role_data: RoleCreate,
    current_user: dict = Depends(require_permission("create-roles")),
    db: AsyncSession = Depends(get_db)
):
    """Create a role with its permission set."""
    data = role_data.model_dump()
    await _validate_role(db, data)

    role = Role(name=data["name"], guard_name=data["guard_name"])
    db.add(role)
    await db.flush()
    await sync_role_permissions(db, role.id, data["permission_ids"])
    await db.commit()
    await db.refresh(role)

    await log_event(
        db=db,
        action=AuditAction.ROLE_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="role",
        target_id=role.id,
        target_label=role.name,
        metadata={"permission_ids": data["permission_ids"]}
    )
    return await get_role(role.id, current_user, db)


@router.get("/{role_id}", response_model=RoleDetailResponse)
async def get_role(
    role_id: int = Path(..., description="Role ID"),
    current_user: dict = Depends(require_permission("view-roles")),
    db: AsyncSession = Depends(get_db)
):
    """Role with its permissions and the users holding it."""
    role = await get_role_or_404(db, role_id)

    permissions = await db.execute(
        select(Permission)
        .join(role_has_permissions, role_has_permissions.c.permission_id == Permission.id)
        .where(role_has_permissions.c.role_id == role.id)
        .order_by(Permission.name)
    )
    users = await db.execute(
        select(User)
        .join(model_has_roles, model_has_roles.c.user_id == User.id)
        .where(model_has_roles.c.role_id == role.id)
        .order_by(User.name)
    )
    return RoleDetailResponse(
        id=role.id,
        name=role.name,
        guard_name=role.guard_name,
        permissions=[NamedRef(id=p.id, name=p.name) for p in permissions.scalars().all()],
        users=[NamedRef(id=u.id, name=u.name) for u in users.scalars().all()],
        created_at=role.created_at,
        updated_at=role.updated_at,
    )


@router.put("/{role_id}", response_model=RoleDetailResponse)
async def update_role(
    role_data: RoleUpdate,
    role_id: int = Path(..., description="Role ID"),
    current_user: dict = Depends(require_permission("edit-roles")),
    db: AsyncSession = Depends(get_db)
):
    """Rename a role and, when ``permission_ids`` is sent, replace its permissions."""
    role = await get_role_or_404(db, role_id)
    update_data = role_data.model_dump(exclude_unset=True)
    await _validate_role(db, update_data, role_id=role.id)

    permission_ids = update_data.pop("permission_ids", None)
    if update_data.get("name"):
        role.name = update_data["name"]
    if permission_ids is not None:
        await sync_role_permissions(db, role.id, permission_ids)

    await db.commit()
    await db.refresh(role)

    await log_event(
        db=db,
        action=AuditAction.ROLE_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="role",
        target_id=role.id,
        target_label=role.name,
        metadata={"permission_ids": permission_ids}
    )
    return await get_role(role.id, current_user, db)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: int = Path(..., description="Role ID"),
    current_user: dict = Depends(require_permission("delete-roles")),
    db: AsyncSession = Depends(get_db)
):
    """Delete a role no user holds."""
    role = await get_role_or_404(db, role_id)

    holders = (await db.execute(
        select(func.count()).select_from(model_has_roles).where(model_has_roles.c.role_id == role.id)
    )).scalar() or 0
    if holders:
        raise ResourceInUseError(
            "Cannot delete role that is assigned to users.",
            details={"users_count": holders}
        )

    name = role.name
    await db.delete(role)
    await db.commit()

    await log_event(
        db=db,
        action=AuditAction.ROLE_DELETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="role",
        target_id=role_id,
        target_label=name,
    )
