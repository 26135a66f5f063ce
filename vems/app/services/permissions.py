"""
Role and permission bookkeeping.

A user's effective permissions are the union of permissions granted directly
and those granted through any of their roles. Sync helpers replace a link
set wholesale, matching how the admin forms submit checkbox lists.
"""

import logging
from typing import Iterable, Dict, List, Set
from sqlalchemy import select, delete, insert
from sqlalchemy.ext.asyncio import AsyncSession
from vems.app.models.permission import (
    Permission, Role, role_has_permissions, model_has_roles, model_has_permissions,
)

logger = logging.getLogger(__name__)

RESOURCES = (
    "users", "drivers", "departments", "user-groups", "vendors",
    "vehicles", "routes", "trips", "roles", "permissions",
)

EXTRA_PERMISSIONS = (
    "view-dashboard",
    "approve-trips",
    "reject-trips",
    "assign-vehicles",
    "manage-user-roles",
    "view-user-activity",
)

DEFAULT_PERMISSIONS: List[str] = [
    f"{verb}-{resource}"
    for resource in RESOURCES
    for verb in ("view", "create", "edit", "delete")
] + list(EXTRA_PERMISSIONS)

SUPER_ADMIN_ROLE = "Super Admin"


def _default_role_grants() -> Dict[str, List[str]]:
    admin = [
        name for name in DEFAULT_PERMISSIONS
        if not name.endswith("-roles") and not name.endswith("-permissions")
    ]
    transport_manager = [
        "view-dashboard",
        "view-users", "view-departments", "view-user-groups",
        "view-drivers", "create-drivers", "edit-drivers",
        "view-vendors",
        "view-vehicles", "create-vehicles", "edit-vehicles", "assign-vehicles",
        "view-routes", "create-routes", "edit-routes",
        "view-trips", "create-trips", "edit-trips", "approve-trips", "reject-trips",
    ]
    return {
        SUPER_ADMIN_ROLE: list(DEFAULT_PERMISSIONS),
        "Admin": admin,
        "Transport Manager": transport_manager,
        "Driver": ["view-dashboard", "view-vehicles", "view-trips", "view-routes"],
        "Employee": ["view-dashboard", "view-trips", "create-trips", "view-routes"],
    }


DEFAULT_ROLE_GRANTS = _default_role_grants()


async def get_user_role_names(db: AsyncSession, user_id: int) -> List[str]:
    result = await db.execute(
        select(Role.name)
        .join(model_has_roles, model_has_roles.c.role_id == Role.id)
        .where(model_has_roles.c.user_id == user_id)
        .order_by(Role.name)
    )
    return list(result.scalars().all())


async def get_effective_permissions(db: AsyncSession, user_id: int) -> Set[str]:
    """Permission names granted to the user directly or through roles."""
    via_roles = await db.execute(
        select(Permission.name)
        .join(role_has_permissions, role_has_permissions.c.permission_id == Permission.id)
        .join(model_has_roles, model_has_roles.c.role_id == role_has_permissions.c.role_id)
        .where(model_has_roles.c.user_id == user_id)
    )
    direct = await db.execute(
        select(Permission.name)
        .join(model_has_permissions, model_has_permissions.c.permission_id == Permission.id)
        .where(model_has_permissions.c.user_id == user_id)
    )
    return set(via_roles.scalars().all()) | set(direct.scalars().all())


async def user_has_permission(db: AsyncSession, user_id: int, permission: str) -> bool:
    return permission in await get_effective_permissions(db, user_id)


async def sync_user_roles(db: AsyncSession, user_id: int, role_ids: Iterable[int]) -> None:
    """Replace the user's roles. Does not commit."""
    await db.execute(delete(model_has_roles).where(model_has_roles.c.user_id == user_id))
    rows = [{"user_id": user_id, "role_id": role_id} for role_id in sorted(set(role_ids))]
    if rows:
        await db.execute(insert(model_has_roles), rows)


async def sync_role_permissions(db: AsyncSession, role_id: int, permission_ids: Iterable[int]) -> None:
    """Replace the permissions granted by a role. Does not commit."""
    await db.execute(delete(role_has_permissions).where(role_has_permissions.c.role_id == role_id))
    rows = [{"role_id": role_id, "permission_id": pid} for pid in sorted(set(permission_ids))]
    if rows:
        await db.execute(insert(role_has_permissions), rows)


async def sync_permission_roles(db: AsyncSession, permission_id: int, role_ids: Iterable[int]) -> None:
    """Replace the roles holding a permission. Does not commit."""
    await db.execute(delete(role_has_permissions).where(role_has_permissions.c.permission_id == permission_id))
    rows = [{"role_id": rid, "permission_id": permission_id} for rid in sorted(set(role_ids))]
    if rows:
        await db.execute(insert(role_has_permissions), rows)


async def find_missing_ids(db: AsyncSession, model, ids: Iterable[int]) -> List[int]:
    """Return the ids from ``ids`` that have no row in ``model``'s table."""
    wanted = set(ids)
    if not wanted:
        return []
    result = await db.execute(select(model.id).where(model.id.in_(wanted)))
    return sorted(wanted - set(result.scalars().all()))


async def ensure_default_permissions(db: AsyncSession) -> Dict[str, int]:
    """
    Create the default permission catalogue and roles if they are missing.

    Existing roles get their default grants added; grants made by hand are
    left in place. Safe to run repeatedly.

    Returns:
        Mapping of role name to role id
    """
    existing = await db.execute(select(Permission))
    permissions = {p.name: p for p in existing.scalars().all()}
    for name in DEFAULT_PERMISSIONS:
        if name not in permissions:
            permission = Permission(name=name)
            db.add(permission)
            permissions[name] = permission
    await db.flush()

    existing_roles = await db.execute(select(Role))
    roles = {r.name: r for r in existing_roles.scalars().all()}
    for role_name, grants in DEFAULT_ROLE_GRANTS.items():
        role = roles.get(role_name)
        if role is None:
            role = Role(name=role_name)
            db.add(role)
            await db.flush()
            roles[role_name] = role

        current = await db.execute(
            select(role_has_permissions.c.permission_id).where(role_has_permissions.c.role_id == role.id)
        )
        held = set(current.scalars().all())
        rows = [
            {"role_id": role.id, "permission_id": permissions[name].id}
            for name in grants if permissions[name].id not in held
        ]
        if rows:
            await db.execute(insert(role_has_permissions), rows)
            logger.info("Granted %d permissions to role %s", len(rows), role_name)

    await db.commit()
    return {name: role.id for name, role in roles.items()}
