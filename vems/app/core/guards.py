"""
Security guards for permission-based access control.

Provides dependencies for protecting endpoints by named permission.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from vems.app.core.dependencies import get_current_user
from vems.app.core.exceptions import InsufficientPermissionsError
from vems.app.db.session import get_db
from vems.app.services.permissions import get_effective_permissions


def require_permission(*permissions: str):
    """
    Dependency factory for permission-based access control.

    The user needs every listed permission, either directly or through one of
    their roles. Superusers pass every check.

    Usage:
        @router.post("/vehicles")
        async def create_vehicle(
            current_user: dict = Depends(require_permission("create-vehicles")),
        ):
            ...

    Args:
        permissions: Permission names such as "edit-trips"

    Returns:
        FastAPI dependency returning the current user payload

    Raises:
        InsufficientPermissionsError (403) if a permission is missing
    """
    async def permission_checker(
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ) -> dict:
        if current_user.get("is_superuser"):
            return current_user

        granted = await get_effective_permissions(db, current_user["user_id"])
        missing = [name for name in permissions if name not in granted]
        if missing:
            raise InsufficientPermissionsError(
                message=f"Access denied. Missing permission: {', '.join(missing)}",
                details={"required": list(permissions), "missing": missing}
            )
        return current_user

    return permission_checker
