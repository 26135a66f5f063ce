"""
Authentication API endpoints.

Provides login, logout and current-user endpoints.
"""

from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from vems.app.db.session import get_db
from vems.app.models.user import User
from vems.app.schemas.auth import UserLogin, TokenResponse, CurrentUserResponse
from vems.app.core.exceptions import AuthenticationError
from vems.app.core.security import verify_password
from vems.app.core.jwt import create_access_token
from vems.app.core.dependencies import get_current_user, client_ip
from vems.app.core.token_revocation import revoke_token
from vems.app.services.audit import log_auth_event, AuditAction
from vems.app.services.permissions import get_user_role_names, get_effective_permissions

router = APIRouter(prefix="/auth", tags=["Authentication"])

_email_adapter = TypeAdapter(EmailStr)


def _looks_like_email(value: str) -> bool:
    if "@" not in value:
        return False
    try:
        _email_adapter.validate_python(value)
    except ValidationError:
        return False
    return True


async def find_by_login(db: AsyncSession, login: str):
    """Look a user up by email when ``login`` is an email address, else by username."""
    column = User.email if _looks_like_email(login) else User.username
    result = await db.execute(select(User).where(column == login))
    return result.scalar_one_or_none()


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Login user and return JWT token.

    Accepts username or email for login.
    Logs successful and failed login attempts for security monitoring.
    """
    ip_address = client_ip(request)
    user = await find_by_login(db, credentials.login)

    if not user or not verify_password(credentials.password, user.hashed_password):
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id if user else None,
            username=user.username if user else credentials.login,
            ip_address=ip_address,
            metadata={"reason": "Invalid password" if user else "User not found"}
        )
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        await log_auth_event(
            db=db,
            action=AuditAction.LOGIN_FAILED,
            user_id=user.id,
            username=user.username,
            ip_address=ip_address,
            metadata={"reason": f"Account is {user.status.value}"}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user account"
        )

    user.last_login_at = datetime.now(timezone.utc)
    user.last_login_ip = ip_address
    await db.commit()

    access_token = create_access_token(data={
        "sub": user.username or user.email,
        "user_id": user.id,
    })

    await log_auth_event(
        db=db,
        action=AuditAction.LOGIN_SUCCESS,
        user_id=user.id,
        username=user.username,
        ip_address=ip_address
    )

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        user_id=user.id,
        username=user.username,
        name=user.name,
        email=user.email,
        roles=await get_user_role_names(db, user.id)
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Revoke the token used for this request."""
    await revoke_token(current_user["token"], current_user["user_id"])
    await log_auth_event(
        db=db,
        action=AuditAction.LOGOUT,
        user_id=current_user["user_id"],
        username=current_user["sub"],
        ip_address=client_ip(request)
    )


@router.get("/me", response_model=CurrentUserResponse)
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get current authenticated user information.

    Returns:
        Profile summary with role names and effective permissions
    """
    result = await db.execute(select(User).where(User.id == current_user["user_id"]))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return CurrentUserResponse(
        id=user.id,
        name=user.name,
        username=user.username,
        email=user.email,
        user_type=user.user_type.value,
        status=user.status.value,
        department_id=user.department_id,
        is_superuser=user.is_superuser,
        roles=await get_user_role_names(db, user.id),
        permissions=sorted(await get_effective_permissions(db, user.id)),
    )
