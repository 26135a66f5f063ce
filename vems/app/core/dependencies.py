"""
Authentication dependencies for FastAPI.

This module provides dependencies for protecting routes with JWT authentication.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from vems.app.core.exceptions import AuthenticationError, TokenRevokedError
from vems.app.core.jwt import decode_access_token
from vems.app.core.token_revocation import is_token_revoked, are_user_tokens_revoked
from vems.app.db.session import get_db
from vems.app.models.user import User

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Checks, in order:
    1. Token signature and expiry
    2. Token not explicitly revoked (logout)
    3. User tokens not revoked wholesale (user suspended)
    4. User still exists and is active in the database

    Args:
        credentials: HTTP Bearer token from request header
        db: Database session for real-time user status check

    Returns:
        Token payload enriched with ``is_superuser`` and the raw ``token``

    Raises:
        AuthenticationError: token invalid, user gone or access revoked
        TokenRevokedError: token was logged out
        HTTPException: 403 if the user is inactive
    """
    token = credentials.credentials

    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    if await is_token_revoked(token):
        raise TokenRevokedError()

    if await are_user_tokens_revoked(user_id):
        raise AuthenticationError("User access has been revoked")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return {**payload, "is_superuser": user.is_superuser, "token": token}


def client_ip(request: Request) -> str:
    """Best-effort client address, honouring a reverse proxy header."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"
