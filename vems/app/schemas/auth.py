"""
Authentication Pydantic schemas.

Defines request and response schemas for authentication endpoints.
"""

from pydantic import BaseModel, Field
from typing import Optional, List


class UserLogin(BaseModel):
    """
    Schema for user login.

    ``login`` accepts either a username or an email address.
    """
    login: str = Field(..., min_length=1, max_length=255, description="Username or email")
    password: str = Field(..., min_length=1, description="Password")


class TokenResponse(BaseModel):
    """Returned by a successful login."""
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user_id: int
    username: Optional[str] = None
    name: str
    email: str
    roles: List[str] = []


class CurrentUserResponse(BaseModel):
    """Used by GET /auth/me."""
    id: int
    name: str
    username: Optional[str] = None
    email: str
    user_type: str
    status: str
    department_id: Optional[int] = None
    is_superuser: bool
    roles: List[str] = []
    permissions: List[str] = []
