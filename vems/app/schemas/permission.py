"""
Role and permission Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Literal
from vems.app.schemas.common import ListQuery, PageMeta


class PermissionCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    guard_name: str = Field("web", max_length=50)
    role_ids: List[int] = Field(default_factory=list)


class PermissionUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    guard_name: Optional[str] = Field(None, max_length=50)
    # None leaves role links untouched, [] removes them all
    role_ids: Optional[List[int]] = None


class PermissionIndexQuery(ListQuery):
    sort: Literal["id", "name", "guard_name", "created_at"] = "name"
    direction: Literal["asc", "desc"] = "asc"


class PermissionResponse(BaseModel):
    id: int
    name: str
    guard_name: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class NamedRef(BaseModel):
    id: int
    name: str


class PermissionListItem(PermissionResponse):
    roles_count: int = 0
    users_count: int = 0


class PermissionStats(BaseModel):
    total: int
    with_roles: int
    with_users: int
    unused: int


class PermissionListResponse(BaseModel):
    permissions: List[PermissionListItem]
    meta: PageMeta
    stats: PermissionStats
    roles: List[NamedRef]


class PermissionDetailResponse(PermissionResponse):
    roles: List[NamedRef] = []
    users: List[NamedRef] = []


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    guard_name: str = Field("web", max_length=50)
    permission_ids: List[int] = Field(default_factory=list)


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    permission_ids: Optional[List[int]] = None


class RoleIndexQuery(ListQuery):
    sort: Literal["id", "name", "created_at"] = "name"
    direction: Literal["asc", "desc"] = "asc"


class RoleListItem(BaseModel):
    id: int
    name: str
    guard_name: str
    permissions_count: int = 0
    users_count: int = 0
    created_at: datetime


class RoleStats(BaseModel):
    total: int
    with_users: int
    with_permissions: int


class RoleListResponse(BaseModel):
    roles: List[RoleListItem]
    meta: PageMeta
    stats: RoleStats


class RoleDetailResponse(BaseModel):
    id: int
    name: str
    guard_name: str
    permissions: List[NamedRef] = []
    users: List[NamedRef] = []
    created_at: datetime
    updated_at: datetime
