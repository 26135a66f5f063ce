"""
User group Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Literal
from vems.app.models.enums import ActiveStatus
from vems.app.schemas.common import ListQuery, PageMeta


class UserGroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    status: ActiveStatus = ActiveStatus.ACTIVE
    member_ids: List[int] = Field(default_factory=list)


class UserGroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[ActiveStatus] = None
    # None leaves membership untouched; a list replaces it
    member_ids: Optional[List[int]] = None


class AddMembersRequest(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)


class UserGroupIndexQuery(ListQuery):
    status: Optional[ActiveStatus] = None
    sort: Literal["id", "name", "status", "created_at"] = "name"
    direction: Literal["asc", "desc"] = "asc"


class GroupMember(BaseModel):
    id: int
    name: str
    email: str
    added_by: Optional[int] = None
    added_at: Optional[datetime] = None


class UserGroupResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    status: ActiveStatus
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserGroupListItem(UserGroupResponse):
    members_count: int = 0


class UserGroupListResponse(BaseModel):
    groups: List[UserGroupListItem]
    meta: PageMeta


class UserGroupDetailResponse(UserGroupResponse):
    members: List[GroupMember] = []


class AddMembersResponse(BaseModel):
    added: int
    skipped: int
    members_count: int
