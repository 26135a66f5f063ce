"""
Department Pydantic schemas.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from typing import Optional, List, Literal
from vems.app.schemas.common import ListQuery, PageMeta, SelectOption, blank_to_none


class BudgetAllocation(BaseModel):
    vehicle_maintenance: float = Field(0, ge=0)
    fuel: float = Field(0, ge=0)
    operations: float = Field(0, ge=0)
    equipment: float = Field(0, ge=0)


class DepartmentBase(BaseModel):
    description: Optional[str] = Field(None, max_length=1000)
    head_id: Optional[int] = None
    location: Optional[str] = Field(None, max_length=500)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    budget_allocation: Optional[BudgetAllocation] = None

    @field_validator("head_id", "email", "phone", "location", "description", mode="before")
    @classmethod
    def _blank(cls, value):
        return blank_to_none(value)


class DepartmentCreate(DepartmentBase):
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=10)
    is_active: bool = True


class DepartmentUpdate(DepartmentBase):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    code: Optional[str] = Field(None, min_length=1, max_length=10)
    is_active: Optional[bool] = None


class DepartmentIndexQuery(ListQuery):
    status: Optional[Literal["active", "inactive"]] = None
    sort: Literal["name", "code", "location", "is_active", "created_at", "status"] = "name"
    direction: Literal["asc", "desc"] = "asc"


class PersonRef(BaseModel):
    id: int
    name: str
    email: Optional[str] = None


class DepartmentResponse(BaseModel):
    id: int
    name: str
    code: str
    description: Optional[str] = None
    head_id: Optional[int] = None
    location: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_active: bool
    status: str
    budget_allocation: Optional[dict] = None
    total_budget: float
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DepartmentListItem(DepartmentResponse):
    users_count: int = 0
    head: Optional[PersonRef] = None


class DepartmentListResponse(BaseModel):
    departments: List[DepartmentListItem]
    meta: PageMeta


class DepartmentStats(BaseModel):
    total_users: int
    active_users: int
    drivers: int
    managers: int


class DepartmentMember(BaseModel):
    id: int
    name: str
    email: str
    user_type: str
    status: str


class DepartmentDetailResponse(DepartmentResponse):
    head: Optional[PersonRef] = None
    users: List[DepartmentMember] = []
    stats: DepartmentStats


class DepartmentFormOptions(BaseModel):
    users: List[SelectOption]
