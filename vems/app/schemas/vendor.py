"""
Vendor Pydantic schemas.
"""

from pydantic import BaseModel, EmailStr, Field, HttpUrl, field_validator
from datetime import datetime
from typing import Optional, List, Literal
from vems.app.models.enums import ActiveStatus
from vems.app.schemas.common import ListQuery, PageMeta, blank_to_none


class ContactPersonIn(BaseModel):
    """Contact person row as submitted by the vendor form; ``id`` marks an existing row."""
    id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=255)
    position: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    is_primary: bool = False
    notes: Optional[str] = None

    @field_validator("email", "phone", "position", mode="before")
    @classmethod
    def _blank(cls, value):
        return blank_to_none(value)


class VendorFields(BaseModel):
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    website: Optional[HttpUrl] = None
    description: Optional[str] = None
    trade_license: Optional[str] = Field(None, max_length=255)
    trade_license_file: Optional[str] = Field(None, max_length=255)
    tin: Optional[str] = Field(None, max_length=255)
    tin_file: Optional[str] = Field(None, max_length=255)
    bin: Optional[str] = Field(None, max_length=255)
    bin_file: Optional[str] = Field(None, max_length=255)
    tax_return: Optional[str] = Field(None, max_length=255)
    tax_return_file: Optional[str] = Field(None, max_length=255)
    bank_details: Optional[str] = None

    @field_validator("email", "website", "phone", mode="before")
    @classmethod
    def _blank(cls, value):
        return blank_to_none(value)


class VendorCreate(VendorFields):
    name: str = Field(..., min_length=1, max_length=255)
    status: ActiveStatus
    contact_persons: List[ContactPersonIn] = Field(..., min_length=1)


class VendorUpdate(VendorFields):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    status: Optional[ActiveStatus] = None
    # None leaves contacts untouched; a list replaces them (rows without id are new)
    contact_persons: Optional[List[ContactPersonIn]] = None


class VendorIndexQuery(ListQuery):
    status: Optional[ActiveStatus] = None
    sort: Literal["id", "name", "status", "created_at"] = "name"
    direction: Literal["asc", "desc"] = "asc"


class ContactPersonResponse(BaseModel):
    id: int
    name: str
    position: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_primary: bool
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class VendorResponse(BaseModel):
    id: int
    name: str
    address: Optional[str] = None
    status: ActiveStatus
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    trade_license: Optional[str] = None
    trade_license_file: Optional[str] = None
    tin: Optional[str] = None
    tin_file: Optional[str] = None
    bin: Optional[str] = None
    bin_file: Optional[str] = None
    tax_return: Optional[str] = None
    tax_return_file: Optional[str] = None
    bank_details: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class VendorListItem(VendorResponse):
    vehicles_count: int = 0
    primary_contact: Optional[ContactPersonResponse] = None


class VendorStats(BaseModel):
    total: int
    active: int
    inactive: int
    with_vehicles: int


class VendorListResponse(BaseModel):
    vendors: List[VendorListItem]
    meta: PageMeta
    stats: VendorStats


class VendorDetailResponse(VendorResponse):
    contact_persons: List[ContactPersonResponse] = []
    vehicles_count: int = 0
