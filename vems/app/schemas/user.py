"""
User and driver Pydantic schemas.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from datetime import date, datetime
from typing import Optional, List, Literal
from vems.app.models.enums import UserType, UserStatus, DriverStatus, LicenseClass, BloodGroup
from vems.app.schemas.common import ListQuery, PageMeta, SelectOption, blank_to_none

_OPTIONAL_FIELDS = (
    "username", "employee_id", "official_phone", "personal_phone", "whatsapp_id",
    "emergency_contact_name", "emergency_contact_relation", "emergency_phone",
    "nid_number", "passport_number", "driving_license_no", "license_class",
    "license_issue_date", "license_expiry_date", "department_id", "blood_group",
    "image", "photo", "joining_date", "probation_end_date", "area",
    "present_address", "permanent_address", "driver_status",
)


class UserFields(BaseModel):
    """Optional profile fields shared by create and update."""
    username: Optional[str] = Field(None, min_length=3, max_length=100)
    employee_id: Optional[str] = Field(None, max_length=50)
    official_phone: Optional[str] = Field(None, max_length=20)
    personal_phone: Optional[str] = Field(None, max_length=20)
    whatsapp_id: Optional[str] = Field(None, max_length=50)
    emergency_contact_name: Optional[str] = Field(None, max_length=255)
    emergency_contact_relation: Optional[str] = Field(None, max_length=100)
    emergency_phone: Optional[str] = Field(None, max_length=20)
    nid_number: Optional[str] = Field(None, max_length=50)
    passport_number: Optional[str] = Field(None, max_length=50)
    driving_license_no: Optional[str] = Field(None, max_length=50)
    license_class: Optional[LicenseClass] = None
    license_issue_date: Optional[date] = None
    license_expiry_date: Optional[date] = None
    department_id: Optional[int] = None
    blood_group: Optional[BloodGroup] = None
    image: Optional[str] = Field(None, max_length=255)
    photo: Optional[str] = Field(None, max_length=255)
    joining_date: Optional[date] = None
    probation_end_date: Optional[date] = None
    area: Optional[str] = Field(None, max_length=255)
    present_address: Optional[str] = Field(None, max_length=1000)
    permanent_address: Optional[str] = Field(None, max_length=1000)
    driver_status: Optional[DriverStatus] = None

    @field_validator(*_OPTIONAL_FIELDS, mode="before")
    @classmethod
    def _blank(cls, value):
        return blank_to_none(value)

    @model_validator(mode="after")
    def _license_dates(self):
        issued, expires = self.license_issue_date, self.license_expiry_date
        if issued and expires and expires <= issued:
            raise ValueError("license_expiry_date must be after license_issue_date")
        return self


class UserCreate(UserFields):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    user_type: UserType = UserType.EMPLOYEE
    status: UserStatus = UserStatus.ACTIVE
    role_ids: List[int] = Field(..., min_length=1)


class UserUpdate(UserFields):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    # Blank password keeps the current one
    password: Optional[str] = Field(None, min_length=8, max_length=128)
    user_type: Optional[UserType] = None
    status: Optional[UserStatus] = None
    role_ids: Optional[List[int]] = None

    @field_validator("password", mode="before")
    @classmethod
    def _blank_password(cls, value):
        return blank_to_none(value)


class DriverCreate(UserFields):
    """Drivers are users with user_type fixed to driver and a licence."""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    driving_license_no: str = Field(..., min_length=1, max_length=50)
    status: UserStatus = UserStatus.ACTIVE
    role_ids: List[int] = Field(default_factory=list)


class DriverStatusUpdate(BaseModel):
    driver_status: DriverStatus


class UserIndexQuery(ListQuery):
    user_type: List[UserType] = []
    status: List[UserStatus] = []
    department_id: Optional[int] = None
    blood_group: List[BloodGroup] = []
    roles: List[str] = []
    sort: Literal["id", "name", "email", "employee_id", "user_type", "status", "department", "created_at"] = "id"


class DriverIndexQuery(ListQuery):
    status: List[UserStatus] = []
    driver_status: List[DriverStatus] = []
    department_id: Optional[int] = None
    sort: Literal["id", "name", "email", "driving_license_no", "license_expiry_date", "created_at"] = "name"
    direction: Literal["asc", "desc"] = "asc"


class UserResponse(BaseModel):
    id: int
    name: str
    username: Optional[str] = None
    employee_id: Optional[str] = None
    email: str
    official_phone: Optional[str] = None
    personal_phone: Optional[str] = None
    whatsapp_id: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_relation: Optional[str] = None
    emergency_phone: Optional[str] = None
    nid_number: Optional[str] = None
    passport_number: Optional[str] = None
    driving_license_no: Optional[str] = None
    license_class: Optional[LicenseClass] = None
    license_issue_date: Optional[date] = None
    license_expiry_date: Optional[date] = None
    user_type: UserType
    department_id: Optional[int] = None
    blood_group: Optional[BloodGroup] = None
    image: Optional[str] = None
    photo: Optional[str] = None
    status: UserStatus
    joining_date: Optional[date] = None
    probation_end_date: Optional[date] = None
    area: Optional[str] = None
    present_address: Optional[str] = None
    permanent_address: Optional[str] = None
    total_distance_covered: float = 0
    total_trips_completed: int = 0
    average_rating: float = 0
    driver_status: Optional[DriverStatus] = None
    last_login_at: Optional[datetime] = None
    is_superuser: bool = False
    is_driver: bool = False
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserListItem(UserResponse):
    department_name: Optional[str] = None
    roles: List[str] = []


class UserStats(BaseModel):
    total: int
    active: int
    drivers: int
    inactive: int


class UserFilterOptions(BaseModel):
    user_types: List[str]
    statuses: List[str]
    blood_groups: List[str]
    departments: List[SelectOption]
    roles: List[str]


class UserListResponse(BaseModel):
    users: List[UserListItem]
    meta: PageMeta
    stats: UserStats
    filter_options: UserFilterOptions


class DriverPerformance(BaseModel):
    license_status: str
    can_drive: bool
    total_trips: int
    completed_trips: int
    completion_rate: float
    total_distance_covered: float
    average_rating: float
    current_vehicle_id: Optional[int] = None


class UserDetailResponse(UserResponse):
    department_name: Optional[str] = None
    roles: List[str] = []
    permissions: List[str] = []
    driver_performance: Optional[DriverPerformance] = None


class DriverListItem(UserListItem):
    license_status: str
    can_drive: bool


class DriverStats(BaseModel):
    total: int
    available: int
    on_trip: int
    license_expired: int


class DriverListResponse(BaseModel):
    drivers: List[DriverListItem]
    meta: PageMeta
    stats: DriverStats


class AvailableDriver(BaseModel):
    id: int
    name: str
    email: str
    driving_license_no: Optional[str] = None
    license_status: str
