"""
Vehicle Pydantic schemas.

The vehicle form submits many optional fields; select boxes send the literal
"none" for an empty choice, which is normalised to null here.
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import date, datetime
from typing import Optional, List, Literal
from vems.app.models.enums import VehicleType, RentalType, VehicleStatus, FuelType, InsuranceType
from vems.app.core.config import settings
from vems.app.schemas.common import ListQuery, PageMeta, SelectOption, blank_to_none


def _max_manufacture_year() -> int:
    return date.today().year + 1


class VehicleFields(BaseModel):
    color: Optional[str] = Field(None, max_length=100)
    capacity: Optional[int] = Field(None, ge=1)
    status: Optional[VehicleStatus] = None

    tax_token_last_date: Optional[date] = None
    tax_token_number: Optional[str] = Field(None, max_length=100)
    fitness_certificate_last_date: Optional[date] = None
    fitness_certificate_number: Optional[str] = Field(None, max_length=100)
    insurance_type: Optional[InsuranceType] = None
    insurance_last_date: Optional[date] = None
    insurance_policy_number: Optional[str] = Field(None, max_length=100)
    insurance_company: Optional[str] = Field(None, max_length=255)
    registration_certificate_number: Optional[str] = Field(None, max_length=100)

    owner_name: Optional[str] = Field(None, max_length=255)
    owner_address: Optional[str] = None
    owner_phone: Optional[str] = Field(None, max_length=20)
    owner_email: Optional[EmailStr] = None
    owner_nid: Optional[str] = Field(None, max_length=50)

    manufacture_year: Optional[int] = Field(None, ge=1900)
    engine_number: Optional[str] = Field(None, max_length=100)
    chassis_number: Optional[str] = Field(None, max_length=100)
    fuel_type: Optional[FuelType] = None

    tax_token_alert_enabled: Optional[bool] = None
    fitness_alert_enabled: Optional[bool] = None
    insurance_alert_enabled: Optional[bool] = None
    alert_days_before: Optional[int] = Field(None, ge=1, le=365)

    parking_address: Optional[str] = None
    parking_latitude: Optional[float] = Field(None, ge=-90, le=90)
    parking_longitude: Optional[float] = Field(None, ge=-180, le=180)

    @field_validator("fuel_type", "insurance_type", "owner_email", "color", mode="before")
    @classmethod
    def _none_choice(cls, value):
        return blank_to_none(value)

    @field_validator("manufacture_year")
    @classmethod
    def _year_not_in_future(cls, value):
        if value is not None and value > _max_manufacture_year():
            raise ValueError(f"manufacture_year must not be after {_max_manufacture_year()}")
        return value


class VehicleCreate(VehicleFields):
    brand: str = Field(..., min_length=1, max_length=255)
    model: str = Field(..., min_length=1, max_length=255)
    registration_number: str = Field(..., min_length=1, max_length=100)
    vehicle_type: VehicleType = VehicleType.SEDAN
    rental_type: RentalType = RentalType.POOL
    capacity: int = Field(4, ge=1)
    vendor_id: int
    driver_id: int
    is_active: bool = True
    tax_token_alert_enabled: bool = True
    fitness_alert_enabled: bool = True
    insurance_alert_enabled: bool = True
    alert_days_before: int = Field(settings.document_alert_days, ge=1, le=365)

    @field_validator("vendor_id", "driver_id", mode="before")
    @classmethod
    def _none_id(cls, value):
        return blank_to_none(value)


class VehicleUpdate(VehicleFields):
    brand: Optional[str] = Field(None, min_length=1, max_length=255)
    model: Optional[str] = Field(None, min_length=1, max_length=255)
    registration_number: Optional[str] = Field(None, min_length=1, max_length=100)
    vehicle_type: Optional[VehicleType] = None
    rental_type: Optional[RentalType] = None
    vendor_id: Optional[int] = None
    driver_id: Optional[int] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=500, description="Stored on the new driver assignment")

    @field_validator("vendor_id", "driver_id", mode="before")
    @classmethod
    def _none_id(cls, value):
        return blank_to_none(value)


class VehicleIndexQuery(ListQuery):
    brand: List[str] = []
    color: List[str] = []
    vehicle_type: List[VehicleType] = []
    rental_type: List[RentalType] = []
    fuel_type: List[FuelType] = []
    vendor_id: List[int] = []
    is_active: List[bool] = []
    sort: Literal["id", "brand", "model", "color", "registration_number", "is_active", "created_at"] = "id"


class VehicleResponse(BaseModel):
    id: int
    brand: str
    model: str
    color: Optional[str] = None
    registration_number: str
    vehicle_type: VehicleType
    rental_type: RentalType
    capacity: int
    vendor_id: Optional[int] = None
    driver_id: Optional[int] = None
    is_active: bool
    status: VehicleStatus
    tax_token_last_date: Optional[date] = None
    tax_token_number: Optional[str] = None
    fitness_certificate_last_date: Optional[date] = None
    fitness_certificate_number: Optional[str] = None
    insurance_type: Optional[InsuranceType] = None
    insurance_last_date: Optional[date] = None
    insurance_policy_number: Optional[str] = None
    insurance_company: Optional[str] = None
    registration_certificate_number: Optional[str] = None
    owner_name: Optional[str] = None
    owner_address: Optional[str] = None
    owner_phone: Optional[str] = None
    owner_email: Optional[str] = None
    owner_nid: Optional[str] = None
    manufacture_year: Optional[int] = None
    engine_number: Optional[str] = None
    chassis_number: Optional[str] = None
    fuel_type: Optional[FuelType] = None
    tax_token_alert_enabled: bool
    fitness_alert_enabled: bool
    insurance_alert_enabled: bool
    alert_days_before: int
    parking_address: Optional[str] = None
    parking_latitude: Optional[float] = None
    parking_longitude: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ExpiringDocument(BaseModel):
    type: str
    name: str
    date: date
    days_left: int


class Ref(BaseModel):
    id: int
    name: str


class VehicleListItem(VehicleResponse):
    vendor: Optional[Ref] = None
    driver: Optional[Ref] = None
    has_expiring_documents: bool = False


class VehicleStats(BaseModel):
    total: int
    active: int
    brands: int
    inactive: int


class VehicleFilterOptions(BaseModel):
    brands: List[str]
    colors: List[str]
    vehicle_types: List[str]
    rental_types: List[str]
    fuel_types: List[str]
    vendors: List[SelectOption]


class VehicleListResponse(BaseModel):
    vehicles: List[VehicleListItem]
    meta: PageMeta
    stats: VehicleStats
    filter_options: VehicleFilterOptions


class DriverAssignmentResponse(BaseModel):
    id: int
    vehicle_id: int
    driver_id: int
    driver_name: Optional[str] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    is_current: bool
    assigned_by: Optional[int] = None
    assigned_by_name: Optional[str] = None
    notes: Optional[str] = None


class VendorContactRef(BaseModel):
    id: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    is_primary: bool


class VehicleVendor(Ref):
    contact_persons: List[VendorContactRef] = []


class VehicleDriver(Ref):
    email: Optional[str] = None
    driving_license_no: Optional[str] = None


class VehicleDetailResponse(VehicleResponse):
    vendor: Optional[VehicleVendor] = None
    driver: Optional[VehicleDriver] = None
    current_assignment: Optional[DriverAssignmentResponse] = None
    assignment_history: List[DriverAssignmentResponse] = []
    expiring_documents: List[ExpiringDocument] = []


class ExpiringVehicle(BaseModel):
    id: int
    brand: str
    model: str
    registration_number: str
    expiring_documents: List[ExpiringDocument]


class VehicleFormOptions(BaseModel):
    vendors: List[SelectOption]
    drivers: List[SelectOption]
    vehicle_types: List[str]
    rental_types: List[str]
    fuel_types: List[str]
    insurance_types: List[str]
