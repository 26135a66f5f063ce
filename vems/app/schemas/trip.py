"""
Trip Pydantic schemas.

Covers the trip request form, the workflow actions (approve, reject, start,
complete, reassign vehicle) and the listing/detail payloads.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import date, datetime
from typing import Optional, List, Literal
from vems.app.models.enums import TripStatus, ScheduleType, TripPriority, PassengerStatus, AssignmentReason
from vems.app.schemas.common import ListQuery, PageMeta, SelectOption, HHMM_PATTERN, blank_to_none


def _check_hhmm(value):
    value = blank_to_none(value)
    if value is not None and not HHMM_PATTERN.match(value):
        raise ValueError("time must use the HH:MM format")
    return value


class PassengerIn(BaseModel):
    user_id: int
    pickup_stop_id: Optional[int] = None
    dropoff_stop_id: Optional[int] = None
    status: PassengerStatus = PassengerStatus.PENDING
    notes: Optional[str] = None

    @field_validator("pickup_stop_id", "dropoff_stop_id", mode="before")
    @classmethod
    def _blank(cls, value):
        return blank_to_none(value)


class TripCreate(BaseModel):
    vehicle_route_id: Optional[int] = None
    vehicle_id: int
    department_id: Optional[int] = None
    purpose: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    schedule_type: ScheduleType
    priority: TripPriority
    scheduled_date: date
    scheduled_start_time: str
    scheduled_end_time: str
    notes: Optional[str] = None
    passengers: List[PassengerIn] = Field(default_factory=list)

    @field_validator("vehicle_route_id", "department_id", mode="before")
    @classmethod
    def _blank(cls, value):
        return blank_to_none(value)

    @field_validator("scheduled_start_time", "scheduled_end_time", mode="before")
    @classmethod
    def _times(cls, value):
        value = _check_hhmm(value)
        if value is None:
            raise ValueError("time is required")
        return value

    @model_validator(mode="after")
    def _unique_passengers(self):
        user_ids = [p.user_id for p in self.passengers]
        if len(user_ids) != len(set(user_ids)):
            raise ValueError("a passenger can only be listed once per trip")
        return self


class TripUpdate(TripCreate):
    """Full replacement of the request fields; passengers replaced when sent."""
    passengers: Optional[List[PassengerIn]] = None

    @model_validator(mode="after")
    def _unique_passengers(self):
        if self.passengers:
            user_ids = [p.user_id for p in self.passengers]
            if len(user_ids) != len(set(user_ids)):
                raise ValueError("a passenger can only be listed once per trip")
        return self


class TripReject(BaseModel):
    rejection_reason: str = Field(..., min_length=1)


class TripStart(BaseModel):
    odometer_start: float = Field(..., ge=0)


class TripComplete(BaseModel):
    odometer_end: float = Field(..., ge=0)
    fuel_consumed: Optional[float] = Field(None, ge=0)
    fuel_cost: Optional[float] = Field(None, ge=0)
    other_costs: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class TripFeedback(BaseModel):
    driver_rating: Optional[int] = Field(None, ge=1, le=5)
    vehicle_rating: Optional[int] = Field(None, ge=1, le=5)
    feedback: Optional[str] = None


class ReassignVehicle(BaseModel):
    vehicle_id: int
    reason: Literal["damaged", "maintenance", "breakdown", "replacement", "other"]
    notes: Optional[str] = Field(None, max_length=500)


class TripIndexQuery(ListQuery):
    status: Optional[TripStatus] = None
    schedule_type: Optional[ScheduleType] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    vehicle_id: Optional[int] = None
    sort: Literal["id", "trip_number", "scheduled_date", "status", "priority", "created_at"] = "scheduled_date"


class TripResponse(BaseModel):
    id: int
    trip_number: str
    vehicle_route_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    driver_id: Optional[int] = None
    department_id: Optional[int] = None
    requested_by: Optional[int] = None
    approved_by: Optional[int] = None
    purpose: str
    description: Optional[str] = None
    schedule_type: ScheduleType
    priority: TripPriority
    scheduled_date: date
    scheduled_start_time: str
    scheduled_end_time: str
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    odometer_start: Optional[float] = None
    odometer_end: Optional[float] = None
    distance_traveled: Optional[float] = None
    actual_duration: Optional[int] = None
    fuel_consumed: Optional[float] = None
    fuel_cost: Optional[float] = None
    other_costs: Optional[float] = None
    total_cost: Optional[float] = None
    status: TripStatus
    driver_rating: Optional[int] = None
    vehicle_rating: Optional[int] = None
    feedback: Optional[str] = None
    rejection_reason: Optional[str] = None
    notes: Optional[str] = None
    trip_documents: Optional[list] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TripListItem(TripResponse):
    vehicle_registration: Optional[str] = None
    requester_name: Optional[str] = None
    passengers_count: int = 0


class TripStats(BaseModel):
    total: int
    pending: int
    approved: int
    in_progress: int
    completed: int
    today: int


class TripListResponse(BaseModel):
    trips: List[TripListItem]
    meta: PageMeta
    stats: TripStats


class PassengerResponse(BaseModel):
    id: int
    user_id: int
    user_name: Optional[str] = None
    pickup_stop_id: Optional[int] = None
    dropoff_stop_id: Optional[int] = None
    status: PassengerStatus
    boarded_at: Optional[datetime] = None
    dropped_at: Optional[datetime] = None
    notes: Optional[str] = None


class VehicleAssignmentResponse(BaseModel):
    id: int
    vehicle_id: int
    vehicle_registration: Optional[str] = None
    assigned_at: datetime
    unassigned_at: Optional[datetime] = None
    is_current: bool
    assigned_by: Optional[int] = None
    reason: AssignmentReason
    notes: Optional[str] = None


class TripDetailResponse(TripResponse):
    vehicle_registration: Optional[str] = None
    requester_name: Optional[str] = None
    approver_name: Optional[str] = None
    passengers: List[PassengerResponse] = []
    vehicle_assignments: List[VehicleAssignmentResponse] = []
    available_vehicles: List[SelectOption] = []


class RouteOption(BaseModel):
    id: int
    name: str
    total_distance: float
    stops: List[SelectOption] = []


class TripFormOptions(BaseModel):
    vehicles: List[SelectOption]
    routes: List[RouteOption]
    departments: List[SelectOption]
    employees: List[SelectOption]
    schedule_types: List[str]
    priorities: List[str]
