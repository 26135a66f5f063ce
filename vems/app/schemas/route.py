"""
Stop and vehicle route Pydantic schemas.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Literal
from vems.app.core.config import settings
from vems.app.schemas.common import ListQuery, PageMeta, HHMM_PATTERN, blank_to_none


class StopCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class StopResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    class Config:
        from_attributes = True


class StopEnvelope(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: StopResponse


class StopListEnvelope(BaseModel):
    success: bool = True
    data: List[StopResponse]


class RouteStopIn(BaseModel):
    stop_id: int
    arrival_time: Optional[str] = None
    departure_time: Optional[str] = None
    manual_distance: Optional[float] = Field(None, ge=0)

    @field_validator("arrival_time", "departure_time", mode="before")
    @classmethod
    def _hhmm(cls, value):
        value = blank_to_none(value)
        if value is not None and not HHMM_PATTERN.match(value):
            raise ValueError("time must use the HH:MM format")
        return value


class RouteCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    remarks: Optional[str] = None
    stops: List[RouteStopIn] = Field(default_factory=list)


class RouteUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    remarks: Optional[str] = None
    # A submitted list replaces every stop of the route
    stops: Optional[List[RouteStopIn]] = None


class RouteIndexQuery(ListQuery):
    per_page: int = Field(10, ge=5, le=settings.max_per_page)
    sort: Literal["id", "name", "total_distance", "created_at"] = "created_at"


class RouteStopResponse(BaseModel):
    id: int
    stop_id: int
    stop_name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    stop_order: int
    arrival_time: Optional[str] = None
    departure_time: Optional[str] = None
    distance_from_previous: float
    cumulative_distance: float


class RouteResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    remarks: Optional[str] = None
    total_distance: float
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RouteListItem(RouteResponse):
    stops_count: int = 0


class RouteStats(BaseModel):
    total: int
    total_stops: int
    routes_with_stops: int
    avg_stops_per_route: float


class RouteListResponse(BaseModel):
    routes: List[RouteListItem]
    meta: PageMeta
    stats: RouteStats


class RouteDetailResponse(RouteResponse):
    stops: List[RouteStopResponse] = []
