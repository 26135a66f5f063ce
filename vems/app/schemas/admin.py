"""
Admin and dashboard Pydantic schemas.
"""

from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List


class AuditLogResponse(BaseModel):
    """Schema for audit log entry."""
    id: int
    actor_id: Optional[int]
    actor_username: Optional[str]
    action: str
    target_type: Optional[str]
    target_id: Optional[int]
    target_label: Optional[str]
    meta_data: Optional[dict]
    ip_address: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    """Schema for audit trail list."""
    logs: List[AuditLogResponse]
    total: int


class RecentVehicle(BaseModel):
    id: int
    brand: str
    model: str
    registration_number: str
    driver_name: Optional[str] = None
    vendor_name: Optional[str] = None
    created_at: datetime


class RecentUser(BaseModel):
    id: int
    name: str
    email: str
    user_type: str
    created_at: datetime


class TodayTrips(BaseModel):
    scheduled: int
    in_progress: int
    completed: int


class DashboardResponse(BaseModel):
    total_users: int
    total_vehicles: int
    active_vehicles: int
    total_vendors: int
    recent_vehicles: List[RecentVehicle]
    recent_users: List[RecentUser]
    trips_today: TodayTrips
