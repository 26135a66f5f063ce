"""
Dashboard API endpoint.
"""

from datetime import date
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import aliased
from vems.app.db.session import get_db
from vems.app.models.trip import Trip
from vems.app.models.user import User
from vems.app.models.vehicle import Vehicle
from vems.app.models.vendor import Vendor
from vems.app.models.enums import TripStatus
from vems.app.schemas.admin import DashboardResponse, RecentVehicle, RecentUser, TodayTrips
from vems.app.core.guards import require_permission
from vems.app.services.listing import count

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])

RECENT_LIMIT = 5


@router.get("", response_model=DashboardResponse)
async def dashboard(
    current_user: dict = Depends(require_permission("view-dashboard")),
    db: AsyncSession = Depends(get_db)
):
    """Headline counters, latest vehicles and users, and today's trips."""
    driver = aliased(User)
    recent_vehicles = await db.execute(
        select(Vehicle, driver.name, Vendor.name)
        .outerjoin(driver, driver.id == Vehicle.driver_id)
        .outerjoin(Vendor, Vendor.id == Vehicle.vendor_id)
        .order_by(Vehicle.created_at.desc(), Vehicle.id.desc())
        .limit(RECENT_LIMIT)
    )
    recent_users = await db.execute(
        select(User).order_by(User.created_at.desc(), User.id.desc()).limit(RECENT_LIMIT)
    )

    today = (Trip.scheduled_date == date.today(), Trip.deleted_at.is_(None))
    return DashboardResponse(
        total_users=await count(db, User.id),
        total_vehicles=await count(db, Vehicle.id),
        active_vehicles=await count(db, Vehicle.id, Vehicle.is_active.is_(True)),
        total_vendors=await count(db, Vendor.id),
        recent_vehicles=[
            RecentVehicle(
                id=vehicle.id,
                brand=vehicle.brand,
                model=vehicle.model,
                registration_number=vehicle.registration_number,
                driver_name=driver_name,
                vendor_name=vendor_name,
                created_at=vehicle.created_at,
            )
            for vehicle, driver_name, vendor_name in recent_vehicles.all()
        ],
        recent_users=[
            RecentUser(
                id=user.id,
                name=user.name,
                email=user.email,
                user_type=user.user_type.value,
                created_at=user.created_at,
            )
            for user in recent_users.scalars().all()
        ],
        trips_today=TodayTrips(
            scheduled=await count(db, Trip.id, *today),
            in_progress=await count(db, Trip.id, *today, Trip.status == TripStatus.IN_PROGRESS),
            completed=await count(db, Trip.id, *today, Trip.status == TripStatus.COMPLETED),
        ),
    )
