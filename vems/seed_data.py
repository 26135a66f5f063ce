"""
Database seeding script.

Creates the permission catalogue and default roles, a super admin, and a
small demo fleet (department, driver, vendor, vehicle, stops, route).
Run this script after the database is reachable; it creates missing tables.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from vems.app.db.session import AsyncSessionLocal, engine, Base
from vems.app.core.security import get_password_hash
from vems.app.models.department import Department
from vems.app.models.stop import Stop
from vems.app.models.user import User
from vems.app.models.vehicle import Vehicle
from vems.app.models.vehicle_route import VehicleRoute, RouteStop
from vems.app.models.vendor import Vendor, VendorContactPerson
from vems.app.models.enums import UserType, DriverStatus, LicenseClass, VehicleType, RentalType, FuelType
from vems.app.schemas.route import RouteStopIn
from vems.app.services.assignment_history import start_vehicle_driver_assignment
from vems.app.services.permissions import ensure_default_permissions, sync_user_roles, SUPER_ADMIN_ROLE
from vems.app.services.route_planning import plan_route_stops, total_distance

# Import the remaining models so create_all sees every table
from vems.app.models import audit_log, trip, trip_vehicle_assignment, user_group  # noqa: F401

DEMO_STOPS = (
    ("Head Office", 23.7806, 90.4074),
    ("Banani Bus Stand", 23.7937, 90.4066),
    ("Uttara Sector 7", 23.8693, 90.3965),
)


async def seed_data():
    """
    Seed roles, permissions, an admin and demo fleet records.

    Creates:
    - default permissions and roles
    - 1 super admin (admin / admin123)
    - 1 department, 1 driver, 1 vendor with a contact, 1 vehicle
    - 3 stops and a route through them
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting seeding...")

        role_ids = await ensure_default_permissions(db)
        print(f"✅ Permissions and roles ready ({', '.join(sorted(role_ids))})")

        result = await db.execute(select(User).where(User.username == "admin"))
        if result.scalar_one_or_none():
            print("ℹ️  Admin user already exists, skipping demo data")
            return

        department = Department(name="Administration", code="ADM", location="Head Office")
        db.add(department)
        await db.flush()

        admin_user = User(
            name="System Administrator",
            username="admin",
            email="admin@vems.com",
            employee_id="EMP-0001",
            hashed_password=get_password_hash("admin123"),
            user_type=UserType.ADMIN,
            department_id=department.id,
            is_superuser=True,
        )
        driver = User(
            name="Rahim Uddin",
            username="driver1",
            email="driver1@vems.com",
            employee_id="EMP-0002",
            hashed_password=get_password_hash("driver123"),
            user_type=UserType.DRIVER,
            department_id=department.id,
            driving_license_no="DL-100200",
            license_class=LicenseClass.B,
            driver_status=DriverStatus.AVAILABLE,
        )
        db.add_all([admin_user, driver])
        await db.flush()
        await sync_user_roles(db, admin_user.id, [role_ids[SUPER_ADMIN_ROLE]])
        await sync_user_roles(db, driver.id, [role_ids["Driver"]])
        department.head_id = admin_user.id
        print("✅ Created admin (admin / admin123) and driver (driver1 / driver123)")

        vendor = Vendor(name="City Rent-A-Car", phone="01700000000", email="info@cityrent.com")
        db.add(vendor)
        await db.flush()
        db.add(VendorContactPerson(vendor_id=vendor.id, name="Karim Ahmed", phone="01711111111", is_primary=True))

        vehicle = Vehicle(
            brand="Toyota",
            model="Hiace",
            registration_number="DHAKA-METRO-CHA-11-2233",
            vehicle_type=VehicleType.MICROBUS,
            rental_type=RentalType.RENTAL,
            capacity=12,
            fuel_type=FuelType.DIESEL,
            vendor_id=vendor.id,
            driver_id=driver.id,
        )
        db.add(vehicle)
        await db.flush()
        await start_vehicle_driver_assignment(db, vehicle, actor_id=admin_user.id, notes="Seeded")
        print("✅ Created vendor and vehicle with its first driver assignment")

        stops = [Stop(name=name, latitude=lat, longitude=lng) for name, lat, lng in DEMO_STOPS]
        db.add_all(stops)
        await db.flush()

        route = VehicleRoute(name="Office Shuttle North", total_distance=0)
        db.add(route)
        await db.flush()
        planned = plan_route_stops([RouteStopIn(stop_id=stop.id) for stop in stops], {stop.id: stop for stop in stops})
        for item in planned:
            db.add(RouteStop(
                vehicle_route_id=route.id,
                stop_id=item.stop_id,
                stop_order=item.stop_order,
                distance_from_previous=item.distance_from_previous,
                cumulative_distance=item.cumulative_distance,
            ))
        route.total_distance = total_distance(planned)
        print(f"✅ Created route '{route.name}' ({route.total_distance} km)")

        await db.commit()
        print("\n🎉 Seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed_data())
