"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from vems.app.api.v1.endpoints import (
    auth, admin, dashboard,
    permissions, roles,
    departments, users, drivers, user_groups,
    vendors, vehicles,
    stops, routes, trips,
)

router = APIRouter()

# Authentication and administration
router.include_router(auth.router)
router.include_router(admin.router)
router.include_router(dashboard.router)

# Access control
router.include_router(permissions.router)
router.include_router(roles.router)

# People
router.include_router(departments.router)
router.include_router(users.router)
router.include_router(drivers.router)
router.include_router(user_groups.router)

# Fleet
router.include_router(vendors.router)
router.include_router(vendors.select_router)
router.include_router(vehicles.router)
router.include_router(vehicles.expiring_router)

# Routes and trips
router.include_router(stops.router)
router.include_router(routes.router)
router.include_router(trips.router)
