"""
FastAPI Application Entry Point.

This is the main application file for the VEMS back office API.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from vems.app.core.config import settings
from vems.app.core.logging_config import configure_logging
from vems.app.core.observability import ObservabilityMiddleware
from vems.app.core.redis_client import ping_redis
from vems.app.api.v1.router import router as api_v1_router
from vems.app.db.session import engine, Base
from vems.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from vems.app.models.user import User
from vems.app.models.department import Department
from vems.app.models.permission import Permission, Role
from vems.app.models.user_group import UserGroup
from vems.app.models.vendor import Vendor, VendorContactPerson
from vems.app.models.vehicle import Vehicle
from vems.app.models.stop import Stop
from vems.app.models.vehicle_route import VehicleRoute, RouteStop
from vems.app.models.trip import Trip, TripPassenger
from vems.app.models.vehicle_driver_assignment import VehicleDriverAssignment
from vems.app.models.trip_vehicle_assignment import TripVehicleAssignment
from vems.app.models.audit_log import AuditLog

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Back office API for company vehicles, drivers, routes and trips",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Reports "degraded" when Redis does not answer a ping.
    """
    redis_ok = await ping_redis()
    return {
        "status": "healthy" if redis_ok else "degraded",
        "redis": "connected" if redis_ok else "unavailable",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to the VEMS Back Office API",
        "docs": "/docs",
        "health": "/health",
    }
