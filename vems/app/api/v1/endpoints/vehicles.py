"""
Vehicle API endpoints.

Every write that touches ``driver_id`` goes through the assignment history
service in the same transaction, so the driver history of a vehicle always
has exactly one open row while the vehicle has a driver.
"""

from typing import Annotated, List
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, distinct
from sqlalchemy.orm import aliased
from vems.app.db.session import get_db
from vems.app.models.user import User
from vems.app.models.vehicle import Vehicle
from vems.app.models.vehicle_driver_assignment import VehicleDriverAssignment
from vems.app.models.vendor import Vendor, VendorContactPerson
from vems.app.models.enums import (
    VehicleType, RentalType, FuelType, InsuranceType, ActiveStatus, UserStatus, DRIVER_USER_TYPES,
)
from vems.app.schemas.common import SelectOption
from vems.app.schemas.vehicle import (
    VehicleCreate, VehicleUpdate, VehicleIndexQuery, VehicleResponse, VehicleListItem, VehicleListResponse,
    VehicleStats, VehicleFilterOptions, VehicleDetailResponse, VehicleVendor, VendorContactRef,
    VehicleDriver, DriverAssignmentResponse, ExpiringDocument, ExpiringVehicle, VehicleFormOptions, Ref,
)
from vems.app.core.guards import require_permission
from vems.app.core.exceptions import ResourceNotFoundError, ValidationFailedError
from vems.app.services.audit import log_event, AuditAction
from vems.app.services.listing import search_clause, apply_sort, paginate, count
from vems.app.services.assignment_history import (
    start_vehicle_driver_assignment, record_vehicle_driver_change, get_vehicle_driver_history,
    get_current_driver_assignment,
)

router = APIRouter(prefix="/vehicles", tags=["Vehicles"])
expiring_router = APIRouter(prefix="/vehicles-expiring", tags=["Vehicles"])

SORT_COLUMNS = {
    "id": Vehicle.id,
    "brand": Vehicle.brand,
    "model": Vehicle.model,
    "color": Vehicle.color,
    "registration_number": Vehicle.registration_number,
    "is_active": Vehicle.is_active,
    "created_at": Vehicle.created_at,
}

# Columns that keep their value when an update sends null
NOT_NULL_FIELDS = {
    "brand", "model", "registration_number", "vehicle_type", "rental_type", "capacity",
    "is_active", "status", "tax_token_alert_enabled", "fitness_alert_enabled",
    "insurance_alert_enabled", "alert_days_before",
}


async def get_vehicle_or_404(db: AsyncSession, vehicle_id: int) -> Vehicle:
    result = await db.execute(select(Vehicle).where(Vehicle.id == vehicle_id))
    vehicle = result.scalar_one_or_none()
    if not vehicle:
        raise ResourceNotFoundError("Vehicle", vehicle_id)
    return vehicle


async def _validate_vehicle(db: AsyncSession, data: dict, vehicle_id: int = None) -> None:
    """Registration number uniqueness plus vendor and driver existence."""
    errors = {}
    if data.get("registration_number") is not None:
        query = select(Vehicle.id).where(Vehicle.registration_number == data["registration_number"])
        if vehicle_id:
            query = query.where(Vehicle.id != vehicle_id)
        if (await db.execute(query)).first():
            errors["registration_number"] = "The registration number has already been taken."

    for field, model, label in (("vendor_id", Vendor, "vendor"), ("driver_id", User, "driver")):
        if field not in data:
            continue
        if data[field] is None:
            errors[field] = f"The {label} field is required."
            continue
        found = await db.execute(select(model.id).where(model.id == data[field]))
        if not found.first():
            errors[field] = f"The selected {label} does not exist."

    if errors:
        raise ValidationFailedError(errors)


def _expiring(vehicle: Vehicle) -> List[ExpiringDocument]:
    return [ExpiringDocument(**doc) for doc in vehicle.expiring_documents()]


@router.get("", response_model=VehicleListResponse)
async def list_vehicles(
    params: Annotated[VehicleIndexQuery, Query()],
    current_user: dict = Depends(require_permission("view-vehicles")),
    db: AsyncSession = Depends(get_db)
):
    """
    List vehicles.

    Search covers brand, model, colour, registration number, vendor name and
    driver name or email. Every filter accepts several values.
    """
    driver = aliased(User)
    query = (
        select(Vehicle, Vendor.name, driver.name)
        .outerjoin(Vendor, Vendor.id == Vehicle.vendor_id)
        .outerjoin(driver, driver.id == Vehicle.driver_id)
    )

    if params.search:
        query = query.where(search_clause(params.search, [
            Vehicle.brand, Vehicle.model, Vehicle.color, Vehicle.registration_number,
            Vendor.name, driver.name, driver.email,
        ]))
    filters = (
        (Vehicle.brand, params.brand),
        (Vehicle.color, params.color),
        (Vehicle.vehicle_type, params.vehicle_type),
        (Vehicle.rental_type, params.rental_type),
        (Vehicle.fuel_type, params.fuel_type),
        (Vehicle.vendor_id, params.vendor_id),
        (Vehicle.is_active, params.is_active),
    )
    for column, values in filters:
        if values:
            query = query.where(column.in_(values))

    query = apply_sort(query, SORT_COLUMNS[params.sort], params.direction)
    rows, meta = await paginate(db, query, params.page, params.per_page)

    vehicles = []
    for vehicle, vendor_name, driver_name in rows:
        item = VehicleListItem.model_validate(vehicle)
        item.vendor = Ref(id=vehicle.vendor_id, name=vendor_name) if vendor_name else None
        item.driver = Ref(id=vehicle.driver_id, name=driver_name) if driver_name else None
        item.has_expiring_documents = vehicle.has_expiring_documents()
        vehicles.append(item)

    stats = VehicleStats(
        total=await count(db, Vehicle.id),
        active=await count(db, Vehicle.id, Vehicle.is_active.is_(True)),
        brands=(await db.execute(select(func.count(distinct(Vehicle.brand))))).scalar() or 0,
        inactive=await count(db, Vehicle.id, Vehicle.is_active.is_(False)),
    )

    brands = await db.execute(select(distinct(Vehicle.brand)).order_by(Vehicle.brand))
    colors = await db.execute(
        select(distinct(Vehicle.color)).where(Vehicle.color.is_not(None)).order_by(Vehicle.color)
    )
    vendors = await db.execute(select(Vendor).order_by(Vendor.name))
    filter_options = VehicleFilterOptions(
        brands=list(brands.scalars().all()),
        colors=list(colors.scalars().all()),
        vehicle_types=[t.value for t in VehicleType],
        rental_types=[t.value for t in RentalType],
        fuel_types=[t.value for t in FuelType],
        vendors=[SelectOption(label=v.name, value=v.id) for v in vendors.scalars().all()],
    )

    return VehicleListResponse(vehicles=vehicles, meta=meta, stats=stats, filter_options=filter_options)


@router.get("/form-options", response_model=VehicleFormOptions)
async def vehicle_form_options(
    current_user: dict = Depends(require_permission("view-vehicles")),
    db: AsyncSession = Depends(get_db)
):
    """Active vendors and drivers plus the enum choices of the vehicle form."""
    vendors = await db.execute(
        select(Vendor).where(Vendor.status == ActiveStatus.ACTIVE).order_by(Vendor.name)
    )
    drivers = await db.execute(
        select(User)
        .where(User.user_type.in_(DRIVER_USER_TYPES), User.status == UserStatus.ACTIVE)
        .order_by(User.name)
    )
    return VehicleFormOptions(
        vendors=[SelectOption(label=v.name, value=v.id) for v in vendors.scalars().all()],
        drivers=[SelectOption(label=u.name, value=u.id) for u in drivers.scalars().all()],
        vehicle_types=[t.value for t in VehicleType],
        rental_types=[t.value for t in RentalType],
        fuel_types=[t.value for t in FuelType],
        insurance_types=[t.value for t in InsuranceType],
    )


@router.post("", response_model=VehicleDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_vehicle(
    vehicle_data: VehicleCreate,
    current_user: dict = Depends(require_permission("create-vehicles")),
    db: AsyncSession = Depends(get_db)
):
    """Register a vehicle and open its first driver assignment."""
    data = vehicle_data.model_dump()
    await _validate_vehicle(db, data)
    if data.get("status") is None:
        data.pop("status", None)

    vehicle = Vehicle(**data)
    db.add(vehicle)
    await db.flush()
    await start_vehicle_driver_assignment(db, vehicle, actor_id=current_user["user_id"])
    await db.commit()
    await db.refresh(vehicle)

    await log_event(
        db=db,
        action=AuditAction.VEHICLE_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="vehicle",
        target_id=vehicle.id,
        target_label=vehicle.registration_number,
        metadata={"driver_id": vehicle.driver_id, "vendor_id": vehicle.vendor_id}
    )
    return await get_vehicle(vehicle.id, current_user, db)


def _assignment_response(assignment: VehicleDriverAssignment, names: dict) -> DriverAssignmentResponse:
    return DriverAssignmentResponse(
        id=assignment.id,
        vehicle_id=assignment.vehicle_id,
        driver_id=assignment.driver_id,
        driver_name=names.get(assignment.driver_id),
        started_at=assignment.started_at,
        ended_at=assignment.ended_at,
        is_current=assignment.is_current,
        assigned_by=assignment.assigned_by,
        assigned_by_name=names.get(assignment.assigned_by),
        notes=assignment.notes,
    )


@router.get("/{vehicle_id}", response_model=VehicleDetailResponse)
async def get_vehicle(
    vehicle_id: int = Path(..., description="Vehicle ID"),
    current_user: dict = Depends(require_permission("view-vehicles")),
    db: AsyncSession = Depends(get_db)
):
    """Vehicle with vendor contacts, driver, current and past driver assignments and expiring documents."""
    vehicle = await get_vehicle_or_404(db, vehicle_id)

    vendor = None
    if vehicle.vendor_id:
        row = (await db.execute(select(Vendor).where(Vendor.id == vehicle.vendor_id))).scalar_one_or_none()
        if row:
            contacts = await db.execute(
                select(VendorContactPerson)
                .where(VendorContactPerson.vendor_id == row.id)
                .order_by(VendorContactPerson.is_primary.desc(), VendorContactPerson.id)
            )
            vendor = VehicleVendor(
                id=row.id,
                name=row.name,
                contact_persons=[
                    VendorContactRef(id=c.id, name=c.name, phone=c.phone, email=c.email, is_primary=c.is_primary)
                    for c in contacts.scalars().all()
                ],
            )

    driver = None
    if vehicle.driver_id:
        row = (await db.execute(select(User).where(User.id == vehicle.driver_id))).scalar_one_or_none()
        if row:
            driver = VehicleDriver(
                id=row.id, name=row.name, email=row.email, driving_license_no=row.driving_license_no,
            )

    history = await get_vehicle_driver_history(db, vehicle.id)
    current = await get_current_driver_assignment(db, vehicle.id)
    people_ids = {a.driver_id for a in history} | {a.assigned_by for a in history if a.assigned_by}
    names = {}
    if people_ids:
        result = await db.execute(select(User.id, User.name).where(User.id.in_(people_ids)))
        names = dict(result.all())

    return VehicleDetailResponse(
        **VehicleResponse.model_validate(vehicle).model_dump(),
        vendor=vendor,
        driver=driver,
        current_assignment=_assignment_response(current, names) if current else None,
        assignment_history=[_assignment_response(a, names) for a in history],
        expiring_documents=_expiring(vehicle),
    )


@router.put("/{vehicle_id}", response_model=VehicleDetailResponse)
async def update_vehicle(
    vehicle_data: VehicleUpdate,
    vehicle_id: int = Path(..., description="Vehicle ID"),
    current_user: dict = Depends(require_permission("edit-vehicles")),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a vehicle.

    A changed ``driver_id`` closes the current driver assignment and opens a
    new one; ``notes`` is stored on that new assignment.
    """
    vehicle = await get_vehicle_or_404(db, vehicle_id)
    update_data = vehicle_data.model_dump(exclude_unset=True)
    await _validate_vehicle(db, update_data, vehicle_id=vehicle.id)

    notes = update_data.pop("notes", None)
    previous_driver_id = vehicle.driver_id

    for field, value in update_data.items():
        if value is None and field in NOT_NULL_FIELDS:
            continue
        setattr(vehicle, field, value)

    await record_vehicle_driver_change(
        db, vehicle, previous_driver_id, actor_id=current_user["user_id"], notes=notes,
    )
    await db.commit()
    await db.refresh(vehicle)

    await log_event(
        db=db,
        action=AuditAction.VEHICLE_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="vehicle",
        target_id=vehicle.id,
        target_label=vehicle.registration_number,
        metadata={"updated_fields": sorted(update_data.keys())}
    )
    if vehicle.driver_id != previous_driver_id:
        await log_event(
            db=db,
            action=AuditAction.DRIVER_ASSIGNED if vehicle.driver_id else AuditAction.DRIVER_UNASSIGNED,
            actor_id=current_user["user_id"],
            actor_username=current_user["sub"],
            target_type="vehicle",
            target_id=vehicle.id,
            target_label=vehicle.registration_number,
            metadata={"from": previous_driver_id, "to": vehicle.driver_id}
        )
    return await get_vehicle(vehicle.id, current_user, db)


@router.delete("/{vehicle_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vehicle(
    vehicle_id: int = Path(..., description="Vehicle ID"),
    current_user: dict = Depends(require_permission("delete-vehicles")),
    db: AsyncSession = Depends(get_db)
):
    """Delete a vehicle; its assignment history is removed with it."""
    vehicle = await get_vehicle_or_404(db, vehicle_id)
    registration = vehicle.registration_number
    await db.delete(vehicle)
    await db.commit()

    await log_event(
        db=db,
        action=AuditAction.VEHICLE_DELETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="vehicle",
        target_id=vehicle_id,
        target_label=registration,
    )


@expiring_router.get("", response_model=List[ExpiringVehicle])
async def expiring_vehicles(
    current_user: dict = Depends(require_permission("view-vehicles")),
    db: AsyncSession = Depends(get_db)
):
    """Vehicles with at least one document inside its alert window."""
    result = await db.execute(select(Vehicle).order_by(Vehicle.id))
    vehicles = []
    for vehicle in result.scalars().all():
        documents = _expiring(vehicle)
        if documents:
            vehicles.append(ExpiringVehicle(
                id=vehicle.id,
                brand=vehicle.brand,
                model=vehicle.model,
                registration_number=vehicle.registration_number,
                expiring_documents=documents,
            ))
    return vehicles
