"""
Vendor API endpoints.

Vendors are saved together with their contact persons. A vendor that still
supplies vehicles cannot be deleted.
"""

from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete
from vems.app.db.session import get_db
from vems.app.models.vendor import Vendor, VendorContactPerson
from vems.app.models.vehicle import Vehicle
from vems.app.models.enums import ActiveStatus
from vems.app.schemas.common import SelectOption
from vems.app.schemas.vendor import (
    ContactPersonIn, VendorCreate, VendorUpdate, VendorIndexQuery, VendorResponse, VendorListItem,
    VendorListResponse, VendorStats, VendorDetailResponse, ContactPersonResponse,
)
from vems.app.core.guards import require_permission
from vems.app.core.exceptions import ResourceNotFoundError, ValidationFailedError, ResourceInUseError
from vems.app.services.audit import log_event, AuditAction
from vems.app.services.listing import search_clause, apply_sort, paginate, count

router = APIRouter(prefix="/vendors", tags=["Vendors"])
select_router = APIRouter(prefix="/vendors-select", tags=["Vendors"])

SORT_COLUMNS = {
    "id": Vendor.id,
    "name": Vendor.name,
    "status": Vendor.status,
    "created_at": Vendor.created_at,
}

CONTACT_FIELDS = ("name", "position", "phone", "email", "is_primary", "notes")


def _vehicles_count():
    return (
        select(func.count(Vehicle.id)).where(Vehicle.vendor_id == Vendor.id)
        .correlate(Vendor).scalar_subquery()
    )


def _vendor_values(data: dict) -> dict:
    values = {key: value for key, value in data.items() if key != "contact_persons"}
    if values.get("website") is not None:
        values["website"] = str(values["website"])
    return values


async def get_vendor_or_404(db: AsyncSession, vendor_id: int) -> Vendor:
    result = await db.execute(select(Vendor).where(Vendor.id == vendor_id))
    vendor = result.scalar_one_or_none()
    if not vendor:
        raise ResourceNotFoundError("Vendor", vendor_id)
    return vendor


async def _contacts(db: AsyncSession, vendor_id: int) -> List[VendorContactPerson]:
    result = await db.execute(
        select(VendorContactPerson)
        .where(VendorContactPerson.vendor_id == vendor_id)
        .order_by(VendorContactPerson.is_primary.desc(), VendorContactPerson.id)
    )
    return list(result.scalars().all())


async def sync_contact_persons(db: AsyncSession, vendor: Vendor, submitted: List[ContactPersonIn]) -> None:
    """
    Replace a vendor's contact persons with the submitted rows.

    Rows carrying an id update that contact, rows without one are created and
    existing contacts missing from the submission are deleted. Does not commit.
    """
    existing = {contact.id: contact for contact in await _contacts(db, vendor.id)}

    if not submitted and not existing:
        raise ValidationFailedError({"contact_persons": "At least one contact person is required."})

    unknown = [row.id for row in submitted if row.id is not None and row.id not in existing]
    if unknown:
        raise ValidationFailedError({"contact_persons": f"Unknown contact person ids: {unknown}"})

    kept = set()
    for row in submitted:
        values = row.model_dump(include=set(CONTACT_FIELDS))
        if row.id is not None:
            contact = existing[row.id]
            for field, value in values.items():
                setattr(contact, field, value)
            kept.add(row.id)
        else:
            db.add(VendorContactPerson(vendor_id=vendor.id, **values))

    stale = set(existing) - kept
    if stale:
        await db.execute(delete(VendorContactPerson).where(VendorContactPerson.id.in_(stale)))
    await db.flush()


@router.get("", response_model=VendorListResponse)
async def list_vendors(
    params: Annotated[VendorIndexQuery, Query()],
    current_user: dict = Depends(require_permission("view-vendors")),
    db: AsyncSession = Depends(get_db)
):
    """List vendors with their vehicle count and primary contact."""
    query = select(Vendor, _vehicles_count().label("vehicles_count"))
    if params.search:
        query = query.where(search_clause(params.search, [Vendor.name, Vendor.address, Vendor.phone, Vendor.email]))
    if params.status:
        query = query.where(Vendor.status == params.status)
    query = apply_sort(query, SORT_COLUMNS[params.sort], params.direction)
    rows, meta = await paginate(db, query, params.page, params.per_page)

    vendor_ids = [vendor.id for vendor, _ in rows]
    primary = {}
    if vendor_ids:
        result = await db.execute(
            select(VendorContactPerson)
            .where(VendorContactPerson.vendor_id.in_(vendor_ids))
            .order_by(VendorContactPerson.is_primary.desc(), VendorContactPerson.id)
        )
        for contact in result.scalars().all():
            primary.setdefault(contact.vendor_id, contact)

    vendors = []
    for vendor, vehicles_count in rows:
        item = VendorListItem.model_validate(vendor)
        item.vehicles_count = vehicles_count or 0
        contact = primary.get(vendor.id)
        item.primary_contact = ContactPersonResponse.model_validate(contact) if contact else None
        vendors.append(item)

    with_vehicles = (await db.execute(
        select(func.count(func.distinct(Vehicle.vendor_id))).where(Vehicle.vendor_id.is_not(None))
    )).scalar() or 0
    stats = VendorStats(
        total=await count(db, Vendor.id),
        active=await count(db, Vendor.id, Vendor.status == ActiveStatus.ACTIVE),
        inactive=await count(db, Vendor.id, Vendor.status == ActiveStatus.INACTIVE),
        with_vehicles=with_vehicles,
    )
    return VendorListResponse(vendors=vendors, meta=meta, stats=stats)


@router.post("", response_model=VendorDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_vendor(
    vendor_data: VendorCreate,
    current_user: dict = Depends(require_permission("create-vendors")),
    db: AsyncSession = Depends(get_db)
):
    """Create a vendor together with at least one contact person."""
    vendor = Vendor(**_vendor_values(vendor_data.model_dump()))
    db.add(vendor)
    await db.flush()
    await sync_contact_persons(db, vendor, vendor_data.contact_persons)
    await db.commit()
    await db.refresh(vendor)

    await log_event(
        db=db,
        action=AuditAction.VENDOR_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="vendor",
        target_id=vendor.id,
        target_label=vendor.name,
        metadata={"contact_persons": len(vendor_data.contact_persons)}
    )
    return await get_vendor(vendor.id, current_user, db)


@router.get("/{vendor_id}", response_model=VendorDetailResponse)
async def get_vendor(
    vendor_id: int = Path(..., description="Vendor ID"),
    current_user: dict = Depends(require_permission("view-vendors")),
    db: AsyncSession = Depends(get_db)
):
    """Vendor with contact persons and vehicle count."""
    vendor = await get_vendor_or_404(db, vendor_id)
    return VendorDetailResponse(
        **VendorResponse.model_validate(vendor).model_dump(),
        contact_persons=[ContactPersonResponse.model_validate(c) for c in await _contacts(db, vendor.id)],
        vehicles_count=await count(db, Vehicle.id, Vehicle.vendor_id == vendor.id),
    )


@router.put("/{vendor_id}", response_model=VendorDetailResponse)
async def update_vendor(
    vendor_data: VendorUpdate,
    vendor_id: int = Path(..., description="Vendor ID"),
    current_user: dict = Depends(require_permission("edit-vendors")),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a vendor.

    When ``contact_persons`` is sent the vendor's contacts are synced to it.
    """
    vendor = await get_vendor_or_404(db, vendor_id)
    update_data = vendor_data.model_dump(exclude_unset=True)

    for field, value in _vendor_values(update_data).items():
        if field in ("name", "status") and value is None:
            continue
        setattr(vendor, field, value)

    contacts: Optional[List[ContactPersonIn]] = vendor_data.contact_persons
    if contacts is not None:
        await sync_contact_persons(db, vendor, contacts)

    await db.commit()
    await db.refresh(vendor)

    await log_event(
        db=db,
        action=AuditAction.VENDOR_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="vendor",
        target_id=vendor.id,
        target_label=vendor.name,
        metadata={"updated_fields": sorted(update_data.keys())}
    )
    return await get_vendor(vendor.id, current_user, db)


@router.delete("/{vendor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vendor(
    vendor_id: int = Path(..., description="Vendor ID"),
    current_user: dict = Depends(require_permission("delete-vendors")),
    db: AsyncSession = Depends(get_db)
):
    """Delete a vendor that no vehicle references. Contacts go with it."""
    vendor = await get_vendor_or_404(db, vendor_id)

    vehicles = await count(db, Vehicle.id, Vehicle.vendor_id == vendor.id)
    if vehicles:
        raise ResourceInUseError(
            "Cannot delete vendor with associated vehicles.",
            details={"vehicles_count": vehicles}
        )

    name = vendor.name
    await db.execute(delete(VendorContactPerson).where(VendorContactPerson.vendor_id == vendor.id))
    await db.delete(vendor)
    await db.commit()

    await log_event(
        db=db,
        action=AuditAction.VENDOR_DELETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="vendor",
        target_id=vendor_id,
        target_label=name,
    )


@select_router.get("", response_model=List[SelectOption])
async def vendor_select_options(
    current_user: dict = Depends(require_permission("view-vendors")),
    db: AsyncSession = Depends(get_db)
):
    """Active vendors for select boxes."""
    result = await db.execute(
        select(Vendor).where(Vendor.status == ActiveStatus.ACTIVE).order_by(Vendor.name)
    )
    return [SelectOption(label=vendor.name, value=vendor.id) for vendor in result.scalars().all()]
