"""
Stop API endpoints.

Used by the route builder to pick stops and to add a missing one inline, so
responses are wrapped in a ``{success, message, data}`` envelope.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from vems.app.db.session import get_db
from vems.app.models.stop import Stop
from vems.app.schemas.route import StopCreate, StopResponse, StopEnvelope, StopListEnvelope
from vems.app.core.guards import require_permission
from vems.app.core.exceptions import ValidationFailedError
from vems.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/stops", tags=["Stops"])


@router.get("", response_model=StopListEnvelope)
async def list_stops(
    current_user: dict = Depends(require_permission("view-routes")),
    db: AsyncSession = Depends(get_db)
):
    """All stops ordered by name."""
    result = await db.execute(select(Stop).order_by(Stop.name))
    return StopListEnvelope(data=[StopResponse.model_validate(stop) for stop in result.scalars().all()])


@router.post("", response_model=StopEnvelope, status_code=status.HTTP_201_CREATED)
async def create_stop(
    stop_data: StopCreate,
    current_user: dict = Depends(require_permission("create-routes")),
    db: AsyncSession = Depends(get_db)
):
    """Create a stop; names are unique."""
    existing = await db.execute(select(Stop.id).where(Stop.name == stop_data.name))
    if existing.first():
        raise ValidationFailedError({"name": "The name has already been taken."})

    stop = Stop(**stop_data.model_dump())
    db.add(stop)
    await db.commit()
    await db.refresh(stop)

    await log_event(
        db=db,
        action=AuditAction.STOP_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="stop",
        target_id=stop.id,
        target_label=stop.name,
    )
    return StopEnvelope(message="Stop created successfully", data=StopResponse.model_validate(stop))
