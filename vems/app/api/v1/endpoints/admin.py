"""
Admin API endpoints.

Read access to the audit trail.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from vems.app.db.session import get_db
from vems.app.schemas.admin import AuditTrailResponse, AuditLogResponse
from vems.app.core.guards import require_permission
from vems.app.services.audit import get_audit_trail

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/audit-logs", response_model=AuditTrailResponse)
async def get_audit_logs(
    actor_id: int = Query(None, description="Filter by acting user ID"),
    action: str = Query(None, description="Filter by action type"),
    target_type: str = Query(None, description="Filter by target kind, e.g. vehicle"),
    target_id: int = Query(None, description="Filter by target ID"),
    limit: int = Query(100, ge=1, le=500, description="Maximum records to return"),
    current_user: dict = Depends(require_permission("view-user-activity")),
    db: AsyncSession = Depends(get_db)
):
    """
    Get audit trail with optional filtering.

    Returns recent audit logs, newest first.
    """
    logs = await get_audit_trail(
        db=db,
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        limit=limit
    )

    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )
