"""
Vehicle route API endpoints.

Saving a route replaces its stop list and recomputes every leg distance and
the route total.
"""

from typing import Annotated, List
from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete
from vems.app.db.session import get_db
from vems.app.models.stop import Stop
from vems.app.models.vehicle_route import VehicleRoute, RouteStop
from vems.app.schemas.route import (
    RouteCreate, RouteUpdate, RouteIndexQuery, RouteResponse, RouteListItem, RouteListResponse,
    RouteStats, RouteDetailResponse, RouteStopResponse, RouteStopIn,
)
from vems.app.core.guards import require_permission
from vems.app.core.exceptions import ResourceNotFoundError, ValidationFailedError
from vems.app.services.audit import log_event, AuditAction
from vems.app.services.listing import search_clause, apply_sort, paginate, count
from vems.app.services.permissions import find_missing_ids
from vems.app.services.route_planning import plan_route_stops, total_distance

router = APIRouter(prefix="/routes", tags=["Routes"])

SORT_COLUMNS = {
    "id": VehicleRoute.id,
    "name": VehicleRoute.name,
    "total_distance": VehicleRoute.total_distance,
    "created_at": VehicleRoute.created_at,
}


async def get_route_or_404(db: AsyncSession, route_id: int) -> VehicleRoute:
    result = await db.execute(select(VehicleRoute).where(VehicleRoute.id == route_id))
    route = result.scalar_one_or_none()
    if not route:
        raise ResourceNotFoundError("Route", route_id)
    return route


async def replace_route_stops(db: AsyncSession, route: VehicleRoute, entries: List[RouteStopIn]) -> None:
    """Rebuild the route's stops from ``entries`` and store the new total. Does not commit."""
    missing = await find_missing_ids(db, Stop, [entry.stop_id for entry in entries])
    if missing:
        raise ValidationFailedError({"stops": f"Unknown stop ids: {missing}"})

    stops_by_id = {}
    if entries:
        result = await db.execute(select(Stop).where(Stop.id.in_({entry.stop_id for entry in entries})))
        stops_by_id = {stop.id: stop for stop in result.scalars().all()}

    await db.execute(delete(RouteStop).where(RouteStop.vehicle_route_id == route.id))
    planned = plan_route_stops(entries, stops_by_id)
    for item in planned:
        db.add(RouteStop(
            vehicle_route_id=route.id,
            stop_id=item.stop_id,
            stop_order=item.stop_order,
            arrival_time=item.arrival_time,
            departure_time=item.departure_time,
            distance_from_previous=item.distance_from_previous,
            cumulative_distance=item.cumulative_distance,
        ))
    route.total_distance = total_distance(planned)
    await db.flush()


async def route_stops(db: AsyncSession, route_id: int) -> List[RouteStopResponse]:
    result = await db.execute(
        select(RouteStop, Stop)
        .join(Stop, Stop.id == RouteStop.stop_id)
        .where(RouteStop.vehicle_route_id == route_id)
        .order_by(RouteStop.stop_order)
    )
    return [
        RouteStopResponse(
            id=route_stop.id,
            stop_id=stop.id,
            stop_name=stop.name,
            latitude=stop.latitude,
            longitude=stop.longitude,
            stop_order=route_stop.stop_order,
            arrival_time=route_stop.arrival_time,
            departure_time=route_stop.departure_time,
            distance_from_previous=route_stop.distance_from_previous,
            cumulative_distance=route_stop.cumulative_distance,
        )
        for route_stop, stop in result.all()
    ]


@router.get("", response_model=RouteListResponse)
async def list_routes(
    params: Annotated[RouteIndexQuery, Query()],
    current_user: dict = Depends(require_permission("view-routes")),
    db: AsyncSession = Depends(get_db)
):
    """List routes with stop counts and route statistics."""
    stops_count = (
        select(func.count(RouteStop.id)).where(RouteStop.vehicle_route_id == VehicleRoute.id)
        .correlate(VehicleRoute).scalar_subquery()
    )
    query = select(VehicleRoute, stops_count.label("stops_count"))
    if params.search:
        query = query.where(search_clause(params.search, [
            VehicleRoute.name, VehicleRoute.description, VehicleRoute.remarks,
        ]))
    query = apply_sort(query, SORT_COLUMNS[params.sort], params.direction)
    rows, meta = await paginate(db, query, params.page, params.per_page)

    routes = []
    for route, stops in rows:
        item = RouteListItem.model_validate(route)
        item.stops_count = stops or 0
        routes.append(item)

    total = await count(db, VehicleRoute.id)
    total_stops = await count(db, RouteStop.id)
    with_stops = (await db.execute(
        select(func.count(func.distinct(RouteStop.vehicle_route_id)))
    )).scalar() or 0
    stats = RouteStats(
        total=total,
        total_stops=total_stops,
        routes_with_stops=with_stops,
        avg_stops_per_route=round(total_stops / total, 1) if total else 0.0,
    )
    return RouteListResponse(routes=routes, meta=meta, stats=stats)


@router.post("", response_model=RouteDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    route_data: RouteCreate,
    current_user: dict = Depends(require_permission("create-routes")),
    db: AsyncSession = Depends(get_db)
):
    """Create a route with its ordered stops."""
    route = VehicleRoute(
        name=route_data.name,
        description=route_data.description,
        remarks=route_data.remarks,
        total_distance=0,
    )
    db.add(route)
    await db.flush()
    await replace_route_stops(db, route, route_data.stops)
    await db.commit()
    await db.refresh(route)

    await log_event(
        db=db,
        action=AuditAction.ROUTE_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="route",
        target_id=route.id,
        target_label=route.name,
        metadata={"stops": len(route_data.stops), "total_distance": route.total_distance}
    )
    return await get_route(route.id, current_user, db)


@router.get("/{route_id}", response_model=RouteDetailResponse)
async def get_route(
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(require_permission("view-routes")),
    db: AsyncSession = Depends(get_db)
):
    """Route with its stops in travel order."""
    route = await get_route_or_404(db, route_id)
    return RouteDetailResponse(
        **RouteResponse.model_validate(route).model_dump(),
        stops=await route_stops(db, route.id),
    )


@router.put("/{route_id}", response_model=RouteDetailResponse)
async def update_route(
    route_data: RouteUpdate,
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(require_permission("edit-routes")),
    db: AsyncSession = Depends(get_db)
):
    """Update a route; a submitted stop list replaces the current one."""
    route = await get_route_or_404(db, route_id)
    update_data = route_data.model_dump(exclude_unset=True, exclude={"stops"})

    for field, value in update_data.items():
        if field == "name" and value is None:
            continue
        setattr(route, field, value)
    if route_data.stops is not None:
        await replace_route_stops(db, route, route_data.stops)

    await db.commit()
    await db.refresh(route)

    await log_event(
        db=db,
        action=AuditAction.ROUTE_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="route",
        target_id=route.id,
        target_label=route.name,
        metadata={"total_distance": route.total_distance}
    )
    return await get_route(route.id, current_user, db)


@router.delete("/{route_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_route(
    route_id: int = Path(..., description="Route ID"),
    current_user: dict = Depends(require_permission("delete-routes")),
    db: AsyncSession = Depends(get_db)
):
    """Delete a route and its stop list."""
    route = await get_route_or_404(db, route_id)
    name = route.name
    await db.execute(delete(RouteStop).where(RouteStop.vehicle_route_id == route.id))
    await db.delete(route)
    await db.commit()

    await log_event(
        db=db,
        action=AuditAction.ROUTE_DELETED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        target_type="route",
        target_id=route_id,
        target_label=name,
    )
