"""
Print a route with its stops and distances.

Usage:
    python -m vems.scripts.show_route_data <route-id>
"""

import argparse
import asyncio
import sys
from vems.app.db.session import AsyncSessionLocal
from vems.app.api.v1.endpoints.routes import get_route_or_404, route_stops
from vems.app.core.exceptions import ResourceNotFoundError


async def show_route(route_id: int) -> int:
    async with AsyncSessionLocal() as db:
        try:
            route = await get_route_or_404(db, route_id)
        except ResourceNotFoundError as exc:
            print(f"❌ {exc.message}")
            return 1
        stops = await route_stops(db, route.id)

    print(f"Route #{route.id}: {route.name}")
    if route.description:
        print(f"  {route.description}")
    print(f"Total distance: {route.total_distance} km, {len(stops)} stops")
    for stop in stops:
        times = " / ".join(t for t in (stop.arrival_time, stop.departure_time) if t) or "-"
        print(
            f"  {stop.stop_order:>2}. {stop.stop_name:<30} "
            f"leg {stop.distance_from_previous:>7.2f} km  total {stop.cumulative_distance:>7.2f} km  {times}"
        )
    return 0


def main():
    parser = argparse.ArgumentParser(description="Show a route with its stops")
    parser.add_argument("route_id", type=int, help="Route ID")
    args = parser.parse_args()
    sys.exit(asyncio.run(show_route(args.route_id)))


if __name__ == "__main__":
    main()
