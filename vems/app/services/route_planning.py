"""
Route distance calculation.

Distances are in kilometres. A leg uses the distance typed in by the user
when there is one, otherwise the great-circle distance between the two stops
when both have coordinates, otherwise zero.
"""

import math
from dataclasses import dataclass
from typing import Optional, List, Dict, Sequence
from vems.app.models.stop import Stop

EARTH_RADIUS_KM = 6371


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points, rounded to 2 decimals."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 2)


def leg_distance(previous: Optional[Stop], current: Stop, manual_distance: Optional[float] = None) -> float:
    if previous is None:
        return 0.0
    if manual_distance is not None:
        return float(manual_distance)
    coords = (previous.latitude, previous.longitude, current.latitude, current.longitude)
    if any(value is None for value in coords):
        return 0.0
    return haversine_km(*coords)


@dataclass
class PlannedStop:
    stop_id: int
    stop_order: int
    arrival_time: Optional[str]
    departure_time: Optional[str]
    distance_from_previous: float
    cumulative_distance: float


def plan_route_stops(entries: Sequence, stops_by_id: Dict[int, Stop]) -> List[PlannedStop]:
    """
    Compute order and distances for the submitted stop list.

    Args:
        entries: Items with ``stop_id``, ``arrival_time``, ``departure_time``
            and ``manual_distance`` attributes, in travel order
        stops_by_id: Stop rows for every referenced stop_id

    Returns:
        One PlannedStop per entry; stop_order starts at 1
    """
    planned = []
    previous = None
    cumulative = 0.0
    for index, entry in enumerate(entries, start=1):
        stop = stops_by_id[entry.stop_id]
        distance = leg_distance(previous, stop, entry.manual_distance)
        cumulative = round(cumulative + distance, 2)
        planned.append(PlannedStop(
            stop_id=entry.stop_id,
            stop_order=index,
            arrival_time=entry.arrival_time,
            departure_time=entry.departure_time,
            distance_from_previous=distance,
            cumulative_distance=cumulative,
        ))
        previous = stop
    return planned


def total_distance(planned: Sequence[PlannedStop]) -> float:
    return round(sum(item.distance_from_previous for item in planned), 2)
