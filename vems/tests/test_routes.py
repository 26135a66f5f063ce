"""
Tests for stops, routes and route distance calculation.
"""

from types import SimpleNamespace

import pytest

from vems.app.models.stop import Stop
from vems.app.services.route_planning import haversine_km, leg_distance, plan_route_stops, total_distance


def _entry(stop_id, manual_distance=None, arrival_time=None, departure_time=None):
    return SimpleNamespace(
        stop_id=stop_id,
        manual_distance=manual_distance,
        arrival_time=arrival_time,
        departure_time=departure_time,
    )


def test_haversine_known_distance():
    # Dhaka to Chittagong, roughly 213 km as the crow flies
    distance = haversine_km(23.8103, 90.4125, 22.3569, 91.7832)
    assert 205 < distance < 220


def test_haversine_same_point_is_zero():
    assert haversine_km(23.8, 90.4, 23.8, 90.4) == 0


def test_leg_distance_rules():
    a = Stop(id=1, name="A", latitude=23.0, longitude=90.0)
    b = Stop(id=2, name="B", latitude=23.1, longitude=90.0)
    no_coords = Stop(id=3, name="C")

    assert leg_distance(None, a) == 0.0
    assert leg_distance(a, b, manual_distance=3) == 3.0
    assert leg_distance(a, b) == haversine_km(23.0, 90.0, 23.1, 90.0)
    assert leg_distance(b, no_coords) == 0.0


def test_plan_route_stops_accumulates():
    stops = {
        1: Stop(id=1, name="A", latitude=23.0, longitude=90.0),
        2: Stop(id=2, name="B", latitude=23.1, longitude=90.0),
        3: Stop(id=3, name="C"),
    }
    planned = plan_route_stops([_entry(1, manual_distance=9), _entry(2), _entry(3, manual_distance=4.5)], stops)

    first_leg = haversine_km(23.0, 90.0, 23.1, 90.0)
    # A manual distance on the first stop is ignored
    assert [p.distance_from_previous for p in planned] == [0.0, first_leg, 4.5]
    assert [p.stop_order for p in planned] == [1, 2, 3]
    assert planned[-1].cumulative_distance == round(first_leg + 4.5, 2)
    assert total_distance(planned) == round(first_leg + 4.5, 2)


@pytest.mark.asyncio
async def test_create_and_list_stops(client, admin_headers):
    response = await client.post(
        "/v1/stops",
        json={"name": "Mohakhali", "latitude": 23.7780, "longitude": 90.4050},
        headers=admin_headers,
    )

    assert response.status_code == 201
    assert response.json()["success"] is True
    assert response.json()["message"] == "Stop created successfully"

    duplicate = await client.post("/v1/stops", json={"name": "Mohakhali"}, headers=admin_headers)
    assert duplicate.status_code == 422

    listing = await client.get("/v1/stops", headers=admin_headers)
    assert [s["name"] for s in listing.json()["data"]] == ["Mohakhali"]


@pytest.mark.asyncio
async def test_create_route_computes_distances(client, admin_headers, stops):
    gulshan, banani, airport, depot = stops

    response = await client.post(
        "/v1/routes",
        json={
            "name": "Morning Shuttle",
            "stops": [
                {"stop_id": gulshan.id, "departure_time": "07:30"},
                {"stop_id": banani.id, "arrival_time": "07:40", "departure_time": "07:42"},
                {"stop_id": airport.id, "arrival_time": "08:05", "manual_distance": 5.5},
                {"stop_id": depot.id},
            ],
        },
        headers=admin_headers,
    )

    assert response.status_code == 201
    data = response.json()
    legs = [s["distance_from_previous"] for s in data["stops"]]
    first_leg = haversine_km(gulshan.latitude, gulshan.longitude, banani.latitude, banani.longitude)
    assert legs == [0.0, first_leg, 5.5, 0.0]
    assert [s["stop_name"] for s in data["stops"]] == ["Gulshan", "Banani", "Airport", "Depot"]
    assert data["total_distance"] == round(first_leg + 5.5, 2)
    assert data["stops"][-1]["cumulative_distance"] == data["total_distance"]


@pytest.mark.asyncio
async def test_route_with_unknown_stop(client, admin_headers, stops):
    response = await client.post(
        "/v1/routes",
        json={"name": "Broken", "stops": [{"stop_id": stops[0].id}, {"stop_id": 999}]},
        headers=admin_headers,
    )

    assert response.status_code == 422
    assert "stops" in response.json()["details"]["errors"]


@pytest.mark.asyncio
async def test_route_time_format(client, admin_headers, stops):
    response = await client.post(
        "/v1/routes",
        json={"name": "Late", "stops": [{"stop_id": stops[0].id, "arrival_time": "25:00"}]},
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_route_replaces_stops(client, admin_headers, stops):
    gulshan, banani, airport, _ = stops
    created = await client.post(
        "/v1/routes",
        json={"name": "Loop", "stops": [{"stop_id": gulshan.id}, {"stop_id": banani.id}]},
        headers=admin_headers,
    )
    route_id = created.json()["id"]

    response = await client.put(
        f"/v1/routes/{route_id}",
        json={"stops": [{"stop_id": airport.id}, {"stop_id": gulshan.id, "manual_distance": 12}]},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert [s["stop_id"] for s in data["stops"]] == [airport.id, gulshan.id]
    assert data["total_distance"] == 12.0

    renamed = await client.put(f"/v1/routes/{route_id}", json={"name": "Loop B"}, headers=admin_headers)
    assert renamed.json()["name"] == "Loop B"
    assert len(renamed.json()["stops"]) == 2


@pytest.mark.asyncio
async def test_list_routes_stats(client, admin_headers, stops):
    await client.post(
        "/v1/routes",
        json={"name": "Three Stops", "stops": [{"stop_id": s.id} for s in stops[:3]]},
        headers=admin_headers,
    )
    await client.post("/v1/routes", json={"name": "Empty"}, headers=admin_headers)

    response = await client.get("/v1/routes", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["meta"]["per_page"] == 10
    assert data["stats"] == {
        "total": 2,
        "total_stops": 3,
        "routes_with_stops": 1,
        "avg_stops_per_route": 1.5,
    }


@pytest.mark.asyncio
async def test_delete_route(client, admin_headers, stops):
    created = await client.post(
        "/v1/routes",
        json={"name": "Gone", "stops": [{"stop_id": stops[0].id}]},
        headers=admin_headers,
    )
    route_id = created.json()["id"]

    response = await client.delete(f"/v1/routes/{route_id}", headers=admin_headers)
    assert response.status_code == 204

    response = await client.get(f"/v1/routes/{route_id}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_routes_need_route_permissions(client, employee_headers):
    """Employees may view routes but not create them."""
    assert (await client.get("/v1/routes", headers=employee_headers)).status_code == 200
    response = await client.post("/v1/routes", json={"name": "Nope"}, headers=employee_headers)
    assert response.status_code == 403
