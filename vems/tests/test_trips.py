"""
Tests for the trip workflow.

pending -> approved -> in_progress -> completed, with reject, cancel,
vehicle reassignment and soft delete on the side.
"""

import re
from datetime import date

import pytest
from sqlalchemy import select

from vems.app.models.enums import TripStatus
from vems.app.models.trip import Trip
from vems.app.models.trip_vehicle_assignment import TripVehicleAssignment
from vems.app.models.user import User
from vems.app.models.vehicle import Vehicle
from vems.app.services.assignment_history import start_vehicle_driver_assignment
from vems.app.services.trips import generate_trip_number, ALLOWED_FROM


def _trip_payload(vehicle, **overrides):
    payload = {
        "vehicle_id": vehicle.id,
        "purpose": "Client visit",
        "schedule_type": "adhoc",
        "priority": "medium",
        "scheduled_date": date.today().isoformat(),
        "scheduled_start_time": "09:00",
        "scheduled_end_time": "11:30",
    }
    payload.update(overrides)
    return payload


async def _create_trip(client, headers, vehicle, **overrides):
    response = await client.post("/v1/trips", json=_trip_payload(vehicle, **overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
async def spare_vehicle(db_session, vendor, second_driver):
    row = Vehicle(
        brand="Toyota",
        model="Noah",
        registration_number="DHA-9999",
        capacity=7,
        vendor_id=vendor.id,
        driver_id=second_driver.id,
    )
    db_session.add(row)
    await db_session.flush()
    await start_vehicle_driver_assignment(db_session, row)
    await db_session.commit()
    await db_session.refresh(row)
    return row


@pytest.mark.asyncio
async def test_create_trip(client, admin_headers, admin_user, vehicle, driver, employee_user, stops):
    trip = await _create_trip(
        client, admin_headers, vehicle,
        passengers=[{"user_id": employee_user.id, "pickup_stop_id": stops[0].id, "dropoff_stop_id": ""}],
    )

    assert re.fullmatch(rf"TRP-{date.today():%Y%m%d}-0001", trip["trip_number"])
    assert trip["status"] == "pending"
    assert trip["driver_id"] == driver.id
    assert trip["requested_by"] == admin_user.id
    assert trip["requester_name"] == admin_user.name
    assert trip["passengers"][0]["user_name"] == "Plain Employee"
    assert trip["passengers"][0]["dropoff_stop_id"] is None
    assignments = trip["vehicle_assignments"]
    assert len(assignments) == 1
    assert assignments[0]["reason"] == "initial"
    assert assignments[0]["is_current"] is True


@pytest.mark.asyncio
async def test_trip_numbers_are_sequential_per_day(client, admin_headers, vehicle):
    first = await _create_trip(client, admin_headers, vehicle)
    second = await _create_trip(client, admin_headers, vehicle)

    assert first["trip_number"].endswith("-0001")
    assert second["trip_number"].endswith("-0002")


@pytest.mark.asyncio
async def test_trip_number_counts_soft_deleted_trips(client, admin_headers, vehicle):
    first = await _create_trip(client, admin_headers, vehicle)
    await client.delete(f"/v1/trips/{first['id']}", headers=admin_headers)

    second = await _create_trip(client, admin_headers, vehicle)
    assert second["trip_number"].endswith("-0002")


@pytest.mark.asyncio
async def test_generate_trip_number_for_given_day(db_session):
    assert await generate_trip_number(db_session, today=date(2024, 3, 5)) == "TRP-20240305-0001"


@pytest.mark.asyncio
async def test_create_trip_validation(client, admin_headers, vehicle):
    missing_vehicle = await client.post(
        "/v1/trips", json=_trip_payload(vehicle, vehicle_id=4242), headers=admin_headers,
    )
    assert missing_vehicle.status_code == 422
    assert "vehicle_id" in missing_vehicle.json()["details"]["errors"]

    bad_refs = await client.post(
        "/v1/trips",
        json=_trip_payload(vehicle, department_id=777, passengers=[{"user_id": 888}]),
        headers=admin_headers,
    )
    assert bad_refs.status_code == 422
    assert set(bad_refs.json()["details"]["errors"]) == {"department_id", "passengers"}

    bad_time = await client.post(
        "/v1/trips", json=_trip_payload(vehicle, scheduled_start_time="9am"), headers=admin_headers,
    )
    assert bad_time.status_code == 422


@pytest.mark.asyncio
async def test_duplicate_passengers_rejected(client, admin_headers, vehicle, employee_user):
    response = await client.post(
        "/v1/trips",
        json=_trip_payload(vehicle, passengers=[{"user_id": employee_user.id}, {"user_id": employee_user.id}]),
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_full_workflow_updates_driver_counters(client, admin_headers, session_factory, vehicle, driver):
    trip = await _create_trip(client, admin_headers, vehicle)
    trip_id = trip["id"]

    approved = await client.post(f"/v1/trips/{trip_id}/approve", headers=admin_headers)
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["approved_by"] is not None

    started = await client.post(f"/v1/trips/{trip_id}/start", json={"odometer_start": 1000}, headers=admin_headers)
    assert started.status_code == 200
    assert started.json()["status"] == "in_progress"
    assert started.json()["actual_start_time"] is not None

    completed = await client.post(
        f"/v1/trips/{trip_id}/complete",
        json={"odometer_end": 1042.5, "fuel_cost": 30, "other_costs": 12.5},
        headers=admin_headers,
    )
    assert completed.status_code == 200
    data = completed.json()
    assert data["status"] == "completed"
    assert data["distance_traveled"] == 42.5
    assert data["total_cost"] == 42.5
    assert data["actual_duration"] >= 0

    async with session_factory() as db:
        row = (await db.execute(select(User).where(User.id == driver.id))).scalar_one()
    assert row.total_trips_completed == 1
    assert row.total_distance_covered == 42.5


@pytest.mark.asyncio
async def test_complete_rejects_odometer_going_backwards(client, admin_headers, vehicle):
    trip = await _create_trip(client, admin_headers, vehicle)
    await client.post(f"/v1/trips/{trip['id']}/approve", headers=admin_headers)
    await client.post(f"/v1/trips/{trip['id']}/start", json={"odometer_start": 500}, headers=admin_headers)

    response = await client.post(
        f"/v1/trips/{trip['id']}/complete", json={"odometer_end": 499}, headers=admin_headers,
    )

    assert response.status_code == 422
    assert "odometer_end" in response.json()["details"]["errors"]


@pytest.mark.asyncio
async def test_zero_distance_does_not_credit_driver(client, admin_headers, session_factory, vehicle, driver):
    trip = await _create_trip(client, admin_headers, vehicle)
    await client.post(f"/v1/trips/{trip['id']}/approve", headers=admin_headers)
    await client.post(f"/v1/trips/{trip['id']}/start", json={"odometer_start": 10}, headers=admin_headers)
    await client.post(f"/v1/trips/{trip['id']}/complete", json={"odometer_end": 10}, headers=admin_headers)

    async with session_factory() as db:
        row = (await db.execute(select(User).where(User.id == driver.id))).scalar_one()
    assert row.total_trips_completed == 0


@pytest.mark.asyncio
async def test_illegal_transition_is_conflict(client, admin_headers, vehicle):
    """A pending trip cannot be started or completed."""
    trip = await _create_trip(client, admin_headers, vehicle)

    response = await client.post(f"/v1/trips/{trip['id']}/start", json={"odometer_start": 1}, headers=admin_headers)
    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_STATE_001"
    assert body["message"] == "Cannot start trip in status 'pending'"

    response = await client.post(f"/v1/trips/{trip['id']}/complete", json={"odometer_end": 1}, headers=admin_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_reject_and_terminal_state(client, admin_headers, vehicle):
    trip = await _create_trip(client, admin_headers, vehicle)

    rejected = await client.post(
        f"/v1/trips/{trip['id']}/reject", json={"rejection_reason": "No budget"}, headers=admin_headers,
    )
    assert rejected.json()["status"] == "rejected"
    assert rejected.json()["rejection_reason"] == "No budget"

    for action in ("approve", "cancel"):
        response = await client.post(f"/v1/trips/{trip['id']}/{action}", headers=admin_headers)
        assert response.status_code == 409


@pytest.mark.asyncio
async def test_cancel_approved_trip(client, admin_headers, vehicle):
    trip = await _create_trip(client, admin_headers, vehicle)
    await client.post(f"/v1/trips/{trip['id']}/approve", headers=admin_headers)

    response = await client.post(f"/v1/trips/{trip['id']}/cancel", headers=admin_headers)
    assert response.json()["status"] == "cancelled"


@pytest.mark.asyncio
async def test_edit_only_while_pending_or_approved(client, admin_headers, vehicle):
    trip = await _create_trip(client, admin_headers, vehicle)

    edited = await client.put(
        f"/v1/trips/{trip['id']}", json=_trip_payload(vehicle, purpose="Airport pickup"), headers=admin_headers,
    )
    assert edited.status_code == 200
    assert edited.json()["purpose"] == "Airport pickup"

    await client.post(f"/v1/trips/{trip['id']}/approve", headers=admin_headers)
    await client.post(f"/v1/trips/{trip['id']}/start", json={"odometer_start": 0}, headers=admin_headers)

    response = await client.put(f"/v1/trips/{trip['id']}", json=_trip_payload(vehicle), headers=admin_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_reassign_vehicle_records_history(
    client, admin_headers, session_factory, vehicle, spare_vehicle, second_driver
):
    trip = await _create_trip(client, admin_headers, vehicle)
    await client.post(f"/v1/trips/{trip['id']}/approve", headers=admin_headers)

    response = await client.post(
        f"/v1/trips/{trip['id']}/reassign-vehicle",
        json={"vehicle_id": spare_vehicle.id, "reason": "breakdown", "notes": "Flat tyre"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["vehicle_id"] == spare_vehicle.id
    assert data["driver_id"] == second_driver.id
    newest, oldest = data["vehicle_assignments"]
    assert newest["vehicle_registration"] == "DHA-9999"
    assert newest["reason"] == "breakdown"
    assert newest["notes"] == "Flat tyre"
    assert newest["is_current"] is True
    assert oldest["is_current"] is False
    assert oldest["unassigned_at"] is not None

    async with session_factory() as db:
        result = await db.execute(
            select(TripVehicleAssignment).where(
                TripVehicleAssignment.trip_id == trip["id"],
                TripVehicleAssignment.is_current.is_(True),
            )
        )
        assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_reassign_to_same_vehicle(client, admin_headers, vehicle):
    trip = await _create_trip(client, admin_headers, vehicle)

    response = await client.post(
        f"/v1/trips/{trip['id']}/reassign-vehicle",
        json={"vehicle_id": vehicle.id, "reason": "other"},
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_edit_with_new_vehicle_opens_replacement(client, admin_headers, vehicle, spare_vehicle):
    trip = await _create_trip(client, admin_headers, vehicle)

    response = await client.put(
        f"/v1/trips/{trip['id']}", json=_trip_payload(spare_vehicle), headers=admin_headers,
    )

    assert response.status_code == 200
    assert [a["reason"] for a in response.json()["vehicle_assignments"]] == ["replacement", "initial"]


@pytest.mark.asyncio
async def test_feedback_only_after_completion(client, admin_headers, vehicle):
    trip = await _create_trip(client, admin_headers, vehicle)

    early = await client.post(
        f"/v1/trips/{trip['id']}/feedback", json={"driver_rating": 5}, headers=admin_headers,
    )
    assert early.status_code == 409

    await client.post(f"/v1/trips/{trip['id']}/approve", headers=admin_headers)
    await client.post(f"/v1/trips/{trip['id']}/start", json={"odometer_start": 0}, headers=admin_headers)
    await client.post(f"/v1/trips/{trip['id']}/complete", json={"odometer_end": 5}, headers=admin_headers)

    response = await client.post(
        f"/v1/trips/{trip['id']}/feedback",
        json={"driver_rating": 4, "vehicle_rating": 5, "feedback": "Smooth ride"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["driver_rating"] == 4


@pytest.mark.asyncio
async def test_soft_delete(client, admin_headers, session_factory, vehicle):
    trip = await _create_trip(client, admin_headers, vehicle)

    response = await client.delete(f"/v1/trips/{trip['id']}", headers=admin_headers)
    assert response.status_code == 204

    assert (await client.get(f"/v1/trips/{trip['id']}", headers=admin_headers)).status_code == 404
    listing = await client.get("/v1/trips", headers=admin_headers)
    assert listing.json()["stats"]["total"] == 0

    async with session_factory() as db:
        row = (await db.execute(select(Trip).where(Trip.id == trip["id"]))).scalar_one()
    assert row.deleted_at is not None


@pytest.mark.asyncio
async def test_only_pending_trips_can_be_deleted(client, admin_headers, vehicle):
    trip = await _create_trip(client, admin_headers, vehicle)
    await client.post(f"/v1/trips/{trip['id']}/approve", headers=admin_headers)

    response = await client.delete(f"/v1/trips/{trip['id']}", headers=admin_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_list_trips(client, admin_headers, vehicle, employee_user):
    await _create_trip(client, admin_headers, vehicle, passengers=[{"user_id": employee_user.id}])
    second = await _create_trip(client, admin_headers, vehicle, purpose="Bank run")
    await client.post(f"/v1/trips/{second['id']}/approve", headers=admin_headers)

    response = await client.get("/v1/trips", params={"status": "pending"}, headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert len(data["trips"]) == 1
    assert data["trips"][0]["passengers_count"] == 1
    assert data["trips"][0]["vehicle_registration"] == "DHA-1111"
    assert data["stats"]["total"] == 2
    assert data["stats"]["pending"] == 1
    assert data["stats"]["approved"] == 1
    assert data["stats"]["today"] == 2


@pytest.mark.asyncio
async def test_approval_needs_permission(client, admin_headers, employee_headers, vehicle):
    """Employees may request trips but not approve them."""
    trip = await _create_trip(client, employee_headers, vehicle)

    response = await client.post(f"/v1/trips/{trip['id']}/approve", headers=employee_headers)
    assert response.status_code == 403


def test_completed_trips_only_accept_feedback():
    allowed = {action for action, statuses in ALLOWED_FROM.items() if TripStatus.COMPLETED in statuses}
    assert allowed == {"feedback"}
