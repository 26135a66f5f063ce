"""
Tests for vehicles, driver assignment history and document alerts.
"""

from datetime import date, timedelta

import pytest
from sqlalchemy import select

from vems.app.models.audit_log import AuditLog
from vems.app.models.vehicle import Vehicle
from vems.app.models.vehicle_driver_assignment import VehicleDriverAssignment


def _vehicle_payload(vendor, driver, **overrides):
    payload = {
        "brand": "Nissan",
        "model": "Urvan",
        "registration_number": "DHA-2222",
        "capacity": 12,
        "vehicle_type": "microbus",
        "vendor_id": vendor.id,
        "driver_id": driver.id,
    }
    payload.update(overrides)
    return payload


async def _assignments(session_factory, vehicle_id):
    async with session_factory() as db:
        result = await db.execute(
            select(VehicleDriverAssignment)
            .where(VehicleDriverAssignment.vehicle_id == vehicle_id)
            .order_by(VehicleDriverAssignment.id)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_create_vehicle_opens_assignment(client, admin_headers, admin_user, vendor, driver):
    response = await client.post("/v1/vehicles", json=_vehicle_payload(vendor, driver), headers=admin_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "available"
    assert data["driver"]["name"] == "Driver One"
    assert data["vendor"]["contact_persons"][0]["name"] == "Contact One"
    history = data["assignment_history"]
    assert len(history) == 1
    assert history[0]["is_current"] is True
    assert history[0]["driver_id"] == driver.id
    assert history[0]["assigned_by_name"] == admin_user.name


@pytest.mark.asyncio
async def test_create_vehicle_validation(client, admin_headers, vehicle, vendor, driver):
    response = await client.post(
        "/v1/vehicles",
        json=_vehicle_payload(vendor, driver, registration_number=vehicle.registration_number, driver_id=4242),
        headers=admin_headers,
    )

    assert response.status_code == 422
    errors = response.json()["details"]["errors"]
    assert set(errors) == {"registration_number", "driver_id"}


@pytest.mark.asyncio
async def test_driver_change_closes_and_opens_assignment(
    client, admin_headers, session_factory, vehicle, driver, second_driver
):
    response = await client.put(
        f"/v1/vehicles/{vehicle.id}",
        json={"driver_id": second_driver.id, "notes": "Shift swap"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    rows = await _assignments(session_factory, vehicle.id)
    assert len(rows) == 2
    old, new = rows
    assert old.driver_id == driver.id
    assert old.is_current is False
    assert old.ended_at is not None
    assert new.driver_id == second_driver.id
    assert new.is_current is True
    assert new.ended_at is None
    assert new.notes == "Shift swap"

    history = response.json()["assignment_history"]
    assert history[0]["driver_name"] == "Driver Two"
    assert [h["is_current"] for h in history] == [True, False]

    current = response.json()["current_assignment"]
    assert current["id"] == new.id
    assert current["driver_name"] == "Driver Two"
    assert current["notes"] == "Shift swap"


@pytest.mark.asyncio
async def test_unchanged_driver_writes_no_history(client, admin_headers, session_factory, vehicle, driver):
    response = await client.put(
        f"/v1/vehicles/{vehicle.id}",
        json={"driver_id": driver.id, "color": "White"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["color"] == "White"
    assert len(await _assignments(session_factory, vehicle.id)) == 1


@pytest.mark.asyncio
async def test_exactly_one_current_assignment_after_repeated_changes(
    client, admin_headers, session_factory, vehicle, driver, second_driver
):
    for driver_id in (second_driver.id, driver.id, second_driver.id):
        response = await client.put(
            f"/v1/vehicles/{vehicle.id}", json={"driver_id": driver_id}, headers=admin_headers,
        )
        assert response.status_code == 200

    rows = await _assignments(session_factory, vehicle.id)
    assert len(rows) == 4
    current = [row for row in rows if row.is_current]
    assert len(current) == 1
    assert current[0].driver_id == second_driver.id


@pytest.mark.asyncio
async def test_driver_change_is_audited(client, admin_headers, session_factory, vehicle, second_driver):
    await client.put(f"/v1/vehicles/{vehicle.id}", json={"driver_id": second_driver.id}, headers=admin_headers)

    async with session_factory() as db:
        result = await db.execute(select(AuditLog).where(AuditLog.action == "DRIVER_ASSIGNED"))
        entry = result.scalar_one()
    assert entry.target_id == vehicle.id
    assert entry.meta_data["to"] == second_driver.id


@pytest.mark.asyncio
async def test_null_driver_is_rejected(client, admin_headers, vehicle):
    response = await client.put(f"/v1/vehicles/{vehicle.id}", json={"driver_id": None}, headers=admin_headers)

    assert response.status_code == 422
    assert "driver_id" in response.json()["details"]["errors"]


@pytest.mark.asyncio
async def test_list_vehicles_with_filters(client, admin_headers, vehicle, vendor, driver):
    await client.post(
        "/v1/vehicles",
        json=_vehicle_payload(vendor, driver, brand="Honda", model="Civic", registration_number="DHA-3333", is_active=False),
        headers=admin_headers,
    )

    response = await client.get("/v1/vehicles", params={"brand": ["Toyota"]}, headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert [v["registration_number"] for v in data["vehicles"]] == ["DHA-1111"]
    assert data["vehicles"][0]["driver"]["name"] == "Driver One"
    assert data["stats"] == {"total": 2, "active": 1, "brands": 2, "inactive": 1}
    assert data["filter_options"]["brands"] == ["Honda", "Toyota"]


@pytest.mark.asyncio
async def test_search_matches_driver_name(client, admin_headers, vehicle):
    response = await client.get("/v1/vehicles", params={"search": "Driver One"}, headers=admin_headers)
    assert response.json()["meta"]["total"] == 1


@pytest.mark.asyncio
async def test_form_options(client, admin_headers, vehicle, driver, employee_user):
    response = await client.get("/v1/vehicles/form-options", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert [d["value"] for d in data["drivers"]] == [driver.id]
    assert "microbus" in data["vehicle_types"]


@pytest.mark.asyncio
async def test_expiring_documents(client, admin_headers, db_session, vehicle):
    vehicle.tax_token_last_date = date.today() + timedelta(days=5)
    vehicle.insurance_last_date = date.today() + timedelta(days=200)
    vehicle.fitness_certificate_last_date = date.today() - timedelta(days=3)
    await db_session.commit()

    response = await client.get(f"/v1/vehicles/{vehicle.id}", headers=admin_headers)
    documents = {doc["type"]: doc["days_left"] for doc in response.json()["expiring_documents"]}
    assert documents == {"tax_token": 5, "fitness_certificate": -3}

    response = await client.get("/v1/vehicles-expiring", headers=admin_headers)
    assert [v["id"] for v in response.json()] == [vehicle.id]


@pytest.mark.asyncio
async def test_delete_vehicle_removes_history(client, admin_headers, session_factory, vehicle):
    response = await client.delete(f"/v1/vehicles/{vehicle.id}", headers=admin_headers)
    assert response.status_code == 204

    assert await _assignments(session_factory, vehicle.id) == []
    async with session_factory() as db:
        assert (await db.execute(select(Vehicle).where(Vehicle.id == vehicle.id))).scalar_one_or_none() is None


def test_expiring_documents_respects_alert_flags():
    today = date(2024, 6, 1)
    vehicle = Vehicle(
        tax_token_last_date=date(2024, 6, 10),
        tax_token_alert_enabled=False,
        fitness_certificate_last_date=date(2024, 6, 20),
        fitness_alert_enabled=True,
        insurance_last_date=date(2024, 7, 20),
        insurance_alert_enabled=True,
        alert_days_before=30,
    )

    documents = vehicle.expiring_documents(today)

    assert [doc["type"] for doc in documents] == ["fitness_certificate"]
    assert documents[0]["days_left"] == 19
    assert vehicle.has_expiring_documents(today) is True


def test_expiring_documents_window_is_inclusive():
    today = date(2024, 6, 1)
    vehicle = Vehicle(
        insurance_last_date=today + timedelta(days=7),
        insurance_alert_enabled=True,
        tax_token_alert_enabled=True,
        fitness_alert_enabled=True,
        alert_days_before=7,
    )

    assert [doc["type"] for doc in vehicle.expiring_documents(today)] == ["insurance"]


@pytest.mark.asyncio
async def test_vehicle_without_history_has_no_current_assignment(client, admin_headers, db_session, vendor, driver):
    row = Vehicle(brand="Tata", model="Winger", registration_number="DHA-7777", capacity=14,
                  vendor_id=vendor.id, driver_id=driver.id)
    db_session.add(row)
    await db_session.commit()

    response = await client.get(f"/v1/vehicles/{row.id}", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["current_assignment"] is None
    assert response.json()["assignment_history"] == []
