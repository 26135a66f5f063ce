"""
Tests for user and driver management.
"""

from datetime import date, timedelta

import pytest
from sqlalchemy import select

from vems.app.models.user import User
from vems.tests.helpers import login


def _user_payload(role_ids, /, **overrides):
    payload = {
        "name": "New Person",
        "username": "newperson",
        "email": "new.person@vems.com",
        "password": "newperson123",
        "role_ids": [role_ids["Employee"]],
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_user(client, admin_headers, role_ids, department):
    response = await client.post(
        "/v1/users",
        json=_user_payload(role_ids, department_id=department.id, blood_group="O+"),
        headers=admin_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["roles"] == ["Employee"]
    assert data["department_name"] == "Operations"
    assert data["blood_group"] == "O+"
    assert "view-trips" in data["permissions"]
    assert data["driver_performance"] is None


@pytest.mark.asyncio
async def test_created_user_can_log_in(client, admin_headers, role_ids):
    await client.post("/v1/users", json=_user_payload(role_ids), headers=admin_headers)

    headers = await login(client, "newperson", "newperson123")
    me = await client.get("/v1/auth/me", headers=headers)
    assert me.json()["email"] == "new.person@vems.com"


@pytest.mark.asyncio
async def test_create_user_requires_a_role(client, admin_headers, role_ids):
    response = await client.post(
        "/v1/users",
        json=_user_payload(role_ids, role_ids=[]),
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_user_duplicate_email(client, admin_headers, role_ids, employee_user):
    response = await client.post(
        "/v1/users",
        json=_user_payload(role_ids, email=employee_user.email),
        headers=admin_headers,
    )

    assert response.status_code == 422
    assert "email" in response.json()["details"]["errors"]


@pytest.mark.asyncio
async def test_license_dates_must_be_ordered(client, admin_headers, role_ids):
    response = await client.post(
        "/v1/users",
        json=_user_payload(
            role_ids,
            license_issue_date="2025-01-10",
            license_expiry_date="2024-01-10",
        ),
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_users_filters_and_stats(client, admin_headers, employee_user, driver):
    response = await client.get(
        "/v1/users",
        params={"user_type": ["driver"], "per_page": 5},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert [user["username"] for user in data["users"]] == ["driver1"]
    assert data["stats"]["total"] == 3
    assert data["stats"]["drivers"] == 1
    assert "Super Admin" in data["filter_options"]["roles"]


@pytest.mark.asyncio
async def test_list_users_by_role(client, admin_headers, employee_user, driver):
    response = await client.get("/v1/users", params={"roles": ["Employee"]}, headers=admin_headers)

    assert [user["username"] for user in response.json()["users"]] == ["employee"]


@pytest.mark.asyncio
async def test_blank_password_keeps_current(client, admin_headers, employee_user):
    response = await client.put(
        f"/v1/users/{employee_user.id}",
        json={"name": "Renamed Employee", "password": ""},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Renamed Employee"
    await login(client, "employee", "employeepass123")


@pytest.mark.asyncio
async def test_update_user_ignores_null_for_required_columns(client, admin_headers, employee_user):
    response = await client.put(
        f"/v1/users/{employee_user.id}",
        json={"name": None, "email": None, "status": None, "user_type": None},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Plain Employee"
    assert data["status"] == "active"
    assert data["user_type"] == "employee"


@pytest.mark.asyncio
async def test_deactivating_user_revokes_tokens(client, admin_headers, employee_user, employee_headers):
    response = await client.put(
        f"/v1/users/{employee_user.id}",
        json={"status": "inactive"},
        headers=admin_headers,
    )
    assert response.status_code == 200

    response = await client.get("/v1/auth/me", headers=employee_headers)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_cannot_delete_self(client, admin_headers, admin_user):
    response = await client.delete(f"/v1/users/{admin_user.id}", headers=admin_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_delete_driver_with_vehicle_is_refused(client, admin_headers, vehicle, driver):
    response = await client.delete(f"/v1/users/{driver.id}", headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["details"]["vehicles"] == 1


@pytest.mark.asyncio
async def test_delete_user(client, admin_headers, employee_user, session_factory):
    response = await client.delete(f"/v1/users/{employee_user.id}", headers=admin_headers)
    assert response.status_code == 204

    async with session_factory() as db:
        result = await db.execute(select(User).where(User.id == employee_user.id))
        assert result.scalar_one_or_none() is None


@pytest.mark.asyncio
async def test_create_driver(client, admin_headers):
    response = await client.post(
        "/v1/drivers",
        json={
            "name": "Fresh Driver",
            "email": "fresh.driver@vems.com",
            "password": "freshdriver123",
            "driving_license_no": "DL-7777",
            "license_expiry_date": (date.today() + timedelta(days=400)).isoformat(),
        },
        headers=admin_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["user_type"] == "driver"
    assert data["driver_status"] == "available"
    assert data["driver_performance"]["license_status"] == "valid"
    assert data["driver_performance"]["can_drive"] is True


@pytest.mark.asyncio
async def test_create_driver_requires_license(client, admin_headers):
    response = await client.post(
        "/v1/drivers",
        json={"name": "No Licence", "email": "no.licence@vems.com", "password": "nolicence123"},
        headers=admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_driver_list_license_state(client, admin_headers, db_session, driver, second_driver):
    driver.license_expiry_date = date.today() - timedelta(days=1)
    second_driver.license_expiry_date = date.today() + timedelta(days=10)
    await db_session.commit()

    response = await client.get("/v1/drivers", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    by_name = {item["username"]: item for item in data["drivers"]}
    assert by_name["driver1"]["license_status"] == "expired"
    assert by_name["driver1"]["can_drive"] is False
    assert by_name["driver2"]["license_status"] == "expiring_soon"
    assert data["stats"]["total"] == 2
    assert data["stats"]["license_expired"] == 1


@pytest.mark.asyncio
async def test_driver_endpoint_ignores_employees(client, admin_headers, employee_user):
    response = await client.get(f"/v1/drivers/{employee_user.id}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_driver_status(client, admin_headers, driver):
    response = await client.patch(
        f"/v1/users/{driver.id}/driver-status",
        json={"driver_status": "on_leave"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["driver_status"] == "on_leave"

    available = await client.get("/v1/users/available-drivers", headers=admin_headers)
    assert available.json() == []


@pytest.mark.asyncio
async def test_update_driver_ignores_null_name(client, admin_headers, driver):
    response = await client.put(
        f"/v1/drivers/{driver.id}",
        json={"name": None, "status": None, "area": "Mirpur"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Driver One"
    assert data["status"] == "active"
    assert data["area"] == "Mirpur"
