"""
Tests for department management.
"""

import pytest

from vems.app.models.enums import UserType
from vems.tests.helpers import create_user


@pytest.mark.asyncio
async def test_create_department(client, admin_headers, admin_user):
    response = await client.post(
        "/v1/departments",
        json={
            "name": "Finance",
            "code": "FIN",
            "head_id": admin_user.id,
            "email": "finance@vems.com",
            "budget_allocation": {"fuel": 1000, "operations": 250.5},
        },
        headers=admin_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "active"
    assert data["head_id"] == admin_user.id
    assert data["total_budget"] == 1250.5


@pytest.mark.asyncio
async def test_blank_head_is_treated_as_none(client, admin_headers):
    response = await client.post(
        "/v1/departments",
        json={"name": "Legal", "code": "LEG", "head_id": "none", "email": ""},
        headers=admin_headers,
    )

    assert response.status_code == 201
    assert response.json()["head_id"] is None


@pytest.mark.asyncio
async def test_duplicate_name_and_code(client, admin_headers, department):
    response = await client.post(
        "/v1/departments",
        json={"name": department.name, "code": department.code},
        headers=admin_headers,
    )

    assert response.status_code == 422
    errors = response.json()["details"]["errors"]
    assert set(errors) == {"name", "code"}


@pytest.mark.asyncio
async def test_unknown_head(client, admin_headers):
    response = await client.post(
        "/v1/departments",
        json={"name": "Audit", "code": "AUD", "head_id": 4242},
        headers=admin_headers,
    )

    assert response.status_code == 422
    assert "head_id" in response.json()["details"]["errors"]


@pytest.mark.asyncio
async def test_list_departments_with_user_count(client, admin_headers, db_session, role_ids, department):
    await create_user(
        db_session, role_ids, "Employee",
        name="Ops Member",
        email="ops.member@vems.com",
        department_id=department.id,
    )

    response = await client.get("/v1/departments", params={"search": "oper"}, headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["meta"]["total"] == 1
    assert data["departments"][0]["users_count"] == 1


@pytest.mark.asyncio
async def test_status_filter(client, admin_headers, department):
    await client.patch(f"/v1/departments/{department.id}/toggle-status", headers=admin_headers)

    active = await client.get("/v1/departments", params={"status": "active"}, headers=admin_headers)
    inactive = await client.get("/v1/departments", params={"status": "inactive"}, headers=admin_headers)

    assert active.json()["meta"]["total"] == 0
    assert inactive.json()["meta"]["total"] == 1


@pytest.mark.asyncio
async def test_toggle_status_twice(client, admin_headers, department):
    first = await client.patch(f"/v1/departments/{department.id}/toggle-status", headers=admin_headers)
    second = await client.patch(f"/v1/departments/{department.id}/toggle-status", headers=admin_headers)

    assert first.json()["is_active"] is False
    assert second.json()["is_active"] is True


@pytest.mark.asyncio
async def test_department_detail_stats(client, admin_headers, db_session, role_ids, department):
    await create_user(
        db_session, role_ids, "Driver",
        name="Ops Driver",
        email="ops.driver@vems.com",
        user_type=UserType.DRIVER,
        driving_license_no="DL-9",
        department_id=department.id,
    )

    response = await client.get(f"/v1/departments/{department.id}", headers=admin_headers)

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["total_users"] == 1
    assert stats["drivers"] == 1


@pytest.mark.asyncio
async def test_update_department_keeps_own_code(client, admin_headers, department):
    """Re-submitting the department's own code is not a uniqueness clash."""
    response = await client.put(
        f"/v1/departments/{department.id}",
        json={"code": department.code, "location": "Warehouse"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["location"] == "Warehouse"


@pytest.mark.asyncio
async def test_delete_department_with_users_is_refused(client, admin_headers, db_session, role_ids, department):
    await create_user(
        db_session, role_ids, "Employee",
        name="Still Here",
        email="still.here@vems.com",
        department_id=department.id,
    )

    response = await client.delete(f"/v1/departments/{department.id}", headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["details"]["users_count"] == 1


@pytest.mark.asyncio
async def test_delete_empty_department(client, admin_headers, department):
    response = await client.delete(f"/v1/departments/{department.id}", headers=admin_headers)
    assert response.status_code == 204

    response = await client.get(f"/v1/departments/{department.id}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_ignores_null_for_required_columns(client, admin_headers, department):
    response = await client.put(
        f"/v1/departments/{department.id}",
        json={"name": None, "code": None, "is_active": None, "location": "Dock 4"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Operations"
    assert data["code"] == "OPS"
    assert data["location"] == "Dock 4"
