"""
Tests for the dashboard and the audit log endpoints.
"""

import pytest


@pytest.mark.asyncio
async def test_dashboard_counters(client, admin_headers, vehicle):
    response = await client.get("/v1/dashboard", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total_users"] == 2
    assert data["total_vehicles"] == 1
    assert data["active_vehicles"] == 1
    assert data["total_vendors"] == 1
    assert data["recent_vehicles"][0]["registration_number"] == "DHA-1111"
    assert data["recent_vehicles"][0]["driver_name"] == "Driver One"
    assert data["recent_vehicles"][0]["vendor_name"] == "Rent Co"
    assert {u["user_type"] for u in data["recent_users"]} == {"admin", "driver"}
    assert data["trips_today"] == {"scheduled": 0, "in_progress": 0, "completed": 0}


@pytest.mark.asyncio
async def test_employee_sees_dashboard(client, employee_headers):
    response = await client.get("/v1/dashboard", headers=employee_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_audit_logs_filtering(client, admin_headers, admin_user, vehicle, second_driver):
    await client.put(f"/v1/vehicles/{vehicle.id}", json={"driver_id": second_driver.id}, headers=admin_headers)

    response = await client.get("/v1/admin/audit-logs", params={"target_type": "vehicle"}, headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert {log["action"] for log in data["logs"]} == {"VEHICLE_UPDATED", "DRIVER_ASSIGNED"}
    assert all(log["actor_id"] == admin_user.id for log in data["logs"])

    logins = await client.get("/v1/admin/audit-logs", params={"action": "LOGIN_SUCCESS"}, headers=admin_headers)
    assert logins.json()["logs"][0]["actor_username"] == "admin"


@pytest.mark.asyncio
async def test_audit_logs_need_permission(client, employee_headers):
    response = await client.get("/v1/admin/audit-logs", headers=employee_headers)

    assert response.status_code == 403
    assert response.json()["details"]["missing"] == ["view-user-activity"]
