"""
Tests for user groups and their membership.
"""

import pytest


async def _create_group(client, headers, **overrides):
    payload = {"name": "Night Shift", "description": "Late pickups"}
    payload.update(overrides)
    response = await client.post("/v1/user-groups", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_group_with_members(client, admin_headers, admin_user, employee_user, driver):
    group = await _create_group(client, admin_headers, member_ids=[employee_user.id, driver.id])

    assert group["status"] == "active"
    assert group["created_by"] == admin_user.id
    assert [m["name"] for m in group["members"]] == ["Driver One", "Plain Employee"]
    assert group["members"][0]["added_by"] == admin_user.id


@pytest.mark.asyncio
async def test_create_group_with_unknown_member(client, admin_headers):
    response = await client.post(
        "/v1/user-groups", json={"name": "Ghosts", "member_ids": [9999]}, headers=admin_headers,
    )

    assert response.status_code == 422
    assert "member_ids" in response.json()["details"]["errors"]


@pytest.mark.asyncio
async def test_add_members_skips_existing(client, admin_headers, employee_user, driver):
    group = await _create_group(client, admin_headers, member_ids=[employee_user.id])

    response = await client.post(
        f"/v1/user-groups/{group['id']}/members",
        json={"user_ids": [employee_user.id, driver.id]},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"added": 1, "skipped": 1, "members_count": 2}


@pytest.mark.asyncio
async def test_remove_member(client, admin_headers, employee_user):
    group = await _create_group(client, admin_headers, member_ids=[employee_user.id])

    response = await client.delete(
        f"/v1/user-groups/{group['id']}/members/{employee_user.id}", headers=admin_headers,
    )
    assert response.status_code == 204

    again = await client.delete(
        f"/v1/user-groups/{group['id']}/members/{employee_user.id}", headers=admin_headers,
    )
    assert again.status_code == 404


@pytest.mark.asyncio
async def test_update_replaces_membership(client, admin_headers, employee_user, driver, second_driver):
    group = await _create_group(client, admin_headers, member_ids=[employee_user.id, driver.id])

    response = await client.put(
        f"/v1/user-groups/{group['id']}",
        json={"member_ids": [driver.id, second_driver.id], "status": "inactive"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "inactive"
    assert {m["id"] for m in data["members"]} == {driver.id, second_driver.id}


@pytest.mark.asyncio
async def test_available_users_excludes_members(client, admin_headers, admin_user, employee_user, driver):
    group = await _create_group(client, admin_headers, member_ids=[employee_user.id])

    response = await client.get(f"/v1/user-groups/{group['id']}/available-users", headers=admin_headers)

    assert response.status_code == 200
    assert {option["value"] for option in response.json()} == {admin_user.id, driver.id}


@pytest.mark.asyncio
async def test_soft_deleted_group_is_hidden_but_name_stays_taken(client, admin_headers):
    group = await _create_group(client, admin_headers)

    response = await client.delete(f"/v1/user-groups/{group['id']}", headers=admin_headers)
    assert response.status_code == 204

    assert (await client.get(f"/v1/user-groups/{group['id']}", headers=admin_headers)).status_code == 404
    listing = await client.get("/v1/user-groups", headers=admin_headers)
    assert listing.json()["groups"] == []

    response = await client.post("/v1/user-groups", json={"name": "Night Shift"}, headers=admin_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_groups_with_counts(client, admin_headers, employee_user):
    await _create_group(client, admin_headers, member_ids=[employee_user.id])
    await _create_group(client, admin_headers, name="Day Shift", status="inactive")

    response = await client.get("/v1/user-groups", params={"status": "active"}, headers=admin_headers)

    groups = response.json()["groups"]
    assert [g["name"] for g in groups] == ["Night Shift"]
    assert groups[0]["members_count"] == 1
