"""
Tests for vendors and their contact persons.
"""

import pytest


def _vendor_payload(**overrides):
    payload = {
        "name": "Swift Rentals",
        "status": "active",
        "website": "https://swift-rentals.example",
        "contact_persons": [
            {"name": "Main Contact", "email": "main@swift-rentals.example", "is_primary": True},
            {"name": "Backup Contact", "phone": ""},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_create_vendor_with_contacts(client, admin_headers):
    response = await client.post("/v1/vendors", json=_vendor_payload(), headers=admin_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["website"] == "https://swift-rentals.example/"
    assert [c["name"] for c in data["contact_persons"]] == ["Main Contact", "Backup Contact"]
    assert data["contact_persons"][1]["phone"] is None
    assert data["vehicles_count"] == 0


@pytest.mark.asyncio
async def test_create_vendor_requires_contact(client, admin_headers):
    response = await client.post("/v1/vendors", json=_vendor_payload(contact_persons=[]), headers=admin_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_sync_contacts_updates_creates_and_deletes(client, admin_headers):
    created = await client.post("/v1/vendors", json=_vendor_payload(), headers=admin_headers)
    vendor = created.json()
    main, backup = vendor["contact_persons"]

    response = await client.put(
        f"/v1/vendors/{vendor['id']}",
        json={
            "contact_persons": [
                {"id": main["id"], "name": "Main Contact Renamed", "is_primary": True},
                {"name": "Brand New Contact"},
            ],
        },
        headers=admin_headers,
    )

    assert response.status_code == 200
    contacts = response.json()["contact_persons"]
    assert [c["name"] for c in contacts] == ["Main Contact Renamed", "Brand New Contact"]
    assert contacts[0]["id"] == main["id"]
    assert backup["id"] not in {c["id"] for c in contacts}


@pytest.mark.asyncio
async def test_sync_contacts_rejects_foreign_ids(client, admin_headers, vendor):
    created = await client.post("/v1/vendors", json=_vendor_payload(), headers=admin_headers)
    own_id = created.json()["id"]

    # Contact id 1 belongs to the fixture vendor, not this one
    response = await client.put(
        f"/v1/vendors/{own_id}",
        json={"contact_persons": [{"id": 1, "name": "Hijacked"}]},
        headers=admin_headers,
    )

    assert response.status_code == 422
    assert "contact_persons" in response.json()["details"]["errors"]


@pytest.mark.asyncio
async def test_update_without_contacts_keeps_them(client, admin_headers, vendor):
    response = await client.put(
        f"/v1/vendors/{vendor.id}",
        json={"status": "inactive", "name": None},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "inactive"
    assert data["name"] == "Rent Co"
    assert len(data["contact_persons"]) == 1


@pytest.mark.asyncio
async def test_list_vendors(client, admin_headers, vehicle):
    await client.post("/v1/vendors", json=_vendor_payload(status="inactive"), headers=admin_headers)

    response = await client.get("/v1/vendors", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["stats"] == {"total": 2, "active": 1, "inactive": 1, "with_vehicles": 1}
    rent_co = next(v for v in data["vendors"] if v["name"] == "Rent Co")
    assert rent_co["vehicles_count"] == 1
    assert rent_co["primary_contact"]["name"] == "Contact One"


@pytest.mark.asyncio
async def test_vendor_select_lists_active_only(client, admin_headers, vendor):
    await client.post("/v1/vendors", json=_vendor_payload(status="inactive"), headers=admin_headers)

    response = await client.get("/v1/vendors-select", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == [{"label": "Rent Co", "value": vendor.id}]


@pytest.mark.asyncio
async def test_delete_vendor_with_vehicles_is_refused(client, admin_headers, vehicle, vendor):
    response = await client.delete(f"/v1/vendors/{vendor.id}", headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["details"]["vehicles_count"] == 1


@pytest.mark.asyncio
async def test_delete_vendor(client, admin_headers, vendor):
    response = await client.delete(f"/v1/vendors/{vendor.id}", headers=admin_headers)
    assert response.status_code == 204

    response = await client.get(f"/v1/vendors/{vendor.id}", headers=admin_headers)
    assert response.status_code == 404
