import pytest

from tests.conftest import register_and_login


OFFER = {
    "from_location": "Lisbon airport",
    "to_location": "Alfama",
    "departure_time": "2030-06-01T14:00:00",
    "max_people": 3,
    "max_gear_description": "two suitcases",
}

REQUIREMENT = {
    "from_location": "Lisbon airport",
    "to_location": "Alfama",
    "earliest_time": "2030-06-01T12:00:00",
    "latest_time": "2030-06-01T16:00:00",
    "people_count": 2,
}


@pytest.mark.asyncio
async def test_offer_lifecycle(client, alice, bob, crew):
    url = f"/trips/{crew['id']}/transport/offers"
    resp = await client.post(url, json=OFFER, headers=bob[0])
    assert resp.status_code == 201
    offer = resp.json()
    assert offer["created_by"] == bob[1]
    assert offer["creator_name"] == "Bob"

    resp = await client.patch(f"{url}/{offer['id']}", json={"max_people": 4}, headers=bob[0])
    assert resp.json()["max_people"] == 4
    assert resp.json()["to_location"] == "Alfama"

    # even the trip owner cannot edit someone else's offer
    resp = await client.patch(f"{url}/{offer['id']}", json={"notes": "hijacked"}, headers=alice[0])
    assert resp.status_code == 403
    assert resp.json()["detail"] == "You can only edit your own transport offers"

    resp = await client.delete(f"{url}/{offer['id']}", headers=alice[0])
    assert resp.status_code == 403

    resp = await client.delete(f"{url}/{offer['id']}", headers=bob[0])
    assert resp.status_code == 200
    assert (await client.get(url, headers=bob[0])).json() == []

    resp = await client.delete(f"{url}/{offer['id']}", headers=bob[0])
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Transport offer not found"


@pytest.mark.asyncio
async def test_offer_times_stored_as_utc(client, alice, crew):
    url = f"/trips/{crew['id']}/transport/offers"
    resp = await client.post(url, json={**OFFER, "departure_time": "2030-06-01T16:00:00+02:00"}, headers=alice[0])
    assert resp.json()["departure_time"].startswith("2030-06-01T14:00:00")


@pytest.mark.asyncio
async def test_requirement_lifecycle(client, alice, carol, crew):
    url = f"/trips/{crew['id']}/transport/requirements"
    resp = await client.post(url, json=REQUIREMENT, headers=carol[0])
    assert resp.status_code == 201
    requirement = resp.json()
    assert requirement["people_count"] == 2

    resp = await client.patch(f"{url}/{requirement['id']}", json={"latest_time": "2030-06-01T11:00:00"},
                              headers=carol[0])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "latest_time cannot be before earliest_time"

    resp = await client.get(url, headers=carol[0])
    assert resp.json()[0]["latest_time"].startswith("2030-06-01T16:00:00")

    resp = await client.patch(f"{url}/{requirement['id']}", json={"people_count": 1}, headers=alice[0])
    assert resp.status_code == 403
    assert resp.json()["detail"] == "You can only edit your own transport requirements"

    resp = await client.delete(f"{url}/{requirement['id']}", headers=carol[0])
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_requirement_window_validated_on_create(client, alice, crew):
    resp = await client.post(f"/trips/{crew['id']}/transport/requirements", json={
        **REQUIREMENT, "earliest_time": "2030-06-01T18:00:00",
    }, headers=alice[0])
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_combined_view_is_ordered(client, alice, bob, carol, crew):
    base = f"/trips/{crew['id']}/transport"
    await client.post(f"{base}/offers", json={**OFFER, "departure_time": "2030-06-07T10:00:00"}, headers=alice[0])
    await client.post(f"{base}/offers", json=OFFER, headers=bob[0])
    await client.post(f"{base}/requirements", json={
        **REQUIREMENT, "earliest_time": "2030-06-07T08:00:00", "latest_time": "2030-06-07T12:00:00",
    }, headers=carol[0])
    await client.post(f"{base}/requirements", json=REQUIREMENT, headers=carol[0])

    body = (await client.get(base, headers=alice[0])).json()
    assert [o["creator_name"] for o in body["offers"]] == ["Bob", "Alice"]
    assert [r["earliest_time"][:10] for r in body["requirements"]] == ["2030-06-01", "2030-06-07"]


@pytest.mark.asyncio
async def test_transport_is_members_only(client, trip):
    outsider, _ = await register_and_login(client, "eve@example.com")
    resp = await client.get(f"/trips/{trip['id']}/transport", headers=outsider)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_transport_edits_are_logged(client, bob, carol, crew):
    base = f"/trips/{crew['id']}/transport"
    offer = (await client.post(f"{base}/offers", json=OFFER, headers=bob[0])).json()
    requirement = (await client.post(f"{base}/requirements", json=REQUIREMENT, headers=carol[0])).json()

    await client.patch(f"{base}/offers/{offer['id']}", json={"max_people": 2}, headers=bob[0])
    await client.patch(f"{base}/requirements/{requirement['id']}", json={"people_count": 3}, headers=carol[0])

    events = (await client.get(f"/trips/{crew['id']}/activity", headers=bob[0])).json()
    assert [(e["event_type"], e["entity_id"]) for e in events[:2]] == [
        ("TRANSPORT_REQUIREMENT_UPDATED", requirement["id"]),
        ("TRANSPORT_OFFER_UPDATED", offer["id"]),
    ]
    assert events[0]["payload"] == {"people_count": "3"}
    assert events[1]["by_user_id"] == bob[1]
