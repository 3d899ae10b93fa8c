import pytest

from tests.conftest import register_and_login


async def _member_id(client, headers, trip_id, user_id):
    resp = await client.get(f"/trips/{trip_id}/members", headers=headers)
    return next(m["id"] for m in resp.json()["members"] if m["user_id"] == user_id)


@pytest.mark.asyncio
async def test_list_members_with_rsvp_counts(client, alice, crew):
    resp = await client.get(f"/trips/{crew['id']}/members", headers=alice[0])
    assert resp.status_code == 200
    body = resp.json()
    assert [m["user"]["display_name"] for m in body["members"]] == ["Alice", "Bob", "Carol"]
    assert body["rsvp_counts"] == {"PENDING": 0, "ACCEPTED": 3, "DECLINED": 0, "MAYBE": 0}


@pytest.mark.asyncio
async def test_invite_members(client, alice, bob, trip):
    dave_headers, _ = await register_and_login(client, "dave@example.com")
    resp = await client.post(f"/trips/{trip['id']}/members/invite", json={
        "emails": ["dave@example.com", "DAVE@example.com", "alice@example.com", "nobody@example.com"],
    }, headers=alice[0])
    assert resp.status_code == 200
    assert resp.json() == {
        "invited": ["dave@example.com"],
        "already_members": ["alice@example.com"],
        "not_found": ["nobody@example.com"],
    }

    resp = await client.get(f"/trips/{trip['id']}/members", headers=dave_headers)
    assert resp.json()["rsvp_counts"]["PENDING"] == 1

    resp = await client.put(f"/trips/{trip['id']}/members/me/rsvp", json={"rsvp_status": "MAYBE"},
                            headers=dave_headers)
    assert resp.status_code == 200
    assert resp.json()["rsvp_status"] == "MAYBE"


@pytest.mark.asyncio
async def test_only_admins_invite(client, bob, crew):
    resp = await client.post(f"/trips/{crew['id']}/members/invite", json={"emails": ["x@example.com"]},
                             headers=bob[0])
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_rsvp_requires_invitation_and_open_window(client, alice, bob, carol, crew):
    url = f"/trips/{crew['id']}/members/me/rsvp"
    outsider, _ = await register_and_login(client, "frank@example.com")
    resp = await client.put(url, json={"rsvp_status": "ACCEPTED"}, headers=outsider)
    assert resp.status_code == 404

    resp = await client.put(url, json={"rsvp_status": "MAYBE_NOT"}, headers=bob[0])
    assert resp.status_code == 422

    await client.post(f"/trips/{crew['id']}/rsvp-status", json={"action": "close"}, headers=alice[0])
    resp = await client.put(url, json={"rsvp_status": "DECLINED"}, headers=bob[0])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "RSVP is closed for this trip"


@pytest.mark.asyncio
async def test_remove_members(client, alice, bob, carol, crew):
    trip_id = crew["id"]
    owner_id = await _member_id(client, alice[0], trip_id, alice[1])
    carol_member = await _member_id(client, alice[0], trip_id, carol[1])

    resp = await client.delete(f"/trips/{trip_id}/members/{carol_member}", headers=bob[0])
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Only organizers can remove other members"

    resp = await client.delete(f"/trips/{trip_id}/members/{owner_id}", headers=alice[0])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "The trip owner cannot be removed"

    resp = await client.delete(f"/trips/{trip_id}/members/{carol_member}", headers=alice[0])
    assert resp.status_code == 200

    resp = await client.get(f"/trips/{trip_id}", headers=carol[0])
    assert resp.status_code == 403

    # leaving on your own is allowed
    bob_member = await _member_id(client, alice[0], trip_id, bob[1])
    resp = await client.delete(f"/trips/{trip_id}/members/{bob_member}", headers=bob[0])
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_removed_member_cannot_rsvp(client, alice, bob, crew):
    trip_id = crew["id"]
    bob_member = await _member_id(client, alice[0], trip_id, bob[1])
    await client.delete(f"/trips/{trip_id}/members/{bob_member}", headers=alice[0])

    resp = await client.put(f"/trips/{trip_id}/members/me/rsvp", json={"rsvp_status": "ACCEPTED"},
                            headers=bob[0])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Your invitation to this trip was cancelled"


@pytest.mark.asyncio
async def test_change_role(client, alice, bob, carol, crew):
    trip_id = crew["id"]
    bob_member = await _member_id(client, alice[0], trip_id, bob[1])
    owner_member = await _member_id(client, alice[0], trip_id, alice[1])

    resp = await client.patch(f"/trips/{trip_id}/members/{bob_member}/role", json={"role": "ADMIN"},
                              headers=carol[0])
    assert resp.status_code == 403

    resp = await client.patch(f"/trips/{trip_id}/members/{bob_member}/role", json={"role": "OWNER"},
                              headers=alice[0])
    assert resp.status_code == 422

    resp = await client.patch(f"/trips/{trip_id}/members/{owner_member}/role", json={"role": "MEMBER"},
                              headers=alice[0])
    assert resp.status_code == 400

    resp = await client.patch(f"/trips/{trip_id}/members/{bob_member}/role", json={"role": "ADMIN"},
                              headers=alice[0])
    assert resp.status_code == 200
    assert resp.json()["role"] == "ADMIN"

    # admins can now edit the trip
    resp = await client.patch(f"/trips/{trip_id}", json={"name": "Lisbon & Porto"}, headers=bob[0])
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_viewer_is_read_only(client, alice, bob, crew):
    trip_id = crew["id"]
    bob_member = await _member_id(client, alice[0], trip_id, bob[1])
    await client.patch(f"/trips/{trip_id}/members/{bob_member}/role", json={"role": "VIEWER"}, headers=alice[0])

    assert (await client.get(f"/trips/{trip_id}/spends", headers=bob[0])).status_code == 200
    resp = await client.post(f"/trips/{trip_id}/spends", json={"description": "Taxi", "amount": "12.00"},
                             headers=bob[0])
    assert resp.status_code == 403
    assert resp.json()["detail"] == "MEMBER role required for this action"
