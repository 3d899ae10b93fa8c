from decimal import Decimal

import pytest
import pytest_asyncio


@pytest_asyncio.fixture
async def shared_costs(client, alice, bob, carol, crew):
    """Alice pays 90 split three ways, Bob pays 30 split with Carol."""
    trip_id = crew["id"]
    resp = await client.post(f"/trips/{trip_id}/spends", json={
        "description": "Dinner", "amount": "90.00", "date": "2030-06-02T20:00:00",
    }, headers=alice[0])
    dinner = resp.json()
    await client.post(f"/trips/{trip_id}/spends/{dinner['id']}/assignments/split-equally",
                      json={"user_ids": [alice[1], bob[1], carol[1]]}, headers=alice[0])

    resp = await client.post(f"/trips/{trip_id}/spends", json={
        "description": "Taxi", "amount": "30.00", "date": "2030-06-03T09:00:00",
    }, headers=bob[0])
    taxi = resp.json()
    await client.post(f"/trips/{trip_id}/spends/{taxi['id']}/assignments/split-equally",
                      json={"user_ids": [bob[1], carol[1]]}, headers=bob[0])
    return crew


def _transfers(body):
    return {(t["from_user_id"], t["to_user_id"]): Decimal(t["amount"]) for t in body}


def _payment_ids(resp, settlement_id):
    settlement = next(s for s in resp.json() if s["id"] == settlement_id)
    return [p["id"] for p in settlement["payments"]]


@pytest.mark.asyncio
async def test_trip_balances_and_plan(client, alice, bob, carol, shared_costs):
    resp = await client.get(f"/trips/{shared_costs['id']}/balances", headers=bob[0])
    assert resp.status_code == 200
    body = resp.json()
    assert body["base_currency"] == "EUR"
    assert Decimal(body["total_spent"]) == Decimal("120.00")

    nets = {b["user_name"]: Decimal(b["net"]) for b in body["balances"]}
    assert nets == {"Alice": Decimal("60.00"), "Bob": Decimal("-15.00"), "Carol": Decimal("-45.00")}
    assert [b["user_name"] for b in body["balances"]] == ["Alice", "Bob", "Carol"]

    assert _transfers(body["settlements"]) == {
        (carol[1], alice[1]): Decimal("45.00"),
        (bob[1], alice[1]): Decimal("15.00"),
    }


@pytest.mark.asyncio
async def test_balances_refresh_after_spend_change(client, alice, carol, shared_costs):
    trip_id = shared_costs["id"]
    await client.get(f"/trips/{trip_id}/balances", headers=alice[0])

    resp = await client.post(f"/trips/{trip_id}/spends", json={"description": "Museum", "amount": "10.00"},
                             headers=carol[0])
    await client.post(f"/trips/{trip_id}/spends/{resp.json()['id']}/assignments/self",
                      json={"share_amount": "10.00"}, headers=carol[0])

    body = (await client.get(f"/trips/{trip_id}/balances", headers=alice[0])).json()
    assert Decimal(body["total_spent"]) == Decimal("130.00")


@pytest.mark.asyncio
async def test_my_balance(client, alice, carol, shared_costs):
    resp = await client.get(f"/trips/{shared_costs['id']}/balances/me", headers=carol[0])
    body = resp.json()
    assert Decimal(body["user_owes"]) == Decimal("45.00")
    assert Decimal(body["user_is_owed"]) == Decimal("0")

    resp = await client.get(f"/trips/{shared_costs['id']}/balances/me", headers=alice[0])
    assert Decimal(resp.json()["user_is_owed"]) == Decimal("60.00")


@pytest.mark.asyncio
async def test_empty_trip_has_zero_balances(client, alice, trip):
    body = (await client.get(f"/trips/{trip['id']}/balances", headers=alice[0])).json()
    assert body["settlements"] == []
    assert [Decimal(b["net"]) for b in body["balances"]] == [Decimal("0")]


@pytest.mark.asyncio
async def test_balances_follow_member_changes(client, alice, bob, trip):
    trip_id = trip["id"]
    url = f"/trips/{trip_id}/balances"
    body = (await client.get(url, headers=alice[0])).json()
    assert [b["user_id"] for b in body["balances"]] == [alice[1]]

    code = (await client.post(f"/trips/{trip_id}/ensure-join-code", headers=alice[0])).json()["join_code"]
    await client.post(f"/trips/join/{code}", headers=bob[0])
    body = (await client.get(url, headers=alice[0])).json()
    assert [b["user_id"] for b in body["balances"]] == [alice[1], bob[1]]

    members = (await client.get(f"/trips/{trip_id}/members", headers=alice[0])).json()["members"]
    bob_member = next(m["id"] for m in members if m["user_id"] == bob[1])
    resp = await client.delete(f"/trips/{trip_id}/members/{bob_member}", headers=alice[0])
    assert resp.status_code == 200
    body = (await client.get(url, headers=alice[0])).json()
    assert [b["user_id"] for b in body["balances"]] == [alice[1]]


@pytest.mark.asyncio
async def test_persist_plan_requires_admin(client, bob, shared_costs):
    resp = await client.post(f"/trips/{shared_costs['id']}/settlements", headers=bob[0])
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_payments_drive_settlement_status(client, alice, bob, carol, shared_costs):
    trip_id = shared_costs["id"]
    resp = await client.post(f"/trips/{trip_id}/settlements", headers=alice[0])
    assert resp.status_code == 200
    settlements = resp.json()
    assert len(settlements) == 2
    assert all(s["status"] == "PENDING" for s in settlements)

    carol_debt = next(s for s in settlements if s["from_user_id"] == carol[1])
    url = f"/trips/{trip_id}/settlements/{carol_debt['id']}/payments"

    resp = await client.post(url, json={"amount": "20.00"}, headers=bob[0])
    assert resp.status_code == 403

    resp = await client.post(url, json={"amount": "20.00", "payment_method": "cash"}, headers=carol[0])
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "PARTIALLY_PAID"
    assert Decimal(body["remaining"]) == Decimal("25.00")
    first_payment = body["payments"][0]["id"]

    resp = await client.post(url, json={"amount": "25.00"}, headers=carol[0])
    body = resp.json()
    assert body["status"] == "PAID"
    assert Decimal(body["total_paid"]) == Decimal("45.00")

    resp = await client.patch(f"{url}/{first_payment}", json={"amount": "10.00"}, headers=carol[0])
    assert resp.json()["status"] == "PARTIALLY_PAID"

    resp = await client.patch(f"{url}/{first_payment}", json={"amount": "30.00"}, headers=bob[0])
    assert resp.status_code == 403

    listing = await client.get(f"/trips/{trip_id}/settlements", headers=carol[0])
    for payment in _payment_ids(listing, carol_debt["id"]):
        resp = await client.delete(f"{url}/{payment}", headers=alice[0])
        assert resp.status_code == 200
    assert resp.json()["status"] == "PENDING"
    assert resp.json()["payments"] == []


@pytest.mark.asyncio
async def test_persisting_again_keeps_paid_rows(client, alice, carol, shared_costs):
    trip_id = shared_costs["id"]
    settlements = (await client.post(f"/trips/{trip_id}/settlements", headers=alice[0])).json()
    carol_debt = next(s for s in settlements if s["from_user_id"] == carol[1])
    await client.post(f"/trips/{trip_id}/settlements/{carol_debt['id']}/payments",
                      json={"amount": "45.00"}, headers=carol[0])

    settlements = (await client.post(f"/trips/{trip_id}/settlements", headers=alice[0])).json()
    assert [s["status"] for s in settlements].count("PAID") == 1
    assert any(s["id"] == carol_debt["id"] for s in settlements)

