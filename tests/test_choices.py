import csv
import io
import json
from decimal import Decimal

import pytest
import pytest_asyncio

from tests.conftest import register_and_login
from tripcrew.services.choices import choice_service


@pytest_asyncio.fixture
async def dinner(client, alice, crew):
    resp = await client.post(f"/trips/{crew['id']}/choices", json={
        "name": "Dinner at Ramiro",
        "place": "Ramiro",
        "items": [
            {"name": "Prawns", "price": "12.50", "max_per_user": 2},
            {"name": "Steak", "price": "20.00", "max_total": 1},
            {"name": "Water", "price": "2.00"},
        ],
    }, headers=alice[0])
    assert resp.status_code == 201, resp.text
    choice = resp.json()
    detail = (await client.get(f"/choices/{choice['id']}", headers=alice[0])).json()
    choice["item_ids"] = {i["name"]: i["id"] for i in detail["items"]}
    return choice


async def _select(client, headers, choice, **quantities):
    lines = [{"item_id": choice["item_ids"][name], "quantity": qty} for name, qty in quantities.items()]
    return await client.put(f"/choices/{choice['id']}/selection", json={"lines": lines}, headers=headers)


@pytest_asyncio.fixture
async def orders(client, bob, carol, dinner):
    resp = await _select(client, bob[0], dinner, Prawns=2, Steak=1)
    assert resp.status_code == 200, resp.text
    resp = await _select(client, carol[0], dinner, Water=2, Prawns=1)
    assert resp.status_code == 200, resp.text
    return dinner


@pytest.mark.asyncio
async def test_create_choice_with_items(client, alice, dinner):
    resp = await client.get(f"/choices/{dinner['id']}", headers=alice[0])
    body = resp.json()
    assert body["choice"]["status"] == "OPEN"
    assert body["choice"]["visibility"] == "TRIP"
    assert [i["name"] for i in body["items"]] == ["Prawns", "Steak", "Water"]
    assert [i["sort_index"] for i in body["items"]] == [0, 1, 2]
    assert body["my_selection"] is None
    assert Decimal(body["my_total"]) == Decimal("0")


@pytest.mark.asyncio
async def test_private_choice_is_hidden(client, alice, bob, crew):
    resp = await client.post(f"/trips/{crew['id']}/choices", json={"name": "Surprise", "visibility": "PRIVATE"},
                             headers=alice[0])
    choice_id = resp.json()["id"]

    resp = await client.get(f"/choices/{choice_id}", headers=bob[0])
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Choice not found"

    names = [c["name"] for c in (await client.get(f"/trips/{crew['id']}/choices", headers=bob[0])).json()]
    assert "Surprise" not in names
    names = [c["name"] for c in (await client.get(f"/trips/{crew['id']}/choices", headers=alice[0])).json()]
    assert "Surprise" in names


@pytest.mark.asyncio
async def test_non_member_cannot_open_choice(client, dinner):
    outsider, _ = await register_and_login(client, "mallory@example.com")
    resp = await client.get(f"/choices/{dinner['id']}", headers=outsider)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_selection_limits(client, bob, carol, dinner):
    resp = await _select(client, bob[0], dinner, Prawns=3)
    assert resp.status_code == 400
    assert resp.json()["detail"] == 'Item "Prawns" exceeds per-user limit of 2'

    resp = await _select(client, bob[0], dinner, Prawns=2, Steak=1)
    assert resp.status_code == 200
    body = resp.json()
    assert Decimal(body["total"]) == Decimal("45.00")
    assert [line["item_name"] for line in body["lines"]] == ["Prawns", "Steak"]

    resp = await _select(client, carol[0], dinner, Steak=1)
    assert resp.status_code == 400
    assert resp.json()["detail"] == 'Item "Steak" would exceed total stock limit of 1 (current: 1, requested: 1)'

    # Bob replacing his own order does not count against himself
    resp = await _select(client, bob[0], dinner, Steak=1)
    assert resp.status_code == 200
    assert Decimal(resp.json()["total"]) == Decimal("20.00")


@pytest.mark.asyncio
async def test_unknown_and_inactive_items(client, alice, bob, dinner):
    resp = await client.put(f"/choices/{dinner['id']}/selection", json={"lines": [{"item_id": 9999}]},
                            headers=bob[0])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Item 9999 not found"

    resp = await client.delete(f"/choice-items/{dinner['item_ids']['Water']}", headers=alice[0])
    assert resp.json()["is_active"] is False

    resp = await _select(client, bob[0], dinner, Water=1)
    assert resp.status_code == 400
    assert resp.json()["detail"] == 'Item "Water" is no longer active'


@pytest.mark.asyncio
async def test_closed_or_late_choice_rejects_selections(client, alice, bob, crew, dinner):
    resp = await client.post(f"/choices/{dinner['id']}/status", json={"status": "CLOSED"}, headers=alice[0])
    assert resp.json()["status"] == "CLOSED"

    resp = await _select(client, bob[0], dinner, Water=1)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Choice is closed for selections"

    resp = await client.post(f"/trips/{crew['id']}/choices", json={
        "name": "Brunch",
        "deadline": "2020-01-01T10:00:00Z",
        "items": [{"name": "Eggs", "price": "8.00"}],
    }, headers=alice[0])
    brunch = resp.json()
    detail = (await client.get(f"/choices/{brunch['id']}", headers=bob[0])).json()
    resp = await client.put(f"/choices/{brunch['id']}/selection",
                            json={"lines": [{"item_id": detail["items"][0]["id"]}]}, headers=bob[0])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Choice deadline has passed"


@pytest.mark.asyncio
async def test_only_creator_or_organizer_manages(client, alice, bob, dinner):
    resp = await client.patch(f"/choices/{dinner['id']}", json={"place": "Elsewhere"}, headers=bob[0])
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Only the creator or a trip organizer can manage this choice"

    resp = await client.patch(f"/choices/{dinner['id']}", json={"place": "Cervejaria Ramiro"}, headers=alice[0])
    assert resp.json()["place"] == "Cervejaria Ramiro"


@pytest.mark.asyncio
async def test_archive_and_restore(client, alice, crew, dinner):
    url = f"/trips/{crew['id']}/choices"
    await client.post(f"/choices/{dinner['id']}/archive", headers=alice[0])
    assert (await client.get(url, headers=alice[0])).json() == []
    archived = (await client.get(url, params={"include_archived": True}, headers=alice[0])).json()
    assert archived[0]["archived_at"] is not None

    resp = await client.patch(f"/choices/{dinner['id']}", json={"name": "Renamed"}, headers=alice[0])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Cannot update archived choice"

    resp = await client.post(f"/choices/{dinner['id']}/restore", headers=alice[0])
    assert resp.json()["archived_at"] is None


@pytest.mark.asyncio
async def test_list_summary_counts(client, bob, orders, crew):
    summaries = (await client.get(f"/trips/{crew['id']}/choices", headers=bob[0])).json()
    summary = next(s for s in summaries if s["id"] == orders["id"])
    assert summary["item_count"] == 3
    assert summary["respondent_count"] == 2
    assert summary["has_my_selection"] is True


@pytest.mark.asyncio
async def test_respondents(client, alice, bob, carol, orders):
    body = (await client.get(f"/choices/{orders['id']}/respondents", headers=alice[0])).json()
    assert [r["name"] for r in body["responded"]] == ["Bob", "Carol"]
    assert [r["name"] for r in body["pending"]] == ["Alice"]


@pytest.mark.asyncio
async def test_reports(client, alice, orders):
    body = (await client.get(f"/choices/{orders['id']}/report/items", headers=alice[0])).json()
    rows = {r["name"]: r for r in body["items"]}
    assert rows["Prawns"]["qty_total"] == 3
    assert rows["Prawns"]["distinct_users"] == 2
    assert Decimal(rows["Prawns"]["total_price"]) == Decimal("37.50")
    assert Decimal(rows["Water"]["total_price"]) == Decimal("4.00")
    assert Decimal(body["grand_total"]) == Decimal("61.50")

    body = (await client.get(f"/choices/{orders['id']}/report/users", headers=alice[0])).json()
    assert [(u["name"], Decimal(u["user_total_price"])) for u in body["users"]] == [
        ("Bob", Decimal("45.00")),
        ("Carol", Decimal("16.50")),
    ]
    assert Decimal(body["grand_total"]) == Decimal("61.50")


@pytest.mark.asyncio
async def test_delete_selection_and_note(client, bob, orders):
    resp = await client.patch(f"/choices/{orders['id']}/selection/note", json={"note": "no garlic"},
                              headers=bob[0])
    assert resp.json()["note"] == "no garlic"
    assert len(resp.json()["lines"]) == 2

    resp = await client.delete(f"/choices/{orders['id']}/selection", headers=bob[0])
    assert resp.status_code == 200
    resp = await client.delete(f"/choices/{orders['id']}/selection", headers=bob[0])
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_activity_log(client, alice, orders):
    body = (await client.get(f"/choices/{orders['id']}/activity", headers=alice[0])).json()
    actions = [a["action"] for a in body]
    assert actions[-1] == "created"
    assert actions.count("selection_created") == 2


@pytest.mark.asyncio
async def test_create_spend_by_item(client, alice, bob, carol, crew, orders):
    resp = await client.post(f"/choices/{orders['id']}/create-spend", json={"mode": "by_item"},
                             headers=alice[0])
    assert resp.status_code == 201
    spend = resp.json()
    assert spend["description"] == "Dinner at Ramiro - Menu Order"
    assert Decimal(spend["amount"]) == Decimal("61.50")
    assert spend["paid_by"] == alice[1]
    assert spend["assigned_percentage"] == 100.0
    assert len(spend["items"]) == 4
    shares = {a["user_id"]: Decimal(a["share_amount"]) for a in spend["assignments"]}
    assert shares == {bob[1]: Decimal("45.00"), carol[1]: Decimal("16.50")}

    balances = (await client.get(f"/trips/{crew['id']}/balances", headers=alice[0])).json()
    nets = {b["user_name"]: Decimal(b["net"]) for b in balances["balances"]}
    assert nets["Alice"] == Decimal("61.50")


@pytest.mark.asyncio
async def test_create_spend_by_user(client, alice, orders):
    resp = await client.post(f"/choices/{orders['id']}/create-spend",
                             json={"mode": "by_user", "description": "Ramiro"}, headers=alice[0])
    spend = resp.json()
    assert spend["description"] == "Ramiro"
    assert sorted(i["name"] for i in spend["items"]) == ["Bob's order", "Carol's order"]


@pytest.mark.asyncio
async def test_create_spend_needs_orders(client, alice, dinner):
    resp = await client.post(f"/choices/{dinner['id']}/create-spend", json={}, headers=alice[0])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Cannot create spend with zero total"


@pytest.mark.asyncio
async def test_parse_menu(client, alice, dinner, monkeypatch):
    reply = json.dumps([
        {"name": "Bacalhau", "price": "14,50", "course": "Mains", "tags": ["fish"]},
        {"name": "", "price": 3},
        {"name": "Pastel de nata", "price": None},
    ])
    monkeypatch.setattr(choice_service, "get_ai_completion", lambda prompt, system_prompt: f"```json\n{reply}\n```")

    resp = await client.post(f"/choices/{dinner['id']}/parse-menu",
                             json={"text": "Bacalhau 14,50\nPastel de nata", "replace_existing": True},
                             headers=alice[0])
    assert resp.status_code == 200
    items = resp.json()
    assert [i["name"] for i in items] == ["Bacalhau", "Pastel de nata"]
    assert Decimal(items[0]["price"]) == Decimal("14.50")
    assert items[1]["price"] is None


@pytest.mark.asyncio
async def test_parse_menu_garbage(client, alice, dinner, monkeypatch):
    monkeypatch.setattr(choice_service, "get_ai_completion", lambda prompt, system_prompt: "sorry, no menu")
    resp = await client.post(f"/choices/{dinner['id']}/parse-menu", json={"text": "???"}, headers=alice[0])
    assert resp.status_code == 502


@pytest.mark.asyncio
async def test_export_items_csv(client, alice, bob, orders):
    resp = await client.get(f"/choices/{orders['id']}/export", headers=alice[0])
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert resp.headers["content-disposition"] == 'attachment; filename="Dinner_at_Ramiro_items.csv"'

    rows = list(csv.reader(io.StringIO(resp.text)))
    assert rows[0] == ["Item Name", "Unit Price", "Total Quantity", "Total Price", "Distinct Users"]
    assert rows[1] == ["Prawns", "12.50", "3", "37.50", "2"]
    assert rows[-1] == ["GRAND TOTAL", "", "", "61.50", ""]

    resp = await client.get(f"/choices/{orders['id']}/export", headers=bob[0])
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_export_users_csv(client, alice, orders):
    resp = await client.get(f"/choices/{orders['id']}/export", params={"type": "users"}, headers=alice[0])
    assert resp.headers["content-disposition"] == 'attachment; filename="Dinner_at_Ramiro_users.csv"'

    rows = list(csv.reader(io.StringIO(resp.text)))
    assert rows[0] == ["User", "Item", "Quantity", "Price", "Note"]
    totals = {r[1]: r[3] for r in rows if r[1].endswith("Total") or r[1] == "GRAND TOTAL"}
    assert totals == {"Bob Total": "45.00", "Carol Total": "16.50", "GRAND TOTAL": "61.50"}
    assert [r[0] for r in rows if r[0]] == ["User", "Bob", "Carol"]

    resp = await client.get(f"/choices/{orders['id']}/export", params={"type": "pdf"}, headers=alice[0])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid report type. Must be 'items' or 'users'"


@pytest.mark.asyncio
async def test_linked_spend(client, alice, bob, crew, orders):
    url = f"/choices/{orders['id']}/linked-spend"
    assert (await client.get(url, headers=bob[0])).json() == {"has_spend": False, "spend_id": None}

    spend = (await client.post(f"/choices/{orders['id']}/create-spend", json={"mode": "by_user"},
                               headers=alice[0])).json()
    assert (await client.get(url, headers=bob[0])).json() == {"has_spend": True, "spend_id": spend["id"]}

    await client.delete(f"/trips/{crew['id']}/spends/{spend['id']}", headers=alice[0])
    assert (await client.get(url, headers=bob[0])).json() == {"has_spend": False, "spend_id": None}
