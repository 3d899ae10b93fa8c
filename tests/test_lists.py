import pytest
import pytest_asyncio


PACKING = {
    "type": "KIT",
    "title": "Beach kit",
    "description": "Everything for a day on the sand",
    "tags": ["Beach", "summer"],
    "items": [
        {"label": "Sunscreen", "quantity": 1},
        {"label": "Towel", "per_person": True, "category": "textiles"},
        {"label": "Umbrella", "required": False, "weight_grams": 1200},
    ],
}

PLANNING = {
    "type": "TODO",
    "title": "Before we go",
    "items": [
        {"label": "Pick the dates", "action_type": "SET_DATES"},
        {"label": "Book flights", "action_type": "OPEN_URL", "action_data": {"url": "https://flights.example.com"}},
        {"label": "Check passport", "per_person": True},
    ],
}


@pytest_asyncio.fixture
async def kit_template(client, alice):
    resp = await client.post("/lists/templates", json=PACKING, headers=alice[0])
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest_asyncio.fixture
async def todo_list(client, alice, crew):
    resp = await client.post(f"/trips/{crew['id']}/lists", json=PLANNING, headers=alice[0])
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
async def test_create_template(client, alice, kit_template):
    assert kit_template["visibility"] == "PRIVATE"
    assert kit_template["owner_name"] == "Alice"
    assert [i["label"] for i in kit_template["kit_items"]] == ["Sunscreen", "Towel", "Umbrella"]
    assert kit_template["todo_items"] == []

    mine = (await client.get("/lists/templates/mine", headers=alice[0])).json()
    assert [t["id"] for t in mine] == [kit_template["id"]]


@pytest.mark.asyncio
async def test_open_url_action_needs_url(client, alice):
    resp = await client.post("/lists/templates", json={
        "type": "TODO", "title": "Broken", "items": [{"label": "Go", "action_type": "OPEN_URL"}],
    }, headers=alice[0])
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_private_template_is_hidden(client, bob, kit_template):
    resp = await client.get(f"/lists/templates/{kit_template['id']}", headers=bob[0])
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Template not found"


@pytest.mark.asyncio
async def test_publish_and_browse(client, alice, bob, kit_template):
    template_id = kit_template["id"]
    resp = await client.post(f"/lists/templates/{template_id}/publish", headers=bob[0])
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Only the owner can modify this template"

    resp = await client.post(f"/lists/templates/{template_id}/publish", headers=alice[0])
    assert resp.json()["visibility"] == "PUBLIC"
    assert resp.json()["published_at"] is not None

    assert (await client.get(f"/lists/templates/{template_id}", headers=bob[0])).status_code == 200

    found = (await client.get("/lists/templates/public", params={"q": "beach"}, headers=bob[0])).json()
    assert [t["id"] for t in found] == [template_id]
    found = (await client.get("/lists/templates/public", params={"tag": "BEACH"}, headers=bob[0])).json()
    assert [t["id"] for t in found] == [template_id]
    found = (await client.get("/lists/templates/public", params={"type": "TODO"}, headers=bob[0])).json()
    assert found == []

    resp = await client.post(f"/lists/templates/{template_id}/unpublish", headers=alice[0])
    assert resp.json()["visibility"] == "PRIVATE"
    assert (await client.get("/lists/templates/public", headers=bob[0])).json() == []


@pytest.mark.asyncio
async def test_fork_public_template(client, alice, bob, kit_template):
    await client.post(f"/lists/templates/{kit_template['id']}/publish", headers=alice[0])

    resp = await client.post(f"/lists/templates/{kit_template['id']}/fork", headers=bob[0])
    assert resp.status_code == 201
    fork = resp.json()
    assert fork["title"] == "Beach kit (copy)"
    assert fork["owner_id"] == bob[1]
    assert fork["visibility"] == "PRIVATE"
    assert fork["forked_from_id"] == kit_template["id"]
    assert [i["label"] for i in fork["kit_items"]] == ["Sunscreen", "Towel", "Umbrella"]


@pytest.mark.asyncio
async def test_update_template_replaces_items(client, alice, kit_template):
    resp = await client.patch(f"/lists/templates/{kit_template['id']}", json={
        "title": "Beach day",
        "items": [{"label": "Hat"}],
    }, headers=alice[0])
    assert resp.status_code == 200
    assert resp.json()["title"] == "Beach day"
    assert [i["label"] for i in resp.json()["kit_items"]] == ["Hat"]

    resp = await client.delete(f"/lists/templates/{kit_template['id']}", headers=alice[0])
    assert resp.status_code == 200
    assert (await client.get("/lists/templates/mine", headers=alice[0])).json() == []


@pytest.mark.asyncio
async def test_copy_modes(client, alice, crew, kit_template):
    url = f"/lists/templates/{kit_template['id']}"
    trip_id = crew["id"]

    resp = await client.get(f"{url}/check-conflict", params={"trip_id": trip_id}, headers=alice[0])
    assert resp.json() == {"exists": False, "instance_id": None}

    resp = await client.post(f"{url}/copy-to-trip", json={"trip_id": trip_id}, headers=alice[0])
    assert resp.status_code == 200
    first = resp.json()
    assert first["instance"]["title"] == "Beach kit"
    assert first["added"] == 3
    assert first["instance"]["source_template_id"] == kit_template["id"]

    resp = await client.get(f"{url}/check-conflict", params={"trip_id": trip_id}, headers=alice[0])
    assert resp.json() == {"exists": True, "instance_id": first["instance"]["id"]}

    resp = await client.post(f"{url}/copy-to-trip", json={"trip_id": trip_id, "mode": "NEW_INSTANCE"},
                             headers=alice[0])
    assert resp.json()["instance"]["title"] == "Beach kit (2)"

    resp = await client.post(f"{url}/copy-to-trip", json={"trip_id": trip_id, "mode": "MERGE_ADD"},
                             headers=alice[0])
    body = resp.json()
    assert body["instance"]["id"] == first["instance"]["id"]
    assert (body["added"], body["skipped"]) == (0, 3)

    resp = await client.post(f"{url}/copy-to-trip", json={"trip_id": trip_id, "mode": "MERGE_ADD_ALLOW_DUPES"},
                             headers=alice[0])
    assert len(resp.json()["instance"]["kit_items"]) == 6

    resp = await client.post(f"{url}/copy-to-trip", json={"trip_id": trip_id, "mode": "REPLACE"},
                             headers=alice[0])
    body = resp.json()
    assert body["instance"]["id"] != first["instance"]["id"]
    assert len(body["instance"]["kit_items"]) == 3

    titles = sorted(i["title"] for i in (await client.get(f"/trips/{trip_id}/lists", headers=alice[0])).json())
    assert titles == ["Beach kit", "Beach kit (2)"]


@pytest.mark.asyncio
async def test_copy_needs_membership(client, bob, trip, kit_template, alice):
    await client.post(f"/lists/templates/{kit_template['id']}/publish", headers=alice[0])
    resp = await client.post(f"/lists/templates/{kit_template['id']}/copy-to-trip", json={"trip_id": trip["id"]},
                             headers=bob[0])
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_list_instances_by_type(client, alice, crew, todo_list, kit_template):
    await client.post(f"/lists/templates/{kit_template['id']}/copy-to-trip", json={"trip_id": crew["id"]},
                      headers=alice[0])
    lists = (await client.get(f"/trips/{crew['id']}/lists", params={"type": "TODO"}, headers=alice[0])).json()
    assert [l["title"] for l in lists] == ["Before we go"]
    assert [i["label"] for i in lists[0]["todo_items"]] == ["Pick the dates", "Book flights", "Check passport"]


@pytest.mark.asyncio
async def test_toggle_shared_item(client, alice, bob, todo_list):
    item = todo_list["todo_items"][0]
    url = f"/lists/items/TODO/{item['id']}/toggle"

    resp = await client.post(url, headers=bob[0])
    assert resp.json() == {"item_id": item["id"], "type": "TODO", "per_person": False, "done": True, "tick_count": 0}

    detail = (await client.get(f"/lists/instances/{todo_list['id']}", headers=alice[0])).json()
    row = detail["todo_items"][0]
    assert row["is_done"] is True
    assert row["done_by"] == bob[1]

    resp = await client.post(url, headers=alice[0])
    assert resp.json()["done"] is False


@pytest.mark.asyncio
async def test_toggle_per_person_item(client, alice, bob, carol, todo_list):
    item = todo_list["todo_items"][2]
    url = f"/lists/items/TODO/{item['id']}/toggle"

    assert (await client.post(url, headers=bob[0])).json()["tick_count"] == 1
    resp = await client.post(url, headers=carol[0])
    assert resp.json()["done"] is True
    assert resp.json()["tick_count"] == 2

    detail = (await client.get(f"/lists/instances/{todo_list['id']}", headers=bob[0])).json()
    row = detail["todo_items"][2]
    assert row["ticked_by_me"] is True
    assert row["tick_count"] == 2
    assert row["is_done"] is False

    report = (await client.get(f"/lists/instances/{todo_list['id']}/ticks", headers=alice[0])).json()
    passport = next(r for r in report["items"] if r["label"] == "Check passport")
    assert [t["name"] for t in passport["ticks"]] == ["Bob", "Carol"]

    resp = await client.post(url, headers=bob[0])
    assert resp.json() == {"item_id": item["id"], "type": "TODO", "per_person": True, "done": False, "tick_count": 1}


@pytest.mark.asyncio
async def test_toggle_kit_item(client, alice, crew, kit_template):
    resp = await client.post(f"/lists/templates/{kit_template['id']}/copy-to-trip", json={"trip_id": crew["id"]},
                             headers=alice[0])
    instance = resp.json()["instance"]
    sunscreen = instance["kit_items"][0]
    resp = await client.post(f"/lists/items/KIT/{sunscreen['id']}/toggle", headers=alice[0])
    assert resp.json()["done"] is True

    detail = (await client.get(f"/lists/instances/{instance['id']}", headers=alice[0])).json()
    assert detail["kit_items"][0]["is_packed"] is True
    assert detail["kit_items"][1]["is_packed"] is False


@pytest.mark.asyncio
async def test_launch_actions(client, alice, crew, todo_list):
    dates, flights, passport = todo_list["todo_items"]

    resp = await client.post(f"/lists/items/TODO/{dates['id']}/launch", headers=alice[0])
    assert resp.json() == {"item_id": dates["id"], "action_type": "SET_DATES", "href": f"/trips/{crew['id']}"}

    resp = await client.post(f"/lists/items/TODO/{flights['id']}/launch", headers=alice[0])
    assert resp.json()["href"] == "https://flights.example.com"

    resp = await client.post(f"/lists/items/TODO/{passport['id']}/launch", headers=alice[0])
    assert resp.status_code == 400
    assert resp.json()["detail"] == "This item has no action"


@pytest.mark.asyncio
async def test_delete_instance(client, alice, bob, todo_list):
    resp = await client.delete(f"/lists/instances/{todo_list['id']}", headers=bob[0])
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Only the creator or a trip organizer can delete this list"

    resp = await client.delete(f"/lists/instances/{todo_list['id']}", headers=alice[0])
    assert resp.status_code == 200
    resp = await client.get(f"/lists/instances/{todo_list['id']}", headers=alice[0])
    assert resp.status_code == 404
    assert resp.json()["detail"] == "List not found"


@pytest.mark.asyncio
async def test_toggle_is_logged(client, alice, bob, crew, todo_list):
    item = todo_list["todo_items"][0]
    await client.post(f"/lists/items/TODO/{item['id']}/toggle", headers=bob[0])

    event = (await client.get(f"/trips/{crew['id']}/activity", headers=alice[0])).json()[0]
    assert event["event_type"] == "LIST_ITEM_TOGGLED"
    assert event["entity_id"] == item["id"]
    assert event["by_user_id"] == bob[1]
    assert event["payload"] == {"type": "TODO", "instance_id": todo_list["id"], "done": True, "per_person": False}
