from decimal import Decimal

import pytest

from tripcrew.utils.ai_menu import extract_json_string, parse_menu_response


def test_extract_json_strips_code_fence():
    assert extract_json_string('```json\n[{"name": "Soup"}]\n```') == '[{"name": "Soup"}]'


def test_parse_menu_response_builds_items():
    response = """```json
    [
      {"name": "Bruschetta", "price": "7,50", "course": "Starters", "tags": ["vegetarian"]},
      {"name": "", "price": 3},
      {"name": "Steak", "price": 24, "allergens": ["mustard"]},
      {"name": "Water", "price": "free"}
    ]
    ```"""
    items = parse_menu_response(response)
    assert [i.name for i in items] == ["Bruschetta", "Steak", "Water"]
    assert items[0].price == Decimal("7.50")
    assert items[0].course == "Starters"
    assert items[1].allergens == ["mustard"]
    assert items[2].price is None


def test_parse_menu_response_accepts_items_object():
    items = parse_menu_response('{"items": [{"name": "Tea", "price": 2}]}')
    assert len(items) == 1 and items[0].name == "Tea"


def test_parse_menu_response_rejects_garbage():
    with pytest.raises(ValueError):
        parse_menu_response("Sorry, I cannot read that menu")
