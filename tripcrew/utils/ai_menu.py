import json
import re
from decimal import Decimal, InvalidOperation
from typing import List

from pydantic import ValidationError

from tripcrew.core.logger import logger
from tripcrew.schemas.choices.choice import ChoiceItemCreate

MENU_SYSTEM_PROMPT = (
    "You turn restaurant menus into structured data. "
    "Reply with JSON only, no commentary."
)


def build_menu_prompt(menu_text: str) -> str:
    return (
        "Extract every orderable dish or drink from the menu below.\n"
        "Output a single **JSON array**; each element must include:\n"
        "- 'name': string\n"
        "- 'description': string or null\n"
        "- 'price': number without currency symbol, or null if not shown\n"
        "- 'course': section heading such as 'Starters' or 'Mains', or null\n"
        "- 'tags': list of short labels such as 'vegetarian' or 'spicy'\n"
        "- 'allergens': list of allergens mentioned\n\n"
        "Sample element:\n"
        "{\n"
        '  "name": "Margherita",\n'
        '  "description": "Tomato, mozzarella, basil",\n'
        '  "price": 11.5,\n'
        '  "course": "Pizza",\n'
        '  "tags": ["vegetarian"],\n'
        '  "allergens": ["gluten", "dairy"]\n'
        "}\n\n"
        f"Menu:\n{menu_text}\n"
    )


def extract_json_string(raw_text: str) -> str:
    # Remove markdown-style code block
    text = raw_text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?", "", text)
        text = re.sub(r"```$", "", text.strip())
    return text.strip()


def _parse_price(value):
    if value in (None, ""):
        return None
    try:
        price = Decimal(str(value).replace(",", ".").strip("$€£ "))
    except InvalidOperation:
        return None
    return price.quantize(Decimal("0.01")) if price >= 0 else None


def parse_menu_response(response: str) -> List[ChoiceItemCreate]:
    """Turn the model's JSON into item payloads, skipping entries that do not validate."""
    try:
        parsed = json.loads(extract_json_string(response))
    except json.JSONDecodeError:
        raise ValueError("LLM returned an invalid JSON.")

    if isinstance(parsed, dict):
        parsed = parsed.get("items", [])
    if not isinstance(parsed, list):
        raise ValueError("LLM returned JSON that is not a list of items.")

    items = []
    for index, entry in enumerate(parsed):
        if not isinstance(entry, dict) or not str(entry.get("name") or "").strip():
            continue
        try:
            items.append(ChoiceItemCreate(
                name=str(entry["name"]).strip()[:200],
                description=(entry.get("description") or None),
                price=_parse_price(entry.get("price")),
                course=(entry.get("course") or None),
                tags=[str(t) for t in entry.get("tags") or []],
                allergens=[str(a) for a in entry.get("allergens") or []],
            ))
        except ValidationError as e:
            logger.warning(f"Skipping menu entry {index}: {e.errors()[0]['msg']}")

    return items
