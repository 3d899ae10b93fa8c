"""
Per-type behaviour for TODO and KIT lists.

Templates and trip instances share one shape per list type; the handler knows
which tables hold the items, how to copy a template item into a trip and how
a tick on an instance item is stored.
"""
from datetime import datetime
from typing import Dict, Type

from tripcrew.models.lists.list_models import (
    ListType, TodoItemTemplate, KitItemTemplate, TodoItemInstance, KitItemInstance,
)
from tripcrew.schemas.lists.list_schema import ListItemIn


class ListHandler:
    list_type: ListType
    template_item_model: Type
    instance_item_model: Type
    # columns copied from a template item to a trip instance item
    copy_fields: tuple = ("label", "notes", "per_person", "order_index")

    def build_template_item(self, template_id: int, data: ListItemIn, order_index: int):
        fields = self._fields_from_input(data, order_index)
        return self.template_item_model(template_id=template_id, **fields)

    def build_instance_item(self, instance_id: int, data: ListItemIn, order_index: int):
        fields = self._fields_from_input(data, order_index)
        return self.instance_item_model(instance_id=instance_id, **fields)

    def copy_to_instance(self, instance_id: int, template_item, order_index: int):
        fields = {f: getattr(template_item, f) for f in self.copy_fields}
        fields["order_index"] = order_index
        return self.instance_item_model(instance_id=instance_id, **fields)

    def copy_to_template(self, template_id: int, template_item):
        fields = {f: getattr(template_item, f) for f in self.copy_fields}
        return self.template_item_model(template_id=template_id, **fields)

    def _fields_from_input(self, data: ListItemIn, order_index: int) -> dict:
        fields = {f: getattr(data, f) for f in self.copy_fields if f != "order_index"}
        fields["order_index"] = data.order_index if data.order_index is not None else order_index
        return fields

    def is_done(self, item) -> bool:
        raise NotImplementedError

    def set_done(self, item, done: bool, user_id: int) -> None:
        raise NotImplementedError


class TodoHandler(ListHandler):
    list_type = ListType.TODO
    template_item_model = TodoItemTemplate
    instance_item_model = TodoItemInstance
    copy_fields = ("label", "notes", "per_person", "order_index", "action_type", "action_data")

    def is_done(self, item) -> bool:
        return item.is_done

    def set_done(self, item, done: bool, user_id: int) -> None:
        item.is_done = done
        item.done_by = user_id if done else None
        item.done_at = datetime.utcnow() if done else None


class KitHandler(ListHandler):
    list_type = ListType.KIT
    template_item_model = KitItemTemplate
    instance_item_model = KitItemInstance
    copy_fields = (
        "label", "notes", "per_person", "order_index",
        "quantity", "required", "weight_grams", "category",
    )

    def is_done(self, item) -> bool:
        return item.is_packed

    def set_done(self, item, done: bool, user_id: int) -> None:
        item.is_packed = done


HANDLERS: Dict[ListType, ListHandler] = {
    ListType.TODO: TodoHandler(),
    ListType.KIT: KitHandler(),
}


def get_handler(list_type: ListType) -> ListHandler:
    return HANDLERS[ListType(list_type)]
