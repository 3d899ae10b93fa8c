from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from tripcrew.models.lists.list_models import ListType, TemplateVisibility, TodoActionType, MergeMode


# Item input schemas; which fields apply depends on the list type
class ListItemIn(BaseModel):
    label: str = Field(..., min_length=1, max_length=300)
    notes: Optional[str] = None
    per_person: bool = False
    order_index: Optional[int] = None
    # TODO items
    action_type: Optional[TodoActionType] = None
    action_data: Optional[Dict[str, Any]] = None
    # KIT items
    quantity: int = Field(1, ge=1)
    required: bool = True
    weight_grams: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None

    @model_validator(mode="after")
    def check_action(self):
        if self.action_type == TodoActionType.OPEN_URL and not (self.action_data or {}).get("url"):
            raise ValueError("OPEN_URL actions need action_data.url")
        return self


class TodoItemResponse(BaseModel):
    id: int
    label: str
    notes: Optional[str] = None
    per_person: bool
    order_index: int
    action_type: Optional[TodoActionType] = None
    action_data: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


class KitItemResponse(BaseModel):
    id: int
    label: str
    notes: Optional[str] = None
    per_person: bool
    order_index: int
    quantity: int
    required: bool
    weight_grams: Optional[int] = None
    category: Optional[str] = None

    class Config:
        from_attributes = True


# Template schemas
class TemplateCreate(BaseModel):
    type: ListType
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    tags: List[str] = []
    items: List[ListItemIn] = []


class TemplateUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    items: Optional[List[ListItemIn]] = None


class TemplateResponse(BaseModel):
    id: int
    owner_id: int
    owner_name: Optional[str] = None
    type: ListType
    title: str
    description: Optional[str] = None
    visibility: TemplateVisibility
    tags: Optional[List[str]] = None
    published_at: Optional[datetime] = None
    forked_from_id: Optional[int] = None
    created_at: Optional[datetime] = None
    todo_items: List[TodoItemResponse] = []
    kit_items: List[KitItemResponse] = []

    class Config:
        from_attributes = True


# Instance schemas
class TodoItemInstanceResponse(TodoItemResponse):
    is_done: bool
    done_by: Optional[int] = None
    done_at: Optional[datetime] = None
    ticked_by_me: bool = False
    tick_count: int = 0


class KitItemInstanceResponse(KitItemResponse):
    is_packed: bool
    ticked_by_me: bool = False
    tick_count: int = 0


class InstanceCreate(BaseModel):
    type: ListType
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    items: List[ListItemIn] = []


class InstanceResponse(BaseModel):
    id: int
    trip_id: int
    type: ListType
    title: str
    description: Optional[str] = None
    source_template_id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    todo_items: List[TodoItemInstanceResponse] = []
    kit_items: List[KitItemInstanceResponse] = []


class CopyToTripRequest(BaseModel):
    trip_id: int
    mode: MergeMode = MergeMode.NEW_INSTANCE


class CopyToTripResponse(BaseModel):
    instance: InstanceResponse
    mode: MergeMode
    added: int
    skipped: int


class ConflictCheckResponse(BaseModel):
    exists: bool
    instance_id: Optional[int] = None


class ToggleResponse(BaseModel):
    item_id: int
    type: ListType
    per_person: bool
    done: bool
    tick_count: int = 0


class LaunchActionResponse(BaseModel):
    item_id: int
    action_type: TodoActionType
    href: str


class TickEntry(BaseModel):
    user_id: int
    name: str
    ticked_at: Optional[datetime] = None


class ItemTicksRow(BaseModel):
    item_id: int
    label: str
    ticks: List[TickEntry]


class TicksReportResponse(BaseModel):
    instance_id: int
    items: List[ItemTicksRow]
