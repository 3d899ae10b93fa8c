from pydantic import BaseModel, Field
from typing import Optional, List, Literal, Any, Dict
import datetime as dt
from decimal import Decimal

from tripcrew.models.choices.choice_models import ChoiceStatus, ChoiceVisibility


# Item schemas
class ChoiceItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    course: Optional[str] = None
    tags: Optional[List[str]] = None
    allergens: Optional[List[str]] = None
    max_per_user: Optional[int] = Field(None, ge=1)
    max_total: Optional[int] = Field(None, ge=1)
    sort_index: Optional[int] = None


class ChoiceItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    course: Optional[str] = None
    tags: Optional[List[str]] = None
    allergens: Optional[List[str]] = None
    max_per_user: Optional[int] = Field(None, ge=1)
    max_total: Optional[int] = Field(None, ge=1)
    sort_index: Optional[int] = None
    is_active: Optional[bool] = None


class ChoiceItemBulkCreate(BaseModel):
    items: List[ChoiceItemCreate] = Field(..., min_length=1)


class ChoiceItemResponse(BaseModel):
    id: int
    choice_id: int
    name: str
    description: Optional[str] = None
    price: Optional[Decimal] = None
    course: Optional[str] = None
    tags: Optional[List[str]] = None
    allergens: Optional[List[str]] = None
    max_per_user: Optional[int] = None
    max_total: Optional[int] = None
    sort_index: int
    is_active: bool

    class Config:
        from_attributes = True


class MenuParseRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=20000)
    replace_existing: bool = False


# Choice schemas
class ChoiceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    datetime: Optional[dt.datetime] = None
    place: Optional[str] = None
    visibility: ChoiceVisibility = ChoiceVisibility.TRIP
    deadline: Optional[dt.datetime] = None
    items: List[ChoiceItemCreate] = []


class ChoiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    datetime: Optional[dt.datetime] = None
    place: Optional[str] = None
    visibility: Optional[ChoiceVisibility] = None
    deadline: Optional[dt.datetime] = None


class ChoiceStatusUpdate(BaseModel):
    status: ChoiceStatus
    deadline: Optional[dt.datetime] = None


class ChoiceResponse(BaseModel):
    id: int
    trip_id: int
    name: str
    description: Optional[str] = None
    datetime: Optional[dt.datetime] = None
    place: Optional[str] = None
    visibility: ChoiceVisibility
    status: ChoiceStatus
    deadline: Optional[dt.datetime] = None
    archived_at: Optional[dt.datetime] = None
    created_by: int
    created_at: Optional[dt.datetime] = None

    class Config:
        from_attributes = True


class ChoiceSummary(ChoiceResponse):
    item_count: int = 0
    respondent_count: int = 0
    has_my_selection: bool = False


# Selection schemas
class SelectionLineIn(BaseModel):
    item_id: int
    quantity: int = Field(1, ge=1)
    note: Optional[str] = None


class SelectionRequest(BaseModel):
    lines: List[SelectionLineIn]
    note: Optional[str] = None


class SelectionNoteUpdate(BaseModel):
    note: Optional[str] = None


class SelectionLineResponse(BaseModel):
    id: int
    item_id: int
    item_name: str
    quantity: int
    note: Optional[str] = None
    line_total: Decimal


class SelectionResponse(BaseModel):
    choice_id: int
    user_id: int
    note: Optional[str] = None
    lines: List[SelectionLineResponse]
    total: Decimal


class ChoiceDetailResponse(BaseModel):
    choice: ChoiceResponse
    items: List[ChoiceItemResponse]
    my_selection: Optional[SelectionResponse] = None
    my_total: Decimal


class RespondentEntry(BaseModel):
    user_id: int
    name: str


class RespondentsResponse(BaseModel):
    responded: List[RespondentEntry]
    pending: List[RespondentEntry]


# Report schemas
class ItemReportRow(BaseModel):
    item_id: int
    name: str
    price: Optional[Decimal] = None
    qty_total: int
    total_price: Decimal
    distinct_users: int


class ItemReport(BaseModel):
    items: List[ItemReportRow]
    grand_total: Decimal


class UserReportLine(BaseModel):
    item_id: int
    name: str
    quantity: int
    line_total: Decimal
    note: Optional[str] = None


class UserReportRow(BaseModel):
    user_id: int
    name: str
    note: Optional[str] = None
    lines: List[UserReportLine]
    user_total_price: Decimal


class UserReport(BaseModel):
    users: List[UserReportRow]
    grand_total: Decimal


class LinkedSpendResponse(BaseModel):
    has_spend: bool
    spend_id: Optional[int] = None


class ChoiceActivityResponse(BaseModel):
    id: int
    choice_id: int
    actor_id: Optional[int] = None
    action: str
    payload: Optional[Dict[str, Any]] = None
    created_at: dt.datetime

    class Config:
        from_attributes = True


class SpendFromChoiceRequest(BaseModel):
    mode: Literal["by_item", "by_user"] = "by_item"
    description: Optional[str] = None
