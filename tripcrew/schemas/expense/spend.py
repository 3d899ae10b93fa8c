from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from tripcrew.models.expense.spend_models import SpendStatus, SplitType


# Base schemas
class SpendBase(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    notes: Optional[str] = None
    category: Optional[str] = None


class SpendCreate(SpendBase):
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    fx_rate: Optional[Decimal] = Field(None, gt=0)
    paid_by: Optional[int] = None
    date: Optional[datetime] = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class SpendUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    fx_rate: Optional[Decimal] = Field(None, gt=0)
    paid_by: Optional[int] = None
    date: Optional[datetime] = None
    notes: Optional[str] = None
    category: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v


class SpendClose(BaseModel):
    force: bool = False


# Item schemas
class SpendItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    cost: Decimal = Field(..., ge=0, decimal_places=2)
    assigned_user_id: Optional[int] = None


class SpendItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    cost: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    assigned_user_id: Optional[int] = None


class SpendItemResponse(BaseModel):
    id: int
    spend_id: int
    name: str
    description: Optional[str] = None
    cost: Decimal
    assigned_user_id: Optional[int] = None
    created_by: Optional[int] = None

    class Config:
        from_attributes = True


# Assignment schemas
class AssignmentCreate(BaseModel):
    user_id: int
    share_amount: Decimal = Field(..., ge=0, decimal_places=2)
    split_type: SplitType = SplitType.EXACT
    split_value: Optional[Decimal] = None
    item_id: Optional[int] = None


class AssignmentBatchCreate(BaseModel):
    assignments: List[AssignmentCreate] = Field(..., min_length=1)


class AssignmentUpdate(BaseModel):
    share_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    split_type: Optional[SplitType] = None
    split_value: Optional[Decimal] = None
    item_id: Optional[int] = None


class AssignmentReplace(BaseModel):
    assignments: List[AssignmentCreate]


class SplitEquallyRequest(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)


class SelfAssignRequest(BaseModel):
    share_amount: Decimal = Field(..., gt=0, decimal_places=2)


class AssignmentResponse(BaseModel):
    id: int
    spend_id: int
    user_id: int
    user_name: Optional[str] = None
    item_id: Optional[int] = None
    share_amount: Decimal
    normalized_share_amount: Decimal
    split_type: SplitType
    split_value: Optional[Decimal] = None

    class Config:
        from_attributes = True


# Response schemas
class SpendResponse(SpendBase):
    id: int
    trip_id: int
    currency: str
    fx_rate: Decimal
    normalized_amount: Decimal
    paid_by: int
    payer_name: Optional[str] = None
    date: datetime
    status: SpendStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    assigned_percentage: float = 0.0
    items: List[SpendItemResponse] = []
    assignments: List[AssignmentResponse] = []

    class Config:
        from_attributes = True


class SpendSummary(BaseModel):
    amount: Decimal
    items_total: Decimal
    assignments_total: Decimal
    percent_assigned: Decimal
    difference: Decimal
    is_fully_assigned: bool


class SpendItemsResponse(BaseModel):
    items: List[SpendItemResponse]
    summary: SpendSummary


class SpendListResponse(BaseModel):
    spends: List[SpendResponse]
    total: int
