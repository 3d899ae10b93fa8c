from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from tripcrew.models.expense.settlement_models import SettlementStatus


class BalanceEntry(BaseModel):
    user_id: int
    user_name: Optional[str] = None
    total_paid: Decimal
    total_owed: Decimal
    net: Decimal


class SettlementTransfer(BaseModel):
    from_user_id: int
    from_user_name: Optional[str] = None
    to_user_id: int
    to_user_name: Optional[str] = None
    amount: Decimal
    oldest_debt_date: Optional[datetime] = None


class TripBalancesResponse(BaseModel):
    trip_id: int
    base_currency: str
    total_spent: Decimal
    balances: List[BalanceEntry]
    settlements: List[SettlementTransfer]
    calculated_at: datetime


class UserBalanceResponse(BaseModel):
    user_id: int
    user_owes: Decimal
    user_is_owed: Decimal
    net: Decimal


# Payment schemas
class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    payment_reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentUpdate(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    payment_reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    id: int
    settlement_id: int
    amount: Decimal
    paid_at: datetime
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    recorded_by: Optional[int] = None

    class Config:
        from_attributes = True


class SettlementResponse(BaseModel):
    id: int
    trip_id: int
    from_user_id: int
    from_user_name: Optional[str] = None
    to_user_id: int
    to_user_name: Optional[str] = None
    amount: Decimal
    status: SettlementStatus
    oldest_debt_date: Optional[datetime] = None
    total_paid: Decimal
    remaining: Decimal
    payments: List[PaymentResponse] = []
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
