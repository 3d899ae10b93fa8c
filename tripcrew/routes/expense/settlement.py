from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripcrew.core.database import get_db
from tripcrew.core.redis_lifecycle import get_cache
from tripcrew.dependencies.trip_access import trip_member
from tripcrew.models.trips.trip_member import TripMember, TripRole
from tripcrew.schemas.expense.settlement import (
    TripBalancesResponse, UserBalanceResponse, SettlementResponse, PaymentCreate, PaymentUpdate,
)
from tripcrew.services.expense.settlement_service import SettlementService

router = APIRouter(prefix="/trips/{trip_id}", tags=["Settlements"])


async def get_settlement_service(cache=Depends(get_cache)) -> SettlementService:
    return SettlementService(cache)


@router.get("/balances", response_model=TripBalancesResponse)
async def trip_balances(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
    settlement_service: SettlementService = Depends(get_settlement_service),
):
    return await settlement_service.calculate_trip_balances(db, trip_id)


@router.get("/balances/me", response_model=UserBalanceResponse)
async def my_balance(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
    settlement_service: SettlementService = Depends(get_settlement_service),
):
    return await settlement_service.calculate_user_balance(db, trip_id, member.user_id)


@router.get("/settlements", response_model=list[SettlementResponse])
async def list_settlements(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
    settlement_service: SettlementService = Depends(get_settlement_service),
):
    return await settlement_service.list_settlements(db, trip_id)


@router.post("/settlements", response_model=list[SettlementResponse])
async def persist_settlements(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.ADMIN)),
    settlement_service: SettlementService = Depends(get_settlement_service),
):
    return await settlement_service.persist_settlement_plan(db, trip_id, member.user_id)


@router.post("/settlements/{settlement_id}/payments", response_model=SettlementResponse, status_code=201)
async def record_payment(
    trip_id: int,
    settlement_id: int,
    data: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    settlement_service: SettlementService = Depends(get_settlement_service),
):
    return await settlement_service.record_payment(db, trip_id, settlement_id, data, member)


@router.patch("/settlements/{settlement_id}/payments/{payment_id}", response_model=SettlementResponse)
async def update_payment(
    trip_id: int,
    settlement_id: int,
    payment_id: int,
    data: PaymentUpdate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    settlement_service: SettlementService = Depends(get_settlement_service),
):
    return await settlement_service.update_payment(db, trip_id, settlement_id, payment_id, data, member)


@router.delete("/settlements/{settlement_id}/payments/{payment_id}", response_model=SettlementResponse)
async def delete_payment(
    trip_id: int,
    settlement_id: int,
    payment_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    settlement_service: SettlementService = Depends(get_settlement_service),
):
    return await settlement_service.delete_payment(db, trip_id, settlement_id, payment_id, member)
