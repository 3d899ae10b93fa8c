from datetime import datetime
from decimal import Decimal
from typing import List, Dict

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import delete
from fastapi import HTTPException, status

from tripcrew.core.config import settings
from tripcrew.core.logger import logger
from tripcrew.core.cache import RedisCache
from tripcrew.models.user.user import User
from tripcrew.models.expense.spend_models import Spend
from tripcrew.models.expense.settlement_models import Settlement, SettlementPayment, SettlementStatus
from tripcrew.models.trips.trip_member import TripMember
from tripcrew.schemas.expense.settlement import (
    TripBalancesResponse, BalanceEntry, SettlementTransfer, UserBalanceResponse, PaymentCreate, PaymentUpdate,
)
from tripcrew.dependencies.trip_access import get_active_trip
from tripcrew.services.events.event_service import log_event
from tripcrew.utils.assignment_math import quantize_money
from tripcrew.utils.settlement_math import accumulate_balances, build_settlement_plan

PAID_TOLERANCE = Decimal("0.01")


def settlement_status_for(amount, total_paid) -> SettlementStatus:
    if total_paid <= 0:
        return SettlementStatus.PENDING
    if total_paid >= Decimal(amount) - PAID_TOLERANCE:
        return SettlementStatus.PAID
    return SettlementStatus.PARTIALLY_PAID


class SettlementService:
    def __init__(self, cache: RedisCache):
        self.cache = cache

    def _balances_key(self, trip_id: int) -> str:
        return self.cache.build_key("balances", trip_id)

    async def _user_names(self, db: AsyncSession, user_ids) -> Dict[int, str]:
        if not user_ids:
            return {}
        result = await db.execute(select(User).where(User.id.in_(list(user_ids))))
        return {u.id: u.name for u in result.scalars().all()}

    async def calculate_trip_balances(self, db: AsyncSession, trip_id: int) -> TripBalancesResponse:
        cached = await self.cache.get(self._balances_key(trip_id))
        if cached:
            logger.info(f"Balances for trip {trip_id} retrieved from cache")
            return TripBalancesResponse(**cached)

        trip = await get_active_trip(db, trip_id)
        result = await db.execute(
            select(Spend).where(Spend.trip_id == trip_id, Spend.deleted_at.is_(None))
        )
        spends = result.scalars().all()

        balances = accumulate_balances(
            (
                s.paid_by,
                s.normalized_amount,
                s.date,
                [(a.user_id, a.normalized_share_amount) for a in s.assignments],
            )
            for s in spends
        )
        plan = build_settlement_plan(balances)

        member_ids = (await db.execute(
            select(TripMember.user_id).where(TripMember.trip_id == trip_id, TripMember.deleted_at.is_(None))
        )).scalars().all()
        names = await self._user_names(db, set(balances) | set(member_ids))

        entries = []
        for uid in sorted(set(balances) | set(member_ids), key=lambda u: names.get(u, "").lower()):
            b = balances.get(uid)
            paid = b.total_paid if b else Decimal("0.00")
            owed = b.total_owed if b else Decimal("0.00")
            entries.append(BalanceEntry(
                user_id=uid,
                user_name=names.get(uid),
                total_paid=paid,
                total_owed=owed,
                net=quantize_money(paid - owed),
            ))

        response = TripBalancesResponse(
            trip_id=trip_id,
            base_currency=trip.base_currency,
            total_spent=quantize_money(sum((Decimal(s.normalized_amount) for s in spends), Decimal("0"))),
            balances=entries,
            settlements=[
                SettlementTransfer(
                    from_user_id=t.from_user_id,
                    from_user_name=names.get(t.from_user_id),
                    to_user_id=t.to_user_id,
                    to_user_name=names.get(t.to_user_id),
                    amount=t.amount,
                    oldest_debt_date=t.oldest_debt_date,
                )
                for t in plan
            ],
            calculated_at=datetime.utcnow(),
        )

        await self.cache.set(self._balances_key(trip_id), response.model_dump(mode="json"),
                             expire=settings.CACHE_TTL_SECONDS)
        logger.info(f"Balances for trip {trip_id} calculated: {len(plan)} transfers")
        return response

    async def calculate_user_balance(self, db: AsyncSession, trip_id: int, user_id: int) -> UserBalanceResponse:
        summary = await self.calculate_trip_balances(db, trip_id)
        net = next((b.net for b in summary.balances if b.user_id == user_id), Decimal("0.00"))
        return UserBalanceResponse(
            user_id=user_id,
            user_owes=-net if net < 0 else Decimal("0.00"),
            user_is_owed=net if net > 0 else Decimal("0.00"),
            net=net,
        )

    async def _fetch_settlements(self, db: AsyncSession, trip_id: int) -> List[Settlement]:
        result = await db.execute(
            select(Settlement)
            .where(Settlement.trip_id == trip_id)
            .order_by(Settlement.created_at, Settlement.id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def _fetch_settlement(self, db: AsyncSession, trip_id: int, settlement_id: int) -> Settlement:
        result = await db.execute(
            select(Settlement)
            .where(Settlement.id == settlement_id, Settlement.trip_id == trip_id)
            .execution_options(populate_existing=True)
        )
        settlement = result.scalar_one_or_none()
        if not settlement:
            logger.warning(f"Settlement {settlement_id} not found in trip {trip_id}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Settlement not found")
        return settlement

    async def list_settlements(self, db: AsyncSession, trip_id: int) -> List[Settlement]:
        return await self._fetch_settlements(db, trip_id)

    async def persist_settlement_plan(self, db: AsyncSession, trip_id: int, user_id: int) -> List[Settlement]:
        """Replace the trip's PENDING settlements with the current plan. Rows with payments are kept."""
        await self.cache.delete(self._balances_key(trip_id))
        summary = await self.calculate_trip_balances(db, trip_id)

        await db.execute(
            delete(Settlement).where(
                Settlement.trip_id == trip_id,
                Settlement.status == SettlementStatus.PENDING,
            )
        )
        for t in summary.settlements:
            db.add(Settlement(
                trip_id=trip_id,
                from_user_id=t.from_user_id,
                to_user_id=t.to_user_id,
                amount=t.amount,
                oldest_debt_date=t.oldest_debt_date,
                status=SettlementStatus.PENDING,
            ))
        log_event(db, "trip", trip_id, "SETTLEMENT_PLAN_PERSISTED", by_user_id=user_id, trip_id=trip_id,
                  payload={"transfers": len(summary.settlements)})
        await db.commit()

        logger.info(f"Persisted {len(summary.settlements)} settlements for trip {trip_id}")
        return await self._fetch_settlements(db, trip_id)

    def _ensure_party_or_organizer(self, settlement: Settlement, member: TripMember) -> None:
        if member.user_id not in (settlement.from_user_id, settlement.to_user_id) and not member.is_organizer:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the people in this settlement or an organizer can record payments"
            )

    def _get_payment(self, settlement: Settlement, payment_id: int) -> SettlementPayment:
        for payment in settlement.payments:
            if payment.id == payment_id:
                return payment
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    def _ensure_recorder_or_organizer(self, payment: SettlementPayment, member: TripMember) -> None:
        if payment.recorded_by != member.user_id and not member.is_organizer:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the person who recorded this payment or an organizer can change it"
            )

    async def _refresh_status(self, db: AsyncSession, trip_id: int, settlement_id: int) -> Settlement:
        await db.flush()
        settlement = await self._fetch_settlement(db, trip_id, settlement_id)
        settlement.status = settlement_status_for(settlement.amount, settlement.total_paid)
        await db.commit()
        return await self._fetch_settlement(db, trip_id, settlement_id)

    async def record_payment(self, db: AsyncSession, trip_id: int, settlement_id: int, data: PaymentCreate,
                             member: TripMember) -> Settlement:
        settlement = await self._fetch_settlement(db, trip_id, settlement_id)
        self._ensure_party_or_organizer(settlement, member)

        payment = SettlementPayment(
            settlement_id=settlement.id,
            amount=quantize_money(data.amount),
            paid_at=data.paid_at or datetime.utcnow(),
            payment_method=data.payment_method,
            payment_reference=data.payment_reference,
            notes=data.notes,
            recorded_by=member.user_id,
        )
        db.add(payment)
        await db.flush()
        log_event(db, "settlement_payment", payment.id, "PAYMENT_RECORDED", by_user_id=member.user_id,
                  trip_id=trip_id, payload={"settlement_id": settlement.id, "amount": str(payment.amount)})

        settlement = await self._refresh_status(db, trip_id, settlement_id)
        logger.info(f"Payment {payment.id} recorded on settlement {settlement_id}: now {settlement.status.value}")
        return settlement

    async def update_payment(self, db: AsyncSession, trip_id: int, settlement_id: int, payment_id: int,
                             data: PaymentUpdate, member: TripMember) -> Settlement:
        settlement = await self._fetch_settlement(db, trip_id, settlement_id)
        payment = self._get_payment(settlement, payment_id)
        self._ensure_recorder_or_organizer(payment, member)

        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if value is None and field in ("amount", "paid_at"):
                continue
            setattr(payment, field, quantize_money(value) if field == "amount" else value)

        log_event(db, "settlement_payment", payment.id, "PAYMENT_UPDATED", by_user_id=member.user_id,
                  trip_id=trip_id, payload={k: str(v) for k, v in update_data.items()})
        return await self._refresh_status(db, trip_id, settlement_id)

    async def delete_payment(self, db: AsyncSession, trip_id: int, settlement_id: int, payment_id: int,
                             member: TripMember) -> Settlement:
        settlement = await self._fetch_settlement(db, trip_id, settlement_id)
        payment = self._get_payment(settlement, payment_id)
        self._ensure_recorder_or_organizer(payment, member)

        await db.delete(payment)
        log_event(db, "settlement_payment", payment_id, "PAYMENT_DELETED", by_user_id=member.user_id,
                  trip_id=trip_id, payload={"settlement_id": settlement_id})
        return await self._refresh_status(db, trip_id, settlement_id)
