from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from fastapi import HTTPException, status

from tripcrew.core.logger import logger
from tripcrew.core.cache import RedisCache, invalidate_trip_money
from tripcrew.models.expense.spend_models import Spend, SpendItem, SpendAssignment, SpendStatus, SplitType
from tripcrew.models.trips.trip_member import TripMember
from tripcrew.models.trips.trip_model import Trip
from tripcrew.schemas.expense.spend import (
    SpendCreate, SpendUpdate, SpendItemCreate, SpendItemUpdate, SpendItemResponse, SpendItemsResponse, SpendSummary,
)
from tripcrew.dependencies.trip_access import get_active_trip, get_membership, ensure_spending_open
from tripcrew.services.events.event_service import log_event
from tripcrew.services.expense.exchange_rate_service import get_exchange_rate
from tripcrew.utils.assignment_math import (
    normalize_amount, quantize_money, assignments_total, percent_assigned, is_fully_assigned,
    items_total, validate_items_total, spend_summary,
)

SORT_COLUMNS = {
    "date": Spend.date,
    "amount": Spend.amount,
    "created_at": Spend.created_at,
}


async def fetch_spend(db: AsyncSession, spend_id: int, trip_id: Optional[int] = None) -> Spend:
    """Live spend with payer, items and assignments loaded fresh."""
    stmt = select(Spend).where(Spend.id == spend_id, Spend.deleted_at.is_(None))
    if trip_id is not None:
        stmt = stmt.where(Spend.trip_id == trip_id)
    result = await db.execute(stmt.execution_options(populate_existing=True))
    spend = result.scalar_one_or_none()
    if not spend:
        logger.warning(f"Spend {spend_id} not found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Spend not found")
    return spend


def ensure_spend_open(spend: Spend) -> None:
    if spend.status == SpendStatus.CLOSED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Spend is closed. Reopen it to make changes.")


def ensure_payer_or_organizer(spend: Spend, member: TripMember) -> None:
    if spend.paid_by != member.user_id and not member.is_organizer:
        logger.warning(f"User {member.user_id} tried to modify spend {spend.id} they did not pay for")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the payer or a trip organizer can modify this spend"
        )


class SpendService:
    def __init__(self, cache: RedisCache):
        self.cache = cache

    async def _resolve_fx_rate(self, trip: Trip, currency: str, fx_rate: Optional[Decimal]) -> Decimal:
        if fx_rate is not None:
            return fx_rate
        if currency == trip.base_currency:
            return Decimal("1")
        return await get_exchange_rate(currency, trip.base_currency, self.cache)

    async def _ensure_payer_is_member(self, db: AsyncSession, trip_id: int, user_id: int) -> None:
        if not await get_membership(db, trip_id, user_id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Payer must be an active member of this trip"
            )

    async def create_spend(self, db: AsyncSession, trip_id: int, data: SpendCreate, user_id: int) -> Spend:
        trip = await get_active_trip(db, trip_id)
        ensure_spending_open(trip)

        paid_by = data.paid_by or user_id
        await self._ensure_payer_is_member(db, trip_id, paid_by)

        currency = data.currency or trip.base_currency
        fx_rate = await self._resolve_fx_rate(trip, currency, data.fx_rate)

        spend = Spend(
            trip_id=trip_id,
            description=data.description,
            amount=quantize_money(data.amount),
            currency=currency,
            fx_rate=fx_rate,
            normalized_amount=normalize_amount(data.amount, fx_rate),
            paid_by=paid_by,
            date=data.date or datetime.utcnow(),
            notes=data.notes,
            category=data.category,
        )
        db.add(spend)
        await db.flush()
        log_event(db, "spend", spend.id, "SPEND_CREATED", by_user_id=user_id, trip_id=trip_id,
                  payload={"amount": str(spend.amount), "currency": currency, "paid_by": paid_by})
        await db.commit()
        await invalidate_trip_money(self.cache, trip_id)

        logger.info(f"Spend {spend.id} created in trip {trip_id} by user {user_id}")
        return await fetch_spend(db, spend.id)

    async def list_spends(
        self,
        db: AsyncSession,
        trip_id: int,
        status_filter: Optional[SpendStatus] = None,
        paid_by: Optional[int] = None,
        sort_by: str = "date",
        sort_order: str = "desc",
    ) -> List[Spend]:
        column = SORT_COLUMNS.get(sort_by)
        if column is None:
            raise HTTPException(status_code=400, detail=f"Cannot sort by {sort_by}")

        stmt = select(Spend).where(Spend.trip_id == trip_id, Spend.deleted_at.is_(None))
        if status_filter:
            stmt = stmt.where(Spend.status == status_filter)
        if paid_by:
            stmt = stmt.where(Spend.paid_by == paid_by)

        order = column.asc() if sort_order == "asc" else column.desc()
        result = await db.execute(stmt.order_by(order, Spend.id.desc()))
        return result.scalars().all()

    async def update_spend(self, db: AsyncSession, trip_id: int, spend_id: int, data: SpendUpdate,
                           member: TripMember) -> Spend:
        trip = await get_active_trip(db, trip_id)
        ensure_spending_open(trip)
        spend = await fetch_spend(db, spend_id, trip_id)
        ensure_payer_or_organizer(spend, member)
        ensure_spend_open(spend)

        update_data = data.model_dump(exclude_unset=True)
        if update_data.get("paid_by"):
            await self._ensure_payer_is_member(db, trip_id, update_data["paid_by"])

        money_changed = any(k in update_data for k in ("amount", "fx_rate", "currency"))
        if "currency" in update_data and "fx_rate" not in update_data:
            update_data["fx_rate"] = await self._resolve_fx_rate(trip, update_data["currency"], None)

        for field, value in update_data.items():
            if value is None and field in ("amount", "fx_rate", "currency", "paid_by", "date", "description"):
                continue
            setattr(spend, field, value)

        if money_changed:
            spend.amount = quantize_money(spend.amount)
            spend.normalized_amount = normalize_amount(spend.amount, spend.fx_rate)
            for assignment in spend.assignments:
                assignment.normalized_share_amount = normalize_amount(assignment.share_amount, spend.fx_rate)

        log_event(db, "spend", spend.id, "SPEND_UPDATED", by_user_id=member.user_id, trip_id=trip_id,
                  payload={k: str(v) for k, v in update_data.items()})
        await db.commit()
        await invalidate_trip_money(self.cache, trip_id)

        logger.info(f"Spend {spend_id} updated by user {member.user_id}")
        return await fetch_spend(db, spend_id)

    async def close_spend(self, db: AsyncSession, trip_id: int, spend_id: int, member: TripMember,
                          force: bool = False) -> Spend:
        spend = await fetch_spend(db, spend_id, trip_id)
        ensure_payer_or_organizer(spend, member)
        if spend.status == SpendStatus.CLOSED:
            raise HTTPException(status_code=400, detail="Spend is already closed")

        assigned = assignments_total(a.share_amount for a in spend.assignments)
        if not force and not is_fully_assigned(spend.amount, assigned):
            pct = percent_assigned(spend.amount, assigned)
            raise HTTPException(
                status_code=400,
                detail=f"Cannot close: assignments total {pct:.1f}%, must be 100%"
            )

        spend.status = SpendStatus.CLOSED
        log_event(db, "spend", spend.id, "SPEND_CLOSED", by_user_id=member.user_id, trip_id=trip_id,
                  payload={"forced": force, "assigned": str(assigned)})
        await db.commit()
        await invalidate_trip_money(self.cache, trip_id)

        logger.info(f"Spend {spend_id} closed by user {member.user_id}")
        return await fetch_spend(db, spend_id)

    async def reopen_spend(self, db: AsyncSession, trip_id: int, spend_id: int, member: TripMember) -> Spend:
        spend = await fetch_spend(db, spend_id, trip_id)
        ensure_payer_or_organizer(spend, member)
        if spend.status != SpendStatus.CLOSED:
            raise HTTPException(status_code=400, detail="Only closed spends can be reopened")

        spend.status = SpendStatus.OPEN
        log_event(db, "spend", spend.id, "SPEND_REOPENED", by_user_id=member.user_id, trip_id=trip_id)
        await db.commit()
        await invalidate_trip_money(self.cache, trip_id)

        logger.info(f"Spend {spend_id} reopened by user {member.user_id}")
        return await fetch_spend(db, spend_id)

    async def delete_spend(self, db: AsyncSession, trip_id: int, spend_id: int, member: TripMember) -> dict:
        trip = await get_active_trip(db, trip_id)
        ensure_spending_open(trip)
        spend = await fetch_spend(db, spend_id, trip_id)
        ensure_payer_or_organizer(spend, member)

        spend.deleted_at = datetime.utcnow()
        log_event(db, "spend", spend.id, "SPEND_DELETED", by_user_id=member.user_id, trip_id=trip_id)
        await db.commit()
        await invalidate_trip_money(self.cache, trip_id)

        logger.info(f"Spend {spend_id} deleted by user {member.user_id}")
        return {"message": "Spend deleted successfully"}

    # Items

    async def _editable_spend(self, db: AsyncSession, trip_id: int, spend_id: int) -> Spend:
        trip = await get_active_trip(db, trip_id)
        ensure_spending_open(trip)
        spend = await fetch_spend(db, spend_id, trip_id)
        ensure_spend_open(spend)
        return spend

    def _sync_item_assignments(self, db: AsyncSession, spend: Spend, user_ids, actor_id: int) -> None:
        """
        Keep one EXACT assignment per item assignee, worth the sum of their items.
        Someone whose last item went away stays on the spend with a zero share.
        """
        for uid in {u for u in user_ids if u}:
            owned = [i for i in spend.items if i.assigned_user_id == uid]
            share = items_total(i.cost for i in owned)
            row = next((a for a in spend.assignments if a.user_id == uid), None)
            if row is None:
                if not owned:
                    continue
                row = SpendAssignment(spend_id=spend.id, user_id=uid)
                spend.assignments.append(row)

            row.item_id = owned[0].id if owned else None
            row.share_amount = share
            row.normalized_share_amount = normalize_amount(share, spend.fx_rate)
            row.split_type = SplitType.EXACT
            row.split_value = None
            log_event(db, "spend", spend.id, "ITEM_ASSIGNMENT_SYNCED", by_user_id=actor_id, trip_id=spend.trip_id,
                      payload={"user_id": uid, "share_amount": str(share), "items": [i.id for i in owned]})

    async def list_items(self, db: AsyncSession, trip_id: int, spend_id: int) -> SpendItemsResponse:
        spend = await fetch_spend(db, spend_id, trip_id)
        summary = spend_summary(
            spend.amount,
            [i.cost for i in spend.items],
            [a.share_amount for a in spend.assignments],
        )
        return SpendItemsResponse(
            items=[SpendItemResponse.model_validate(i) for i in spend.items],
            summary=SpendSummary(**summary),
        )

    async def add_item(self, db: AsyncSession, trip_id: int, spend_id: int, data: SpendItemCreate,
                       user_id: int) -> SpendItem:
        spend = await self._editable_spend(db, trip_id, spend_id)

        error = validate_items_total(spend.amount, [i.cost for i in spend.items] + [data.cost])
        if error:
            raise HTTPException(status_code=400, detail=error)
        if data.assigned_user_id and not await get_membership(db, trip_id, data.assigned_user_id):
            raise HTTPException(status_code=400, detail="Assigned user is not a member of this trip")

        item = SpendItem(
            spend_id=spend_id,
            name=data.name,
            description=data.description,
            cost=quantize_money(data.cost),
            assigned_user_id=data.assigned_user_id,
            created_by=user_id,
        )
        spend.items.append(item)
        await db.flush()
        self._sync_item_assignments(db, spend, [item.assigned_user_id], user_id)
        log_event(db, "spend_item", item.id, "SPEND_ITEM_CREATED", by_user_id=user_id, trip_id=trip_id,
                  payload={"spend_id": spend_id, "cost": str(item.cost), "assigned_user_id": item.assigned_user_id})
        await db.commit()
        await db.refresh(item)
        await invalidate_trip_money(self.cache, trip_id)

        logger.info(f"Item {item.id} added to spend {spend_id}")
        return item

    def _get_item(self, spend: Spend, item_id: int) -> SpendItem:
        for item in spend.items:
            if item.id == item_id:
                return item
        raise HTTPException(status_code=404, detail="Item not found")

    async def update_item(self, db: AsyncSession, trip_id: int, spend_id: int, item_id: int,
                          data: SpendItemUpdate, user_id: int) -> SpendItem:
        spend = await self._editable_spend(db, trip_id, spend_id)
        item = self._get_item(spend, item_id)
        update_data = data.model_dump(exclude_unset=True)

        if update_data.get("cost") is not None:
            others = [i.cost for i in spend.items if i.id != item_id]
            error = validate_items_total(spend.amount, others + [update_data["cost"]])
            if error:
                raise HTTPException(status_code=400, detail=error)
            update_data["cost"] = quantize_money(update_data["cost"])
        if update_data.get("assigned_user_id") and not await get_membership(db, trip_id, update_data["assigned_user_id"]):
            raise HTTPException(status_code=400, detail="Assigned user is not a member of this trip")

        previous_assignee = item.assigned_user_id
        for field, value in update_data.items():
            if value is None and field in ("name", "cost"):
                continue
            setattr(item, field, value)

        if "cost" in update_data or "assigned_user_id" in update_data:
            self._sync_item_assignments(db, spend, [previous_assignee, item.assigned_user_id], user_id)

        log_event(db, "spend_item", item.id, "SPEND_ITEM_UPDATED", by_user_id=user_id, trip_id=trip_id,
                  payload={k: str(v) for k, v in update_data.items()})
        await db.commit()
        await db.refresh(item)
        await invalidate_trip_money(self.cache, trip_id)
        return item

    async def delete_item(self, db: AsyncSession, trip_id: int, spend_id: int, item_id: int, user_id: int) -> dict:
        spend = await self._editable_spend(db, trip_id, spend_id)
        item = self._get_item(spend, item_id)
        for assignment in spend.assignments:
            if assignment.item_id == item_id:
                assignment.item_id = None

        spend.items.remove(item)
        self._sync_item_assignments(db, spend, [item.assigned_user_id], user_id)
        log_event(db, "spend_item", item_id, "SPEND_ITEM_DELETED", by_user_id=user_id, trip_id=trip_id,
                  payload={"spend_id": spend_id, "assigned_user_id": item.assigned_user_id})
        await db.commit()
        await invalidate_trip_money(self.cache, trip_id)

        logger.info(f"Item {item_id} removed from spend {spend_id}")
        return {"message": "Item deleted successfully"}

    async def recalculate_from_items(self, db: AsyncSession, trip_id: int, spend_id: int,
                                     member: TripMember) -> Spend:
        """Set the spend amount to the sum of its items."""
        spend = await self._editable_spend(db, trip_id, spend_id)
        ensure_payer_or_organizer(spend, member)
        if not spend.items:
            raise HTTPException(status_code=400, detail="Spend has no items to total")

        old_amount = spend.amount
        spend.amount = items_total(i.cost for i in spend.items)
        spend.normalized_amount = normalize_amount(spend.amount, spend.fx_rate)

        log_event(db, "spend", spend.id, "SPEND_UPDATED", by_user_id=member.user_id, trip_id=trip_id,
                  payload={"action": "recalculated_from_items", "old_amount": str(old_amount),
                           "new_amount": str(spend.amount), "item_count": len(spend.items)})
        await db.commit()
        await invalidate_trip_money(self.cache, trip_id)

        logger.info(f"Spend {spend_id} recalculated from {len(spend.items)} items: {old_amount} -> {spend.amount}")
        return await fetch_spend(db, spend_id)
