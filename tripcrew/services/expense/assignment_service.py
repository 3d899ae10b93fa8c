from decimal import Decimal
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession
from fastapi import HTTPException, status

from tripcrew.core.logger import logger
from tripcrew.core.cache import RedisCache, invalidate_trip_money
from tripcrew.models.expense.spend_models import Spend, SpendAssignment, SpendStatus, SplitType
from tripcrew.schemas.expense.spend import AssignmentCreate, AssignmentUpdate
from tripcrew.dependencies.trip_access import get_active_trip, get_membership, ensure_spending_open
from tripcrew.services.events.event_service import log_event
from tripcrew.services.expense.spend_service import fetch_spend, ensure_spend_open
from tripcrew.utils.assignment_math import normalize_amount, quantize_money
from tripcrew.utils.currency import compute_shares


class AssignmentService:
    def __init__(self, cache: RedisCache):
        self.cache = cache

    async def _open_spend(self, db: AsyncSession, trip_id: int, spend_id: int) -> Spend:
        trip = await get_active_trip(db, trip_id)
        ensure_spending_open(trip)
        spend = await fetch_spend(db, spend_id, trip_id)
        ensure_spend_open(spend)
        return spend

    async def _check_assignees(self, db: AsyncSession, trip_id: int, user_ids: List[int]) -> None:
        if len(set(user_ids)) != len(user_ids):
            raise HTTPException(status_code=400, detail="Each person can only be assigned once per spend")
        for uid in user_ids:
            if not await get_membership(db, trip_id, uid):
                raise HTTPException(status_code=400, detail=f"User {uid} is not a member of this trip")

    def _build(self, spend: Spend, data: AssignmentCreate) -> SpendAssignment:
        share = quantize_money(data.share_amount)
        return SpendAssignment(
            spend_id=spend.id,
            user_id=data.user_id,
            item_id=data.item_id,
            share_amount=share,
            normalized_share_amount=normalize_amount(share, spend.fx_rate),
            split_type=data.split_type,
            split_value=data.split_value,
        )

    def _get_assignment(self, spend: Spend, assignment_id: int) -> SpendAssignment:
        for assignment in spend.assignments:
            if assignment.id == assignment_id:
                return assignment
        raise HTTPException(status_code=404, detail="Assignment not found")

    def _ensure_payer_or_assignee(self, spend: Spend, assignment: SpendAssignment, user_id: int) -> None:
        if user_id not in (spend.paid_by, assignment.user_id):
            logger.warning(f"User {user_id} tried to change assignment {assignment.id}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the payer or the assigned person can change this assignment"
            )

    async def _done(self, db: AsyncSession, spend: Spend) -> List[SpendAssignment]:
        await db.commit()
        await invalidate_trip_money(self.cache, spend.trip_id)
        spend = await fetch_spend(db, spend.id)
        return list(spend.assignments)

    async def create_assignments(self, db: AsyncSession, trip_id: int, spend_id: int,
                                 assignments: List[AssignmentCreate], user_id: int) -> List[SpendAssignment]:
        spend = await self._open_spend(db, trip_id, spend_id)

        new_ids = [a.user_id for a in assignments]
        await self._check_assignees(db, trip_id, new_ids)
        already = {a.user_id for a in spend.assignments}.intersection(new_ids)
        if already:
            raise HTTPException(
                status_code=400,
                detail=f"Users already assigned to this spend: {', '.join(str(u) for u in sorted(already))}"
            )

        for data in assignments:
            db.add(self._build(spend, data))
        log_event(db, "spend", spend.id, "ASSIGNMENTS_CREATED", by_user_id=user_id, trip_id=trip_id,
                  payload={"user_ids": new_ids})

        logger.info(f"{len(assignments)} assignments added to spend {spend_id}")
        return await self._done(db, spend)

    async def update_assignment(self, db: AsyncSession, trip_id: int, spend_id: int, assignment_id: int,
                                data: AssignmentUpdate, user_id: int) -> SpendAssignment:
        spend = await fetch_spend(db, spend_id, trip_id)
        assignment = self._get_assignment(spend, assignment_id)
        self._ensure_payer_or_assignee(spend, assignment, user_id)
        trip = await get_active_trip(db, trip_id)
        ensure_spending_open(trip)
        ensure_spend_open(spend)

        update_data = data.model_dump(exclude_unset=True)
        if update_data.get("share_amount") is not None:
            assignment.share_amount = quantize_money(update_data["share_amount"])
            assignment.normalized_share_amount = normalize_amount(assignment.share_amount, spend.fx_rate)
        if update_data.get("split_type") is not None:
            assignment.split_type = update_data["split_type"]
        if "split_value" in update_data:
            assignment.split_value = update_data["split_value"]
        if "item_id" in update_data:
            assignment.item_id = update_data["item_id"]

        log_event(db, "spend_assignment", assignment.id, "ASSIGNMENT_UPDATED", by_user_id=user_id, trip_id=trip_id,
                  payload={k: str(v) for k, v in update_data.items()})
        rows = await self._done(db, spend)
        return next(a for a in rows if a.id == assignment_id)

    async def delete_assignment(self, db: AsyncSession, trip_id: int, spend_id: int, assignment_id: int,
                                user_id: int) -> dict:
        spend = await fetch_spend(db, spend_id, trip_id)
        assignment = self._get_assignment(spend, assignment_id)
        self._ensure_payer_or_assignee(spend, assignment, user_id)
        trip = await get_active_trip(db, trip_id)
        ensure_spending_open(trip)
        ensure_spend_open(spend)

        await db.delete(assignment)
        log_event(db, "spend_assignment", assignment_id, "ASSIGNMENT_DELETED", by_user_id=user_id, trip_id=trip_id,
                  payload={"spend_id": spend_id, "user_id": assignment.user_id})
        await self._done(db, spend)

        logger.info(f"Assignment {assignment_id} removed from spend {spend_id}")
        return {"message": "Assignment deleted successfully"}

    async def replace_assignments(self, db: AsyncSession, trip_id: int, spend_id: int,
                                  assignments: List[AssignmentCreate], user_id: int) -> List[SpendAssignment]:
        """
        Set who is on a spend. People who stay keep their current allocation,
        people dropped lose their row and newcomers get the values supplied.
        """
        trip = await get_active_trip(db, trip_id)
        ensure_spending_open(trip)
        spend = await fetch_spend(db, spend_id, trip_id)

        new_ids = [a.user_id for a in assignments]
        await self._check_assignees(db, trip_id, new_ids)

        existing = {a.user_id: a for a in spend.assignments}
        added = [a for a in assignments if a.user_id not in existing]
        removed = [a for uid, a in existing.items() if uid not in new_ids]

        if spend.status == SpendStatus.CLOSED and (added or removed):
            raise HTTPException(
                status_code=400,
                detail="Cannot change the people involved in a closed spend. Spend is locked."
            )

        for row in removed:
            await db.delete(row)
        for data in added:
            db.add(self._build(spend, data))

        if added or removed:
            log_event(db, "spend", spend.id, "ASSIGNMENTS_REPLACED", by_user_id=user_id, trip_id=trip_id,
                      payload={"added": [a.user_id for a in added], "removed": [a.user_id for a in removed]})
        return await self._done(db, spend)

    async def split_equally(self, db: AsyncSession, trip_id: int, spend_id: int, user_ids: List[int],
                            user_id: int) -> List[SpendAssignment]:
        spend = await self._open_spend(db, trip_id, spend_id)
        await self._check_assignees(db, trip_id, user_ids)

        for row in list(spend.assignments):
            await db.delete(row)
        # deletes must hit the table before the unique (spend_id, user_id) rows are re-inserted
        await db.flush()

        shares = compute_shares(Decimal(spend.amount), user_ids, seed=str(spend.id))
        count = len(user_ids)
        for uid in user_ids:
            db.add(SpendAssignment(
                spend_id=spend.id,
                user_id=uid,
                share_amount=shares[uid],
                normalized_share_amount=normalize_amount(shares[uid], spend.fx_rate),
                split_type=SplitType.EQUAL,
                split_value=Decimal(1) / Decimal(count),
            ))

        log_event(db, "spend", spend.id, "SPLIT_EQUALLY", by_user_id=user_id, trip_id=trip_id,
                  payload={"user_ids": user_ids})
        logger.info(f"Spend {spend_id} split equally between {count} people")
        return await self._done(db, spend)

    async def self_assign(self, db: AsyncSession, trip_id: int, spend_id: int, share_amount: Decimal,
                          user_id: int) -> SpendAssignment:
        spend = await self._open_spend(db, trip_id, spend_id)

        share = quantize_money(share_amount)
        mine = next((a for a in spend.assignments if a.user_id == user_id), None)
        if mine:
            mine.share_amount = share
            mine.normalized_share_amount = normalize_amount(share, spend.fx_rate)
            mine.split_type = SplitType.EXACT
            mine.split_value = None
        else:
            db.add(SpendAssignment(
                spend_id=spend.id,
                user_id=user_id,
                share_amount=share,
                normalized_share_amount=normalize_amount(share, spend.fx_rate),
                split_type=SplitType.EXACT,
            ))

        log_event(db, "spend", spend.id, "SELF_ASSIGNED", by_user_id=user_id, trip_id=trip_id,
                  payload={"share_amount": str(share)})
        rows = await self._done(db, spend)
        return next(a for a in rows if a.user_id == user_id)
