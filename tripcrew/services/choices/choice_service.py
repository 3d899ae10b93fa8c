from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Tuple

from fastapi import HTTPException, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func

from tripcrew.core.cache import RedisCache, invalidate_trip_money
from tripcrew.core.llm_client import get_ai_completion
from tripcrew.core.logger import logger
from tripcrew.models.choices.choice_models import (
    Choice, ChoiceItem, ChoiceSelection, ChoiceSelectionLine, ChoiceActivity, ChoiceStatus, ChoiceVisibility,
)
from tripcrew.models.expense.spend_models import Spend, SpendItem, SpendAssignment, SplitType
from tripcrew.models.trips.trip_member import TripMember
from tripcrew.schemas.choices.choice import (
    ChoiceCreate, ChoiceUpdate, ChoiceItemCreate, ChoiceItemUpdate, ChoiceResponse, ChoiceSummary,
    ChoiceItemResponse, ChoiceDetailResponse, SelectionRequest, SelectionResponse, SelectionLineResponse,
    RespondentsResponse, RespondentEntry, ItemReport, ItemReportRow, UserReport, UserReportRow, UserReportLine,
    LinkedSpendResponse,
)
from tripcrew.dependencies.trip_access import get_active_trip, ensure_spending_open
from tripcrew.services.events.event_service import log_event
from tripcrew.services.expense.spend_service import fetch_spend
from tripcrew.utils.ai_menu import MENU_SYSTEM_PROMPT, build_menu_prompt, parse_menu_response
from tripcrew.utils.assignment_math import quantize_money
from tripcrew.utils.report_csv import export_filename, items_report_csv, users_report_csv

ZERO = Decimal("0.00")


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # stored datetimes are naive UTC
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _price(item: ChoiceItem) -> Decimal:
    return Decimal(item.price) if item.price is not None else ZERO


def log_activity(db: AsyncSession, choice_id: int, actor_id: Optional[int], action: str,
                 payload: Optional[dict] = None) -> None:
    db.add(ChoiceActivity(choice_id=choice_id, actor_id=actor_id, action=action, payload=payload))


# Lookups and guards

async def get_choice(db: AsyncSession, choice_id: int) -> Choice:
    choice = await db.scalar(
        select(Choice).where(Choice.id == choice_id).execution_options(populate_existing=True)
    )
    if not choice:
        logger.warning(f"Choice {choice_id} not found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Choice not found")
    return choice


async def get_item(db: AsyncSession, item_id: int) -> ChoiceItem:
    item = await db.scalar(
        select(ChoiceItem).where(ChoiceItem.id == item_id).execution_options(populate_existing=True)
    )
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return item


def ensure_visible(choice: Choice, user_id: int) -> None:
    if choice.visibility == ChoiceVisibility.PRIVATE and choice.created_by != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Choice not found")


def ensure_manager(choice: Choice, member: TripMember) -> None:
    if choice.created_by != member.user_id and not member.is_organizer:
        logger.warning(f"User {member.user_id} tried to manage choice {choice.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the creator or a trip organizer can manage this choice"
        )


def _ensure_not_archived(choice: Choice) -> None:
    if choice.archived_at is not None:
        raise HTTPException(status_code=400, detail="Cannot update archived choice")


async def _active_items(db: AsyncSession, choice_id: int, include_inactive: bool = False) -> List[ChoiceItem]:
    stmt = select(ChoiceItem).where(ChoiceItem.choice_id == choice_id)
    if not include_inactive:
        stmt = stmt.where(ChoiceItem.is_active.is_(True))
    result = await db.execute(stmt.order_by(ChoiceItem.sort_index, ChoiceItem.id))
    return result.scalars().all()


async def _selections(db: AsyncSession, choice_id: int) -> List[ChoiceSelection]:
    result = await db.execute(
        select(ChoiceSelection)
        .where(ChoiceSelection.choice_id == choice_id)
        .order_by(ChoiceSelection.id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().all()


async def _my_selection(db: AsyncSession, choice_id: int, user_id: int) -> Optional[ChoiceSelection]:
    result = await db.execute(
        select(ChoiceSelection)
        .where(ChoiceSelection.choice_id == choice_id, ChoiceSelection.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def _selection_out(selection: ChoiceSelection) -> SelectionResponse:
    lines = []
    total = ZERO
    for line in selection.lines:
        line_total = quantize_money(_price(line.item) * line.quantity)
        total += line_total
        lines.append(SelectionLineResponse(
            id=line.id,
            item_id=line.item_id,
            item_name=line.item.name,
            quantity=line.quantity,
            note=line.note,
            line_total=line_total,
        ))
    return SelectionResponse(
        choice_id=selection.choice_id,
        user_id=selection.user_id,
        note=selection.note,
        lines=lines,
        total=quantize_money(total),
    )


# Choices

async def _next_sort_index(db: AsyncSession, choice_id: int) -> int:
    current = await db.scalar(select(func.max(ChoiceItem.sort_index)).where(ChoiceItem.choice_id == choice_id))
    return (current if current is not None else -1) + 1


async def create_choice(db: AsyncSession, trip_id: int, data: ChoiceCreate, user_id: int) -> Choice:
    choice = Choice(
        trip_id=trip_id,
        name=data.name,
        description=data.description,
        datetime=_naive_utc(data.datetime),
        place=data.place,
        visibility=data.visibility,
        deadline=_naive_utc(data.deadline),
        created_by=user_id,
    )
    db.add(choice)
    await db.flush()

    for index, item in enumerate(data.items):
        db.add(_build_item(choice.id, item, index))

    log_activity(db, choice.id, user_id, "created", {"name": choice.name, "items": len(data.items)})
    log_event(db, "choice", choice.id, "CHOICE_CREATED", by_user_id=user_id, trip_id=trip_id)
    await db.commit()

    logger.info(f"Choice {choice.id} created in trip {trip_id} by user {user_id}")
    return await get_choice(db, choice.id)


async def list_trip_choices(db: AsyncSession, trip_id: int, user_id: int,
                            include_archived: bool = False) -> List[ChoiceSummary]:
    stmt = select(Choice).where(Choice.trip_id == trip_id)
    if not include_archived:
        stmt = stmt.where(Choice.archived_at.is_(None))
    result = await db.execute(stmt.order_by(Choice.created_at.desc(), Choice.id.desc()))
    choices = [c for c in result.scalars().all()
               if c.visibility != ChoiceVisibility.PRIVATE or c.created_by == user_id]

    summaries = []
    for choice in choices:
        item_count = await db.scalar(
            select(func.count(ChoiceItem.id)).where(ChoiceItem.choice_id == choice.id, ChoiceItem.is_active.is_(True))
        )
        respondents = (await db.execute(
            select(ChoiceSelection.user_id)
            .join(ChoiceSelectionLine, ChoiceSelectionLine.selection_id == ChoiceSelection.id)
            .where(ChoiceSelection.choice_id == choice.id)
            .distinct()
        )).scalars().all()
        summaries.append(ChoiceSummary(
            **ChoiceResponse.model_validate(choice).model_dump(),
            item_count=item_count or 0,
            respondent_count=len(respondents),
            has_my_selection=user_id in respondents,
        ))
    return summaries


async def get_choice_detail(db: AsyncSession, choice: Choice, user_id: int) -> ChoiceDetailResponse:
    items = await _active_items(db, choice.id)
    mine = await _my_selection(db, choice.id, user_id)
    my_selection = _selection_out(mine) if mine else None
    return ChoiceDetailResponse(
        choice=ChoiceResponse.model_validate(choice),
        items=[ChoiceItemResponse.model_validate(i) for i in items],
        my_selection=my_selection,
        my_total=my_selection.total if my_selection else ZERO,
    )


async def update_choice(db: AsyncSession, choice: Choice, data: ChoiceUpdate, user_id: int) -> Choice:
    _ensure_not_archived(choice)
    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if field in ("datetime", "deadline"):
            value = _naive_utc(value)
        if value is None and field in ("name", "visibility"):
            continue
        setattr(choice, field, value)

    log_activity(db, choice.id, user_id, "updated", {"fields": sorted(update_data)})
    await db.commit()
    logger.info(f"Choice {choice.id} updated by user {user_id}")
    return await get_choice(db, choice.id)


async def set_choice_status(db: AsyncSession, choice: Choice, new_status: ChoiceStatus,
                            deadline: Optional[datetime], user_id: int) -> Choice:
    _ensure_not_archived(choice)
    old = choice.status
    choice.status = new_status
    if deadline is not None:
        choice.deadline = _naive_utc(deadline)

    log_activity(db, choice.id, user_id, "opened" if new_status == ChoiceStatus.OPEN else "closed",
                 {"old": old.value, "new": new_status.value})
    log_event(db, "choice", choice.id, f"CHOICE_{new_status.value}", by_user_id=user_id, trip_id=choice.trip_id)
    await db.commit()
    logger.info(f"Choice {choice.id} status {old.value} -> {new_status.value}")
    return await get_choice(db, choice.id)


async def archive_choice(db: AsyncSession, choice: Choice, user_id: int) -> Choice:
    choice.archived_at = datetime.utcnow()
    log_activity(db, choice.id, user_id, "archived")
    await db.commit()
    return await get_choice(db, choice.id)


async def restore_choice(db: AsyncSession, choice: Choice, user_id: int) -> Choice:
    choice.archived_at = None
    log_activity(db, choice.id, user_id, "restored")
    await db.commit()
    return await get_choice(db, choice.id)


async def delete_choice(db: AsyncSession, choice: Choice, user_id: int) -> dict:
    choice_id, trip_id = choice.id, choice.trip_id
    # children are removed explicitly; SQLite test databases do not cascade foreign keys
    for selection in await _selections(db, choice_id):
        await db.delete(selection)
    for item in await _active_items(db, choice_id, include_inactive=True):
        await db.delete(item)
    activities = (await db.execute(select(ChoiceActivity).where(ChoiceActivity.choice_id == choice_id))).scalars().all()
    for activity in activities:
        await db.delete(activity)
    await db.delete(choice)
    log_event(db, "choice", choice_id, "CHOICE_DELETED", by_user_id=user_id, trip_id=trip_id)
    await db.commit()
    logger.info(f"Choice {choice_id} deleted by user {user_id}")
    return {"message": "Choice deleted successfully"}


# Items

def _build_item(choice_id: int, data: ChoiceItemCreate, sort_index: int) -> ChoiceItem:
    return ChoiceItem(
        choice_id=choice_id,
        name=data.name,
        description=data.description,
        price=quantize_money(data.price) if data.price is not None else None,
        course=data.course,
        tags=data.tags,
        allergens=data.allergens,
        max_per_user=data.max_per_user,
        max_total=data.max_total,
        sort_index=data.sort_index if data.sort_index is not None else sort_index,
    )


async def add_item(db: AsyncSession, choice: Choice, data: ChoiceItemCreate, user_id: int) -> ChoiceItem:
    _ensure_not_archived(choice)
    item = _build_item(choice.id, data, await _next_sort_index(db, choice.id))
    db.add(item)
    await db.flush()
    log_activity(db, choice.id, user_id, "item_added", {"item_id": item.id, "name": item.name})
    await db.commit()
    await db.refresh(item)
    return item


async def bulk_add_items(db: AsyncSession, choice: Choice, items: List[ChoiceItemCreate],
                         user_id: int, action: str = "items_bulk_added") -> List[ChoiceItem]:
    _ensure_not_archived(choice)
    start = await _next_sort_index(db, choice.id)
    created = [_build_item(choice.id, data, start + i) for i, data in enumerate(items)]
    db.add_all(created)
    log_activity(db, choice.id, user_id, action, {"count": len(created)})
    await db.commit()
    logger.info(f"{len(created)} items added to choice {choice.id}")
    return await _active_items(db, choice.id)


async def update_item(db: AsyncSession, item: ChoiceItem, data: ChoiceItemUpdate, user_id: int) -> ChoiceItem:
    update_data = data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if value is None and field in ("name", "sort_index", "is_active"):
            continue
        if field == "price" and value is not None:
            value = quantize_money(value)
        setattr(item, field, value)
    log_activity(db, item.choice_id, user_id, "item_updated", {"item_id": item.id, "fields": sorted(update_data)})
    await db.commit()
    await db.refresh(item)
    return item


async def deactivate_item(db: AsyncSession, item: ChoiceItem, user_id: int) -> ChoiceItem:
    item.is_active = False
    log_activity(db, item.choice_id, user_id, "item_deactivated", {"item_id": item.id, "name": item.name})
    await db.commit()
    await db.refresh(item)
    return item


async def parse_menu(db: AsyncSession, choice: Choice, text: str, replace_existing: bool,
                     user_id: int) -> List[ChoiceItem]:
    _ensure_not_archived(choice)
    response = await run_in_threadpool(get_ai_completion, build_menu_prompt(text), MENU_SYSTEM_PROMPT)
    try:
        items = parse_menu_response(response)
    except ValueError as e:
        logger.error(f"Menu parse failed for choice {choice.id}: {e}")
        raise HTTPException(status_code=502, detail="Could not read a menu from the AI response")

    if not items:
        raise HTTPException(status_code=422, detail="No menu items found in the text")

    if replace_existing:
        for existing in await _active_items(db, choice.id):
            existing.is_active = False

    return await bulk_add_items(db, choice, items, user_id, action="menu_parsed")


# Selections

async def save_selection(db: AsyncSession, choice: Choice, user_id: int, data: SelectionRequest) -> SelectionResponse:
    if choice.status != ChoiceStatus.OPEN:
        raise HTTPException(status_code=400, detail="Choice is closed for selections")
    if choice.archived_at is not None:
        raise HTTPException(status_code=400, detail="Choice is archived")
    if choice.deadline is not None and choice.deadline < datetime.utcnow():
        raise HTTPException(status_code=400, detail="Choice deadline has passed")

    items = {i.id: i for i in await _active_items(db, choice.id, include_inactive=True)}
    selections = await _selections(db, choice.id)
    others_qty: Dict[int, int] = {}
    for selection in selections:
        if selection.user_id == user_id:
            continue
        for line in selection.lines:
            others_qty[line.item_id] = others_qty.get(line.item_id, 0) + line.quantity

    requested: Dict[int, int] = {}
    for line in data.lines:
        requested[line.item_id] = requested.get(line.item_id, 0) + line.quantity

    for item_id, quantity in requested.items():
        item = items.get(item_id)
        if item is None:
            raise HTTPException(status_code=400, detail=f"Item {item_id} not found")
        if not item.is_active:
            raise HTTPException(status_code=400, detail=f'Item "{item.name}" is no longer active')
        if item.max_per_user and quantity > item.max_per_user:
            raise HTTPException(
                status_code=400,
                detail=f'Item "{item.name}" exceeds per-user limit of {item.max_per_user}'
            )
        if item.max_total:
            current = others_qty.get(item_id, 0)
            if current + quantity > item.max_total:
                raise HTTPException(
                    status_code=400,
                    detail=(f'Item "{item.name}" would exceed total stock limit of {item.max_total} '
                            f'(current: {current}, requested: {quantity})')
                )

    selection = next((s for s in selections if s.user_id == user_id), None)
    is_new = selection is None
    if is_new:
        selection = ChoiceSelection(choice_id=choice.id, user_id=user_id, note=data.note)
        db.add(selection)
        await db.flush()
    else:
        for line in list(selection.lines):
            await db.delete(line)
        if data.note is not None:
            selection.note = data.note

    for line in data.lines:
        db.add(ChoiceSelectionLine(
            selection_id=selection.id,
            item_id=line.item_id,
            quantity=line.quantity,
            note=line.note,
        ))

    log_activity(db, choice.id, user_id, "selection_created" if is_new else "selection_updated",
                 {"lines": len(data.lines)})
    await db.commit()

    logger.info(f"User {user_id} saved {len(data.lines)} lines on choice {choice.id}")
    return _selection_out(await _my_selection(db, choice.id, user_id))


async def delete_selection(db: AsyncSession, choice: Choice, user_id: int) -> dict:
    selection = await _my_selection(db, choice.id, user_id)
    if not selection:
        raise HTTPException(status_code=404, detail="Selection not found")
    if choice.status == ChoiceStatus.CLOSED:
        raise HTTPException(status_code=400, detail="Choice is closed for modifications")

    await db.delete(selection)
    log_activity(db, choice.id, user_id, "selection_deleted")
    await db.commit()
    return {"message": "Selection deleted successfully"}


async def update_my_note(db: AsyncSession, choice: Choice, user_id: int, note: Optional[str]) -> SelectionResponse:
    selection = await _my_selection(db, choice.id, user_id)
    if selection is None:
        selection = ChoiceSelection(choice_id=choice.id, user_id=user_id, note=note)
        db.add(selection)
    else:
        selection.note = note
    log_activity(db, choice.id, user_id, "note_updated")
    await db.commit()
    return _selection_out(await _my_selection(db, choice.id, user_id))


async def get_respondents(db: AsyncSession, choice: Choice) -> RespondentsResponse:
    result = await db.execute(
        select(TripMember)
        .where(TripMember.trip_id == choice.trip_id, TripMember.deleted_at.is_(None))
        .order_by(TripMember.joined_at, TripMember.id)
    )
    members = result.scalars().all()
    responded_ids = {s.user_id for s in await _selections(db, choice.id) if s.lines}

    responded, pending = [], []
    for member in members:
        entry = RespondentEntry(user_id=member.user_id, name=member.user.name)
        (responded if member.user_id in responded_ids else pending).append(entry)
    return RespondentsResponse(responded=responded, pending=pending)


# Reports

async def get_items_report(db: AsyncSession, choice: Choice) -> ItemReport:
    items = await _active_items(db, choice.id, include_inactive=True)
    selections = await _selections(db, choice.id)

    qty: Dict[int, int] = {}
    users: Dict[int, set] = {}
    for selection in selections:
        for line in selection.lines:
            qty[line.item_id] = qty.get(line.item_id, 0) + line.quantity
            users.setdefault(line.item_id, set()).add(selection.user_id)

    rows = []
    grand_total = ZERO
    for item in items:
        if not item.is_active and item.id not in qty:
            continue
        total = quantize_money(_price(item) * qty.get(item.id, 0))
        grand_total += total
        rows.append(ItemReportRow(
            item_id=item.id,
            name=item.name,
            price=item.price,
            qty_total=qty.get(item.id, 0),
            total_price=total,
            distinct_users=len(users.get(item.id, ())),
        ))
    return ItemReport(items=rows, grand_total=quantize_money(grand_total))


async def get_users_report(db: AsyncSession, choice: Choice) -> UserReport:
    rows = []
    grand_total = ZERO
    for selection in await _selections(db, choice.id):
        if not selection.lines:
            continue
        lines = []
        user_total = ZERO
        for line in selection.lines:
            line_total = quantize_money(_price(line.item) * line.quantity)
            user_total += line_total
            lines.append(UserReportLine(
                item_id=line.item_id,
                name=line.item.name,
                quantity=line.quantity,
                line_total=line_total,
                note=line.note,
            ))
        grand_total += user_total
        rows.append(UserReportRow(
            user_id=selection.user_id,
            name=selection.user.name,
            note=selection.note,
            lines=lines,
            user_total_price=quantize_money(user_total),
        ))
    rows.sort(key=lambda r: r.name.lower())
    return UserReport(users=rows, grand_total=quantize_money(grand_total))


async def export_report(db: AsyncSession, choice: Choice, kind: str) -> Tuple[str, str]:
    """CSV text of the items or users report, with a download filename."""
    if kind == "items":
        body = items_report_csv(await get_items_report(db, choice))
    elif kind == "users":
        body = users_report_csv(await get_users_report(db, choice))
    else:
        raise HTTPException(status_code=400, detail="Invalid report type. Must be 'items' or 'users'")
    return export_filename(choice.name, kind), body


async def list_activity(db: AsyncSession, choice: Choice, limit: int = 100) -> List[ChoiceActivity]:
    result = await db.execute(
        select(ChoiceActivity)
        .where(ChoiceActivity.choice_id == choice.id)
        .order_by(ChoiceActivity.created_at.desc(), ChoiceActivity.id.desc())
        .limit(limit)
    )
    return result.scalars().all()


# Spend creation

async def create_spend_from_choice(db: AsyncSession, cache: RedisCache, choice: Choice, user_id: int,
                                   mode: str, description: Optional[str] = None) -> Spend:
    trip = await get_active_trip(db, choice.trip_id)
    ensure_spending_open(trip)

    report = await get_users_report(db, choice)
    if report.grand_total <= 0:
        raise HTTPException(status_code=400, detail="Cannot create spend with zero total")

    spend = Spend(
        trip_id=trip.id,
        description=description or f"{choice.name} - Menu Order",
        amount=report.grand_total,
        currency=trip.base_currency,
        fx_rate=Decimal("1"),
        normalized_amount=report.grand_total,
        paid_by=user_id,
        date=choice.datetime or datetime.utcnow(),
        notes=f"Auto-generated from choice: {choice.name}",
    )
    db.add(spend)
    await db.flush()

    for row in report.users:
        if row.user_total_price <= 0:
            continue
        if mode == "by_item":
            merged: Dict[int, UserReportLine] = {}
            for line in row.lines:
                if line.line_total <= 0:
                    continue
                if line.item_id in merged:
                    prev = merged[line.item_id]
                    merged[line.item_id] = prev.model_copy(update={
                        "quantity": prev.quantity + line.quantity,
                        "line_total": prev.line_total + line.line_total,
                    })
                else:
                    merged[line.item_id] = line
            for line in merged.values():
                db.add(SpendItem(
                    spend_id=spend.id,
                    name=line.name,
                    description=f"Qty: {line.quantity}",
                    cost=line.line_total,
                    assigned_user_id=row.user_id,
                    created_by=user_id,
                ))
        else:
            db.add(SpendItem(
                spend_id=spend.id,
                name=f"{row.name}'s order",
                description=", ".join(f"{l.quantity}x {l.name}" for l in row.lines),
                cost=row.user_total_price,
                assigned_user_id=row.user_id,
                created_by=user_id,
            ))
        db.add(SpendAssignment(
            spend_id=spend.id,
            user_id=row.user_id,
            share_amount=row.user_total_price,
            normalized_share_amount=row.user_total_price,
            split_type=SplitType.EXACT,
        ))

    log_activity(db, choice.id, user_id, "spend_created", {"spend_id": spend.id, "mode": mode})
    log_event(db, "spend", spend.id, "SPEND_CREATED", by_user_id=user_id, trip_id=trip.id,
              payload={"from_choice_id": choice.id, "amount": str(spend.amount)})
    await db.commit()
    await invalidate_trip_money(cache, trip.id)

    logger.info(f"Spend {spend.id} created from choice {choice.id} ({mode})")
    return await fetch_spend(db, spend.id)


async def get_linked_spend(db: AsyncSession, choice: Choice) -> LinkedSpendResponse:
    """The most recent spend created from this choice, if it still exists."""
    activity = await db.scalar(
        select(ChoiceActivity)
        .where(ChoiceActivity.choice_id == choice.id, ChoiceActivity.action == "spend_created")
        .order_by(ChoiceActivity.created_at.desc(), ChoiceActivity.id.desc())
        .limit(1)
    )
    spend_id = (activity.payload or {}).get("spend_id") if activity else None
    if spend_id is None:
        return LinkedSpendResponse(has_spend=False)

    spend = await db.scalar(select(Spend).where(Spend.id == spend_id, Spend.deleted_at.is_(None)))
    if spend is None:
        return LinkedSpendResponse(has_spend=False)
    return LinkedSpendResponse(has_spend=True, spend_id=spend.id)
