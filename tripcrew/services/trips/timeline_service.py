from datetime import datetime, date, time, timedelta
from typing import Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tripcrew.core.logger import logger
from tripcrew.models.trips.timeline_item import TimelineItem
from tripcrew.models.trips.trip_model import Trip, WindowStatus
from tripcrew.schemas.trip.timeline import TimelineItemCreate, TimelineItemUpdate
from tripcrew.services.events.event_service import log_event

TRIP_CREATED = "Trip Created"
RSVP_DEADLINE = "RSVP Deadline"
TRIP_STARTS = "Trip Starts"
TRIP_ENDS = "Trip Ends"
SPENDING_CLOSES = "Spending Window Closes"
SETTLEMENT_DEADLINE = "Settlement Deadline"

MILESTONE_ORDER = {
    TRIP_CREATED: 0,
    RSVP_DEADLINE: 1,
    TRIP_STARTS: 2,
    TRIP_ENDS: 3,
    SPENDING_CLOSES: 4,
    SETTLEMENT_DEADLINE: 5,
}

MILESTONE_DESCRIPTIONS = {
    TRIP_CREATED: "The trip was created",
    RSVP_DEADLINE: "Last day to respond to the invitation",
    TRIP_STARTS: "First day of the trip",
    TRIP_ENDS: "Last day of the trip",
    SPENDING_CLOSES: "Add any remaining spends before this date",
    SETTLEMENT_DEADLINE: "Settle up with everyone by this date",
}


def _at_midnight(d: date) -> datetime:
    return datetime.combine(d, time.min)


def milestone_dates(start_date: Optional[date], end_date: Optional[date], now: datetime) -> Dict[str, Optional[datetime]]:
    """Dates of the date-driven milestones. Start/end milestones are None when the date is unknown."""
    start = _at_midnight(start_date) if start_date else None
    end = _at_midnight(end_date) if end_date else None
    return {
        RSVP_DEADLINE: start - timedelta(days=14) if start else now + timedelta(days=30),
        TRIP_STARTS: start,
        TRIP_ENDS: end,
        SPENDING_CLOSES: end + timedelta(days=3) if end else now + timedelta(days=60),
        SETTLEMENT_DEADLINE: end + timedelta(days=14) if end else now + timedelta(days=74),
    }


def build_default_timeline(trip: Trip, user_id: int, now: Optional[datetime] = None) -> List[TimelineItem]:
    now = now or datetime.utcnow()
    items = [
        TimelineItem(
            trip_id=trip.id,
            title=TRIP_CREATED,
            description=MILESTONE_DESCRIPTIONS[TRIP_CREATED],
            date=now,
            is_completed=True,
            completed_at=now,
            order=MILESTONE_ORDER[TRIP_CREATED],
            created_by=user_id,
        )
    ]
    for title, when in milestone_dates(trip.start_date, trip.end_date, now).items():
        if when is None:
            continue
        items.append(TimelineItem(
            trip_id=trip.id,
            title=title,
            description=MILESTONE_DESCRIPTIONS[title],
            date=when,
            is_completed=False,
            order=MILESTONE_ORDER[title],
            created_by=user_id,
        ))
    return items


async def get_timeline(db: AsyncSession, trip_id: int) -> List[TimelineItem]:
    result = await db.execute(
        select(TimelineItem)
        .where(TimelineItem.trip_id == trip_id, TimelineItem.deleted_at.is_(None))
        .order_by(TimelineItem.order, TimelineItem.id)
    )
    return result.scalars().all()


async def redate_milestones(db: AsyncSession, trip: Trip, user_id: int) -> int:
    """Move uncompleted date-driven milestones after the trip dates change. Returns how many changed."""
    dates = milestone_dates(trip.start_date, trip.end_date, datetime.utcnow())
    items = await get_timeline(db, trip.id)
    by_title = {item.title: item for item in items}
    changed = 0

    for title, when in dates.items():
        item = by_title.get(title)
        if item is None:
            if when is not None and title in (TRIP_STARTS, TRIP_ENDS):
                db.add(TimelineItem(
                    trip_id=trip.id,
                    title=title,
                    description=MILESTONE_DESCRIPTIONS[title],
                    date=when,
                    order=MILESTONE_ORDER[title],
                    created_by=user_id,
                ))
                changed += 1
            continue
        if item.is_completed or when is None or item.date == when:
            continue
        item.date = when
        changed += 1

    return changed


async def auto_close_rsvp(db: AsyncSession, trip: Trip) -> bool:
    """
    Close the RSVP window once the RSVP Deadline milestone has passed.
    The milestone is marked complete, so a manual reopen afterwards is left alone.
    """
    if trip.rsvp_status != WindowStatus.OPEN:
        return False

    item = await db.scalar(
        select(TimelineItem).where(
            TimelineItem.trip_id == trip.id,
            TimelineItem.title == RSVP_DEADLINE,
            TimelineItem.deleted_at.is_(None),
        )
    )
    now = datetime.utcnow()
    if item is None or item.is_completed or item.date is None or item.date > now:
        return False

    trip.rsvp_status = WindowStatus.CLOSED
    item.is_completed = True
    item.completed_at = now
    log_event(db, "trip", trip.id, "RSVP_AUTO_CLOSED", trip_id=trip.id, payload={"deadline": item.date.isoformat()})
    await db.commit()
    logger.info(f"RSVP window auto-closed for trip {trip.id}")
    return True


async def _get_item(db: AsyncSession, trip_id: int, item_id: int) -> TimelineItem:
    item = await db.scalar(
        select(TimelineItem).where(
            TimelineItem.id == item_id,
            TimelineItem.trip_id == trip_id,
            TimelineItem.deleted_at.is_(None),
        )
    )
    if not item:
        logger.warning(f"Timeline item {item_id} not found in trip {trip_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Timeline item not found")
    return item


async def create_item(db: AsyncSession, trip_id: int, data: TimelineItemCreate, user_id: int) -> TimelineItem:
    order = data.order
    if order is None:
        items = await get_timeline(db, trip_id)
        order = max((i.order for i in items), default=-1) + 1

    item = TimelineItem(
        trip_id=trip_id,
        title=data.title,
        description=data.description,
        date=data.date,
        order=order,
        created_by=user_id,
    )
    db.add(item)
    await db.flush()
    log_event(db, "timeline_item", item.id, "TIMELINE_ITEM_CREATED", by_user_id=user_id, trip_id=trip_id,
              payload={"title": data.title})
    await db.commit()
    await db.refresh(item)
    logger.info(f"Timeline item {item.id} created in trip {trip_id} by user {user_id}")
    return item


async def update_item(db: AsyncSession, trip_id: int, item_id: int, data: TimelineItemUpdate, user_id: int) -> TimelineItem:
    item = await _get_item(db, trip_id, item_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(item, field, value)
    await db.commit()
    await db.refresh(item)
    logger.info(f"Timeline item {item_id} updated by user {user_id}")
    return item


async def toggle_item(db: AsyncSession, trip_id: int, item_id: int, user_id: int) -> TimelineItem:
    item = await _get_item(db, trip_id, item_id)
    item.is_completed = not item.is_completed
    item.completed_at = datetime.utcnow() if item.is_completed else None
    log_event(db, "timeline_item", item.id, "TIMELINE_ITEM_TOGGLED", by_user_id=user_id, trip_id=trip_id,
              payload={"is_completed": item.is_completed})
    await db.commit()
    await db.refresh(item)
    return item


async def delete_item(db: AsyncSession, trip_id: int, item_id: int, user_id: int) -> None:
    item = await _get_item(db, trip_id, item_id)
    item.deleted_at = datetime.utcnow()
    log_event(db, "timeline_item", item.id, "TIMELINE_ITEM_DELETED", by_user_id=user_id, trip_id=trip_id)
    await db.commit()
    logger.info(f"Timeline item {item_id} deleted by user {user_id}")
