from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tripcrew.models.events.event_log import EventLog


def log_event(
    db: AsyncSession,
    entity: str,
    entity_id: int,
    event_type: str,
    by_user_id: Optional[int] = None,
    trip_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> EventLog:
    """Stage an event row; it is written by the caller's commit together with the change it records."""
    event = EventLog(
        entity=entity,
        entity_id=entity_id,
        event_type=event_type,
        trip_id=trip_id,
        by_user_id=by_user_id,
        payload=payload,
    )
    db.add(event)
    return event


async def list_trip_events(db: AsyncSession, trip_id: int, limit: int = 50) -> List[EventLog]:
    result = await db.execute(
        select(EventLog)
        .where(EventLog.trip_id == trip_id)
        .order_by(EventLog.created_at.desc(), EventLog.id.desc())
        .limit(limit)
    )
    return result.scalars().all()
