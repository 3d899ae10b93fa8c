from datetime import datetime, date
import secrets
import string
from typing import Optional, List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
from fastapi import HTTPException, status

from tripcrew.core.config import settings
from tripcrew.core.logger import logger
from tripcrew.core.cache import RedisCache, invalidate_trip_money
from tripcrew.models.trips.trip_model import Trip, WindowStatus
from tripcrew.models.trips.trip_member import TripMember, TripRole, RsvpStatus
from tripcrew.schemas.trip.trip_schema import (
    TripCreate, TripUpdate, TripResponse, MyTripResponse, TripDetailResponse, PublicTripPreview,
)
from tripcrew.schemas.trip.timeline import TimelineItemResponse
from tripcrew.schemas.trip.trip_member import TripMemberOut
from tripcrew.dependencies.trip_access import get_active_trip, require_trip_member
from tripcrew.services.events.event_service import log_event
from tripcrew.services.trips import timeline_service

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
JOIN_CODE_LENGTH = 8


def _jsonable(value):
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return value


class TripService:
    def __init__(self, cache: RedisCache):
        self.cache = cache

    async def _invalidate_trip_caches(self, trip_id: int):
        """Invalidate all caches related to a trip"""
        await self.cache.delete_pattern(f"trips:id:{trip_id}")

    async def _fetch_trip(self, db: AsyncSession, trip_id: int) -> Trip:
        # populate_existing reloads relationships on objects already in the session
        result = await db.execute(
            select(Trip)
            .where(Trip.id == trip_id, Trip.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )
        trip = result.scalar_one_or_none()
        if not trip:
            logger.warning(f"Trip not found: ID {trip_id}")
            raise HTTPException(status_code=404, detail="Trip not found")
        return trip

    async def _active_members(self, db: AsyncSession, trip_id: int) -> List[TripMember]:
        result = await db.execute(
            select(TripMember)
            .where(TripMember.trip_id == trip_id, TripMember.deleted_at.is_(None))
            .order_by(TripMember.joined_at, TripMember.id)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def create_trip(self, db: AsyncSession, trip_data: TripCreate, user_id: int) -> Trip:
        new_trip = Trip(**trip_data.model_dump(), created_by=user_id)
        db.add(new_trip)
        await db.flush()

        db.add(TripMember(
            user_id=user_id,
            trip_id=new_trip.id,
            role=TripRole.OWNER,
            rsvp_status=RsvpStatus.ACCEPTED,
        ))
        db.add_all(timeline_service.build_default_timeline(new_trip, user_id))
        log_event(db, "trip", new_trip.id, "TRIP_CREATED", by_user_id=user_id, trip_id=new_trip.id,
                  payload={"name": new_trip.name})

        await db.commit()
        logger.info(f"Trip {new_trip.id} created by user {user_id}")
        return await self._fetch_trip(db, new_trip.id)

    async def get_user_trips(self, db: AsyncSession, user_id: int) -> List[MyTripResponse]:
        result = await db.execute(
            select(Trip, TripMember)
            .join(TripMember, TripMember.trip_id == Trip.id)
            .where(
                TripMember.user_id == user_id,
                TripMember.deleted_at.is_(None),
                Trip.deleted_at.is_(None),
            )
            .order_by(Trip.created_at.desc(), Trip.id.desc())
        )
        trips = []
        for trip, member in result.all():
            base = TripResponse.model_validate(trip).model_dump()
            trips.append(MyTripResponse(**base, my_role=member.role.value, my_rsvp_status=member.rsvp_status.value))

        logger.info(f"Retrieved {len(trips)} trips for user {user_id}")
        return trips

    async def get_trip_detail(self, db: AsyncSession, user_id: int, trip_id: int) -> TripDetailResponse:
        member = await require_trip_member(db, trip_id, user_id)

        trip = await self._fetch_trip(db, trip_id)
        if await timeline_service.auto_close_rsvp(db, trip):
            await self._invalidate_trip_caches(trip_id)

        cache_key = self.cache.build_key("trips", "id", trip_id)
        cached_trip = await self.cache.get(cache_key)
        if cached_trip:
            trip_out = TripResponse(**cached_trip)
            logger.info(f"Trip ID {trip_id} retrieved from cache")
        else:
            trip_out = TripResponse.model_validate(trip)
            await self.cache.set(cache_key, trip_out.model_dump(mode="json"), expire=settings.CACHE_TTL_SECONDS)

        members = await self._active_members(db, trip_id)
        timeline = await timeline_service.get_timeline(db, trip_id)

        return TripDetailResponse(
            trip=trip_out,
            members=[TripMemberOut.model_validate(m) for m in members],
            timeline=[TimelineItemResponse.model_validate(t) for t in timeline],
            my_role=member.role.value,
        )

    async def update_trip(self, db: AsyncSession, trip_id: int, trip_data: TripUpdate, user_id: int) -> Trip:
        trip = await get_active_trip(db, trip_id)
        update_data = trip_data.model_dump(exclude_unset=True)

        start = update_data.get("start_date", trip.start_date)
        end = update_data.get("end_date", trip.end_date)
        if start and end and end < start:
            raise HTTPException(status_code=400, detail="end_date cannot be before start_date")

        changes = {}
        for field, value in update_data.items():
            old = getattr(trip, field)
            if old != value:
                changes[field] = {"old": _jsonable(old), "new": _jsonable(value)}
                setattr(trip, field, value)

        if not changes:
            return await self._fetch_trip(db, trip_id)

        if "start_date" in changes or "end_date" in changes:
            moved = await timeline_service.redate_milestones(db, trip, user_id)
            logger.info(f"Re-dated {moved} milestones for trip {trip_id}")

        log_event(db, "trip", trip_id, "TRIP_UPDATED", by_user_id=user_id, trip_id=trip_id, payload=changes)
        await db.commit()
        await self._invalidate_trip_caches(trip_id)

        logger.info(f"Trip {trip_id} updated by user {user_id}: {', '.join(changes)}")
        return await self._fetch_trip(db, trip_id)

    async def delete_trip(self, db: AsyncSession, trip_id: int, user_id: int) -> dict:
        trip = await get_active_trip(db, trip_id)
        trip.deleted_at = datetime.utcnow()
        log_event(db, "trip", trip_id, "TRIP_DELETED", by_user_id=user_id, trip_id=trip_id)
        await db.commit()
        await self._invalidate_trip_caches(trip_id)

        logger.info(f"Trip {trip_id} deleted by user {user_id}")
        return {"message": "Trip deleted successfully"}

    async def _set_window(self, db: AsyncSession, trip_id: int, user_id: int, field: str,
                          action: Optional[str]) -> WindowStatus:
        trip = await get_active_trip(db, trip_id)
        current = getattr(trip, field)
        if action == "open":
            new_status = WindowStatus.OPEN
        elif action == "close":
            new_status = WindowStatus.CLOSED
        else:
            new_status = WindowStatus.CLOSED if current == WindowStatus.OPEN else WindowStatus.OPEN

        if new_status != current:
            setattr(trip, field, new_status)
            event = f"{field.split('_')[0].upper()}_{'OPENED' if new_status == WindowStatus.OPEN else 'CLOSED'}"
            log_event(db, "trip", trip_id, event, by_user_id=user_id, trip_id=trip_id,
                      payload={"old": current.value, "new": new_status.value})
            await db.commit()
            await self._invalidate_trip_caches(trip_id)
            logger.info(f"Trip {trip_id} {field} set to {new_status.value} by user {user_id}")

        return new_status

    async def set_rsvp_status(self, db: AsyncSession, trip_id: int, user_id: int,
                              action: Optional[str] = None) -> WindowStatus:
        return await self._set_window(db, trip_id, user_id, "rsvp_status", action)

    async def set_spend_status(self, db: AsyncSession, trip_id: int, user_id: int,
                               action: Optional[str] = None) -> WindowStatus:
        new_status = await self._set_window(db, trip_id, user_id, "spend_status", action)
        await self.cache.delete(self.cache.build_key("balances", trip_id))
        return new_status

    async def ensure_join_code(self, db: AsyncSession, trip_id: int, user_id: int) -> str:
        trip = await get_active_trip(db, trip_id)
        if trip.join_code:
            return trip.join_code

        while True:
            code = "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))
            taken = await db.scalar(select(Trip.id).where(Trip.join_code == code))
            if not taken:
                break

        trip.join_code = code
        log_event(db, "trip", trip_id, "JOIN_CODE_CREATED", by_user_id=user_id, trip_id=trip_id)
        await db.commit()
        await self._invalidate_trip_caches(trip_id)
        logger.info(f"Join code generated for trip {trip_id}")
        return code

    async def _get_trip_by_code(self, db: AsyncSession, code: str) -> Trip:
        result = await db.execute(
            select(Trip).where(Trip.join_code == code.upper(), Trip.deleted_at.is_(None))
        )
        trip = result.scalar_one_or_none()
        if not trip:
            logger.warning(f"Trip with join code {code} not found")
            raise HTTPException(status_code=404, detail="Invalid join code")
        return trip

    async def join_by_code(self, db: AsyncSession, code: str, user_id: int) -> Trip:
        trip = await self._get_trip_by_code(db, code)

        existing = await db.scalar(
            select(TripMember).where(TripMember.trip_id == trip.id, TripMember.user_id == user_id)
        )
        if existing and existing.deleted_at is None:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="You are already a member of this trip")

        if existing:
            existing.deleted_at = None
            existing.role = TripRole.MEMBER
            existing.rsvp_status = RsvpStatus.ACCEPTED
            existing.joined_at = datetime.utcnow()
        else:
            db.add(TripMember(
                trip_id=trip.id,
                user_id=user_id,
                role=TripRole.MEMBER,
                rsvp_status=RsvpStatus.ACCEPTED,
            ))

        log_event(db, "trip_member", trip.id, "MEMBER_JOINED", by_user_id=user_id, trip_id=trip.id,
                  payload={"user_id": user_id, "via": "join_code"})
        await db.commit()
        await invalidate_trip_money(self.cache, trip.id)
        logger.info(f"User {user_id} joined trip {trip.id} by code")
        return await self._fetch_trip(db, trip.id)

    async def get_public_preview(self, db: AsyncSession, code: str) -> PublicTripPreview:
        trip = await self._get_trip_by_code(db, code)
        member_count = await db.scalar(
            select(func.count(TripMember.id)).where(
                TripMember.trip_id == trip.id,
                TripMember.deleted_at.is_(None),
            )
        )
        return PublicTripPreview(
            name=trip.name,
            description=trip.description,
            start_date=trip.start_date,
            end_date=trip.end_date,
            location=trip.location,
            organizer_name=trip.organizer_name,
            member_count=member_count or 0,
        )
