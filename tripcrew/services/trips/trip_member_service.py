from datetime import datetime
from typing import List, Optional

from fastapi import HTTPException, status, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tripcrew.core.logger import logger
from tripcrew.core.cache import RedisCache, invalidate_trip_money
from tripcrew.models.user.user import User
from tripcrew.models.trips.trip_model import WindowStatus
from tripcrew.models.trips.trip_member import TripMember, TripRole, RsvpStatus
from tripcrew.schemas.trip.trip_member import TripMemberOut, TripMemberListResponse, InviteResult
from tripcrew.dependencies.trip_access import get_active_trip
from tripcrew.services.events.event_service import log_event
from tripcrew.services.trips.email_invite import generate_trip_link, send_invite_email


async def _get_member(db: AsyncSession, trip_id: int, member_id: int) -> TripMember:
    result = await db.execute(
        select(TripMember)
        .where(
            TripMember.id == member_id,
            TripMember.trip_id == trip_id,
            TripMember.deleted_at.is_(None),
        )
        .execution_options(populate_existing=True)
    )
    member = result.scalar_one_or_none()
    if not member:
        logger.warning(f"Member {member_id} not found in trip {trip_id}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    return member


async def get_trip_members(db: AsyncSession, trip_id: int) -> TripMemberListResponse:
    result = await db.execute(
        select(TripMember)
        .where(TripMember.trip_id == trip_id, TripMember.deleted_at.is_(None))
        .order_by(TripMember.joined_at, TripMember.id)
    )
    members = result.scalars().all()

    counts = {s.value: 0 for s in RsvpStatus}
    for m in members:
        counts[m.rsvp_status.value] += 1

    return TripMemberListResponse(
        members=[TripMemberOut.model_validate(m) for m in members],
        rsvp_counts=counts,
    )


async def invite_members(
    db: AsyncSession,
    trip_id: int,
    emails: List[str],
    inviter: User,
    cache: RedisCache,
    background_tasks: Optional[BackgroundTasks] = None,
) -> InviteResult:
    trip = await get_active_trip(db, trip_id)
    invited, already, not_found = [], [], []

    # dedupe, keeping order
    normalized = list(dict.fromkeys(e.strip().lower() for e in emails))

    for email in normalized:
        user = await db.scalar(select(User).where(User.email == email))
        if not user:
            not_found.append(email)
            continue

        existing = await db.scalar(
            select(TripMember).where(TripMember.trip_id == trip_id, TripMember.user_id == user.id)
        )
        if existing and existing.deleted_at is None:
            already.append(email)
            continue

        if existing:
            existing.deleted_at = None
            existing.role = TripRole.MEMBER
            existing.rsvp_status = RsvpStatus.PENDING
            existing.invited_by = inviter.id
            existing.joined_at = datetime.utcnow()
        else:
            db.add(TripMember(
                trip_id=trip_id,
                user_id=user.id,
                role=TripRole.MEMBER,
                rsvp_status=RsvpStatus.PENDING,
                invited_by=inviter.id,
            ))
        log_event(db, "trip_member", trip_id, "MEMBER_INVITED", by_user_id=inviter.id, trip_id=trip_id,
                  payload={"user_id": user.id, "email": email})
        invited.append(email)

    await db.commit()
    await invalidate_trip_money(cache, trip_id)

    link = generate_trip_link(trip_id)
    for email in invited:
        if background_tasks is not None:
            background_tasks.add_task(send_invite_email, email, link, trip.name, inviter.name)
        else:
            send_invite_email(email, link, trip.name, inviter.name)

    logger.info(f"Trip {trip_id}: invited {len(invited)}, already members {len(already)}, unknown {len(not_found)}")
    return InviteResult(invited=invited, already_members=already, not_found=not_found)


async def update_rsvp(db: AsyncSession, trip_id: int, user_id: int, rsvp_status: str, cache: RedisCache) -> TripMember:
    trip = await get_active_trip(db, trip_id)
    member = await db.scalar(
        select(TripMember).where(TripMember.trip_id == trip_id, TripMember.user_id == user_id)
    )
    if not member:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="You have not been invited to this trip")
    if member.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Your invitation to this trip was cancelled")
    if trip.rsvp_status == WindowStatus.CLOSED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="RSVP is closed for this trip")

    old = member.rsvp_status
    member.rsvp_status = RsvpStatus(rsvp_status)
    log_event(db, "trip_member", member.id, "RSVP_UPDATED", by_user_id=user_id, trip_id=trip_id,
              payload={"old": old.value, "new": rsvp_status})
    await db.commit()
    await invalidate_trip_money(cache, trip_id)

    logger.info(f"User {user_id} RSVP for trip {trip_id}: {old.value} -> {rsvp_status}")
    return await _get_member(db, trip_id, member.id)


async def remove_member(db: AsyncSession, trip_id: int, member_id: int, actor: TripMember, cache: RedisCache) -> dict:
    member = await _get_member(db, trip_id, member_id)

    if member.user_id != actor.user_id and not actor.is_organizer:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only organizers can remove other members")
    if member.role == TripRole.OWNER:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The trip owner cannot be removed")

    member.deleted_at = datetime.utcnow()
    log_event(db, "trip_member", member.id, "MEMBER_REMOVED", by_user_id=actor.user_id, trip_id=trip_id,
              payload={"user_id": member.user_id})
    await db.commit()
    await invalidate_trip_money(cache, trip_id)

    logger.info(f"Member {member_id} removed from trip {trip_id} by user {actor.user_id}")
    return {"message": "Member removed successfully"}


async def change_role(
    db: AsyncSession, trip_id: int, member_id: int, role: str, actor_id: int, cache: RedisCache
) -> TripMember:
    member = await _get_member(db, trip_id, member_id)
    if member.role == TripRole.OWNER:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The owner's role cannot be changed")

    old = member.role
    member.role = TripRole(role)
    log_event(db, "trip_member", member.id, "ROLE_CHANGED", by_user_id=actor_id, trip_id=trip_id,
              payload={"old": old.value, "new": role})
    await db.commit()
    await invalidate_trip_money(cache, trip_id)

    logger.info(f"Member {member_id} of trip {trip_id} is now {role}")
    return await _get_member(db, trip_id, member_id)
