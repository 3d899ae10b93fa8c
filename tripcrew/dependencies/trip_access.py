from typing import Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from tripcrew.core.database import get_db
from tripcrew.core.logger import logger
from tripcrew.models.user.user import User
from tripcrew.models.trips.trip_model import Trip, WindowStatus
from tripcrew.models.trips.trip_member import TripMember, TripRole
from tripcrew.dependencies.auth import get_current_user

SPENDING_CLOSED_MESSAGE = "The trip organizer has closed spending for this trip."


async def get_active_trip(session: AsyncSession, trip_id: int) -> Trip:
    trip = await session.scalar(
        select(Trip).where(Trip.id == trip_id, Trip.deleted_at.is_(None))
    )
    if not trip:
        logger.warning(f"Trip {trip_id} not found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trip not found")
    return trip


async def get_membership(session: AsyncSession, trip_id: int, user_id: int) -> Optional[TripMember]:
    return await session.scalar(
        select(TripMember).where(
            TripMember.trip_id == trip_id,
            TripMember.user_id == user_id,
            TripMember.deleted_at.is_(None),
        )
    )


async def require_trip_member(
    session: AsyncSession,
    trip_id: int,
    user_id: int,
    min_role: Optional[TripRole] = None,
) -> TripMember:
    """
    Returns the caller's active membership of a live trip.
    404 when the trip is gone, 403 when the caller is not a member or their role is below min_role.
    """
    await get_active_trip(session, trip_id)
    member = await get_membership(session, trip_id, user_id)
    if not member:
        logger.warning(f"User {user_id} is not a member of trip {trip_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this trip"
        )
    if min_role is not None and not member.has_role(min_role):
        logger.warning(f"User {user_id} lacks {min_role.value} role on trip {trip_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"{min_role.value} role required for this action"
        )
    return member


def ensure_spending_open(trip: Trip) -> None:
    if trip.spend_status == WindowStatus.CLOSED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=SPENDING_CLOSED_MESSAGE)


def trip_member(min_role: Optional[TripRole] = None):
    """Route dependency resolving the caller's membership of the `trip_id` path parameter."""
    async def member_checker(
        trip_id: int,
        session: AsyncSession = Depends(get_db),
        user: User = Depends(get_current_user),
    ) -> TripMember:
        return await require_trip_member(session, trip_id, user.id, min_role)
    return member_checker
