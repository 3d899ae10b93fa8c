from fastapi import APIRouter, Depends, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from tripcrew.dependencies.auth import get_current_user
from tripcrew.dependencies.trip_access import trip_member
from tripcrew.core.database import get_db
from tripcrew.core.cache import RedisCache
from tripcrew.core.redis_lifecycle import get_cache
from tripcrew.schemas.trip.trip_member import (
    TripMemberListResponse, TripMemberOut, InviteRequest, InviteResult, RsvpUpdate, RoleUpdate,
)
from tripcrew.services.trips import trip_member_service
from tripcrew.models.user.user import User
from tripcrew.models.trips.trip_member import TripMember, TripRole

router = APIRouter(prefix="/trips/{trip_id}/members", tags=["Trip Members"])


@router.get("", response_model=TripMemberListResponse)
async def list_trip_members(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await trip_member_service.get_trip_members(db, trip_id)


@router.post("/invite", response_model=InviteResult)
async def invite_trip_members(
    trip_id: int,
    body: InviteRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.ADMIN)),
    current_user: User = Depends(get_current_user),
    cache: RedisCache = Depends(get_cache),
):
    return await trip_member_service.invite_members(db, trip_id, body.emails, current_user, cache, background_tasks)


# No membership dependency: invited users who were removed still get a 400 from the service
@router.put("/me/rsvp", response_model=TripMemberOut)
async def update_my_rsvp(
    trip_id: int,
    body: RsvpUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    cache: RedisCache = Depends(get_cache),
):
    return await trip_member_service.update_rsvp(db, trip_id, current_user.id, body.rsvp_status, cache)


@router.delete("/{member_id}")
async def delete_trip_member(
    trip_id: int,
    member_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
    cache: RedisCache = Depends(get_cache),
):
    return await trip_member_service.remove_member(db, trip_id, member_id, member, cache)


@router.patch("/{member_id}/role", response_model=TripMemberOut)
async def change_member_role(
    trip_id: int,
    member_id: int,
    body: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.OWNER)),
    cache: RedisCache = Depends(get_cache),
):
    return await trip_member_service.change_role(db, trip_id, member_id, body.role, member.user_id, cache)
