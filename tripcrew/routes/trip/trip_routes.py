from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripcrew.schemas.trip.trip_schema import (
    TripCreate, TripUpdate, TripResponse, MyTripResponse, TripDetailResponse, WindowToggle,
    WindowStatusResponse, JoinCodeResponse, PublicTripPreview,
)
from tripcrew.schemas.events.event import EventLogResponse
from tripcrew.models.user.user import User
from tripcrew.models.trips.trip_member import TripMember, TripRole
from tripcrew.core.database import get_db
from tripcrew.core.redis_lifecycle import get_cache
from tripcrew.dependencies.auth import get_current_user
from tripcrew.dependencies.trip_access import trip_member
from tripcrew.services.trips.trip_service import TripService
from tripcrew.services.events.event_service import list_trip_events

router = APIRouter(prefix="/trips", tags=['Trips'])


async def get_trip_service(
    cache=Depends(get_cache)
) -> TripService:
    return TripService(cache)


@router.post("", response_model=TripResponse, status_code=201)
async def create_trip_route(
    trip: TripCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    trip_service: TripService = Depends(get_trip_service)
):
    return await trip_service.create_trip(db, trip, current_user.id)


@router.get("", response_model=list[MyTripResponse])
async def get_my_trips(
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    trip_service: TripService = Depends(get_trip_service)
):
    return await trip_service.get_user_trips(session, current_user.id)


# Code-based routes are declared before /{trip_id} so the literal segments win
@router.get("/public/{code}", response_model=PublicTripPreview)
async def public_trip_preview(
    code: str,
    session: AsyncSession = Depends(get_db),
    trip_service: TripService = Depends(get_trip_service)
):
    return await trip_service.get_public_preview(session, code)


@router.post("/join/{code}", response_model=TripResponse)
async def join_trip_by_code(
    code: str,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    trip_service: TripService = Depends(get_trip_service)
):
    return await trip_service.join_by_code(session, code, current_user.id)


@router.get("/{trip_id}", response_model=TripDetailResponse)
async def get_trip(
    trip_id: int,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    trip_service: TripService = Depends(get_trip_service)
):
    return await trip_service.get_trip_detail(session, current_user.id, trip_id)


@router.patch("/{trip_id}", response_model=TripResponse)
async def update_trip_route(
    trip_id: int,
    trip_update: TripUpdate,
    session: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.ADMIN)),
    trip_service: TripService = Depends(get_trip_service)
):
    return await trip_service.update_trip(session, trip_id, trip_update, member.user_id)


@router.delete("/{trip_id}")
async def delete_trip_route(
    trip_id: int,
    session: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.OWNER)),
    trip_service: TripService = Depends(get_trip_service)
):
    return await trip_service.delete_trip(session, trip_id, member.user_id)


@router.post("/{trip_id}/rsvp-status", response_model=WindowStatusResponse)
async def toggle_rsvp_window(
    trip_id: int,
    body: Optional[WindowToggle] = None,
    session: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.ADMIN)),
    trip_service: TripService = Depends(get_trip_service)
):
    new_status = await trip_service.set_rsvp_status(session, trip_id, member.user_id, body.action if body else None)
    return WindowStatusResponse(trip_id=trip_id, status=new_status)


@router.post("/{trip_id}/spend-status", response_model=WindowStatusResponse)
async def toggle_spend_window(
    trip_id: int,
    body: Optional[WindowToggle] = None,
    session: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.ADMIN)),
    trip_service: TripService = Depends(get_trip_service)
):
    new_status = await trip_service.set_spend_status(session, trip_id, member.user_id, body.action if body else None)
    return WindowStatusResponse(trip_id=trip_id, status=new_status)


@router.post("/{trip_id}/ensure-join-code", response_model=JoinCodeResponse)
async def ensure_join_code(
    trip_id: int,
    session: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.ADMIN)),
    trip_service: TripService = Depends(get_trip_service)
):
    code = await trip_service.ensure_join_code(session, trip_id, member.user_id)
    return JoinCodeResponse(trip_id=trip_id, join_code=code)


@router.get("/{trip_id}/activity", response_model=list[EventLogResponse])
async def trip_activity(
    trip_id: int,
    limit: int = 50,
    session: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await list_trip_events(session, trip_id, limit=max(1, min(limit, 200)))
