from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripcrew.schemas.trip.timeline import TimelineItemCreate, TimelineItemUpdate, TimelineItemResponse
from tripcrew.models.trips.trip_member import TripMember, TripRole
from tripcrew.core.database import get_db
from tripcrew.dependencies.trip_access import trip_member
from tripcrew.services.trips import timeline_service

router = APIRouter(prefix="/trips/{trip_id}/timeline", tags=["Timeline"])


@router.get("", response_model=list[TimelineItemResponse])
async def list_timeline(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await timeline_service.get_timeline(db, trip_id)


@router.post("", response_model=TimelineItemResponse, status_code=201)
async def create_timeline_item(
    trip_id: int,
    data: TimelineItemCreate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.ADMIN)),
):
    return await timeline_service.create_item(db, trip_id, data, member.user_id)


@router.patch("/{item_id}", response_model=TimelineItemResponse)
async def update_timeline_item(
    trip_id: int,
    item_id: int,
    data: TimelineItemUpdate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.ADMIN)),
):
    return await timeline_service.update_item(db, trip_id, item_id, data, member.user_id)


@router.post("/{item_id}/toggle", response_model=TimelineItemResponse)
async def toggle_timeline_item(
    trip_id: int,
    item_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.ADMIN)),
):
    return await timeline_service.toggle_item(db, trip_id, item_id, member.user_id)


@router.delete("/{item_id}")
async def delete_timeline_item(
    trip_id: int,
    item_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.ADMIN)),
):
    await timeline_service.delete_item(db, trip_id, item_id, member.user_id)
    return {"message": "Timeline item deleted successfully"}
