from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripcrew.core.database import get_db
from tripcrew.dependencies.trip_access import trip_member
from tripcrew.models.trips.trip_member import TripMember, TripRole
from tripcrew.schemas.transport.transport import (
    TransportOfferCreate, TransportOfferUpdate, TransportOfferResponse, TransportRequirementCreate,
    TransportRequirementUpdate, TransportRequirementResponse, TripTransportResponse,
)
from tripcrew.services.transport import transport_service

router = APIRouter(prefix="/trips/{trip_id}/transport", tags=["Transport"])


@router.get("", response_model=TripTransportResponse)
async def trip_transport(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await transport_service.get_trip_transport(db, trip_id)


@router.get("/offers", response_model=list[TransportOfferResponse])
async def list_offers(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await transport_service.list_offers(db, trip_id)


@router.post("/offers", response_model=TransportOfferResponse, status_code=201)
async def create_offer(
    trip_id: int,
    data: TransportOfferCreate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
):
    return await transport_service.create_offer(db, trip_id, data, member.user_id)


@router.patch("/offers/{offer_id}", response_model=TransportOfferResponse)
async def update_offer(
    trip_id: int,
    offer_id: int,
    data: TransportOfferUpdate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await transport_service.update_offer(db, trip_id, offer_id, data, member.user_id)


@router.delete("/offers/{offer_id}")
async def delete_offer(
    trip_id: int,
    offer_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await transport_service.delete_offer(db, trip_id, offer_id, member.user_id)


@router.get("/requirements", response_model=list[TransportRequirementResponse])
async def list_requirements(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await transport_service.list_requirements(db, trip_id)


@router.post("/requirements", response_model=TransportRequirementResponse, status_code=201)
async def create_requirement(
    trip_id: int,
    data: TransportRequirementCreate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
):
    return await transport_service.create_requirement(db, trip_id, data, member.user_id)


@router.patch("/requirements/{requirement_id}", response_model=TransportRequirementResponse)
async def update_requirement(
    trip_id: int,
    requirement_id: int,
    data: TransportRequirementUpdate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await transport_service.update_requirement(db, trip_id, requirement_id, data, member.user_id)


@router.delete("/requirements/{requirement_id}")
async def delete_requirement(
    trip_id: int,
    requirement_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await transport_service.delete_requirement(db, trip_id, requirement_id, member.user_id)
