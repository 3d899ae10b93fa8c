from datetime import datetime, timezone
from typing import List, Type

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tripcrew.core.logger import logger
from tripcrew.models.transport.transport_models import TransportOffer, TransportRequirement
from tripcrew.schemas.transport.transport import (
    TransportOfferCreate, TransportOfferUpdate, TransportRequirementCreate, TransportRequirementUpdate,
    TripTransportResponse, TransportOfferResponse, TransportRequirementResponse,
)
from tripcrew.services.events.event_service import log_event

TIME_FIELDS = ("departure_time", "earliest_time", "latest_time")


def _naive_utc(value):
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _clean(data: dict) -> dict:
    return {k: _naive_utc(v) if k in TIME_FIELDS else v for k, v in data.items()}


async def _fetch(db: AsyncSession, model: Type, trip_id: int, row_id: int, label: str):
    row = await db.scalar(
        select(model).where(model.id == row_id, model.trip_id == trip_id).execution_options(populate_existing=True)
    )
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Transport {label} not found")
    return row


def _ensure_creator(row, user_id: int, label: str) -> None:
    if row.created_by != user_id:
        logger.warning(f"User {user_id} tried to edit transport {label} {row.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You can only edit your own transport {label}s"
        )


# Offers

async def create_offer(db: AsyncSession, trip_id: int, data: TransportOfferCreate, user_id: int) -> TransportOffer:
    offer = TransportOffer(trip_id=trip_id, created_by=user_id, **_clean(data.model_dump()))
    db.add(offer)
    await db.flush()
    log_event(db, "transport_offer", offer.id, "TRANSPORT_OFFER_CREATED", by_user_id=user_id, trip_id=trip_id)
    await db.commit()

    logger.info(f"User {user_id} offered transport {offer.id} in trip {trip_id}")
    return await _fetch(db, TransportOffer, trip_id, offer.id, "offer")


async def list_offers(db: AsyncSession, trip_id: int) -> List[TransportOffer]:
    result = await db.execute(
        select(TransportOffer)
        .where(TransportOffer.trip_id == trip_id)
        .order_by(TransportOffer.departure_time, TransportOffer.id)
    )
    return result.scalars().all()


async def update_offer(db: AsyncSession, trip_id: int, offer_id: int, data: TransportOfferUpdate,
                       user_id: int) -> TransportOffer:
    offer = await _fetch(db, TransportOffer, trip_id, offer_id, "offer")
    _ensure_creator(offer, user_id, "offer")

    changes = _clean(data.model_dump(exclude_unset=True))
    for field, value in changes.items():
        if value is None and field in ("from_location", "to_location", "departure_time"):
            continue
        setattr(offer, field, value)
    log_event(db, "transport_offer", offer_id, "TRANSPORT_OFFER_UPDATED", by_user_id=user_id, trip_id=trip_id,
              payload={k: str(v) for k, v in changes.items()})
    await db.commit()

    logger.info(f"Transport offer {offer_id} updated")
    return await _fetch(db, TransportOffer, trip_id, offer_id, "offer")


async def delete_offer(db: AsyncSession, trip_id: int, offer_id: int, user_id: int) -> dict:
    offer = await _fetch(db, TransportOffer, trip_id, offer_id, "offer")
    _ensure_creator(offer, user_id, "offer")

    await db.delete(offer)
    log_event(db, "transport_offer", offer_id, "TRANSPORT_OFFER_DELETED", by_user_id=user_id, trip_id=trip_id)
    await db.commit()
    logger.info(f"Transport offer {offer_id} deleted")
    return {"message": "Transport offer deleted successfully"}


# Requirements

async def create_requirement(db: AsyncSession, trip_id: int, data: TransportRequirementCreate,
                             user_id: int) -> TransportRequirement:
    requirement = TransportRequirement(trip_id=trip_id, created_by=user_id, **_clean(data.model_dump()))
    db.add(requirement)
    await db.flush()
    log_event(db, "transport_requirement", requirement.id, "TRANSPORT_REQUIREMENT_CREATED",
              by_user_id=user_id, trip_id=trip_id)
    await db.commit()

    logger.info(f"User {user_id} needs transport ({requirement.id}) in trip {trip_id}")
    return await _fetch(db, TransportRequirement, trip_id, requirement.id, "requirement")


async def list_requirements(db: AsyncSession, trip_id: int) -> List[TransportRequirement]:
    result = await db.execute(
        select(TransportRequirement)
        .where(TransportRequirement.trip_id == trip_id)
        .order_by(TransportRequirement.earliest_time, TransportRequirement.id)
    )
    return result.scalars().all()


async def update_requirement(db: AsyncSession, trip_id: int, requirement_id: int,
                             data: TransportRequirementUpdate, user_id: int) -> TransportRequirement:
    requirement = await _fetch(db, TransportRequirement, trip_id, requirement_id, "requirement")
    _ensure_creator(requirement, user_id, "requirement")

    changes = _clean(data.model_dump(exclude_unset=True))
    for field, value in changes.items():
        if value is None and field in ("from_location", "to_location", "earliest_time", "latest_time",
                                       "people_count"):
            continue
        setattr(requirement, field, value)
    if requirement.latest_time < requirement.earliest_time:
        await db.rollback()
        raise HTTPException(status_code=400, detail="latest_time cannot be before earliest_time")
    log_event(db, "transport_requirement", requirement_id, "TRANSPORT_REQUIREMENT_UPDATED",
              by_user_id=user_id, trip_id=trip_id, payload={k: str(v) for k, v in changes.items()})
    await db.commit()

    logger.info(f"Transport requirement {requirement_id} updated")
    return await _fetch(db, TransportRequirement, trip_id, requirement_id, "requirement")


async def delete_requirement(db: AsyncSession, trip_id: int, requirement_id: int, user_id: int) -> dict:
    requirement = await _fetch(db, TransportRequirement, trip_id, requirement_id, "requirement")
    _ensure_creator(requirement, user_id, "requirement")

    await db.delete(requirement)
    log_event(db, "transport_requirement", requirement_id, "TRANSPORT_REQUIREMENT_DELETED",
              by_user_id=user_id, trip_id=trip_id)
    await db.commit()
    logger.info(f"Transport requirement {requirement_id} deleted")
    return {"message": "Transport requirement deleted successfully"}


async def get_trip_transport(db: AsyncSession, trip_id: int) -> TripTransportResponse:
    offers = await list_offers(db, trip_id)
    requirements = await list_requirements(db, trip_id)
    return TripTransportResponse(
        offers=[TransportOfferResponse.model_validate(o) for o in offers],
        requirements=[TransportRequirementResponse.model_validate(r) for r in requirements],
    )
