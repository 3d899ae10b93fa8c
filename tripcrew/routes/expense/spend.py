from typing import Optional, Literal

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripcrew.core.database import get_db
from tripcrew.core.redis_lifecycle import get_cache
from tripcrew.dependencies.trip_access import trip_member
from tripcrew.models.expense.spend_models import SpendStatus
from tripcrew.models.trips.trip_member import TripMember, TripRole
from tripcrew.schemas.expense.spend import (
    SpendCreate, SpendUpdate, SpendClose, SpendResponse, SpendListResponse, SpendItemCreate, SpendItemUpdate,
    SpendItemResponse, SpendItemsResponse, AssignmentBatchCreate, AssignmentUpdate, AssignmentReplace,
    SplitEquallyRequest, SelfAssignRequest, AssignmentResponse,
)
from tripcrew.services.expense.spend_service import SpendService, fetch_spend
from tripcrew.services.expense.assignment_service import AssignmentService

router = APIRouter(prefix="/trips/{trip_id}/spends", tags=["Spends"])


async def get_spend_service(cache=Depends(get_cache)) -> SpendService:
    return SpendService(cache)


async def get_assignment_service(cache=Depends(get_cache)) -> AssignmentService:
    return AssignmentService(cache)


@router.post("", response_model=SpendResponse, status_code=201)
async def create_spend(
    trip_id: int,
    data: SpendCreate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    spend_service: SpendService = Depends(get_spend_service),
):
    return await spend_service.create_spend(db, trip_id, data, member.user_id)


@router.get("", response_model=SpendListResponse)
async def list_spends(
    trip_id: int,
    status: Optional[SpendStatus] = None,
    paid_by: Optional[int] = None,
    sort_by: Literal["date", "amount", "created_at"] = "date",
    sort_order: Literal["asc", "desc"] = "desc",
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
    spend_service: SpendService = Depends(get_spend_service),
):
    spends = await spend_service.list_spends(db, trip_id, status, paid_by, sort_by, sort_order)
    return SpendListResponse(spends=[SpendResponse.model_validate(s) for s in spends], total=len(spends))


@router.get("/{spend_id}", response_model=SpendResponse)
async def get_spend(
    trip_id: int,
    spend_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await fetch_spend(db, spend_id, trip_id)


@router.patch("/{spend_id}", response_model=SpendResponse)
async def update_spend(
    trip_id: int,
    spend_id: int,
    data: SpendUpdate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    spend_service: SpendService = Depends(get_spend_service),
):
    return await spend_service.update_spend(db, trip_id, spend_id, data, member)


@router.post("/{spend_id}/close", response_model=SpendResponse)
async def close_spend(
    trip_id: int,
    spend_id: int,
    body: Optional[SpendClose] = None,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    spend_service: SpendService = Depends(get_spend_service),
):
    return await spend_service.close_spend(db, trip_id, spend_id, member, force=body.force if body else False)


@router.post("/{spend_id}/reopen", response_model=SpendResponse)
async def reopen_spend(
    trip_id: int,
    spend_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    spend_service: SpendService = Depends(get_spend_service),
):
    return await spend_service.reopen_spend(db, trip_id, spend_id, member)


@router.delete("/{spend_id}")
async def delete_spend(
    trip_id: int,
    spend_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    spend_service: SpendService = Depends(get_spend_service),
):
    return await spend_service.delete_spend(db, trip_id, spend_id, member)


# Items

@router.get("/{spend_id}/items", response_model=SpendItemsResponse)
async def list_spend_items(
    trip_id: int,
    spend_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
    spend_service: SpendService = Depends(get_spend_service),
):
    return await spend_service.list_items(db, trip_id, spend_id)


@router.post("/{spend_id}/items", response_model=SpendItemResponse, status_code=201)
async def add_spend_item(
    trip_id: int,
    spend_id: int,
    data: SpendItemCreate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    spend_service: SpendService = Depends(get_spend_service),
):
    return await spend_service.add_item(db, trip_id, spend_id, data, member.user_id)


@router.patch("/{spend_id}/items/{item_id}", response_model=SpendItemResponse)
async def update_spend_item(
    trip_id: int,
    spend_id: int,
    item_id: int,
    data: SpendItemUpdate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    spend_service: SpendService = Depends(get_spend_service),
):
    return await spend_service.update_item(db, trip_id, spend_id, item_id, data, member.user_id)


@router.delete("/{spend_id}/items/{item_id}")
async def delete_spend_item(
    trip_id: int,
    spend_id: int,
    item_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    spend_service: SpendService = Depends(get_spend_service),
):
    return await spend_service.delete_item(db, trip_id, spend_id, item_id, member.user_id)


@router.post("/{spend_id}/recalculate-from-items", response_model=SpendResponse)
async def recalculate_from_items(
    trip_id: int,
    spend_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    spend_service: SpendService = Depends(get_spend_service),
):
    return await spend_service.recalculate_from_items(db, trip_id, spend_id, member)


# Assignments

@router.post("/{spend_id}/assignments", response_model=list[AssignmentResponse], status_code=201)
async def create_assignments(
    trip_id: int,
    spend_id: int,
    body: AssignmentBatchCreate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    assignment_service: AssignmentService = Depends(get_assignment_service),
):
    return await assignment_service.create_assignments(db, trip_id, spend_id, body.assignments, member.user_id)


@router.put("/{spend_id}/assignments", response_model=list[AssignmentResponse])
async def replace_assignments(
    trip_id: int,
    spend_id: int,
    body: AssignmentReplace,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    assignment_service: AssignmentService = Depends(get_assignment_service),
):
    return await assignment_service.replace_assignments(db, trip_id, spend_id, body.assignments, member.user_id)


@router.post("/{spend_id}/assignments/split-equally", response_model=list[AssignmentResponse])
async def split_equally(
    trip_id: int,
    spend_id: int,
    body: SplitEquallyRequest,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    assignment_service: AssignmentService = Depends(get_assignment_service),
):
    return await assignment_service.split_equally(db, trip_id, spend_id, body.user_ids, member.user_id)


@router.post("/{spend_id}/assignments/self", response_model=AssignmentResponse)
async def self_assign(
    trip_id: int,
    spend_id: int,
    body: SelfAssignRequest,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    assignment_service: AssignmentService = Depends(get_assignment_service),
):
    return await assignment_service.self_assign(db, trip_id, spend_id, body.share_amount, member.user_id)


@router.patch("/{spend_id}/assignments/{assignment_id}", response_model=AssignmentResponse)
async def update_assignment(
    trip_id: int,
    spend_id: int,
    assignment_id: int,
    data: AssignmentUpdate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    assignment_service: AssignmentService = Depends(get_assignment_service),
):
    return await assignment_service.update_assignment(db, trip_id, spend_id, assignment_id, data, member.user_id)


@router.delete("/{spend_id}/assignments/{assignment_id}")
async def delete_assignment(
    trip_id: int,
    spend_id: int,
    assignment_id: int,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
    assignment_service: AssignmentService = Depends(get_assignment_service),
):
    return await assignment_service.delete_assignment(db, trip_id, spend_id, assignment_id, member.user_id)
