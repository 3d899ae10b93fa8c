from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from tripcrew.core.database import get_db
from tripcrew.core.redis_lifecycle import get_cache
from tripcrew.core.cache import RedisCache
from tripcrew.dependencies.auth import get_current_user
from tripcrew.dependencies.trip_access import require_trip_member, trip_member
from tripcrew.models.user.user import User
from tripcrew.models.choices.choice_models import Choice
from tripcrew.models.trips.trip_member import TripMember, TripRole
from tripcrew.schemas.choices.choice import (
    ChoiceCreate, ChoiceUpdate, ChoiceStatusUpdate, ChoiceResponse, ChoiceSummary, ChoiceDetailResponse,
    ChoiceItemCreate, ChoiceItemUpdate, ChoiceItemBulkCreate, ChoiceItemResponse, MenuParseRequest,
    SelectionRequest, SelectionNoteUpdate, SelectionResponse, RespondentsResponse, ItemReport, UserReport,
    ChoiceActivityResponse, SpendFromChoiceRequest, LinkedSpendResponse,
)
from tripcrew.schemas.expense.spend import SpendResponse
from tripcrew.services.choices import choice_service

router = APIRouter(tags=["Choices"])


async def _load_choice(db: AsyncSession, choice_id: int, user: User,
                       min_role: Optional[TripRole] = None) -> Tuple[Choice, TripMember]:
    choice = await choice_service.get_choice(db, choice_id)
    member = await require_trip_member(db, choice.trip_id, user.id, min_role)
    choice_service.ensure_visible(choice, user.id)
    return choice, member


async def _managed_choice(db: AsyncSession, choice_id: int, user: User) -> Choice:
    choice, member = await _load_choice(db, choice_id, user, TripRole.MEMBER)
    choice_service.ensure_manager(choice, member)
    return choice


@router.post("/trips/{trip_id}/choices", response_model=ChoiceResponse, status_code=201)
async def create_choice(
    trip_id: int,
    data: ChoiceCreate,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member(TripRole.MEMBER)),
):
    return await choice_service.create_choice(db, trip_id, data, member.user_id)


@router.get("/trips/{trip_id}/choices", response_model=list[ChoiceSummary])
async def list_choices(
    trip_id: int,
    include_archived: bool = False,
    db: AsyncSession = Depends(get_db),
    member: TripMember = Depends(trip_member()),
):
    return await choice_service.list_trip_choices(db, trip_id, member.user_id, include_archived)


@router.get("/choices/{choice_id}", response_model=ChoiceDetailResponse)
async def get_choice(
    choice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice, _ = await _load_choice(db, choice_id, current_user)
    return await choice_service.get_choice_detail(db, choice, current_user.id)


@router.patch("/choices/{choice_id}", response_model=ChoiceResponse)
async def update_choice(
    choice_id: int,
    data: ChoiceUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice = await _managed_choice(db, choice_id, current_user)
    return await choice_service.update_choice(db, choice, data, current_user.id)


@router.post("/choices/{choice_id}/status", response_model=ChoiceResponse)
async def set_choice_status(
    choice_id: int,
    data: ChoiceStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice = await _managed_choice(db, choice_id, current_user)
    return await choice_service.set_choice_status(db, choice, data.status, data.deadline, current_user.id)


@router.post("/choices/{choice_id}/archive", response_model=ChoiceResponse)
async def archive_choice(
    choice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice = await _managed_choice(db, choice_id, current_user)
    return await choice_service.archive_choice(db, choice, current_user.id)


@router.post("/choices/{choice_id}/restore", response_model=ChoiceResponse)
async def restore_choice(
    choice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice = await _managed_choice(db, choice_id, current_user)
    return await choice_service.restore_choice(db, choice, current_user.id)


@router.delete("/choices/{choice_id}")
async def delete_choice(
    choice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice = await _managed_choice(db, choice_id, current_user)
    return await choice_service.delete_choice(db, choice, current_user.id)


# Items

@router.post("/choices/{choice_id}/items", response_model=ChoiceItemResponse, status_code=201)
async def add_choice_item(
    choice_id: int,
    data: ChoiceItemCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice = await _managed_choice(db, choice_id, current_user)
    return await choice_service.add_item(db, choice, data, current_user.id)


@router.post("/choices/{choice_id}/items/bulk", response_model=list[ChoiceItemResponse], status_code=201)
async def bulk_add_choice_items(
    choice_id: int,
    data: ChoiceItemBulkCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice = await _managed_choice(db, choice_id, current_user)
    return await choice_service.bulk_add_items(db, choice, data.items, current_user.id)


@router.post("/choices/{choice_id}/parse-menu", response_model=list[ChoiceItemResponse])
async def parse_menu(
    choice_id: int,
    data: MenuParseRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice = await _managed_choice(db, choice_id, current_user)
    return await choice_service.parse_menu(db, choice, data.text, data.replace_existing, current_user.id)


@router.patch("/choice-items/{item_id}", response_model=ChoiceItemResponse)
async def update_choice_item(
    item_id: int,
    data: ChoiceItemUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    item = await choice_service.get_item(db, item_id)
    await _managed_choice(db, item.choice_id, current_user)
    return await choice_service.update_item(db, item, data, current_user.id)


@router.delete("/choice-items/{item_id}", response_model=ChoiceItemResponse)
async def deactivate_choice_item(
    item_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    item = await choice_service.get_item(db, item_id)
    await _managed_choice(db, item.choice_id, current_user)
    return await choice_service.deactivate_item(db, item, current_user.id)


# Selections

@router.put("/choices/{choice_id}/selection", response_model=SelectionResponse)
async def save_my_selection(
    choice_id: int,
    data: SelectionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice, _ = await _load_choice(db, choice_id, current_user, TripRole.MEMBER)
    return await choice_service.save_selection(db, choice, current_user.id, data)


@router.delete("/choices/{choice_id}/selection")
async def delete_my_selection(
    choice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice, _ = await _load_choice(db, choice_id, current_user, TripRole.MEMBER)
    return await choice_service.delete_selection(db, choice, current_user.id)


@router.patch("/choices/{choice_id}/selection/note", response_model=SelectionResponse)
async def update_my_note(
    choice_id: int,
    data: SelectionNoteUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice, _ = await _load_choice(db, choice_id, current_user, TripRole.MEMBER)
    return await choice_service.update_my_note(db, choice, current_user.id, data.note)


# Reports

@router.get("/choices/{choice_id}/respondents", response_model=RespondentsResponse)
async def choice_respondents(
    choice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice, _ = await _load_choice(db, choice_id, current_user)
    return await choice_service.get_respondents(db, choice)


@router.get("/choices/{choice_id}/report/items", response_model=ItemReport)
async def choice_items_report(
    choice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice, _ = await _load_choice(db, choice_id, current_user)
    return await choice_service.get_items_report(db, choice)


@router.get("/choices/{choice_id}/report/users", response_model=UserReport)
async def choice_users_report(
    choice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice, _ = await _load_choice(db, choice_id, current_user)
    return await choice_service.get_users_report(db, choice)


@router.get("/choices/{choice_id}/export")
async def export_choice_report(
    choice_id: int,
    kind: str = Query("items", alias="type"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice, _ = await _load_choice(db, choice_id, current_user, TripRole.ADMIN)
    filename, body = await choice_service.export_report(db, choice, kind)
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/choices/{choice_id}/linked-spend", response_model=LinkedSpendResponse)
async def choice_linked_spend(
    choice_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice, _ = await _load_choice(db, choice_id, current_user)
    return await choice_service.get_linked_spend(db, choice)


@router.get("/choices/{choice_id}/activity", response_model=list[ChoiceActivityResponse])
async def choice_activity(
    choice_id: int,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    choice, _ = await _load_choice(db, choice_id, current_user)
    return await choice_service.list_activity(db, choice, limit=max(1, min(limit, 500)))


@router.post("/choices/{choice_id}/create-spend", response_model=SpendResponse, status_code=201)
async def create_spend_from_choice(
    choice_id: int,
    data: SpendFromChoiceRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    cache: RedisCache = Depends(get_cache),
):
    choice = await _managed_choice(db, choice_id, current_user)
    return await choice_service.create_spend_from_choice(
        db, cache, choice, current_user.id, data.mode, data.description
    )
