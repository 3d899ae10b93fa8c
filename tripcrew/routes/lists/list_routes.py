from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tripcrew.core.database import get_db
from tripcrew.dependencies.auth import get_current_user
from tripcrew.models.user.user import User
from tripcrew.models.lists.list_models import ListType
from tripcrew.schemas.lists.list_schema import (
    TemplateCreate, TemplateUpdate, TemplateResponse, InstanceCreate, InstanceResponse, CopyToTripRequest,
    CopyToTripResponse, ConflictCheckResponse, ToggleResponse, LaunchActionResponse, TicksReportResponse,
)
from tripcrew.services.lists import template_service, instance_service

router = APIRouter(tags=["Lists"])


# Templates

@router.post("/lists/templates", response_model=TemplateResponse, status_code=201)
async def create_template(
    data: TemplateCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await template_service.create_template(db, data, current_user.id)


@router.get("/lists/templates/mine", response_model=list[TemplateResponse])
async def my_templates(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await template_service.list_my_templates(db, current_user.id)


@router.get("/lists/templates/public", response_model=list[TemplateResponse])
async def browse_public_templates(
    q: Optional[str] = None,
    tag: Optional[str] = None,
    type: Optional[ListType] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await template_service.browse_public_templates(db, query=q, tag=tag, list_type=type)


@router.get("/lists/templates/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await template_service.get_template(db, template_id, current_user.id)


@router.patch("/lists/templates/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: int,
    data: TemplateUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await template_service.update_template(db, template_id, data, current_user.id)


@router.post("/lists/templates/{template_id}/publish", response_model=TemplateResponse)
async def publish_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await template_service.set_published(db, template_id, current_user.id, True)


@router.post("/lists/templates/{template_id}/unpublish", response_model=TemplateResponse)
async def unpublish_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await template_service.set_published(db, template_id, current_user.id, False)


@router.post("/lists/templates/{template_id}/fork", response_model=TemplateResponse, status_code=201)
async def fork_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await template_service.fork_template(db, template_id, current_user.id)


@router.delete("/lists/templates/{template_id}")
async def delete_template(
    template_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await template_service.delete_template(db, template_id, current_user.id)


@router.post("/lists/templates/{template_id}/copy-to-trip", response_model=CopyToTripResponse)
async def copy_template_to_trip(
    template_id: int,
    data: CopyToTripRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await instance_service.copy_template_to_trip(db, template_id, data.trip_id, data.mode, current_user.id)


@router.get("/lists/templates/{template_id}/check-conflict", response_model=ConflictCheckResponse)
async def check_conflict(
    template_id: int,
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await instance_service.check_conflict(db, template_id, trip_id, current_user.id)


# Trip instances

@router.post("/trips/{trip_id}/lists", response_model=InstanceResponse, status_code=201)
async def create_instance(
    trip_id: int,
    data: InstanceCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await instance_service.create_instance(db, trip_id, data, current_user.id)


@router.get("/trips/{trip_id}/lists", response_model=list[InstanceResponse])
async def list_instances(
    trip_id: int,
    type: Optional[ListType] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await instance_service.list_instances(db, trip_id, current_user.id, type)


@router.get("/lists/instances/{instance_id}", response_model=InstanceResponse)
async def get_instance(
    instance_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await instance_service.get_instance(db, instance_id, current_user.id)


@router.delete("/lists/instances/{instance_id}")
async def delete_instance(
    instance_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await instance_service.delete_instance(db, instance_id, current_user.id)


@router.get("/lists/instances/{instance_id}/ticks", response_model=TicksReportResponse)
async def ticks_report(
    instance_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await instance_service.ticks_report(db, instance_id, current_user.id)


@router.post("/lists/items/{list_type}/{item_id}/toggle", response_model=ToggleResponse)
async def toggle_item(
    list_type: ListType,
    item_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await instance_service.toggle_item(db, list_type, item_id, current_user.id)


@router.post("/lists/items/TODO/{item_id}/launch", response_model=LaunchActionResponse)
async def launch_action(
    item_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await instance_service.launch_action(db, item_id, current_user.id)
