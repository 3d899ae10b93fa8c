"""
Trip list instances: copying templates into a trip, ad-hoc lists, ticking items off
and resolving TODO actions into links the client can open.
"""
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tripcrew.core.logger import logger
from tripcrew.models.lists.list_models import (
    ListInstance, ListType, MergeMode, ItemTick, TodoActionType, TodoItemInstance,
)
from tripcrew.models.trips.trip_member import TripRole, TripMember
from tripcrew.schemas.lists.list_schema import (
    InstanceCreate, InstanceResponse, TodoItemInstanceResponse, KitItemInstanceResponse, CopyToTripResponse,
    ConflictCheckResponse, ToggleResponse, LaunchActionResponse, TicksReportResponse, ItemTicksRow, TickEntry,
)
from tripcrew.dependencies.trip_access import require_trip_member
from tripcrew.services.events.event_service import log_event
from tripcrew.services.lists.list_handlers import get_handler
from tripcrew.services.lists.template_service import get_template

ACTION_PATHS = {
    TodoActionType.CREATE_CHOICE: "/trips/{trip_id}/decisions",
    TodoActionType.ADD_SPEND: "/trips/{trip_id}/spend",
    TodoActionType.INVITE_PEOPLE: "/trips/{trip_id}/people",
    TodoActionType.SET_DATES: "/trips/{trip_id}",
}


async def fetch_instance(db: AsyncSession, instance_id: int) -> ListInstance:
    instance = await db.scalar(
        select(ListInstance).where(ListInstance.id == instance_id).execution_options(populate_existing=True)
    )
    if not instance:
        logger.warning(f"List instance {instance_id} not found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="List not found")
    return instance


async def _find_by_title(db: AsyncSession, trip_id: int, list_type: ListType, title: str) -> Optional[ListInstance]:
    result = await db.execute(
        select(ListInstance)
        .where(ListInstance.trip_id == trip_id, ListInstance.type == list_type, ListInstance.title == title)
        .order_by(ListInstance.id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _unique_title(db: AsyncSession, trip_id: int, list_type: ListType, title: str) -> str:
    result = await db.execute(
        select(ListInstance.title).where(ListInstance.trip_id == trip_id, ListInstance.type == list_type)
    )
    taken = set(result.scalars().all())
    if title not in taken:
        return title
    n = 2
    while f"{title} ({n})" in taken:
        n += 1
    return f"{title} ({n})"


async def _ticks_for(db: AsyncSession, list_type: ListType, item_ids: List[int]) -> Dict[int, List[ItemTick]]:
    ticks = defaultdict(list)
    if not item_ids:
        return ticks
    result = await db.execute(
        select(ItemTick)
        .where(ItemTick.item_type == list_type, ItemTick.item_id.in_(item_ids))
        .order_by(ItemTick.created_at, ItemTick.id)
    )
    for tick in result.scalars().all():
        ticks[tick.item_id].append(tick)
    return ticks


async def instance_out(db: AsyncSession, instance: ListInstance, user_id: int) -> InstanceResponse:
    items = list(instance.items)
    ticks = await _ticks_for(db, instance.type, [i.id for i in items])

    response = InstanceResponse(
        id=instance.id,
        trip_id=instance.trip_id,
        type=instance.type,
        title=instance.title,
        description=instance.description,
        source_template_id=instance.source_template_id,
        created_by=instance.created_by,
        created_at=instance.created_at,
    )
    item_schema = TodoItemInstanceResponse if instance.type == ListType.TODO else KitItemInstanceResponse
    rows = []
    for item in items:
        row = item_schema.model_validate(item)
        row.tick_count = len(ticks[item.id])
        row.ticked_by_me = any(t.user_id == user_id for t in ticks[item.id])
        rows.append(row)
    if instance.type == ListType.TODO:
        response.todo_items = rows
    else:
        response.kit_items = rows
    return response


async def _delete_ticks(db: AsyncSession, instance: ListInstance) -> None:
    item_ids = [i.id for i in instance.items]
    if item_ids:
        await db.execute(
            delete(ItemTick).where(ItemTick.item_type == instance.type, ItemTick.item_id.in_(item_ids))
        )


async def _next_order_index(db: AsyncSession, instance: ListInstance) -> int:
    model = get_handler(instance.type).instance_item_model
    current = await db.scalar(select(func.max(model.order_index)).where(model.instance_id == instance.id))
    return (current + 1) if current is not None else 0


async def copy_template_to_trip(db: AsyncSession, template_id: int, trip_id: int, mode: MergeMode,
                                user_id: int) -> CopyToTripResponse:
    template = await get_template(db, template_id, user_id)
    await require_trip_member(db, trip_id, user_id, TripRole.MEMBER)
    handler = get_handler(template.type)
    source_items = list(template.items)

    target = None
    if mode in (MergeMode.MERGE_ADD, MergeMode.MERGE_ADD_ALLOW_DUPES):
        target = await _find_by_title(db, trip_id, template.type, template.title)
    elif mode == MergeMode.REPLACE:
        existing = await _find_by_title(db, trip_id, template.type, template.title)
        if existing:
            await _delete_ticks(db, existing)
            await db.delete(existing)
            await db.flush()
            logger.info(f"Replacing list {existing.id} in trip {trip_id}")

    if target is None:
        title = template.title
        if mode == MergeMode.NEW_INSTANCE:
            title = await _unique_title(db, trip_id, template.type, template.title)
        target = ListInstance(
            trip_id=trip_id,
            type=template.type,
            title=title,
            description=template.description,
            source_template_id=template.id,
            created_by=user_id,
        )
        db.add(target)
        await db.flush()
        to_add = source_items
        start = 0
    else:
        if mode == MergeMode.MERGE_ADD:
            present = {i.label.strip().casefold() for i in target.items}
            to_add = [i for i in source_items if i.label.strip().casefold() not in present]
        else:
            to_add = source_items
        start = await _next_order_index(db, target)

    for offset, item in enumerate(to_add):
        db.add(handler.copy_to_instance(target.id, item, start + offset))

    added, skipped = len(to_add), len(source_items) - len(to_add)
    log_event(db, "list_instance", target.id, "TEMPLATE_COPIED", by_user_id=user_id, trip_id=trip_id,
              payload={"template_id": template.id, "mode": mode.value, "added": added, "skipped": skipped})
    await db.commit()

    logger.info(f"Template {template_id} copied to trip {trip_id} ({mode.value}): {added} added, {skipped} skipped")
    instance = await fetch_instance(db, target.id)
    return CopyToTripResponse(
        instance=await instance_out(db, instance, user_id),
        mode=mode,
        added=added,
        skipped=skipped,
    )


async def check_conflict(db: AsyncSession, template_id: int, trip_id: int, user_id: int) -> ConflictCheckResponse:
    template = await get_template(db, template_id, user_id)
    await require_trip_member(db, trip_id, user_id)
    existing = await _find_by_title(db, trip_id, template.type, template.title)
    return ConflictCheckResponse(exists=existing is not None, instance_id=existing.id if existing else None)


async def create_instance(db: AsyncSession, trip_id: int, data: InstanceCreate, user_id: int) -> InstanceResponse:
    await require_trip_member(db, trip_id, user_id, TripRole.MEMBER)
    handler = get_handler(data.type)

    instance = ListInstance(
        trip_id=trip_id,
        type=data.type,
        title=data.title,
        description=data.description,
        created_by=user_id,
    )
    db.add(instance)
    await db.flush()
    for index, item in enumerate(data.items):
        db.add(handler.build_instance_item(instance.id, item, index))
    log_event(db, "list_instance", instance.id, "LIST_CREATED", by_user_id=user_id, trip_id=trip_id,
              payload={"type": data.type.value, "items": len(data.items)})
    await db.commit()

    logger.info(f"User {user_id} created {data.type.value} list {instance.id} in trip {trip_id}")
    instance = await fetch_instance(db, instance.id)
    return await instance_out(db, instance, user_id)


async def list_instances(db: AsyncSession, trip_id: int, user_id: int,
                         list_type: Optional[ListType] = None) -> List[InstanceResponse]:
    await require_trip_member(db, trip_id, user_id)
    stmt = select(ListInstance).where(ListInstance.trip_id == trip_id)
    if list_type:
        stmt = stmt.where(ListInstance.type == list_type)
    result = await db.execute(stmt.order_by(ListInstance.created_at, ListInstance.id))
    return [await instance_out(db, i, user_id) for i in result.scalars().all()]


async def _instance_for_member(db: AsyncSession, instance_id: int, user_id: int,
                               min_role: Optional[TripRole] = None) -> Tuple[ListInstance, TripMember]:
    instance = await fetch_instance(db, instance_id)
    member = await require_trip_member(db, instance.trip_id, user_id, min_role)
    return instance, member


async def get_instance(db: AsyncSession, instance_id: int, user_id: int) -> InstanceResponse:
    instance, _ = await _instance_for_member(db, instance_id, user_id)
    return await instance_out(db, instance, user_id)


async def delete_instance(db: AsyncSession, instance_id: int, user_id: int) -> dict:
    instance, member = await _instance_for_member(db, instance_id, user_id)
    if instance.created_by != user_id and not member.is_organizer:
        logger.warning(f"User {user_id} tried to delete list {instance_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the creator or a trip organizer can delete this list"
        )

    trip_id = instance.trip_id
    await _delete_ticks(db, instance)
    await db.delete(instance)
    log_event(db, "list_instance", instance_id, "LIST_DELETED", by_user_id=user_id, trip_id=trip_id)
    await db.commit()

    logger.info(f"List {instance_id} deleted from trip {trip_id}")
    return {"message": "List deleted successfully"}


async def _fetch_item(db: AsyncSession, list_type: ListType, item_id: int):
    model = get_handler(list_type).instance_item_model
    item = await db.scalar(
        select(model).where(model.id == item_id).execution_options(populate_existing=True)
    )
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found")
    return item


async def toggle_item(db: AsyncSession, list_type: ListType, item_id: int, user_id: int) -> ToggleResponse:
    """
    Per-person items keep one tick per user; shared items carry a single done/packed flag
    that anyone on the trip can flip.
    """
    handler = get_handler(list_type)
    item = await _fetch_item(db, list_type, item_id)
    instance = await fetch_instance(db, item.instance_id)
    await require_trip_member(db, instance.trip_id, user_id, TripRole.MEMBER)

    if item.per_person:
        tick = await db.scalar(
            select(ItemTick).where(
                ItemTick.item_type == list_type, ItemTick.item_id == item_id, ItemTick.user_id == user_id,
            )
        )
        if tick:
            await db.delete(tick)
            done = False
        else:
            db.add(ItemTick(item_type=list_type, item_id=item_id, user_id=user_id))
            done = True
    else:
        done = not handler.is_done(item)
        handler.set_done(item, done, user_id)

    log_event(db, "list_item", item_id, "LIST_ITEM_TOGGLED", by_user_id=user_id, trip_id=instance.trip_id,
              payload={"type": list_type.value, "instance_id": instance.id, "done": done,
                       "per_person": item.per_person})
    await db.commit()
    tick_count = await db.scalar(
        select(func.count(ItemTick.id)).where(ItemTick.item_type == list_type, ItemTick.item_id == item_id)
    )
    logger.info(f"User {user_id} toggled {list_type.value} item {item_id}: done={done}")
    return ToggleResponse(
        item_id=item_id,
        type=list_type,
        per_person=item.per_person,
        done=done,
        tick_count=tick_count or 0,
    )


async def launch_action(db: AsyncSession, item_id: int, user_id: int) -> LaunchActionResponse:
    item: TodoItemInstance = await _fetch_item(db, ListType.TODO, item_id)
    instance = await fetch_instance(db, item.instance_id)
    await require_trip_member(db, instance.trip_id, user_id)

    if not item.action_type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This item has no action")

    if item.action_type == TodoActionType.OPEN_URL:
        href = (item.action_data or {}).get("url")
        if not href:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This item has no URL to open")
    else:
        href = ACTION_PATHS[item.action_type].format(trip_id=instance.trip_id)

    return LaunchActionResponse(item_id=item.id, action_type=item.action_type, href=href)


async def ticks_report(db: AsyncSession, instance_id: int, user_id: int) -> TicksReportResponse:
    instance, _ = await _instance_for_member(db, instance_id, user_id)
    items = list(instance.items)
    ticks = await _ticks_for(db, instance.type, [i.id for i in items])

    rows = []
    for item in items:
        entries = [TickEntry(user_id=t.user_id, name=t.user.name, ticked_at=t.created_at) for t in ticks[item.id]]
        rows.append(ItemTicksRow(item_id=item.id, label=item.label, ticks=entries))
    return TicksReportResponse(instance_id=instance.id, items=rows)
