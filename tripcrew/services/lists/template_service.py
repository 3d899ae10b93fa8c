from datetime import datetime
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from tripcrew.core.logger import logger
from tripcrew.models.lists.list_models import ListTemplate, TemplateVisibility
from tripcrew.schemas.lists.list_schema import TemplateCreate, TemplateUpdate, ListItemIn
from tripcrew.services.lists.list_handlers import get_handler


async def fetch_template(db: AsyncSession, template_id: int) -> ListTemplate:
    template = await db.scalar(
        select(ListTemplate).where(ListTemplate.id == template_id).execution_options(populate_existing=True)
    )
    if not template:
        logger.warning(f"List template {template_id} not found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return template


def _ensure_owner(template: ListTemplate, user_id: int) -> None:
    if template.owner_id != user_id:
        logger.warning(f"User {user_id} tried to modify template {template.id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner can modify this template")


def _add_items(db: AsyncSession, template: ListTemplate, items: List[ListItemIn]) -> None:
    handler = get_handler(template.type)
    for index, data in enumerate(items):
        db.add(handler.build_template_item(template.id, data, index))


async def create_template(db: AsyncSession, data: TemplateCreate, user_id: int) -> ListTemplate:
    template = ListTemplate(
        owner_id=user_id,
        type=data.type,
        title=data.title,
        description=data.description,
        tags=data.tags,
        visibility=TemplateVisibility.PRIVATE,
    )
    db.add(template)
    await db.flush()
    _add_items(db, template, data.items)
    await db.commit()

    logger.info(f"User {user_id} created {data.type.value} template {template.id} with {len(data.items)} items")
    return await fetch_template(db, template.id)


async def list_my_templates(db: AsyncSession, user_id: int) -> List[ListTemplate]:
    result = await db.execute(
        select(ListTemplate)
        .where(ListTemplate.owner_id == user_id)
        .order_by(ListTemplate.updated_at.desc(), ListTemplate.id.desc())
    )
    return result.scalars().all()


async def browse_public_templates(db: AsyncSession, query: Optional[str] = None, tag: Optional[str] = None,
                                  list_type=None) -> List[ListTemplate]:
    stmt = select(ListTemplate).where(ListTemplate.visibility == TemplateVisibility.PUBLIC)
    if query:
        stmt = stmt.where(ListTemplate.title.ilike(f"%{query}%"))
    if list_type:
        stmt = stmt.where(ListTemplate.type == list_type)
    result = await db.execute(stmt.order_by(ListTemplate.published_at.desc(), ListTemplate.id.desc()))
    templates = result.scalars().all()

    if tag:
        wanted = tag.strip().lower()
        templates = [t for t in templates if wanted in [x.lower() for x in (t.tags or [])]]
    return templates


async def get_template(db: AsyncSession, template_id: int, user_id: int) -> ListTemplate:
    template = await fetch_template(db, template_id)
    if template.owner_id != user_id and template.visibility != TemplateVisibility.PUBLIC:
        # private templates are invisible to everyone but the owner
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    return template


async def update_template(db: AsyncSession, template_id: int, data: TemplateUpdate, user_id: int) -> ListTemplate:
    template = await fetch_template(db, template_id)
    _ensure_owner(template, user_id)

    update_data = data.model_dump(exclude_unset=True, exclude={"items"})
    for field, value in update_data.items():
        if value is None and field in ("title", "tags"):
            continue
        setattr(template, field, value)

    if data.items is not None:
        for item in list(template.items):
            await db.delete(item)
        await db.flush()
        _add_items(db, template, data.items)

    template.updated_at = datetime.utcnow()
    await db.commit()
    logger.info(f"Template {template_id} updated by user {user_id}")
    return await fetch_template(db, template_id)


async def set_published(db: AsyncSession, template_id: int, user_id: int, published: bool) -> ListTemplate:
    template = await fetch_template(db, template_id)
    _ensure_owner(template, user_id)

    if published:
        template.visibility = TemplateVisibility.PUBLIC
        template.published_at = datetime.utcnow()
    else:
        template.visibility = TemplateVisibility.PRIVATE
        template.published_at = None
    await db.commit()

    logger.info(f"Template {template_id} {'published' if published else 'unpublished'}")
    return await fetch_template(db, template_id)


async def fork_template(db: AsyncSession, template_id: int, user_id: int) -> ListTemplate:
    source = await get_template(db, template_id, user_id)
    handler = get_handler(source.type)

    fork = ListTemplate(
        owner_id=user_id,
        type=source.type,
        title=f"{source.title} (copy)",
        description=source.description,
        tags=list(source.tags or []),
        visibility=TemplateVisibility.PRIVATE,
        forked_from_id=source.id,
    )
    db.add(fork)
    await db.flush()
    for item in source.items:
        db.add(handler.copy_to_template(fork.id, item))
    await db.commit()

    logger.info(f"User {user_id} forked template {template_id} into {fork.id}")
    return await fetch_template(db, fork.id)


async def delete_template(db: AsyncSession, template_id: int, user_id: int) -> dict:
    template = await fetch_template(db, template_id)
    _ensure_owner(template, user_id)

    await db.delete(template)
    await db.commit()
    logger.info(f"Template {template_id} deleted by user {user_id}")
    return {"message": "Template deleted successfully"}
