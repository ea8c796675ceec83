"""
Category service handling CRUD operations.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.models.category import Category
from meshwar.models.location import Location
from meshwar.schemas.category import CategoryCreate, CategoryUpdate
from meshwar.core.exceptions import NotFoundError
from meshwar.core.logging import get_logger

logger = get_logger(__name__)


async def list_categories(db: AsyncSession) -> list[Category]:
    result = await db.execute(select(Category).order_by(Category.created_at.desc()))
    return list(result.scalars().all())


async def get_category(db: AsyncSession, category_id: str) -> Category:
    category = await db.get(Category, category_id)
    if not category:
        raise NotFoundError(f"Category {category_id} not found")
    return category


async def create_category(db: AsyncSession, data: CategoryCreate) -> Category:
    category = Category(**data.model_dump())
    db.add(category)
    await db.commit()

    logger.info("category_created", category_id=category.id, name=category.name)
    return category


async def update_category(db: AsyncSession, category_id: str, data: CategoryUpdate) -> Category:
    category = await get_category(db, category_id)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(category, field, value)
    await db.commit()

    logger.info("category_updated", category_id=category_id)
    return category


async def set_category_active(db: AsyncSession, category_id: str, is_active: bool) -> Category:
    category = await get_category(db, category_id)
    category.is_active = is_active
    await db.commit()

    logger.info("category_status_changed", category_id=category_id, is_active=is_active)
    return category


async def delete_category(db: AsyncSession, category_id: str) -> None:
    """Delete a category. Locations filed under it become uncategorised."""
    category = await get_category(db, category_id)
    await db.execute(
        update(Location)
        .where(Location.category_id == category_id)
        .values(category_id=None)
    )
    await db.delete(category)
    await db.commit()

    logger.info("category_deleted", category_id=category_id)
