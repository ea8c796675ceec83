"""
Location service handling CRUD operations.
"""

from typing import Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.models.activity import activity_locations
from meshwar.models.location import Location
from meshwar.schemas.location import LocationCreate, LocationUpdate
from meshwar.services.category_service import get_category
from meshwar.core.exceptions import NotFoundError
from meshwar.core.logging import get_logger

logger = get_logger(__name__)


async def list_locations(db: AsyncSession, limit: Optional[int] = None) -> list[Location]:
    query = select(Location).order_by(Location.created_at.desc())
    if limit:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_locations_by_category(db: AsyncSession, category_id: str) -> list[Location]:
    await get_category(db, category_id)
    result = await db.execute(
        select(Location)
        .where(Location.category_id == category_id)
        .order_by(Location.created_at.desc())
    )
    return list(result.scalars().all())


async def get_location(db: AsyncSession, location_id: str) -> Location:
    location = await db.get(Location, location_id)
    if not location:
        raise NotFoundError(f"Location {location_id} not found")
    return location


async def get_locations_by_ids(db: AsyncSession, location_ids: list[str]) -> list[Location]:
    """Resolve location ids, preserving order. Unknown ids raise NotFoundError."""
    if not location_ids:
        return []
    result = await db.execute(select(Location).where(Location.id.in_(location_ids)))
    found = {location.id: location for location in result.scalars().all()}
    missing = [location_id for location_id in location_ids if location_id not in found]
    if missing:
        raise NotFoundError(f"Locations not found: {', '.join(missing)}")
    # dict.fromkeys drops repeated ids while keeping order
    return [found[location_id] for location_id in dict.fromkeys(location_ids)]


async def create_location(db: AsyncSession, data: LocationCreate) -> Location:
    if data.category_id:
        await get_category(db, data.category_id)

    location = Location(**data.model_dump())
    db.add(location)
    await db.commit()
    await db.refresh(location, attribute_names=["category"])

    logger.info("location_created", location_id=location.id, name=location.name)
    return location


async def update_location(db: AsyncSession, location_id: str, data: LocationUpdate) -> Location:
    location = await get_location(db, location_id)
    changes = data.model_dump(exclude_unset=True)
    if changes.get("category_id"):
        await get_category(db, changes["category_id"])

    for field, value in changes.items():
        setattr(location, field, value)
    await db.commit()
    if "category_id" in changes:
        await db.refresh(location, attribute_names=["category"])

    logger.info("location_updated", location_id=location_id, fields=sorted(changes))
    return location


async def set_location_active(db: AsyncSession, location_id: str, is_active: bool) -> Location:
    location = await get_location(db, location_id)
    location.is_active = is_active
    await db.commit()

    logger.info("location_status_changed", location_id=location_id, is_active=is_active)
    return location


async def delete_location(db: AsyncSession, location_id: str) -> None:
    """Delete a location and detach it from any activity that referenced it."""
    location = await get_location(db, location_id)
    await db.execute(
        delete(activity_locations).where(activity_locations.c.location_id == location_id)
    )
    await db.delete(location)
    await db.commit()

    logger.info("location_deleted", location_id=location_id)
