"""
Activity service handling CRUD operations.

`current_participants` is owned by booking_service: it is set to 0 when an
activity is created and is never written from here afterwards.

Expiry is derived from `end_date`. Reads flag activities whose end date has
passed and persist the flag, so dashboard counts of active activities stay
correct without a background job.
"""

from typing import Optional

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.db.session import Database
from meshwar.db.transaction import run_transaction
from meshwar.models.activity import Activity
from meshwar.models.booking import Booking
from meshwar.schemas.activity import ActivityCreate, ActivityUpdate
from meshwar.services.location_service import get_locations_by_ids
from meshwar.core.exceptions import InvalidInputError, NotFoundError
from meshwar.core.timestamps import ensure_utc, utcnow
from meshwar.core.logging import get_logger

logger = get_logger(__name__)


async def mark_expired_activities(db: AsyncSession) -> int:
    """Flag every activity whose end date has passed. Returns rows changed."""
    result = await db.execute(
        update(Activity)
        .where(Activity.end_date < utcnow(), Activity.is_expired.is_(False))
        .values(is_expired=True)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount:
        logger.info("activities_marked_expired", count=result.rowcount)
    return result.rowcount


async def list_activities(db: AsyncSession, limit: Optional[int] = None) -> list[Activity]:
    await mark_expired_activities(db)

    query = select(Activity).order_by(Activity.created_at.desc())
    if limit:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_activity(db: AsyncSession, activity_id: str) -> Activity:
    activity = await db.get(Activity, activity_id)
    if not activity:
        raise NotFoundError(f"Activity {activity_id} not found")

    if not activity.is_expired and activity.end_date < utcnow():
        activity.is_expired = True
        await db.commit()
        logger.info("activity_marked_expired", activity_id=activity_id)
    return activity


async def create_activity(db: AsyncSession, data: ActivityCreate) -> Activity:
    fields = data.model_dump(exclude={"location_ids", "difficulty", "age_group"})
    fields["start_date"] = ensure_utc(data.start_date)
    fields["end_date"] = ensure_utc(data.end_date)

    activity = Activity(
        **fields,
        difficulty=data.difficulty.value,
        age_group=data.age_group.value,
        is_expired=fields["end_date"] < utcnow(),
        current_participants=0,
    )
    activity.locations = await get_locations_by_ids(db, data.location_ids)
    db.add(activity)
    await db.commit()

    logger.info(
        "activity_created",
        activity_id=activity.id,
        title=activity.title,
        participant_limit=activity.participant_limit,
    )
    return activity


async def update_activity(db: AsyncSession, activity_id: str, data: ActivityUpdate) -> Activity:
    activity = await get_activity(db, activity_id)
    changes = data.model_dump(exclude_unset=True)

    location_ids = changes.pop("location_ids", None)
    if location_ids is not None:
        activity.locations = await get_locations_by_ids(db, location_ids)

    for field in ("start_date", "end_date"):
        if changes.get(field) is not None:
            changes[field] = ensure_utc(changes[field])
    for field in ("difficulty", "age_group"):
        if changes.get(field) is not None:
            changes[field] = changes[field].value

    start_date = changes.get("start_date") or activity.start_date
    end_date = changes.get("end_date") or activity.end_date
    if end_date < start_date:
        raise InvalidInputError("end_date must not be before start_date")
    if "end_date" in changes:
        changes["is_expired"] = end_date < utcnow()

    for field, value in changes.items():
        if value is not None:
            setattr(activity, field, value)
    await db.commit()

    logger.info("activity_updated", activity_id=activity_id, fields=sorted(changes))
    return activity


async def set_activity_active(db: AsyncSession, activity_id: str, is_active: bool) -> Activity:
    activity = await get_activity(db, activity_id)
    activity.is_active = is_active
    await db.commit()

    logger.info("activity_status_changed", activity_id=activity_id, is_active=is_active)
    return activity


async def delete_activity(database: Database, activity_id: str) -> int:
    """
    Delete an activity and all of its bookings. Returns bookings removed.
    The activity row is locked first so no admission can add a booking
    between the two deletes.
    """

    async def remove(session: AsyncSession) -> int:
        activity = (
            await session.execute(
                select(Activity)
                .where(Activity.id == activity_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if not activity:
            raise NotFoundError(f"Activity {activity_id} not found")

        result = await session.execute(delete(Booking).where(Booking.activity_id == activity_id))
        await session.delete(activity)
        return result.rowcount

    removed = await run_transaction(database, remove, name="delete_activity")
    logger.info("activity_deleted", activity_id=activity_id, bookings_removed=removed)
    return removed
