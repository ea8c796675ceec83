"""
Snapshot import: load a JSON export of the document collections, keeping
document ids.

The import runs in two phases. First every document is normalised
(timestamps through parse_timestamp) without touching the database, so a
malformed snapshot is rejected before anything is written. Then all rows are
written in one transaction. Documents whose id already exists are skipped,
as are documents whose references cannot be resolved.

Bookings follow the admission rules: a booking that would take an activity
past a positive participant_limit, or give a user a second confirmed or
pending booking on the same activity, is skipped. Existing bookings count
towards both rules, and the affected activities are row-locked for the whole
write so concurrent admissions wait for the import.

Participant counters are not taken from the snapshot: for every activity the
import touches, current_participants is recomputed from its bookings.
"""

from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.db.session import Database
from meshwar.db.transaction import run_transaction
from meshwar.models.activity import Activity
from meshwar.models.booking import Booking, ACTIVE_BOOKING_STATUSES
from meshwar.models.category import Category
from meshwar.models.location import Location
from meshwar.models.user import User
from meshwar.schemas.imports import ImportResult, Snapshot
from meshwar.core.config import get_settings
from meshwar.core.exceptions import InvalidInputError
from meshwar.core.metrics import record_counter_drift
from meshwar.core.timestamps import UnrecognizedTimestampError, to_datetime, utcnow
from meshwar.core.logging import get_logger

logger = get_logger(__name__)


def _timestamp(raw: Any, collection: str, doc_id: str, field: str) -> datetime:
    try:
        return to_datetime(raw)
    except UnrecognizedTimestampError as exc:
        raise InvalidInputError(f"{collection}/{doc_id}: unrecognised {field} value {exc.value!r}")


def _optional_timestamp(raw: Any, collection: str, doc_id: str, field: str) -> Optional[datetime]:
    if raw is None:
        return None
    return _timestamp(raw, collection, doc_id, field)


def _audit_fields(doc, collection: str, doc_id: str) -> dict:
    created_at = _optional_timestamp(doc.created_at, collection, doc_id, "createdAt") or utcnow()
    updated_at = _optional_timestamp(doc.updated_at, collection, doc_id, "updatedAt") or created_at
    return {"created_at": created_at, "updated_at": updated_at}


def normalise_snapshot(snapshot: Snapshot) -> dict[str, dict[str, dict]]:
    """Convert documents into column values. Raises InvalidInputError."""
    rows: dict[str, dict[str, dict]] = {name: {} for name in Snapshot.model_fields}

    for doc_id, doc in snapshot.categories.items():
        rows["categories"][doc_id] = {
            "id": doc_id,
            "name": doc.name,
            "description": doc.description,
            "is_active": doc.is_active,
            **_audit_fields(doc, "categories", doc_id),
        }

    for doc_id, doc in snapshot.locations.items():
        rows["locations"][doc_id] = {
            "id": doc_id,
            "name": doc.name,
            "description": doc.description,
            "address": doc.address,
            "lat": doc.coordinates.lat,
            "lng": doc.coordinates.lng,
            "category_id": doc.category_id or None,
            "icon": doc.icon,
            "images": doc.images,
            "is_active": doc.is_active,
            **_audit_fields(doc, "locations", doc_id),
        }

    for doc_id, doc in snapshot.users.items():
        dob: Optional[date] = None
        if doc.dob is not None:
            dob = _timestamp(doc.dob, "users", doc_id, "dob").date()
        rows["users"][doc_id] = {
            "id": doc_id,
            "email": doc.email,
            "display_name": doc.display_name,
            "role": doc.role,
            "dob": dob,
            "profile_image": doc.profile_image,
            **_audit_fields(doc, "users", doc_id),
        }

    for doc_id, doc in snapshot.activities.items():
        rows["activities"][doc_id] = {
            "id": doc_id,
            "title": doc.title,
            "description": doc.description,
            "start_date": _timestamp(doc.start_date, "activities", doc_id, "startDate"),
            "end_date": _timestamp(doc.end_date, "activities", doc_id, "endDate"),
            "start_time": doc.start_time,
            "end_time": doc.end_time,
            "location_ids": list(doc.locations),
            "is_active": doc.is_active,
            "is_expired": doc.is_expired,
            "difficulty": doc.difficulty,
            "age_group": doc.age_group,
            "estimated_duration": doc.estimated_duration,
            "estimated_cost": doc.estimated_cost,
            "tags": doc.tags,
            "participant_limit": doc.participant_limit,
            "snapshot_participants": doc.current_participants,
            **_audit_fields(doc, "activities", doc_id),
        }

    for doc_id, doc in snapshot.bookings.items():
        rows["bookings"][doc_id] = {
            "id": doc_id,
            "user_id": doc.user_id,
            "activity_id": doc.activity_id,
            "status": doc.status,
            **_audit_fields(doc, "bookings", doc_id),
        }

    return rows


async def _existing_ids(session: AsyncSession, model, ids) -> set[str]:
    if not ids:
        return set()
    result = await session.execute(select(model.id).where(model.id.in_(list(ids))))
    return set(result.scalars().all())


async def _write_snapshot(session: AsyncSession, rows: dict[str, dict[str, dict]]) -> tuple[ImportResult, set[str]]:
    result = ImportResult()

    existing = await _existing_ids(session, Category, rows["categories"])
    for doc_id, values in rows["categories"].items():
        if doc_id in existing:
            result.categories.skipped += 1
            continue
        session.add(Category(**values))
        result.categories.imported += 1
    await session.flush()

    existing = await _existing_ids(session, Location, rows["locations"])
    known_categories = await _existing_ids(
        session, Category, {v["category_id"] for v in rows["locations"].values() if v["category_id"]}
    )
    for doc_id, values in rows["locations"].items():
        if doc_id in existing:
            result.locations.skipped += 1
            continue
        if values["category_id"] and values["category_id"] not in known_categories:
            logger.warning("import_unknown_category", location_id=doc_id, category_id=values["category_id"])
            values = {**values, "category_id": None}
        session.add(Location(**values))
        result.locations.imported += 1
    await session.flush()

    existing = await _existing_ids(session, User, rows["users"])
    taken_emails = set(
        (await session.execute(select(func.lower(User.email)))).scalars().all()
    )
    for doc_id, values in rows["users"].items():
        email = values["email"].lower()
        if doc_id in existing or email in taken_emails:
            result.users.skipped += 1
            continue
        taken_emails.add(email)
        session.add(User(**values))
        result.users.imported += 1
    await session.flush()

    existing = await _existing_ids(session, Activity, rows["activities"])
    wanted_locations = {lid for v in rows["activities"].values() for lid in v["location_ids"]}
    locations = {}
    if wanted_locations:
        found = await session.execute(select(Location).where(Location.id.in_(list(wanted_locations))))
        locations = {location.id: location for location in found.scalars().all()}

    touched: set[str] = set()
    snapshot_counts: dict[str, Optional[int]] = {}
    for doc_id, values in rows["activities"].items():
        if doc_id in existing:
            result.activities.skipped += 1
            continue
        values = dict(values)
        location_ids = values.pop("location_ids")
        snapshot_counts[doc_id] = values.pop("snapshot_participants")
        activity = Activity(**values, current_participants=0)
        activity.locations = [locations[lid] for lid in dict.fromkeys(location_ids) if lid in locations]
        session.add(activity)
        touched.add(doc_id)
        result.activities.imported += 1
    await session.flush()

    existing = await _existing_ids(session, Booking, rows["bookings"])
    known_users = await _existing_ids(session, User, {v["user_id"] for v in rows["bookings"].values()})
    limits = await _lock_activities(
        session, touched | {v["activity_id"] for v in rows["bookings"].values()}
    )
    places, active_pairs = await _booking_occupancy(session, set(limits))

    for doc_id, values in rows["bookings"].items():
        if doc_id in existing:
            result.bookings.skipped += 1
            continue
        user_id, activity_id = values["user_id"], values["activity_id"]
        if user_id not in known_users or activity_id not in limits:
            logger.warning(
                "import_orphan_booking",
                booking_id=doc_id,
                user_id=user_id,
                activity_id=activity_id,
            )
            result.bookings.skipped += 1
            continue

        limit = limits[activity_id] or 0
        active = values["status"] in ACTIVE_BOOKING_STATUSES
        reason = None
        if limit > 0 and places.get(activity_id, 0) >= limit:
            reason = "capacity"
        elif active and (user_id, activity_id) in active_pairs:
            reason = "duplicate"
        if reason:
            logger.warning(
                "import_booking_rejected",
                booking_id=doc_id,
                user_id=user_id,
                activity_id=activity_id,
                reason=reason,
            )
            result.bookings.skipped += 1
            continue

        session.add(Booking(**values))
        places[activity_id] = places.get(activity_id, 0) + 1
        if active:
            active_pairs.add((user_id, activity_id))
        touched.add(activity_id)
        result.bookings.imported += 1
    await session.flush()

    await _recount_participants(session, touched, snapshot_counts)
    return result, touched


async def _lock_activities(session: AsyncSession, activity_ids: set[str]) -> dict[str, int]:
    """Row-lock the given activities and return their participant limits."""
    if not activity_ids:
        return {}
    found = await session.execute(
        select(Activity.id, Activity.participant_limit)
        .where(Activity.id.in_(list(activity_ids)))
        .with_for_update()
    )
    return dict(found.all())


async def _booking_occupancy(
    session: AsyncSession, activity_ids: set[str]
) -> tuple[dict[str, int], set[tuple[str, str]]]:
    """Places taken per activity (any status) and the active (user, activity) pairs."""
    if not activity_ids:
        return {}, set()
    found = await session.execute(
        select(Booking.user_id, Booking.activity_id, Booking.status)
        .where(Booking.activity_id.in_(list(activity_ids)))
    )
    places: dict[str, int] = {}
    active_pairs: set[tuple[str, str]] = set()
    for user_id, activity_id, status in found.all():
        places[activity_id] = places.get(activity_id, 0) + 1
        if status in ACTIVE_BOOKING_STATUSES:
            active_pairs.add((user_id, activity_id))
    return places, active_pairs


async def _recount_participants(
    session: AsyncSession,
    activity_ids: set[str],
    snapshot_counts: dict[str, Optional[int]],
) -> None:
    # Callers hold the row locks from _lock_activities
    if not activity_ids:
        return
    counts = dict(
        (
            await session.execute(
                select(Booking.activity_id, func.count())
                .where(Booking.activity_id.in_(list(activity_ids)))
                .group_by(Booking.activity_id)
            )
        ).all()
    )
    for activity_id in activity_ids:
        count = counts.get(activity_id, 0)
        claimed = snapshot_counts.get(activity_id)
        if claimed is not None and claimed != count:
            logger.warning(
                "import_participant_counter_drift",
                activity_id=activity_id,
                snapshot=claimed,
                bookings=count,
            )
            record_counter_drift("import")
        await session.execute(
            update(Activity)
            .where(Activity.id == activity_id)
            .values(current_participants=count, version=Activity.version + 1)
            .execution_options(synchronize_session=False)
        )


async def import_snapshot(database: Database, snapshot: Snapshot) -> ImportResult:
    rows = normalise_snapshot(snapshot)

    async def write(session: AsyncSession) -> tuple[ImportResult, set[str]]:
        return await _write_snapshot(session, rows)

    result, touched = await run_transaction(
        database, write, timeout=get_settings().IMPORT_TXN_TIMEOUT_SECONDS, name="import_snapshot"
    )
    logger.info(
        "snapshot_imported",
        activities_recounted=len(touched),
        **{name: counts.imported for name, counts in result},
    )
    return result
