"""
Tests for snapshot import.
"""

from datetime import datetime, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import event, select, func
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Session

from meshwar.core.exceptions import InvalidInputError
from meshwar.models.activity import Activity
from meshwar.models.booking import Booking
from meshwar.models.category import Category
from meshwar.models.location import Location
from meshwar.models.user import User
from meshwar.schemas.imports import Snapshot
from meshwar.services.booking_service import create_booking
from meshwar.services.import_service import import_snapshot, normalise_snapshot


def snapshot_payload():
    return {
        "categories": {
            "cat1": {"name": "Parks", "createdAt": {"_seconds": 1704067200, "_nanoseconds": 0}},
        },
        "locations": {
            "loc1": {
                "name": "Harbour",
                "address": "Seaside road",
                "coordinates": {"lat": 33.9, "lng": 35.5},
                "categoryId": "cat1",
                "createdAt": "2024-01-02T08:00:00Z",
            },
            "loc2": {
                "name": "Lost Cove",
                "coordinates": {"lat": 34.0, "lng": 35.6},
                "categoryId": "no-such-category",
            },
        },
        "users": {
            "fb_user_1": {
                "email": "maya@meshwar.test",
                "displayName": "Maya",
                "dob": "1995-04-12",
                "createdAt": 1704153600000,
            },
            "fb_user_2": {"email": "omar@meshwar.test", "displayName": "Omar"},
        },
        "activities": {
            "act1": {
                "title": "Harbour kayak",
                "startDate": {"seconds": 1893456000, "nanoseconds": 0},
                "endDate": "2030-01-01T04:00:00Z",
                "startTime": "08:00",
                "locations": ["loc1", "missing-location"],
                "difficulty": "moderate",
                "participantLimit": 10,
                "currentParticipants": 7,
            },
        },
        "bookings": {
            "bk1": {"userId": "fb_user_1", "activityId": "act1", "status": "confirmed"},
            "bk2": {"userId": "fb_user_2", "activityId": "act1"},
            "bk3": {"userId": "ghost", "activityId": "act1"},
        },
    }


async def count_rows(database, model) -> int:
    async with database.session() as session:
        return await session.scalar(select(func.count()).select_from(model))


@pytest.mark.asyncio
async def test_import_snapshot(client: AsyncClient, auth_headers, database):
    response = await client.post(
        "/api/v1/imports/snapshot", json=snapshot_payload(), headers=auth_headers
    )
    assert response.status_code == 200
    result = response.json()
    assert result["categories"] == {"imported": 1, "skipped": 0}
    assert result["locations"] == {"imported": 2, "skipped": 0}
    assert result["users"] == {"imported": 2, "skipped": 0}
    assert result["activities"] == {"imported": 1, "skipped": 0}
    assert result["bookings"] == {"imported": 2, "skipped": 1}

    async with database.session() as session:
        activity = await session.get(Activity, "act1")
        assert activity.start_date == datetime(2030, 1, 1, tzinfo=timezone.utc)
        assert activity.location_ids == ["loc1"]
        # Recounted from bookings, not taken from the snapshot
        assert activity.current_participants == 2

        user = await session.get(User, "fb_user_1")
        assert user.dob.isoformat() == "1995-04-12"
        assert user.created_at == datetime(2024, 1, 2, tzinfo=timezone.utc)
        assert user.hashed_password == ""

        cove = await session.get(Location, "loc2")
        assert cove.category_id is None
        harbour = await session.get(Location, "loc1")
        assert harbour.category_id == "cat1"


@pytest.mark.asyncio
async def test_reimport_skips_existing(database):
    snapshot = Snapshot.model_validate(snapshot_payload())
    await import_snapshot(database, snapshot)

    result = await import_snapshot(database, snapshot)
    assert result.categories.imported == 0
    assert result.users.skipped == 2
    assert result.activities.skipped == 1
    assert result.bookings.skipped == 3

    assert await count_rows(database, Booking) == 2
    async with database.session() as session:
        assert (await session.get(Activity, "act1")).current_participants == 2


@pytest.mark.asyncio
async def test_import_skips_taken_email(database, make_user):
    await make_user("local", email="Maya@meshwar.test")

    result = await import_snapshot(database, Snapshot.model_validate(snapshot_payload()))
    assert result.users.imported == 1
    assert result.users.skipped == 1
    # The booking for the skipped user is an orphan
    assert result.bookings.imported == 1


@pytest.mark.asyncio
async def test_import_booking_onto_existing_activity(database, member, make_activity):
    await make_activity("a1", participant_limit=5)
    snapshot = Snapshot.model_validate({
        "bookings": {"bk9": {"userId": member.id, "activityId": "a1", "status": "pending"}},
    })

    result = await import_snapshot(database, snapshot)
    assert result.bookings.imported == 1
    async with database.session() as session:
        assert (await session.get(Activity, "a1")).current_participants == 1


@pytest.mark.asyncio
async def test_bad_timestamp_rejects_whole_snapshot(client: AsyncClient, auth_headers, database):
    payload = snapshot_payload()
    payload["activities"]["act1"]["endDate"] = "next tuesday"

    response = await client.post("/api/v1/imports/snapshot", json=payload, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"
    assert "act1" in response.json()["detail"]

    assert await count_rows(database, Category) == 0
    assert await count_rows(database, User) == 1  # the admin
    assert await count_rows(database, Booking) == 0


def test_normalise_snapshot_timestamps():
    rows = normalise_snapshot(Snapshot.model_validate(snapshot_payload()))

    assert rows["categories"]["cat1"]["created_at"] == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert rows["locations"]["loc1"]["created_at"] == datetime(2024, 1, 2, 8, tzinfo=timezone.utc)
    assert rows["users"]["fb_user_1"]["created_at"] == datetime(2024, 1, 2, tzinfo=timezone.utc)
    assert rows["activities"]["act1"]["end_date"] == datetime(2030, 1, 1, 4, tzinfo=timezone.utc)
    # updatedAt falls back to createdAt
    assert rows["locations"]["loc1"]["updated_at"] == rows["locations"]["loc1"]["created_at"]


def test_normalise_snapshot_rejects_bad_dob():
    payload = snapshot_payload()
    payload["users"]["fb_user_2"]["dob"] = {"unexpected": True}
    with pytest.raises(InvalidInputError):
        normalise_snapshot(Snapshot.model_validate(payload))


@pytest.mark.asyncio
async def test_import_validation_error(client: AsyncClient, auth_headers):
    payload = {"bookings": {"bk1": {"userId": "u", "activityId": "a", "status": "maybe"}}}
    response = await client.post("/api/v1/imports/snapshot", json=payload, headers=auth_headers)
    assert response.status_code == 422


def limited_activity_payload(bookings):
    return {
        "users": {
            "a": {"email": "a@meshwar.test"},
            "b": {"email": "b@meshwar.test"},
            "c": {"email": "c@meshwar.test"},
        },
        "activities": {
            "small": {
                "title": "Small group hike",
                "startDate": "2030-01-01T08:00:00Z",
                "endDate": "2030-01-01T12:00:00Z",
                "participantLimit": 2,
            },
        },
        "bookings": bookings,
    }


async def active_bookings(database, user_id, activity_id) -> int:
    async with database.session() as session:
        return await session.scalar(
            select(func.count()).select_from(Booking).where(
                Booking.user_id == user_id,
                Booking.activity_id == activity_id,
                Booking.status.in_(["confirmed", "pending"]),
            )
        )


@pytest.mark.asyncio
async def test_import_bookings_respect_participant_limit(database):
    """Bookings past the limit are skipped, and the counter never exceeds it."""
    snapshot = Snapshot.model_validate(limited_activity_payload({
        "bk1": {"userId": "a", "activityId": "small", "status": "confirmed"},
        "bk2": {"userId": "b", "activityId": "small", "status": "cancelled"},
        "bk3": {"userId": "c", "activityId": "small", "status": "pending"},
    }))

    result = await import_snapshot(database, snapshot)
    assert result.bookings.imported == 2
    assert result.bookings.skipped == 1

    async with database.session() as session:
        activity = await session.get(Activity, "small")
        assert activity.current_participants == 2
        assert await session.get(Booking, "bk3") is None


@pytest.mark.asyncio
async def test_import_rejects_second_active_booking_for_user(database):
    snapshot = Snapshot.model_validate(limited_activity_payload({
        "bk1": {"userId": "a", "activityId": "small", "status": "confirmed"},
        "bk2": {"userId": "a", "activityId": "small", "status": "pending"},
        "bk3": {"userId": "b", "activityId": "small", "status": "pending"},
    }))

    result = await import_snapshot(database, snapshot)
    assert result.bookings.imported == 2
    assert result.bookings.skipped == 1
    assert await active_bookings(database, "a", "small") == 1
    async with database.session() as session:
        assert (await session.get(Activity, "small")).current_participants == 2


@pytest.mark.asyncio
async def test_import_allows_cancelled_alongside_active(database):
    snapshot = Snapshot.model_validate(limited_activity_payload({
        "bk1": {"userId": "a", "activityId": "small", "status": "cancelled"},
        "bk2": {"userId": "a", "activityId": "small", "status": "pending"},
    }))

    result = await import_snapshot(database, snapshot)
    assert result.bookings.imported == 2
    assert await active_bookings(database, "a", "small") == 1


@pytest.mark.asyncio
async def test_import_counts_existing_bookings(database, member, other_member, make_activity):
    """Bookings already admitted take places and block duplicates."""
    await make_activity("a1", participant_limit=2)
    await create_booking(database, member.id, "a1")
    snapshot = Snapshot.model_validate({
        "bookings": {
            "bk1": {"userId": member.id, "activityId": "a1", "status": "confirmed"},
            "bk2": {"userId": other_member.id, "activityId": "a1", "status": "pending"},
            "bk3": {"userId": other_member.id, "activityId": "a1", "status": "cancelled"},
        },
    })

    result = await import_snapshot(database, snapshot)
    assert result.bookings.imported == 1
    assert result.bookings.skipped == 2
    assert await active_bookings(database, member.id, "a1") == 1
    async with database.session() as session:
        assert (await session.get(Activity, "a1")).current_participants == 2


@pytest.mark.asyncio
async def test_import_locks_activities_before_recount(database, member, make_activity):
    """Activities receiving bookings are read FOR UPDATE before the counter is rewritten."""
    await make_activity("a1", participant_limit=5)
    statements = []

    def capture(orm_execute_state):
        statements.append(str(orm_execute_state.statement.compile(dialect=postgresql.dialect())))

    event.listen(Session, "do_orm_execute", capture)
    try:
        await import_snapshot(database, Snapshot.model_validate({
            "bookings": {"bk1": {"userId": member.id, "activityId": "a1"}},
        }))
    finally:
        event.remove(Session, "do_orm_execute", capture)

    lock = next(i for i, sql in enumerate(statements) if "FOR UPDATE" in sql)
    assert "activities" in statements[lock]
    recount = next(i for i, sql in enumerate(statements) if sql.startswith("UPDATE activities"))
    assert lock < recount


@pytest.mark.asyncio
async def test_out_of_range_timestamp_rejects_snapshot(client: AsyncClient, auth_headers, database):
    payload = snapshot_payload()
    payload["categories"]["cat1"]["createdAt"] = {"_seconds": 10**12, "_nanoseconds": 0}

    response = await client.post("/api/v1/imports/snapshot", json=payload, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"
    assert await count_rows(database, Category) == 0
