"""
Tests for booking admission, release and the participant counter,
including concurrency scenarios.
"""

import asyncio

import pytest
from httpx import AsyncClient
from sqlalchemy import select, func

from conftest import add_rows
from meshwar.core.exceptions import (
    CapacityExceededError,
    ConflictError,
    DuplicateBookingError,
    InvalidInputError,
    NotFoundError,
    TransactionConflict,
    TransientError,
)
from meshwar.models.booking import Booking
from meshwar.services import booking_service


async def count_bookings(database, activity_id: str) -> int:
    async with database.session() as session:
        return await session.scalar(
            select(func.count()).select_from(Booking).where(Booking.activity_id == activity_id)
        )


@pytest.mark.asyncio
async def test_create_booking(client: AsyncClient, auth_headers, member, make_activity, load_activity):
    """Successful booking takes one place on the activity."""
    await make_activity("a1", participant_limit=5)

    response = await client.post(
        "/api/v1/bookings/",
        json={"user_id": member.id, "activity_id": "a1", "status": "confirmed"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["user_id"] == member.id
    assert data["activity_id"] == "a1"
    assert data["status"] == "confirmed"

    activity = await load_activity("a1")
    assert activity.current_participants == 1


@pytest.mark.asyncio
async def test_create_booking_defaults_to_pending(client: AsyncClient, auth_headers, member, make_activity):
    await make_activity("a1")
    response = await client.post(
        "/api/v1/bookings/",
        json={"user_id": member.id, "activity_id": "a1"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    assert response.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_booking_full_activity(client: AsyncClient, auth_headers, member, make_activity):
    """Booking a full activity returns 409 capacity_exceeded."""
    await make_activity("a1", participant_limit=2, current_participants=2)

    response = await client.post(
        "/api/v1/bookings/",
        json={"user_id": member.id, "activity_id": "a1"},
        headers=auth_headers,
    )
    assert response.status_code == 409
    assert response.json()["error"] == "capacity_exceeded"


@pytest.mark.asyncio
async def test_duplicate_booking(client: AsyncClient, auth_headers, member, make_activity, load_activity):
    """Same user booking the same activity twice returns 409."""
    await make_activity("a1")
    payload = {"user_id": member.id, "activity_id": "a1", "status": "confirmed"}

    response1 = await client.post("/api/v1/bookings/", json=payload, headers=auth_headers)
    assert response1.status_code == 201

    response2 = await client.post("/api/v1/bookings/", json=payload, headers=auth_headers)
    assert response2.status_code == 409
    assert response2.json()["error"] == "duplicate_booking"

    activity = await load_activity("a1")
    assert activity.current_participants == 1


@pytest.mark.asyncio
async def test_booking_unknown_activity(client: AsyncClient, auth_headers, member):
    response = await client.post(
        "/api/v1/bookings/",
        json={"user_id": member.id, "activity_id": "missing"},
        headers=auth_headers,
    )
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_booking_unknown_user(client: AsyncClient, auth_headers, make_activity, load_activity):
    await make_activity("a1")
    response = await client.post(
        "/api/v1/bookings/",
        json={"user_id": "nobody", "activity_id": "a1"},
        headers=auth_headers,
    )
    assert response.status_code == 404

    activity = await load_activity("a1")
    assert activity.current_participants == 0


@pytest.mark.asyncio
async def test_booking_invalid_status(client: AsyncClient, auth_headers, member, make_activity):
    await make_activity("a1")
    response = await client.post(
        "/api/v1/bookings/",
        json={"user_id": member.id, "activity_id": "a1", "status": "maybe"},
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_booking_cannot_start_cancelled(client: AsyncClient, auth_headers, member, make_activity):
    await make_activity("a1")
    response = await client.post(
        "/api/v1/bookings/",
        json={"user_id": member.id, "activity_id": "a1", "status": "cancelled"},
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_input"


@pytest.mark.asyncio
async def test_last_place_released_by_delete(
    client: AsyncClient, auth_headers, member, other_member, make_activity, load_activity
):
    """With one place: first user wins, second is refused until the booking is deleted."""
    await make_activity("a1", participant_limit=1)

    first = await client.post(
        "/api/v1/bookings/",
        json={"user_id": member.id, "activity_id": "a1", "status": "confirmed"},
        headers=auth_headers,
    )
    assert first.status_code == 201

    refused = await client.post(
        "/api/v1/bookings/",
        json={"user_id": other_member.id, "activity_id": "a1", "status": "confirmed"},
        headers=auth_headers,
    )
    assert refused.status_code == 409
    assert refused.json()["error"] == "capacity_exceeded"

    deleted = await client.delete(f"/api/v1/bookings/{first.json()['id']}", headers=auth_headers)
    assert deleted.status_code == 200
    assert deleted.json() == {
        "message": "Booking deleted successfully",
        "booking_id": first.json()["id"],
    }
    assert (await load_activity("a1")).current_participants == 0

    admitted = await client.post(
        "/api/v1/bookings/",
        json={"user_id": other_member.id, "activity_id": "a1", "status": "confirmed"},
        headers=auth_headers,
    )
    assert admitted.status_code == 201
    assert (await load_activity("a1")).current_participants == 1


@pytest.mark.asyncio
async def test_unlimited_activity(database, make_user, make_activity, load_activity):
    """participant_limit = 0 never refuses on capacity."""
    await make_activity("a1", participant_limit=0)
    for i in range(12):
        user = await make_user(f"u{i}")
        await booking_service.create_booking(database, user.id, "a1")

    assert (await load_activity("a1")).current_participants == 12


@pytest.mark.asyncio
async def test_delete_unknown_booking(client: AsyncClient, auth_headers):
    response = await client.delete("/api/v1/bookings/missing", headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_counter_tracks_creates_minus_deletes(database, make_user, make_activity, load_activity):
    await make_activity("a1")
    bookings = []
    for i in range(5):
        user = await make_user(f"u{i}")
        bookings.append(await booking_service.create_booking(database, user.id, "a1"))

    for booking in bookings[:2]:
        await booking_service.delete_booking(database, booking.id)

    activity = await load_activity("a1")
    assert activity.current_participants == 3
    assert await count_bookings(database, "a1") == 3


@pytest.mark.asyncio
async def test_delete_with_counter_at_zero(database, member, make_activity, load_activity):
    """A booking deleted while the counter is already 0 leaves it at 0."""
    await make_activity("a1", current_participants=0)
    booking = Booking(id="b1", user_id=member.id, activity_id="a1", status="confirmed")
    await add_rows(database, booking)

    await booking_service.delete_booking(database, "b1")

    assert (await load_activity("a1")).current_participants == 0
    assert await count_bookings(database, "a1") == 0


@pytest.mark.asyncio
async def test_status_change_keeps_place(
    client: AsyncClient, auth_headers, member, make_activity, load_activity
):
    """Cancelling a booking does not free its place; deleting it does."""
    await make_activity("a1", participant_limit=2)
    created = await client.post(
        "/api/v1/bookings/",
        json={"user_id": member.id, "activity_id": "a1", "status": "confirmed"},
        headers=auth_headers,
    )
    booking_id = created.json()["id"]

    response = await client.patch(
        f"/api/v1/bookings/{booking_id}/status",
        json={"status": "cancelled"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert (await load_activity("a1")).current_participants == 1

    # A cancelled booking is not active, so the user may book again
    rebooked = await client.post(
        "/api/v1/bookings/",
        json={"user_id": member.id, "activity_id": "a1"},
        headers=auth_headers,
    )
    assert rebooked.status_code == 201
    assert (await load_activity("a1")).current_participants == 2


@pytest.mark.asyncio
async def test_status_change_unknown_booking(client: AsyncClient, auth_headers):
    response = await client.patch(
        "/api/v1/bookings/missing/status",
        json={"status": "confirmed"},
        headers=auth_headers,
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_failure_after_insert_rolls_back(database, member, make_activity, load_activity, monkeypatch):
    """An error between insert and counter update leaves no booking behind."""
    await make_activity("a1", participant_limit=5)

    async def broken_increment(session, activity):
        raise RuntimeError("boom")

    monkeypatch.setattr(booking_service, "_increment_participants", broken_increment)

    with pytest.raises(RuntimeError):
        await booking_service.create_booking(database, member.id, "a1")

    assert await count_bookings(database, "a1") == 0
    assert (await load_activity("a1")).current_participants == 0


@pytest.mark.asyncio
async def test_conflict_is_retried(database, member, make_activity, load_activity, monkeypatch):
    """A lost optimistic-lock race is retried and the retry succeeds."""
    await make_activity("a1", participant_limit=5)
    real_increment = booking_service._increment_participants
    calls = []

    async def conflict_once(session, activity):
        calls.append(activity.version)
        if len(calls) == 1:
            raise TransactionConflict()
        await real_increment(session, activity)

    monkeypatch.setattr(booking_service, "_increment_participants", conflict_once)

    booking = await booking_service.create_booking(database, member.id, "a1")

    assert len(calls) == 2
    assert booking.id
    assert await count_bookings(database, "a1") == 1
    assert (await load_activity("a1")).current_participants == 1


@pytest.mark.asyncio
async def test_persistent_conflict_is_transient(
    client: AsyncClient, auth_headers, database, member, make_activity, load_activity, monkeypatch
):
    """Conflicts that outlive the retry budget surface as 503 transient."""
    await make_activity("a1", participant_limit=5)

    async def always_conflict(session, activity):
        raise TransactionConflict()

    monkeypatch.setattr(booking_service, "_increment_participants", always_conflict)

    with pytest.raises(TransientError):
        await booking_service.create_booking(database, member.id, "a1")

    response = await client.post(
        "/api/v1/bookings/",
        json={"user_id": member.id, "activity_id": "a1"},
        headers=auth_headers,
    )
    assert response.status_code == 503
    assert response.json()["error"] == "transient"

    assert await count_bookings(database, "a1") == 0
    assert (await load_activity("a1")).current_participants == 0


@pytest.mark.asyncio
async def test_concurrent_bookings_never_exceed_limit(database, make_user, make_activity, load_activity):
    """
    CRITICAL TEST: 10 simultaneous requests for 3 places.
    Exactly 3 succeed and the counter matches the stored bookings.
    """
    await make_activity("a1", participant_limit=3)
    users = [await make_user(f"racer{i}") for i in range(10)]

    results = await asyncio.gather(
        *[booking_service.create_booking(database, user.id, "a1", "confirmed") for user in users],
        return_exceptions=True,
    )

    created = [r for r in results if isinstance(r, Booking)]
    refused = [r for r in results if not isinstance(r, Booking)]
    assert len(created) == 3
    assert all(isinstance(r, (CapacityExceededError, TransientError)) for r in refused)

    assert (await load_activity("a1")).current_participants == 3
    assert await count_bookings(database, "a1") == 3


@pytest.mark.asyncio
async def test_concurrent_duplicate_bookings(database, member, make_activity, load_activity):
    """Simultaneous bookings by one user admit exactly one."""
    await make_activity("a1")

    results = await asyncio.gather(
        *[booking_service.create_booking(database, member.id, "a1") for _ in range(5)],
        return_exceptions=True,
    )

    created = [r for r in results if isinstance(r, Booking)]
    assert len(created) == 1
    assert all(
        isinstance(r, (DuplicateBookingError, TransientError))
        for r in results
        if not isinstance(r, Booking)
    )
    assert (await load_activity("a1")).current_participants == 1


@pytest.mark.asyncio
async def test_concurrent_http_bookings(client: AsyncClient, auth_headers, make_user, make_activity, load_activity):
    await make_activity("a1", participant_limit=2)
    users = [await make_user(f"web{i}") for i in range(6)]

    responses = await asyncio.gather(*[
        client.post(
            "/api/v1/bookings/",
            json={"user_id": user.id, "activity_id": "a1", "status": "confirmed"},
            headers=auth_headers,
        )
        for user in users
    ])

    codes = sorted(r.status_code for r in responses)
    assert codes.count(201) == 2
    assert all(code in (409, 503) for code in codes if code != 201)
    assert (await load_activity("a1")).current_participants == 2


@pytest.mark.asyncio
async def test_service_errors(database, member, make_activity):
    await make_activity("full", participant_limit=1, current_participants=1)

    with pytest.raises(CapacityExceededError):
        await booking_service.create_booking(database, member.id, "full")
    with pytest.raises(NotFoundError):
        await booking_service.create_booking(database, member.id, "missing")
    with pytest.raises(InvalidInputError):
        await booking_service.create_booking(database, member.id, "full", "cancelled")
    assert issubclass(CapacityExceededError, ConflictError)


@pytest.mark.asyncio
async def test_reconcile_participants(database, member, other_member, make_activity, load_activity):
    await make_activity("a1", current_participants=5)
    await add_rows(
        database,
        Booking(user_id=member.id, activity_id="a1", status="confirmed"),
        Booking(user_id=other_member.id, activity_id="a1", status="cancelled"),
    )

    previous, current = await booking_service.reconcile_participants(database, "a1")
    assert (previous, current) == (5, 2)
    assert (await load_activity("a1")).current_participants == 2

    # Already consistent: nothing changes
    assert await booking_service.reconcile_participants(database, "a1") == (2, 2)


@pytest.mark.asyncio
async def test_reconcile_endpoint(client: AsyncClient, auth_headers, database, member, make_activity):
    await make_activity("a1", current_participants=0)
    await add_rows(database, Booking(user_id=member.id, activity_id="a1", status="pending"))

    response = await client.post("/api/v1/activities/a1/reconcile", headers=auth_headers)
    assert response.status_code == 200
    assert response.json() == {"activity_id": "a1", "previous": 0, "current": 1, "drift": 1}

    missing = await client.post("/api/v1/activities/missing/reconcile", headers=auth_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_list_bookings_by_activity_and_user(
    client: AsyncClient, auth_headers, database, member, other_member, make_activity
):
    await make_activity("a1", title="River Walk")
    await make_activity("a2")
    await booking_service.create_booking(database, member.id, "a1", "confirmed")
    await booking_service.create_booking(database, other_member.id, "a1")
    await booking_service.create_booking(database, member.id, "a2")

    by_activity = await client.get("/api/v1/bookings/activity/a1", headers=auth_headers)
    assert by_activity.status_code == 200
    data = by_activity.json()
    assert len(data) == 2
    assert {item["user"]["id"] for item in data} == {member.id, other_member.id}
    assert all(item["activity"]["title"] == "River Walk" for item in data)

    by_user = await client.get(f"/api/v1/bookings/user/{member.id}", headers=auth_headers)
    assert {item["activity_id"] for item in by_user.json()} == {"a1", "a2"}
    assert by_user.json()[0]["user"]["email"] == member.email

    everything = await client.get("/api/v1/bookings/", headers=auth_headers)
    assert len(everything.json()) == 3

    confirmed = await client.get("/api/v1/bookings/?status=confirmed", headers=auth_headers)
    assert [item["status"] for item in confirmed.json()] == ["confirmed"]


@pytest.mark.asyncio
async def test_get_booking(client: AsyncClient, auth_headers, database, member, make_activity):
    await make_activity("a1")
    booking = await booking_service.create_booking(database, member.id, "a1")

    response = await client.get(f"/api/v1/bookings/{booking.id}", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["activity"]["id"] == "a1"

    missing = await client.get("/api/v1/bookings/missing", headers=auth_headers)
    assert missing.status_code == 404
