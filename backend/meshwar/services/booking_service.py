"""
Booking service with capacity-safe admission.

CONCURRENCY STRATEGY: Re-checked Admission inside a Retrying Transaction
========================================================================

Problem:
  Two admins book the last place on an activity at the same time.
  Both read current_participants=limit-1, both pass the capacity check,
  both insert a booking and increment the counter.
  Result: the activity is over capacity.

  Checking capacity before opening the transaction and then writing inside
  it does not help: the check and the write are not atomic.

Solution:
  Everything happens inside one transaction run by run_transaction():

  1. Re-read the activity through the transaction's session
  2. Check capacity and look for an active (confirmed/pending) booking
     for the same user and activity
  3. INSERT the booking
  4. UPDATE activities SET current_participants = current_participants + 1,
                           version = version + 1
     WHERE id = :id AND version = :read_version
       AND (participant_limit = 0 OR current_participants < participant_limit)
  5. If rows_affected == 0, another writer committed first -> raise
     TransactionConflict; the transaction rolls back (taking the booking
     insert with it) and run_transaction retries from step 1

  This approach:
  - Booking insert and counter increment commit together or not at all
  - The capacity predicate is part of the guarded UPDATE, so even a stale
    read cannot push the counter past the limit
  - Retries are bounded; exhausting them (or the per-attempt timeout)
    surfaces TransientError, which the caller may retry
  - Errors that need different input (NotFound, CapacityExceeded,
    DuplicateBooking) are raised on the first attempt and never retried

The counter tracks booking existence. Deleting a booking decrements it;
changing a booking's status does not. A cancelled booking therefore keeps
its place until it is deleted.
"""

import time
from typing import Optional, Union

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from meshwar.db.session import Database
from meshwar.db.transaction import run_transaction
from meshwar.models.activity import Activity
from meshwar.models.booking import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES
from meshwar.models.user import User
from meshwar.core.exceptions import (
    CapacityExceededError,
    DomainError,
    DuplicateBookingError,
    InvalidInputError,
    NotFoundError,
    TransactionConflict,
    TransientError,
)
from meshwar.core.metrics import booking_latency, record_booking_attempt, record_counter_drift
from meshwar.core.timestamps import utcnow
from meshwar.core.logging import get_logger

logger = get_logger(__name__)

_OUTCOMES = {
    CapacityExceededError: "capacity_exceeded",
    DuplicateBookingError: "duplicate",
    NotFoundError: "not_found",
    TransientError: "transient",
}


def _parse_status(status: Union[BookingStatus, str]) -> BookingStatus:
    try:
        return BookingStatus(status)
    except ValueError:
        raise InvalidInputError(f"Invalid booking status: {status}")


def check_capacity(activity: Activity) -> None:
    limit = activity.participant_limit or 0
    current = activity.current_participants or 0
    if limit > 0 and current >= limit:
        logger.warning(
            "booking_rejected_capacity",
            activity_id=activity.id,
            limit=limit,
            current=current,
        )
        raise CapacityExceededError(
            f"Activity has reached its participant limit ({current}/{limit})"
        )


async def _check_duplicate(session: AsyncSession, user_id: str, activity_id: str) -> None:
    existing = await session.execute(
        select(Booking.id)
        .where(
            Booking.user_id == user_id,
            Booking.activity_id == activity_id,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .limit(1)
    )
    if existing.scalar_one_or_none():
        logger.warning("booking_rejected_duplicate", user_id=user_id, activity_id=activity_id)
        raise DuplicateBookingError("This user is already booked for this activity")


async def _increment_participants(session: AsyncSession, activity: Activity) -> None:
    result = await session.execute(
        update(Activity)
        .where(
            Activity.id == activity.id,
            Activity.version == activity.version,
            (Activity.participant_limit == 0)
            | (Activity.current_participants < Activity.participant_limit),
        )
        .values(
            current_participants=Activity.current_participants + 1,
            version=Activity.version + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise TransactionConflict()


async def _decrement_participants(session: AsyncSession, activity: Activity, booking_id: str) -> None:
    if activity.current_participants <= 0:
        # Counter already at zero while a booking still existed
        logger.warning(
            "participant_counter_underflow",
            activity_id=activity.id,
            booking_id=booking_id,
            current=activity.current_participants,
        )
        record_counter_drift("delete")
        return

    result = await session.execute(
        update(Activity)
        .where(
            Activity.id == activity.id,
            Activity.version == activity.version,
            Activity.current_participants > 0,
        )
        .values(
            current_participants=Activity.current_participants - 1,
            version=Activity.version + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise TransactionConflict()


async def create_booking(
    database: Database,
    user_id: str,
    activity_id: str,
    status: Union[BookingStatus, str] = BookingStatus.PENDING,
) -> Booking:
    """
    Admit a booking for (user, activity) and take one place on the activity.
    Raises NotFoundError, CapacityExceededError, DuplicateBookingError, or
    TransientError when conflicts/timeouts outlive the retry budget.
    """
    booking_status = _parse_status(status)
    if booking_status == BookingStatus.CANCELLED:
        raise InvalidInputError("A booking cannot be created in the cancelled state")

    async def admit(session: AsyncSession) -> Booking:
        activity = await session.get(Activity, activity_id, populate_existing=True)
        if not activity:
            raise NotFoundError(f"Activity {activity_id} not found")
        if not await session.get(User, user_id):
            raise NotFoundError(f"User {user_id} not found")

        check_capacity(activity)
        await _check_duplicate(session, user_id, activity_id)

        booking = Booking(
            user_id=user_id,
            activity_id=activity_id,
            status=booking_status.value,
        )
        session.add(booking)
        await session.flush()

        await _increment_participants(session, activity)
        return booking

    start = time.perf_counter()
    try:
        booking = await run_transaction(database, admit, name="create_booking")
    except DomainError as exc:
        record_booking_attempt(_OUTCOMES.get(type(exc), "rejected"))
        raise
    except Exception:
        record_booking_attempt("error")
        raise
    finally:
        booking_latency.observe(time.perf_counter() - start)

    record_booking_attempt("created")
    logger.info(
        "booking_created",
        booking_id=booking.id,
        user_id=user_id,
        activity_id=activity_id,
        status=booking.status,
    )
    return booking


async def release_booking(session: AsyncSession, booking: Booking) -> None:
    """
    Delete a booking and give its place back to the activity. Must run
    inside a transaction started by run_transaction.
    """
    activity = await session.get(Activity, booking.activity_id, populate_existing=True)
    await session.delete(booking)
    await session.flush()

    if activity is None:
        logger.warning("booking_activity_missing", booking_id=booking.id, activity_id=booking.activity_id)
        return
    await _decrement_participants(session, activity, booking.id)


async def delete_booking(database: Database, booking_id: str) -> None:
    async def remove(session: AsyncSession) -> str:
        booking = await session.get(Booking, booking_id)
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        await release_booking(session, booking)
        return booking.activity_id

    activity_id = await run_transaction(database, remove, name="delete_booking")
    logger.info("booking_deleted", booking_id=booking_id, activity_id=activity_id)


async def change_booking_status(
    db: AsyncSession,
    booking_id: str,
    status: Union[BookingStatus, str],
) -> Booking:
    """
    Set a booking's status. The activity counter is left alone: it counts
    bookings that exist, so a cancelled booking still holds its place until
    the booking is deleted.
    """
    new_status = _parse_status(status)
    booking = await db.get(Booking, booking_id)
    if not booking:
        raise NotFoundError(f"Booking {booking_id} not found")

    previous = booking.status
    booking.status = new_status.value
    await db.commit()

    logger.info(
        "booking_status_changed",
        booking_id=booking_id,
        previous=previous,
        status=new_status.value,
    )
    return booking


async def reconcile_participants(database: Database, activity_id: str) -> tuple[int, int]:
    """
    Recount an activity's bookings and overwrite current_participants.
    Returns (previous, current).
    """

    async def recount(session: AsyncSession) -> tuple[int, int]:
        activity = await session.get(Activity, activity_id, populate_existing=True)
        if not activity:
            raise NotFoundError(f"Activity {activity_id} not found")

        count = await session.scalar(
            select(func.count()).select_from(Booking).where(Booking.activity_id == activity_id)
        )
        previous = activity.current_participants
        if previous == count:
            return previous, count

        result = await session.execute(
            update(Activity)
            .where(Activity.id == activity_id, Activity.version == activity.version)
            .values(current_participants=count, version=Activity.version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise TransactionConflict()
        return previous, count

    previous, current = await run_transaction(database, recount, name="reconcile_participants")
    if previous != current:
        record_counter_drift("reconcile")
        logger.warning(
            "participant_counter_reconciled",
            activity_id=activity_id,
            previous=previous,
            current=current,
        )
    return previous, current


def _with_relations(query):
    return query.options(selectinload(Booking.user), selectinload(Booking.activity))


async def get_booking(db: AsyncSession, booking_id: str) -> Booking:
    result = await db.execute(_with_relations(select(Booking).where(Booking.id == booking_id)))
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


async def list_bookings(db: AsyncSession, status: Optional[BookingStatus] = None) -> list[Booking]:
    query = _with_relations(select(Booking)).order_by(Booking.created_at.desc())
    if status is not None:
        query = query.where(Booking.status == status.value)
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_bookings_by_activity(db: AsyncSession, activity_id: str) -> list[Booking]:
    result = await db.execute(
        _with_relations(select(Booking))
        .where(Booking.activity_id == activity_id)
        .order_by(Booking.created_at.desc())
    )
    return list(result.scalars().all())


async def list_bookings_by_user(db: AsyncSession, user_id: str) -> list[Booking]:
    result = await db.execute(
        _with_relations(select(Booking))
        .where(Booking.user_id == user_id)
        .order_by(Booking.created_at.desc())
    )
    return list(result.scalars().all())
