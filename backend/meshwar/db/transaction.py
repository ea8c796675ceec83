"""
Retrying transaction runner.

`run_transaction(database, fn)` is the write path for anything that must be
all-or-nothing across rows (booking admission, booking deletion, counter
reconciliation). Each attempt:

  1. opens a fresh session and begins a transaction,
  2. awaits fn(session) under a per-attempt timeout,
  3. commits when fn returns, rolls back when it raises.

An attempt is retried when fn raises TransactionConflict (a guarded write
matched no row), when the driver reports a retryable failure (lock timeout,
serialization failure, deadlock, dropped connection), or when the attempt
times out. DomainError and anything else propagate on the first attempt.
When every attempt fails, TransientError is raised.

Because fn may run more than once it must read everything it depends on
through the session it is given, and must not have side effects outside it.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from meshwar.core.config import get_settings
from meshwar.core.exceptions import TransactionConflict, TransientError
from meshwar.core.logging import get_logger
from meshwar.core.metrics import record_transaction_retry
from meshwar.db.session import Database

logger = get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}


def is_retryable_db_error(exc: DBAPIError) -> bool:
    if exc.connection_invalidated or isinstance(exc, OperationalError):
        return True
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return sqlstate in RETRYABLE_SQLSTATES


async def _attempt(database: Database, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
    async with database.session() as session:
        async with session.begin():
            return await fn(session)


async def run_transaction(
    database: Database,
    fn: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_attempts: Optional[int] = None,
    timeout: Optional[float] = None,
    backoff: Optional[float] = None,
    name: str = "transaction",
) -> T:
    settings = get_settings()
    max_attempts = max_attempts or settings.BOOKING_TXN_MAX_ATTEMPTS
    timeout = timeout if timeout is not None else settings.BOOKING_TXN_TIMEOUT_SECONDS
    backoff = backoff if backoff is not None else settings.BOOKING_TXN_BACKOFF_SECONDS

    last_reason = "conflict"
    for attempt in range(1, max_attempts + 1):
        try:
            return await asyncio.wait_for(_attempt(database, fn), timeout=timeout)
        except TransactionConflict:
            last_reason = "conflict"
        except DBAPIError as exc:
            if not is_retryable_db_error(exc):
                raise
            last_reason = "db_error"
            logger.warning("transaction_db_error", name=name, attempt=attempt, error=str(exc.orig))
        except asyncio.TimeoutError:
            last_reason = "timeout"

        if attempt == max_attempts:
            break

        record_transaction_retry(last_reason)
        delay = backoff * (2 ** (attempt - 1))
        delay += random.uniform(0, delay)
        logger.info(
            "transaction_retry",
            name=name,
            attempt=attempt,
            reason=last_reason,
            delay_ms=round(delay * 1000, 2),
        )
        await asyncio.sleep(delay)

    logger.warning("transaction_exhausted", name=name, attempts=max_attempts, reason=last_reason)
    if last_reason == "timeout":
        raise TransientError(
            f"Operation timed out after {max_attempts} attempts. Please try again."
        )
    raise TransientError(
        f"Operation failed due to concurrent updates after {max_attempts} attempts. Please try again."
    )
