"""
Domain errors and their HTTP rendering.

Services raise these; routes let them propagate and the handler registered in
main.py turns them into JSON responses. `kind` is a stable machine-readable
name so API clients can tell a full activity from a duplicate booking without
parsing messages.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from meshwar.core.logging import get_logger

logger = get_logger(__name__)


class DomainError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    kind: str = "domain_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    kind = "conflict"


class CapacityExceededError(ConflictError):
    """Activity has reached its participant limit. Caller must change input."""

    kind = "capacity_exceeded"


class DuplicateBookingError(ConflictError):
    """User already holds a confirmed or pending booking for the activity."""

    kind = "duplicate_booking"


class TransientError(DomainError):
    """Conflict or timeout that outlived the retry budget. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    kind = "transient"


class UnauthorizedError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "unauthorized"


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    kind = "forbidden"


class InvalidInputError(DomainError):
    kind = "invalid_input"


class TransactionConflict(Exception):
    """
    A conditional write inside a transaction matched no row because another
    writer committed first. Raised inside run_transaction and consumed by its
    retry loop; never reaches the API.
    """


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("domain_error", kind=exc.kind, detail=exc.message)
    else:
        logger.info("domain_error", kind=exc.kind, detail=exc.message)

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind},
        headers=headers,
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
