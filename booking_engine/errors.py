# Typed error taxonomy for the booking core.
# Every failure is scoped to a single request; the API layer maps each error to an HTTP status.
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class BookingError(Exception):
    """Base class for all booking-domain errors.

    Carries a human-readable message, a stable machine code and optional
    structured details for the caller.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "BOOKING_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={"message": self.message, "code": self.code, "details": self.details},
        )


class InvalidInterval(BookingError):
    """Malformed or empty date range, or a start date before today."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "INVALID_INTERVAL"


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"

    def __init__(self, kind: str, ident: Any) -> None:
        super().__init__(f"{kind} {ident} not found", details={"kind": kind, "id": ident})


class ConflictError(BookingError):
    """An overlapping pending/confirmed booking already holds the interval."""
    status_code = status.HTTP_409_CONFLICT
    default_code = "BOOKING_CONFLICT"


class InvalidTransition(BookingError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot move booking from {current} to {requested}",
            details={"current": current, "requested": requested},
        )


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class PaymentRejected(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "PAYMENT_REJECTED"


class Timeout(BookingError):
    """Deadline exceeded; the operation left no side effect."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "TIMEOUT"


class UniquenessViolation(BookingError):
    """Store-level constraint caught a race the in-process check missed.

    Never surfaced to API callers; the orchestrator converts it into ConflictError.
    """
    status_code = status.HTTP_409_CONFLICT
    default_code = "UNIQUENESS_VIOLATION"
