# Booking policy knobs sourced from environment variables.
# Services receive a BookingPolicy instance instead of reading the environment themselves.
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional


# Basic truthy parser for env flags (1, true, yes, on)
def truthy(val: Optional[str], default: bool = False) -> bool:
    if val is None or not val.strip():
        return default
    return val.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _to_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


def _to_float(val: Optional[str], default: float) -> float:
    try:
        return float(val) if val is not None else default
    except ValueError:
        return default


@dataclass(frozen=True)
class BookingPolicy:
    """
    Tunable rules for availability and booking creation.

    - pending_hold: how long an unconfirmed booking blocks the calendar; None blocks until confirmed/canceled
    - allow_same_day_turnover: checkout day may be the next guest's check-in day
    - enforce_future_start: reject bookings that start before today
    - lock_timeout_seconds: default deadline for orchestrator calls
    - lock_ttl_ms: expiry of the cross-process Redis lock
    """
    pending_hold: Optional[timedelta] = None
    allow_same_day_turnover: bool = True
    enforce_future_start: bool = True
    lock_timeout_seconds: float = 5.0
    lock_ttl_ms: int = 5000

    @classmethod
    def from_env(cls) -> "BookingPolicy":
        # HOLD_MINUTES unset or 0 keeps pending bookings blocking indefinitely
        hold_minutes = _to_int(os.getenv("HOLD_MINUTES"), 0)
        return cls(
            pending_hold=timedelta(minutes=hold_minutes) if hold_minutes > 0 else None,
            allow_same_day_turnover=truthy(os.getenv("ALLOW_SAME_DAY_TURNOVER"), default=True),
            enforce_future_start=truthy(os.getenv("ENFORCE_FUTURE_START"), default=True),
            lock_timeout_seconds=_to_float(os.getenv("BOOKING_LOCK_TIMEOUT_SECONDS"), 5.0),
            lock_ttl_ms=_to_int(os.getenv("BOOKING_LOCK_TTL_MS"), 5000),
        )


def sweeper_interval_seconds() -> int:
    return _to_int(os.getenv("SWEEPER_INTERVAL_SECONDS"), 60)
