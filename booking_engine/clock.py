# Injected time source so hold expiry and "no retroactive start" checks are deterministic in tests.
from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # Some backends (e.g., SQLite) return naive datetimes; treat stored values as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
