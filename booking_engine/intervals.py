# Half-open date interval helpers: a stay occupies [start, end), so checkout day is free for the next guest.
from __future__ import annotations

from datetime import date

from .errors import InvalidInterval


def validate_interval(start: date, end: date) -> None:
    # Sanity check for date ranges: start must be strictly before end
    if start >= end:
        raise InvalidInterval(
            "start_date must be before end_date",
            details={"start_date": start.isoformat(), "end_date": end.isoformat()},
        )


def nights(start: date, end: date) -> int:
    validate_interval(start, end)
    return (end - start).days


def overlaps(s1: date, e1: date, s2: date, e2: date, allow_turnover: bool = True) -> bool:
    """
    Return True if [s1, e1) and [s2, e2) conflict.

    Logic:
    - Default (same-day turnover allowed): s1 < e2 AND s2 < e1, so e1 == s2 is not a conflict.
    - allow_turnover=False: touching intervals also conflict (s1 <= e2 AND s2 <= e1).

    Raises InvalidInterval if either interval is empty or reversed.
    """
    validate_interval(s1, e1)
    validate_interval(s2, e2)
    if allow_turnover:
        return s1 < e2 and s2 < e1
    return s1 <= e2 and s2 <= e1
