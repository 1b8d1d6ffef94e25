# Booking status transitions as a pure lookup: (current status, event) -> next status.
# State itself lives on the booking row; only the orchestrator applies the result.
from __future__ import annotations

from typing import Dict, Tuple

from .enums import BookingEvent, BookingStatus
from .errors import InvalidTransition

# Target status requested by each event
EVENT_TARGETS: Dict[BookingEvent, BookingStatus] = {
    BookingEvent.CONFIRM: BookingStatus.CONFIRMED,
    BookingEvent.CANCEL: BookingStatus.CANCELED,
}

# pending -> confirmed | canceled, confirmed -> canceled; canceled is final
_ALLOWED: Dict[Tuple[BookingStatus, BookingEvent], BookingStatus] = {
    (BookingStatus.PENDING, BookingEvent.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING, BookingEvent.CANCEL): BookingStatus.CANCELED,
    (BookingStatus.CONFIRMED, BookingEvent.CANCEL): BookingStatus.CANCELED,
}


def transition(current: BookingStatus, event: BookingEvent) -> BookingStatus:
    """
    Return the status a booking moves to when `event` is applied.

    Raises InvalidTransition (reporting current and requested status) for any
    pair not listed in the table, including re-entering the same status.
    """
    current = BookingStatus(current)
    event = BookingEvent(event)
    try:
        return _ALLOWED[(current, event)]
    except KeyError:
        raise InvalidTransition(current.value, EVENT_TARGETS[event].value) from None


def can_transition(current: BookingStatus, event: BookingEvent) -> bool:
    return (BookingStatus(current), BookingEvent(event)) in _ALLOWED


def is_terminal(status: BookingStatus) -> bool:
    return not any(state == BookingStatus(status) for state, _ in _ALLOWED)
