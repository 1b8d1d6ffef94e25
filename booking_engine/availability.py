# Availability queries over a property's calendar.
# Reads go through the repository's indexed range lookup; the overlap decision is delegated to intervals.overlaps.
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterator, List, Optional, Tuple

from . import schemas
from .clock import Clock, SystemClock, as_utc
from .config import BookingPolicy
from .enums import BookingStatus
from .errors import NotFound
from .intervals import overlaps, validate_interval
from .repository import BookingRepository, BookingUnitOfWork

DateRange = Tuple[date, date]


class FreeRanges:
    """
    Lazy, restartable sequence of free [start, end) ranges inside a window.

    Every iteration reads the calendar afresh, so iterating twice reflects bookings
    made in between.
    """

    def __init__(self, service: "AvailabilityService", property_id: int, window_start: date, window_end: date) -> None:
        self.service = service
        self.property_id = property_id
        self.window_start = window_start
        self.window_end = window_end

    def __iter__(self) -> Iterator[DateRange]:
        with self.service.repository.transaction() as uow:
            blocking = self.service.blocking_bookings(uow, self.property_id, self.window_start, self.window_end)
        return self.service.gaps(blocking, self.window_start, self.window_end)


class AvailabilityService:
    def __init__(
        self,
        repository: BookingRepository,
        clock: Optional[Clock] = None,
        policy: Optional[BookingPolicy] = None,
    ) -> None:
        self.repository = repository
        self.clock = clock or SystemClock()
        self.policy = policy or BookingPolicy()

    def hold_expired(self, booking: schemas.BookingRead, now: Optional[datetime] = None) -> bool:
        """
        True when a pending booking's hold has run out and it stops blocking.

        The expires_at stamped at creation wins; rows without one fall back to
        created_at plus the current hold policy.
        """
        if booking.status != BookingStatus.PENDING:
            return False
        now = now or self.clock.now()
        if booking.expires_at is not None:
            return as_utc(booking.expires_at) <= now
        if self.policy.pending_hold is None:
            return False
        return as_utc(booking.created_at) + self.policy.pending_hold <= now

    def is_blocking(self, booking: schemas.BookingRead, now: Optional[datetime] = None) -> bool:
        if booking.status == BookingStatus.CONFIRMED:
            return True
        return booking.status == BookingStatus.PENDING and not self.hold_expired(booking, now)

    def blocking_bookings(
        self,
        uow: BookingUnitOfWork,
        property_id: int,
        start: date,
        end: date,
        exclude_booking_id: Optional[int] = None,
    ) -> List[schemas.BookingRead]:
        now = self.clock.now()
        return [
            b for b in uow.find_bookings_overlapping_window(property_id, start, end)
            if b.id != exclude_booking_id and self.is_blocking(b, now)
        ]

    def find_conflicts(
        self,
        uow: BookingUnitOfWork,
        property_id: int,
        start: date,
        end: date,
        exclude_booking_id: Optional[int] = None,
    ) -> List[schemas.BookingRead]:
        return [
            b for b in self.blocking_bookings(uow, property_id, start, end, exclude_booking_id)
            if overlaps(b.start_date, b.end_date, start, end, self.policy.allow_same_day_turnover)
        ]

    def find_expired_holds(
        self,
        uow: BookingUnitOfWork,
        property_id: int,
        start: date,
        end: date,
    ) -> List[schemas.BookingRead]:
        now = self.clock.now()
        return [
            b for b in uow.find_bookings_overlapping_window(property_id, start, end, statuses=(BookingStatus.PENDING,))
            if self.hold_expired(b, now)
        ]

    def _require_property(self, uow: BookingUnitOfWork, property_id: int) -> schemas.PropertyRead:
        prop = uow.get_property(property_id)
        if prop is None:
            raise NotFound("Property", property_id)
        return prop

    def is_available(self, property_id: int, start: date, end: date) -> bool:
        """
        Return True if no pending/confirmed booking of the property conflicts with [start, end).

        Raises InvalidInterval for start >= end and NotFound for an unknown property.
        """
        validate_interval(start, end)
        with self.repository.transaction() as uow:
            self._require_property(uow, property_id)
            now = self.clock.now()
            # Short-circuits on the first conflicting booking
            return not any(
                self.is_blocking(b, now)
                and overlaps(b.start_date, b.end_date, start, end, self.policy.allow_same_day_turnover)
                for b in uow.find_bookings_overlapping_window(property_id, start, end)
            )

    def list_free_ranges(self, property_id: int, window_start: date, window_end: date) -> FreeRanges:
        validate_interval(window_start, window_end)
        with self.repository.transaction() as uow:
            self._require_property(uow, property_id)
        return FreeRanges(self, property_id, window_start, window_end)

    def gaps(self, blocking: List[schemas.BookingRead], window_start: date, window_end: date) -> Iterator[DateRange]:
        # Without same-day turnover a new stay must leave a full day on each side of a booking
        pad = timedelta(0) if self.policy.allow_same_day_turnover else timedelta(days=1)
        cursor = window_start
        for b in sorted(blocking, key=lambda b: (b.start_date, b.end_date)):
            busy_start, busy_end = b.start_date - pad, b.end_date + pad
            if busy_start > cursor:
                gap_end = min(busy_start, window_end)
                if cursor < gap_end:
                    yield cursor, gap_end
            cursor = max(cursor, busy_end)
            if cursor >= window_end:
                return
        if cursor < window_end:
            yield cursor, window_end
