# In-memory repository for single-process use and deterministic tests.
# Transactions are serialized and staged on a copy of the tables; commit swaps the copy in, errors discard it.
from __future__ import annotations

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterator, List, Optional, Sequence

from . import schemas
from .enums import ACTIVE_STATUSES, HOST_ROLES, BookingStatus
from .errors import Forbidden, NotFound, UniquenessViolation
from .intervals import overlaps
from .repository import BookingRepository, BookingUnitOfWork


@dataclass
class _Tables:
    users: Dict[int, schemas.UserRead] = field(default_factory=dict)
    properties: Dict[int, schemas.PropertyRead] = field(default_factory=dict)
    bookings: Dict[int, schemas.BookingRead] = field(default_factory=dict)
    payments: Dict[int, schemas.PaymentRead] = field(default_factory=dict)
    reviews: Dict[int, schemas.ReviewRead] = field(default_factory=dict)
    next_id: int = 1

    def allocate_id(self) -> int:
        ident = self.next_id
        self.next_id += 1
        return ident


class InMemoryUnitOfWork(BookingUnitOfWork):
    def __init__(self, tables: _Tables) -> None:
        self.tables = tables

    def get_user(self, user_id: int) -> Optional[schemas.UserRead]:
        obj = self.tables.users.get(user_id)
        return obj.model_copy() if obj else None

    def add_user(self, data: schemas.UserCreate) -> schemas.UserRead:
        if any(u.email == data.email for u in self.tables.users.values()):
            raise UniquenessViolation("user violates a uniqueness constraint", details={"email": data.email})
        obj = schemas.UserRead(id=self.tables.allocate_id(), **data.model_dump())
        self.tables.users[obj.id] = obj
        return obj.model_copy()

    def get_property(self, property_id: int) -> Optional[schemas.PropertyRead]:
        obj = self.tables.properties.get(property_id)
        return obj.model_copy() if obj else None

    def add_property(self, data: schemas.PropertyCreate) -> schemas.PropertyRead:
        host = self.tables.users.get(data.host_id)
        if host is None:
            raise NotFound("User", data.host_id)
        if host.role not in HOST_ROLES:
            raise Forbidden("Only hosts can list properties", details={"host_id": data.host_id, "role": host.role.value})
        obj = schemas.PropertyRead(id=self.tables.allocate_id(), **data.model_dump())
        self.tables.properties[obj.id] = obj
        return obj.model_copy()

    def delete_property(self, property_id: int) -> bool:
        if self.tables.properties.pop(property_id, None) is None:
            return False
        doomed = {b.id for b in self.tables.bookings.values() if b.property_id == property_id}
        for booking_id in doomed:
            del self.tables.bookings[booking_id]
        self.tables.payments = {k: p for k, p in self.tables.payments.items() if p.booking_id not in doomed}
        self.tables.reviews = {k: r for k, r in self.tables.reviews.items() if r.property_id != property_id}
        return True

    def get_booking(self, booking_id: int) -> Optional[schemas.BookingRead]:
        obj = self.tables.bookings.get(booking_id)
        return obj.model_copy() if obj else None

    def find_bookings_overlapping_window(
        self,
        property_id: int,
        start: date,
        end: date,
        statuses: Sequence[BookingStatus] = ACTIVE_STATUSES,
    ) -> List[schemas.BookingRead]:
        wanted = {BookingStatus(s) for s in statuses}
        items = [
            b for b in self.tables.bookings.values()
            if b.property_id == property_id and b.status in wanted and b.start_date <= end and b.end_date >= start
        ]
        items.sort(key=lambda b: (b.start_date, b.id))
        return [b.model_copy() for b in items]

    def insert_booking(self, data: schemas.BookingCreate) -> schemas.BookingRead:
        if data.status in ACTIVE_STATUSES:
            for other in self.tables.bookings.values():
                if (
                    other.property_id == data.property_id
                    and other.status in ACTIVE_STATUSES
                    and overlaps(other.start_date, other.end_date, data.start_date, data.end_date)
                ):
                    raise UniquenessViolation(
                        "Booking overlaps an existing live booking",
                        details={"property_id": data.property_id, "conflicting_booking_id": other.id},
                    )
        obj = schemas.BookingRead(id=self.tables.allocate_id(), version=1, **data.model_dump())
        self.tables.bookings[obj.id] = obj
        return obj.model_copy()

    def update_booking_status(
        self,
        booking_id: int,
        new_status: BookingStatus,
        *,
        cancel_reason: Optional[str] = None,
        confirmed_at: Optional[datetime] = None,
    ) -> schemas.BookingRead:
        obj = self.tables.bookings.get(booking_id)
        if obj is None:
            raise LookupError(f"booking {booking_id} vanished mid-transaction")
        changes: dict = {"status": BookingStatus(new_status), "version": obj.version + 1}
        if cancel_reason is not None:
            changes["cancel_reason"] = cancel_reason
        if confirmed_at is not None:
            changes["confirmed_at"] = confirmed_at
        obj = obj.model_copy(update=changes)
        self.tables.bookings[booking_id] = obj
        return obj.model_copy()

    def list_pending_created_before(self, cutoff: datetime) -> List[schemas.BookingRead]:
        return [
            b.model_copy()
            for b in sorted(self.tables.bookings.values(), key=lambda b: b.id)
            if b.status == BookingStatus.PENDING and b.created_at <= cutoff
        ]

    def list_pending_expiring_before(self, now: datetime) -> List[schemas.BookingRead]:
        return [
            b.model_copy()
            for b in sorted(self.tables.bookings.values(), key=lambda b: b.id)
            if b.status == BookingStatus.PENDING and b.expires_at is not None and b.expires_at <= now
        ]

    def get_payment_for_booking(self, booking_id: int) -> Optional[schemas.PaymentRead]:
        found = next((p for p in self.tables.payments.values() if p.booking_id == booking_id), None)
        return found.model_copy() if found else None

    def insert_payment(self, data: schemas.PaymentCreate) -> schemas.PaymentRead:
        if self.get_payment_for_booking(data.booking_id) is not None:
            raise UniquenessViolation("payment violates a uniqueness constraint", details={"booking_id": data.booking_id})
        obj = schemas.PaymentRead(id=self.tables.allocate_id(), **data.model_dump())
        self.tables.payments[obj.id] = obj
        return obj.model_copy()

    def add_review(self, data: schemas.ReviewCreate) -> schemas.ReviewRead:
        if any(
            r.author_id == data.author_id and r.property_id == data.property_id
            for r in self.tables.reviews.values()
        ):
            raise UniquenessViolation(
                "review violates a uniqueness constraint",
                details={"author_id": data.author_id, "property_id": data.property_id},
            )
        obj = schemas.ReviewRead(id=self.tables.allocate_id(), **data.model_dump())
        self.tables.reviews[obj.id] = obj
        return obj.model_copy()


class InMemoryBookingRepository(BookingRepository):
    def __init__(self) -> None:
        self._tables = _Tables()
        self._lock = threading.Lock()

    @contextmanager
    def transaction(self) -> Iterator[InMemoryUnitOfWork]:
        with self._lock:
            staged = copy.deepcopy(self._tables)
            yield InMemoryUnitOfWork(staged)
            self._tables = staged
