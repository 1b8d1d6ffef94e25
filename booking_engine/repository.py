# Persistence boundary consumed by the availability service and the orchestrator.
# BookingRepository.transaction() yields a BookingUnitOfWork; everything done through it commits or rolls back together.
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import date, datetime
from typing import ContextManager, Iterator, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from . import models, schemas
from .clock import as_utc
from .enums import ACTIVE_STATUSES, HOST_ROLES, BookingStatus
from .errors import Forbidden, NotFound, UniquenessViolation

logger = logging.getLogger("booking_engine.repository")


class BookingUnitOfWork(ABC):
    """Data access available inside one transaction."""

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[schemas.UserRead]:
        ...

    @abstractmethod
    def add_user(self, data: schemas.UserCreate) -> schemas.UserRead:
        """Raises UniquenessViolation when the email is already registered."""

    @abstractmethod
    def get_property(self, property_id: int) -> Optional[schemas.PropertyRead]:
        ...

    @abstractmethod
    def add_property(self, data: schemas.PropertyCreate) -> schemas.PropertyRead:
        """Raises NotFound for an unknown owner and Forbidden when the owner lacks the host capability."""

    @abstractmethod
    def delete_property(self, property_id: int) -> bool:
        """Delete a listing together with its bookings, their payments, and its reviews."""

    @abstractmethod
    def get_booking(self, booking_id: int) -> Optional[schemas.BookingRead]:
        ...

    @abstractmethod
    def find_bookings_overlapping_window(
        self,
        property_id: int,
        start: date,
        end: date,
        statuses: Sequence[BookingStatus] = ACTIVE_STATUSES,
    ) -> List[schemas.BookingRead]:
        """
        Bookings of `property_id` with a status in `statuses` whose dates touch [start, end].

        Inclusive bounds so callers can also apply the no-same-day-turnover rule;
        the precise overlap decision belongs to intervals.overlaps. Ordered by start_date.
        """

    @abstractmethod
    def insert_booking(self, data: schemas.BookingCreate) -> schemas.BookingRead:
        """Raises UniquenessViolation if the new row overlaps another live booking."""

    @abstractmethod
    def update_booking_status(
        self,
        booking_id: int,
        new_status: BookingStatus,
        *,
        cancel_reason: Optional[str] = None,
        confirmed_at: Optional[datetime] = None,
    ) -> schemas.BookingRead:
        ...

    @abstractmethod
    def list_pending_created_before(self, cutoff: datetime) -> List[schemas.BookingRead]:
        ...

    @abstractmethod
    def list_pending_expiring_before(self, now: datetime) -> List[schemas.BookingRead]:
        """Pending bookings whose stamped expires_at is at or before `now`, ordered by id."""

    @abstractmethod
    def get_payment_for_booking(self, booking_id: int) -> Optional[schemas.PaymentRead]:
        ...

    @abstractmethod
    def insert_payment(self, data: schemas.PaymentCreate) -> schemas.PaymentRead:
        """Raises UniquenessViolation when the booking already has a payment."""

    @abstractmethod
    def add_review(self, data: schemas.ReviewCreate) -> schemas.ReviewRead:
        """Raises UniquenessViolation when the author already reviewed the property."""


class BookingRepository(ABC):
    @abstractmethod
    def transaction(self) -> ContextManager[BookingUnitOfWork]:
        """Context manager yielding a unit of work; commits on success, rolls back on any exception."""


def _booking_read(obj: models.Booking) -> schemas.BookingRead:
    out = schemas.BookingRead.model_validate(obj)
    # Normalize timestamps that come back naive from SQLite
    out.created_at = as_utc(out.created_at)
    if out.expires_at is not None:
        out.expires_at = as_utc(out.expires_at)
    if out.confirmed_at is not None:
        out.confirmed_at = as_utc(out.confirmed_at)
    return out


class SqlAlchemyUnitOfWork(BookingUnitOfWork):
    def __init__(self, db: Session) -> None:
        self.db = db

    def _flush(self, what: str) -> None:
        # Translate constraint failures into the domain's race signal
        try:
            self.db.flush()
        except IntegrityError as exc:
            logger.debug("repository.integrity_error", extra={"entity": what, "error": str(exc.orig)})
            raise UniquenessViolation(f"{what} violates a uniqueness constraint", details={"error": str(exc.orig)}) from exc

    def get_user(self, user_id: int) -> Optional[schemas.UserRead]:
        obj = self.db.get(models.User, user_id)
        return schemas.UserRead.model_validate(obj) if obj else None

    def add_user(self, data: schemas.UserCreate) -> schemas.UserRead:
        obj = models.User(email=data.email, display_name=data.display_name, role=data.role.value)
        self.db.add(obj)
        self._flush("user")
        return schemas.UserRead.model_validate(obj)

    def get_property(self, property_id: int) -> Optional[schemas.PropertyRead]:
        obj = self.db.get(models.Property, property_id)
        return schemas.PropertyRead.model_validate(obj) if obj else None

    def add_property(self, data: schemas.PropertyCreate) -> schemas.PropertyRead:
        host = self.db.get(models.User, data.host_id)
        if host is None:
            raise NotFound("User", data.host_id)
        if host.role not in {r.value for r in HOST_ROLES}:
            raise Forbidden("Only hosts can list properties", details={"host_id": data.host_id, "role": host.role})
        obj = models.Property(**data.model_dump())
        self.db.add(obj)
        self._flush("property")
        return schemas.PropertyRead.model_validate(obj)

    def delete_property(self, property_id: int) -> bool:
        obj = self.db.get(models.Property, property_id)
        if obj is None:
            return False
        self.db.delete(obj)
        self.db.flush()
        return True

    def get_booking(self, booking_id: int) -> Optional[schemas.BookingRead]:
        obj = self.db.get(models.Booking, booking_id)
        return _booking_read(obj) if obj else None

    def _overlapping_query(self, property_id: int, start: date, end: date, statuses: Sequence[BookingStatus]):
        # NOT (existing.end_date < start OR existing.start_date > end); served by ix_bookings_property_start/end
        return self.db.query(models.Booking).filter(
            models.Booking.property_id == property_id,
            models.Booking.status.in_([BookingStatus(s).value for s in statuses]),
            models.Booking.start_date <= end,
            models.Booking.end_date >= start,
        )

    def find_bookings_overlapping_window(
        self,
        property_id: int,
        start: date,
        end: date,
        statuses: Sequence[BookingStatus] = ACTIVE_STATUSES,
    ) -> List[schemas.BookingRead]:
        items = (
            self._overlapping_query(property_id, start, end, statuses)
            .order_by(models.Booking.start_date.asc(), models.Booking.id.asc())
            .all()
        )
        return [_booking_read(obj) for obj in items]

    def insert_booking(self, data: schemas.BookingCreate) -> schemas.BookingRead:
        obj = models.Booking(
            property_id=data.property_id,
            guest_id=data.guest_id,
            start_date=data.start_date,
            end_date=data.end_date,
            status=data.status.value,
            total_cents=data.total_cents,
            created_at=data.created_at,
            updated_at=data.created_at,
            expires_at=data.expires_at,
            version=1,
        )
        self.db.add(obj)
        self._flush("booking")

        # Commit-time re-validation: another writer may have slipped in a live, strictly
        # overlapping row that the caller's check could not see
        if obj.status in {s.value for s in ACTIVE_STATUSES}:
            clash = (
                self.db.query(models.Booking.id)
                .filter(
                    models.Booking.property_id == obj.property_id,
                    models.Booking.id != obj.id,
                    models.Booking.status.in_([s.value for s in ACTIVE_STATUSES]),
                    ~(
                        (models.Booking.end_date <= obj.start_date)
                        | (models.Booking.start_date >= obj.end_date)
                    ),
                )
                .first()
            )
            if clash is not None:
                raise UniquenessViolation(
                    "Booking overlaps an existing live booking",
                    details={"property_id": obj.property_id, "conflicting_booking_id": clash[0]},
                )
        return _booking_read(obj)

    def update_booking_status(
        self,
        booking_id: int,
        new_status: BookingStatus,
        *,
        cancel_reason: Optional[str] = None,
        confirmed_at: Optional[datetime] = None,
    ) -> schemas.BookingRead:
        obj = self.db.get(models.Booking, booking_id)
        if obj is None:
            raise LookupError(f"booking {booking_id} vanished mid-transaction")
        obj.status = BookingStatus(new_status).value
        if cancel_reason is not None:
            obj.cancel_reason = cancel_reason
        if confirmed_at is not None:
            obj.confirmed_at = confirmed_at
        obj.version = (obj.version or 1) + 1
        self.db.add(obj)
        self._flush("booking")
        return _booking_read(obj)

    def list_pending_created_before(self, cutoff: datetime) -> List[schemas.BookingRead]:
        items = (
            self.db.query(models.Booking)
            .filter(
                models.Booking.status == BookingStatus.PENDING.value,
                models.Booking.created_at <= cutoff,
            )
            .order_by(models.Booking.id.asc())
            .all()
        )
        # SQLite compares timestamps as text; re-check in Python with UTC-aware values
        return [b for b in (_booking_read(obj) for obj in items) if b.created_at <= as_utc(cutoff)]

    def list_pending_expiring_before(self, now: datetime) -> List[schemas.BookingRead]:
        # Served by ix_bookings_expires_at
        items = (
            self.db.query(models.Booking)
            .filter(
                models.Booking.status == BookingStatus.PENDING.value,
                models.Booking.expires_at.isnot(None),
                models.Booking.expires_at <= now,
            )
            .order_by(models.Booking.id.asc())
            .all()
        )
        return [b for b in (_booking_read(obj) for obj in items) if b.expires_at <= as_utc(now)]

    def get_payment_for_booking(self, booking_id: int) -> Optional[schemas.PaymentRead]:
        obj = self.db.query(models.Payment).filter(models.Payment.booking_id == booking_id).first()
        return schemas.PaymentRead.model_validate(obj) if obj else None

    def insert_payment(self, data: schemas.PaymentCreate) -> schemas.PaymentRead:
        obj = models.Payment(
            booking_id=data.booking_id,
            amount_cents=data.amount_cents,
            method=data.method.value,
            paid_at=data.paid_at,
        )
        self.db.add(obj)
        self._flush("payment")
        return schemas.PaymentRead.model_validate(obj)

    def add_review(self, data: schemas.ReviewCreate) -> schemas.ReviewRead:
        obj = models.Review(**data.model_dump())
        self.db.add(obj)
        self._flush("review")
        return schemas.ReviewRead.model_validate(obj)


class SqlAlchemyBookingRepository(BookingRepository):
    """Repository over a SQLAlchemy session factory; one session per transaction."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    @contextmanager
    def transaction(self) -> Iterator[SqlAlchemyUnitOfWork]:
        db = self.session_factory()
        try:
            yield SqlAlchemyUnitOfWork(db)
            try:
                db.commit()
            except IntegrityError as exc:
                raise UniquenessViolation("Commit rejected by a uniqueness constraint", details={"error": str(exc.orig)}) from exc
        except Exception:
            # Roll back partial work, then bubble up the error
            db.rollback()
            raise
        finally:
            db.close()
