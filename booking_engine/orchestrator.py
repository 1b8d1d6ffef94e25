# Booking orchestrator: the only writer of booking state.
# Each call runs check + write under a per-property lock inside a single repository transaction, so concurrent
# requests for overlapping dates resolve to exactly one winner and every failure leaves nothing behind.
from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional, TypeVar

from . import schemas
from .availability import AvailabilityService
from .clock import Clock, SystemClock
from .config import BookingPolicy
from .enums import BookingEvent, BookingStatus, PaymentMethod, UserRole
from .errors import (
    ConflictError,
    Forbidden,
    InvalidInterval,
    NotFound,
    PaymentRejected,
    UniquenessViolation,
)
from .intervals import nights, validate_interval
from .locks import Deadline, PropertyLocks
from .repository import BookingRepository, BookingUnitOfWork
from .state_machine import transition

logger = logging.getLogger("booking_engine.orchestrator")

T = TypeVar("T")

# A single benign commit race is absorbed; a second one is reported as a conflict
MAX_CREATE_ATTEMPTS = 2


class BookingOrchestrator:
    def __init__(
        self,
        repository: BookingRepository,
        availability: Optional[AvailabilityService] = None,
        clock: Optional[Clock] = None,
        policy: Optional[BookingPolicy] = None,
        locks: Optional[PropertyLocks] = None,
    ) -> None:
        self.repository = repository
        self.policy = policy or (availability.policy if availability else BookingPolicy())
        self.clock = clock or (availability.clock if availability else SystemClock())
        self.availability = availability or AvailabilityService(repository, clock=self.clock, policy=self.policy)
        self.locks = locks or PropertyLocks(ttl_ms=self.policy.lock_ttl_ms)

    # ----------------
    # Helpers
    # ----------------
    def _deadline(self, timeout: Optional[float]) -> Deadline:
        return Deadline(self.policy.lock_timeout_seconds if timeout is None else timeout)

    def _locked(self, property_id: int, deadline: Deadline, work: Callable[[BookingUnitOfWork], T]) -> T:
        """Run `work` in one transaction while holding the property's lock; roll back if the deadline passes."""
        with self.locks.hold(property_id, deadline):
            with self.repository.transaction() as uow:
                result = work(uow)
                deadline.check("commit")
            return result

    def _property_of(self, booking_id: int) -> int:
        with self.repository.transaction() as uow:
            booking = uow.get_booking(booking_id)
        if booking is None:
            raise NotFound("Booking", booking_id)
        return booking.property_id

    def _release_expired_holds(self, uow: BookingUnitOfWork, property_id: int, start: date, end: date) -> None:
        for stale in self.availability.find_expired_holds(uow, property_id, start, end):
            uow.update_booking_status(stale.id, transition(stale.status, BookingEvent.CANCEL), cancel_reason="expired")
            logger.info("booking.hold_released", extra={"booking_id": stale.id, "property_id": property_id})

    # ----------------
    # Operations
    # ----------------
    def create_booking(
        self,
        property_id: int,
        guest_id: int,
        start: date,
        end: date,
        timeout: Optional[float] = None,
    ) -> schemas.BookingRead:
        """
        Create a pending booking for [start, end).

        Errors:
        - InvalidInterval: start >= end, or start before today while future starts are enforced
        - NotFound: unknown property or guest
        - ConflictError: a pending/confirmed booking already occupies part of the range
        - Timeout: the property lock or commit missed the deadline (nothing written)
        """
        validate_interval(start, end)
        now = self.clock.now()
        if self.policy.enforce_future_start and start < now.date():
            raise InvalidInterval(
                "start_date must not be in the past",
                details={"start_date": start.isoformat(), "today": now.date().isoformat()},
            )
        deadline = self._deadline(timeout)

        def work(uow: BookingUnitOfWork) -> schemas.BookingRead:
            prop = uow.get_property(property_id)
            if prop is None:
                raise NotFound("Property", property_id)
            if uow.get_user(guest_id) is None:
                raise NotFound("User", guest_id)

            # Holds that outlived the policy window give their dates back before the conflict check
            self._release_expired_holds(uow, property_id, start, end)
            conflicts = self.availability.find_conflicts(uow, property_id, start, end)
            if conflicts:
                raise ConflictError(
                    "Dates overlap with an existing booking",
                    details={"property_id": property_id, "conflicting_booking_ids": [b.id for b in conflicts]},
                )

            created_at = self.clock.now()
            hold = self.policy.pending_hold
            return uow.insert_booking(
                schemas.BookingCreate(
                    property_id=property_id,
                    guest_id=guest_id,
                    start_date=start,
                    end_date=end,
                    total_cents=prop.price_per_night_cents * nights(start, end),
                    status=BookingStatus.PENDING,
                    created_at=created_at,
                    expires_at=created_at + hold if hold is not None else None,
                )
            )

        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            try:
                booking = self._locked(property_id, deadline, work)
            except UniquenessViolation as exc:
                logger.warning(
                    "booking.create_race",
                    extra={"property_id": property_id, "attempt": attempt, "details": exc.details},
                )
                continue
            logger.info(
                "booking.created",
                extra={"booking_id": booking.id, "property_id": property_id, "guest_id": guest_id},
            )
            return booking

        raise ConflictError(
            "Dates overlap with an existing booking",
            details={"property_id": property_id, "start_date": start.isoformat(), "end_date": end.isoformat()},
        )

    def confirm_booking(self, booking_id: int, timeout: Optional[float] = None) -> schemas.BookingRead:
        """
        Move a pending booking to confirmed.

        Re-checks, under the property lock, that no other live booking overlaps before applying
        the transition. The quoted total is kept as the booking price.
        """
        deadline = self._deadline(timeout)
        property_id = self._property_of(booking_id)

        def work(uow: BookingUnitOfWork) -> schemas.BookingRead:
            booking = uow.get_booking(booking_id)
            if booking is None:
                raise NotFound("Booking", booking_id)
            target = transition(booking.status, BookingEvent.CONFIRM)
            conflicts = self.availability.find_conflicts(
                uow, property_id, booking.start_date, booking.end_date, exclude_booking_id=booking.id
            )
            if conflicts:
                raise ConflictError(
                    "Another booking already holds these dates",
                    details={"booking_id": booking_id, "conflicting_booking_ids": [b.id for b in conflicts]},
                )
            return uow.update_booking_status(booking.id, target, confirmed_at=self.clock.now())

        try:
            booking = self._locked(property_id, deadline, work)
        except UniquenessViolation as exc:
            raise ConflictError("Another booking already holds these dates", details=exc.details) from exc
        logger.info("booking.confirmed", extra={"booking_id": booking.id, "property_id": property_id})
        return booking

    def cancel_booking(
        self,
        booking_id: int,
        actor: Optional[int],
        reason: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> schemas.BookingRead:
        """
        Cancel a booking on behalf of `actor` (a user id; None means the system itself).

        The guest, the property's host and admins may cancel. Cancelling an already
        canceled booking returns it unchanged so duplicate requests are harmless.
        """
        deadline = self._deadline(timeout)
        property_id = self._property_of(booking_id)

        def work(uow: BookingUnitOfWork) -> schemas.BookingRead:
            booking = uow.get_booking(booking_id)
            if booking is None:
                raise NotFound("Booking", booking_id)
            if actor is not None:
                user = uow.get_user(actor)
                if user is None:
                    raise NotFound("User", actor)
                prop = uow.get_property(booking.property_id)
                is_host = prop is not None and prop.host_id == user.id
                if not (user.id == booking.guest_id or is_host or user.role == UserRole.ADMIN):
                    raise Forbidden(
                        "Not allowed to cancel this booking",
                        details={"booking_id": booking_id, "actor_id": actor},
                    )
            if booking.status == BookingStatus.CANCELED:
                return booking
            target = transition(booking.status, BookingEvent.CANCEL)
            return uow.update_booking_status(booking.id, target, cancel_reason=reason or "canceled")

        booking = self._locked(property_id, deadline, work)
        logger.info("booking.canceled", extra={"booking_id": booking.id, "actor_id": actor})
        return booking

    def record_payment(
        self,
        booking_id: int,
        amount_cents: int,
        method: PaymentMethod,
        timeout: Optional[float] = None,
    ) -> schemas.PaymentRead:
        """Record the captured payment of a confirmed booking (exactly one per booking, full amount)."""
        deadline = self._deadline(timeout)
        property_id = self._property_of(booking_id)

        def work(uow: BookingUnitOfWork) -> schemas.PaymentRead:
            booking = uow.get_booking(booking_id)
            if booking is None:
                raise NotFound("Booking", booking_id)
            if booking.status != BookingStatus.CONFIRMED:
                raise PaymentRejected(
                    "Payments can only be recorded for confirmed bookings",
                    details={"booking_id": booking_id, "status": booking.status.value},
                )
            if amount_cents != booking.total_cents:
                raise PaymentRejected(
                    "Payment amount must equal the booking total",
                    details={"amount_cents": amount_cents, "total_cents": booking.total_cents},
                )
            return uow.insert_payment(
                schemas.PaymentCreate(
                    booking_id=booking_id,
                    amount_cents=amount_cents,
                    method=PaymentMethod(method),
                    paid_at=self.clock.now(),
                )
            )

        try:
            payment = self._locked(property_id, deadline, work)
        except UniquenessViolation as exc:
            raise ConflictError("Payment already recorded for this booking", details={"booking_id": booking_id}) from exc
        logger.info("booking.payment_recorded", extra={"booking_id": booking_id, "payment_id": payment.id})
        return payment

    def release_expired_holds(self, timeout: Optional[float] = None) -> int:
        """
        Cancel every pending booking whose hold window has passed.

        Semantics:
        - A stamped expires_at decides; rows without one expire by the current hold policy,
          and never when no hold duration is configured.
        - Each booking is released under its own property lock; rows confirmed or canceled
          in the meantime are skipped, so repeated runs are idempotent.

        Returns:
        - Number of bookings released.
        """
        hold = self.policy.pending_hold
        now = self.clock.now()
        with self.repository.transaction() as uow:
            found = {b.id: b for b in uow.list_pending_expiring_before(now)}
            if hold is not None:
                for b in uow.list_pending_created_before(now - hold):
                    found.setdefault(b.id, b)
        candidates = [found[k] for k in sorted(found)]

        released = 0
        for candidate in candidates:
            deadline = self._deadline(timeout)

            def work(uow: BookingUnitOfWork, booking_id: int = candidate.id) -> bool:
                current = uow.get_booking(booking_id)
                if current is None or not self.availability.hold_expired(current):
                    return False
                uow.update_booking_status(booking_id, transition(current.status, BookingEvent.CANCEL), cancel_reason="expired")
                return True

            if self._locked(candidate.property_id, deadline, work):
                released += 1
        if released:
            logger.info("booking.holds_released", extra={"count": released})
        return released
