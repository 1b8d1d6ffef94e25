# Repository contract: uniqueness rules, storage-level overlap guard, rollback, and property delete cascades.
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from booking_engine import models, schemas
from booking_engine.db import SessionLocal
from booking_engine.enums import BookingStatus, PaymentMethod
from booking_engine.errors import Forbidden, NotFound, UniquenessViolation
from booking_engine.repository import SqlAlchemyBookingRepository
from conftest import seed_world

NOW = datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)


def booking_row(world, start: date, end: date, status: BookingStatus = BookingStatus.PENDING) -> schemas.BookingCreate:
    return schemas.BookingCreate(
        property_id=world.prop.id,
        guest_id=world.guest.id,
        start_date=start,
        end_date=end,
        total_cents=(end - start).days * world.prop.price_per_night_cents,
        status=status,
        created_at=NOW,
    )


def test_duplicate_email_is_rejected(repository, world):
    with pytest.raises(UniquenessViolation):
        with repository.transaction() as uow:
            uow.add_user(schemas.UserCreate(email="  GUEST@example.com ", display_name="Twin"))


def test_one_review_per_author_and_property(repository, world):
    review = schemas.ReviewCreate(property_id=world.prop.id, author_id=world.guest.id, rating=5, comment="Lovely")
    with repository.transaction() as uow:
        saved = uow.add_review(review)
    assert saved.rating == 5

    with pytest.raises(UniquenessViolation):
        with repository.transaction() as uow:
            uow.add_review(review)

    # A different author may still review the same listing
    with repository.transaction() as uow:
        uow.add_review(review.model_copy(update={"author_id": world.other_guest.id}))


def test_storage_rejects_overlapping_live_rows(repository, world):
    with repository.transaction() as uow:
        uow.insert_booking(booking_row(world, date(2025, 6, 1), date(2025, 6, 5)))

    with pytest.raises(UniquenessViolation):
        with repository.transaction() as uow:
            uow.insert_booking(booking_row(world, date(2025, 6, 4), date(2025, 6, 8)))

    # Touching ranges and canceled rows are not live overlaps
    with repository.transaction() as uow:
        uow.insert_booking(booking_row(world, date(2025, 6, 5), date(2025, 6, 8)))
        uow.insert_booking(booking_row(world, date(2025, 6, 2), date(2025, 6, 3), status=BookingStatus.CANCELED))


def test_failed_transaction_leaves_nothing(repository, world):
    with pytest.raises(RuntimeError):
        with repository.transaction() as uow:
            uow.insert_booking(booking_row(world, date(2025, 6, 1), date(2025, 6, 5)))
            raise RuntimeError("boom")

    with repository.transaction() as uow:
        assert uow.find_bookings_overlapping_window(world.prop.id, date(2025, 1, 1), date(2026, 1, 1)) == []


def test_window_lookup_is_inclusive_and_filtered(repository, world):
    with repository.transaction() as uow:
        first = uow.insert_booking(booking_row(world, date(2025, 6, 1), date(2025, 6, 5)))
        second = uow.insert_booking(booking_row(world, date(2025, 6, 10), date(2025, 6, 12)))
        uow.update_booking_status(second.id, BookingStatus.CANCELED, cancel_reason="changed plans")

    with repository.transaction() as uow:
        # Touching the checkout day still returns the row; overlap itself is decided by the caller
        touching = uow.find_bookings_overlapping_window(world.prop.id, date(2025, 6, 5), date(2025, 6, 7))
        assert [b.id for b in touching] == [first.id]
        everything = uow.find_bookings_overlapping_window(
            world.prop.id, date(2025, 6, 1), date(2025, 6, 30), statuses=tuple(BookingStatus)
        )
        assert [b.id for b in everything] == [first.id, second.id]
        assert everything[1].cancel_reason == "changed plans"
        assert everything[1].version == 2


def test_pending_rows_listed_by_age(repository, world):
    with repository.transaction() as uow:
        old = uow.insert_booking(booking_row(world, date(2025, 6, 1), date(2025, 6, 5)))
        young = uow.insert_booking(
            booking_row(world, date(2025, 6, 10), date(2025, 6, 12)).model_copy(
                update={"created_at": NOW + timedelta(hours=1)}
            )
        )
    with repository.transaction() as uow:
        assert [b.id for b in uow.list_pending_created_before(NOW + timedelta(minutes=30))] == [old.id]
        assert [b.id for b in uow.list_pending_created_before(NOW + timedelta(hours=2))] == [old.id, young.id]


def test_deleting_property_cascades(repository, world):
    with repository.transaction() as uow:
        booking = uow.insert_booking(booking_row(world, date(2025, 6, 1), date(2025, 6, 5)))
        uow.update_booking_status(booking.id, BookingStatus.CONFIRMED, confirmed_at=NOW)
        uow.insert_payment(
            schemas.PaymentCreate(
                booking_id=booking.id, amount_cents=booking.total_cents, method=PaymentMethod.CREDIT_CARD, paid_at=NOW
            )
        )
        uow.add_review(
            schemas.ReviewCreate(property_id=world.prop.id, author_id=world.guest.id, rating=4, comment="Great view")
        )

    with repository.transaction() as uow:
        assert uow.delete_property(world.prop.id) is True
        assert uow.delete_property(world.prop.id) is False

    with repository.transaction() as uow:
        assert uow.get_property(world.prop.id) is None
        assert uow.get_booking(booking.id) is None
        assert uow.get_payment_for_booking(booking.id) is None
        # Users survive their listings
        assert uow.get_user(world.host.id) is not None


def test_sql_cascade_reaches_every_table():
    # Checks the rows directly, beneath the repository, to prove the database performs the cascade
    repository = SqlAlchemyBookingRepository(SessionLocal)
    world = seed_world(repository)
    with repository.transaction() as uow:
        booking = uow.insert_booking(booking_row(world, date(2025, 6, 1), date(2025, 6, 5)))
        uow.insert_payment(
            schemas.PaymentCreate(booking_id=booking.id, amount_cents=40000, method=PaymentMethod.STRIPE, paid_at=NOW)
        )
        uow.add_review(schemas.ReviewCreate(property_id=world.prop.id, author_id=world.guest.id, rating=3, comment="Ok"))
        uow.delete_property(world.prop.id)

    db = SessionLocal()
    try:
        assert db.query(models.Booking).count() == 0
        assert db.query(models.Payment).count() == 0
        assert db.query(models.Review).count() == 0
        assert db.query(models.User).count() == 4
    finally:
        db.close()


def test_sql_check_constraints_guard_raw_rows():
    db = SessionLocal()
    try:
        db.add(models.User(email="not-an-email", display_name="Bad", role="guest"))
        with pytest.raises(IntegrityError):
            db.flush()
        db.rollback()

        db.add(models.User(email="x@example.com", display_name="Bad", role="superuser"))
        with pytest.raises(IntegrityError):
            db.flush()
        db.rollback()
    finally:
        db.close()


def test_only_hosts_can_list_properties(repository, world):
    listing = schemas.PropertyCreate(host_id=world.guest.id, title="Spare Room", location="Porto", price_per_night_cents=5000)
    with pytest.raises(Forbidden):
        with repository.transaction() as uow:
            uow.add_property(listing)

    # Admins carry the host capability
    with repository.transaction() as uow:
        assert uow.add_property(listing.model_copy(update={"host_id": world.admin.id})).host_id == world.admin.id


def test_unknown_host_is_not_found(repository, world):
    listing = schemas.PropertyCreate(host_id=999, title="Ghost House", location="Nowhere", price_per_night_cents=5000)
    with pytest.raises(NotFound) as info:
        with repository.transaction() as uow:
            uow.add_property(listing)
    assert info.value.details == {"kind": "User", "id": 999}
