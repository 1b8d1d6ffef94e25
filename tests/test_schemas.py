# Entity validation carried by the pydantic models.
from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from booking_engine import schemas
from booking_engine.enums import UserRole


def test_email_is_normalized():
    user = schemas.UserCreate(email="  Alice@Example.COM ", display_name=" Alice ")
    assert user.email == "alice@example.com"
    assert user.display_name == "Alice"
    assert user.role == UserRole.GUEST


@pytest.mark.parametrize("email", ["not-an-email", "alice@", ""])
def test_invalid_email_is_rejected(email):
    with pytest.raises(ValidationError):
        schemas.UserCreate(email=email, display_name="Alice")


@pytest.mark.parametrize("rating", [0, 6])
def test_rating_must_be_one_to_five(rating):
    with pytest.raises(ValidationError):
        schemas.ReviewCreate(property_id=1, author_id=2, rating=rating, comment="meh")


def test_message_needs_two_parties():
    sent = datetime(2025, 5, 1, tzinfo=timezone.utc)
    with pytest.raises(ValidationError):
        schemas.MessageRead(id=1, sender_id=3, recipient_id=3, body="hi", sent_at=sent)
    assert schemas.MessageRead(id=1, sender_id=3, recipient_id=4, body="hi", sent_at=sent).recipient_id == 4


def test_booking_row_requires_forward_dates():
    with pytest.raises(ValidationError):
        schemas.BookingCreate(
            property_id=1,
            guest_id=2,
            start_date=date(2025, 6, 5),
            end_date=date(2025, 6, 5),
            total_cents=100,
            created_at=datetime(2025, 5, 1, tzinfo=timezone.utc),
        )


def test_property_price_must_be_positive():
    with pytest.raises(ValidationError):
        schemas.PropertyCreate(host_id=1, title="Cabin", location="Oslo", price_per_night_cents=0)
