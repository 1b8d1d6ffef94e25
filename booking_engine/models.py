# SQLAlchemy ORM models for the marketplace tables (users, properties, bookings, payments, reviews, messages).
# Keep business logic out of models; the orchestrator owns booking state changes.
from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import declarative_mixin, relationship

from .db import Base


@declarative_mixin
class TimestampMixin:
    """Common UTC-aware timestamps.

    - created_at: set on insert (services may pass an explicit value from the injected clock)
    - updated_at: set on insert and updated on each modification
    """
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class User(Base, TimestampMixin):
    """Marketplace account.

    Roles:
    - guest: can book properties
    - host: can list properties and also book as a guest
    - admin: can manage any booking
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, index=True, default="guest")

    __table_args__ = (
        CheckConstraint("role IN ('guest', 'host', 'admin')", name="ck_users_role"),
        CheckConstraint("email LIKE '%@%.%'", name="ck_users_email_format"),
    )


class Property(Base, TimestampMixin):
    """Rental listing owned by a host. Deleting it removes its bookings and reviews."""
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    host_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    location = Column(String(500), nullable=False)
    price_per_night_cents = Column(Integer, nullable=False)

    bookings = relationship("Booking", cascade="all, delete-orphan", passive_deletes=True)
    reviews = relationship("Review", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("price_per_night_cents > 0", name="ck_properties_price_positive"),
    )


class Booking(Base, TimestampMixin):
    """Reservation of [start_date, end_date) for a property.

    Status transitions:
    pending -> confirmed -> canceled
       └────────────────────┘

    'version' is incremented on each status change.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    guest_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    total_cents = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(String(255), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    payment = relationship("Payment", uselist=False, cascade="all, delete-orphan", passive_deletes=True)

    # Indexed access patterns: calendar range scans per property, status filters, and hold expiry sweeps
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_bookings_dates"),
        CheckConstraint("total_cents > 0", name="ck_bookings_total_positive"),
        CheckConstraint("status IN ('pending', 'confirmed', 'canceled')", name="ck_bookings_status"),
        Index("ix_bookings_property_start", "property_id", "start_date"),
        Index("ix_bookings_property_end", "property_id", "end_date"),
        Index("ix_bookings_status", "status"),
        Index("ix_bookings_expires_at", "expires_at"),
    )


class Payment(Base):
    """Captured payment for a confirmed booking (exactly one per booking)."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    amount_cents = Column(Integer, nullable=False)
    method = Column(String(20), nullable=False)
    paid_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
        CheckConstraint("method IN ('credit_card', 'paypal', 'stripe')", name="ck_payments_method"),
    )


class Review(Base):
    """Guest rating of a property; one per (author, property)."""
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
        UniqueConstraint("author_id", "property_id", name="uq_reviews_author_property"),
    )


class Message(Base):
    """Direct message between two users."""
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    body = Column(Text, nullable=False)
    sent_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Conversation lookups walk (sender, recipient) pairs in chronological order
    __table_args__ = (
        CheckConstraint("sender_id <> recipient_id", name="ck_messages_distinct_parties"),
        Index("ix_messages_sender_recipient_sent_at", "sender_id", "recipient_id", "sent_at"),
    )
