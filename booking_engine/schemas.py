# Pydantic models: typed entities passed across the repository boundary plus request/response DTOs.
# Field validators carry the entity invariants; storage mirrors them as table constraints.
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from .enums import BookingStatus, PaymentMethod, UserRole


# Users
class UserCreate(BaseModel):
    email: EmailStr
    display_name: str = Field(..., min_length=1, max_length=255)
    role: UserRole = UserRole.GUEST

    # Normalize email input to lowercase without surrounding whitespace
    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().lower()
        return v

    @field_validator("display_name", mode="before")
    @classmethod
    def strip_display_name(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip()
        return v


class UserRead(UserCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


# Properties
class PropertyCreate(BaseModel):
    host_id: int = Field(..., ge=1)
    title: str = Field(..., min_length=1, max_length=255)
    location: str = Field(..., min_length=1, max_length=500)
    price_per_night_cents: int = Field(..., gt=0)

    @field_validator("title", "location", mode="before")
    @classmethod
    def strip_text(cls, v: str) -> str:
        # Trim surrounding whitespace before validation
        if isinstance(v, str):
            v = v.strip()
        return v


class PropertyRead(PropertyCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


# Bookings
# Common booking fields; every booking occupies [start_date, end_date)
class BookingBase(BaseModel):
    property_id: int = Field(..., ge=1)
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_dates(self) -> "BookingBase":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


# Row handed to the repository by the orchestrator
class BookingCreate(BookingBase):
    guest_id: int = Field(..., ge=1)
    total_cents: int = Field(..., gt=0)
    status: BookingStatus = BookingStatus.PENDING
    created_at: datetime
    expires_at: Optional[datetime] = None


class BookingRead(BookingBase):
    id: int
    guest_id: int
    status: BookingStatus
    total_cents: int
    created_at: datetime
    expires_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    version: int = 1

    model_config = ConfigDict(from_attributes=True)


# Request payload for creating a booking over HTTP. Dates are checked by the orchestrator
# so a reversed range surfaces as InvalidInterval rather than a generic 422.
class BookingRequest(BaseModel):
    property_id: int = Field(..., ge=1)
    guest_id: int = Field(..., ge=1)
    start_date: date
    end_date: date


# Payments
class PaymentCreate(BaseModel):
    booking_id: int = Field(..., ge=1)
    amount_cents: int = Field(..., gt=0)
    method: PaymentMethod
    paid_at: datetime


class PaymentRead(PaymentCreate):
    id: int

    model_config = ConfigDict(from_attributes=True)


class PaymentRequest(BaseModel):
    amount_cents: int = Field(..., gt=0)
    method: PaymentMethod


# Reviews
class ReviewCreate(BaseModel):
    property_id: int = Field(..., ge=1)
    author_id: int = Field(..., ge=1)
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1)

    @field_validator("comment", mode="before")
    @classmethod
    def strip_comment(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip()
        return v


class ReviewRead(ReviewCreate):
    id: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Messages
class MessageRead(BaseModel):
    id: int
    sender_id: int
    recipient_id: int
    body: str = Field(..., min_length=1, max_length=1000)
    sent_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def check_parties(self) -> "MessageRead":
        if self.sender_id == self.recipient_id:
            raise ValueError("sender and recipient must differ")
        return self


# Availability
class AvailabilityResponse(BaseModel):
    property_id: int
    start_date: date
    end_date: date
    available: bool


class FreeRange(BaseModel):
    start_date: date
    end_date: date
