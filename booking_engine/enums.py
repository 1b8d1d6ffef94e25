# Enumerated domain values shared by ORM tables, DTOs and services.
# Stored as plain strings in the database; str-mixins keep comparisons and JSON output simple.
from enum import Enum


class UserRole(str, Enum):
    """Account role. Any role may book; host/admin may own listings."""
    GUEST = "guest"
    HOST = "host"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    """Lifecycle state of a booking."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"


class BookingEvent(str, Enum):
    """Requests that drive the booking state machine."""
    CONFIRM = "confirm"
    CANCEL = "cancel"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"
    STRIPE = "stripe"


# Statuses that occupy a property's calendar
ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)
HOST_ROLES = (UserRole.HOST, UserRole.ADMIN)
