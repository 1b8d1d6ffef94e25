# Pytest configuration for the booking core.
# Forces a local SQLite DB, disables Redis, pins time with a controllable clock, and runs store-agnostic suites
# against both the in-memory and the SQLAlchemy repository.
import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Iterator

import pytest

# Test-time environment: local SQLite DB, Redis disabled
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("REDIS_ENABLED", "false")

import sys
# Ensure the repo root is on sys.path so 'booking_engine' resolves when running pytest without installing
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from booking_engine import schemas  # noqa: E402
from booking_engine.config import BookingPolicy  # noqa: E402
from booking_engine.db import Base, SessionLocal, engine  # noqa: E402
from booking_engine.enums import UserRole  # noqa: E402
from booking_engine.memory import InMemoryBookingRepository  # noqa: E402
from booking_engine.orchestrator import BookingOrchestrator  # noqa: E402
from booking_engine.repository import BookingRepository, SqlAlchemyBookingRepository  # noqa: E402


class FixedClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, now: datetime) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _clean_db() -> Iterator[None]:
    """
    Function-level isolation: drop and recreate schema before each test.

    Simple but effective for this small suite; avoids transactional complexity.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture(params=["memory", "sql"])
def repository(request: pytest.FixtureRequest) -> BookingRepository:
    if request.param == "memory":
        return InMemoryBookingRepository()
    return SqlAlchemyBookingRepository(SessionLocal)


@pytest.fixture()
def policy() -> BookingPolicy:
    return BookingPolicy()


@pytest.fixture()
def orchestrator(repository: BookingRepository, clock: FixedClock, policy: BookingPolicy) -> BookingOrchestrator:
    return BookingOrchestrator(repository, clock=clock, policy=policy)


def seed_world(repository: BookingRepository, price_per_night_cents: int = 10000) -> SimpleNamespace:
    """
    Create a host with one property, two guests and an admin.

    Returns a namespace with host, guest, other_guest, admin and prop (all *Read models).
    """
    with repository.transaction() as uow:
        host = uow.add_user(schemas.UserCreate(email="host@example.com", display_name="Hana Host", role=UserRole.HOST))
        guest = uow.add_user(schemas.UserCreate(email="guest@example.com", display_name="Gus Guest"))
        other_guest = uow.add_user(schemas.UserCreate(email="other@example.com", display_name="Olga Other"))
        admin = uow.add_user(schemas.UserCreate(email="admin@example.com", display_name="Ada Admin", role=UserRole.ADMIN))
        prop = uow.add_property(
            schemas.PropertyCreate(
                host_id=host.id,
                title="Seaside Loft",
                location="Lisbon, Portugal",
                price_per_night_cents=price_per_night_cents,
            )
        )
    return SimpleNamespace(host=host, guest=guest, other_guest=other_guest, admin=admin, prop=prop)


@pytest.fixture()
def world(repository: BookingRepository) -> SimpleNamespace:
    return seed_world(repository)
