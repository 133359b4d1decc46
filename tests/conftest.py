"""
Shared test fixtures.

Uses a throwaway SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  Each test gets its own database file, so
separate sessions really are separate connections, which is what the
seat-race tests need.  Real-time events, notifications and emails are
captured by recording sinks instead of leaving the process.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from campusride.domain.entities import Ride
from campusride.domain.enums import (
    NotificationCategory,
    NotificationPriority,
    RideStatus,
    UserRole,
    VehicleType,
)
from campusride.infrastructure.database import Base
from campusride.infrastructure.email import BookingEmail, EmailSender
from campusride.infrastructure.events import EventSink
from campusride.infrastructure.models import UserModel
from campusride.infrastructure.notifications import NotificationSink
from campusride.infrastructure.repositories import BookingRepository, RideRepository

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ── Clock ─────────────────────────────────────────────────────────────


class FrozenClock:
    """Virtual clock; only moves when a test calls ``advance``."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ── Recording sinks ───────────────────────────────────────────────────


class RecordingEventSink(EventSink):
    def __init__(self):
        self.emitted: list[tuple[str, str, dict[str, Any]]] = []

    async def emit(self, room: str, event: str, payload: dict[str, Any]) -> None:
        self.emitted.append((room, event, payload))

    def named(self, event: str) -> list[tuple[str, dict[str, Any]]]:
        return [(room, payload) for room, name, payload in self.emitted if name == event]


class RecordingNotificationSink(NotificationSink):
    def __init__(self):
        self.sent: list[dict[str, Any]] = []

    async def create_notification(
        self,
        user_id: int,
        title: str,
        message: str,
        category: NotificationCategory,
        related_id: Optional[int] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
    ) -> None:
        self.sent.append(
            {
                "user_id": user_id,
                "title": title,
                "message": message,
                "category": category,
                "related_id": related_id,
                "priority": priority,
            }
        )

    def titles_for(self, user_id: int) -> list[str]:
        return [n["title"] for n in self.sent if n["user_id"] == user_id]


class RecordingEmailSender(EmailSender):
    def __init__(self):
        self.confirmations: list[BookingEmail] = []
        self.rejections: list[BookingEmail] = []

    async def send_booking_confirmation(self, details: BookingEmail) -> None:
        self.confirmations.append(details)

    async def send_booking_rejection(self, details: BookingEmail) -> None:
        self.rejections.append(details)


class FailingEmailSender(EmailSender):
    async def send_booking_confirmation(self, details: BookingEmail) -> None:
        raise ConnectionError("SMTP server unavailable")

    async def send_booking_rejection(self, details: BookingEmail) -> None:
        raise ConnectionError("SMTP server unavailable")


# ── Database ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a fresh database file, yield a session factory."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'campusride.db'}", echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@dataclass
class People:
    provider: int
    other_staff: int
    rider: int
    other_rider: int
    third_rider: int


@pytest_asyncio.fixture
async def people(session_factory) -> People:
    async with session_factory() as session:
        users = [
            UserModel(name="Dr. Helen Okafor", email="okafor@campus.example",
                      phone="+1 555 0101", role=UserRole.STAFF),
            UserModel(name="Marcus Lindqvist", email="lindqvist@campus.example",
                      role=UserRole.STAFF),
            UserModel(name="Mei Chen", email="mchen@student.example",
                      role=UserRole.STUDENT),
            UserModel(name="Jonah Adler", email="jadler@student.example",
                      role=UserRole.STUDENT),
            UserModel(name="Amara Nwosu", email="anwosu@student.example",
                      role=UserRole.STUDENT),
        ]
        session.add_all(users)
        await session.commit()
        return People(*(u.id for u in users))


# ── Side-effect sinks & clock ─────────────────────────────────────────


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def events() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def notifications() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def email() -> RecordingEmailSender:
    return RecordingEmailSender()


# ── Builders ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def make_service(session_factory, events, notifications, email, clock):
    """
    ``make_service(BookingService)`` -> service on its own session.

    Keyword arguments override the default sinks / clock.
    """
    opened: list[AsyncSession] = []

    def _make(service_cls, **overrides):
        session = session_factory()
        opened.append(session)
        kwargs = {
            "events": events,
            "notifications": notifications,
            "email": email,
            "clock": clock,
        }
        kwargs.update(overrides)
        return service_cls(session, **kwargs)

    yield _make

    for session in opened:
        await session.close()


@pytest.fixture
def make_ride(session_factory, clock, people):
    """Insert a ride directly, bypassing create-time validation."""

    async def _make(
        departs_in: timedelta = timedelta(days=1),
        seats: int = 4,
        available: Optional[int] = None,
        price: float = 5.0,
        status: RideStatus = RideStatus.ACTIVE,
        provider_id: Optional[int] = None,
        pickup: str = "Main Gate",
        destination: str = "Central Station",
    ) -> Ride:
        departure = clock() + departs_in
        ride = Ride(
            provider_id=provider_id or people.provider,
            pickup_location=pickup,
            destination=destination,
            departure_date=departure.date(),
            departure_time=departure.strftime("%H:%M"),
            total_seats=seats,
            available_seats=seats if available is None else available,
            price_per_seat=price,
            vehicle_type=VehicleType.CAR,
            status=status,
        )
        async with session_factory() as session:
            ride = await RideRepository(session).add(ride)
            await session.commit()
        return ride

    return _make


class Store:
    """Reads committed state through a fresh session."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def ride(self, ride_id: int) -> Ride:
        async with self.session_factory() as session:
            return await RideRepository(session).get(ride_id)

    async def booking(self, booking_id: int):
        async with self.session_factory() as session:
            return await BookingRepository(session).get(booking_id)

    async def bookings_for(self, ride_id: int):
        async with self.session_factory() as session:
            return await BookingRepository(session).list_for_ride(ride_id)


@pytest.fixture
def store(session_factory) -> Store:
    return Store(session_factory)
