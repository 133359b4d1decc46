"""FastAPI dependency injection helpers."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campusride.domain.enums import UserRole
from campusride.infrastructure.database import async_session_factory
from campusride.infrastructure.email import ConsoleEmailSender, EmailSender
from campusride.infrastructure.events import EventSink, RedisEventSink
from campusride.infrastructure.notifications import (
    NotificationSink,
    SqlNotificationSink,
)
from campusride.infrastructure.redis_client import get_redis
from campusride.services.booking_service import BookingService
from campusride.services.payment_service import PaymentService
from campusride.services.ride_service import RideService
from campusride.workers.expiration import ExpirationSweeper, shared_sweeper


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


async def get_event_sink() -> EventSink:
    return RedisEventSink(await get_redis())


def get_notification_sink(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> NotificationSink:
    return SqlNotificationSink(session_factory)


def get_email_sender() -> EmailSender:
    return ConsoleEmailSender()


def get_sweeper(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    events: EventSink = Depends(get_event_sink),
    notifications: NotificationSink = Depends(get_notification_sink),
) -> ExpirationSweeper:
    return shared_sweeper(session_factory, events, notifications)


# ── Identity ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: UserRole


def get_actor(
    x_user_id: int | None = Header(None),
    x_user_role: UserRole | None = Header(None),
) -> Actor:
    """
    Identity asserted by the upstream auth gateway.  Authentication
    itself happens before requests reach this service.
    """
    if x_user_id is None or x_user_role is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return Actor(user_id=x_user_id, role=x_user_role)


def require_role(role: UserRole):
    def _check(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role != role:
            raise HTTPException(
                status_code=403, detail=f"Only {role.value} users can do this"
            )
        return actor

    return _check


# ── Services ──────────────────────────────────────────────────────────


def _service_deps(
    db: AsyncSession = Depends(get_db),
    events: EventSink = Depends(get_event_sink),
    notifications: NotificationSink = Depends(get_notification_sink),
    email: EmailSender = Depends(get_email_sender),
) -> dict:
    return {"session": db, "events": events, "notifications": notifications, "email": email}


def get_booking_service(deps: dict = Depends(_service_deps)) -> BookingService:
    return BookingService(**deps)


def get_ride_service(deps: dict = Depends(_service_deps)) -> RideService:
    return RideService(**deps)


def get_payment_service(deps: dict = Depends(_service_deps)) -> PaymentService:
    return PaymentService(**deps)
