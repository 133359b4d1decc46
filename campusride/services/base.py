"""
Shared plumbing for the ride/booking services.

A service owns one ``AsyncSession`` for its lifetime.  Writes happen
inside ``transaction()``; side effects are queued on a
``PostCommitHooks`` list and executed by ``commit()`` only once the
writes are durable.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import tzinfo
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from .hooks import PostCommitHooks
from campusride.config import settings
from campusride.domain.clock import Clock, ride_tz, utcnow
from campusride.domain.entities import Booking, Ride
from campusride.domain.errors import NotFound
from campusride.infrastructure.email import BookingEmail, EmailSender
from campusride.infrastructure.events import EventSink
from campusride.infrastructure.notifications import NotificationSink
from campusride.infrastructure.repositories import (
    BookingRepository,
    RideRepository,
    UserRepository,
)

logger = logging.getLogger(__name__)


class BaseService:
    def __init__(
        self,
        session: AsyncSession,
        events: EventSink,
        notifications: NotificationSink,
        email: EmailSender,
        clock: Clock = utcnow,
        tz: Optional[tzinfo] = None,
    ):
        self.session = session
        self.events = events
        self.notifications = notifications
        self.email = email
        self.clock = clock
        self.tz = tz or ride_tz(settings.ride_timezone)

        self.rides = RideRepository(session)
        self.bookings = BookingRepository(session)
        self.users = UserRepository(session)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Roll back on any error so no operation partially applies."""
        try:
            yield self.session
        except Exception:
            await self.session.rollback()
            raise

    async def commit(self, hooks: PostCommitHooks) -> None:
        try:
            await self.session.commit()
        except Exception:
            hooks.clear()
            await self.session.rollback()
            raise
        await hooks.run()

    async def _get_ride(self, ride_id: int) -> Ride:
        ride = await self.rides.get(ride_id)
        if ride is None:
            raise NotFound("Ride not found")
        return ride

    async def _get_booking(self, booking_id: int) -> Booking:
        booking = await self.bookings.get(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        return booking

    async def _email_details(
        self, booking: Booking, ride: Ride, reason: Optional[str] = None
    ) -> Optional[BookingEmail]:
        """Resolve recipients while still inside the transaction."""
        rider = await self.users.get_by_id(booking.rider_id)
        provider = await self.users.get_by_id(ride.provider_id)
        if rider is None or provider is None:
            logger.warning(
                "Skipping email for booking %s: rider or provider record missing",
                booking.id,
            )
            return None
        return BookingEmail(
            rider_email=rider.email,
            rider_name=rider.name,
            booking_reference=booking.reference or "",
            seats_booked=booking.seats_booked,
            total_price=booking.total_price,
            pickup_location=ride.pickup_location,
            destination=ride.destination,
            ride_date=ride.departure_date,
            ride_time=ride.departure_time,
            provider_name=provider.name,
            provider_email=provider.email,
            provider_phone=provider.phone,
            reason=reason,
        )

    def _queue_email(
        self, hooks: PostCommitHooks, kind: str, details: Optional[BookingEmail]
    ) -> None:
        if details is None:
            return
        if kind == "confirmation":
            hooks.add("confirmation email", self.email.send_booking_confirmation, details)
        else:
            hooks.add("rejection email", self.email.send_booking_rejection, details)
