"""
Booking Service
===============

Orchestrates create / status-update / cancel against rides and bookings.

Seat inventory
--------------
The seat decrement and the booking insert share one transaction.  The
decrement is a conditional ``UPDATE ... WHERE available_seats >= k``; a
zero row count means another booking won the race and the request fails
with ``Conflict`` instead of being retried, so genuine capacity
exhaustion is always reported to the caller.

Status updates use the same trick on the booking row (``WHERE status =
<previous>``) so two actors cannot both cancel and double-refund seats.

Side effects
------------
Notifications, real-time events and emails are queued on a
``PostCommitHooks`` list and run after commit.  Their failures are
logged and never change the result of the operation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from .base import BaseService
from .hooks import PostCommitHooks
from campusride.config import settings
from campusride.domain.entities import Booking, Ride
from campusride.domain.enums import (
    BookingStatus,
    NotificationCategory,
    NotificationPriority,
    RideStatus,
    UserRole,
)
from campusride.domain.errors import Conflict, Forbidden, ValidationError
from campusride.infrastructure.events import (
    BOOKING_STATUS_UPDATED,
    NEW_BOOKING,
    user_room,
)

logger = logging.getLogger(__name__)

PROVIDER_REJECTION_REASON = "Booking rejected by ride provider"
DEFAULT_CANCELLATION_REASON = "No reason provided"

DUPLICATE_BOOKING = "You already have a booking for this ride"
SEATS_TAKEN = "Seats were just taken by another booking, please try again"
CONCURRENT_UPDATE = "Booking was modified by another request, please reload"

# Statuses each role may request through ``update_status``
PROVIDER_TARGETS = {
    BookingStatus.CONFIRMED,
    BookingStatus.CANCELLED,
    BookingStatus.COMPLETED,
}
RIDER_TARGETS = {BookingStatus.CANCELLED}


@dataclass
class BookingMeta:
    special_requests: Optional[str] = None
    contact_phone: Optional[str] = None
    pickup_notes: Optional[str] = None


def booking_payload(booking: Booking, ride: Ride, **extra: Any) -> dict[str, Any]:
    payload = {
        "booking_id": booking.id,
        "reference": booking.reference,
        "ride_id": ride.id,
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
        "seats_booked": booking.seats_booked,
        "total_price": booking.total_price,
        "ride_details": {
            "pickup_location": ride.pickup_location,
            "destination": ride.destination,
            "date": ride.departure_date.isoformat() if ride.departure_date else None,
            "time": ride.departure_time,
        },
    }
    payload.update(extra)
    return payload


class BookingService(BaseService):
    # ── Create ────────────────────────────────────────────────────────

    async def create_booking(
        self,
        ride_id: int,
        rider_id: int,
        seats_booked: int,
        meta: Optional[BookingMeta] = None,
    ) -> Booking:
        meta = meta or BookingMeta()
        if not 1 <= seats_booked <= settings.max_seats:
            raise ValidationError(
                f"Seats booked must be between 1 and {settings.max_seats}"
            )

        ride = await self._get_ride(ride_id)
        now = self.clock()
        if ride.status != RideStatus.ACTIVE:
            raise ValidationError("Ride is not available for booking")
        if ride.is_expired(now, self.tz):
            raise ValidationError("Ride has already departed")
        if ride.provider_id == rider_id:
            raise Forbidden("Cannot book your own ride")
        if seats_booked > ride.available_seats:
            raise Conflict("Not enough seats available")
        if await self.bookings.find_open(ride.id, rider_id):
            raise Conflict(DUPLICATE_BOOKING)

        booking = Booking(
            ride_id=ride.id,
            rider_id=rider_id,
            seats_booked=seats_booked,
            total_price=round(ride.price_per_seat * seats_booked, 2),
            booked_at=now,
            special_requests=meta.special_requests,
            contact_phone=meta.contact_phone,
            pickup_notes=meta.pickup_notes,
        )

        try:
            async with self.transaction():
                if not await self.rides.reserve_seats(ride.id, seats_booked):
                    raise Conflict(SEATS_TAKEN)
                booking = await self.bookings.add(booking)
                ride.hold(seats_booked)
                rider = await self.users.get_by_id(rider_id)
                email = await self._email_details(booking, ride)
        except IntegrityError:
            # Partial unique index on open (ride, rider) bookings
            if await self.bookings.find_open(ride.id, rider_id):
                raise Conflict(DUPLICATE_BOOKING) from None
            raise

        rider_name = rider.name if rider else f"Rider {rider_id}"
        hooks = PostCommitHooks()
        hooks.add(
            "notify provider",
            self.notifications.create_notification,
            ride.provider_id,
            "New Booking Received",
            f"You have a new booking for {seats_booked} seat(s) "
            f"on your ride to {ride.destination}",
            NotificationCategory.BOOKING,
            booking.id,
            NotificationPriority.HIGH,
        )
        hooks.add(
            "emit new_booking",
            self.events.emit,
            user_room(ride.provider_id),
            NEW_BOOKING,
            booking_payload(
                booking,
                ride,
                rider_name=rider_name,
                rider_email=rider.email if rider else None,
                special_requests=booking.special_requests,
                pickup_notes=booking.pickup_notes,
                message=f"New booking from {rider_name} for {seats_booked} seat(s)",
            ),
        )
        self._queue_email(hooks, "confirmation", email)
        await self.commit(hooks)

        logger.info(
            "Booking %s created: ride=%s rider=%s seats=%d",
            booking.reference,
            ride.id,
            rider_id,
            seats_booked,
        )
        return booking

    # ── Status lifecycle ──────────────────────────────────────────────

    async def update_status(
        self,
        booking_id: int,
        acting_user_id: int,
        acting_role: UserRole,
        new_status: BookingStatus,
        reason: Optional[str] = None,
    ) -> Booking:
        booking = await self._get_booking(booking_id)
        ride = await self._get_ride(booking.ride_id)

        is_provider = (
            acting_role == UserRole.STAFF and ride.provider_id == acting_user_id
        )
        is_rider = acting_role == UserRole.STUDENT and booking.rider_id == acting_user_id
        if not (is_provider or is_rider):
            raise Forbidden("Not authorized to update this booking")

        previous = booking.status
        now = self.clock()
        if new_status == BookingStatus.CANCELLED:
            default = PROVIDER_REJECTION_REASON if is_provider else DEFAULT_CANCELLATION_REASON
            booking.cancel(now, reason or default)
        elif new_status == BookingStatus.CONFIRMED:
            booking.confirm(now)
        elif new_status == BookingStatus.COMPLETED:
            booking.complete(now)
        else:
            booking.transition_to(new_status)  # nothing moves back to pending

        allowed = PROVIDER_TARGETS if is_provider else RIDER_TARGETS
        if new_status not in allowed:
            raise Forbidden(
                f"{acting_role.value.capitalize()} cannot mark a booking {new_status.value}"
            )

        async with self.transaction():
            await self._persist_transition(booking, previous, ride)
            email = None
            if new_status == BookingStatus.CONFIRMED:
                email = await self._email_details(booking, ride)
            elif new_status == BookingStatus.CANCELLED and is_provider:
                email = await self._email_details(
                    booking, ride, booking.cancellation_reason
                )

        counterparty = booking.rider_id if is_provider else ride.provider_id
        hooks = PostCommitHooks()
        if is_provider:
            message = f"Your booking {booking.reference} has been {new_status.value}"
        else:
            message = (
                f"Booking {booking.reference} for {booking.seats_booked} seat(s) "
                f"was {new_status.value} by the rider"
            )
        hooks.add(
            "notify counterparty",
            self.notifications.create_notification,
            counterparty,
            f"Booking {new_status.value.capitalize()}",
            message,
            NotificationCategory.CANCELLATION
            if new_status == BookingStatus.CANCELLED
            else NotificationCategory.BOOKING,
            booking.id,
            NotificationPriority.MEDIUM,
        )
        hooks.add(
            "emit booking_status_updated",
            self.events.emit,
            user_room(counterparty),
            BOOKING_STATUS_UPDATED,
            booking_payload(
                booking,
                ride,
                previous_status=previous.value,
                reason=booking.cancellation_reason,
            ),
        )
        self._queue_email(
            hooks,
            "confirmation" if new_status == BookingStatus.CONFIRMED else "rejection",
            email,
        )
        await self.commit(hooks)

        logger.info(
            "Booking %s: %s -> %s by %s %s",
            booking.reference,
            previous.value,
            new_status.value,
            acting_role.value,
            acting_user_id,
        )
        return booking

    async def cancel_own_booking(
        self, booking_id: int, rider_id: int, reason: Optional[str] = None
    ) -> Booking:
        booking = await self._get_booking(booking_id)
        if booking.rider_id != rider_id:
            raise Forbidden("Not authorized to cancel this booking")

        previous = booking.status
        booking.cancel(self.clock(), reason or DEFAULT_CANCELLATION_REASON)
        ride = await self._get_ride(booking.ride_id)

        async with self.transaction():
            await self._persist_transition(booking, previous, ride)

        hooks = PostCommitHooks()
        hooks.add(
            "notify provider",
            self.notifications.create_notification,
            ride.provider_id,
            "Booking Cancelled",
            f"A booking for {booking.seats_booked} seat(s) has been cancelled",
            NotificationCategory.CANCELLATION,
            booking.id,
            NotificationPriority.MEDIUM,
        )
        hooks.add(
            "emit booking_status_updated",
            self.events.emit,
            user_room(ride.provider_id),
            BOOKING_STATUS_UPDATED,
            booking_payload(
                booking,
                ride,
                previous_status=previous.value,
                reason=booking.cancellation_reason,
            ),
        )
        await self.commit(hooks)

        logger.info("Booking %s cancelled by rider %s", booking.reference, rider_id)
        return booking

    async def _persist_transition(
        self, booking: Booking, previous: BookingStatus, ride: Ride
    ) -> None:
        """Conditional write of the booking; refunds seats on cancellation."""
        if not await self.bookings.save(booking, expected_status=previous):
            raise Conflict(CONCURRENT_UPDATE)
        if booking.status == BookingStatus.CANCELLED:
            await self.rides.release_seats(ride.id, booking.seats_booked)
            ride.release(booking.seats_booked)

    # ── Queries ───────────────────────────────────────────────────────

    async def list_rider_bookings(
        self,
        rider_id: int,
        status: Optional[BookingStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Booking], int]:
        page = max(page, 1)
        return await self.bookings.list_for_rider(
            rider_id, status, offset=(page - 1) * limit, limit=limit
        )

    async def list_ride_bookings(
        self,
        ride_id: int,
        provider_id: int,
        status: Optional[BookingStatus] = None,
    ) -> list[Booking]:
        ride = await self._get_ride(ride_id)
        if ride.provider_id != provider_id:
            raise Forbidden("Not authorized to view bookings for this ride")
        return await self.bookings.list_for_ride(ride_id, status)

    async def get_booking(self, booking_id: int, user_id: int) -> Booking:
        booking = await self._get_booking(booking_id)
        if booking.rider_id != user_id:
            ride = await self._get_ride(booking.ride_id)
            if ride.provider_id != user_id:
                raise Forbidden("Not authorized to view this booking")
        return booking
