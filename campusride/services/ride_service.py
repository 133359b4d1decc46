"""
Ride Service
============

Provider-side ride lifecycle: publish, edit, cancel, plus the read
queries used by the rides endpoints.

A ride is editable only while it is active and none of its bookings is
confirmed or completed.  Rides are never deleted: cancelling one moves
it to ``cancelled`` and cancels its pending bookings, refunding their
seats.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import date
from typing import Any, Optional

from .base import BaseService
from .booking_service import booking_payload
from .hooks import PostCommitHooks
from campusride.config import settings
from campusride.domain.entities import TIME_PATTERN, Ride
from campusride.domain.enums import (
    LOCKING_BOOKING_STATUSES,
    BookingStatus,
    NotificationCategory,
    NotificationPriority,
    RideStatus,
    VehicleType,
)
from campusride.domain.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    ValidationError,
)
from campusride.infrastructure.events import RIDE_CANCELLED, ride_room, user_room

logger = logging.getLogger(__name__)

RIDE_CANCELLED_REASON = "Ride cancelled by provider"
RIDE_CHANGED = "Ride was modified by another request, please reload"


@dataclass
class RideDraft:
    pickup_location: str
    destination: str
    departure_date: date
    departure_time: str
    total_seats: int
    price_per_seat: float
    available_seats: Optional[int] = None
    vehicle_type: VehicleType = VehicleType.CAR
    description: Optional[str] = None
    meeting_point: Optional[str] = None
    estimated_duration: Optional[int] = None


UPDATABLE_FIELDS = frozenset(
    f.name for f in fields(RideDraft) if f.name != "available_seats"
)


def normalize_time(value: str) -> str:
    """``"9:05"`` -> ``"09:05"`` so string ordering matches clock ordering."""
    value = (value or "").strip()
    if not TIME_PATTERN.match(value):
        raise ValidationError("Please enter a valid time (HH:MM)")
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


class RideService(BaseService):
    async def create_ride(self, provider_id: int, draft: RideDraft) -> Ride:
        ride = Ride(
            provider_id=provider_id,
            pickup_location=draft.pickup_location.strip(),
            destination=draft.destination.strip(),
            departure_date=draft.departure_date,
            departure_time=normalize_time(draft.departure_time),
            total_seats=draft.total_seats,
            available_seats=(
                draft.total_seats
                if draft.available_seats is None
                else draft.available_seats
            ),
            price_per_seat=draft.price_per_seat,
            vehicle_type=draft.vehicle_type,
            description=draft.description,
            meeting_point=draft.meeting_point,
            estimated_duration=draft.estimated_duration,
        )
        ride.validate(self.clock(), self.tz, settings.max_seats)

        # Re-read the clock: a departure on the boundary may have passed
        # while validating, in which case the ride starts out expired.
        if ride.is_expired(self.clock(), self.tz):
            ride.status = RideStatus.EXPIRED

        async with self.transaction():
            ride = await self.rides.add(ride)
        await self.commit(PostCommitHooks())

        logger.info(
            "Ride %s published by provider %s: %s -> %s on %s %s",
            ride.id,
            provider_id,
            ride.pickup_location,
            ride.destination,
            ride.departure_date,
            ride.departure_time,
        )
        return ride

    async def update_ride(
        self, ride_id: int, provider_id: int, changes: dict[str, Any]
    ) -> Ride:
        ride = await self._get_ride(ride_id)
        if ride.provider_id != provider_id:
            raise Forbidden("Not authorized to update this ride")
        if ride.status != RideStatus.ACTIVE:
            raise InvalidTransition(f"Cannot update a ride that is {ride.status.value}")
        if await self.bookings.count_for_ride(ride.id, LOCKING_BOOKING_STATUSES):
            raise ValidationError("Cannot update ride with confirmed bookings")

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        for name, value in changes.items():
            if value is None:
                continue
            if name == "departure_time":
                value = normalize_time(value)
            elif name in ("pickup_location", "destination"):
                value = value.strip()
            setattr(ride, name, value)

        reseat = changes.get("total_seats") is not None
        async with self.transaction():
            if reseat:
                held = await self.bookings.seats_held(ride.id)
                if held > ride.total_seats:
                    raise ValidationError(
                        f"{held} seat(s) are already booked; total seats cannot be lower"
                    )
                ride.available_seats = ride.total_seats - held
            ride.validate(self.clock(), self.tz, settings.max_seats)
            if not await self.rides.update_details(ride, reseat=reseat):
                raise Conflict(RIDE_CHANGED)
            ride = await self._get_ride(ride.id)
        await self.commit(PostCommitHooks())

        logger.info("Ride %s updated: %s", ride.id, ", ".join(sorted(changes)))
        return ride

    async def cancel_ride(
        self, ride_id: int, provider_id: int, reason: Optional[str] = None
    ) -> Ride:
        ride = await self._get_ride(ride_id)
        if ride.provider_id != provider_id:
            raise Forbidden("Not authorized to cancel this ride")
        if await self.bookings.count_for_ride(ride.id, LOCKING_BOOKING_STATUSES):
            raise ValidationError("Cannot cancel ride with confirmed bookings")
        ride.transition_to(RideStatus.CANCELLED)

        reason = reason or RIDE_CANCELLED_REASON
        now = self.clock()
        hooks = PostCommitHooks()
        async with self.transaction():
            affected = await self.rides.transition_many(
                [ride.id], RideStatus.ACTIVE, RideStatus.CANCELLED
            )
            if not affected:
                raise InvalidTransition("Ride is no longer active")

            pending = await self.bookings.list_for_ride(ride.id, BookingStatus.PENDING)
            for booking in pending:
                booking.cancel(now, reason)
                if not await self.bookings.save(booking, BookingStatus.PENDING):
                    raise Conflict(RIDE_CHANGED)
                await self.rides.release_seats(ride.id, booking.seats_booked)
                ride.release(booking.seats_booked)
                self._queue_email(
                    hooks,
                    "rejection",
                    await self._email_details(booking, ride, reason),
                )
                hooks.add(
                    "notify rider",
                    self.notifications.create_notification,
                    booking.rider_id,
                    "Ride Cancelled",
                    f"Your ride from {ride.pickup_location} to {ride.destination} "
                    f"was cancelled: {reason}",
                    NotificationCategory.RIDE_UPDATE,
                    booking.id,
                    NotificationPriority.HIGH,
                )
                hooks.add(
                    "emit ride_cancelled to rider",
                    self.events.emit,
                    user_room(booking.rider_id),
                    RIDE_CANCELLED,
                    booking_payload(booking, ride, reason=reason),
                )

            # A booking confirmed after the first check must abort the cancel
            if await self.bookings.count_for_ride(ride.id, LOCKING_BOOKING_STATUSES):
                raise ValidationError("Cannot cancel ride with confirmed bookings")

        hooks.add(
            "emit ride_cancelled",
            self.events.emit,
            ride_room(ride.id),
            RIDE_CANCELLED,
            {"ride_id": ride.id, "status": ride.status.value, "reason": reason},
        )
        await self.commit(hooks)

        logger.info("Ride %s cancelled by provider %s", ride.id, provider_id)
        return ride

    # ── Queries ───────────────────────────────────────────────────────

    async def get_ride(self, ride_id: int) -> Ride:
        return await self._get_ride(ride_id)

    async def list_available_rides(
        self,
        pickup: Optional[str] = None,
        destination: Optional[str] = None,
        on_date: Optional[date] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Ride], int]:
        """Active rides that have not departed yet, soonest first."""
        now = self.clock()
        rides = [
            ride
            for ride in await self.rides.search(
                statuses=[RideStatus.ACTIVE],
                pickup=pickup,
                destination=destination,
                on_date=on_date,
            )
            if not ride.is_expired(now, self.tz)
        ]
        start = (max(page, 1) - 1) * limit
        return rides[start : start + limit], len(rides)

    async def list_provider_rides(
        self,
        provider_id: int,
        status: Optional[RideStatus] = None,
        include_history: bool = False,
    ) -> list[Ride]:
        if status:
            statuses = [status]
        elif include_history:
            statuses = list(RideStatus)
        else:
            statuses = [RideStatus.ACTIVE, RideStatus.COMPLETED]
        return await self.rides.search(statuses=statuses, provider_id=provider_id)
