"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride`` and ``Booking``: enforces valid lifecycle
  transitions (see ``RIDE_TRANSITIONS`` / ``BOOKING_TRANSITIONS``).
- ``Ride.hold`` / ``Ride.release`` encapsulate the seat inventory
  invariant ``0 <= available_seats <= total_seats``.

Entities are plain dataclasses; repositories translate them to and from
ORM rows so the rules here stay DB-agnostic.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo
from typing import Optional

from .enums import (
    BOOKING_TRANSITIONS,
    OPEN_BOOKING_STATUSES,
    RIDE_TRANSITIONS,
    BookingStatus,
    PaymentStatus,
    RideStatus,
    VehicleType,
)
from .errors import Conflict, InvalidTransition, ValidationError

TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
REFERENCE_PATTERN = re.compile(r"^BR([0-9A-F]{8})$")

MAX_LOCATION_LENGTH = 100


def booking_reference(booking_id: int) -> str:
    """Short human-readable reference, e.g. ``BR0000002A`` for id 42."""
    return f"BR{booking_id:08X}"


def parse_booking_reference(reference: str) -> Optional[int]:
    match = REFERENCE_PATTERN.match(reference.strip().upper())
    if not match:
        return None
    return int(match.group(1), 16)


# ── Ride ──────────────────────────────────────────────────────────────


@dataclass
class Ride:
    id: Optional[int] = None
    provider_id: int = 0
    pickup_location: str = ""
    destination: str = ""
    departure_date: Optional[date] = None
    departure_time: str = "00:00"
    total_seats: int = 1
    available_seats: int = 1
    price_per_seat: float = 0.0
    vehicle_type: VehicleType = VehicleType.CAR
    status: RideStatus = RideStatus.ACTIVE
    description: Optional[str] = None
    meeting_point: Optional[str] = None
    estimated_duration: Optional[int] = None
    created_at: Optional[datetime] = None

    def departure_at(self, tz: tzinfo = timezone.utc) -> datetime:
        """Combine the calendar date and HH:MM time into one instant."""
        if self.departure_date is None:
            raise ValidationError("Date is required")
        if not TIME_PATTERN.match(self.departure_time or ""):
            raise ValidationError("Please enter a valid time (HH:MM)")
        hours, minutes = (int(part) for part in self.departure_time.split(":"))
        return datetime.combine(self.departure_date, time(hours, minutes), tzinfo=tz)

    def is_expired(self, now: datetime, tz: tzinfo = timezone.utc) -> bool:
        """True iff *now* is strictly after the scheduled departure."""
        return now > self.departure_at(tz)

    def validate(self, now: datetime, tz: tzinfo = timezone.utc, max_seats: int = 8) -> None:
        """Check the create/update invariants, raising ``ValidationError``."""
        if not self.pickup_location.strip():
            raise ValidationError("Pickup location is required")
        if not self.destination.strip():
            raise ValidationError("Destination is required")
        if len(self.pickup_location) > MAX_LOCATION_LENGTH:
            raise ValidationError("Pickup location cannot exceed 100 characters")
        if len(self.destination) > MAX_LOCATION_LENGTH:
            raise ValidationError("Destination cannot exceed 100 characters")
        if not 1 <= self.total_seats <= max_seats:
            raise ValidationError(f"Total seats must be between 1 and {max_seats}")
        if self.available_seats < 0:
            raise ValidationError("Available seats cannot be negative")
        if self.available_seats > self.total_seats:
            raise ValidationError("Available seats cannot exceed total seats")
        if self.price_per_seat < 0:
            raise ValidationError("Price cannot be negative")
        if self.estimated_duration is not None and self.estimated_duration < 1:
            raise ValidationError("Duration must be at least 1 minute")
        if self.departure_at(tz) <= now:
            raise ValidationError("Ride must be scheduled in the future")

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidTransition(
                f"Cannot transition ride from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def hold(self, seats: int) -> None:
        if seats > self.available_seats:
            raise Conflict("Not enough seats available")
        self.available_seats -= seats

    def release(self, seats: int) -> None:
        self.available_seats = min(self.available_seats + seats, self.total_seats)


# ── Booking ───────────────────────────────────────────────────────────


@dataclass
class Booking:
    id: Optional[int] = None
    ride_id: int = 0
    rider_id: int = 0
    seats_booked: int = 1
    total_price: float = 0.0
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_intent_id: Optional[str] = None
    refund_id: Optional[str] = None
    special_requests: Optional[str] = None
    contact_phone: Optional[str] = None
    pickup_notes: Optional[str] = None
    booked_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    @property
    def reference(self) -> Optional[str]:
        return booking_reference(self.id) if self.id is not None else None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_BOOKING_STATUSES

    def transition_to(self, new_status: BookingStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = BOOKING_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidTransition(
                f"Cannot change booking from {self.status.value} to {new_status.value}"
            )
        self.status = new_status

    def confirm(self, now: datetime) -> None:
        self.transition_to(BookingStatus.CONFIRMED)
        self.confirmed_at = now

    def complete(self, now: datetime) -> None:
        self.transition_to(BookingStatus.COMPLETED)
        self.completed_at = now

    def cancel(self, now: datetime, reason: str) -> None:
        if self.status == BookingStatus.CANCELLED:
            raise InvalidTransition("Booking is already cancelled")
        if self.status == BookingStatus.COMPLETED:
            raise InvalidTransition("Cannot cancel completed booking")
        self.transition_to(BookingStatus.CANCELLED)
        self.cancelled_at = now
        self.cancellation_reason = reason[:200]
