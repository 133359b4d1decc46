"""
Transactional booking emails.

Only the interface matters to the booking core; the bundled sender
writes the rendered message to the log, which is what local
development and tests want.  A provider-backed sender implements the
same two methods.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Optional

from campusride.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingEmail:
    rider_email: str
    rider_name: str
    booking_reference: str
    seats_booked: int
    total_price: float
    pickup_location: str
    destination: str
    ride_date: date
    ride_time: str
    provider_name: str
    provider_email: str
    provider_phone: Optional[str] = None
    reason: Optional[str] = None


class EmailSender(ABC):
    @abstractmethod
    async def send_booking_confirmation(self, details: BookingEmail) -> None: ...

    @abstractmethod
    async def send_booking_rejection(self, details: BookingEmail) -> None: ...


class ConsoleEmailSender(EmailSender):
    def __init__(self, sender: str = settings.email_from):
        self.sender = sender

    async def send_booking_confirmation(self, details: BookingEmail) -> None:
        logger.info(
            "Email from=%s to=%s subject=%r: %d seat(s) %s -> %s on %s %s, total %.2f",
            self.sender,
            details.rider_email,
            f"Booking {details.booking_reference} received",
            details.seats_booked,
            details.pickup_location,
            details.destination,
            details.ride_date,
            details.ride_time,
            details.total_price,
        )

    async def send_booking_rejection(self, details: BookingEmail) -> None:
        logger.info(
            "Email from=%s to=%s subject=%r: %s",
            self.sender,
            details.rider_email,
            f"Booking {details.booking_reference} cancelled",
            details.reason or "No reason provided",
        )
