"""
Payment outcomes reported by the payment provider.

The provider integration (orders, signature checks, payload parsing)
lives outside this package.  What arrives here is already trusted:
"payment for booking BRxxxxxxxx succeeded / failed".  Webhooks are
retried by providers, so a success for a booking that is already
confirmed and paid is accepted as a no-op.
"""

from __future__ import annotations

import logging
from typing import Optional

from .base import BaseService
from .booking_service import CONCURRENT_UPDATE, booking_payload
from .hooks import PostCommitHooks
from campusride.domain.entities import Booking, parse_booking_reference
from campusride.domain.enums import (
    BookingStatus,
    NotificationCategory,
    NotificationPriority,
    PaymentStatus,
)
from campusride.domain.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from campusride.infrastructure.events import BOOKING_STATUS_UPDATED, user_room

logger = logging.getLogger(__name__)


class PaymentService(BaseService):
    async def get_by_reference(self, reference: str) -> Booking:
        booking_id = parse_booking_reference(reference)
        if booking_id is None:
            raise NotFound("Booking not found")
        return await self._get_booking(booking_id)

    async def record_payment_result(
        self, reference: str, succeeded: bool, payment_id: Optional[str] = None
    ) -> Booking:
        booking = await self.get_by_reference(reference)
        if succeeded:
            return await self._payment_succeeded(booking, payment_id)
        return await self._payment_failed(booking, payment_id)

    async def _payment_succeeded(
        self, booking: Booking, payment_id: Optional[str]
    ) -> Booking:
        if booking.payment_status == PaymentStatus.PAID and booking.status in (
            BookingStatus.CONFIRMED,
            BookingStatus.COMPLETED,
        ):
            logger.info("Duplicate payment confirmation for %s ignored", booking.reference)
            return booking
        if booking.status in (BookingStatus.CANCELLED, BookingStatus.COMPLETED):
            raise InvalidTransition(
                f"Cannot record payment for a {booking.status.value} booking"
            )

        previous = booking.status
        if booking.status == BookingStatus.PENDING:
            booking.confirm(self.clock())
        booking.payment_status = PaymentStatus.PAID
        booking.payment_intent_id = payment_id or booking.payment_intent_id

        ride = await self._get_ride(booking.ride_id)
        async with self.transaction():
            if not await self.bookings.save(booking, expected_status=previous):
                raise Conflict(CONCURRENT_UPDATE)
            email = await self._email_details(booking, ride)

        hooks = PostCommitHooks()
        hooks.add(
            "notify rider",
            self.notifications.create_notification,
            booking.rider_id,
            "Payment Confirmed",
            f"Your payment for booking {booking.reference} has been confirmed.",
            NotificationCategory.PAYMENT,
            booking.id,
            NotificationPriority.HIGH,
        )
        hooks.add(
            "emit booking_status_updated",
            self.events.emit,
            user_room(ride.provider_id),
            BOOKING_STATUS_UPDATED,
            booking_payload(booking, ride, previous_status=previous.value),
        )
        self._queue_email(hooks, "confirmation", email)
        await self.commit(hooks)

        logger.info("Payment %s recorded for booking %s", payment_id, booking.reference)
        return booking

    async def _payment_failed(
        self, booking: Booking, payment_id: Optional[str]
    ) -> Booking:
        if booking.status != BookingStatus.PENDING:
            raise InvalidTransition("Booking is no longer awaiting payment")

        booking.payment_status = PaymentStatus.FAILED
        booking.payment_intent_id = payment_id or booking.payment_intent_id
        async with self.transaction():
            if not await self.bookings.save(booking, expected_status=BookingStatus.PENDING):
                raise Conflict(CONCURRENT_UPDATE)

        hooks = PostCommitHooks()
        hooks.add(
            "notify rider",
            self.notifications.create_notification,
            booking.rider_id,
            "Payment Failed",
            f"Payment for booking {booking.reference} failed. Your booking is still pending.",
            NotificationCategory.PAYMENT,
            booking.id,
            NotificationPriority.HIGH,
        )
        await self.commit(hooks)

        logger.warning("Payment failed for booking %s", booking.reference)
        return booking

    async def record_refund(
        self, booking_id: int, provider_id: int, refund_id: Optional[str] = None
    ) -> Booking:
        booking = await self._get_booking(booking_id)
        ride = await self._get_ride(booking.ride_id)
        if ride.provider_id != provider_id:
            raise Forbidden("Not authorized to process refund for this booking")
        if booking.payment_status != PaymentStatus.PAID:
            raise ValidationError("Booking has not been paid")

        booking.payment_status = PaymentStatus.REFUNDED
        booking.refund_id = refund_id
        async with self.transaction():
            if not await self.bookings.save(booking, expected_status=booking.status):
                raise Conflict(CONCURRENT_UPDATE)

        hooks = PostCommitHooks()
        hooks.add(
            "notify rider",
            self.notifications.create_notification,
            booking.rider_id,
            "Refund Processed",
            "Your refund has been processed and will appear in your account "
            "within 5-10 business days",
            NotificationCategory.PAYMENT,
            booking.id,
            NotificationPriority.MEDIUM,
        )
        await self.commit(hooks)

        logger.info("Refund %s recorded for booking %s", refund_id, booking.reference)
        return booking
