"""Payment outcome and refund bookkeeping tests."""

import pytest

from campusride.domain.enums import BookingStatus, PaymentStatus, UserRole
from campusride.domain.errors import Forbidden, InvalidTransition, NotFound, ValidationError
from campusride.services.booking_service import BookingService
from campusride.services.payment_service import PaymentService


@pytest.fixture
def book(make_service, make_ride, people):
    async def _book(seats: int = 1):
        ride = await make_ride()
        return await make_service(BookingService).create_booking(
            ride.id, people.rider, seats
        )

    return _book


class TestPaymentResult:
    @pytest.mark.asyncio
    async def test_success_confirms_pending_booking(
        self, make_service, book, people, notifications, store
    ):
        booking = await book(2)

        paid = await make_service(PaymentService).record_payment_result(
            booking.reference, succeeded=True, payment_id="pay_123"
        )

        assert paid.status == BookingStatus.CONFIRMED
        assert paid.payment_status == PaymentStatus.PAID
        stored = await store.booking(booking.id)
        assert stored.payment_intent_id == "pay_123"
        assert stored.confirmed_at is not None
        assert "Payment Confirmed" in notifications.titles_for(people.rider)

    @pytest.mark.asyncio
    async def test_duplicate_success_is_a_no_op(self, make_service, book, notifications):
        booking = await book()
        service = make_service(PaymentService)
        await service.record_payment_result(booking.reference, True, "pay_1")
        sent = len(notifications.sent)

        again = await service.record_payment_result(booking.reference, True, "pay_1")

        assert again.status == BookingStatus.CONFIRMED
        assert len(notifications.sent) == sent

    @pytest.mark.asyncio
    async def test_success_after_provider_confirmation(self, make_service, book, people, store):
        booking = await book()
        await make_service(BookingService).update_status(
            booking.id, people.provider, UserRole.STAFF, BookingStatus.CONFIRMED
        )

        await make_service(PaymentService).record_payment_result(booking.reference, True)

        stored = await store.booking(booking.id)
        assert stored.status == BookingStatus.CONFIRMED
        assert stored.payment_status == PaymentStatus.PAID

    @pytest.mark.asyncio
    async def test_success_for_cancelled_booking_rejected(self, make_service, book, people):
        booking = await book()
        await make_service(BookingService).cancel_own_booking(booking.id, people.rider)

        with pytest.raises(InvalidTransition):
            await make_service(PaymentService).record_payment_result(
                booking.reference, True
            )

    @pytest.mark.asyncio
    async def test_failure_keeps_booking_pending(self, make_service, book, store):
        booking = await book()

        failed = await make_service(PaymentService).record_payment_result(
            booking.reference, succeeded=False
        )

        assert failed.status == BookingStatus.PENDING
        assert (await store.booking(booking.id)).payment_status == PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_failure_after_confirmation_rejected(self, make_service, book):
        booking = await book()
        service = make_service(PaymentService)
        await service.record_payment_result(booking.reference, True)

        with pytest.raises(InvalidTransition):
            await service.record_payment_result(booking.reference, False)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reference", ["BR7FFFFFFF", "not-a-reference"])
    async def test_unknown_reference(self, make_service, people, reference):
        with pytest.raises(NotFound):
            await make_service(PaymentService).record_payment_result(reference, True)


class TestRefund:
    @pytest.mark.asyncio
    async def test_refund_paid_booking(self, make_service, book, people, notifications, store):
        booking = await book()
        service = make_service(PaymentService)
        await service.record_payment_result(booking.reference, True, "pay_9")

        refunded = await service.record_refund(booking.id, people.provider, "re_9")

        assert refunded.payment_status == PaymentStatus.REFUNDED
        assert (await store.booking(booking.id)).refund_id == "re_9"
        assert "Refund Processed" in notifications.titles_for(people.rider)

    @pytest.mark.asyncio
    async def test_unpaid_booking_cannot_be_refunded(self, make_service, book, people):
        booking = await book()
        with pytest.raises(ValidationError, match="not been paid"):
            await make_service(PaymentService).record_refund(booking.id, people.provider)

    @pytest.mark.asyncio
    async def test_only_ride_owner_refunds(self, make_service, book, people):
        booking = await book()
        service = make_service(PaymentService)
        await service.record_payment_result(booking.reference, True)

        with pytest.raises(Forbidden):
            await service.record_refund(booking.id, people.other_staff)
