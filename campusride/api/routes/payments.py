"""
Payment endpoints
=================

POST /api/v1/payments/confirm              -- provider callback result
POST /api/v1/payments/{booking_id}/refund  -- record a refund (ride owner)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from campusride.api.dependencies import Actor, get_payment_service, require_role
from campusride.api.middleware import limiter
from campusride.api.schemas import BookingResponse, PaymentResultRequest, RefundRequest
from campusride.config import settings
from campusride.domain.enums import UserRole
from campusride.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post(
    "/confirm",
    response_model=BookingResponse,
    summary="Record a payment outcome",
    description=(
        "Called once the payment provider has verified a transaction.  "
        "A success moves a pending booking to confirmed; repeats are no-ops."
    ),
)
@limiter.limit(settings.rate_limit)
async def confirm_payment(
    request: Request,
    body: PaymentResultRequest,
    service: PaymentService = Depends(get_payment_service),
):
    booking = await service.record_payment_result(
        body.booking_reference, body.succeeded, body.payment_id
    )
    return BookingResponse.model_validate(booking)


@router.post(
    "/{booking_id}/refund",
    response_model=BookingResponse,
    summary="Record a refund",
)
@limiter.limit(settings.rate_limit)
async def refund_payment(
    request: Request,
    booking_id: int,
    body: Optional[RefundRequest] = None,
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    service: PaymentService = Depends(get_payment_service),
):
    booking = await service.record_refund(
        booking_id, actor.user_id, body.refund_id if body else None
    )
    return BookingResponse.model_validate(booking)
