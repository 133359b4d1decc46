"""
Booking endpoints
=================

POST /api/v1/bookings                -- book seats on a ride (student)
GET  /api/v1/bookings                -- caller's bookings
GET  /api/v1/bookings/ride/{ride_id} -- bookings on a ride (owner)
GET  /api/v1/bookings/{booking_id}   -- single booking (rider or owner)
PUT  /api/v1/bookings/{booking_id}/status -- confirm / reject / cancel
PUT  /api/v1/bookings/{booking_id}/cancel -- rider cancels own booking
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from campusride.api.dependencies import (
    Actor,
    get_actor,
    get_booking_service,
    require_role,
)
from campusride.api.middleware import limiter
from campusride.api.schemas import (
    BookingCreateRequest,
    BookingListResponse,
    BookingResponse,
    BookingStatusRequest,
    Pagination,
    ReasonRequest,
)
from campusride.config import settings
from campusride.domain.enums import BookingStatus, UserRole
from campusride.services.booking_service import BookingMeta, BookingService

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Book seats on a ride",
    responses={409: {"description": "Not enough seats, or already booked."}},
)
@limiter.limit(settings.rate_limit)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    actor: Actor = Depends(require_role(UserRole.STUDENT)),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.create_booking(
        body.ride_id,
        actor.user_id,
        body.seats_booked,
        BookingMeta(
            special_requests=body.special_requests,
            contact_phone=body.contact_phone,
            pickup_notes=body.pickup_notes,
        ),
    )
    return BookingResponse.model_validate(booking)


@router.get("", response_model=BookingListResponse, summary="My bookings")
@limiter.limit(settings.rate_limit)
async def my_bookings(
    request: Request,
    status: Optional[BookingStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    bookings, total = await service.list_rider_bookings(
        actor.user_id, status, page, limit
    )
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        pagination=Pagination(page=page, limit=limit, total=total),
    )


@router.get(
    "/ride/{ride_id}",
    response_model=list[BookingResponse],
    summary="Bookings on one of my rides",
)
@limiter.limit(settings.rate_limit)
async def ride_bookings(
    request: Request,
    ride_id: int,
    status: Optional[BookingStatus] = None,
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    service: BookingService = Depends(get_booking_service),
):
    bookings = await service.list_ride_bookings(ride_id, actor.user_id, status)
    return [BookingResponse.model_validate(b) for b in bookings]


@router.get("/{booking_id}", response_model=BookingResponse, summary="Get a booking")
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: int,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.get_booking(booking_id, actor.user_id)
    return BookingResponse.model_validate(booking)


@router.put(
    "/{booking_id}/status",
    response_model=BookingResponse,
    summary="Change booking status",
    description=(
        "Ride owners may confirm, reject (cancel) or complete; riders may "
        "only cancel.  Terminal bookings cannot change."
    ),
)
@limiter.limit(settings.rate_limit)
async def update_booking_status(
    request: Request,
    booking_id: int,
    body: BookingStatusRequest,
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.update_status(
        booking_id, actor.user_id, actor.role, body.status, body.cancellation_reason
    )
    return BookingResponse.model_validate(booking)


@router.put(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel my booking",
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    booking_id: int,
    body: Optional[ReasonRequest] = None,
    actor: Actor = Depends(require_role(UserRole.STUDENT)),
    service: BookingService = Depends(get_booking_service),
):
    booking = await service.cancel_own_booking(
        booking_id, actor.user_id, body.reason if body else None
    )
    return BookingResponse.model_validate(booking)
