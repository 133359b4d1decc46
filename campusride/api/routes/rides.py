"""
Ride endpoints
==============

GET   /api/v1/rides                  -- search bookable rides
GET   /api/v1/rides/mine             -- provider's own rides
GET   /api/v1/rides/{ride_id}        -- ride details
POST  /api/v1/rides                  -- publish a ride (staff)
PUT   /api/v1/rides/{ride_id}        -- edit a ride (owner, no confirmed bookings)
PATCH /api/v1/rides/{ride_id}/cancel -- cancel a ride (owner)
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from campusride.api.dependencies import Actor, get_ride_service, require_role
from campusride.api.middleware import limiter
from campusride.api.schemas import (
    Pagination,
    ReasonRequest,
    RideCreateRequest,
    RideListResponse,
    RideResponse,
    RideUpdateRequest,
)
from campusride.config import settings
from campusride.domain.enums import RideStatus, UserRole
from campusride.services.ride_service import RideDraft, RideService

router = APIRouter(prefix="/rides", tags=["rides"])


@router.get("", response_model=RideListResponse, summary="Search bookable rides")
@limiter.limit(settings.rate_limit)
async def list_rides(
    request: Request,
    pickup: Optional[str] = None,
    destination: Optional[str] = None,
    on_date: Optional[date] = Query(None, alias="date"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: RideService = Depends(get_ride_service),
):
    rides, total = await service.list_available_rides(
        pickup, destination, on_date, page, limit
    )
    return RideListResponse(
        rides=[RideResponse.model_validate(r) for r in rides],
        pagination=Pagination(page=page, limit=limit, total=total),
    )


@router.get("/mine", response_model=list[RideResponse], summary="Provider's rides")
@limiter.limit(settings.rate_limit)
async def my_rides(
    request: Request,
    status: Optional[RideStatus] = None,
    include_history: bool = False,
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    service: RideService = Depends(get_ride_service),
):
    rides = await service.list_provider_rides(actor.user_id, status, include_history)
    return [RideResponse.model_validate(r) for r in rides]


@router.get("/{ride_id}", response_model=RideResponse, summary="Get ride details")
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    service: RideService = Depends(get_ride_service),
):
    return RideResponse.model_validate(await service.get_ride(ride_id))


@router.post("", status_code=201, response_model=RideResponse, summary="Publish a ride")
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.create_ride(actor.user_id, RideDraft(**body.model_dump()))
    return RideResponse.model_validate(ride)


@router.put(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Edit a ride",
    description="Only allowed while the ride has no confirmed or completed bookings.",
)
@limiter.limit(settings.rate_limit)
async def update_ride(
    request: Request,
    ride_id: int,
    body: RideUpdateRequest,
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.update_ride(
        ride_id, actor.user_id, body.model_dump(exclude_unset=True)
    )
    return RideResponse.model_validate(ride)


@router.patch(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    summary="Cancel a ride",
    description=(
        "Transitions an ACTIVE ride to CANCELLED and cancels its pending "
        "bookings, returning their seats."
    ),
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: int,
    body: Optional[ReasonRequest] = None,
    actor: Actor = Depends(require_role(UserRole.STAFF)),
    service: RideService = Depends(get_ride_service),
):
    ride = await service.cancel_ride(
        ride_id, actor.user_id, body.reason if body else None
    )
    return RideResponse.model_validate(ride)
