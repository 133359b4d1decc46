"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from campusride.domain.enums import (
    BookingStatus,
    PaymentStatus,
    RideStatus,
    VehicleType,
)

TIME_REGEX = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    pickup_location: str = Field(..., min_length=1, max_length=100)
    destination: str = Field(..., min_length=1, max_length=100)
    departure_date: date
    departure_time: str = Field(..., pattern=TIME_REGEX, examples=["08:30"])
    total_seats: int = Field(..., ge=1, le=8)
    available_seats: Optional[int] = Field(
        None, ge=0, le=8, description="Defaults to total_seats."
    )
    price_per_seat: float = Field(..., ge=0)
    vehicle_type: VehicleType = VehicleType.CAR
    description: Optional[str] = Field(None, max_length=500)
    meeting_point: Optional[str] = Field(None, max_length=200)
    estimated_duration: Optional[int] = Field(None, ge=1, description="Minutes")


class RideUpdateRequest(BaseModel):
    pickup_location: Optional[str] = Field(None, min_length=1, max_length=100)
    destination: Optional[str] = Field(None, min_length=1, max_length=100)
    departure_date: Optional[date] = None
    departure_time: Optional[str] = Field(None, pattern=TIME_REGEX)
    total_seats: Optional[int] = Field(None, ge=1, le=8)
    price_per_seat: Optional[float] = Field(None, ge=0)
    vehicle_type: Optional[VehicleType] = None
    description: Optional[str] = Field(None, max_length=500)
    meeting_point: Optional[str] = Field(None, max_length=200)
    estimated_duration: Optional[int] = Field(None, ge=1)


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=200)


class BookingCreateRequest(BaseModel):
    ride_id: int
    seats_booked: int = Field(..., ge=1, le=8)
    special_requests: Optional[str] = Field(None, max_length=300)
    contact_phone: Optional[str] = Field(None, pattern=r"^\+?[\d\s\-\(\)]+$")
    pickup_notes: Optional[str] = Field(None, max_length=200)


class BookingStatusRequest(BaseModel):
    status: BookingStatus
    cancellation_reason: Optional[str] = Field(None, max_length=200)


class PaymentResultRequest(BaseModel):
    booking_reference: str = Field(..., examples=["BR0000002A"])
    succeeded: bool
    payment_id: Optional[str] = Field(None, max_length=64)


class RefundRequest(BaseModel):
    refund_id: Optional[str] = Field(None, max_length=64)


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(BaseModel):
    id: int
    provider_id: int
    pickup_location: str
    destination: str
    departure_date: date
    departure_time: str
    total_seats: int
    available_seats: int
    price_per_seat: float
    vehicle_type: VehicleType
    status: RideStatus
    description: Optional[str] = None
    meeting_point: Optional[str] = None
    estimated_duration: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    reference: str
    ride_id: int
    rider_id: int
    seats_booked: int
    total_price: float
    status: BookingStatus
    payment_status: PaymentStatus
    special_requests: Optional[str] = None
    contact_phone: Optional[str] = None
    pickup_notes: Optional[str] = None
    booked_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int


class RideListResponse(BaseModel):
    rides: list[RideResponse]
    pagination: Pagination


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    pagination: Pagination


class SweepResponse(BaseModel):
    expired_rides: int
    completed_bookings: int
    closed_rides: int
    removal_hints: int

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
