"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Rides and bookings go in and come out as
domain entities; seat counts and status changes that must not race are
expressed as conditional ``UPDATE`` statements whose row count is the
answer.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from sqlalchemy import case, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BookingModel, NotificationModel, RideModel, UserModel
from campusride.domain.entities import Booking, Ride
from campusride.domain.enums import (
    LOCKING_BOOKING_STATUSES,
    OPEN_BOOKING_STATUSES,
    BookingStatus,
    RideStatus,
)

_RIDE_FIELDS = (
    "provider_id",
    "pickup_location",
    "destination",
    "departure_date",
    "departure_time",
    "total_seats",
    "available_seats",
    "price_per_seat",
    "vehicle_type",
    "status",
    "description",
    "meeting_point",
    "estimated_duration",
)

# Seat inventory and status only move through guarded statements
_EDITABLE_RIDE_FIELDS = tuple(
    name
    for name in _RIDE_FIELDS
    if name not in ("provider_id", "available_seats", "status")
)

_BOOKING_FIELDS = (
    "ride_id",
    "rider_id",
    "seats_booked",
    "total_price",
    "status",
    "payment_status",
    "payment_intent_id",
    "refund_id",
    "special_requests",
    "contact_phone",
    "pickup_notes",
    "booked_at",
    "confirmed_at",
    "completed_at",
    "cancelled_at",
    "cancellation_reason",
)


def _to_ride(model: RideModel) -> Ride:
    return Ride(
        id=model.id,
        created_at=model.created_at,
        **{name: getattr(model, name) for name in _RIDE_FIELDS},
    )


def _to_booking(model: BookingModel) -> Booking:
    return Booking(
        id=model.id, **{name: getattr(model, name) for name in _BOOKING_FIELDS}
    )


def _fresh(query):
    """Overwrite identity-mapped rows; bulk UPDATEs here skip session sync."""
    return query.execution_options(populate_existing=True)


def _seats_held(ride_id: int):
    return (
        select(func.coalesce(func.sum(BookingModel.seats_booked), 0))
        .where(
            BookingModel.ride_id == ride_id,
            BookingModel.status.in_(OPEN_BOOKING_STATUSES),
        )
        .scalar_subquery()
    )


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, ride: Ride) -> Ride:
        model = RideModel(**{name: getattr(ride, name) for name in _RIDE_FIELDS})
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return _to_ride(model)

    async def get(self, ride_id: int) -> Optional[Ride]:
        model = await self.session.get(RideModel, ride_id, populate_existing=True)
        return _to_ride(model) if model else None

    async def update_details(self, ride: Ride, reseat: bool = False) -> bool:
        """
        Write the provider-editable columns of *ride*.

        Applies only while the ride is active and none of its bookings is
        confirmed or completed.  ``available_seats`` and ``status`` are
        never copied from *ride*; with *reseat* the seat count is
        recomputed from the open bookings in the same statement.
        ``False`` means one of those guards failed.
        """
        values = {name: getattr(ride, name) for name in _EDITABLE_RIDE_FIELDS}
        query = update(RideModel).where(
            RideModel.id == ride.id,
            RideModel.status == RideStatus.ACTIVE,
            ~exists().where(
                BookingModel.ride_id == ride.id,
                BookingModel.status.in_(LOCKING_BOOKING_STATUSES),
            ),
        )
        if reseat:
            held = _seats_held(ride.id)
            query = query.where(held <= ride.total_seats)
            values["available_seats"] = ride.total_seats - held
        result = await self.session.execute(
            query.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_by_status(self, status: RideStatus) -> list[Ride]:
        result = await self.session.execute(
            _fresh(
                select(RideModel)
                .where(RideModel.status == status)
                .order_by(RideModel.departure_date, RideModel.departure_time)
            )
        )
        return [_to_ride(m) for m in result.scalars().all()]

    async def search(
        self,
        *,
        statuses: Sequence[RideStatus],
        pickup: str | None = None,
        destination: str | None = None,
        on_date: date | None = None,
        provider_id: int | None = None,
    ) -> list[Ride]:
        query = select(RideModel).where(RideModel.status.in_(statuses))
        if pickup:
            query = query.where(RideModel.pickup_location.ilike(f"%{pickup}%"))
        if destination:
            query = query.where(RideModel.destination.ilike(f"%{destination}%"))
        if on_date:
            query = query.where(RideModel.departure_date == on_date)
        if provider_id is not None:
            query = query.where(RideModel.provider_id == provider_id)
        result = await self.session.execute(
            _fresh(query.order_by(RideModel.departure_date, RideModel.departure_time))
        )
        return [_to_ride(m) for m in result.scalars().all()]

    async def reserve_seats(self, ride_id: int, seats: int) -> bool:
        """
        Atomically take *seats* from an active ride.

        Returns ``False`` when the ride is no longer active or another
        booking consumed the seats first -- the caller must not retry.
        """
        result = await self.session.execute(
            update(RideModel)
            .where(
                RideModel.id == ride_id,
                RideModel.status == RideStatus.ACTIVE,
                RideModel.available_seats >= seats,
            )
            .values(available_seats=RideModel.available_seats - seats)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release_seats(self, ride_id: int, seats: int) -> None:
        """Give *seats* back, capped at ``total_seats``."""
        refilled = RideModel.available_seats + seats
        await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id)
            .values(
                available_seats=case(
                    (refilled > RideModel.total_seats, RideModel.total_seats),
                    else_=refilled,
                )
            )
            .execution_options(synchronize_session=False)
        )

    async def transition_many(
        self,
        ride_ids: Iterable[int],
        from_status: RideStatus,
        to_status: RideStatus,
    ) -> list[int]:
        """
        Bulk status change.  Returns the ids actually moved; rows no
        longer in *from_status* are skipped.
        """
        ids = list(ride_ids)
        if not ids:
            return []
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id.in_(ids), RideModel.status == from_status)
            .values(status=to_status)
            .returning(RideModel.id)
            .execution_options(synchronize_session=False)
        )
        return list(result.scalars().all())


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, booking: Booking) -> Booking:
        model = BookingModel(
            **{name: getattr(booking, name) for name in _BOOKING_FIELDS}
        )
        self.session.add(model)
        await self.session.flush()
        return _to_booking(model)

    async def get(self, booking_id: int) -> Optional[Booking]:
        model = await self.session.get(
            BookingModel, booking_id, populate_existing=True
        )
        return _to_booking(model) if model else None

    async def save(self, booking: Booking, expected_status: BookingStatus) -> bool:
        """
        Persist *booking* only if the stored row is still in
        *expected_status*.  ``False`` means a concurrent writer got there
        first.
        """
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id == booking.id,
                BookingModel.status == expected_status,
            )
            .values(**{name: getattr(booking, name) for name in _BOOKING_FIELDS})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def find_open(self, ride_id: int, rider_id: int) -> Optional[Booking]:
        result = await self.session.execute(
            _fresh(select(BookingModel)).where(
                BookingModel.ride_id == ride_id,
                BookingModel.rider_id == rider_id,
                BookingModel.status.in_(OPEN_BOOKING_STATUSES),
            )
        )
        model = result.scalars().first()
        return _to_booking(model) if model else None

    async def count_for_ride(
        self, ride_id: int, statuses: Sequence[BookingStatus]
    ) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(BookingModel)
            .where(BookingModel.ride_id == ride_id, BookingModel.status.in_(statuses))
        )
        return result.scalar() or 0

    async def seats_held(self, ride_id: int) -> int:
        """Seats consumed by open bookings on *ride_id*."""
        result = await self.session.execute(select(_seats_held(ride_id)))
        return int(result.scalar() or 0)

    async def list_for_ride(
        self, ride_id: int, status: BookingStatus | None = None
    ) -> list[Booking]:
        query = select(BookingModel).where(BookingModel.ride_id == ride_id)
        if status:
            query = query.where(BookingModel.status == status)
        result = await self.session.execute(
            _fresh(query.order_by(BookingModel.booked_at.desc()))
        )
        return [_to_booking(m) for m in result.scalars().all()]

    async def list_for_rider(
        self,
        rider_id: int,
        status: BookingStatus | None = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[Booking], int]:
        filters = [BookingModel.rider_id == rider_id]
        if status:
            filters.append(BookingModel.status == status)
        total = await self.session.execute(
            select(func.count()).select_from(BookingModel).where(*filters)
        )
        result = await self.session.execute(
            _fresh(select(BookingModel))
            .where(*filters)
            .order_by(BookingModel.booked_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return [_to_booking(m) for m in result.scalars().all()], total.scalar() or 0

    async def list_open_for_rides(self, ride_ids: Iterable[int]) -> list[Booking]:
        ids = list(ride_ids)
        if not ids:
            return []
        result = await self.session.execute(
            _fresh(select(BookingModel)).where(
                BookingModel.ride_id.in_(ids),
                BookingModel.status.in_(OPEN_BOOKING_STATUSES),
            )
        )
        return [_to_booking(m) for m in result.scalars().all()]

    async def complete_many(
        self, booking_ids: Iterable[int], now: datetime
    ) -> list[int]:
        """
        Bulk ``pending|confirmed -> completed``.  No seat refund.
        Returns the ids actually completed.
        """
        ids = list(booking_ids)
        if not ids:
            return []
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.id.in_(ids),
                BookingModel.status.in_(OPEN_BOOKING_STATUSES),
            )
            .values(status=BookingStatus.COMPLETED, completed_at=now)
            .returning(BookingModel.id)
            .execution_options(synchronize_session=False)
        )
        return list(result.scalars().all())

    async def list_cancelled_between(
        self, since: datetime, until: datetime, reason: str
    ) -> list[Booking]:
        result = await self.session.execute(
            _fresh(select(BookingModel)).where(
                BookingModel.status == BookingStatus.CANCELLED,
                BookingModel.cancelled_at > since,
                BookingModel.cancelled_at <= until,
                BookingModel.cancellation_reason == reason,
            )
        )
        return [_to_booking(m) for m in result.scalars().all()]


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)


class NotificationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, notification: NotificationModel) -> NotificationModel:
        self.session.add(notification)
        await self.session.flush()
        return notification
