"""
Background Expiration Sweeper
=============================

Runs every ``SWEEP_INTERVAL_SECONDS`` (default 300 s).

Algorithm per run
-----------------
1. Fetch all ACTIVE rides and keep those whose departure has passed.
2. Bulk ``active -> expired`` (conditional on the row still being active).
3. Bulk-complete their pending/confirmed bookings.  Seats stay consumed.
4. Notify each rider and emit ``booking_completed`` / ``ride_expired``,
   only for the rows the UPDATEs of this run actually returned.
5. Close out EXPIRED rides that departed more than
   ``COMPLETION_GRACE_HOURS`` ago (``expired -> completed``).
6. Emit ``booking_removed`` hints for bookings the provider rejected
   since the previous run, so clients can drop them from recent views.

Idempotence
-----------
Every transition is filtered on the source status, so a second run with
no intervening change selects nothing.  Overlapping runs are therefore
safe and no lock is taken.  A booking created between the ride query and
the status update simply rides along and is completed on a later run.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campusride.config import settings
from campusride.domain.clock import Clock, ride_tz, utcnow
from campusride.domain.enums import (
    BookingStatus,
    NotificationCategory,
    NotificationPriority,
    RideStatus,
)
from campusride.infrastructure.events import (
    BOOKING_COMPLETED,
    BOOKING_REMOVED,
    RIDE_EXPIRED,
    EventSink,
    ride_room,
    user_room,
)
from campusride.infrastructure.notifications import NotificationSink
from campusride.infrastructure.repositories import BookingRepository, RideRepository
from campusride.services.booking_service import (
    PROVIDER_REJECTION_REASON,
    booking_payload,
)
from campusride.services.hooks import PostCommitHooks

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired_rides: int = 0
    completed_bookings: int = 0
    closed_rides: int = 0
    removal_hints: int = 0

    @property
    def transitions(self) -> int:
        return self.expired_rides + self.completed_bookings + self.closed_rides


class ExpirationSweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        events: EventSink,
        notifications: NotificationSink,
        clock: Clock = utcnow,
        tz: Optional[tzinfo] = None,
        completion_grace: timedelta = timedelta(hours=settings.completion_grace_hours),
        hint_window: timedelta = timedelta(seconds=settings.rejection_hint_window_seconds),
    ):
        self.session_factory = session_factory
        self.events = events
        self.notifications = notifications
        self.clock = clock
        self.tz = tz or ride_tz(settings.ride_timezone)
        self.completion_grace = completion_grace
        self.hint_window = hint_window
        self._hinted_until: Optional[datetime] = None

    async def run_once(self) -> SweepResult:
        """Execute one sweep.  Side effects run only after commit."""
        now = self.clock()
        result = SweepResult()
        hooks = PostCommitHooks()

        async with self.session_factory() as session:
            ride_repo = RideRepository(session)
            booking_repo = BookingRepository(session)
            try:
                # 1. Active rides whose departure has passed
                expired = {
                    ride.id: ride
                    for ride in await ride_repo.list_by_status(RideStatus.ACTIVE)
                    if ride.is_expired(now, self.tz)
                }

                if expired:
                    # 2. active -> expired
                    moved = await ride_repo.transition_many(
                        expired, RideStatus.ACTIVE, RideStatus.EXPIRED
                    )
                    result.expired_rides = len(moved)

                    # 3. open bookings -> completed (no refund)
                    open_bookings = await booking_repo.list_open_for_rides(moved)
                    completed = set(
                        await booking_repo.complete_many(
                            [b.id for b in open_bookings], now
                        )
                    )
                    result.completed_bookings = len(completed)

                    # 4. fan-out for the rows this run changed, queued until commit
                    for ride_id in moved:
                        ride = expired[ride_id]
                        ride.status = RideStatus.EXPIRED
                        hooks.add(
                            "emit ride_expired",
                            self.events.emit,
                            ride_room(ride.id),
                            RIDE_EXPIRED,
                            {"ride_id": ride.id, "status": ride.status.value},
                        )
                    for booking in open_bookings:
                        if booking.id not in completed:
                            continue
                        ride = expired[booking.ride_id]
                        booking.status = BookingStatus.COMPLETED
                        booking.completed_at = now
                        hooks.add(
                            "notify rider",
                            self.notifications.create_notification,
                            booking.rider_id,
                            "Ride Completed",
                            f"Your ride from {ride.pickup_location} to "
                            f"{ride.destination} has been completed",
                            NotificationCategory.COMPLETION,
                            booking.id,
                            NotificationPriority.MEDIUM,
                        )
                        hooks.add(
                            "emit booking_completed",
                            self.events.emit,
                            user_room(booking.rider_id),
                            BOOKING_COMPLETED,
                            booking_payload(booking, ride),
                        )

                # 5. expired -> completed once the grace period is over
                cutoff = now - self.completion_grace
                stale = [
                    ride.id
                    for ride in await ride_repo.list_by_status(RideStatus.EXPIRED)
                    if ride.departure_at(self.tz) < cutoff
                ]
                closed = await ride_repo.transition_many(
                    stale, RideStatus.EXPIRED, RideStatus.COMPLETED
                )
                result.closed_rides = len(closed)

                await session.commit()
            except Exception:
                await session.rollback()
                raise

            # 6. best-effort removal hints for freshly rejected bookings
            since = self._hinted_until or (now - self.hint_window)
            try:
                rejected = await booking_repo.list_cancelled_between(
                    since, now, PROVIDER_REJECTION_REASON
                )
            except Exception:
                logger.exception("Removal hint pass failed")
                rejected = []
            else:
                self._hinted_until = now
            for booking in rejected:
                hooks.add(
                    "emit booking_removed",
                    self.events.emit,
                    user_room(booking.rider_id),
                    BOOKING_REMOVED,
                    {"booking_id": booking.id, "reference": booking.reference},
                )
            result.removal_hints = len(rejected)

        await hooks.run()

        if result.transitions:
            logger.info(
                "Sweep: %d ride(s) expired, %d booking(s) completed, %d ride(s) closed",
                result.expired_rides,
                result.completed_bookings,
                result.closed_rides,
            )
        return result


# ── Periodic loop ─────────────────────────────────────────────────────

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None
_sweeper: ExpirationSweeper | None = None


async def start_expiration_loop(sweeper: ExpirationSweeper | None = None) -> None:
    global _task, _stop_event, _sweeper
    if sweeper is None:
        sweeper = await _default_sweeper()
    _sweeper = sweeper
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(sweeper))
    logger.info(
        "Expiration sweeper started (interval=%ds)", settings.sweep_interval_seconds
    )


async def stop_expiration_loop() -> None:
    global _sweeper
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    _sweeper = None
    logger.info("Expiration sweeper stopped")


def shared_sweeper(
    session_factory: async_sessionmaker[AsyncSession],
    events: EventSink,
    notifications: NotificationSink,
) -> ExpirationSweeper:
    """
    The sweeper manual runs should use: the running loop's, or one kept
    here so the removal-hint watermark carries over between calls.
    """
    global _sweeper
    if _sweeper is None:
        _sweeper = ExpirationSweeper(session_factory, events, notifications)
    return _sweeper


async def _default_sweeper() -> ExpirationSweeper:
    from campusride.infrastructure.database import async_session_factory
    from campusride.infrastructure.events import RedisEventSink
    from campusride.infrastructure.notifications import SqlNotificationSink
    from campusride.infrastructure.redis_client import get_redis

    return ExpirationSweeper(
        async_session_factory,
        RedisEventSink(await get_redis()),
        SqlNotificationSink(async_session_factory),
    )


async def _loop(sweeper: ExpirationSweeper) -> None:
    """Periodic loop: run a sweep then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await sweeper.run_once()
        except Exception:
            logger.exception("Unhandled error in expiration sweep")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.sweep_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next sweep
