"""
Real-time event fan-out.

Events are addressed to logical *rooms*: ``user_<id>`` for a person,
``ride_<id>`` for everyone watching a ride.  The production sink
publishes each event as JSON on a Redis pub/sub channel named after the
room; a websocket/SSE gateway subscribed to those channels relays them
to connected clients.

Delivery is best-effort and at-most-once: nothing is persisted and
nothing is replayed for clients that were not listening.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

NEW_BOOKING = "new_booking"
BOOKING_STATUS_UPDATED = "booking_status_updated"
BOOKING_COMPLETED = "booking_completed"
BOOKING_REMOVED = "booking_removed"
RIDE_CANCELLED = "ride_cancelled"
RIDE_EXPIRED = "ride_expired"


def user_room(user_id: int) -> str:
    return f"user_{user_id}"


def ride_room(ride_id: int) -> str:
    return f"ride_{ride_id}"


class EventSink(ABC):
    @abstractmethod
    async def emit(self, room: str, event: str, payload: dict[str, Any]) -> None: ...


class RedisEventSink(EventSink):
    def __init__(self, client: aioredis.Redis):
        self.redis = client

    async def emit(self, room: str, event: str, payload: dict[str, Any]) -> None:
        message = json.dumps({"event": event, "data": payload}, default=str)
        receivers = await self.redis.publish(room, message)
        logger.debug("Emitted %s to %s (%d listeners)", event, room, receivers)
