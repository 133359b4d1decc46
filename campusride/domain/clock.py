"""Time helpers shared by the services and the expiration sweeper."""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Default clock: current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ride_tz(name: str) -> tzinfo:
    """Resolve the timezone rides are scheduled in."""
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)
