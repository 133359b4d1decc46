"""
Persisted user notifications.

The sink opens its own session per notice so that a failed insert never
touches the caller's unit-of-work.  Read-tracking and delivery to the
user are handled elsewhere.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import NotificationModel
from .repositories import NotificationRepository
from campusride.domain.enums import NotificationCategory, NotificationPriority


class NotificationSink(ABC):
    @abstractmethod
    async def create_notification(
        self,
        user_id: int,
        title: str,
        message: str,
        category: NotificationCategory,
        related_id: Optional[int] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
    ) -> None: ...


class SqlNotificationSink(NotificationSink):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create_notification(
        self,
        user_id: int,
        title: str,
        message: str,
        category: NotificationCategory,
        related_id: Optional[int] = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
    ) -> None:
        async with self.session_factory() as session:
            await NotificationRepository(session).create(
                NotificationModel(
                    user_id=user_id,
                    title=title[:100],
                    message=message[:500],
                    category=category,
                    related_id=related_id,
                    related_type="booking" if related_id is not None else None,
                    priority=priority,
                )
            )
            await session.commit()
