"""FastAPI dependencies for database sessions and collaborators."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_async_session
from .notifications import NotificationSink, default_notification_sink


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Database dependency that provides async database sessions.

    Yields:
        AsyncSession: Database session
    """
    async for session in get_async_session():
        yield session


def get_notification_sink() -> NotificationSink:
    """Notification sink used for delay and cancellation events."""
    return default_notification_sink
