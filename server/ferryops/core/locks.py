"""Per-departure critical sections.

Every mutation of a departure's status, times or booked count runs while
holding the lock registered for that departure. Locks for unrelated keys are
independent, so operations on different departures never wait on each other.
Acquisition is bounded: a caller that cannot get the lock in time receives
DepartureBusyError instead of waiting forever.
"""

import asyncio
import logging
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Hashable, Iterable, Optional
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .exceptions import DepartureBusyError

logger = logging.getLogger(__name__)


def departure_key(departure_id: UUID) -> tuple[str, str]:
    """Lock key guarding a single departure."""
    return ("departure", str(departure_id))


def ferry_day_key(ferry_id: UUID, service_date) -> tuple[str, str, str]:
    """Lock key guarding sequence allocation for one ferry on one date."""
    return ("ferry-day", str(ferry_id), service_date.isoformat())


class DepartureLockRegistry:
    """Registry handing out one asyncio.Lock per key."""

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._timeout_seconds = timeout_seconds

    @property
    def timeout_seconds(self) -> float:
        if self._timeout_seconds is not None:
            return self._timeout_seconds
        return settings.departure_lock_timeout_seconds

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def is_locked(self, key: Hashable) -> bool:
        """Return True if some task currently holds the lock for key."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """
        Hold the lock for key for the duration of the block.

        Raises:
            DepartureBusyError: If the lock is not acquired within the timeout
        """
        lock = self._lock_for(key)
        timeout = self.timeout_seconds

        try:
            await asyncio.wait_for(lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Timed out waiting for departure lock",
                extra={"lock_key": str(key), "timeout_seconds": timeout}
            )
            raise DepartureBusyError(lock_key=str(key), timeout_seconds=timeout) from None

        try:
            yield
        finally:
            lock.release()

    @asynccontextmanager
    async def hold_many(self, keys: Iterable[Hashable]) -> AsyncIterator[None]:
        """
        Hold several locks, acquired in sorted key order.

        Every operation that needs more than one departure lock goes through
        here, so no two of them can wait on each other in opposite order.
        """
        async with AsyncExitStack() as stack:
            for key in sorted(set(keys)):
                await stack.enter_async_context(self.hold(key))
            yield


async def advisory_xact_lock(session: AsyncSession, key: Hashable) -> None:
    """
    Take a PostgreSQL transaction-level advisory lock for key.

    The lock is released automatically when the transaction ends. Other
    dialects (SQLite in tests) rely on the in-process registry only.
    """
    if session.bind and "postgresql" in str(session.bind.dialect.name):
        await session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
            {"lock_key": ":".join(key) if isinstance(key, tuple) else str(key)}
        )


# Process-wide registry shared by all services
departure_locks = DepartureLockRegistry()
