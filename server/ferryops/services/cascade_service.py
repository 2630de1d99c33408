"""Delay and cancellation of departures, propagated along connected legs."""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import AsyncIterator, Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import commit_or_raise
from ..core.exceptions import DataUnavailableError, NotFoundError, ValidationError
from ..core.locks import DepartureLockRegistry, departure_key, departure_locks
from ..core.notifications import DepartureEvent, DepartureEventType, NotificationSink, default_notification_sink
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.departure import Departure, DepartureStatus
from ..schemas.departure import MAX_DELAY_MINUTES
from .departure_service import DepartureService
from .route_service import RouteService

logger = logging.getLogger(__name__)

# (departure_id, upstream_departure_id) pairs, trigger first, every leg after its upstream
Chain = list[tuple[UUID, Optional[UUID]]]
ChainStep = Callable[[UUID, Optional[UUID], datetime], Awaitable[Optional[Departure]]]


def _check_delay(delay_minutes: int) -> None:
    if delay_minutes < 1 or delay_minutes > MAX_DELAY_MINUTES:
        raise ValidationError(
            detail=f"A delay must be between 1 and {MAX_DELAY_MINUTES} minutes",
            errors={"delay_minutes": delay_minutes}
        )


class CascadeService:
    """
    Service applying delays and cancellations to departures.

    A change to one departure is repeated on every departure linked to it
    through upstream_departure_id, recursively. The locks of the whole chain
    are taken up front through the registry's hold_many, so no booking or
    capacity change can race a cascade. Each departure is committed on its
    own; if a later leg fails the earlier legs stay changed and the error
    reports them.
    """

    def __init__(
        self,
        db: AsyncSession,
        notifications: Optional[NotificationSink] = None,
        locks: Optional[DepartureLockRegistry] = None,
    ):
        self.db = db
        self.notifications = notifications or default_notification_sink
        self.locks = locks or departure_locks
        self.departure_service = DepartureService(db, self.locks)
        self.route_service = RouteService(db)

    async def _active_entity_ids(self, departure_id: UUID) -> list[UUID]:
        stmt = (
            select(Booking.traveling_entity_id)
            .where(
                Booking.departure_id == departure_id,
                Booking.status == BookingStatus.ACTIVE,
                Booking.traveling_entity_id.is_not(None)
            )
            .order_by(Booking.created_at, Booking.id)
        )
        return list((await self.db.execute(stmt)).scalars())

    def _publish(
        self,
        event_type: DepartureEventType,
        departure: Departure,
        entity_ids: list[UUID],
        delay_minutes: int = 0,
        cascaded_from: UUID | None = None,
    ) -> None:
        self.notifications.publish(DepartureEvent(
            event_type=event_type,
            departure_id=departure.id,
            ferry_id=departure.ferry_id,
            service_date=departure.service_date,
            departs_at=departure.departs_at,
            arrives_at=departure.arrives_at,
            delay_minutes=delay_minutes,
            traveling_entity_ids=entity_ids,
            cascaded_from=cascaded_from
        ))

    # Chain traversal and locking

    async def _collect_chain(self, departure_id: UUID) -> Chain:
        """Breadth-first walk of the departures connecting from departure_id."""
        chain: Chain = [(departure_id, None)]
        seen = {departure_id}
        index = 0
        while index < len(chain):
            current_id = chain[index][0]
            for downstream in await self.departure_service.list_downstream(current_id):
                if downstream.id not in seen:
                    seen.add(downstream.id)
                    chain.append((downstream.id, current_id))
            index += 1
        return chain

    @asynccontextmanager
    async def _hold_chain(self, departure_id: UUID) -> AsyncIterator[Chain]:
        """
        Hold the locks of a departure and of every departure downstream of it.

        All locks are acquired together in the registry's sorted order, the
        same order capacity updates and completion use. If a leg was linked
        while the locks were being acquired, they are released and taken
        again for the larger chain.
        """
        chain = await self._collect_chain(departure_id)
        while True:
            async with self.locks.hold_many(departure_key(leg_id) for leg_id, _ in chain):
                current = await self._collect_chain(departure_id)
                if {leg_id for leg_id, _ in current} <= {leg_id for leg_id, _ in chain}:
                    yield current
                    return
            chain = current

    async def _lock_step(self, departure_id: UUID, cascaded_from: UUID | None, now: datetime) -> Departure | None:
        """Reload a leg of the chain; None when a downstream leg is already closed."""
        if cascaded_from is None:
            return await self.departure_service.get_open_departure_with_lock(departure_id, now)

        departure = await self.departure_service.get_departure_with_lock(departure_id)
        if departure.is_closed(now):
            return None
        return departure

    async def _run_chain(self, operation: str, step: ChainStep, departure_id: UUID) -> list[Departure]:
        now = datetime.utcnow()
        applied: list[Departure] = []
        applied_ids: list[UUID] = []

        async with self._hold_chain(departure_id) as chain:
            try:
                for leg_id, upstream_id in chain:
                    # Propagation stops below a leg that was closed or skipped
                    if upstream_id is not None and upstream_id not in applied_ids:
                        continue
                    departure = await step(leg_id, upstream_id, now)
                    if departure is not None:
                        applied.append(departure)
                        applied_ids.append(leg_id)
            except DataUnavailableError as e:
                if not applied_ids:
                    raise
                logger.error(
                    "Cascade stopped part way",
                    extra={
                        "operation": operation,
                        "departure_id": str(departure_id),
                        "applied_departure_ids": [str(leg_id) for leg_id in applied_ids]
                    },
                    exc_info=True
                )
                raise DataUnavailableError(
                    operation=operation,
                    detail=f"{operation} applied to {len(applied_ids)} departure(s) before the data store failed",
                    extensions={"applied_departure_ids": [str(leg_id) for leg_id in applied_ids]}
                ) from e

        return applied

    # Delay

    async def delay(self, departure_id: UUID, delay_minutes: int) -> list[Departure]:
        """
        Delay a departure and every departure connecting from it.

        Args:
            departure_id: Departure to delay
            delay_minutes: Minutes to shift departure and arrival by

        Returns:
            The delayed departures, triggering departure first

        Raises:
            ValidationError: If delay_minutes is below one or above MAX_DELAY_MINUTES,
                or the shifted times fall outside the representable range
            NotFoundError: If the departure is absent, cancelled, completed or already sailed
            DataUnavailableError: If storage fails; carries applied_departure_ids when part of the chain was applied
        """
        _check_delay(delay_minutes)

        async def step(leg_id: UUID, cascaded_from: UUID | None, now: datetime) -> Departure | None:
            return await self._delay_one(leg_id, delay_minutes, cascaded_from, now)

        return await self._run_chain("delay_departure", step, departure_id)

    async def _delay_one(
        self,
        departure_id: UUID,
        delay_minutes: int,
        cascaded_from: UUID | None,
        now: datetime,
    ) -> Departure | None:
        departure = await self._lock_step(departure_id, cascaded_from, now)
        if departure is None:
            return None

        shift = timedelta(minutes=delay_minutes)
        try:
            departs_at = departure.departs_at + shift
            arrives_at = departure.arrives_at + shift
        except OverflowError:
            raise ValidationError(
                detail=f"Delaying departure '{departure_id}' by {delay_minutes} minutes leaves the supported date range",
                errors={"delay_minutes": delay_minutes}
            ) from None

        departure.departs_at = departs_at
        departure.arrives_at = arrives_at
        departure.delay_minutes += delay_minutes
        departure.status = DepartureStatus.DELAYED
        await self.route_service.record_delay(departure.route_id, delay_minutes)

        entity_ids = await self._active_entity_ids(departure.id)
        await commit_or_raise(self.db, "delay_departure")

        metrics_collector.record_departure_delayed(delay_minutes, cascaded=cascaded_from is not None)
        logger.info(
            "Departure delayed",
            extra={
                "departure_id": str(departure.id),
                "delay_minutes": delay_minutes,
                "total_delay_minutes": departure.delay_minutes,
                "departs_at": departure.departs_at.isoformat(),
                "cascaded_from": str(cascaded_from) if cascaded_from else None
            }
        )
        self._publish(DepartureEventType.DELAYED, departure, entity_ids, delay_minutes, cascaded_from)
        return departure

    # Cancel

    async def cancel(self, departure_id: UUID) -> list[Departure]:
        """
        Cancel a departure, release its bookings and cancel every departure connecting from it.

        Returns:
            The cancelled departures, triggering departure first

        Raises:
            NotFoundError: If the departure is absent, cancelled, completed or already sailed
            DataUnavailableError: If storage fails; carries applied_departure_ids when part of the chain was applied
        """
        return await self._run_chain("cancel_departure", self._cancel_one, departure_id)

    async def _cancel_one(self, departure_id: UUID, cascaded_from: UUID | None, now: datetime) -> Departure | None:
        departure = await self._lock_step(departure_id, cascaded_from, now)
        if departure is None:
            return None

        entity_ids = await self._active_entity_ids(departure.id)
        released = (await self.db.execute(
            update(Booking)
            .where(Booking.departure_id == departure.id, Booking.status == BookingStatus.ACTIVE)
            .values(status=BookingStatus.RELEASED, released_at=datetime.utcnow())
        )).rowcount
        departure.booked_count = 0
        departure.status = DepartureStatus.CANCELLED
        await self.route_service.record_cancellation(departure.route_id)

        await commit_or_raise(self.db, "cancel_departure")

        metrics_collector.record_departure_cancelled(cascaded=cascaded_from is not None)
        metrics_collector.record_bookings_released(released, "cancellation")
        logger.info(
            "Departure cancelled",
            extra={
                "departure_id": str(departure.id),
                "released_bookings": released,
                "cascaded_from": str(cascaded_from) if cascaded_from else None
            }
        )
        self._publish(DepartureEventType.CANCELLED, departure, entity_ids, cascaded_from=cascaded_from)
        return departure

    # Entry points addressing departures by ferry, date and sequence

    async def delay_ferry_departure(
        self,
        ferry_id: UUID,
        service_date: date,
        sequence: int,
        delay_minutes: int,
    ) -> Departure:
        """
        Delay the ferry's n-th departure on a date.

        The ferry's schedules for the date are materialized first, so a
        sailing can be delayed before anyone booked it.

        Returns:
            The delayed departure

        Raises:
            ValidationError: If delay_minutes is outside 1..MAX_DELAY_MINUTES
            NotFoundError: If the ferry or the departure does not exist, or the departure is closed
        """
        _check_delay(delay_minutes)

        await self.departure_service.materialize_for_ferry_day(ferry_id, service_date)
        departure = await self.departure_service.find_by_sequence(ferry_id, service_date, sequence)

        applied = await self.delay(departure.id, delay_minutes)
        return applied[0]

    async def cancel_ferry_departures(self, ferry_id: UUID, service_date: date) -> list[Departure]:
        """
        Cancel every open departure of a ferry on a date.

        Returns:
            All departures cancelled, including connecting legs

        Raises:
            NotFoundError: If the ferry does not exist or has nothing left to cancel on the date
            DataUnavailableError: If storage fails; applied_departure_ids lists every departure
                cancelled by this call before the failure
        """
        now = datetime.utcnow()
        departures = await self.departure_service.materialize_for_ferry_day(ferry_id, service_date)

        cancellable = [departure for departure in departures if not departure.is_closed(now)]
        if not cancellable:
            logger.warning(
                "Nothing to cancel for ferry",
                extra={"ferry_id": str(ferry_id), "service_date": service_date.isoformat()}
            )
            raise NotFoundError(
                resource_type="departure",
                detail=f"Ferry '{ferry_id}' has no open departure on {service_date.isoformat()}"
            )

        cancelled: list[Departure] = []
        cancelled_ids: list[str] = []
        for departure in cancellable:
            # A cascade from an earlier departure may already have closed this one
            if departure.is_closed(now):
                continue
            try:
                chain = await self.cancel(departure.id)
            except DataUnavailableError as e:
                if not cancelled_ids:
                    raise
                applied_ids = cancelled_ids + list(e.problem_details.get("applied_departure_ids", []))
                logger.error(
                    "Ferry cancellation stopped part way",
                    extra={
                        "ferry_id": str(ferry_id),
                        "service_date": service_date.isoformat(),
                        "applied_departure_ids": applied_ids
                    },
                    exc_info=True
                )
                raise DataUnavailableError(
                    operation="cancel_ferry_departures",
                    detail=f"Cancelled {len(applied_ids)} departure(s) before the data store failed",
                    extensions={"applied_departure_ids": applied_ids},
                    code=e.problem_details.get("code", "DATA_UNAVAILABLE")
                ) from e
            cancelled.extend(chain)
            cancelled_ids.extend(str(leg.id) for leg in chain)

        logger.info(
            "Ferry departures cancelled",
            extra={
                "ferry_id": str(ferry_id),
                "service_date": service_date.isoformat(),
                "cancelled": cancelled_ids
            }
        )
        return cancelled
