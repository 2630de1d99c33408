"""Departure service for business logic operations."""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import commit_or_raise
from ..core.exceptions import ConflictError, NotFoundError, ValidationError
from ..core.locks import DepartureLockRegistry, advisory_xact_lock, departure_key, departure_locks, ferry_day_key
from ..core.observability import metrics_collector
from ..models.departure import OPEN_STATUSES, Departure, DepartureStatus
from ..models.ferry import Ferry
from ..models.schedule import Schedule
from ..schemas.departure import CreateDepartureRequest
from .ferry_service import FerryRetiredError, FerryService
from .route_service import RouteService
from .schedule_service import ScheduleService

logger = logging.getLogger(__name__)


def _naive_utc(value: datetime) -> datetime:
    """Departure times are stored as naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _initial_status(arrives_at: datetime) -> DepartureStatus:
    # A sailing recorded after it arrived only exists as history
    if arrives_at <= datetime.utcnow():
        return DepartureStatus.COMPLETED
    return DepartureStatus.SCHEDULED


class DepartureService:
    """Service for departure-related operations."""

    def __init__(self, db: AsyncSession, locks: Optional[DepartureLockRegistry] = None):
        self.db = db
        self.locks = locks or departure_locks
        self.ferry_service = FerryService(db, self.locks)
        self.route_service = RouteService(db)
        self.schedule_service = ScheduleService(db)

    # Lookups

    async def get_departure_by_id(self, departure_id: UUID) -> Departure | None:
        """
        Get departure by ID.

        Args:
            departure_id: Departure ID to search for

        Returns:
            Departure if found, None otherwise
        """
        stmt = select(Departure).where(Departure.id == departure_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_departure_by_id_or_raise(self, departure_id: UUID) -> Departure:
        """
        Get departure by ID or raise NotFoundError.

        Raises:
            NotFoundError: If departure not found
        """
        departure = await self.get_departure_by_id(departure_id)
        if not departure:
            logger.warning(
                "Departure not found",
                extra={"departure_id": str(departure_id)}
            )
            raise NotFoundError(
                resource_type="departure",
                resource_id=str(departure_id)
            )
        return departure

    async def get_departure_with_lock(self, departure_id: UUID) -> Departure:
        """
        Reload a departure inside its critical section.

        The caller must already hold the in-process lock for the departure.
        On PostgreSQL an advisory lock is also taken so that other worker
        processes serialize on the same departure until the transaction ends.

        Raises:
            NotFoundError: If departure not found
        """
        await advisory_xact_lock(self.db, departure_key(departure_id))

        # populate_existing discards values read before the lock was taken
        stmt = (
            select(Departure)
            .where(Departure.id == departure_id)
            .execution_options(populate_existing=True)
        )
        departure = (await self.db.execute(stmt)).scalar_one_or_none()
        if not departure:
            logger.warning(
                "Departure not found",
                extra={"departure_id": str(departure_id)}
            )
            raise NotFoundError(resource_type="departure", resource_id=str(departure_id))

        logger.debug(
            "Acquired lock for departure",
            extra={"departure_id": str(departure_id)}
        )
        return departure

    async def get_open_departure_with_lock(self, departure_id: UUID, now: Optional[datetime] = None) -> Departure:
        """
        Like get_departure_with_lock, but cancelled, completed and already
        arrived departures are reported as not found.
        """
        now = _naive_utc(now or datetime.utcnow())
        departure = await self.get_departure_with_lock(departure_id)
        if departure.is_closed(now):
            state = departure.status.lower() if departure.is_terminal else "already sailed"
            logger.warning(
                "Departure is closed",
                extra={
                    "departure_id": str(departure_id),
                    "status": departure.status,
                    "arrives_at": departure.arrives_at.isoformat()
                }
            )
            raise NotFoundError(
                resource_type="departure",
                resource_id=str(departure_id),
                detail=f"Departure '{departure_id}' is {state} and accepts no further changes"
            )
        return departure

    async def get_capacity(self, departure: Departure) -> int:
        """Capacity of the ferry sailing a departure."""
        if departure.ferry_id is None:
            raise NotFoundError(
                resource_type="ferry",
                detail=f"Departure '{departure.id}' no longer has a ferry"
            )
        ferry = await self.ferry_service.get_ferry_by_id_or_raise(departure.ferry_id)
        return ferry.capacity

    async def find_by_sequence(self, ferry_id: UUID, service_date: date, sequence: int) -> Departure:
        """
        Find a ferry's n-th departure on a date.

        Raises:
            NotFoundError: If no such departure exists
        """
        stmt = select(Departure).where(
            Departure.ferry_id == ferry_id,
            Departure.service_date == service_date,
            Departure.sequence == sequence
        )
        departure = (await self.db.execute(stmt)).scalar_one_or_none()
        if not departure:
            logger.warning(
                "Departure not found by sequence",
                extra={
                    "ferry_id": str(ferry_id),
                    "service_date": service_date.isoformat(),
                    "sequence": sequence
                }
            )
            raise NotFoundError(
                resource_type="departure",
                resource_id=f"{ferry_id}/{service_date.isoformat()}/{sequence}"
            )
        return departure

    async def list_for_date(self, service_date: date, allow_empty: bool = False) -> list[Departure]:
        """
        Return every departure on a date.

        Raises:
            NotFoundError: If nothing sails on the date and allow_empty is False
        """
        stmt = (
            select(Departure)
            .where(Departure.service_date == service_date)
            .order_by(Departure.departs_at, Departure.sequence)
        )
        departures = list((await self.db.execute(stmt)).scalars())

        if not departures and not allow_empty:
            logger.warning(
                "No departures for date",
                extra={"service_date": service_date.isoformat()}
            )
            raise NotFoundError(
                resource_type="departure",
                detail=f"No departure exists on {service_date.isoformat()}"
            )
        return departures

    async def list_for_ferry_on_date(self, ferry_id: UUID, service_date: date) -> list[Departure]:
        stmt = (
            select(Departure)
            .where(Departure.ferry_id == ferry_id, Departure.service_date == service_date)
            .order_by(Departure.sequence)
        )
        return list((await self.db.execute(stmt)).scalars())

    async def list_downstream(self, departure_id: UUID) -> list[Departure]:
        """Departures waiting for this departure's arrival."""
        stmt = (
            select(Departure)
            .where(Departure.upstream_departure_id == departure_id)
            .order_by(Departure.departs_at, Departure.id)
        )
        return list((await self.db.execute(stmt)).scalars())

    # Materialization

    async def _get_for_schedule_and_date(self, schedule_id: UUID, service_date: date) -> Departure | None:
        stmt = select(Departure).where(
            Departure.schedule_id == schedule_id,
            Departure.service_date == service_date
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _next_sequence(self, ferry_id: UUID, service_date: date) -> int:
        # Caller holds the ferry-day lock
        stmt = select(func.coalesce(func.max(Departure.sequence), 0)).where(
            Departure.ferry_id == ferry_id,
            Departure.service_date == service_date
        )
        return (await self.db.execute(stmt)).scalar_one() + 1

    async def _get_active_ferry(self, ferry_id: UUID) -> Ferry:
        ferry = await self.ferry_service.get_ferry_by_id_or_raise(ferry_id)
        if not ferry.is_active:
            raise FerryRetiredError(str(ferry_id))
        return ferry

    async def materialize(self, schedule_id: UUID, service_date: date) -> Departure:
        """
        Create the departure of a schedule on a date, or return the existing one.

        A schedule that continues an upstream leg first materializes that leg
        for the same date (when it sails then) and links the two departures.

        Args:
            schedule_id: Schedule to materialize
            service_date: Date of the sailing

        Returns:
            The single departure of the schedule on that date

        Raises:
            NotFoundError: If the schedule or its ferry does not exist
            ValidationError: If the schedule does not sail on the date
            FerryRetiredError: If the ferry is retired
        """
        schedule = await self.schedule_service.get_schedule_by_id_or_raise(schedule_id)
        if not schedule.runs_on(service_date):
            raise ValidationError(
                detail=(
                    f"Schedule '{schedule_id}' does not sail on {service_date.isoformat()} "
                    f"(weekdays {schedule.weekdays}, valid {schedule.valid_from} to {schedule.valid_until})"
                ),
                errors={"service_date": service_date.isoformat()}
            )

        existing = await self._get_for_schedule_and_date(schedule_id, service_date)
        if existing:
            return existing

        upstream_departure = None
        if schedule.upstream_schedule_id is not None:
            upstream = await self.schedule_service.get_schedule_by_id(schedule.upstream_schedule_id)
            if upstream is not None and upstream.runs_on(service_date):
                upstream_departure = await self.materialize(upstream.id, service_date)

        ferry = await self._get_active_ferry(schedule.ferry_id)

        async with self.locks.hold(ferry_day_key(ferry.id, service_date)):
            await advisory_xact_lock(self.db, ferry_day_key(ferry.id, service_date))

            existing = await self._get_for_schedule_and_date(schedule_id, service_date)
            if existing:
                return existing

            departs_at = datetime.combine(service_date, schedule.departure_time)
            arrives_at = departs_at + timedelta(minutes=schedule.duration_minutes)
            departure = Departure(
                schedule_id=schedule.id,
                ferry_id=ferry.id,
                route_id=schedule.route_id,
                upstream_departure_id=upstream_departure.id if upstream_departure else None,
                service_date=service_date,
                sequence=await self._next_sequence(ferry.id, service_date),
                departs_at=departs_at,
                arrives_at=arrives_at,
                status=_initial_status(arrives_at),
                booked_count=0,
                delay_minutes=0
            )

            self.db.add(departure)
            try:
                await commit_or_raise(self.db, "materialize")
            except IntegrityError:
                # Another process materialized the same pair first
                existing = await self._get_for_schedule_and_date(schedule_id, service_date)
                if existing:
                    return existing
                raise ConflictError(
                    detail=f"Departure of schedule '{schedule_id}' on {service_date.isoformat()} could not be created"
                ) from None
            await self.db.refresh(departure)

        metrics_collector.record_departure_materialized("schedule")

        logger.info(
            "Departure materialized",
            extra={
                "departure_id": str(departure.id),
                "schedule_id": str(schedule_id),
                "ferry_id": str(ferry.id),
                "service_date": service_date.isoformat(),
                "sequence": departure.sequence,
                "upstream_departure_id": str(departure.upstream_departure_id) if departure.upstream_departure_id else None
            }
        )

        return departure

    async def materialize_range(self, schedule_id: UUID, date_from: date, date_to: date) -> list[Departure]:
        """Materialize every sailing of a schedule between two dates (inclusive)."""
        schedule = await self.schedule_service.get_schedule_by_id_or_raise(schedule_id)

        current = max(date_from, schedule.valid_from)
        last = min(date_to, schedule.valid_until)
        departures = []
        while current <= last:
            if schedule.runs_on(current):
                departures.append(await self.materialize(schedule_id, current))
            current += timedelta(days=1)

        logger.info(
            "Schedule range materialized",
            extra={
                "schedule_id": str(schedule_id),
                "date_from": date_from.isoformat(),
                "date_to": date_to.isoformat(),
                "departures": len(departures)
            }
        )
        return departures

    async def materialize_for_ferry_day(self, ferry_id: UUID, service_date: date) -> list[Departure]:
        """
        Materialize every schedule the ferry sails on a date, earliest first,
        and return all of the ferry's departures on that date.
        """
        ferry = await self.ferry_service.get_ferry_by_id_or_raise(ferry_id)
        if ferry.is_active:
            stmt = (
                select(Schedule)
                .where(
                    Schedule.ferry_id == ferry_id,
                    Schedule.valid_from <= service_date,
                    Schedule.valid_until >= service_date
                )
                .order_by(Schedule.departure_time, Schedule.id)
            )
            for schedule in (await self.db.execute(stmt)).scalars().all():
                if schedule.runs_on(service_date):
                    await self.materialize(schedule.id, service_date)

        return await self.list_for_ferry_on_date(ferry_id, service_date)

    async def create_adhoc_departure(self, request: CreateDepartureRequest) -> Departure:
        """
        Create a departure that belongs to no schedule.

        Raises:
            NotFoundError: If the ferry or the route does not exist
            FerryRetiredError: If the ferry is retired
        """
        ferry = await self._get_active_ferry(request.ferry_id)
        await self.route_service.get_route_by_id_or_raise(request.route_id)

        departs_at = _naive_utc(request.departs_at)
        arrives_at = _naive_utc(request.arrives_at)
        service_date = departs_at.date()

        async with self.locks.hold(ferry_day_key(ferry.id, service_date)):
            await advisory_xact_lock(self.db, ferry_day_key(ferry.id, service_date))

            departure = Departure(
                ferry_id=ferry.id,
                route_id=request.route_id,
                service_date=service_date,
                sequence=await self._next_sequence(ferry.id, service_date),
                departs_at=departs_at,
                arrives_at=arrives_at,
                status=_initial_status(arrives_at),
                booked_count=0,
                delay_minutes=0
            )
            self.db.add(departure)
            await commit_or_raise(self.db, "create_adhoc_departure")
            await self.db.refresh(departure)

        metrics_collector.record_departure_materialized("adhoc")

        logger.info(
            "Ad-hoc departure created",
            extra={
                "departure_id": str(departure.id),
                "ferry_id": str(ferry.id),
                "route_id": str(request.route_id),
                "departs_at": departs_at.isoformat(),
                "sequence": departure.sequence
            }
        )
        return departure

    # Lifecycle

    async def complete_elapsed(self, now: Optional[datetime] = None) -> int:
        """
        Move every scheduled or delayed departure that has already arrived to COMPLETED.

        Returns:
            Number of departures completed
        """
        now = _naive_utc(now or datetime.utcnow())
        candidate_ids = list((await self.db.execute(
            select(Departure.id).where(
                Departure.status.in_(OPEN_STATUSES),
                Departure.arrives_at <= now
            )
        )).scalars())

        if not candidate_ids:
            return 0

        completed = 0
        async with self.locks.hold_many(departure_key(departure_id) for departure_id in candidate_ids):
            for departure_id in candidate_ids:
                departure = await self.get_departure_with_lock(departure_id)
                # Re-check: a delay may have pushed the arrival past now meanwhile
                if departure.is_terminal or departure.arrives_at > now:
                    continue
                departure.status = DepartureStatus.COMPLETED
                completed += 1
            await commit_or_raise(self.db, "complete_elapsed")

        logger.info(
            "Elapsed departures completed",
            extra={"completed": completed, "now": now.isoformat()}
        )
        return completed
