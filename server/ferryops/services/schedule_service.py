"""Schedule service for business logic operations."""

import logging
from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import commit_or_raise
from ..core.exceptions import DuplicateEntityError, NotFoundError, ValidationError
from ..core.notifications import NotificationSink
from ..models.departure import OPEN_STATUSES, Departure
from ..models.route import Route
from ..models.schedule import Schedule
from ..schemas.schedule import CreateScheduleRequest, UpdateScheduleRequest
from .ferry_service import FerryRetiredError, FerryService
from .route_service import RouteService

logger = logging.getLogger(__name__)


def _weekdays_to_column(weekdays: list[int]) -> str:
    return ",".join(str(day) for day in sorted(weekdays))


class ScheduleService:
    """Service for schedule-related operations."""

    def __init__(self, db: AsyncSession, notifications: Optional[NotificationSink] = None):
        self.db = db
        self.notifications = notifications
        self.ferry_service = FerryService(db)
        self.route_service = RouteService(db)

    async def get_schedule_by_id(self, schedule_id: UUID) -> Schedule | None:
        result = await self.db.execute(select(Schedule).where(Schedule.id == schedule_id))
        return result.scalar_one_or_none()

    async def get_schedule_by_id_or_raise(self, schedule_id: UUID) -> Schedule:
        """
        Get schedule by ID or raise NotFoundError.

        Raises:
            NotFoundError: If schedule not found
        """
        schedule = await self.get_schedule_by_id(schedule_id)
        if not schedule:
            logger.warning("Schedule not found", extra={"schedule_id": str(schedule_id)})
            raise NotFoundError(resource_type="schedule", resource_id=str(schedule_id))
        return schedule

    async def _validate_ferry(self, ferry_id: UUID) -> None:
        ferry = await self.ferry_service.get_ferry_by_id_or_raise(ferry_id)
        if not ferry.is_active:
            raise FerryRetiredError(str(ferry_id))

    async def _validate_upstream(self, schedule_id: UUID | None, route: Route, upstream_id: UUID) -> None:
        """
        Check that the upstream leg exists, ends where this leg starts and
        that following upstream links never leads back to this schedule.
        """
        if schedule_id is not None and upstream_id == schedule_id:
            raise ValidationError(
                detail="A schedule cannot be its own upstream leg",
                errors={"upstream_schedule_id": str(upstream_id)}
            )

        upstream = await self.get_schedule_by_id_or_raise(upstream_id)
        upstream_route = await self.route_service.get_route_by_id_or_raise(upstream.route_id)
        if upstream_route.destination_harbour_id != route.origin_harbour_id:
            raise ValidationError(
                detail="The upstream leg must arrive at the harbour this leg departs from",
                errors={"upstream_schedule_id": str(upstream_id)}
            )

        seen = {upstream.id}
        cursor = upstream
        while cursor.upstream_schedule_id is not None:
            if cursor.upstream_schedule_id == schedule_id or cursor.upstream_schedule_id in seen:
                raise ValidationError(
                    detail="Upstream links would form a cycle",
                    errors={"upstream_schedule_id": str(upstream_id)}
                )
            seen.add(cursor.upstream_schedule_id)
            cursor = await self.get_schedule_by_id(cursor.upstream_schedule_id)
            if cursor is None:
                break

    async def add_schedule(self, request: CreateScheduleRequest) -> Schedule:
        """
        Create a schedule.

        Args:
            request: Schedule creation request

        Returns:
            Created schedule entity

        Raises:
            DuplicateEntityError: If the ID is already taken
            NotFoundError: If the route, ferry or upstream schedule does not exist
            FerryRetiredError: If the ferry is retired
            ValidationError: If the upstream link is not valid
        """
        if request.id and await self.get_schedule_by_id(request.id):
            raise DuplicateEntityError("schedule", str(request.id))

        route = await self.route_service.get_route_by_id_or_raise(request.route_id)
        await self._validate_ferry(request.ferry_id)
        if request.upstream_schedule_id is not None:
            await self._validate_upstream(request.id, route, request.upstream_schedule_id)

        schedule = Schedule(
            route_id=request.route_id,
            ferry_id=request.ferry_id,
            upstream_schedule_id=request.upstream_schedule_id,
            weekdays=_weekdays_to_column(request.weekdays),
            departure_time=request.departure_time,
            duration_minutes=request.duration_minutes,
            valid_from=request.valid_from,
            valid_until=request.valid_until
        )
        if request.id:
            schedule.id = request.id

        self.db.add(schedule)
        try:
            await commit_or_raise(self.db, "add_schedule")
        except IntegrityError:
            raise DuplicateEntityError("schedule", str(schedule.id)) from None
        await self.db.refresh(schedule)

        logger.info(
            "Schedule created",
            extra={
                "schedule_id": str(schedule.id),
                "route_id": str(schedule.route_id),
                "ferry_id": str(schedule.ferry_id),
                "weekdays": schedule.weekdays,
                "departure_time": schedule.departure_time.isoformat(),
                "valid_from": schedule.valid_from.isoformat(),
                "valid_until": schedule.valid_until.isoformat()
            }
        )
        return schedule

    async def update_schedule(self, request: UpdateScheduleRequest) -> Schedule:
        """
        Replace the fields present in the request.

        Every check runs before any field is assigned, so either all changes
        are stored or none are. Departures already materialized keep their
        times.

        Raises:
            NotFoundError: If the schedule, route, ferry or upstream schedule does not exist
            FerryRetiredError: If the new ferry is retired
            ValidationError: If the window or the upstream links become invalid
        """
        schedule = await self.get_schedule_by_id_or_raise(request.schedule_id)
        changes: dict[str, Any] = {
            field: getattr(request, field)
            for field in request.model_fields_set
            if field != "schedule_id"
        }
        # Only upstream_schedule_id may be cleared
        nulls = sorted(name for name, value in changes.items() if value is None and name != "upstream_schedule_id")
        if nulls:
            raise ValidationError(
                detail=f"Fields cannot be null: {', '.join(nulls)}",
                errors={name: "must not be null" for name in nulls}
            )

        route_id = changes.get("route_id", schedule.route_id)
        route = await self.route_service.get_route_by_id_or_raise(route_id)

        if "ferry_id" in changes and changes["ferry_id"] != schedule.ferry_id:
            await self._validate_ferry(changes["ferry_id"])

        valid_from = changes.get("valid_from", schedule.valid_from)
        valid_until = changes.get("valid_until", schedule.valid_until)
        if valid_until < valid_from:
            raise ValidationError(
                detail="valid_until must not be before valid_from",
                errors={"valid_until": valid_until.isoformat()}
            )

        upstream_id = changes.get("upstream_schedule_id", schedule.upstream_schedule_id)
        if upstream_id is not None and ("upstream_schedule_id" in changes or "route_id" in changes):
            await self._validate_upstream(schedule.id, route, upstream_id)

        if "route_id" in changes and route_id != schedule.route_id:
            downstream = (await self.db.execute(
                select(Schedule).where(Schedule.upstream_schedule_id == schedule.id)
            )).scalars()
            for leg in downstream:
                leg_route = await self.route_service.get_route_by_id_or_raise(leg.route_id)
                if leg_route.origin_harbour_id != route.destination_harbour_id:
                    raise ValidationError(
                        detail="A downstream leg would no longer depart from this route's destination",
                        errors={"route_id": str(route_id), "downstream_schedule_id": str(leg.id)}
                    )

        if "weekdays" in changes:
            changes["weekdays"] = _weekdays_to_column(changes["weekdays"])
        for field, value in changes.items():
            setattr(schedule, field, value)

        await commit_or_raise(self.db, "update_schedule")
        await self.db.refresh(schedule)

        logger.info(
            "Schedule updated",
            extra={"schedule_id": str(schedule.id), "fields": sorted(changes)}
        )
        return schedule

    async def delete_schedule(self, schedule_id: UUID, now: Optional[datetime] = None) -> list[Departure]:
        """
        Delete a schedule and cancel its departures that have not started yet.

        Departures that already left or lie in the past are kept with their
        schedule reference cleared so booking history survives.

        Returns:
            The departures cancelled by the deletion

        Raises:
            NotFoundError: If schedule not found
        """
        from .cascade_service import CascadeService

        now = now or datetime.utcnow()
        schedule = await self.get_schedule_by_id_or_raise(schedule_id)

        upcoming = list((await self.db.execute(
            select(Departure)
            .where(
                Departure.schedule_id == schedule_id,
                Departure.status.in_(OPEN_STATUSES),
                Departure.departs_at > now
            )
            .order_by(Departure.departs_at)
        )).scalars())

        cascade = CascadeService(self.db, notifications=self.notifications)
        cancelled: list[Departure] = []
        for departure in upcoming:
            # An earlier cancellation may already have reached this leg
            if departure.is_terminal:
                continue
            cancelled.extend(await cascade.cancel(departure.id))

        await self.db.execute(
            update(Departure).where(Departure.schedule_id == schedule_id).values(schedule_id=None)
        )
        await self.db.execute(
            update(Schedule)
            .where(Schedule.upstream_schedule_id == schedule_id)
            .values(upstream_schedule_id=None)
        )
        await self.db.delete(schedule)
        await commit_or_raise(self.db, "delete_schedule")

        logger.info(
            "Schedule deleted",
            extra={
                "schedule_id": str(schedule_id),
                "cancelled_departures": [str(d.id) for d in cancelled]
            }
        )
        return cancelled

    async def list_schedules(self) -> list[Schedule]:
        result = await self.db.execute(select(Schedule).order_by(Schedule.departure_time, Schedule.id))
        return list(result.scalars())

    async def list_schedules_for_date(self, service_date: date, allow_empty: bool = False) -> list[Schedule]:
        """
        Return the schedules sailing on a date.

        Raises:
            NotFoundError: If no schedule sails on the date and allow_empty is False
        """
        stmt = (
            select(Schedule)
            .where(Schedule.valid_from <= service_date, Schedule.valid_until >= service_date)
            .order_by(Schedule.departure_time, Schedule.id)
        )
        result = await self.db.execute(stmt)
        schedules = [schedule for schedule in result.scalars() if schedule.runs_on(service_date)]

        if not schedules and not allow_empty:
            logger.warning(
                "No schedules for date",
                extra={"service_date": service_date.isoformat()}
            )
            raise NotFoundError(
                resource_type="schedule",
                detail=f"No schedule sails on {service_date.isoformat()}"
            )
        return schedules
