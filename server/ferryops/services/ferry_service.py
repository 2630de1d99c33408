"""Ferry service for business logic operations."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import commit_or_raise
from ..core.exceptions import ConflictError, DuplicateEntityError, InUseError, NotFoundError
from ..core.locks import DepartureLockRegistry, advisory_xact_lock, departure_key, departure_locks
from ..models.capacity import CapacityAdjustment
from ..models.departure import OPEN_STATUSES, Departure
from ..models.ferry import Ferry, FerryStatus
from ..models.schedule import Schedule
from ..schemas.ferry import CreateFerryRequest, UpdateCapacityRequest

logger = logging.getLogger(__name__)


class CapacityBelowBookedError(ConflictError):
    """Exception when a capacity edit would leave a departure overbooked."""

    def __init__(self, ferry_id: str, requested_capacity: int, max_booked: int):
        super().__init__(
            detail=(
                f"Ferry {ferry_id} cannot be reduced to capacity {requested_capacity}: "
                f"an active departure has {max_booked} bookings"
            ),
            conflicting_resource={
                "ferry_id": ferry_id,
                "requested_capacity": requested_capacity,
                "max_booked": max_booked
            }
        )
        self.problem_details.update({
            "code": "CAPACITY_BELOW_BOOKED",
            "retryable": False
        })


class FerryRetiredError(ConflictError):
    """Exception when a retired ferry is asked to sail."""

    def __init__(self, ferry_id: str):
        super().__init__(
            detail=f"Ferry {ferry_id} is retired and cannot be scheduled"
        )
        self.problem_details.update({
            "code": "FERRY_RETIRED",
            "retryable": False,
            "ferry_id": ferry_id
        })


class FerryService:
    """Service for ferry-related operations."""

    def __init__(self, db: AsyncSession, locks: Optional[DepartureLockRegistry] = None):
        self.db = db
        self.locks = locks or departure_locks

    async def add_ferry(self, request: CreateFerryRequest) -> Ferry:
        """
        Register a new ferry.

        Args:
            request: Ferry creation request

        Returns:
            Created ferry entity

        Raises:
            DuplicateEntityError: If the ID or the name is already registered
        """
        if request.id and await self.get_ferry_by_id(request.id):
            raise DuplicateEntityError("ferry", str(request.id))

        existing = await self.db.execute(select(Ferry.id).where(Ferry.name == request.name))
        if existing.scalar_one_or_none():
            raise DuplicateEntityError("ferry", request.name, field="name")

        ferry = Ferry(
            name=request.name,
            capacity=request.capacity,
            status=FerryStatus.ACTIVE
        )
        if request.id:
            ferry.id = request.id

        self.db.add(ferry)
        try:
            await commit_or_raise(self.db, "add_ferry")
        except IntegrityError:
            logger.warning(
                "Ferry creation lost a race with a concurrent insert",
                extra={"ferry_name": request.name}
            )
            raise DuplicateEntityError("ferry", request.name, field="name") from None
        await self.db.refresh(ferry)

        logger.info(
            "Ferry registered",
            extra={
                "ferry_id": str(ferry.id),
                "ferry_name": ferry.name,
                "capacity": ferry.capacity
            }
        )

        return ferry

    async def get_ferry_by_id(self, ferry_id: UUID) -> Ferry | None:
        stmt = select(Ferry).where(Ferry.id == ferry_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_ferry_by_id_or_raise(self, ferry_id: UUID) -> Ferry:
        """
        Get ferry by ID or raise NotFoundError.

        Raises:
            NotFoundError: If ferry not found
        """
        ferry = await self.get_ferry_by_id(ferry_id)
        if not ferry:
            logger.warning(
                "Ferry not found",
                extra={"ferry_id": str(ferry_id)}
            )
            raise NotFoundError(
                resource_type="ferry",
                resource_id=str(ferry_id)
            )
        return ferry

    async def list_ferries(self) -> list[Ferry]:
        result = await self.db.execute(select(Ferry).order_by(Ferry.name))
        return list(result.scalars())

    async def _count_running_departures(self, ferry_id: UUID, now: datetime) -> int:
        # Elapsed departures count as finished even before complete_elapsed runs
        stmt = select(func.count(Departure.id)).where(
            Departure.ferry_id == ferry_id,
            Departure.status.in_(OPEN_STATUSES),
            Departure.arrives_at > now
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def _ensure_no_running_departures(self, ferry_id: UUID, now: datetime) -> None:
        running = await self._count_running_departures(ferry_id, now)
        if running:
            logger.warning(
                "Ferry still referenced by running departures",
                extra={"ferry_id": str(ferry_id), "departures": running}
            )
            raise InUseError("ferry", str(ferry_id), referenced_by="departures", count=running)

    async def delete_ferry(self, ferry_id: UUID, now: Optional[datetime] = None) -> None:
        """
        Delete a ferry.

        Historical departures survive the deletion with their ferry cleared.

        Raises:
            NotFoundError: If ferry not found
            InUseError: If a running departure or any schedule references the ferry
        """
        now = now or datetime.utcnow()
        ferry = await self.get_ferry_by_id_or_raise(ferry_id)

        await self._ensure_no_running_departures(ferry_id, now)

        schedules = (await self.db.execute(
            select(func.count(Schedule.id)).where(Schedule.ferry_id == ferry_id)
        )).scalar_one()
        if schedules:
            logger.warning(
                "Ferry still referenced by schedules",
                extra={"ferry_id": str(ferry_id), "schedules": schedules}
            )
            raise InUseError("ferry", str(ferry_id), referenced_by="schedules", count=schedules)

        await self.db.execute(
            update(Departure).where(Departure.ferry_id == ferry_id).values(ferry_id=None)
        )
        await self.db.delete(ferry)
        await commit_or_raise(self.db, "delete_ferry")

        logger.info("Ferry deleted", extra={"ferry_id": str(ferry_id)})

    async def retire_ferry(self, ferry_id: UUID, now: Optional[datetime] = None) -> Ferry:
        """
        Take a ferry out of service. Retired ferries cannot be given new schedules.

        Raises:
            NotFoundError: If ferry not found
            InUseError: If a running departure references the ferry
        """
        now = now or datetime.utcnow()
        ferry = await self.get_ferry_by_id_or_raise(ferry_id)
        if ferry.status == FerryStatus.RETIRED:
            return ferry

        await self._ensure_no_running_departures(ferry_id, now)

        ferry.status = FerryStatus.RETIRED
        await commit_or_raise(self.db, "retire_ferry")
        await self.db.refresh(ferry)

        logger.info("Ferry retired", extra={"ferry_id": str(ferry_id)})
        return ferry

    async def update_capacity(self, request: UpdateCapacityRequest) -> Ferry:
        """
        Change a ferry's capacity and record the change in the audit trail.

        Every open departure of the ferry is locked while the booked counts are
        checked, so no booking can slip in between the check and the update.

        Args:
            request: Capacity update request

        Returns:
            Updated ferry entity

        Raises:
            NotFoundError: If ferry not found
            CapacityBelowBookedError: If an open departure has more bookings than the new capacity
        """
        ferry = await self.get_ferry_by_id_or_raise(request.ferry_id)

        open_ids = list((await self.db.execute(
            select(Departure.id).where(
                Departure.ferry_id == ferry.id,
                Departure.status.in_(OPEN_STATUSES)
            )
        )).scalars())

        async with self.locks.hold_many(departure_key(departure_id) for departure_id in open_ids):
            for departure_id in sorted(open_ids, key=str):
                await advisory_xact_lock(self.db, departure_key(departure_id))

            max_booked = (await self.db.execute(
                select(func.coalesce(func.max(Departure.booked_count), 0)).where(
                    Departure.ferry_id == ferry.id,
                    Departure.status.in_(OPEN_STATUSES)
                )
            )).scalar_one()

            if max_booked > request.capacity:
                logger.warning(
                    "Capacity update rejected - below booked count",
                    extra={
                        "ferry_id": str(ferry.id),
                        "requested_capacity": request.capacity,
                        "max_booked": max_booked
                    }
                )
                raise CapacityBelowBookedError(str(ferry.id), request.capacity, max_booked)

            adjustment = CapacityAdjustment(
                ferry_id=ferry.id,
                capacity_before=ferry.capacity,
                capacity_after=request.capacity,
                max_booked=max_booked,
                reason=request.reason,
                actor=request.actor
            )
            ferry.capacity = request.capacity

            self.db.add(adjustment)
            await commit_or_raise(self.db, "update_capacity")
            await self.db.refresh(ferry)

        logger.info(
            "Ferry capacity updated",
            extra={
                "ferry_id": str(ferry.id),
                "capacity_before": adjustment.capacity_before,
                "capacity_after": adjustment.capacity_after,
                "actor": request.actor,
                "reason": request.reason
            }
        )

        return ferry

    async def list_capacity_adjustments(self, ferry_id: UUID) -> list[CapacityAdjustment]:
        """Return the capacity audit trail of a ferry, oldest first."""
        await self.get_ferry_by_id_or_raise(ferry_id)
        stmt = (
            select(CapacityAdjustment)
            .where(CapacityAdjustment.ferry_id == ferry_id)
            .order_by(CapacityAdjustment.created_at, CapacityAdjustment.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())
