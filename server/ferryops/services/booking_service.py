"""Booking service enforcing departure capacity."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import commit_or_raise
from ..core.exceptions import ConflictError, DuplicateEntityError, NotFoundError
from ..core.locks import DepartureLockRegistry, departure_key, departure_locks
from ..core.observability import metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.departure import Departure
from ..schemas.booking import UpdateDepartureBookingsRequest
from .departure_service import DepartureService
from .traveling_entity_service import TravelingEntityService

logger = logging.getLogger(__name__)


class OverBookedError(ConflictError):
    """Exception when a departure has no room for more traveling entities."""

    def __init__(self, departure_id: str, capacity: int, booked_count: int, requested: int = 1):
        super().__init__(
            detail=(
                f"Departure {departure_id} is fully booked. "
                f"Capacity: {capacity}, Booked: {booked_count}, Requested: {requested}"
            ),
            conflicting_resource={
                "departure_id": departure_id,
                "capacity": capacity,
                "booked_count": booked_count,
                "requested": requested
            }
        )
        self.problem_details.update({
            "code": "OVERBOOKED",
            "retryable": False
        })


class BookingService:
    """
    Service for attaching traveling entities to departures.

    Every capacity check and the matching change of booked_count happen inside
    the departure's critical section, so concurrent requests can never push a
    departure past its ferry's capacity.
    """

    def __init__(self, db: AsyncSession, locks: Optional[DepartureLockRegistry] = None):
        self.db = db
        self.locks = locks or departure_locks
        self.departure_service = DepartureService(db, self.locks)
        self.traveling_entity_service = TravelingEntityService(db)

    async def _get_active_booking(self, departure_id: UUID, entity_id: UUID) -> Booking | None:
        stmt = select(Booking).where(
            Booking.departure_id == departure_id,
            Booking.traveling_entity_id == entity_id,
            Booking.status == BookingStatus.ACTIVE
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _get_active_booking_or_raise(self, departure_id: UUID, entity_id: UUID) -> Booking:
        booking = await self._get_active_booking(departure_id, entity_id)
        if not booking:
            logger.warning(
                "No active booking for traveling entity",
                extra={"departure_id": str(departure_id), "traveling_entity_id": str(entity_id)}
            )
            raise NotFoundError(
                resource_type="booking",
                resource_id=f"{departure_id}/{entity_id}",
                detail=f"Traveling entity '{entity_id}' holds no active booking on departure '{departure_id}'"
            )
        return booking

    async def _ensure_bookable(self, departure_id: UUID, entity_id: UUID) -> None:
        await self.traveling_entity_service.get_traveling_entity_by_id_or_raise(entity_id)
        if await self._get_active_booking(departure_id, entity_id):
            logger.warning(
                "Traveling entity already booked",
                extra={"departure_id": str(departure_id), "traveling_entity_id": str(entity_id)}
            )
            raise DuplicateEntityError("booking", str(entity_id), field="traveling_entity_id")

    def _reject_overbooking(self, departure: Departure, capacity: int, requested: int) -> None:
        metrics_collector.record_overbooking_rejected()
        logger.warning(
            "Booking rejected - departure full",
            extra={
                "departure_id": str(departure.id),
                "capacity": capacity,
                "booked_count": departure.booked_count,
                "requested": requested
            }
        )
        raise OverBookedError(str(departure.id), capacity, departure.booked_count, requested)

    async def attach(self, departure_id: UUID, entity_id: UUID) -> Booking:
        """
        Book a traveling entity onto a departure.

        Args:
            departure_id: Departure to book
            entity_id: Passenger or vehicle to book

        Returns:
            Created booking entity

        Raises:
            NotFoundError: If the departure or entity is absent, or the departure is cancelled or completed
            DuplicateEntityError: If the entity already holds an active booking on the departure
            OverBookedError: If the departure is at capacity
        """
        async with self.locks.hold(departure_key(departure_id)):
            departure = await self.departure_service.get_open_departure_with_lock(departure_id)
            await self._ensure_bookable(departure_id, entity_id)

            capacity = await self.departure_service.get_capacity(departure)
            if departure.booked_count >= capacity:
                self._reject_overbooking(departure, capacity, requested=1)

            booking = Booking(
                departure_id=departure_id,
                traveling_entity_id=entity_id,
                status=BookingStatus.ACTIVE
            )
            departure.booked_count += 1

            self.db.add(booking)
            try:
                await commit_or_raise(self.db, "attach")
            except IntegrityError:
                raise DuplicateEntityError("booking", str(entity_id), field="traveling_entity_id") from None
            await self.db.refresh(booking)

        metrics_collector.record_booking_attached()
        metrics_collector.set_capacity_utilization(str(departure_id), departure.booked_count, capacity)

        logger.info(
            "Traveling entity attached",
            extra={
                "booking_id": str(booking.id),
                "departure_id": str(departure_id),
                "traveling_entity_id": str(entity_id),
                "booked_count": departure.booked_count,
                "capacity": capacity
            }
        )

        return booking

    async def detach(self, departure_id: UUID, entity_id: UUID) -> Booking:
        """
        Release a traveling entity's booking on a departure.

        Raises:
            NotFoundError: If the departure is absent or closed, or no active booking exists
        """
        async with self.locks.hold(departure_key(departure_id)):
            departure = await self.departure_service.get_open_departure_with_lock(departure_id)
            booking = await self._get_active_booking_or_raise(departure_id, entity_id)

            booking.status = BookingStatus.RELEASED
            booking.released_at = datetime.utcnow()
            departure.booked_count -= 1

            await commit_or_raise(self.db, "detach")
            await self.db.refresh(booking)

        metrics_collector.record_bookings_released(1, "detach")

        logger.info(
            "Traveling entity detached",
            extra={
                "booking_id": str(booking.id),
                "departure_id": str(departure_id),
                "traveling_entity_id": str(entity_id),
                "booked_count": departure.booked_count
            }
        )

        return booking

    async def update_departure(self, request: UpdateDepartureBookingsRequest) -> Departure:
        """
        Apply a set of detaches and attaches to a departure as one change.

        Detaches are applied before attaches, so a full departure can swap
        entities. If any part fails nothing is changed.

        Raises:
            NotFoundError: If the departure or an entity is absent, or a detached entity is not booked
            DuplicateEntityError: If an attached entity is already booked
            OverBookedError: If the resulting booked count would exceed capacity
        """
        departure_id = request.departure_id

        async with self.locks.hold(departure_key(departure_id)):
            departure = await self.departure_service.get_open_departure_with_lock(departure_id)

            released = [
                await self._get_active_booking_or_raise(departure_id, entity_id)
                for entity_id in request.detach
            ]
            for entity_id in request.attach:
                await self._ensure_bookable(departure_id, entity_id)

            capacity = await self.departure_service.get_capacity(departure)
            new_count = departure.booked_count - len(released) + len(request.attach)
            if request.attach and new_count > capacity:
                self._reject_overbooking(departure, capacity, requested=len(request.attach) - len(released))

            now = datetime.utcnow()
            for booking in released:
                booking.status = BookingStatus.RELEASED
                booking.released_at = now
            # Flush releases first so the partial unique index never sees a transient duplicate
            await self.db.flush()
            for entity_id in request.attach:
                self.db.add(Booking(
                    departure_id=departure_id,
                    traveling_entity_id=entity_id,
                    status=BookingStatus.ACTIVE
                ))
            departure.booked_count = new_count

            try:
                await commit_or_raise(self.db, "update_departure")
            except IntegrityError:
                raise ConflictError(
                    detail=f"Bookings of departure {departure_id} changed concurrently"
                ) from None
            await self.db.refresh(departure)

        if request.attach:
            metrics_collector.record_booking_attached(len(request.attach))
        if released:
            metrics_collector.record_bookings_released(len(released), "detach")
        metrics_collector.set_capacity_utilization(str(departure_id), departure.booked_count, capacity)

        logger.info(
            "Departure bookings updated",
            extra={
                "departure_id": str(departure_id),
                "attached": [str(entity_id) for entity_id in request.attach],
                "detached": [str(entity_id) for entity_id in request.detach],
                "booked_count": departure.booked_count
            }
        )

        return departure

    async def list_bookings(self, departure_id: UUID, active_only: bool = True) -> list[Booking]:
        """
        Return the bookings of a departure, oldest first.

        Raises:
            NotFoundError: If departure not found
        """
        await self.departure_service.get_departure_by_id_or_raise(departure_id)

        stmt = select(Booking).where(Booking.departure_id == departure_id)
        if active_only:
            stmt = stmt.where(Booking.status == BookingStatus.ACTIVE)
        stmt = stmt.order_by(Booking.created_at, Booking.id)

        result = await self.db.execute(stmt)
        return list(result.scalars())
