"""Traveling entity service for business logic operations."""

import logging
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import commit_or_raise
from ..core.exceptions import DuplicateEntityError, InUseError, NotFoundError, ValidationError
from ..models.booking import Booking, BookingStatus
from ..models.departure import OPEN_STATUSES, Departure
from ..models.traveling_entity import TravelingEntity
from ..schemas.traveling_entity import CreateTravelingEntityRequest, UpdateTravelingEntityRequest

logger = logging.getLogger(__name__)


class TravelingEntityService:
    """Service for passenger and vehicle records."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add_traveling_entity(self, request: CreateTravelingEntityRequest) -> TravelingEntity:
        """
        Register a passenger or vehicle.

        Raises:
            DuplicateEntityError: If the ID is already taken
        """
        if request.id and await self.get_traveling_entity_by_id(request.id):
            raise DuplicateEntityError("traveling_entity", str(request.id))

        entity = TravelingEntity(
            kind=request.kind,
            name=request.name,
            reference=request.reference,
            description=request.description
        )
        if request.id:
            entity.id = request.id

        self.db.add(entity)
        try:
            await commit_or_raise(self.db, "add_traveling_entity")
        except IntegrityError:
            raise DuplicateEntityError("traveling_entity", str(entity.id)) from None
        await self.db.refresh(entity)

        logger.info(
            "Traveling entity registered",
            extra={"traveling_entity_id": str(entity.id), "kind": entity.kind}
        )
        return entity

    async def get_traveling_entity_by_id(self, entity_id: UUID) -> TravelingEntity | None:
        result = await self.db.execute(select(TravelingEntity).where(TravelingEntity.id == entity_id))
        return result.scalar_one_or_none()

    async def get_traveling_entity_by_id_or_raise(self, entity_id: UUID) -> TravelingEntity:
        entity = await self.get_traveling_entity_by_id(entity_id)
        if not entity:
            logger.warning(
                "Traveling entity not found",
                extra={"traveling_entity_id": str(entity_id)}
            )
            raise NotFoundError(resource_type="traveling_entity", resource_id=str(entity_id))
        return entity

    async def list_traveling_entities(self) -> list[TravelingEntity]:
        result = await self.db.execute(
            select(TravelingEntity).order_by(TravelingEntity.name, TravelingEntity.id)
        )
        return list(result.scalars())

    async def update_traveling_entity(self, request: UpdateTravelingEntityRequest) -> TravelingEntity:
        entity = await self.get_traveling_entity_by_id_or_raise(request.traveling_entity_id)
        changes = {
            field: getattr(request, field)
            for field in request.model_fields_set
            if field != "traveling_entity_id"
        }
        for field in ("kind", "name"):
            if field in changes and changes[field] is None:
                raise ValidationError(
                    detail=f"Field '{field}' cannot be null",
                    errors={field: "must not be null"}
                )

        for field, value in changes.items():
            setattr(entity, field, value)
        await commit_or_raise(self.db, "update_traveling_entity")
        await self.db.refresh(entity)

        logger.info(
            "Traveling entity updated",
            extra={"traveling_entity_id": str(entity.id), "fields": sorted(changes)}
        )
        return entity

    async def delete_traveling_entity(self, entity_id: UUID) -> None:
        """
        Delete a passenger or vehicle. Past bookings are kept anonymised.

        Raises:
            NotFoundError: If the entity does not exist
            InUseError: If the entity is booked on a departure that has not sailed
        """
        entity = await self.get_traveling_entity_by_id_or_raise(entity_id)

        booked = (await self.db.execute(
            select(func.count(Booking.id))
            .join(Departure, Departure.id == Booking.departure_id)
            .where(
                Booking.traveling_entity_id == entity_id,
                Booking.status == BookingStatus.ACTIVE,
                Departure.status.in_(OPEN_STATUSES)
            )
        )).scalar_one()
        if booked:
            raise InUseError("traveling_entity", str(entity_id), referenced_by="bookings", count=booked)

        await self.db.execute(
            update(Booking).where(Booking.traveling_entity_id == entity_id).values(traveling_entity_id=None)
        )
        await self.db.delete(entity)
        await commit_or_raise(self.db, "delete_traveling_entity")

        logger.info("Traveling entity deleted", extra={"traveling_entity_id": str(entity_id)})
