"""Harbour and route service for business logic operations."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import commit_or_raise
from ..core.exceptions import DuplicateEntityError, InUseError, NotFoundError, ValidationError
from ..models.departure import OPEN_STATUSES, Departure
from ..models.route import Harbour, Route
from ..models.schedule import Schedule
from ..schemas.route import CreateHarbourRequest, CreateRouteRequest, UpdatePriceRequest

logger = logging.getLogger(__name__)


class RouteService:
    """Service for harbour and route operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # Harbours

    async def add_harbour(self, request: CreateHarbourRequest) -> Harbour:
        """
        Register a new harbour.

        Raises:
            DuplicateEntityError: If the ID or the name is already registered
        """
        if request.id and await self.get_harbour_by_id(request.id):
            raise DuplicateEntityError("harbour", str(request.id))

        existing = await self.db.execute(select(Harbour.id).where(Harbour.name == request.name))
        if existing.scalar_one_or_none():
            raise DuplicateEntityError("harbour", request.name, field="name")

        harbour = Harbour(name=request.name)
        if request.id:
            harbour.id = request.id

        self.db.add(harbour)
        try:
            await commit_or_raise(self.db, "add_harbour")
        except IntegrityError:
            raise DuplicateEntityError("harbour", request.name, field="name") from None
        await self.db.refresh(harbour)

        logger.info(
            "Harbour registered",
            extra={"harbour_id": str(harbour.id), "harbour_name": harbour.name}
        )
        return harbour

    async def get_harbour_by_id(self, harbour_id: UUID) -> Harbour | None:
        result = await self.db.execute(select(Harbour).where(Harbour.id == harbour_id))
        return result.scalar_one_or_none()

    async def get_harbour_by_id_or_raise(self, harbour_id: UUID) -> Harbour:
        harbour = await self.get_harbour_by_id(harbour_id)
        if not harbour:
            logger.warning("Harbour not found", extra={"harbour_id": str(harbour_id)})
            raise NotFoundError(resource_type="harbour", resource_id=str(harbour_id))
        return harbour

    async def list_harbours(self) -> list[Harbour]:
        result = await self.db.execute(select(Harbour).order_by(Harbour.name))
        return list(result.scalars())

    # Routes

    async def add_route(self, request: CreateRouteRequest) -> Route:
        """
        Create a route between two existing harbours.

        Args:
            request: Route creation request

        Returns:
            Created route entity

        Raises:
            ValidationError: If origin and destination are the same harbour
            NotFoundError: If either harbour does not exist
            DuplicateEntityError: If the ID or the harbour pair is already taken
        """
        if request.origin_harbour_id == request.destination_harbour_id:
            raise ValidationError(
                detail="A route must connect two different harbours",
                errors={"destination_harbour_id": "must differ from origin_harbour_id"}
            )

        if request.id and await self.get_route_by_id(request.id):
            raise DuplicateEntityError("route", str(request.id))

        await self.get_harbour_by_id_or_raise(request.origin_harbour_id)
        await self.get_harbour_by_id_or_raise(request.destination_harbour_id)

        pair = await self.db.execute(
            select(Route.id).where(
                Route.origin_harbour_id == request.origin_harbour_id,
                Route.destination_harbour_id == request.destination_harbour_id
            )
        )
        pair_label = f"{request.origin_harbour_id}->{request.destination_harbour_id}"
        if pair.scalar_one_or_none():
            raise DuplicateEntityError("route", pair_label, field="harbours")

        route = Route(
            origin_harbour_id=request.origin_harbour_id,
            destination_harbour_id=request.destination_harbour_id,
            price_amount=request.price.amount,
            price_currency=request.price.currency
        )
        if request.id:
            route.id = request.id

        self.db.add(route)
        try:
            await commit_or_raise(self.db, "add_route")
        except IntegrityError:
            raise DuplicateEntityError("route", pair_label, field="harbours") from None
        await self.db.refresh(route)

        logger.info(
            "Route created",
            extra={
                "route_id": str(route.id),
                "origin_harbour_id": str(route.origin_harbour_id),
                "destination_harbour_id": str(route.destination_harbour_id),
                "price_amount": route.price_amount,
                "price_currency": route.price_currency
            }
        )
        return route

    async def get_route_by_id(self, route_id: UUID) -> Route | None:
        result = await self.db.execute(select(Route).where(Route.id == route_id))
        return result.scalar_one_or_none()

    async def get_route_by_id_or_raise(self, route_id: UUID) -> Route:
        """
        Get route by ID or raise NotFoundError.

        Raises:
            NotFoundError: If route not found
        """
        route = await self.get_route_by_id(route_id)
        if not route:
            logger.warning("Route not found", extra={"route_id": str(route_id)})
            raise NotFoundError(resource_type="route", resource_id=str(route_id))
        return route

    async def list_routes(self) -> list[Route]:
        result = await self.db.execute(select(Route).order_by(Route.created_at, Route.id))
        return list(result.scalars())

    async def update_price(self, request: UpdatePriceRequest) -> Route:
        route = await self.get_route_by_id_or_raise(request.route_id)
        previous = (route.price_amount, route.price_currency)

        route.price_amount = request.price.amount
        route.price_currency = request.price.currency
        await commit_or_raise(self.db, "update_price")
        await self.db.refresh(route)

        logger.info(
            "Route price updated",
            extra={
                "route_id": str(route.id),
                "previous_price": f"{previous[0]} {previous[1]}",
                "price": f"{route.price_amount} {route.price_currency}"
            }
        )
        return route

    async def delete_route(self, route_id: UUID, now: Optional[datetime] = None) -> None:
        """
        Delete a route.

        Raises:
            NotFoundError: If route not found
            InUseError: If a schedule or a running departure still uses the route
        """
        now = now or datetime.utcnow()
        route = await self.get_route_by_id_or_raise(route_id)

        schedules = (await self.db.execute(
            select(func.count(Schedule.id)).where(Schedule.route_id == route_id)
        )).scalar_one()
        if schedules:
            raise InUseError("route", str(route_id), referenced_by="schedules", count=schedules)

        running = (await self.db.execute(
            select(func.count(Departure.id)).where(
                Departure.route_id == route_id,
                Departure.status.in_(OPEN_STATUSES),
                Departure.arrives_at > now
            )
        )).scalar_one()
        if running:
            raise InUseError("route", str(route_id), referenced_by="departures", count=running)

        await self.db.execute(
            update(Departure).where(Departure.route_id == route_id).values(route_id=None)
        )
        await self.db.delete(route)
        await commit_or_raise(self.db, "delete_route")

        logger.info("Route deleted", extra={"route_id": str(route_id)})

    # Statistics, written inside the caller's unit of work

    async def record_delay(self, route_id: UUID | None, delay_minutes: int) -> None:
        if route_id is None:
            return
        await self.db.execute(
            update(Route)
            .where(Route.id == route_id)
            .values(
                departures_delayed=Route.departures_delayed + 1,
                delay_minutes_total=Route.delay_minutes_total + delay_minutes
            )
        )

    async def record_cancellation(self, route_id: UUID | None) -> None:
        if route_id is None:
            return
        await self.db.execute(
            update(Route)
            .where(Route.id == route_id)
            .values(departures_cancelled=Route.departures_cancelled + 1)
        )
