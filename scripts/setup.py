#!/usr/bin/env python3
"""Setup script for the ferry operations API."""

import asyncio
import logging
import sys
from datetime import date, time, timedelta
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from ferryops.core.database import async_session_factory, close_db, init_db
from ferryops.models import *  # noqa: F403 - Import all models to ensure they're registered
from ferryops.models.traveling_entity import TravelingEntityKind
from ferryops.schemas.common import Money
from ferryops.schemas.ferry import CreateFerryRequest
from ferryops.schemas.route import CreateHarbourRequest, CreateRouteRequest
from ferryops.schemas.schedule import CreateScheduleRequest
from ferryops.schemas.traveling_entity import CreateTravelingEntityRequest
from ferryops.services.departure_service import DepartureService
from ferryops.services.ferry_service import FerryService
from ferryops.services.route_service import RouteService
from ferryops.services.schedule_service import ScheduleService
from ferryops.services.traveling_entity_service import TravelingEntityService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def setup_database():
    """Create the schema."""
    logger.info("Setting up database...")

    try:
        await init_db()
        logger.info("Database setup completed successfully!")
    except Exception as e:
        logger.error(f"Database setup failed: {e}")
        raise


async def create_sample_data():
    """Create a small two-leg network sailing every day for the next weeks."""
    logger.info("Creating sample data...")

    async with async_session_factory() as db:
        ferry_service = FerryService(db)
        if await ferry_service.list_ferries():
            logger.info("Sample data already exists, skipping...")
            return

        route_service = RouteService(db)
        schedule_service = ScheduleService(db)

        morning_ferry = await ferry_service.add_ferry(CreateFerryRequest(name="MF Samsoe", capacity=600))
        island_ferry = await ferry_service.add_ferry(CreateFerryRequest(name="MF Tunoe", capacity=120))

        hou = await route_service.add_harbour(CreateHarbourRequest(name="Hou"))
        saelvig = await route_service.add_harbour(CreateHarbourRequest(name="Saelvig"))
        tunoe = await route_service.add_harbour(CreateHarbourRequest(name="Tunoe"))

        main_route = await route_service.add_route(CreateRouteRequest(
            origin_harbour_id=hou.id,
            destination_harbour_id=saelvig.id,
            price=Money(amount=19500, currency="DKK")
        ))
        island_route = await route_service.add_route(CreateRouteRequest(
            origin_harbour_id=saelvig.id,
            destination_harbour_id=tunoe.id,
            price=Money(amount=8000, currency="DKK")
        ))

        today = date.today()
        first_leg = await schedule_service.add_schedule(CreateScheduleRequest(
            route_id=main_route.id,
            ferry_id=morning_ferry.id,
            weekdays=[0, 1, 2, 3, 4, 5, 6],
            departure_time=time(7, 15),
            duration_minutes=60,
            valid_from=today,
            valid_until=today + timedelta(days=90)
        ))
        await schedule_service.add_schedule(CreateScheduleRequest(
            route_id=island_route.id,
            ferry_id=island_ferry.id,
            weekdays=[0, 2, 4],
            departure_time=time(8, 45),
            duration_minutes=35,
            valid_from=today,
            valid_until=today + timedelta(days=90),
            upstream_schedule_id=first_leg.id
        ))

        departure_service = DepartureService(db)
        created = await departure_service.materialize_range(first_leg.id, today, today + timedelta(days=13))

        entity_service = TravelingEntityService(db)
        await entity_service.add_traveling_entity(CreateTravelingEntityRequest(
            kind=TravelingEntityKind.PASSENGER, name="Karen Blixen"
        ))
        await entity_service.add_traveling_entity(CreateTravelingEntityRequest(
            kind=TravelingEntityKind.VEHICLE, name="Ford Transit", reference="CX 12 345"
        ))

        logger.info(f"Sample data created successfully! {len(created)} departures materialized")


async def main():
    """Main setup function."""
    logger.info("Starting ferry operations API setup...")

    try:
        await setup_database()
        await create_sample_data()
    finally:
        await close_db()

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn ferryops.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
