"""Test configuration and fixtures."""

import os

# The application engine is created at import time; point it at SQLite before anything imports it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from dataclasses import dataclass
from datetime import date, time, timedelta

import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ferryops.core.database import Base
from ferryops.core.dependencies import get_db, get_notification_sink
from ferryops.core.notifications import DepartureEvent
from ferryops.models import *  # noqa: F403 - Import all models
from ferryops.models.ferry import Ferry
from ferryops.models.route import Harbour, Route
from ferryops.models.schedule import Schedule
from ferryops.models.traveling_entity import TravelingEntityKind
from ferryops.schemas.common import Money
from ferryops.schemas.ferry import CreateFerryRequest
from ferryops.schemas.route import CreateHarbourRequest, CreateRouteRequest
from ferryops.schemas.schedule import CreateScheduleRequest
from ferryops.schemas.traveling_entity import CreateTravelingEntityRequest
from ferryops.services.ferry_service import FerryService
from ferryops.services.route_service import RouteService
from ferryops.services.schedule_service import ScheduleService
from ferryops.services.traveling_entity_service import TravelingEntityService

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Far enough ahead that nothing counts as elapsed
SERVICE_DATE = date.today() + timedelta(days=30)
EVERY_DAY = [0, 1, 2, 3, 4, 5, 6]


class RecordingNotificationSink:
    """Notification sink that keeps every published event."""

    def __init__(self):
        self.events: list[DepartureEvent] = []

    def publish(self, event: DepartureEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> list[DepartureEvent]:
        return [event for event in self.events if event.event_type == event_type]


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def notification_sink():
    return RecordingNotificationSink()


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, notification_sink):
    """The fully configured application, wired to the test session and a recording sink."""
    from ferryops.main import create_app

    app = create_app()

    # Override collaborators
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sink] = lambda: notification_sink

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    from httpx import ASGITransport
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@dataclass
class Network:
    """Two connected legs: harbour A to B with `ferry`, then B to C with `second_ferry`."""

    ferry: Ferry
    second_ferry: Ferry
    harbour_a: Harbour
    harbour_b: Harbour
    harbour_c: Harbour
    route_ab: Route
    route_bc: Route
    leg_one: Schedule
    leg_two: Schedule


async def build_network(session: AsyncSession, capacity: int = 2) -> Network:
    """Create ferries, harbours, routes and a two-leg schedule chain sailing every day."""
    ferry_service = FerryService(session)
    route_service = RouteService(session)
    schedule_service = ScheduleService(session)

    ferry = await ferry_service.add_ferry(CreateFerryRequest(name="MS Nordlys", capacity=capacity))
    second_ferry = await ferry_service.add_ferry(CreateFerryRequest(name="MS Sundbus", capacity=capacity))

    harbour_a = await route_service.add_harbour(CreateHarbourRequest(name="Aarhus"))
    harbour_b = await route_service.add_harbour(CreateHarbourRequest(name="Samsoe"))
    harbour_c = await route_service.add_harbour(CreateHarbourRequest(name="Kalundborg"))

    route_ab = await route_service.add_route(CreateRouteRequest(
        origin_harbour_id=harbour_a.id,
        destination_harbour_id=harbour_b.id,
        price=Money(amount=15000, currency="DKK")
    ))
    route_bc = await route_service.add_route(CreateRouteRequest(
        origin_harbour_id=harbour_b.id,
        destination_harbour_id=harbour_c.id,
        price=Money(amount=12000, currency="DKK")
    ))

    leg_one = await schedule_service.add_schedule(CreateScheduleRequest(
        route_id=route_ab.id,
        ferry_id=ferry.id,
        weekdays=EVERY_DAY,
        departure_time=time(8, 0),
        duration_minutes=60,
        valid_from=SERVICE_DATE - timedelta(days=60),
        valid_until=SERVICE_DATE + timedelta(days=60)
    ))
    leg_two = await schedule_service.add_schedule(CreateScheduleRequest(
        route_id=route_bc.id,
        ferry_id=second_ferry.id,
        weekdays=EVERY_DAY,
        departure_time=time(9, 30),
        duration_minutes=45,
        valid_from=SERVICE_DATE - timedelta(days=60),
        valid_until=SERVICE_DATE + timedelta(days=60),
        upstream_schedule_id=leg_one.id
    ))

    return Network(
        ferry=ferry,
        second_ferry=second_ferry,
        harbour_a=harbour_a,
        harbour_b=harbour_b,
        harbour_c=harbour_c,
        route_ab=route_ab,
        route_bc=route_bc,
        leg_one=leg_one,
        leg_two=leg_two,
    )


async def create_passengers(session: AsyncSession, count: int) -> list:
    service = TravelingEntityService(session)
    return [
        await service.add_traveling_entity(CreateTravelingEntityRequest(
            kind=TravelingEntityKind.PASSENGER,
            name=f"Passenger {index}",
            reference=f"P{index:05d}"
        ))
        for index in range(count)
    ]


@pytest_asyncio.fixture(scope="function")
async def network(test_session) -> Network:
    """Ferries of capacity 2 sailing a two-leg A-B-C chain every day."""
    return await build_network(test_session, capacity=2)


@pytest_asyncio.fixture(scope="function")
async def passengers(test_session) -> list:
    return await create_passengers(test_session, 4)


@pytest.fixture
def sample_ferry_data():
    """Sample ferry data for testing."""
    return {
        "name": "MF Hammershus",
        "capacity": 400
    }
