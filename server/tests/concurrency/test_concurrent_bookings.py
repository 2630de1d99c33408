"""Concurrency tests for booking, delay and materialization operations."""

import asyncio
from datetime import datetime, time
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from ferryops.core.database import Base
from ferryops.core.exceptions import NotFoundError
from ferryops.core.locks import DepartureLockRegistry
from ferryops.models.departure import Departure, DepartureStatus
from ferryops.schemas.ferry import UpdateCapacityRequest
from ferryops.services.booking_service import BookingService, OverBookedError
from ferryops.services.cascade_service import CascadeService
from ferryops.services.departure_service import DepartureService
from ferryops.services.ferry_service import FerryService

from ..conftest import SERVICE_DATE, build_network, create_passengers


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path):
    """
    Session factory over a file database.

    Every concurrent request gets its own session and connection, the way
    separate API requests would.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ferryops.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
def locks():
    return DepartureLockRegistry(timeout_seconds=30)


async def _setup(session_factory, capacity: int, passenger_count: int):
    async with session_factory() as session:
        network = await build_network(session, capacity=capacity)
        passengers = await create_passengers(session, passenger_count)
        departure = await DepartureService(session).materialize(network.leg_one.id, SERVICE_DATE)
        return network, [passenger.id for passenger in passengers], departure.id


@pytest.mark.asyncio
async def test_concurrent_attaches_no_overbooking(session_factory, locks):
    """Concurrent attach requests never fill a departure beyond its capacity."""
    capacity = 5
    _, passenger_ids, departure_id = await _setup(session_factory, capacity=capacity, passenger_count=20)

    async def attach(entity_id):
        async with session_factory() as session:
            try:
                return await BookingService(session, locks=locks).attach(departure_id, entity_id)
            except OverBookedError:
                return None

    results = await asyncio.gather(*(attach(entity_id) for entity_id in passenger_ids))

    successful = [result for result in results if result is not None]
    assert len(successful) == capacity

    async with session_factory() as session:
        departure = await DepartureService(session).get_departure_by_id_or_raise(departure_id)
        assert departure.booked_count == capacity
        bookings = await BookingService(session).list_bookings(departure_id)
        assert len(bookings) == capacity


@pytest.mark.asyncio
async def test_concurrent_attach_and_cancel(session_factory, locks):
    """Bookings racing a cancellation either land before it and get released, or fail."""
    _, passenger_ids, departure_id = await _setup(session_factory, capacity=10, passenger_count=10)

    async def attach(entity_id):
        async with session_factory() as session:
            try:
                await BookingService(session, locks=locks).attach(departure_id, entity_id)
                return "attached"
            except NotFoundError:
                return "closed"

    async def cancel():
        async with session_factory() as session:
            await CascadeService(session, locks=locks).cancel(departure_id)
            return "cancelled"

    tasks = [attach(entity_id) for entity_id in passenger_ids[:5]]
    tasks.append(cancel())
    tasks.extend(attach(entity_id) for entity_id in passenger_ids[5:])
    results = await asyncio.gather(*tasks)

    assert results.count("cancelled") == 1
    assert set(results) <= {"attached", "closed", "cancelled"}

    async with session_factory() as session:
        departure = await DepartureService(session).get_departure_by_id_or_raise(departure_id)
        assert departure.status == DepartureStatus.CANCELLED
        assert departure.booked_count == 0
        assert await BookingService(session).list_bookings(departure_id) == []


@pytest.mark.asyncio
async def test_concurrent_delays_are_not_lost(session_factory, locks):
    """Every concurrent delay of the same departure is applied exactly once."""
    _, _, departure_id = await _setup(session_factory, capacity=2, passenger_count=0)

    async with session_factory() as session:
        departure = await DepartureService(session).get_departure_by_id_or_raise(departure_id)
        original_departs_at = departure.departs_at

    async def delay(minutes):
        async with session_factory() as session:
            await CascadeService(session, locks=locks).delay(departure_id, minutes)

    await asyncio.gather(*(delay(5) for _ in range(10)))

    async with session_factory() as session:
        departure = await DepartureService(session).get_departure_by_id_or_raise(departure_id)
        assert departure.delay_minutes == 50
        assert (departure.departs_at - original_departs_at).total_seconds() == 50 * 60


@pytest.mark.asyncio
async def test_delay_cascade_and_capacity_update_do_not_deadlock(session_factory):
    """
    A cascade and a capacity update lock the same two legs in the same order.

    The downstream leg's id sorts before the upstream one, so locking the
    chain trigger-first would wait on the capacity update in the opposite order.
    """
    locks = DepartureLockRegistry(timeout_seconds=2)
    upstream_id = UUID("ffffffff-ffff-ffff-ffff-ffffffffffff")
    downstream_id = UUID(int=1)

    async with session_factory() as session:
        network = await build_network(session, capacity=2)
        ferry_id = network.ferry.id
        session.add_all([
            Departure(
                id=upstream_id,
                ferry_id=ferry_id,
                route_id=network.route_ab.id,
                service_date=SERVICE_DATE,
                sequence=1,
                departs_at=datetime.combine(SERVICE_DATE, time(8, 0)),
                arrives_at=datetime.combine(SERVICE_DATE, time(9, 0)),
                status=DepartureStatus.SCHEDULED,
                booked_count=0,
                delay_minutes=0
            ),
            Departure(
                id=downstream_id,
                ferry_id=ferry_id,
                route_id=network.route_ab.id,
                upstream_departure_id=upstream_id,
                service_date=SERVICE_DATE,
                sequence=2,
                departs_at=datetime.combine(SERVICE_DATE, time(9, 30)),
                arrives_at=datetime.combine(SERVICE_DATE, time(10, 15)),
                status=DepartureStatus.SCHEDULED,
                booked_count=0,
                delay_minutes=0
            ),
        ])
        await session.commit()

    async def delay():
        async with session_factory() as session:
            return await CascadeService(session, locks=locks).delay(upstream_id, 5)

    async def resize(capacity):
        async with session_factory() as session:
            return await FerryService(session, locks=locks).update_capacity(UpdateCapacityRequest(
                ferry_id=ferry_id, capacity=capacity, reason="Refit"
            ))

    rounds = 5
    for round_number in range(rounds):
        delayed, resized = await asyncio.gather(delay(), resize(6 + round_number))
        assert [departure.id for departure in delayed] == [upstream_id, downstream_id]
        assert resized.capacity == 6 + round_number

    async with session_factory() as session:
        service = DepartureService(session)
        for departure_id in (upstream_id, downstream_id):
            departure = await service.get_departure_by_id_or_raise(departure_id)
            assert departure.delay_minutes == 5 * rounds
            assert departure.status == DepartureStatus.DELAYED


@pytest.mark.asyncio
async def test_concurrent_materialization_creates_one_departure(session_factory, locks):
    """Racing materializations of the same schedule and date agree on a single departure."""
    async with session_factory() as session:
        network = await build_network(session)

    async def materialize():
        async with session_factory() as session:
            departure = await DepartureService(session, locks=locks).materialize(network.leg_one.id, SERVICE_DATE)
            return departure.id

    departure_ids = await asyncio.gather(*(materialize() for _ in range(8)))

    assert len(set(departure_ids)) == 1
    async with session_factory() as session:
        departures = await DepartureService(session).list_for_date(SERVICE_DATE)
        assert len(departures) == 1
        assert departures[0].sequence == 1


@pytest.mark.asyncio
async def test_lock_timeout_reports_busy(locks):
    """A caller that cannot get the departure lock in time receives DepartureBusyError."""
    from ferryops.core.exceptions import DepartureBusyError

    impatient = DepartureLockRegistry(timeout_seconds=0.05)

    async with impatient.hold(("departure", "busy")):
        with pytest.raises(DepartureBusyError) as exc_info:
            async with impatient.hold(("departure", "busy")):
                pass

    assert exc_info.value.status_code == 503
    assert exc_info.value.problem_details["code"] == "DEPARTURE_BUSY"
    assert exc_info.value.problem_details["retryable"] is True
