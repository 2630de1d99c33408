"""Unit tests for booking service and overbooking protection."""

from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from ferryops.core.exceptions import DuplicateEntityError, NotFoundError
from ferryops.models.booking import BookingStatus
from ferryops.models.departure import DepartureStatus
from ferryops.schemas.booking import UpdateDepartureBookingsRequest
from ferryops.services.booking_service import BookingService, OverBookedError
from ferryops.services.cascade_service import CascadeService
from ferryops.services.departure_service import DepartureService

from ..conftest import SERVICE_DATE


@pytest.fixture
def booking_service(test_session):
    return BookingService(test_session)


@pytest.mark.asyncio
async def test_attach(test_session, network, passengers, booking_service):
    """Test booking a traveling entity onto a departure."""
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)

    booking = await booking_service.attach(departure.id, passengers[0].id)

    assert booking.departure_id == departure.id
    assert booking.traveling_entity_id == passengers[0].id
    assert booking.status == BookingStatus.ACTIVE
    await test_session.refresh(departure)
    assert departure.booked_count == 1


@pytest.mark.asyncio
async def test_full_departure_rejects_attach_until_cancelled(test_session, network, passengers, booking_service):
    """Capacity two: two bookings fit, the third is rejected, a cancelled departure takes no more."""
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)
    first, second, third, fourth = passengers

    await booking_service.attach(departure.id, first.id)
    await booking_service.attach(departure.id, second.id)

    with pytest.raises(OverBookedError) as exc_info:
        await booking_service.attach(departure.id, third.id)
    assert exc_info.value.problem_details["code"] == "OVERBOOKED"
    assert exc_info.value.status_code == 409

    await CascadeService(test_session).cancel(departure.id)
    await test_session.refresh(departure)
    assert departure.booked_count == 0
    assert departure.status == DepartureStatus.CANCELLED

    with pytest.raises(NotFoundError):
        await booking_service.attach(departure.id, fourth.id)


@pytest.mark.asyncio
async def test_attach_twice_rejected(test_session, network, passengers, booking_service):
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)
    await booking_service.attach(departure.id, passengers[0].id)

    with pytest.raises(DuplicateEntityError):
        await booking_service.attach(departure.id, passengers[0].id)

    await test_session.refresh(departure)
    assert departure.booked_count == 1


@pytest.mark.asyncio
async def test_attach_unknown_departure_or_entity(test_session, network, passengers, booking_service):
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)

    with pytest.raises(NotFoundError):
        await booking_service.attach(uuid4(), passengers[0].id)
    with pytest.raises(NotFoundError):
        await booking_service.attach(departure.id, uuid4())


@pytest.mark.asyncio
async def test_detach_frees_a_place(test_session, network, passengers, booking_service):
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)
    await booking_service.attach(departure.id, passengers[0].id)
    await booking_service.attach(departure.id, passengers[1].id)

    released = await booking_service.detach(departure.id, passengers[0].id)
    assert released.status == BookingStatus.RELEASED
    assert released.released_at is not None

    # The freed place can be taken again
    await booking_service.attach(departure.id, passengers[2].id)
    await test_session.refresh(departure)
    assert departure.booked_count == 2


@pytest.mark.asyncio
async def test_detach_unbooked_entity(test_session, network, passengers, booking_service):
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)

    with pytest.raises(NotFoundError):
        await booking_service.detach(departure.id, passengers[0].id)


@pytest.mark.asyncio
async def test_reattach_after_detach(test_session, network, passengers, booking_service):
    """A released booking does not block booking the same entity again."""
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)
    await booking_service.attach(departure.id, passengers[0].id)
    await booking_service.detach(departure.id, passengers[0].id)

    booking = await booking_service.attach(departure.id, passengers[0].id)

    assert booking.status == BookingStatus.ACTIVE
    history = await booking_service.list_bookings(departure.id, active_only=False)
    assert sorted(item.status for item in history) == [BookingStatus.ACTIVE, BookingStatus.RELEASED]


@pytest.mark.asyncio
async def test_update_departure_swaps_on_full_departure(test_session, network, passengers, booking_service):
    """Detaches are applied first, so a full departure can exchange travellers."""
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)
    await booking_service.attach(departure.id, passengers[0].id)
    await booking_service.attach(departure.id, passengers[1].id)

    updated = await booking_service.update_departure(UpdateDepartureBookingsRequest(
        departure_id=departure.id,
        attach=[passengers[2].id],
        detach=[passengers[0].id]
    ))

    assert updated.booked_count == 2
    active = await booking_service.list_bookings(departure.id)
    assert {booking.traveling_entity_id for booking in active} == {passengers[1].id, passengers[2].id}


@pytest.mark.asyncio
async def test_update_departure_overbooked_changes_nothing(test_session, network, passengers, booking_service):
    """If the update would exceed capacity, no part of it is applied."""
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)
    await booking_service.attach(departure.id, passengers[0].id)

    with pytest.raises(OverBookedError):
        await booking_service.update_departure(UpdateDepartureBookingsRequest(
            departure_id=departure.id,
            attach=[passengers[1].id, passengers[2].id, passengers[3].id],
            detach=[passengers[0].id]
        ))

    await test_session.refresh(departure)
    assert departure.booked_count == 1
    active = await booking_service.list_bookings(departure.id)
    assert [booking.traveling_entity_id for booking in active] == [passengers[0].id]


@pytest.mark.asyncio
async def test_update_departure_unknown_detach(test_session, network, passengers, booking_service):
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)

    with pytest.raises(NotFoundError):
        await booking_service.update_departure(UpdateDepartureBookingsRequest(
            departure_id=departure.id,
            attach=[passengers[0].id],
            detach=[passengers[1].id]
        ))

    await test_session.refresh(departure)
    assert departure.booked_count == 0


def test_update_request_rejects_overlap():
    from pydantic import ValidationError as SchemaValidationError

    entity_id = uuid4()
    with pytest.raises(SchemaValidationError):
        UpdateDepartureBookingsRequest(departure_id=uuid4(), attach=[entity_id], detach=[entity_id])
    with pytest.raises(SchemaValidationError):
        UpdateDepartureBookingsRequest(departure_id=uuid4(), attach=[entity_id, entity_id])


@pytest.mark.asyncio
async def test_list_bookings_unknown_departure(booking_service):
    with pytest.raises(NotFoundError):
        await booking_service.list_bookings(uuid4())


@pytest.mark.asyncio
async def test_attach_to_past_departure_rejected(test_session, network, passengers, booking_service):
    """A sailing on a date already gone takes no bookings and cannot be delayed."""
    past_date = datetime.utcnow().date() - timedelta(days=10)
    departure = await DepartureService(test_session).materialize(network.leg_one.id, past_date)

    with pytest.raises(NotFoundError):
        await booking_service.attach(departure.id, passengers[0].id)
    with pytest.raises(NotFoundError):
        await CascadeService(test_session).delay(departure.id, 15)

    await test_session.refresh(departure)
    assert departure.booked_count == 0
    assert departure.delay_minutes == 0


@pytest.mark.asyncio
async def test_sailed_departure_rejects_changes(test_session, network, passengers, booking_service):
    """A departure that has arrived is closed even while still marked SCHEDULED."""
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)
    await booking_service.attach(departure.id, passengers[0].id)
    departure.departs_at = datetime.utcnow() - timedelta(hours=3)
    departure.arrives_at = datetime.utcnow() - timedelta(hours=2)
    await test_session.commit()

    with pytest.raises(NotFoundError):
        await booking_service.attach(departure.id, passengers[1].id)
    with pytest.raises(NotFoundError):
        await booking_service.detach(departure.id, passengers[0].id)
    with pytest.raises(NotFoundError):
        await booking_service.update_departure(UpdateDepartureBookingsRequest(
            departure_id=departure.id,
            attach=[passengers[2].id],
            detach=[passengers[0].id]
        ))
    with pytest.raises(NotFoundError):
        await CascadeService(test_session).delay(departure.id, 15)
    with pytest.raises(NotFoundError):
        await CascadeService(test_session).cancel(departure.id)

    await test_session.refresh(departure)
    assert departure.status == DepartureStatus.SCHEDULED
    assert departure.booked_count == 1
    assert departure.delay_minutes == 0
    active = await booking_service.list_bookings(departure.id)
    assert [booking.traveling_entity_id for booking in active] == [passengers[0].id]
