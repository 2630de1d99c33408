"""Unit tests for traveling entity service."""

from uuid import uuid4

import pytest

from ferryops.core.exceptions import DuplicateEntityError, InUseError, NotFoundError, ValidationError
from ferryops.models.traveling_entity import TravelingEntityKind
from ferryops.schemas.traveling_entity import CreateTravelingEntityRequest, UpdateTravelingEntityRequest
from ferryops.services.booking_service import BookingService
from ferryops.services.cascade_service import CascadeService
from ferryops.services.departure_service import DepartureService
from ferryops.services.traveling_entity_service import TravelingEntityService

from ..conftest import SERVICE_DATE


@pytest.mark.asyncio
async def test_add_vehicle(test_session):
    """Test registering a vehicle."""
    service = TravelingEntityService(test_session)

    vehicle = await service.add_traveling_entity(CreateTravelingEntityRequest(
        kind=TravelingEntityKind.VEHICLE,
        name="Volvo V70",
        reference="AB 12 345"
    ))

    assert vehicle.kind == TravelingEntityKind.VEHICLE
    assert vehicle.reference == "AB 12 345"
    assert vehicle.description is None


@pytest.mark.asyncio
async def test_add_duplicate_id(test_session):
    service = TravelingEntityService(test_session)
    entity_id = uuid4()
    request = CreateTravelingEntityRequest(id=entity_id, kind=TravelingEntityKind.PASSENGER, name="Ida Holm")
    await service.add_traveling_entity(request)

    with pytest.raises(DuplicateEntityError):
        await service.add_traveling_entity(request)


@pytest.mark.asyncio
async def test_update_keeps_omitted_fields(test_session, passengers):
    service = TravelingEntityService(test_session)

    entity = await service.update_traveling_entity(UpdateTravelingEntityRequest(
        traveling_entity_id=passengers[0].id,
        description="Wheelchair user"
    ))

    assert entity.description == "Wheelchair user"
    assert entity.name == "Passenger 0"
    assert entity.reference == "P00000"


@pytest.mark.asyncio
async def test_update_clears_optional_field(test_session, passengers):
    entity = await TravelingEntityService(test_session).update_traveling_entity(UpdateTravelingEntityRequest(
        traveling_entity_id=passengers[0].id,
        reference=None
    ))

    assert entity.reference is None


@pytest.mark.asyncio
async def test_update_rejects_null_name(test_session, passengers):
    with pytest.raises(ValidationError):
        await TravelingEntityService(test_session).update_traveling_entity(UpdateTravelingEntityRequest(
            traveling_entity_id=passengers[0].id,
            name=None
        ))


@pytest.mark.asyncio
async def test_update_unknown_entity(test_session):
    with pytest.raises(NotFoundError):
        await TravelingEntityService(test_session).update_traveling_entity(UpdateTravelingEntityRequest(
            traveling_entity_id=uuid4(),
            name="Nobody"
        ))


@pytest.mark.asyncio
async def test_list_sorted_by_name(test_session, passengers):
    entities = await TravelingEntityService(test_session).list_traveling_entities()

    assert [entity.name for entity in entities] == [f"Passenger {index}" for index in range(4)]


@pytest.mark.asyncio
async def test_delete_booked_entity_rejected(test_session, network, passengers):
    """An entity booked on an open departure cannot be deleted."""
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)
    await BookingService(test_session).attach(departure.id, passengers[0].id)

    with pytest.raises(InUseError):
        await TravelingEntityService(test_session).delete_traveling_entity(passengers[0].id)


@pytest.mark.asyncio
async def test_delete_keeps_booking_history(test_session, network, passengers):
    """Once the departure is closed the entity can go; its bookings stay anonymised."""
    departure = await DepartureService(test_session).materialize(network.leg_one.id, SERVICE_DATE)
    booking_service = BookingService(test_session)
    await booking_service.attach(departure.id, passengers[0].id)
    await CascadeService(test_session).cancel(departure.id)

    service = TravelingEntityService(test_session)
    await service.delete_traveling_entity(passengers[0].id)

    assert await service.get_traveling_entity_by_id(passengers[0].id) is None
    history = await booking_service.list_bookings(departure.id, active_only=False)
    assert len(history) == 1
    await test_session.refresh(history[0])
    assert history[0].traveling_entity_id is None
