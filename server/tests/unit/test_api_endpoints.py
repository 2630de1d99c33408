"""Unit tests for API endpoints."""

from datetime import timedelta
from uuid import uuid4

import pytest

from ferryops.core.notifications import DepartureEventType

from ..conftest import SERVICE_DATE


async def _post(client, path: str, payload: dict, expected_status: int = 200) -> dict:
    response = await client.post(path, json=payload)
    assert response.status_code == expected_status, response.text
    return response.json()


async def _create_network(client, capacity: int = 2) -> dict:
    """Create a ferry sailing harbour A to B every day around SERVICE_DATE."""
    ferry = await _post(client, "/v1/ferry/create", {"name": "MF Leonora Christina", "capacity": capacity})
    origin = await _post(client, "/v1/route/harbour/create", {"name": "Ystad"})
    destination = await _post(client, "/v1/route/harbour/create", {"name": "Ronne"})
    route = await _post(client, "/v1/route/create", {
        "origin_harbour_id": origin["id"],
        "destination_harbour_id": destination["id"],
        "price": {"amount": 29900, "currency": "DKK"}
    })
    schedule = await _post(client, "/v1/schedule/create", {
        "route_id": route["id"],
        "ferry_id": ferry["id"],
        "weekdays": [0, 1, 2, 3, 4, 5, 6],
        "departure_time": "08:30:00",
        "duration_minutes": 80,
        "valid_from": (SERVICE_DATE - timedelta(days=7)).isoformat(),
        "valid_until": (SERVICE_DATE + timedelta(days=7)).isoformat()
    })
    return {"ferry": ferry, "route": route, "schedule": schedule}


async def _create_passenger(client, name: str) -> dict:
    return await _post(client, "/v1/traveling-entity/create", {"kind": "PASSENGER", "name": name})


@pytest.mark.asyncio
async def test_create_ferry_endpoint(test_client, sample_ferry_data):
    """Test ferry creation endpoint."""
    data = await _post(test_client, "/v1/ferry/create", sample_ferry_data)

    assert data["name"] == sample_ferry_data["name"]
    assert data["capacity"] == sample_ferry_data["capacity"]
    assert data["status"] == "ACTIVE"
    assert "id" in data


@pytest.mark.asyncio
async def test_create_ferry_invalid_data(test_client):
    """Invalid request bodies are reported as problem details with violations."""
    response = await test_client.post("/v1/ferry/create", json={"name": "", "capacity": 0})

    assert response.status_code == 422
    data = response.json()
    assert data["title"] == "Request Validation Failed"
    paths = {violation["path"] for violation in data["violations"]}
    assert "body.name" in paths
    assert "body.capacity" in paths


@pytest.mark.asyncio
async def test_duplicate_ferry_name_conflict(test_client, sample_ferry_data):
    await _post(test_client, "/v1/ferry/create", sample_ferry_data)

    data = await _post(test_client, "/v1/ferry/create", sample_ferry_data, expected_status=409)

    assert data["code"] == "DUPLICATE"
    assert data["retryable"] is False


@pytest.mark.asyncio
async def test_get_unknown_ferry(test_client):
    data = await _post(test_client, "/v1/ferry/get", {"ferry_id": str(uuid4())}, expected_status=404)

    assert data["title"] == "Resource Not Found"
    assert data["resource_type"] == "ferry"


@pytest.mark.asyncio
async def test_booking_flow_with_overbooking_and_cancellation(test_client, notification_sink):
    """Full flow: materialize, fill the departure, get rejected, cancel, get NotFound."""
    network = await _create_network(test_client, capacity=2)
    departure = await _post(test_client, "/v1/departure/materialize", {
        "schedule_id": network["schedule"]["id"],
        "service_date": SERVICE_DATE.isoformat()
    })
    assert departure["sequence"] == 1
    assert departure["status"] == "SCHEDULED"

    passengers = [await _create_passenger(test_client, f"Traveller {index}") for index in range(4)]
    for passenger in passengers[:2]:
        await _post(test_client, "/v1/booking/attach", {
            "departure_id": departure["id"],
            "traveling_entity_id": passenger["id"]
        })

    rejected = await _post(test_client, "/v1/booking/attach", {
        "departure_id": departure["id"],
        "traveling_entity_id": passengers[2]["id"]
    }, expected_status=409)
    assert rejected["code"] == "OVERBOOKED"

    cancelled = await _post(test_client, "/v1/departure/cancel-by-id", {"departure_id": departure["id"]})
    assert [item["id"] for item in cancelled["items"]] == [departure["id"]]
    assert cancelled["items"][0]["status"] == "CANCELLED"
    assert cancelled["items"][0]["booked_count"] == 0

    await _post(test_client, "/v1/booking/attach", {
        "departure_id": departure["id"],
        "traveling_entity_id": passengers[3]["id"]
    }, expected_status=404)

    events = notification_sink.of_type(DepartureEventType.CANCELLED)
    assert len(events) == 1
    assert {str(entity_id) for entity_id in events[0].traveling_entity_ids} == {
        passengers[0]["id"], passengers[1]["id"]
    }


@pytest.mark.asyncio
async def test_delay_by_sequence_endpoint(test_client, notification_sink):
    """Delaying by ferry, date and sequence works before anything was materialized."""
    network = await _create_network(test_client)

    delayed = await _post(test_client, "/v1/departure/delay", {
        "ferry_id": network["ferry"]["id"],
        "service_date": SERVICE_DATE.isoformat(),
        "sequence": 1,
        "delay_minutes": 25
    })

    assert delayed["status"] == "DELAYED"
    assert delayed["delay_minutes"] == 25
    assert delayed["departs_at"].startswith(f"{SERVICE_DATE.isoformat()}T08:55")
    assert len(notification_sink.of_type(DepartureEventType.DELAYED)) == 1

    route = await _post(test_client, "/v1/route/get", {"route_id": network["route"]["id"]})
    assert route["statistics"]["departures_delayed"] == 1
    assert route["statistics"]["delay_minutes_total"] == 25


@pytest.mark.asyncio
async def test_delay_rejects_non_positive_minutes(test_client):
    network = await _create_network(test_client)

    data = await _post(test_client, "/v1/departure/delay", {
        "ferry_id": network["ferry"]["id"],
        "service_date": SERVICE_DATE.isoformat(),
        "sequence": 1,
        "delay_minutes": 0
    }, expected_status=400)

    assert data["title"] == "Validation Error"


@pytest.mark.asyncio
async def test_delay_rejects_oversized_minutes(test_client):
    """A delay beyond a week is refused at the request boundary on both delay endpoints."""
    network = await _create_network(test_client)
    departure = await _post(test_client, "/v1/departure/materialize", {
        "schedule_id": network["schedule"]["id"],
        "service_date": SERVICE_DATE.isoformat()
    })

    by_id = await _post(test_client, "/v1/departure/delay-by-id", {
        "departure_id": departure["id"],
        "delay_minutes": 10 ** 12
    }, expected_status=422)
    by_sequence = await _post(test_client, "/v1/departure/delay", {
        "ferry_id": network["ferry"]["id"],
        "service_date": SERVICE_DATE.isoformat(),
        "sequence": 1,
        "delay_minutes": 10 ** 12
    }, expected_status=422)

    assert {violation["path"] for violation in by_id["violations"]} == {"body.delay_minutes"}
    assert {violation["path"] for violation in by_sequence["violations"]} == {"body.delay_minutes"}
    unchanged = await _post(test_client, "/v1/departure/get", {"departure_id": departure["id"]})
    assert unchanged["delay_minutes"] == 0


@pytest.mark.asyncio
async def test_cancel_ferry_day_endpoint(test_client):
    network = await _create_network(test_client)

    cancelled = await _post(test_client, "/v1/departure/cancel", {
        "ferry_id": network["ferry"]["id"],
        "service_date": SERVICE_DATE.isoformat()
    })
    assert len(cancelled["items"]) == 1

    await _post(test_client, "/v1/departure/cancel", {
        "ferry_id": network["ferry"]["id"],
        "service_date": SERVICE_DATE.isoformat()
    }, expected_status=404)


@pytest.mark.asyncio
async def test_departures_for_date_endpoint(test_client):
    network = await _create_network(test_client)

    await _post(test_client, "/v1/departure/for-date", {"service_date": SERVICE_DATE.isoformat()}, expected_status=404)
    empty = await _post(test_client, "/v1/departure/for-date", {
        "service_date": SERVICE_DATE.isoformat(),
        "allow_empty": True
    })
    assert empty["items"] == []

    await _post(test_client, "/v1/departure/materialize-range", {
        "schedule_id": network["schedule"]["id"],
        "date_from": SERVICE_DATE.isoformat(),
        "date_to": (SERVICE_DATE + timedelta(days=2)).isoformat()
    })
    listed = await _post(test_client, "/v1/departure/for-date", {"service_date": SERVICE_DATE.isoformat()})
    assert len(listed["items"]) == 1


@pytest.mark.asyncio
async def test_update_bookings_endpoint(test_client):
    network = await _create_network(test_client)
    departure = await _post(test_client, "/v1/departure/materialize", {
        "schedule_id": network["schedule"]["id"],
        "service_date": SERVICE_DATE.isoformat()
    })
    first = await _create_passenger(test_client, "Anna")
    second = await _create_passenger(test_client, "Bent")

    result = await _post(test_client, "/v1/booking/update", {
        "departure_id": departure["id"],
        "attach": [first["id"], second["id"]]
    })
    assert result["departure"]["booked_count"] == 2
    assert {booking["traveling_entity_id"] for booking in result["bookings"]} == {first["id"], second["id"]}

    result = await _post(test_client, "/v1/booking/update", {
        "departure_id": departure["id"],
        "detach": [first["id"]]
    })
    assert result["departure"]["booked_count"] == 1

    listed = await _post(test_client, "/v1/booking/list", {"departure_id": departure["id"], "active_only": False})
    assert len(listed["bookings"]) == 2


@pytest.mark.asyncio
async def test_capacity_update_endpoint(test_client):
    network = await _create_network(test_client)

    ferry = await _post(test_client, "/v1/ferry/capacity", {
        "ferry_id": network["ferry"]["id"],
        "capacity": 10,
        "reason": "Refit completed"
    })
    assert ferry["capacity"] == 10

    history = await _post(test_client, "/v1/ferry/capacity-history", {"ferry_id": network["ferry"]["id"]})
    assert len(history) == 1
    assert history[0]["capacity_before"] == 2
    assert history[0]["actor"] == "operations"


@pytest.mark.asyncio
async def test_delete_scheduled_ferry_conflict(test_client):
    network = await _create_network(test_client)

    data = await _post(test_client, "/v1/ferry/delete", {"ferry_id": network["ferry"]["id"]}, expected_status=409)

    assert data["code"] == "IN_USE"


@pytest.mark.asyncio
async def test_schedule_delete_endpoint(test_client):
    network = await _create_network(test_client)
    await _post(test_client, "/v1/departure/materialize", {
        "schedule_id": network["schedule"]["id"],
        "service_date": SERVICE_DATE.isoformat()
    })

    ack = await _post(test_client, "/v1/schedule/delete", {"schedule_id": network["schedule"]["id"]})
    assert ack["status"] == "deleted"

    await _post(test_client, "/v1/schedule/get", {"schedule_id": network["schedule"]["id"]}, expected_status=404)
    departures = await _post(test_client, "/v1/departure/for-date", {"service_date": SERVICE_DATE.isoformat()})
    assert departures["items"][0]["status"] == "CANCELLED"
    assert departures["items"][0]["schedule_id"] is None


@pytest.mark.asyncio
async def test_traveling_entity_endpoints(test_client):
    vehicle = await _post(test_client, "/v1/traveling-entity/create", {
        "kind": "VEHICLE",
        "name": "Scania R450",
        "reference": "DK 44 123"
    })

    updated = await _post(test_client, "/v1/traveling-entity/update", {
        "traveling_entity_id": vehicle["id"],
        "description": "Refrigerated trailer"
    })
    assert updated["description"] == "Refrigerated trailer"
    assert updated["reference"] == "DK 44 123"

    listed = await _post(test_client, "/v1/traveling-entity/list", {})
    assert [item["id"] for item in listed["items"]] == [vehicle["id"]]

    await _post(test_client, "/v1/traveling-entity/delete", {"traveling_entity_id": vehicle["id"]})
    await _post(test_client, "/v1/traveling-entity/get", {"traveling_entity_id": vehicle["id"]}, expected_status=404)


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client):
    """Test metrics endpoint."""
    response = await test_client.get("/metrics")
    assert response.status_code == 200
    assert "departures_materialized_total" in response.text
