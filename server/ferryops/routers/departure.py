"""Departure router for departure tracking, delay and cancellation."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db, get_notification_sink
from ..core.exceptions import ProblemDetailsException
from ..core.notifications import NotificationSink
from ..schemas.departure import (
    CancelDepartureRequest,
    CompleteDeparturesRequest,
    CompleteDeparturesResponse,
    CreateDepartureRequest,
    DelayDepartureByIdRequest,
    DelayDepartureRequest,
    Departure,
    DeparturesForDateRequest,
    GetDepartureRequest,
    ListDeparturesResponse,
    MaterializeDepartureRequest,
    MaterializeRangeRequest,
)
from ..services.cascade_service import CascadeService
from ..services.departure_service import DepartureService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/departure", tags=["departure"])

DB_DEPENDENCY = Depends(get_db)
NOTIFICATIONS_DEPENDENCY = Depends(get_notification_sink)


def convert_departure_to_schema(departure_model) -> Departure:
    """Convert departure model to schema."""

    def _optional(value):
        return str(value) if value else None

    return Departure(
        id=str(departure_model.id),
        schedule_id=_optional(departure_model.schedule_id),
        ferry_id=_optional(departure_model.ferry_id),
        route_id=_optional(departure_model.route_id),
        upstream_departure_id=_optional(departure_model.upstream_departure_id),
        service_date=departure_model.service_date,
        sequence=departure_model.sequence,
        departs_at=departure_model.departs_at,
        arrives_at=departure_model.arrives_at,
        status=departure_model.status,
        booked_count=departure_model.booked_count,
        delay_minutes=departure_model.delay_minutes
    )


def _list_response(departures) -> JSONResponse:
    response_data = ListDeparturesResponse(items=[convert_departure_to_schema(d) for d in departures])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/materialize", response_model=Departure)
async def materialize_departure(request: MaterializeDepartureRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """
    Create the departure of a schedule on a date.

    This operation is idempotent: repeating it returns the same departure.
    """
    departure_service = DepartureService(db)

    try:
        departure = await departure_service.materialize(request.schedule_id, request.service_date)
        return JSONResponse(
            status_code=200,
            content=convert_departure_to_schema(departure).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure materialization",
            extra={
                "schedule_id": str(request.schedule_id),
                "service_date": request.service_date.isoformat(),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/materialize-range", response_model=ListDeparturesResponse)
async def materialize_range(request: MaterializeRangeRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Create every departure of a schedule between two dates."""
    departure_service = DepartureService(db)

    try:
        departures = await departure_service.materialize_range(
            request.schedule_id, request.date_from, request.date_to
        )
        return _list_response(departures)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in range materialization",
            extra={"schedule_id": str(request.schedule_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/create", response_model=Departure)
async def create_departure(request: CreateDepartureRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Create an ad-hoc departure outside any schedule."""
    departure_service = DepartureService(db)

    try:
        departure = await departure_service.create_adhoc_departure(request)
        return JSONResponse(
            status_code=200,
            content=convert_departure_to_schema(departure).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in ad-hoc departure creation",
            extra={
                "ferry_id": str(request.ferry_id),
                "departs_at": request.departs_at.isoformat(),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Departure)
async def get_departure(request: GetDepartureRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    departure_service = DepartureService(db)

    try:
        departure = await departure_service.get_departure_by_id_or_raise(request.departure_id)
        return JSONResponse(
            status_code=200,
            content=convert_departure_to_schema(departure).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure retrieval",
            extra={"departure_id": str(request.departure_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/for-date", response_model=ListDeparturesResponse)
async def list_departures_for_date(request: DeparturesForDateRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """
    List every departure on a date.

    Returns 404 when nothing sails unless allow_empty is set.
    """
    departure_service = DepartureService(db)

    try:
        departures = await departure_service.list_for_date(request.service_date, request.allow_empty)
        return _list_response(departures)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in dated departure listing",
            extra={"service_date": request.service_date.isoformat(), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/complete", response_model=CompleteDeparturesResponse)
async def complete_departures(request: CompleteDeparturesRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Mark departures that have already arrived as completed."""
    departure_service = DepartureService(db)

    try:
        completed = await departure_service.complete_elapsed(request.now)
        response_data = CompleteDeparturesResponse(completed=completed)
        return JSONResponse(status_code=200, content=response_data.model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error in departure completion", extra={"error": str(e)}, exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/delay", response_model=Departure)
async def delay_departure(
    request: DelayDepartureRequest,
    db: AsyncSession = DB_DEPENDENCY,
    notifications: NotificationSink = NOTIFICATIONS_DEPENDENCY
) -> JSONResponse:
    """
    Delay a ferry's n-th departure on a date.

    Connecting departures are delayed by the same amount.
    """
    cascade_service = CascadeService(db, notifications=notifications)

    try:
        departure = await cascade_service.delay_ferry_departure(
            request.ferry_id, request.service_date, request.sequence, request.delay_minutes
        )
        return JSONResponse(
            status_code=200,
            content=convert_departure_to_schema(departure).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure delay",
            extra={
                "ferry_id": str(request.ferry_id),
                "service_date": request.service_date.isoformat(),
                "sequence": request.sequence,
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/delay-by-id", response_model=ListDeparturesResponse)
async def delay_departure_by_id(
    request: DelayDepartureByIdRequest,
    db: AsyncSession = DB_DEPENDENCY,
    notifications: NotificationSink = NOTIFICATIONS_DEPENDENCY
) -> JSONResponse:
    """Delay a departure and return every departure the delay reached."""
    cascade_service = CascadeService(db, notifications=notifications)

    try:
        departures = await cascade_service.delay(request.departure_id, request.delay_minutes)
        return _list_response(departures)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure delay",
            extra={"departure_id": str(request.departure_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/cancel", response_model=ListDeparturesResponse)
async def cancel_departures(
    request: CancelDepartureRequest,
    db: AsyncSession = DB_DEPENDENCY,
    notifications: NotificationSink = NOTIFICATIONS_DEPENDENCY
) -> JSONResponse:
    """
    Cancel a ferry's departures on a date.

    Bookings are released and connecting departures are cancelled too.
    """
    cascade_service = CascadeService(db, notifications=notifications)

    try:
        departures = await cascade_service.cancel_ferry_departures(request.ferry_id, request.service_date)
        return _list_response(departures)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure cancellation",
            extra={
                "ferry_id": str(request.ferry_id),
                "service_date": request.service_date.isoformat(),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/cancel-by-id", response_model=ListDeparturesResponse)
async def cancel_departure_by_id(
    request: GetDepartureRequest,
    db: AsyncSession = DB_DEPENDENCY,
    notifications: NotificationSink = NOTIFICATIONS_DEPENDENCY
) -> JSONResponse:
    """Cancel a departure and return every departure the cancellation reached."""
    cascade_service = CascadeService(db, notifications=notifications)

    try:
        departures = await cascade_service.cancel(request.departure_id)
        return _list_response(departures)

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure cancellation",
            extra={"departure_id": str(request.departure_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
