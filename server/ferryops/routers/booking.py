"""Booking router for attaching traveling entities to departures."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.booking import (
    AttachRequest,
    Booking,
    DepartureBookings,
    DetachRequest,
    ListBookingsRequest,
    UpdateDepartureBookingsRequest,
)
from ..services.booking_service import BookingService
from .departure import convert_departure_to_schema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/booking", tags=["booking"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=str(booking_model.id),
        departure_id=str(booking_model.departure_id),
        traveling_entity_id=str(booking_model.traveling_entity_id) if booking_model.traveling_entity_id else None,
        status=booking_model.status,
        created_at=booking_model.created_at,
        released_at=booking_model.released_at
    )


@router.post("/attach", response_model=Booking)
async def attach(request: AttachRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """
    Book a traveling entity onto a departure.

    Fails with 409 OVERBOOKED when the ferry is full.
    """
    booking_service = BookingService(db)

    try:
        booking = await booking_service.attach(request.departure_id, request.traveling_entity_id)
        return JSONResponse(
            status_code=200,
            content=_convert_booking_to_schema(booking).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in attach",
            extra={
                "departure_id": str(request.departure_id),
                "traveling_entity_id": str(request.traveling_entity_id),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/detach", response_model=Booking)
async def detach(request: DetachRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Release a traveling entity's booking on a departure."""
    booking_service = BookingService(db)

    try:
        booking = await booking_service.detach(request.departure_id, request.traveling_entity_id)
        return JSONResponse(
            status_code=200,
            content=_convert_booking_to_schema(booking).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in detach",
            extra={
                "departure_id": str(request.departure_id),
                "traveling_entity_id": str(request.traveling_entity_id),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/update", response_model=DepartureBookings)
async def update_departure(request: UpdateDepartureBookingsRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """
    Detach and attach several traveling entities in one step.

    Either every change is applied or none is.
    """
    booking_service = BookingService(db)

    try:
        departure = await booking_service.update_departure(request)
        bookings = await booking_service.list_bookings(departure.id)

        response_data = DepartureBookings(
            departure=convert_departure_to_schema(departure),
            bookings=[_convert_booking_to_schema(b) for b in bookings]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in departure booking update",
            extra={"departure_id": str(request.departure_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/list", response_model=DepartureBookings)
async def list_bookings(request: ListBookingsRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    booking_service = BookingService(db)

    try:
        bookings = await booking_service.list_bookings(request.departure_id, request.active_only)
        departure = await booking_service.departure_service.get_departure_by_id_or_raise(request.departure_id)

        response_data = DepartureBookings(
            departure=convert_departure_to_schema(departure),
            bookings=[_convert_booking_to_schema(b) for b in bookings]
        )
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in booking listing",
            extra={"departure_id": str(request.departure_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
