"""Ferry router for fleet management operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import Acknowledgement
from ..schemas.ferry import (
    CapacityAdjustment,
    CreateFerryRequest,
    Ferry,
    GetFerryRequest,
    ListFerriesResponse,
    UpdateCapacityRequest,
)
from ..services.ferry_service import FerryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/ferry", tags=["ferry"])

DB_DEPENDENCY = Depends(get_db)


def _convert_ferry_to_schema(ferry_model) -> Ferry:
    """Convert ferry model to schema."""
    return Ferry(
        id=str(ferry_model.id),
        name=ferry_model.name,
        capacity=ferry_model.capacity,
        status=ferry_model.status
    )


def _convert_adjustment_to_schema(adjustment_model) -> CapacityAdjustment:
    return CapacityAdjustment(
        id=str(adjustment_model.id),
        ferry_id=str(adjustment_model.ferry_id),
        capacity_before=adjustment_model.capacity_before,
        capacity_after=adjustment_model.capacity_after,
        max_booked=adjustment_model.max_booked,
        reason=adjustment_model.reason,
        actor=adjustment_model.actor,
        created_at=adjustment_model.created_at
    )


@router.post("/create", response_model=Ferry)
async def create_ferry(request: CreateFerryRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Register a new ferry."""
    ferry_service = FerryService(db)

    try:
        ferry = await ferry_service.add_ferry(request)
        return JSONResponse(
            status_code=200,
            content=_convert_ferry_to_schema(ferry).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in ferry creation",
            extra={"ferry_name": request.name, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Ferry)
async def get_ferry(request: GetFerryRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Get a ferry by ID."""
    ferry_service = FerryService(db)

    try:
        ferry = await ferry_service.get_ferry_by_id_or_raise(request.ferry_id)
        return JSONResponse(
            status_code=200,
            content=_convert_ferry_to_schema(ferry).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in ferry retrieval",
            extra={"ferry_id": str(request.ferry_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/list", response_model=ListFerriesResponse)
async def list_ferries(db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """List every registered ferry."""
    ferry_service = FerryService(db)

    try:
        ferries = await ferry_service.list_ferries()
        response_data = ListFerriesResponse(items=[_convert_ferry_to_schema(f) for f in ferries])
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error in ferry listing", extra={"error": str(e)}, exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/delete", response_model=Acknowledgement)
async def delete_ferry(request: GetFerryRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """
    Delete a ferry.

    Fails with 409 IN_USE while schedules or running departures reference it.
    """
    ferry_service = FerryService(db)

    try:
        await ferry_service.delete_ferry(request.ferry_id)
        response_data = Acknowledgement(id=str(request.ferry_id), status="deleted")
        return JSONResponse(status_code=200, content=response_data.model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in ferry deletion",
            extra={"ferry_id": str(request.ferry_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/retire", response_model=Ferry)
async def retire_ferry(request: GetFerryRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Take a ferry out of service."""
    ferry_service = FerryService(db)

    try:
        ferry = await ferry_service.retire_ferry(request.ferry_id)
        return JSONResponse(
            status_code=200,
            content=_convert_ferry_to_schema(ferry).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in ferry retirement",
            extra={"ferry_id": str(request.ferry_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/capacity", response_model=Ferry)
async def update_capacity(request: UpdateCapacityRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """
    Change a ferry's capacity.

    Fails with 409 CAPACITY_BELOW_BOOKED if an open departure already has more
    bookings than the new capacity.
    """
    ferry_service = FerryService(db)

    try:
        ferry = await ferry_service.update_capacity(request)
        return JSONResponse(
            status_code=200,
            content=_convert_ferry_to_schema(ferry).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in capacity update",
            extra={"ferry_id": str(request.ferry_id), "capacity": request.capacity, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/capacity-history", response_model=list[CapacityAdjustment])
async def capacity_history(request: GetFerryRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Return the capacity audit trail of a ferry."""
    ferry_service = FerryService(db)

    try:
        adjustments = await ferry_service.list_capacity_adjustments(request.ferry_id)
        return JSONResponse(
            status_code=200,
            content=[_convert_adjustment_to_schema(a).model_dump(mode="json") for a in adjustments]
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in capacity history retrieval",
            extra={"ferry_id": str(request.ferry_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
