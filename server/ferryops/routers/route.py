"""Route router for harbour and route catalog operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import Acknowledgement, Money
from ..schemas.route import (
    CreateHarbourRequest,
    CreateRouteRequest,
    GetRouteRequest,
    Harbour,
    ListHarboursResponse,
    ListRoutesResponse,
    Route,
    RouteStatistics,
    UpdatePriceRequest,
)
from ..services.route_service import RouteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/route", tags=["route"])

DB_DEPENDENCY = Depends(get_db)


def _convert_harbour_to_schema(harbour_model) -> Harbour:
    return Harbour(id=str(harbour_model.id), name=harbour_model.name)


def _convert_route_to_schema(route_model) -> Route:
    """Convert route model to schema with Money conversion."""
    return Route(
        id=str(route_model.id),
        origin_harbour_id=str(route_model.origin_harbour_id),
        destination_harbour_id=str(route_model.destination_harbour_id),
        price=Money(
            amount=route_model.price_amount,
            currency=route_model.price_currency
        ),
        statistics=RouteStatistics(
            departures_cancelled=route_model.departures_cancelled,
            departures_delayed=route_model.departures_delayed,
            delay_minutes_total=route_model.delay_minutes_total
        )
    )


@router.post("/harbour/create", response_model=Harbour)
async def create_harbour(request: CreateHarbourRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Register a harbour."""
    route_service = RouteService(db)

    try:
        harbour = await route_service.add_harbour(request)
        return JSONResponse(status_code=200, content=_convert_harbour_to_schema(harbour).model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in harbour creation",
            extra={"harbour_name": request.name, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/harbour/list", response_model=ListHarboursResponse)
async def list_harbours(db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    route_service = RouteService(db)

    try:
        harbours = await route_service.list_harbours()
        response_data = ListHarboursResponse(items=[_convert_harbour_to_schema(h) for h in harbours])
        return JSONResponse(status_code=200, content=response_data.model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error in harbour listing", extra={"error": str(e)}, exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/create", response_model=Route)
async def create_route(request: CreateRouteRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Create a route between two harbours."""
    route_service = RouteService(db)

    try:
        route = await route_service.add_route(request)
        return JSONResponse(status_code=200, content=_convert_route_to_schema(route).model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in route creation",
            extra={
                "origin_harbour_id": str(request.origin_harbour_id),
                "destination_harbour_id": str(request.destination_harbour_id),
                "error": str(e)
            },
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Route)
async def get_route(request: GetRouteRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    route_service = RouteService(db)

    try:
        route = await route_service.get_route_by_id_or_raise(request.route_id)
        return JSONResponse(status_code=200, content=_convert_route_to_schema(route).model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in route retrieval",
            extra={"route_id": str(request.route_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/list", response_model=ListRoutesResponse)
async def list_routes(db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    route_service = RouteService(db)

    try:
        routes = await route_service.list_routes()
        response_data = ListRoutesResponse(items=[_convert_route_to_schema(r) for r in routes])
        return JSONResponse(status_code=200, content=response_data.model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error in route listing", extra={"error": str(e)}, exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/delete", response_model=Acknowledgement)
async def delete_route(request: GetRouteRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """
    Delete a route.

    Fails with 409 IN_USE while schedules or running departures use it.
    """
    route_service = RouteService(db)

    try:
        await route_service.delete_route(request.route_id)
        response_data = Acknowledgement(id=str(request.route_id), status="deleted")
        return JSONResponse(status_code=200, content=response_data.model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in route deletion",
            extra={"route_id": str(request.route_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/price", response_model=Route)
async def update_price(request: UpdatePriceRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Change the base price of a route."""
    route_service = RouteService(db)

    try:
        route = await route_service.update_price(request)
        return JSONResponse(status_code=200, content=_convert_route_to_schema(route).model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in price update",
            extra={"route_id": str(request.route_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
