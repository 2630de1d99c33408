"""Traveling entity router for passenger and vehicle records."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db
from ..core.exceptions import ProblemDetailsException
from ..schemas.common import Acknowledgement
from ..schemas.traveling_entity import (
    CreateTravelingEntityRequest,
    GetTravelingEntityRequest,
    ListTravelingEntitiesResponse,
    TravelingEntity,
    UpdateTravelingEntityRequest,
)
from ..services.traveling_entity_service import TravelingEntityService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/traveling-entity", tags=["traveling-entity"])

DB_DEPENDENCY = Depends(get_db)


def _convert_entity_to_schema(entity_model) -> TravelingEntity:
    return TravelingEntity(
        id=str(entity_model.id),
        kind=entity_model.kind,
        name=entity_model.name,
        reference=entity_model.reference,
        description=entity_model.description
    )


@router.post("/create", response_model=TravelingEntity)
async def create_traveling_entity(
    request: CreateTravelingEntityRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Register a passenger or vehicle."""
    service = TravelingEntityService(db)

    try:
        entity = await service.add_traveling_entity(request)
        return JSONResponse(status_code=200, content=_convert_entity_to_schema(entity).model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in traveling entity creation",
            extra={"kind": request.kind, "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=TravelingEntity)
async def get_traveling_entity(request: GetTravelingEntityRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    service = TravelingEntityService(db)

    try:
        entity = await service.get_traveling_entity_by_id_or_raise(request.traveling_entity_id)
        return JSONResponse(status_code=200, content=_convert_entity_to_schema(entity).model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in traveling entity retrieval",
            extra={"traveling_entity_id": str(request.traveling_entity_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/list", response_model=ListTravelingEntitiesResponse)
async def list_traveling_entities(db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    service = TravelingEntityService(db)

    try:
        entities = await service.list_traveling_entities()
        response_data = ListTravelingEntitiesResponse(items=[_convert_entity_to_schema(e) for e in entities])
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error in traveling entity listing", extra={"error": str(e)}, exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/update", response_model=TravelingEntity)
async def update_traveling_entity(
    request: UpdateTravelingEntityRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    service = TravelingEntityService(db)

    try:
        entity = await service.update_traveling_entity(request)
        return JSONResponse(status_code=200, content=_convert_entity_to_schema(entity).model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in traveling entity update",
            extra={"traveling_entity_id": str(request.traveling_entity_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/delete", response_model=Acknowledgement)
async def delete_traveling_entity(
    request: GetTravelingEntityRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """
    Delete a passenger or vehicle.

    Fails with 409 IN_USE while the entity is booked on an open departure.
    """
    service = TravelingEntityService(db)

    try:
        await service.delete_traveling_entity(request.traveling_entity_id)
        response_data = Acknowledgement(id=str(request.traveling_entity_id), status="deleted")
        return JSONResponse(status_code=200, content=response_data.model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in traveling entity deletion",
            extra={"traveling_entity_id": str(request.traveling_entity_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
