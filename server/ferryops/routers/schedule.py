"""Schedule router for timetable operations."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.dependencies import get_db, get_notification_sink
from ..core.exceptions import ProblemDetailsException
from ..core.notifications import NotificationSink
from ..schemas.common import Acknowledgement
from ..schemas.schedule import (
    CreateScheduleRequest,
    GetScheduleRequest,
    ListSchedulesResponse,
    Schedule,
    SchedulesForDateRequest,
    UpdateScheduleRequest,
)
from ..services.schedule_service import ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/schedule", tags=["schedule"])

DB_DEPENDENCY = Depends(get_db)
NOTIFICATIONS_DEPENDENCY = Depends(get_notification_sink)


def _convert_schedule_to_schema(schedule_model) -> Schedule:
    """Convert schedule model to schema."""
    return Schedule(
        id=str(schedule_model.id),
        route_id=str(schedule_model.route_id),
        ferry_id=str(schedule_model.ferry_id),
        weekdays=schedule_model.weekday_list,
        departure_time=schedule_model.departure_time,
        duration_minutes=schedule_model.duration_minutes,
        valid_from=schedule_model.valid_from,
        valid_until=schedule_model.valid_until,
        upstream_schedule_id=str(schedule_model.upstream_schedule_id) if schedule_model.upstream_schedule_id else None
    )


@router.post("/create", response_model=Schedule)
async def create_schedule(request: CreateScheduleRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """Create a schedule for a route and ferry."""
    schedule_service = ScheduleService(db)

    try:
        schedule = await schedule_service.add_schedule(request)
        return JSONResponse(
            status_code=200,
            content=_convert_schedule_to_schema(schedule).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in schedule creation",
            extra={"route_id": str(request.route_id), "ferry_id": str(request.ferry_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/get", response_model=Schedule)
async def get_schedule(request: GetScheduleRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    schedule_service = ScheduleService(db)

    try:
        schedule = await schedule_service.get_schedule_by_id_or_raise(request.schedule_id)
        return JSONResponse(
            status_code=200,
            content=_convert_schedule_to_schema(schedule).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in schedule retrieval",
            extra={"schedule_id": str(request.schedule_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/update", response_model=Schedule)
async def update_schedule(request: UpdateScheduleRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """
    Update a schedule.

    Only the fields present in the body change; all of them are stored together or not at all.
    """
    schedule_service = ScheduleService(db)

    try:
        schedule = await schedule_service.update_schedule(request)
        return JSONResponse(
            status_code=200,
            content=_convert_schedule_to_schema(schedule).model_dump(mode="json")
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in schedule update",
            extra={"schedule_id": str(request.schedule_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/delete", response_model=Acknowledgement)
async def delete_schedule(
    request: GetScheduleRequest,
    db: AsyncSession = DB_DEPENDENCY,
    notifications: NotificationSink = NOTIFICATIONS_DEPENDENCY
) -> JSONResponse:
    """
    Delete a schedule.

    Departures of the schedule that have not started yet are cancelled.
    """
    schedule_service = ScheduleService(db, notifications=notifications)

    try:
        await schedule_service.delete_schedule(request.schedule_id)
        response_data = Acknowledgement(id=str(request.schedule_id), status="deleted")
        return JSONResponse(status_code=200, content=response_data.model_dump())

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in schedule deletion",
            extra={"schedule_id": str(request.schedule_id), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/list", response_model=ListSchedulesResponse)
async def list_schedules(db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    schedule_service = ScheduleService(db)

    try:
        schedules = await schedule_service.list_schedules()
        response_data = ListSchedulesResponse(items=[_convert_schedule_to_schema(s) for s in schedules])
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error("Unexpected error in schedule listing", extra={"error": str(e)}, exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error") from e


@router.post("/for-date", response_model=ListSchedulesResponse)
async def list_schedules_for_date(request: SchedulesForDateRequest, db: AsyncSession = DB_DEPENDENCY) -> JSONResponse:
    """
    List the schedules sailing on a date.

    Returns 404 when nothing sails unless allow_empty is set.
    """
    schedule_service = ScheduleService(db)

    try:
        schedules = await schedule_service.list_schedules_for_date(request.service_date, request.allow_empty)
        response_data = ListSchedulesResponse(items=[_convert_schedule_to_schema(s) for s in schedules])
        return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in dated schedule listing",
            extra={"service_date": request.service_date.isoformat(), "error": str(e)},
            exc_info=True
        )
        raise HTTPException(status_code=500, detail="Internal server error") from e
