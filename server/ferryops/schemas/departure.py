"""Departure-related Pydantic schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ..models.departure import DepartureStatus

# Longest delay accepted in one operation
MAX_DELAY_MINUTES = 7 * 24 * 60


class MaterializeDepartureRequest(BaseModel):
    """Request schema for creating the departure of a schedule on a date."""

    schedule_id: UUID = Field(..., description="Schedule to materialize")
    service_date: date = Field(..., description="Date of the sailing")


class MaterializeRangeRequest(BaseModel):
    """Request schema for materializing every sailing of a schedule in a date range."""

    schedule_id: UUID = Field(..., description="Schedule to materialize")
    date_from: date = Field(..., description="First date (inclusive)")
    date_to: date = Field(..., description="Last date (inclusive)")

    @model_validator(mode="after")
    def validate_range(self) -> "MaterializeRangeRequest":
        if self.date_to < self.date_from:
            raise ValueError("date_to must not be before date_from")
        if (self.date_to - self.date_from).days > 366:
            raise ValueError("Range may span at most one year")
        return self


class CreateDepartureRequest(BaseModel):
    """Request schema for an ad-hoc departure outside any schedule."""

    ferry_id: UUID = Field(..., description="Ferry sailing")
    route_id: UUID = Field(..., description="Route sailed")
    departs_at: datetime = Field(..., description="Departure time (ISO 8601)")
    arrives_at: datetime = Field(..., description="Arrival time (ISO 8601)")

    @model_validator(mode="after")
    def validate_times(self) -> "CreateDepartureRequest":
        if self.arrives_at <= self.departs_at:
            raise ValueError("arrives_at must be after departs_at")
        return self


class GetDepartureRequest(BaseModel):
    """Request schema addressing one departure."""

    departure_id: UUID = Field(..., description="Departure ID")


class DeparturesForDateRequest(BaseModel):
    """Request schema for all departures on a date."""

    service_date: date = Field(..., description="Date to look up")
    allow_empty: bool = Field(False, description="Return an empty list instead of 404 when nothing sails")


class DelayDepartureRequest(BaseModel):
    """Request schema for delaying a ferry's n-th departure on a date."""

    ferry_id: UUID = Field(..., description="Ferry sailing")
    service_date: date = Field(..., description="Date of the sailing")
    sequence: int = Field(..., ge=1, description="Ordinal of the ferry's departure on that date")
    delay_minutes: int = Field(
        ..., le=MAX_DELAY_MINUTES, description="Delay to apply, at least one minute and at most seven days"
    )


class DelayDepartureByIdRequest(BaseModel):
    """Request schema for delaying a departure by its ID."""

    departure_id: UUID = Field(..., description="Departure ID")
    delay_minutes: int = Field(
        ..., le=MAX_DELAY_MINUTES, description="Delay to apply, at least one minute and at most seven days"
    )


class CancelDepartureRequest(BaseModel):
    """Request schema for cancelling a ferry's departures on a date."""

    ferry_id: UUID = Field(..., description="Ferry sailing")
    service_date: date = Field(..., description="Date of the sailings")


class CompleteDeparturesRequest(BaseModel):
    """Request schema for closing departures that have already arrived."""

    now: datetime | None = Field(None, description="Reference time; defaults to the server clock")


class Departure(BaseModel):
    """Departure response schema."""

    id: str = Field(..., description="Unique departure ID")
    schedule_id: str | None = Field(None, description="Owning schedule, if any")
    ferry_id: str | None = Field(None, description="Ferry sailing")
    route_id: str | None = Field(None, description="Route sailed")
    upstream_departure_id: str | None = Field(None, description="Previous leg this departure connects from")
    service_date: date = Field(..., description="Date of the sailing")
    sequence: int = Field(..., ge=1, description="Ordinal of the ferry's departure on that date")
    departs_at: datetime = Field(..., description="Departure time (ISO 8601)")
    arrives_at: datetime = Field(..., description="Arrival time (ISO 8601)")
    status: DepartureStatus = Field(..., description="Departure status")
    booked_count: int = Field(..., ge=0, description="Active bookings")
    delay_minutes: int = Field(..., ge=0, description="Accumulated delay in minutes")


class ListDeparturesResponse(BaseModel):
    items: list[Departure] = Field(..., description="Departures")


class CompleteDeparturesResponse(BaseModel):
    completed: int = Field(..., ge=0, description="Departures moved to COMPLETED")
