"""Schedule-related Pydantic schemas."""

from datetime import date, time
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


def _check_weekdays(v: list[int] | None) -> list[int] | None:
    if v is None:
        return v
    if any(day < 0 or day > 6 for day in v):
        raise ValueError("Weekdays must be between 0 (Monday) and 6 (Sunday)")
    if len(set(v)) != len(v):
        raise ValueError("Weekdays must not repeat")
    return sorted(v)


class CreateScheduleRequest(BaseModel):
    """Request schema for creating a schedule."""

    id: UUID | None = Field(None, description="Caller-assigned schedule ID; generated when omitted")
    route_id: UUID = Field(..., description="Route sailed")
    ferry_id: UUID = Field(..., description="Ferry operating the schedule")
    weekdays: list[int] = Field(..., min_length=1, max_length=7, description="Weekdays sailed, 0=Monday")
    departure_time: time = Field(..., description="Time of day the ferry leaves")
    duration_minutes: int = Field(..., ge=1, le=24 * 60, description="Sailing time in minutes")
    valid_from: date = Field(..., description="First date of the validity window")
    valid_until: date = Field(..., description="Last date of the validity window")
    upstream_schedule_id: UUID | None = Field(None, description="Previous leg this schedule connects from")

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, v: list[int]) -> list[int]:
        return _check_weekdays(v)

    @model_validator(mode="after")
    def validate_window(self) -> "CreateScheduleRequest":
        if self.valid_until < self.valid_from:
            raise ValueError("valid_until must not be before valid_from")
        return self


class UpdateScheduleRequest(BaseModel):
    """
    Request schema for updating a schedule.

    Only the fields present in the request are changed. Sending
    ``upstream_schedule_id: null`` explicitly removes the upstream link.
    """

    schedule_id: UUID = Field(..., description="Schedule to update")
    route_id: UUID | None = None
    ferry_id: UUID | None = None
    weekdays: list[int] | None = Field(None, min_length=1, max_length=7)
    departure_time: time | None = None
    duration_minutes: int | None = Field(None, ge=1, le=24 * 60)
    valid_from: date | None = None
    valid_until: date | None = None
    upstream_schedule_id: UUID | None = None

    @field_validator("weekdays")
    @classmethod
    def validate_weekdays(cls, v: list[int] | None) -> list[int] | None:
        return _check_weekdays(v)


class GetScheduleRequest(BaseModel):
    """Request schema addressing one schedule."""

    schedule_id: UUID = Field(..., description="Schedule ID")


class SchedulesForDateRequest(BaseModel):
    """Request schema for schedules sailing on a date."""

    service_date: date = Field(..., description="Date to look up")
    allow_empty: bool = Field(False, description="Return an empty list instead of 404 when nothing sails")


class Schedule(BaseModel):
    """Schedule response schema."""

    id: str = Field(..., description="Unique schedule ID")
    route_id: str = Field(..., description="Route sailed")
    ferry_id: str = Field(..., description="Ferry operating the schedule")
    weekdays: list[int] = Field(..., description="Weekdays sailed, 0=Monday")
    departure_time: time = Field(..., description="Time of day the ferry leaves")
    duration_minutes: int = Field(..., description="Sailing time in minutes")
    valid_from: date = Field(..., description="First date of the validity window")
    valid_until: date = Field(..., description="Last date of the validity window")
    upstream_schedule_id: str | None = Field(None, description="Previous leg this schedule connects from")


class ListSchedulesResponse(BaseModel):
    items: list[Schedule] = Field(..., description="Schedules")
