"""Ferry-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.ferry import FerryStatus


class CreateFerryRequest(BaseModel):
    """Request schema for registering a ferry."""

    id: UUID | None = Field(None, description="Caller-assigned ferry ID; generated when omitted")
    name: str = Field(..., min_length=1, max_length=255, description="Ferry name")
    capacity: int = Field(..., ge=1, le=10000, description="Places available per departure")


class GetFerryRequest(BaseModel):
    """Request schema addressing one ferry."""

    ferry_id: UUID = Field(..., description="Ferry ID")


class UpdateCapacityRequest(BaseModel):
    """Request schema for changing a ferry's capacity."""

    ferry_id: UUID = Field(..., description="Ferry ID")
    capacity: int = Field(..., ge=1, le=10000, description="New capacity")
    reason: str = Field(..., min_length=1, max_length=500, description="Reason for the change")
    actor: str = Field("operations", min_length=1, max_length=255, description="Who requested the change")


class Ferry(BaseModel):
    """Ferry response schema."""

    id: str = Field(..., description="Unique ferry ID")
    name: str = Field(..., description="Ferry name")
    capacity: int = Field(..., ge=1, description="Places available per departure")
    status: FerryStatus = Field(..., description="Ferry status")

    class Config:
        from_attributes = True


class ListFerriesResponse(BaseModel):
    """Response schema for the ferry listing."""

    items: list[Ferry] = Field(..., description="Registered ferries")


class CapacityAdjustment(BaseModel):
    """Capacity adjustment response schema."""

    id: str = Field(..., description="Unique adjustment ID")
    ferry_id: str = Field(..., description="Adjusted ferry")
    capacity_before: int = Field(..., description="Capacity before the change")
    capacity_after: int = Field(..., description="Capacity after the change")
    max_booked: int = Field(..., description="Highest booked count on an active departure at edit time")
    reason: str = Field(..., description="Reason for the change")
    actor: str = Field(..., description="User who made the change")
    created_at: datetime = Field(..., description="Adjustment time (ISO 8601)")
