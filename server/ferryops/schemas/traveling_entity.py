"""Traveling entity Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from ..models.traveling_entity import TravelingEntityKind


class CreateTravelingEntityRequest(BaseModel):
    """Request schema for registering a passenger or vehicle."""

    id: UUID | None = Field(None, description="Caller-assigned ID; generated when omitted")
    kind: TravelingEntityKind = Field(..., description="PASSENGER or VEHICLE")
    name: str = Field(..., min_length=1, max_length=255, description="Passenger name or vehicle description")
    reference: str | None = Field(None, max_length=64, description="Document number or licence plate")
    description: str | None = Field(None, max_length=2000, description="Free-form notes")


class UpdateTravelingEntityRequest(BaseModel):
    """Request schema for updating a traveling entity; omitted fields are kept."""

    traveling_entity_id: UUID = Field(..., description="Entity to update")
    kind: TravelingEntityKind | None = None
    name: str | None = Field(None, min_length=1, max_length=255)
    reference: str | None = Field(None, max_length=64)
    description: str | None = Field(None, max_length=2000)


class GetTravelingEntityRequest(BaseModel):
    traveling_entity_id: UUID = Field(..., description="Entity ID")


class TravelingEntity(BaseModel):
    """Traveling entity response schema."""

    id: str = Field(..., description="Unique entity ID")
    kind: TravelingEntityKind = Field(..., description="PASSENGER or VEHICLE")
    name: str = Field(..., description="Passenger name or vehicle description")
    reference: str | None = Field(None, description="Document number or licence plate")
    description: str | None = Field(None, description="Free-form notes")


class ListTravelingEntitiesResponse(BaseModel):
    items: list[TravelingEntity] = Field(..., description="Registered entities")
