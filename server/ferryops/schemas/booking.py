"""Booking-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from ..models.booking import BookingStatus
from .departure import Departure


class AttachRequest(BaseModel):
    """Request schema for booking a traveling entity onto a departure."""

    departure_id: UUID = Field(..., description="Departure to book")
    traveling_entity_id: UUID = Field(..., description="Passenger or vehicle to book")


class DetachRequest(BaseModel):
    """Request schema for releasing a traveling entity's booking."""

    departure_id: UUID = Field(..., description="Departure booked")
    traveling_entity_id: UUID = Field(..., description="Passenger or vehicle booked")


class UpdateDepartureBookingsRequest(BaseModel):
    """Request schema for changing a departure's booking set in one step."""

    departure_id: UUID = Field(..., description="Departure to update")
    attach: list[UUID] = Field(default_factory=list, description="Entities to book")
    detach: list[UUID] = Field(default_factory=list, description="Entities to release")

    @model_validator(mode="after")
    def validate_sets(self) -> "UpdateDepartureBookingsRequest":
        if len(set(self.attach)) != len(self.attach) or len(set(self.detach)) != len(self.detach):
            raise ValueError("Entity IDs must not repeat within attach or detach")
        if set(self.attach) & set(self.detach):
            raise ValueError("An entity cannot be attached and detached in the same update")
        return self


class ListBookingsRequest(BaseModel):
    """Request schema for the bookings of a departure."""

    departure_id: UUID = Field(..., description="Departure ID")
    active_only: bool = Field(True, description="Only return active bookings")


class Booking(BaseModel):
    """Booking response schema."""

    id: str = Field(..., description="Unique booking ID")
    departure_id: str = Field(..., description="Departure booked")
    traveling_entity_id: str | None = Field(None, description="Passenger or vehicle booked")
    status: BookingStatus = Field(..., description="Booking status")
    created_at: datetime = Field(..., description="Booking time (ISO 8601)")
    released_at: datetime | None = Field(None, description="Release time (ISO 8601)")


class DepartureBookings(BaseModel):
    """Departure together with its bookings."""

    departure: Departure = Field(..., description="Departure after the operation")
    bookings: list[Booking] = Field(..., description="Bookings of the departure")
