"""Booking model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Index, String, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .departure import Departure


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    ACTIVE = "ACTIVE"
    RELEASED = "RELEASED"


class Booking(Base):
    """Association between a departure and a traveling entity occupying one place on it."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign key to departure
    departure_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("departures.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Foreign key to traveling entity; cleared when the entity is deleted
    traveling_entity_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("traveling_entities.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.ACTIVE,
        index=True
    )
    released_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    # At most one active booking per (departure, entity)
    __table_args__ = (
        Index(
            "uq_booking_active_departure_entity",
            "departure_id",
            "traveling_entity_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    # Relationships
    departure: Mapped["Departure"] = relationship("Departure", back_populates="bookings")

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, departure_id={self.departure_id}, "
            f"traveling_entity_id={self.traveling_entity_id}, status={self.status})>"
        )
