"""Traveling entity model definition."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class TravelingEntityKind(str, Enum):
    """What occupies a place on a departure."""
    PASSENGER = "PASSENGER"
    VEHICLE = "VEHICLE"


class TravelingEntity(Base):
    """Passenger or vehicle that can be booked onto departures."""

    __tablename__ = "traveling_entities"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    kind: Mapped[TravelingEntityKind] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)  # passport no. or licence plate
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("length(name) > 0", name="ck_traveling_entity_name_not_empty"),
        CheckConstraint("kind IN ('PASSENGER', 'VEHICLE')", name="ck_traveling_entity_kind"),
    )

    def __repr__(self) -> str:
        return f"<TravelingEntity(id={self.id}, kind={self.kind}, name='{self.name}')>"
