"""Ferry model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .capacity import CapacityAdjustment


class FerryStatus(str, Enum):
    """Ferry status enumeration."""
    ACTIVE = "ACTIVE"
    RETIRED = "RETIRED"


class Ferry(Base):
    """Ferry entity holding identity and passenger/vehicle capacity."""

    __tablename__ = "ferries"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Ferry details
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[FerryStatus] = mapped_column(
        String(20),
        nullable=False,
        default=FerryStatus.ACTIVE,
        index=True
    )

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

    # Constraints
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_ferry_capacity_positive"),
        CheckConstraint("length(name) > 0", name="ck_ferry_name_not_empty"),
    )

    # Relationships
    capacity_adjustments: Mapped[list["CapacityAdjustment"]] = relationship(
        "CapacityAdjustment",
        back_populates="ferry",
        cascade="all, delete-orphan"
    )

    @property
    def is_active(self) -> bool:
        return self.status == FerryStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Ferry(id={self.id}, name='{self.name}', capacity={self.capacity}, status={self.status})>"
