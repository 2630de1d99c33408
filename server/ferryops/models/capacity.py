"""Capacity adjustment model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .ferry import Ferry


class CapacityAdjustment(Base):
    """Audit record for a change of a ferry's capacity."""

    __tablename__ = "capacity_adjustments"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign key to ferry
    ferry_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("ferries.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Adjustment details
    capacity_before: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity_after: Mapped[int] = mapped_column(Integer, nullable=False)
    max_booked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # Highest booked count seen at edit time
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        index=True  # Index for audit queries
    )

    # Constraints
    __table_args__ = (
        CheckConstraint("capacity_before > 0", name="ck_capacity_adjustment_before_positive"),
        CheckConstraint("capacity_after > 0", name="ck_capacity_adjustment_after_positive"),
        CheckConstraint("max_booked <= capacity_after", name="ck_capacity_adjustment_booked_lte_after"),
        CheckConstraint("length(reason) > 0", name="ck_capacity_adjustment_reason_not_empty"),
        CheckConstraint("length(actor) > 0", name="ck_capacity_adjustment_actor_not_empty"),
    )

    # Relationships
    ferry: Mapped["Ferry"] = relationship("Ferry", back_populates="capacity_adjustments")

    def __repr__(self) -> str:
        return (
            f"<CapacityAdjustment(id={self.id}, ferry_id={self.ferry_id}, "
            f"{self.capacity_before}->{self.capacity_after}, actor='{self.actor}')>"
        )
