"""Departure model definition."""

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .booking import Booking


class DepartureStatus(str, Enum):
    """Departure status enumeration."""
    SCHEDULED = "SCHEDULED"
    DELAYED = "DELAYED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({DepartureStatus.COMPLETED, DepartureStatus.CANCELLED})
OPEN_STATUSES = frozenset({DepartureStatus.SCHEDULED, DepartureStatus.DELAYED})


class Departure(Base):
    """Departure entity representing one concrete sailing of a ferry."""

    __tablename__ = "departures"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Owning schedule; NULL for ad-hoc sailings and after the schedule is deleted
    schedule_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("schedules.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Ferry and route are kept nullable so history survives their deletion
    ferry_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("ferries.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    route_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("routes.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Previous leg whose arrival this departure waits for
    upstream_departure_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("departures.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Departure details
    service_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    departs_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    arrives_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[DepartureStatus] = mapped_column(
        String(20),
        nullable=False,
        default=DepartureStatus.SCHEDULED,
        index=True
    )
    booked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delay_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

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
        UniqueConstraint("schedule_id", "service_date", name="uq_departure_schedule_date"),
        UniqueConstraint("ferry_id", "service_date", "sequence", name="uq_departure_ferry_date_sequence"),
        CheckConstraint("booked_count >= 0", name="ck_departure_booked_non_negative"),
        CheckConstraint("delay_minutes >= 0", name="ck_departure_delay_non_negative"),
        CheckConstraint("sequence > 0", name="ck_departure_sequence_positive"),
        CheckConstraint("arrives_at > departs_at", name="ck_departure_arrival_after_departure"),
    )

    # Relationships
    bookings: Mapped[list["Booking"]] = relationship(
        "Booking",
        back_populates="departure",
        cascade="all, delete-orphan"
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_closed(self, now: datetime) -> bool:
        """Cancelled, completed, or already arrived even if not yet marked COMPLETED."""
        return self.is_terminal or self.arrives_at <= now

    def __repr__(self) -> str:
        return (
            f"<Departure(id={self.id}, ferry_id={self.ferry_id}, date={self.service_date}, "
            f"seq={self.sequence}, status={self.status}, booked={self.booked_count})>"
        )
