"""Schedule model definition."""

from datetime import date, datetime, time
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, String, Time, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class Schedule(Base):
    """
    Recurring timetable for one ferry on one route.

    A schedule sails on every weekday listed in ``weekdays`` (0=Monday) inside
    its validity window, leaving at ``departure_time`` and arriving
    ``duration_minutes`` later. A schedule with ``upstream_schedule_id`` is the
    next leg of a multi-leg voyage: it waits for the upstream leg's arrival.
    """

    __tablename__ = "schedules"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign keys
    route_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("routes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    ferry_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("ferries.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    upstream_schedule_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("schedules.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Recurrence rule, stored as comma separated weekday numbers ("0,2,4")
    weekdays: Mapped[str] = mapped_column(String(20), nullable=False)
    departure_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    # Validity window (inclusive)
    valid_from: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    valid_until: Mapped[date] = mapped_column(Date, nullable=False, index=True)

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
        CheckConstraint("duration_minutes > 0", name="ck_schedule_duration_positive"),
        CheckConstraint("valid_until >= valid_from", name="ck_schedule_window_ordered"),
        CheckConstraint("length(weekdays) > 0", name="ck_schedule_weekdays_not_empty"),
        CheckConstraint("upstream_schedule_id IS NULL OR upstream_schedule_id != id", name="ck_schedule_not_own_upstream"),
    )

    @property
    def weekday_list(self) -> list[int]:
        return sorted(int(day) for day in self.weekdays.split(","))

    def runs_on(self, service_date: date) -> bool:
        """Return True if the recurrence rule matches the date inside the validity window."""
        return (
            self.valid_from <= service_date <= self.valid_until
            and service_date.weekday() in self.weekday_list
        )

    def __repr__(self) -> str:
        return (
            f"<Schedule(id={self.id}, route_id={self.route_id}, ferry_id={self.ferry_id}, "
            f"weekdays={self.weekdays}, departure_time={self.departure_time})>"
        )
