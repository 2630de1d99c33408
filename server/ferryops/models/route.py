"""Harbour and Route model definitions."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class Harbour(Base):
    """Harbour entity a route starts or ends at."""

    __tablename__ = "harbours"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("length(name) > 0", name="ck_harbour_name_not_empty"),
    )

    def __repr__(self) -> str:
        return f"<Harbour(id={self.id}, name='{self.name}')>"


class Route(Base):
    """Route entity connecting two harbours, with base price and sailing statistics."""

    __tablename__ = "routes"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Foreign keys to harbours
    origin_harbour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("harbours.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    destination_harbour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("harbours.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Price information (stored as minor units, e.g., cents)
    price_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")

    # Statistics maintained by delay/cancellation cascades
    departures_cancelled: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    departures_delayed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delay_minutes_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

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
        UniqueConstraint("origin_harbour_id", "destination_harbour_id", name="uq_route_harbours"),
        CheckConstraint("origin_harbour_id != destination_harbour_id", name="ck_route_distinct_harbours"),
        CheckConstraint("price_amount >= 0", name="ck_route_price_amount_non_negative"),
        CheckConstraint("length(price_currency) = 3", name="ck_route_price_currency_length"),
        CheckConstraint("departures_cancelled >= 0", name="ck_route_cancelled_non_negative"),
        CheckConstraint("departures_delayed >= 0", name="ck_route_delayed_non_negative"),
        CheckConstraint("delay_minutes_total >= 0", name="ck_route_delay_minutes_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<Route(id={self.id}, origin={self.origin_harbour_id}, "
            f"destination={self.destination_harbour_id}, price={self.price_amount} {self.price_currency})>"
        )
