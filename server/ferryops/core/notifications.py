"""Departure events and the sinks that deliver them to travellers."""

from datetime import date, datetime
from enum import Enum
from typing import Protocol
from uuid import UUID

import structlog
from pydantic import BaseModel, Field


class DepartureEventType(str, Enum):
    """Kinds of departure events."""
    DELAYED = "DEPARTURE_DELAYED"
    CANCELLED = "DEPARTURE_CANCELLED"


class DepartureEvent(BaseModel):
    """Event emitted after a delay or cancellation has been committed."""

    event_type: DepartureEventType
    departure_id: UUID
    ferry_id: UUID | None = None
    service_date: date
    departs_at: datetime
    arrives_at: datetime
    delay_minutes: int = 0
    traveling_entity_ids: list[UUID] = Field(default_factory=list)
    cascaded_from: UUID | None = None
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


class NotificationSink(Protocol):
    """Consumer of departure events (mail, SMS, push, ...)."""

    def publish(self, event: DepartureEvent) -> None:
        ...


class LogNotificationSink:
    """Sink that writes every event to the structured log."""

    def __init__(self) -> None:
        self.logger = structlog.get_logger("ferryops.notifications")

    def publish(self, event: DepartureEvent) -> None:
        self.logger.info(
            "departure_event",
            event_type=event.event_type.value,
            departure_id=str(event.departure_id),
            service_date=event.service_date.isoformat(),
            delay_minutes=event.delay_minutes,
            recipients=len(event.traveling_entity_ids),
            cascaded_from=str(event.cascaded_from) if event.cascaded_from else None,
        )


default_notification_sink = LogNotificationSink()
