"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from .config import settings

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
DEPARTURES_MATERIALIZED = Counter(
    'departures_materialized_total',
    'Departures created from schedules or ad hoc',
    ['origin'],
    registry=REGISTRY
)

DEPARTURES_DELAYED = Counter(
    'departures_delayed_total',
    'Departures delayed, including cascaded delays',
    ['cascaded'],
    registry=REGISTRY
)

DEPARTURES_CANCELLED = Counter(
    'departures_cancelled_total',
    'Departures cancelled, including cascaded cancellations',
    ['cascaded'],
    registry=REGISTRY
)

DELAY_MINUTES = Histogram(
    'departure_delay_minutes',
    'Applied delay per delay operation in minutes',
    buckets=(5, 10, 15, 30, 60, 120, 240, 480),
    registry=REGISTRY
)

BOOKINGS_ATTACHED = Counter(
    'bookings_attached_total',
    'Traveling entities attached to departures',
    registry=REGISTRY
)

BOOKINGS_RELEASED = Counter(
    'bookings_released_total',
    'Bookings released by detach or cancellation',
    ['reason'],
    registry=REGISTRY
)

OVERBOOKING_REJECTED = Counter(
    'bookings_overbooking_rejected_total',
    'Attach attempts rejected because the departure was full',
    registry=REGISTRY
)

CAPACITY_UTILIZATION = Gauge(
    'departure_capacity_utilization',
    'Booked share of ferry capacity in percent',
    ['departure_id'],
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            # request_id is bound per request by RequestIDMiddleware
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": settings.service_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())

    if settings.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    """Instrument the async engine's sync core with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_departure_materialized(origin: str):
        """Record a new departure; origin is 'schedule' or 'adhoc'."""
        DEPARTURES_MATERIALIZED.labels(origin=origin).inc()

    @staticmethod
    def record_departure_delayed(delay_minutes: int, cascaded: bool):
        DEPARTURES_DELAYED.labels(cascaded=str(cascaded).lower()).inc()
        DELAY_MINUTES.observe(delay_minutes)

    @staticmethod
    def record_departure_cancelled(cascaded: bool):
        DEPARTURES_CANCELLED.labels(cascaded=str(cascaded).lower()).inc()

    @staticmethod
    def record_booking_attached(count: int = 1):
        BOOKINGS_ATTACHED.inc(count)

    @staticmethod
    def record_bookings_released(count: int, reason: str):
        """Record released bookings; reason is 'detach' or 'cancellation'."""
        if count > 0:
            BOOKINGS_RELEASED.labels(reason=reason).inc(count)

    @staticmethod
    def record_overbooking_rejected():
        OVERBOOKING_REJECTED.inc()

    @staticmethod
    def set_capacity_utilization(departure_id: str, booked: int, capacity: int):
        """Set capacity utilization percentage for a departure."""
        utilization = (booked / capacity * 100.0) if capacity else 0.0
        CAPACITY_UTILIZATION.labels(departure_id=departure_id).set(utilization)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


def get_logger(name: str):
    """Get a structlog logger bound to a component name."""
    return structlog.get_logger(name).bind(component=name)
