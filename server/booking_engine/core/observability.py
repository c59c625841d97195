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
HOLDS_CREATED = Counter(
    'booking_holds_created_total',
    'Total checkout holds created',
    ['tour_id'],
    registry=REGISTRY
)

HOLDS_EXTENDED = Counter(
    'booking_holds_extended_total',
    'Total checkout holds extended',
    registry=REGISTRY
)

HOLDS_RELEASED = Counter(
    'booking_holds_released_total',
    'Total checkout holds released or superseded',
    ['reason'],
    registry=REGISTRY
)

HOLDS_EXPIRED = Counter(
    'booking_holds_expired_total',
    'Stale holds relabelled EXPIRED by the sweeper',
    registry=REGISTRY
)

HOLDS_REJECTED = Counter(
    'booking_holds_rejected_total',
    'Hold requests rejected for capacity',
    ['reason'],
    registry=REGISTRY
)

BOOKINGS_RESERVED = Counter(
    'bookings_reserved_total',
    'Total PENDING bookings created from holds',
    ['tour_id'],
    registry=REGISTRY
)

BOOKINGS_CONFIRMED = Counter(
    'bookings_confirmed_total',
    'Total bookings confirmed by payment',
    ['tour_id'],
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    ['reason'],
    registry=REGISTRY
)

REFUND_AMOUNT = Counter(
    'booking_refund_minor_units_total',
    'Refund amounts owed on cancellation, in minor units',
    ['currency'],
    registry=REGISTRY
)

PAYMENT_NOTIFICATIONS = Counter(
    'payment_notifications_total',
    'Gateway statuses applied to payments',
    ['outcome'],
    registry=REGISTRY
)

GATEWAY_ERRORS = Counter(
    'payment_gateway_errors_total',
    'Failed calls to the payment gateway',
    ['operation'],
    registry=REGISTRY
)

ACTIVE_HOLDS = Gauge(
    'booking_holds_active',
    'Number of active, unexpired holds seen by the last sweep',
    registry=REGISTRY
)

WORKER_RUNS = Counter(
    'worker_runs_total',
    'Background worker iterations',
    ['worker', 'outcome'],
    registry=REGISTRY
)

WORKER_ROWS = Counter(
    'worker_rows_affected_total',
    'Rows changed by background workers',
    ['worker'],
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

    # request_id is bound into contextvars by RequestIDMiddleware
    structlog.configure(
        processors=[
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
        "service.version": settings.app_version,
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())
    trace.set_tracer_provider(provider)

    if settings.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

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


def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_hold_created(tour_id: str):
        HOLDS_CREATED.labels(tour_id=tour_id).inc()

    @staticmethod
    def record_hold_extended():
        HOLDS_EXTENDED.inc()

    @staticmethod
    def record_hold_released(reason: str = "buyer"):
        HOLDS_RELEASED.labels(reason=reason).inc()

    @staticmethod
    def record_hold_rejected(reason: str):
        HOLDS_REJECTED.labels(reason=reason).inc()

    @staticmethod
    def record_holds_expired(count: int):
        HOLDS_EXPIRED.inc(count)

    @staticmethod
    def set_active_holds(count: int):
        ACTIVE_HOLDS.set(count)

    @staticmethod
    def record_booking_reserved(tour_id: str):
        BOOKINGS_RESERVED.labels(tour_id=tour_id).inc()

    @staticmethod
    def record_booking_confirmed(tour_id: str):
        BOOKINGS_CONFIRMED.labels(tour_id=tour_id).inc()

    @staticmethod
    def record_booking_cancelled(reason: str, refund_amount: int, currency: str):
        """Record a cancellation and the refund it owes."""
        BOOKINGS_CANCELLED.labels(reason=reason).inc()
        if refund_amount > 0:
            REFUND_AMOUNT.labels(currency=currency).inc(refund_amount)

    @staticmethod
    def record_payment_notification(outcome: str):
        PAYMENT_NOTIFICATIONS.labels(outcome=outcome).inc()

    @staticmethod
    def record_gateway_error(operation: str):
        GATEWAY_ERRORS.labels(operation=operation).inc()

    @staticmethod
    def record_worker_run(worker: str, outcome: str, affected: int = 0):
        WORKER_RUNS.labels(worker=worker, outcome=outcome).inc()
        if affected:
            WORKER_ROWS.labels(worker=worker).inc(affected)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


class StructuredLogger:
    """Structured logger with business context."""

    def __init__(self, name_or_logger):
        if isinstance(name_or_logger, str):
            self.logger = structlog.get_logger(name_or_logger)
        else:
            self.logger = name_or_logger

    def info(self, message: str, **kwargs):
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)

    def with_context(self, **kwargs):
        """Return a logger with additional bound context."""
        return StructuredLogger(self.logger.bind(**kwargs))


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
