"""
Logging, tracing and metrics bootstrap for the LOD 400 API.

Every log line is one JSON object carrying the service name and, inside a
request, the OTel trace/span ids, so an order's webhook, upload confirm and
completion can be followed across log lines and traces.
"""
import logging

import structlog
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

# OpenTelemetry
from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from shared.config import settings

# Liveness and scrape endpoints: no spans, no latency histograms
UNTRACED_PATHS = ("/health", "/metrics")


def add_otel_ids(logger, log_method, event_dict):
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = trace.format_trace_id(ctx.trace_id)
        event_dict["span_id"] = trace.format_span_id(ctx.span_id)
    return event_dict


def add_service_name(service_name: str):
    def processor(logger, log_method, event_dict):
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def configure_logging(service_name: str):
    level = logging.getLevelName(settings.LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_service_name(service_name),
            add_otel_ids,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def build_resource(service_name: str, version: str) -> Resource:
    return Resource.create(
        {
            SERVICE_NAME: service_name,
            SERVICE_VERSION: version,
            "deployment.environment": settings.APP_ENV,
        }
    )


def configure_tracing(app: FastAPI, service_name: str):
    provider = TracerProvider(resource=build_resource(service_name, app.version))
    trace.set_tracer_provider(provider)

    # Export to Jaeger via OTLP gRPC
    exporter = OTLPSpanExporter(endpoint=settings.OTLP_ENDPOINT, insecure=True)
    provider.add_span_processor(BatchSpanProcessor(exporter))

    FastAPIInstrumentor.instrument_app(app, excluded_urls=",".join(p.lstrip("/") for p in UNTRACED_PATHS))

    # The add-in client and any outbound httpx calls get child spans
    HTTPXClientInstrumentor().instrument()


def configure_metrics(app: FastAPI):
    # HTTP latency / status codes, exposed at /metrics
    Instrumentator(excluded_handlers=list(UNTRACED_PATHS)).instrument(app).expose(app, include_in_schema=False)


def setup_observability(app: FastAPI, service_name: str):
    """
    Bootstraps Logging, Tracing, and Metrics for the app.
    Call this once in main.py before starting the server. Tracing is skipped
    when OTEL_ENABLED is false (local runs and the test suite have no collector).
    """
    configure_logging(service_name)
    if settings.OTEL_ENABLED:
        configure_tracing(app, service_name)
    configure_metrics(app)
