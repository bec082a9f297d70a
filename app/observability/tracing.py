"""
Distributed Tracing - OpenTelemetry spans for requests, queries and backend calls.

FastAPI and SQLAlchemy are auto-instrumented; calls to the generation backend
get manual spans via trace_operation. With TRACING_ENABLED=false nothing is
installed and trace_operation produces non-recording spans.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span

from app.config import settings

TRACER_NAME = "app.generation"

# Polling endpoints are hit every few seconds per open job
EXCLUDED_URLS = "api/health,metrics"


def setup_tracing() -> None:
    """Install the OTLP-exporting tracer provider."""
    if not settings.tracing_enabled:
        return

    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "service.version": settings.api_version,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(endpoint=settings.otlp_endpoint, insecure=settings.otlp_insecure)
        )
    )
    trace.set_tracer_provider(provider)


def instrument_fastapi(app: Any) -> None:
    """Trace every route except health and metrics scrapes."""
    if not settings.tracing_enabled:
        return

    FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)


def instrument_sqlalchemy(engine: Any) -> None:
    """Trace queries on an async engine (instruments its sync core)."""
    if not settings.tracing_enabled:
        return

    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def _attribute(value: Any) -> str | int | float | bool:
    return value if isinstance(value, (str, int, float, bool)) else str(value)


@contextmanager
def trace_operation(name: str, **attributes: Any) -> Iterator[Span]:
    """
    Run the block inside a child span.

    Exceptions are recorded on the span and the status set to ERROR before
    they propagate.

        with trace_operation("backend_edit", model=model) as span:
            span.set_attribute("output_bytes", len(data))
    """
    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(name) as span:
        for key, value in attributes.items():
            if value is not None:
                span.set_attribute(key, _attribute(value))
        yield span
