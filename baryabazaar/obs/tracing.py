"""OpenTelemetry wiring for the ledger API and its worker loops.

Spans are exported over OTLP/gRPC when ``OTEL_EXPORTER_ENDPOINT`` is set and
written to the console otherwise. Ledger operations are wrapped with
:func:`ledger_span`, which records user, transaction and platform identifiers
as span attributes.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterator

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.trace import Span

TRACER_NAME = "baryabazaar.ledger"

AttributeValue = str | bool | int | float


def _span_processor(endpoint: str | None) -> SpanProcessor:
    if endpoint:
        return BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
    return SimpleSpanProcessor(ConsoleSpanExporter())


def _installed_service() -> str | None:
    provider = trace.get_tracer_provider()
    if not isinstance(provider, TracerProvider):
        return None
    return provider.resource.attributes.get(SERVICE_NAME)


def initialise_tracing(
    *,
    service_name: str,
    endpoint: str | None = None,
    instrument_logging: bool = True,
) -> None:
    """Install the process-wide tracer provider once per service name."""

    if _installed_service() == service_name:
        return

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))
    provider.add_span_processor(_span_processor(endpoint))
    trace.set_tracer_provider(provider)
    if instrument_logging:
        LoggingInstrumentor().instrument(set_logging_format=True)


def instrument_fastapi_app(app: FastAPI) -> None:
    FastAPIInstrumentor().instrument_app(app, excluded_urls="metrics,api/healthz,api/readyz")


def instrument_sqlalchemy_engine(engine: Any) -> None:
    SQLAlchemyInstrumentor().instrument(engine=engine)


def span_attribute(value: Any) -> AttributeValue:
    """Coerce ledger values (enums, decimals, ids) to OTel attribute types."""

    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    return str(getattr(value, "value", value))


@contextmanager
def ledger_span(name: str, **attributes: Any) -> Iterator[Span]:
    """Trace a ledger operation; ``None`` attributes are dropped."""

    tracer = trace.get_tracer(TRACER_NAME)
    with tracer.start_as_current_span(name) as span:
        span.set_attributes(
            {f"ledger.{key}": span_attribute(value) for key, value in attributes.items() if value is not None}
        )
        yield span


__all__ = [
    "TRACER_NAME",
    "initialise_tracing",
    "instrument_fastapi_app",
    "instrument_sqlalchemy_engine",
    "ledger_span",
    "span_attribute",
]
