"""Observability utilities."""

from .metrics import (
    AUDIT_ARCHIVE_COUNTER,
    BALANCE_CONFLICT_COUNTER,
    LEDGER_TRANSACTION_COUNTER,
    NOTIFICATION_FAILURE_COUNTER,
    REFERENCE_RATE_GAUGE,
    REQUEST_COUNTER,
    REQUEST_ERROR_COUNTER,
    REQUEST_LATENCY_SECONDS,
    PrometheusMiddleware,
    metrics_router,
    report_reference_rate,
)
from .requests import RequestLogRecord, RequestLoggingMiddleware, mask_mapping
from .tracing import (
    initialise_tracing,
    instrument_fastapi_app,
    instrument_sqlalchemy_engine,
    ledger_span,
)

__all__ = [
    "AUDIT_ARCHIVE_COUNTER",
    "BALANCE_CONFLICT_COUNTER",
    "LEDGER_TRANSACTION_COUNTER",
    "NOTIFICATION_FAILURE_COUNTER",
    "PrometheusMiddleware",
    "REFERENCE_RATE_GAUGE",
    "REQUEST_COUNTER",
    "REQUEST_ERROR_COUNTER",
    "REQUEST_LATENCY_SECONDS",
    "RequestLogRecord",
    "RequestLoggingMiddleware",
    "mask_mapping",
    "metrics_router",
    "report_reference_rate",
    "initialise_tracing",
    "instrument_fastapi_app",
    "instrument_sqlalchemy_engine",
    "ledger_span",
]
