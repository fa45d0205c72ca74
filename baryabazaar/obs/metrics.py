"""Prometheus metrics for the ledger API and workers."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_LATENCY_SECONDS = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds.",
    labelnames=("method", "path"),
)
REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests processed.",
    labelnames=("method", "path", "status"),
)
REQUEST_ERROR_COUNTER = Counter(
    "http_request_errors_total",
    "Total number of HTTP requests that resulted in server errors.",
    labelnames=("method", "path", "status"),
)
LEDGER_TRANSACTION_COUNTER = Counter(
    "ledger_transactions_recorded_total",
    "Transactions appended to the ledger.",
    labelnames=("type",),
)
BALANCE_CONFLICT_COUNTER = Counter(
    "ledger_balance_conflicts_total",
    "Balance writes rejected by optimistic version checks.",
    labelnames=("resource",),
)
NOTIFICATION_FAILURE_COUNTER = Counter(
    "ledger_notification_failures_total",
    "Notifications that could not be delivered to a sink.",
    labelnames=("sink",),
)
AUDIT_ARCHIVE_COUNTER = Counter(
    "ledger_audit_entries_archived_total",
    "System log entries copied to the audit archive.",
)
REFERENCE_RATE_GAUGE = Gauge(
    "ledger_reference_rate",
    "Latest fiat-per-USDT reference rate.",
    labelnames=("source",),
)


def route_template(request: Request) -> str:
    """Path label for a request: the matched route template, never raw ids."""

    route = request.scope.get("route")
    template = getattr(route, "path", None)
    return template or "unmatched"


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Counts and times requests, labelled by route template."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:  # type: ignore[override]
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            labels = {"method": request.method, "path": route_template(request)}
            REQUEST_LATENCY_SECONDS.labels(**labels).observe(time.perf_counter() - started)
            REQUEST_COUNTER.labels(status=str(status_code), **labels).inc()
            if status_code >= 500:
                REQUEST_ERROR_COUNTER.labels(status=str(status_code), **labels).inc()


metrics_router = APIRouter(tags=["observability"])


@metrics_router.get("/metrics", include_in_schema=False)
def metrics_endpoint() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def report_reference_rate(source: str, rate: float) -> None:
    REFERENCE_RATE_GAUGE.labels(source=source).set(max(0.0, rate))


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
    "metrics_endpoint",
    "metrics_router",
    "report_reference_rate",
    "route_template",
]
