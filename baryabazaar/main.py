"""FastAPI application entrypoint."""
from __future__ import annotations

from fastapi import FastAPI

from baryabazaar.api.errors import register_exception_handlers
from baryabazaar.api.routes import register_routes
from baryabazaar.core.config import Settings, get_settings
from baryabazaar.core.logging import configure_logging
from baryabazaar.db.session import SessionLocal
from baryabazaar.obs import (
    PrometheusMiddleware,
    RequestLoggingMiddleware,
    initialise_tracing,
    instrument_fastapi_app,
    metrics_router,
)
from baryabazaar.services.events import get_event_bus
from baryabazaar.services.notifications import AlertSwitches, NotificationService, persisted_alert_switches


def create_application(settings: Settings | None = None) -> FastAPI:
    """Application factory used by ASGI servers and tests."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if settings.enable_tracing:
        initialise_tracing(service_name=settings.app_name, endpoint=settings.otel_exporter_endpoint)

    application = FastAPI(
        title=settings.app_name,
        version=settings.version,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
    )

    application.add_middleware(RequestLoggingMiddleware)
    if settings.enable_metrics:
        application.add_middleware(PrometheusMiddleware)
        application.include_router(metrics_router)
    register_exception_handlers(application)
    register_routes(application)

    notifications = NotificationService.from_settings(
        settings,
        switches=persisted_alert_switches(
            SessionLocal, defaults=AlertSwitches(enabled=settings.notifications_enabled)
        ),
    )
    application.state.notifications = notifications
    application.state.detach_notifications = notifications.attach(get_event_bus())

    if settings.enable_tracing:
        instrument_fastapi_app(application)

    return application


app = create_application()
