"""Top level API router registration."""
from fastapi import APIRouter, FastAPI

from baryabazaar.api.routes import admin, analytics, audit, auth, balances, health, transactions


def register_routes(application: FastAPI) -> None:
    """Register all API routers with the FastAPI application."""
    api_router = APIRouter(prefix="/api")

    api_router.include_router(health.router, tags=["health"])
    api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
    api_router.include_router(transactions.router, tags=["transactions"])
    api_router.include_router(balances.router, tags=["balances"])
    api_router.include_router(admin.router, prefix="/admin", tags=["admin"])
    api_router.include_router(analytics.router, tags=["analytics"])
    api_router.include_router(audit.router, tags=["audit"])

    application.include_router(api_router)


__all__ = ["register_routes"]
