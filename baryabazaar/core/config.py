"""Configuration management for the BaryaBazaar ledger."""
from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = Field(default="BaryaBazaar Ledger")
    version: str = Field(default="0.1.0")
    docs_url: str | None = Field(default="/docs")
    redoc_url: str | None = Field(default="/redoc")
    openapi_url: str = Field(default="/openapi.json")

    database_url: str = Field(default="sqlite+pysqlite:///./baryabazaar.db")

    aws_region: str = Field(default="us-east-1")
    s3_endpoint_url: str | None = Field(default=None)
    audit_archive_bucket: str = Field(default="baryabazaar-audit-logs")
    audit_archive_prefix: str = Field(default="audit/system-logs")
    audit_archive_interval_seconds: int = Field(default=3600)

    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=True)
    otel_exporter_endpoint: str | None = Field(default=None)
    log_level: str | None = Field(default=None)

    # Trading rules consumed by the validation layer.
    min_usdt_amount: Decimal = Field(default=Decimal("0.01"))
    max_usdt_amount: Decimal = Field(default=Decimal("100000"))
    rate_deviation_threshold_percent: Decimal = Field(default=Decimal("5"))
    large_transaction_php_threshold: Decimal = Field(default=Decimal("50000"))
    large_transaction_usdt_threshold: Decimal = Field(default=Decimal("1000"))
    low_balance_threshold: Decimal = Field(default=Decimal("1000"))

    # Defaults for the persisted system settings record.
    daily_reset_time: str = Field(default="01:00")
    timezone: str = Field(default="Asia/Manila")
    total_invested_funds: Decimal = Field(default=Decimal("0"))
    rate_refresh_interval_ms: int = Field(default=300_000)
    notification_poll_interval_ms: int = Field(default=30_000)
    notifications_enabled: bool = Field(default=True)

    default_reference_rate: Decimal = Field(default=Decimal("56.25"))
    coingecko_url: str = Field(default="https://api.coingecko.com/api/v3/simple/price")
    coingecko_api_key: str | None = Field(default=None)
    rate_fetch_timeout_seconds: float = Field(default=5.0)

    notification_webhook_url: str | None = Field(default=None)
    notification_timeout_seconds: float = Field(default=5.0)

    jwt_algorithm: str = Field(default="HS256")
    jwt_secret_key: str = Field(default="change-me-in-production")
    access_token_expire_minutes: int = Field(default=15)
    refresh_token_expire_days: int = Field(default=7)
    default_user_hashed_password: str = Field(
        default="$2b$12$oyI2qhzyapMI2vlA38nS4uK91tQ8gjVjTgQExlbDGQLHw6/oEFzOG"
    )  # password: changeme
    default_user_password: str = Field(default="changeme")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
