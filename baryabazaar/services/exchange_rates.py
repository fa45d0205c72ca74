"""USDT/PHP reference rate sourced from CoinGecko."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from threading import Lock

import httpx

from baryabazaar.core.config import Settings, get_settings
from baryabazaar.obs import ledger_span, report_reference_rate
from baryabazaar.services.events import EventBus, get_event_bus
from baryabazaar.services.rates import quantize_rate

logger = logging.getLogger(__name__)

SOURCE_COINGECKO = "CoinGecko"
SOURCE_FALLBACK = "Fallback"


@dataclass(slots=True, frozen=True)
class ReferenceRate:
    rate: Decimal
    source: str
    updated_at: datetime


class RateFetchError(RuntimeError):
    """Raised when the upstream price API returns nothing usable."""


class CoinGeckoClient:
    """Synchronous wrapper around the CoinGecko simple price endpoint."""

    def __init__(
        self,
        url: str,
        *,
        api_key: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._url = url
        self._api_key = api_key
        self._client = client or httpx.Client()
        self._owns_client = client is None
        self._timeout = timeout

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def fetch_usdt_php(self) -> Decimal:
        params = {"ids": "tether", "vs_currencies": "php"}
        if self._api_key:
            params["x_cg_demo_api_key"] = self._api_key
        response = self._client.get(self._url, params=params, timeout=self._timeout)
        response.raise_for_status()
        try:
            value = response.json()["tether"]["php"]
            rate = Decimal(str(value))
        except (KeyError, TypeError, ValueError, InvalidOperation) as exc:
            raise RateFetchError("Unexpected CoinGecko payload") from exc
        if not rate.is_finite() or rate <= 0:
            raise RateFetchError(f"CoinGecko returned a non-positive rate: {value}")
        return rate


class ExchangeRateService:
    """Holds the latest reference rate; a failed refresh keeps the previous one."""

    def __init__(
        self,
        client: CoinGeckoClient | None,
        *,
        fallback_rate: Decimal,
        clock: Callable[[], datetime] | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._client = client
        self._bus = bus
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = Lock()
        self._current = ReferenceRate(quantize_rate(fallback_rate), SOURCE_FALLBACK, self._clock())

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        http_client: httpx.Client | None = None,
        bus: EventBus | None = None,
    ) -> ExchangeRateService:
        settings = settings or get_settings()
        client = None
        if settings.coingecko_url:
            client = CoinGeckoClient(
                settings.coingecko_url,
                api_key=settings.coingecko_api_key,
                client=http_client,
                timeout=settings.rate_fetch_timeout_seconds,
            )
        return cls(client, fallback_rate=settings.default_reference_rate, bus=bus)

    def current(self) -> ReferenceRate:
        with self._lock:
            return self._current

    def refresh(self) -> ReferenceRate:
        """Fetch a new rate; on any upstream failure the current rate stays."""

        if self._client is None:
            return self.current()
        with ledger_span("rates.refresh"):
            try:
                value = self._client.fetch_usdt_php()
            except (httpx.HTTPError, RateFetchError) as exc:
                logger.warning("reference rate refresh failed", extra={"error": str(exc)})
                if self._bus is not None:
                    self._bus.report_failure("rates", f"Reference rate refresh failed: {exc}")
                return self.current()
        updated = ReferenceRate(quantize_rate(value), SOURCE_COINGECKO, self._clock())
        with self._lock:
            self._current = updated
        report_reference_rate(updated.source, float(updated.rate))
        logger.info("reference rate updated", extra={"rate": str(updated.rate), "source": updated.source})
        return updated


def preferred_rate(live: ReferenceRate, stored: ReferenceRate | None) -> ReferenceRate:
    """Pick the rate trades are checked against.

    A stored rate comes from a refresher that may run in another process; it wins
    over the configured fallback and over any older live rate.
    """

    if stored is None:
        return live
    if live.source == SOURCE_FALLBACK or stored.updated_at > live.updated_at:
        return stored
    return live


async def run_rate_refresher(
    service: ExchangeRateService,
    *,
    interval_seconds: float,
    sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    iterations: int | None = None,
    on_update: Callable[[ReferenceRate], None] | None = None,
) -> None:
    """Refresh ``service`` every ``interval_seconds`` until cancelled.

    ``on_update`` receives each newly fetched rate, not the retained one.
    """

    executed = 0
    while iterations is None or executed < iterations:
        previous = service.current()
        latest = await asyncio.to_thread(service.refresh)
        if on_update is not None and latest is not previous:
            await asyncio.to_thread(on_update, latest)
        executed += 1
        if iterations is not None and executed >= iterations:
            break
        await sleep_fn(interval_seconds)


@lru_cache
def get_exchange_rate_service() -> ExchangeRateService:
    return ExchangeRateService.from_settings(bus=get_event_bus())


__all__ = [
    "CoinGeckoClient",
    "ExchangeRateService",
    "RateFetchError",
    "ReferenceRate",
    "SOURCE_COINGECKO",
    "SOURCE_FALLBACK",
    "get_exchange_rate_service",
    "preferred_rate",
    "run_rate_refresher",
]
