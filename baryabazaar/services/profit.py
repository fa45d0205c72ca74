"""Realized profit over transaction sets and time windows."""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from zoneinfo import ZoneInfo

from baryabazaar.models import Transaction, TransactionStatus, TransactionType, utcnow
from baryabazaar.services.ledger import Clock, TransactionStore
from baryabazaar.services.periods import Period, TimeWindow, daily_profit_window, period_window
from baryabazaar.services.rates import ZERO, leg_totals, quantize_php, quantize_rate, to_decimal, weighted_average_rate


@dataclass(slots=True, frozen=True)
class ProfitBreakdown:
    """Weighted-average profit on the volume matched by both buys and sells.

    ``gross_profit`` ignores fees; ``net_profit`` subtracts the fees of the BUY
    and SELL legs before flooring. Both are never negative.
    """

    buy_usdt: Decimal
    buy_php: Decimal
    sell_usdt: Decimal
    sell_php: Decimal
    average_buy_rate: Decimal
    average_sell_rate: Decimal
    matched_volume: Decimal
    gross_profit: Decimal
    fees: Decimal
    net_profit: Decimal
    buy_count: int
    sell_count: int

    @classmethod
    def zero(cls) -> ProfitBreakdown:
        return cls(ZERO, ZERO, ZERO, ZERO, ZERO, ZERO, ZERO, ZERO, ZERO, ZERO, 0, 0)

    @property
    def total_volume(self) -> Decimal:
        return self.buy_usdt + self.sell_usdt

    @property
    def revenue(self) -> Decimal:
        return self.sell_php


def _completed(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [item for item in transactions if item.status == TransactionStatus.COMPLETED]


def calculate_realized_profit(transactions: Iterable[Transaction]) -> ProfitBreakdown:
    completed = _completed(transactions)
    buys = [item for item in completed if item.type == TransactionType.BUY]
    sells = [item for item in completed if item.type == TransactionType.SELL]

    buy_usdt, buy_php = leg_totals(buys)
    sell_usdt, sell_php = leg_totals(sells)
    average_buy = weighted_average_rate(buys)
    average_sell = weighted_average_rate(sells)
    fees = sum((to_decimal(item.fee) for item in buys + sells), ZERO)

    if not buys or not sells:
        matched = ZERO
        raw = ZERO
    else:
        matched = min(buy_usdt, sell_usdt)
        raw = (average_sell - average_buy) * matched

    return ProfitBreakdown(
        buy_usdt=buy_usdt,
        buy_php=buy_php,
        sell_usdt=sell_usdt,
        sell_php=sell_php,
        average_buy_rate=quantize_rate(average_buy),
        average_sell_rate=quantize_rate(average_sell),
        matched_volume=matched,
        gross_profit=quantize_php(max(ZERO, raw)),
        fees=quantize_php(fees),
        net_profit=quantize_php(max(ZERO, raw - fees)),
        buy_count=len(buys),
        sell_count=len(sells),
    )


def profit_by_user(transactions: Iterable[Transaction]) -> dict[str, ProfitBreakdown]:
    grouped: dict[str, list[Transaction]] = defaultdict(list)
    for item in transactions:
        if item.user_id:
            grouped[item.user_id].append(item)
    return {user_id: calculate_realized_profit(items) for user_id, items in grouped.items()}


def profit_by_platform(transactions: Iterable[Transaction]) -> dict[str, ProfitBreakdown]:
    grouped: dict[str, list[Transaction]] = defaultdict(list)
    for item in transactions:
        if item.platform:
            grouped[item.platform].append(item)
    return {platform: calculate_realized_profit(items) for platform, items in grouped.items()}


@dataclass(slots=True, frozen=True)
class TradingSummary:
    window: TimeWindow | None
    profit: ProfitBreakdown
    transaction_count: int
    transfer_count: int


def summarize(transactions: Iterable[Transaction], window: TimeWindow | None = None) -> TradingSummary:
    items = list(transactions)
    completed = _completed(items)
    return TradingSummary(
        window=window,
        profit=calculate_realized_profit(completed),
        transaction_count=len(items),
        transfer_count=sum(1 for item in completed if item.type == TransactionType.INTERNAL_TRANSFER),
    )


class ProfitService:
    """Profit for calendar periods and for the current trading day."""

    def __init__(
        self,
        store: TransactionStore,
        *,
        reset_time: time,
        tz: ZoneInfo,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._reset_time = reset_time
        self._tz = tz
        self._clock = clock

    def profit_for_period(
        self,
        period: Period,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> TradingSummary:
        window = period_window(period, now=self._clock(), tz=self._tz, start=start, end=end)
        return summarize(self._store.transactions_in_window(window), window)

    def daily_window(self) -> TimeWindow:
        return daily_profit_window(now=self._clock(), reset_time=self._reset_time, tz=self._tz)

    def daily_profit(self, *, user_id: str | None = None) -> TradingSummary:
        window = self.daily_window()
        return summarize(self._store.transactions_in_window(window, user_id=user_id), window)


__all__ = [
    "ProfitBreakdown",
    "ProfitService",
    "TradingSummary",
    "calculate_realized_profit",
    "profit_by_platform",
    "profit_by_user",
    "summarize",
]
