"""Trend, risk and prediction analytics over the transaction ledger.

The functions in this module never raise on empty or degenerate input: every
ratio with a zero denominator evaluates to zero. :class:`AnalyticsService`
converts database failures into :meth:`AdvancedAnalytics.empty` so reporting
callers always receive a complete object.
"""
from __future__ import annotations

import logging
import statistics
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from baryabazaar.models import SessionLog, Transaction, TransactionStatus, TransactionType, utcnow
from baryabazaar.services.events import EventBus
from baryabazaar.services.ledger import Clock, TransactionStore
from baryabazaar.services.periods import TimeWindow, lookback_window, percentage_change, split_window
from baryabazaar.services.profit import calculate_realized_profit, profit_by_platform, profit_by_user
from baryabazaar.services.rates import ZERO, to_decimal

logger = logging.getLogger(__name__)

TOP_PERFORMER_LIMIT = 5
REVENUE_DROP_ALERT_PERCENT = -20.0
HIGH_VOLATILITY_RATIO = 1.0


def volatility(amounts: Sequence[float]) -> float:
    """Population standard deviation of per-transaction amounts."""

    if len(amounts) < 2:
        return 0.0
    return statistics.pstdev(amounts)


def max_drawdown(amounts: Sequence[float]) -> float:
    """Largest peak-to-trough decline, in percent, walking the sequence in order."""

    peak = 0.0
    worst = 0.0
    for value in amounts:
        if value > peak:
            peak = value
        elif peak > 0:
            worst = max(worst, (peak - value) / peak * 100)
    return worst


def period_returns(values: Sequence[float]) -> list[float]:
    returns: list[float] = []
    for previous, current in zip(values, values[1:]):
        if previous > 0:
            returns.append((current - previous) / previous)
    return returns


def sharpe_ratio(values: Sequence[float]) -> float:
    """Mean over standard deviation of period-over-period returns."""

    returns = period_returns(values)
    if len(returns) < 2:
        return 0.0
    deviation = statistics.pstdev(returns)
    if deviation == 0:
        return 0.0
    return statistics.fmean(returns) / deviation


def linear_trend_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope of ``values`` against their index."""

    n = len(values)
    if n < 2:
        return 0.0
    mean_x = (n - 1) / 2
    mean_y = statistics.fmean(values)
    numerator = sum((index - mean_x) * (value - mean_y) for index, value in enumerate(values))
    denominator = sum((index - mean_x) ** 2 for index in range(n))
    if denominator == 0:
        return 0.0
    return numerator / denominator


def risk_level(values: Sequence[float]) -> str:
    if not values:
        return "Low"
    mean = statistics.fmean(values)
    if mean <= 0:
        return "Low"
    variation = statistics.pstdev(values) / mean
    if variation < 0.25:
        return "Low"
    if variation < 0.5:
        return "Medium"
    return "High"


@dataclass(slots=True, frozen=True)
class AnalyticsFilters:
    user_ids: tuple[str, ...] = ()
    platforms: tuple[str, ...] = ()
    types: tuple[TransactionType, ...] = ()
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None

    def matches(self, transaction: Transaction) -> bool:
        if self.user_ids and transaction.user_id not in self.user_ids:
            return False
        if self.platforms and transaction.platform not in self.platforms:
            return False
        if self.types and transaction.type not in self.types:
            return False
        amount = to_decimal(transaction.usdt_amount)
        if self.min_amount is not None and amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True


@dataclass(slots=True, frozen=True)
class DailyPoint:
    day: date
    revenue: Decimal
    profit: Decimal
    volume: Decimal
    buy_volume: Decimal
    sell_volume: Decimal
    net_volume: Decimal
    transactions: int


@dataclass(slots=True, frozen=True)
class TopPerformer:
    user_id: str
    name: str
    transactions: int
    profit: Decimal
    profit_margin: float


@dataclass(slots=True, frozen=True)
class PlatformShare:
    name: str
    volume: Decimal
    percentage: float
    efficiency: float


@dataclass(slots=True, frozen=True)
class RiskMetrics:
    volatility: float = 0.0
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0


@dataclass(slots=True, frozen=True)
class Predictions:
    next_period_volume: float = 0.0
    next_week_profit: float = 0.0
    growth_trend: float = 0.0
    risk_level: str = "Low"
    confidence: int = 0


@dataclass(slots=True, frozen=True)
class Alert:
    level: str
    title: str
    message: str


@dataclass(slots=True, frozen=True)
class AdvancedAnalytics:
    total_revenue: Decimal = ZERO
    total_volume: Decimal = ZERO
    total_profit: Decimal = ZERO
    profit_margin: float = 0.0
    roi: float = 0.0
    revenue_change: float = 0.0
    volume_change: float = 0.0
    margin_change: float = 0.0
    traders_change: float = 0.0
    active_traders: int = 0
    transaction_count: int = 0
    chart_data: tuple[DailyPoint, ...] = ()
    top_performers: tuple[TopPerformer, ...] = ()
    platform_analysis: tuple[PlatformShare, ...] = ()
    risk: RiskMetrics = field(default_factory=RiskMetrics)

    @classmethod
    def empty(cls) -> AdvancedAnalytics:
        return cls()


def _ratio_percent(numerator: Decimal, denominator: Decimal) -> float:
    if denominator <= ZERO:
        return 0.0
    return float(numerator / denominator * 100)


def _trading_volume(transactions: Iterable[Transaction]) -> Decimal:
    return sum(
        (to_decimal(item.usdt_amount) for item in transactions if item.type != TransactionType.INTERNAL_TRANSFER),
        ZERO,
    )


def _revenue(transactions: Iterable[Transaction]) -> Decimal:
    return sum((to_decimal(item.php_amount) for item in transactions if item.type == TransactionType.SELL), ZERO)


def daily_series(transactions: Sequence[Transaction], window: TimeWindow, tz: ZoneInfo) -> list[DailyPoint]:
    """One point per local calendar day of ``window``, oldest first."""

    grouped: dict[date, list[Transaction]] = defaultdict(list)
    for item in transactions:
        grouped[item.timestamp.astimezone(tz).date()].append(item)

    first = window.start.astimezone(tz).date()
    last = (window.end - timedelta(microseconds=1)).astimezone(tz).date()
    points: list[DailyPoint] = []
    day = first
    while day <= last:
        items = grouped.get(day, [])
        buy_volume = sum((to_decimal(i.usdt_amount) for i in items if i.type == TransactionType.BUY), ZERO)
        sell_volume = sum((to_decimal(i.usdt_amount) for i in items if i.type == TransactionType.SELL), ZERO)
        points.append(
            DailyPoint(
                day=day,
                revenue=_revenue(items),
                profit=calculate_realized_profit(items).net_profit,
                volume=buy_volume + sell_volume,
                buy_volume=buy_volume,
                sell_volume=sell_volume,
                net_volume=buy_volume - sell_volume,
                transactions=len(items),
            )
        )
        day += timedelta(days=1)
    return points


def generate_predictions(analytics: AdvancedAnalytics) -> Predictions:
    """Low-confidence linear projections from the daily series."""

    volumes = [float(point.volume) for point in analytics.chart_data]
    profits = [float(point.profit) for point in analytics.chart_data]
    if not volumes:
        return Predictions()
    mean_volume = statistics.fmean(volumes)
    slope = linear_trend_slope(volumes)
    relative_slope = slope / mean_volume if mean_volume > 0 else 0.0
    next_volume = max(0.0, volumes[-1] * (1 + relative_slope))
    next_week_profit = max(0.0, statistics.fmean(profits) * 7 * (1 + relative_slope))
    return Predictions(
        next_period_volume=round(next_volume, 2),
        next_week_profit=round(next_week_profit, 2),
        growth_trend=round(relative_slope * 100, 2),
        risk_level=risk_level(volumes),
        confidence=min(95, 5 * analytics.transaction_count),
    )


def generate_alerts(
    analytics: AdvancedAnalytics,
    *,
    platform_balances: dict[str, Decimal],
    low_balance_threshold: Decimal,
) -> list[Alert]:
    alerts: list[Alert] = []
    if analytics.revenue_change <= REVENUE_DROP_ALERT_PERCENT:
        alerts.append(
            Alert(
                level="warning",
                title="Revenue drop",
                message=f"Revenue changed by {analytics.revenue_change:.1f}% against the previous half period",
            )
        )
    if analytics.transaction_count:
        mean_amount = float(analytics.total_volume) / analytics.transaction_count
        if mean_amount > 0 and analytics.risk.volatility / mean_amount > HIGH_VOLATILITY_RATIO:
            alerts.append(
                Alert(
                    level="warning",
                    title="High volatility",
                    message=f"Transaction size deviation is {analytics.risk.volatility:.2f} USDT",
                )
            )
    else:
        alerts.append(Alert(level="info", title="No trading activity", message="No trades in the selected period"))
    for name, balance in sorted(platform_balances.items()):
        if balance < low_balance_threshold:
            alerts.append(
                Alert(
                    level="error",
                    title="Low platform balance",
                    message=f"{name} holds {balance} USDT, below {low_balance_threshold}",
                )
            )
    return alerts


class AnalyticsService:
    """Computes the advanced analytics view over a lookback window."""

    def __init__(
        self,
        session: Session,
        store: TransactionStore,
        *,
        tz: ZoneInfo,
        total_invested_funds: Decimal = ZERO,
        clock: Clock = utcnow,
        bus: EventBus | None = None,
    ) -> None:
        self._session = session
        self._store = store
        self._tz = tz
        self._total_invested_funds = to_decimal(total_invested_funds)
        self._clock = clock
        self._bus = bus

    def advanced_analytics(self, days: int = 7, filters: AnalyticsFilters | None = None) -> AdvancedAnalytics:
        filters = filters or AnalyticsFilters()
        window = lookback_window(now=self._clock(), days=days)
        try:
            transactions = [
                item
                for item in self._store.transactions_in_window(window)
                if item.status == TransactionStatus.COMPLETED and filters.matches(item)
            ]
            sessions = self._sessions_in_window(window)
        except SQLAlchemyError as exc:
            logger.exception("analytics retrieval failed", extra={"days": days})
            if self._bus is not None:
                self._bus.report_failure("analytics", f"Analytics retrieval failed: {type(exc).__name__}", days=days)
            return AdvancedAnalytics.empty()
        return self._compute(transactions, sessions, window)

    def _sessions_in_window(self, window: TimeWindow) -> list[SessionLog]:
        stmt = select(SessionLog).where(SessionLog.login_time >= window.start, SessionLog.login_time < window.end)
        return list(self._session.scalars(stmt))

    def _compute(
        self,
        transactions: list[Transaction],
        sessions: list[SessionLog],
        window: TimeWindow,
    ) -> AdvancedAnalytics:
        chronological = sorted(transactions, key=lambda item: item.timestamp)
        profit = calculate_realized_profit(chronological)
        revenue = _revenue(chronological)
        volume = _trading_volume(chronological)
        margin = _ratio_percent(profit.net_profit, revenue)

        older, recent = split_window(window)
        older_items = [item for item in chronological if older.contains(item.timestamp)]
        recent_items = [item for item in chronological if recent.contains(item.timestamp)]
        older_sessions = [entry for entry in sessions if older.contains(entry.login_time)]
        recent_sessions = [entry for entry in sessions if recent.contains(entry.login_time)]

        amounts = [float(item.usdt_amount) for item in chronological if item.type != TransactionType.INTERNAL_TRANSFER]
        chart = daily_series(chronological, window, self._tz)

        return AdvancedAnalytics(
            total_revenue=revenue,
            total_volume=volume,
            total_profit=profit.net_profit,
            profit_margin=round(margin, 2),
            roi=round(_ratio_percent(profit.net_profit, self._total_invested_funds), 2),
            revenue_change=round(percentage_change(_revenue(recent_items), _revenue(older_items)), 2),
            volume_change=round(percentage_change(_trading_volume(recent_items), _trading_volume(older_items)), 2),
            margin_change=round(percentage_change(self._margin(recent_items), self._margin(older_items)), 2),
            traders_change=round(
                percentage_change(
                    len(_active_traders(recent_items, recent_sessions)),
                    len(_active_traders(older_items, older_sessions)),
                ),
                2,
            ),
            active_traders=len(_active_traders(chronological, sessions)),
            transaction_count=len(amounts),
            chart_data=tuple(chart),
            top_performers=tuple(self._top_performers(chronological)),
            platform_analysis=tuple(self._platform_analysis(chronological, volume)),
            risk=RiskMetrics(
                volatility=round(volatility(amounts), 4),
                max_drawdown=round(max_drawdown(amounts), 2),
                sharpe_ratio=round(sharpe_ratio([float(point.volume) for point in chart]), 4),
            ),
        )

    @staticmethod
    def _margin(transactions: list[Transaction]) -> float:
        return _ratio_percent(calculate_realized_profit(transactions).net_profit, _revenue(transactions))

    @staticmethod
    def _top_performers(transactions: list[Transaction]) -> list[TopPerformer]:
        names = {item.user_id: item.user_name for item in transactions if item.user_id}
        counts: dict[str, int] = defaultdict(int)
        for item in transactions:
            if item.user_id:
                counts[item.user_id] += 1
        performers = [
            TopPerformer(
                user_id=user_id,
                name=names.get(user_id, ""),
                transactions=counts[user_id],
                profit=breakdown.net_profit,
                profit_margin=round(_ratio_percent(breakdown.net_profit, breakdown.revenue), 2),
            )
            for user_id, breakdown in profit_by_user(transactions).items()
        ]
        performers.sort(key=lambda item: (item.profit, item.transactions), reverse=True)
        return performers[:TOP_PERFORMER_LIMIT]

    @staticmethod
    def _platform_analysis(transactions: list[Transaction], total_volume: Decimal) -> list[PlatformShare]:
        shares = [
            PlatformShare(
                name=name,
                volume=breakdown.total_volume,
                percentage=round(_ratio_percent(breakdown.total_volume, total_volume), 1),
                efficiency=round(_ratio_percent(breakdown.net_profit, breakdown.revenue), 2),
            )
            for name, breakdown in profit_by_platform(transactions).items()
        ]
        shares.sort(key=lambda item: item.volume, reverse=True)
        return shares


def _active_traders(transactions: Iterable[Transaction], sessions: Iterable[SessionLog]) -> set[str]:
    traders = {item.user_id for item in transactions if item.user_id}
    traders.update(entry.user_id for entry in sessions if entry.user_id)
    return traders


__all__ = [
    "AdvancedAnalytics",
    "Alert",
    "AnalyticsFilters",
    "AnalyticsService",
    "DailyPoint",
    "PlatformShare",
    "Predictions",
    "RiskMetrics",
    "TopPerformer",
    "daily_series",
    "generate_alerts",
    "generate_predictions",
    "linear_trend_slope",
    "max_drawdown",
    "period_returns",
    "risk_level",
    "sharpe_ratio",
    "volatility",
]
