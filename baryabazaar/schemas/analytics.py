"""Pydantic schemas for profit and analytics views."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class _FromAttributes(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class WindowRead(_FromAttributes):
    start: datetime
    end: datetime


class ProfitBreakdownRead(_FromAttributes):
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


class TradingSummaryRead(_FromAttributes):
    window: WindowRead | None
    profit: ProfitBreakdownRead
    transaction_count: int
    transfer_count: int


class DailyPointRead(_FromAttributes):
    day: date
    revenue: Decimal
    profit: Decimal
    volume: Decimal
    buy_volume: Decimal
    sell_volume: Decimal
    net_volume: Decimal
    transactions: int


class TopPerformerRead(_FromAttributes):
    user_id: str
    name: str
    transactions: int
    profit: Decimal
    profit_margin: float


class PlatformShareRead(_FromAttributes):
    name: str
    volume: Decimal
    percentage: float
    efficiency: float


class RiskMetricsRead(_FromAttributes):
    volatility: float
    max_drawdown: float
    sharpe_ratio: float


class AdvancedAnalyticsRead(_FromAttributes):
    total_revenue: Decimal
    total_volume: Decimal
    total_profit: Decimal
    profit_margin: float
    roi: float
    revenue_change: float
    volume_change: float
    margin_change: float
    traders_change: float
    active_traders: int
    transaction_count: int
    chart_data: list[DailyPointRead]
    top_performers: list[TopPerformerRead]
    platform_analysis: list[PlatformShareRead]
    risk: RiskMetricsRead


class PredictionsRead(_FromAttributes):
    next_period_volume: float
    next_week_profit: float
    growth_trend: float
    risk_level: str
    confidence: int


class AlertRead(_FromAttributes):
    level: str
    title: str
    message: str


class ReferenceRateRead(_FromAttributes):
    rate: Decimal
    source: str
    updated_at: datetime


__all__ = [
    "AdvancedAnalyticsRead",
    "AlertRead",
    "DailyPointRead",
    "PlatformShareRead",
    "PredictionsRead",
    "ProfitBreakdownRead",
    "ReferenceRateRead",
    "RiskMetricsRead",
    "TopPerformerRead",
    "TradingSummaryRead",
    "WindowRead",
]
