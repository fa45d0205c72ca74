"""Profit, analytics and reference rate endpoints."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from baryabazaar.api.deps import commit, get_ledger
from baryabazaar.api.routes.auth import AuthenticatedUser, get_current_user, require_permission
from baryabazaar.models import TransactionType
from baryabazaar.schemas.analytics import (
    AdvancedAnalyticsRead,
    AlertRead,
    PredictionsRead,
    ReferenceRateRead,
    TradingSummaryRead,
)
from baryabazaar.services.analytics import AdvancedAnalytics, AnalyticsFilters, generate_alerts, generate_predictions
from baryabazaar.services.facade import Ledger
from baryabazaar.services.periods import Period

router = APIRouter()

ANALYTICS_PERMISSIONS = ("view_analytics", "view_all_data")


def _analytics(
    ledger: Ledger,
    user: AuthenticatedUser,
    *,
    days: int,
    user_ids: list[str],
    platforms: list[str],
    types: list[TransactionType],
    min_amount: Decimal | None,
    max_amount: Decimal | None,
) -> AdvancedAnalytics:
    if not user.can("view_all_data"):
        user_ids = [user.id]
    filters = AnalyticsFilters(
        user_ids=tuple(user_ids),
        platforms=tuple(platforms),
        types=tuple(types),
        min_amount=min_amount,
        max_amount=max_amount,
    )
    return ledger.analytics.advanced_analytics(days, filters)


@router.get("/analytics/profit", response_model=TradingSummaryRead)
def period_profit(
    period: Period = Period.TODAY,
    start: datetime | None = None,
    end: datetime | None = None,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission(*ANALYTICS_PERMISSIONS)),
) -> TradingSummaryRead:
    try:
        summary = ledger.profit.profit_for_period(period, start=start, end=end)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return TradingSummaryRead.model_validate(summary)


@router.get("/analytics/daily-profit", response_model=TradingSummaryRead)
def daily_profit(
    user_id: str | None = None,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(get_current_user),
) -> TradingSummaryRead:
    if not user.can("view_all_data"):
        if user_id not in (None, user.id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        user_id = user.id
    return TradingSummaryRead.model_validate(ledger.profit.daily_profit(user_id=user_id))


@router.get("/analytics/advanced", response_model=AdvancedAnalyticsRead)
def advanced_analytics(
    days: int = Query(default=7, ge=1, le=365),
    user_ids: list[str] = Query(default=[]),
    platforms: list[str] = Query(default=[]),
    types: list[TransactionType] = Query(default=[]),
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission(*ANALYTICS_PERMISSIONS)),
) -> AdvancedAnalyticsRead:
    result = _analytics(
        ledger,
        user,
        days=days,
        user_ids=user_ids,
        platforms=platforms,
        types=types,
        min_amount=min_amount,
        max_amount=max_amount,
    )
    return AdvancedAnalyticsRead.model_validate(result)


@router.get("/analytics/predictions", response_model=PredictionsRead)
def predictions(
    days: int = Query(default=7, ge=1, le=365),
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission(*ANALYTICS_PERMISSIONS)),
) -> PredictionsRead:
    result = _analytics(
        ledger, user, days=days, user_ids=[], platforms=[], types=[], min_amount=None, max_amount=None
    )
    return PredictionsRead.model_validate(generate_predictions(result))


@router.get("/analytics/alerts", response_model=list[AlertRead])
def alerts(
    days: int = Query(default=7, ge=1, le=365),
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission(*ANALYTICS_PERMISSIONS)),
) -> list[AlertRead]:
    result = _analytics(
        ledger, user, days=days, user_ids=[], platforms=[], types=[], min_amount=None, max_amount=None
    )
    items = generate_alerts(
        result,
        platform_balances=ledger.balances.get_platform_balances(),
        low_balance_threshold=ledger.settings.low_balance_threshold,
    )
    return [AlertRead.model_validate(item) for item in items]


@router.get("/rates/current", response_model=ReferenceRateRead)
def current_rate(user: AuthenticatedUser = Depends(get_current_user), ledger: Ledger = Depends(get_ledger)) -> ReferenceRateRead:
    return ReferenceRateRead.model_validate(ledger.reference_rate())


@router.post("/rates/refresh", response_model=ReferenceRateRead)
def refresh_rate(
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("manage_config")),
) -> ReferenceRateRead:
    rate = ledger.refresh_reference_rate()
    commit(ledger.session)
    return ReferenceRateRead.model_validate(rate)


__all__ = ["router"]
