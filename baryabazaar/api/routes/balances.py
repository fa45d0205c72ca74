"""Balance overview, adjustment and reconciliation endpoints."""
from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status

from baryabazaar.api.deps import commit, get_ledger
from baryabazaar.api.routes.auth import AuthenticatedUser, get_current_user, require_permission
from baryabazaar.schemas.balance import (
    BalanceDriftRead,
    BalanceOverview,
    BankBalanceRead,
    PlatformBalanceAdjustment,
    PlatformRead,
    ReconciliationRead,
    UserBalanceAdjustment,
)
from baryabazaar.services.facade import Ledger

router = APIRouter(prefix="/balances")


@router.get("", response_model=BalanceOverview)
def balance_overview(
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("view_all_data")),
) -> BalanceOverview:
    projector = ledger.balances
    return BalanceOverview(
        total_company_usdt=projector.get_total_company_usdt(),
        average_buy_rate=projector.get_average_buy_rate(),
        average_sell_rate=projector.get_average_sell_rate(),
        platforms=projector.get_platform_balances(),
        users=projector.get_user_balances(),
    )


@router.get("/users/{user_id}", response_model=dict[str, Decimal])
def user_balances(
    user_id: str,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(get_current_user),
) -> dict[str, Decimal]:
    if user_id != user.id and not user.can("view_all_data"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    target = ledger.registry.get_user(user_id)
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return target.balance_map()


@router.put("/users", response_model=BankBalanceRead)
def adjust_user_balance(
    payload: UserBalanceAdjustment,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("adjust_balances")),
) -> BankBalanceRead:
    row = ledger.balances.adjust_user_balance(
        payload.user_id,
        payload.bank,
        payload.amount,
        payload.reason,
        user.email,
        expected_version=payload.expected_version,
        allow_negative=payload.allow_negative,
    )
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    commit(ledger.session)
    return BankBalanceRead.model_validate(row)


@router.put("/platforms/{name}", response_model=PlatformRead)
def adjust_platform_balance(
    name: str,
    payload: PlatformBalanceAdjustment,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("adjust_balances")),
) -> PlatformRead:
    platform = ledger.balances.adjust_company_usdt_balance(
        name,
        payload.amount,
        payload.reason,
        user.email,
        expected_version=payload.expected_version,
        allow_negative=payload.allow_negative,
    )
    if platform is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Platform not found")
    commit(ledger.session)
    return PlatformRead.model_validate(platform)


@router.get("/reconcile", response_model=ReconciliationRead)
def reconcile(
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("adjust_balances")),
) -> ReconciliationRead:
    report = ledger.balances.reconcile()
    return ReconciliationRead(
        is_consistent=report.is_consistent,
        drifts=[
            BalanceDriftRead(
                kind=item.kind,
                key=item.key,
                stored=item.stored,
                replayed=item.replayed,
                difference=item.difference,
            )
            for item in report.drifts
        ],
    )


__all__ = ["router"]
