from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

from baryabazaar.models import Transaction, TransactionStatus, TransactionType
from baryabazaar.services.ledger import TransactionInput
from baryabazaar.services.periods import Period
from baryabazaar.services.profit import calculate_realized_profit, profit_by_platform, profit_by_user, summarize

NOW = datetime(2024, 3, 18, 6, 0, tzinfo=timezone.utc)


def trade(
    type: TransactionType,
    usdt: str,
    php: str,
    *,
    fee: str = "0",
    user_id: str = "u-1",
    platform: str = "Binance",
    status: TransactionStatus = TransactionStatus.COMPLETED,
) -> Transaction:
    return Transaction(
        type=type,
        user_id=user_id,
        user_name=user_id,
        usdt_amount=Decimal(usdt),
        php_amount=Decimal(php),
        platform=platform,
        bank="BDO",
        rate=Decimal(php) / Decimal(usdt),
        fee=Decimal(fee),
        timestamp=NOW,
        status=status,
    )


def test_round_trip_example_scenario() -> None:
    result = calculate_realized_profit(
        [trade(TransactionType.BUY, "100", "5600"), trade(TransactionType.SELL, "100", "5700")]
    )

    assert result.average_buy_rate == Decimal("56")
    assert result.average_sell_rate == Decimal("57")
    assert result.matched_volume == Decimal("100")
    assert result.gross_profit == Decimal("100")
    assert result.net_profit == Decimal("100")


def test_fees_reduce_net_but_not_gross_profit() -> None:
    result = calculate_realized_profit(
        [
            trade(TransactionType.BUY, "100", "5600", fee="10"),
            trade(TransactionType.SELL, "100", "5700", fee="20"),
        ]
    )

    assert result.gross_profit == Decimal("100.00")
    assert result.fees == Decimal("30.00")
    assert result.net_profit == Decimal("70.00")


def test_profit_is_floored_at_zero() -> None:
    losing = calculate_realized_profit(
        [trade(TransactionType.BUY, "100", "5700"), trade(TransactionType.SELL, "100", "5600")]
    )
    fee_heavy = calculate_realized_profit(
        [
            trade(TransactionType.BUY, "10", "560"),
            trade(TransactionType.SELL, "10", "570", fee="500"),
        ]
    )

    assert losing.gross_profit == Decimal("0")
    assert losing.net_profit == Decimal("0")
    assert fee_heavy.net_profit == Decimal("0")


def test_profit_is_zero_when_one_side_is_missing() -> None:
    buys_only = calculate_realized_profit([trade(TransactionType.BUY, "100", "5600")])
    sells_only = calculate_realized_profit([trade(TransactionType.SELL, "100", "5700")])

    for result in (buys_only, sells_only):
        assert result.matched_volume == Decimal("0")
        assert result.net_profit == Decimal("0")


def test_matched_volume_is_the_smaller_side() -> None:
    result = calculate_realized_profit(
        [trade(TransactionType.BUY, "200", "11200"), trade(TransactionType.SELL, "50", "2850")]
    )

    assert result.matched_volume == Decimal("50")
    assert result.gross_profit == Decimal("50.00")


def test_pending_and_transfers_are_ignored() -> None:
    result = calculate_realized_profit(
        [
            trade(TransactionType.BUY, "100", "5600"),
            trade(TransactionType.SELL, "100", "5700", status=TransactionStatus.PENDING),
            trade(TransactionType.INTERNAL_TRANSFER, "100", "9000"),
        ]
    )

    assert result.sell_count == 0
    assert result.net_profit == Decimal("0")


def test_profit_grouping_by_user_and_platform() -> None:
    items = [
        trade(TransactionType.BUY, "100", "5600", user_id="alice"),
        trade(TransactionType.SELL, "100", "5700", user_id="alice", platform="OKX"),
        trade(TransactionType.BUY, "10", "560", user_id="bob"),
    ]

    by_user = profit_by_user(items)
    by_platform = profit_by_platform(items)

    assert by_user["alice"].net_profit == Decimal("100.00")
    assert by_user["bob"].net_profit == Decimal("0")
    assert set(by_platform) == {"Binance", "OKX"}
    assert by_platform["OKX"].sell_usdt == Decimal("100")


def test_summarize_counts_transfers_separately() -> None:
    summary = summarize(
        [trade(TransactionType.BUY, "1", "56"), trade(TransactionType.INTERNAL_TRANSFER, "0.000001", "100")]
    )

    assert summary.transaction_count == 2
    assert summary.transfer_count == 1


def test_daily_profit_uses_the_trading_day(ledger, seeded: SimpleNamespace, clock) -> None:
    admin_id = seeded.admin.id
    clock.now = datetime(2024, 3, 17, 16, 59, tzinfo=timezone.utc)  # 00:59 Manila, before reset
    ledger.transactions.add_transaction(
        TransactionInput(TransactionType.BUY, admin_id, Decimal("100"), Decimal("5000"), "Binance", "BDO"),
        "admin@example.com",
    )
    clock.now = datetime(2024, 3, 18, 2, 0, tzinfo=timezone.utc)
    ledger.transactions.add_transaction(
        TransactionInput(TransactionType.BUY, admin_id, Decimal("100"), Decimal("5600"), "Binance", "BDO"),
        "admin@example.com",
    )
    clock.advance(hours=1)
    ledger.transactions.add_transaction(
        TransactionInput(TransactionType.SELL, admin_id, Decimal("100"), Decimal("5700"), "Binance", "BDO"),
        "admin@example.com",
    )
    clock.advance(hours=1)

    daily = ledger.profit.daily_profit()
    today = ledger.profit.profit_for_period(Period.TODAY)

    assert daily.profit.buy_count == 1
    assert daily.profit.net_profit == Decimal("100.00")
    assert today.transaction_count == 3
    assert daily.window.start == datetime(2024, 3, 17, 17, 0, tzinfo=timezone.utc)
    assert daily.window.duration == timedelta(days=1)
