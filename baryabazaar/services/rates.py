"""Volume-weighted rate helpers."""
from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

ZERO = Decimal("0")
PHP_QUANTUM = Decimal("0.01")
USDT_QUANTUM = Decimal("0.000001")
RATE_QUANTUM = Decimal("0.000001")


class Leg(Protocol):
    usdt_amount: Decimal
    php_amount: Decimal


def to_decimal(value: object) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    return Decimal(str(value))


def quantize_php(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(PHP_QUANTUM, rounding=ROUND_HALF_UP)


def quantize_usdt(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(USDT_QUANTUM, rounding=ROUND_HALF_UP)


def quantize_rate(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)


def leg_totals(legs: Iterable[Leg]) -> tuple[Decimal, Decimal]:
    """Return ``(Σusdt, Σphp)`` over the given legs."""

    usdt_total = ZERO
    php_total = ZERO
    for leg in legs:
        usdt_total += to_decimal(leg.usdt_amount)
        php_total += to_decimal(leg.php_amount)
    return usdt_total, php_total


def weighted_average_rate(legs: Iterable[Leg]) -> Decimal:
    """Σphp / Σusdt, or zero when no USDT volume is present."""

    usdt_total, php_total = leg_totals(legs)
    if usdt_total <= ZERO:
        return ZERO
    return php_total / usdt_total


def derive_rate(usdt_amount: Decimal, php_amount: Decimal) -> Decimal:
    usdt = to_decimal(usdt_amount)
    if usdt <= ZERO:
        return ZERO
    return quantize_rate(to_decimal(php_amount) / usdt)


__all__ = [
    "Leg",
    "PHP_QUANTUM",
    "RATE_QUANTUM",
    "USDT_QUANTUM",
    "ZERO",
    "derive_rate",
    "leg_totals",
    "quantize_php",
    "quantize_rate",
    "quantize_usdt",
    "to_decimal",
    "weighted_average_rate",
]
