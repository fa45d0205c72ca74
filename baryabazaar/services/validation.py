"""Pre-submission trade validation.

``validate_trade`` is pure: it only reads the form, the balance snapshot and the
rules it is given, and reports per-field errors plus non-blocking warnings.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from baryabazaar.core.config import Settings
from baryabazaar.models import TransactionType
from baryabazaar.services.balances import BalanceSnapshot
from baryabazaar.services.rates import ZERO

REQUIRED_FIELDS: dict[str, str] = {
    "user_id": "Trader",
    "bank": "Bank",
    "platform": "Platform",
    "rate": "Rate",
    "usdt_amount": "USDT amount",
    "php_amount": "PHP amount",
}
NUMERIC_FIELDS = ("rate", "usdt_amount", "php_amount")

RATE_DEVIATION = "rate_deviation"
LARGE_TRANSACTION = "large_transaction"


@dataclass(slots=True, frozen=True)
class ValidationRules:
    min_usdt_amount: Decimal = Decimal("0.01")
    max_usdt_amount: Decimal = Decimal("100000")
    rate_deviation_threshold_percent: Decimal = Decimal("5")
    large_transaction_php_threshold: Decimal = Decimal("50000")
    large_transaction_usdt_threshold: Decimal = Decimal("1000")

    @classmethod
    def from_settings(cls, settings: Settings) -> ValidationRules:
        return cls(
            min_usdt_amount=settings.min_usdt_amount,
            max_usdt_amount=settings.max_usdt_amount,
            rate_deviation_threshold_percent=settings.rate_deviation_threshold_percent,
            large_transaction_php_threshold=settings.large_transaction_php_threshold,
            large_transaction_usdt_threshold=settings.large_transaction_usdt_threshold,
        )


@dataclass(slots=True, frozen=True)
class ValidationWarning:
    code: str
    message: str
    requires_acknowledgement: bool = False


@dataclass(slots=True, frozen=True)
class ValidationResult:
    is_valid: bool
    errors: dict[str, str] = field(default_factory=dict)
    warnings: tuple[ValidationWarning, ...] = ()

    @property
    def requires_acknowledgement(self) -> bool:
        return any(warning.requires_acknowledgement for warning in self.warnings)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def validate_trade(
    form: Mapping[str, Any],
    transaction_type: TransactionType,
    balances: BalanceSnapshot,
    *,
    rules: ValidationRules,
    reference_rate: Decimal | None = None,
) -> ValidationResult:
    errors: dict[str, str] = {}
    warnings: list[ValidationWarning] = []

    for name, label in REQUIRED_FIELDS.items():
        if _is_blank(form.get(name)):
            errors[name] = f"{label} is required"

    values: dict[str, Decimal] = {}
    for name in NUMERIC_FIELDS:
        if name in errors:
            continue
        parsed = _parse_decimal(form.get(name))
        if parsed is None:
            errors[name] = f"{REQUIRED_FIELDS[name]} must be a number"
        else:
            values[name] = parsed

    usdt = values.get("usdt_amount")
    php = values.get("php_amount")
    rate = values.get("rate")

    if usdt is not None:
        if usdt < rules.min_usdt_amount:
            errors["usdt_amount"] = f"USDT amount must be at least {rules.min_usdt_amount}"
        elif usdt > rules.max_usdt_amount:
            errors["usdt_amount"] = f"USDT amount must be no more than {rules.max_usdt_amount}"
    if php is not None and php <= ZERO:
        errors["php_amount"] = "PHP amount must be greater than 0"
    if rate is not None and rate <= ZERO:
        errors["rate"] = "Rate must be greater than 0"

    bank = form.get("bank")
    platform = form.get("platform")
    if "bank" not in errors and bank not in balances.assigned_banks:
        errors["bank"] = f"Bank '{bank}' is not assigned to this trader"

    if transaction_type is TransactionType.SELL and php is not None and "php_amount" not in errors and "bank" not in errors:
        available = balances.bank_balances.get(str(bank), ZERO)
        if php > available:
            errors["php_amount"] = f"Insufficient {bank} balance: {available} available"
    if transaction_type is TransactionType.BUY and usdt is not None and "usdt_amount" not in errors and "platform" not in errors:
        available = balances.platform_balances.get(str(platform), ZERO)
        if usdt > available:
            errors["usdt_amount"] = f"Insufficient {platform} balance: {available} USDT available"

    if rate is not None and "rate" not in errors and reference_rate and reference_rate > ZERO:
        deviation = abs(rate - reference_rate) / reference_rate * 100
        if deviation > rules.rate_deviation_threshold_percent:
            warnings.append(
                ValidationWarning(
                    code=RATE_DEVIATION,
                    message=(
                        f"Rate {rate} deviates {deviation:.2f}% from the market rate {reference_rate}"
                    ),
                    requires_acknowledgement=True,
                )
            )

    if (php is not None and php > rules.large_transaction_php_threshold) or (
        usdt is not None and usdt > rules.large_transaction_usdt_threshold
    ):
        warnings.append(
            ValidationWarning(
                code=LARGE_TRANSACTION,
                message="Large transaction: please double-check the amounts before submitting",
            )
        )

    return ValidationResult(is_valid=not errors, errors=errors, warnings=tuple(warnings))


__all__ = [
    "LARGE_TRANSACTION",
    "RATE_DEVIATION",
    "REQUIRED_FIELDS",
    "ValidationResult",
    "ValidationRules",
    "ValidationWarning",
    "validate_trade",
]
