"""Domain errors raised by ledger services."""
from __future__ import annotations


class LedgerError(RuntimeError):
    """Base class for ledger invariant violations."""


class MissingReasonError(LedgerError):
    """Raised when an edit or delete is attempted without a reason."""


class InvalidTransactionError(LedgerError):
    """Raised when a transaction record violates amount or rate invariants."""


class NegativeBalanceError(LedgerError):
    """Raised when a mutation would drive a balance below zero without override."""


class BalanceConcurrencyError(LedgerError):
    """Raised when optimistic locking detects a concurrent balance update."""


class UnknownPlatformError(LedgerError):
    """Raised when a platform name is not registered."""


class UnknownBankError(LedgerError):
    """Raised when a bank name is not registered."""


class BankNotAssignedError(LedgerError):
    """Raised when a user operates a bank they are not assigned to."""


class PlatformNotEmptyError(LedgerError):
    """Raised when removing a platform that still holds USDT."""


class BankInUseError(LedgerError):
    """Raised when removing a bank in which a user holds a non-zero balance."""


class UserNotDeletableError(LedgerError):
    """Raised when deleting a user with balances or pending transactions."""


class RoleAssignmentError(LedgerError):
    """Raised when an actor may not grant or manage the requested role."""


class DuplicateResourceError(LedgerError):
    """Raised when a user email, platform or bank name already exists."""


class InvalidSettingError(LedgerError):
    """Raised when a system setting value cannot be parsed."""


class TransferLockedError(LedgerError):
    """Raised when an internal transfer record is edited or deleted in place."""


__all__ = [
    "BalanceConcurrencyError",
    "BankInUseError",
    "BankNotAssignedError",
    "DuplicateResourceError",
    "InvalidSettingError",
    "InvalidTransactionError",
    "LedgerError",
    "MissingReasonError",
    "NegativeBalanceError",
    "PlatformNotEmptyError",
    "RoleAssignmentError",
    "TransferLockedError",
    "UnknownBankError",
    "UnknownPlatformError",
    "UserNotDeletableError",
]
