"""Translate ledger exceptions into HTTP responses."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from baryabazaar.services.errors import (
    BalanceConcurrencyError,
    BankInUseError,
    DuplicateResourceError,
    LedgerError,
    MissingReasonError,
    NegativeBalanceError,
    PlatformNotEmptyError,
    RoleAssignmentError,
    TransferLockedError,
    UserNotDeletableError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: tuple[tuple[type[LedgerError], int], ...] = (
    (BalanceConcurrencyError, status.HTTP_409_CONFLICT),
    (NegativeBalanceError, status.HTTP_409_CONFLICT),
    (PlatformNotEmptyError, status.HTTP_409_CONFLICT),
    (BankInUseError, status.HTTP_409_CONFLICT),
    (UserNotDeletableError, status.HTTP_409_CONFLICT),
    (DuplicateResourceError, status.HTTP_409_CONFLICT),
    (TransferLockedError, status.HTTP_409_CONFLICT),
    (RoleAssignmentError, status.HTTP_403_FORBIDDEN),
    (MissingReasonError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def status_for(exc: LedgerError) -> int:
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    code = status_for(exc)
    logger.info(
        "ledger operation rejected",
        extra={"path": request.url.path, "error": type(exc).__name__, "status": code},
    )
    return JSONResponse(status_code=code, content={"detail": str(exc), "error": type(exc).__name__})


def register_exception_handlers(application: FastAPI) -> None:
    application.add_exception_handler(LedgerError, ledger_error_handler)  # type: ignore[arg-type]


__all__ = ["ledger_error_handler", "register_exception_handlers", "status_for"]
