"""System log and HR session log endpoints."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query

from baryabazaar.api.deps import get_ledger
from baryabazaar.api.routes.auth import AuthenticatedUser, require_permission
from baryabazaar.models import AuditLogType
from baryabazaar.schemas.admin import AuditLogRead, SessionLogRead, UserRead
from baryabazaar.services.audit import AuditLogFilters
from baryabazaar.services.facade import Ledger
from baryabazaar.services.periods import TimeWindow

router = APIRouter()

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@router.get("/audit-logs", response_model=list[AuditLogRead])
def list_audit_logs(
    type: AuditLogType | None = None,
    actor: str | None = None,
    target: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = Query(default=200, ge=1, le=5000),
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("view_all_data")),
) -> list[AuditLogRead]:
    filters = AuditLogFilters(type=type, actor=actor, target=target, since=since, until=until, limit=limit)
    return [AuditLogRead.model_validate(item) for item in ledger.audit.list_entries(filters)]


@router.get("/hr-logs", response_model=list[SessionLogRead])
def list_session_logs(
    user_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = Query(default=200, ge=1, le=5000),
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("view_hr_logs")),
) -> list[SessionLogRead]:
    window = None
    if since is not None or until is not None:
        window = TimeWindow(since or EPOCH, until or ledger.clock())
    entries = ledger.hr.list_logs(window=window, user_id=user_id, limit=limit)
    return [SessionLogRead.model_validate(item) for item in entries]


@router.get("/hr-logs/active", response_model=list[UserRead])
def active_users(
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("view_hr_logs")),
) -> list[UserRead]:
    return [UserRead.model_validate(item) for item in ledger.hr.active_users()]


__all__ = ["router"]
