"""Administration endpoints: users, roles, platforms, banks, settings and end of day."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from baryabazaar.api.deps import commit, get_ledger
from baryabazaar.api.routes.auth import AuthenticatedUser, get_current_user, hash_password, require_permission
from baryabazaar.schemas.admin import (
    BankAssignment,
    BankRead,
    EndOfDayReportRead,
    EndOfDayRequest,
    NamedResourceCreate,
    PlatformCreate,
    ProfitCollectionRequest,
    RoleChange,
    RoleRead,
    SystemSettingsRead,
    SystemSettingsUpdate,
    UserCreate,
    UserProfitPreviewRead,
    UserRead,
    UserUpdate,
)
from baryabazaar.schemas.balance import PlatformRead
from baryabazaar.services.end_of_day import ProfitCollection
from baryabazaar.services.facade import Ledger
from baryabazaar.services.roles import RoleDefinition, can_manage_role, manageable_roles, role_hierarchy
from baryabazaar.services.system_settings import SettingsUpdate

router = APIRouter()


def _role_read(definition: RoleDefinition) -> RoleRead:
    return RoleRead(
        key=definition.key,
        name=definition.name,
        level=definition.level,
        permissions=sorted(definition.permissions),
        description=definition.description,
    )


def _ensure_manageable(user: AuthenticatedUser, ledger: Ledger, user_id: str) -> None:
    target = ledger.registry.get_user(user_id)
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if target.id != user.id and not can_manage_role(user.role, target.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot manage this account")


# -- users -----------------------------------------------------------------


@router.get("/users", response_model=list[UserRead])
def list_users(
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("view_all_data", "manage_users")),
) -> list[UserRead]:
    return [UserRead.model_validate(item) for item in ledger.registry.list_users()]


@router.post("/users", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("manage_users")),
) -> UserRead:
    if "@" not in payload.email:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid email address")
    created = ledger.registry.add_user(
        name=payload.name,
        email=payload.email,
        role=payload.role,
        assigned_banks=payload.assigned_banks,
        actor=user.email,
        actor_role=user.role,
        hashed_password=hash_password(payload.password) if payload.password else None,
    )
    commit(ledger.session)
    return UserRead.model_validate(created)


@router.patch("/users/{user_id}", response_model=UserRead)
def update_user(
    user_id: str,
    payload: UserUpdate,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("manage_users")),
) -> UserRead:
    _ensure_manageable(user, ledger, user_id)
    updated = ledger.registry.update_user(
        user_id,
        actor=user.email,
        name=payload.name,
        email=payload.email,
        reason=payload.reason,
    )
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    commit(ledger.session)
    return UserRead.model_validate(updated)


@router.put("/users/{user_id}/banks", response_model=UserRead)
def assign_banks(
    user_id: str,
    payload: BankAssignment,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("manage_users", "manage_banks")),
) -> UserRead:
    _ensure_manageable(user, ledger, user_id)
    updated = ledger.registry.update_user(
        user_id,
        actor=user.email,
        assigned_banks=payload.banks,
        reason=payload.reason,
    )
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    commit(ledger.session)
    return UserRead.model_validate(updated)


@router.put("/users/{user_id}/role", response_model=UserRead)
def change_role(
    user_id: str,
    payload: RoleChange,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("manage_users")),
) -> UserRead:
    if user_id == user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot change your own role")
    updated = ledger.registry.change_role(
        user_id,
        payload.role,
        actor=user.email,
        actor_role=user.role,
        reason=payload.reason,
    )
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    commit(ledger.session)
    return UserRead.model_validate(updated)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    reason: str | None = None,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("manage_users")),
) -> None:
    if user_id == user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot delete your own account")
    _ensure_manageable(user, ledger, user_id)
    ledger.registry.delete_user(user_id, actor=user.email, reason=reason)
    commit(ledger.session)


# -- roles -----------------------------------------------------------------


@router.get("/roles", response_model=list[RoleRead])
def list_roles(user: AuthenticatedUser = Depends(get_current_user)) -> list[RoleRead]:
    return [_role_read(item) for item in role_hierarchy()]


@router.get("/roles/manageable", response_model=list[RoleRead])
def list_manageable_roles(user: AuthenticatedUser = Depends(get_current_user)) -> list[RoleRead]:
    return [_role_read(item) for item in manageable_roles(user.role)]


# -- platforms and banks -------------------------------------------------


@router.get("/platforms", response_model=list[PlatformRead])
def list_platforms(
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(get_current_user),
) -> list[PlatformRead]:
    return [PlatformRead.model_validate(item) for item in ledger.registry.list_platforms()]


@router.post("/platforms", response_model=PlatformRead, status_code=status.HTTP_201_CREATED)
def create_platform(
    payload: PlatformCreate,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("manage_platforms")),
) -> PlatformRead:
    platform = ledger.registry.add_platform(payload.name, actor=user.email, initial_balance=payload.initial_balance)
    commit(ledger.session)
    return PlatformRead.model_validate(platform)


@router.delete("/platforms/{name}", status_code=status.HTTP_204_NO_CONTENT)
def delete_platform(
    name: str,
    reason: str | None = None,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("manage_platforms")),
) -> None:
    if ledger.registry.delete_platform(name, actor=user.email, reason=reason) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Platform not found")
    commit(ledger.session)


@router.get("/banks", response_model=list[BankRead])
def list_banks(
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(get_current_user),
) -> list[BankRead]:
    return [BankRead.model_validate(item) for item in ledger.registry.list_banks()]


@router.post("/banks", response_model=BankRead, status_code=status.HTTP_201_CREATED)
def create_bank(
    payload: NamedResourceCreate,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("manage_banks")),
) -> BankRead:
    bank = ledger.registry.add_bank(payload.name, actor=user.email)
    commit(ledger.session)
    return BankRead.model_validate(bank)


@router.delete("/banks/{name}", status_code=status.HTTP_204_NO_CONTENT)
def delete_bank(
    name: str,
    reason: str | None = None,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("manage_banks")),
) -> None:
    if ledger.registry.delete_bank(name, actor=user.email, reason=reason) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Bank not found")
    commit(ledger.session)


# -- system settings -------------------------------------------------------


@router.get("/settings", response_model=SystemSettingsRead)
def read_settings(
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(get_current_user),
) -> SystemSettingsRead:
    return SystemSettingsRead.model_validate(ledger.system_settings.get())


@router.put("/settings", response_model=SystemSettingsRead)
def update_settings(
    payload: SystemSettingsUpdate,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("manage_config")),
) -> SystemSettingsRead:
    values = payload.model_dump(exclude_unset=True, exclude={"reason"})
    record = ledger.system_settings.update(SettingsUpdate(**values), actor=user.email, reason=payload.reason)
    commit(ledger.session)
    return SystemSettingsRead.model_validate(record)


# -- end of day ------------------------------------------------------------


@router.get("/eod/preview", response_model=list[UserProfitPreviewRead])
def preview_end_of_day(
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("execute_eod")),
) -> list[UserProfitPreviewRead]:
    return [
        UserProfitPreviewRead(
            user_id=item.user_id,
            name=item.name,
            assigned_banks=list(item.assigned_banks),
            net_profit=item.profit.net_profit,
            gross_profit=item.profit.gross_profit,
            buy_count=item.profit.buy_count,
            sell_count=item.profit.sell_count,
        )
        for item in ledger.end_of_day.preview()
    ]


@router.post("/eod", response_model=EndOfDayReportRead)
def execute_end_of_day(
    payload: EndOfDayRequest,
    ledger: Ledger = Depends(get_ledger),
    user: AuthenticatedUser = Depends(require_permission("execute_eod")),
) -> EndOfDayReportRead:
    report = ledger.end_of_day.execute(
        [ProfitCollection(user_id=item.user_id, bank=item.bank, amount=item.amount) for item in payload.collections],
        user.email,
        note=payload.note,
    )
    response = EndOfDayReportRead(
        window_start=report.window.start,
        window_end=report.window.end,
        collections=[
            ProfitCollectionRequest(user_id=item.user_id, bank=item.bank, amount=item.amount)
            for item in report.collections
        ],
        total_collected=report.total_collected,
        total_php=report.total_php,
        total_usdt=report.total_usdt,
        transaction_count=report.transaction_count,
    )
    commit(ledger.session)
    return response


__all__ = ["router"]
