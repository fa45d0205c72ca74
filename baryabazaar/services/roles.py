"""Static role and permission table used for authorization checks."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from baryabazaar.models import UserRole
from baryabazaar.services.errors import RoleAssignmentError

ALL_ACCESS = "all_access"


@dataclass(slots=True, frozen=True)
class RoleDefinition:
    key: UserRole
    name: str
    level: int
    permissions: frozenset[str]
    description: str


ROLE_DEFINITIONS: dict[UserRole, RoleDefinition] = {
    UserRole.SUPER_ADMIN: RoleDefinition(
        key=UserRole.SUPER_ADMIN,
        name="Super Admin",
        level=1,
        permissions=frozenset(
            {
                ALL_ACCESS,
                "manage_users",
                "manage_roles",
                "manage_system",
                "view_all_data",
                "edit_all_data",
                "delete_all_data",
                "manage_platforms",
                "manage_banks",
                "adjust_balances",
                "execute_eod",
                "view_hr_logs",
                "export_data",
                "manage_config",
            }
        ),
        description="Full system access with all privileges",
    ),
    UserRole.ADMIN: RoleDefinition(
        key=UserRole.ADMIN,
        name="Admin",
        level=2,
        permissions=frozenset(
            {
                "manage_users",
                "view_all_data",
                "edit_transactions",
                "delete_transactions",
                "manage_platforms",
                "manage_banks",
                "adjust_balances",
                "execute_eod",
                "view_hr_logs",
                "export_data",
                "trade_all_users",
                "internal_transfers",
            }
        ),
        description="Administrative access with user and transaction management",
    ),
    UserRole.SUPERVISOR: RoleDefinition(
        key=UserRole.SUPERVISOR,
        name="Supervisor",
        level=3,
        permissions=frozenset(
            {
                "view_all_data",
                "edit_own_transactions",
                "execute_eod",
                "view_hr_logs",
                "export_data",
                "trade_assigned_users",
                "internal_transfers",
                "view_analytics",
            }
        ),
        description="Supervisory access with limited administrative functions",
    ),
    UserRole.ANALYST: RoleDefinition(
        key=UserRole.ANALYST,
        name="Analyst",
        level=4,
        permissions=frozenset({"view_own_data", "trade_own_account", "view_analytics", "export_own_data"}),
        description="Basic trading access with limited data visibility",
    ),
}

_UNKNOWN_LEVEL = 999


def _coerce(role: UserRole | str | None) -> UserRole | None:
    if role is None:
        return None
    try:
        return UserRole(role)
    except ValueError:
        return None


def get_role(role: UserRole | str | None) -> RoleDefinition | None:
    key = _coerce(role)
    return ROLE_DEFINITIONS.get(key) if key is not None else None


def has_permission(role: UserRole | str | None, permission: str) -> bool:
    definition = get_role(role)
    if definition is None:
        return False
    return ALL_ACCESS in definition.permissions or permission in definition.permissions


def has_any_permission(role: UserRole | str | None, permissions: Iterable[str]) -> bool:
    return any(has_permission(role, permission) for permission in permissions)


def _level(role: UserRole | str | None) -> int:
    definition = get_role(role)
    return definition.level if definition else _UNKNOWN_LEVEL


def can_manage_role(current: UserRole | str | None, target: UserRole | str | None) -> bool:
    """A role manages only roles strictly below it in the hierarchy."""
    return _level(current) < _level(target)


def manageable_roles(current: UserRole | str | None) -> list[RoleDefinition]:
    return [definition for definition in role_hierarchy() if can_manage_role(current, definition.key)]


def role_hierarchy() -> list[RoleDefinition]:
    return sorted(ROLE_DEFINITIONS.values(), key=lambda definition: definition.level)


def validate_role_assignment(assigner: UserRole | str | None, target: UserRole | str | None) -> UserRole:
    key = _coerce(target)
    if key is None:
        raise RoleAssignmentError("Invalid target role")
    if not can_manage_role(assigner, key):
        raise RoleAssignmentError("Insufficient permissions to assign this role")
    return key


def data_access_level(role: UserRole | str | None, target_user_id: str | None, current_user_id: str | None) -> str:
    if has_permission(role, "view_all_data"):
        return "full"
    if target_user_id is not None and target_user_id == current_user_id and has_permission(role, "view_own_data"):
        return "own"
    return "none"


def feature_flags(role: UserRole | str | None) -> dict[str, bool]:
    return {
        "can_view_all_users": has_permission(role, "view_all_data"),
        "can_edit_users": has_permission(role, "manage_users"),
        "can_delete_users": has_permission(role, "manage_users"),
        "can_manage_roles": has_permission(role, "manage_roles"),
        "can_adjust_balances": has_permission(role, "adjust_balances"),
        "can_execute_eod": has_permission(role, "execute_eod"),
        "can_view_hr_logs": has_permission(role, "view_hr_logs"),
        "can_manage_platforms": has_permission(role, "manage_platforms"),
        "can_manage_banks": has_permission(role, "manage_banks"),
        "can_internal_transfer": has_permission(role, "internal_transfers"),
        "can_export_data": has_permission(role, "export_data"),
        "can_manage_config": has_permission(role, "manage_config"),
        "can_trade_for_others": has_any_permission(role, ("trade_all_users", "trade_assigned_users")),
    }


__all__ = [
    "ALL_ACCESS",
    "ROLE_DEFINITIONS",
    "RoleDefinition",
    "can_manage_role",
    "data_access_level",
    "feature_flags",
    "get_role",
    "has_any_permission",
    "has_permission",
    "manageable_roles",
    "role_hierarchy",
    "validate_role_assignment",
]
