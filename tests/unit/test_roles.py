from __future__ import annotations

import pytest

from baryabazaar.models import UserRole
from baryabazaar.services.errors import RoleAssignmentError
from baryabazaar.services.roles import (
    can_manage_role,
    data_access_level,
    feature_flags,
    has_any_permission,
    has_permission,
    manageable_roles,
    role_hierarchy,
    validate_role_assignment,
)


def test_hierarchy_is_ordered_by_level() -> None:
    assert [item.key for item in role_hierarchy()] == [
        UserRole.SUPER_ADMIN,
        UserRole.ADMIN,
        UserRole.SUPERVISOR,
        UserRole.ANALYST,
    ]


def test_super_admin_has_every_permission() -> None:
    assert has_permission(UserRole.SUPER_ADMIN, "manage_config")
    assert has_permission(UserRole.SUPER_ADMIN, "trade_all_users")
    assert has_permission("super_admin", "anything_new")


@pytest.mark.parametrize(
    ("role", "permission", "expected"),
    [
        (UserRole.ADMIN, "adjust_balances", True),
        (UserRole.ADMIN, "manage_config", False),
        (UserRole.SUPERVISOR, "trade_assigned_users", True),
        (UserRole.SUPERVISOR, "delete_transactions", False),
        (UserRole.ANALYST, "trade_own_account", True),
        (UserRole.ANALYST, "view_all_data", False),
        ("unknown", "view_own_data", False),
        (None, "view_own_data", False),
    ],
)
def test_permission_table(role: UserRole | str | None, permission: str, expected: bool) -> None:
    assert has_permission(role, permission) is expected


def test_any_permission() -> None:
    assert has_any_permission(UserRole.ANALYST, ("trade_all_users", "trade_own_account"))
    assert not has_any_permission(UserRole.ANALYST, ("manage_users", "execute_eod"))


def test_manage_only_strictly_lower_roles() -> None:
    assert can_manage_role(UserRole.ADMIN, UserRole.SUPERVISOR)
    assert not can_manage_role(UserRole.ADMIN, UserRole.ADMIN)
    assert not can_manage_role(UserRole.SUPERVISOR, UserRole.ADMIN)
    assert not can_manage_role(UserRole.ANALYST, UserRole.ANALYST)
    assert [item.key for item in manageable_roles(UserRole.ADMIN)] == [UserRole.SUPERVISOR, UserRole.ANALYST]
    assert manageable_roles(UserRole.ANALYST) == []


def test_role_assignment_validation() -> None:
    assert validate_role_assignment(UserRole.SUPER_ADMIN, "admin") is UserRole.ADMIN
    with pytest.raises(RoleAssignmentError):
        validate_role_assignment(UserRole.ADMIN, UserRole.ADMIN)
    with pytest.raises(RoleAssignmentError):
        validate_role_assignment(UserRole.SUPER_ADMIN, "owner")


def test_data_access_levels() -> None:
    assert data_access_level(UserRole.SUPERVISOR, "other", "me") == "full"
    assert data_access_level(UserRole.ANALYST, "me", "me") == "own"
    assert data_access_level(UserRole.ANALYST, "other", "me") == "none"


def test_feature_flags_follow_permissions() -> None:
    admin = feature_flags(UserRole.ADMIN)
    analyst = feature_flags(UserRole.ANALYST)

    assert admin["can_adjust_balances"] and admin["can_trade_for_others"]
    assert not admin["can_manage_config"]
    assert feature_flags(UserRole.SUPER_ADMIN)["can_manage_config"]
    assert not any(analyst.values())
