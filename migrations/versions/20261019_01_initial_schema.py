"""Initial ledger schema."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op

revision = "20261019_01"
down_revision = None
branch_labels = None
depends_on: Iterable[str] | None = None

ENUM_NAMES = ("audit_log_type", "transaction_status", "transaction_type", "user_role")


def _drop_enum(name: str) -> None:
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        op.execute(sa.text(f"DROP TYPE IF EXISTS {name}"))


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:  # noqa: D401
    """Create ledger tables and constraints."""

    user_role = sa.Enum("super_admin", "admin", "supervisor", "analyst", name="user_role")
    transaction_type = sa.Enum("BUY", "SELL", "INTERNAL_TRANSFER", name="transaction_type")
    transaction_status = sa.Enum("completed", "pending", "rejected", name="transaction_status")
    audit_log_type = sa.Enum(
        "ROLE_CHANGE",
        "BALANCE_ADJUSTMENT",
        "TRANSACTION_CREATED",
        "TRANSACTION_EDIT",
        "TRANSACTION_DELETE",
        "USER_ADDED",
        "USER_UPDATED",
        "USER_DELETED",
        "PLATFORM_ADDED",
        "PLATFORM_DELETED",
        "BANK_ADDED",
        "BANK_DELETED",
        "CONFIG_UPDATED",
        "END_OF_DAY",
        name="audit_log_type",
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, unique=True),
        sa.Column("hashed_password", sa.String(length=255)),
        sa.Column("role", user_role, nullable=False, server_default="analyst"),
        sa.Column("assigned_banks", sa.JSON(), nullable=False),
        sa.Column("is_logged_in", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("login_time", sa.DateTime()),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "banks",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        "platforms",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False, unique=True),
        sa.Column("balance", sa.Numeric(20, 6), nullable=False, server_default="0"),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "user_bank_balances",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("bank", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "bank", name="uq_user_bank_balances_user_bank"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("type", transaction_type, nullable=False),
        sa.Column("user_id", sa.String(length=36)),
        sa.Column("user_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("usdt_amount", sa.Numeric(20, 6), nullable=False, server_default="0"),
        sa.Column("php_amount", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("platform", sa.String(length=128)),
        sa.Column("bank", sa.String(length=128)),
        sa.Column("rate", sa.Numeric(18, 6), nullable=False, server_default="0"),
        sa.Column("fee", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("note", sa.Text()),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("status", transaction_status, nullable=False, server_default="completed"),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("usdt_amount >= 0", name="ck_transactions_usdt_amount_non_negative"),
        sa.CheckConstraint("php_amount >= 0", name="ck_transactions_php_amount_non_negative"),
        sa.CheckConstraint("rate >= 0", name="ck_transactions_rate_non_negative"),
        sa.CheckConstraint("fee >= 0", name="ck_transactions_fee_non_negative"),
    )
    op.create_index("ix_transactions_timestamp", "transactions", ["timestamp"])
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])

    op.create_table(
        "system_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("type", audit_log_type, nullable=False),
        sa.Column("actor", sa.String(length=255), nullable=False),
        sa.Column("target", sa.String(length=255)),
        sa.Column("reason", sa.Text()),
        sa.Column("old_value", sa.JSON()),
        sa.Column("new_value", sa.JSON()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_system_logs_created_at", "system_logs", ["created_at"])
    op.create_index("ix_system_logs_type", "system_logs", ["type"])

    op.create_table(
        "hr_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36)),
        sa.Column("user_name", sa.String(length=255), nullable=False),
        sa.Column("login_time", sa.DateTime(), nullable=False),
        sa.Column("logout_time", sa.DateTime()),
        sa.Column("duration_seconds", sa.Integer()),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_hr_logs_login_time", "hr_logs", ["login_time"])

    op.create_table(
        "system_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("daily_reset_time", sa.String(length=5), nullable=False, server_default="01:00"),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="Asia/Manila"),
        sa.Column("total_invested_funds", sa.Numeric(18, 2), nullable=False, server_default="0"),
        sa.Column("rate_refresh_interval_ms", sa.Integer(), nullable=False, server_default="300000"),
        sa.Column("notification_poll_interval_ms", sa.Integer(), nullable=False, server_default="30000"),
        sa.Column("notifications_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("large_transaction_alerts", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("low_balance_alerts", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("lock_version", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )


def downgrade() -> None:  # noqa: D401
    """Drop all ledger tables."""

    op.drop_table("system_settings")
    op.drop_index("ix_hr_logs_login_time", table_name="hr_logs")
    op.drop_table("hr_logs")
    op.drop_index("ix_system_logs_type", table_name="system_logs")
    op.drop_index("ix_system_logs_created_at", table_name="system_logs")
    op.drop_table("system_logs")
    op.drop_index("ix_transactions_user_id", table_name="transactions")
    op.drop_index("ix_transactions_timestamp", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("user_bank_balances")
    op.drop_table("platforms")
    op.drop_table("banks")
    op.drop_table("users")

    for enum_name in ENUM_NAMES:
        _drop_enum(enum_name)
