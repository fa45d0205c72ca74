"""Persist the refreshed reference rate on the settings row."""
from __future__ import annotations

from collections.abc import Iterable

import sqlalchemy as sa
from alembic import op

revision = "20261019_02"
down_revision = "20261019_01"
branch_labels = None
depends_on: Iterable[str] | None = None


def upgrade() -> None:  # noqa: D401
    """Add reference rate columns to system_settings."""

    with op.batch_alter_table("system_settings") as batch:
        batch.add_column(sa.Column("reference_rate", sa.Numeric(18, 6), nullable=True))
        batch.add_column(sa.Column("reference_rate_source", sa.String(length=32), nullable=True))
        batch.add_column(sa.Column("reference_rate_updated_at", sa.DateTime(), nullable=True))


def downgrade() -> None:  # noqa: D401
    """Drop reference rate columns."""

    with op.batch_alter_table("system_settings") as batch:
        batch.drop_column("reference_rate_updated_at")
        batch.drop_column("reference_rate_source")
        batch.drop_column("reference_rate")
