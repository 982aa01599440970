# ruff: noqa: I001
"""Branch forms and bulk batch runs.

Revision ID: 0001_vs_forms
Revises: None
Create Date: 2025-11-02
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_vs_forms"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # vs_batch_runs
    op.create_table(
        "vs_batch_runs",
        sa.Column("batch_id", sa.String(32), primary_key=True),
        sa.Column("filename", sa.Text(), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("form_count", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )

    # vs_forms
    op.create_table(
        "vs_forms",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("zone", sa.Text(), nullable=True),
        sa.Column("branch", sa.Text(), nullable=False),
        sa.Column("resident_pastor", sa.Text(), nullable=True),
        sa.Column("report_prepared_by", sa.Text(), nullable=True),
        sa.Column("official_email", sa.Text(), nullable=True),
        sa.Column("month", sa.String(16), nullable=False),
        # json (not jsonb): key order is significant for ledger row order
        sa.Column("amounts", sa.JSON(), nullable=False),
        sa.Column("receipts", sa.JSON(), nullable=False),
        sa.Column("confirmation_of_payment", sa.String(3), nullable=True),
        sa.Column(
            "number_of_full_time_pastors",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "status",
            sa.String(16),
            nullable=False,
            server_default=sa.text("'unreviewed'"),
        ),
        sa.Column("batch_file_url", sa.Text(), nullable=True),
        sa.Column("batch_id", sa.String(32), nullable=True),
        sa.Column(
            "submitted_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.ForeignKeyConstraint(
            ["batch_id"],
            ["vs_batch_runs.batch_id"],
            name="fk_vs_forms_batch_id",
        ),
        sa.CheckConstraint(
            "status in ('unreviewed','reviewed','posted')",
            name="ck_vs_forms_status",
        ),
        sa.CheckConstraint(
            "confirmation_of_payment IS NULL OR confirmation_of_payment in ('YES','NO')",
            name="ck_vs_forms_confirmation",
        ),
    )

    op.create_index(
        "ix_vs_forms_status_submitted", "vs_forms", ["status", "submitted_at"], unique=False
    )
    op.create_index("ix_vs_forms_branch_month", "vs_forms", ["branch", "month"], unique=False)
    op.create_index("ix_vs_forms_batch_id", "vs_forms", ["batch_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_vs_forms_batch_id", table_name="vs_forms")
    op.drop_index("ix_vs_forms_branch_month", table_name="vs_forms")
    op.drop_index("ix_vs_forms_status_submitted", table_name="vs_forms")
    op.drop_table("vs_forms")
    op.drop_table("vs_batch_runs")
