from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return uuid.uuid4().hex


FORM_STATUSES: tuple[str, ...] = ("unreviewed", "reviewed", "posted")


# ---------------------------
# Batch runs: vs_batch_runs
# ---------------------------


class BatchRun(Base):
    """One generated bulk batch file and the forms linked to it."""

    __tablename__ = "vs_batch_runs"

    batch_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    form_count: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------
# Core: vs_forms
# ---------------------------


class BranchForm(Base):
    __tablename__ = "vs_forms"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)

    # Branch information
    zone: Mapped[str | None] = mapped_column(Text, nullable=True)
    branch: Mapped[str] = mapped_column(Text, nullable=False)
    resident_pastor: Mapped[str | None] = mapped_column(Text, nullable=True)
    report_prepared_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    official_email: Mapped[str | None] = mapped_column(Text, nullable=True)
    month: Mapped[str] = mapped_column(String(16), nullable=False)

    # Financial fields keyed by field name. Stored as JSON (not JSONB) so the
    # submitted key order survives the round trip; ledger rows follow it.
    amounts: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    # Receipt references keyed by the remittance field they support.
    receipts: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    confirmation_of_payment: Mapped[str | None] = mapped_column(String(3), nullable=True)
    number_of_full_time_pastors: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="unreviewed", server_default="unreviewed"
    )
    batch_file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    batch_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("vs_batch_runs.batch_id"), nullable=True
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "status in ('unreviewed','reviewed','posted')",
            name="ck_vs_forms_status",
        ),
        CheckConstraint(
            "confirmation_of_payment IS NULL OR confirmation_of_payment in ('YES','NO')",
            name="ck_vs_forms_confirmation",
        ),
        Index("ix_vs_forms_status_submitted", "status", "submitted_at"),
        Index("ix_vs_forms_branch_month", "branch", "month"),
        Index("ix_vs_forms_batch_id", "batch_id"),
    )


__all__ = [
    "Base",
    "BatchRun",
    "BranchForm",
    "FORM_STATUSES",
]
