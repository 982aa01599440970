# ruff: noqa: I001
"""Persistence integration for verisage.

Functions here read and write branch forms in the shared database owned by
``libs/db``. They take an active SQLAlchemy ``Session`` (see
``db.client.session_scope``) and never commit on their own; transaction
boundaries belong to the caller (``verisage.api``).

Scope:
- Insert, fetch, list (filter + paginate), review and delete forms.
- Lifecycle writes: mark one form posted, bulk-mark forms into a batch run.
- Convert ORM rows into the opaque records consumed by the batch engine.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from db.models.forms import FORM_STATUSES, BatchRun, BranchForm
from .exceptions import FormNotFoundError, FormStateError
from .models import FormRecord, METADATA_FIELDS
from .validation import FormSubmission


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _decimal_or_raw(raw: Any) -> Any:
    if isinstance(raw, str):
        try:
            return Decimal(raw)
        except InvalidOperation:
            return raw
    return raw


# ---------------------------
# Row <-> record conversion
# ---------------------------


def form_to_record(row: BranchForm) -> FormRecord:
    """Flatten an ORM row into the record shape the batch engine walks.

    Classification and metadata come first, then the amounts in their stored
    order (declaration order for known fields). Stored decimal strings are
    turned back into ``Decimal``.
    """

    record: dict[str, Any] = {"id": row.id}
    for name in METADATA_FIELDS:
        record[name] = getattr(row, name)
    record["status"] = row.status
    for name, raw in (row.amounts or {}).items():
        record[name] = _decimal_or_raw(raw)
    return record


def submission_payload(row: BranchForm) -> dict[str, Any]:
    """Rebuild the flat submission payload a row was created from.

    Stored amounts come back as ``Decimal`` so that fields without an account
    mapping are still recognized as amounts when the payload is re-validated.
    """

    payload: dict[str, Any] = {name: getattr(row, name) for name in METADATA_FIELDS}
    payload.update(row.receipts or {})
    payload.update({name: _decimal_or_raw(raw) for name, raw in (row.amounts or {}).items()})
    return payload


def form_to_dict(row: BranchForm) -> dict[str, Any]:
    """JSON-friendly view of a form for API results and CLI output."""

    def _iso(dt: datetime | None) -> str | None:
        return dt.isoformat() if dt is not None else None

    out: dict[str, Any] = {"id": row.id}
    out.update({name: getattr(row, name) for name in METADATA_FIELDS})
    out.update(
        {
            "amounts": dict(row.amounts or {}),
            "receipts": dict(row.receipts or {}),
            "status": row.status,
            "batch_file_url": row.batch_file_url,
            "batch_id": row.batch_id,
            "submitted_at": _iso(row.submitted_at),
            "reviewed_at": _iso(row.reviewed_at),
            "posted_at": _iso(row.posted_at),
        }
    )
    return out


# ---------------------------
# CRUD
# ---------------------------


def insert_form(session: Session, submission: FormSubmission) -> BranchForm:
    """Insert a new ``unreviewed`` form and flush it to obtain its id."""

    now = _utcnow()
    row = BranchForm(
        zone=submission.zone,
        branch=submission.branch,
        resident_pastor=submission.resident_pastor,
        report_prepared_by=submission.report_prepared_by,
        official_email=submission.official_email,
        month=submission.month,
        amounts=submission.amounts_json(),
        receipts=dict(submission.receipts),
        confirmation_of_payment=submission.confirmation_of_payment,
        number_of_full_time_pastors=submission.number_of_full_time_pastors,
        status="unreviewed",
        submitted_at=now,
        created_at=now,
        updated_at=now,
    )
    session.add(row)
    session.flush()
    return row


def get_form(session: Session, form_id: str, *, for_update: bool = False) -> BranchForm:
    stmt = select(BranchForm).where(BranchForm.id == form_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        raise FormNotFoundError(form_id)
    return row


@dataclass(frozen=True, slots=True)
class FormPage:
    items: list[BranchForm]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def list_forms(
    session: Session,
    *,
    status: str | None = None,
    branch: str | None = None,
    month: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> FormPage:
    """Filter and paginate forms, newest submission first.

    ``branch`` and ``search`` are case-insensitive substring matches
    (``search`` covers branch, resident pastor and official email). An unknown
    ``status`` value is ignored rather than matching nothing.
    """

    page = max(1, int(page))
    limit = max(1, int(limit))

    conditions = []
    if status and status in FORM_STATUSES:
        conditions.append(BranchForm.status == status)
    if branch:
        conditions.append(BranchForm.branch.ilike(_like_pattern(branch), escape="\\"))
    if month:
        conditions.append(BranchForm.month == month.strip().upper())
    if search:
        pattern = _like_pattern(search)
        conditions.append(
            or_(
                BranchForm.branch.ilike(pattern, escape="\\"),
                BranchForm.resident_pastor.ilike(pattern, escape="\\"),
                BranchForm.official_email.ilike(pattern, escape="\\"),
            )
        )

    total = session.execute(
        select(func.count()).select_from(BranchForm).where(*conditions)
    ).scalar_one()
    items = list(
        session.execute(
            select(BranchForm)
            .where(*conditions)
            .order_by(BranchForm.submitted_at.desc(), BranchForm.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()
    )
    return FormPage(items=items, total=int(total), page=page, limit=limit)


def select_forms_for_batch(
    session: Session, *, form_ids: Sequence[str] | None = None
) -> tuple[list[BranchForm], list[str]]:
    """Lock and return the forms a bulk batch should cover.

    Without ``form_ids``: every ``reviewed`` form, oldest submission first.
    With ``form_ids``: those forms in the given order; ids that are already
    posted are returned in the second list instead of being batched again.
    Unknown ids raise :class:`~verisage.exceptions.FormNotFoundError`.
    """

    if form_ids is None:
        rows = list(
            session.execute(
                select(BranchForm)
                .where(BranchForm.status == "reviewed")
                .order_by(BranchForm.submitted_at, BranchForm.id)
                .with_for_update()
            ).scalars()
        )
        return rows, []

    wanted = list(dict.fromkeys(form_ids))
    found = {
        row.id: row
        for row in session.execute(
            select(BranchForm).where(BranchForm.id.in_(wanted)).with_for_update()
        ).scalars()
    }
    missing = [fid for fid in wanted if fid not in found]
    if missing:
        raise FormNotFoundError(missing[0])

    eligible = [found[fid] for fid in wanted if found[fid].status != "posted"]
    already_posted = [fid for fid in wanted if found[fid].status == "posted"]
    return eligible, already_posted


def apply_review(
    session: Session, row: BranchForm, submission: FormSubmission
) -> BranchForm:
    """Overwrite a form with ``submission`` and move it to ``reviewed``.

    Posted forms are final and raise
    :class:`~verisage.exceptions.FormStateError`.
    """

    if row.status == "posted":
        raise FormStateError("Cannot edit a posted form", details={"form_id": row.id})

    now = _utcnow()
    row.zone = submission.zone
    row.branch = submission.branch
    row.resident_pastor = submission.resident_pastor
    row.report_prepared_by = submission.report_prepared_by
    row.official_email = submission.official_email
    row.month = submission.month
    row.amounts = submission.amounts_json()
    row.receipts = dict(submission.receipts)
    row.confirmation_of_payment = submission.confirmation_of_payment
    row.number_of_full_time_pastors = submission.number_of_full_time_pastors
    if row.status == "unreviewed":
        row.status = "reviewed"
        row.reviewed_at = now
    row.updated_at = now
    session.flush()
    return row


def mark_posted(session: Session, row: BranchForm, *, url: str) -> BranchForm:
    now = _utcnow()
    row.status = "posted"
    row.posted_at = now
    row.batch_file_url = url
    row.updated_at = now
    session.flush()
    return row


def record_batch_run(
    session: Session, *, batch_id: str, filename: str, url: str, form_count: int
) -> BatchRun:
    run = BatchRun(
        batch_id=batch_id,
        filename=filename,
        url=url,
        form_count=form_count,
        created_at=_utcnow(),
    )
    session.add(run)
    session.flush()
    return run


def bulk_mark(
    session: Session, form_ids: Iterable[str], *, batch_id: str, url: str
) -> int:
    """Mark forms posted and link them to ``batch_id`` in one statement.

    Forms that are already posted are left untouched, so re-running the same
    mark is a no-op. Returns the number of forms actually marked.
    """

    ids = list(dict.fromkeys(form_ids))
    if not ids:
        return 0
    now = _utcnow()
    result = session.execute(
        update(BranchForm)
        .where(BranchForm.id.in_(ids), BranchForm.status != "posted")
        .values(
            status="posted",
            batch_id=batch_id,
            batch_file_url=url,
            posted_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


def delete_form(session: Session, form_id: str) -> None:
    row = get_form(session, form_id)
    session.delete(row)
    session.flush()


__all__ = [
    "FormPage",
    "form_to_record",
    "form_to_dict",
    "submission_payload",
    "insert_form",
    "get_form",
    "list_forms",
    "select_forms_for_batch",
    "apply_review",
    "mark_posted",
    "record_batch_run",
    "bulk_mark",
    "delete_form",
]
