"""Public API and orchestration for the ``verisage`` package.

Each function opens its own short transaction through
``db.client.session_scope`` (``database_url`` overrides ``DATABASE_URL``) and
returns plain dicts so callers never hold live ORM objects.

Posting writes the batch file inside the transaction that locks the form
rows, after the status checks and before the status update. A failed write
rolls the transaction back, so no form ever points at a file that was not
generated, and a form that is already posted is never batched twice.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from os import PathLike
from typing import Any

from db.client import session_scope

from . import persistence
from .batch import create_batch, create_bulk_batch
from .branches import BRANCHES
from .exceptions import EmptyBatchError, FormStateError
from .logging_setup import get_logger
from .validation import validate_form_submission

_logger = get_logger("verisage.api")


def submit_form(data: Mapping[str, Any], *, database_url: str | None = None) -> dict[str, Any]:
    """Validate and store a new branch form (status ``unreviewed``)."""

    submission = validate_form_submission(data)
    with session_scope(database_url=database_url) as session:
        row = persistence.insert_form(session, submission)
        out = persistence.form_to_dict(row)
    _logger.info(
        "form:submitted branch=%s month=%s",
        out["branch"],
        out["month"],
        extra={"form_id": out["id"]},
    )
    return out


def get_form(form_id: str, *, database_url: str | None = None) -> dict[str, Any]:
    with session_scope(database_url=database_url) as session:
        return persistence.form_to_dict(persistence.get_form(session, form_id))


def list_forms(
    *,
    status: str | None = None,
    branch: str | None = None,
    month: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
    database_url: str | None = None,
) -> dict[str, Any]:
    """Return ``{"data": [...], "pagination": {total, page, limit, pages}}``."""

    with session_scope(database_url=database_url) as session:
        result = persistence.list_forms(
            session,
            status=status,
            branch=branch,
            month=month,
            search=search,
            page=page,
            limit=limit,
        )
        data = [persistence.form_to_dict(row) for row in result.items]
    return {
        "data": data,
        "pagination": {
            "total": result.total,
            "page": result.page,
            "limit": result.limit,
            "pages": result.pages,
        },
    }


def review_form(
    form_id: str, updates: Mapping[str, Any], *, database_url: str | None = None
) -> dict[str, Any]:
    """Apply reviewer edits; an ``unreviewed`` form becomes ``reviewed``.

    ``updates`` uses the submission field names; empty values are ignored.
    The merged form is re-validated as a whole.
    """

    with session_scope(database_url=database_url) as session:
        row = persistence.get_form(session, form_id, for_update=True)
        if row.status == "posted":
            raise FormStateError("Cannot edit a posted form", details={"form_id": form_id})
        merged = {**persistence.submission_payload(row), **dict(updates)}
        submission = validate_form_submission(merged)
        previous = row.status
        persistence.apply_review(session, row, submission)
        out = persistence.form_to_dict(row)
    _logger.info(
        "form:reviewed status=%s->%s", previous, out["status"], extra={"form_id": form_id}
    )
    return out


def post_form(
    form_id: str,
    *,
    force: bool = False,
    export_dir: str | PathLike[str] | None = None,
    year: int | None = None,
    database_url: str | None = None,
) -> dict[str, Any]:
    """Generate the form's batch file and mark it ``posted``.

    An already-posted form is rejected unless ``force`` is set, in which case
    its file is regenerated under the same name. Returns
    ``{"form": {...}, "batch_file": {"filename", "filepath", "url"}}``.
    """

    with session_scope(database_url=database_url) as session:
        row = persistence.get_form(session, form_id, for_update=True)
        if row.status == "posted" and not force:
            raise FormStateError(
                "Form already posted. Use force=True to regenerate batch file.",
                details={"form_id": form_id},
            )
        batch = create_batch(persistence.form_to_record(row), export_dir=export_dir, year=year)
        persistence.mark_posted(session, row, url=batch["url"])
        out = persistence.form_to_dict(row)
    _logger.info("form:posted url=%s", batch["url"], extra={"form_id": form_id})
    return {"form": out, "batch_file": batch}


def post_forms_bulk(
    form_ids: Sequence[str] | None = None,
    *,
    export_dir: str | PathLike[str] | None = None,
    year: int | None = None,
    database_url: str | None = None,
) -> dict[str, Any]:
    """Write one batch file for several forms and mark them all ``posted``.

    Without ``form_ids`` every ``reviewed`` form is included. Forms that are
    already posted are reported under ``already_posted`` and left out; forms
    that cannot be converted are reported under ``skipped`` and stay
    unposted. Raises :class:`~verisage.exceptions.EmptyBatchError` when
    nothing is left to batch.
    """

    with session_scope(database_url=database_url) as session:
        rows, already_posted = persistence.select_forms_for_batch(session, form_ids=form_ids)
        if not rows:
            raise EmptyBatchError(
                "No eligible forms to batch", details={"already_posted": already_posted}
            )
        batch = create_bulk_batch(
            [persistence.form_to_record(r) for r in rows], export_dir=export_dir, year=year
        )
        persistence.record_batch_run(
            session,
            batch_id=batch["batch_id"],
            filename=batch["filename"],
            url=batch["url"],
            form_count=batch["form_count"],
        )
        marked = persistence.bulk_mark(
            session, batch["form_ids"], batch_id=batch["batch_id"], url=batch["url"]
        )
    _logger.info(
        "batch:bulk_posted marked=%d skipped=%d already_posted=%d",
        marked,
        len(batch["skipped"]),
        len(already_posted),
        extra={"batch_id": batch["batch_id"]},
    )
    return {**batch, "already_posted": already_posted}


def delete_form(form_id: str, *, database_url: str | None = None) -> None:
    with session_scope(database_url=database_url) as session:
        persistence.delete_form(session, form_id)
    _logger.info("form:deleted", extra={"form_id": form_id})


def list_branches() -> list[str]:
    return list(BRANCHES)


__all__ = [
    "submit_form",
    "get_form",
    "list_forms",
    "review_form",
    "post_form",
    "post_forms_bulk",
    "delete_form",
    "list_branches",
]
