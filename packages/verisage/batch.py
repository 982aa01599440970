"""Batch file serialization and export.

A batch file is a delimited-text import for the accounting system: one header
line with the eleven columns in :data:`HEADER`, then one line per ledger row.
Quoting is minimal (only fields containing the delimiter, a quote or a line
break are quoted, with quotes doubled) and lines end with ``\\r\\n``.

Entry points
------------
- :func:`serialize_single` / :func:`serialize_bulk`: pure, return content and
  a file name.
- :func:`create_batch` / :func:`create_bulk_batch`: serialize and write the
  file under the export root, returning the locator dict stored on forms.

Export layout (relative to the export root, default ``./exports``)::

    <branch>_<MONTH>_<form id>.csv
    bulk_batch_<YYYYMMDD_HHMMSS>_<N>forms_<batch id[:8]>.csv

Atomicity: content is written to a temp file in the export root, fsynced, then
moved into place. Single-form files replace an older file of the same name
(re-posting regenerates it); bulk files are linked in exclusively and never
overwrite an existing file.
"""

from __future__ import annotations

import contextlib
import csv
import errno
import io
import os
import re
import tempfile
import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from decimal import Decimal
from os import PathLike
from pathlib import Path
from typing import Any

from .accounts import DEFAULT_ACCOUNT_MAP, AccountMapping
from .exceptions import EmptyBatchError, SerializationIOError, VerisageError
from .ledger import ledger_for_form
from .logging_setup import get_logger
from .models import BatchFile, BulkBatchFile, FormRecord, LedgerRow, SkippedForm

HEADER: tuple[str, ...] = (
    "TxDate",
    "Description",
    "Reference",
    "Amount",
    "UseTax",
    "TaxType",
    "TaxAccount",
    "TaxAmount",
    "Project",
    "Account",
    "IsDebit",
)

EXPORT_URL_PREFIX = "/exports"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")

_logger = get_logger("verisage.batch")


# ----------------------------------------------------------------------------
# Rendering
# ----------------------------------------------------------------------------


def format_amount(amount: Decimal) -> str:
    """Plain decimal text: no exponent, no trailing fractional zeros."""

    if amount == amount.to_integral_value():
        return str(amount.quantize(Decimal(1)))
    return format(amount.normalize(), "f")


def _row_fields(row: LedgerRow) -> list[str]:
    return [
        row.tx_date,
        row.description,
        row.reference,
        format_amount(row.amount),
        row.use_tax,
        row.tax_type,
        row.tax_account,
        row.tax_amount,
        row.project,
        row.account,
        row.is_debit,
    ]


def render_rows(rows: Iterable[LedgerRow]) -> str:
    """Render ``rows`` under the fixed header as batch file text."""

    buf = io.StringIO(newline="")
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n")
    writer.writerow(HEADER)
    for row in rows:
        writer.writerow(_row_fields(row))
    return buf.getvalue()


# ----------------------------------------------------------------------------
# File names
# ----------------------------------------------------------------------------


def _safe_component(value: Any) -> str:
    s = _UNSAFE_FILENAME_CHARS.sub("_", str(value).strip())
    return s or "_"


def single_filename(form: FormRecord) -> str:
    """``<branch>_<MONTH>_<form id>.csv``; same form, same name."""

    return (
        f"{_safe_component(form['branch'])}_"
        f"{_safe_component(str(form['month']).upper())}_"
        f"{_safe_component(form['id'])}.csv"
    )


def bulk_filename(*, batch_id: str, form_count: int, now: datetime) -> str:
    return f"bulk_batch_{now:%Y%m%d_%H%M%S}_{form_count}forms_{batch_id[:8]}.csv"


# ----------------------------------------------------------------------------
# Serialization (pure)
# ----------------------------------------------------------------------------


def serialize_single(
    form: FormRecord,
    *,
    account_map: Mapping[str, AccountMapping] = DEFAULT_ACCOUNT_MAP,
    year: int | None = None,
) -> BatchFile:
    """Header + the form's ledger rows + its balancing row (if any)."""

    rows = ledger_for_form(form, account_map=account_map, year=year)
    return BatchFile(
        content=render_rows(rows),
        filename=single_filename(form),
        form_id=str(form["id"]),
    )


def serialize_bulk(
    forms: Iterable[FormRecord],
    *,
    account_map: Mapping[str, AccountMapping] = DEFAULT_ACCOUNT_MAP,
    year: int | None = None,
    now: datetime | None = None,
    batch_id: str | None = None,
) -> BulkBatchFile:
    """One header, then each form's rows and its own balancing row, in order.

    Balancing is per form, never pooled across forms. A form that fails to
    convert (bad month, bad amount) is left out and reported in ``skipped``;
    the remaining forms still make up the batch. Raises
    :class:`~verisage.exceptions.EmptyBatchError` when no form is left.
    """

    batch_id = batch_id or uuid.uuid4().hex
    all_rows: list[LedgerRow] = []
    included: list[str] = []
    skipped: list[SkippedForm] = []
    seen = 0

    for form in forms:
        seen += 1
        form_id = str(form.get("id", ""))
        try:
            rows = ledger_for_form(form, account_map=account_map, year=year)
        except VerisageError as e:
            _logger.warning(
                "batch:form_skipped reason=%s",
                e,
                extra={"batch_id": batch_id, "form_id": form_id},
            )
            skipped.append(SkippedForm(form_id=form_id, reason=str(e)))
            continue
        all_rows.extend(rows)
        included.append(form_id)

    if not included:
        raise EmptyBatchError(
            "No eligible forms to batch"
            if seen == 0
            else f"None of the {seen} form(s) could be converted",
            details={"skipped": [{"form_id": s.form_id, "reason": s.reason} for s in skipped]},
        )

    stamp = now or datetime.now(UTC)
    return BulkBatchFile(
        content=render_rows(all_rows),
        filename=bulk_filename(batch_id=batch_id, form_count=len(included), now=stamp),
        batch_id=batch_id,
        form_ids=tuple(included),
        skipped=tuple(skipped),
    )


# ----------------------------------------------------------------------------
# Export root and atomic writes
# ----------------------------------------------------------------------------


def get_export_root() -> Path:
    """Return the export directory.

    Default: ``./exports`` under the current working directory.
    Override: ``VERISAGE_EXPORT_DIR`` environment variable.
    """

    root = os.getenv("VERISAGE_EXPORT_DIR")
    if root and root.strip():
        return Path(root).expanduser().resolve()
    return (Path.cwd() / "exports").resolve()


def write_batch_file(
    content: str,
    filename: str,
    *,
    export_dir: str | PathLike[str] | None = None,
    exclusive: bool = False,
) -> Path:
    """Write ``content`` to ``<export root>/<filename>`` atomically.

    With ``exclusive=True`` an existing file of the same name is never
    replaced. Any failure raises
    :class:`~verisage.exceptions.SerializationIOError` and leaves no temp
    file behind.
    """

    root = Path(export_dir) if export_dir is not None else get_export_root()
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SerializationIOError(
            f"Cannot create export directory {root}: {e}", path=os.fspath(root)
        ) from e

    dest = root / filename
    tmp: Path | None = None
    try:
        data = content.encode("utf-8")
        fd, tmp_name = tempfile.mkstemp(prefix=f".{filename}.", suffix=".tmp", dir=root)
        tmp = Path(tmp_name)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if exclusive:
            _link_exclusive(tmp, dest, data)
        else:
            os.replace(tmp, dest)
    except (OSError, ValueError) as e:
        # ValueError covers text that cannot be encoded (e.g. lone surrogates).
        raise SerializationIOError(
            f"Failed to write batch file {dest}: {e}", path=os.fspath(dest)
        ) from e
    finally:
        if tmp is not None:
            with contextlib.suppress(FileNotFoundError):
                tmp.unlink()

    return dest


# Errors from os.link that mean "no hard links on this filesystem".
_NO_HARDLINK_ERRNOS = frozenset(
    {errno.EPERM, errno.EXDEV, errno.EMLINK, errno.ENOTSUP, errno.EOPNOTSUPP}
)


def _link_exclusive(tmp: Path, dest: Path, data: bytes) -> None:
    """Move ``tmp`` to ``dest`` without ever replacing an existing ``dest``.

    Hard-linking keeps the move atomic. Filesystems without hard links (some
    network and FUSE mounts) fall back to creating ``dest`` with ``O_EXCL``;
    a failed fallback write removes the partial ``dest``.
    """

    try:
        os.link(tmp, dest)
        return
    except FileExistsError:
        raise
    except OSError as e:
        if e.errno not in _NO_HARDLINK_ERRNOS:
            raise
        _logger.debug("batch:hardlink_unsupported path=%s errno=%s", os.fspath(dest), e.errno)

    with open(dest, "xb") as f:
        try:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        except OSError:
            f.close()
            with contextlib.suppress(FileNotFoundError):
                dest.unlink()
            raise


def _url_for(filename: str) -> str:
    return f"{EXPORT_URL_PREFIX}/{filename}"


# ----------------------------------------------------------------------------
# Public: serialize + write
# ----------------------------------------------------------------------------


def create_batch(
    form: FormRecord,
    *,
    export_dir: str | PathLike[str] | None = None,
    account_map: Mapping[str, AccountMapping] = DEFAULT_ACCOUNT_MAP,
    year: int | None = None,
) -> dict[str, str]:
    """Generate and store the batch file for one form.

    Returns ``{"filename", "filepath", "url"}``.
    """

    batch = serialize_single(form, account_map=account_map, year=year)
    path = write_batch_file(batch.content, batch.filename, export_dir=export_dir)
    _logger.info(
        "batch:written path=%s", os.fspath(path), extra={"form_id": batch.form_id}
    )
    return {
        "filename": batch.filename,
        "filepath": os.fspath(path),
        "url": _url_for(batch.filename),
    }


def create_bulk_batch(
    forms: Iterable[FormRecord],
    *,
    export_dir: str | PathLike[str] | None = None,
    account_map: Mapping[str, AccountMapping] = DEFAULT_ACCOUNT_MAP,
    year: int | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Generate and store one batch file covering several forms.

    Returns ``{"batch_id", "filename", "filepath", "url", "form_count",
    "form_ids", "skipped"}`` where ``skipped`` is a list of
    ``{"form_id", "reason"}`` dicts.
    """

    batch = serialize_bulk(forms, account_map=account_map, year=year, now=now)
    path = write_batch_file(
        batch.content, batch.filename, export_dir=export_dir, exclusive=True
    )
    _logger.info(
        "batch:written forms=%d skipped=%d path=%s",
        len(batch.form_ids),
        len(batch.skipped),
        os.fspath(path),
        extra={"batch_id": batch.batch_id},
    )
    return {
        "batch_id": batch.batch_id,
        "filename": batch.filename,
        "filepath": os.fspath(path),
        "url": _url_for(batch.filename),
        "form_count": len(batch.form_ids),
        "form_ids": list(batch.form_ids),
        "skipped": [{"form_id": s.form_id, "reason": s.reason} for s in batch.skipped],
    }


__all__ = [
    "HEADER",
    "EXPORT_URL_PREFIX",
    "format_amount",
    "render_rows",
    "single_filename",
    "bulk_filename",
    "serialize_single",
    "serialize_bulk",
    "get_export_root",
    "write_batch_file",
    "create_batch",
    "create_bulk_batch",
]
