# ruff: noqa: I001
"""CLI for the ``verisage`` package.

Command handlers (``cmd_*``) return a process exit code and are wrapped by a
Typer console interface. ``.env`` is loaded from the working directory with
``python-dotenv`` before any command runs, so ``DATABASE_URL``,
``VERISAGE_EXPORT_DIR`` and ``VERISAGE_LOG_LEVEL`` may live there. Business
logic lives in :mod:`verisage.api`.

Every failure is reported on stderr as ``Error: ...`` with exit code 1.
"""

from __future__ import annotations

import json
import sys
from decimal import Decimal
from pathlib import Path
from typing import Annotated, Any
from collections.abc import Sequence

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import OptionInfo

from . import api
from .exceptions import FormValidationError, VerisageError
from .logging_setup import configure_logging

console = Console()


# ---- Small module-level helpers used by CLI commands -------------------------


def _load_json_object(json_path: Path) -> dict[str, Any]:
    """Read a JSON object; decimals are parsed as ``Decimal`` to stay exact."""

    with open(json_path, encoding="utf-8") as f:
        data = json.load(f, parse_float=Decimal)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object in {json_path}")
    return data


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, indent=2, default=str))


def _report_error(e: VerisageError) -> int:
    print(f"Error: {e}", file=sys.stderr)
    if isinstance(e, FormValidationError):
        for msg in e.errors:
            print(f"  - {msg}", file=sys.stderr)
    return 1


# ---- Command handlers --------------------------------------------------------


def cmd_submit_form(json_path: str, *, database_url: str | None = None) -> int:
    """Submit the branch form stored in ``json_path`` and print the stored form."""

    try:
        data = _load_json_object(Path(json_path))
    except FileNotFoundError:
        print(f"Error: File not found: {json_path}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: Failed to read '{json_path}': {e}", file=sys.stderr)
        return 1

    try:
        form = api.submit_form(data, database_url=database_url)
    except VerisageError as e:
        return _report_error(e)

    _print_json(form)
    return 0


def cmd_list_forms(
    *,
    status: str | None = None,
    branch: str | None = None,
    month: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
    database_url: str | None = None,
) -> int:
    try:
        result = api.list_forms(
            status=status,
            branch=branch,
            month=month,
            search=search,
            page=page,
            limit=limit,
            database_url=database_url,
        )
    except VerisageError as e:
        return _report_error(e)

    table = Table(title="Branch forms")
    table.add_column("ID", no_wrap=True)
    table.add_column("Branch")
    table.add_column("Month")
    table.add_column("Status")
    table.add_column("Submitted")
    for form in result["data"]:
        table.add_row(
            form["id"],
            form["branch"],
            form["month"],
            form["status"],
            (form["submitted_at"] or "")[:16].replace("T", " "),
        )
    console.print(table)

    p = result["pagination"]
    print(f"{p['total']} form(s), page {p['page']} of {max(p['pages'], 1)}")
    return 0


def cmd_show_form(form_id: str, *, database_url: str | None = None) -> int:
    try:
        form = api.get_form(form_id, database_url=database_url)
    except VerisageError as e:
        return _report_error(e)
    _print_json(form)
    return 0


def cmd_review_form(
    form_id: str, json_path: str, *, database_url: str | None = None
) -> int:
    """Apply the edits in ``json_path`` to a form and mark it reviewed."""

    try:
        updates = _load_json_object(Path(json_path))
    except FileNotFoundError:
        print(f"Error: File not found: {json_path}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: Failed to read '{json_path}': {e}", file=sys.stderr)
        return 1

    try:
        form = api.review_form(form_id, updates, database_url=database_url)
    except VerisageError as e:
        return _report_error(e)
    _print_json(form)
    return 0


def cmd_post_form(
    form_id: str,
    *,
    force: bool = False,
    year: int | None = None,
    export_dir: str | None = None,
    database_url: str | None = None,
) -> int:
    try:
        result = api.post_form(
            form_id,
            force=force,
            export_dir=export_dir,
            year=year,
            database_url=database_url,
        )
    except VerisageError as e:
        return _report_error(e)

    batch = result["batch_file"]
    print(f"Posted {form_id}")
    print(f"Batch file: {batch['filepath']}")
    print(f"URL: {batch['url']}")
    return 0


def cmd_post_bulk(
    form_ids: Sequence[str] | None = None,
    *,
    year: int | None = None,
    export_dir: str | None = None,
    database_url: str | None = None,
) -> int:
    """Post several forms into one batch file.

    With no ``form_ids`` every reviewed form is included.
    """

    try:
        result = api.post_forms_bulk(
            list(form_ids) if form_ids else None,
            export_dir=export_dir,
            year=year,
            database_url=database_url,
        )
    except VerisageError as e:
        return _report_error(e)

    print(f"Batch {result['batch_id']}: {result['form_count']} form(s)")
    print(f"Batch file: {result['filepath']}")
    print(f"URL: {result['url']}")
    for fid in result["already_posted"]:
        print(f"Already posted, not included: {fid}")
    for skipped in result["skipped"]:
        print(f"Skipped {skipped['form_id']}: {skipped['reason']}")
    return 0


def cmd_delete_form(form_id: str, *, database_url: str | None = None) -> int:
    try:
        api.delete_form(form_id, database_url=database_url)
    except VerisageError as e:
        return _report_error(e)
    print(f"Deleted {form_id}")
    return 0


def cmd_branches() -> int:
    for name in api.list_branches():
        print(name)
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Collect branch financial forms and export accounting batch files. "
        "Loads DATABASE_URL and VERISAGE_* settings from a local .env."
    ),
)

# Module-level option object to satisfy ruff B008 (no calls in parameter
# defaults). Typer will inspect this when used as a default value below.
JSON_PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--json-path",
    help="Path to a JSON file holding the form fields",
    dir_okay=False,
    file_okay=True,
    exists=False,  # allow non-existent here; the handler will report nice errors
    readable=True,
)


@app.command("submit-form")
def submit_form_cmd(
    json_path: Annotated[Path, JSON_PATH_OPTION],
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Validate and store a new branch form."""

    raise typer.Exit(cmd_submit_form(str(json_path), database_url=database_url))


@app.command("list-forms")
def list_forms_cmd(
    *,
    status: str | None = typer.Option(
        None, help="Filter by status (unreviewed, reviewed, posted)."
    ),
    branch: str | None = typer.Option(None, help="Case-insensitive branch substring."),
    month: str | None = typer.Option(None, help="Month name, e.g. DECEMBER."),
    search: str | None = typer.Option(
        None, help="Search branch, resident pastor and official email."
    ),
    page: int = typer.Option(1, min=1),
    limit: int = typer.Option(20, min=1),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """List forms, newest submission first."""

    raise typer.Exit(
        cmd_list_forms(
            status=status,
            branch=branch,
            month=month,
            search=search,
            page=page,
            limit=limit,
            database_url=database_url,
        )
    )


@app.command("show-form")
def show_form_cmd(
    form_id: Annotated[str, typer.Argument(help="Form id")],
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    raise typer.Exit(cmd_show_form(form_id, database_url=database_url))


@app.command("review-form")
def review_form_cmd(
    form_id: Annotated[str, typer.Argument(help="Form id")],
    json_path: Annotated[Path, JSON_PATH_OPTION],
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Apply reviewer edits and mark the form reviewed."""

    raise typer.Exit(cmd_review_form(form_id, str(json_path), database_url=database_url))


@app.command("post-form")
def post_form_cmd(
    form_id: Annotated[str, typer.Argument(help="Form id")],
    *,
    force: bool = typer.Option(
        False, "--force", help="Regenerate the batch file of an already posted form."
    ),
    year: int | None = typer.Option(
        None, help="Year for transaction dates (defaults to the current year)."
    ),
    export_dir: str | None = typer.Option(
        None, help="Batch file directory (falls back to VERISAGE_EXPORT_DIR, then ./exports)."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Generate the form's batch file and mark it posted."""

    raise typer.Exit(
        cmd_post_form(
            form_id,
            force=force,
            year=year,
            export_dir=export_dir,
            database_url=database_url,
        )
    )


@app.command("post-bulk")
def post_bulk_cmd(
    *,
    form_id: list[str] | None = typer.Option(
        None, "--form-id", help="Form id to include (repeatable). Default: all reviewed."
    ),
    year: int | None = typer.Option(
        None, help="Year for transaction dates (defaults to the current year)."
    ),
    export_dir: str | None = typer.Option(
        None, help="Batch file directory (falls back to VERISAGE_EXPORT_DIR, then ./exports)."
    ),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Post several forms into one batch file."""

    raise typer.Exit(
        cmd_post_bulk(form_id, year=year, export_dir=export_dir, database_url=database_url)
    )


@app.command("delete-form")
def delete_form_cmd(
    form_id: Annotated[str, typer.Argument(help="Form id")],
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    raise typer.Exit(cmd_delete_form(form_id, database_url=database_url))


@app.command("branches")
def branches_cmd() -> None:
    """Print the branch list, one per line."""

    raise typer.Exit(cmd_branches())


@app.callback()
def _root(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        help="DEBUG, INFO, WARNING or ERROR (falls back to VERISAGE_LOG_LEVEL, then INFO).",
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging on the current
    stderr.
    """

    # Load environment from .env in CWD (override=False to keep existing env)
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    try:
        configure_logging(log_level, force=True)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level") from e


if __name__ == "__main__":  # pragma: no cover - exercised via the console script
    # Running as a module: `python -m verisage.cli`
    app()
