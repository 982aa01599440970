# ruff: noqa: E402, I001
"""Pytest configuration for test isolation.

Posting writes batch files under an export root (``./exports`` by default),
and the database client keeps one engine per process. Left alone, tests would
write into the working tree and the first test's SQLite URL would stick for
the whole session, so later tests hitting a different file would fail with a
URL mismatch.

To keep tests hermetic, an autouse fixture points ``VERISAGE_EXPORT_DIR`` at
the test's own temporary directory and disposes the shared engine around
every test. Logging configured by a CLI invocation is dropped again so
handlers never outlive the stream they were bound to.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make sure `packages/` and `libs/db/src` are importable without an install.
_ROOT = Path(__file__).resolve().parents[1]
_PKG_DIRS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src"]
sys.path[:0] = [p for p in [*(str(d) for d in _PKG_DIRS), str(_ROOT)] if p not in sys.path]

from db.client import reset_engine  # noqa: E402
from verisage.logging_setup import reset_logging  # noqa: E402

from tests.helpers.db import bootstrap_sqlite_db  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_export_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Force a per-test export root and a fresh engine."""

    export_root = tmp_path / "exports"
    monkeypatch.setenv("VERISAGE_EXPORT_DIR", os.fspath(export_root))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("VERISAGE_LOG_LEVEL", raising=False)
    reset_engine()
    yield export_root
    reset_engine()
    reset_logging()


@pytest.fixture
def export_dir(_isolate_export_dir: Path) -> Path:
    return _isolate_export_dir


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """URL of a fresh file-backed SQLite database with the full schema."""

    return bootstrap_sqlite_db(tmp_path / "verisage.sqlite3")
