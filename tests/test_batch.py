from __future__ import annotations

import csv
import errno
import io
import os
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path

import pytest

import verisage.batch as batch_mod
from verisage.accounts import AccountMap
from verisage.batch import (
    HEADER,
    bulk_filename,
    create_batch,
    create_bulk_batch,
    format_amount,
    get_export_root,
    serialize_bulk,
    serialize_single,
    single_filename,
    write_batch_file,
)
from verisage.exceptions import EmptyBatchError, SerializationIOError

YEAR = 2024
HEADER_LINE = (
    "TxDate,Description,Reference,Amount,UseTax,TaxType,TaxAccount,TaxAmount,"
    "Project,Account,IsDebit\r\n"
)


def _parse(content: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(content, newline="")))


# ---- Single-form serialization -----------------------------------------------


def test_single_batch_content_for_ajah():
    form = {"id": "abc123", "branch": "AJAH", "month": "DECEMBER", "offering": 45400, "tithe": 213700}
    out = serialize_single(form, year=YEAR)

    assert out.content == (
        HEADER_LINE
        + "12/4/2024,OFFERING,AJAH,45400,N,0,,,,4500,N\r\n"
        + "12/4/2024,TITHE,AJAH,213700,N,0,,,,4510,N\r\n"
        + "12/4/2024,PETTY CASH,AJAH,259100,N,0,,,,1300,Y\r\n"
    )
    assert out.filename == "AJAH_DECEMBER_abc123.csv"
    assert out.form_id == "abc123"


def test_header_only_when_nothing_to_post():
    form = {"id": "x", "branch": "IKEJA", "month": "MAY", "offering": 0}
    assert serialize_single(form, year=YEAR).content == HEADER_LINE


def test_fields_with_delimiters_and_quotes_are_escaped():
    weird = AccountMap.from_rows(
        [
            ("gifts", "4600", 'GIFTS, "SPECIAL"', "N"),
            ("notes", "6100", "LINE ONE\nLINE TWO", "Y"),
        ]
    )
    form = {"id": "q1", "branch": "ABAKPA/ NEW HAVEN", "month": "JUNE", "gifts": 10, "notes": 10}
    out = serialize_single(form, account_map=weird, year=YEAR)

    assert '"GIFTS, ""SPECIAL"""' in out.content
    assert '"LINE ONE\nLINE TWO"' in out.content
    rows = _parse(out.content)
    assert rows[0] == list(HEADER)
    assert rows[1][1] == 'GIFTS, "SPECIAL"'
    assert rows[2][1] == "LINE ONE\nLINE TWO"
    assert all(len(r) == 11 for r in rows)


def test_branch_with_comma_and_quote_is_escaped_in_reference():
    form = {"id": "q2", "branch": 'St. Peter, "New"', "month": "MAY", "tithe": 10}
    out = serialize_single(form, year=YEAR)

    assert '"ST. PETER, ""NEW"""' in out.content
    rows = _parse(out.content)
    assert [r[2] for r in rows[1:]] == ['ST. PETER, "NEW"', 'ST. PETER, "NEW"']
    assert all(len(r) == 11 for r in rows)
    assert out.filename == "St._Peter___New__MAY_q2.csv"


def test_amount_formatting():
    assert format_amount(Decimal("45400")) == "45400"
    assert format_amount(Decimal("45400.00")) == "45400"
    assert format_amount(Decimal("1E+3")) == "1000"
    assert format_amount(Decimal("10.50")) == "10.5"
    assert format_amount(Decimal("0.05")) == "0.05"


# ---- File names --------------------------------------------------------------


def test_single_filename_is_deterministic_and_safe():
    form = {"id": "id-1", "branch": "IKWERRE RD. P/H", "month": "march"}
    assert single_filename(form) == "IKWERRE_RD._P_H_MARCH_id-1.csv"
    assert single_filename(dict(form)) == single_filename(form)


def test_bulk_filename_shape():
    now = datetime(2024, 12, 31, 23, 59, 7, tzinfo=UTC)
    name = bulk_filename(batch_id="0123456789abcdef", form_count=3, now=now)
    assert name == "bulk_batch_20241231_235907_3forms_01234567.csv"


# ---- Bulk serialization ------------------------------------------------------


def test_bulk_balances_each_form_independently():
    forms = [
        {"id": "a", "branch": "AJAH", "month": "DECEMBER", "offering": 100},
        {"id": "b", "branch": "IKEJA", "month": "DECEMBER", "office_expenses": 100},
    ]
    out = serialize_bulk(forms, year=YEAR, batch_id="feedbeef" * 4)
    rows = _parse(out.content)

    assert rows[0] == list(HEADER)
    body = [(r[1], r[2], r[3], r[10]) for r in rows[1:]]
    # Pooled, the two forms would cancel out; per form each gets a petty cash row.
    assert body == [
        ("OFFERING", "AJAH", "100", "N"),
        ("PETTY CASH", "AJAH", "100", "Y"),
        ("OFFICE EXPENSES", "IKEJA", "100", "Y"),
        ("PETTY CASH", "IKEJA", "100", "N"),
    ]
    assert out.form_ids == ("a", "b")
    assert out.skipped == ()
    assert out.content.count("TxDate") == 1


def test_bulk_body_is_the_single_bodies_concatenated():
    a = {"id": "a", "branch": "AJAH", "month": "DECEMBER", "offering": 45400, "tithe": 213700}
    b = {"id": "b", "branch": "IKEJA", "month": "MAY", "office_expenses": 125}

    def body(content: str) -> list[str]:
        lines = content.split("\r\n")
        assert lines[0] + "\r\n" == HEADER_LINE
        return [line for line in lines[1:] if line]

    bulk = serialize_bulk([a, b], year=YEAR)
    assert body(bulk.content) == (
        body(serialize_single(a, year=YEAR).content) + body(serialize_single(b, year=YEAR).content)
    )


def test_bulk_skips_forms_that_cannot_be_converted():
    forms = [
        {"id": "good", "branch": "AJAH", "month": "DECEMBER", "tithe": 50},
        {"id": "bad", "branch": "EPE", "month": "NOTAMONTH", "tithe": 50},
    ]
    out = serialize_bulk(forms, year=YEAR)

    assert out.form_ids == ("good",)
    assert [s.form_id for s in out.skipped] == ["bad"]
    assert "NOTAMONTH" in out.skipped[0].reason
    assert "EPE" not in out.content


def test_bulk_with_no_forms_raises():
    with pytest.raises(EmptyBatchError):
        serialize_bulk([], year=YEAR)


def test_bulk_with_only_bad_forms_raises_and_reports_them():
    with pytest.raises(EmptyBatchError) as excinfo:
        serialize_bulk([{"id": "bad", "branch": "EPE", "month": "?"}], year=YEAR)
    assert excinfo.value.details["skipped"][0]["form_id"] == "bad"


# ---- Writing -----------------------------------------------------------------


def test_export_root_follows_env(export_dir: Path):
    assert get_export_root() == export_dir.resolve()


def test_create_batch_writes_file_and_returns_locator(export_dir: Path):
    form = {"id": "f9", "branch": "AJAH", "month": "DECEMBER", "offering": 1}
    out = create_batch(form, year=YEAR)

    assert out["filename"] == "AJAH_DECEMBER_f9.csv"
    assert out["url"] == "/exports/AJAH_DECEMBER_f9.csv"
    path = Path(out["filepath"])
    assert path.parent == export_dir.resolve()
    assert path.read_bytes().startswith(HEADER_LINE.encode())

    # Regenerating the same form replaces the file in place.
    form["offering"] = 2
    again = create_batch(form, year=YEAR)
    assert again["filepath"] == out["filepath"]
    assert ",2,N,0," in path.read_bytes().decode("utf-8")


def test_create_bulk_batch_reports_forms(tmp_path: Path):
    forms = [{"id": "a", "branch": "AJAH", "month": "JULY", "tithe": 5}]
    out = create_bulk_batch(
        forms, export_dir=tmp_path / "out", year=YEAR, now=datetime(2024, 7, 1, tzinfo=UTC)
    )
    assert out["form_count"] == 1
    assert out["form_ids"] == ["a"]
    assert out["skipped"] == []
    assert out["filename"].startswith("bulk_batch_20240701_000000_1forms_")
    assert out["url"] == f"/exports/{out['filename']}"
    assert Path(out["filepath"]).is_file()


def test_exclusive_write_never_overwrites(tmp_path: Path):
    write_batch_file("first", "same.csv", export_dir=tmp_path, exclusive=True)
    with pytest.raises(SerializationIOError):
        write_batch_file("second", "same.csv", export_dir=tmp_path, exclusive=True)
    assert (tmp_path / "same.csv").read_text() == "first"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["same.csv"]


def test_failed_write_leaves_no_partial_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    def _boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(batch_mod.os, "replace", _boom)
    with pytest.raises(SerializationIOError) as excinfo:
        write_batch_file("content", "x.csv", export_dir=tmp_path)

    assert "disk full" in str(excinfo.value)
    assert excinfo.value.path == os.fspath(tmp_path / "x.csv")
    assert list(tmp_path.iterdir()) == []


def test_unwritable_export_root_raises(tmp_path: Path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("")
    with pytest.raises(SerializationIOError):
        write_batch_file("content", "x.csv", export_dir=blocker / "sub")


def test_unencodable_content_raises_and_leaves_nothing(tmp_path: Path):
    form = {"id": "f1", "branch": "AJAH\ud800", "month": "MAY", "tithe": 10}
    with pytest.raises(SerializationIOError) as excinfo:
        create_batch(form, export_dir=tmp_path, year=YEAR)

    assert excinfo.value.path == os.fspath(tmp_path / "AJAH__MAY_f1.csv")
    assert list(tmp_path.iterdir()) == []


def test_exclusive_write_without_hard_links(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    def _no_links(src, dst):
        raise OSError(errno.EPERM, "Operation not permitted")

    monkeypatch.setattr(batch_mod.os, "link", _no_links)
    path = write_batch_file("first", "same.csv", export_dir=tmp_path, exclusive=True)

    assert path.read_text() == "first"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["same.csv"]

    with pytest.raises(SerializationIOError):
        write_batch_file("second", "same.csv", export_dir=tmp_path, exclusive=True)
    assert path.read_text() == "first"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["same.csv"]


def test_exclusive_write_surfaces_other_link_errors(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
):
    def _io_error(src, dst):
        raise OSError(errno.EIO, "I/O error")

    monkeypatch.setattr(batch_mod.os, "link", _io_error)
    with pytest.raises(SerializationIOError, match="I/O error"):
        write_batch_file("content", "x.csv", export_dir=tmp_path, exclusive=True)
    assert list(tmp_path.iterdir()) == []
