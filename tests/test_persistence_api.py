# ruff: noqa: I001
from __future__ import annotations

from pathlib import Path

import pytest

from db.client import session_scope
from db.models.forms import BatchRun, BranchForm

from verisage import api
from verisage import persistence
from verisage.exceptions import (
    EmptyBatchError,
    FormNotFoundError,
    FormStateError,
    FormValidationError,
)

from tests.helpers.db import insert_raw_form

YEAR = 2024


def _submit(database_url: str, **overrides) -> dict:
    data = {
        "branch": "AJAH",
        "month": "DECEMBER",
        "residentPastor": "Pastor Ade",
        "officialEmail": "ajah@example.org",
        "offering": 45400,
        "tithe": 213700,
    }
    data.update(overrides)
    return api.submit_form(data, database_url=database_url)


# ---- Single form lifecycle ---------------------------------------------------


def test_submit_review_post_lifecycle(database_url: str, export_dir: Path):
    form = _submit(database_url)
    assert form["status"] == "unreviewed"
    assert form["amounts"] == {"offering": "45400", "tithe": "213700"}
    assert form["resident_pastor"] == "Pastor Ade"

    reviewed = api.review_form(form["id"], {"tithe": 213800}, database_url=database_url)
    assert reviewed["status"] == "reviewed"
    assert reviewed["reviewed_at"] is not None
    assert reviewed["amounts"]["tithe"] == "213800"
    assert reviewed["resident_pastor"] == "Pastor Ade"

    result = api.post_form(form["id"], year=YEAR, database_url=database_url)
    posted = result["form"]
    assert posted["status"] == "posted"
    assert posted["posted_at"] is not None
    assert posted["batch_file_url"] == f"/exports/AJAH_DECEMBER_{form['id']}.csv"

    path = Path(result["batch_file"]["filepath"])
    assert path.parent == export_dir.resolve()
    lines = path.read_bytes().decode("utf-8").split("\r\n")
    assert lines[1] == "12/4/2024,OFFERING,AJAH,45400,N,0,,,,4500,N"
    assert lines[3] == "12/4/2024,PETTY CASH,AJAH,259200,N,0,,,,1300,Y"

    assert api.get_form(form["id"], database_url=database_url)["status"] == "posted"


def test_posted_form_cannot_be_edited(database_url: str):
    form = _submit(database_url)
    api.post_form(form["id"], year=YEAR, database_url=database_url)
    with pytest.raises(FormStateError):
        api.review_form(form["id"], {"tithe": 1}, database_url=database_url)


def test_repost_requires_force(database_url: str):
    form = _submit(database_url)
    first = api.post_form(form["id"], year=YEAR, database_url=database_url)

    with pytest.raises(FormStateError, match="already posted"):
        api.post_form(form["id"], year=YEAR, database_url=database_url)

    again = api.post_form(form["id"], force=True, year=YEAR, database_url=database_url)
    assert again["batch_file"]["filepath"] == first["batch_file"]["filepath"]
    assert again["form"]["status"] == "posted"


def test_failed_write_keeps_form_unposted(
    database_url: str, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
):
    import verisage.batch as batch_mod

    form = _submit(database_url)

    def _boom(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr(batch_mod.os, "replace", _boom)
    with pytest.raises(OSError):
        api.post_form(form["id"], year=YEAR, database_url=database_url)

    after = api.get_form(form["id"], database_url=database_url)
    assert after["status"] == "unreviewed"
    assert after["batch_file_url"] is None


def test_review_revalidates_the_merged_form(database_url: str):
    form = _submit(database_url)
    with pytest.raises(FormValidationError):
        api.review_form(form["id"], {"month": "SMARCH"}, database_url=database_url)
    assert api.get_form(form["id"], database_url=database_url)["status"] == "unreviewed"


def test_review_keeps_amounts_without_an_account_mapping(database_url: str):
    form = api.submit_form(
        {"branch": "AJAH", "month": "MAY", "tithe": 10, "youth_levy": 700},
        database_url=database_url,
    )
    assert form["amounts"] == {"tithe": "10", "youth_levy": "700"}

    reviewed = api.review_form(form["id"], {"tithe": 12}, database_url=database_url)
    assert reviewed["amounts"] == {"tithe": "12", "youth_levy": "700"}


def test_unknown_form_raises_not_found(database_url: str):
    with pytest.raises(FormNotFoundError):
        api.get_form("missing", database_url=database_url)
    with pytest.raises(FormNotFoundError):
        api.post_form("missing", database_url=database_url)
    with pytest.raises(FormNotFoundError):
        api.delete_form("missing", database_url=database_url)


def test_delete_form(database_url: str):
    form = _submit(database_url)
    api.delete_form(form["id"], database_url=database_url)
    with pytest.raises(FormNotFoundError):
        api.get_form(form["id"], database_url=database_url)


# ---- Listing -----------------------------------------------------------------


def test_list_forms_filters_and_paginates(database_url: str):
    _submit(database_url, branch="AJAH", month="JANUARY")
    _submit(database_url, branch="IKEJA", month="JANUARY", officialEmail="ikeja@example.org")
    _submit(database_url, branch="AJAO ESTATE", month="FEBRUARY", officialEmail="ajao@example.org")

    everything = api.list_forms(database_url=database_url)
    assert everything["pagination"] == {"total": 3, "page": 1, "limit": 20, "pages": 1}

    assert {f["branch"] for f in api.list_forms(branch="aja", database_url=database_url)["data"]} == {
        "AJAH",
        "AJAO ESTATE",
    }
    assert [f["branch"] for f in api.list_forms(month="february", database_url=database_url)["data"]] == [
        "AJAO ESTATE"
    ]
    assert [f["branch"] for f in api.list_forms(search="ikeja@", database_url=database_url)["data"]] == [
        "IKEJA"
    ]
    assert api.list_forms(search="100%", database_url=database_url)["pagination"]["total"] == 0

    page2 = api.list_forms(limit=2, page=2, database_url=database_url)
    assert len(page2["data"]) == 1
    assert page2["pagination"]["pages"] == 2


def test_list_forms_by_status(database_url: str):
    a = _submit(database_url)
    _submit(database_url)
    api.review_form(a["id"], {}, database_url=database_url)

    reviewed = api.list_forms(status="reviewed", database_url=database_url)["data"]
    assert [f["id"] for f in reviewed] == [a["id"]]


# ---- Bulk posting ------------------------------------------------------------


def test_bulk_posts_all_reviewed_forms(database_url: str):
    first = _submit(database_url, branch="AJAH")
    second = _submit(database_url, branch="IKEJA", offering=0, tithe=0, officeExpenses=700)
    untouched = _submit(database_url, branch="EPE")
    for f in (first, second):
        api.review_form(f["id"], {}, database_url=database_url)

    result = api.post_forms_bulk(year=YEAR, database_url=database_url)

    assert result["form_count"] == 2
    assert result["form_ids"] == [first["id"], second["id"]]
    assert result["already_posted"] == []
    content = Path(result["filepath"]).read_bytes().decode("utf-8")
    assert content.count("PETTY CASH") == 2
    assert "EPE" not in content

    for f in (first, second):
        got = api.get_form(f["id"], database_url=database_url)
        assert got["status"] == "posted"
        assert got["batch_id"] == result["batch_id"]
        assert got["batch_file_url"] == result["url"]
    assert api.get_form(untouched["id"], database_url=database_url)["status"] == "unreviewed"

    with session_scope(database_url=database_url) as s:
        run = s.get(BatchRun, result["batch_id"])
        assert run is not None
        assert run.form_count == 2


def test_bulk_excludes_already_posted_ids(database_url: str):
    posted = _submit(database_url, branch="AJAH")
    fresh = _submit(database_url, branch="IKEJA")
    api.post_form(posted["id"], year=YEAR, database_url=database_url)

    result = api.post_forms_bulk(
        [posted["id"], fresh["id"]], year=YEAR, database_url=database_url
    )

    assert result["form_ids"] == [fresh["id"]]
    assert result["already_posted"] == [posted["id"]]
    assert "AJAH" not in Path(result["filepath"]).read_text(encoding="utf-8")
    # The earlier single-form posting is left as it was.
    assert api.get_form(posted["id"], database_url=database_url)["batch_id"] is None


def test_bulk_with_nothing_eligible_raises(database_url: str, export_dir: Path):
    with pytest.raises(EmptyBatchError):
        api.post_forms_bulk(database_url=database_url)

    form = _submit(database_url)
    api.post_form(form["id"], year=YEAR, database_url=database_url)
    with pytest.raises(EmptyBatchError):
        api.post_forms_bulk([form["id"]], database_url=database_url)

    with pytest.raises(FormNotFoundError):
        api.post_forms_bulk(["nope"], database_url=database_url)

    assert not any(p.name.startswith("bulk_batch_") for p in export_dir.glob("*"))


def test_bulk_isolates_a_broken_form(database_url: str):
    good = insert_raw_form(
        database_url=database_url, branch="AJAH", month="MAY", amounts={"tithe": 10}, status="reviewed"
    )
    bad = insert_raw_form(
        database_url=database_url,
        branch="EPE",
        month="MAYDAY",
        amounts={"tithe": 10},
        status="reviewed",
        submitted_offset_s=1,
    )

    result = api.post_forms_bulk(year=YEAR, database_url=database_url)

    assert result["form_ids"] == [good]
    assert [s["form_id"] for s in result["skipped"]] == [bad]
    assert api.get_form(good, database_url=database_url)["status"] == "posted"
    assert api.get_form(bad, database_url=database_url)["status"] == "reviewed"


def test_bulk_mark_is_idempotent(database_url: str):
    form = _submit(database_url)
    with session_scope(database_url=database_url) as s:
        persistence.record_batch_run(s, batch_id="b" * 32, filename="f.csv", url="/exports/f.csv", form_count=1)
        assert persistence.bulk_mark(s, [form["id"]], batch_id="b" * 32, url="/exports/f.csv") == 1
        assert persistence.bulk_mark(s, [form["id"]], batch_id="b" * 32, url="/exports/f.csv") == 0

    with session_scope(database_url=database_url) as s:
        row = s.get(BranchForm, form["id"])
        assert row is not None
        assert row.status == "posted"
        assert row.batch_id == "b" * 32


def test_list_branches():
    branches = api.list_branches()
    assert "AJAH" in branches
    assert branches[0] == "1004"
    assert len(branches) == len(set(branches))
