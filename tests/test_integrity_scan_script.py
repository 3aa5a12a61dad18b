from __future__ import annotations

import pytest

from scripts.integrity_scan import main
from tests.factories import make_deliverable, make_project


@pytest.fixture()
def run(db, store):
    def _run(*argv: str) -> int:
        return main(list(argv), session_factory=lambda: db, store=store)

    return _run


def test_scan_exit_code_reflects_broken_rows(run, db, store, capsys):
    project = make_project(db)
    store.objects["deliverables/p/1-ok.zip"] = b"ok"
    make_deliverable(db, project=project, kind="file", file_path="deliverables/p/1-ok.zip")
    db.commit()

    assert run("--scan") == 0

    make_deliverable(db, project=project, kind="file", file_path="deliverables/p/2-gone.zip")
    db.commit()

    assert run("--scan") == 1
    assert "missing_object" in capsys.readouterr().out


def test_repair_then_clean_scan(run, db):
    project = make_project(db)
    make_deliverable(
        db, project=project, kind="file", file_path="deliverables/p/1-gone.zip", url="https://x.test/a.zip"
    )
    db.commit()

    assert run("--repair") == 0
    assert run("--scan") == 0


def test_orphans_listing(run, store, capsys):
    store.objects["deliverables/p/9-stray.zip"] = b"?"

    assert run("--orphans") == 0
    assert "[ORPHAN] deliverables/p/9-stray.zip" in capsys.readouterr().out


def test_exactly_one_mode_required(run):
    with pytest.raises(SystemExit):
        run()
    with pytest.raises(SystemExit):
        run("--scan", "--repair")
