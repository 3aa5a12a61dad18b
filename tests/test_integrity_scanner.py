from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import Forbidden, IntegrityWarning, StorageError
from app.core.rbac import ActorContext, Role
from app.models.deliverable import Deliverable
from app.services.deliverable_service import UploadedFile
from app.services.integrity_service import (
    ACTION_CONVERTED,
    ACTION_HEALTHY,
    ACTION_UNREPAIRABLE,
    REASON_MISSING_OBJECT,
    REASON_SIGNED_URL_FAILED,
)
from tests.factories import make_deliverable, make_project


@pytest.fixture()
def system(admin):
    return ActorContext(actor_user_id=admin.actor_user_id, role=Role.SYSTEM)


def _broken_ids(report):
    return sorted(str(b.deliverable_id) for b in report.broken)


def test_healthy_store_reports_nothing(db, store, integrity, system):
    project = make_project(db)
    store.objects["deliverables/p/1-ok.zip"] = b"ok"
    make_deliverable(db, project=project, kind="file", file_path="deliverables/p/1-ok.zip")
    make_deliverable(db, project=project)  # url kind is not scanned
    db.commit()

    report = integrity.scan(system)

    assert report.total == 1
    assert report.healthy == 1
    assert report.broken == []


def test_scan_is_idempotent(db, store, integrity, system):
    project = make_project(db)
    make_deliverable(db, project=project, kind="file", file_path="deliverables/p/1-gone.zip")
    make_deliverable(db, project=project, kind="file", file_path="deliverables/p/2-gone.pdf", url="https://x.test/2")
    store.objects["deliverables/p/3-ok.zip"] = b"ok"
    make_deliverable(db, project=project, kind="file", file_path="deliverables/p/3-ok.zip")
    db.commit()

    first = integrity.scan(system)
    second = integrity.scan(system)

    assert len(first.broken) == 2
    assert _broken_ids(first) == _broken_ids(second)
    assert store.writes() == []


def test_missing_object_and_unsignable_object_are_distinguished(db, store, integrity, system):
    project = make_project(db)
    missing = make_deliverable(db, project=project, kind="file", file_path="deliverables/p/1-gone.zip")
    store.objects["deliverables/p/2-locked.zip"] = b"x"
    store.unsignable.add("deliverables/p/2-locked.zip")
    locked = make_deliverable(db, project=project, kind="file", file_path="deliverables/p/2-locked.zip")
    db.commit()

    with pytest.warns(IntegrityWarning) as emitted:
        report = integrity.scan(system)
    reasons = {b.deliverable_id: b.reason for b in report.broken}

    assert reasons == {missing.id: REASON_MISSING_OBJECT, locked.id: REASON_SIGNED_URL_FAILED}
    assert {(w.message.deliverable_id, w.message.reason) for w in emitted} == set(reasons.items())
    assert all(isinstance(w, IntegrityWarning) for w in report.warnings)


def test_broken_file_with_url_is_converted_and_then_healthy(db, store, integrity, system):
    project = make_project(db)
    d = make_deliverable(
        db,
        project=project,
        kind="file",
        file_path="deliverables/p/1-gone.zip",
        url="https://cdn.example.com/logo.zip",
        original_filename="logo.zip",
    )
    db.commit()

    repair = integrity.repair_all(system)

    assert repair.converted == 1
    assert repair.unrepairable == 0
    db.expire_all()
    row = db.get(Deliverable, d.id)
    assert row.kind == "url"
    assert row.file_path is None
    assert row.original_filename is None
    assert row.url == "https://cdn.example.com/logo.zip"

    after = integrity.scan(system)
    assert after.broken == []


def test_broken_file_without_url_is_reported_every_pass(db, integrity, system):
    project = make_project(db)
    d = make_deliverable(db, project=project, kind="file", file_path="deliverables/p/1-gone.zip")
    db.commit()

    for _ in range(3):
        repair = integrity.repair_all(system)
        assert [(o.deliverable_id, o.action) for o in repair.outcomes] == [(d.id, ACTION_UNREPAIRABLE)]
        assert _broken_ids(integrity.scan(system)) == [str(d.id)]

    db.expire_all()
    row = db.get(Deliverable, d.id)
    assert row.kind == "file"
    assert row.file_path == "deliverables/p/1-gone.zip"


def test_repair_one_healthy_is_left_alone(db, store, integrity, admin):
    project = make_project(db)
    store.objects["deliverables/p/1-ok.zip"] = b"ok"
    d = make_deliverable(
        db, project=project, kind="file", file_path="deliverables/p/1-ok.zip", url="https://x.test/legacy"
    )
    db.commit()

    outcome = integrity.repair(d.id, admin)

    assert outcome.action == ACTION_HEALTHY
    db.expire_all()
    assert db.get(Deliverable, d.id).kind == "file"


def test_repair_one_broken_with_url(db, integrity, admin):
    project = make_project(db)
    d = make_deliverable(
        db, project=project, kind="file", file_path="deliverables/p/1-gone.zip", url="https://x.test/backup"
    )
    db.commit()

    assert integrity.repair(d.id, admin).action == ACTION_CONVERTED


def test_client_cannot_scan(integrity, client_actor):
    with pytest.raises(Forbidden):
        integrity.scan(client_actor)


def test_scan_fails_only_when_the_query_fails(db, integrity, system, monkeypatch):
    def _boom(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("db down"))

    monkeypatch.setattr(db, "execute", _boom)

    with pytest.raises(StorageError):
        integrity.scan(system)


def test_orphan_sweep_finds_unreferenced_objects(db, svc, store, integrity, admin, monkeypatch):
    project = make_project(db)
    db.commit()
    kept = svc.create(
        admin,
        project_id=project.id,
        title="Kept",
        kind="file",
        upload=UploadedFile("kept.zip", "application/zip", b"k"),
    )

    # insert fails after upload: the object is orphaned
    def _boom():
        raise OperationalError("INSERT INTO deliverables", {}, Exception("connection lost"))

    with monkeypatch.context() as m:
        m.setattr(db, "commit", _boom)
        with pytest.raises(StorageError):
            svc.create(
                admin,
                project_id=project.id,
                title="Lost",
                kind="file",
                upload=UploadedFile("lost.zip", "application/zip", b"l"),
            )

    store.objects["elsewhere/unrelated.bin"] = b"?"

    report = integrity.find_orphaned_objects(admin)

    orphan = next(k for k in store.objects if k.startswith("deliverables/") and k != kept.file_path)
    assert report.total_objects == 2
    assert report.orphaned == [orphan]

    removed = integrity.remove_orphaned_objects(admin, [orphan, kept.file_path, "elsewhere/unrelated.bin"])

    assert removed == [orphan]
    assert orphan not in store.objects
    assert kept.file_path in store.objects
    assert "elsewhere/unrelated.bin" in store.objects
