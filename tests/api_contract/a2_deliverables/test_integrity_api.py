from __future__ import annotations

from app.models.deliverable import Deliverable
from tests.factories import make_deliverable, make_project


def test_scan_and_repair(client, db, admin_headers):
    project = make_project(db)
    fixable = make_deliverable(
        db, project=project, kind="file", file_path="deliverables/p/1-gone.zip", url="https://cdn.example.com/a.zip"
    )
    lost = make_deliverable(db, project=project, kind="file", file_path="deliverables/p/2-gone.zip")
    db.commit()

    r = client.get("/integrity/scan", headers=admin_headers)
    assert r.status_code == 200, r.text
    scan = r.json()
    assert scan["total"] == 2
    assert scan["healthy"] == 0
    assert {b["deliverable_id"]: b["has_fallback_url"] for b in scan["broken"]} == {
        str(fixable.id): True,
        str(lost.id): False,
    }
    assert {b["reason"] for b in scan["broken"]} == {"missing_object"}

    r = client.post("/integrity/repair", headers=admin_headers)
    assert r.status_code == 200, r.text
    repair = r.json()
    assert (repair["converted"], repair["unrepairable"]) == (1, 1)

    db.expire_all()
    assert db.get(Deliverable, fixable.id).kind == "url"

    r = client.get("/integrity/scan", headers=admin_headers)
    assert [b["deliverable_id"] for b in r.json()["broken"]] == [str(lost.id)]


def test_repair_single(client, db, admin_headers):
    project = make_project(db)
    d = make_deliverable(db, project=project, kind="file", file_path="deliverables/p/1-gone.zip")
    db.commit()

    r = client.post(f"/integrity/deliverables/{d.id}/repair", headers=admin_headers)

    assert r.status_code == 200, r.text
    assert r.json()["action"] == "unrepairable"
    assert r.json()["message"] == "No alternative URL available"


def test_system_role_can_scan(client, admin):
    headers = {"X-Role": "system", "X-Actor-User-Id": str(admin.actor_user_id)}
    assert client.get("/integrity/scan", headers=headers).status_code == 200


def test_orphans(client, db, store, admin_headers):
    project = make_project(db)
    store.objects["deliverables/p/1-used.zip"] = b"u"
    store.objects["deliverables/p/2-orphan.zip"] = b"o"
    make_deliverable(db, project=project, kind="file", file_path="deliverables/p/1-used.zip")
    db.commit()

    r = client.get("/integrity/orphans", headers=admin_headers)
    assert r.status_code == 200, r.text
    assert r.json() == {"total_objects": 2, "orphaned": ["deliverables/p/2-orphan.zip"]}

    r = client.post(
        "/integrity/orphans/cleanup",
        json={"keys": ["deliverables/p/2-orphan.zip", "deliverables/p/1-used.zip"]},
        headers=admin_headers,
    )
    assert r.status_code == 200, r.text
    assert r.json() == {"removed": ["deliverables/p/2-orphan.zip"]}
    assert sorted(store.objects) == ["deliverables/p/1-used.zip"]
