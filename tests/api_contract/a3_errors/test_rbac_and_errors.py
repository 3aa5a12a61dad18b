from __future__ import annotations

from uuid import uuid4

from app.core.errors import StorageError
from app.services.deliverable_service import DeliverableService
from tests.factories import make_deliverable, make_project


def _hdr(role: str, actor_id) -> dict[str, str]:
    return {"X-Role": role, "X-Actor-User-Id": str(actor_id)}


def test_missing_role_header_is_401(client):
    r = client.get("/deliverables", headers={"X-Actor-User-Id": str(uuid4())})
    assert r.status_code == 401
    assert r.json() == {"detail": "Missing X-Role header"}


def test_missing_actor_header_is_401(client):
    r = client.get("/deliverables", headers={"X-Role": "admin"})
    assert r.status_code == 401


def test_malformed_actor_header_is_400(client):
    r = client.get("/deliverables", headers={"X-Role": "admin", "X-Actor-User-Id": "nope"})
    assert r.status_code == 400


def test_client_cannot_delete(client, db, client_headers, client_id):
    project = make_project(db, client_id=client_id)
    d = make_deliverable(db, project=project, sent=True)
    db.commit()

    r = client.delete(f"/deliverables/{d.id}", headers=client_headers)

    assert r.status_code == 403, r.text
    assert client.get(f"/deliverables/{d.id}", headers=client_headers).status_code == 200


def test_client_cannot_read_draft(client, db, client_headers, client_id):
    project = make_project(db, client_id=client_id)
    d = make_deliverable(db, project=project, sent=False)
    db.commit()

    r = client.get(f"/deliverables/{d.id}/download", headers=client_headers)
    assert r.status_code == 403, r.text


def test_unknown_role_is_forbidden(client):
    r = client.get("/deliverables", headers=_hdr("intern", uuid4()))
    assert r.status_code == 403


def test_client_cannot_run_integrity(client, client_headers):
    assert client.get("/integrity/scan", headers=client_headers).status_code == 403
    assert client.post("/integrity/repair", headers=client_headers).status_code == 403


def test_unknown_deliverable_is_404(client, admin_headers):
    r = client.get(f"/deliverables/{uuid4()}", headers=admin_headers)
    assert r.status_code == 404
    assert r.json() == {"detail": "Deliverable not found"}


def test_download_rate_limit_is_429(client, db, client_headers, client_id, test_settings):
    project = make_project(db, client_id=client_id)
    d = make_deliverable(db, project=project, sent=True)
    db.commit()

    codes = [
        client.get(f"/deliverables/{d.id}/download", headers=client_headers).status_code
        for _ in range(test_settings.download_rate_limit_attempts + 1)
    ]

    assert codes[:-1] == [200] * test_settings.download_rate_limit_attempts
    assert codes[-1] == 429


def test_broken_file_download_is_502(client, db, admin_headers):
    project = make_project(db)
    d = make_deliverable(db, project=project, kind="file", file_path="deliverables/p/1-gone.zip")
    db.commit()

    r = client.get(f"/deliverables/{d.id}/download", headers=admin_headers)

    assert r.status_code == 502
    assert r.json() == {"detail": "The file is no longer available for download"}


def test_storage_error_is_503_without_internal_detail(client, db, admin_headers, monkeypatch):
    project = make_project(db)
    d = make_deliverable(db, project=project)
    db.commit()

    def _down(self, deliverable_id, actor):
        raise StorageError("Failed to send deliverable")

    monkeypatch.setattr(DeliverableService, "send_once", _down)

    r = client.post(f"/deliverables/{d.id}/send", headers=admin_headers)

    assert r.status_code == 503
    assert r.json() == {"detail": "Failed to send deliverable"}
