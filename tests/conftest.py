# tests/conftest.py
import os

# app.core.db builds its engine at import time; keep it off Postgres in tests
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite://")

import uuid  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker as _sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.config import Settings  # noqa: E402
from app.core.rbac import ActorContext, Role  # noqa: E402
from app.models.base import Base  # noqa: E402
from app.services.deliverable_service import DeliverableService  # noqa: E402
from app.services.integrity_service import IntegrityService  # noqa: E402
from app.services.rate_limit import DownloadRateLimiter  # noqa: E402
from tests.fakes import InMemoryObjectStore  # noqa: E402

# -----------------------------------------------------------------------------
# IMPORTANT: ensure all ORM tables are registered in metadata before create_all
# -----------------------------------------------------------------------------
import app.models.project  # noqa: F401,E402
import app.models.deliverable  # noqa: F401,E402
import app.models.notification  # noqa: F401,E402


@pytest.fixture()
def engine():
    """
    Fresh in-memory SQLite database per test.

    StaticPool keeps the single connection alive; TestClient runs sync
    endpoints in a worker thread, hence check_same_thread=False.
    """
    eng = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(eng, "connect")
    def _enable_fks(dbapi_conn, _record):
        dbapi_conn.execute("PRAGMA foreign_keys=ON")

    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture()
def db(engine):
    Session = _sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store():
    return InMemoryObjectStore()


@pytest.fixture()
def test_settings():
    return Settings(
        database_url_override="sqlite://",
        bulk_download_delay_seconds=0,
    )


@pytest.fixture()
def limiter(test_settings):
    return DownloadRateLimiter.from_settings(test_settings)


@pytest.fixture()
def svc(db, store, limiter, test_settings):
    return DeliverableService(db, store, limiter=limiter, settings=test_settings)


@pytest.fixture()
def integrity(db, store, test_settings):
    return IntegrityService(db, store, settings=test_settings)


@pytest.fixture()
def admin():
    return ActorContext(actor_user_id=uuid.uuid4(), role=Role.ADMIN)


@pytest.fixture()
def client_id():
    return uuid.uuid4()


@pytest.fixture()
def client_actor(client_id):
    return ActorContext(actor_user_id=client_id, role=Role.CLIENT)


# -----------------------------------------------------------------------------
# API
# -----------------------------------------------------------------------------


def _hdr(role: str, actor_id) -> dict[str, str]:
    return {"X-Role": role, "X-Actor-User-Id": str(actor_id)}


@pytest.fixture()
def admin_headers(admin):
    return _hdr(Role.ADMIN, admin.actor_user_id)


@pytest.fixture()
def client_headers(client_id):
    return _hdr(Role.CLIENT, client_id)


@pytest.fixture()
def client(db, store, limiter, test_settings):
    from app.api.deps import (
        get_deliverable_service,
        get_download_limiter,
        get_integrity_service,
        get_object_store,
    )
    from app.core.db import get_db
    from app.main import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_object_store] = lambda: store
    app.dependency_overrides[get_download_limiter] = lambda: limiter
    app.dependency_overrides[get_deliverable_service] = lambda: DeliverableService(
        db, store, limiter=limiter, settings=test_settings
    )
    app.dependency_overrides[get_integrity_service] = lambda: IntegrityService(
        db, store, settings=test_settings
    )
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
