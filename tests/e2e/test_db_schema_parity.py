from __future__ import annotations

import os
from urllib.parse import urlparse

import pytest
from sqlalchemy import create_engine, text

from app.models.base import Base
import app.models.deliverable  # noqa: F401
import app.models.notification  # noqa: F401
import app.models.project  # noqa: F401


def _db_name(dsn: str) -> str:
    u = urlparse(dsn)
    return (u.path or "").lstrip("/") or "<unknown>"


def _all(engine, sql: str, **params) -> list[str]:
    with engine.connect() as c:
        return [r[0] for r in c.execute(text(sql), params).all()]


@pytest.fixture(scope="module")
def migrated_engine():
    db_test = os.getenv("DB_TEST")
    if not db_test:
        pytest.skip("DB_TEST not set (SQLAlchemy DSN of a Postgres database migrated with alembic upgrade head)")
    eng = create_engine(db_test)
    try:
        yield eng, db_test
    finally:
        eng.dispose()


@pytest.mark.e2e_gate
def test_migrated_db_has_all_model_tables(migrated_engine):
    eng, dsn = migrated_engine

    required = {"alembic_version", *Base.metadata.tables}
    existing = set(_all(eng, "SELECT tablename FROM pg_tables WHERE schemaname='public'"))
    missing = sorted(required - existing)

    assert not missing, (
        f"Missing tables in test DB {_db_name(dsn)}: {missing}. "
        "Run migrations (alembic upgrade head)."
    )


@pytest.mark.e2e_gate
@pytest.mark.parametrize("table", sorted(Base.metadata.tables))
def test_migrated_columns_match_models(migrated_engine, table):
    eng, _ = migrated_engine

    columns = set(
        _all(
            eng,
            "SELECT column_name FROM information_schema.columns "
            "WHERE table_schema='public' AND table_name=:t",
            t=table,
        )
    )
    expected = {c.name for c in Base.metadata.tables[table].columns}

    assert columns == expected
