"""
Tests for the dialect-aware insert helpers.

Runs on SQLite by default; the ``postgres`` variants need
WINROOM_TEST_POSTGRES_URL.
"""

from datetime import timedelta

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from winroom_kernel.db.statements import insert_if_absent, upsert
from winroom_kernel.models.checkpoint import CacheEntry


def _insert(session, key, value, clock):
    return insert_if_absent(
        session,
        CacheEntry,
        values={"key": key, "value": value, "updated_at": clock.now_utc()},
        conflict_columns=["key"],
    )


def _upsert(session, key, value, clock):
    upsert(
        session,
        CacheEntry,
        values={"key": key, "value": value, "updated_at": clock.now_utc()},
        conflict_columns=["key"],
        update_columns=["value", "updated_at"],
    )


def _entries(session) -> dict[str, dict]:
    return {e.key: e.value for e in session.execute(
        select(CacheEntry).execution_options(populate_existing=True)
    ).scalars()}


class TestInsertIfAbsent:
    def test_first_insert_returns_generated_id(self, session, clock):
        row = _insert(session, "k", {"v": 1}, clock)

        assert row is not None
        assert session.get(CacheEntry, row.id).value == {"v": 1}

    def test_conflict_returns_none_and_keeps_row(self, session, clock):
        _insert(session, "k", {"v": 1}, clock)

        assert _insert(session, "k", {"v": 2}, clock) is None
        assert _entries(session) == {"k": {"v": 1}}

    def test_custom_returning(self, session, clock):
        row = insert_if_absent(
            session,
            CacheEntry,
            values={"key": "k", "value": {}, "updated_at": clock.now_utc()},
            conflict_columns=["key"],
            returning=[CacheEntry.key, CacheEntry.updated_at],
        )

        assert row.key == "k"
        assert row.updated_at == clock.now_utc()


class TestUpsert:
    def test_insert_then_update(self, session, clock):
        _upsert(session, "k", {"v": 1}, clock)
        clock.advance(timedelta(minutes=1).total_seconds())
        _upsert(session, "k", {"v": 2}, clock)

        assert _entries(session) == {"k": {"v": 2}}
        entry = session.execute(select(CacheEntry)).scalar_one()
        assert entry.updated_at == clock.now_utc()


@pytest.fixture
def postgres_session(postgres_url):
    engine = create_engine(postgres_url)
    CacheEntry.__table__.create(engine, checkfirst=True)
    session = Session(bind=engine)
    yield session
    session.rollback()
    session.close()
    CacheEntry.__table__.drop(engine, checkfirst=True)
    engine.dispose()


@pytest.mark.postgres
class TestPostgres:
    def test_insert_if_absent(self, postgres_session, clock):
        assert _insert(postgres_session, "k", {"v": 1}, clock) is not None
        assert _insert(postgres_session, "k", {"v": 2}, clock) is None

    def test_upsert(self, postgres_session, clock):
        _upsert(postgres_session, "k", {"v": 1}, clock)
        _upsert(postgres_session, "k", {"v": 2}, clock)

        assert _entries(postgres_session) == {"k": {"v": 2}}
