"""
Tests for AchievementService -- at-most-once creation per dedupe key.
"""

import threading
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from winroom_kernel.db.base import Base
from winroom_kernel.domain.achievements import (
    DAILY_REVENUE_MILESTONE,
    AchievementType,
    RevenueMilestonePayload,
    daily_revenue_dedupe_key,
)
from winroom_kernel.domain.events import EventType
from winroom_kernel.models.achievement import Achievement
from winroom_kernel.models.event import DomainEvent
from winroom_kernel.services.achievement_service import AchievementService

DAY = date(2024, 6, 10)


@pytest.fixture
def achievements(session, clock):
    return AchievementService(session, clock)


def _payload(total: str = "21000") -> RevenueMilestonePayload:
    return RevenueMilestonePayload(
        threshold=DAILY_REVENUE_MILESTONE.threshold,
        total_revenue=Decimal(total),
        day=DAY,
        celebration=DAILY_REVENUE_MILESTONE.celebration,
    )


def _create(achievements, dedupe_key, payload=None):
    return achievements.create_achievement(
        AchievementType.DAILY_REVENUE,
        seller_id=None,
        title=DAILY_REVENUE_MILESTONE.title,
        payload=payload or _payload(),
        dedupe_key=dedupe_key,
        description=DAILY_REVENUE_MILESTONE.description,
    )


class TestCreateAchievement:
    def test_creates_row_and_event(self, session, achievements):
        result = _create(achievements, daily_revenue_dedupe_key(DAY))

        assert result.created is True
        record = result.record
        assert record.dedupe_key == "daily_revenue:2024-06-10"
        assert record.payload["kind"] == "revenue_milestone"
        assert record.payload["date"] == "2024-06-10"
        assert record.payload["celebration"]["sound"] == "happy"

        event = session.get(DomainEvent, record.event_id)
        assert event.type == EventType.ACHIEVEMENT_CREATED.value
        assert event.actor == "team"
        assert event.payload["achievement_id"] == str(record.id)

    def test_same_key_twice_creates_once(self, session, achievements):
        first = _create(achievements, daily_revenue_dedupe_key(DAY))
        second = _create(achievements, daily_revenue_dedupe_key(DAY), _payload("25000"))

        assert second.created is False
        assert second.record.id == first.record.id
        assert second.record.payload["total_revenue"] == first.record.payload["total_revenue"]
        assert session.execute(select(func.count(Achievement.id))).scalar() == 1
        assert session.execute(select(func.count(DomainEvent.id))).scalar() == 1

    def test_existing_event_is_linked_not_duplicated(self, session, achievements):
        result = achievements.create_achievement(
            AchievementType.DAILY_REVENUE,
            seller_id=None,
            title="20K Day",
            payload=_payload(),
            dedupe_key="event:77",
            event_id=77,
        )

        assert result.record.event_id == 77
        assert session.execute(select(func.count(DomainEvent.id))).scalar() == 0

    def test_find_by_dedupe_key(self, achievements):
        _create(achievements, "daily_revenue:2024-06-10")

        assert achievements.find_by_dedupe_key("daily_revenue:2024-06-10") is not None
        assert achievements.find_by_dedupe_key("daily_revenue:2024-06-11") is None


class TestConcurrentCreation:
    def test_insert_conflict_after_stale_read_returns_winner(
        self, session, achievements, monkeypatch, captured_logs,
    ):
        winner = _create(achievements, daily_revenue_dedupe_key(DAY))
        lookup = achievements.find_by_dedupe_key
        reads = []

        def stale_then_fresh(dedupe_key):
            reads.append(dedupe_key)
            # First read misses the row, as a writer racing the winner would
            return None if len(reads) == 1 else lookup(dedupe_key)

        monkeypatch.setattr(achievements, "find_by_dedupe_key", stale_then_fresh)

        result = _create(achievements, daily_revenue_dedupe_key(DAY), _payload("25000"))

        assert result.created is False
        assert result.record.id == winner.record.id
        assert len(reads) == 2
        assert session.execute(select(func.count(Achievement.id))).scalar() == 1
        assert session.execute(select(func.count(DomainEvent.id))).scalar() == 1
        assert any(r["message"] == "achievement_race_lost" for r in captured_logs())


@pytest.fixture
def postgres_engine(postgres_url):
    engine = create_engine(postgres_url)
    tables = [DomainEvent.__table__, Achievement.__table__]
    Base.metadata.create_all(engine, tables=tables)
    yield engine
    Base.metadata.drop_all(engine, tables=tables)
    engine.dispose()


@pytest.mark.postgres
class TestConcurrentCreationPostgres:
    def test_two_writers_create_once(self, postgres_engine, clock):
        dedupe_key = f"daily_revenue:{uuid4()}"
        barrier = threading.Barrier(2)
        results = []
        errors = []

        def writer():
            with Session(bind=postgres_engine) as session:
                try:
                    service = AchievementService(session, clock)
                    barrier.wait(timeout=10)
                    results.append(_create(service, dedupe_key).created)
                    session.commit()
                except Exception as exc:
                    session.rollback()
                    errors.append(exc)

        threads = [threading.Thread(target=writer) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert errors == []
        assert sorted(results) == [False, True]
        with Session(bind=postgres_engine) as check:
            assert check.execute(
                select(func.count(Achievement.id)).where(Achievement.dedupe_key == dedupe_key)
            ).scalar() == 1
            assert check.execute(
                select(func.count(DomainEvent.id))
                .where(DomainEvent.type == EventType.ACHIEVEMENT_CREATED.value)
            ).scalar() == 1
