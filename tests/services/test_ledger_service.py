"""
Tests for LedgerService -- admission, duplicate exclusion, trial skip and
jackpot emission.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from winroom_kernel.domain.events import EventType
from winroom_kernel.domain.metrics import MetricsResult
from winroom_kernel.models.achievement import Achievement
from winroom_kernel.models.event import DomainEvent
from winroom_kernel.models.ledger import Exclusion
from winroom_kernel.services.ledger_service import (
    AdmissionOutcome,
    LedgerService,
    LedgerStatus,
)

ORDINARY = MetricsResult(
    revenue_usd=Decimal("500"),
    cost_usd=Decimal("288"),
    margin_amount_usd=Decimal("212"),
    margin_percent=Decimal("0.424"),
    is_jackpot=False,
    currency_source="USD",
)

JACKPOT = MetricsResult(
    revenue_usd=Decimal("2000"),
    cost_usd=Decimal("288"),
    margin_amount_usd=Decimal("1712"),
    margin_percent=Decimal("0.856"),
    is_jackpot=True,
    currency_source="USD",
)


@pytest.fixture
def ledger(session, clock):
    return LedgerService(session, clock)


@pytest.fixture
def cursor(clock):
    return clock.now_utc() - timedelta(minutes=1)


def _event_types(session) -> list[str]:
    return list(session.execute(select(DomainEvent.type).order_by(DomainEvent.id)).scalars())


class TestAdmission:
    def test_new_subscription_is_queued(self, session, ledger, make_snapshot, cursor):
        result = ledger.admit(make_snapshot(1), ORDINARY, cursor)

        assert result.outcome == AdmissionOutcome.QUEUED
        assert result.queue_event_id is not None
        assert result.jackpot_event_id is None

        entry = ledger.get_entry(1)
        assert entry.status == LedgerStatus.PENDING.value
        assert entry.fingerprint == make_snapshot(1).fingerprint()

        event = session.get(DomainEvent, result.queue_event_id)
        assert event.type == EventType.QUEUE_NEW.value
        assert event.subscription_id == 1
        assert Decimal(event.payload["margin_percent"]) == Decimal("0.424")

    def test_readmission_emits_nothing(self, session, ledger, make_snapshot, cursor):
        ledger.admit(make_snapshot(1), ORDINARY, cursor)

        again = ledger.admit(make_snapshot(1), ORDINARY, cursor)

        assert again.outcome == AdmissionOutcome.ALREADY_PRESENT
        assert _event_types(session) == [EventType.QUEUE_NEW.value]

    def test_not_new_since_cursor(self, ledger, make_snapshot, clock):
        snapshot = make_snapshot(1, created_at=clock.now_utc() - timedelta(hours=2))

        result = ledger.admit(snapshot, ORDINARY, clock.now_utc() - timedelta(hours=1))

        assert result.outcome == AdmissionOutcome.NOT_NEW
        assert ledger.get_entry(1) is None

    def test_missing_creation_time_counts_as_new(self, ledger, make_snapshot, cursor):
        result = ledger.admit(make_snapshot(1, created_at=None), ORDINARY, cursor)

        assert result.outcome == AdmissionOutcome.QUEUED
        assert ledger.get_entry(1).fingerprint is None

    def test_trial_campaign_never_enters(self, session, ledger, make_snapshot, cursor):
        result = ledger.admit(make_snapshot(1, campaign_id=65), JACKPOT, cursor)

        assert result.outcome == AdmissionOutcome.TRIAL_SKIPPED
        assert ledger.get_entry(1) is None
        assert _event_types(session) == []

    def test_trial_campaign_is_configurable(self, session, clock, make_snapshot, cursor):
        ledger = LedgerService(session, clock, trial_campaign_id=99)

        assert ledger.admit(make_snapshot(1, campaign_id=65), ORDINARY, cursor).outcome == (
            AdmissionOutcome.QUEUED
        )
        assert ledger.admit(make_snapshot(2, campaign_id=99), ORDINARY, cursor).outcome == (
            AdmissionOutcome.TRIAL_SKIPPED
        )


class TestDuplicates:
    def test_second_subscription_with_same_fingerprint_is_excluded(
        self, session, ledger, make_snapshot, cursor,
    ):
        first = make_snapshot(1, user_id=42)
        second = make_snapshot(2, user_id=42)
        assert first.fingerprint() == second.fingerprint()

        ledger.admit(first, ORDINARY, cursor)
        result = ledger.admit(second, ORDINARY, cursor)

        assert result.outcome == AdmissionOutcome.DUPLICATE_EXCLUDED
        excluded = ledger.get_entry(2)
        assert excluded.status == LedgerStatus.EXCLUDED.value
        assert excluded.exclude_reason == "duplicate"
        assert excluded.excluded_by == "system"
        # First wins
        assert ledger.get_entry(1).status == LedgerStatus.PENDING.value
        assert _event_types(session) == [EventType.QUEUE_NEW.value]

        exclusions = session.execute(select(Exclusion)).scalars().all()
        assert [e.subscription_id for e in exclusions] == [2]
        assert exclusions[0].notes == f"Duplicate fingerprint: {first.fingerprint()}"

    def test_reprocessing_duplicate_writes_one_exclusion(self, session, ledger, make_snapshot, cursor):
        ledger.admit(make_snapshot(1, user_id=42), ORDINARY, cursor)
        ledger.admit(make_snapshot(2, user_id=42), ORDINARY, cursor)
        ledger.admit(make_snapshot(2, user_id=42), ORDINARY, cursor)

        assert session.execute(select(func.count(Exclusion.id))).scalar() == 1

    def test_different_external_id_is_not_duplicate(self, ledger, make_snapshot, cursor):
        ledger.admit(make_snapshot(1, user_id=42, stripe_sub_id="sub_a"), ORDINARY, cursor)
        result = ledger.admit(make_snapshot(2, user_id=42, stripe_sub_id="sub_b"), ORDINARY, cursor)

        assert result.outcome == AdmissionOutcome.QUEUED

    def test_window_is_24_hours(self, ledger, make_snapshot, clock, cursor):
        snapshot = make_snapshot(1, user_id=42)
        ledger.admit(snapshot, ORDINARY, cursor)

        clock.advance(timedelta(hours=24, seconds=1).total_seconds())
        later = make_snapshot(2, user_id=42, created_at=snapshot.created_at)

        assert ledger.admit(later, ORDINARY, cursor).outcome == AdmissionOutcome.QUEUED


class TestJackpot:
    def test_jackpot_emits_event_and_achievement(self, session, ledger, make_snapshot, cursor):
        result = ledger.admit(make_snapshot(1), JACKPOT, cursor)

        assert result.outcome == AdmissionOutcome.QUEUED
        assert result.jackpot_event_id is not None
        assert result.achievement_created is True
        assert _event_types(session) == [EventType.QUEUE_NEW.value, EventType.JACKPOT.value]

        achievement = session.execute(select(Achievement)).scalar_one()
        assert achievement.type == "jackpot"
        assert achievement.event_id == result.jackpot_event_id
        assert achievement.dedupe_key == f"event:{result.jackpot_event_id}"
        assert achievement.payload["subscription_id"] == 1
        assert achievement.payload["celebration"]["title"] == "Jackpot"

    def test_jackpot_not_repeated_on_readmission(self, session, ledger, make_snapshot, cursor):
        ledger.admit(make_snapshot(1), JACKPOT, cursor)
        ledger.admit(make_snapshot(1), JACKPOT, cursor)

        assert session.execute(select(func.count(Achievement.id))).scalar() == 1
        assert _event_types(session).count(EventType.JACKPOT.value) == 1
