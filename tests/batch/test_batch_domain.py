"""
Tests for winroom_batch.domain -- cadence evaluation and poller state.

Pure code, no database.
"""

from datetime import datetime, timedelta, timezone

from winroom_batch.domain.cadence import is_due, next_due_at
from winroom_batch.domain.types import (
    JobRunResult,
    JobRunStatus,
    PollerState,
    TickResult,
    TickStatus,
)

NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)
HOUR = timedelta(hours=1)


class TestCadence:
    def test_never_run_is_due(self):
        assert is_due(None, NOW, HOUR)
        assert next_due_at(None, HOUR) is None

    def test_exactly_one_interval_is_due(self):
        assert is_due(NOW - HOUR, NOW, HOUR)

    def test_within_interval_not_due(self):
        assert not is_due(NOW - timedelta(minutes=59), NOW, HOUR)

    def test_next_due(self):
        assert next_due_at(NOW, HOUR) == NOW + HOUR


class TestTickResult:
    def test_dropped_constructor(self):
        result = TickResult.dropped(7)
        assert result.status == TickStatus.DROPPED
        assert result.tick_number == 7
        assert result.records_seen == 0

    def test_job_lookup(self):
        ran = JobRunResult("overdue_sweep", JobRunStatus.RAN, detail={"payments_marked": 2})
        result = TickResult(status=TickStatus.COMPLETED, jobs=(ran,))

        assert result.job("overdue_sweep") is ran
        assert result.job("lead_sync") is None


class TestPollerState:
    def test_initial_state(self):
        state = PollerState()
        assert (state.tick_count, state.dropped_ticks, state.failed_ticks) == (0, 0, 0)
        assert state.last_result is None

    def test_after_tick_counts_and_remembers(self):
        completed = TickResult(status=TickStatus.COMPLETED, tick_number=1)
        failed = TickResult(status=TickStatus.FAILED, tick_number=2)

        state = PollerState().after_tick(completed).after_tick(failed)

        assert state.tick_count == 2
        assert state.failed_ticks == 1
        assert state.last_result is failed

    def test_after_drop_only_counts_drops(self):
        original = PollerState()
        state = original.after_drop().after_drop()

        assert state.dropped_ticks == 2
        assert state.tick_count == 0
        assert original.dropped_ticks == 0
