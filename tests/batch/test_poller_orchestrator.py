"""
Tests for PollerOrchestrator -- wiring configuration into the poller,
its sub-jobs and the worker.
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from winroom_config.loader import load_config

from winroom_batch.domain.types import JobRunStatus, TickStatus
from winroom_batch.orchestrator import PollerOrchestrator, default_job_registry
from winroom_batch.services.poller import ReconciliationPoller
from winroom_batch.services.worker import PollerWorker


@pytest.fixture
def config(database_url):
    return load_config(env={"DATABASE_URL": database_url})


def _with_poller(config, **fields):
    return replace(config, poller=replace(config.poller, **fields))


class TestDefaultJobRegistry:
    def test_job_order(self, config):
        registry = default_job_registry(config)

        assert registry.list_jobs() == (
            "overdue_sweep",
            "lead_sync",
            "progress_cache",
            "revenue_milestones",
            "cache_cleanup",
        )

    def test_intervals_come_from_config(self, config):
        config = _with_poller(
            config,
            overdue_sweep_interval_hours=6,
            lead_sync_interval_hours=12,
            progress_cache_interval_minutes=5,
            revenue_check_interval_minutes=1,
            cache_cleanup_interval_hours=48,
        )
        registry = default_job_registry(config)

        assert registry.get("overdue_sweep").interval == timedelta(hours=6)
        assert registry.get("lead_sync").interval == timedelta(hours=12)
        assert registry.get("progress_cache").interval == timedelta(minutes=5)
        assert registry.get("revenue_milestones").interval == timedelta(minutes=1)
        assert registry.get("cache_cleanup").interval == timedelta(hours=48)


class TestPollerOrchestrator:
    def test_from_config_wires_poller(self, config, session_factory, clock, captured_logs):
        orchestrator = PollerOrchestrator.from_config(config, session_factory, clock=clock)

        assert isinstance(orchestrator.poller, ReconciliationPoller)
        assert orchestrator.poller.jobs is orchestrator.job_registry
        assert orchestrator.clock is clock
        created = [r for r in captured_logs() if r["message"] == "poller_orchestrator_created"]
        assert created[0]["config_checksum"] == config.checksum
        assert len(created[0]["jobs"]) == 5

    def test_create_worker_is_not_started(self, config, session_factory, clock):
        orchestrator = PollerOrchestrator(config, session_factory, clock=clock)

        worker = orchestrator.create_worker(interval_ms=50)

        assert isinstance(worker, PollerWorker)
        assert worker.is_running is False

    def test_first_tick_runs_due_jobs(self, config, session_factory, clock):
        orchestrator = PollerOrchestrator(config, session_factory, clock=clock)

        result = orchestrator.poller.tick()

        assert result.status == TickStatus.COMPLETED
        statuses = {job.job_name: job.status for job in result.jobs}
        assert statuses == {
            "overdue_sweep": JobRunStatus.SKIPPED,
            "lead_sync": JobRunStatus.RAN,
            "progress_cache": JobRunStatus.RAN,
            "revenue_milestones": JobRunStatus.RAN,
            "cache_cleanup": JobRunStatus.SKIPPED,
        }

    def test_batch_size_flows_to_poller(
        self, config, session, session_factory, clock, create_subscription,
    ):
        orchestrator = PollerOrchestrator(_with_poller(config, batch_size=1), session_factory, clock=clock)
        poller = orchestrator.poller
        poller.tick()
        clock.advance(60)
        create_subscription(1)
        clock.advance(60)
        create_subscription(2)
        session.commit()

        assert poller.tick().records_seen == 1
        assert poller.tick().records_seen == 1

    def test_trial_campaign_flows_to_poller(
        self, config, session, session_factory, clock, create_subscription,
    ):
        orchestrator = PollerOrchestrator(
            _with_poller(config, trial_campaign_id=7), session_factory, clock=clock,
        )
        orchestrator.poller.tick()
        clock.advance(60)
        create_subscription(1, campaign_id=7)
        create_subscription(2, campaign_id=65)
        session.commit()

        result = orchestrator.poller.tick()

        assert result.records_seen == 2
        assert result.queued == 1
