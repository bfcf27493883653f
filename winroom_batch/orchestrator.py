"""
PollerOrchestrator -- DI container for the reconciliation poller.

Contract:
    Builds the sub-job registry from configuration, creates the
    ReconciliationPoller, and optionally wraps it in a PollerWorker.  The
    single place where configuration sections meet poller dependencies.

Architecture: winroom_batch (top-level).  The kernel never sees
    WinRoomConfig; the orchestrator passes plain values down.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.orm import Session

from winroom_config.schema import WinRoomConfig
from winroom_kernel.domain.clock import Clock, SystemClock
from winroom_kernel.logging_config import get_logger

from winroom_batch.jobs.base import JobRegistry
from winroom_batch.jobs.installment_jobs import OverdueSweepJob
from winroom_batch.jobs.maintenance_jobs import CacheCleanupJob
from winroom_batch.jobs.sales_jobs import GoalProgressJob, LeadSyncJob, RevenueMilestonesJob
from winroom_batch.services.poller import ReconciliationPoller
from winroom_batch.services.worker import PollerWorker

logger = get_logger("batch.orchestrator")


def default_job_registry(config: WinRoomConfig) -> JobRegistry:
    """Create a JobRegistry with every sub-job, configured from *config*."""
    poller = config.poller
    milestones = config.milestones

    registry = JobRegistry()
    registry.register(OverdueSweepJob(interval_hours=poller.overdue_sweep_interval_hours))
    registry.register(LeadSyncJob(interval_hours=poller.lead_sync_interval_hours))
    registry.register(GoalProgressJob(
        interval_minutes=poller.progress_cache_interval_minutes,
        award_completions=milestones.goal_achievements_enabled,
    ))
    registry.register(RevenueMilestonesJob(
        interval_minutes=poller.revenue_check_interval_minutes,
        team_enabled=milestones.team_revenue_enabled,
        personal_enabled=milestones.personal_revenue_enabled,
        daily_enabled=milestones.daily_revenue_enabled,
    ))
    registry.register(CacheCleanupJob(interval_hours=poller.cache_cleanup_interval_hours))
    return registry


class PollerOrchestrator:
    """DI container for the poller.

    Contract:
        - ``from_config()`` creates a fully wired orchestrator.
        - ``poller`` is created once and shared by every worker.
        - ``create_worker()`` returns an unstarted PollerWorker.

    Non-goals:
        - Does NOT start the worker -- caller decides.
        - Does NOT create tables or initialize the engine.
    """

    def __init__(
        self,
        config: WinRoomConfig,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        job_registry: JobRegistry | None = None,
    ) -> None:
        self._config = config
        self._clock = clock or SystemClock()
        self._jobs = job_registry if job_registry is not None else default_job_registry(config)
        self._poller = ReconciliationPoller(
            session_factory,
            clock=self._clock,
            jobs=self._jobs,
            batch_size=config.poller.batch_size,
            trial_campaign_id=config.poller.trial_campaign_id,
            jackpot_threshold_try=config.metrics.jackpot_threshold_try,
            usd_try_rate_fallback=config.metrics.usd_try_rate_fallback,
            fx_setting_name=config.metrics.fx_setting_name,
            fx_cache_ttl_seconds=config.metrics.fx_cache_ttl_seconds,
        )

    @classmethod
    def from_config(
        cls,
        config: WinRoomConfig,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
    ) -> PollerOrchestrator:
        orchestrator = cls(config, session_factory, clock=clock)
        logger.info(
            "poller_orchestrator_created",
            extra={
                "config_checksum": config.checksum,
                "jobs": list(orchestrator.job_registry.list_jobs()),
                "batch_size": config.poller.batch_size,
            },
        )
        return orchestrator

    def create_worker(self, interval_ms: int | None = None) -> PollerWorker:
        return PollerWorker(
            self._poller,
            interval_ms=interval_ms if interval_ms is not None else self._config.poller.interval_ms,
        )

    @property
    def poller(self) -> ReconciliationPoller:
        return self._poller

    @property
    def job_registry(self) -> JobRegistry:
        return self._jobs

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> WinRoomConfig:
        return self._config
