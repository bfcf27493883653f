"""Sales sub-jobs: lead assignment sync, goal progress, revenue milestones."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from winroom_kernel.domain.clock import Clock
from winroom_kernel.services.achievement_service import AchievementService
from winroom_kernel.services.checkpoint_store import CheckpointStore
from winroom_kernel.services.event_log import EventLog
from winroom_kernel.services.goal_progress_service import GoalProgressService
from winroom_kernel.services.lead_assignment_service import LeadAssignmentService
from winroom_kernel.services.revenue_milestone_service import RevenueMilestoneService

LEAD_SYNC_CHECKPOINT_TTL_SECONDS = 7 * 24 * 3600
PROGRESS_CACHE_CHECKPOINT_TTL_SECONDS = 24 * 3600
REVENUE_CHECKPOINT_TTL_SECONDS = 24 * 3600


class LeadSyncJob:
    """Aggregates leads created since the last run into daily owner counts.

    Starts one interval in the past so the first tick covers the last day.
    """

    name = "lead_sync"
    checkpoint_key = CheckpointStore.LEAD_SYNC
    checkpoint_ttl_seconds = LEAD_SYNC_CHECKPOINT_TTL_SECONDS

    def __init__(self, interval_hours: int = 24):
        self.interval = timedelta(hours=interval_hours)

    def initial_cursor(self, now: datetime) -> datetime | None:
        return now - self.interval

    def run(
        self,
        session: Session,
        clock: Clock,
        last_run: datetime | None,
        now: datetime,
    ) -> dict[str, Any]:
        since = last_run or now - self.interval
        result = LeadAssignmentService(session, clock).sync(since, now)
        return {
            "rows_upserted": result.rows_upserted,
            "leads_counted": result.leads_counted,
            "sellers_backfilled": result.sellers_backfilled,
        }


class GoalProgressJob:
    name = "progress_cache"
    checkpoint_key = CheckpointStore.PROGRESS_CACHE
    checkpoint_ttl_seconds = PROGRESS_CACHE_CHECKPOINT_TTL_SECONDS

    def __init__(self, interval_minutes: int = 15, award_completions: bool = True):
        self.interval = timedelta(minutes=interval_minutes)
        self._award_completions = award_completions

    def initial_cursor(self, now: datetime) -> datetime | None:
        # Already one minute overdue, so the first tick refreshes
        return now - self.interval - timedelta(minutes=1)

    def run(
        self,
        session: Session,
        clock: Clock,
        last_run: datetime | None,
        now: datetime,
    ) -> dict[str, Any]:
        achievements = AchievementService(session, clock, EventLog(session, clock))
        progress = GoalProgressService(
            session, clock, achievements, award_completions=self._award_completions,
        ).refresh()
        return {
            "goals_refreshed": len(progress),
            "goals_completed": sum(1 for p in progress if p.completed),
        }


class RevenueMilestonesJob:
    name = "revenue_milestones"
    checkpoint_key = CheckpointStore.REVENUE_MILESTONES
    checkpoint_ttl_seconds = REVENUE_CHECKPOINT_TTL_SECONDS

    def __init__(
        self,
        interval_minutes: int = 15,
        team_enabled: bool = True,
        personal_enabled: bool = True,
        daily_enabled: bool = True,
    ):
        self.interval = timedelta(minutes=interval_minutes)
        self._team_enabled = team_enabled
        self._personal_enabled = personal_enabled
        self._daily_enabled = daily_enabled

    def initial_cursor(self, now: datetime) -> datetime | None:
        return None

    def run(
        self,
        session: Session,
        clock: Clock,
        last_run: datetime | None,
        now: datetime,
    ) -> dict[str, Any]:
        evaluation = RevenueMilestoneService(
            session,
            clock,
            checkpoints=CheckpointStore(session, clock),
            achievements=AchievementService(session, clock, EventLog(session, clock)),
            team_enabled=self._team_enabled,
            personal_enabled=self._personal_enabled,
            daily_enabled=self._daily_enabled,
        ).evaluate()
        return {
            "team_total": str(evaluation.team_total),
            "daily_total": str(evaluation.daily_total),
            "milestones_awarded": len(evaluation.awarded),
        }
