"""
GoalProgressService -- recompute goal progress and award goal completion.

Responsibility:
    For every team goal visible to sellers and every personal goal whose
    period covers today, computes the current value over the period's
    claims, upserts one ``ProgressCache`` row per goal per day, and awards
    a ``team_goal`` / ``personal_goal`` achievement once progress reaches
    100%.

Invariants enforced:
    - ``percent = current / target``; 0 when the target is not positive.
    - One cache row per (scope, goal, day); later runs the same day
      overwrite it.
    - Completion achievements are keyed by goal and period, so a goal that
      stays above 100% for days is awarded once.

Non-goals:
    - Does NOT call ``session.commit()``.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from winroom_kernel.db.statements import upsert
from winroom_kernel.domain.achievements import (
    PERSONAL_GOAL_CELEBRATION,
    PERSONAL_GOAL_DESCRIPTION,
    PERSONAL_GOAL_TITLE,
    TEAM_GOAL_CELEBRATION,
    TEAM_GOAL_DESCRIPTION,
    TEAM_GOAL_TITLE,
    AchievementType,
    GoalCompletionPayload,
    personal_goal_dedupe_key,
    team_goal_dedupe_key,
)
from winroom_kernel.domain.clock import Clock
from winroom_kernel.logging_config import get_logger
from winroom_kernel.models.sales import PersonalGoal, ProgressCache, SalesGoal
from winroom_kernel.selectors.claim_selector import ClaimSelector, day_window
from winroom_kernel.services.achievement_service import AchievementService

logger = get_logger("services.goal_progress")

TEAM_GOAL_VISIBILITY = "sales_percent_only"


class GoalScope(str, Enum):
    GLOBAL = "global"
    PERSONAL = "personal"


class TargetType(str, Enum):
    REVENUE = "revenue"
    COUNT = "count"
    MARGIN_AMOUNT = "margin_amount"


@dataclass(frozen=True)
class GoalProgress:
    goal_scope: GoalScope
    goal_id: str
    current_value: Decimal
    percent: Decimal
    completed: bool


def progress_percent(current: Decimal, target: Decimal) -> Decimal:
    if target is None or target <= 0:
        return Decimal("0")
    return current / target


class GoalProgressService:
    def __init__(
        self,
        session: Session,
        clock: Clock,
        achievements: AchievementService | None = None,
        award_completions: bool = True,
    ):
        self._session = session
        self._clock = clock
        self._achievements = achievements or AchievementService(session, clock)
        self._claims = ClaimSelector(session)
        self._award_completions = award_completions

    def refresh(self) -> list[GoalProgress]:
        """Recompute every goal active today.  Returns one entry per goal."""
        today = self._clock.now_utc().date()
        results = []

        team_goals = self._session.execute(
            select(SalesGoal).where(
                SalesGoal.period_start <= today,
                SalesGoal.period_end >= today,
                SalesGoal.visibility_scope == TEAM_GOAL_VISIBILITY,
            )
        ).scalars().all()
        for goal in team_goals:
            results.append(self._refresh_team_goal(goal, today))

        personal_goals = self._session.execute(
            select(PersonalGoal).where(
                PersonalGoal.period_start <= today,
                PersonalGoal.period_end >= today,
            )
        ).scalars().all()
        for goal in personal_goals:
            results.append(self._refresh_personal_goal(goal, today))

        logger.info(
            "goal_progress_refreshed",
            extra={"team_goals": len(team_goals), "personal_goals": len(personal_goals)},
        )
        return results

    def current_value(
        self,
        target_type: str,
        period_start: date,
        period_end: date,
        seller_id: str | None = None,
    ) -> Decimal:
        start, end = day_window(period_start, period_end)
        if target_type == TargetType.REVENUE.value:
            return self._claims.revenue_total(start, end, seller_id)
        if target_type == TargetType.COUNT.value:
            return Decimal(self._claims.claim_count(start, end, seller_id))
        if target_type == TargetType.MARGIN_AMOUNT.value:
            return self._claims.margin_total(start, end, seller_id)
        logger.warning("goal_target_type_unknown", extra={"target_type": target_type})
        return Decimal("0")

    def _refresh_team_goal(self, goal: SalesGoal, today: date) -> GoalProgress:
        current = self.current_value(goal.target_type, goal.period_start, goal.period_end)
        progress = self._store(GoalScope.GLOBAL, str(goal.id), today, current, goal.target_value)

        if progress.completed and self._award_completions:
            self._achievements.create_achievement(
                AchievementType.TEAM_GOAL,
                seller_id=None,
                title=TEAM_GOAL_TITLE,
                payload=GoalCompletionPayload(
                    goal_id=str(goal.id),
                    goal_scope=GoalScope.GLOBAL.value,
                    target_type=goal.target_type,
                    target_value=goal.target_value,
                    current_value=current,
                    percent=progress.percent,
                    period_start=goal.period_start,
                    period_end=goal.period_end,
                    celebration=TEAM_GOAL_CELEBRATION,
                ),
                dedupe_key=team_goal_dedupe_key(str(goal.id), goal.period_start, goal.period_end),
                description=TEAM_GOAL_DESCRIPTION,
            )
        return progress

    def _refresh_personal_goal(self, goal: PersonalGoal, today: date) -> GoalProgress:
        current = self.current_value(
            goal.target_type, goal.period_start, goal.period_end, seller_id=goal.seller_id,
        )
        progress = self._store(GoalScope.PERSONAL, str(goal.id), today, current, goal.target_value)

        if progress.completed and goal.seller_id and self._award_completions:
            self._achievements.create_achievement(
                AchievementType.PERSONAL_GOAL,
                seller_id=goal.seller_id,
                title=PERSONAL_GOAL_TITLE,
                payload=GoalCompletionPayload(
                    goal_id=str(goal.id),
                    goal_scope=GoalScope.PERSONAL.value,
                    target_type=goal.target_type,
                    target_value=goal.target_value,
                    current_value=current,
                    percent=progress.percent,
                    period_start=goal.period_start,
                    period_end=goal.period_end,
                    celebration=PERSONAL_GOAL_CELEBRATION,
                    seller_id=goal.seller_id,
                ),
                dedupe_key=personal_goal_dedupe_key(
                    str(goal.id), goal.seller_id, goal.period_start, goal.period_end,
                ),
                description=PERSONAL_GOAL_DESCRIPTION,
            )
        return progress

    def _store(
        self,
        scope: GoalScope,
        goal_id: str,
        today: date,
        current: Decimal,
        target: Decimal,
    ) -> GoalProgress:
        percent = progress_percent(current, target)
        upsert(
            self._session,
            ProgressCache,
            values={
                "goal_scope": scope.value,
                "goal_id": goal_id,
                "as_of_date": today,
                "current_value": current,
                "percent": percent,
                "updated_at": self._clock.now_utc(),
            },
            conflict_columns=["goal_scope", "goal_id", "as_of_date"],
            update_columns=["current_value", "percent", "updated_at"],
        )
        logger.debug(
            "goal_progress_stored",
            extra={
                "goal_scope": scope.value,
                "goal_id": goal_id,
                "current_value": current,
                "percent": percent,
            },
        )
        return GoalProgress(
            goal_scope=scope,
            goal_id=goal_id,
            current_value=current,
            percent=percent,
            completed=percent >= 1,
        )
