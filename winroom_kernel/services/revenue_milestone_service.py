"""
RevenueMilestoneService -- daily team, personal and overall revenue awards.

Evaluates today's (UTC) claimed revenue against the milestone catalog in
``winroom_kernel.domain.achievements``:

    team total        vs 30K / 40K   -> team_revenue:<threshold>:<day>
    each seller       vs 4K / 8K / 10K -> personal_revenue:<seller>:<threshold>:<day>
    sum of sellers    vs 20K          -> daily_revenue:<day>

The team evaluation keeps ``team_revenue_state`` in the checkpoint store
(``{date, highest, last_check, total_revenue}``) so thresholds already
awarded today are not re-attempted; the dedupe keys remain the guarantee.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from winroom_kernel.db.types import to_decimal
from winroom_kernel.domain.achievements import (
    DAILY_REVENUE_MILESTONE,
    PERSONAL_REVENUE_MILESTONES,
    TEAM_REVENUE_MILESTONES,
    MilestoneDefinition,
    RevenueMilestonePayload,
    daily_revenue_dedupe_key,
    personal_revenue_dedupe_key,
    team_revenue_dedupe_key,
)
from winroom_kernel.domain.clock import Clock
from winroom_kernel.logging_config import get_logger
from winroom_kernel.selectors.claim_selector import ClaimSelector, day_window
from winroom_kernel.services.achievement_service import AchievementService
from winroom_kernel.services.checkpoint_store import CheckpointStore

logger = get_logger("services.revenue_milestones")

# Two days, so yesterday's state survives a restart around midnight
TEAM_REVENUE_STATE_TTL_SECONDS = 172800


@dataclass(frozen=True)
class TeamRevenueState:
    day: date | None
    highest: Decimal
    total_revenue: Decimal = Decimal("0")

    @classmethod
    def from_value(cls, value: dict | None) -> "TeamRevenueState":
        if not value:
            return cls(day=None, highest=Decimal("0"))
        try:
            day = date.fromisoformat(value.get("date") or "")
        except ValueError:
            day = None
        return cls(
            day=day,
            highest=to_decimal(value.get("highest")) or Decimal("0"),
            total_revenue=to_decimal(value.get("total_revenue")) or Decimal("0"),
        )


@dataclass
class MilestoneEvaluation:
    day: date
    team_total: Decimal = Decimal("0")
    daily_total: Decimal = Decimal("0")
    awarded: list[str] = field(default_factory=list)


class RevenueMilestoneService:
    def __init__(
        self,
        session: Session,
        clock: Clock,
        checkpoints: CheckpointStore | None = None,
        achievements: AchievementService | None = None,
        team_enabled: bool = True,
        personal_enabled: bool = True,
        daily_enabled: bool = True,
    ):
        self._session = session
        self._clock = clock
        self._checkpoints = checkpoints or CheckpointStore(session, clock)
        self._achievements = achievements or AchievementService(session, clock)
        self._claims = ClaimSelector(session)
        self._team_enabled = team_enabled
        self._personal_enabled = personal_enabled
        self._daily_enabled = daily_enabled

    def evaluate(self) -> MilestoneEvaluation:
        now = self._clock.now_utc()
        today = now.date()
        start, end = day_window(today)
        evaluation = MilestoneEvaluation(day=today)

        if self._team_enabled:
            evaluation.team_total = self._claims.revenue_total(start, end)
            highest = self._evaluate_team(today, evaluation)
            self._checkpoints.put_value(
                CheckpointStore.TEAM_REVENUE_STATE,
                {
                    "date": today.isoformat(),
                    "highest": str(highest),
                    "last_check": now.isoformat(),
                    "total_revenue": str(evaluation.team_total),
                },
                ttl_seconds=TEAM_REVENUE_STATE_TTL_SECONDS,
            )

        if self._personal_enabled or self._daily_enabled:
            per_seller = self._claims.revenue_by_seller(start, end)
            evaluation.daily_total = sum(per_seller.values(), Decimal("0"))
            if self._personal_enabled:
                for seller_id, revenue in per_seller.items():
                    self._evaluate_seller(seller_id, revenue, today, evaluation)
            if self._daily_enabled and evaluation.daily_total >= DAILY_REVENUE_MILESTONE.threshold:
                self._award(
                    DAILY_REVENUE_MILESTONE,
                    seller_id=None,
                    total=evaluation.daily_total,
                    day=today,
                    dedupe_key=daily_revenue_dedupe_key(today),
                    evaluation=evaluation,
                )

        logger.info(
            "revenue_milestones_evaluated",
            extra={
                "day": today.isoformat(),
                "team_total": evaluation.team_total,
                "daily_total": evaluation.daily_total,
                "awarded": len(evaluation.awarded),
            },
        )
        return evaluation

    def _evaluate_team(self, today: date, evaluation: MilestoneEvaluation) -> Decimal:
        """Award team thresholds crossed since the last check.  Returns the new highest."""
        state = TeamRevenueState.from_value(
            self._checkpoints.get_value(CheckpointStore.TEAM_REVENUE_STATE)
        )
        # The highest awarded threshold resets with the day
        highest = state.highest if state.day == today else Decimal("0")

        for milestone in TEAM_REVENUE_MILESTONES:
            if evaluation.team_total >= milestone.threshold and highest < milestone.threshold:
                self._award(
                    milestone,
                    seller_id=None,
                    total=evaluation.team_total,
                    day=today,
                    dedupe_key=team_revenue_dedupe_key(milestone.threshold, today),
                    evaluation=evaluation,
                )
                highest = milestone.threshold
        return highest

    def _evaluate_seller(
        self,
        seller_id: str,
        revenue: Decimal,
        today: date,
        evaluation: MilestoneEvaluation,
    ) -> None:
        for milestone in PERSONAL_REVENUE_MILESTONES:
            if revenue >= milestone.threshold:
                self._award(
                    milestone,
                    seller_id=seller_id,
                    total=revenue,
                    day=today,
                    dedupe_key=personal_revenue_dedupe_key(seller_id, milestone.threshold, today),
                    evaluation=evaluation,
                )

    def _award(
        self,
        milestone: MilestoneDefinition,
        seller_id: str | None,
        total: Decimal,
        day: date,
        dedupe_key: str,
        evaluation: MilestoneEvaluation,
    ) -> None:
        result = self._achievements.create_achievement(
            milestone.achievement_type,
            seller_id=seller_id,
            title=milestone.title,
            payload=RevenueMilestonePayload(
                threshold=milestone.threshold,
                total_revenue=total,
                day=day,
                celebration=milestone.celebration,
                seller_id=seller_id,
            ),
            dedupe_key=dedupe_key,
            description=milestone.description,
        )
        if result.created:
            evaluation.awarded.append(dedupe_key)
            logger.info(
                "revenue_milestone_awarded",
                extra={
                    "dedupe_key": dedupe_key,
                    "threshold": milestone.threshold,
                    "total_revenue": total,
                },
            )
