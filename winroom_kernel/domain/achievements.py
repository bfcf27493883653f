"""
Achievement catalog, payloads and dedupe keys.

Responsibility:
    Declares every achievement the system can award, the celebration
    metadata the broadcaster plays for it, and the dedupe key that makes a
    given milestone fire at most once for its scope and period.

Architecture position:
    Kernel > Domain.  Pure data and string building; persistence lives in
    ``winroom_kernel.services.achievement_service``.

Dedupe key shapes:
    event:<jackpot_event_id>
    jackpot:<subscription_id>                  (no event id available)
    team_revenue:<threshold>:<YYYY-MM-DD>
    personal_revenue:<seller>:<threshold>:<YYYY-MM-DD>
    daily_revenue:<YYYY-MM-DD>
    team_goal:<goal_id>:<period_start>:<period_end>
    personal_goal:<goal_id>:<seller>:<period_start>:<period_end>
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Union


class AchievementType(str, Enum):
    JACKPOT = "jackpot"
    TEAM_GOAL = "team_goal"
    PERSONAL_GOAL = "personal_goal"
    DAILY_REVENUE = "daily_revenue"
    TEAM_REVENUE_30K = "team_revenue_30k"
    TEAM_REVENUE_40K = "team_revenue_40k"
    PERSONAL_REVENUE_4K = "personal_revenue_4k"
    PERSONAL_REVENUE_8K = "personal_revenue_8k"
    PERSONAL_REVENUE_10K = "personal_revenue_10k"


class CelebrationVariant(str, Enum):
    MEMBER = "member"
    TEAM = "team"
    DAILY = "daily"


@dataclass(frozen=True)
class Celebration:
    variant: CelebrationVariant
    sound: str
    title: str
    subtitle: str

    def to_dict(self) -> dict[str, str]:
        return {
            "variant": self.variant.value,
            "sound": self.sound,
            "title": self.title,
            "subtitle": self.subtitle,
        }


@dataclass(frozen=True)
class MilestoneDefinition:
    """A revenue threshold and what to award when it is crossed."""

    threshold: Decimal
    achievement_type: AchievementType
    title: str
    description: str
    celebration_subtitle: str
    sound: str
    variant: CelebrationVariant

    @property
    def celebration(self) -> Celebration:
        return Celebration(
            variant=self.variant,
            sound=self.sound,
            title=self.title,
            subtitle=self.celebration_subtitle,
        )


PERSONAL_REVENUE_MILESTONES: tuple[MilestoneDefinition, ...] = (
    MilestoneDefinition(
        threshold=Decimal("4000"),
        achievement_type=AchievementType.PERSONAL_REVENUE_4K,
        title="4K Flow",
        description="On fire! You shattered the $4,000 daily line.",
        celebration_subtitle="You're on fire!",
        sound="sales_4k",
        variant=CelebrationVariant.MEMBER,
    ),
    MilestoneDefinition(
        threshold=Decimal("8000"),
        achievement_type=AchievementType.PERSONAL_REVENUE_8K,
        title="8K Momentum",
        description="Momentum locked in! You reached $8,000 daily revenue.",
        celebration_subtitle="Momentum is yours!",
        sound="sales_8k",
        variant=CelebrationVariant.MEMBER,
    ),
    MilestoneDefinition(
        threshold=Decimal("10000"),
        achievement_type=AchievementType.PERSONAL_REVENUE_10K,
        title="10K Legend",
        description="Wow! $10,000 in a day puts you in the legends club.",
        celebration_subtitle="Wow! Stellar performance!",
        sound="sales_10k",
        variant=CelebrationVariant.MEMBER,
    ),
)

TEAM_REVENUE_MILESTONES: tuple[MilestoneDefinition, ...] = (
    MilestoneDefinition(
        threshold=Decimal("30000"),
        achievement_type=AchievementType.TEAM_REVENUE_30K,
        title="30K Squad",
        description="The team cleared the 30K revenue wall today. Squad is on fire!",
        celebration_subtitle="The team is surging!",
        sound="team_30k",
        variant=CelebrationVariant.TEAM,
    ),
    MilestoneDefinition(
        threshold=Decimal("40000"),
        achievement_type=AchievementType.TEAM_REVENUE_40K,
        title="40K Power",
        description="40K team revenue! Power is in full swing.",
        celebration_subtitle="New team record!",
        sound="team_40k",
        variant=CelebrationVariant.TEAM,
    ),
)

DAILY_REVENUE_MILESTONE = MilestoneDefinition(
    threshold=Decimal("20000"),
    achievement_type=AchievementType.DAILY_REVENUE,
    title="20K Day",
    description="Daily revenue passed the 20K threshold.",
    celebration_subtitle="Mission complete!",
    sound="happy",
    variant=CelebrationVariant.DAILY,
)

TEAM_GOAL_CELEBRATION = Celebration(
    variant=CelebrationVariant.TEAM,
    sound="team_mission",
    title="Team Goal",
    subtitle="Mission complete!",
)

PERSONAL_GOAL_CELEBRATION = Celebration(
    variant=CelebrationVariant.MEMBER,
    sound="member_mission",
    title="Personal Goal",
    subtitle="Congrats!",
)

TEAM_GOAL_TITLE = "Team Goal"
TEAM_GOAL_DESCRIPTION = "The sales team completed the goal."
PERSONAL_GOAL_TITLE = "Personal Goal"
PERSONAL_GOAL_DESCRIPTION = "The sales rep completed their personal goal."

JACKPOT_CELEBRATION = Celebration(
    variant=CelebrationVariant.TEAM,
    sound="happy",
    title="Jackpot",
    subtitle="High-ticket sale!",
)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RevenueMilestonePayload:
    threshold: Decimal
    total_revenue: Decimal
    day: date
    celebration: Celebration
    seller_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "revenue_milestone",
            "threshold": self.threshold,
            "total_revenue": self.total_revenue,
            "date": self.day.isoformat(),
            "seller_id": self.seller_id,
            "celebration": self.celebration.to_dict(),
            "extra": dict(self.extra),
        }


@dataclass(frozen=True)
class GoalCompletionPayload:
    goal_id: str
    goal_scope: str
    target_type: str
    target_value: Decimal
    current_value: Decimal
    percent: Decimal
    period_start: date
    period_end: date
    celebration: Celebration
    seller_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "goal_completion",
            "goal_id": self.goal_id,
            "goal_scope": self.goal_scope,
            "target_type": self.target_type,
            "target_value": self.target_value,
            "current_value": self.current_value,
            "percent": self.percent,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "seller_id": self.seller_id,
            "celebration": self.celebration.to_dict(),
            "extra": dict(self.extra),
        }


@dataclass(frozen=True)
class JackpotAchievementPayload:
    subscription_id: int
    revenue_usd: Decimal | None
    celebration: Celebration = JACKPOT_CELEBRATION
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": "jackpot",
            "subscription_id": self.subscription_id,
            "revenue_usd": self.revenue_usd,
            "celebration": self.celebration.to_dict(),
            "extra": dict(self.extra),
        }


AchievementPayload = Union[
    RevenueMilestonePayload,
    GoalCompletionPayload,
    JackpotAchievementPayload,
]


# ---------------------------------------------------------------------------
# Dedupe keys
# ---------------------------------------------------------------------------


def _threshold_token(threshold: Decimal) -> str:
    return str(int(threshold)) if threshold == threshold.to_integral_value() else str(threshold)


def jackpot_dedupe_key(event_id: int | None, subscription_id: int) -> str:
    if event_id is not None:
        return f"event:{event_id}"
    return f"jackpot:{subscription_id}"


def team_revenue_dedupe_key(threshold: Decimal, day: date) -> str:
    return f"team_revenue:{_threshold_token(threshold)}:{day.isoformat()}"


def personal_revenue_dedupe_key(seller_id: str, threshold: Decimal, day: date) -> str:
    return f"personal_revenue:{seller_id}:{_threshold_token(threshold)}:{day.isoformat()}"


def daily_revenue_dedupe_key(day: date) -> str:
    return f"daily_revenue:{day.isoformat()}"


def team_goal_dedupe_key(goal_id: str, period_start: date, period_end: date) -> str:
    return f"team_goal:{goal_id}:{period_start.isoformat()}:{period_end.isoformat()}"


def personal_goal_dedupe_key(
    goal_id: str, seller_id: str, period_start: date, period_end: date,
) -> str:
    return (
        f"personal_goal:{goal_id}:{seller_id}:"
        f"{period_start.isoformat()}:{period_end.isoformat()}"
    )
