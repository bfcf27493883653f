"""
Tests for GoalProgressService -- progress cache and goal completion awards.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from winroom_kernel.models.achievement import Achievement
from winroom_kernel.models.sales import ClaimAdjustment, PersonalGoal, ProgressCache, SalesGoal
from winroom_kernel.services.goal_progress_service import (
    GoalProgressService,
    GoalScope,
    progress_percent,
)

JUNE_1 = date(2024, 6, 1)
JUNE_30 = date(2024, 6, 30)


@pytest.fixture
def progress(session, clock):
    return GoalProgressService(session, clock)


@pytest.fixture
def team_goal(session):
    def _create(target_value="1000", target_type="revenue", **fields) -> SalesGoal:
        goal = SalesGoal(
            period_start=fields.pop("period_start", JUNE_1),
            period_end=fields.pop("period_end", JUNE_30),
            target_type=target_type,
            target_value=Decimal(target_value),
            **fields,
        )
        session.add(goal)
        session.flush()
        return goal

    return _create


@pytest.fixture
def personal_goal(session):
    def _create(seller_id, target_value="500", target_type="revenue") -> PersonalGoal:
        goal = PersonalGoal(
            seller_id=seller_id,
            period_start=JUNE_1,
            period_end=JUNE_30,
            target_type=target_type,
            target_value=Decimal(target_value),
        )
        session.add(goal)
        session.flush()
        return goal

    return _create


def _achievements(session) -> list[Achievement]:
    return list(session.execute(select(Achievement).order_by(Achievement.type)).scalars())


class TestProgressPercent:
    def test_ratio(self):
        assert progress_percent(Decimal("250"), Decimal("1000")) == Decimal("0.25")

    @pytest.mark.parametrize("target", [Decimal("0"), Decimal("-5"), None])
    def test_non_positive_target_is_zero(self, target):
        assert progress_percent(Decimal("250"), target) == Decimal("0")


class TestTeamGoal:
    def test_partial_progress_is_cached(self, session, progress, team_goal, create_claim):
        goal = team_goal()
        create_claim(1, "seller-a", Decimal("400"))

        [result] = progress.refresh()

        assert result.goal_scope == GoalScope.GLOBAL
        assert result.current_value == Decimal("400")
        assert result.percent == Decimal("0.4")
        assert result.completed is False

        row = session.execute(select(ProgressCache)).scalar_one()
        assert row.goal_id == str(goal.id)
        assert row.goal_scope == "global"
        assert row.as_of_date == date(2024, 6, 10)
        assert _achievements(session) == []

    def test_completion_awards_once(self, session, progress, team_goal, create_claim):
        goal = team_goal()
        create_claim(1, "seller-a", Decimal("600"))
        create_claim(2, "seller-b", Decimal("500"))

        [result] = progress.refresh()
        progress.refresh()

        assert result.completed is True
        [achievement] = _achievements(session)
        assert achievement.type == "team_goal"
        assert achievement.seller_id is None
        assert achievement.dedupe_key == f"team_goal:{goal.id}:2024-06-01:2024-06-30"
        assert achievement.payload["goal_scope"] == "global"

    def test_same_day_refresh_overwrites_cache(self, session, progress, team_goal, create_claim):
        team_goal()
        create_claim(1, "seller-a", Decimal("200"))
        progress.refresh()

        create_claim(2, "seller-a", Decimal("300"))
        progress.refresh()

        [row] = session.execute(select(ProgressCache)).scalars().all()
        assert row.current_value == Decimal("500")

    def test_hidden_goal_is_ignored(self, progress, team_goal):
        team_goal(visibility_scope="admin_only")

        assert progress.refresh() == []

    def test_goal_outside_period_is_ignored(self, progress, team_goal):
        team_goal(period_start=date(2024, 5, 1), period_end=date(2024, 5, 31))

        assert progress.refresh() == []

    def test_claims_outside_period_do_not_count(self, progress, team_goal, create_claim, clock):
        team_goal()
        create_claim(1, "seller-a", Decimal("900"), claimed_at=clock.now_utc() - timedelta(days=30))
        create_claim(2, "seller-a", Decimal("100"))

        [result] = progress.refresh()

        assert result.current_value == Decimal("100")

    def test_award_completions_disabled(self, session, clock, team_goal, create_claim):
        team_goal()
        create_claim(1, "seller-a", Decimal("2000"))

        [result] = GoalProgressService(session, clock, award_completions=False).refresh()

        assert result.completed is True
        assert _achievements(session) == []


class TestTargetTypes:
    def test_count_target(self, progress, team_goal, create_claim):
        team_goal(target_value="4", target_type="count")
        create_claim(1, "seller-a", Decimal("10"))
        create_claim(2, "seller-b", Decimal("10"))

        [result] = progress.refresh()

        assert result.current_value == Decimal("2")
        assert result.percent == Decimal("0.5")

    def test_margin_target_subtracts_adjustments(self, session, progress, team_goal, create_claim):
        team_goal(target_value="1000", target_type="margin_amount")
        create_claim(1, "seller-a", Decimal("900"), margin_usd=Decimal("600"))
        session.add(ClaimAdjustment(subscription_id=1, additional_cost_usd=Decimal("100")))
        session.flush()

        [result] = progress.refresh()

        assert result.current_value == Decimal("500")

    def test_unknown_target_type_is_zero(self, progress, team_goal, create_claim, captured_logs):
        team_goal(target_type="bookings")
        create_claim(1, "seller-a", Decimal("900"))

        [result] = progress.refresh()

        assert result.current_value == Decimal("0")
        assert any(r["message"] == "goal_target_type_unknown" for r in captured_logs())


class TestPersonalGoal:
    def test_counts_only_the_sellers_claims(self, session, progress, personal_goal, create_claim):
        goal = personal_goal("seller-a")
        create_claim(1, "seller-a", Decimal("300"))
        create_claim(2, "seller-b", Decimal("700"))

        [result] = progress.refresh()

        assert result.goal_scope == GoalScope.PERSONAL
        assert result.current_value == Decimal("300")
        assert result.completed is False
        row = session.execute(select(ProgressCache)).scalar_one()
        assert (row.goal_scope, row.goal_id) == ("personal", str(goal.id))

    def test_completion_awards_the_seller(self, session, progress, personal_goal, create_claim):
        goal = personal_goal("seller-a")
        create_claim(1, "seller-a", Decimal("500"))

        progress.refresh()
        progress.refresh()

        [achievement] = _achievements(session)
        assert achievement.type == "personal_goal"
        assert achievement.seller_id == "seller-a"
        assert achievement.dedupe_key == (
            f"personal_goal:{goal.id}:seller-a:2024-06-01:2024-06-30"
        )
