"""
Tests for InstallmentSelector -- plan DTOs, list filters and the dashboard.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from winroom_kernel.selectors.installment_selector import InstallmentSelector, PlanFilters

from tests.conftest import CLOSER_ID, FINANCE_ID


@pytest.fixture
def selector(session, clock):
    return InstallmentSelector(session, clock)


@pytest.fixture
def portfolio(clock, create_plan, installment_service):
    """
    Four active plans, one per derived category (today is 2024-06-10):

        upcoming  -- first payment due 2024-06-15
        overdue   -- first payment due 2024-06-01
        tolerance -- first payment due 2024-06-05, tolerance to 2024-06-20
        review    -- first payment submitted, due 2024-07-30
    """
    upcoming = create_plan(501, first_due=date(2024, 6, 15))
    clock.advance(60)
    overdue = create_plan(
        502,
        first_due=date(2024, 6, 1),
        customer_name="Grace Hopper",
        customer_email="grace@navy.example",
    )
    clock.advance(60)
    tolerance = create_plan(503, first_due=date(2024, 6, 5))
    installment_service.add_tolerance(
        tolerance.id, tolerance.payments[0].id, FINANCE_ID, date(2024, 6, 20), "travelling",
    )
    clock.advance(60)
    review = create_plan(504, first_due=date(2024, 7, 30))
    installment_service.submit_payment(
        review.id, review.payments[0].id, CLOSER_ID, paid_amount=Decimal("100"),
    )
    return {"upcoming": upcoming, "overdue": overdue, "tolerance": tolerance, "review": review}


def _subscriptions(plans) -> list[int]:
    return sorted(p.subscription_id for p in plans)


class TestGetPlan:
    def test_plan_with_payments(self, selector, portfolio):
        dto = selector.get_plan(portfolio["overdue"].id)

        assert dto.subscription_id == 502
        assert dto.customer_name == "Grace Hopper"
        assert [p.payment_number for p in dto.payments] == [1, 2, 3]
        assert dto.payments[0].overdue_days == 9
        assert dto.payments[1].overdue_days == 0
        assert dto.overdue_count == 1
        assert dto.total_payments == 3
        assert dto.paid_count == 0

    def test_accepts_string_id(self, selector, portfolio):
        assert selector.get_plan(str(portfolio["upcoming"].id)).subscription_id == 501

    def test_tolerance_flags(self, selector, portfolio):
        dto = selector.get_plan(portfolio["tolerance"].id)

        first = dto.payments[0]
        assert first.tolerance_active is True
        assert first.tolerance_until == date(2024, 6, 20)
        assert first.tolerance_given_by == FINANCE_ID
        assert first.overdue_days == 0
        assert dto.overdue_count == 0

    @pytest.mark.parametrize("plan_id", ["not-a-uuid", str(uuid4())])
    def test_unknown_or_invalid_id(self, selector, plan_id):
        assert selector.get_plan(plan_id) is None

    def test_for_subscription(self, selector, portfolio):
        dto = selector.get_plan_for_subscription(504)

        assert dto.id == portfolio["review"].id
        assert dto.submitted_count == 1
        assert dto.payments[0].submitted_by == CLOSER_ID
        assert selector.get_plan_for_subscription(999) is None


class TestListPlans:
    def test_newest_first_without_payments(self, selector, portfolio):
        plans = selector.list_plans()

        assert [p.subscription_id for p in plans] == [504, 503, 502, 501]
        assert all(p.payments == () for p in plans)
        assert plans[0].submitted_count == 1

    @pytest.mark.parametrize(
        "category, expected",
        [
            ("review_needed", [504]),
            ("overdue", [502]),
            ("tolerance", [503]),
            ("upcoming", [501]),
        ],
    )
    def test_category_filters(self, selector, portfolio, category, expected):
        assert _subscriptions(selector.list_plans(PlanFilters(status=category))) == expected

    def test_literal_status(self, selector, portfolio, installment_service):
        installment_service.freeze_plan(portfolio["upcoming"].id, FINANCE_ID, reason="dispute")

        frozen = selector.list_plans(PlanFilters(status="frozen"))
        active = selector.list_plans(PlanFilters(status="active"))

        assert _subscriptions(frozen) == [501]
        assert _subscriptions(active) == [502, 503, 504]

    def test_unknown_status_is_ignored(self, selector, portfolio, captured_logs):
        plans = selector.list_plans(PlanFilters(status="archived"))

        assert _subscriptions(plans) == [501, 502, 503, 504]
        ignored = [r for r in captured_logs() if r["message"] == "installment_status_filter_ignored"]
        assert [r["status"] for r in ignored] == ["archived"]

    def test_search_matches_name_or_email(self, selector, portfolio):
        assert _subscriptions(selector.list_plans(PlanFilters(search="grace"))) == [502]
        assert _subscriptions(selector.list_plans(PlanFilters(search="navy.example"))) == [502]
        assert len(selector.list_plans(PlanFilters(search="lovelace"))) == 3

    def test_subscription_filter_and_limit(self, selector, portfolio):
        assert _subscriptions(selector.list_plans(PlanFilters(subscription_id=503))) == [503]
        assert [p.subscription_id for p in selector.list_plans(PlanFilters(limit=2))] == [504, 503]


class TestDashboard:
    def test_counts(self, selector, portfolio):
        dashboard = selector.dashboard()

        assert dashboard.total_active == 4
        assert dashboard.total_frozen == 0
        assert dashboard.total_completed == 0
        assert dashboard.review_needed == 1
        assert dashboard.overdue == 1
        assert dashboard.tolerance_active == 1

    def test_empty(self, selector):
        dashboard = selector.dashboard()

        assert (dashboard.total_active, dashboard.overdue, dashboard.review_needed) == (0, 0, 0)
