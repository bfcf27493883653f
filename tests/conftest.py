"""
Pytest fixtures for the Win Room test suite.

Provides:
- A fresh file-backed SQLite database per test (file-backed so the
  poller's per-unit-of-work sessions see each other's commits)
- A deterministic clock
- Seed factories for upstream rows, claims and installment plans
- Structured log capture

Environment Variables:
- WINROOM_TEST_POSTGRES_URL: PostgreSQL URL for tests marked ``postgres``.
  Those tests are skipped when it is not set.
"""

import json
import logging
import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy.orm import Session

from winroom_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from winroom_kernel.domain.clock import DeterministicClock
from winroom_kernel.domain.installments import PaymentSpec, PlanSpec
from winroom_kernel.domain.subscription import SubscriptionSnapshot
from winroom_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from winroom_kernel.models.ledger import SubscriptionMetrics
from winroom_kernel.models.sales import Attribution, Claim, Setting
from winroom_kernel.models.upstream import Campaign, Subscription
from winroom_kernel.services.installment_service import InstallmentService

# Monday, mid-month: month and week windows both contain it
FIXED_NOW = datetime(2024, 6, 10, 12, 0, 0, tzinfo=timezone.utc)

CLOSER_ID = "seller-1"
FINANCE_ID = "finance-1"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture winroom logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, poller):
            poller.tick()
            logs = captured_logs()
            assert any(r["message"] == "poll_tick_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("winroom")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'winroom_test.db'}"


@pytest.fixture
def engine(database_url):
    engine = init_engine_from_url(database_url)
    create_tables()
    yield engine
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Session:
    """
    A session for seeding and assertions.

    Service tests flush through it and never commit.  Poller tests commit
    their seed data so the poller's own sessions can read it.
    """
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def postgres_url() -> str:
    url = os.environ.get("WINROOM_TEST_POSTGRES_URL")
    if not url:
        pytest.skip("WINROOM_TEST_POSTGRES_URL not set")
    return url


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(FIXED_NOW)


# =============================================================================
# Seed factories
# =============================================================================


@pytest.fixture
def set_usd_try_rate(session):
    """Store the operator-maintained USD/TRY rate (``dolar`` setting)."""

    def _set(rate: str) -> None:
        session.add(Setting(name="dolar", value=rate))
        session.flush()

    return _set


@pytest.fixture
def create_campaign(session):
    def _create(
        campaign_id: int = 1,
        campaign_length: int | None = 6,
        per_week: int | None = 3,
        campaign_minute: int | None = 25,
    ) -> Campaign:
        campaign = session.get(Campaign, campaign_id)
        if campaign is None:
            campaign = Campaign(
                id=campaign_id,
                name=f"Campaign {campaign_id}",
                campaign_length=campaign_length,
                per_week=per_week,
                campaign_minute=campaign_minute,
            )
            session.add(campaign)
            session.flush()
        return campaign

    return _create


@pytest.fixture
def create_subscription(session, clock, create_campaign):
    """
    Insert an upstream subscription (creating its campaign on first use).

    Defaults describe an ordinary paid 500 USD sale created and updated at
    the clock's current time.
    """

    def _create(
        subscription_id: int,
        *,
        user_id: int | None = None,
        campaign_id: int = 1,
        subs_amount: Decimal | None = Decimal("500"),
        currency: str | None = "USD",
        status: str = "active",
        is_free: int = 0,
        payment_channel: str | None = "Stripe",
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        stripe_sub_id: str | None = None,
        paypal_sub_id: str | None = None,
    ) -> Subscription:
        create_campaign(campaign_id)
        created_at = created_at or clock.now_utc()
        subscription = Subscription(
            id=subscription_id,
            user_id=user_id if user_id is not None else 1000 + subscription_id,
            campaign_id=campaign_id,
            created_at=created_at,
            updated_at=updated_at or created_at,
            subs_amount=subs_amount,
            currency=currency,
            status=status,
            is_free=is_free,
            payment_channel=payment_channel,
            stripe_sub_id=stripe_sub_id,
            paypal_sub_id=paypal_sub_id,
        )
        session.add(subscription)
        session.flush()
        return subscription

    return _create


@pytest.fixture
def make_snapshot(clock):
    """Build a SubscriptionSnapshot without touching the database."""

    def _make(subscription_id: int, **overrides) -> SubscriptionSnapshot:
        fields = {
            "id": subscription_id,
            "user_id": 1000 + subscription_id,
            "campaign_id": 1,
            "created_at": clock.now_utc(),
            "updated_at": clock.now_utc(),
            "subs_amount": Decimal("500"),
            "currency": "USD",
            "status": "active",
            "is_free": 0,
            "payment_channel": "Stripe",
            "stripe_sub_id": None,
            "paypal_sub_id": None,
            "campaign_length": 6,
            "per_week": 3,
            "campaign_minute": 25,
        }
        fields.update(overrides)
        return SubscriptionSnapshot(**fields)

    return _make


@pytest.fixture
def create_claim(session, clock):
    """Claim a subscription for a seller, with stored metrics for its revenue."""

    def _create(
        subscription_id: int,
        seller_id: str | None,
        revenue_usd: Decimal,
        margin_usd: Decimal | None = None,
        claimed_at: datetime | None = None,
    ) -> Claim:
        session.add(
            SubscriptionMetrics(
                subscription_id=subscription_id,
                revenue_usd=revenue_usd,
                cost_usd=Decimal("0"),
                margin_amount_usd=margin_usd if margin_usd is not None else revenue_usd,
                margin_percent=Decimal("1"),
                is_jackpot=False,
                currency_source="USD",
                computed_at=clock.now_utc(),
            )
        )
        claim = Claim(
            subscription_id=subscription_id,
            claimed_by=seller_id,
            claimed_at=claimed_at or clock.now_utc(),
            claim_type="first_sales",
        )
        session.add(claim)
        session.flush()
        return claim

    return _create


@pytest.fixture
def plan_spec():
    """Build a PlanSpec with *count* monthly payments starting *first_due*."""

    def _build(
        subscription_id: int = 501,
        count: int = 3,
        first_due: date = date(2024, 6, 15),
        amount: Decimal = Decimal("100"),
        **overrides,
    ) -> PlanSpec:
        payments = tuple(
            PaymentSpec(
                payment_number=n,
                due_date=first_due + timedelta(days=30 * (n - 1)),
                amount=amount,
            )
            for n in range(1, count + 1)
        )
        fields = {
            "subscription_id": subscription_id,
            "total_installments": count,
            "payments": payments,
            "customer_name": "Ada Lovelace",
            "customer_email": "ada@example.com",
            "total_amount": amount * count,
        }
        fields.update(overrides)
        return PlanSpec(**fields)

    return _build


@pytest.fixture
def installment_service(session, clock) -> InstallmentService:
    return InstallmentService(session, clock)


@pytest.fixture
def create_plan(session, installment_service, plan_spec):
    """Create a plan whose subscription is closed by CLOSER_ID."""

    def _create(subscription_id: int = 501, **spec_overrides):
        session.add(Attribution(subscription_id=subscription_id, closer_seller_id=CLOSER_ID))
        session.flush()
        spec = plan_spec(subscription_id=subscription_id, **spec_overrides)
        return installment_service.create_plan(spec, actor_id=CLOSER_ID)

    return _create
