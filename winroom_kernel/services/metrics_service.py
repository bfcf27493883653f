"""
MetricsService -- compute and persist per-subscription metrics.

Responsibility:
    Wraps the pure ``calculate_metrics`` with the I/O it needs: the FX rate
    and, when the subscription's own price is unusable, the latest payment
    fact.  Upserts the result into ``subscription_metrics``.

Architecture position:
    Kernel > Services.  Called once per subscription by the poller.

Invariants enforced:
    - Idempotent: recomputing the same subscription overwrites its one row.
    - Lookup failures degrade to "no payment fact" with a warning; they
      never abort the caller's batch.  Each lookup runs in its own
      SAVEPOINT so a failed statement leaves the outer transaction usable.

Non-goals:
    - Does NOT call ``session.commit()``.
"""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from winroom_kernel.db.statements import upsert
from winroom_kernel.domain.clock import Clock
from winroom_kernel.domain.metrics import (
    MetricsInput,
    MetricsResult,
    PaymentFact,
    calculate_metrics,
    needs_payment_fallback,
)
from winroom_kernel.logging_config import get_logger
from winroom_kernel.models.ledger import SubscriptionMetrics
from winroom_kernel.models.upstream import PaymentConversation, PaymentInfo
from winroom_kernel.services.fx_rate_service import FxRateService

logger = get_logger("services.metrics")


class MetricsService:
    def __init__(
        self,
        session: Session,
        clock: Clock,
        fx_rates: FxRateService,
        jackpot_threshold_try: Decimal,
    ):
        self._session = session
        self._clock = clock
        self._fx_rates = fx_rates
        self._jackpot_threshold_try = jackpot_threshold_try

    def compute(self, data: MetricsInput) -> MetricsResult:
        payment_fact = None
        if needs_payment_fallback(data):
            payment_fact = self.latest_payment_fact(data.subscription_id)

        result = calculate_metrics(
            data,
            usd_try_rate=self._fx_rates.get_usd_try_rate(),
            jackpot_threshold_try=self._jackpot_threshold_try,
            payment_fact=payment_fact,
        )
        if result.revenue_usd is None:
            logger.warning(
                "metrics_revenue_unresolved",
                extra={
                    "subscription_id": data.subscription_id,
                    "currency": data.currency,
                    "currency_source": result.currency_source,
                },
            )
        return result

    def compute_and_store(self, data: MetricsInput) -> MetricsResult:
        result = self.compute(data)
        upsert(
            self._session,
            SubscriptionMetrics,
            values={
                "subscription_id": data.subscription_id,
                "revenue_usd": result.revenue_usd,
                "cost_usd": result.cost_usd,
                "margin_amount_usd": result.margin_amount_usd,
                "margin_percent": result.margin_percent,
                "is_jackpot": result.is_jackpot,
                "currency_source": result.currency_source,
                "computed_at": self._clock.now_utc(),
            },
            conflict_columns=["subscription_id"],
            update_columns=[
                "revenue_usd",
                "cost_usd",
                "margin_amount_usd",
                "margin_percent",
                "is_jackpot",
                "currency_source",
                "computed_at",
            ],
        )
        logger.debug(
            "metrics_stored",
            extra={
                "subscription_id": data.subscription_id,
                "revenue_usd": result.revenue_usd,
                "is_jackpot": result.is_jackpot,
            },
        )
        return result

    def latest_payment_fact(self, subscription_id: int) -> PaymentFact | None:
        try:
            with self._session.begin_nested():
                row = self._session.execute(
                    select(PaymentInfo.paid_price, PaymentInfo.currency)
                    .join(
                        PaymentConversation,
                        PaymentConversation.payment_info_id == PaymentInfo.id,
                    )
                    .where(PaymentConversation.subscription_id == subscription_id)
                    .order_by(PaymentConversation.id.desc())
                    .limit(1)
                ).first()
        except SQLAlchemyError:
            logger.warning(
                "payment_fact_lookup_failed",
                extra={"subscription_id": subscription_id},
                exc_info=True,
            )
            return None

        if row is None:
            return None
        return PaymentFact(paid_price=row.paid_price, currency=row.currency)
