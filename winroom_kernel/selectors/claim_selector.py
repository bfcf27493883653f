"""
Module: winroom_kernel.selectors.claim_selector
Responsibility: Aggregates over claims joined with subscription metrics,
    used by goal progress and revenue milestones.
Architecture position: Kernel > Selectors.

Windows are half-open ``[start, end)`` on ``claimed_at``.  Day-based
callers pass midnight UTC boundaries from ``day_window``.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select

from winroom_kernel.db.types import to_decimal
from winroom_kernel.models.ledger import SubscriptionMetrics
from winroom_kernel.models.sales import Claim, ClaimAdjustment
from winroom_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


def day_window(first_day: date, last_day: date | None = None) -> tuple[datetime, datetime]:
    """UTC ``[first_day 00:00, (last_day + 1) 00:00)``."""
    last_day = last_day or first_day
    start = datetime.combine(first_day, time.min, tzinfo=timezone.utc)
    end = datetime.combine(last_day + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return start, end


class ClaimSelector(BaseSelector):
    def revenue_total(
        self,
        start: datetime,
        end: datetime,
        seller_id: str | None = None,
    ) -> Decimal:
        stmt = (
            select(func.coalesce(func.sum(SubscriptionMetrics.revenue_usd), 0))
            .select_from(Claim)
            .join(
                SubscriptionMetrics,
                SubscriptionMetrics.subscription_id == Claim.subscription_id,
            )
            .where(Claim.claimed_at >= start, Claim.claimed_at < end)
        )
        if seller_id is not None:
            stmt = stmt.where(Claim.claimed_by == seller_id)
        return to_decimal(self.session.execute(stmt).scalar()) or ZERO

    def claim_count(
        self,
        start: datetime,
        end: datetime,
        seller_id: str | None = None,
    ) -> int:
        stmt = (
            select(func.count(Claim.id))
            .where(Claim.claimed_at >= start, Claim.claimed_at < end)
        )
        if seller_id is not None:
            stmt = stmt.where(Claim.claimed_by == seller_id)
        return int(self.session.execute(stmt).scalar() or 0)

    def margin_total(
        self,
        start: datetime,
        end: datetime,
        seller_id: str | None = None,
    ) -> Decimal:
        """Sum of margin minus post-claim cost adjustments."""
        adjustments = (
            select(
                ClaimAdjustment.subscription_id.label("subscription_id"),
                func.sum(ClaimAdjustment.additional_cost_usd).label("total"),
            )
            .group_by(ClaimAdjustment.subscription_id)
            .subquery()
        )
        stmt = (
            select(
                func.coalesce(
                    func.sum(
                        func.coalesce(SubscriptionMetrics.margin_amount_usd, 0)
                        - func.coalesce(adjustments.c.total, 0)
                    ),
                    0,
                )
            )
            .select_from(Claim)
            .join(
                SubscriptionMetrics,
                SubscriptionMetrics.subscription_id == Claim.subscription_id,
            )
            .outerjoin(adjustments, adjustments.c.subscription_id == Claim.subscription_id)
            .where(Claim.claimed_at >= start, Claim.claimed_at < end)
        )
        if seller_id is not None:
            stmt = stmt.where(Claim.claimed_by == seller_id)
        return to_decimal(self.session.execute(stmt).scalar()) or ZERO

    def revenue_by_seller(self, start: datetime, end: datetime) -> dict[str, Decimal]:
        """Revenue per claiming seller; unclaimed-by rows are left out."""
        rows = self.session.execute(
            select(
                Claim.claimed_by,
                func.coalesce(func.sum(SubscriptionMetrics.revenue_usd), 0),
            )
            .select_from(Claim)
            .join(
                SubscriptionMetrics,
                SubscriptionMetrics.subscription_id == Claim.subscription_id,
            )
            .where(
                Claim.claimed_at >= start,
                Claim.claimed_at < end,
                Claim.claimed_by.is_not(None),
            )
            .group_by(Claim.claimed_by)
            .order_by(Claim.claimed_by)
        ).all()
        return {seller: to_decimal(total) or ZERO for seller, total in rows}
