"""
Immutable view of one upstream subscription joined with its campaign.

The poller reads upstream rows into ``SubscriptionSnapshot`` once per tick
so services work on plain values and never hold upstream ORM instances.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from winroom_kernel.domain.fingerprint import generate_fingerprint
from winroom_kernel.domain.metrics import MetricsInput


@dataclass(frozen=True)
class SubscriptionSnapshot:
    id: int
    user_id: int | None
    campaign_id: int | None
    created_at: datetime | None
    updated_at: datetime | None
    subs_amount: Decimal | None
    currency: str | None
    status: str | None
    is_free: int | None
    payment_channel: str | None
    stripe_sub_id: str | None
    paypal_sub_id: str | None
    sales_person: str | None = None
    campaign_length: int | None = None
    per_week: int | None = None
    campaign_minute: int | None = None

    def to_metrics_input(self) -> MetricsInput:
        return MetricsInput(
            subscription_id=self.id,
            subs_amount=self.subs_amount,
            currency=self.currency,
            campaign_length=self.campaign_length,
            per_week=self.per_week,
            campaign_minute=self.campaign_minute,
            is_free=self.is_free,
            payment_channel=self.payment_channel,
            status=self.status,
        )

    def fingerprint(self) -> str | None:
        """Duplicate-detection hash, or None without a creation time."""
        if self.created_at is None:
            return None
        return generate_fingerprint(
            self.user_id,
            self.campaign_id,
            self.created_at,
            self.stripe_sub_id,
            self.paypal_sub_id,
        )

    def is_new_since(self, cursor: datetime | None) -> bool:
        """Created after *cursor*; unknown times count as new."""
        if cursor is None or self.created_at is None:
            return True
        return self.created_at > cursor
