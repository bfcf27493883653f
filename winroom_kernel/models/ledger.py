"""
Curated ledger rows, their exclusion audit trail, and per-subscription metrics.

Invariants enforced:
    - ``subscription_id`` is UNIQUE on LedgerEntry; the poller inserts with
      ON CONFLICT DO NOTHING and treats "no row returned" as "already there".
    - ``subscription_id`` is UNIQUE on SubscriptionMetrics; metrics are
      upserted on every observation of the subscription.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from winroom_kernel.db.base import Base, TrackedBase, UTCDateTime
from winroom_kernel.db.types import FINGERPRINT, MONEY, RATIO


class LedgerEntry(TrackedBase):
    """One curated row per upstream subscription (the live queue)."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        Index("ix_ledger_entries_fingerprint_created", "fingerprint", "created_at"),
        Index("ix_ledger_entries_status", "status"),
    )

    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source_created_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    fingerprint: Mapped[str | None] = mapped_column(FINGERPRINT, nullable=True)
    excluded_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    excluded_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    exclude_reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    installment_plan_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    installment_count: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Exclusion(Base):
    """Audit trail for ledger rows excluded by the system or an admin."""

    __tablename__ = "exclusions"

    __table_args__ = (
        Index("ix_exclusions_subscription", "subscription_id"),
    )

    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(200), nullable=False)
    excluded_by: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)


class SubscriptionMetrics(Base):
    __tablename__ = "subscription_metrics"

    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    revenue_usd: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    cost_usd: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    margin_amount_usd: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    margin_percent: Mapped[Decimal] = mapped_column(RATIO, nullable=False)
    is_jackpot: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    currency_source: Mapped[str] = mapped_column(String(20), nullable=False)
    computed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
