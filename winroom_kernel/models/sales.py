"""
Sales-context tables.

Contract:
    Sellers, attributions, claims, adjustments and goals are written by
    the claim/admin workflows outside this package.  The kernel reads them
    to evaluate goals and milestones and to authorize installment
    submissions; it writes only ``ProgressCache``, ``LeadAssignmentDaily``,
    and the installment link columns on ``Claim``.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from winroom_kernel.db.base import Base, TrackedBase, UTCDateTime
from winroom_kernel.db.types import MONEY, RATIO


class Seller(Base):
    __tablename__ = "sellers"

    seller_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    crm_owner_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Attribution(Base):
    """Who closed a subscription."""

    __tablename__ = "attributions"

    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    closer_seller_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    assisting_seller_id: Mapped[str | None] = mapped_column(String(100), nullable=True)


class Claim(Base):
    __tablename__ = "claims"

    __table_args__ = (
        Index("ix_claims_claimed_at", "claimed_at"),
        Index("ix_claims_subscription", "subscription_id"),
    )

    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False)
    claimed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    claimed_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    claim_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    installment_plan_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    installment_count: Mapped[int | None] = mapped_column(Integer, nullable=True)


class ClaimAdjustment(Base):
    __tablename__ = "claim_adjustments"

    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    additional_cost_usd: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class SalesGoal(Base):
    """Team-wide goal."""

    __tablename__ = "sales_goals"

    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_value: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    visibility_scope: Mapped[str] = mapped_column(
        String(50), nullable=False, default="sales_percent_only",
    )


class PersonalGoal(Base):
    __tablename__ = "personal_goals"

    seller_id: Mapped[str] = mapped_column(String(100), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_value: Mapped[Decimal] = mapped_column(MONEY, nullable=False)


class ProgressCache(Base):
    __tablename__ = "progress_cache"

    __table_args__ = (
        UniqueConstraint("goal_scope", "goal_id", "as_of_date", name="uq_progress_cache_goal_day"),
    )

    goal_scope: Mapped[str] = mapped_column(String(20), nullable=False)
    goal_id: Mapped[str] = mapped_column(String(36), nullable=False)
    as_of_date: Mapped[date] = mapped_column(Date, nullable=False)
    current_value: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    percent: Mapped[Decimal] = mapped_column(RATIO, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)


class LeadAssignmentDaily(TrackedBase):
    __tablename__ = "lead_assignments_daily"

    __table_args__ = (
        UniqueConstraint("assignment_date", "crm_owner_id", name="uq_lead_assignment_owner_day"),
    )

    assignment_date: Mapped[date] = mapped_column(Date, nullable=False)
    crm_owner_id: Mapped[str] = mapped_column(String(100), nullable=False)
    seller_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    lead_count: Mapped[int] = mapped_column(Integer, nullable=False)


class Setting(Base):
    """Operator-editable settings (``dolar`` holds the USD/TRY rate)."""

    __tablename__ = "settings"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    value: Mapped[str | None] = mapped_column(String(200), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
