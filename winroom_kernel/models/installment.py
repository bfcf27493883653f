"""
ORM models for installment plans, their payments, and the action log.

Contract:
    InstallmentPlan -> InstallmentPayment is one-to-many; the plan's
    ``status`` and ``next_due_payment_id`` are a rollup maintained by
    ``InstallmentService`` in the same transaction as every payment change.

Invariants enforced:
    - ``subscription_id`` UNIQUE on plans (one plan per subscription, ever).
    - ``(plan_id, payment_number)`` UNIQUE on payments.
    - Every mutation writes an InstallmentAction row.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from winroom_kernel.db.base import Base, JSONType, TrackedBase, UTCDateTime, UUIDString
from winroom_kernel.db.types import CURRENCY_CODE, MONEY
from winroom_kernel.domain.installments import PaymentStatus, PaymentView


class InstallmentPlan(TrackedBase):
    __tablename__ = "installment_plans"

    __table_args__ = (
        Index("ix_installment_plans_status", "status"),
        Index("ix_installment_plans_claim", "claim_id"),
    )

    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    claim_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    customer_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    total_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    currency: Mapped[str] = mapped_column(CURRENCY_CODE, nullable=False, default="USD")
    total_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    default_interval_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    next_due_payment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    frozen_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    frozen_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    frozen_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    payments: Mapped[list["InstallmentPayment"]] = relationship(
        "InstallmentPayment",
        back_populates="plan",
        order_by="InstallmentPayment.payment_number",
        cascade="all, delete-orphan",
    )


class InstallmentPayment(TrackedBase):
    __tablename__ = "installment_payments"

    __table_args__ = (
        UniqueConstraint("plan_id", "payment_number", name="uq_installment_payment_number"),
        Index("ix_installment_payments_status_due", "status", "due_date"),
    )

    plan_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("installment_plans.id", ondelete="CASCADE"),
        nullable=False,
    )
    payment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    paid_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    payment_channel: Mapped[str | None] = mapped_column(String(100), nullable=True)
    submitted_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    confirmed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    tolerance_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    tolerance_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    tolerance_given_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    plan: Mapped[InstallmentPlan] = relationship(
        "InstallmentPlan", back_populates="payments",
    )

    def to_view(self) -> PaymentView:
        return PaymentView(
            payment_id=str(self.id),
            payment_number=self.payment_number,
            due_date=self.due_date,
            status=PaymentStatus(self.status),
            tolerance_until=self.tolerance_until,
        )


class InstallmentAction(Base):
    """Append-only audit row for every plan or payment mutation."""

    __tablename__ = "installment_actions"

    __table_args__ = (
        Index("ix_installment_actions_plan", "plan_id", "created_at"),
    )

    plan_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("installment_plans.id", ondelete="CASCADE"),
        nullable=False,
    )
    payment_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    actor: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    action_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSONType, nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
