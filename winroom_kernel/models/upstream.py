"""
Read-only mappings of the upstream sales/payment system.

Contract:
    These tables belong to the originating system.  The kernel only SELECTs
    from them; nothing in services/ or winroom_batch/ writes to them.  They
    are mapped here so queries are typed and so tests can seed them.

Architecture: winroom_kernel/models.  Imports from winroom_kernel.db only.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from winroom_kernel.db.base import Base, UTCDateTime
from winroom_kernel.db.types import CURRENCY_CODE, MONEY


class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # Plan length in months
    campaign_length: Mapped[int | None] = mapped_column(Integer, nullable=True)
    per_week: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Minutes per session
    campaign_minute: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Subscription(Base):
    __tablename__ = "subscriptions"

    __table_args__ = (
        Index("ix_subscriptions_updated_at", "updated_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    campaign_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("campaigns.id"), nullable=True,
    )
    created_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    subs_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    currency: Mapped[str | None] = mapped_column(CURRENCY_CODE, nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_free: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_channel: Mapped[str | None] = mapped_column(String(100), nullable=True)
    stripe_sub_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    paypal_sub_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    sales_person: Mapped[str | None] = mapped_column(String(200), nullable=True)


class PaymentInfo(Base):
    __tablename__ = "payment_infos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    paid_price: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    currency: Mapped[str | None] = mapped_column(CURRENCY_CODE, nullable=True)


class PaymentConversation(Base):
    """Links a subscription to the payment record that paid for it."""

    __tablename__ = "payment_conversations"

    __table_args__ = (
        Index("ix_payment_conversations_subscription", "subscription_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_info_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("payment_infos.id"), nullable=False,
    )


class UpstreamUser(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)


class LeadDefinition(Base):
    """CRM ownership of an upstream user (one row per lead)."""

    __tablename__ = "crm_lead_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False,
    )
    crm_owner_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
