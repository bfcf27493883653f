"""
Append-only domain event log.

Contract:
    ``id`` is a monotonically increasing integer so a broadcaster can read
    "everything after the last id I saw".  Rows are never updated or
    deleted by the kernel.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from winroom_kernel.db.base import Base, JSONType, SerialBigInteger, UTCDateTime


class DomainEvent(Base):
    __tablename__ = "events"

    __table_args__ = (
        Index("ix_events_type_subscription", "type", "subscription_id"),
    )

    id: Mapped[int] = mapped_column(
        SerialBigInteger, primary_key=True, autoincrement=True,
    )
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    subscription_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actor: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
