"""
Achievement rows.

Invariants enforced:
    - ``dedupe_key`` is UNIQUE (NULLs allowed, and distinct).  Creation goes
      through INSERT ... ON CONFLICT (dedupe_key) DO NOTHING, so concurrent
      evaluators of the same milestone produce exactly one row.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from winroom_kernel.db.base import Base, JSONType, UTCDateTime


class Achievement(Base):
    __tablename__ = "achievements"

    __table_args__ = (
        Index("ix_achievements_seller_created", "seller_id", "created_at"),
    )

    event_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    seller_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    dedupe_key: Mapped[str | None] = mapped_column(String(300), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
