"""
Key/value cache rows, used for durable poller checkpoints.

Contract:
    One row per key.  Cursor values have the shape ``{"timestamp": iso}``;
    other keys (``team_revenue_state``) hold arbitrary JSON.  Rows with a
    ``ttl_seconds`` expire ``ttl_seconds`` after their last update and are
    purged by the cache cleanup job.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from winroom_kernel.db.base import Base, JSONType, UTCDateTime


class CacheEntry(Base):
    __tablename__ = "cache_kv"

    key: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    value: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    ttl_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
