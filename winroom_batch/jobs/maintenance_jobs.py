"""Housekeeping sub-jobs."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from winroom_kernel.domain.clock import Clock
from winroom_kernel.services.checkpoint_store import CheckpointStore


class CacheCleanupJob:
    """Deletes checkpoint-store rows whose TTL has elapsed."""

    name = "cache_cleanup"
    checkpoint_key = CheckpointStore.CACHE_CLEANUP
    checkpoint_ttl_seconds = None

    def __init__(self, interval_hours: int = 24):
        self.interval = timedelta(hours=interval_hours)

    def initial_cursor(self, now: datetime) -> datetime | None:
        return now

    def run(
        self,
        session: Session,
        clock: Clock,
        last_run: datetime | None,
        now: datetime,
    ) -> dict[str, Any]:
        return {"entries_purged": CheckpointStore(session, clock).purge_expired()}
