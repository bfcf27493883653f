"""Installment sub-jobs: the daily overdue sweep."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from winroom_kernel.domain.clock import Clock
from winroom_kernel.services.checkpoint_store import CheckpointStore
from winroom_kernel.services.installment_service import InstallmentService

OVERDUE_CHECKPOINT_TTL_SECONDS = 7 * 24 * 3600


class OverdueSweepJob:
    """Marks pending payments of active plans overdue once their due date passes.

    The checkpoint starts at "now", so a fresh deployment sweeps one full
    interval after it first starts.
    """

    name = "overdue_sweep"
    checkpoint_key = CheckpointStore.OVERDUE_SWEEP
    checkpoint_ttl_seconds = OVERDUE_CHECKPOINT_TTL_SECONDS

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
        marked = InstallmentService(session, clock).mark_overdue_payments()
        return {"payments_marked": marked}
