"""
winroom_batch.domain.types -- Frozen results and the explicit poller state.

``PollerState`` is the only in-memory state the poll loop carries between
ticks (counters and the last result).  Everything that must survive a
restart lives in the checkpoint store.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class TickStatus(str, Enum):
    COMPLETED = "completed"
    DROPPED = "dropped"  # Another tick was pending or running
    FAILED = "failed"  # Infrastructure failure; cursor not advanced


class JobRunStatus(str, Enum):
    RAN = "ran"
    SKIPPED = "skipped"  # Cadence not elapsed
    FAILED = "failed"


@dataclass(frozen=True)
class JobRunResult:
    job_name: str
    status: JobRunStatus
    detail: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass(frozen=True)
class TickResult:
    """Outcome of one poller tick."""

    status: TickStatus
    tick_number: int = 0
    cursor_before: datetime | None = None
    cursor_after: datetime | None = None
    records_seen: int = 0
    records_failed: int = 0
    queued: int = 0
    jackpots: int = 0
    duplicates: int = 0
    jobs: tuple[JobRunResult, ...] = ()
    duration_ms: int = 0
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def dropped(cls, tick_number: int = 0) -> TickResult:
        return cls(status=TickStatus.DROPPED, tick_number=tick_number)

    def job(self, name: str) -> JobRunResult | None:
        for result in self.jobs:
            if result.job_name == name:
                return result
        return None


@dataclass(frozen=True)
class PollerState:
    tick_count: int = 0
    dropped_ticks: int = 0
    failed_ticks: int = 0
    last_result: TickResult | None = None

    def after_tick(self, result: TickResult) -> PollerState:
        return replace(
            self,
            tick_count=self.tick_count + 1,
            failed_ticks=self.failed_ticks + (1 if result.status == TickStatus.FAILED else 0),
            last_result=result,
        )

    def after_drop(self) -> PollerState:
        return replace(self, dropped_ticks=self.dropped_ticks + 1)
