"""
winroom_batch.domain -- Pure types and cadence rules for the poller.

ZERO I/O.  Timestamps always come from the caller.
"""

from winroom_batch.domain.cadence import is_due, next_due_at
from winroom_batch.domain.types import (
    JobRunResult,
    JobRunStatus,
    PollerState,
    TickResult,
    TickStatus,
)

__all__ = [
    "JobRunResult",
    "JobRunStatus",
    "PollerState",
    "TickResult",
    "TickStatus",
    "is_due",
    "next_due_at",
]
