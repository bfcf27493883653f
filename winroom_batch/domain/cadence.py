"""
Pure cadence evaluation for poller sub-jobs.

Contract:
    ``is_due(last_run, now, interval)`` is PURE: no I/O, no clock reads.
    A job that has never run is always due.
"""

from __future__ import annotations

from datetime import datetime, timedelta


def is_due(last_run: datetime | None, now: datetime, interval: timedelta) -> bool:
    """True when at least *interval* has elapsed since *last_run*."""
    if last_run is None:
        return True
    return now - last_run >= interval


def next_due_at(last_run: datetime | None, interval: timedelta) -> datetime | None:
    """When the job next becomes due; None means immediately."""
    if last_run is None:
        return None
    return last_run + interval
