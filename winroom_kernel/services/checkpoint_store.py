"""
CheckpointStore -- durable named cursors and small JSON state on ``cache_kv``.

Responsibility:
    Persists the poller's main cursor, each sub-job's last-run time, and
    the team revenue state so a restart resumes where the last successful
    run left off.

Architecture position:
    Kernel > Services.  Used by winroom_batch (poller and jobs).

Invariants enforced:
    - Cursors are monotonic per key: ``advance`` never moves a cursor
      backwards.  A stale writer is logged and ignored.
    - A cursor is only written by the caller after the work it covers has
      committed; this service never advances a key on its own.

Failure modes:
    - CheckpointStoreError wraps database errors on read or write.  The
      caller's transaction is unusable afterwards and must be rolled back.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from winroom_kernel.db.statements import upsert
from winroom_kernel.domain.clock import Clock
from winroom_kernel.exceptions import CheckpointStoreError
from winroom_kernel.logging_config import get_logger
from winroom_kernel.models.checkpoint import CacheEntry

logger = get_logger("services.checkpoint_store")

TIMESTAMP_FIELD = "timestamp"


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse an ISO-8601 cursor value; naive values are UTC."""
    if not isinstance(raw, str) or not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class CheckpointStore:
    """
    Key/value store for cursors and JSON state.

    Contract:
        ``get_timestamp`` / ``advance`` work on ``{"timestamp": iso}``
        values; ``get_value`` / ``put_value`` on arbitrary JSON objects.

    Guarantees:
        - ``advance(key, ts)`` leaves the stored cursor at
          ``max(existing, ts)``.
        - Expired rows are invisible to reads even before they are purged.
    """

    MAIN_CURSOR = "poller_checkpoint"
    OVERDUE_SWEEP = "last_overdue_check"
    LEAD_SYNC = "lead_assignments_last_run"
    PROGRESS_CACHE = "progress_cache_last_update"
    REVENUE_MILESTONES = "revenue_milestones_last_check"
    CACHE_CLEANUP = "cache_cleanup_last_run"
    TEAM_REVENUE_STATE = "team_revenue_state"

    def __init__(self, session: Session, clock: Clock):
        self._session = session
        self._clock = clock

    # -------------------------------------------------------------------------
    # Raw values
    # -------------------------------------------------------------------------

    def get_value(self, key: str) -> dict[str, Any] | None:
        try:
            entry = self._session.execute(
                select(CacheEntry)
                .where(CacheEntry.key == key)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise CheckpointStoreError(key, "read") from exc

        if entry is None:
            return None
        if self._is_expired(entry):
            logger.debug("checkpoint_expired", extra={"key": key})
            return None
        return dict(entry.value)

    def put_value(
        self,
        key: str,
        value: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> None:
        try:
            upsert(
                self._session,
                CacheEntry,
                values={
                    "key": key,
                    "value": value,
                    "ttl_seconds": ttl_seconds,
                    "updated_at": self._clock.now_utc(),
                },
                conflict_columns=["key"],
                update_columns=["value", "ttl_seconds", "updated_at"],
            )
        except SQLAlchemyError as exc:
            raise CheckpointStoreError(key, "write") from exc

    # -------------------------------------------------------------------------
    # Cursors
    # -------------------------------------------------------------------------

    def get_timestamp(self, key: str) -> datetime | None:
        value = self.get_value(key)
        if value is None:
            return None
        parsed = parse_timestamp(value.get(TIMESTAMP_FIELD))
        if parsed is None:
            logger.warning("checkpoint_unparseable", extra={"key": key, "value": value})
        return parsed

    def advance(
        self,
        key: str,
        timestamp: datetime,
        ttl_seconds: int | None = None,
    ) -> datetime:
        """
        Move the cursor for *key* forward to *timestamp*.

        Returns the cursor value now stored, which is the existing one when
        *timestamp* would move it backwards.
        """
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        timestamp = timestamp.astimezone(timezone.utc)

        existing = self.get_timestamp(key)
        if existing is not None and existing > timestamp:
            logger.warning(
                "checkpoint_regression_ignored",
                extra={
                    "key": key,
                    "existing": existing.isoformat(),
                    "attempted": timestamp.isoformat(),
                },
            )
            return existing

        self.put_value(key, {TIMESTAMP_FIELD: timestamp.isoformat()}, ttl_seconds)
        logger.debug(
            "checkpoint_advanced",
            extra={"key": key, "timestamp": timestamp.isoformat()},
        )
        return timestamp

    def initialize(
        self,
        key: str,
        default: datetime,
        ttl_seconds: int | None = None,
    ) -> datetime:
        """Return the stored cursor, writing *default* first if none exists."""
        existing = self.get_timestamp(key)
        if existing is not None:
            return existing
        self.put_value(key, {TIMESTAMP_FIELD: default.astimezone(timezone.utc).isoformat()}, ttl_seconds)
        logger.info(
            "checkpoint_initialized",
            extra={"key": key, "timestamp": default.isoformat()},
        )
        return default.astimezone(timezone.utc)

    # -------------------------------------------------------------------------
    # Expiry
    # -------------------------------------------------------------------------

    def purge_expired(self) -> int:
        """Delete rows whose TTL has elapsed.  Returns the number removed."""
        now = self._clock.now_utc()
        try:
            candidates = self._session.execute(
                select(CacheEntry).where(CacheEntry.ttl_seconds.is_not(None))
            ).scalars().all()
            expired_ids = [e.id for e in candidates if self._is_expired(e, now)]
            if expired_ids:
                self._session.execute(
                    delete(CacheEntry).where(CacheEntry.id.in_(expired_ids))
                )
        except SQLAlchemyError as exc:
            raise CheckpointStoreError("*", "purge") from exc

        if expired_ids:
            logger.info("cache_entries_purged", extra={"count": len(expired_ids)})
        return len(expired_ids)

    def _is_expired(self, entry: CacheEntry, now: datetime | None = None) -> bool:
        if entry.ttl_seconds is None:
            return False
        now = now or self._clock.now_utc()
        return entry.updated_at + timedelta(seconds=entry.ttl_seconds) < now
