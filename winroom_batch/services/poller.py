"""
ReconciliationPoller -- one checkpointed sync pass per tick.

Contract:
    ``tick()`` reads upstream subscriptions changed since the main cursor,
    recomputes their metrics, admits new ones into the ledger (emitting
    ``queue.new`` / ``jackpot`` events and jackpot achievements), advances
    the cursor, then lets each sub-job run on its own cadence.

Invariants enforced:
    - Re-entrancy: a tick that finds another tick in progress returns a
      DROPPED result immediately and logs ``poll_tick_dropped``.
    - Record isolation: each record runs in its own SAVEPOINT; a record
      failing on its own data is logged and skipped, never aborting the batch.
    - Connection-level database errors on any record abort the whole batch:
      nothing commits, the cursor stays put and the next tick retries.
    - Cursor after commit: the main cursor advances to the batch's max
      ``updated_at`` in a separate transaction after the records commit.
      A crash in between replays an overlapping window, which the ledger's
      insert-if-absent absorbs.
    - All timestamps from the injected Clock.

Failure modes:
    - Database unreachable: logged as a transient infrastructure error,
      FAILED result, cursor unchanged; the next tick retries.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime
from decimal import Decimal
from typing import Callable
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from winroom_kernel.db.engine import session_scope
from winroom_kernel.domain.clock import Clock, SystemClock
from winroom_kernel.domain.subscription import SubscriptionSnapshot
from winroom_kernel.exceptions import StorageUnavailableError, TransientInfraError
from winroom_kernel.logging_config import LogContext, get_logger
from winroom_kernel.models.upstream import Campaign, Subscription
from winroom_kernel.services.achievement_service import AchievementService
from winroom_kernel.services.checkpoint_store import CheckpointStore
from winroom_kernel.services.event_log import EventLog
from winroom_kernel.services.fx_rate_service import FxRateCache, FxRateService
from winroom_kernel.services.ledger_service import (
    DEFAULT_TRIAL_CAMPAIGN_ID,
    AdmissionOutcome,
    LedgerService,
)
from winroom_kernel.services.metrics_service import MetricsService

from winroom_batch.domain.types import PollerState, TickResult, TickStatus
from winroom_batch.jobs.base import JobRegistry, JobRunner

logger = get_logger("batch.poller")

_INFRA_ERRORS = (TransientInfraError, OperationalError, InterfaceError)


class _BatchTally:
    def __init__(self) -> None:
        self.failed = 0
        self.queued = 0
        self.jackpots = 0
        self.duplicates = 0


class ReconciliationPoller:
    """Checkpointed reconciliation of upstream subscriptions.

    Contract:
        - ``tick()`` is safe to call from any thread; overlapping calls are
          dropped, not queued.
        - ``state`` is the explicit in-memory PollerState (counters and the
          last result).

    Non-goals:
        - Does NOT schedule itself -- PollerWorker or the CLI calls tick().
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        jobs: JobRegistry | None = None,
        batch_size: int = 500,
        trial_campaign_id: int = DEFAULT_TRIAL_CAMPAIGN_ID,
        jackpot_threshold_try: Decimal = Decimal("40000"),
        usd_try_rate_fallback: Decimal = Decimal("42"),
        fx_setting_name: str = "dolar",
        fx_cache_ttl_seconds: int = 3600,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._jobs = jobs if jobs is not None else JobRegistry()
        self._job_runner = JobRunner(session_factory, self._jobs, self._clock)
        self._batch_size = batch_size
        self._trial_campaign_id = trial_campaign_id
        self._jackpot_threshold_try = jackpot_threshold_try
        self._usd_try_rate_fallback = usd_try_rate_fallback
        self._fx_setting_name = fx_setting_name
        self._fx_cache_ttl_seconds = fx_cache_ttl_seconds
        # Shared across ticks so the rate is read at most once per TTL
        self._fx_cache = FxRateCache()

        self._tick_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = PollerState()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def state(self) -> PollerState:
        with self._state_lock:
            return self._state

    @property
    def jobs(self) -> JobRegistry:
        return self._jobs

    def record_dropped(self, reason: str) -> None:
        """Count a tick that never ran and log it."""
        with self._state_lock:
            self._state = self._state.after_drop()
            dropped = self._state.dropped_ticks
        logger.warning(
            "poll_tick_dropped",
            extra={"reason": reason, "dropped_ticks": dropped},
        )

    def tick(self) -> TickResult:
        if not self._tick_lock.acquire(blocking=False):
            self.record_dropped("tick_in_progress")
            return TickResult.dropped(self.state.tick_count + 1)

        try:
            tick_number = self.state.tick_count + 1
            with LogContext.bind(tick_id=str(uuid4())):
                result = self._run_tick(tick_number)
            with self._state_lock:
                self._state = self._state.after_tick(result)
            return result
        finally:
            self._tick_lock.release()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_tick(self, tick_number: int) -> TickResult:
        started = time.monotonic()
        now = self._clock.now_utc()

        try:
            cursor, snapshots = self._load_batch(now)
            tally = self._process_batch(snapshots, cursor)
            cursor_after = self._advance_cursor(snapshots, cursor)
        except (TransientInfraError, SQLAlchemyError) as exc:
            error = exc if isinstance(exc, TransientInfraError) else StorageUnavailableError(
                "poll_tick", str(getattr(exc, "orig", exc)),
            )
            logger.error(
                "poll_tick_failed",
                extra={
                    "tick_number": tick_number,
                    "error_code": error.code,
                    "error_message": str(error),
                },
            )
            return TickResult(
                status=TickStatus.FAILED,
                tick_number=tick_number,
                duration_ms=int((time.monotonic() - started) * 1000),
                error_code=error.code,
                error_message=str(error),
            )

        jobs = self._job_runner.run_due(now)

        result = TickResult(
            status=TickStatus.COMPLETED,
            tick_number=tick_number,
            cursor_before=cursor,
            cursor_after=cursor_after,
            records_seen=len(snapshots),
            records_failed=tally.failed,
            queued=tally.queued,
            jackpots=tally.jackpots,
            duplicates=tally.duplicates,
            jobs=jobs,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        log = logger.info if snapshots else logger.debug
        log(
            "poll_tick_completed",
            extra={
                "tick_number": tick_number,
                "records_seen": result.records_seen,
                "records_failed": result.records_failed,
                "queued": result.queued,
                "jackpots": result.jackpots,
                "duplicates": result.duplicates,
                "cursor_after": cursor_after.isoformat() if cursor_after else None,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def _load_batch(self, now: datetime) -> tuple[datetime, list[SubscriptionSnapshot]]:
        with session_scope(self._session_factory) as session:
            cursor = CheckpointStore(session, self._clock).initialize(
                CheckpointStore.MAIN_CURSOR, now,
            )
            rows = session.execute(
                select(
                    Subscription,
                    Campaign.campaign_length,
                    Campaign.per_week,
                    Campaign.campaign_minute,
                )
                .outerjoin(Campaign, Campaign.id == Subscription.campaign_id)
                .where(Subscription.updated_at > cursor)
                .order_by(Subscription.updated_at, Subscription.id)
                .limit(self._batch_size)
            ).all()
            snapshots = [
                _snapshot(sub, length, per_week, minute)
                for sub, length, per_week, minute in rows
            ]
        return cursor, snapshots

    def _process_batch(
        self,
        snapshots: list[SubscriptionSnapshot],
        cursor: datetime,
    ) -> _BatchTally:
        tally = _BatchTally()
        if not snapshots:
            return tally

        with session_scope(self._session_factory) as session:
            event_log = EventLog(session, self._clock)
            achievements = AchievementService(session, self._clock, event_log)
            fx_rates = FxRateService(
                session,
                self._clock,
                fallback_rate=self._usd_try_rate_fallback,
                cache=self._fx_cache,
                setting_name=self._fx_setting_name,
                ttl_seconds=self._fx_cache_ttl_seconds,
            )
            metrics = MetricsService(session, self._clock, fx_rates, self._jackpot_threshold_try)
            ledger = LedgerService(
                session,
                self._clock,
                event_log=event_log,
                achievements=achievements,
                trial_campaign_id=self._trial_campaign_id,
            )

            for snapshot in snapshots:
                with LogContext.bind(subscription_id=snapshot.id):
                    try:
                        with session.begin_nested():
                            result = metrics.compute_and_store(snapshot.to_metrics_input())
                            admission = ledger.admit(snapshot, result, cursor)
                    except _INFRA_ERRORS:
                        raise
                    except Exception:
                        tally.failed += 1
                        logger.exception(
                            "poll_record_failed",
                            extra={"subscription_id": snapshot.id},
                        )
                        continue

                if admission.outcome == AdmissionOutcome.QUEUED:
                    tally.queued += 1
                    if admission.jackpot_event_id is not None:
                        tally.jackpots += 1
                elif admission.outcome == AdmissionOutcome.DUPLICATE_EXCLUDED:
                    tally.duplicates += 1
        return tally

    def _advance_cursor(
        self,
        snapshots: list[SubscriptionSnapshot],
        cursor: datetime,
    ) -> datetime:
        observed = [s.updated_at for s in snapshots if s.updated_at is not None]
        if not observed:
            return cursor
        with session_scope(self._session_factory) as session:
            return CheckpointStore(session, self._clock).advance(
                CheckpointStore.MAIN_CURSOR, max(observed),
            )


def _snapshot(
    sub: Subscription,
    campaign_length: int | None,
    per_week: int | None,
    campaign_minute: int | None,
) -> SubscriptionSnapshot:
    return SubscriptionSnapshot(
        id=sub.id,
        user_id=sub.user_id,
        campaign_id=sub.campaign_id,
        created_at=sub.created_at,
        updated_at=sub.updated_at,
        subs_amount=sub.subs_amount,
        currency=sub.currency,
        status=sub.status,
        is_free=sub.is_free,
        payment_channel=sub.payment_channel,
        stripe_sub_id=sub.stripe_sub_id,
        paypal_sub_id=sub.paypal_sub_id,
        sales_person=sub.sales_person,
        campaign_length=campaign_length,
        per_week=per_week,
        campaign_minute=campaign_minute,
    )
