"""
LedgerService -- admission of upstream subscriptions into the curated ledger.

Responsibility:
    Decides, for one observed subscription, whether it enters the ledger
    as a new ``pending`` row, is recorded as an excluded duplicate, or is
    left alone; and emits the ``queue.new`` / ``jackpot`` events and the
    jackpot achievement that follow a genuine admission.

Architecture position:
    Kernel > Services.  Called by the reconciliation poller inside a
    per-record SAVEPOINT, after metrics for the record have been stored.

Invariants enforced:
    - One ledger row per subscription (UNIQUE + ON CONFLICT DO NOTHING).
    - Events are emitted only when the insert actually created the row, so
      reprocessing an overlapping window emits nothing twice.
    - First wins: a later subscription sharing a fingerprint with a ledger
      row created in the trailing 24 hours is inserted as ``excluded`` with
      reason ``duplicate``; the earlier row is never touched.
    - Trial campaign subscriptions never get a ledger row.

Non-goals:
    - Does NOT call ``session.commit()``.
    - Does not handle refunds or manual exclusions (admin workflows).
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from winroom_kernel.db.statements import insert_if_absent
from winroom_kernel.domain.achievements import (
    AchievementType,
    JackpotAchievementPayload,
    jackpot_dedupe_key,
)
from winroom_kernel.domain.clock import Clock
from winroom_kernel.domain.events import JackpotPayload, QueueNewPayload
from winroom_kernel.domain.fingerprint import DUPLICATE_WINDOW
from winroom_kernel.domain.metrics import MetricsResult
from winroom_kernel.domain.subscription import SubscriptionSnapshot
from winroom_kernel.logging_config import get_logger
from winroom_kernel.models.ledger import Exclusion, LedgerEntry
from winroom_kernel.services.achievement_service import AchievementService
from winroom_kernel.services.event_log import EventLog

logger = get_logger("services.ledger")

SYSTEM_ACTOR = "system"
DUPLICATE_REASON = "duplicate"
DEFAULT_TRIAL_CAMPAIGN_ID = 65


class LedgerStatus(str, Enum):
    PENDING = "pending"
    CLAIMED = "claimed"
    EXCLUDED = "excluded"
    EXPIRED = "expired"
    REFUNDED = "refunded"


class AdmissionOutcome(str, Enum):
    QUEUED = "queued"
    ALREADY_PRESENT = "already_present"
    DUPLICATE_EXCLUDED = "duplicate_excluded"
    TRIAL_SKIPPED = "trial_skipped"
    NOT_NEW = "not_new"


@dataclass(frozen=True)
class AdmissionResult:
    outcome: AdmissionOutcome
    queue_event_id: int | None = None
    jackpot_event_id: int | None = None
    achievement_created: bool = False


class LedgerService:
    def __init__(
        self,
        session: Session,
        clock: Clock,
        event_log: EventLog | None = None,
        achievements: AchievementService | None = None,
        trial_campaign_id: int = DEFAULT_TRIAL_CAMPAIGN_ID,
    ):
        self._session = session
        self._clock = clock
        self._event_log = event_log or EventLog(session, clock)
        self._achievements = achievements or AchievementService(session, clock, self._event_log)
        self._trial_campaign_id = trial_campaign_id

    def admit(
        self,
        snapshot: SubscriptionSnapshot,
        metrics: MetricsResult,
        cursor: datetime | None,
    ) -> AdmissionResult:
        """
        Admit *snapshot* into the ledger if it is new since *cursor*.

        Metrics for the subscription must already be stored; *metrics* is
        used for the event payloads and the jackpot decision.
        """
        if snapshot.campaign_id == self._trial_campaign_id:
            logger.debug("ledger_trial_skipped", extra={"subscription_id": snapshot.id})
            return AdmissionResult(AdmissionOutcome.TRIAL_SKIPPED)

        if not snapshot.is_new_since(cursor):
            logger.debug("ledger_not_new", extra={"subscription_id": snapshot.id})
            return AdmissionResult(AdmissionOutcome.NOT_NEW)

        fingerprint = snapshot.fingerprint()
        if fingerprint is not None and self.find_recent_duplicate(fingerprint, snapshot.id):
            return self._exclude_duplicate(snapshot, fingerprint)

        now = self._clock.now_utc()
        inserted = insert_if_absent(
            self._session,
            LedgerEntry,
            values={
                "subscription_id": snapshot.id,
                "user_id": snapshot.user_id,
                "source_created_at": snapshot.created_at,
                "status": LedgerStatus.PENDING.value,
                "fingerprint": fingerprint,
                "created_at": now,
                "updated_at": now,
                "created_by": SYSTEM_ACTOR,
            },
            conflict_columns=["subscription_id"],
        )
        if inserted is None:
            logger.debug("ledger_entry_already_present", extra={"subscription_id": snapshot.id})
            return AdmissionResult(AdmissionOutcome.ALREADY_PRESENT)

        logger.info(
            "ledger_entry_created",
            extra={"subscription_id": snapshot.id, "fingerprint": fingerprint},
        )
        queue_event = self._event_log.append(
            QueueNewPayload(margin_percent=metrics.margin_percent),
            subscription_id=snapshot.id,
        )

        if not metrics.is_jackpot:
            return AdmissionResult(AdmissionOutcome.QUEUED, queue_event_id=queue_event.id)

        jackpot_event = self._event_log.append(
            JackpotPayload(revenue_usd=metrics.revenue_usd),
            subscription_id=snapshot.id,
        )
        result = self._achievements.create_achievement(
            AchievementType.JACKPOT,
            seller_id=None,
            title="Jackpot",
            payload=JackpotAchievementPayload(
                subscription_id=snapshot.id,
                revenue_usd=metrics.revenue_usd,
            ),
            dedupe_key=jackpot_dedupe_key(jackpot_event.id, snapshot.id),
            description=f"High-ticket sale: #{snapshot.id}",
            event_id=jackpot_event.id,
        )
        logger.info(
            "jackpot_detected",
            extra={"subscription_id": snapshot.id, "revenue_usd": metrics.revenue_usd},
        )
        return AdmissionResult(
            AdmissionOutcome.QUEUED,
            queue_event_id=queue_event.id,
            jackpot_event_id=jackpot_event.id,
            achievement_created=result.created,
        )

    def find_recent_duplicate(self, fingerprint: str, subscription_id: int) -> LedgerEntry | None:
        """A different subscription's ledger row with *fingerprint* inside the window."""
        window_start = self._clock.now_utc() - DUPLICATE_WINDOW
        return self._session.execute(
            select(LedgerEntry)
            .where(
                LedgerEntry.fingerprint == fingerprint,
                LedgerEntry.subscription_id != subscription_id,
                LedgerEntry.created_at > window_start,
            )
            .order_by(LedgerEntry.created_at)
            .limit(1)
        ).scalar_one_or_none()

    def get_entry(self, subscription_id: int) -> LedgerEntry | None:
        return self._session.execute(
            select(LedgerEntry).where(LedgerEntry.subscription_id == subscription_id)
        ).scalar_one_or_none()

    def _exclude_duplicate(
        self,
        snapshot: SubscriptionSnapshot,
        fingerprint: str,
    ) -> AdmissionResult:
        now = self._clock.now_utc()
        inserted = insert_if_absent(
            self._session,
            LedgerEntry,
            values={
                "subscription_id": snapshot.id,
                "user_id": snapshot.user_id,
                "source_created_at": snapshot.created_at,
                "status": LedgerStatus.EXCLUDED.value,
                "fingerprint": fingerprint,
                "excluded_by": SYSTEM_ACTOR,
                "excluded_at": now,
                "exclude_reason": DUPLICATE_REASON,
                "created_at": now,
                "updated_at": now,
                "created_by": SYSTEM_ACTOR,
            },
            conflict_columns=["subscription_id"],
        )
        if inserted is not None:
            self._session.add(
                Exclusion(
                    subscription_id=snapshot.id,
                    reason=DUPLICATE_REASON,
                    excluded_by=SYSTEM_ACTOR,
                    notes=f"Duplicate fingerprint: {fingerprint}",
                    created_at=now,
                )
            )
            self._session.flush()
            logger.info(
                "ledger_duplicate_excluded",
                extra={"subscription_id": snapshot.id, "fingerprint": fingerprint},
            )
        return AdmissionResult(AdmissionOutcome.DUPLICATE_EXCLUDED)
