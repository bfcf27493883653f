"""
AchievementService -- at-most-once achievement creation.

Responsibility:
    Persists achievements keyed by a dedupe key and emits exactly one
    ``achievement.created`` event per achievement row, no matter how many
    evaluators race on the same milestone.

Architecture position:
    Kernel > Services.  Called by the poller (jackpots) and the milestone
    and goal-progress jobs.

Invariants enforced:
    - A dedupe key maps to at most one row (UNIQUE + ON CONFLICT DO
      NOTHING).
    - The ``achievement.created`` event is appended only on the branch that
      inserted the row, after the insert, in the same transaction.  A
      caller that lost the race gets the existing row and emits nothing.
    - When the caller already holds an event (the jackpot event), the row
      links it through ``event_id`` and no second event is written.

Failure modes:
    - DuplicateAchievementError if the insert conflicted but the winning
      row cannot be read back.

Non-goals:
    - Does NOT call ``session.commit()``.
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from winroom_kernel.db.statements import insert_if_absent
from winroom_kernel.domain.achievements import AchievementPayload, AchievementType
from winroom_kernel.domain.clock import Clock
from winroom_kernel.domain.events import AchievementCreatedPayload
from winroom_kernel.exceptions import DuplicateAchievementError
from winroom_kernel.logging_config import get_logger
from winroom_kernel.models.achievement import Achievement
from winroom_kernel.services.event_log import EventLog
from winroom_kernel.utils.hashing import json_safe

logger = get_logger("services.achievement")

TEAM_ACTOR = "team"


@dataclass(frozen=True)
class AchievementResult:
    record: Achievement
    created: bool


class AchievementService:
    def __init__(self, session: Session, clock: Clock, event_log: EventLog | None = None):
        self._session = session
        self._clock = clock
        self._event_log = event_log or EventLog(session, clock)

    def find_by_dedupe_key(self, dedupe_key: str) -> Achievement | None:
        return self._session.execute(
            select(Achievement).where(Achievement.dedupe_key == dedupe_key)
        ).scalar_one_or_none()

    def create_achievement(
        self,
        achievement_type: AchievementType,
        seller_id: str | None,
        title: str,
        payload: AchievementPayload,
        dedupe_key: str | None,
        description: str | None = None,
        event_id: int | None = None,
    ) -> AchievementResult:
        if dedupe_key is not None:
            existing = self.find_by_dedupe_key(dedupe_key)
            if existing is not None:
                logger.debug("achievement_exists", extra={"dedupe_key": dedupe_key})
                return AchievementResult(record=existing, created=False)

        data = json_safe(payload.to_dict())
        row = insert_if_absent(
            self._session,
            Achievement,
            values={
                "event_id": event_id,
                "type": achievement_type.value,
                "seller_id": seller_id,
                "title": title,
                "description": description,
                "payload": data,
                "dedupe_key": dedupe_key,
                "created_at": self._clock.now_utc(),
            },
            conflict_columns=["dedupe_key"],
        )

        if row is None:
            # Another writer inserted the same key after our read
            winner = self.find_by_dedupe_key(dedupe_key)
            if winner is None:
                raise DuplicateAchievementError(dedupe_key)
            logger.info("achievement_race_lost", extra={"dedupe_key": dedupe_key})
            return AchievementResult(record=winner, created=False)

        record = self._session.get(Achievement, row.id)

        if event_id is None:
            event = self._event_log.append(
                AchievementCreatedPayload(
                    achievement_id=str(record.id),
                    achievement_type=achievement_type.value,
                    seller_id=seller_id,
                    title=title,
                    description=description,
                    celebration=data.get("celebration"),
                    data=data,
                ),
                actor=seller_id or TEAM_ACTOR,
            )
            record.event_id = event.id
            self._session.flush()

        logger.info(
            "achievement_created",
            extra={
                "achievement_id": str(record.id),
                "achievement_type": achievement_type.value,
                "seller_id": seller_id,
                "dedupe_key": dedupe_key,
                "event_id": record.event_id,
            },
        )
        return AchievementResult(record=record, created=True)
