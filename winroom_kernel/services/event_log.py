"""
EventLog -- append-only domain event sink.

Responsibility:
    Writes typed event payloads to the ``events`` table and reads them back
    for a broadcaster (``events_after``) or for idempotence checks by
    business key (``find_by_business_key``).

Architecture position:
    Kernel > Services.  The broadcast transport is outside this package; it
    tails the table by id.

Invariants enforced:
    - Append-only: no update or delete path exists.
    - ``append`` flushes so the returned event carries its id, which
      callers use to link achievements (``event:<id>`` dedupe keys).
    - Payloads are stored in canonical JSON form (Decimals as strings).

Non-goals:
    - Does NOT call ``session.commit()``.  An event is visible to readers
      only once the caller's transaction commits, together with the rows it
      describes.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from winroom_kernel.domain.clock import Clock
from winroom_kernel.domain.events import EventPayload, EventType
from winroom_kernel.logging_config import get_logger
from winroom_kernel.models.event import DomainEvent
from winroom_kernel.utils.hashing import json_safe

logger = get_logger("services.event_log")


class EventLog:
    def __init__(self, session: Session, clock: Clock):
        self._session = session
        self._clock = clock

    def append(
        self,
        payload: EventPayload,
        subscription_id: int | None = None,
        actor: str | None = None,
    ) -> DomainEvent:
        event = DomainEvent(
            type=payload.event_type.value,
            subscription_id=subscription_id,
            actor=actor,
            payload=json_safe(payload.to_dict()),
            created_at=self._clock.now_utc(),
        )
        self._session.add(event)
        self._session.flush()

        logger.info(
            "event_appended",
            extra={
                "event_id": event.id,
                "event_type": event.type,
                "subscription_id": subscription_id,
            },
        )
        return event

    def events_after(self, last_seen_id: int, limit: int = 100) -> list[DomainEvent]:
        """Events with ``id > last_seen_id`` in id order."""
        return list(
            self._session.execute(
                select(DomainEvent)
                .where(DomainEvent.id > last_seen_id)
                .order_by(DomainEvent.id)
                .limit(limit)
            ).scalars()
        )

    def find_by_business_key(
        self,
        event_type: EventType,
        subscription_id: int,
    ) -> DomainEvent | None:
        """Earliest event of *event_type* for *subscription_id*, if any."""
        return self._session.execute(
            select(DomainEvent)
            .where(
                DomainEvent.type == event_type.value,
                DomainEvent.subscription_id == subscription_id,
            )
            .order_by(DomainEvent.id)
            .limit(1)
        ).scalar_one_or_none()
