"""
Domain event types and their payloads.

Each event type has its own frozen payload class; ``to_dict`` produces
the JSON stored in the event log.  Fields a payload does not model go in
``extra`` rather than being spliced into the top level.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Union


class EventType(str, Enum):
    QUEUE_NEW = "queue.new"
    JACKPOT = "jackpot"
    ACHIEVEMENT_CREATED = "achievement.created"
    INSTALLMENT_CREATED = "installment.created"


@dataclass(frozen=True)
class QueueNewPayload:
    margin_percent: Decimal | None
    extra: dict[str, Any] = field(default_factory=dict)

    event_type = EventType.QUEUE_NEW

    def to_dict(self) -> dict[str, Any]:
        return {"margin_percent": self.margin_percent, "extra": dict(self.extra)}


@dataclass(frozen=True)
class JackpotPayload:
    revenue_usd: Decimal | None
    extra: dict[str, Any] = field(default_factory=dict)

    event_type = EventType.JACKPOT

    def to_dict(self) -> dict[str, Any]:
        return {"revenue_usd": self.revenue_usd, "extra": dict(self.extra)}


@dataclass(frozen=True)
class AchievementCreatedPayload:
    achievement_id: str
    achievement_type: str
    seller_id: str | None
    title: str
    description: str | None
    celebration: dict[str, Any] | None
    data: dict[str, Any]
    extra: dict[str, Any] = field(default_factory=dict)

    event_type = EventType.ACHIEVEMENT_CREATED

    def to_dict(self) -> dict[str, Any]:
        return {
            "achievement_id": self.achievement_id,
            "achievement_type": self.achievement_type,
            "seller_id": self.seller_id,
            "title": self.title,
            "description": self.description,
            "celebration": self.celebration,
            "data": self.data,
            "extra": dict(self.extra),
        }


@dataclass(frozen=True)
class InstallmentCreatedPayload:
    plan_id: str
    total_installments: int
    extra: dict[str, Any] = field(default_factory=dict)

    event_type = EventType.INSTALLMENT_CREATED

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "total_installments": self.total_installments,
            "extra": dict(self.extra),
        }


EventPayload = Union[
    QueueNewPayload,
    JackpotPayload,
    AchievementCreatedPayload,
    InstallmentCreatedPayload,
]
