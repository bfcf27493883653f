"""
LeadAssignmentService -- daily lead counts per CRM owner.

Counts upstream leads by (UTC day the user was created, CRM owner) for a
window, resolves each owner to a seller, and upserts one
``LeadAssignmentDaily`` row per owner per day.  Rows whose seller was
unknown at the time are backfilled once a seller with that owner id exists.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from winroom_kernel.db.statements import upsert
from winroom_kernel.domain.clock import Clock
from winroom_kernel.logging_config import get_logger
from winroom_kernel.models.sales import LeadAssignmentDaily, Seller
from winroom_kernel.models.upstream import LeadDefinition, UpstreamUser

logger = get_logger("services.lead_assignments")


@dataclass(frozen=True)
class LeadSyncResult:
    rows_upserted: int
    leads_counted: int
    sellers_backfilled: int


class LeadAssignmentService:
    def __init__(self, session: Session, clock: Clock):
        self._session = session
        self._clock = clock

    def sync(self, since: datetime, until: datetime | None = None) -> LeadSyncResult:
        """Aggregate leads created in ``[since, until)`` and upsert the daily rows."""
        until = until or self._clock.now_utc()
        counts = self._count_leads(since, until)
        sellers = self._seller_map()
        now = self._clock.now_utc()

        for (assignment_date, owner_id), lead_count in sorted(counts.items()):
            seller_id = sellers.get(owner_id)
            update_columns = ["lead_count", "updated_at"]
            # A null seller never overwrites one already resolved
            if seller_id is not None:
                update_columns.append("seller_id")
            upsert(
                self._session,
                LeadAssignmentDaily,
                values={
                    "assignment_date": assignment_date,
                    "crm_owner_id": owner_id,
                    "seller_id": seller_id,
                    "lead_count": lead_count,
                    "created_at": now,
                    "updated_at": now,
                },
                conflict_columns=["assignment_date", "crm_owner_id"],
                update_columns=update_columns,
            )

        backfilled = self._backfill_sellers(sellers, now)
        result = LeadSyncResult(
            rows_upserted=len(counts),
            leads_counted=sum(counts.values()),
            sellers_backfilled=backfilled,
        )
        logger.info(
            "lead_assignments_synced",
            extra={
                "since": since.isoformat(),
                "until": until.isoformat(),
                "rows_upserted": result.rows_upserted,
                "leads_counted": result.leads_counted,
                "sellers_backfilled": result.sellers_backfilled,
            },
        )
        return result

    def _count_leads(self, since: datetime, until: datetime) -> Counter:
        rows = self._session.execute(
            select(UpstreamUser.created_at, LeadDefinition.crm_owner_id)
            .join(LeadDefinition, LeadDefinition.user_id == UpstreamUser.id)
            .where(
                UpstreamUser.created_at >= since,
                UpstreamUser.created_at < until,
                LeadDefinition.crm_owner_id.is_not(None),
            )
        ).all()

        counts: Counter[tuple[date, str]] = Counter()
        for created_at, owner_id in rows:
            counts[(created_at.date(), owner_id)] += 1
        return counts

    def _seller_map(self) -> dict[str, str]:
        rows = self._session.execute(
            select(Seller.crm_owner_id, Seller.seller_id)
            .where(Seller.crm_owner_id.is_not(None))
        ).all()
        return {owner_id: seller_id for owner_id, seller_id in rows}

    def _backfill_sellers(self, sellers: dict[str, str], now: datetime) -> int:
        if not sellers:
            return 0
        owners = self._session.execute(
            select(LeadAssignmentDaily.crm_owner_id)
            .where(LeadAssignmentDaily.seller_id.is_(None))
            .distinct()
        ).scalars().all()

        backfilled = 0
        for owner_id in owners:
            seller_id = sellers.get(owner_id)
            if seller_id is None:
                continue
            result = self._session.execute(
                update(LeadAssignmentDaily)
                .where(
                    LeadAssignmentDaily.crm_owner_id == owner_id,
                    LeadAssignmentDaily.seller_id.is_(None),
                )
                .values(seller_id=seller_id, updated_at=now)
            )
            backfilled += result.rowcount or 0
        return backfilled
