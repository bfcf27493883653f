"""
Module: winroom_kernel.selectors.installment_selector
Responsibility: Read-only queries over installment plans and payments for
    the finance/admin surface.  Converts ORM rows to frozen DTOs.
Architecture position: Kernel > Selectors.  Classification helpers come
    from ``winroom_kernel.domain.installments`` so list filters and the
    per-payment flags agree.

Invariants enforced:
    - "Today" comes from the injected Clock (UTC date), never CURRENT_DATE,
      so category filters are deterministic under test.
    - ``overdue`` means pending/overdue, due before today, and not covered
      by an active tolerance, in the filter, the counts and
      ``PaymentDTO.overdue_days`` alike.

Failure modes:
    - Returns None / empty list when nothing matches (never raises on
      absence of data).
    - An unknown status filter is logged and ignored rather than matching
      nothing.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.orm import Session, selectinload

from winroom_kernel.domain.clock import Clock
from winroom_kernel.domain.installments import (
    PAID_PAYMENT_STATUSES,
    UPCOMING_WINDOW_DAYS,
    PaymentStatus,
    PaymentView,
    PlanStatus,
    is_past_due,
    overdue_days,
    tolerance_active,
)
from winroom_kernel.logging_config import get_logger
from winroom_kernel.models.installment import InstallmentPayment, InstallmentPlan
from winroom_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.installment")


class PlanCategory(str, Enum):
    """Derived list filters; plan statuses match literally, anything else is ignored."""

    REVIEW_NEEDED = "review_needed"
    OVERDUE = "overdue"
    TOLERANCE = "tolerance"
    UPCOMING = "upcoming"


@dataclass(frozen=True)
class PlanFilters:
    status: str | None = None
    subscription_id: int | None = None
    claim_id: str | None = None
    search: str | None = None
    limit: int | None = None


@dataclass(frozen=True)
class PaymentDTO:
    id: UUID
    payment_number: int
    due_date: date
    amount: Decimal | None
    status: str
    paid_at: datetime | None
    paid_amount: Decimal | None
    payment_channel: str | None
    submitted_by: str | None
    submitted_at: datetime | None
    confirmed_by: str | None
    confirmed_at: datetime | None
    rejection_reason: str | None
    notes: str | None
    tolerance_until: date | None
    tolerance_reason: str | None
    tolerance_given_by: str | None
    overdue_days: int
    tolerance_active: bool


@dataclass(frozen=True)
class PlanDTO:
    id: UUID
    subscription_id: int
    claim_id: str | None
    customer_name: str | None
    customer_email: str | None
    total_amount: Decimal | None
    currency: str
    total_installments: int
    default_interval_days: int
    status: str
    next_due_payment_id: UUID | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime
    frozen_at: datetime | None
    frozen_by: str | None
    frozen_reason: str | None
    notes: str | None
    paid_count: int
    total_payments: int
    submitted_count: int
    overdue_count: int
    payments: tuple[PaymentDTO, ...] = ()


@dataclass(frozen=True)
class InstallmentDashboard:
    total_active: int
    total_frozen: int
    total_completed: int
    review_needed: int
    overdue: int
    tolerance_active: int


class InstallmentSelector(BaseSelector):
    """
    Selector for installment plans.

    Contract:
        ``get_plan`` returns the plan with every payment ordered by payment
        number; ``list_plans`` returns plans ordered by ``updated_at`` desc
        without payment rows but with the derived counts.
    """

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def today(self) -> date:
        return self._clock.now_utc().date()

    def get_plan(self, plan_id: UUID | str) -> PlanDTO | None:
        try:
            key = plan_id if isinstance(plan_id, UUID) else UUID(str(plan_id))
        except ValueError:
            return None
        plan = self.session.execute(
            select(InstallmentPlan)
            .options(selectinload(InstallmentPlan.payments))
            .where(InstallmentPlan.id == key)
        ).scalar_one_or_none()
        if plan is None:
            return None
        return self._to_dto(plan, self.today(), include_payments=True)

    def get_plan_for_subscription(self, subscription_id: int) -> PlanDTO | None:
        plan = self.session.execute(
            select(InstallmentPlan)
            .options(selectinload(InstallmentPlan.payments))
            .where(InstallmentPlan.subscription_id == subscription_id)
        ).scalar_one_or_none()
        if plan is None:
            return None
        return self._to_dto(plan, self.today(), include_payments=True)

    def list_plans(self, filters: PlanFilters | None = None) -> list[PlanDTO]:
        filters = filters or PlanFilters()
        today = self.today()

        stmt = select(InstallmentPlan).options(selectinload(InstallmentPlan.payments))
        if filters.status:
            clause = self._status_clause(filters.status, today)
            if clause is None:
                logger.warning(
                    "installment_status_filter_ignored",
                    extra={"status": filters.status},
                )
            else:
                stmt = stmt.where(clause)
        if filters.subscription_id is not None:
            stmt = stmt.where(InstallmentPlan.subscription_id == filters.subscription_id)
        if filters.claim_id:
            stmt = stmt.where(InstallmentPlan.claim_id == str(filters.claim_id))
        if filters.search:
            pattern = f"%{filters.search}%"
            stmt = stmt.where(or_(
                InstallmentPlan.customer_name.ilike(pattern),
                InstallmentPlan.customer_email.ilike(pattern),
            ))
        stmt = stmt.order_by(InstallmentPlan.updated_at.desc(), InstallmentPlan.id)
        if filters.limit:
            stmt = stmt.limit(filters.limit)

        plans = self.session.execute(stmt).scalars().all()
        return [self._to_dto(plan, today, include_payments=False) for plan in plans]

    def dashboard(self) -> InstallmentDashboard:
        today = self.today()
        plan_counts = dict(self.session.execute(
            select(InstallmentPlan.status, func.count(InstallmentPlan.id))
            .group_by(InstallmentPlan.status)
        ).all())

        def payment_count(*criteria) -> int:
            return int(self.session.execute(
                select(func.count(InstallmentPayment.id)).where(*criteria)
            ).scalar() or 0)

        return InstallmentDashboard(
            total_active=plan_counts.get(PlanStatus.ACTIVE.value, 0),
            total_frozen=plan_counts.get(PlanStatus.FROZEN.value, 0),
            total_completed=plan_counts.get(PlanStatus.COMPLETED.value, 0),
            review_needed=payment_count(
                InstallmentPayment.status == PaymentStatus.SUBMITTED.value,
            ),
            overdue=payment_count(self._past_due_clause(today)),
            tolerance_active=payment_count(
                InstallmentPayment.tolerance_until.is_not(None),
                InstallmentPayment.tolerance_until >= today,
            ),
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _past_due_clause(today: date):
        return and_(
            InstallmentPayment.status.in_(
                [PaymentStatus.PENDING.value, PaymentStatus.OVERDUE.value]
            ),
            InstallmentPayment.due_date < today,
            or_(
                InstallmentPayment.tolerance_until.is_(None),
                InstallmentPayment.tolerance_until < today,
            ),
        )

    def _status_clause(self, status: str, today: date):
        def any_payment(*criteria):
            return exists().where(InstallmentPayment.plan_id == InstallmentPlan.id, *criteria)

        if status == PlanCategory.REVIEW_NEEDED.value:
            return any_payment(InstallmentPayment.status == PaymentStatus.SUBMITTED.value)
        if status == PlanCategory.OVERDUE.value:
            return any_payment(self._past_due_clause(today))
        if status == PlanCategory.TOLERANCE.value:
            return any_payment(
                InstallmentPayment.tolerance_until.is_not(None),
                InstallmentPayment.tolerance_until >= today,
            )
        if status == PlanCategory.UPCOMING.value:
            return any_payment(
                InstallmentPayment.status.in_(
                    [PaymentStatus.PENDING.value, PaymentStatus.SUBMITTED.value]
                ),
                InstallmentPayment.due_date >= today,
                InstallmentPayment.due_date <= today + timedelta(days=UPCOMING_WINDOW_DAYS),
            )
        if status in {s.value for s in PlanStatus}:
            return InstallmentPlan.status == status
        return None

    def _to_dto(self, plan: InstallmentPlan, today: date, include_payments: bool) -> PlanDTO:
        ordered = sorted(plan.payments, key=lambda p: p.payment_number)
        views = [p.to_view() for p in ordered]

        payments: tuple[PaymentDTO, ...] = ()
        if include_payments:
            payments = tuple(
                self._payment_dto(payment, view, today)
                for payment, view in zip(ordered, views)
            )

        return PlanDTO(
            id=plan.id,
            subscription_id=plan.subscription_id,
            claim_id=plan.claim_id,
            customer_name=plan.customer_name,
            customer_email=plan.customer_email,
            total_amount=plan.total_amount,
            currency=plan.currency,
            total_installments=plan.total_installments,
            default_interval_days=plan.default_interval_days,
            status=plan.status,
            next_due_payment_id=plan.next_due_payment_id,
            created_by=plan.created_by,
            created_at=plan.created_at,
            updated_at=plan.updated_at,
            frozen_at=plan.frozen_at,
            frozen_by=plan.frozen_by,
            frozen_reason=plan.frozen_reason,
            notes=plan.notes,
            paid_count=sum(1 for v in views if v.status in PAID_PAYMENT_STATUSES),
            total_payments=len(views),
            submitted_count=sum(1 for v in views if v.status == PaymentStatus.SUBMITTED),
            overdue_count=sum(1 for v in views if is_past_due(v, today)),
            payments=payments,
        )

    @staticmethod
    def _payment_dto(payment: InstallmentPayment, view: PaymentView, today: date) -> PaymentDTO:
        return PaymentDTO(
            id=payment.id,
            payment_number=payment.payment_number,
            due_date=payment.due_date,
            amount=payment.amount,
            status=payment.status,
            paid_at=payment.paid_at,
            paid_amount=payment.paid_amount,
            payment_channel=payment.payment_channel,
            submitted_by=payment.submitted_by,
            submitted_at=payment.submitted_at,
            confirmed_by=payment.confirmed_by,
            confirmed_at=payment.confirmed_at,
            rejection_reason=payment.rejection_reason,
            notes=payment.notes,
            tolerance_until=payment.tolerance_until,
            tolerance_reason=payment.tolerance_reason,
            tolerance_given_by=payment.tolerance_given_by,
            overdue_days=overdue_days(view, today),
            tolerance_active=tolerance_active(payment.tolerance_until, today),
        )
