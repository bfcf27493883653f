"""
InstallmentService -- plan creation and the payment state machine.

Responsibility:
    Creates installment plans and applies every plan- and payment-level
    transition: submit, confirm, reject, waive, tolerance, notes, freeze,
    unfreeze, cancel, and the system overdue sweep.  Each mutation writes
    an ``InstallmentAction`` row and, for payment changes, recomputes the
    plan rollup in the same transaction.

Architecture position:
    Kernel > Services.  Transition tables live in
    ``winroom_kernel.domain.installments``; this service evaluates guards
    against rows and persists the result.

Invariants enforced:
    - One plan per subscription: checked with the existing row locked
      (``SELECT ... FOR UPDATE``) right before insert, and backed by the
      UNIQUE constraint for the race the lock cannot see.
    - Payment numbers are exactly 1..N and match ``total_installments``;
      validated before anything is written.
    - Payment mutations require an ``active`` plan.  A rejected mutation
      raises before any column is touched.
    - Plan status and ``next_due_payment_id`` are recomputed after every
      payment change (``compute_rollup``), so a plan whose last open
      payment closes is ``completed`` when the transaction commits.

Failure modes:
    - ValidationError subclasses for malformed creation input or tolerance.
    - InstallmentPlanExistsError for a second plan.
    - PlanNotFoundError / PaymentNotFoundError for unknown ids.
    - PlanNotActiveError, InvalidPlanTransitionError,
      InvalidPaymentTransitionError, PaymentAccessDeniedError for state
      violations.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
    - No payment processing; "confirmed" records a finance decision only.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from winroom_kernel.domain.clock import Clock
from winroom_kernel.domain.events import InstallmentCreatedPayload
from winroom_kernel.domain.installments import (
    DEFAULT_REJECTION_REASON,
    OPEN_PAYMENT_STATUSES,
    PAYMENT_WORKFLOW,
    PLAN_WORKFLOW,
    PaymentStatus,
    PlanAction,
    PlanSpec,
    PlanStatus,
    compute_rollup,
    should_mark_overdue,
    validate_plan_spec,
)
from winroom_kernel.exceptions import (
    InstallmentPlanExistsError,
    InvalidPaymentTransitionError,
    InvalidPlanTransitionError,
    InvalidToleranceError,
    PaymentAccessDeniedError,
    PaymentNotFoundError,
    PlanNotActiveError,
    PlanNotFoundError,
)
from winroom_kernel.logging_config import LogContext, get_logger
from winroom_kernel.models.installment import (
    InstallmentAction,
    InstallmentPayment,
    InstallmentPlan,
)
from winroom_kernel.models.ledger import LedgerEntry
from winroom_kernel.models.sales import Attribution, Claim
from winroom_kernel.services.event_log import EventLog
from winroom_kernel.utils.hashing import json_safe

logger = get_logger("services.installment")

SYSTEM_ACTOR = "system"


def _as_uuid(value: UUID | str) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class InstallmentService:
    """
    Installment plan lifecycle.

    Contract:
        Every public method runs inside the caller's transaction and
        returns the mutated ORM row.
    """

    def __init__(self, session: Session, clock: Clock, event_log: EventLog | None = None):
        self._session = session
        self._clock = clock
        self._event_log = event_log or EventLog(session, clock)

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def create_plan(self, spec: PlanSpec, actor_id: str) -> InstallmentPlan:
        """
        Create a plan and its payments for one subscription.

        Preconditions:
            - No plan exists for ``spec.subscription_id``.

        Postconditions:
            - Plan and payments inserted, linked from the ledger row and
              the subscription's claims, ``created`` action written,
              rollup applied, ``installment.created`` event appended.
        """
        validate_plan_spec(spec)

        existing = self._session.execute(
            select(InstallmentPlan)
            .where(InstallmentPlan.subscription_id == spec.subscription_id)
            .with_for_update()
        ).scalar_one_or_none()
        if existing is not None:
            raise InstallmentPlanExistsError(spec.subscription_id, str(existing.id))

        now = self._clock.now_utc()
        plan = InstallmentPlan(
            subscription_id=spec.subscription_id,
            claim_id=spec.claim_id,
            customer_name=spec.customer_name,
            customer_email=spec.customer_email,
            total_amount=spec.total_amount,
            currency=spec.currency or "USD",
            total_installments=spec.total_installments,
            default_interval_days=spec.default_interval_days or 30,
            status=PlanStatus.ACTIVE.value,
            notes=spec.notes,
            created_at=now,
            updated_at=now,
            created_by=actor_id,
            updated_by=actor_id,
        )
        for payment_spec in sorted(spec.payments, key=lambda p: p.payment_number):
            plan.payments.append(
                InstallmentPayment(
                    payment_number=payment_spec.payment_number,
                    due_date=payment_spec.due_date,
                    amount=payment_spec.amount,
                    notes=payment_spec.notes,
                    status=PaymentStatus.PENDING.value,
                    created_at=now,
                    updated_at=now,
                    created_by=actor_id,
                    updated_by=actor_id,
                )
            )

        savepoint = self._session.begin_nested()
        try:
            self._session.add(plan)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            winner = self._session.execute(
                select(InstallmentPlan.id)
                .where(InstallmentPlan.subscription_id == spec.subscription_id)
            ).scalar_one_or_none()
            logger.info(
                "installment_plan_create_race_lost",
                extra={"subscription_id": spec.subscription_id},
            )
            raise InstallmentPlanExistsError(
                spec.subscription_id, str(winner) if winner else None,
            ) from None
        savepoint.commit()

        self._link_plan(plan, spec)
        self._record_action(
            plan,
            PlanAction.CREATED,
            actor_id,
            notes=spec.notes,
            metadata={
                "payments": len(spec.payments),
                "total_installments": spec.total_installments,
            },
        )
        self._apply_rollup(plan)

        self._event_log.append(
            InstallmentCreatedPayload(
                plan_id=str(plan.id),
                total_installments=spec.total_installments,
            ),
            subscription_id=spec.subscription_id,
            actor=actor_id,
        )

        with LogContext.bind(plan_id=str(plan.id), actor_id=actor_id):
            logger.info(
                "installment_plan_created",
                extra={
                    "subscription_id": spec.subscription_id,
                    "total_installments": spec.total_installments,
                },
            )
        return plan

    # -------------------------------------------------------------------------
    # Payment transitions
    # -------------------------------------------------------------------------

    def submit_payment(
        self,
        plan_id: UUID | str,
        payment_id: UUID | str,
        actor_id: str,
        paid_amount: Decimal | None = None,
        payment_channel: str | None = None,
        notes: str | None = None,
    ) -> InstallmentPayment:
        """Seller reports a payment.  Only the closer of record may submit."""
        plan, payment = self._load_payment(plan_id, payment_id)

        closer = self._session.execute(
            select(Attribution.closer_seller_id)
            .where(Attribution.subscription_id == plan.subscription_id)
        ).scalar_one_or_none()
        if closer is None or closer != actor_id:
            raise PaymentAccessDeniedError(plan.subscription_id, actor_id)

        self._require_active(plan)
        self._require_transition(payment, "submit")

        now = self._clock.now_utc()
        payment.status = PaymentStatus.SUBMITTED.value
        payment.submitted_by = actor_id
        payment.submitted_at = now
        if paid_amount is not None:
            payment.paid_amount = paid_amount
        if payment_channel:
            payment.payment_channel = payment_channel
        if notes:
            payment.notes = notes
        self._touch(payment, actor_id)

        self._record_action(
            plan,
            PlanAction.SUBMIT_PAYMENT,
            actor_id,
            payment=payment,
            metadata={"paid_amount": paid_amount, "payment_channel": payment_channel},
        )
        self._apply_rollup(plan)
        logger.info(
            "installment_payment_submitted",
            extra={"plan_id": str(plan.id), "payment_id": str(payment.id)},
        )
        return payment

    def confirm_payment(
        self,
        plan_id: UUID | str,
        payment_id: UUID | str,
        actor_id: str,
        paid_amount: Decimal | None = None,
        payment_channel: str | None = None,
    ) -> InstallmentPayment:
        plan, payment = self._load_payment(plan_id, payment_id)
        self._require_active(plan)
        self._require_transition(payment, "confirm")

        now = self._clock.now_utc()
        payment.status = PaymentStatus.CONFIRMED.value
        payment.paid_at = now
        if paid_amount is not None:
            payment.paid_amount = paid_amount
        if payment_channel:
            payment.payment_channel = payment_channel
        payment.confirmed_by = actor_id
        payment.confirmed_at = now
        self._touch(payment, actor_id)

        self._record_action(
            plan,
            PlanAction.CONFIRM_PAYMENT,
            actor_id,
            payment=payment,
            metadata={
                "paid_amount": payment.paid_amount,
                "payment_channel": payment.payment_channel,
            },
        )
        self._apply_rollup(plan)
        logger.info(
            "installment_payment_confirmed",
            extra={"plan_id": str(plan.id), "payment_id": str(payment.id)},
        )
        return payment

    def reject_payment(
        self,
        plan_id: UUID | str,
        payment_id: UUID | str,
        actor_id: str,
        reason: str | None = None,
    ) -> InstallmentPayment:
        plan, payment = self._load_payment(plan_id, payment_id)
        self._require_active(plan)
        previous = payment.status
        self._require_transition(payment, "reject")

        payment.status = PaymentStatus.REJECTED.value
        payment.confirmed_by = actor_id
        payment.confirmed_at = self._clock.now_utc()
        payment.rejection_reason = reason or DEFAULT_REJECTION_REASON
        self._touch(payment, actor_id)

        self._record_action(
            plan,
            PlanAction.REJECT_PAYMENT,
            actor_id,
            payment=payment,
            notes=reason,
            metadata={"previous_status": previous},
        )
        self._apply_rollup(plan)
        logger.info(
            "installment_payment_rejected",
            extra={"plan_id": str(plan.id), "payment_id": str(payment.id)},
        )
        return payment

    def waive_payment(
        self,
        plan_id: UUID | str,
        payment_id: UUID | str,
        actor_id: str,
        reason: str | None = None,
    ) -> InstallmentPayment:
        plan, payment = self._load_payment(plan_id, payment_id)
        self._require_active(plan)
        previous = payment.status
        self._require_transition(payment, "waive")

        payment.status = PaymentStatus.WAIVED.value
        payment.confirmed_by = actor_id
        payment.confirmed_at = self._clock.now_utc()
        self._touch(payment, actor_id)

        self._record_action(
            plan,
            PlanAction.WAIVE_PAYMENT,
            actor_id,
            payment=payment,
            notes=reason,
            metadata={"previous_status": previous},
        )
        self._apply_rollup(plan)
        logger.info(
            "installment_payment_waived",
            extra={"plan_id": str(plan.id), "payment_id": str(payment.id)},
        )
        return payment

    def add_tolerance(
        self,
        plan_id: UUID | str,
        payment_id: UUID | str,
        actor_id: str,
        tolerance_until: date | None,
        reason: str | None,
    ) -> InstallmentPayment:
        """Grant extra time.  Status is unchanged; the overdue sweep skips it."""
        plan, payment = self._load_payment(plan_id, payment_id)
        if tolerance_until is None:
            raise InvalidToleranceError(str(payment.id), "tolerance_until is required")
        if not reason or not reason.strip():
            raise InvalidToleranceError(str(payment.id), "a reason is required")
        today = self._clock.now_utc().date()
        if tolerance_until < today:
            raise InvalidToleranceError(
                str(payment.id), f"tolerance_until {tolerance_until} is in the past",
            )

        self._require_active(plan)
        if PaymentStatus(payment.status) not in OPEN_PAYMENT_STATUSES:
            raise InvalidPaymentTransitionError(
                str(payment.id), payment.status, PlanAction.ADD_TOLERANCE.value,
            )

        payment.tolerance_until = tolerance_until
        payment.tolerance_reason = reason
        payment.tolerance_given_by = actor_id
        self._touch(payment, actor_id)

        self._record_action(
            plan,
            PlanAction.ADD_TOLERANCE,
            actor_id,
            payment=payment,
            notes=reason,
            metadata={"tolerance_until": tolerance_until},
        )
        self._apply_rollup(plan)
        return payment

    def update_payment_note(
        self,
        plan_id: UUID | str,
        payment_id: UUID | str,
        actor_id: str,
        note: str | None,
    ) -> InstallmentPayment:
        """Replace a payment's note.  Allowed in any plan status."""
        plan, payment = self._load_payment(plan_id, payment_id)
        payment.notes = note
        self._touch(payment, actor_id)
        self._record_action(plan, PlanAction.UPDATE_NOTE, actor_id, payment=payment, notes=note)
        return payment

    # -------------------------------------------------------------------------
    # Plan transitions
    # -------------------------------------------------------------------------

    def freeze_plan(
        self,
        plan_id: UUID | str,
        actor_id: str,
        reason: str | None = None,
    ) -> InstallmentPlan:
        plan = self._load_plan(plan_id)
        self._require_plan_transition(plan, "freeze")

        plan.status = PlanStatus.FROZEN.value
        plan.frozen_at = self._clock.now_utc()
        plan.frozen_by = actor_id
        plan.frozen_reason = reason
        self._touch(plan, actor_id)

        self._record_action(plan, PlanAction.FREEZE, actor_id, notes=reason)
        logger.info("installment_plan_frozen", extra={"plan_id": str(plan.id)})
        return plan

    def unfreeze_plan(self, plan_id: UUID | str, actor_id: str) -> InstallmentPlan:
        plan = self._load_plan(plan_id)
        self._require_plan_transition(plan, "unfreeze")

        plan.status = PlanStatus.ACTIVE.value
        plan.frozen_at = None
        plan.frozen_by = None
        plan.frozen_reason = None
        self._touch(plan, actor_id)

        self._record_action(plan, PlanAction.UNFREEZE, actor_id)
        # Payments may have closed elsewhere while frozen
        self._apply_rollup(plan)
        logger.info("installment_plan_unfrozen", extra={"plan_id": str(plan.id)})
        return plan

    def cancel_plan(
        self,
        plan_id: UUID | str,
        actor_id: str,
        reason: str | None = None,
    ) -> InstallmentPlan:
        plan = self._load_plan(plan_id)
        self._require_plan_transition(plan, "cancel")

        plan.status = PlanStatus.CANCELLED.value
        plan.notes = f"{plan.notes or ''}\nCancelled: {reason or ''}"
        self._touch(plan, actor_id)

        self._record_action(plan, PlanAction.CANCEL, actor_id, notes=reason)
        logger.info("installment_plan_cancelled", extra={"plan_id": str(plan.id)})
        return plan

    # -------------------------------------------------------------------------
    # System sweep
    # -------------------------------------------------------------------------

    def mark_overdue_payments(self) -> int:
        """
        Move past-due pending payments of active plans to ``overdue``.

        Returns:
            Number of payments marked.
        """
        today = self._clock.now_utc().date()
        candidates = self._session.execute(
            select(InstallmentPayment)
            .join(InstallmentPlan, InstallmentPlan.id == InstallmentPayment.plan_id)
            .where(
                InstallmentPlan.status == PlanStatus.ACTIVE.value,
                InstallmentPayment.status == PaymentStatus.PENDING.value,
                InstallmentPayment.due_date < today,
            )
            .with_for_update(of=InstallmentPayment)
        ).scalars().all()

        affected: dict[UUID, InstallmentPlan] = {}
        marked = 0
        for payment in candidates:
            if not should_mark_overdue(payment.to_view(), today):
                continue
            payment.status = PaymentStatus.OVERDUE.value
            self._touch(payment, SYSTEM_ACTOR)
            self._record_action(
                payment.plan,
                PlanAction.MARK_OVERDUE,
                SYSTEM_ACTOR,
                payment=payment,
                metadata={"due_date": payment.due_date},
            )
            affected[payment.plan_id] = payment.plan
            marked += 1

        for plan in affected.values():
            self._apply_rollup(plan)

        if marked:
            logger.info(
                "installment_payments_marked_overdue",
                extra={"count": marked, "plans": len(affected)},
            )
        return marked

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_plan(self, plan_id: UUID | str) -> InstallmentPlan:
        return self._load_plan(plan_id, lock=False)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _load_plan(self, plan_id: UUID | str, lock: bool = True) -> InstallmentPlan:
        key = _as_uuid(plan_id)
        if key is None:
            raise PlanNotFoundError(str(plan_id))
        stmt = select(InstallmentPlan).where(InstallmentPlan.id == key)
        if lock:
            stmt = stmt.with_for_update()
        plan = self._session.execute(stmt).scalar_one_or_none()
        if plan is None:
            raise PlanNotFoundError(str(plan_id))
        return plan

    def _load_payment(
        self,
        plan_id: UUID | str,
        payment_id: UUID | str,
    ) -> tuple[InstallmentPlan, InstallmentPayment]:
        plan = self._load_plan(plan_id)
        key = _as_uuid(payment_id)
        for payment in plan.payments:
            if payment.id == key:
                return plan, payment
        raise PaymentNotFoundError(str(plan.id), str(payment_id))

    def _require_active(self, plan: InstallmentPlan) -> None:
        if plan.status != PlanStatus.ACTIVE.value:
            raise PlanNotActiveError(str(plan.id), plan.status)

    def _require_transition(self, payment: InstallmentPayment, action: str) -> None:
        if PAYMENT_WORKFLOW.find_transition(payment.status, action) is None:
            raise InvalidPaymentTransitionError(str(payment.id), payment.status, action)

    def _require_plan_transition(self, plan: InstallmentPlan, action: str) -> None:
        if PLAN_WORKFLOW.find_transition(plan.status, action) is None:
            raise InvalidPlanTransitionError(str(plan.id), plan.status, action)

    def _touch(self, row: InstallmentPlan | InstallmentPayment, actor_id: str) -> None:
        row.updated_at = self._clock.now_utc()
        row.updated_by = actor_id

    def _apply_rollup(self, plan: InstallmentPlan) -> None:
        self._session.flush()
        rollup = compute_rollup(
            PlanStatus(plan.status),
            [p.to_view() for p in plan.payments],
        )
        if rollup.status.value != plan.status:
            logger.info(
                "installment_plan_status_derived",
                extra={
                    "plan_id": str(plan.id),
                    "from_status": plan.status,
                    "to_status": rollup.status.value,
                },
            )
        plan.status = rollup.status.value
        plan.next_due_payment_id = (
            UUID(rollup.next_due_payment_id) if rollup.next_due_payment_id else None
        )
        plan.updated_at = self._clock.now_utc()
        self._session.flush()

    def _link_plan(self, plan: InstallmentPlan, spec: PlanSpec) -> None:
        link = {
            "installment_plan_id": str(plan.id),
            "installment_count": spec.total_installments,
        }
        self._session.execute(
            update(LedgerEntry)
            .where(LedgerEntry.subscription_id == spec.subscription_id)
            .values(**link)
        )
        self._session.execute(
            update(Claim)
            .where(Claim.subscription_id == spec.subscription_id)
            .values(**link)
        )
        claim_key = _as_uuid(spec.claim_id) if spec.claim_id else None
        if claim_key is not None:
            self._session.execute(
                update(Claim).where(Claim.id == claim_key).values(**link)
            )

    def _record_action(
        self,
        plan: InstallmentPlan,
        action: PlanAction,
        actor_id: str,
        payment: InstallmentPayment | None = None,
        notes: str | None = None,
        metadata: dict | None = None,
    ) -> InstallmentAction:
        row = InstallmentAction(
            plan_id=plan.id,
            payment_id=payment.id if payment is not None else None,
            action_type=action.value,
            actor=actor_id,
            notes=notes,
            action_metadata=json_safe(metadata) if metadata is not None else None,
            created_at=self._clock.now_utc(),
        )
        self._session.add(row)
        return row
