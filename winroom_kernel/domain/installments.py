"""
Installment plan and payment lifecycle (``winroom_kernel.domain.installments``).

Responsibility
--------------
Declares the plan and payment state machines, validates plan creation
input, and computes the plan rollup (derived status and next due payment)
from payment statuses.  Everything here is pure; ``InstallmentService``
applies it to rows inside a transaction.

Architecture position
---------------------
**Kernel domain layer** -- pure.  No session, no clock (``today`` is
passed in).

Invariants enforced
-------------------
* Payment numbers are exactly {1..N} at creation.
* A plan with no open payments is ``completed``; otherwise ``active``,
  unless it is ``frozen`` or ``cancelled``, which the rollup never
  overrides.
* ``next_due`` is the open payment with the earliest due date, ties broken
  by payment number.
* A payment under active tolerance is never classified overdue.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from winroom_kernel.domain.workflow import Guard, Transition, Workflow
from winroom_kernel.exceptions import (
    InstallmentCountMismatchError,
    PaymentNumbersNotSequentialError,
    PaymentsRequiredError,
)


class PlanStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FROZEN = "frozen"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    OVERDUE = "overdue"
    WAIVED = "waived"
    REJECTED = "rejected"


class PlanAction(str, Enum):
    """Audit action types written to the installment action log."""

    CREATED = "created"
    SUBMIT_PAYMENT = "submit_payment"
    CONFIRM_PAYMENT = "confirm_payment"
    REJECT_PAYMENT = "reject_payment"
    WAIVE_PAYMENT = "waive_payment"
    ADD_TOLERANCE = "add_tolerance"
    UPDATE_NOTE = "update_note"
    MARK_OVERDUE = "mark_overdue"
    FREEZE = "freeze"
    UNFREEZE = "unfreeze"
    CANCEL = "cancel"


OPEN_PAYMENT_STATUSES = frozenset({
    PaymentStatus.PENDING,
    PaymentStatus.SUBMITTED,
    PaymentStatus.OVERDUE,
})

PAID_PAYMENT_STATUSES = frozenset({PaymentStatus.CONFIRMED, PaymentStatus.WAIVED})

DEFAULT_REJECTION_REASON = "Finance review rejected"

UPCOMING_WINDOW_DAYS = 7


_PLAN_ACTIVE = Guard("plan_active", "Owning plan must be active")
_CLOSER_ONLY = Guard("closer_only", "Actor must be the closing seller of record")
_NO_TOLERANCE = Guard("no_active_tolerance", "Tolerance must not cover today")


PAYMENT_WORKFLOW = Workflow(
    name="installment_payment",
    description="Lifecycle of a single scheduled installment payment",
    initial_state=PaymentStatus.PENDING.value,
    states=tuple(s.value for s in PaymentStatus),
    transitions=(
        Transition("pending", "submitted", "submit", _CLOSER_ONLY),
        Transition("overdue", "submitted", "submit", _CLOSER_ONLY),
        Transition("pending", "confirmed", "confirm", _PLAN_ACTIVE),
        Transition("submitted", "confirmed", "confirm", _PLAN_ACTIVE),
        Transition("overdue", "confirmed", "confirm", _PLAN_ACTIVE),
        Transition("pending", "rejected", "reject", _PLAN_ACTIVE),
        Transition("submitted", "rejected", "reject", _PLAN_ACTIVE),
        Transition("overdue", "rejected", "reject", _PLAN_ACTIVE),
        Transition("pending", "overdue", "mark_overdue", _NO_TOLERANCE),
        Transition("pending", "waived", "waive", _PLAN_ACTIVE),
        Transition("submitted", "waived", "waive", _PLAN_ACTIVE),
        Transition("overdue", "waived", "waive", _PLAN_ACTIVE),
    ),
    terminal_states=("confirmed", "waived", "rejected"),
)


PLAN_WORKFLOW = Workflow(
    name="installment_plan",
    description="Lifecycle of an installment plan",
    initial_state=PlanStatus.ACTIVE.value,
    states=tuple(s.value for s in PlanStatus),
    transitions=(
        Transition("active", "frozen", "freeze"),
        Transition("frozen", "active", "unfreeze"),
        Transition("active", "cancelled", "cancel"),
        Transition("frozen", "cancelled", "cancel"),
        Transition("active", "completed", "complete"),
    ),
    terminal_states=("cancelled", "completed"),
)


# ---------------------------------------------------------------------------
# Creation input
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentSpec:
    payment_number: int
    due_date: date
    amount: Decimal | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PlanSpec:
    subscription_id: int
    total_installments: int
    payments: tuple[PaymentSpec, ...]
    claim_id: str | None = None
    customer_name: str | None = None
    customer_email: str | None = None
    total_amount: Decimal | None = None
    currency: str = "USD"
    default_interval_days: int = 30
    notes: str | None = None


def validate_plan_spec(spec: PlanSpec) -> None:
    """
    Reject malformed plans before anything is written.

    Raises:
        PaymentsRequiredError: no payments.
        PaymentNumbersNotSequentialError: numbers are not exactly 1..N.
        InstallmentCountMismatchError: N != total_installments.
    """
    if not spec.payments:
        raise PaymentsRequiredError(spec.subscription_id)

    numbers = sorted(p.payment_number for p in spec.payments)
    if numbers != list(range(1, len(numbers) + 1)):
        raise PaymentNumbersNotSequentialError(spec.subscription_id, numbers)

    if spec.total_installments != len(spec.payments):
        raise InstallmentCountMismatchError(spec.total_installments, len(spec.payments))


# ---------------------------------------------------------------------------
# Derived state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentView:
    """The fields rollup and classification need from a payment."""

    payment_id: str
    payment_number: int
    due_date: date
    status: PaymentStatus
    tolerance_until: date | None = None


@dataclass(frozen=True)
class Rollup:
    status: PlanStatus
    next_due_payment_id: str | None
    open_count: int
    paid_count: int
    total_count: int


def tolerance_active(tolerance_until: date | None, today: date) -> bool:
    return tolerance_until is not None and tolerance_until >= today


def is_past_due(payment: PaymentView, today: date) -> bool:
    """Pending or overdue, due before today, and not covered by tolerance."""
    return (
        payment.status in (PaymentStatus.PENDING, PaymentStatus.OVERDUE)
        and payment.due_date < today
        and not tolerance_active(payment.tolerance_until, today)
    )


def should_mark_overdue(payment: PaymentView, today: date) -> bool:
    return payment.status == PaymentStatus.PENDING and is_past_due(payment, today)


def overdue_days(payment: PaymentView, today: date) -> int:
    if not is_past_due(payment, today):
        return 0
    return (today - payment.due_date).days


def compute_rollup(current: PlanStatus, payments: list[PaymentView]) -> Rollup:
    """
    Derive plan status and next due payment.

    Frozen and cancelled plans keep their status; the next due payment is
    still recomputed so an unfreeze shows the right one.
    """
    open_payments = [p for p in payments if p.status in OPEN_PAYMENT_STATUSES]
    paid = sum(1 for p in payments if p.status in PAID_PAYMENT_STATUSES)

    next_due = min(
        open_payments,
        key=lambda p: (p.due_date, p.payment_number),
        default=None,
    )

    if current in (PlanStatus.FROZEN, PlanStatus.CANCELLED):
        status = current
    elif not open_payments:
        status = PlanStatus.COMPLETED
    else:
        status = PlanStatus.ACTIVE

    return Rollup(
        status=status,
        next_due_payment_id=next_due.payment_id if next_due else None,
        open_count=len(open_payments),
        paid_count=paid,
        total_count=len(payments),
    )
