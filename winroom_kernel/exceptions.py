"""
Typed Exception Hierarchy for the Win Room kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from WinRoomError:

    WinRoomError (base)
    |
    +-- ValidationError
    |   +-- PaymentsRequiredError
    |   +-- PaymentNumbersNotSequentialError
    |   +-- InstallmentCountMismatchError
    |   +-- InvalidToleranceError
    |
    +-- ConflictError
    |   +-- InstallmentPlanExistsError
    |   +-- DuplicateAchievementError
    |
    +-- StateError
    |   +-- PlanNotActiveError
    |   +-- InvalidPlanTransitionError
    |   +-- InvalidPaymentTransitionError
    |   +-- PaymentAccessDeniedError
    |
    +-- NotFoundError
    |   +-- PlanNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- TransientInfraError
        +-- CheckpointStoreError
        +-- StorageUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | HTTP | When Raised
-------------|-------------------------------|------|------------------------------
Validation   | PAYMENTS_REQUIRED             | 400  | Plan created with no payments
             | PAYMENT_NUMBERS_NOT_SEQUENTIAL| 400  | Numbers are not exactly 1..N
             | INSTALLMENT_COUNT_MISMATCH    | 400  | len(payments) != total
             | INVALID_TOLERANCE             | 400  | Tolerance date missing/invalid
-------------|-------------------------------|------|------------------------------
Conflict     | INSTALLMENT_PLAN_EXISTS       | 409  | Second plan for a subscription
             | DUPLICATE_ACHIEVEMENT         | 409  | Dedupe key already taken
-------------|-------------------------------|------|------------------------------
State        | PLAN_NOT_ACTIVE               | 422  | Payment mutation on frozen/
             |                               |      | cancelled/completed plan
             | INVALID_PLAN_TRANSITION       | 422  | e.g. unfreeze an active plan
             | INVALID_PAYMENT_TRANSITION    | 422  | e.g. confirm a waived payment
             | PAYMENT_ACCESS_DENIED         | 403  | Submit by non-closer seller
-------------|-------------------------------|------|------------------------------
Not found    | PLAN_NOT_FOUND                | 404  | Unknown plan id
             | PAYMENT_NOT_FOUND             | 404  | Unknown payment id in plan
-------------|-------------------------------|------|------------------------------
Transient    | CHECKPOINT_STORE_UNAVAILABLE  | 503  | Cursor read/write failed
             | STORAGE_UNAVAILABLE           | 503  | DB unreachable / deadlock

===============================================================================
HANDLING PATTERNS
===============================================================================

    try:
        service.submit_payment(plan_id, payment_id, actor_id=seller)
    except PaymentAccessDeniedError as e:
        return {"error": e.code, "seller": e.actor_id}, e.http_status
    except StateError as e:
        return {"error": e.code}, e.http_status

Transient errors are the only category the poller retries; it does so
implicitly by leaving the affected checkpoint unmoved.
"""

from __future__ import annotations


class WinRoomError(Exception):
    """
    Base exception for all Win Room kernel errors.

    Every subclass carries a machine-readable ``code`` and the HTTP status
    an outer API layer should map it to.
    """

    code: str = "WINROOM_ERROR"
    http_status: int = 500


# Validation


class ValidationError(WinRoomError):
    """Input rejected before any write."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400


class PaymentsRequiredError(ValidationError):
    """An installment plan was requested without any payments."""

    code: str = "PAYMENTS_REQUIRED"

    def __init__(self, subscription_id: int):
        self.subscription_id = subscription_id
        super().__init__(
            f"Installment plan for subscription {subscription_id} needs at least one payment"
        )


class PaymentNumbersNotSequentialError(ValidationError):
    """Payment numbers are not exactly 1..N."""

    code: str = "PAYMENT_NUMBERS_NOT_SEQUENTIAL"

    def __init__(self, subscription_id: int, payment_numbers: list[int]):
        self.subscription_id = subscription_id
        self.payment_numbers = payment_numbers
        super().__init__(
            f"Payment numbers must be sequential starting from 1, got {payment_numbers}"
        )


class InstallmentCountMismatchError(ValidationError):
    """Declared installment count disagrees with the payments supplied."""

    code: str = "INSTALLMENT_COUNT_MISMATCH"

    def __init__(self, total_installments: int, payment_count: int):
        self.total_installments = total_installments
        self.payment_count = payment_count
        super().__init__(
            f"total_installments={total_installments} but {payment_count} payments supplied"
        )


class InvalidToleranceError(ValidationError):
    """Tolerance grant without a usable date."""

    code: str = "INVALID_TOLERANCE"

    def __init__(self, payment_id: str, reason: str):
        self.payment_id = payment_id
        self.reason = reason
        super().__init__(f"Invalid tolerance for payment {payment_id}: {reason}")


# Conflict


class ConflictError(WinRoomError):
    """Uniqueness rule violated."""

    code: str = "CONFLICT"
    http_status: int = 409


class InstallmentPlanExistsError(ConflictError):
    """The subscription already has an installment plan."""

    code: str = "INSTALLMENT_PLAN_EXISTS"

    def __init__(self, subscription_id: int, existing_plan_id: str | None = None):
        self.subscription_id = subscription_id
        self.existing_plan_id = existing_plan_id
        super().__init__(
            f"Installment plan already exists for subscription {subscription_id}"
        )


class DuplicateAchievementError(ConflictError):
    """An achievement with the dedupe key exists and could not be re-read."""

    code: str = "DUPLICATE_ACHIEVEMENT"

    def __init__(self, dedupe_key: str):
        self.dedupe_key = dedupe_key
        super().__init__(f"Achievement conflict on dedupe key {dedupe_key}")


# State


class StateError(WinRoomError):
    """Operation not permitted in the entity's current state."""

    code: str = "STATE_ERROR"
    http_status: int = 422


class PlanNotActiveError(StateError):
    """Payment mutation attempted on a plan that is not active."""

    code: str = "PLAN_NOT_ACTIVE"

    def __init__(self, plan_id: str, status: str):
        self.plan_id = plan_id
        self.status = status
        super().__init__(f"Installment plan {plan_id} is {status}, not active")


class InvalidPlanTransitionError(StateError):
    """Plan-level transition not allowed from its current status."""

    code: str = "INVALID_PLAN_TRANSITION"

    def __init__(self, plan_id: str, from_status: str, action: str):
        self.plan_id = plan_id
        self.from_status = from_status
        self.action = action
        super().__init__(f"Cannot {action} plan {plan_id} in status {from_status}")


class InvalidPaymentTransitionError(StateError):
    """Payment-level transition not allowed from its current status."""

    code: str = "INVALID_PAYMENT_TRANSITION"

    def __init__(self, payment_id: str, from_status: str, action: str):
        self.payment_id = payment_id
        self.from_status = from_status
        self.action = action
        super().__init__(
            f"Cannot {action} payment {payment_id} in status {from_status}"
        )


class PaymentAccessDeniedError(StateError):
    """Only the closing seller of record may submit a payment."""

    code: str = "PAYMENT_ACCESS_DENIED"
    http_status: int = 403

    def __init__(self, subscription_id: int, actor_id: str):
        self.subscription_id = subscription_id
        self.actor_id = actor_id
        super().__init__(
            f"Seller {actor_id} is not the closer for subscription {subscription_id}"
        )


# Not found


class NotFoundError(WinRoomError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    http_status: int = 404


class PlanNotFoundError(NotFoundError):
    code: str = "PLAN_NOT_FOUND"

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Installment plan not found: {plan_id}")


class PaymentNotFoundError(NotFoundError):
    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, plan_id: str, payment_id: str):
        self.plan_id = plan_id
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found in plan {plan_id}")


# Transient infrastructure


class TransientInfraError(WinRoomError):
    """Infrastructure failure expected to clear on retry."""

    code: str = "TRANSIENT_INFRA_ERROR"
    http_status: int = 503


class CheckpointStoreError(TransientInfraError):
    code: str = "CHECKPOINT_STORE_UNAVAILABLE"

    def __init__(self, key: str, operation: str):
        self.key = key
        self.operation = operation
        super().__init__(f"Checkpoint store {operation} failed for {key}")


class StorageUnavailableError(TransientInfraError):
    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage unavailable during {operation}: {detail or 'unknown'}")
