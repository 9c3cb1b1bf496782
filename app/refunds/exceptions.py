"""
Refund workflow exceptions.

Every failure the workflow reports has its own class so callers can react
to the specific kind rather than a generic error.

Exception Hierarchy:
    RefundNotFoundError - Refund id unresolved (inherits NotFoundError)
    RefundValidationError - Invalid refund input (inherits ValidationError)
    ├── InvalidAmountError - Amount out of bounds
    └── MissingActorError - Required approver/processor identity absent
    IllegalTransitionError - Event not valid from current status (inherits ConflictError)
    StaleRefundError - Concurrent update detected by the store (inherits ConflictError)
    LockAcquisitionError - Per-refund lock not acquired in time (inherits ConflictError)
    OperationTimeoutError - Caller deadline passed before a write (inherits ConflictError)

Payment-side failures (PaymentNotFoundError, PortUnavailableError,
PaymentNotRefundableError) live in payments.exceptions.

Usage:
    from refunds.exceptions import IllegalTransitionError, StaleRefundError

    try:
        RefundWorkflowService.approve(refund_id, approved_by="Manager A")
    except (StaleRefundError, LockAcquisitionError):
        ...  # retryable: someone else touched this refund
    except IllegalTransitionError as e:
        ...  # e.details["current_status"] says why
"""

from __future__ import annotations

from core.exceptions import ConflictError, NotFoundError, ValidationError


class RefundNotFoundError(NotFoundError):
    """
    Raised when a refund id cannot be found in the store.

    Example:
        raise RefundNotFoundError(
            f"Refund {refund_id} not found",
            details={"refund_id": str(refund_id)}
        )
    """

    default_error_code: str = "REFUND_NOT_FOUND"


class RefundValidationError(ValidationError):
    """
    Raised when refund input fails validation (text too long, unknown method).
    """

    default_error_code: str = "REFUND_VALIDATION_ERROR"


class InvalidAmountError(RefundValidationError):
    """
    Raised when a refund amount is not positive or exceeds what remains
    refundable on the payment.

    Attributes:
        details: Contains requested_amount, payment_total, already_refunded
    """

    default_error_code: str = "INVALID_AMOUNT"


class MissingActorError(RefundValidationError):
    """
    Raised when the actor a transition requires (requester, approver,
    processor) is empty.
    """

    default_error_code: str = "MISSING_ACTOR"


class IllegalTransitionError(ConflictError):
    """
    Raised when an event is not valid from the refund's current status.

    The stored refund is left unchanged.

    Attributes:
        details: Contains refund_id, current_status and target_status
    """

    default_error_code: str = "ILLEGAL_TRANSITION"


class StaleRefundError(ConflictError):
    """
    Raised when a conditional store update finds the refund no longer in the
    status/version that was loaded: another transition won the race.

    Attributes:
        details: Contains refund_id, expected_status and expected_version

    Note:
        Retryable: reload the refund and decide again.
    """

    default_error_code: str = "STALE_REFUND"
    is_retryable: bool = True


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    This exception indicates that another process holds the lock
    and it couldn't be acquired within the timeout period.

    Attributes:
        details: Contains key and timeout information
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"
    is_retryable: bool = True


class OperationTimeoutError(ConflictError):
    """
    Raised when the caller's deadline passes before the workflow wrote
    anything. No partial mutation has been applied.
    """

    default_error_code: str = "OPERATION_TIMEOUT"
    is_retryable: bool = True


__all__ = [
    "IllegalTransitionError",
    "InvalidAmountError",
    "LockAcquisitionError",
    "MissingActorError",
    "OperationTimeoutError",
    "RefundNotFoundError",
    "RefundValidationError",
    "StaleRefundError",
]
