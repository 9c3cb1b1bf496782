"""
Validation rules for refund requests and transitions.

Every validator is a pure function returning a ServiceResult: a failure
carries the error code the workflow raises. Validators never touch the
database and never raise, so they can be called freely ahead of any write.

Usage:
    from refunds.validators import raise_for_failure, validate_creation

    result = validate_creation(Decimal("100.00"), Decimal("40.00"), Decimal("70.00"))
    if not result:
        print(result.error_code)  # INVALID_AMOUNT

    # Inside the workflow, turn a failure into its exception
    raise_for_failure(validate_actor(approved_by, "approver"))
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError
from core.services import ServiceResult
from refunds.exceptions import (
    IllegalTransitionError,
    InvalidAmountError,
    MissingActorError,
    RefundValidationError,
)
from refunds.state_machines import RefundMethod, is_allowed

if TYPE_CHECKING:
    from typing import Any

AMOUNT_QUANTUM = Decimal("0.01")

# error_code -> exception raised by raise_for_failure
FAILURE_EXCEPTIONS: dict[str, type[BaseApplicationError]] = {
    "INVALID_AMOUNT": InvalidAmountError,
    "ILLEGAL_TRANSITION": IllegalTransitionError,
    "MISSING_ACTOR": MissingActorError,
    "TEXT_TOO_LONG": RefundValidationError,
    "INVALID_METHOD": RefundValidationError,
}


def to_amount(value: Any) -> Decimal | None:
    """Coerce a caller-supplied amount to a finite Decimal, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    return amount if amount.is_finite() else None


def validate_creation(
    payment_total: Decimal,
    already_refunded: Decimal,
    requested_amount: Any,
) -> ServiceResult[None]:
    """
    Check a requested refund amount against what the payment has left.

    Args:
        payment_total: Total amount of the payment
        already_refunded: Sum of approved, processing and completed refunds
        requested_amount: Amount the caller wants to refund

    Returns:
        Success, or failure with INVALID_AMOUNT when the amount is not a
        positive two-decimal number or exceeds ``total - already_refunded``
    """
    amount = to_amount(requested_amount)
    if amount is None:
        return ServiceResult.failure(
            f"Refund amount '{requested_amount}' is not a number",
            error_code="INVALID_AMOUNT",
            errors={"amount": ["Must be a finite decimal number"]},
        )

    if amount <= 0:
        return ServiceResult.failure(
            "Refund amount must be positive",
            error_code="INVALID_AMOUNT",
            errors={"amount": ["Must be greater than zero"]},
        )

    if amount != amount.quantize(AMOUNT_QUANTUM):
        return ServiceResult.failure(
            "Refund amount has more than two decimal places",
            error_code="INVALID_AMOUNT",
            errors={"amount": ["At most two decimal places allowed"]},
        )

    remaining = Decimal(payment_total) - Decimal(already_refunded)
    if amount > remaining:
        return ServiceResult.failure(
            f"Refund amount {amount} exceeds remaining refundable amount {remaining}",
            error_code="INVALID_AMOUNT",
            errors={"amount": [f"Must be at most {remaining}"]},
        )

    return ServiceResult.success(None)


def validate_transition(current_status: str, target_status: str) -> ServiceResult[None]:
    """Check ``(current_status, target_status)`` against the transition table."""
    if not is_allowed(current_status, target_status):
        return ServiceResult.failure(
            f"Cannot move refund from {current_status} to {target_status}",
            error_code="ILLEGAL_TRANSITION",
        )
    return ServiceResult.success(None)


def validate_actor(actor_name: str | None, role: str) -> ServiceResult[None]:
    """Check that the staff member a transition needs is named."""
    if actor_name is None or not str(actor_name).strip():
        return ServiceResult.failure(
            f"A {role} is required",
            error_code="MISSING_ACTOR",
            errors={role: ["This field is required"]},
        )
    return ServiceResult.success(None)


def validate_text_length(value: str | None, field: str, max_length: int) -> ServiceResult[None]:
    if value is not None and len(value) > max_length:
        return ServiceResult.failure(
            f"{field} exceeds {max_length} characters",
            error_code="TEXT_TOO_LONG",
            errors={field: [f"Ensure this value has at most {max_length} characters"]},
        )
    return ServiceResult.success(None)


def validate_method(method: str | None) -> ServiceResult[None]:
    if method is not None and method not in RefundMethod.values:
        return ServiceResult.failure(
            f"Unknown refund method '{method}'",
            error_code="INVALID_METHOD",
            errors={"method": [f"Must be one of {', '.join(RefundMethod.values)}"]},
        )
    return ServiceResult.success(None)


def raise_for_failure(
    result: ServiceResult,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Raise the exception matching a failed validation result.

    Does nothing for a successful result.

    Args:
        result: Result returned by one of the validators above
        details: Extra context merged into the exception details

    Raises:
        InvalidAmountError, IllegalTransitionError, MissingActorError or
        RefundValidationError, chosen by ``result.error_code``
    """
    if result.success:
        return

    exc_class = FAILURE_EXCEPTIONS.get(result.error_code or "", RefundValidationError)
    exc_details: dict[str, Any] = dict(details or {})
    if result.errors:
        exc_details["errors"] = result.errors
    raise exc_class(
        result.error or "Validation failed",
        error_code=result.error_code,
        details=exc_details,
    )


__all__ = [
    "raise_for_failure",
    "to_amount",
    "validate_actor",
    "validate_creation",
    "validate_method",
    "validate_text_length",
    "validate_transition",
]
