"""
Payment-specific exceptions raised by the payment gateway port.

Exception Hierarchy:
    PaymentNotFoundError - Payment id cannot be resolved (inherits NotFoundError)
    PaymentNotRefundableError - Payment state does not accept refunds (inherits ConflictError)
    PortUnavailableError - Gateway call failed transiently (inherits ExternalServiceError)

Usage:
    from payments.exceptions import PaymentNotFoundError, PortUnavailableError

    try:
        snapshot = gateway.get_payment(payment_id, timeout=2.0)
    except PaymentNotFoundError:
        ...  # terminal for this request
    except PortUnavailableError as e:
        if e.is_retryable:
            ...  # safe to try again
"""

from __future__ import annotations

from core.exceptions import ConflictError, ExternalServiceError, NotFoundError


class PaymentNotFoundError(NotFoundError):
    """
    Raised when the gateway cannot resolve a payment id.

    Example:
        payment = Payment.objects.filter(pk=payment_id).first()
        if not payment:
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)}
            )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


class PaymentNotRefundableError(ConflictError):
    """
    Raised when a refund is requested against a payment that is not in a
    refundable state (e.g. still PENDING, or FAILED).
    """

    default_error_code: str = "PAYMENT_NOT_REFUNDABLE"


class PortUnavailableError(ExternalServiceError):
    """
    Raised when a gateway call fails transiently.

    This covers:
    - Database/connection errors behind the gateway
    - Gateway deadline exceeded before the call could run
    - Remote payment system unavailable

    Retry Strategy:
    - Reads and status writes are idempotent, retry with backoff
    - The refund workflow retries payment reconciliation internally
      before surfacing this error
    """

    default_error_code: str = "PORT_UNAVAILABLE"
    is_retryable: bool = True


__all__ = [
    "PaymentNotFoundError",
    "PaymentNotRefundableError",
    "PortUnavailableError",
]
