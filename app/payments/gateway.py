"""
Payment Gateway Port and its Django-backed adapter.

The refund workflow depends only on the PaymentGateway protocol:

    get_payment(payment_id, timeout) -> PaymentSnapshot | PaymentNotFoundError
    set_payment_status(payment_id, status, timeout) -> None | PortUnavailableError

Any object with these two methods is a valid gateway (duck typing), so a
property-management-system client can replace DjangoPaymentGateway without
touching the workflow. The adapter in use is selected by the
REFUNDS_PAYMENT_GATEWAY setting.

Usage:
    from payments.gateway import DjangoPaymentGateway

    gateway = DjangoPaymentGateway()
    snapshot = gateway.get_payment("123", timeout=2.0)
    print(snapshot.total, snapshot.status)

    gateway.set_payment_status("123", "refunded", timeout=2.0)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from django.db import DatabaseError
from django.utils import timezone

from core.exceptions import ValidationError
from payments.exceptions import PaymentNotFoundError, PortUnavailableError
from payments.models import Payment, PaymentStatus

if TYPE_CHECKING:
    from decimal import Decimal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSnapshot:
    """
    Read-only view of a payment as seen through the gateway.

    Attributes:
        payment_id: Gateway identifier of the payment
        total: Total amount charged
        status: Current payment status value
        currency: ISO 4217 currency code
    """

    payment_id: str
    total: Decimal
    status: str
    currency: str = "usd"


@runtime_checkable
class PaymentGateway(Protocol):
    """
    Protocol for the payment collaborator the refund workflow talks to.

    Implementations must raise PaymentNotFoundError for unknown ids and
    PortUnavailableError for transient failures (including an exhausted
    ``timeout``). Both methods must be idempotent.
    """

    def get_payment(self, payment_id: str, timeout: float | None = None) -> PaymentSnapshot:
        """
        Look up a payment.

        Args:
            payment_id: Gateway identifier of the payment
            timeout: Seconds the caller is still willing to wait

        Returns:
            PaymentSnapshot with total and current status
        """
        ...

    def set_payment_status(
        self,
        payment_id: str,
        status: str,
        timeout: float | None = None,
    ) -> None:
        """
        Write a new status for a payment.

        Args:
            payment_id: Gateway identifier of the payment
            status: New PaymentStatus value
            timeout: Seconds the caller is still willing to wait
        """
        ...


class DjangoPaymentGateway:
    """
    Gateway adapter backed by the local payments.Payment table.

    Database errors are reported as PortUnavailableError so callers can
    treat them like any other transient collaborator failure.
    """

    def get_payment(self, payment_id: str, timeout: float | None = None) -> PaymentSnapshot:
        self._check_timeout(timeout, "get_payment", payment_id)
        pk = self._parse_id(payment_id)

        try:
            payment = Payment.objects.filter(pk=pk).first()
        except DatabaseError as e:
            raise PortUnavailableError(
                f"Could not read payment {payment_id}",
                details={"payment_id": str(payment_id), "original_error": str(e)},
            ) from e

        if payment is None:
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)},
            )

        return PaymentSnapshot(
            payment_id=str(payment.pk),
            total=payment.total_amount,
            status=payment.status,
            currency=payment.currency,
        )

    def set_payment_status(
        self,
        payment_id: str,
        status: str,
        timeout: float | None = None,
    ) -> None:
        if status not in PaymentStatus.values:
            raise ValidationError(
                f"Unknown payment status '{status}'",
                error_code="INVALID_PAYMENT_STATUS",
                details={"status": status},
            )
        self._check_timeout(timeout, "set_payment_status", payment_id)
        pk = self._parse_id(payment_id)

        try:
            updated = Payment.objects.filter(pk=pk).update(
                status=status,
                updated_at=timezone.now(),
            )
        except DatabaseError as e:
            raise PortUnavailableError(
                f"Could not update payment {payment_id}",
                details={"payment_id": str(payment_id), "original_error": str(e)},
            ) from e

        if not updated:
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)},
            )

        logger.info(
            "Payment status updated",
            extra={"payment_id": str(payment_id), "status": status},
        )

    @staticmethod
    def _parse_id(payment_id: str) -> int:
        """Payments use integer keys; anything else cannot resolve."""
        try:
            return int(payment_id)
        except (TypeError, ValueError):
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)},
            ) from None

    @staticmethod
    def _check_timeout(timeout: float | None, operation: str, payment_id: str) -> None:
        if timeout is not None and timeout <= 0:
            raise PortUnavailableError(
                f"Deadline exceeded before {operation} for payment {payment_id}",
                error_code="PORT_TIMEOUT",
                details={"payment_id": str(payment_id), "operation": operation},
            )


__all__ = [
    "DjangoPaymentGateway",
    "PaymentGateway",
    "PaymentSnapshot",
]
