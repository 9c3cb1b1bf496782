"""
Payment model for guest payments taken by the resort.

A Payment is the prior monetary transaction a refund is issued against.
The refund workflow never owns a Payment: it reads the total and current
status through the gateway port (payments.gateway) and writes back only
the refund-related statuses (PARTIALLY_REFUNDED, REFUNDED).

Usage:
    from payments.models import Payment, PaymentStatus

    payment = Payment.objects.create(
        reference="FOLIO-2041",
        guest_name="R. Okafor",
        total_amount=Decimal("150.00"),
        status=PaymentStatus.PAID,
    )
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel


class PaymentStatus(models.TextChoices):
    """
    Lifecycle states of a guest payment.

    Refund Flow:
        PAID -> PARTIALLY_REFUNDED -> REFUNDED
        PAID -> REFUNDED

    PENDING and FAILED payments cannot be refunded. PAID, PARTIALLY_REFUNDED
    and REFUNDED ones can be asked for a refund; for a REFUNDED payment the
    amount check fails because nothing remains.
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"


# Payment states that accept refund requests. REFUNDED stays in the set so an
# over-refund is reported as an amount problem (nothing remains).
REFUNDABLE_PAYMENT_STATUSES = frozenset(
    [
        PaymentStatus.PAID,
        PaymentStatus.PARTIALLY_REFUNDED,
        PaymentStatus.REFUNDED,
    ]
)


class Payment(BaseModel):
    """
    A payment taken from a guest (room folio, spa, restaurant, deposits).

    Fields:
        reference: Folio or booking reference shown to staff
        guest_name: Name of the paying guest
        total_amount: Amount charged, in major currency units
        currency: ISO 4217 currency code
        status: Current payment status
    """

    reference = models.CharField(
        max_length=64,
        blank=True,
        default="",
        db_index=True,
        help_text="Folio or booking reference",
    )

    guest_name = models.CharField(
        max_length=200,
        blank=True,
        default="",
        help_text="Name of the paying guest",
    )

    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Total amount charged",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    status = models.CharField(
        max_length=32,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PAID,
        db_index=True,
        help_text="Current payment status",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_amount__gt=0),
                name="payment_total_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with ID, status, and amount."""
        return f"Payment(#{self.pk}, {self.status}, {self.total_amount} {self.currency.upper()})"
