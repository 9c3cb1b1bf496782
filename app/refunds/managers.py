"""
QuerySet for Refund records.

Usage:
    from refunds.models import Refund

    Refund.objects.for_payment("123").committed().total_amount()
    Refund.objects.requested_between(start, end)
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import models
from django.db.models import Count, Sum

from refunds.state_machines import COMMITTED_STATES, RefundStatus

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime


class RefundQuerySet(models.QuerySet):
    """Chainable refund filters and aggregates."""

    def for_payment(self, payment_id: str) -> RefundQuerySet:
        return self.filter(payment_id=str(payment_id))

    def with_status(self, *statuses: str) -> RefundQuerySet:
        return self.filter(status__in=statuses)

    def committed(self) -> RefundQuerySet:
        """Refunds whose amount is already promised to the guest."""
        return self.filter(status__in=COMMITTED_STATES)

    def completed(self) -> RefundQuerySet:
        return self.filter(status=RefundStatus.COMPLETED)

    def excluding(self, refund_ids: Iterable) -> RefundQuerySet:
        return self.exclude(pk__in=list(refund_ids))

    def requested_between(self, start: datetime, end: datetime) -> RefundQuerySet:
        """Refunds requested within ``[start, end)``, oldest request first."""
        return self.filter(requested_at__gte=start, requested_at__lt=end).order_by(
            "requested_at", "created_at"
        )

    def reconciliation_pending(self) -> RefundQuerySet:
        return self.filter(
            status=RefundStatus.COMPLETED,
            reconciliation_pending=True,
        )

    def total_amount(self) -> Decimal:
        """Sum of ``amount`` over the queryset (zero when empty)."""
        return self.aggregate(total=Sum("amount"))["total"] or Decimal("0.00")

    def status_breakdown(self) -> list[dict]:
        """
        One row per status present: ``{"status", "count", "amount"}``.

        Runs as a single aggregate query, so the rows come from one
        committed snapshot.
        """
        return list(
            self.order_by()
            .values("status")
            .annotate(count=Count("id"), amount=Sum("amount"))
            .order_by("status")
        )
