"""
Durable storage for Refund records.

RefundStore is the only code that writes refunds. Updates are conditional:
a row is written only if it still holds the status and version the caller
loaded, so two writers racing on the same refund cannot both succeed.

Usage:
    from refunds.store import RefundStore

    refund = RefundStore.get_by_id(refund_id)
    prior = refund.status
    refund.approve(approved_by="Manager A")
    RefundStore.update(refund, expected_prior_status=prior)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import F
from django.utils import timezone

from refunds.exceptions import RefundNotFoundError, StaleRefundError
from refunds.models import Refund

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime
    from decimal import Decimal
    from typing import Any

logger = logging.getLogger(__name__)

# Columns a transition may change; identity and request data never move
MUTABLE_FIELDS = (
    "status",
    "approved_by",
    "processed_by",
    "cancelled_by",
    "notes",
    "approved_at",
    "rejected_at",
    "processed_at",
    "reconciliation_pending",
)


class RefundStore:
    """
    Persistence operations for refunds.

    All methods are classmethods; the store holds no state of its own.
    """

    @classmethod
    def insert(cls, refund: Refund) -> Refund:
        """
        Persist a new refund. The id is assigned here.

        Returns:
            The saved refund (version 1)
        """
        refund.save(force_insert=True)
        logger.debug(
            "Refund inserted",
            extra={"refund_id": str(refund.id), "payment_id": refund.payment_id},
        )
        return refund

    @classmethod
    def update(
        cls,
        refund: Refund,
        expected_prior_status: str,
        fields: Iterable[str] = MUTABLE_FIELDS,
    ) -> Refund:
        """
        Write ``fields`` of an in-memory refund back, conditionally.

        The row is updated only if it is still in ``expected_prior_status``
        at the version ``refund`` was loaded with. On success the in-memory
        version is advanced to match the row.

        Raises:
            RefundNotFoundError: If the row no longer exists
            StaleRefundError: If another writer changed the row first
        """
        values: dict[str, Any] = {name: getattr(refund, name) for name in fields}
        expected_version = refund.version

        updated = Refund.objects.filter(
            pk=refund.pk,
            status=expected_prior_status,
            version=expected_version,
        ).update(
            **values,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )

        if not updated:
            if not Refund.objects.filter(pk=refund.pk).exists():
                raise RefundNotFoundError(
                    f"Refund {refund.pk} not found",
                    details={"refund_id": str(refund.pk)},
                )
            logger.warning(
                "Stale refund update rejected",
                extra={
                    "refund_id": str(refund.pk),
                    "expected_status": expected_prior_status,
                    "expected_version": expected_version,
                },
            )
            raise StaleRefundError(
                f"Refund {refund.pk} was modified concurrently",
                details={
                    "refund_id": str(refund.pk),
                    "expected_status": expected_prior_status,
                    "expected_version": expected_version,
                },
            )

        refund.version = expected_version + 1
        return refund

    @classmethod
    def get_by_id(cls, refund_id: Any) -> Refund:
        """
        Load a refund.

        Raises:
            RefundNotFoundError: If no refund has this id (malformed ids included)
        """
        try:
            return Refund.objects.get(pk=refund_id)
        except (Refund.DoesNotExist, DjangoValidationError, ValueError, TypeError):
            raise RefundNotFoundError(
                f"Refund {refund_id} not found",
                details={"refund_id": str(refund_id)},
            ) from None

    @classmethod
    def list_by_status(cls, status: str) -> list[Refund]:
        return list(Refund.objects.with_status(status).order_by("requested_at", "created_at"))

    @classmethod
    def list_all(cls) -> list[Refund]:
        return list(Refund.objects.order_by("requested_at", "created_at"))

    @classmethod
    def list_for_payment(cls, payment_id: str) -> list[Refund]:
        return list(Refund.objects.for_payment(payment_id).order_by("requested_at", "created_at"))

    @classmethod
    def list_requested_between(cls, start: datetime, end: datetime) -> list[Refund]:
        return list(Refund.objects.requested_between(start, end))

    @classmethod
    def sum_amount(cls, payment_id: str, exclude_ids: Iterable[Any] = ()) -> Decimal:
        """
        Sum the approved, processing and completed refunds of a payment.

        Args:
            payment_id: Payment whose refunds are summed
            exclude_ids: Refunds to leave out of the sum
        """
        return (
            Refund.objects.for_payment(payment_id)
            .committed()
            .excluding(exclude_ids)
            .total_amount()
        )

    @classmethod
    def completed_amounts(cls, payment_id: str) -> dict[Any, Decimal]:
        """
        Amount of every completed refund of a payment, keyed by refund id.

        Read in one query so the ids and the total come from the same rows.
        """
        return dict(
            Refund.objects.for_payment(payment_id).completed().values_list("id", "amount")
        )

    @classmethod
    def status_breakdown(
        cls,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[dict]:
        queryset = Refund.objects.all()
        if start is not None:
            queryset = queryset.filter(requested_at__gte=start)
        if end is not None:
            queryset = queryset.filter(requested_at__lt=end)
        return queryset.status_breakdown()

    @classmethod
    def mark_reconciled(cls, refund_ids: Iterable[Any]) -> int:
        """
        Clear ``reconciliation_pending`` on the given completed refunds.

        Only refunds whose amounts went into the reconciled total are
        passed in; a refund completed after that read keeps its flag.

        Returns:
            Number of refunds updated
        """
        return (
            Refund.objects.filter(pk__in=list(refund_ids))
            .reconciliation_pending()
            .update(
                reconciliation_pending=False,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
        )

    @classmethod
    def pending_reconciliation_payment_ids(cls, limit: int | None = None) -> list[str]:
        """Payments with at least one completed refund still awaiting reconciliation."""
        queryset = (
            Refund.objects.reconciliation_pending()
            .order_by("payment_id")
            .values_list("payment_id", flat=True)
            .distinct()
        )
        if limit is not None:
            queryset = queryset[:limit]
        return list(queryset)


__all__ = [
    "MUTABLE_FIELDS",
    "RefundStore",
]
