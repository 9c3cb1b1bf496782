"""
Celery tasks for refund reconciliation.

This module provides async tasks for:
- Reconciling a payment whose status write failed during complete()
- Periodic sweep of completed refunds still awaiting reconciliation

Usage:
    from refunds.tasks import reconcile_payment_status

    # Queued automatically by RefundWorkflowService.complete() when the
    # payment gateway stays unavailable
    reconcile_payment_status.delay("123")

    # Sweep everything still pending (typically via celery-beat)
    from refunds.tasks import retry_pending_reconciliations
    retry_pending_reconciliations.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from payments.exceptions import PaymentNotFoundError, PortUnavailableError
from refunds.exceptions import LockAcquisitionError

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_RECONCILIATION_RETRIES = 8
SWEEP_BATCH_SIZE = 100


# =============================================================================
# Reconciliation Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(PortUnavailableError, LockAcquisitionError),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_RECONCILIATION_RETRIES},
    acks_late=True,
)
def reconcile_payment_status(self, payment_id: str) -> dict:
    """
    Recompute and write a payment's status from its completed refunds.

    Safe to run any number of times: the status is derived from the sum of
    completed refund amounts, not applied incrementally.

    Args:
        payment_id: Payment to reconcile

    Returns:
        Dict with reconciliation result

    Raises:
        PortUnavailableError: Re-raised to trigger Celery retry
    """
    # Import here to avoid circular imports
    from refunds.services import RefundWorkflowService

    logger.info(
        "Reconciling payment status",
        extra={"payment_id": str(payment_id), "retry_count": self.request.retries},
    )

    try:
        status = RefundWorkflowService.reconcile_payment(str(payment_id))
    except PaymentNotFoundError:
        logger.error(
            "Payment not found during reconciliation",
            extra={"payment_id": str(payment_id)},
        )
        return {"status": "not_found", "payment_id": str(payment_id)}

    return {
        "status": "reconciled",
        "payment_id": str(payment_id),
        "payment_status": str(status),
    }


@shared_task
def retry_pending_reconciliations(max_payments: int = SWEEP_BATCH_SIZE) -> dict:
    """
    Periodic task to requeue payments with unreconciled completed refunds.

    This task should be scheduled via celery-beat, e.g., every 5 minutes.

    Args:
        max_payments: Maximum number of payments to queue per run

    Returns:
        Dict with count of payments queued
    """
    from refunds.store import RefundStore

    payment_ids = RefundStore.pending_reconciliation_payment_ids(limit=max_payments)

    for payment_id in payment_ids:
        reconcile_payment_status.delay(payment_id)

    if payment_ids:
        logger.info(
            f"Queued {len(payment_ids)} payments for reconciliation",
            extra={"queued_count": len(payment_ids)},
        )

    return {"queued": len(payment_ids)}


__all__ = [
    "reconcile_payment_status",
    "retry_pending_reconciliations",
]
