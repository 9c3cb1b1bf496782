"""
Refund workflow service for moving refunds through their lifecycle.

This module provides the RefundWorkflowService class, the only code path
that creates refunds or changes their status.

Every operation follows the same sequence:
1. Acquire the per-refund distributed lock (``refund:<id>``)
2. Load the refund from the store
3. Validate the transition, the actor, and any text input
4. Check the caller's deadline
5. Apply the django-fsm transition in memory
6. Persist with a conditional update (status + version)
7. For completion, reconcile the payment status through the gateway

Usage:
    from refunds.services import RefundWorkflowService

    refund = RefundWorkflowService.create(
        payment_id="123",
        amount=Decimal("150.00"),
        requested_by="Front Desk",
        reason="Early checkout",
    )
    RefundWorkflowService.approve(refund.id, approved_by="Manager A")
    RefundWorkflowService.process(refund.id, processed_by="Officer B")
    refund = RefundWorkflowService.complete(refund.id, timeout=5.0)
"""

from __future__ import annotations

import time
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone
from django.utils.module_loading import import_string
from kombu.exceptions import OperationalError

from core.services import BaseService
from payments.exceptions import PaymentNotRefundableError, PortUnavailableError
from payments.models import REFUNDABLE_PAYMENT_STATUSES, PaymentStatus
from refunds.exceptions import LockAcquisitionError
from refunds.locks import Deadline, DistributedLock
from refunds.models import (
    ACTOR_MAX_LENGTH,
    NOTES_MAX_LENGTH,
    REASON_MAX_LENGTH,
    Refund,
)
from refunds.state_machines import RefundEvent, target_for
from refunds.store import RefundStore
from refunds.validators import (
    raise_for_failure,
    to_amount,
    validate_actor,
    validate_creation,
    validate_method,
    validate_text_length,
    validate_transition,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from core.exceptions import BaseApplicationError
    from payments.gateway import PaymentGateway


class RefundWorkflowService(BaseService):
    """
    Service for the refund state machine.

    State Flow:
        create   -> PENDING
        approve  PENDING -> APPROVED
        reject   PENDING -> REJECTED
        cancel   PENDING/APPROVED -> CANCELLED
        process  APPROVED -> PROCESSING
        complete PROCESSING -> COMPLETED (+ payment reconciliation)

    Concurrency:
        - One transition at a time per refund (Redis lock ``refund:<id>``)
        - Creation and approval also hold ``refund:payment:<payment_id>``
          while checking the remaining refundable amount, and reconciliation
          holds it from reading the completed total to writing the status
        - Every write is conditional on the status and version that were
          loaded, so a lost lock still cannot produce a lost update

    Failures are raised as typed exceptions (refunds.exceptions,
    payments.exceptions). Validation and transition failures are raised
    before anything is written.
    """

    # Payment gateway - can be injected for testing
    _payment_gateway: PaymentGateway | None = None

    @classmethod
    def get_payment_gateway(cls) -> PaymentGateway:
        """Get the payment gateway (REFUNDS_PAYMENT_GATEWAY unless injected)."""
        if cls._payment_gateway is not None:
            return cls._payment_gateway
        return import_string(settings.REFUNDS_PAYMENT_GATEWAY)()

    @classmethod
    def set_payment_gateway(cls, gateway: PaymentGateway | None) -> None:
        """Set the payment gateway (for testing)."""
        cls._payment_gateway = gateway

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    def create(
        cls,
        payment_id: str,
        amount: Any,
        *,
        requested_by: str | None,
        reason: str | None = None,
        method: str | None = None,
        notes: str | None = None,
        timeout: float | None = None,
    ) -> Refund:
        """
        Request a refund against a payment.

        Args:
            payment_id: Gateway identifier of the payment
            amount: Amount to refund (Decimal, int or numeric string)
            requested_by: Staff member asking for the refund
            reason: Optional reason, at most 500 characters
            method: Optional RefundMethod value
            notes: Optional initial notes
            timeout: Seconds the caller is willing to wait

        Returns:
            The new PENDING refund

        Raises:
            MissingActorError: If requested_by is empty
            RefundValidationError: If reason/notes are too long or method unknown
            PaymentNotFoundError: If the gateway cannot resolve payment_id
            PaymentNotRefundableError: If the payment has not been paid
            InvalidAmountError: If amount is not within (0, remaining]
            LockAcquisitionError: If the payment lock is busy
            OperationTimeoutError: If the deadline passes before the insert
        """
        deadline = cls._deadline(timeout)
        payment_id = str(payment_id)
        details = {"payment_id": payment_id}

        raise_for_failure(validate_actor(requested_by, "requested_by"), details)
        raise_for_failure(
            validate_text_length(requested_by, "requested_by", ACTOR_MAX_LENGTH), details
        )
        raise_for_failure(validate_text_length(reason, "reason", REASON_MAX_LENGTH), details)
        raise_for_failure(validate_text_length(notes, "notes", NOTES_MAX_LENGTH), details)
        raise_for_failure(validate_method(method), details)

        deadline.check(RefundEvent.CREATE)
        gateway = cls.get_payment_gateway()
        payment = gateway.get_payment(payment_id, timeout=deadline.remaining())

        if payment.status not in REFUNDABLE_PAYMENT_STATUSES:
            cls.get_logger().warning(
                "Refund requested for non-refundable payment",
                extra={"payment_id": payment_id, "payment_status": payment.status},
            )
            raise PaymentNotRefundableError(
                f"Payment {payment_id} is {payment.status} and cannot be refunded",
                details={"payment_id": payment_id, "payment_status": payment.status},
            )

        with cls._lock(f"refund:payment:{payment_id}", deadline):
            already_refunded = RefundStore.sum_amount(payment_id)
            result = validate_creation(payment.total, already_refunded, amount)
            if not result:
                cls.get_logger().warning(
                    "Refund amount rejected",
                    extra={
                        "payment_id": payment_id,
                        "requested_amount": str(amount),
                        "payment_total": str(payment.total),
                        "already_refunded": str(already_refunded),
                    },
                )
            raise_for_failure(
                result,
                {
                    "payment_id": payment_id,
                    "requested_amount": str(amount),
                    "payment_total": str(payment.total),
                    "already_refunded": str(already_refunded),
                },
            )

            deadline.check(RefundEvent.CREATE)
            refund = RefundStore.insert(
                Refund(
                    payment_id=payment_id,
                    amount=to_amount(amount),
                    currency=payment.currency,
                    reason=reason or "",
                    method=method,
                    notes=notes or "",
                    requested_by=requested_by,
                    requested_at=timezone.now(),
                )
            )

        cls.get_logger().info(
            "Refund created",
            extra={
                "refund_id": str(refund.id),
                "payment_id": payment_id,
                "amount": str(refund.amount),
                "requested_by": requested_by,
            },
        )
        return refund

    # =========================================================================
    # Transitions
    # =========================================================================

    @classmethod
    def approve(
        cls,
        refund_id: Any,
        *,
        approved_by: str | None,
        notes: str | None = None,
        timeout: float | None = None,
    ) -> Refund:
        """
        Approve a PENDING refund.

        The payment's remaining refundable amount is checked again, leaving
        this refund out of the sum, so two pending refunds cannot both be
        approved past the payment total.

        Raises:
            RefundNotFoundError, IllegalTransitionError, MissingActorError,
            InvalidAmountError, StaleRefundError, LockAcquisitionError,
            OperationTimeoutError, PaymentNotFoundError, PortUnavailableError
        """
        deadline = cls._deadline(timeout)
        event = RefundEvent.APPROVE

        with cls._lock(f"refund:{refund_id}", deadline):
            refund = RefundStore.get_by_id(refund_id)
            prior_status = refund.status
            cls._validate(refund, event, actor=approved_by, role="approved_by", note=notes)

            payment_id = refund.payment_id
            with cls._lock(f"refund:payment:{payment_id}", deadline):
                payment = cls.get_payment_gateway().get_payment(
                    payment_id, timeout=deadline.remaining()
                )
                already_refunded = RefundStore.sum_amount(payment_id, exclude_ids=[refund.id])
                raise_for_failure(
                    validate_creation(payment.total, already_refunded, refund.amount),
                    {
                        "refund_id": str(refund.id),
                        "payment_id": payment_id,
                        "requested_amount": str(refund.amount),
                        "payment_total": str(payment.total),
                        "already_refunded": str(already_refunded),
                    },
                )

                deadline.check(event)
                refund.approve(approved_by=approved_by, notes=notes)
                RefundStore.update(refund, expected_prior_status=prior_status)

        cls._log_transition(refund, prior_status, actor=approved_by)
        return refund

    @classmethod
    def reject(
        cls,
        refund_id: Any,
        *,
        processed_by: str | None,
        reason: str | None = None,
        timeout: float | None = None,
    ) -> Refund:
        """
        Reject a PENDING refund. The reason is appended to the notes.
        """
        return cls._run_transition(
            refund_id,
            RefundEvent.REJECT,
            lambda refund: refund.reject(processed_by=processed_by, reason=reason),
            actor=processed_by,
            role="processed_by",
            note=reason,
            timeout=timeout,
        )

    @classmethod
    def cancel(
        cls,
        refund_id: Any,
        *,
        actor: str | None,
        notes: str | None = None,
        timeout: float | None = None,
    ) -> Refund:
        """
        Cancel a PENDING or APPROVED refund.

        A refund already PROCESSING cannot be cancelled.
        """
        return cls._run_transition(
            refund_id,
            RefundEvent.CANCEL,
            lambda refund: refund.cancel(cancelled_by=actor, notes=notes),
            actor=actor,
            role="actor",
            note=notes,
            timeout=timeout,
        )

    @classmethod
    def process(
        cls,
        refund_id: Any,
        *,
        processed_by: str | None,
        notes: str | None = None,
        timeout: float | None = None,
    ) -> Refund:
        """Start paying out an APPROVED refund."""
        return cls._run_transition(
            refund_id,
            RefundEvent.PROCESS,
            lambda refund: refund.process(processed_by=processed_by, notes=notes),
            actor=processed_by,
            role="processed_by",
            note=notes,
            timeout=timeout,
        )

    @classmethod
    def complete(
        cls,
        refund_id: Any,
        *,
        notes: str | None = None,
        timeout: float | None = None,
    ) -> Refund:
        """
        Complete a PROCESSING refund and reconcile its payment.

        The refund is written COMPLETED (flagged ``reconciliation_pending``)
        before the payment status is touched. The payment write is then
        retried with exponential backoff inside the caller's deadline. Only
        when it succeeds is the flag cleared and the refund returned.

        Raises:
            PortUnavailableError: If the payment could not be reconciled
                in time. The refund stays COMPLETED and a background task
                keeps reconciling the payment.
            RefundNotFoundError, IllegalTransitionError, StaleRefundError,
            LockAcquisitionError, OperationTimeoutError
        """
        deadline = cls._deadline(timeout)
        event = RefundEvent.COMPLETE

        with cls._lock(f"refund:{refund_id}", deadline):
            refund = RefundStore.get_by_id(refund_id)
            prior_status = refund.status
            cls._validate(refund, event, note=notes)

            deadline.check(event)
            refund.complete(notes=notes)
            RefundStore.update(refund, expected_prior_status=prior_status)
            cls._log_transition(refund, prior_status)

            cls._reconcile_with_retries(refund, deadline)

        return RefundStore.get_by_id(refund.id)

    # =========================================================================
    # Payment Reconciliation
    # =========================================================================

    @classmethod
    def reconcile_payment(cls, payment_id: str, timeout: float | None = None) -> str:
        """
        Recompute a payment's status from its completed refunds.

        The status is derived from the sum of COMPLETED refund amounts, so
        calling this any number of times gives the same result:
        REFUNDED once the sum reaches the payment total, PARTIALLY_REFUNDED
        below it. A payment with no completed refunds is left alone.

        Runs under ``refund:payment:<payment_id>``, so two reconciliations of
        one payment never interleave. A refund may still complete while the
        status is being written; the completed set is read again afterwards
        and the write repeated until it matches.

        Args:
            payment_id: Payment to reconcile
            timeout: Seconds the caller is willing to wait

        Returns:
            The payment status after reconciliation

        Raises:
            PaymentNotFoundError: If the payment no longer resolves
            PortUnavailableError: If the gateway fails transiently
            LockAcquisitionError: If another reconciliation holds the payment
        """
        deadline = cls._deadline(timeout)
        payment_id = str(payment_id)
        gateway = cls.get_payment_gateway()

        with cls._lock(f"refund:payment:{payment_id}", deadline):
            payment = gateway.get_payment(payment_id, timeout=deadline.remaining())
            new_status = payment.status
            completed = RefundStore.completed_amounts(payment_id)

            while completed:
                completed_total = sum(completed.values(), Decimal("0.00"))
                if completed_total >= payment.total:
                    new_status = PaymentStatus.REFUNDED
                else:
                    new_status = PaymentStatus.PARTIALLY_REFUNDED

                gateway.set_payment_status(payment_id, new_status, timeout=deadline.remaining())
                reconciled = RefundStore.mark_reconciled(completed)

                cls.get_logger().info(
                    "Payment reconciled",
                    extra={
                        "payment_id": payment_id,
                        "payment_status": str(new_status),
                        "completed_total": str(completed_total),
                        "payment_total": str(payment.total),
                        "refunds_reconciled": reconciled,
                    },
                )

                latest = RefundStore.completed_amounts(payment_id)
                if latest.keys() == completed.keys():
                    break
                completed = latest

        return new_status

    @classmethod
    def _reconcile_with_retries(cls, refund: Refund, deadline: Deadline) -> str:
        """
        Reconcile the refund's payment, retrying transient failures.

        On exhaustion the background task is queued and a
        PortUnavailableError is raised. The refund keeps its
        ``reconciliation_pending`` flag, so the periodic sweep retries it
        even when the task could not be queued.
        """
        max_attempts = max(1, int(settings.REFUND_RECONCILIATION_MAX_ATTEMPTS))
        backoff = float(settings.REFUND_RECONCILIATION_BACKOFF_SECONDS)
        last_error: BaseApplicationError | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                return cls.reconcile_payment(refund.payment_id, timeout=deadline.remaining())
            except (PortUnavailableError, LockAcquisitionError) as e:
                last_error = e
                cls.get_logger().warning(
                    "Payment reconciliation failed",
                    extra={
                        "refund_id": str(refund.id),
                        "payment_id": refund.payment_id,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "error": str(e),
                    },
                )

            delay = backoff * (2 ** (attempt - 1))
            if attempt == max_attempts or delay >= deadline.remaining():
                break
            time.sleep(delay)

        from refunds.tasks import reconcile_payment_status

        try:
            reconcile_payment_status.delay(refund.payment_id)
        except OperationalError as e:
            queued = False
            cls.get_logger().error(
                "Could not queue payment reconciliation",
                extra={
                    "refund_id": str(refund.id),
                    "payment_id": refund.payment_id,
                    "error": str(e),
                },
            )
        else:
            queued = True
            cls.get_logger().error(
                "Payment reconciliation deferred to background task",
                extra={"refund_id": str(refund.id), "payment_id": refund.payment_id},
            )

        raise PortUnavailableError(
            f"Refund {refund.id} completed but payment {refund.payment_id} "
            "could not be reconciled yet",
            details={
                "refund_id": str(refund.id),
                "payment_id": refund.payment_id,
                "reconciliation_queued": queued,
                "original_error": str(last_error),
            },
        ) from last_error

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_refund(cls, refund_id: Any) -> Refund:
        return RefundStore.get_by_id(refund_id)

    @classmethod
    def get_refunds_for_payment(cls, payment_id: str) -> list[Refund]:
        return RefundStore.list_for_payment(str(payment_id))

    @classmethod
    def get_refundable_amount(cls, payment_id: str, timeout: float | None = None) -> Decimal:
        """Payment total minus approved, processing and completed refunds."""
        deadline = cls._deadline(timeout)
        payment = cls.get_payment_gateway().get_payment(
            str(payment_id), timeout=deadline.remaining()
        )
        remaining = payment.total - RefundStore.sum_amount(str(payment_id))
        return max(remaining, Decimal("0.00"))

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _run_transition(
        cls,
        refund_id: Any,
        event: str,
        apply: Callable[[Refund], None],
        *,
        actor: str | None,
        role: str,
        note: str | None,
        timeout: float | None,
    ) -> Refund:
        """Lock, load, validate, mutate and conditionally persist one refund."""
        deadline = cls._deadline(timeout)

        with cls._lock(f"refund:{refund_id}", deadline):
            refund = RefundStore.get_by_id(refund_id)
            prior_status = refund.status
            cls._validate(refund, event, actor=actor, role=role, note=note)

            deadline.check(event)
            apply(refund)
            RefundStore.update(refund, expected_prior_status=prior_status)

        cls._log_transition(refund, prior_status, actor=actor)
        return refund

    @classmethod
    def _validate(
        cls,
        refund: Refund,
        event: str,
        *,
        actor: str | None = None,
        role: str | None = None,
        note: str | None = None,
    ) -> None:
        target_status = target_for(event)
        details = {
            "refund_id": str(refund.id),
            "current_status": refund.status,
            "target_status": target_status,
        }

        result = validate_transition(refund.status, target_status)
        if not result:
            cls.get_logger().warning(
                "Illegal refund transition",
                extra={**details, "event": event, "terminal": refund.is_terminal},
            )
        raise_for_failure(result, details)

        if role is not None:
            raise_for_failure(validate_actor(actor, role), details)
            raise_for_failure(validate_text_length(actor, role, ACTOR_MAX_LENGTH), details)
        raise_for_failure(
            validate_text_length(refund.notes_with(note), "notes", NOTES_MAX_LENGTH),
            details,
        )

    @classmethod
    def _deadline(cls, timeout: float | None) -> Deadline:
        if timeout is None:
            timeout = settings.REFUND_OPERATION_TIMEOUT_SECONDS
        return Deadline(timeout)

    @classmethod
    def _lock(cls, key: str, deadline: Deadline) -> DistributedLock:
        return DistributedLock(
            key,
            ttl=settings.REFUND_LOCK_TTL_SECONDS,
            timeout=deadline.remaining(),
        )

    @classmethod
    def _log_transition(cls, refund: Refund, prior_status: str, actor: str | None = None) -> None:
        cls.get_logger().info(
            "Refund transitioned",
            extra={
                "refund_id": str(refund.id),
                "payment_id": refund.payment_id,
                "from_status": prior_status,
                "to_status": refund.status,
                "actor": actor,
                "version": refund.version,
            },
        )


__all__ = [
    "RefundWorkflowService",
]
