"""
Refund model for money returned to resort guests.

A Refund is a staff request to return part or all of a prior payment. It is
created PENDING and moves through the workflow in
refunds.state_machines.transitions; once COMPLETED, REJECTED or CANCELLED it
never changes again. Records are never deleted.

Usage:
    from refunds.models import Refund
    from refunds.state_machines import RefundStatus

    refund = Refund.objects.create(
        payment_id="123",
        amount=Decimal("60.00"),
        requested_by="Front Desk",
        requested_at=timezone.now(),
    )

    # State transitions using django-fsm (in memory only; the workflow
    # persists them through refunds.store.RefundStore)
    refund.approve(approved_by="Manager A")
    refund.process(processed_by="Officer B")
    refund.complete()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from refunds.managers import RefundQuerySet
from refunds.state_machines import (
    TERMINAL_STATES,
    RefundEvent,
    RefundMethod,
    RefundStatus,
    sources_for,
    target_for,
)

REASON_MAX_LENGTH = 500
NOTES_MAX_LENGTH = 2000
ACTOR_MAX_LENGTH = 150


class Refund(UUIDPrimaryKeyMixin, BaseModel):
    """
    Represents money returned to a guest against a prior payment.

    State Flow:
        PENDING -> APPROVED -> PROCESSING -> COMPLETED
        PENDING -> REJECTED
        PENDING/APPROVED -> CANCELLED

    Fields:
        payment_id: Gateway identifier of the payment being refunded
        amount: Refund amount in major currency units
        currency: Currency copied from the payment at creation
        status: Current FSM state
        reason: Why the guest is being refunded
        method: Channel the money goes back through
        requested_by/approved_by/processed_by/cancelled_by: Staff actors
        notes: Newline-separated remarks appended along the way
        requested_at/approved_at/rejected_at/processed_at: Transition times
        reconciliation_pending: COMPLETED but payment status not yet written
        version: Optimistic locking version

    Note:
        Several refunds may exist for one payment. Approved, processing and
        completed amounts together never exceed the payment total.
    """

    # ==========================================================================
    # Payment Reference
    # ==========================================================================

    payment_id = models.CharField(
        max_length=64,
        db_index=True,
        editable=False,
        help_text="Gateway identifier of the payment being refunded",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Refund amount",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.PENDING,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the refund (managed by FSM)",
    )

    # ==========================================================================
    # Refund Details
    # ==========================================================================

    reason = models.CharField(
        max_length=REASON_MAX_LENGTH,
        blank=True,
        default="",
        help_text="Reason for the refund",
    )

    method = models.CharField(
        max_length=32,
        choices=RefundMethod.choices,
        null=True,
        blank=True,
        help_text="Channel through which the money is returned",
    )

    notes = models.TextField(
        max_length=NOTES_MAX_LENGTH,
        blank=True,
        default="",
        help_text="Staff notes appended at each transition",
    )

    # ==========================================================================
    # Actors
    # ==========================================================================

    requested_by = models.CharField(max_length=ACTOR_MAX_LENGTH)
    approved_by = models.CharField(max_length=ACTOR_MAX_LENGTH, blank=True, default="")
    processed_by = models.CharField(max_length=ACTOR_MAX_LENGTH, blank=True, default="")
    cancelled_by = models.CharField(max_length=ACTOR_MAX_LENGTH, blank=True, default="")

    # ==========================================================================
    # Transition Timestamps
    # ==========================================================================

    requested_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="When the refund was requested",
    )

    approved_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the refund reached a terminal state",
    )

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    reconciliation_pending = models.BooleanField(
        default=False,
        help_text="Completed, but payment status not yet reconciled",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each write",
    )

    objects = RefundQuerySet.as_manager()

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["payment_id", "status"], name="refund_payment_status_idx"),
            models.Index(fields=["status", "requested_at"], name="refund_status_requested_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with ID, status, and amount."""
        return f"Refund({self.id}, {self.status}, {self.amount} {self.currency.upper()})"

    def notes_with(self, note: str | None) -> str:
        """Return what ``notes`` would hold after appending ``note``."""
        if not note:
            return self.notes
        return f"{self.notes}\n{note}" if self.notes else note

    def append_note(self, note: str | None) -> None:
        self.notes = self.notes_with(note)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=sources_for(RefundEvent.APPROVE),
        target=target_for(RefundEvent.APPROVE),
    )
    def approve(self, approved_by: str, notes: str | None = None):
        """
        Approve the refund.

        Transition: PENDING -> APPROVED
        """
        self.approved_by = approved_by
        self.approved_at = timezone.now()
        self.append_note(notes)

    @transition(
        field=status,
        source=sources_for(RefundEvent.REJECT),
        target=target_for(RefundEvent.REJECT),
    )
    def reject(self, processed_by: str, reason: str | None = None):
        """
        Reject the refund; the rejection reason is appended to notes.

        Transition: PENDING -> REJECTED
        """
        now = timezone.now()
        self.processed_by = processed_by
        self.rejected_at = now
        self.processed_at = now
        self.append_note(reason)

    @transition(
        field=status,
        source=sources_for(RefundEvent.CANCEL),
        target=target_for(RefundEvent.CANCEL),
    )
    def cancel(self, cancelled_by: str, notes: str | None = None):
        """
        Cancel the refund.

        Transition: PENDING/APPROVED -> CANCELLED
        """
        self.cancelled_by = cancelled_by
        self.processed_at = timezone.now()
        self.append_note(notes)

    @transition(
        field=status,
        source=sources_for(RefundEvent.PROCESS),
        target=target_for(RefundEvent.PROCESS),
    )
    def process(self, processed_by: str, notes: str | None = None):
        """
        Start paying the refund out.

        Transition: APPROVED -> PROCESSING
        """
        self.processed_by = processed_by
        self.append_note(notes)

    @transition(
        field=status,
        source=sources_for(RefundEvent.COMPLETE),
        target=target_for(RefundEvent.COMPLETE),
    )
    def complete(self, notes: str | None = None):
        """
        Mark the refund as paid out.

        Transition: PROCESSING -> COMPLETED

        The payment still has to be reconciled, so the refund is flagged
        until the payment status write succeeds.
        """
        self.processed_at = timezone.now()
        self.reconciliation_pending = True
        self.append_note(notes)

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        """Check if the refund can no longer change."""
        return self.status in TERMINAL_STATES
