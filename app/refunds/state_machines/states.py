"""
State enums for the refund workflow.

These are Django TextChoices for database storage; the Refund model's
status field is a django-fsm FSMField over RefundStatus.

Refund States:
    pending → approved → processing → completed
    pending → rejected
    pending/approved → cancelled
"""

from django.db import models


class RefundStatus(models.TextChoices):
    """
    States for the Refund model lifecycle.

    Initial state: PENDING
    Terminal states: COMPLETED, REJECTED, CANCELLED

    State Flow:
        PENDING → APPROVED → PROCESSING → COMPLETED
        PENDING → REJECTED
        PENDING → CANCELLED
        APPROVED → CANCELLED
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    REJECTED = "rejected", "Rejected"
    CANCELLED = "cancelled", "Cancelled"


class RefundMethod(models.TextChoices):
    """
    Channel through which refunded money reaches the guest.
    """

    ORIGINAL_METHOD = "original_method", "Original Payment Method"
    CASH = "cash", "Cash"
    VOUCHER = "voucher", "Voucher"
    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    ROOM_CREDIT = "room_credit", "Room Credit"


class RefundEvent(models.TextChoices):
    """
    Named workflow events; each maps to one row group of the transition table.
    """

    CREATE = "create", "Create"
    APPROVE = "approve", "Approve"
    REJECT = "reject", "Reject"
    CANCEL = "cancel", "Cancel"
    PROCESS = "process", "Process"
    COMPLETE = "complete", "Complete"


__all__ = [
    "RefundEvent",
    "RefundMethod",
    "RefundStatus",
]
