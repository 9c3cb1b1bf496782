"""
Tests for RefundWorkflowService.

Covers every operation, each failure kind, payment reconciliation with
retries, and the guarantees around concurrent and failed operations.
"""

import uuid
from decimal import Decimal
from unittest.mock import DEFAULT

import pytest
from kombu.exceptions import OperationalError

from payments.exceptions import (
    PaymentNotFoundError,
    PaymentNotRefundableError,
    PortUnavailableError,
)
from payments.models import PaymentStatus
from payments.tests.factories import PaymentFactory
from refunds.exceptions import (
    IllegalTransitionError,
    InvalidAmountError,
    LockAcquisitionError,
    MissingActorError,
    OperationTimeoutError,
    RefundNotFoundError,
    RefundValidationError,
    StaleRefundError,
)
from refunds.models import Refund
from refunds.services import RefundWorkflowService
from refunds.state_machines import RefundEvent, RefundStatus
from refunds.store import RefundStore
from refunds.tests.factories import RefundFactory


def snapshot(refund):
    """Every stored column of a refund, straight from the database."""
    return Refund.objects.filter(pk=refund.pk).values().get()


def run_event(event, refund_id, **kwargs):
    """Invoke a workflow operation by event name with a valid actor."""
    actors = {
        RefundEvent.APPROVE: {"approved_by": "Manager A"},
        RefundEvent.REJECT: {"processed_by": "Manager A", "reason": "No"},
        RefundEvent.CANCEL: {"actor": "Front Desk"},
        RefundEvent.PROCESS: {"processed_by": "Officer B"},
        RefundEvent.COMPLETE: {},
    }
    operation = getattr(RefundWorkflowService, str(event))
    return operation(refund_id, **{**actors[event], **kwargs})


# =============================================================================
# Creation
# =============================================================================


class TestCreate:
    """Tests for RefundWorkflowService.create."""

    def test_creates_pending_refund(self, payment):
        refund = RefundWorkflowService.create(
            str(payment.pk),
            Decimal("60.00"),
            requested_by="Front Desk",
            reason="Early checkout",
            method="room_credit",
            notes="Guest left two days early",
        )

        stored = RefundStore.get_by_id(refund.id)
        assert stored.status == RefundStatus.PENDING
        assert stored.requested_at is not None
        assert stored.requested_by == "Front Desk"
        assert stored.amount == Decimal("60.00")
        assert stored.currency == "usd"
        assert stored.method == "room_credit"
        assert stored.notes == "Guest left two days early"
        assert stored.version == 1

    @pytest.mark.parametrize("amount", ["150", 150, Decimal("0.01"), "75.50"])
    def test_accepts_amounts_up_to_total(self, payment, amount):
        refund = RefundWorkflowService.create(payment.pk, amount, requested_by="Front Desk")

        assert refund.amount == Decimal(str(amount))

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10"), Decimal("150.01"), "1.005"])
    def test_invalid_amount_persists_nothing(self, payment, amount):
        with pytest.raises(InvalidAmountError) as exc_info:
            RefundWorkflowService.create(payment.pk, amount, requested_by="Front Desk")

        assert exc_info.value.error_code == "INVALID_AMOUNT"
        assert Refund.objects.count() == 0

    def test_remaining_accounts_for_committed_refunds(self, payment):
        pid = str(payment.pk)
        RefundFactory(payment_id=pid, amount=Decimal("100.00"), status=RefundStatus.APPROVED)
        RefundFactory(payment_id=pid, amount=Decimal("50.00"), status=RefundStatus.PENDING)
        RefundFactory(payment_id=pid, amount=Decimal("50.00"), status=RefundStatus.REJECTED)

        with pytest.raises(InvalidAmountError) as exc_info:
            RefundWorkflowService.create(pid, Decimal("50.01"), requested_by="Front Desk")

        assert Decimal(exc_info.value.details["already_refunded"]) == Decimal("100")
        refund = RefundWorkflowService.create(pid, Decimal("50.00"), requested_by="Front Desk")
        assert refund.status == RefundStatus.PENDING

    def test_fully_refunded_payment_reports_invalid_amount(self, db):
        payment = PaymentFactory(status=PaymentStatus.REFUNDED)
        RefundFactory(
            payment_id=str(payment.pk),
            amount=payment.total_amount,
            status=RefundStatus.COMPLETED,
        )

        with pytest.raises(InvalidAmountError):
            RefundWorkflowService.create(payment.pk, Decimal("1.00"), requested_by="Front Desk")

    def test_unknown_payment_raises_payment_not_found(self, db):
        with pytest.raises(PaymentNotFoundError):
            RefundWorkflowService.create("987654", Decimal("10.00"), requested_by="Front Desk")

        assert Refund.objects.count() == 0

    @pytest.mark.parametrize("status", [PaymentStatus.PENDING, PaymentStatus.FAILED])
    def test_unpaid_payment_not_refundable(self, db, status):
        payment = PaymentFactory(status=status)

        with pytest.raises(PaymentNotRefundableError) as exc_info:
            RefundWorkflowService.create(payment.pk, Decimal("10.00"), requested_by="Front Desk")

        assert exc_info.value.details["payment_status"] == status

    @pytest.mark.parametrize("requested_by", [None, "", "  "])
    def test_requester_required(self, payment, requested_by):
        with pytest.raises(MissingActorError):
            RefundWorkflowService.create(payment.pk, Decimal("10.00"), requested_by=requested_by)

    def test_reason_too_long(self, payment):
        with pytest.raises(RefundValidationError) as exc_info:
            RefundWorkflowService.create(
                payment.pk, Decimal("10.00"), requested_by="Front Desk", reason="x" * 501
            )

        assert exc_info.value.error_code == "TEXT_TOO_LONG"

    def test_unknown_method(self, payment):
        with pytest.raises(RefundValidationError) as exc_info:
            RefundWorkflowService.create(
                payment.pk, Decimal("10.00"), requested_by="Front Desk", method="crypto"
            )

        assert exc_info.value.error_code == "INVALID_METHOD"

    def test_payment_lock_is_taken(self, payment, mock_redis):
        RefundWorkflowService.create(payment.pk, Decimal("10.00"), requested_by="Front Desk")

        keys = [call[0][0] for call in mock_redis.set.call_args_list]
        assert keys == [f"lock:refund:payment:{payment.pk}"]

    def test_expired_deadline_persists_nothing(self, payment):
        with pytest.raises(OperationTimeoutError):
            RefundWorkflowService.create(
                payment.pk, Decimal("10.00"), requested_by="Front Desk", timeout=0
            )

        assert Refund.objects.count() == 0

    def test_uses_injected_gateway(self, db, mocker):
        gateway = mocker.MagicMock()
        gateway.get_payment.return_value = mocker.MagicMock(
            total=Decimal("500.00"), status="paid", currency="eur"
        )
        RefundWorkflowService.set_payment_gateway(gateway)

        refund = RefundWorkflowService.create("PMS-77", Decimal("500.00"), requested_by="Spa Desk")

        assert refund.payment_id == "PMS-77"
        assert refund.currency == "eur"
        gateway.get_payment.assert_called_once()


# =============================================================================
# Transitions
# =============================================================================


class TestApprove:
    def test_approves_pending(self, pending_refund):
        refund = RefundWorkflowService.approve(
            pending_refund.id, approved_by="Manager A", notes="OK per policy"
        )

        stored = RefundStore.get_by_id(pending_refund.id)
        assert refund.status == stored.status == RefundStatus.APPROVED
        assert stored.approved_by == "Manager A"
        assert stored.approved_at is not None
        assert stored.notes == "OK per policy"
        assert stored.version == 2

    def test_missing_approver(self, pending_refund):
        before = snapshot(pending_refund)

        with pytest.raises(MissingActorError):
            RefundWorkflowService.approve(pending_refund.id, approved_by="")

        assert snapshot(pending_refund) == before

    def test_unknown_refund(self, db):
        with pytest.raises(RefundNotFoundError):
            RefundWorkflowService.approve(uuid.uuid4(), approved_by="Manager A")

    def test_rechecks_remaining_amount(self, payment):
        """Two pending refunds that together exceed the total cannot both be approved."""
        pid = str(payment.pk)
        first = RefundFactory(payment_id=pid, amount=Decimal("100.00"))
        second = RefundFactory(payment_id=pid, amount=Decimal("100.00"))

        RefundWorkflowService.approve(first.id, approved_by="Manager A")

        with pytest.raises(InvalidAmountError):
            RefundWorkflowService.approve(second.id, approved_by="Manager A")

        assert RefundStore.get_by_id(second.id).status == RefundStatus.PENDING

    def test_lock_order_refund_then_payment(self, pending_refund, mock_redis):
        RefundWorkflowService.approve(pending_refund.id, approved_by="Manager A")

        keys = [call[0][0] for call in mock_redis.set.call_args_list]
        assert keys == [
            f"lock:refund:{pending_refund.id}",
            f"lock:refund:payment:{pending_refund.payment_id}",
        ]


class TestReject:
    def test_rejects_pending_and_appends_reason(self, pending_refund):
        Refund.objects.filter(pk=pending_refund.pk).update(notes="Checked folio")

        refund = RefundWorkflowService.reject(
            pending_refund.id, processed_by="Manager A", reason="Non-refundable rate"
        )

        assert refund.status == RefundStatus.REJECTED
        stored = RefundStore.get_by_id(pending_refund.id)
        assert stored.notes == "Checked folio\nNon-refundable rate"
        assert stored.processed_by == "Manager A"
        assert stored.processed_at is not None
        assert stored.rejected_at is not None

    def test_missing_processor(self, pending_refund):
        with pytest.raises(MissingActorError):
            RefundWorkflowService.reject(pending_refund.id, processed_by=None, reason="No")

    def test_notes_overflow_rejected(self, pending_refund):
        Refund.objects.filter(pk=pending_refund.pk).update(notes="x" * 1995)

        with pytest.raises(RefundValidationError) as exc_info:
            RefundWorkflowService.reject(
                pending_refund.id, processed_by="Manager A", reason="Too long now"
            )

        assert exc_info.value.error_code == "TEXT_TOO_LONG"


class TestCancel:
    def test_cancels_pending(self, pending_refund):
        refund = RefundWorkflowService.cancel(pending_refund.id, actor="Front Desk")

        assert refund.status == RefundStatus.CANCELLED
        stored = RefundStore.get_by_id(pending_refund.id)
        assert stored.cancelled_by == "Front Desk"
        assert stored.processed_at is not None

    def test_cancels_approved(self, approved_refund):
        refund = RefundWorkflowService.cancel(approved_refund.id, actor="Manager A")

        assert refund.status == RefundStatus.CANCELLED

    def test_processing_cannot_be_cancelled(self, processing_refund):
        before = snapshot(processing_refund)

        with pytest.raises(IllegalTransitionError) as exc_info:
            RefundWorkflowService.cancel(processing_refund.id, actor="Manager A")

        assert exc_info.value.details["current_status"] == RefundStatus.PROCESSING
        assert snapshot(processing_refund) == before

    def test_cancelled_amount_is_released(self, approved_refund):
        pid = approved_refund.payment_id
        assert RefundWorkflowService.get_refundable_amount(pid) == Decimal("90.00")

        RefundWorkflowService.cancel(approved_refund.id, actor="Manager A")

        assert RefundWorkflowService.get_refundable_amount(pid) == Decimal("150.00")


class TestProcess:
    def test_processes_approved(self, approved_refund):
        refund = RefundWorkflowService.process(approved_refund.id, processed_by="Officer B")

        assert refund.status == RefundStatus.PROCESSING
        assert RefundStore.get_by_id(approved_refund.id).processed_by == "Officer B"

    def test_missing_processor(self, approved_refund):
        with pytest.raises(MissingActorError):
            RefundWorkflowService.process(approved_refund.id, processed_by="   ")


LEGAL_PAIRS = {
    (RefundStatus.PENDING, RefundEvent.APPROVE),
    (RefundStatus.PENDING, RefundEvent.REJECT),
    (RefundStatus.PENDING, RefundEvent.CANCEL),
    (RefundStatus.APPROVED, RefundEvent.CANCEL),
    (RefundStatus.APPROVED, RefundEvent.PROCESS),
    (RefundStatus.PROCESSING, RefundEvent.COMPLETE),
}

ILLEGAL_PAIRS = [
    (status, event)
    for status in RefundStatus.values
    for event in RefundEvent.values
    if event != RefundEvent.CREATE and (status, event) not in LEGAL_PAIRS
]


class TestIllegalTransitions:
    """Only the documented transitions succeed; everything else leaves the row untouched."""

    @pytest.mark.parametrize(
        "refund_in_status,event",
        ILLEGAL_PAIRS,
        indirect=["refund_in_status"],
    )
    def test_illegal_pair_fails_without_writing(self, refund_in_status, event, mock_reconcile_task):
        before = snapshot(refund_in_status)

        with pytest.raises(IllegalTransitionError) as exc_info:
            run_event(event, refund_in_status.id)

        assert exc_info.value.error_code == "ILLEGAL_TRANSITION"
        assert snapshot(refund_in_status) == before
        mock_reconcile_task.assert_not_called()


# =============================================================================
# Completion & Reconciliation
# =============================================================================


class TestComplete:
    def test_completes_and_reconciles_partial(self, processing_refund, payment):
        refund = RefundWorkflowService.complete(processing_refund.id)

        assert refund.status == RefundStatus.COMPLETED
        assert refund.processed_at is not None
        assert refund.reconciliation_pending is False
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.PARTIALLY_REFUNDED

    def test_full_refund_marks_payment_refunded(self, payment_100):
        pid = str(payment_100.pk)
        sixty = RefundFactory(payment_id=pid, amount=Decimal("60.00"), status=RefundStatus.PROCESSING)
        forty = RefundFactory(payment_id=pid, amount=Decimal("40.00"), status=RefundStatus.PROCESSING)

        RefundWorkflowService.complete(sixty.id)
        payment_100.refresh_from_db()
        assert payment_100.status == PaymentStatus.PARTIALLY_REFUNDED

        RefundWorkflowService.complete(forty.id)
        payment_100.refresh_from_db()
        assert payment_100.status == PaymentStatus.REFUNDED

    def test_second_complete_is_illegal_and_does_not_reconcile(
        self, processing_refund, flaky_gateway
    ):
        RefundWorkflowService.complete(processing_refund.id)
        assert flaky_gateway.set_payment_status.call_count == 1

        with pytest.raises(IllegalTransitionError):
            RefundWorkflowService.complete(processing_refund.id)

        assert flaky_gateway.set_payment_status.call_count == 1

    def test_transient_failure_is_retried(self, processing_refund, payment, flaky_gateway):
        failures = iter([PortUnavailableError("Gateway down")])

        def fail_once(*args, **kwargs):
            error = next(failures, None)
            if error:
                raise error
            return DEFAULT

        flaky_gateway.set_payment_status.side_effect = fail_once

        refund = RefundWorkflowService.complete(processing_refund.id)

        assert flaky_gateway.set_payment_status.call_count == 2
        assert refund.reconciliation_pending is False
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.PARTIALLY_REFUNDED

    def test_exhausted_retries_queue_task_and_raise(
        self, processing_refund, payment, flaky_gateway, mock_reconcile_task, settings
    ):
        settings.REFUND_RECONCILIATION_MAX_ATTEMPTS = 3
        flaky_gateway.set_payment_status.side_effect = PortUnavailableError("Gateway down")

        with pytest.raises(PortUnavailableError) as exc_info:
            RefundWorkflowService.complete(processing_refund.id)

        assert exc_info.value.details["reconciliation_queued"] is True
        assert flaky_gateway.set_payment_status.call_count == 3
        mock_reconcile_task.assert_called_once_with(str(payment.pk))

        stored = RefundStore.get_by_id(processing_refund.id)
        assert stored.status == RefundStatus.COMPLETED
        assert stored.reconciliation_pending is True
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.PAID

    def test_expired_deadline_before_write(self, processing_refund, flaky_gateway):
        before = snapshot(processing_refund)

        with pytest.raises(OperationTimeoutError):
            RefundWorkflowService.complete(processing_refund.id, timeout=0)

        assert snapshot(processing_refund) == before
        flaky_gateway.set_payment_status.assert_not_called()

    def test_broker_down_still_raises_port_unavailable(
        self, processing_refund, flaky_gateway, mock_reconcile_task
    ):
        flaky_gateway.set_payment_status.side_effect = PortUnavailableError("Gateway down")
        mock_reconcile_task.side_effect = OperationalError("Broker unreachable")

        with pytest.raises(PortUnavailableError) as exc_info:
            RefundWorkflowService.complete(processing_refund.id)

        assert exc_info.value.details["reconciliation_queued"] is False
        stored = RefundStore.get_by_id(processing_refund.id)
        assert stored.status == RefundStatus.COMPLETED
        assert stored.reconciliation_pending is True

    def test_busy_payment_lock_defers_reconciliation(
        self, processing_refund, payment, mock_redis, mock_reconcile_task
    ):
        mock_redis.set.side_effect = lambda key, *args, **kwargs: not key.startswith(
            "lock:refund:payment:"
        )

        with pytest.raises(PortUnavailableError) as exc_info:
            RefundWorkflowService.complete(processing_refund.id, timeout=0.2)

        assert exc_info.value.details["reconciliation_queued"] is True
        mock_reconcile_task.assert_called_once_with(str(payment.pk))
        assert RefundStore.get_by_id(processing_refund.id).reconciliation_pending is True

    def test_completion_during_status_write_is_not_overwritten(
        self, payment_100, flaky_gateway
    ):
        """A refund completing mid-reconciliation must not be undone by the older total."""
        pid = str(payment_100.pk)
        first = RefundFactory(
            payment_id=pid, amount=Decimal("60.00"), status=RefundStatus.PROCESSING
        )
        second = RefundFactory(
            payment_id=pid, amount=Decimal("40.00"), status=RefundStatus.PROCESSING
        )
        interleaved = []

        def complete_second_before_writing(*args, **kwargs):
            if not interleaved:
                interleaved.append(second.id)
                RefundWorkflowService.complete(second.id)
            return DEFAULT

        flaky_gateway.set_payment_status.side_effect = complete_second_before_writing

        RefundWorkflowService.complete(first.id)

        payment_100.refresh_from_db()
        assert payment_100.status == PaymentStatus.REFUNDED
        assert flaky_gateway.set_payment_status.call_args[0][1] == PaymentStatus.REFUNDED
        assert RefundStore.pending_reconciliation_payment_ids() == []


class TestReconcilePayment:
    def test_holds_payment_lock(self, payment, mock_redis):
        RefundFactory(payment_id=str(payment.pk), status=RefundStatus.COMPLETED)

        RefundWorkflowService.reconcile_payment(str(payment.pk))

        keys = [call[0][0] for call in mock_redis.set.call_args_list]
        assert keys == [f"lock:refund:payment:{payment.pk}"]

    def test_busy_payment_lock_raises(self, payment, mock_redis):
        mock_redis.set.return_value = False

        with pytest.raises(LockAcquisitionError):
            RefundWorkflowService.reconcile_payment(str(payment.pk), timeout=0)

    def test_is_idempotent(self, payment):
        pid = str(payment.pk)
        RefundFactory(payment_id=pid, amount=Decimal("150.00"), status=RefundStatus.COMPLETED)

        assert RefundWorkflowService.reconcile_payment(pid) == PaymentStatus.REFUNDED
        assert RefundWorkflowService.reconcile_payment(pid) == PaymentStatus.REFUNDED

    def test_ignores_uncompleted_refunds(self, payment):
        pid = str(payment.pk)
        RefundFactory(payment_id=pid, amount=Decimal("50.00"), status=RefundStatus.COMPLETED)
        RefundFactory(payment_id=pid, amount=Decimal("100.00"), status=RefundStatus.PROCESSING)

        assert RefundWorkflowService.reconcile_payment(pid) == PaymentStatus.PARTIALLY_REFUNDED

    def test_no_completed_refunds_leaves_payment_alone(self, payment):
        assert RefundWorkflowService.reconcile_payment(str(payment.pk)) == PaymentStatus.PAID
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.PAID

    def test_clears_reconciliation_flag(self, payment):
        refund = RefundFactory(
            payment_id=str(payment.pk),
            status=RefundStatus.COMPLETED,
            reconciliation_pending=True,
        )

        RefundWorkflowService.reconcile_payment(str(payment.pk))

        assert RefundStore.get_by_id(refund.id).reconciliation_pending is False


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:
    def test_racing_approvals_exactly_one_wins(self, pending_refund, mocker):
        """The loser's stale copy is rejected by the conditional update."""
        stale_copy = RefundStore.get_by_id(pending_refund.id)

        RefundWorkflowService.approve(pending_refund.id, approved_by="Manager A")

        stale_load = mocker.patch(
            "refunds.services.workflow_service.RefundStore.get_by_id",
            return_value=stale_copy,
        )
        with pytest.raises(StaleRefundError):
            RefundWorkflowService.approve(pending_refund.id, approved_by="Manager B")

        mocker.stop(stale_load)
        stored = RefundStore.get_by_id(pending_refund.id)
        assert stored.status == RefundStatus.APPROVED
        assert stored.approved_by == "Manager A"
        assert stored.version == 2

    def test_sequential_duplicate_approval_is_illegal(self, pending_refund):
        RefundWorkflowService.approve(pending_refund.id, approved_by="Manager A")

        with pytest.raises(IllegalTransitionError):
            RefundWorkflowService.approve(pending_refund.id, approved_by="Manager B")

    def test_busy_refund_lock_raises_without_writing(self, pending_refund, mock_redis):
        mock_redis.set.return_value = False
        before = snapshot(pending_refund)

        with pytest.raises(LockAcquisitionError):
            RefundWorkflowService.approve(
                pending_refund.id, approved_by="Manager A", timeout=0.1
            )

        assert snapshot(pending_refund) == before

    def test_locks_are_per_refund(self, payment, mock_redis):
        pid = str(payment.pk)
        first = RefundFactory(payment_id=pid, amount=Decimal("10.00"))
        second = RefundFactory(payment_id=pid, amount=Decimal("10.00"))

        RefundWorkflowService.reject(first.id, processed_by="Manager A", reason="No")
        RefundWorkflowService.reject(second.id, processed_by="Manager A", reason="No")

        keys = {call[0][0] for call in mock_redis.set.call_args_list}
        assert keys == {f"lock:refund:{first.id}", f"lock:refund:{second.id}"}


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    def test_get_refund(self, pending_refund):
        assert RefundWorkflowService.get_refund(pending_refund.id) == pending_refund

    def test_get_refunds_for_payment(self, pending_refund, approved_refund):
        other = RefundFactory()

        refunds = RefundWorkflowService.get_refunds_for_payment(pending_refund.payment_id)

        assert set(refunds) == {pending_refund, approved_refund}
        assert other not in refunds

    def test_get_refundable_amount(self, approved_refund, completed_refund, pending_refund):
        assert RefundWorkflowService.get_refundable_amount(
            approved_refund.payment_id
        ) == Decimal("30.00")


# =============================================================================
# End-to-end scenarios
# =============================================================================


class TestScenarios:
    def test_full_lifecycle_then_overdraw(self, db):
        payment = PaymentFactory(total_amount=Decimal("150.00"))
        pid = str(payment.pk)

        refund = RefundWorkflowService.create(pid, Decimal("150"), requested_by="Front Desk")
        assert refund.status == RefundStatus.PENDING

        refund = RefundWorkflowService.approve(refund.id, approved_by="Manager A")
        assert refund.status == RefundStatus.APPROVED

        refund = RefundWorkflowService.process(refund.id, processed_by="Officer B")
        assert refund.status == RefundStatus.PROCESSING

        refund = RefundWorkflowService.complete(refund.id)
        assert refund.status == RefundStatus.COMPLETED
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.REFUNDED

        other = PaymentFactory(total_amount=Decimal("150.00"))
        with pytest.raises(InvalidAmountError):
            RefundWorkflowService.create(other.pk, Decimal("200"), requested_by="Front Desk")

        assert Refund.objects.count() == 1
