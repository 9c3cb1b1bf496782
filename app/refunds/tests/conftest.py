"""
Pytest fixtures for refund tests.

Redis is never contacted: the ``mock_redis`` fixture is applied to every
test in this package and patches the connection the distributed lock uses.
Tests that need lock contention configure ``mock_redis.set``.

Usage:
    def test_approve(pending_refund):
        refund = RefundWorkflowService.approve(pending_refund.id, approved_by="Manager A")
        assert refund.status == RefundStatus.APPROVED
"""

from decimal import Decimal

import pytest

from payments.gateway import DjangoPaymentGateway
from payments.tests.factories import PaymentFactory
from refunds.services import RefundWorkflowService
from refunds.state_machines import RefundStatus
from refunds.tests.factories import RefundFactory


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis(mocker):
    """
    Mock Redis client for distributed locks.

    Returns a MagicMock whose ``set`` grants every lock and whose ``eval``
    reports a successful release/extend.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.eval.return_value = 1

    mocker.patch(
        "refunds.locks.get_redis_connection",
        return_value=mock_client,
    )
    return mock_client


@pytest.fixture(autouse=True)
def reset_payment_gateway():
    """Make sure no injected gateway leaks between tests."""
    RefundWorkflowService.set_payment_gateway(None)
    yield
    RefundWorkflowService.set_payment_gateway(None)


@pytest.fixture
def mock_reconcile_task(mocker):
    """Patch the background reconciliation task so nothing is queued."""
    return mocker.patch("refunds.tasks.reconcile_payment_status.delay")


@pytest.fixture
def flaky_gateway(mocker):
    """
    Real gateway whose status writes can be made to fail.

    Set ``flaky_gateway.set_payment_status.side_effect`` to control failures;
    by default the write goes through to the database.
    """
    gateway = DjangoPaymentGateway()
    mocker.patch.object(
        gateway,
        "set_payment_status",
        wraps=gateway.set_payment_status,
    )
    RefundWorkflowService.set_payment_gateway(gateway)
    return gateway


# =============================================================================
# Payment Fixtures
# =============================================================================


@pytest.fixture
def payment(db):
    """Create a paid payment of 150.00."""
    return PaymentFactory(total_amount=Decimal("150.00"))


@pytest.fixture
def payment_100(db):
    """Create a paid payment of 100.00."""
    return PaymentFactory(total_amount=Decimal("100.00"))


# =============================================================================
# Refund State Fixtures
# =============================================================================


@pytest.fixture
def pending_refund(db, payment):
    """Create a pending refund of 60.00."""
    return RefundFactory(payment_id=str(payment.pk))


@pytest.fixture
def approved_refund(db, payment):
    """Create an approved refund of 60.00."""
    return RefundFactory(
        payment_id=str(payment.pk),
        status=RefundStatus.APPROVED,
        approved_by="Manager A",
    )


@pytest.fixture
def processing_refund(db, payment):
    """Create a processing refund of 60.00."""
    return RefundFactory(
        payment_id=str(payment.pk),
        status=RefundStatus.PROCESSING,
        approved_by="Manager A",
        processed_by="Officer B",
    )


@pytest.fixture
def completed_refund(db, payment):
    """Create a completed, reconciled refund of 60.00."""
    return RefundFactory(
        payment_id=str(payment.pk),
        status=RefundStatus.COMPLETED,
        approved_by="Manager A",
        processed_by="Officer B",
    )


@pytest.fixture
def rejected_refund(db, payment):
    return RefundFactory(
        payment_id=str(payment.pk),
        status=RefundStatus.REJECTED,
        processed_by="Manager A",
    )


@pytest.fixture
def cancelled_refund(db, payment):
    return RefundFactory(
        payment_id=str(payment.pk),
        status=RefundStatus.CANCELLED,
        cancelled_by="Front Desk",
    )


@pytest.fixture
def refund_in_status(request, db, payment):
    """Indirectly parametrized: ``request.param`` is the status."""
    return RefundFactory(payment_id=str(payment.pk), status=request.param)
