"""
Pytest fixtures for payment tests.
"""

from decimal import Decimal

import pytest

from payments.gateway import DjangoPaymentGateway
from payments.models import PaymentStatus
from payments.tests.factories import PaymentFactory


@pytest.fixture
def payment(db):
    """Create a paid payment of 150.00."""
    return PaymentFactory(total_amount=Decimal("150.00"))


@pytest.fixture
def pending_payment(db):
    """Create a payment that has not been paid yet."""
    return PaymentFactory(status=PaymentStatus.PENDING)


@pytest.fixture
def gateway():
    """Gateway backed by the local payments table."""
    return DjangoPaymentGateway()
