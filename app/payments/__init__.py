"""
Payments app: the resort's payment records and the gateway port over them.

This app handles:
- Payment records (folio/booking payments taken from guests)
- The Payment Gateway Port used by the refund workflow to read a payment's
  total and status and to write back its refund-related status

Related apps:
    - refunds: Refund workflow engine (only writer of refund-related statuses)

Usage:
    from payments.gateway import DjangoPaymentGateway

    gateway = DjangoPaymentGateway()
    snapshot = gateway.get_payment("123")
    gateway.set_payment_status("123", PaymentStatus.PARTIALLY_REFUNDED)
"""
