"""
Refunds app: the refund workflow engine.

This app handles:
- The Refund record and its lifecycle state machine
- Validation gating each transition
- Payment reconciliation after a refund completes
- Refund statistics for staff reporting

Related apps:
    - payments: Payment records and the gateway port refunds reconcile through
    - core: Base models, service result types and exception hierarchy

Usage:
    from refunds.services import RefundWorkflowService, RefundStatisticsService

    refund = RefundWorkflowService.create(
        payment_id="123",
        amount=Decimal("150.00"),
        requested_by="Front Desk",
        reason="Early checkout",
    )
    RefundWorkflowService.approve(refund.id, approved_by="Manager A")
    RefundWorkflowService.process(refund.id, processed_by="Officer B")
    RefundWorkflowService.complete(refund.id)

    RefundStatisticsService.count_by_status()  # {"completed": 1}
"""
