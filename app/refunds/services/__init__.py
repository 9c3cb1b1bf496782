"""
Refund services.

RefundWorkflowService owns every write to refunds; RefundStatisticsService
is read-only.
"""

from refunds.services.statistics_service import RefundStatisticsService, RefundSummary
from refunds.services.workflow_service import RefundWorkflowService

__all__ = [
    "RefundStatisticsService",
    "RefundSummary",
    "RefundWorkflowService",
]
