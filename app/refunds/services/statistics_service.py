"""
Read-only refund statistics.

All figures come from single aggregate queries, so each call reflects one
committed snapshot of the refund table and never takes a lock.

Usage:
    from refunds.services import RefundStatisticsService

    RefundStatisticsService.count_by_status()
    # {"completed": 1}

    RefundStatisticsService.sum_amount_by_status()
    # {"completed": Decimal("150.00")}

    RefundStatisticsService.in_range(start, end)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from core.services import BaseService
from refunds.store import RefundStore

if TYPE_CHECKING:
    from datetime import datetime

    from refunds.models import Refund


@dataclass
class RefundSummary:
    """
    Per-status counts and amounts for a set of refunds.

    Attributes:
        counts: Refund count per status present
        amounts: Summed amount per status present
        start: Inclusive lower bound on requested_at (None = unbounded)
        end: Exclusive upper bound on requested_at (None = unbounded)
    """

    counts: dict[str, int] = field(default_factory=dict)
    amounts: dict[str, Decimal] = field(default_factory=dict)
    start: datetime | None = None
    end: datetime | None = None

    @property
    def total_count(self) -> int:
        return sum(self.counts.values())

    @property
    def total_amount(self) -> Decimal:
        return sum(self.amounts.values(), Decimal("0.00"))


class RefundStatisticsService(BaseService):
    """Aggregates over the refund store."""

    @classmethod
    def count_by_status(cls) -> dict[str, int]:
        """
        Count refunds per status.

        Returns:
            Mapping from status value to count; statuses with no refunds
            are omitted
        """
        return {row["status"]: row["count"] for row in RefundStore.status_breakdown()}

    @classmethod
    def sum_amount_by_status(cls) -> dict[str, Decimal]:
        """
        Total refund amount per status.

        Returns:
            Mapping from status value to summed amount; statuses with no
            refunds are omitted
        """
        return {
            row["status"]: row["amount"] or Decimal("0.00")
            for row in RefundStore.status_breakdown()
        }

    @classmethod
    def in_range(cls, start: datetime, end: datetime) -> list[Refund]:
        """
        Refunds requested in ``[start, end)``, ordered by requested_at.
        """
        if end <= start:
            return []
        return RefundStore.list_requested_between(start, end)

    @classmethod
    def summary(
        cls,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> RefundSummary:
        """
        Counts and amounts per status from one aggregate query.

        Args:
            start: Only refunds requested at or after this time
            end: Only refunds requested before this time
        """
        rows = RefundStore.status_breakdown(start=start, end=end)
        summary = RefundSummary(
            counts={row["status"]: row["count"] for row in rows},
            amounts={row["status"]: row["amount"] or Decimal("0.00") for row in rows},
            start=start,
            end=end,
        )

        cls.get_logger().debug(
            "Refund summary computed",
            extra={
                "start": start.isoformat() if start else None,
                "end": end.isoformat() if end else None,
                "total_count": summary.total_count,
            },
        )
        return summary


__all__ = [
    "RefundStatisticsService",
    "RefundSummary",
]
