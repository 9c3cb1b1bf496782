"""
Refund transition table.

Every legal move of a Refund is one row here. The model's django-fsm
transitions take their sources from this table, and the validators check
``(current, target)`` pairs against ALLOWED_TRANSITIONS, so the table is the
single place the workflow is defined.

    | Event    | From                | To         |
    |----------|---------------------|------------|
    | create   | (none)              | pending    |
    | approve  | pending             | approved   |
    | reject   | pending             | rejected   |
    | cancel   | pending, approved   | cancelled  |
    | process  | approved            | processing |
    | complete | processing          | completed  |

CANCELLED is deliberately not reachable from PROCESSING.
"""

from __future__ import annotations

from dataclasses import dataclass

from refunds.state_machines.states import RefundEvent, RefundStatus


@dataclass(frozen=True)
class Transition:
    """
    One event of the refund workflow.

    Attributes:
        event: Event name
        sources: States the event may fire from (empty for creation)
        target: State the event moves the refund to
    """

    event: str
    sources: frozenset[str]
    target: str


TRANSITIONS: dict[str, Transition] = {
    RefundEvent.CREATE: Transition(
        event=RefundEvent.CREATE,
        sources=frozenset(),
        target=RefundStatus.PENDING,
    ),
    RefundEvent.APPROVE: Transition(
        event=RefundEvent.APPROVE,
        sources=frozenset([RefundStatus.PENDING]),
        target=RefundStatus.APPROVED,
    ),
    RefundEvent.REJECT: Transition(
        event=RefundEvent.REJECT,
        sources=frozenset([RefundStatus.PENDING]),
        target=RefundStatus.REJECTED,
    ),
    RefundEvent.CANCEL: Transition(
        event=RefundEvent.CANCEL,
        sources=frozenset([RefundStatus.PENDING, RefundStatus.APPROVED]),
        target=RefundStatus.CANCELLED,
    ),
    RefundEvent.PROCESS: Transition(
        event=RefundEvent.PROCESS,
        sources=frozenset([RefundStatus.APPROVED]),
        target=RefundStatus.PROCESSING,
    ),
    RefundEvent.COMPLETE: Transition(
        event=RefundEvent.COMPLETE,
        sources=frozenset([RefundStatus.PROCESSING]),
        target=RefundStatus.COMPLETED,
    ),
}

# (from, to) pairs that any event allows
ALLOWED_TRANSITIONS: frozenset[tuple[str, str]] = frozenset(
    (source, transition.target)
    for transition in TRANSITIONS.values()
    for source in transition.sources
)

# States a refund never leaves
TERMINAL_STATES = frozenset(
    [
        RefundStatus.COMPLETED,
        RefundStatus.REJECTED,
        RefundStatus.CANCELLED,
    ]
)

# States whose amounts count against a payment's refundable remainder
COMMITTED_STATES = frozenset(
    [
        RefundStatus.APPROVED,
        RefundStatus.PROCESSING,
        RefundStatus.COMPLETED,
    ]
)


def sources_for(event: str) -> list[str]:
    """Return the sorted source states of an event (django-fsm wants a list)."""
    return sorted(TRANSITIONS[event].sources)


def target_for(event: str) -> str:
    """Return the target state of an event."""
    return TRANSITIONS[event].target


def is_allowed(current_status: str, target_status: str) -> bool:
    """Check whether any event moves a refund from ``current_status`` to ``target_status``."""
    return (current_status, target_status) in ALLOWED_TRANSITIONS


__all__ = [
    "ALLOWED_TRANSITIONS",
    "COMMITTED_STATES",
    "TERMINAL_STATES",
    "TRANSITIONS",
    "Transition",
    "is_allowed",
    "sources_for",
    "target_for",
]
