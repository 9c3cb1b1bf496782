"""
State machine enums and the transition table for refunds.

This module defines the state enums used by the Refund model with django-fsm
and the lookup table that defines every legal transition.
"""

from refunds.state_machines.states import (
    RefundEvent,
    RefundMethod,
    RefundStatus,
)
from refunds.state_machines.transitions import (
    ALLOWED_TRANSITIONS,
    COMMITTED_STATES,
    TERMINAL_STATES,
    TRANSITIONS,
    Transition,
    is_allowed,
    sources_for,
    target_for,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "COMMITTED_STATES",
    "TERMINAL_STATES",
    "TRANSITIONS",
    "RefundEvent",
    "RefundMethod",
    "RefundStatus",
    "Transition",
    "is_allowed",
    "sources_for",
    "target_for",
]
