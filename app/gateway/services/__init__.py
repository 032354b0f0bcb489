"""
Gateway services.

- LimitGuard: range check plus bounded reservation on usage counters
- OrderStateMachine: guarded conditional order transitions
- ReconciliationEngine: submit, callbacks, provider sync, UTR, balance
- NotificationSink: signed merchant notifications via an outbox
"""

from gateway.services.limit_guard import (
    Allowed,
    Denied,
    LimitDecision,
    LimitGuard,
    UsageSnapshot,
)
from gateway.services.notifications import NotificationSink
from gateway.services.order_state_machine import OrderStateMachine, TransitionOutcome
from gateway.services.reconciliation_engine import ReconciliationEngine

__all__ = [
    "Allowed",
    "Denied",
    "LimitDecision",
    "LimitGuard",
    "NotificationSink",
    "OrderStateMachine",
    "ReconciliationEngine",
    "TransitionOutcome",
    "UsageSnapshot",
]
