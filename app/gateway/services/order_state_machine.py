"""
Guarded persistence of order transitions.

The legal transitions are declared with django-fsm on the Order model. This
service runs them on a snapshot and persists the result with one
conditional UPDATE keyed on (pk, expected status). Whoever matches first
wins; everyone else gets a stale outcome and treats the event as handled.

No exception is raised for a late, duplicate or out-of-order event: those
are normal on a network that retries.

Usage:
    from gateway.services import OrderStateMachine

    outcome = OrderStateMachine.apply_provider_status(
        order, ProviderStatus.SUCCESS, provider_reference="T123"
    )
    if outcome.changed:
        NotificationSink.enqueue(outcome.order)
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db.models import F
from django.utils import timezone
from django_fsm import can_proceed

from core.services import BaseService
from gateway.models import Order
from gateway.state_machines import OrderStatus, ProviderStatus

if TYPE_CHECKING:
    from typing import Any


TRANSITION_METHODS: dict[str, str] = {
    OrderStatus.PROCESSING: "begin_processing",
    OrderStatus.SUCCESS: "succeed",
    OrderStatus.FAILED: "fail",
    OrderStatus.CANCELLED: "cancel",
    OrderStatus.EXPIRED: "expire",
}

# Fields a transition may carry along from the provider
PROVIDER_FIELDS = frozenset(
    {"provider_reference", "provider_status", "pay_url", "utr", "failure_reason"}
)

# Fields the fsm transition methods set on the snapshot
TIMESTAMP_FIELDS = ("processing_at", "completed_at", "failure_reason")


@dataclass
class TransitionOutcome:
    """
    Result of a transition attempt.

    Attributes:
        order: The order as stored after the attempt
        previous_status: Status the attempt started from
        changed: This call moved the order to a new state
        stale: The target was unreachable, or another writer won the race
    """

    order: Order
    previous_status: str
    changed: bool
    stale: bool = False


class OrderStateMachine(BaseService):
    """All methods are class methods; state lives on the Order row."""

    @classmethod
    def apply_provider_status(
        cls,
        order: Order,
        provider_status: str,
        **provider_fields: Any,
    ) -> TransitionOutcome:
        """Map a canonical provider status onto the order and transition."""
        status = ProviderStatus(provider_status)
        provider_fields.setdefault("provider_status", status.value)
        return cls.transition(order, status.to_order_status(), **provider_fields)

    @classmethod
    def transition(
        cls,
        order: Order,
        target: str,
        **provider_fields: Any,
    ) -> TransitionOutcome:
        """
        Move order to target if legal, atomically.

        - Terminal order, or target equal to current: no-op. Provider fields
          are still recorded on a non-terminal order.
        - Target unreachable from current: stale no-op, logged.
        - Otherwise one conditional UPDATE; zero rows means stale.

        Raises:
            ValueError: Unknown target status or provider field
        """
        target = OrderStatus(target)
        unknown = set(provider_fields) - PROVIDER_FIELDS
        if unknown:
            raise ValueError(f"Unknown provider fields: {sorted(unknown)}")

        previous = order.status
        log_context = {
            "order_id": order.order_id,
            "from_status": previous,
            "to_status": target,
        }

        if order.is_terminal:
            cls.get_logger().info("Order already terminal, ignoring", extra=log_context)
            return TransitionOutcome(order=order, previous_status=previous, changed=False)

        if target == previous:
            if provider_fields:
                order = cls.record_fields(order, provider_fields, expected_status=previous)
            return TransitionOutcome(order=order, previous_status=previous, changed=False)

        method_name = TRANSITION_METHODS.get(target)
        snapshot = copy.copy(order)
        method = getattr(snapshot, method_name) if method_name else None
        if method is None or not can_proceed(method):
            cls.get_logger().warning("Stale transition ignored", extra=log_context)
            return TransitionOutcome(
                order=order, previous_status=previous, changed=False, stale=True
            )

        if target == OrderStatus.FAILED:
            method(reason=provider_fields.get("failure_reason", ""))
        else:
            method()

        values: dict[str, Any] = {
            "status": target.value,
            "version": F("version") + 1,
            "updated_at": timezone.now(),
        }
        for name in TIMESTAMP_FIELDS:
            values[name] = getattr(snapshot, name)
        values.update(provider_fields)

        updated = Order.objects.filter(pk=order.pk, status=previous).update(**values)
        current = Order.objects.get(pk=order.pk)

        if not updated:
            cls.get_logger().info(
                "Concurrent transition won, ignoring",
                extra={**log_context, "current_status": current.status},
            )
            return TransitionOutcome(
                order=current, previous_status=previous, changed=False, stale=True
            )

        cls.get_logger().info(
            "Order transitioned",
            extra={**log_context, "version": current.version},
        )
        return TransitionOutcome(order=current, previous_status=previous, changed=True)

    @classmethod
    def record_fields(
        cls,
        order: Order,
        fields: dict[str, Any],
        expected_status: str | None = None,
    ) -> Order:
        """
        Store provider fields without a state change.

        Only applied while the order is still in expected_status (default:
        the status the caller saw), so a concurrent transition is not undone.
        """
        unknown = set(fields) - PROVIDER_FIELDS
        if unknown:
            raise ValueError(f"Unknown provider fields: {sorted(unknown)}")
        Order.objects.filter(pk=order.pk, status=expected_status or order.status).update(
            **fields, updated_at=timezone.now()
        )
        return Order.objects.get(pk=order.pk)
