"""
Tests for order state transitions.

Covers the django-fsm declarations on Order and the guarded persistence in
OrderStateMachine, including racing callbacks.
"""

import pytest
from django_fsm import TransitionNotAllowed, can_proceed

from gateway.models import Order
from gateway.services import OrderStateMachine
from gateway.state_machines import OrderStatus, ProviderStatus
from gateway.tests.factories import OrderFactory


def reload(order):
    return Order.objects.get(pk=order.pk)


# =============================================================================
# FSM Declaration Tests
# =============================================================================


class TestOrderTransitionDeclarations:
    """Which transitions django-fsm allows from each state."""

    @pytest.mark.parametrize(
        "method",
        ["begin_processing", "succeed", "fail", "cancel"],
    )
    def test_pending_sources(self, db, method):
        order = OrderFactory(status=OrderStatus.PENDING)

        assert can_proceed(getattr(order, method))

    def test_pending_cannot_expire(self, db):
        """Only an order the provider acknowledged can expire."""
        order = OrderFactory(status=OrderStatus.PENDING)

        assert not can_proceed(order.expire)

    @pytest.mark.parametrize("method", ["succeed", "fail", "cancel", "expire"])
    def test_processing_sources(self, db, method):
        order = OrderFactory(status=OrderStatus.PROCESSING)

        assert can_proceed(getattr(order, method))

    def test_processing_cannot_go_back(self, db):
        order = OrderFactory(status=OrderStatus.PROCESSING)

        with pytest.raises(TransitionNotAllowed):
            order.begin_processing()

    @pytest.mark.parametrize("status", OrderStatus.terminal())
    def test_terminal_states_have_no_exits(self, db, status):
        order = OrderFactory(status=status)

        for method in ("begin_processing", "succeed", "fail", "cancel", "expire"):
            assert not can_proceed(getattr(order, method))


# =============================================================================
# OrderStateMachine Tests
# =============================================================================


class TestOrderStateMachineTransition:
    """Tests for conditional persistence of transitions."""

    def test_pending_to_processing(self, db):
        order = OrderFactory()

        outcome = OrderStateMachine.transition(
            order, OrderStatus.PROCESSING, provider_reference="T1"
        )

        assert outcome.changed is True
        assert outcome.previous_status == OrderStatus.PENDING
        stored = reload(order)
        assert stored.status == OrderStatus.PROCESSING
        assert stored.processing_at is not None
        assert stored.provider_reference == "T1"
        assert stored.version == 2

    def test_fail_records_reason(self, db):
        order = OrderFactory(status=OrderStatus.PROCESSING)

        outcome = OrderStateMachine.transition(
            order, OrderStatus.FAILED, failure_reason="Bank declined"
        )

        assert outcome.order.status == OrderStatus.FAILED
        assert outcome.order.failure_reason == "Bank declined"
        assert outcome.order.completed_at is not None

    def test_caller_instance_is_not_mutated(self, db):
        order = OrderFactory()

        OrderStateMachine.transition(order, OrderStatus.SUCCESS)

        assert order.status == OrderStatus.PENDING

    def test_terminal_order_is_a_noop(self, db):
        """Leaving a terminal state returns that state unchanged."""
        order = OrderFactory(status=OrderStatus.SUCCESS)

        outcome = OrderStateMachine.transition(
            order, OrderStatus.FAILED, failure_reason="late"
        )

        assert outcome.changed is False
        assert outcome.order.status == OrderStatus.SUCCESS
        stored = reload(order)
        assert stored.failure_reason == ""
        assert stored.version == 1

    def test_same_status_records_fields_only(self, db):
        order = OrderFactory(status=OrderStatus.PROCESSING)

        outcome = OrderStateMachine.transition(order, OrderStatus.PROCESSING, utr="UTR1")

        assert outcome.changed is False
        assert outcome.stale is False
        assert outcome.order.utr == "UTR1"
        assert outcome.order.version == 1

    def test_unreachable_target_is_stale(self, db):
        order = OrderFactory(status=OrderStatus.PENDING)

        outcome = OrderStateMachine.transition(order, OrderStatus.EXPIRED)

        assert outcome.changed is False
        assert outcome.stale is True
        assert reload(order).status == OrderStatus.PENDING

    def test_unknown_field_rejected(self, db):
        order = OrderFactory()

        with pytest.raises(ValueError):
            OrderStateMachine.transition(order, OrderStatus.SUCCESS, amount=1)

    def test_rejected_provider_status_fails_order(self, db):
        order = OrderFactory(status=OrderStatus.PROCESSING)

        outcome = OrderStateMachine.apply_provider_status(order, ProviderStatus.REJECTED)

        assert outcome.order.status == OrderStatus.FAILED
        assert outcome.order.provider_status == ProviderStatus.REJECTED


class TestConcurrentCallbacks:
    """Two writers holding the same pending snapshot."""

    def test_first_conditional_update_wins(self, db):
        """SUCCESS commits first; the stale FAILED is acknowledged, not applied."""
        order = OrderFactory()
        success_view = Order.objects.get(pk=order.pk)
        failed_view = Order.objects.get(pk=order.pk)

        first = OrderStateMachine.apply_provider_status(success_view, ProviderStatus.SUCCESS)
        second = OrderStateMachine.apply_provider_status(
            failed_view, ProviderStatus.FAILED, failure_reason="late"
        )

        assert first.changed is True
        assert second.changed is False
        assert second.stale is True
        assert second.order.status == OrderStatus.SUCCESS

        stored = reload(order)
        assert stored.status == OrderStatus.SUCCESS
        assert stored.failure_reason == ""
        assert stored.version == 2

    def test_record_fields_does_not_undo_transition(self, db):
        order = OrderFactory()
        stale_view = Order.objects.get(pk=order.pk)
        OrderStateMachine.transition(order, OrderStatus.SUCCESS)

        result = OrderStateMachine.record_fields(stale_view, {"utr": "LATE"})

        assert result.status == OrderStatus.SUCCESS
        assert result.utr == ""
