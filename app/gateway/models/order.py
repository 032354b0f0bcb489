"""
Order model: one collection or payout moving through a provider.

Usage:
    from gateway.services.order_state_machine import OrderStateMachine

    outcome = OrderStateMachine.transition(order, OrderStatus.SUCCESS)
    if outcome.changed:
        NotificationSink.enqueue(outcome.order)

Never call the transition methods and save() directly in service code:
OrderStateMachine persists them with a conditional update so concurrent
callbacks cannot both win.
"""

from __future__ import annotations

import secrets
import time

from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from gateway.state_machines import Direction, OrderStatus


def generate_order_id() -> str:
    """System order id: ORD + epoch millis + 8 random hex chars."""
    return f"ORD{int(time.time() * 1000)}{secrets.token_hex(4)}".upper()


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    Canonical order, whatever provider fulfils it.

    State Flow:
        PENDING -> PROCESSING -> SUCCESS | FAILED | CANCELLED | EXPIRED
        PENDING -> SUCCESS | FAILED | CANCELLED

    Fields:
        order_id: System order id handed to merchants
        merchant_order_id: Caller's id, unique per merchant
        amount / fee: Minor units in `currency`
        status: FSM state, protected from direct assignment
        provider_reference: Provider's transaction id
        usage_reserved: True while the amount counts against channel limits
        version: Incremented by every persisted transition
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    order_id = models.CharField(
        max_length=40,
        unique=True,
        default=generate_order_id,
        editable=False,
    )

    merchant = models.ForeignKey(
        "gateway.Merchant",
        on_delete=models.PROTECT,
        related_name="orders",
    )

    merchant_order_id = models.CharField(
        max_length=64,
        help_text="Caller-supplied order id, unique per merchant",
    )

    direction = models.CharField(
        max_length=20,
        choices=Direction.choices,
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount = models.PositiveBigIntegerField(
        help_text="Amount in minor units (e.g. paise)",
    )

    currency = models.CharField(max_length=3, default="INR")

    fee = models.PositiveBigIntegerField(
        default=0,
        help_text="Fee in minor units, computed from the channel at acceptance",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.PENDING,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on every persisted transition",
    )

    usage_reserved = models.BooleanField(
        default=False,
        help_text="Whether the amount is still counted on usage counters",
    )

    # ==========================================================================
    # Provider
    # ==========================================================================

    provider_config = models.ForeignKey(
        "gateway.ProviderConfig",
        on_delete=models.PROTECT,
        related_name="orders",
    )

    provider_reference = models.CharField(
        max_length=128,
        blank=True,
        default="",
        db_index=True,
    )

    provider_status = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Last normalised provider status seen for this order",
    )

    pay_url = models.TextField(blank=True, default="")

    utr = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Bank Unique Transaction Reference",
    )

    failure_reason = models.TextField(blank=True, default="")

    # ==========================================================================
    # Merchant Callback & Payee
    # ==========================================================================

    notify_url = models.URLField(blank=True, default="")

    extra = models.JSONField(
        default=dict,
        blank=True,
        help_text="Payee details and caller metadata",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    processing_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        constraints = [
            models.UniqueConstraint(
                fields=["merchant", "merchant_order_id"],
                name="order_unique_merchant_order_id",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="order_amount_positive",
            ),
        ]
        indexes = [
            models.Index(
                fields=["provider_config", "merchant_order_id"],
                name="order_provider_lookup_idx",
            ),
            models.Index(
                fields=["status", "created_at"],
                name="order_status_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.order_id}, {self.direction}, {self.status}, {self.amount} {self.currency})"

    @property
    def is_terminal(self) -> bool:
        return OrderStatus.is_terminal(self.status)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=OrderStatus.PENDING,
        target=OrderStatus.PROCESSING,
    )
    def begin_processing(self):
        """Provider acknowledged the order."""
        self.processing_at = timezone.now()

    @transition(
        field=status,
        source=[OrderStatus.PENDING, OrderStatus.PROCESSING],
        target=OrderStatus.SUCCESS,
    )
    def succeed(self):
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=[OrderStatus.PENDING, OrderStatus.PROCESSING],
        target=OrderStatus.FAILED,
    )
    def fail(self, reason: str = ""):
        self.completed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=[OrderStatus.PENDING, OrderStatus.PROCESSING],
        target=OrderStatus.CANCELLED,
    )
    def cancel(self):
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=OrderStatus.PROCESSING,
        target=OrderStatus.EXPIRED,
    )
    def expire(self):
        self.completed_at = timezone.now()
