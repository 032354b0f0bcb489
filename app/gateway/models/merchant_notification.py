"""
MerchantNotification model: outbox of order status pushes to merchants.

Written in the same transaction as the order transition it reports, then
delivered by a Celery task. The (order, order_status) constraint means a
status is announced at most once however many callbacks report it.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from gateway.state_machines import NotificationStatus, OrderStatus


class MerchantNotification(UUIDPrimaryKeyMixin, BaseModel):
    """
    Signed notification of an order reaching a status.

    Fields:
        order / order_status: What is being announced
        notify_url: Merchant endpoint captured at enqueue time
        payload: Signed JSON body, frozen at enqueue time
        attempts: Delivery attempts so far
    """

    order = models.ForeignKey(
        "gateway.Order",
        on_delete=models.CASCADE,
        related_name="notifications",
    )

    order_status = models.CharField(max_length=20, choices=OrderStatus.choices)

    notify_url = models.URLField()

    payload = models.JSONField()

    status = models.CharField(
        max_length=20,
        choices=NotificationStatus.choices,
        default=NotificationStatus.PENDING,
        db_index=True,
    )

    attempts = models.PositiveIntegerField(default=0)

    last_error = models.TextField(blank=True, default="")

    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Merchant Notification"
        verbose_name_plural = "Merchant Notifications"
        constraints = [
            models.UniqueConstraint(
                fields=["order", "order_status"],
                name="merchant_notification_unique_status",
            ),
        ]
        indexes = [
            models.Index(
                fields=["status", "updated_at"],
                name="notification_status_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"MerchantNotification({self.order_id}, {self.order_status}, {self.status})"

    @property
    def is_delivered(self) -> bool:
        return self.status == NotificationStatus.DELIVERED

    # ==========================================================================
    # Helper Methods (caller saves)
    # ==========================================================================

    def mark_attempt(self) -> None:
        self.attempts += 1

    def mark_delivered(self) -> None:
        self.status = NotificationStatus.DELIVERED
        self.delivered_at = timezone.now()
        self.last_error = ""

    def mark_failed(self, error_message: str) -> None:
        self.status = NotificationStatus.FAILED
        self.last_error = error_message
