"""
ProviderCallback model: audit trail of inbound provider callbacks.

Providers retry callbacks, so rows are keyed by a digest of the raw body
and repeat deliveries bump delivery_count instead of adding rows.

Usage:
    callback, created = ProviderCallback.objects.get_or_create(
        provider=provider_id,
        body_digest=hash_string(raw_body),
        defaults={"payload": payload},
    )
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from gateway.state_machines import CallbackStatus


class ProviderCallback(UUIDPrimaryKeyMixin, BaseModel):
    """
    One distinct callback body received from a provider.

    Processing state is informational only. Order idempotency comes from
    the state machine, not from this table.
    """

    provider = models.CharField(max_length=20, db_index=True)

    body_digest = models.CharField(
        max_length=64,
        help_text="SHA-256 of the raw request body",
    )

    merchant_order_id = models.CharField(
        max_length=64,
        blank=True,
        default="",
        db_index=True,
    )

    payload = models.JSONField(default=dict)

    order = models.ForeignKey(
        "gateway.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="callbacks",
    )

    status = models.CharField(
        max_length=20,
        choices=CallbackStatus.choices,
        default=CallbackStatus.RECEIVED,
        db_index=True,
    )

    error_code = models.CharField(max_length=50, blank=True, default="")
    error_message = models.TextField(blank=True, default="")

    delivery_count = models.PositiveIntegerField(default=1)

    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Provider Callback"
        verbose_name_plural = "Provider Callbacks"
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "body_digest"],
                name="provider_callback_unique_body",
            ),
        ]

    def __str__(self) -> str:
        return f"ProviderCallback({self.provider}, {self.merchant_order_id}, {self.status})"

    # ==========================================================================
    # Helper Methods (caller saves)
    # ==========================================================================

    def mark_applied(self, order) -> None:
        self.status = CallbackStatus.APPLIED
        self.order = order
        self.processed_at = timezone.now()
        self.error_code = ""
        self.error_message = ""

    def mark_duplicate(self, order) -> None:
        self.status = CallbackStatus.DUPLICATE
        self.order = order
        self.processed_at = timezone.now()

    def mark_rejected(self, error_code: str, error_message: str) -> None:
        self.status = CallbackStatus.REJECTED
        self.error_code = error_code
        self.error_message = error_message
        self.processed_at = timezone.now()
