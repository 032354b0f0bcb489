"""
Merchant model: the account that originates orders.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from gateway.state_machines import AccountStatus


class Merchant(UUIDPrimaryKeyMixin, BaseModel):
    """
    A merchant calling the gateway API.

    The merchant's secret signs its API requests and the notifications the
    gateway sends back. Instances stand in for request.user on
    authenticated API calls.

    Fields:
        merchant_id: Public identifier sent with every API request
        name: Display name
        secret_key: Shared secret for the "merchant" signing scheme
        status: Only active merchants may submit orders
    """

    merchant_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="Public merchant identifier used in API requests",
    )

    name = models.CharField(max_length=200)

    secret_key = models.CharField(
        max_length=128,
        help_text="Shared secret for request and notification signatures",
    )

    status = models.CharField(
        max_length=20,
        choices=AccountStatus.choices,
        default=AccountStatus.ACTIVE,
        db_index=True,
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Merchant"
        verbose_name_plural = "Merchants"

    def __str__(self) -> str:
        return f"Merchant({self.merchant_id}, {self.status})"

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    @property
    def is_authenticated(self) -> bool:
        # Lets DRF's IsAuthenticated accept a Merchant as request.user
        return True
