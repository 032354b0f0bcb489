"""
UsageCounter model: per-period usage of one merchant channel.

A new period gets a new row, so nothing is ever reset in place. Rows are
only changed through bounded F() updates in LimitGuard.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from gateway.state_machines import Direction, LimitPeriod


class UsageCounter(BaseModel):
    """
    Amount reserved against a channel in one calendar day or month.

    Fields:
        merchant / provider_config / direction / period / period_start: Key
        period_start: The day, or the first day of the month
        used: Sum of reserved amounts in minor units
    """

    merchant = models.ForeignKey(
        "gateway.Merchant",
        on_delete=models.CASCADE,
        related_name="usage_counters",
    )

    provider_config = models.ForeignKey(
        "gateway.ProviderConfig",
        on_delete=models.CASCADE,
        related_name="usage_counters",
    )

    direction = models.CharField(max_length=20, choices=Direction.choices)

    period = models.CharField(max_length=10, choices=LimitPeriod.choices)

    period_start = models.DateField()

    used = models.PositiveBigIntegerField(default=0)

    class Meta:
        ordering = ["-period_start"]
        verbose_name = "Usage Counter"
        verbose_name_plural = "Usage Counters"
        constraints = [
            models.UniqueConstraint(
                fields=["merchant", "provider_config", "direction", "period", "period_start"],
                name="usage_counter_unique_key",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"UsageCounter({self.provider_config_id}, {self.direction}, "
            f"{self.period} {self.period_start}, used={self.used})"
        )
