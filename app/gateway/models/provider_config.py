"""
ProviderConfig model: one merchant's credentials and limits for one channel.

Rows are created by configuration management. The gateway only reads them.

Usage:
    config = (
        ProviderConfig.objects.routable(merchant, Direction.COLLECTION, "INR")
        .first()
    )
    limits = config.limits_for(Direction.COLLECTION)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from gateway.state_machines import (
    AccountStatus,
    ChannelType,
    Direction,
    Environment,
    ProviderId,
)


@dataclass(frozen=True)
class LimitSet:
    """
    Limits for one direction, in minor units. None means unlimited.
    """

    min_amount: int | None = None
    max_amount: int | None = None
    daily_limit: int | None = None
    monthly_limit: int | None = None

    def in_range(self, amount: int) -> bool:
        if self.min_amount is not None and amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True


class ProviderConfigQuerySet(models.QuerySet):
    """Read-side queries the engine uses to pick a channel."""

    def active(self) -> ProviderConfigQuerySet:
        return self.filter(status=AccountStatus.ACTIVE)

    def supporting(self, direction: str) -> ProviderConfigQuerySet:
        if direction == Direction.PAYOUT:
            return self.filter(supports_payout=True)
        return self.filter(supports_collection=True)

    def routable(self, merchant, direction: str, currency: str) -> ProviderConfigQuerySet:
        """Active channels able to take the order, best first (priority 1 wins)."""
        return (
            self.active()
            .supporting(direction)
            .filter(merchant=merchant, currency=currency)
            .order_by("priority", "created_at")
        )


class ProviderConfig(UUIDPrimaryKeyMixin, BaseModel):
    """
    A merchant's channel at one provider.

    Fields:
        merchant: Owning merchant
        account_name: Channel name, unique per merchant
        provider / channel_type: Select the adapter (see AdapterRegistry)
        account_id / secret_key / sub_channel_id: Provider credentials
        environment: Picks the sandbox or production base URL
        priority: 1 (highest) to 10; routing picks the lowest number
        *_min_amount / *_max_amount: Single transaction bounds
        *_daily_limit / *_monthly_limit: Calendar period caps
        fee_percentage / fee_fixed: Fee schedule recorded on each order
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    merchant = models.ForeignKey(
        "gateway.Merchant",
        on_delete=models.PROTECT,
        related_name="provider_configs",
    )

    account_name = models.CharField(
        max_length=100,
        help_text="Channel name, unique per merchant",
    )

    provider = models.CharField(
        max_length=20,
        choices=ProviderId.choices,
        db_index=True,
    )

    channel_type = models.CharField(
        max_length=20,
        choices=ChannelType.choices,
        default=ChannelType.NATIVE,
    )

    # ==========================================================================
    # Credentials
    # ==========================================================================

    account_id = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Merchant id at the provider (mchid / mchNo / mchId)",
    )

    secret_key = models.CharField(
        max_length=255,
        help_text="Signing secret issued by the provider",
    )

    sub_channel_id = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Provider sub channel (PassPay pay_id, UniSpay payType)",
    )

    environment = models.CharField(
        max_length=20,
        choices=Environment.choices,
        default=Environment.PRODUCTION,
    )

    base_url = models.URLField(
        blank=True,
        default="",
        help_text="Overrides the provider base URL from settings",
    )

    notify_url = models.URLField(
        blank=True,
        default="",
        help_text="Overrides the callback URL handed to the provider",
    )

    return_url = models.URLField(blank=True, default="")

    # ==========================================================================
    # Routing
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=AccountStatus.choices,
        default=AccountStatus.ACTIVE,
        db_index=True,
    )

    currency = models.CharField(max_length=3, default="INR")

    supports_collection = models.BooleanField(default=True)
    supports_payout = models.BooleanField(default=False)

    priority = models.PositiveSmallIntegerField(
        default=5,
        validators=[MinValueValidator(1), MaxValueValidator(10)],
        help_text="1 is the highest priority",
    )

    # ==========================================================================
    # Limits (minor units, empty = unlimited)
    # ==========================================================================

    collection_min_amount = models.PositiveBigIntegerField(null=True, blank=True)
    collection_max_amount = models.PositiveBigIntegerField(null=True, blank=True)
    collection_daily_limit = models.PositiveBigIntegerField(null=True, blank=True)
    collection_monthly_limit = models.PositiveBigIntegerField(null=True, blank=True)

    payout_min_amount = models.PositiveBigIntegerField(null=True, blank=True)
    payout_max_amount = models.PositiveBigIntegerField(null=True, blank=True)
    payout_daily_limit = models.PositiveBigIntegerField(null=True, blank=True)
    payout_monthly_limit = models.PositiveBigIntegerField(null=True, blank=True)

    # ==========================================================================
    # Fees
    # ==========================================================================

    fee_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0"),
        help_text="Percentage of the amount, e.g. 2.50",
    )

    fee_fixed = models.PositiveBigIntegerField(
        default=0,
        help_text="Flat fee per order in minor units",
    )

    objects = ProviderConfigQuerySet.as_manager()

    class Meta:
        ordering = ["priority", "created_at"]
        verbose_name = "Provider Config"
        verbose_name_plural = "Provider Configs"
        constraints = [
            models.UniqueConstraint(
                fields=["merchant", "account_name"],
                name="provider_config_unique_account_name",
            ),
        ]
        indexes = [
            models.Index(
                fields=["merchant", "status", "priority"],
                name="provider_config_routing_idx",
            ),
            models.Index(
                fields=["provider", "account_id"],
                name="provider_config_account_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"ProviderConfig({self.account_name}, {self.provider}/{self.channel_type})"

    @property
    def is_active(self) -> bool:
        return self.status == AccountStatus.ACTIVE

    def supports(self, direction: str) -> bool:
        if direction == Direction.PAYOUT:
            return self.supports_payout
        return self.supports_collection

    def limits_for(self, direction: str) -> LimitSet:
        prefix = "payout" if direction == Direction.PAYOUT else "collection"
        return LimitSet(
            min_amount=getattr(self, f"{prefix}_min_amount"),
            max_amount=getattr(self, f"{prefix}_max_amount"),
            daily_limit=getattr(self, f"{prefix}_daily_limit"),
            monthly_limit=getattr(self, f"{prefix}_monthly_limit"),
        )

    def calculate_fee(self, amount: int) -> int:
        """Fee in minor units, rounded half up."""
        variable = (Decimal(amount) * self.fee_percentage / Decimal("100")).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return int(variable) + self.fee_fixed

    def clean(self) -> None:
        super().clean()
        from gateway.adapters import registry

        if not registry.supports(self.channel_type, self.provider):
            raise ValidationError(
                {
                    "provider": (
                        f"Provider '{self.provider}' has no {self.channel_type} adapter"
                    )
                }
            )
