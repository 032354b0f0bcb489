"""
Usage-limit enforcement for merchant channels.

Every order is checked here before it reaches a provider. The check is a
range test followed by a bounded reservation on the day and month counters;
the reservation is a single conditional UPDATE per counter, so concurrent
submissions cannot both squeeze under a limit.

Usage:
    from gateway.services import LimitGuard

    decision = LimitGuard.check(merchant.pk, config.pk, Direction.COLLECTION, 50000)
    if not decision.allowed:
        raise LimitExceededError(..., error_code=decision.reason)

    # Later, if the provider never accepted the order
    LimitGuard.release(merchant.pk, config.pk, Direction.COLLECTION, 50000, on=decision.day)
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from django.conf import settings
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from core.services import BaseService
from gateway.models import ProviderConfig, UsageCounter
from gateway.state_machines import DenialReason, LimitPeriod

if TYPE_CHECKING:
    from uuid import UUID


# =============================================================================
# Decisions
# =============================================================================


@dataclass(frozen=True)
class Allowed:
    """Reservation made. day/month identify the counters that were incremented."""

    day: datetime.date
    month: datetime.date
    allowed: bool = field(default=True, init=False)
    reason: None = field(default=None, init=False)


@dataclass(frozen=True)
class Denied:
    """Reservation refused; nothing was incremented."""

    reason: str
    allowed: bool = field(default=False, init=False)


LimitDecision = Allowed | Denied


@dataclass(frozen=True)
class UsageSnapshot:
    direction: str
    day: datetime.date
    day_used: int
    daily_limit: int | None
    month: datetime.date
    month_used: int
    monthly_limit: int | None

    @property
    def daily_remaining(self) -> int | None:
        if self.daily_limit is None:
            return None
        return max(self.daily_limit - self.day_used, 0)

    @property
    def monthly_remaining(self) -> int | None:
        if self.monthly_limit is None:
            return None
        return max(self.monthly_limit - self.month_used, 0)


class _ReservationDenied(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def period_dates(when: datetime.datetime | None = None) -> tuple[datetime.date, datetime.date]:
    """
    Local calendar day and first day of month for `when` (default: now).

    Boundaries follow GATEWAY_LIMIT_TIME_ZONE, not UTC.
    """
    when = when or timezone.now()
    local = timezone.localtime(when, ZoneInfo(settings.GATEWAY_LIMIT_TIME_ZONE))
    day = local.date()
    return day, day.replace(day=1)


# =============================================================================
# Limit Guard
# =============================================================================


class LimitGuard(BaseService):
    """
    Range check plus atomic bounded reservation on UsageCounter rows.

    All methods are class methods; counters live in the database.
    """

    @classmethod
    def check(
        cls,
        merchant_id: UUID,
        provider_config_id: UUID,
        direction: str,
        amount: int,
        at: datetime.datetime | None = None,
    ) -> LimitDecision:
        """
        Validate amount and reserve it on the day and month counters.

        Landing exactly on a limit is allowed. Counters are incremented even
        when the channel has no limit, so usage stays visible.

        Returns:
            Allowed(day, month) or Denied(reason)
        """
        config = ProviderConfig.objects.get(pk=provider_config_id)
        limits = config.limits_for(direction)

        log_context = {
            "merchant_id": str(merchant_id),
            "provider_config_id": str(provider_config_id),
            "direction": direction,
            "amount": amount,
        }

        if not limits.in_range(amount):
            cls.get_logger().info(
                "Amount outside channel range",
                extra={
                    **log_context,
                    "min_amount": limits.min_amount,
                    "max_amount": limits.max_amount,
                },
            )
            return Denied(DenialReason.AMOUNT_OUT_OF_RANGE)

        day, month = period_dates(at)
        try:
            with transaction.atomic():
                if not cls._reserve(
                    merchant_id, provider_config_id, direction,
                    LimitPeriod.DAY, day, amount, limits.daily_limit,
                ):
                    raise _ReservationDenied(DenialReason.DAILY_LIMIT_EXCEEDED)
                if not cls._reserve(
                    merchant_id, provider_config_id, direction,
                    LimitPeriod.MONTH, month, amount, limits.monthly_limit,
                ):
                    raise _ReservationDenied(DenialReason.MONTHLY_LIMIT_EXCEEDED)
        except _ReservationDenied as e:
            cls.get_logger().info(
                "Limit reservation denied",
                extra={**log_context, "reason": e.reason, "day": day.isoformat()},
            )
            return Denied(e.reason)

        return Allowed(day=day, month=month)

    @classmethod
    def release(
        cls,
        merchant_id: UUID,
        provider_config_id: UUID,
        direction: str,
        amount: int,
        on: datetime.date | None = None,
    ) -> None:
        """
        Give back a reservation made on local day `on` (default: today).

        Counters never go below zero.
        """
        if on is None:
            on, month = period_dates()
        else:
            month = on.replace(day=1)

        for period, period_start in ((LimitPeriod.DAY, on), (LimitPeriod.MONTH, month)):
            counters = UsageCounter.objects.filter(
                merchant_id=merchant_id,
                provider_config_id=provider_config_id,
                direction=direction,
                period=period,
                period_start=period_start,
            )
            updated = counters.filter(used__gte=amount).update(
                used=F("used") - amount,
                updated_at=timezone.now(),
            )
            if not updated:
                clamped = counters.update(used=0, updated_at=timezone.now())
                cls.get_logger().warning(
                    "Usage release exceeded recorded usage",
                    extra={
                        "merchant_id": str(merchant_id),
                        "provider_config_id": str(provider_config_id),
                        "direction": direction,
                        "period": period,
                        "period_start": period_start.isoformat(),
                        "amount": amount,
                        "clamped_rows": clamped,
                    },
                )

    @classmethod
    def usage(
        cls,
        merchant_id: UUID,
        provider_config_id: UUID,
        direction: str,
        at: datetime.datetime | None = None,
    ) -> UsageSnapshot:
        """Read-only view of current day and month usage for a channel."""
        config = ProviderConfig.objects.get(pk=provider_config_id)
        limits = config.limits_for(direction)
        day, month = period_dates(at)

        used = dict(
            UsageCounter.objects.filter(
                Q(period=LimitPeriod.DAY, period_start=day)
                | Q(period=LimitPeriod.MONTH, period_start=month),
                merchant_id=merchant_id,
                provider_config_id=provider_config_id,
                direction=direction,
            ).values_list("period", "used")
        )

        return UsageSnapshot(
            direction=direction,
            day=day,
            day_used=used.get(LimitPeriod.DAY, 0),
            daily_limit=limits.daily_limit,
            month=month,
            month_used=used.get(LimitPeriod.MONTH, 0),
            monthly_limit=limits.monthly_limit,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    @classmethod
    def _reserve(
        cls,
        merchant_id: UUID,
        provider_config_id: UUID,
        direction: str,
        period: str,
        period_start: datetime.date,
        amount: int,
        limit: int | None,
    ) -> bool:
        """Bounded increment: used + amount <= limit, or unbounded if no limit."""
        counter, _ = UsageCounter.objects.get_or_create(
            merchant_id=merchant_id,
            provider_config_id=provider_config_id,
            direction=direction,
            period=period,
            period_start=period_start,
        )
        counters = UsageCounter.objects.filter(pk=counter.pk)
        if limit is not None:
            counters = counters.filter(used__lte=limit - amount)
        return (
            counters.update(used=F("used") + amount, updated_at=timezone.now()) == 1
        )
