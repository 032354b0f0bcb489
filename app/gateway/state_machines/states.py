"""
State and choice enums for gateway models.

These are Django TextChoices for database storage; OrderStatus is driven by
django-fsm on the Order model.

Order States:
    pending → processing → success | failed | cancelled | expired
    pending → success | failed | cancelled

    Terminal: success, failed, cancelled, expired.
    Nothing leaves a terminal state.
"""

from django.db import models


class Direction(models.TextChoices):
    """Money movement direction of an order."""

    COLLECTION = "collection", "Collection"
    PAYOUT = "payout", "Payout"


class OrderStatus(models.TextChoices):
    """
    Canonical lifecycle of an Order.

    PENDING: accepted locally, provider outcome not yet known
    PROCESSING: acknowledged by the provider, awaiting settlement
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"
    EXPIRED = "expired", "Expired"

    @classmethod
    def terminal(cls) -> tuple[str, ...]:
        return (cls.SUCCESS, cls.FAILED, cls.CANCELLED, cls.EXPIRED)

    @classmethod
    def is_terminal(cls, value: str) -> bool:
        return value in cls.terminal()


class ProviderStatus(models.TextChoices):
    """
    Provider vocabulary normalised by each adapter's status table.

    REJECTED only comes from providers; it lands on the order as FAILED.
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"
    EXPIRED = "expired", "Expired"
    REJECTED = "rejected", "Rejected"

    def to_order_status(self) -> str:
        if self == ProviderStatus.REJECTED:
            return OrderStatus.FAILED
        return OrderStatus(self.value)


class UtrStatus(models.TextChoices):
    """Verification state of a UTR submitted for a collection."""

    PENDING = "pending", "Pending"
    VERIFIED = "verified", "Verified"
    REJECTED = "rejected", "Rejected"
    EXPIRED = "expired", "Expired"


class ChannelType(models.TextChoices):
    """
    NATIVE: direct bank channel API
    WAKEUP: triggers an aggregator or app-based payment flow
    """

    NATIVE = "native", "Native"
    WAKEUP = "wakeup", "Wakeup"


class ProviderId(models.TextChoices):
    PASSPAY = "passpay", "PassPay"
    UNISPAY = "unispay", "UniSpay"
    DHPAY = "dhpay", "DhPay"


class AccountStatus(models.TextChoices):
    """Status shared by merchants and provider configurations."""

    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    SUSPENDED = "suspended", "Suspended"


class Environment(models.TextChoices):
    SANDBOX = "sandbox", "Sandbox"
    PRODUCTION = "production", "Production"


class LimitPeriod(models.TextChoices):
    DAY = "day", "Day"
    MONTH = "month", "Month"


class DenialReason(models.TextChoices):
    """Why LimitGuard refused a reservation. Values double as error codes."""

    AMOUNT_OUT_OF_RANGE = "AMOUNT_OUT_OF_RANGE", "Amount out of range"
    DAILY_LIMIT_EXCEEDED = "DAILY_LIMIT_EXCEEDED", "Daily limit exceeded"
    MONTHLY_LIMIT_EXCEEDED = "MONTHLY_LIMIT_EXCEEDED", "Monthly limit exceeded"


class CallbackStatus(models.TextChoices):
    """
    Processing outcome of an inbound provider callback.

    RECEIVED: stored, not yet handled
    APPLIED: changed the order's state
    DUPLICATE: verified but the order was already in (or past) that state
    REJECTED: signature, payload or lookup failure
    """

    RECEIVED = "received", "Received"
    APPLIED = "applied", "Applied"
    DUPLICATE = "duplicate", "Duplicate"
    REJECTED = "rejected", "Rejected"


class NotificationStatus(models.TextChoices):
    """Delivery state of an outbound merchant notification."""

    PENDING = "pending", "Pending"
    DELIVERED = "delivered", "Delivered"
    FAILED = "failed", "Failed"
