"""
Gateway domain models.

- Merchant: Account originating orders
- ProviderConfig: A merchant's channel at one provider (credentials, limits)
- Order: Canonical collection / payout with an FSM-managed status
- UsageCounter: Per-period reserved amounts per channel
- ProviderCallback: Audit log of inbound provider callbacks
- MerchantNotification: Outbox of status pushes to merchants
"""

from gateway.models.merchant import Merchant
from gateway.models.merchant_notification import MerchantNotification
from gateway.models.order import Order, generate_order_id
from gateway.models.provider_callback import ProviderCallback
from gateway.models.provider_config import LimitSet, ProviderConfig
from gateway.models.usage_counter import UsageCounter

__all__ = [
    "LimitSet",
    "Merchant",
    "MerchantNotification",
    "Order",
    "ProviderCallback",
    "ProviderConfig",
    "UsageCounter",
    "generate_order_id",
]
