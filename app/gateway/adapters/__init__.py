"""
Provider adapters.

Each provider gets one ProviderAdapter subclass. The module-level
``registry`` is the only supported way to pick one.
"""

from gateway.adapters.base import (
    BalanceResult,
    CallbackEvent,
    CollectionParams,
    PayoutParams,
    ProviderAdapter,
    ProviderResult,
    backoff_delay,
)
from gateway.adapters.dhpay import DhPayAdapter
from gateway.adapters.passpay import PassPayAdapter
from gateway.adapters.registry import AdapterRegistry
from gateway.adapters.unispay import UniSpayAdapter

registry = AdapterRegistry([PassPayAdapter, UniSpayAdapter, DhPayAdapter])

__all__ = [
    "AdapterRegistry",
    "BalanceResult",
    "CallbackEvent",
    "CollectionParams",
    "DhPayAdapter",
    "PassPayAdapter",
    "PayoutParams",
    "ProviderAdapter",
    "ProviderResult",
    "UniSpayAdapter",
    "backoff_delay",
    "registry",
]
