"""
State machine enums for gateway models.
"""

from gateway.state_machines.states import (
    AccountStatus,
    CallbackStatus,
    ChannelType,
    DenialReason,
    Direction,
    Environment,
    LimitPeriod,
    NotificationStatus,
    OrderStatus,
    ProviderId,
    ProviderStatus,
    UtrStatus,
)

__all__ = [
    "AccountStatus",
    "CallbackStatus",
    "ChannelType",
    "DenialReason",
    "Direction",
    "Environment",
    "LimitPeriod",
    "NotificationStatus",
    "OrderStatus",
    "ProviderId",
    "ProviderStatus",
    "UtrStatus",
]
