"""
Request and result types for the gateway's public operations.

These dataclasses are the boundary between the HTTP layer (serializers,
callback view) and the ReconciliationEngine / CallbackRouter.

Usage:
    from gateway.types import SubmitRequest

    result = ReconciliationEngine.submit(
        SubmitRequest(
            merchant_id="M100",
            merchant_order_id="dep-1001",
            direction=Direction.COLLECTION,
            amount=50000,
            currency="INR",
            notify_url="https://merchant.example/notify",
        )
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from gateway.models import Order


@dataclass
class SubmitRequest:
    """
    A merchant's request to move money.

    Attributes:
        merchant_id: Public merchant id
        merchant_order_id: Caller's order id, unique per merchant
        direction: collection or payout
        amount: Minor units
        channel: ProviderConfig.account_name to force; None routes by priority
        account_number / ifsc_code / account_holder: Payee, payouts only
    """

    merchant_id: str
    merchant_order_id: str
    direction: str
    amount: int
    currency: str = "INR"
    notify_url: str = ""
    channel: str | None = None
    client_ip: str = ""
    customer_name: str = ""
    account_number: str = ""
    ifsc_code: str = ""
    account_holder: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.currency = (self.currency or "").upper()

    @property
    def payee(self) -> dict[str, str]:
        return {
            "account_number": self.account_number,
            "ifsc_code": self.ifsc_code,
            "account_holder": self.account_holder,
        }


@dataclass
class SubmitResult:
    system_order_id: str
    merchant_order_id: str
    status: str
    provider_reference: str = ""
    pay_url: str = ""
    failure_reason: str = ""

    @classmethod
    def from_order(cls, order: Order) -> SubmitResult:
        return cls(
            system_order_id=order.order_id,
            merchant_order_id=order.merchant_order_id,
            status=order.status,
            provider_reference=order.provider_reference,
            pay_url=order.pay_url,
            failure_reason=order.failure_reason,
        )


@dataclass
class CallbackRequest:
    """Raw provider callback as received over HTTP."""

    provider_id: str
    raw_body: bytes
    raw_headers: dict[str, str] = field(default_factory=dict)
    content_type: str = "application/json"


@dataclass
class CallbackAck:
    """
    Outcome of handling a verified callback.

    Attributes:
        accepted: The callback verified and matched an order
        ack_body: What the provider expects in the HTTP response
        changed: The order's state moved because of this callback
    """

    accepted: bool
    ack_body: str
    order_id: str = ""
    status: str = ""
    changed: bool = False
