"""
UniSpay adapter.

Wakeup channel for collections only. Amounts travel in minor units, every
request carries ``reqTime`` (epoch seconds) and ``version``. Success is
``code == 0`` with the payload under ``data``.
"""

from __future__ import annotations

import time
from typing import Any

from gateway.adapters.base import (
    CallbackEvent,
    CollectionParams,
    ProviderAdapter,
    ProviderResult,
    as_int,
)
from gateway.state_machines import ChannelType, Direction, ProviderId, ProviderStatus

API_VERSION = "1.0"
DEFAULT_PAY_TYPE = "9111"

# "4" (refunded) has no canonical status and falls through as PROCESSING
STATUS_MAP = {
    "0": ProviderStatus.PENDING,
    "1": ProviderStatus.SUCCESS,
    "2": ProviderStatus.FAILED,
    "3": ProviderStatus.CANCELLED,
}


class UniSpayAdapter(ProviderAdapter):
    provider = ProviderId.UNISPAY
    channel_types = (ChannelType.WAKEUP,)
    signing_scheme = "unispay"
    status_map = STATUS_MAP
    callback_ack = "SUCCESS"
    callback_account_field = "mchNo"
    callback_order_field = "mchOrderId"
    default_timeout = 30

    def _is_success(self, body: dict[str, Any]) -> bool:
        return body.get("code") == 0

    def _request_time(self) -> int:
        return int(time.time())

    def create_collection(self, params: CollectionParams) -> ProviderResult:
        request = {
            "mchNo": self.config.account_id,
            "mchOrderId": params.merchant_order_id,
            "payType": self.config.sub_channel_id or DEFAULT_PAY_TYPE,
            "amount": params.amount,
            "currency": params.currency,
            "subject": params.subject or "Deposit",
            "body": params.description or f"Order {params.merchant_order_id}",
            "notifyUrl": params.notify_url,
            "returnUrl": params.return_url or self.config.return_url,
            "clientIp": params.client_ip or "127.0.0.1",
            "reqTime": self._request_time(),
            "version": API_VERSION,
        }
        body = self._call("/api/order/create", request, "create_collection")
        data = body.get("data") or {}
        return ProviderResult(
            status=ProviderStatus.PENDING,
            merchant_order_id=params.merchant_order_id,
            provider_reference=str(data.get("orderNo") or ""),
            pay_url=data.get("payUrl") or "",
            message=body.get("msg") or "",
            raw_response=body,
        )

    def query_order(
        self,
        merchant_order_id: str,
        direction: str = Direction.COLLECTION,
        provider_reference: str = "",
    ) -> ProviderResult:
        if direction == Direction.PAYOUT:
            self._unsupported("query_order for payouts")
        request = {
            "mchNo": self.config.account_id,
            "mchOrderId": merchant_order_id,
            "reqTime": self._request_time(),
            "version": API_VERSION,
        }
        body = self._call("/api/order/query", request, "query_order")
        data = body.get("data") or {}
        raw_status = data.get("state")
        return ProviderResult(
            status=self.map_status(raw_status, direction),
            merchant_order_id=merchant_order_id,
            provider_reference=str(data.get("orderNo") or provider_reference),
            amount=as_int(data.get("amount")),
            message=data.get("msg") or "",
            raw_status=str(raw_status),
            raw_response=body,
        )

    def _build_callback_event(self, payload: dict[str, Any], direction: str) -> CallbackEvent:
        raw_status = payload.get("state")
        return CallbackEvent(
            merchant_order_id=str(payload.get("mchOrderId") or ""),
            status=self.map_status(raw_status, direction),
            provider_reference=str(payload.get("orderNo") or ""),
            amount=as_int(payload.get("amount")),
            raw_status=str(raw_status),
            payload=payload,
        )
