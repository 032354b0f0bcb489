"""
PassPay adapter.

Native bank channel. Amounts travel in major units ("500.00"), the provider
transaction id is ``trade_no`` and our order id is ``out_trade_no``.
Success is signalled by ``rCode == 200`` with the payload under ``data``.
"""

from __future__ import annotations

from typing import Any

from gateway.adapters.base import (
    BalanceResult,
    CallbackEvent,
    CollectionParams,
    PayoutParams,
    ProviderAdapter,
    ProviderResult,
    to_major_units,
    to_minor_units,
)
from gateway.state_machines import ChannelType, Direction, ProviderId, ProviderStatus, UtrStatus

ORDER_STATUS_MAP = {
    "0": ProviderStatus.PENDING,
    "1": ProviderStatus.PROCESSING,
    "2": ProviderStatus.SUCCESS,
    "3": ProviderStatus.FAILED,
    "4": ProviderStatus.CANCELLED,
    "5": ProviderStatus.EXPIRED,
}

PAYOUT_STATUS_MAP = {**ORDER_STATUS_MAP, "5": ProviderStatus.REJECTED}

UTR_STATUS_MAP = {
    "0": UtrStatus.PENDING,
    "1": UtrStatus.VERIFIED,
    "2": UtrStatus.REJECTED,
    "3": UtrStatus.EXPIRED,
}


class PassPayAdapter(ProviderAdapter):
    provider = ProviderId.PASSPAY
    channel_types = (ChannelType.NATIVE,)
    signing_scheme = "passpay"
    status_map = ORDER_STATUS_MAP
    payout_status_map = PAYOUT_STATUS_MAP
    callback_ack = "success"
    callback_account_field = "mchid"
    callback_order_field = "out_trade_no"
    default_timeout = 10

    def _base_params(self) -> dict[str, Any]:
        return {
            "mchid": self.config.account_id,
            "pay_id": self.config.sub_channel_id,
        }

    def _is_success(self, body: dict[str, Any]) -> bool:
        return body.get("rCode") == 200

    def _error_code(self, body: dict[str, Any]) -> Any:
        return body.get("rCode")

    def create_collection(self, params: CollectionParams) -> ProviderResult:
        request = {
            **self._base_params(),
            "out_trade_no": params.merchant_order_id,
            "amount": to_major_units(params.amount),
            "notify_url": params.notify_url,
        }
        body = self._call("/api/developer/order/create", request, "create_collection")
        return self._created(params.merchant_order_id, body)

    def create_payout(self, params: PayoutParams) -> ProviderResult:
        request = {
            **self._base_params(),
            "out_trade_no": params.merchant_order_id,
            "amount": to_major_units(params.amount),
            "account_number": params.account_number,
            "ifsc_code": params.ifsc_code,
            "account_holder": params.account_holder,
            "notify_url": params.notify_url,
        }
        body = self._call("/api/developer/payout/create", request, "create_payout")
        return self._created(params.merchant_order_id, body)

    def query_order(
        self,
        merchant_order_id: str,
        direction: str = Direction.COLLECTION,
        provider_reference: str = "",
    ) -> ProviderResult:
        path = (
            "/api/developer/payout/query"
            if direction == Direction.PAYOUT
            else "/api/developer/order/query"
        )
        request = {
            **self._base_params(),
            "out_trade_no": merchant_order_id,
            "trade_no": provider_reference,
        }
        body = self._call(path, request, "query_order")
        data = body.get("data") or {}
        raw_status = data.get("status")
        return ProviderResult(
            status=self.map_status(raw_status, direction),
            merchant_order_id=merchant_order_id,
            provider_reference=str(data.get("trade_no") or provider_reference),
            utr=data.get("utr") or "",
            amount=to_minor_units(data.get("amount")),
            message=data.get("msg") or "",
            raw_status=str(raw_status),
            raw_response=body,
        )

    def query_balance(self) -> BalanceResult:
        body = self._call("/api/developer/balance/query", self._base_params(), "query_balance")
        data = body.get("data") or {}
        return BalanceResult(
            available=to_minor_units(data.get("balance")) or 0,
            currency=self.config.currency,
            raw_response=body,
        )

    def submit_utr(
        self, merchant_order_id: str, utr: str, provider_reference: str = ""
    ) -> ProviderResult:
        request = {
            **self._base_params(),
            "out_trade_no": merchant_order_id,
            "trade_no": provider_reference,
            "utr": utr,
        }
        body = self._call("/api/developer/order/utr", request, "submit_utr")
        return ProviderResult(
            status=ProviderStatus.PROCESSING,
            merchant_order_id=merchant_order_id,
            provider_reference=provider_reference,
            utr=utr,
            utr_status=UtrStatus.PENDING,
            message=body.get("message") or "",
            raw_response=body,
        )

    def query_utr(self, merchant_order_id: str, provider_reference: str = "") -> ProviderResult:
        request = {
            **self._base_params(),
            "out_trade_no": merchant_order_id,
            "trade_no": provider_reference,
        }
        body = self._call("/api/developer/order/utr/query", request, "query_utr")
        data = body.get("data") or {}
        raw_utr_status = str(data.get("utr_status"))
        utr_status = UTR_STATUS_MAP.get(raw_utr_status)
        if utr_status is None:
            self.get_logger().warning(
                "Unmapped UTR status",
                extra={"provider": self.provider, "raw_status": raw_utr_status},
            )
            utr_status = UtrStatus.PENDING
        return ProviderResult(
            status=ProviderStatus.PROCESSING,
            merchant_order_id=merchant_order_id,
            provider_reference=provider_reference,
            utr=data.get("utr") or "",
            utr_status=utr_status,
            message=data.get("msg") or "",
            raw_status=raw_utr_status,
            raw_response=body,
        )

    def _build_callback_event(self, payload: dict[str, Any], direction: str) -> CallbackEvent:
        raw_status = payload.get("status")
        # real_amount is what the payer actually paid
        amount = payload.get("real_amount") or payload.get("amount")
        return CallbackEvent(
            merchant_order_id=str(payload.get("out_trade_no") or ""),
            status=self.map_status(raw_status, direction),
            provider_reference=str(payload.get("trade_no") or ""),
            amount=to_minor_units(amount),
            utr=payload.get("utr") or "",
            raw_status=str(raw_status),
            payload=payload,
        )

    def _created(self, merchant_order_id: str, body: dict[str, Any]) -> ProviderResult:
        data = body.get("data") or {}
        return ProviderResult(
            status=ProviderStatus.PENDING,
            merchant_order_id=merchant_order_id,
            provider_reference=str(data.get("trade_no") or ""),
            pay_url=data.get("pay_url") or data.get("payUrl") or "",
            message=body.get("message") or "",
            raw_response=body,
        )
