"""
DhPay adapter.

Native bank channel. Deposits and withdrawals share one create endpoint and
are told apart by ``productId``. Amounts travel in minor units. Success is
``retCode == "SUCCESS"`` with fields at the top level of the body.

DhPay callbacks do not carry the merchant id, so they are routed by
``mchOrderNo`` alone.
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
    as_int,
)
from gateway.state_machines import ChannelType, Direction, ProviderId, ProviderStatus, UtrStatus

PRODUCT_DEPOSIT = 3001
PRODUCT_WITHDRAW = 3002

STATUS_MAP = {
    "PENDING": ProviderStatus.PENDING,
    "PROCESSING": ProviderStatus.PROCESSING,
    "SUCCESS": ProviderStatus.SUCCESS,
    "FAILED": ProviderStatus.FAILED,
    "CANCELLED": ProviderStatus.CANCELLED,
}


class DhPayAdapter(ProviderAdapter):
    provider = ProviderId.DHPAY
    channel_types = (ChannelType.NATIVE,)
    signing_scheme = "dhpay"
    status_map = STATUS_MAP
    callback_ack = "success"
    callback_account_field = None
    callback_order_field = "mchOrderNo"
    default_timeout = 30

    def _is_success(self, body: dict[str, Any]) -> bool:
        return body.get("retCode") == "SUCCESS"

    def _error_code(self, body: dict[str, Any]) -> Any:
        return body.get("retCode")

    def _error_message(self, body: dict[str, Any]) -> str:
        return str(body.get("retMsg") or "DhPay rejected the request")

    def _create(self, params: CollectionParams, product_id: int, operation: str) -> ProviderResult:
        is_payout = product_id == PRODUCT_WITHDRAW
        request = {
            "mchId": self.config.account_id,
            "productId": product_id,
            "mchOrderNo": params.merchant_order_id,
            "amount": params.amount,
            "clientIp": params.client_ip or "0.0.0.0",
            "notifyUrl": params.notify_url,
            "returnUrl": params.return_url or self.config.return_url,
            "subject": params.subject or ("Withdrawal" if is_payout else "Payment"),
            "body": params.description
            or ("Withdrawal request" if is_payout else "Payment for order"),
            "param1": params.extra.get("param1", ""),
            "param2": params.extra.get("param2", ""),
            "validateUserName": params.customer_name,
            "requestCardInfo": False,
        }
        if is_payout:
            request.update(
                {
                    "accountNumber": params.account_number,
                    "ifscCode": params.ifsc_code,
                    "validateUserName": params.account_holder,
                }
            )
        body = self._call("/v1.0/api/order/create", request, operation)
        return ProviderResult(
            status=ProviderStatus.PENDING,
            merchant_order_id=params.merchant_order_id,
            provider_reference=str(body.get("payOrderId") or ""),
            pay_url=body.get("payUrl") or "",
            message=body.get("retMsg") or "",
            raw_response=body,
        )

    def create_collection(self, params: CollectionParams) -> ProviderResult:
        return self._create(params, PRODUCT_DEPOSIT, "create_collection")

    def create_payout(self, params: PayoutParams) -> ProviderResult:
        return self._create(params, PRODUCT_WITHDRAW, "create_payout")

    def query_order(
        self,
        merchant_order_id: str,
        direction: str = Direction.COLLECTION,
        provider_reference: str = "",
    ) -> ProviderResult:
        request = {"mchId": self.config.account_id, "mchOrderNo": merchant_order_id}
        body = self._call("/v1.0/api/order/query", request, "query_order")
        raw_status = body.get("status")
        return ProviderResult(
            status=self.map_status(raw_status, direction),
            merchant_order_id=str(body.get("mchOrderNo") or merchant_order_id),
            provider_reference=str(body.get("payOrderId") or provider_reference),
            utr=body.get("utr") or "",
            amount=as_int(body.get("amount")),
            message=body.get("retMsg") or "",
            raw_status=str(raw_status),
            raw_response=body,
        )

    def query_balance(self) -> BalanceResult:
        request = {"mchId": self.config.account_id}
        body = self._call("/v1.0/api/order/queryMerchantBalance", request, "query_balance")
        return BalanceResult(
            available=as_int(body.get("balance")) or 0,
            currency=body.get("currency") or self.config.currency,
            raw_response=body,
        )

    def query_utr(self, merchant_order_id: str, provider_reference: str = "") -> ProviderResult:
        request = {"mchId": self.config.account_id, "mchOrderNo": merchant_order_id}
        body = self._call("/v1.0/api/order/queryUtr", request, "query_utr")
        utr = body.get("utr") or ""
        return ProviderResult(
            status=ProviderStatus.PROCESSING,
            merchant_order_id=str(body.get("mchOrderNo") or merchant_order_id),
            provider_reference=provider_reference,
            utr=utr,
            utr_status=UtrStatus.VERIFIED if utr else UtrStatus.PENDING,
            message=body.get("retMsg") or "",
            raw_response=body,
        )

    def _build_callback_event(self, payload: dict[str, Any], direction: str) -> CallbackEvent:
        raw_status = payload.get("status")
        return CallbackEvent(
            merchant_order_id=str(payload.get("mchOrderNo") or ""),
            status=self.map_status(raw_status, direction),
            amount=as_int(payload.get("amount")),
            utr=payload.get("utr") or "",
            raw_status=str(raw_status),
            payload=payload,
        )
