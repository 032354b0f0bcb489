"""
Serializers for the merchant gateway API.

Provides:
- SubmitOrderSerializer: Validate an order submission
- SubmitResultSerializer: Submission outcome
- OrderSerializer: Read-only order status
- UtrSubmitSerializer / ProviderResultSerializer: UTR endpoints
- BalanceSerializer / UsageSnapshotSerializer: Channel endpoints
- ErrorSerializer: Domain error body
"""

from __future__ import annotations

from typing import Any

from rest_framework import serializers

from gateway.models import Order
from gateway.state_machines import Direction
from gateway.types import SubmitRequest

PAYEE_FIELDS = ("account_number", "ifsc_code", "account_holder")


class SubmitOrderSerializer(serializers.Serializer):
    """
    Validate an order submission.

    The signature fields (merchant_id, timestamp, sign) are checked by
    MerchantSignatureAuthentication; merchant_id is taken from the
    authenticated merchant.

    Usage:
        serializer = SubmitOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        submit_request = serializer.to_submit_request(merchant_id, client_ip)
    """

    merchant_order_id = serializers.CharField(max_length=64)

    direction = serializers.ChoiceField(
        choices=Direction.choices,
        default=Direction.COLLECTION,
    )

    amount = serializers.IntegerField(
        min_value=1,
        help_text="Amount in minor units (e.g. paise)",
    )

    currency = serializers.CharField(max_length=3, default="INR")

    notify_url = serializers.URLField(required=False, allow_blank=True, default="")

    channel = serializers.CharField(
        max_length=100,
        required=False,
        allow_null=True,
        default=None,
        help_text="Channel (account_name) to use; omitted routes by priority",
    )

    client_ip = serializers.IPAddressField(required=False, allow_blank=True, default="")
    customer_name = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )

    account_number = serializers.CharField(
        max_length=34, required=False, allow_blank=True, default=""
    )
    ifsc_code = serializers.RegexField(
        r"^[A-Za-z]{4}0[A-Za-z0-9]{6}$",
        required=False,
        allow_blank=True,
        default="",
    )
    account_holder = serializers.CharField(
        max_length=100, required=False, allow_blank=True, default=""
    )

    extra = serializers.DictField(required=False, default=dict)

    def validate_currency(self, value: str) -> str:
        return value.upper()

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if attrs["direction"] == Direction.PAYOUT:
            missing = {
                name: ["Required for payouts."] for name in PAYEE_FIELDS if not attrs.get(name)
            }
            if missing:
                raise serializers.ValidationError(missing)
        return attrs

    def to_submit_request(self, merchant_id: str, client_ip: str = "") -> SubmitRequest:
        data = self.validated_data
        return SubmitRequest(
            merchant_id=merchant_id,
            merchant_order_id=data["merchant_order_id"],
            direction=data["direction"],
            amount=data["amount"],
            currency=data["currency"],
            notify_url=data["notify_url"],
            channel=data["channel"],
            client_ip=data["client_ip"] or client_ip,
            customer_name=data["customer_name"],
            account_number=data["account_number"],
            ifsc_code=data["ifsc_code"].upper(),
            account_holder=data["account_holder"],
            extra=data["extra"],
        )


class SubmitResultSerializer(serializers.Serializer):
    system_order_id = serializers.CharField()
    merchant_order_id = serializers.CharField()
    status = serializers.CharField()
    provider_reference = serializers.CharField(allow_blank=True)
    pay_url = serializers.CharField(allow_blank=True)
    failure_reason = serializers.CharField(allow_blank=True)


class OrderSerializer(serializers.ModelSerializer):
    """Read-only order status for merchants."""

    channel = serializers.CharField(source="provider_config.account_name", read_only=True)

    class Meta:
        model = Order
        fields = [
            "order_id",
            "merchant_order_id",
            "direction",
            "amount",
            "currency",
            "fee",
            "status",
            "channel",
            "provider_reference",
            "pay_url",
            "utr",
            "failure_reason",
            "created_at",
            "processing_at",
            "completed_at",
        ]
        read_only_fields = fields


class UtrSubmitSerializer(serializers.Serializer):
    utr = serializers.RegexField(
        r"^[A-Za-z0-9]{1,64}$",
        help_text="Bank Unique Transaction Reference",
    )


class ProviderResultSerializer(serializers.Serializer):
    merchant_order_id = serializers.CharField()
    status = serializers.CharField()
    provider_reference = serializers.CharField(allow_blank=True)
    utr = serializers.CharField(allow_blank=True)
    utr_status = serializers.CharField(allow_blank=True)
    message = serializers.CharField(allow_blank=True)


class BalanceSerializer(serializers.Serializer):
    channel = serializers.CharField()
    available = serializers.IntegerField(help_text="Minor units")
    currency = serializers.CharField()


class UsageSnapshotSerializer(serializers.Serializer):
    direction = serializers.CharField()
    day = serializers.DateField()
    day_used = serializers.IntegerField()
    daily_limit = serializers.IntegerField(allow_null=True)
    daily_remaining = serializers.IntegerField(allow_null=True)
    month = serializers.DateField()
    month_used = serializers.IntegerField()
    monthly_limit = serializers.IntegerField(allow_null=True)
    monthly_remaining = serializers.IntegerField(allow_null=True)


class ErrorSerializer(serializers.Serializer):
    error = serializers.CharField()
    error_code = serializers.CharField()
    details = serializers.DictField(required=False)
