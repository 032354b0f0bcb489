"""
Tests for merchant API serializers.
"""

import datetime

from gateway.serializers import (
    OrderSerializer,
    SubmitOrderSerializer,
    UsageSnapshotSerializer,
    UtrSubmitSerializer,
)
from gateway.services import UsageSnapshot
from gateway.state_machines import Direction, OrderStatus
from gateway.tests.factories import OrderFactory


class TestSubmitOrderSerializer:
    """Tests for order submission validation."""

    def test_minimal_collection_gets_defaults(self):
        serializer = SubmitOrderSerializer(
            data={"merchant_order_id": "dep-1", "amount": 50_000}
        )

        assert serializer.is_valid(), serializer.errors
        request = serializer.to_submit_request("M100", client_ip="10.1.2.3")

        assert request.direction == Direction.COLLECTION
        assert request.currency == "INR"
        assert request.channel is None
        assert request.client_ip == "10.1.2.3"
        assert request.extra == {}

    def test_currency_is_upper_cased(self):
        serializer = SubmitOrderSerializer(
            data={"merchant_order_id": "dep-1", "amount": 100, "currency": "inr"}
        )

        assert serializer.is_valid()
        assert serializer.validated_data["currency"] == "INR"

    def test_explicit_client_ip_wins(self):
        serializer = SubmitOrderSerializer(
            data={"merchant_order_id": "dep-1", "amount": 100, "client_ip": "203.0.113.9"}
        )

        assert serializer.is_valid()
        assert serializer.to_submit_request("M100", client_ip="10.0.0.1").client_ip == (
            "203.0.113.9"
        )

    def test_amount_must_be_positive(self):
        serializer = SubmitOrderSerializer(data={"merchant_order_id": "dep-1", "amount": 0})

        assert not serializer.is_valid()
        assert "amount" in serializer.errors

    def test_payout_requires_payee(self):
        serializer = SubmitOrderSerializer(
            data={
                "merchant_order_id": "wd-1",
                "amount": 100,
                "direction": "payout",
                "account_number": "1234567890",
            }
        )

        assert not serializer.is_valid()
        assert set(serializer.errors) == {"ifsc_code", "account_holder"}

    def test_payout_ifsc_is_upper_cased(self):
        serializer = SubmitOrderSerializer(
            data={
                "merchant_order_id": "wd-1",
                "amount": 100,
                "direction": "payout",
                "account_number": "1234567890",
                "ifsc_code": "hdfc0001234",
                "account_holder": "Asha Rao",
            }
        )

        assert serializer.is_valid(), serializer.errors
        assert serializer.to_submit_request("M100").ifsc_code == "HDFC0001234"

    def test_malformed_ifsc(self):
        serializer = SubmitOrderSerializer(
            data={
                "merchant_order_id": "wd-1",
                "amount": 100,
                "direction": "payout",
                "account_number": "1234567890",
                "ifsc_code": "HDFC1234",
                "account_holder": "Asha Rao",
            }
        )

        assert not serializer.is_valid()
        assert "ifsc_code" in serializer.errors


class TestUtrSubmitSerializer:
    def test_alphanumeric_only(self):
        assert UtrSubmitSerializer(data={"utr": "412345678901"}).is_valid()
        assert not UtrSubmitSerializer(data={"utr": "4123-4567"}).is_valid()
        assert not UtrSubmitSerializer(data={"utr": "x" * 65}).is_valid()


class TestOutputSerializers:
    def test_order_exposes_channel_name(self, db):
        order = OrderFactory(status=OrderStatus.PROCESSING)

        data = OrderSerializer(order).data

        assert data["channel"] == order.provider_config.account_name
        assert data["status"] == OrderStatus.PROCESSING
        assert "merchant" not in data

    def test_usage_snapshot_remaining(self):
        snapshot = UsageSnapshot(
            direction=Direction.COLLECTION,
            day=datetime.date(2025, 3, 14),
            day_used=45_000,
            daily_limit=50_000,
            month=datetime.date(2025, 3, 1),
            month_used=45_000,
            monthly_limit=None,
        )

        data = UsageSnapshotSerializer(snapshot).data

        assert data["daily_remaining"] == 5_000
        assert data["monthly_remaining"] is None
        assert data["day"] == "2025-03-14"
