"""
Tests for NotificationSink: outbox writes and delivery.
"""

import pytest
import requests
from freezegun import freeze_time

from gateway import signing
from gateway.exceptions import NotificationDeliveryError
from gateway.models import MerchantNotification
from gateway.services import NotificationSink
from gateway.state_machines import NotificationStatus, OrderStatus
from gateway.tests.factories import MerchantNotificationFactory, OrderFactory
from gateway.tests.helpers import provider_response


# =============================================================================
# Payload & Enqueue Tests
# =============================================================================


class TestBuildPayload:
    @freeze_time("2025-10-09 08:53:20")
    def test_payload_is_signed_with_merchant_secret(self, passpay_config):
        order = OrderFactory(
            provider_config=passpay_config,
            status=OrderStatus.SUCCESS,
            utr="UTR1",
        )

        payload = NotificationSink.build_payload(order)

        assert payload["merchant_id"] == "M100"
        assert payload["status"] == OrderStatus.SUCCESS
        assert payload["utr"] == "UTR1"
        assert payload["timestamp"] == 1760000000
        assert signing.verify(payload, "merchant-secret", "merchant", payload["sign"])


class TestEnqueue:
    """Tests for writing outbox rows."""

    def test_creates_row_and_schedules_on_commit(
        self, pending_order, mock_deliver_task, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            notification = NotificationSink.enqueue(pending_order)

        assert len(callbacks) == 1
        mock_deliver_task.assert_called_once_with(str(notification.pk))
        assert notification.order_status == OrderStatus.PENDING
        assert notification.notify_url == "https://merchant.example/notify"
        assert notification.payload["merchant_order_id"] == "dep-1001"

    def test_nothing_scheduled_before_commit(self, pending_order, mock_deliver_task):
        NotificationSink.enqueue(pending_order)

        mock_deliver_task.assert_not_called()

    def test_one_row_per_status(
        self, pending_order, mock_deliver_task, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            first = NotificationSink.enqueue(pending_order)
            second = NotificationSink.enqueue(pending_order)

        assert first.pk == second.pk
        assert len(callbacks) == 1
        assert MerchantNotification.objects.count() == 1

    def test_skipped_without_notify_url(self, passpay_config, mock_deliver_task):
        order = OrderFactory(provider_config=passpay_config, notify_url="")

        assert NotificationSink.enqueue(order) is None
        assert not MerchantNotification.objects.exists()


# =============================================================================
# Delivery Tests
# =============================================================================


@pytest.mark.django_db
class TestDeliver:
    """Tests for POSTing notifications to merchants."""

    def test_2xx_marks_delivered(self, mock_notify_post):
        mock_notify_post.return_value = provider_response({}, status_code=204)
        notification = MerchantNotificationFactory()

        result = NotificationSink.deliver(notification.pk)

        assert result.is_delivered
        assert result.attempts == 1
        stored = MerchantNotification.objects.get(pk=notification.pk)
        assert stored.status == NotificationStatus.DELIVERED
        assert stored.delivered_at is not None

        args, kwargs = mock_notify_post.call_args
        assert args == ("https://merchant.example/notify",)
        assert kwargs["json"] == notification.payload
        assert kwargs["timeout"] == 10

    def test_non_2xx_raises_and_records_error(self, mock_notify_post):
        mock_notify_post.return_value = provider_response({}, status_code=500)
        notification = MerchantNotificationFactory()

        with pytest.raises(NotificationDeliveryError):
            NotificationSink.deliver(notification.pk)

        stored = MerchantNotification.objects.get(pk=notification.pk)
        assert stored.status == NotificationStatus.PENDING
        assert stored.attempts == 1
        assert stored.last_error == "HTTP 500"

    def test_network_error_raises(self, mock_notify_post):
        mock_notify_post.side_effect = requests.exceptions.ConnectionError("refused")
        notification = MerchantNotificationFactory()

        with pytest.raises(NotificationDeliveryError) as exc_info:
            NotificationSink.deliver(notification.pk)

        assert exc_info.value.is_retryable is True
        stored = MerchantNotification.objects.get(pk=notification.pk)
        assert stored.last_error.startswith("ConnectionError")

    def test_already_delivered_is_not_resent(self, mock_notify_post):
        notification = MerchantNotificationFactory(status=NotificationStatus.DELIVERED)

        NotificationSink.deliver(notification.pk)

        mock_notify_post.assert_not_called()

    def test_unknown_notification(self, db):
        with pytest.raises(MerchantNotification.DoesNotExist):
            NotificationSink.deliver("00000000-0000-0000-0000-000000000000")

    def test_mark_failed(self, db):
        notification = MerchantNotificationFactory(attempts=7)

        NotificationSink.mark_failed(notification.pk, "HTTP 502")

        stored = MerchantNotification.objects.get(pk=notification.pk)
        assert stored.status == NotificationStatus.FAILED
        assert stored.last_error == "HTTP 502"
