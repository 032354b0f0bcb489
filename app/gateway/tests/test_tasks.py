"""
Tests for gateway Celery tasks.

Tasks are invoked through ``task.run`` so autoretry raises the original
exception instead of scheduling a retry. The final retry is simulated by
pushing a request context with ``retries`` set.
"""

import pytest
import requests
from freezegun import freeze_time

from gateway.exceptions import NotificationDeliveryError
from gateway.models import MerchantNotification, Order, ProviderCallback
from gateway.state_machines import NotificationStatus, OrderStatus
from gateway.tasks import (
    MAX_NOTIFICATION_RETRIES,
    cleanup_old_callbacks,
    deliver_merchant_notification,
    reconcile_stale_orders,
    redeliver_pending_notifications,
)
from gateway.tests.factories import (
    MerchantNotificationFactory,
    OrderFactory,
    ProviderCallbackFactory,
)
from gateway.tests.helpers import provider_response

NOW = "2025-03-14 06:00:00"


# =============================================================================
# Notification Delivery Tests
# =============================================================================


@pytest.mark.django_db
class TestDeliverMerchantNotification:
    """Tests for the delivery task and its retry budget."""

    def test_delivered(self, mock_notify_post):
        notification = MerchantNotificationFactory()

        result = deliver_merchant_notification.run(str(notification.pk))

        assert result == {
            "status": "delivered",
            "notification_id": str(notification.pk),
            "attempts": 1,
        }

    def test_failure_is_raised_for_retry(self, mock_notify_post):
        mock_notify_post.return_value = provider_response({}, status_code=503)
        notification = MerchantNotificationFactory()

        with pytest.raises(NotificationDeliveryError):
            deliver_merchant_notification.run(str(notification.pk))

        stored = MerchantNotification.objects.get(pk=notification.pk)
        assert stored.status == NotificationStatus.PENDING
        assert stored.last_error == "HTTP 503"

    def test_last_retry_marks_failed(self, mock_notify_post):
        mock_notify_post.return_value = provider_response({}, status_code=503)
        notification = MerchantNotificationFactory()

        deliver_merchant_notification.push_request(retries=MAX_NOTIFICATION_RETRIES)
        try:
            result = deliver_merchant_notification.run(str(notification.pk))
        finally:
            deliver_merchant_notification.pop_request()

        assert result["status"] == "failed"
        assert result["error"] == "Notification delivery failed: HTTP 503"
        stored = MerchantNotification.objects.get(pk=notification.pk)
        assert stored.status == NotificationStatus.FAILED

    def test_missing_notification(self, db):
        notification_id = "00000000-0000-0000-0000-000000000000"

        result = deliver_merchant_notification.run(notification_id)

        assert result == {"status": "not_found", "notification_id": notification_id}


@pytest.mark.django_db
class TestRedeliverPendingNotifications:
    @freeze_time(NOW)
    def test_requeues_only_old_pending_rows(self, mock_deliver_task):
        with freeze_time("2025-03-14 05:30:00"):
            stuck = MerchantNotificationFactory()
            MerchantNotificationFactory(status=NotificationStatus.DELIVERED)
            MerchantNotificationFactory(status=NotificationStatus.FAILED)
        MerchantNotificationFactory()

        result = redeliver_pending_notifications()

        assert result == {"queued_count": 1}
        mock_deliver_task.assert_called_once_with(str(stuck.pk))

    def test_nothing_to_requeue(self, db, mock_deliver_task):
        assert redeliver_pending_notifications() == {"queued_count": 0}
        mock_deliver_task.assert_not_called()


# =============================================================================
# Reconciliation Tests
# =============================================================================


@freeze_time(NOW)
class TestReconcileStaleOrders:
    """Tests for the periodic provider sync."""

    def test_syncs_stale_window_only(self, passpay_config, mock_session):
        with freeze_time("2025-03-10 05:00:00"):
            OrderFactory(provider_config=passpay_config, merchant_order_id="ancient")
        with freeze_time("2025-03-14 05:00:00"):
            stale = OrderFactory(provider_config=passpay_config, merchant_order_id="stale")
            OrderFactory(
                provider_config=passpay_config,
                merchant_order_id="settled",
                status=OrderStatus.SUCCESS,
            )
        OrderFactory(provider_config=passpay_config, merchant_order_id="fresh")
        mock_session.post.return_value = provider_response(
            {"rCode": 200, "data": {"status": 2, "trade_no": "T1"}}
        )

        result = reconcile_stale_orders()

        assert result == {"checked_count": 1, "changed_count": 1, "failed_count": 0}
        assert mock_session.post.call_count == 1
        assert mock_session.post.call_args.kwargs["json"]["out_trade_no"] == "stale"
        assert Order.objects.get(pk=stale.pk).status == OrderStatus.SUCCESS

    def test_provider_failure_does_not_stop_batch(self, passpay_config, mock_session):
        with freeze_time("2025-03-14 04:00:00"):
            first = OrderFactory(provider_config=passpay_config, merchant_order_id="a")
        with freeze_time("2025-03-14 05:00:00"):
            second = OrderFactory(
                provider_config=passpay_config,
                merchant_order_id="b",
                status=OrderStatus.PROCESSING,
            )
        mock_session.post.side_effect = [
            requests.exceptions.ConnectionError(),
            requests.exceptions.ConnectionError(),
            requests.exceptions.ConnectionError(),
            provider_response({"rCode": 200, "data": {"status": 1}}),
        ]

        result = reconcile_stale_orders()

        assert result == {"checked_count": 2, "changed_count": 0, "failed_count": 1}
        assert Order.objects.get(pk=first.pk).status == OrderStatus.PENDING
        assert Order.objects.get(pk=second.pk).status == OrderStatus.PROCESSING

    def test_order_unknown_to_provider_is_settled(self, passpay_config, mock_session):
        """A timed-out create the provider never saw stops holding usage."""
        with freeze_time("2025-03-14 05:00:00"):
            lost = OrderFactory(provider_config=passpay_config, merchant_order_id="lost")
        mock_session.post.return_value = provider_response(
            {"rCode": 404, "message": "order not exist"}
        )

        result = reconcile_stale_orders()

        assert result == {"checked_count": 1, "changed_count": 1, "failed_count": 0}
        stored = Order.objects.get(pk=lost.pk)
        assert stored.status == OrderStatus.FAILED
        assert stored.usage_reserved is False


# =============================================================================
# Cleanup Tests
# =============================================================================


@freeze_time(NOW)
class TestCleanupOldCallbacks:
    def test_deletes_rows_past_retention(self, db):
        with freeze_time("2024-12-01 00:00:00"):
            ProviderCallbackFactory()
        kept = ProviderCallbackFactory()

        result = cleanup_old_callbacks()

        assert result == {"deleted_count": 1}
        assert list(ProviderCallback.objects.all()) == [kept]

    def test_custom_retention(self, db):
        with freeze_time("2025-03-10 00:00:00"):
            ProviderCallbackFactory()

        assert cleanup_old_callbacks(days=3) == {"deleted_count": 1}
