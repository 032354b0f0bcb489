"""
Merchant notifications for order state changes.

Notifications go through an outbox: the MerchantNotification row is written
in the same transaction as the state change, and delivery is scheduled on
commit. A row exists at most once per (order, status), so a duplicate
callback can never notify twice.

Delivery is at-least-once. The payload is signed with the merchant's secret
using the ``merchant`` signing scheme; merchants verify it the same way they
sign their API requests.

Usage:
    from gateway.services import NotificationSink

    with transaction.atomic():
        outcome = OrderStateMachine.apply_provider_status(order, status)
        if outcome.changed:
            NotificationSink.enqueue(outcome.order)
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import requests
from django.conf import settings
from django.db import transaction

from core.services import BaseService
from gateway import signing
from gateway.exceptions import NotificationDeliveryError
from gateway.models import MerchantNotification

if TYPE_CHECKING:
    from uuid import UUID

    from gateway.models import Order


class NotificationSink(BaseService):
    """Outbox writer and deliverer for merchant notifications."""

    @classmethod
    def build_payload(cls, order: Order) -> dict[str, Any]:
        """Signed notification body for the order's current state."""
        payload: dict[str, Any] = {
            "merchant_id": order.merchant.merchant_id,
            "order_id": order.order_id,
            "merchant_order_id": order.merchant_order_id,
            "direction": order.direction,
            "amount": order.amount,
            "currency": order.currency,
            "status": order.status,
            "provider_reference": order.provider_reference,
            "utr": order.utr,
            "timestamp": int(time.time()),
        }
        payload["sign"] = signing.sign(payload, order.merchant.secret_key, "merchant")
        return payload

    @classmethod
    def enqueue(cls, order: Order) -> MerchantNotification | None:
        """
        Write the outbox row for the order's current status.

        Delivery is scheduled only when the row is new, and only after the
        surrounding transaction commits.

        Returns:
            The notification row, or None when the order has no notify_url
        """
        if not order.notify_url:
            cls.get_logger().info(
                "Order has no notify_url, skipping notification",
                extra={"order_id": order.order_id, "status": order.status},
            )
            return None

        notification, created = MerchantNotification.objects.get_or_create(
            order=order,
            order_status=order.status,
            defaults={
                "notify_url": order.notify_url,
                "payload": cls.build_payload(order),
            },
        )

        if created:
            # Import here to avoid circular imports
            from gateway.tasks import deliver_merchant_notification

            notification_id = str(notification.pk)
            transaction.on_commit(
                lambda: deliver_merchant_notification.delay(notification_id)
            )
            cls.get_logger().info(
                "Merchant notification queued",
                extra={
                    "order_id": order.order_id,
                    "status": order.status,
                    "notification_id": notification_id,
                },
            )

        return notification

    @classmethod
    def deliver(cls, notification_id: UUID | str) -> MerchantNotification:
        """
        POST the notification to the merchant.

        Any 2xx response counts as delivered.

        Raises:
            NotificationDeliveryError: Network failure or non-2xx response
        """
        notification = MerchantNotification.objects.select_related("order").get(
            pk=notification_id
        )
        if notification.is_delivered:
            return notification

        log_context = {
            "notification_id": str(notification.pk),
            "order_id": notification.order.order_id,
            "order_status": notification.order_status,
        }

        notification.mark_attempt()
        start_time = time.time()
        try:
            response = requests.post(
                notification.notify_url,
                json=notification.payload,
                timeout=settings.GATEWAY_NOTIFICATION_TIMEOUT_SECONDS,
            )
        except requests.exceptions.RequestException as e:
            error = f"{type(e).__name__}: {e}"
        else:
            if 200 <= response.status_code < 300:
                notification.mark_delivered()
                notification.save()
                cls.get_logger().info(
                    "Merchant notification delivered",
                    extra={
                        **log_context,
                        "attempts": notification.attempts,
                        "duration_ms": (time.time() - start_time) * 1000,
                    },
                )
                return notification
            error = f"HTTP {response.status_code}"

        notification.last_error = error
        notification.save()
        cls.get_logger().warning(
            "Merchant notification delivery failed",
            extra={**log_context, "attempts": notification.attempts, "error": error},
        )
        raise NotificationDeliveryError(
            f"Notification delivery failed: {error}",
            details=log_context,
        )

    @classmethod
    def mark_failed(cls, notification_id: UUID | str, error: str) -> None:
        """Give up on a notification after its last retry."""
        notification = MerchantNotification.objects.get(pk=notification_id)
        notification.mark_failed(error)
        notification.save()
        cls.get_logger().error(
            "Merchant notification abandoned",
            extra={
                "notification_id": str(notification.pk),
                "attempts": notification.attempts,
                "error": error,
            },
        )
