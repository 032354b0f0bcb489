"""
Celery tasks for the gateway.

This module provides async tasks for:
- Delivering merchant notifications (with retries)
- Reconciling stale orders with their providers
- Re-queueing notifications that never got delivered
- Purging old provider callback audit rows

Periodic tasks are scheduled by celery-beat; the schedules are seeded in
gateway/migrations/0002_add_reconciliation_schedules.py.

Usage:
    from gateway.tasks import deliver_merchant_notification

    deliver_merchant_notification.delay(str(notification.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.exceptions import BaseApplicationError
from gateway.exceptions import NotificationDeliveryError
from gateway.models import MerchantNotification, Order, ProviderCallback
from gateway.state_machines import NotificationStatus, OrderStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_NOTIFICATION_RETRIES = settings.GATEWAY_NOTIFICATION_MAX_RETRIES
RECONCILE_BATCH_SIZE = 200
REDELIVERY_BATCH_SIZE = 100

# Notifications younger than this are still owned by their first delivery task
REDELIVERY_GRACE_MINUTES = 15


# =============================================================================
# Merchant Notification Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(NotificationDeliveryError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": MAX_NOTIFICATION_RETRIES},
    acks_late=True,
)
def deliver_merchant_notification(self, notification_id: str) -> dict:
    """
    POST one merchant notification.

    Failed deliveries raise NotificationDeliveryError and are retried with
    exponential backoff. After the last retry the notification is marked
    failed and the task ends without raising.

    Args:
        notification_id: UUID of the MerchantNotification

    Returns:
        Dict with delivery status
    """
    # Import here to avoid circular imports
    from gateway.services import NotificationSink

    try:
        notification = NotificationSink.deliver(notification_id)
    except MerchantNotification.DoesNotExist:
        logger.error(
            "MerchantNotification not found",
            extra={"notification_id": str(notification_id)},
        )
        return {"status": "not_found", "notification_id": str(notification_id)}
    except NotificationDeliveryError as e:
        if self.request.retries >= MAX_NOTIFICATION_RETRIES:
            NotificationSink.mark_failed(notification_id, e.message)
            return {
                "status": "failed",
                "notification_id": str(notification_id),
                "error": e.message,
            }
        logger.info(
            "Merchant notification will be retried",
            extra={
                "notification_id": str(notification_id),
                "retry": self.request.retries + 1,
                "max_retries": MAX_NOTIFICATION_RETRIES,
            },
        )
        raise

    return {
        "status": "delivered",
        "notification_id": str(notification_id),
        "attempts": notification.attempts,
    }


@shared_task
def redeliver_pending_notifications() -> dict:
    """
    Periodic task to re-queue notifications stuck in pending.

    Covers deliveries whose on-commit scheduling was lost (worker or broker
    restart). Recent rows are skipped; their first task may still be
    running or retrying.

    Returns:
        Dict with count of notifications queued
    """
    threshold = timezone.now() - timedelta(minutes=REDELIVERY_GRACE_MINUTES)
    pending = MerchantNotification.objects.filter(
        status=NotificationStatus.PENDING,
        updated_at__lt=threshold,
    ).order_by("created_at")[:REDELIVERY_BATCH_SIZE]

    queued_count = 0
    for notification in pending:
        deliver_merchant_notification.delay(str(notification.id))
        queued_count += 1

    if queued_count > 0:
        logger.info(
            f"Re-queued {queued_count} pending merchant notifications",
            extra={"queued_count": queued_count},
        )

    return {"queued_count": queued_count}


# =============================================================================
# Reconciliation Tasks
# =============================================================================


@shared_task
def reconcile_stale_orders() -> dict:
    """
    Periodic task to query providers for orders no callback has settled.

    Picks pending and processing orders older than
    GATEWAY_STALE_ORDER_MINUTES but younger than
    GATEWAY_STALE_ORDER_MAX_AGE_HOURS. A provider failure on one order is
    logged and the batch carries on.

    Returns:
        Dict with checked, changed and failed counts
    """
    # Import here to avoid circular imports
    from gateway.services import ReconciliationEngine

    now = timezone.now()
    stale_before = now - timedelta(minutes=settings.GATEWAY_STALE_ORDER_MINUTES)
    oldest = now - timedelta(hours=settings.GATEWAY_STALE_ORDER_MAX_AGE_HOURS)

    orders = (
        Order.objects.select_related("provider_config", "merchant")
        .filter(
            status__in=[OrderStatus.PENDING, OrderStatus.PROCESSING],
            created_at__lt=stale_before,
            created_at__gte=oldest,
        )
        .order_by("created_at")[:RECONCILE_BATCH_SIZE]
    )

    checked_count = 0
    changed_count = 0
    failed_count = 0
    for order in orders:
        checked_count += 1
        try:
            outcome = ReconciliationEngine.sync_order(order)
        except BaseApplicationError as e:
            failed_count += 1
            logger.warning(
                f"Stale order sync failed: {e.message}",
                extra={"order_id": order.order_id, "error_code": e.error_code},
            )
            continue
        if outcome.changed:
            changed_count += 1

    logger.info(
        "Stale order reconciliation finished",
        extra={
            "checked_count": checked_count,
            "changed_count": changed_count,
            "failed_count": failed_count,
        },
    )

    return {
        "checked_count": checked_count,
        "changed_count": changed_count,
        "failed_count": failed_count,
    }


@shared_task
def cleanup_old_callbacks(days: int | None = None) -> dict:
    """
    Periodic task to delete provider callback audit rows past retention.

    Args:
        days: Retention in days; defaults to GATEWAY_CALLBACK_RETENTION_DAYS

    Returns:
        Dict with count of rows deleted
    """
    if days is None:
        days = settings.GATEWAY_CALLBACK_RETENTION_DAYS
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = ProviderCallback.objects.filter(created_at__lt=cutoff).delete()

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old provider callbacks",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}
