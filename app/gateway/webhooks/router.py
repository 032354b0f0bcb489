"""
Provider callback router.

Thin dispatcher between the HTTP endpoint and the ReconciliationEngine:

1. Decode the body (JSON, falling back to form encoding)
2. Record or refresh the ProviderCallback audit row (keyed by body digest)
3. Hand the payload to ReconciliationEngine.handle_callback
4. Mark the audit row applied, duplicate or rejected
5. Turn domain errors into a failed ServiceResult

Usage:
    from gateway.webhooks.router import CallbackRouter

    result = CallbackRouter.dispatch(
        CallbackRequest(provider_id="passpay", raw_body=request.body)
    )
    if result.success:
        return HttpResponse(result.data.ack_body)
"""

from __future__ import annotations

import json
from urllib.parse import parse_qsl

from django.db.models import F
from django.utils import timezone

from core.exceptions import BaseApplicationError
from core.helpers import hash_string
from core.services import BaseService, ServiceResult
from gateway.adapters import registry
from gateway.exceptions import GatewayValidationError
from gateway.models import Order, ProviderCallback
from gateway.services import ReconciliationEngine
from gateway.state_machines import CallbackStatus
from gateway.types import CallbackAck, CallbackRequest

MAX_RECORDED_ERROR_LENGTH = 500


class CallbackRouter(BaseService):
    """All methods are class methods."""

    @classmethod
    def dispatch(cls, request: CallbackRequest) -> ServiceResult[CallbackAck]:
        provider = request.provider_id
        logger = cls.get_logger()

        try:
            adapter_class = registry.adapter_class_for_provider(provider)
        except BaseApplicationError as e:
            logger.warning("Callback for unknown provider", extra={"provider": provider})
            return ServiceResult.from_exception(e)

        try:
            payload = cls.decode_body(request.raw_body, request.content_type)
        except GatewayValidationError as e:
            logger.warning(
                "Undecodable provider callback",
                extra={"provider": provider, "content_type": request.content_type},
            )
            return ServiceResult.from_exception(e)

        _, merchant_order_id = adapter_class.callback_lookup(payload)
        audit = cls._record(provider, request.raw_body, payload, merchant_order_id or "")

        try:
            ack = ReconciliationEngine.handle_callback(payload, provider)
        except BaseApplicationError as e:
            audit.mark_rejected(e.error_code, e.message[:MAX_RECORDED_ERROR_LENGTH])
            audit.save()
            logger.warning(
                "Provider callback rejected",
                extra={
                    "provider": provider,
                    "callback_id": str(audit.pk),
                    "error_code": e.error_code,
                },
            )
            return ServiceResult.from_exception(e)

        order = Order.objects.filter(order_id=ack.order_id).first()
        if ack.changed:
            audit.mark_applied(order)
        elif audit.status != CallbackStatus.APPLIED:
            # Redelivery of a body that was applied earlier keeps its status
            audit.mark_duplicate(order)
        audit.save()

        return ServiceResult.ok(ack)

    @classmethod
    def decode_body(cls, raw_body: bytes, content_type: str = "") -> dict:
        """
        Parse a callback body into a flat dict.

        JSON is tried first; providers that post form-encoded bodies are
        handled by the fallback.

        Raises:
            GatewayValidationError: Empty or undecodable body (INVALID_PAYLOAD)
        """
        try:
            text = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            text = ""

        payload = None
        if text.strip():
            try:
                payload = json.loads(text)
            except ValueError:
                pairs = parse_qsl(text, keep_blank_values=True)
                payload = dict(pairs) if pairs else None

        if not isinstance(payload, dict) or not payload:
            raise GatewayValidationError(
                "Callback body is not a JSON object or form data",
                error_code="INVALID_PAYLOAD",
                details={"content_type": content_type},
            )
        return payload

    @classmethod
    def _record(
        cls, provider: str, raw_body: bytes, payload: dict, merchant_order_id: str
    ) -> ProviderCallback:
        """Create the audit row, or bump the delivery count of a redelivery."""
        digest = hash_string(raw_body, "sha256")
        audit, created = ProviderCallback.objects.get_or_create(
            provider=provider,
            body_digest=digest,
            defaults={
                "payload": payload,
                "merchant_order_id": merchant_order_id[:64],
                "status": CallbackStatus.RECEIVED,
            },
        )
        if not created:
            ProviderCallback.objects.filter(pk=audit.pk).update(
                delivery_count=F("delivery_count") + 1,
                updated_at=timezone.now(),
            )
            audit.delivery_count += 1
            cls.get_logger().info(
                "Provider callback redelivered",
                extra={
                    "provider": provider,
                    "callback_id": str(audit.pk),
                    "delivery_count": audit.delivery_count,
                },
            )
        return audit
