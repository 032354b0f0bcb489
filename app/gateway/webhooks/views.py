"""
Provider callback endpoint.

Providers POST status callbacks here. Each provider expects a specific
plain-text acknowledgement; anything else makes it retry.

Usage:
    # In urls.py
    from gateway.webhooks.views import provider_callback

    urlpatterns = [
        path("callbacks/<str:provider>/", provider_callback, name="provider-callback"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from gateway.types import CallbackRequest
from gateway.webhooks.router import CallbackRouter

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = frozenset({"ORDER_NOT_FOUND", "UNSUPPORTED_CHANNEL"})


@csrf_exempt
@require_POST
def provider_callback(request: HttpRequest, provider: str) -> HttpResponse:
    """
    Receive a provider status callback and apply it synchronously.

    The callback is applied before responding, so a 200 means the state
    change is committed.

    Returns:
        HttpResponse with status:
        - 200: Accepted (new or duplicate); body is the provider's ack string
        - 400: Bad signature or undecodable payload
        - 404: Unknown provider or order
    """
    result = CallbackRouter.dispatch(
        CallbackRequest(
            provider_id=provider,
            raw_body=request.body,
            raw_headers=dict(request.headers),
            content_type=request.content_type or "",
        )
    )

    if result.success:
        return HttpResponse(result.data.ack_body, content_type="text/plain", status=200)

    status = 404 if result.error_code in NOT_FOUND_CODES else 400
    logger.info(
        "Provider callback answered with error",
        extra={"provider": provider, "error_code": result.error_code, "http_status": status},
    )
    return HttpResponse(result.error_code or "error", content_type="text/plain", status=status)
