"""
Merchant request signature authentication for DRF.

Merchants sign every API request with their secret using the ``merchant``
signing scheme. Signed parameters travel in the JSON body for POST and in
the query string for GET, and must include ``merchant_id``, ``timestamp``
(epoch seconds) and ``sign``.

Example request body:
    {
        "merchant_id": "M100",
        "timestamp": 1760000000,
        "merchant_order_id": "dep-1001",
        "amount": 50000,
        "sign": "<md5 of canonical string + secret>"
    }
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from django.conf import settings
from rest_framework import exceptions
from rest_framework.authentication import BaseAuthentication

from gateway import signing
from gateway.models import Merchant

if TYPE_CHECKING:
    from rest_framework.request import Request

logger = logging.getLogger(__name__)

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH"})


class MerchantSignatureAuthentication(BaseAuthentication):
    """
    Authenticate a request as a Merchant by verifying its signature.

    Returns None when the request carries no merchant_id, so unsigned
    requests fail permission checks with 401 instead of 403.
    """

    def authenticate(self, request: Request) -> tuple[Merchant, None] | None:
        params = self._signed_params(request)
        merchant_id = params.get("merchant_id")
        if not merchant_id:
            return None

        self._check_timestamp(params.get("timestamp"))

        try:
            merchant = Merchant.objects.get(merchant_id=merchant_id)
        except Merchant.DoesNotExist:
            raise exceptions.AuthenticationFailed("Unknown merchant") from None

        if not merchant.is_active:
            raise exceptions.AuthenticationFailed("Merchant is not active")

        if not signing.verify(params, merchant.secret_key, "merchant", params.get("sign")):
            logger.warning(
                "Merchant request signature mismatch",
                extra={"merchant_id": merchant_id, "path": request.path},
            )
            raise exceptions.AuthenticationFailed("Invalid signature")

        return (merchant, None)

    def authenticate_header(self, request: Request) -> str:
        return 'Signature realm="api"'

    def _signed_params(self, request: Request) -> dict[str, Any]:
        source = request.data if request.method in WRITE_METHODS else request.query_params
        if not hasattr(source, "items"):
            return {}
        if hasattr(source, "dict"):
            # QueryDict: one value per key
            return source.dict()
        return dict(source)

    def _check_timestamp(self, value: Any) -> None:
        try:
            timestamp = int(value)
        except (TypeError, ValueError):
            raise exceptions.AuthenticationFailed("Missing or invalid timestamp") from None

        tolerance = settings.GATEWAY_REQUEST_TIMESTAMP_TOLERANCE_SECONDS
        if abs(time.time() - timestamp) > tolerance:
            raise exceptions.AuthenticationFailed("Request timestamp outside tolerance")
