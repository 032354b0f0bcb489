"""
Generic helper functions.

Helpers:
    hash_string: Hex digest of a string or bytes payload
    get_client_ip: Client IP extraction that honours proxy headers
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from django.http import HttpRequest


def hash_string(value: str | bytes, algorithm: str = "sha256") -> str:
    """
    Hash a string or raw bytes with the given algorithm.

    Example:
        digest = hash_string(request.body)
    """
    if isinstance(value, str):
        value = value.encode("utf-8")
    return hashlib.new(algorithm, value).hexdigest()


def get_client_ip(request: HttpRequest) -> str:
    """Extract client IP from request, handling proxies."""
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    if x_forwarded_for:
        # First IP in the chain is the original client
        return x_forwarded_for.split(",")[0].strip()
    return request.META.get("REMOTE_ADDR", "")
