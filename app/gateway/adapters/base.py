"""
Provider adapter base class and canonical data types.

An adapter turns canonical requests into one provider's signed HTTP calls
and maps the provider's answers and callbacks back to canonical fields.
Adapters are bound to a ProviderConfig (credentials, environment) and are
cheap to construct; build one per operation.

Features:
- Bounded timeouts on every call
- Retries with exponential backoff on transport failures only
- Error translation to ProviderTransportError / ProviderBusinessError
- Structured logging with timing metrics
- Signature verification before any callback field is trusted

Usage:
    from gateway.adapters import registry

    adapter = registry.for_config(config)
    result = adapter.create_collection(
        CollectionParams(
            merchant_order_id="M-1001",
            amount=50000,
            currency="INR",
            notify_url=adapter.callback_url(),
        )
    )
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, ClassVar

import requests
from django.conf import settings
from django.urls import reverse
from urllib3.exceptions import ConnectTimeoutError, MaxRetryError, NewConnectionError

from gateway import signing
from gateway.exceptions import (
    ProviderBusinessError,
    ProviderTransportError,
    UnsupportedOperationError,
)
from gateway.state_machines import Direction, Environment, ProviderStatus

if TYPE_CHECKING:
    from gateway.models import ProviderConfig


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CollectionParams:
    """
    Parameters for creating a collection (deposit).

    Attributes:
        merchant_order_id: Order id sent to the provider
        amount: Amount in minor units
        currency: ISO 4217 code
        notify_url: Where the provider posts callbacks
        return_url: Where the payer is sent after paying
        client_ip: Payer IP if known
        customer_name: Payer name, used by providers that validate it
        subject / description: Free text shown by some providers
    """

    merchant_order_id: str
    amount: int
    currency: str
    notify_url: str
    return_url: str = ""
    client_ip: str = ""
    customer_name: str = ""
    subject: str = ""
    description: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.merchant_order_id:
            raise ValueError("merchant_order_id is required")
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if not self.currency:
            raise ValueError("currency is required")


@dataclass
class PayoutParams(CollectionParams):
    """Parameters for creating a payout (withdrawal) to a bank account."""

    account_number: str = ""
    ifsc_code: str = ""
    account_holder: str = ""

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.account_number:
            raise ValueError("account_number is required")
        if not self.ifsc_code:
            raise ValueError("ifsc_code is required")
        if not self.account_holder:
            raise ValueError("account_holder is required")


@dataclass
class ProviderResult:
    """
    Normalised answer to a create, query or UTR call.

    Attributes:
        status: Canonical provider status
        merchant_order_id: Order id as known to the provider
        provider_reference: Provider transaction id
        pay_url: Payment page for collections
        utr / utr_status: Bank reference and its verification state
        amount: Amount reported by the provider, minor units
        raw_status: Provider status code as received
        raw_response: Full provider response body
    """

    status: ProviderStatus
    merchant_order_id: str
    provider_reference: str = ""
    pay_url: str = ""
    utr: str = ""
    utr_status: str = ""
    amount: int | None = None
    message: str = ""
    raw_status: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class BalanceResult:
    """Provider account balance in minor units."""

    available: int
    currency: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class CallbackEvent:
    """A verified provider callback in canonical form."""

    merchant_order_id: str
    status: ProviderStatus
    provider_reference: str = ""
    amount: int | None = None
    utr: str = ""
    raw_status: str = ""
    payload: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Helpers
# =============================================================================


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 10.0) -> float:
    """
    Exponential backoff delay with 0-25% jitter.

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 1: 2.0 - 2.5 seconds
        # Attempt 2: 4.0 - 5.0 seconds
    """
    delay = min(base * (2**attempt), max_delay)
    return delay + delay * random.uniform(0, 0.25)


def to_major_units(amount: int) -> str:
    """50000 -> "500.00" """
    return f"{Decimal(amount) / Decimal(100):.2f}"


def to_minor_units(value: Any) -> int | None:
    """ "500.00" -> 50000; empty values -> None."""
    if value is None or value == "":
        return None
    return int((Decimal(str(value)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def connection_never_opened(error: requests.exceptions.ConnectionError) -> bool:
    """
    True when the request cannot have reached the provider.

    Only connect timeouts and failures to establish the connection (refused,
    DNS) qualify. Resets and aborts may happen after the body was sent.
    """
    if isinstance(error, requests.exceptions.ConnectTimeout):
        return True
    reason = error.args[0] if error.args else None
    if isinstance(reason, MaxRetryError):
        reason = reason.reason
    return isinstance(reason, (NewConnectionError, ConnectTimeoutError))


def as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


# =============================================================================
# Provider Adapter
# =============================================================================


class ProviderAdapter:
    """
    Base class for provider adapters.

    Subclasses declare their capabilities and vocabulary as class
    attributes and implement the operations their provider offers.
    Anything not overridden raises UnsupportedOperationError.

    Class attributes:
        provider: Provider id (ProviderId value)
        channel_types: Channel types this adapter serves
        signing_scheme: Scheme id in gateway.signing.SCHEMES
        status_map / payout_status_map: Raw status (as str) -> ProviderStatus
        callback_ack: Body the provider expects when a callback is accepted
        callback_account_field: Callback field carrying the provider account id
        callback_order_field: Callback field carrying the merchant order id
        default_timeout: Seconds, when settings do not say otherwise
    """

    provider: ClassVar[str] = ""
    channel_types: ClassVar[tuple[str, ...]] = ()
    signing_scheme: ClassVar[str] = ""
    status_map: ClassVar[dict[str, ProviderStatus]] = {}
    payout_status_map: ClassVar[dict[str, ProviderStatus] | None] = None
    callback_ack: ClassVar[str] = "success"
    callback_account_field: ClassVar[str | None] = None
    callback_order_field: ClassVar[str] = ""
    default_timeout: ClassVar[int] = 15

    def __init__(self, config: ProviderConfig, session: requests.Session | None = None):
        self.config = config
        self.session = session or requests.Session()

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def provider_settings(self) -> dict[str, Any]:
        return settings.GATEWAY_PROVIDERS.get(self.provider, {})

    @property
    def base_url(self) -> str:
        if self.config.base_url:
            return self.config.base_url.rstrip("/")
        key = (
            "SANDBOX_BASE_URL"
            if self.config.environment == Environment.SANDBOX
            else "BASE_URL"
        )
        return self.provider_settings.get(key, "").rstrip("/")

    @property
    def timeout(self) -> float:
        return self.provider_settings.get("TIMEOUT_SECONDS", self.default_timeout)

    @property
    def max_retries(self) -> int:
        return self.provider_settings.get("MAX_RETRIES", settings.GATEWAY_HTTP_MAX_RETRIES)

    def callback_url(self) -> str:
        """URL handed to the provider for asynchronous status callbacks."""
        if self.config.notify_url:
            return self.config.notify_url
        path = reverse("gateway:provider-callback", kwargs={"provider": self.provider})
        return f"{settings.GATEWAY_PUBLIC_BASE_URL.rstrip('/')}{path}"

    # =========================================================================
    # Operations (override what the provider supports)
    # =========================================================================

    def create_collection(self, params: CollectionParams) -> ProviderResult:
        self._unsupported("create_collection")

    def create_payout(self, params: PayoutParams) -> ProviderResult:
        self._unsupported("create_payout")

    def query_order(
        self,
        merchant_order_id: str,
        direction: str = Direction.COLLECTION,
        provider_reference: str = "",
    ) -> ProviderResult:
        self._unsupported("query_order")

    def query_balance(self) -> BalanceResult:
        self._unsupported("query_balance")

    def submit_utr(
        self, merchant_order_id: str, utr: str, provider_reference: str = ""
    ) -> ProviderResult:
        self._unsupported("submit_utr")

    def query_utr(self, merchant_order_id: str, provider_reference: str = "") -> ProviderResult:
        self._unsupported("query_utr")

    def _build_callback_event(
        self, payload: dict[str, Any], direction: str
    ) -> CallbackEvent:
        raise NotImplementedError

    # =========================================================================
    # Callbacks
    # =========================================================================

    @classmethod
    def callback_lookup(cls, payload: dict[str, Any]) -> tuple[str | None, str | None]:
        """
        Extract routing keys from an unverified callback.

        Returns:
            (provider account id or None, merchant order id or None)
        """
        account_id = None
        if cls.callback_account_field:
            account_id = payload.get(cls.callback_account_field) or None
        order_id = payload.get(cls.callback_order_field) or None
        return (
            str(account_id) if account_id is not None else None,
            str(order_id) if order_id is not None else None,
        )

    def verify_callback(self, payload: dict[str, Any]) -> bool:
        return signing.verify(
            payload, self.config.secret_key, self.signing_scheme, payload.get("sign")
        )

    def parse_callback(
        self, payload: dict[str, Any], direction: str = Direction.COLLECTION
    ) -> CallbackEvent:
        """
        Verify and normalise a callback.

        Raises:
            SignatureMismatchError: Before any field is interpreted
        """
        signing.verify_or_raise(
            payload, self.config.secret_key, self.signing_scheme, payload.get("sign")
        )
        return self._build_callback_event(payload, direction)

    # =========================================================================
    # Status Mapping
    # =========================================================================

    def map_status(self, raw: Any, direction: str = Direction.COLLECTION) -> ProviderStatus:
        """Map a provider status code; unknown codes become PROCESSING."""
        table = self.status_map
        if direction == Direction.PAYOUT and self.payout_status_map is not None:
            table = self.payout_status_map
        status = table.get(str(raw))
        if status is None:
            self.get_logger().warning(
                "Unmapped provider status",
                extra={
                    "provider": self.provider,
                    "raw_status": raw,
                    "direction": direction,
                },
            )
            return ProviderStatus.PROCESSING
        return status

    # =========================================================================
    # HTTP
    # =========================================================================

    def sign(self, params: dict[str, Any]) -> str:
        return signing.sign(params, self.config.secret_key, self.signing_scheme)

    def _is_success(self, body: dict[str, Any]) -> bool:
        raise NotImplementedError

    def _error_code(self, body: dict[str, Any]) -> Any:
        return body.get("code")

    def _error_message(self, body: dict[str, Any]) -> str:
        return str(body.get("message") or body.get("msg") or "Provider rejected the request")

    def _call(self, path: str, params: dict[str, Any], operation: str) -> dict[str, Any]:
        """
        Sign, send and validate one provider request.

        Raises:
            ProviderTransportError: Network failure, non-2xx, undecodable body
            ProviderBusinessError: Provider answered with a failure code
        """
        body, resent = self._post(path, params, operation)
        if not self._is_success(body):
            code = self._error_code(body)
            message = self._error_message(body)
            self.get_logger().warning(
                "Provider rejected request",
                extra={
                    "provider": self.provider,
                    "operation": operation,
                    "provider_code": code,
                    "provider_message": message,
                    "resent": resent,
                },
            )
            raise ProviderBusinessError(
                message,
                provider_code=code,
                provider=self.provider,
                maybe_delivered=resent,
            )
        return body

    def _post(
        self, path: str, params: dict[str, Any], operation: str
    ) -> tuple[dict[str, Any], bool]:
        """
        Send one signed request, retrying transport failures.

        Returns the decoded body and whether an earlier attempt may already
        have reached the provider.
        """
        logger = self.get_logger()
        payload = {**params, "sign": self.sign(params)}
        url = f"{self.base_url}{path}"

        log_context = {
            "operation": operation,
            "provider": self.provider,
            "account_name": self.config.account_name,
            "url": url,
        }

        start_time = time.time()
        logger.info("Starting provider request", extra=log_context)

        maybe_delivered = False
        response = None
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            try:
                response = self.session.post(url, json=payload, timeout=self.timeout)
                break
            except requests.exceptions.ConnectionError as e:
                if not connection_never_opened(e):
                    maybe_delivered = True
                error = e
            except requests.exceptions.Timeout as e:
                maybe_delivered = True
                error = e

            if attempt + 1 < attempts:
                delay = backoff_delay(
                    attempt,
                    base=settings.GATEWAY_HTTP_RETRY_BASE_DELAY,
                    max_delay=settings.GATEWAY_HTTP_RETRY_MAX_DELAY,
                )
                logger.warning(
                    "Provider request failed, retrying",
                    extra={
                        **log_context,
                        "attempt": attempt + 1,
                        "delay": delay,
                        "error": type(error).__name__,
                    },
                )
                time.sleep(delay)

        duration_ms = (time.time() - start_time) * 1000

        if response is None:
            logger.error(
                "Provider request failed after retries",
                extra={
                    **log_context,
                    "attempts": attempts,
                    "maybe_delivered": maybe_delivered,
                    "duration_ms": duration_ms,
                },
            )
            raise ProviderTransportError(
                f"{self.provider} unreachable after {attempts} attempts",
                maybe_delivered=maybe_delivered,
                provider=self.provider,
                details={"operation": operation},
            )

        if not response.ok:
            logger.error(
                "Provider returned HTTP error",
                extra={
                    **log_context,
                    "http_status": response.status_code,
                    "duration_ms": duration_ms,
                },
            )
            raise ProviderTransportError(
                f"{self.provider} returned HTTP {response.status_code}",
                maybe_delivered=True,
                provider=self.provider,
                details={"operation": operation, "http_status": response.status_code},
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            logger.error(
                "Provider returned an undecodable body",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise ProviderTransportError(
                f"{self.provider} returned an invalid response body",
                maybe_delivered=True,
                provider=self.provider,
                details={"operation": operation},
            )

        logger.info(
            "Provider request completed",
            extra={
                **log_context,
                "http_status": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return body, maybe_delivered

    def _unsupported(self, operation: str):
        raise UnsupportedOperationError(
            f"{self.provider} does not support {operation}",
            details={"provider": self.provider, "operation": operation},
        )
