"""
Gateway-specific exceptions.

Exception Hierarchy:
    GatewayValidationError (core ValidationError) - rejected before side effects
    ├── LimitExceededError - LimitGuard denial (code = denial reason)
    ├── SignatureMismatchError - signature did not verify
    ├── InvalidSchemeError - unknown signing scheme id
    ├── ChannelUnavailableError - no usable provider channel
    ├── UnsupportedChannelError - channel type / provider pair not registered
    └── UnsupportedOperationError - adapter does not offer the operation

    UnknownOrderError (core NotFoundError)
    MerchantNotFoundError (core NotFoundError)
    DuplicateOrderError (core ConflictError)

    ProviderError (core ExternalServiceError)
    ├── ProviderTransportError - network / HTTP failure (retryable)
    └── ProviderBusinessError - provider answered with a rejection

    NotificationDeliveryError (core ExternalServiceError) - merchant webhook failed

Every class declares is_retryable so callers can decide without isinstance
checks:

    except BaseApplicationError as e:
        if e.is_retryable:
            raise self.retry(exc=e)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Validation Errors (never retried)
# =============================================================================


class GatewayValidationError(ValidationError):
    """Request rejected before any reservation or provider contact."""

    default_error_code: str = "VALIDATION_ERROR"


class LimitExceededError(GatewayValidationError):
    """
    LimitGuard refused the reservation.

    error_code is the DenialReason value (AMOUNT_OUT_OF_RANGE,
    DAILY_LIMIT_EXCEEDED or MONTHLY_LIMIT_EXCEEDED).
    """

    default_error_code: str = "LIMIT_EXCEEDED"


class SignatureMismatchError(GatewayValidationError):
    """
    Signature did not verify.

    Raised before any state is read or written on behalf of the payload.
    """

    default_error_code: str = "SIGNATURE_MISMATCH"


class InvalidSchemeError(GatewayValidationError):
    default_error_code: str = "INVALID_SCHEME"


class ChannelUnavailableError(GatewayValidationError):
    """
    No provider channel can take the order.

    Codes: CHANNEL_NOT_FOUND, CHANNEL_INACTIVE, CHANNEL_UNSUPPORTED,
    NO_ACTIVE_CHANNEL, MERCHANT_INACTIVE.
    """

    default_error_code: str = "NO_ACTIVE_CHANNEL"


class UnsupportedChannelError(GatewayValidationError):
    default_error_code: str = "UNSUPPORTED_CHANNEL"


class UnsupportedOperationError(GatewayValidationError):
    default_error_code: str = "UNSUPPORTED_OPERATION"


# =============================================================================
# Lookup & Conflict Errors
# =============================================================================


class UnknownOrderError(NotFoundError):
    default_error_code: str = "ORDER_NOT_FOUND"


class MerchantNotFoundError(NotFoundError):
    default_error_code: str = "MERCHANT_NOT_FOUND"


class DuplicateOrderError(ConflictError):
    """
    merchant_order_id already used for a different order.

    Identical replays are answered with the stored order instead.
    """

    default_error_code: str = "DUPLICATE_ORDER"


# =============================================================================
# Provider Errors
# =============================================================================


class ProviderError(ExternalServiceError):
    """
    Base exception for provider failures.

    Attributes:
        provider: Provider id the call was made against
    """

    default_error_code: str = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider:
            details["provider"] = provider
        super().__init__(message, error_code=error_code, details=details)
        self.provider = provider


class ProviderTransportError(ProviderError):
    """
    The call failed at the network or HTTP layer.

    maybe_delivered is False only when every attempt failed before a
    connection was established. Otherwise the provider may have acted on
    the request and the order must be left for reconciliation.
    """

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    is_retryable: bool = True

    def __init__(
        self,
        message: str,
        maybe_delivered: bool,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        details["maybe_delivered"] = maybe_delivered
        super().__init__(message, provider=provider, details=details)
        self.maybe_delivered = maybe_delivered


class ProviderBusinessError(ProviderError):
    """
    Provider answered and rejected the request. Never retried.

    maybe_delivered is True when the rejection answered a resend after an
    attempt that may have reached the provider. The rejection can then be
    the provider refusing a duplicate of an order it already holds.
    """

    default_error_code: str = "PROVIDER_REJECTED"

    def __init__(
        self,
        message: str,
        provider_code: str | int | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
        maybe_delivered: bool = False,
    ):
        details = details or {}
        if provider_code is not None:
            details["provider_code"] = provider_code
        if maybe_delivered:
            details["maybe_delivered"] = True
        super().__init__(message, provider=provider, details=details)
        self.provider_code = provider_code
        self.maybe_delivered = maybe_delivered


class NotificationDeliveryError(ExternalServiceError):
    """Merchant notify URL did not accept the notification."""

    default_error_code: str = "NOTIFICATION_DELIVERY_FAILED"
    is_retryable: bool = True
