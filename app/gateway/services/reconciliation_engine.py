"""
Reconciliation engine: the entry point for every order operation.

The engine coordinates LimitGuard, the provider adapters, the order state
machine and the notification outbox. It never talks HTTP itself and never
changes an order's status except through OrderStateMachine.

Submit flow:
    validate -> active merchant -> duplicate check -> channel selection
    -> [LimitGuard.check + Order(pending)] in one transaction
    -> adapter call -> processing once acknowledged
    (fail and release only when the provider cannot have the order;
    an unknown outcome stays pending for reconciliation)

Callback flow:
    provider adapter class -> (account id, merchant order id)
    -> candidate channels -> signature verified against each channel secret
    -> order lookup -> apply status -> notify if the state changed

Usage:
    from gateway.services import ReconciliationEngine

    result = ReconciliationEngine.submit(submit_request)
    ack = ReconciliationEngine.handle_callback(payload, "passpay")
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError

from core.services import BaseService
from gateway.adapters import CollectionParams, PayoutParams, registry
from gateway.exceptions import (
    ChannelUnavailableError,
    DuplicateOrderError,
    GatewayValidationError,
    LimitExceededError,
    MerchantNotFoundError,
    ProviderBusinessError,
    ProviderError,
    ProviderTransportError,
    SignatureMismatchError,
    UnknownOrderError,
    UnsupportedOperationError,
)
from gateway.models import Merchant, Order, ProviderConfig
from gateway.services.limit_guard import LimitGuard, period_dates
from gateway.services.notifications import NotificationSink
from gateway.services.order_state_machine import OrderStateMachine, TransitionOutcome
from gateway.state_machines import Direction, OrderStatus, ProviderStatus
from gateway.types import CallbackAck, SubmitRequest, SubmitResult

if TYPE_CHECKING:
    from gateway.adapters import BalanceResult, CallbackEvent, ProviderAdapter, ProviderResult
    from gateway.services.limit_guard import UsageSnapshot


MAX_ORDER_ID_LENGTH = 64
MAX_UTR_LENGTH = 64


class ReconciliationEngine(BaseService):
    """
    Orchestrates submit, callbacks, provider sync, UTR and balance queries.

    All methods are class methods - no instance state is maintained.
    Domain failures are raised as gateway exceptions; the HTTP layer turns
    them into responses.
    """

    # =========================================================================
    # Submit
    # =========================================================================

    @classmethod
    def submit(cls, request: SubmitRequest) -> SubmitResult:
        """
        Accept an order and hand it to a provider.

        Raises:
            GatewayValidationError: Invalid request fields
            MerchantNotFoundError / ChannelUnavailableError: Routing failures
            DuplicateOrderError: merchant_order_id reused with other terms
            LimitExceededError: LimitGuard denied; no order was created
        """
        start_time = time.time()
        cls.validate_submit_request(request)

        merchant = cls._get_active_merchant(request.merchant_id)

        existing = cls._find_replay(merchant, request)
        if existing is not None:
            cls.get_logger().info(
                "Duplicate submit answered with stored order",
                extra={
                    "order_id": existing.order_id,
                    "merchant_order_id": request.merchant_order_id,
                },
            )
            return SubmitResult.from_order(existing)

        config = cls._select_channel(merchant, request)

        try:
            order = cls._accept(merchant, config, request)
        except IntegrityError:
            # A concurrent submit with the same merchant_order_id got there first
            existing = cls._find_replay(merchant, request)
            if existing is None:
                raise
            return SubmitResult.from_order(existing)

        order = cls._dispatch(order, config, request)

        cls.get_logger().info(
            "Order submitted",
            extra={
                "order_id": order.order_id,
                "merchant_order_id": order.merchant_order_id,
                "provider": config.provider,
                "account_name": config.account_name,
                "status": order.status,
                "duration_ms": (time.time() - start_time) * 1000,
            },
        )
        return SubmitResult.from_order(order)

    @classmethod
    def validate_submit_request(cls, request: SubmitRequest) -> None:
        """Raise GatewayValidationError listing every invalid field."""
        errors: dict[str, list[str]] = {}

        if not request.merchant_order_id:
            errors.setdefault("merchant_order_id", []).append("This field is required.")
        elif len(request.merchant_order_id) > MAX_ORDER_ID_LENGTH:
            errors.setdefault("merchant_order_id", []).append(
                f"Must be at most {MAX_ORDER_ID_LENGTH} characters."
            )

        if request.direction not in Direction.values:
            errors.setdefault("direction", []).append(
                f"Must be one of: {', '.join(Direction.values)}."
            )

        if isinstance(request.amount, bool) or not isinstance(request.amount, int):
            errors.setdefault("amount", []).append("Must be an integer in minor units.")
        elif request.amount <= 0:
            errors.setdefault("amount", []).append("Must be positive.")

        if request.currency not in settings.GATEWAY_SUPPORTED_CURRENCIES:
            errors.setdefault("currency", []).append(
                f"Unsupported currency '{request.currency}'."
            )

        if request.direction == Direction.PAYOUT:
            for name, value in request.payee.items():
                if not value:
                    errors.setdefault(name, []).append("Required for payouts.")

        if errors:
            raise GatewayValidationError(
                "Invalid submit request",
                details={"errors": errors},
            )

    @classmethod
    def _get_active_merchant(cls, merchant_id: str) -> Merchant:
        try:
            merchant = Merchant.objects.get(merchant_id=merchant_id)
        except Merchant.DoesNotExist:
            raise MerchantNotFoundError(
                f"Merchant '{merchant_id}' not found",
                details={"merchant_id": merchant_id},
            ) from None
        if not merchant.is_active:
            raise ChannelUnavailableError(
                f"Merchant '{merchant_id}' is {merchant.status}",
                error_code="MERCHANT_INACTIVE",
                details={"merchant_id": merchant_id},
            )
        return merchant

    @classmethod
    def _find_replay(cls, merchant: Merchant, request: SubmitRequest) -> Order | None:
        """
        Return the stored order for an identical resubmission.

        Raises:
            DuplicateOrderError: Same merchant_order_id, different terms
        """
        existing = Order.objects.filter(
            merchant=merchant,
            merchant_order_id=request.merchant_order_id,
        ).first()
        if existing is None:
            return None
        if (
            existing.direction == request.direction
            and existing.amount == request.amount
            and existing.currency == request.currency
        ):
            return existing
        raise DuplicateOrderError(
            f"merchant_order_id '{request.merchant_order_id}' already used",
            details={
                "merchant_order_id": request.merchant_order_id,
                "order_id": existing.order_id,
            },
        )

    @classmethod
    def _select_channel(cls, merchant: Merchant, request: SubmitRequest) -> ProviderConfig:
        """Named channel if given, else the highest-priority usable one."""
        if request.channel:
            config = ProviderConfig.objects.filter(
                merchant=merchant,
                account_name=request.channel,
            ).first()
            details = {"channel": request.channel}
            if config is None:
                raise ChannelUnavailableError(
                    f"Channel '{request.channel}' not found",
                    error_code="CHANNEL_NOT_FOUND",
                    details=details,
                )
            if not config.is_active:
                raise ChannelUnavailableError(
                    f"Channel '{request.channel}' is {config.status}",
                    error_code="CHANNEL_INACTIVE",
                    details=details,
                )
            if (
                not config.supports(request.direction)
                or config.currency != request.currency
                or not registry.supports(config.channel_type, config.provider)
            ):
                raise ChannelUnavailableError(
                    f"Channel '{request.channel}' does not support "
                    f"{request.direction} in {request.currency}",
                    error_code="CHANNEL_UNSUPPORTED",
                    details=details,
                )
            return config

        for config in ProviderConfig.objects.routable(
            merchant, request.direction, request.currency
        ):
            if registry.supports(config.channel_type, config.provider):
                return config

        raise ChannelUnavailableError(
            f"No active channel for {request.direction} in {request.currency}",
            error_code="NO_ACTIVE_CHANNEL",
            details={"direction": request.direction, "currency": request.currency},
        )

    @classmethod
    def _accept(
        cls, merchant: Merchant, config: ProviderConfig, request: SubmitRequest
    ) -> Order:
        """Reserve usage and create the pending order in one transaction."""
        with cls.atomic():
            decision = LimitGuard.check(
                merchant.pk, config.pk, request.direction, request.amount
            )
            if not decision.allowed:
                raise LimitExceededError(
                    f"Order refused: {decision.reason}",
                    error_code=decision.reason,
                    details={
                        "channel": config.account_name,
                        "amount": request.amount,
                    },
                )

            extra = dict(request.extra)
            if request.direction == Direction.PAYOUT:
                extra["payee"] = request.payee

            return Order.objects.create(
                merchant=merchant,
                merchant_order_id=request.merchant_order_id,
                direction=request.direction,
                amount=request.amount,
                currency=request.currency,
                fee=config.calculate_fee(request.amount),
                provider_config=config,
                notify_url=request.notify_url,
                usage_reserved=True,
                extra=extra,
            )

    @classmethod
    def _dispatch(
        cls, order: Order, config: ProviderConfig, request: SubmitRequest
    ) -> Order:
        """Call the provider and settle the order according to the outcome."""
        adapter = registry.for_config(config)
        common = {
            "merchant_order_id": order.merchant_order_id,
            "amount": order.amount,
            "currency": order.currency,
            "notify_url": adapter.callback_url(),
            "return_url": config.return_url,
            "client_ip": request.client_ip,
            "customer_name": request.customer_name,
            "extra": request.extra,
        }

        try:
            if order.direction == Direction.PAYOUT:
                result = adapter.create_payout(PayoutParams(**common, **request.payee))
            else:
                result = adapter.create_collection(CollectionParams(**common))
        except UnsupportedOperationError as e:
            return cls._fail_unaccepted(order, e.message)
        except (ProviderBusinessError, ProviderTransportError) as e:
            if not e.maybe_delivered:
                return cls._fail_unaccepted(order, e.message)
            cls.get_logger().error(
                "Provider outcome unknown, order left for reconciliation",
                extra={
                    "order_id": order.order_id,
                    "provider": config.provider,
                    "error_code": e.error_code,
                    "error": e.message,
                },
            )
            return order

        fields = cls._result_fields(result)
        if result.status == ProviderStatus.PENDING:
            # Acknowledged by the provider
            outcome = OrderStateMachine.transition(
                order,
                OrderStatus.PROCESSING,
                provider_status=ProviderStatus.PENDING.value,
                **fields,
            )
        else:
            outcome = OrderStateMachine.apply_provider_status(order, result.status, **fields)
        return outcome.order

    @classmethod
    def _fail_unaccepted(cls, order: Order, reason: str) -> Order:
        """Fail an order the provider never accepted and give back its usage."""
        with cls.atomic():
            outcome = OrderStateMachine.transition(
                order, OrderStatus.FAILED, failure_reason=reason
            )
            cls._release_usage(outcome.order)
        cls.get_logger().warning(
            "Order failed before provider acceptance",
            extra={"order_id": order.order_id, "reason": reason},
        )
        return outcome.order

    @classmethod
    def _release_usage(cls, order: Order) -> bool:
        """Release the order's reservation once; later calls are no-ops."""
        released = Order.objects.filter(pk=order.pk, usage_reserved=True).update(
            usage_reserved=False
        )
        if not released:
            return False
        day, _ = period_dates(order.created_at)
        LimitGuard.release(
            order.merchant_id,
            order.provider_config_id,
            order.direction,
            order.amount,
            on=day,
        )
        return True

    # =========================================================================
    # Callbacks
    # =========================================================================

    @classmethod
    def handle_callback(cls, payload: dict[str, Any], provider_id: str) -> CallbackAck:
        """
        Verify a provider callback and apply it to its order.

        Nothing is read or written on behalf of the payload until its
        signature has verified against a channel secret.

        Raises:
            UnsupportedChannelError: Unknown provider
            GatewayValidationError: Payload carries no order id
            SignatureMismatchError: No candidate channel verified the signature
            UnknownOrderError: No order matches the verified callback
        """
        adapter_class = registry.adapter_class_for_provider(provider_id)
        account_id, merchant_order_id = adapter_class.callback_lookup(payload)
        log_context = {
            "provider": adapter_class.provider,
            "account_id": account_id,
            "merchant_order_id": merchant_order_id,
        }

        if not merchant_order_id:
            raise GatewayValidationError(
                "Callback carries no order id",
                error_code="INVALID_PAYLOAD",
                details={"provider": adapter_class.provider},
            )

        candidates = cls._callback_candidates(
            adapter_class.provider, account_id, merchant_order_id
        )
        if not candidates:
            raise UnknownOrderError(
                f"No order '{merchant_order_id}' for {adapter_class.provider}",
                details=log_context,
            )

        adapter = cls._verified_adapter(candidates, payload)
        if adapter is None:
            cls.get_logger().warning("Callback signature mismatch", extra=log_context)
            raise SignatureMismatchError(
                "Callback signature did not verify",
                details=log_context,
            )

        try:
            order = Order.objects.select_related("merchant").get(
                provider_config=adapter.config,
                merchant_order_id=merchant_order_id,
            )
        except Order.DoesNotExist:
            raise UnknownOrderError(
                f"No order '{merchant_order_id}' on channel {adapter.config.account_name}",
                details=log_context,
            ) from None

        event = adapter.parse_callback(payload, direction=order.direction)
        if event.amount is not None and event.amount != order.amount:
            cls.get_logger().warning(
                "Callback amount differs from order amount",
                extra={
                    **log_context,
                    "order_id": order.order_id,
                    "order_amount": order.amount,
                    "callback_amount": event.amount,
                },
            )

        outcome = cls._apply_and_notify(order, event.status, cls._event_fields(event))

        cls.get_logger().info(
            "Callback handled",
            extra={
                **log_context,
                "order_id": order.order_id,
                "provider_status": event.status,
                "status": outcome.order.status,
                "changed": outcome.changed,
                "stale": outcome.stale,
            },
        )
        return CallbackAck(
            accepted=True,
            ack_body=adapter.callback_ack,
            order_id=outcome.order.order_id,
            status=outcome.order.status,
            changed=outcome.changed,
        )

    @classmethod
    def _callback_candidates(
        cls, provider: str, account_id: str | None, merchant_order_id: str
    ) -> list[ProviderConfig]:
        """Channels whose secret may have signed this callback."""
        configs = ProviderConfig.objects.filter(provider=provider)
        if account_id:
            configs = configs.filter(account_id=account_id)
        else:
            configs = configs.filter(orders__merchant_order_id=merchant_order_id).distinct()
        return list(configs.order_by("priority", "created_at"))

    @classmethod
    def _verified_adapter(
        cls, candidates: list[ProviderConfig], payload: dict[str, Any]
    ) -> ProviderAdapter | None:
        for config in candidates:
            adapter = registry.for_config(config)
            if adapter.verify_callback(payload):
                return adapter
        return None

    # =========================================================================
    # Provider Sync
    # =========================================================================

    @classmethod
    def sync_order(cls, order: Order) -> TransitionOutcome:
        """
        Query the provider for the order's status and apply it.

        A pending order the provider never acknowledged, and which the
        provider rejects the query for, was never created there: it is
        failed and its usage released.

        Raises:
            ProviderError: The query failed; the order is left untouched
        """
        if order.is_terminal:
            return TransitionOutcome(order=order, previous_status=order.status, changed=False)

        adapter = registry.for_config(order.provider_config)
        try:
            result = adapter.query_order(
                order.merchant_order_id,
                direction=order.direction,
                provider_reference=order.provider_reference,
            )
        except ProviderBusinessError as e:
            if order.status != OrderStatus.PENDING or order.provider_reference:
                raise
            return cls._fail_unknown_to_provider(order, e)

        outcome = cls._apply_and_notify(order, result.status, cls._result_fields(result))

        cls.get_logger().info(
            "Order synced with provider",
            extra={
                "order_id": order.order_id,
                "provider": adapter.provider,
                "provider_status": result.status,
                "status": outcome.order.status,
                "changed": outcome.changed,
            },
        )
        return outcome

    @classmethod
    def _fail_unknown_to_provider(
        cls, order: Order, error: ProviderBusinessError
    ) -> TransitionOutcome:
        reason = f"Order unknown to provider: {error.message}"
        with cls.atomic():
            outcome = OrderStateMachine.transition(
                order, OrderStatus.FAILED, failure_reason=reason
            )
            if outcome.changed:
                cls._release_usage(outcome.order)
                NotificationSink.enqueue(outcome.order)

        cls.get_logger().warning(
            "Pending order unknown to provider, failed",
            extra={
                "order_id": order.order_id,
                "provider_code": error.provider_code,
                "changed": outcome.changed,
            },
        )
        return outcome

    @classmethod
    def get_order(
        cls, merchant: Merchant, merchant_order_id: str, refresh: bool = False
    ) -> Order:
        """
        Look up a merchant's order, optionally reconciling with the provider.

        A failed refresh is logged and the stored order returned.
        """
        order = cls._get_merchant_order(merchant, merchant_order_id)
        if refresh and not order.is_terminal:
            try:
                order = cls.sync_order(order).order
            except ProviderError as e:
                cls.get_logger().warning(
                    "Order refresh failed, returning stored state",
                    extra={"order_id": order.order_id, "error_code": e.error_code},
                )
        return order

    # =========================================================================
    # UTR & Balance
    # =========================================================================

    @classmethod
    def submit_utr(
        cls, merchant: Merchant, merchant_order_id: str, utr: str
    ) -> ProviderResult:
        """Hand a payer-supplied UTR to the provider and record it on the order."""
        utr = (utr or "").strip()
        if not utr or len(utr) > MAX_UTR_LENGTH or not utr.isalnum():
            raise GatewayValidationError(
                "UTR must be 1-64 letters or digits",
                error_code="INVALID_UTR",
                details={"utr": utr},
            )

        order = cls._get_merchant_order(merchant, merchant_order_id)
        if order.direction != Direction.COLLECTION:
            raise GatewayValidationError(
                "UTR can only be submitted for collections",
                error_code="INVALID_UTR",
                details={"order_id": order.order_id},
            )
        if order.is_terminal:
            raise GatewayValidationError(
                f"Order is already {order.status}",
                error_code="ORDER_FINALIZED",
                details={"order_id": order.order_id, "status": order.status},
            )

        adapter = registry.for_config(order.provider_config)
        result = adapter.submit_utr(
            order.merchant_order_id, utr, provider_reference=order.provider_reference
        )
        OrderStateMachine.record_fields(order, {"utr": utr})

        cls.get_logger().info(
            "UTR submitted",
            extra={"order_id": order.order_id, "provider": adapter.provider},
        )
        return result

    @classmethod
    def query_utr(cls, merchant: Merchant, merchant_order_id: str) -> ProviderResult:
        order = cls._get_merchant_order(merchant, merchant_order_id)
        adapter = registry.for_config(order.provider_config)
        result = adapter.query_utr(
            order.merchant_order_id, provider_reference=order.provider_reference
        )
        if result.utr and not order.utr and not order.is_terminal:
            OrderStateMachine.record_fields(order, {"utr": result.utr})
        return result

    @classmethod
    def query_balance(cls, merchant: Merchant, channel_name: str) -> BalanceResult:
        config = cls._get_merchant_channel(merchant, channel_name)
        return registry.for_config(config).query_balance()

    @classmethod
    def channel_usage(
        cls, merchant: Merchant, channel_name: str, direction: str
    ) -> UsageSnapshot:
        if direction not in Direction.values:
            raise GatewayValidationError(
                f"Unknown direction '{direction}'",
                details={"direction": direction},
            )
        config = cls._get_merchant_channel(merchant, channel_name)
        return LimitGuard.usage(merchant.pk, config.pk, direction)

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _apply_and_notify(
        cls, order: Order, provider_status: str, fields: dict[str, Any]
    ) -> TransitionOutcome:
        with cls.atomic():
            outcome = OrderStateMachine.apply_provider_status(order, provider_status, **fields)
            if outcome.changed:
                NotificationSink.enqueue(outcome.order)
        return outcome

    @classmethod
    def _result_fields(cls, result: ProviderResult) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if result.provider_reference:
            fields["provider_reference"] = result.provider_reference
        if result.pay_url:
            fields["pay_url"] = result.pay_url
        if result.utr:
            fields["utr"] = result.utr
        if result.status in (ProviderStatus.FAILED, ProviderStatus.REJECTED):
            fields["failure_reason"] = result.message or f"Provider status {result.raw_status}"
        return fields

    @classmethod
    def _event_fields(cls, event: CallbackEvent) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if event.provider_reference:
            fields["provider_reference"] = event.provider_reference
        if event.utr:
            fields["utr"] = event.utr
        if event.status in (ProviderStatus.FAILED, ProviderStatus.REJECTED):
            fields["failure_reason"] = (
                event.payload.get("msg") or f"Provider status {event.raw_status}"
            )
        return fields

    @classmethod
    def _get_merchant_order(cls, merchant: Merchant, merchant_order_id: str) -> Order:
        try:
            return Order.objects.select_related("provider_config", "merchant").get(
                merchant=merchant,
                merchant_order_id=merchant_order_id,
            )
        except Order.DoesNotExist:
            raise UnknownOrderError(
                f"Order '{merchant_order_id}' not found",
                details={"merchant_order_id": merchant_order_id},
            ) from None

    @classmethod
    def _get_merchant_channel(cls, merchant: Merchant, channel_name: str) -> ProviderConfig:
        config = ProviderConfig.objects.filter(
            merchant=merchant,
            account_name=channel_name,
        ).first()
        if config is None:
            raise ChannelUnavailableError(
                f"Channel '{channel_name}' not found",
                error_code="CHANNEL_NOT_FOUND",
                details={"channel": channel_name},
            )
        return config
