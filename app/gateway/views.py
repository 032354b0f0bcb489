"""
Merchant API views.

Provides:
- OrderSubmitView: Submit a collection or payout
- OrderDetailView: Order status, optionally refreshed from the provider
- OrderUtrView: Submit or query the UTR of a collection
- ChannelBalanceView: Provider balance of a channel
- ChannelUsageView: Daily and monthly limit usage of a channel

Every request is authenticated by MerchantSignatureAuthentication, so
request.user is the calling Merchant.
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
)
from core.helpers import get_client_ip
from gateway.serializers import (
    BalanceSerializer,
    ErrorSerializer,
    OrderSerializer,
    ProviderResultSerializer,
    SubmitOrderSerializer,
    SubmitResultSerializer,
    UsageSnapshotSerializer,
    UtrSubmitSerializer,
)
from gateway.services import ReconciliationEngine
from gateway.state_machines import Direction


def error_response(exc: BaseApplicationError) -> Response:
    """Render a domain error with the status code matching its family."""
    if isinstance(exc, NotFoundError):
        http_status = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConflictError):
        http_status = status.HTTP_409_CONFLICT
    elif isinstance(exc, ExternalServiceError):
        http_status = status.HTTP_502_BAD_GATEWAY
    else:
        http_status = status.HTTP_400_BAD_REQUEST
    return Response(exc.to_dict(), status=http_status)


class OrderSubmitView(APIView):
    """
    Submit an order.

    POST /api/v1/gateway/orders/

    Response:
        201 Created: Order accepted (its status may already be failed)
        200 OK: Identical resubmission, stored order returned
        400 Bad Request: Validation error, limit exceeded or no channel
        401 Unauthorized: Missing or invalid signature
        409 Conflict: merchant_order_id reused with different terms
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="submit_order",
        summary="Submit order",
        description=(
            "Reserve channel usage, create the order and hand it to the "
            "provider. Amounts are in minor units."
        ),
        request=SubmitOrderSerializer,
        responses={
            201: OpenApiResponse(response=SubmitResultSerializer, description="Order accepted"),
            200: OpenApiResponse(
                response=SubmitResultSerializer, description="Duplicate submit replayed"
            ),
            400: OpenApiResponse(response=ErrorSerializer, description="Order refused"),
            401: OpenApiResponse(description="Authentication required"),
            409: OpenApiResponse(response=ErrorSerializer, description="Duplicate order"),
        },
        tags=["Gateway - Orders"],
    )
    def post(self, request):
        serializer = SubmitOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        merchant = request.user
        submit_request = serializer.to_submit_request(
            merchant.merchant_id,
            client_ip=get_client_ip(request),
        )
        already_known = merchant.orders.filter(
            merchant_order_id=submit_request.merchant_order_id
        ).exists()

        try:
            result = ReconciliationEngine.submit(submit_request)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(
            SubmitResultSerializer(result).data,
            status=status.HTTP_200_OK if already_known else status.HTTP_201_CREATED,
        )


class OrderDetailView(APIView):
    """
    Get an order by merchant_order_id.

    GET /api/v1/gateway/orders/{merchant_order_id}/?refresh=true
        refresh=true queries the provider first when the order is not final.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_order",
        summary="Get order status",
        parameters=[
            OpenApiParameter(
                name="refresh",
                type=OpenApiTypes.BOOL,
                location=OpenApiParameter.QUERY,
                description="Reconcile with the provider before answering",
            ),
        ],
        responses={
            200: OpenApiResponse(response=OrderSerializer, description="Order"),
            404: OpenApiResponse(response=ErrorSerializer, description="Order not found"),
        },
        tags=["Gateway - Orders"],
    )
    def get(self, request, merchant_order_id):
        refresh = request.query_params.get("refresh", "").lower() in ("1", "true", "yes")
        try:
            order = ReconciliationEngine.get_order(
                request.user, merchant_order_id, refresh=refresh
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(OrderSerializer(order).data, status=status.HTTP_200_OK)


class OrderUtrView(APIView):
    """
    Submit or query the UTR of a collection.

    POST /api/v1/gateway/orders/{merchant_order_id}/utr/
        Hand a payer-supplied UTR to the provider.

    GET /api/v1/gateway/orders/{merchant_order_id}/utr/
        Ask the provider for the UTR and its verification state.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="submit_order_utr",
        summary="Submit UTR",
        request=UtrSubmitSerializer,
        responses={
            200: OpenApiResponse(response=ProviderResultSerializer, description="UTR accepted"),
            400: OpenApiResponse(response=ErrorSerializer, description="Invalid UTR"),
            404: OpenApiResponse(response=ErrorSerializer, description="Order not found"),
            502: OpenApiResponse(response=ErrorSerializer, description="Provider error"),
        },
        tags=["Gateway - UTR"],
    )
    def post(self, request, merchant_order_id):
        serializer = UtrSubmitSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = ReconciliationEngine.submit_utr(
                request.user, merchant_order_id, serializer.validated_data["utr"]
            )
        except BaseApplicationError as e:
            return error_response(e)

        return Response(ProviderResultSerializer(result).data, status=status.HTTP_200_OK)

    @extend_schema(
        operation_id="query_order_utr",
        summary="Query UTR",
        responses={
            200: OpenApiResponse(response=ProviderResultSerializer, description="UTR state"),
            404: OpenApiResponse(response=ErrorSerializer, description="Order not found"),
            502: OpenApiResponse(response=ErrorSerializer, description="Provider error"),
        },
        tags=["Gateway - UTR"],
    )
    def get(self, request, merchant_order_id):
        try:
            result = ReconciliationEngine.query_utr(request.user, merchant_order_id)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(ProviderResultSerializer(result).data, status=status.HTTP_200_OK)


class ChannelBalanceView(APIView):
    """
    GET /api/v1/gateway/channels/{account_name}/balance/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_channel_balance",
        summary="Get channel balance",
        responses={
            200: OpenApiResponse(response=BalanceSerializer, description="Balance"),
            400: OpenApiResponse(response=ErrorSerializer, description="Unsupported"),
            502: OpenApiResponse(response=ErrorSerializer, description="Provider error"),
        },
        tags=["Gateway - Channels"],
    )
    def get(self, request, account_name):
        try:
            balance = ReconciliationEngine.query_balance(request.user, account_name)
        except BaseApplicationError as e:
            return error_response(e)

        data = {
            "channel": account_name,
            "available": balance.available,
            "currency": balance.currency,
        }
        return Response(BalanceSerializer(data).data, status=status.HTTP_200_OK)


class ChannelUsageView(APIView):
    """
    GET /api/v1/gateway/channels/{account_name}/usage/?direction=collection
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_channel_usage",
        summary="Get channel limit usage",
        parameters=[
            OpenApiParameter(
                name="direction",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                enum=Direction.values,
                description="Defaults to collection",
            ),
        ],
        responses={
            200: OpenApiResponse(response=UsageSnapshotSerializer, description="Usage"),
            400: OpenApiResponse(response=ErrorSerializer, description="Unknown channel"),
        },
        tags=["Gateway - Channels"],
    )
    def get(self, request, account_name):
        direction = request.query_params.get("direction", Direction.COLLECTION)
        try:
            snapshot = ReconciliationEngine.channel_usage(request.user, account_name, direction)
        except BaseApplicationError as e:
            return error_response(e)

        return Response(UsageSnapshotSerializer(snapshot).data, status=status.HTTP_200_OK)
