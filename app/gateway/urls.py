"""
URL configuration for gateway app.

API Documentation Groups:

Gateway - Orders:
    POST /orders/                                  - Submit order
    GET  /orders/{merchant_order_id}/              - Order status

Gateway - UTR:
    POST /orders/{merchant_order_id}/utr/          - Submit UTR
    GET  /orders/{merchant_order_id}/utr/          - Query UTR

Gateway - Channels:
    GET /channels/{account_name}/balance/          - Provider balance
    GET /channels/{account_name}/usage/            - Limit usage

Provider callbacks (not part of the merchant API):
    POST /callbacks/{provider}/                    - Provider status callback
"""

from django.urls import path

from gateway.views import (
    ChannelBalanceView,
    ChannelUsageView,
    OrderDetailView,
    OrderSubmitView,
    OrderUtrView,
)
from gateway.webhooks.views import provider_callback

app_name = "gateway"

urlpatterns = [
    # Orders
    path("orders/", OrderSubmitView.as_view(), name="order-submit"),
    path(
        "orders/<str:merchant_order_id>/",
        OrderDetailView.as_view(),
        name="order-detail",
    ),
    path(
        "orders/<str:merchant_order_id>/utr/",
        OrderUtrView.as_view(),
        name="order-utr",
    ),
    # Channels
    path(
        "channels/<str:account_name>/balance/",
        ChannelBalanceView.as_view(),
        name="channel-balance",
    ),
    path(
        "channels/<str:account_name>/usage/",
        ChannelUsageView.as_view(),
        name="channel-usage",
    ),
    # Provider callbacks
    path(
        "callbacks/<str:provider>/",
        provider_callback,
        name="provider-callback",
    ),
]
