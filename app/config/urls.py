"""
URL configuration for the payment gateway.

URL Structure:
    /                                   - ReDoc API documentation
    /health/                            - Health check endpoint
    /schema/                            - OpenAPI schema (YAML)
    /api/v1/gateway/                    - Gateway endpoints
        orders/                         - Submit order (POST)
        orders/{merchant_order_id}/     - Order status (GET)
        orders/{merchant_order_id}/utr/ - Submit / query UTR
        channels/{account_name}/balance/ - Provider balance
        channels/{account_name}/usage/   - Limit usage snapshot
        callbacks/{provider}/           - Provider callback (POST)
"""

from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("gateway/", include("gateway.urls")),
]

urlpatterns = [
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]
