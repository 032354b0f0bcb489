"""
Gateway app configuration.

Startup checks the provider settings against the adapter registry so a
misconfigured deployment fails at boot instead of on the first request.
"""

from django.apps import AppConfig
from django.conf import settings


class GatewayConfig(AppConfig):
    """Configuration for the gateway application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "gateway"
    verbose_name = "Payment Gateway"

    def ready(self) -> None:
        from gateway.adapters import registry

        registry.validate_settings(getattr(settings, "GATEWAY_PROVIDERS", {}))
