"""
Capability-tagged adapter registry.

Maps (channel_type, provider) to an adapter class. Adapter classes declare
the channel types they serve; the table is built once at import and checked
against settings when the app loads (GatewayConfig.ready).

Usage:
    from gateway.adapters import registry

    adapter = registry.for_config(config)
    adapter_class = registry.adapter_class_for_provider("dhpay")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.core.exceptions import ImproperlyConfigured

from gateway.exceptions import UnsupportedChannelError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from typing import Any

    import requests

    from gateway.adapters.base import ProviderAdapter
    from gateway.models import ProviderConfig


class AdapterRegistry:
    def __init__(self, adapter_classes: Iterable[type[ProviderAdapter]] = ()):
        self._by_key: dict[tuple[str, str], type[ProviderAdapter]] = {}
        self._by_provider: dict[str, type[ProviderAdapter]] = {}
        for adapter_class in adapter_classes:
            self.register(adapter_class)

    def register(self, adapter_class: type[ProviderAdapter]) -> type[ProviderAdapter]:
        """Add an adapter under every channel type it declares."""
        provider = str(adapter_class.provider)
        if not provider or not adapter_class.channel_types:
            raise ImproperlyConfigured(
                f"{adapter_class.__name__} must declare provider and channel_types"
            )
        for channel_type in adapter_class.channel_types:
            key = (str(channel_type), provider)
            if key in self._by_key:
                raise ImproperlyConfigured(
                    f"Duplicate adapter for {key}: "
                    f"{self._by_key[key].__name__} and {adapter_class.__name__}"
                )
            self._by_key[key] = adapter_class
        self._by_provider[provider] = adapter_class
        return adapter_class

    @property
    def providers(self) -> list[str]:
        return sorted(self._by_provider)

    def supports(self, channel_type: str, provider: str) -> bool:
        return (str(channel_type), str(provider)) in self._by_key

    def resolve(self, channel_type: str, provider: str) -> type[ProviderAdapter]:
        try:
            return self._by_key[(str(channel_type), str(provider))]
        except KeyError:
            raise UnsupportedChannelError(
                f"No adapter for provider '{provider}' on channel '{channel_type}'",
                details={"channel_type": str(channel_type), "provider": str(provider)},
            ) from None

    def adapter_class_for_provider(self, provider: str) -> type[ProviderAdapter]:
        try:
            return self._by_provider[str(provider)]
        except KeyError:
            raise UnsupportedChannelError(
                f"Unknown provider '{provider}'",
                details={"provider": str(provider)},
            ) from None

    def for_config(
        self, config: ProviderConfig, session: requests.Session | None = None
    ) -> ProviderAdapter:
        """Instantiate the adapter bound to a provider config."""
        adapter_class = self.resolve(config.channel_type, config.provider)
        return adapter_class(config, session=session)

    def validate_settings(self, provider_settings: Mapping[str, Any]) -> None:
        """
        Check GATEWAY_PROVIDERS against the registered adapters.

        Raises:
            ImproperlyConfigured: Unknown provider or missing base URL
        """
        unknown = sorted(set(provider_settings) - set(self._by_provider))
        if unknown:
            raise ImproperlyConfigured(
                f"GATEWAY_PROVIDERS names unknown providers: {', '.join(unknown)}"
            )
        for provider, entry in provider_settings.items():
            if not entry.get("BASE_URL"):
                raise ImproperlyConfigured(
                    f"GATEWAY_PROVIDERS['{provider}'] is missing BASE_URL"
                )
