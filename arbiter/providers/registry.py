"""
Provider Registry
=================

Explicitly constructed map of provider name to adapter. One registry is
created per engine and passed to the components that need it; there is no
process-wide provider table.
"""

from collections.abc import Iterator
from typing import Any

from arbiter.core.exceptions import ProviderError, ProviderNotFoundError
from arbiter.core.logging import get_standard_logger as get_logger
from arbiter.core.types import ProviderCapabilities, ProviderPricing

from .base_provider import ProviderAdapter


class ProviderRegistry:
    """
    Holds adapters plus their capability and pricing metadata.

    Metadata is read from the adapter at registration and changes only via
    ``update_capabilities`` / ``update_pricing``.
    """

    def __init__(self, providers: list[ProviderAdapter] | None = None):
        self._providers: dict[str, ProviderAdapter] = {}
        self._capabilities: dict[str, ProviderCapabilities] = {}
        self._pricing: dict[str, ProviderPricing] = {}
        self._logger = get_logger("arbiter.providers.registry")

        for provider in providers or []:
            self.register(provider)

    def register(self, provider: ProviderAdapter, replace: bool = False) -> None:
        if provider.name in self._providers and not replace:
            raise ProviderError(
                message=f"Provider '{provider.name}' is already registered",
                details={"provider": provider.name},
                suggestions=["Pass replace=True to swap the adapter"],
            )
        if not provider.validate():
            raise ProviderError(
                message=f"Provider '{provider.name}' failed validation",
                details={"provider": provider.name},
                recoverable=False,
            )

        self._providers[provider.name] = provider
        self._capabilities[provider.name] = provider.capabilities()
        self._pricing[provider.name] = provider.pricing()
        self._logger.info(f"Registered provider {provider.name}")

    def unregister(self, name: str) -> bool:
        if name not in self._providers:
            return False
        del self._providers[name]
        self._capabilities.pop(name, None)
        self._pricing.pop(name, None)
        self._logger.info(f"Unregistered provider {name}")
        return True

    def get(self, name: str) -> ProviderAdapter:
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotFoundError(provider_name=name, available_providers=self.names())
        return provider

    def names(self) -> list[str]:
        return list(self._providers)

    def all(self) -> list[ProviderAdapter]:
        return list(self._providers.values())

    def capabilities(self, name: str) -> ProviderCapabilities:
        if name not in self._capabilities:
            raise ProviderNotFoundError(provider_name=name, available_providers=self.names())
        return self._capabilities[name]

    def pricing(self, name: str) -> ProviderPricing:
        if name not in self._pricing:
            raise ProviderNotFoundError(provider_name=name, available_providers=self.names())
        return self._pricing[name]

    def update_capabilities(self, name: str, capabilities: ProviderCapabilities) -> None:
        self.get(name)
        self._capabilities[name] = capabilities

    def update_pricing(self, name: str, pricing: ProviderPricing) -> None:
        self.get(name)
        self._pricing[name] = pricing

    def describe(self) -> dict[str, Any]:
        return {
            name: {
                "capabilities": self._capabilities[name].to_dict(),
                "pricing": {
                    "input_cost_per_1m": self._pricing[name].input_cost_per_1m,
                    "output_cost_per_1m": self._pricing[name].output_cost_per_1m,
                },
            }
            for name in self._providers
        }

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __iter__(self) -> Iterator[ProviderAdapter]:
        return iter(list(self._providers.values()))

    def __len__(self) -> int:
        return len(self._providers)
