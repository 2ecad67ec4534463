from arbiter.providers.base_provider import ProviderAdapter
from arbiter.providers.registry import ProviderRegistry

__all__ = [
    "ProviderAdapter",
    "ProviderRegistry",
]
