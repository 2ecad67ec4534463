"""
Provider Adapter Contract
=========================

The engine never builds backend payloads itself. Every backend is wrapped in
a ``ProviderAdapter`` that executes one normalized request and raises a typed
``ProviderError`` (or any exception ``classify_error`` understands) on failure.
"""

import time
from abc import ABC, abstractmethod
from typing import Any

from arbiter.core.logging import get_standard_logger as get_logger
from arbiter.core.types import (
    ProviderCapabilities,
    ProviderPricing,
    ProviderResponse,
    RoutingRequest,
)

# =============================================================================
# Base Adapter
# =============================================================================


class ProviderAdapter(ABC):
    """
    Base class for provider adapters.

    Subclasses implement:
    - ``_execute``: the actual backend call
    - ``capabilities``: static feature metadata
    - ``pricing``: per-token prices

    ``execute`` wraps ``_execute`` with latency measurement and usage counters.
    """

    def __init__(self, name: str):
        self.name = name
        self._logger = get_logger(f"arbiter.provider.{name}")

        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._total_latency_ms = 0.0

    # =========================================================================
    # Abstract Methods
    # =========================================================================

    @abstractmethod
    async def _execute(self, request: RoutingRequest) -> ProviderResponse:
        """Run the request against the backend"""

    @abstractmethod
    def capabilities(self) -> ProviderCapabilities:
        pass

    @abstractmethod
    def pricing(self) -> ProviderPricing:
        pass

    # =========================================================================
    # Public Methods
    # =========================================================================

    async def execute(self, request: RoutingRequest) -> ProviderResponse:
        start_time = time.perf_counter()
        self._total_requests += 1

        try:
            response = await self._execute(request)
        except Exception:
            self._failed_requests += 1
            raise

        latency_ms = (time.perf_counter() - start_time) * 1000
        self._successful_requests += 1
        self._total_latency_ms += latency_ms

        response.provider = response.provider or self.name
        if not response.latency_ms:
            response.latency_ms = latency_ms
        if response.cost is None and response.usage is not None:
            response.cost = self.pricing().calculate_cost(
                response.usage.prompt_tokens, response.usage.completion_tokens
            )
        return response

    def validate(self) -> bool:
        """Static sanity check run at registration"""
        caps = self.capabilities()
        prices = self.pricing()
        return (
            bool(self.name)
            and caps.max_context_window > 0
            and prices.input_cost_per_1m >= 0
            and prices.output_cost_per_1m >= 0
        )

    def get_stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "total_requests": self._total_requests,
            "successful_requests": self._successful_requests,
            "failed_requests": self._failed_requests,
            "average_latency_ms": (
                self._total_latency_ms / self._successful_requests
                if self._successful_requests
                else 0.0
            ),
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name})>"
