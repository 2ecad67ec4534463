"""
Shared pytest fixtures for Arbiter tests

Includes:
    - Deterministic clock and no-op sleep
    - Scripted fake provider adapters
    - Registry and request factories
"""

import asyncio
import random
from collections.abc import Callable
from typing import Any

import pytest

from arbiter.core.types import (
    Message,
    MessageRole,
    ProviderCapabilities,
    ProviderPricing,
    ProviderResponse,
    RoutingRequest,
    Usage,
)
from arbiter.providers.base_provider import ProviderAdapter
from arbiter.providers.registry import ProviderRegistry


def pytest_addoption(parser):
    """Add custom pytest options"""
    parser.addoption(
        "--run-slow",
        action="store_true",
        default=False,
        help="Run slow tests",
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests based on markers and options"""
    skip_slow = pytest.mark.skip(reason="Need --run-slow option to run slow tests")

    for item in items:
        if "slow" in item.keywords and not config.getoption("--run-slow"):
            item.add_marker(skip_slow)


# =============================================================================
# Time
# =============================================================================


class FakeClock:
    """Manually advanced clock in seconds"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class SleepRecorder:
    """Awaitable sleep replacement that records requested delays"""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def no_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


# =============================================================================
# Fake Providers
# =============================================================================


class FakeProvider(ProviderAdapter):
    """
    Provider adapter driven by a script.

    Each call consumes the next script item: an exception instance is raised,
    a string becomes the response content. When the script runs out the
    ``default`` item is used.
    """

    def __init__(
        self,
        name: str,
        script: list[Any] | None = None,
        default: Any = "ok",
        delay: float = 0.0,
        capabilities: ProviderCapabilities | None = None,
        pricing: ProviderPricing | None = None,
        usage: Usage | None = None,
        quality: float | None = None,
    ):
        super().__init__(name)
        self.script = list(script or [])
        self.default = default
        self.delay = delay
        self._capabilities = capabilities or ProviderCapabilities()
        self._pricing = pricing or ProviderPricing(input_cost_per_1m=1.0, output_cost_per_1m=2.0)
        self.usage = usage or Usage(prompt_tokens=100, completion_tokens=50)
        self.quality = quality
        self.calls = 0
        self.cancelled = False

    async def _execute(self, request: RoutingRequest) -> ProviderResponse:
        self.calls += 1
        item = self.script.pop(0) if self.script else self.default

        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise

        if isinstance(item, BaseException):
            raise item

        return ProviderResponse(
            content=f"{self.name}: {item}",
            model=f"{self.name}-model",
            usage=Usage(self.usage.prompt_tokens, self.usage.completion_tokens),
            latency_ms=10.0,
            quality=self.quality,
        )

    def capabilities(self) -> ProviderCapabilities:
        return self._capabilities

    def pricing(self) -> ProviderPricing:
        return self._pricing


@pytest.fixture
def make_provider() -> Callable[..., FakeProvider]:
    def factory(name: str, **kwargs: Any) -> FakeProvider:
        return FakeProvider(name, **kwargs)

    return factory


@pytest.fixture
def registry(make_provider) -> ProviderRegistry:
    return ProviderRegistry(
        [
            make_provider("alpha"),
            make_provider("beta"),
            make_provider("gamma"),
        ]
    )


# =============================================================================
# Requests
# =============================================================================


def build_request(prompt: str = "Hello there", **kwargs: Any) -> RoutingRequest:
    return RoutingRequest(messages=[Message(role=MessageRole.USER, content=prompt)], **kwargs)


@pytest.fixture
def make_request() -> Callable[..., RoutingRequest]:
    return build_request


@pytest.fixture
def sample_request() -> RoutingRequest:
    return build_request("Fix this bug in my parser")
