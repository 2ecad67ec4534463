"""
Tests for the fallback orchestrator
"""

import pytest

from arbiter.core.config import CircuitBreakerConfig, FallbackConfig, RetryConfig
from arbiter.core.exceptions import (
    ProviderAuthenticationError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderValidationError,
)
from arbiter.core.types import (
    ErrorType,
    ExecutionAttempt,
    ExecutionError,
    FallbackChain,
    FallbackMetrics,
    FallbackStrategy,
)
from arbiter.routing.fallback import (
    SKIP_CIRCUIT_OPEN,
    SKIP_CONSECUTIVE_FAILURES,
    SKIP_RECENT_RATE_LIMIT,
    FallbackOrchestrator,
)
from arbiter.routing.health import HealthTracker


def _error(provider: str, error_type: ErrorType = ErrorType.SERVER) -> ExecutionError:
    return ExecutionError(
        code=error_type.value, message="boom", type=error_type, retryable=True, provider=provider
    )


@pytest.fixture
def health(clock):
    return HealthTracker(
        CircuitBreakerConfig(failure_threshold=5, success_threshold=1, timeout_seconds=60.0),
        clock=clock,
    )


@pytest.fixture
def orchestrator(health, clock, no_sleep):
    return FallbackOrchestrator(
        health,
        retry_config=RetryConfig(max_attempts=1, jitter=False),
        config=FallbackConfig(parallel_attempts=2),
        clock=clock,
        sleep=no_sleep,
    )


@pytest.fixture
def providers(make_provider):
    return {
        "alpha": make_provider("alpha"),
        "beta": make_provider("beta"),
        "gamma": make_provider("gamma"),
    }


@pytest.fixture
def call(providers, make_request):
    request = make_request()
    return lambda name: providers[name].execute(request)


def chain(*names, strategy=FallbackStrategy.SEQUENTIAL, **kwargs) -> FallbackChain:
    return FallbackChain(primary=names[0], fallbacks=list(names[1:]), strategy=strategy, **kwargs)


class TestSequential:
    @pytest.mark.asyncio
    async def test_primary_success(self, orchestrator, providers, call):
        result = await orchestrator.run(chain("alpha", "beta"), call)

        assert result.success
        assert result.provider_used == "alpha"
        assert result.result.content == "alpha: ok"
        assert len(result.attempts) == 1
        assert providers["beta"].calls == 0

    @pytest.mark.asyncio
    async def test_falls_back_on_failure(self, orchestrator, providers, call, health):
        providers["alpha"].script = [ProviderServerError("alpha")]
        result = await orchestrator.run(chain("alpha", "beta"), call)

        assert result.success
        assert result.provider_used == "beta"
        assert [a.provider for a in result.attempts] == ["alpha", "beta"]
        assert result.attempts[0].error.type == ErrorType.SERVER
        assert result.metrics.failed_providers == ["alpha"]
        assert health.get_status("alpha").failed_requests == 1
        assert health.get_status("beta").successful_requests == 1

    @pytest.mark.asyncio
    async def test_exhausted_chain_logs_every_provider(self, orchestrator, providers, call):
        for name, provider in providers.items():
            provider.script = [ProviderServerError(name)]

        result = await orchestrator.run(chain("alpha", "beta", "gamma"), call)

        assert not result.success
        assert [a.provider for a in result.attempts] == ["alpha", "beta", "gamma"]
        assert all(not a.success for a in result.attempts)
        assert result.error.provider == "gamma"

    @pytest.mark.asyncio
    async def test_validation_error_ends_chain(self, orchestrator, providers, call):
        providers["alpha"].script = [ProviderValidationError("alpha", "prompt too long")]
        result = await orchestrator.run(chain("alpha", "beta"), call)

        assert not result.success
        assert len(result.attempts) == 1
        assert result.error.type == ErrorType.VALIDATION
        assert providers["beta"].calls == 0

    @pytest.mark.asyncio
    async def test_auth_error_ends_only_that_provider(
        self, no_sleep, health, clock, providers, call
    ):
        orchestrator = FallbackOrchestrator(
            health, RetryConfig(max_attempts=3, jitter=False), clock=clock, sleep=no_sleep
        )
        providers["alpha"].script = [ProviderAuthenticationError("alpha")]
        result = await orchestrator.run(chain("alpha", "beta"), call)

        assert result.provider_used == "beta"
        assert providers["alpha"].calls == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_within_provider(self, no_sleep, health, clock, providers, call):
        orchestrator = FallbackOrchestrator(
            health, RetryConfig(max_attempts=3, jitter=False), clock=clock, sleep=no_sleep
        )
        providers["alpha"].script = [ProviderServerError("alpha")]
        result = await orchestrator.run(chain("alpha", "beta"), call)

        assert result.provider_used == "alpha"
        assert providers["alpha"].calls == 2
        assert len(result.attempts) == 1
        assert no_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_open_circuit_is_skipped(self, orchestrator, providers, call, health):
        for _ in range(5):
            await health.record_failure("alpha", _error("alpha"))

        result = await orchestrator.run(chain("alpha", "beta"), call)

        assert result.provider_used == "beta"
        assert result.attempts[0].skipped
        assert result.attempts[0].skip_reason == SKIP_CIRCUIT_OPEN
        assert providers["alpha"].calls == 0
        assert result.metrics.skipped_providers == ["alpha"]
        assert result.metrics.total_attempts == 1


class TestMetrics:
    def test_skips_excluded_from_counts(self):
        attempts = [
            ExecutionAttempt(
                "alpha", 1, 10.0, 10.0, success=False, skipped=True, skip_reason=SKIP_CIRCUIT_OPEN
            ),
            ExecutionAttempt("beta", 2, 10.0, 10.1, success=False, error=_error("beta")),
            ExecutionAttempt("gamma", 3, 10.1, 10.4, success=True),
        ]
        metrics = FallbackMetrics.from_attempts(attempts)

        assert metrics.total_attempts == 2
        assert metrics.average_attempt_duration_ms == pytest.approx(200.0)
        assert metrics.successful_provider == "gamma"
        assert metrics.failed_providers == ["beta"]
        assert metrics.skipped_providers == ["alpha"]

    def test_only_skips(self):
        attempts = [ExecutionAttempt("alpha", 1, 5.0, 5.0, success=False, skipped=True)]
        metrics = FallbackMetrics.from_attempts(attempts)

        assert metrics.total_attempts == 0
        assert metrics.average_attempt_duration_ms == 0.0


class TestParallel:
    @pytest.mark.asyncio
    async def test_fastest_success_wins_and_losers_cancelled(
        self, orchestrator, providers, call, health
    ):
        providers["alpha"].delay = 1.0
        result = await orchestrator.run(
            chain("alpha", "beta", strategy=FallbackStrategy.PARALLEL), call
        )

        assert result.success
        assert result.provider_used == "beta"
        assert providers["alpha"].cancelled
        assert [a.provider for a in result.attempts] == ["beta"]
        # the cancelled racer records no outcome
        assert health.get_status("alpha").total_requests == 0

    @pytest.mark.asyncio
    async def test_width_limits_racers(self, orchestrator, providers, call):
        result = await orchestrator.run(
            chain("alpha", "beta", "gamma", strategy=FallbackStrategy.PARALLEL), call
        )
        assert result.success
        assert providers["gamma"].calls == 0

    @pytest.mark.asyncio
    async def test_all_racers_fail(self, orchestrator, providers, call):
        providers["alpha"].script = [ProviderServerError("alpha")]
        providers["beta"].script = [ProviderServerError("beta")]
        result = await orchestrator.run(
            chain("alpha", "beta", strategy=FallbackStrategy.PARALLEL), call
        )

        assert not result.success
        assert sorted(a.provider for a in result.attempts) == ["alpha", "beta"]
        assert result.error is not None

    @pytest.mark.asyncio
    async def test_open_circuit_not_raced(self, orchestrator, providers, call, health):
        for _ in range(5):
            await health.record_failure("alpha", _error("alpha"))

        result = await orchestrator.run(
            chain("alpha", "beta", "gamma", strategy=FallbackStrategy.PARALLEL), call
        )
        assert result.success
        assert providers["alpha"].calls == 0
        assert result.attempts[0].skip_reason == SKIP_CIRCUIT_OPEN


class TestCascade:
    @pytest.mark.asyncio
    async def test_orders_by_health(self, orchestrator, providers, call, health):
        await health.record_failure("alpha", _error("alpha"))
        await health.record_failure("beta", _error("beta"))
        await health.record_failure("beta", _error("beta"))
        await health.record_success("gamma")

        assert orchestrator.health_order(["alpha", "beta", "gamma"]) == ["gamma", "alpha", "beta"]

        result = await orchestrator.run(
            chain("alpha", "beta", "gamma", strategy=FallbackStrategy.CASCADE), call
        )
        assert result.provider_used == "gamma"

    @pytest.mark.asyncio
    async def test_skips_consecutive_failures(self, orchestrator, health):
        for _ in range(3):
            await health.record_failure("alpha", _error("alpha"))
        assert orchestrator.cascade_skip_reason("alpha") == SKIP_CONSECUTIVE_FAILURES

    @pytest.mark.asyncio
    async def test_skips_recent_rate_limit(self, orchestrator, health, clock):
        await health.record_failure("alpha", _error("alpha", ErrorType.RATE_LIMIT))
        assert orchestrator.cascade_skip_reason("alpha") == SKIP_RECENT_RATE_LIMIT

        clock.advance(11.0)
        assert orchestrator.cascade_skip_reason("alpha") is None

    def test_unknown_provider_never_skipped(self, orchestrator):
        assert orchestrator.cascade_skip_reason("nobody") is None

    @pytest.mark.asyncio
    async def test_rate_limited_provider_is_skipped_in_run(self, orchestrator, providers, call):
        providers["alpha"].script = [ProviderRateLimitError("alpha")]
        await orchestrator.run(chain("alpha", "beta"), call)

        result = await orchestrator.run(chain("alpha", strategy=FallbackStrategy.CASCADE), call)
        assert not result.success
        assert result.attempts[0].skip_reason == SKIP_RECENT_RATE_LIMIT
        assert providers["alpha"].calls == 1

    @pytest.mark.asyncio
    async def test_tripped_provider_avoided_until_half_open(
        self, orchestrator, providers, call, health, clock
    ):
        providers["beta"].script = [ProviderServerError("beta") for _ in range(5)]
        for _ in range(5):
            await orchestrator.run(chain("beta"), call)
        assert health.is_open("beta")

        for _ in range(3):
            result = await orchestrator.run(
                chain("beta", "alpha", "gamma", strategy=FallbackStrategy.CASCADE),
                call,
            )
            assert result.success
            assert not any(a.provider == "beta" and not a.skipped for a in result.attempts)
        assert providers["beta"].calls == 5

        clock.advance(60.0)
        result = await orchestrator.run(chain("beta"), call)
        assert result.provider_used == "beta"
        assert providers["beta"].calls == 6


class TestAdaptive:
    def _attempt(self, provider, success, start, duration=0.1):
        return ExecutionAttempt(
            provider=provider,
            attempt_number=1,
            start_time=start,
            end_time=start + duration,
            success=success,
        )

    def test_orders_by_history(self, orchestrator, clock):
        now = clock()
        orchestrator.load_history(
            [
                self._attempt("alpha", False, now),
                self._attempt("alpha", False, now),
                self._attempt("beta", True, now),
            ]
        )
        assert orchestrator.adaptive_order(["alpha", "gamma", "beta"]) == [
            "beta",
            "gamma",
            "alpha",
        ]

    @pytest.mark.asyncio
    async def test_run_uses_history_order(self, orchestrator, providers, call, clock):
        now = clock()
        orchestrator.load_history([self._attempt("beta", True, now)])
        result = await orchestrator.run(
            chain("alpha", "beta", strategy=FallbackStrategy.ADAPTIVE), call
        )
        assert result.provider_used == "beta"
        assert providers["alpha"].calls == 0


class TestHistory:
    @pytest.mark.asyncio
    async def test_history_excludes_skips(self, orchestrator, providers, call, health):
        for _ in range(5):
            await health.record_failure("alpha", _error("alpha"))
        await orchestrator.run(chain("alpha", "beta"), call)
        assert [a.provider for a in orchestrator.history()] == ["beta"]

    @pytest.mark.asyncio
    async def test_trim_by_age(self, orchestrator, providers, call, clock):
        await orchestrator.run(chain("alpha"), call)
        clock.advance(3601.0)
        assert orchestrator.trim_history() == 1
        assert orchestrator.history() == []

    @pytest.mark.asyncio
    async def test_stats(self, orchestrator, providers, call):
        providers["alpha"].script = [ProviderServerError("alpha")]
        await orchestrator.run(chain("alpha", "beta"), call)
        stats = orchestrator.get_stats()
        assert stats["total_runs"] == 1
        assert stats["successful_runs"] == 1
        assert stats["recoveries"] == 1
