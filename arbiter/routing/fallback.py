"""
Fallback Orchestrator
=====================

Runs a FallbackChain under one of four strategies:

- SEQUENTIAL: providers strictly in order, first success wins
- PARALLEL: race up to ``parallel_attempts`` providers, cancel the losers
- CASCADE: order by health score, proactively skip clearly unhealthy providers
- ADAPTIVE: order by recent history (70% success rate, 30% speed), then cascade

Every attempt, success, failure or skip, is appended to the attempt log.
A validation error ends the whole chain; an auth error ends only the
provider that raised it.
"""

import asyncio
import contextlib
import random
import time
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from arbiter.core.config import FallbackConfig, RetryConfig
from arbiter.core.exceptions import MaxRetriesExceededError, NonRetryableError
from arbiter.core.logging import get_standard_logger as get_logger
from arbiter.core.types import (
    CircuitState,
    ErrorType,
    ExecutionAttempt,
    ExecutionError,
    FallbackChain,
    FallbackMetrics,
    FallbackResult,
    FallbackStrategy,
)

from .health import HealthTracker
from .retry import RetryPolicy

T = TypeVar("T")

ProviderCall = Callable[[str], Awaitable[T]]

# =============================================================================
# Skip Reasons
# =============================================================================

SKIP_CIRCUIT_OPEN = "circuit_open"
SKIP_HALF_OPEN_PROBE_LIMIT = "half_open_probe_limit"
SKIP_CONSECUTIVE_FAILURES = "consecutive_failures"
SKIP_HIGH_FAILURE_RATE = "high_failure_rate"
SKIP_RECENT_RATE_LIMIT = "recent_rate_limit"

CASCADE_MAX_CONSECUTIVE_FAILURES = 3
CASCADE_HIGH_FAILURE_RATE = 0.5
CASCADE_MIN_REQUESTS_FOR_RATE = 10
ADAPTIVE_UNKNOWN_SCORE = 50.0


class FallbackOrchestrator:
    """
    Executes provider chains with retries, circuit checks and health recording.

    Usage:
        orchestrator = FallbackOrchestrator(health)
        result = await orchestrator.run(
            FallbackChain(primary="alpha", fallbacks=["beta"]),
            lambda name: registry.get(name).execute(request),
        )
    """

    def __init__(
        self,
        health: HealthTracker,
        retry_config: RetryConfig | None = None,
        config: FallbackConfig | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        rng: random.Random | None = None,
    ):
        self._health = health
        self.retry_config = retry_config or RetryConfig()
        self.config = config or FallbackConfig()
        self._clock = clock or time.time
        self._sleep = sleep
        self._rng = rng
        self._logger = get_logger("arbiter.fallback")

        self._history: deque[ExecutionAttempt] = deque(maxlen=self.config.history_size)
        self._total_runs = 0
        self._successful_runs = 0
        self._recoveries = 0

    # =========================================================================
    # Entry Point
    # =========================================================================

    async def run(self, chain: FallbackChain, op: ProviderCall[T]) -> FallbackResult:
        start = self._clock()
        attempts: list[ExecutionAttempt] = []
        providers = chain.providers
        strategy = chain.strategy

        self._logger.info(
            f"Starting {strategy.value} execution over {' -> '.join(providers)}"
        )

        if strategy == FallbackStrategy.PARALLEL:
            result = await self._run_parallel(providers, chain, op, attempts)
        elif strategy == FallbackStrategy.CASCADE:
            result = await self._run_cascade(providers, chain, op, attempts, sort_by_health=True)
        elif strategy == FallbackStrategy.ADAPTIVE:
            ordered = self.adaptive_order(providers)
            self._logger.debug(f"Adaptive order: {' -> '.join(ordered)}")
            result = await self._run_cascade(ordered, chain, op, attempts, sort_by_health=False)
        else:
            result = await self._run_sequential(providers, chain, op, attempts)

        result.attempts = attempts
        result.total_duration_ms = max(0.0, (self._clock() - start) * 1000)
        result.metrics = FallbackMetrics.from_attempts(attempts)

        self._record_history(attempts)
        self._total_runs += 1
        if result.success:
            self._successful_runs += 1
            if result.provider_used != chain.primary:
                self._recoveries += 1
            self._logger.info(
                f"Execution succeeded with {result.provider_used} "
                f"after {len(result.executed_attempts)} attempt(s)"
            )
        else:
            self._logger.error(
                f"Fallback chain exhausted: {len(result.executed_attempts)} attempted, "
                f"{len(result.metrics.skipped_providers)} skipped"
            )

        return result

    # =========================================================================
    # Single Provider Attempt
    # =========================================================================

    def _skipped(self, provider: str, attempt_number: int, reason: str) -> ExecutionAttempt:
        now = self._clock()
        self._logger.warning(f"Skipping {provider}: {reason}")
        return ExecutionAttempt(
            provider=provider,
            attempt_number=attempt_number,
            start_time=now,
            end_time=now,
            success=False,
            skipped=True,
            skip_reason=reason,
        )

    def _admit(self, provider: str) -> str | None:
        """Take an admission from the circuit breaker; returns a skip reason when refused"""
        if self._health.allow_request(provider):
            return None
        if self._health.is_open(provider):
            return SKIP_CIRCUIT_OPEN
        return SKIP_HALF_OPEN_PROBE_LIMIT

    def _retry_policy(self, chain: FallbackChain) -> RetryPolicy:
        config = self.retry_config
        if chain.attempt_timeout is not None:
            config = RetryConfig(
                max_attempts=config.max_attempts,
                initial_delay=config.initial_delay,
                max_delay=config.max_delay,
                backoff_multiplier=config.backoff_multiplier,
                jitter=config.jitter,
                attempt_timeout=chain.attempt_timeout,
            )
        return RetryPolicy(config, sleep=self._sleep, rng=self._rng)

    async def _invoke(
        self,
        provider: str,
        attempt_number: int,
        chain: FallbackChain,
        op: ProviderCall[T],
    ) -> tuple[ExecutionAttempt, Any]:
        """Run one admitted provider through the retry policy"""
        start = self._clock()

        async def on_attempt(number: int, error: ExecutionError | None, duration_ms: float) -> None:
            if error is None:
                await self._health.record_success(provider, duration_ms)
            else:
                await self._health.record_failure(provider, error, duration_ms)

        def should_retry() -> bool:
            return not self._health.is_open(provider)

        policy = self._retry_policy(chain)
        try:
            result = await policy.execute(
                provider, lambda: op(provider), on_attempt=on_attempt, should_retry=should_retry
            )
        except (NonRetryableError, MaxRetriesExceededError) as e:
            return (
                ExecutionAttempt(
                    provider=provider,
                    attempt_number=attempt_number,
                    start_time=start,
                    end_time=self._clock(),
                    success=False,
                    error=e.error,
                ),
                None,
            )
        except asyncio.CancelledError:
            self._health.release(provider)
            raise

        return (
            ExecutionAttempt(
                provider=provider,
                attempt_number=attempt_number,
                start_time=start,
                end_time=self._clock(),
                success=True,
            ),
            result,
        )

    @staticmethod
    def _ends_chain(error: ExecutionError | None) -> bool:
        return error is not None and error.type == ErrorType.VALIDATION

    @staticmethod
    def _failure(
        strategy: FallbackStrategy, attempts: list[ExecutionAttempt]
    ) -> FallbackResult:
        last_error = next((a.error for a in reversed(attempts) if a.error is not None), None)
        return FallbackResult(success=False, strategy=strategy, error=last_error)

    # =========================================================================
    # Strategies
    # =========================================================================

    async def _run_sequential(
        self,
        providers: list[str],
        chain: FallbackChain,
        op: ProviderCall[T],
        attempts: list[ExecutionAttempt],
    ) -> FallbackResult:
        for number, provider in enumerate(providers, start=1):
            reason = self._admit(provider)
            if reason is not None:
                attempts.append(self._skipped(provider, number, reason))
                continue

            attempt, result = await self._invoke(provider, number, chain, op)
            attempts.append(attempt)

            if attempt.success:
                return FallbackResult(
                    success=True, strategy=chain.strategy, result=result, provider_used=provider
                )

            if self._ends_chain(attempt.error):
                self._logger.warning(f"Validation error from {provider}, stopping chain")
                break

        return self._failure(chain.strategy, attempts)

    async def _run_parallel(
        self,
        providers: list[str],
        chain: FallbackChain,
        op: ProviderCall[T],
        attempts: list[ExecutionAttempt],
    ) -> FallbackResult:
        width = max(1, chain.parallel_attempts or self.config.parallel_attempts)

        racers: list[tuple[int, str]] = []
        for number, provider in enumerate(providers, start=1):
            if len(racers) >= width:
                break
            reason = self._admit(provider)
            if reason is not None:
                attempts.append(self._skipped(provider, number, reason))
                continue
            racers.append((number, provider))

        if not racers:
            self._logger.error("No provider available to race")
            return self._failure(chain.strategy, attempts)

        self._logger.debug(f"Racing {', '.join(p for _, p in racers)}")
        pending: set[asyncio.Task[tuple[ExecutionAttempt, Any]]] = {
            asyncio.create_task(self._invoke(provider, number, chain, op), name=f"race-{provider}")
            for number, provider in racers
        }

        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                outcomes = sorted((task.result() for task in done), key=lambda o: o[0].attempt_number)
                attempts.extend(attempt for attempt, _ in outcomes)

                winner = next((o for o in outcomes if o[0].success), None)
                if winner is not None:
                    return FallbackResult(
                        success=True,
                        strategy=chain.strategy,
                        result=winner[1],
                        provider_used=winner[0].provider,
                    )
        finally:
            for task in pending:
                task.cancel()
            for task in pending:
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        return self._failure(chain.strategy, attempts)

    def cascade_skip_reason(self, provider: str) -> str | None:
        """Why cascade would skip ``provider`` without trying it, if at all"""
        if not self._health.known(provider):
            return None

        status = self._health.get_status(provider)
        if status.circuit_state == CircuitState.OPEN:
            return SKIP_CIRCUIT_OPEN
        # A half-open circuit is a deliberate probe; its failure streak is expected.
        if (
            status.circuit_state == CircuitState.CLOSED
            and status.consecutive_failures >= CASCADE_MAX_CONSECUTIVE_FAILURES
        ):
            return SKIP_CONSECUTIVE_FAILURES
        if (
            status.failure_rate > CASCADE_HIGH_FAILURE_RATE
            and status.total_requests > CASCADE_MIN_REQUESTS_FOR_RATE
        ):
            return SKIP_HIGH_FAILURE_RATE
        if (
            status.last_rate_limit_time is not None
            and self._clock() - status.last_rate_limit_time < self.config.recent_rate_limit_seconds
        ):
            return SKIP_RECENT_RATE_LIMIT
        return None

    def health_order(self, providers: list[str]) -> list[str]:
        """Stable sort by health score, highest first"""
        return sorted(providers, key=self._health.health_score, reverse=True)

    async def _run_cascade(
        self,
        providers: list[str],
        chain: FallbackChain,
        op: ProviderCall[T],
        attempts: list[ExecutionAttempt],
        sort_by_health: bool,
    ) -> FallbackResult:
        ordered = self.health_order(providers) if sort_by_health else list(providers)

        for number, provider in enumerate(ordered, start=1):
            reason = self.cascade_skip_reason(provider) or self._admit(provider)
            if reason is not None:
                attempts.append(self._skipped(provider, number, reason))
                continue

            attempt, result = await self._invoke(provider, number, chain, op)
            attempts.append(attempt)

            if attempt.success:
                return FallbackResult(
                    success=True, strategy=chain.strategy, result=result, provider_used=provider
                )

            if self._ends_chain(attempt.error):
                self._logger.warning(f"Validation error from {provider}, stopping cascade")
                break

        return self._failure(chain.strategy, attempts)

    # =========================================================================
    # History
    # =========================================================================

    def _record_history(self, attempts: list[ExecutionAttempt]) -> None:
        self._history.extend(a for a in attempts if not a.skipped)
        self.trim_history()

    def trim_history(self) -> int:
        """Drop attempts older than the configured max age; returns how many"""
        cutoff = self._clock() - self.config.history_max_age_seconds
        removed = 0
        while self._history and self._history[0].start_time < cutoff:
            self._history.popleft()
            removed += 1
        return removed

    def history(self) -> list[ExecutionAttempt]:
        return list(self._history)

    def load_history(self, attempts: list[ExecutionAttempt]) -> None:
        self._history.clear()
        self._history.extend(attempts)
        self.trim_history()

    def adaptive_score(self, provider: str, recent: list[ExecutionAttempt] | None = None) -> float:
        recent = recent if recent is not None else list(self._history)[-self.config.adaptive_window :]
        relevant = [a for a in recent if a.provider == provider]
        if not relevant:
            return ADAPTIVE_UNKNOWN_SCORE

        success_rate = sum(1 for a in relevant if a.success) / len(relevant)
        avg_duration = sum(a.duration_ms for a in relevant) / len(relevant)
        return success_rate * 70 + (1 - min(avg_duration / 10000, 1)) * 30

    def adaptive_order(self, providers: list[str]) -> list[str]:
        recent = list(self._history)[-self.config.adaptive_window :]
        scores = {p: self.adaptive_score(p, recent) for p in providers}
        return sorted(providers, key=lambda p: scores[p], reverse=True)

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_runs": self._total_runs,
            "successful_runs": self._successful_runs,
            "recoveries": self._recoveries,
            "success_rate": (
                self._successful_runs / self._total_runs if self._total_runs else 0.0
            ),
            "history_size": len(self._history),
        }


def create_fallback_orchestrator(
    health: HealthTracker,
    strategy: FallbackStrategy = FallbackStrategy.SEQUENTIAL,
    max_attempts: int = 3,
) -> FallbackOrchestrator:
    return FallbackOrchestrator(
        health,
        retry_config=RetryConfig(max_attempts=max_attempts),
        config=FallbackConfig(strategy=strategy),
    )
