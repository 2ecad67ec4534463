"""
Retry Policy
============

Wraps one provider invocation with bounded retries:

- only retryable error types (timeout, rate_limit, server, network) are retried
- delay after failed attempt n is min(max_delay, initial_delay * multiplier^(n-1)),
  jittered by +/-25% and never above max_delay
- every attempt runs under asyncio.timeout(attempt_timeout); expiry is a
  timeout failure
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from arbiter.core.config import RetryConfig
from arbiter.core.exceptions import (
    MaxRetriesExceededError,
    NonRetryableError,
    ProviderRateLimitError,
    classify_error,
)
from arbiter.core.logging import get_standard_logger as get_logger
from arbiter.core.types import ExecutionError

T = TypeVar("T")

JITTER_RATIO = 0.25

AttemptCallback = Callable[[int, ExecutionError | None, float], Awaitable[None]]


class RetryPolicy:
    """
    Usage:
        policy = RetryPolicy(RetryConfig(max_attempts=3))
        response = await policy.execute("alpha", lambda: adapter.execute(request))
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self._logger = get_logger("arbiter.retry")

        self._total_retries = 0

    def calculate_delay(self, attempt: int) -> float:
        """Delay to wait after failed attempt ``attempt`` (1-based)"""
        delay = self.config.initial_delay * (self.config.backoff_multiplier ** (attempt - 1))
        delay = min(delay, self.config.max_delay)

        if self.config.jitter:
            delay += delay * JITTER_RATIO * (self._rng.random() * 2 - 1)

        return max(0.0, min(delay, self.config.max_delay))

    def _delay_for(self, attempt: int, error: BaseException) -> float:
        delay = self.calculate_delay(attempt)
        retry_after = getattr(error, "retry_after", None)
        if isinstance(error, ProviderRateLimitError) and retry_after:
            delay = min(max(delay, float(retry_after)), self.config.max_delay)
        return delay

    async def execute(
        self,
        provider: str,
        op: Callable[[], Awaitable[T]],
        on_attempt: AttemptCallback | None = None,
        should_retry: Callable[[], bool] | None = None,
    ) -> T:
        """
        Run ``op`` until it succeeds or retries are exhausted.

        Args:
            provider: Provider name used for error classification
            op: Zero-argument coroutine factory; called once per attempt
            on_attempt: Awaited after every attempt with
                (attempt_number, error or None, duration_ms)
            should_retry: Extra veto checked before each retry

        Raises:
            NonRetryableError: first failure was auth, validation or unknown
            MaxRetriesExceededError: retryable failures used up every attempt
        """
        max_attempts = max(1, self.config.max_attempts)
        last_error: ExecutionError | None = None

        for attempt in range(1, max_attempts + 1):
            start = time.perf_counter()
            try:
                async with asyncio.timeout(self.config.attempt_timeout):
                    result = await op()
            except Exception as e:
                duration_ms = (time.perf_counter() - start) * 1000
                last_error = classify_error(e, provider)

                if on_attempt is not None:
                    await on_attempt(attempt, last_error, duration_ms)

                self._logger.warning(
                    f"Attempt {attempt}/{max_attempts} failed for {provider}: "
                    f"{last_error.type.value} - {last_error.message}"
                )

                if not last_error.retryable:
                    raise NonRetryableError(provider=provider, error=last_error) from e

                if attempt >= max_attempts:
                    raise MaxRetriesExceededError(
                        provider=provider, max_attempts=attempt, last_error=last_error
                    ) from e

                if should_retry is not None and not should_retry():
                    self._logger.info(f"Retry vetoed for {provider} after attempt {attempt}")
                    raise MaxRetriesExceededError(
                        provider=provider, max_attempts=attempt, last_error=last_error
                    ) from e

                delay = self._delay_for(attempt, e)
                self._total_retries += 1
                self._logger.debug(f"Waiting {delay:.2f}s before retrying {provider}")
                await self._sleep(delay)
                continue

            duration_ms = (time.perf_counter() - start) * 1000
            if on_attempt is not None:
                await on_attempt(attempt, None, duration_ms)
            return result

        assert last_error is not None
        raise MaxRetriesExceededError(
            provider=provider, max_attempts=max_attempts, last_error=last_error
        )

    def get_stats(self) -> dict[str, Any]:
        return {
            "max_attempts": self.config.max_attempts,
            "total_retries": self._total_retries,
        }
