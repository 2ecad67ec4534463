"""
Health Tracker
==============

Owns every ProviderHealthStatus and CircuitBreaker. Mutations for one
provider are serialized by that provider's asyncio.Lock; readers receive
copies, so scoring works from a consistent snapshot without locking.
"""

import asyncio
import contextlib
import dataclasses
import time
from collections.abc import Callable
from typing import Any

from arbiter.core.config import CircuitBreakerConfig
from arbiter.core.logging import get_standard_logger as get_logger
from arbiter.core.types import CircuitState, ErrorType, ExecutionError, ProviderHealthStatus

from .circuit_breaker import CircuitBreaker

# =============================================================================
# Health Thresholds
# =============================================================================

UNHEALTHY_FAILURE_RATE = 0.3
UNHEALTHY_CONSECUTIVE_FAILURES = 5
RECENT_SUCCESS_WINDOW_SECONDS = 60.0


class HealthTracker:
    """
    Per-provider rolling statistics plus circuit breaking.

    Usage:
        tracker = HealthTracker()
        if tracker.allow_request("alpha"):
            ...
            await tracker.record_success("alpha", duration_ms=420.0)
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] | None = None,
        sweep_interval: float = 60.0,
    ):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock or time.time
        self.sweep_interval = sweep_interval

        self._statuses: dict[str, ProviderHealthStatus] = {}
        self._breakers: dict[str, CircuitBreaker] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._sweep_task: asyncio.Task[None] | None = None
        self._logger = get_logger("arbiter.health")

    # =========================================================================
    # Internal State
    # =========================================================================

    def _ensure(self, provider: str) -> ProviderHealthStatus:
        status = self._statuses.get(provider)
        if status is None:
            status = ProviderHealthStatus(provider=provider)
            self._statuses[provider] = status
            self._breakers[provider] = CircuitBreaker(provider, self.config, self._clock)
            self._locks[provider] = asyncio.Lock()
        return status

    def _lock_for(self, provider: str) -> asyncio.Lock:
        self._ensure(provider)
        return self._locks[provider]

    def breaker(self, provider: str) -> CircuitBreaker:
        self._ensure(provider)
        return self._breakers[provider]

    def _refresh(self, status: ProviderHealthStatus) -> None:
        if status.total_requests > 0:
            status.failure_rate = status.failed_requests / status.total_requests

        status.circuit_state = self._breakers[status.provider].check_and_update()
        status.healthy = (
            status.failure_rate < UNHEALTHY_FAILURE_RATE
            and status.consecutive_failures < UNHEALTHY_CONSECUTIVE_FAILURES
            and status.circuit_state != CircuitState.OPEN
        )
        status.last_checked = self._clock()

    # =========================================================================
    # Circuit Checks
    # =========================================================================

    def is_open(self, provider: str) -> bool:
        if provider not in self._statuses:
            return False
        return self._breakers[provider].is_open

    def get_circuit_state(self, provider: str) -> CircuitState:
        if provider not in self._statuses:
            return CircuitState.CLOSED
        return self._breakers[provider].state

    def allow_request(self, provider: str) -> bool:
        """Admit one attempt, taking a probe slot when half-open"""
        return self.breaker(provider).try_acquire()

    def release(self, provider: str) -> None:
        """Give back an admission that ended without an outcome (cancellation)"""
        if provider in self._breakers:
            self._breakers[provider].release()

    # =========================================================================
    # Recording
    # =========================================================================

    async def record_success(self, provider: str, duration_ms: float = 0.0) -> None:
        async with self._lock_for(provider):
            status = self._statuses[provider]
            status.total_requests += 1
            status.successful_requests += 1
            status.consecutive_successes += 1
            status.consecutive_failures = 0
            status.last_success_time = self._clock()

            if duration_ms > 0:
                count = status.successful_requests
                status.average_response_time_ms += (
                    duration_ms - status.average_response_time_ms
                ) / count

            self._breakers[provider].record_success()
            self._refresh(status)

        self._logger.debug(f"Recorded success for {provider} ({duration_ms:.0f}ms)")

    async def record_failure(
        self,
        provider: str,
        error: ExecutionError | None = None,
        duration_ms: float = 0.0,
    ) -> None:
        async with self._lock_for(provider):
            status = self._statuses[provider]
            now = self._clock()
            status.total_requests += 1
            status.failed_requests += 1
            status.consecutive_failures += 1
            status.consecutive_successes = 0
            status.last_failure_time = now

            if error is not None:
                if error.type == ErrorType.TIMEOUT:
                    status.timeout_count += 1
                elif error.type == ErrorType.RATE_LIMIT:
                    status.rate_limit_count += 1
                    status.last_rate_limit_time = now

            self._breakers[provider].record_failure()
            self._refresh(status)

        self._logger.warning(
            f"Recorded failure for {provider}: {error.type.value if error else 'unknown'}"
        )

    # =========================================================================
    # Reads
    # =========================================================================

    def get_status(self, provider: str) -> ProviderHealthStatus:
        """Copy of the provider's status; a fresh status for unknown providers"""
        if provider not in self._statuses:
            return ProviderHealthStatus(provider=provider)
        status = self._statuses[provider]
        status.circuit_state = self._breakers[provider].check_and_update()
        return dataclasses.replace(status)

    def get_all_statuses(self) -> list[ProviderHealthStatus]:
        return [self.get_status(name) for name in self._statuses]

    def snapshot(self, providers: list[str] | None = None) -> dict[str, ProviderHealthStatus]:
        names = providers if providers is not None else list(self._statuses)
        return {name: self.get_status(name) for name in names}

    def known(self, provider: str) -> bool:
        return provider in self._statuses

    def health_score(self, provider: str) -> float:
        """
        0-100 score used to order the cascade strategy.

        Penalizes failure rate, consecutive failures and non-closed circuits;
        rewards consecutive successes and a success within the last minute.
        """
        status = self.get_status(provider)

        score = 100.0
        score -= status.failure_rate * 40
        score -= status.consecutive_failures * 10

        if status.circuit_state == CircuitState.OPEN:
            score -= 50
        elif status.circuit_state == CircuitState.HALF_OPEN:
            score -= 20

        score += min(status.consecutive_successes * 5, 20)

        if (
            status.last_success_time is not None
            and self._clock() - status.last_success_time < RECENT_SUCCESS_WINDOW_SECONDS
        ):
            score += 10

        return max(0.0, min(100.0, score))

    # =========================================================================
    # Background Sweep
    # =========================================================================

    async def sweep(self) -> list[str]:
        """Apply due OPEN -> HALF_OPEN transitions; returns the providers moved"""
        moved: list[str] = []
        for provider in list(self._statuses):
            async with self._locks[provider]:
                status = self._statuses[provider]
                before = status.circuit_state
                self._refresh(status)
                if before == CircuitState.OPEN and status.circuit_state == CircuitState.HALF_OPEN:
                    moved.append(provider)

        if moved:
            self._logger.info(f"Circuits moved to half-open: {', '.join(moved)}")
        return moved

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            await self.sweep()

    def start(self) -> None:
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    # =========================================================================
    # Management
    # =========================================================================

    def reset(self, provider: str | None = None) -> None:
        names = [provider] if provider else list(self._statuses)
        for name in names:
            if name in self._statuses:
                self._statuses[name] = ProviderHealthStatus(provider=name)
                self._breakers[name].reset()
        self._logger.info(f"Health reset for {provider or 'all providers'}")

    def export_state(self) -> dict[str, Any]:
        return {
            name: {
                "status": self._statuses[name].to_dict(),
                "circuit": self._breakers[name].to_dict(),
            }
            for name in self._statuses
        }

    def import_state(self, data: dict[str, Any]) -> None:
        for name, entry in data.items():
            status = self._ensure(name)
            raw = dict(entry.get("status", {}))
            for field_info in dataclasses.fields(ProviderHealthStatus):
                if field_info.name in ("provider", "circuit_state") or field_info.name not in raw:
                    continue
                setattr(status, field_info.name, raw[field_info.name])
            self._breakers[name].restore(entry.get("circuit", {}))
            self._refresh(status)

    def get_stats(self) -> dict[str, Any]:
        statuses = self.get_all_statuses()
        return {
            "providers": len(statuses),
            "healthy": sum(1 for s in statuses if s.healthy),
            "open_circuits": [s.provider for s in statuses if s.circuit_state == CircuitState.OPEN],
            "half_open_circuits": [
                s.provider for s in statuses if s.circuit_state == CircuitState.HALF_OPEN
            ],
            "sweeping": self.running,
        }
