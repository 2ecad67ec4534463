"""
Circuit Breaker
===============

Per-provider state machine:

    CLOSED --(failure_threshold consecutive failures)--> OPEN
    OPEN --(timeout_seconds elapsed, on next state check)--> HALF_OPEN
    HALF_OPEN --(success_threshold consecutive successes)--> CLOSED
    HALF_OPEN --(any failure)--> OPEN

While HALF_OPEN at most ``half_open_max_probes`` requests may be in flight.
Instances are not locked; the HealthTracker serializes mutations per provider.
"""

import time
from collections.abc import Callable
from typing import Any

from arbiter.core.config import CircuitBreakerConfig
from arbiter.core.logging import get_standard_logger as get_logger
from arbiter.core.types import CircuitState


class CircuitBreaker:
    def __init__(
        self,
        provider: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.provider = provider
        self.config = config or CircuitBreakerConfig()
        self._clock = clock or time.time
        self._logger = get_logger("arbiter.circuit")

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: float | None = None
        self._state_changed_at = self._clock()
        self._probes_in_flight = 0
        self._trips = 0

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> CircuitState:
        """Current state; applies a due OPEN -> HALF_OPEN transition first"""
        return self.check_and_update()

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def opened_at(self) -> float | None:
        return self._opened_at

    def check_and_update(self) -> CircuitState:
        if (
            self._state == CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.config.timeout_seconds
        ):
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    def time_until_half_open(self) -> float:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self.config.timeout_seconds - (self._clock() - self._opened_at))

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return

        self._state = new_state
        self._state_changed_at = self._clock()

        if new_state == CircuitState.OPEN:
            self._opened_at = self._state_changed_at
            self._trips += 1
            self._probes_in_flight = 0
            self._success_count = 0
        elif new_state == CircuitState.HALF_OPEN:
            self._success_count = 0
            self._probes_in_flight = 0
        else:
            self._opened_at = None
            self._failure_count = 0
            self._success_count = 0
            self._probes_in_flight = 0

        self._logger.info(
            f"Circuit for {self.provider}: {old_state.value} -> {new_state.value}"
        )

    # =========================================================================
    # Admission
    # =========================================================================

    def try_acquire(self) -> bool:
        """
        Admit one request.

        Always true when CLOSED, never when OPEN. In HALF_OPEN a probe slot is
        taken; it is returned by record_success / record_failure / release.
        """
        state = self.check_and_update()
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.OPEN:
            return False
        if self._probes_in_flight >= self.config.half_open_max_probes:
            return False
        self._probes_in_flight += 1
        return True

    def release(self) -> None:
        """Return a probe slot for a request that never produced an outcome"""
        if self._probes_in_flight > 0:
            self._probes_in_flight -= 1

    # =========================================================================
    # Outcomes
    # =========================================================================

    def record_success(self) -> None:
        state = self.check_and_update()

        if state == CircuitState.HALF_OPEN:
            self.release()
            self._success_count += 1
            if self._success_count >= self.config.success_threshold:
                self._transition(CircuitState.CLOSED)
        elif state == CircuitState.CLOSED:
            self._failure_count = 0

    def record_failure(self) -> None:
        state = self.check_and_update()

        if state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif state == CircuitState.CLOSED:
            self._failure_count += 1
            if self._failure_count >= self.config.failure_threshold:
                self._logger.warning(
                    f"Circuit breaker opened for {self.provider} "
                    f"after {self._failure_count} consecutive failures"
                )
                self._transition(CircuitState.OPEN)

    def reset(self) -> None:
        self._transition(CircuitState.CLOSED)
        self._failure_count = 0
        self._trips = 0

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "opened_at": self._opened_at,
            "probes_in_flight": self._probes_in_flight,
            "trips": self._trips,
        }

    def restore(self, data: dict[str, Any]) -> None:
        self._state = CircuitState(data.get("state", CircuitState.CLOSED.value))
        self._failure_count = int(data.get("failure_count", 0))
        self._success_count = int(data.get("success_count", 0))
        self._opened_at = data.get("opened_at")
        self._trips = int(data.get("trips", 0))
        self._probes_in_flight = 0
        if self._state == CircuitState.OPEN and self._opened_at is None:
            self._opened_at = self._clock()
