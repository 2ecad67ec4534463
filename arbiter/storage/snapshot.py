"""
Statistics Snapshot Schema
==========================

Pydantic models for the exported engine state: learned per-provider
performance, health counters with circuit state, the cost ledger, budgets
and the bounded recent-attempt log. A snapshot is importable into an engine
of the same version that exported it.
"""

from typing import Any

from pydantic import BaseModel, Field

from arbiter.core.types import CircuitState, ErrorType, ExecutionAttempt, ExecutionError
from arbiter.cost.ledger import Budget, CostRecord

SNAPSHOT_VERSION = 1


# =============================================================================
# Learning
# =============================================================================


class CategoryPerformanceModel(BaseModel):
    category: str
    count: int = 0
    successes: int = 0
    average_quality: float | None = None
    average_latency_ms: float | None = None
    average_cost: float | None = None
    preference_score: float = Field(default=0.5, ge=0.0, le=1.0)


class ProviderPerformanceModel(BaseModel):
    provider: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_latency_ms: float | None = None
    average_quality: float | None = None
    average_cost: float | None = None
    total_cost: float = 0.0
    last_used: float | None = None
    categories: dict[str, CategoryPerformanceModel] = Field(default_factory=dict)


# =============================================================================
# Health
# =============================================================================


class HealthStatusModel(BaseModel):
    provider: str
    healthy: bool = True
    circuit_state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    failure_rate: float = 0.0
    average_response_time_ms: float = 0.0
    last_success_time: float | None = None
    last_failure_time: float | None = None
    last_rate_limit_time: float | None = None
    last_checked: float | None = None
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    timeout_count: int = 0
    rate_limit_count: int = 0


class CircuitModel(BaseModel):
    provider: str
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    opened_at: float | None = None
    probes_in_flight: int = 0
    trips: int = 0


class ProviderHealthModel(BaseModel):
    status: HealthStatusModel
    circuit: CircuitModel


# =============================================================================
# Cost & Attempts
# =============================================================================


class CostRecordModel(BaseModel):
    id: str
    timestamp: float
    provider: str
    model: str = ""
    cost: float = Field(ge=0.0)
    input_tokens: int = 0
    output_tokens: int = 0
    project_id: str | None = None
    user_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_record(self) -> CostRecord:
        return CostRecord(**self.model_dump())


class BudgetModel(BaseModel):
    id: str
    name: str
    limit: float = Field(gt=0.0)
    warning_threshold: float = 80.0
    active: bool = True
    provider: str | None = None
    project_id: str | None = None
    start_time: float | None = None
    end_time: float | None = None

    def to_budget(self) -> Budget:
        return Budget(**self.model_dump())


class ExecutionErrorModel(BaseModel):
    code: str
    message: str
    type: ErrorType
    retryable: bool
    provider: str
    timestamp: float
    status_code: int | None = None

    def to_error(self) -> ExecutionError:
        return ExecutionError(**self.model_dump())


class AttemptModel(BaseModel):
    provider: str
    attempt_number: int
    start_time: float
    end_time: float
    success: bool
    error: ExecutionErrorModel | None = None
    skipped: bool = False
    skip_reason: str | None = None

    @classmethod
    def from_attempt(cls, attempt: ExecutionAttempt) -> "AttemptModel":
        return cls.model_validate(attempt.to_dict())

    def to_attempt(self) -> ExecutionAttempt:
        return ExecutionAttempt(
            provider=self.provider,
            attempt_number=self.attempt_number,
            start_time=self.start_time,
            end_time=self.end_time,
            success=self.success,
            error=self.error.to_error() if self.error else None,
            skipped=self.skipped,
            skip_reason=self.skip_reason,
        )


# =============================================================================
# Snapshot
# =============================================================================


class StatisticsSnapshot(BaseModel):
    version: int = SNAPSHOT_VERSION
    exported_at: float
    learning: dict[str, ProviderPerformanceModel] = Field(default_factory=dict)
    health: dict[str, ProviderHealthModel] = Field(default_factory=dict)
    cost_records: list[CostRecordModel] = Field(default_factory=list)
    budgets: list[BudgetModel] = Field(default_factory=list)
    history: list[AttemptModel] = Field(default_factory=list)
