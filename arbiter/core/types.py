"""
Core Types for Arbiter

Provides the data model shared by every routing component:

Classes:
    - TaskComplexity / TaskCategory: Task classification enums
    - TimeConstraint / QualityRequirement: Request requirement enums
    - RoutingStrategy / FallbackStrategy: Strategy enums
    - CircuitState / ErrorType: Resilience enums
    - TaskClassification: Derived per-request classification
    - ProviderCapabilities / ProviderPricing: Provider metadata
    - ProviderHealthStatus: Per-provider rolling statistics
    - ExecutionError / ExecutionAttempt: Attempt log records
    - FallbackChain / FallbackResult: Orchestration plan and outcome
    - RoutingRequest / ProviderResponse: Normalized request and response
    - RoutingOptions / RoutingDecision / RoutingFeedback: Routing API types

Usage:
    from arbiter.core.types import Message, MessageRole, RoutingRequest

    request = RoutingRequest(
        messages=[Message(role=MessageRole.USER, content="Fix this bug")],
        max_tokens=512,
    )
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Final

# =============================================================================
# Classification Enums
# =============================================================================


class TaskComplexity(Enum):
    """
    Task complexity levels, ordered from least to most demanding.

    Members:
        TRIVIAL: Greetings, pings, one-liners
        SIMPLE: Definitions and short explanations
        MEDIUM: A single function or component
        COMPLEX: Refactors, reviews, multi-component work
        EXPERT: Distributed or enterprise-scale design

    Usage:
        >>> TaskComplexity.COMPLEX >= TaskComplexity.MEDIUM
        True
    """

    TRIVIAL = "trivial"
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        return _COMPLEXITY_ORDER.index(self)

    def __lt__(self, other: "TaskComplexity") -> bool:
        if not isinstance(other, TaskComplexity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: "TaskComplexity") -> bool:
        if not isinstance(other, TaskComplexity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: "TaskComplexity") -> bool:
        if not isinstance(other, TaskComplexity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: "TaskComplexity") -> bool:
        if not isinstance(other, TaskComplexity):
            return NotImplemented
        return self.rank >= other.rank


_COMPLEXITY_ORDER: Final[list[TaskComplexity]] = [
    TaskComplexity.TRIVIAL,
    TaskComplexity.SIMPLE,
    TaskComplexity.MEDIUM,
    TaskComplexity.COMPLEX,
    TaskComplexity.EXPERT,
]


class TaskCategory(Enum):
    """Closed set of task categories"""

    CODE_GENERATION = "code_generation"
    CODE_REVIEW = "code_review"
    DEBUGGING = "debugging"
    ARCHITECTURE = "architecture"
    TESTING = "testing"
    DOCUMENTATION = "documentation"
    OPTIMIZATION = "optimization"
    SECURITY = "security"
    GENERAL = "general"


class TimeConstraint(Enum):
    REALTIME = "realtime"
    NORMAL = "normal"
    BATCH = "batch"


class QualityRequirement(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskTolerance(Enum):
    """
    How much routing risk the caller accepts.

    Members:
        CONSERVATIVE: No exploration, half-open providers are not selected
        MODERATE: Default behaviour
        AGGRESSIVE: Doubled exploration rate
    """

    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


# =============================================================================
# Strategy Enums
# =============================================================================


class RoutingStrategy(Enum):
    """
    Routing strategy enumeration.

    Each strategy maps to a weight vector in arbiter.routing.scoring.

    Members:
        COST_OPTIMIZED: Lowest cost option
        QUALITY_FIRST: Best quality regardless of cost
        SPEED_FIRST: Fastest response time
        BALANCED: Balance between all factors
        ADAPTIVE: Weights shift with task complexity and time constraint
        CUSTOM: Weights supplied by configuration
    """

    COST_OPTIMIZED = "cost_optimized"
    QUALITY_FIRST = "quality_first"
    SPEED_FIRST = "speed_first"
    BALANCED = "balanced"
    ADAPTIVE = "adaptive"
    CUSTOM = "custom"


class FallbackStrategy(Enum):
    """
    Fallback execution strategies.

    Members:
        SEQUENTIAL: Try providers strictly in order
        PARALLEL: Race several providers, keep the first success
        CASCADE: Health-ordered sequential with proactive skipping
        ADAPTIVE: History-ordered cascade
    """

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    CASCADE = "cascade"
    ADAPTIVE = "adaptive"


# =============================================================================
# Resilience Enums
# =============================================================================


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class ErrorType(Enum):
    """Closed error taxonomy attached to every failed attempt"""

    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    SERVER = "server"
    NETWORK = "network"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


RETRYABLE_ERROR_TYPES: Final[frozenset[ErrorType]] = frozenset(
    {ErrorType.TIMEOUT, ErrorType.RATE_LIMIT, ErrorType.SERVER, ErrorType.NETWORK}
)


class MessageRole(Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


# =============================================================================
# Request / Response Types
# =============================================================================


@dataclass
class Message:
    """A single chat message"""

    role: MessageRole
    content: str
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.name:
            result["name"] = self.name
        return result


@dataclass
class RoutingRequest:
    """
    Normalized request handed to the engine by the request source.

    Attributes:
        messages: Conversation so far; the last user message is the prompt
        system_prompt: Optional system instructions
        task_description: Optional caller-supplied description of the task
        model: Optional model hint, part of the cache key
        temperature: Sampling temperature, part of the cache key
        max_tokens: Expected output size
        stream: Caller wants a streaming response
        tools: Tool definitions; non-empty means tool calling is required
        requires_vision: Request carries images
        metadata: Free-form data (project_id, user_id, batch, ...)
    """

    messages: list[Message]
    system_prompt: str | None = None
    task_description: str | None = None
    model: str | None = None
    temperature: float = 0.7
    max_tokens: int | None = None
    stream: bool = False
    tools: list[dict[str, Any]] | None = None
    requires_vision: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def prompt(self) -> str:
        """Content of the last user message"""
        for message in reversed(self.messages):
            if message.role == MessageRole.USER:
                return message.content
        return self.messages[-1].content if self.messages else ""

    @property
    def requires_tools(self) -> bool:
        return bool(self.tools)


@dataclass
class Usage:
    """Token usage reported by a provider"""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class ProviderResponse:
    """Normalized response returned by a provider adapter"""

    content: str
    provider: str = ""
    model: str = ""
    usage: Usage | None = None
    cost: float | None = None
    latency_ms: float = 0.0
    quality: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Classification
# =============================================================================


@dataclass(frozen=True)
class TokenEstimate:
    input: int
    output: int

    @property
    def total(self) -> int:
        return self.input + self.output


@dataclass(frozen=True)
class TaskClassification:
    """Immutable per-request classification produced by the TaskClassifier"""

    complexity: TaskComplexity
    category: TaskCategory
    estimated_tokens: TokenEstimate
    requires_reasoning: bool
    time_constraint: TimeConstraint
    quality_requirement: QualityRequirement
    confidence: float = 0.85

    @property
    def context_window(self) -> int:
        """Tokens the provider must hold for this request"""
        return self.estimated_tokens.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "complexity": self.complexity.value,
            "category": self.category.value,
            "estimated_tokens": {
                "input": self.estimated_tokens.input,
                "output": self.estimated_tokens.output,
                "total": self.estimated_tokens.total,
            },
            "requires_reasoning": self.requires_reasoning,
            "time_constraint": self.time_constraint.value,
            "quality_requirement": self.quality_requirement.value,
            "confidence": self.confidence,
        }


# =============================================================================
# Provider Metadata
# =============================================================================


@dataclass(frozen=True)
class ProviderPricing:
    """Price per one million tokens, in USD"""

    input_cost_per_1m: float
    output_cost_per_1m: float

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        input_cost = (input_tokens / 1_000_000) * self.input_cost_per_1m
        output_cost = (output_tokens / 1_000_000) * self.output_cost_per_1m
        return input_cost + output_cost


@dataclass(frozen=True)
class ProviderCapabilities:
    """Static metadata owned by provider registration"""

    max_context_window: int = 128_000
    supports_streaming: bool = True
    supports_tool_calling: bool = False
    supports_vision: bool = False
    specializations: frozenset[str] = frozenset()
    average_latency_ms: float = 2000.0
    requests_per_minute: int = 60

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_context_window": self.max_context_window,
            "supports_streaming": self.supports_streaming,
            "supports_tool_calling": self.supports_tool_calling,
            "supports_vision": self.supports_vision,
            "specializations": sorted(self.specializations),
            "average_latency_ms": self.average_latency_ms,
            "requests_per_minute": self.requests_per_minute,
        }


# =============================================================================
# Health & Attempt Records
# =============================================================================


@dataclass
class ProviderHealthStatus:
    """
    Rolling health statistics for one provider.

    Owned by the HealthTracker; everything else receives copies.
    Timestamps are clock seconds (time.time() unless a clock is injected).
    """

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

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "healthy": self.healthy,
            "circuit_state": self.circuit_state.value,
            "consecutive_failures": self.consecutive_failures,
            "consecutive_successes": self.consecutive_successes,
            "failure_rate": self.failure_rate,
            "average_response_time_ms": self.average_response_time_ms,
            "last_success_time": self.last_success_time,
            "last_failure_time": self.last_failure_time,
            "last_rate_limit_time": self.last_rate_limit_time,
            "last_checked": self.last_checked,
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "timeout_count": self.timeout_count,
            "rate_limit_count": self.rate_limit_count,
        }


@dataclass(frozen=True)
class ExecutionError:
    """A provider failure after classification"""

    code: str
    message: str
    type: ErrorType
    retryable: bool
    provider: str
    timestamp: float = field(default_factory=time.time)
    status_code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "retryable": self.retryable,
            "provider": self.provider,
            "timestamp": self.timestamp,
            "status_code": self.status_code,
        }


@dataclass(frozen=True)
class ExecutionAttempt:
    """One try (or skip) of one provider; never mutated after creation"""

    provider: str
    attempt_number: int
    start_time: float
    end_time: float
    success: bool
    error: ExecutionError | None = None
    skipped: bool = False
    skip_reason: str | None = None

    @property
    def duration_ms(self) -> float:
        return max(0.0, (self.end_time - self.start_time) * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "attempt_number": self.attempt_number,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_ms": self.duration_ms,
            "success": self.success,
            "error": self.error.to_dict() if self.error else None,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
        }


# =============================================================================
# Fallback Types
# =============================================================================


@dataclass
class FallbackChain:
    """Request-scoped execution plan built from the selector's ranking"""

    primary: str
    fallbacks: list[str] = field(default_factory=list)
    strategy: FallbackStrategy = FallbackStrategy.SEQUENTIAL
    attempt_timeout: float | None = None
    parallel_attempts: int | None = None

    @property
    def providers(self) -> list[str]:
        ordered: list[str] = []
        for name in [self.primary, *self.fallbacks]:
            if name not in ordered:
                ordered.append(name)
        return ordered


@dataclass
class FallbackMetrics:
    total_attempts: int = 0
    successful_provider: str | None = None
    failed_providers: list[str] = field(default_factory=list)
    skipped_providers: list[str] = field(default_factory=list)
    average_attempt_duration_ms: float = 0.0

    @classmethod
    def from_attempts(cls, attempts: list[ExecutionAttempt]) -> "FallbackMetrics":
        winner = next((a for a in attempts if a.success), None)
        executed = [a for a in attempts if not a.skipped]
        return cls(
            total_attempts=len(executed),
            successful_provider=winner.provider if winner else None,
            failed_providers=[a.provider for a in attempts if not a.success and not a.skipped],
            skipped_providers=[a.provider for a in attempts if a.skipped],
            average_attempt_duration_ms=(
                sum(a.duration_ms for a in executed) / max(len(executed), 1)
            ),
        )


@dataclass
class FallbackResult:
    """Outcome of running a fallback chain"""

    success: bool
    strategy: FallbackStrategy
    attempts: list[ExecutionAttempt] = field(default_factory=list)
    result: Any = None
    error: ExecutionError | None = None
    provider_used: str | None = None
    total_duration_ms: float = 0.0
    metrics: FallbackMetrics = field(default_factory=FallbackMetrics)

    @property
    def executed_attempts(self) -> list[ExecutionAttempt]:
        return [a for a in self.attempts if not a.skipped]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "strategy": self.strategy.value,
            "provider_used": self.provider_used,
            "total_duration_ms": self.total_duration_ms,
            "error": self.error.to_dict() if self.error else None,
            "attempts": [a.to_dict() for a in self.attempts],
            "metrics": {
                "total_attempts": self.metrics.total_attempts,
                "successful_provider": self.metrics.successful_provider,
                "failed_providers": self.metrics.failed_providers,
                "skipped_providers": self.metrics.skipped_providers,
                "average_attempt_duration_ms": self.metrics.average_attempt_duration_ms,
            },
        }


# =============================================================================
# Routing API Types
# =============================================================================


@dataclass
class RoutingOptions:
    """
    Per-call routing options.

    Attributes:
        strategy: Overrides the configured routing strategy
        cost_budget: Maximum estimated cost per request in USD
        min_quality: Minimum expected success rate (0-1)
        max_latency_ms: Maximum predicted latency
        preferred_providers: Providers that get a context-fit bonus
        excluded_providers: Providers never considered
        risk_tolerance: Exploration / half-open policy
    """

    strategy: RoutingStrategy | None = None
    cost_budget: float | None = None
    min_quality: float | None = None
    max_latency_ms: float | None = None
    preferred_providers: list[str] = field(default_factory=list)
    excluded_providers: list[str] = field(default_factory=list)
    risk_tolerance: RiskTolerance = RiskTolerance.MODERATE

    def cache_fragment(self) -> str:
        return "|".join(
            [
                self.strategy.value if self.strategy else "-",
                str(self.cost_budget),
                str(self.min_quality),
                str(self.max_latency_ms),
                ",".join(sorted(self.preferred_providers)),
                ",".join(sorted(self.excluded_providers)),
                self.risk_tolerance.value,
            ]
        )


@dataclass
class RoutingDecision:
    """The engine's choice for one request"""

    provider: str
    reasoning: list[str]
    confidence: float
    estimated_cost: float
    estimated_latency_ms: float
    fallback_chain: list[str] = field(default_factory=list)
    strategy: RoutingStrategy = RoutingStrategy.BALANCED
    classification: TaskClassification | None = None
    scores: list[dict[str, Any]] = field(default_factory=list)
    explored: bool = False
    cached: bool = False
    decision_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision_id": self.decision_id,
            "provider": self.provider,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "estimated_cost": self.estimated_cost,
            "estimated_latency_ms": self.estimated_latency_ms,
            "fallback_chain": self.fallback_chain,
            "strategy": self.strategy.value,
            "classification": self.classification.to_dict() if self.classification else None,
            "scores": self.scores,
            "explored": self.explored,
            "cached": self.cached,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class RoutingFeedback:
    """What actually happened after a decision was executed"""

    decision_id: str
    provider: str
    success: bool
    actual_latency_ms: float | None = None
    actual_cost: float | None = None
    actual_quality: float | None = None
    error: ExecutionError | None = None
    cached: bool = False


@dataclass
class ExecutionOutcome:
    decision: RoutingDecision
    response: ProviderResponse
    feedback: RoutingFeedback
    fallback_result: FallbackResult | None = None
