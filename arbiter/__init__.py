"""
Arbiter
=======

Provider routing & resilience engine.

Selects, among interchangeable remote backends, the provider best suited to
a request and keeps the request completing when that provider is slow,
unhealthy or failing.

Features:
    - Task classification and multi-criteria provider scoring
    - Epsilon-greedy selection with learning from outcomes
    - Per-provider circuit breaking and retry with backoff
    - Sequential, parallel, cascade and adaptive fallback
    - Response caching (LRU, LFU, TTL) and a cost ledger with budgets

Usage:
    from arbiter import ProviderRegistry, RoutingEngine

    engine = RoutingEngine(ProviderRegistry([alpha, beta]))
    outcome = await engine.route_and_execute(request)
"""

__version__ = "1.0.0"

# =============================================================================
# Core Imports
# =============================================================================
from .core import (
    AllProvidersFailedError,
    ArbiterConfig,
    ArbiterException,
    BudgetExceededError,
    ConfigBuilder,
    ConfigurationError,
    ErrorType,
    ExecutionOutcome,
    FallbackStrategy,
    Message,
    MessageRole,
    NoAvailableProviderError,
    ProviderCapabilities,
    ProviderError,
    ProviderHealthStatus,
    ProviderPricing,
    ProviderResponse,
    RiskTolerance,
    RoutingDecision,
    RoutingFeedback,
    RoutingOptions,
    RoutingRequest,
    RoutingStrategy,
    TaskCategory,
    TaskClassification,
    TaskComplexity,
    Usage,
    configure_logging,
    load_config,
)

# =============================================================================
# Component Imports
# =============================================================================
from .cache import ResponseCache, create_response_cache
from .cost import Budget, CostFilter, CostLedger
from .providers import ProviderAdapter, ProviderRegistry
from .routing import RoutingEngine, RoutingRule, RuleAction, create_engine

__all__ = [
    "__version__",
    # Core
    "AllProvidersFailedError",
    "ArbiterConfig",
    "ArbiterException",
    "BudgetExceededError",
    "ConfigBuilder",
    "ConfigurationError",
    "ErrorType",
    "ExecutionOutcome",
    "FallbackStrategy",
    "Message",
    "MessageRole",
    "NoAvailableProviderError",
    "ProviderCapabilities",
    "ProviderError",
    "ProviderHealthStatus",
    "ProviderPricing",
    "ProviderResponse",
    "RiskTolerance",
    "RoutingDecision",
    "RoutingFeedback",
    "RoutingOptions",
    "RoutingRequest",
    "RoutingStrategy",
    "TaskCategory",
    "TaskClassification",
    "TaskComplexity",
    "Usage",
    "configure_logging",
    "load_config",
    # Components
    "ResponseCache",
    "create_response_cache",
    "Budget",
    "CostFilter",
    "CostLedger",
    "ProviderAdapter",
    "ProviderRegistry",
    "RoutingEngine",
    "RoutingRule",
    "RuleAction",
    "create_engine",
]
