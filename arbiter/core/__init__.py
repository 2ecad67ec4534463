"""
Arbiter Core Module
===================

Foundation shared by every component:

Types:
    - TaskClassification, TaskComplexity, TaskCategory
    - ProviderCapabilities, ProviderPricing, ProviderHealthStatus
    - ExecutionAttempt, ExecutionError, FallbackChain, FallbackResult
    - RoutingRequest, RoutingOptions, RoutingDecision, RoutingFeedback

Configuration:
    - ArbiterConfig: Main configuration
    - ConfigManager: Configuration management
    - ConfigBuilder: Fluent config builder

Exceptions:
    - ArbiterException: Base exception
    - ProviderError family, RoutingError, execution failures

Utilities:
    - Logging
"""

from .config import (
    ArbiterConfig,
    BudgetSettings,
    CacheConfig,
    CircuitBreakerConfig,
    ConfigBuilder,
    ConfigManager,
    CostConfig,
    FallbackConfig,
    HealthConfig,
    PersistenceConfig,
    RetryConfig,
    RoutingConfig,
    StrategyWeightsConfig,
    SystemConfig,
    get_default_config,
    load_config,
)
from .exceptions import (
    AllProvidersFailedError,
    ArbiterException,
    BudgetExceededError,
    ConfigLoadError,
    ConfigurationError,
    InvalidConfigValueError,
    MaxRetriesExceededError,
    MissingConfigError,
    NoAvailableProviderError,
    NonRetryableError,
    ProviderAuthenticationError,
    ProviderError,
    ProviderNetworkError,
    ProviderNotFoundError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderTimeoutError,
    ProviderValidationError,
    RoutingError,
    classify_error,
    is_recoverable,
)
from .logging import configure_logging, get_logger, get_standard_logger
from .types import (
    CircuitState,
    ErrorType,
    ExecutionAttempt,
    ExecutionError,
    ExecutionOutcome,
    FallbackChain,
    FallbackMetrics,
    FallbackResult,
    FallbackStrategy,
    Message,
    MessageRole,
    ProviderCapabilities,
    ProviderHealthStatus,
    ProviderPricing,
    ProviderResponse,
    QualityRequirement,
    RiskTolerance,
    RoutingDecision,
    RoutingFeedback,
    RoutingOptions,
    RoutingRequest,
    RoutingStrategy,
    TaskCategory,
    TaskClassification,
    TaskComplexity,
    TimeConstraint,
    TokenEstimate,
    Usage,
)

__all__ = [
    # Types
    "CircuitState",
    "ErrorType",
    "ExecutionAttempt",
    "ExecutionError",
    "ExecutionOutcome",
    "FallbackChain",
    "FallbackMetrics",
    "FallbackResult",
    "FallbackStrategy",
    "Message",
    "MessageRole",
    "ProviderCapabilities",
    "ProviderHealthStatus",
    "ProviderPricing",
    "ProviderResponse",
    "QualityRequirement",
    "RiskTolerance",
    "RoutingDecision",
    "RoutingFeedback",
    "RoutingOptions",
    "RoutingRequest",
    "RoutingStrategy",
    "TaskCategory",
    "TaskClassification",
    "TaskComplexity",
    "TimeConstraint",
    "TokenEstimate",
    "Usage",
    # Exceptions
    "AllProvidersFailedError",
    "ArbiterException",
    "BudgetExceededError",
    "ConfigLoadError",
    "ConfigurationError",
    "InvalidConfigValueError",
    "MaxRetriesExceededError",
    "MissingConfigError",
    "NoAvailableProviderError",
    "NonRetryableError",
    "ProviderAuthenticationError",
    "ProviderError",
    "ProviderNetworkError",
    "ProviderNotFoundError",
    "ProviderRateLimitError",
    "ProviderServerError",
    "ProviderTimeoutError",
    "ProviderValidationError",
    "RoutingError",
    "classify_error",
    "is_recoverable",
    # Logging
    "configure_logging",
    "get_logger",
    "get_standard_logger",
    # Config
    "ArbiterConfig",
    "BudgetSettings",
    "CacheConfig",
    "CircuitBreakerConfig",
    "ConfigBuilder",
    "ConfigManager",
    "CostConfig",
    "FallbackConfig",
    "HealthConfig",
    "PersistenceConfig",
    "RetryConfig",
    "RoutingConfig",
    "StrategyWeightsConfig",
    "SystemConfig",
    "get_default_config",
    "load_config",
]
