import asyncio
import time
import traceback
from datetime import datetime
from typing import TYPE_CHECKING, Any

from arbiter.core.types import RETRYABLE_ERROR_TYPES, ErrorType, ExecutionError

if TYPE_CHECKING:
    from arbiter.core.types import ExecutionAttempt, FallbackStrategy

# =============================================================================
# Base Exception
# =============================================================================


class ArbiterException(Exception):
    """
    Base exception for every Arbiter error.

    Carries:
    - a unique error code
    - structured details
    - suggestions for the caller
    - the original cause and its traceback
    """

    error_code: str = "ARB_000"
    error_category: str = "general"
    severity: str = "error"  # debug, info, warning, error, critical

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        suggestions: list[str] | None = None,
        cause: Exception | None = None,
        recoverable: bool = True,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []
        self.cause = cause
        self.recoverable = recoverable
        self.context = context or {}
        self.timestamp = datetime.now()
        self.traceback = traceback.format_exc() if cause else None

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for logs and API responses"""
        return {
            "error_code": self.error_code,
            "error_category": self.error_category,
            "severity": self.severity,
            "message": self.message,
            "details": self.details,
            "suggestions": self.suggestions,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
            "traceback": self.traceback,
        }

    def __str__(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.suggestions:
            parts.append(f"Suggestions: {', '.join(self.suggestions)}")
        return " | ".join(parts)


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(ArbiterException):
    """Invalid engine configuration"""

    error_code = "ARB_CFG_001"
    error_category = "configuration"
    severity = "error"


class InvalidConfigValueError(ConfigurationError):
    error_code = "ARB_CFG_002"

    def __init__(self, key: str, value: Any, expected_type: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Invalid configuration value for '{key}'",
            details={"key": key, "value": str(value), "expected_type": expected_type},
            suggestions=[f"Provide a valid {expected_type} value for '{key}'"],
            **kwargs,
        )


class MissingConfigError(ConfigurationError):
    error_code = "ARB_CFG_003"

    def __init__(self, key: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Missing required configuration: '{key}'",
            details={"missing_key": key},
            suggestions=[f"Add '{key}' to your configuration file"],
            **kwargs,
        )


class ConfigLoadError(ConfigurationError):
    error_code = "ARB_CFG_004"

    def __init__(self, config_path: str, reason: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Failed to load configuration from '{config_path}'",
            details={"path": config_path, "reason": reason},
            suggestions=[
                "Check if the file exists",
                "Verify the file format (YAML/JSON)",
                "Check file permissions",
            ],
            **kwargs,
        )


# =============================================================================
# Provider Exceptions
# =============================================================================


class ProviderError(ArbiterException):
    """
    Failure raised by a provider adapter.

    Subclasses pin ``error_type`` so the engine can classify the failure
    without inspecting the message.
    """

    error_code = "ARB_PRV_001"
    error_category = "provider"
    severity = "error"
    error_type: ErrorType = ErrorType.UNKNOWN

    @property
    def provider_name(self) -> str | None:
        return self.details.get("provider")


class ProviderNotFoundError(ProviderError):
    error_code = "ARB_PRV_002"

    def __init__(self, provider_name: str, available_providers: list[str], **kwargs: Any) -> None:
        super().__init__(
            message=f"Provider '{provider_name}' not found",
            details={"provider": provider_name, "available": available_providers},
            suggestions=[f"Use one of: {', '.join(available_providers)}"],
            recoverable=False,
            **kwargs,
        )


class ProviderRateLimitError(ProviderError):
    error_code = "ARB_PRV_003"
    error_type = ErrorType.RATE_LIMIT

    def __init__(self, provider_name: str, retry_after: float | None = None, **kwargs: Any) -> None:
        details: dict[str, Any] = {"provider": provider_name}
        if retry_after:
            details["retry_after_seconds"] = retry_after

        suggestions = ["Wait before retrying", "Use a different provider"]
        if retry_after:
            suggestions.insert(0, f"Retry after {retry_after} seconds")

        super().__init__(
            message=f"Rate limit exceeded for provider '{provider_name}'",
            details=details,
            suggestions=suggestions,
            **kwargs,
        )

    @property
    def retry_after(self) -> float | None:
        return self.details.get("retry_after_seconds")


class ProviderAuthenticationError(ProviderError):
    error_code = "ARB_PRV_004"
    error_type = ErrorType.AUTH
    severity = "critical"

    def __init__(self, provider_name: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Authentication failed for provider '{provider_name}'",
            details={"provider": provider_name},
            suggestions=[
                "Check your API key",
                "Verify the key has the required permissions",
            ],
            recoverable=False,
            **kwargs,
        )


class ProviderTimeoutError(ProviderError):
    error_code = "ARB_PRV_005"
    error_type = ErrorType.TIMEOUT

    def __init__(self, provider_name: str, timeout_seconds: float, **kwargs: Any) -> None:
        super().__init__(
            message=f"Provider '{provider_name}' timed out after {timeout_seconds}s",
            details={"provider": provider_name, "timeout": timeout_seconds},
            suggestions=["Increase the attempt timeout", "Use a faster provider"],
            **kwargs,
        )


class ProviderServerError(ProviderError):
    error_code = "ARB_PRV_006"
    error_type = ErrorType.SERVER

    def __init__(
        self, provider_name: str, status_code: int = 500, response_body: str = "", **kwargs: Any
    ) -> None:
        super().__init__(
            message=f"Provider '{provider_name}' returned error {status_code}",
            details={
                "provider": provider_name,
                "status_code": status_code,
                "response": response_body[:500],
            },
            suggestions=["Check the provider's status page", "Try again later"],
            **kwargs,
        )

    @property
    def status_code(self) -> int:
        return int(self.details["status_code"])


class ProviderNetworkError(ProviderError):
    error_code = "ARB_PRV_007"
    error_type = ErrorType.NETWORK

    def __init__(self, provider_name: str, reason: str = "connection failed", **kwargs: Any) -> None:
        super().__init__(
            message=f"Network error talking to provider '{provider_name}': {reason}",
            details={"provider": provider_name, "reason": reason},
            suggestions=["Check your internet connection"],
            **kwargs,
        )


class ProviderValidationError(ProviderError):
    error_code = "ARB_PRV_008"
    error_type = ErrorType.VALIDATION

    def __init__(self, provider_name: str, reason: str, **kwargs: Any) -> None:
        super().__init__(
            message=f"Provider '{provider_name}' rejected the request: {reason}",
            details={"provider": provider_name, "reason": reason},
            suggestions=["Fix the request payload"],
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# Routing Exceptions
# =============================================================================


class RoutingError(ArbiterException):
    error_code = "ARB_ROT_001"
    error_category = "routing"
    severity = "error"


class NoAvailableProviderError(RoutingError):
    error_code = "ARB_ROT_002"
    severity = "critical"

    def __init__(self, requirements: dict[str, Any], **kwargs: Any) -> None:
        super().__init__(
            message="No available provider meets the requirements",
            details={"requirements": requirements},
            suggestions=[
                "Relax your requirements",
                "Register more providers",
                "Check provider availability",
            ],
            recoverable=False,
            **kwargs,
        )


class BudgetExceededError(RoutingError):
    error_code = "ARB_ROT_003"
    severity = "critical"

    def __init__(self, budget_id: str, limit: float, spent: float, **kwargs: Any) -> None:
        super().__init__(
            message=f"Budget '{budget_id}' exceeded: ${spent:.4f} spent of ${limit:.4f}",
            details={"budget_id": budget_id, "limit": limit, "spent": spent},
            suggestions=["Increase the budget", "Acknowledge the alert", "Use cheaper providers"],
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# Execution Exceptions
# =============================================================================


class ExecutionFailedError(ArbiterException):
    error_code = "ARB_EXE_001"
    error_category = "execution"
    severity = "error"


class NonRetryableError(ExecutionFailedError):
    """A single provider invocation failed with a non-retryable error"""

    error_code = "ARB_EXE_002"

    def __init__(self, provider: str, error: ExecutionError, **kwargs: Any) -> None:
        super().__init__(
            message=f"Provider '{provider}' failed with non-retryable {error.type.value} error",
            details={"provider": provider, "error": error.to_dict()},
            recoverable=False,
            **kwargs,
        )
        self.provider = provider
        self.error = error


class MaxRetriesExceededError(ExecutionFailedError):
    """A single provider invocation ran out of attempts"""

    error_code = "ARB_EXE_003"

    def __init__(self, provider: str, max_attempts: int, last_error: ExecutionError, **kwargs: Any) -> None:
        super().__init__(
            message=f"Provider '{provider}' exceeded max attempts ({max_attempts})",
            details={
                "provider": provider,
                "max_attempts": max_attempts,
                "last_error": last_error.to_dict(),
            },
            suggestions=["Try a different provider", "Increase max_attempts"],
            **kwargs,
        )
        self.provider = provider
        self.max_attempts = max_attempts
        self.error = last_error


class AllProvidersFailedError(ExecutionFailedError):
    """The whole fallback chain was exhausted; carries the complete attempt log"""

    error_code = "ARB_EXE_004"
    severity = "critical"

    def __init__(
        self,
        attempts: list["ExecutionAttempt"],
        strategy: "FallbackStrategy",
        last_error: ExecutionError | None = None,
        **kwargs: Any,
    ) -> None:
        executed = [a.provider for a in attempts if not a.skipped]
        skipped = [a.provider for a in attempts if a.skipped]
        super().__init__(
            message=(
                f"All providers failed ({len(executed)} attempts, {len(skipped)} skipped) "
                f"using {strategy.value} strategy"
            ),
            details={
                "strategy": strategy.value,
                "attempted": executed,
                "skipped": skipped,
                "last_error": last_error.to_dict() if last_error else None,
            },
            suggestions=["Inspect the attempt log", "Check provider health"],
            recoverable=False,
            **kwargs,
        )
        self.attempts = attempts
        self.strategy = strategy
        self.last_error = last_error


# =============================================================================
# Error Classification
# =============================================================================

_MESSAGE_KEYWORDS: list[tuple[ErrorType, tuple[str, ...]]] = [
    (ErrorType.TIMEOUT, ("timeout", "timed out", "etimedout", "time out")),
    (ErrorType.RATE_LIMIT, ("rate limit", "too many requests", "429")),
    (ErrorType.AUTH, ("unauthorized", "forbidden", "invalid api key", "401", "403")),
    (ErrorType.VALIDATION, ("invalid request", "validation", "bad request", "400", "422")),
    (ErrorType.SERVER, ("internal server error", "service unavailable", "500", "502", "503", "504")),
    (ErrorType.NETWORK, ("network", "econnrefused", "enotfound", "connection")),
]


def _type_from_status(status_code: int) -> ErrorType:
    if status_code == 408:
        return ErrorType.TIMEOUT
    if status_code == 429:
        return ErrorType.RATE_LIMIT
    if status_code in (401, 403):
        return ErrorType.AUTH
    if status_code >= 500:
        return ErrorType.SERVER
    if 400 <= status_code < 500:
        return ErrorType.VALIDATION
    return ErrorType.UNKNOWN


def classify_error(error: BaseException, provider: str) -> ExecutionError:
    """
    Map any exception raised during a provider call onto the error taxonomy.

    Order: typed provider errors, timeouts, connection errors, HTTP status
    codes, then message keywords. Anything else is ``unknown`` and not
    retryable.
    """
    status_code: int | None = getattr(error, "status_code", None)
    if not isinstance(status_code, int):
        status_code = None

    if isinstance(error, ProviderError) and error.error_type != ErrorType.UNKNOWN:
        error_type = error.error_type
    elif isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        error_type = ErrorType.TIMEOUT
    elif isinstance(error, (ConnectionError, OSError)):
        error_type = ErrorType.NETWORK
    elif status_code is not None:
        error_type = _type_from_status(status_code)
    else:
        error_type = ErrorType.UNKNOWN
        text = f"{getattr(error, 'code', '')} {error}".lower()
        for candidate, keywords in _MESSAGE_KEYWORDS:
            if any(keyword in text for keyword in keywords):
                error_type = candidate
                break

    code = getattr(error, "error_code", None) or getattr(error, "code", None)
    message = error.message if isinstance(error, ArbiterException) else str(error)
    return ExecutionError(
        code=str(code) if code else type(error).__name__,
        message=message or type(error).__name__,
        type=error_type,
        retryable=error_type in RETRYABLE_ERROR_TYPES,
        provider=provider,
        timestamp=time.time(),
        status_code=status_code,
    )


def is_recoverable(error: Exception) -> bool:
    """Plain exceptions are treated as recoverable"""
    if isinstance(error, ArbiterException):
        return error.recoverable
    return True


def get_error_severity(error: Exception) -> str:
    if isinstance(error, ArbiterException):
        return error.severity
    return "error"
