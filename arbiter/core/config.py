"""
Configuration Management for Arbiter
====================================

Split into specialized components:
- ConfigLoader: Handles loading from files and environment
- ConfigValidator: Validates configuration values
- ConfigConverter: Turns plain dictionaries into typed sections
- ConfigManager: Coordinates loading and validation
- ConfigBuilder: Fluent programmatic construction
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from collections.abc import Callable
from copy import deepcopy
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from arbiter.storage.atomic import atomic_write

from .exceptions import ConfigLoadError, ConfigurationError
from .logging import configure_logging
from .types import FallbackStrategy, RoutingStrategy

# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class SystemConfig:
    """Core system configuration"""

    name: str = "arbiter"
    environment: str = "production"
    log_level: str = "INFO"
    log_format: str = "console"


@dataclass
class StrategyWeightsConfig:
    """Weights used by the CUSTOM routing strategy"""

    cost: float = 0.3
    quality: float = 0.35
    speed: float = 0.2
    reliability: float = 0.15


@dataclass
class RoutingConfig:
    """Provider scoring and selection"""

    strategy: RoutingStrategy = RoutingStrategy.BALANCED
    exploration_rate: float = 0.1
    fallback_size: int = 3
    learning_enabled: bool = True
    learning_rate: float = 0.1
    decay_factor: float = 0.95
    custom_weights: StrategyWeightsConfig = field(default_factory=StrategyWeightsConfig)
    decision_cache_enabled: bool = True
    decision_cache_ttl_seconds: float = 300.0
    decision_cache_size: int = 1000
    block_on_budget_exceeded: bool = False


@dataclass
class CircuitBreakerConfig:
    """Per-provider circuit breaker"""

    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 60.0
    half_open_max_probes: int = 1


@dataclass
class RetryConfig:
    """Retry with exponential backoff for one provider invocation"""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    attempt_timeout: float = 30.0


@dataclass
class FallbackConfig:
    """Fallback orchestration"""

    strategy: FallbackStrategy = FallbackStrategy.SEQUENTIAL
    parallel_attempts: int = 2
    history_size: int = 1000
    history_max_age_seconds: float = 3600.0
    recent_rate_limit_seconds: float = 10.0
    adaptive_window: int = 100


@dataclass
class CacheConfig:
    """Response cache"""

    enabled: bool = True
    policy: str = "lru"  # lru, lfu, ttl
    max_size: int = 100
    ttl_seconds: float = 3600.0
    sweep_interval_seconds: float = 60.0


@dataclass
class BudgetSettings:
    """A budget declared in configuration"""

    id: str
    name: str = ""
    limit: float = 0.0
    warning_threshold: float = 80.0
    active: bool = True
    provider: str | None = None
    project_id: str | None = None


@dataclass
class CostConfig:
    """Cost ledger"""

    max_records: int = 10000
    max_alerts: int = 1000
    alert_window_seconds: float = 3600.0
    budgets: list[BudgetSettings] = field(default_factory=list)


@dataclass
class HealthConfig:
    """Health tracker background work"""

    sweep_interval_seconds: float = 60.0


@dataclass
class PersistenceConfig:
    """Optional snapshot persistence"""

    enabled: bool = False
    directory: str = ".arbiter"
    snapshot_name: str = "statistics"
    max_backups: int = 5


@dataclass
class ArbiterConfig:
    """Complete engine configuration"""

    system: SystemConfig = field(default_factory=SystemConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    cost: CostConfig = field(default_factory=CostConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)

    def to_dict(self) -> dict[str, Any]:
        def dataclass_to_dict(obj: Any) -> Any:
            if is_dataclass(obj) and not isinstance(obj, type):
                return {f.name: dataclass_to_dict(getattr(obj, f.name)) for f in fields(obj)}
            if isinstance(obj, Enum):
                return obj.value
            if isinstance(obj, list):
                return [dataclass_to_dict(item) for item in obj]
            if isinstance(obj, dict):
                return {k: dataclass_to_dict(v) for k, v in obj.items()}
            return obj

        return dataclass_to_dict(self)  # type: ignore[no-any-return]


# =============================================================================
# ConfigLoader - Loads configuration from files and environment
# =============================================================================


def _to_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class ConfigLoader:
    """
    Loads configuration from files (YAML/JSON) and environment variables.

    Responsibilities:
    - File I/O operations
    - Environment variable parsing
    - Deep merging of configuration sources
    """

    def __init__(self, env_prefix: str = "ARBITER_"):
        self.env_prefix = env_prefix
        self._logger = logging.getLogger("arbiter.config.loader")

    def load_from_file(self, path: str) -> dict[str, Any]:
        """Load configuration from a YAML or JSON file"""
        file_path = Path(path)

        if not file_path.exists():
            raise ConfigLoadError(config_path=path, reason="File does not exist")

        suffix = file_path.suffix.lower()
        if suffix not in (".yaml", ".yml", ".json"):
            raise ConfigLoadError(config_path=path, reason=f"Unsupported file format: {suffix}")

        try:
            with open(file_path, encoding="utf-8") as f:
                content = f.read()

            if suffix in (".yaml", ".yml"):
                loaded = yaml.safe_load(content) or {}
            else:
                loaded = json.loads(content)
        except yaml.YAMLError as e:
            raise ConfigLoadError(config_path=path, reason=f"YAML error: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigLoadError(config_path=path, reason=f"JSON error: {e}") from e
        except OSError as e:
            raise ConfigLoadError(config_path=path, reason=str(e)) from e

        if not isinstance(loaded, dict):
            raise ConfigLoadError(config_path=path, reason="Top level must be a mapping")
        return loaded

    def load_from_env(self) -> dict[str, Any]:
        """Load configuration from environment variables"""
        config: dict[str, Any] = {}

        env_mappings: dict[str, tuple[tuple[str, ...], Callable[[str], Any]]] = {
            f"{self.env_prefix}ENVIRONMENT": (("system", "environment"), str),
            f"{self.env_prefix}LOG_LEVEL": (("system", "log_level"), str),
            f"{self.env_prefix}LOG_FORMAT": (("system", "log_format"), str),
            f"{self.env_prefix}STRATEGY": (("routing", "strategy"), str),
            f"{self.env_prefix}EXPLORATION_RATE": (("routing", "exploration_rate"), float),
            f"{self.env_prefix}LEARNING_ENABLED": (("routing", "learning_enabled"), _to_bool),
            f"{self.env_prefix}FALLBACK_STRATEGY": (("fallback", "strategy"), str),
            f"{self.env_prefix}MAX_ATTEMPTS": (("retry", "max_attempts"), int),
            f"{self.env_prefix}ATTEMPT_TIMEOUT": (("retry", "attempt_timeout"), float),
            f"{self.env_prefix}FAILURE_THRESHOLD": (("circuit_breaker", "failure_threshold"), int),
            f"{self.env_prefix}CIRCUIT_TIMEOUT": (("circuit_breaker", "timeout_seconds"), float),
            f"{self.env_prefix}CACHE_ENABLED": (("cache", "enabled"), _to_bool),
            f"{self.env_prefix}CACHE_POLICY": (("cache", "policy"), str),
            f"{self.env_prefix}CACHE_MAX_SIZE": (("cache", "max_size"), int),
            f"{self.env_prefix}PERSISTENCE_DIR": (("persistence", "directory"), str),
        }

        for env_var, (config_path, caster) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is None:
                continue
            try:
                self._set_nested(config, config_path, caster(value))
            except ValueError:
                self._logger.warning(f"Ignoring invalid value for {env_var}: {value!r}")

        return config

    def _set_nested(self, config: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
        """Set a value in a nested dictionary path"""
        current = config
        for key in path[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def deep_merge(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries"""
        result = deepcopy(base)

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self.deep_merge(result[key], value)
            else:
                result[key] = deepcopy(value)

        return result

    def calculate_file_hash(self, path: str) -> str:
        with open(path, "rb") as f:
            return hashlib.md5(f.read()).hexdigest()


# =============================================================================
# ConfigValidator - Validates configuration values
# =============================================================================


class ConfigValidator:
    """
    Validates configuration values and normalizes recoverable mistakes.

    Hard errors are returned as errors; values that can be repaired are
    reset to defaults and reported as warnings.
    """

    VALID_ENVIRONMENTS = {"development", "staging", "production", "test"}
    VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    VALID_LOG_FORMATS = {"console", "json"}
    VALID_CACHE_POLICIES = {"lru", "lfu", "ttl"}

    def __init__(self) -> None:
        self._logger = logging.getLogger("arbiter.config.validator")

    def validate(self, config: ArbiterConfig) -> tuple[list[str], list[str]]:
        """
        Validate configuration and return warnings and errors.

        Returns:
            Tuple of (warnings, errors)
        """
        warnings: list[str] = []
        errors: list[str] = []

        if config.system.environment not in self.VALID_ENVIRONMENTS:
            errors.append(
                f"Invalid environment: {config.system.environment}. "
                f"Must be one of: {sorted(self.VALID_ENVIRONMENTS)}"
            )

        if config.system.log_level.upper() not in self.VALID_LOG_LEVELS:
            warnings.append(f"Invalid log_level: {config.system.log_level}, defaulting to INFO")
            config.system.log_level = "INFO"

        if config.system.log_format not in self.VALID_LOG_FORMATS:
            warnings.append(f"Invalid log_format: {config.system.log_format}, defaulting to console")
            config.system.log_format = "console"

        self._validate_routing(config, warnings)
        self._validate_resilience(config, warnings, errors)
        self._validate_cache(config, warnings)
        self._validate_budgets(config, errors)

        return warnings, errors

    def _validate_routing(self, config: ArbiterConfig, warnings: list[str]) -> None:
        routing = config.routing
        if not 0.0 <= routing.exploration_rate <= 1.0:
            warnings.append("routing.exploration_rate must be between 0 and 1, using 0.1")
            routing.exploration_rate = 0.1
        if not 0.0 < routing.decay_factor < 1.0:
            warnings.append("routing.decay_factor must be between 0 and 1, using 0.95")
            routing.decay_factor = 0.95
        if routing.fallback_size < 0:
            warnings.append("routing.fallback_size cannot be negative, using 3")
            routing.fallback_size = 3

        weights = routing.custom_weights
        total = weights.cost + weights.quality + weights.speed + weights.reliability
        if abs(total - 1.0) > 0.01:
            if total > 0:
                warnings.append(f"custom weights sum to {total:.2f}, normalizing to 1.0")
                weights.cost /= total
                weights.quality /= total
                weights.speed /= total
                weights.reliability /= total
            else:
                warnings.append("custom weights sum to 0, using defaults")
                routing.custom_weights = StrategyWeightsConfig()

    def _validate_resilience(
        self, config: ArbiterConfig, warnings: list[str], errors: list[str]
    ) -> None:
        if config.retry.max_attempts < 1:
            errors.append("retry.max_attempts must be at least 1")
        if config.retry.initial_delay < 0 or config.retry.max_delay < 0:
            errors.append("retry delays cannot be negative")
        if config.retry.max_delay < config.retry.initial_delay:
            warnings.append("retry.max_delay is below retry.initial_delay, adjusting")
            config.retry.max_delay = config.retry.initial_delay
        if config.circuit_breaker.failure_threshold < 1:
            errors.append("circuit_breaker.failure_threshold must be at least 1")
        if config.circuit_breaker.success_threshold < 1:
            errors.append("circuit_breaker.success_threshold must be at least 1")
        if config.circuit_breaker.half_open_max_probes < 1:
            warnings.append("circuit_breaker.half_open_max_probes must be at least 1, using 1")
            config.circuit_breaker.half_open_max_probes = 1
        if config.fallback.parallel_attempts < 1:
            warnings.append("fallback.parallel_attempts must be at least 1, using 2")
            config.fallback.parallel_attempts = 2

    def _validate_cache(self, config: ArbiterConfig, warnings: list[str]) -> None:
        if config.cache.policy not in self.VALID_CACHE_POLICIES:
            warnings.append(f"Invalid cache.policy: {config.cache.policy}, defaulting to lru")
            config.cache.policy = "lru"
        if config.cache.max_size < 1:
            warnings.append("cache.max_size must be positive, using 100")
            config.cache.max_size = 100

    def _validate_budgets(self, config: ArbiterConfig, errors: list[str]) -> None:
        seen: set[str] = set()
        for budget in config.cost.budgets:
            if budget.id in seen:
                errors.append(f"Duplicate budget id: {budget.id}")
            seen.add(budget.id)
            if budget.limit <= 0:
                errors.append(f"Budget '{budget.id}' limit must be positive")
            if not 0 < budget.warning_threshold <= 100:
                errors.append(f"Budget '{budget.id}' warning_threshold must be in (0, 100]")


# =============================================================================
# ConfigConverter - Converts dictionaries to ArbiterConfig objects
# =============================================================================


class ConfigConverter:
    """Converts configuration dictionaries to ArbiterConfig objects"""

    @staticmethod
    def dict_to_config(config_dict: dict[str, Any]) -> ArbiterConfig:
        try:
            routing_dict = dict(config_dict.get("routing", {}))
            if "strategy" in routing_dict:
                routing_dict["strategy"] = RoutingStrategy(routing_dict["strategy"])
            if "custom_weights" in routing_dict:
                routing_dict["custom_weights"] = StrategyWeightsConfig(
                    **routing_dict["custom_weights"]
                )

            fallback_dict = dict(config_dict.get("fallback", {}))
            if "strategy" in fallback_dict:
                fallback_dict["strategy"] = FallbackStrategy(fallback_dict["strategy"])

            cost_dict = dict(config_dict.get("cost", {}))
            cost_dict["budgets"] = [BudgetSettings(**b) for b in cost_dict.get("budgets", [])]

            return ArbiterConfig(
                system=SystemConfig(**config_dict.get("system", {})),
                routing=RoutingConfig(**routing_dict),
                circuit_breaker=CircuitBreakerConfig(**config_dict.get("circuit_breaker", {})),
                retry=RetryConfig(**config_dict.get("retry", {})),
                fallback=FallbackConfig(**fallback_dict),
                cache=CacheConfig(**config_dict.get("cache", {})),
                cost=CostConfig(**cost_dict),
                health=HealthConfig(**config_dict.get("health", {})),
                persistence=PersistenceConfig(**config_dict.get("persistence", {})),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                message=f"Invalid configuration structure: {e}",
                details={"sections": sorted(config_dict.keys())},
                cause=e,
            ) from e


# =============================================================================
# ConfigManager - Coordinates configuration loading and management
# =============================================================================


class ConfigManager:
    """
    Configuration manager - coordinates loading, validation, and access.

    Instances are constructed explicitly and passed to whoever needs them;
    there is no process-wide instance.

    Features:
    - Hot reload support
    - Change watchers
    - Dotted-path access
    """

    def __init__(
        self,
        config_path: str | None = None,
        env_prefix: str = "ARBITER_",
        auto_reload: bool = False,
        apply_logging: bool = True,
    ):
        self._config: ArbiterConfig | None = None
        self._apply_logging = apply_logging
        self._config_path = config_path
        self._env_prefix = env_prefix
        self._auto_reload = auto_reload
        self._file_hash: str | None = None
        self._watchers: list[Callable[[ArbiterConfig], None]] = []
        self._lock = threading.Lock()

        self._loader = ConfigLoader(env_prefix=env_prefix)
        self._validator = ConfigValidator()
        self._converter = ConfigConverter()

        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from all sources"""
        config_dict: dict[str, Any] = {}

        if self._config_path:
            file_config = self._loader.load_from_file(self._config_path)
            config_dict = self._loader.deep_merge(config_dict, file_config)
            self._file_hash = self._loader.calculate_file_hash(self._config_path)

        env_config = self._loader.load_from_env()
        config_dict = self._loader.deep_merge(config_dict, env_config)

        config = self._converter.dict_to_config(config_dict)
        self._validate_config(config)
        self._config = config

        if self._apply_logging:
            apply_logging_config(config.system)

    def _validate_config(self, config: ArbiterConfig) -> None:
        warnings, errors = self._validator.validate(config)

        for warning in warnings:
            logging.getLogger("arbiter.config").warning(warning)

        if errors:
            raise ConfigurationError(
                message="Configuration validation failed",
                details={"errors": errors},
                suggestions=["Fix the configuration errors listed above"],
            )

    def reload(self) -> None:
        """Reload configuration from sources"""
        with self._lock:
            old_config = self._config
            self._load_config()

        if old_config != self._config and self._config is not None:
            for watcher in list(self._watchers):
                watcher(self._config)

    def check_and_reload(self) -> bool:
        """Reload when the config file changed on disk"""
        if not self._config_path or not self._auto_reload:
            return False

        current_hash = self._loader.calculate_file_hash(self._config_path)
        if current_hash != self._file_hash:
            self.reload()
            return True
        return False

    def add_watcher(self, callback: Callable[[ArbiterConfig], None]) -> None:
        self._watchers.append(callback)

    def remove_watcher(self, callback: Callable[[ArbiterConfig], None]) -> None:
        if callback in self._watchers:
            self._watchers.remove(callback)

    @property
    def config(self) -> ArbiterConfig:
        if self._config is None:
            self._load_config()
        if self._config is None:
            raise ConfigLoadError(
                config_path=self._config_path or "", reason="Failed to load config"
            )
        return self._config

    def get(self, path: str, default: Any = None) -> Any:
        """
        Get a value from configuration using dot notation.

        Args:
            path: Dot-separated path (e.g., "retry.max_attempts")
            default: Default value if not found
        """
        current: Any = self.config.to_dict()

        for key in path.split("."):
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default

        return current


# =============================================================================
# ConfigBuilder - Fluent interface for building configuration
# =============================================================================


class ConfigBuilder:
    """
    Configuration builder - fluent interface for building configuration programmatically.

    Example:
        config = (ConfigBuilder()
            .with_routing(strategy="cost_optimized", exploration_rate=0.0)
            .with_retry(max_attempts=2)
            .with_budget("monthly", limit=50.0)
            .build())
    """

    def __init__(self) -> None:
        self._config_dict: dict[str, Any] = {}

    def _section(self, name: str) -> dict[str, Any]:
        return self._config_dict.setdefault(name, {})  # type: ignore[no-any-return]

    def with_system(
        self, name: str = "arbiter", environment: str = "development", log_level: str = "INFO"
    ) -> ConfigBuilder:
        self._section("system").update(
            {"name": name, "environment": environment, "log_level": log_level}
        )
        return self

    def with_routing(self, **options: Any) -> ConfigBuilder:
        """Routing options, e.g. strategy="quality_first", exploration_rate=0.0"""
        section = self._section("routing")
        for key, value in options.items():
            section[key] = value.value if isinstance(value, Enum) else value
        return self

    def with_retry(self, **options: Any) -> ConfigBuilder:
        self._section("retry").update(options)
        return self

    def with_circuit_breaker(self, **options: Any) -> ConfigBuilder:
        self._section("circuit_breaker").update(options)
        return self

    def with_fallback(self, strategy: FallbackStrategy | str = "sequential", **options: Any) -> ConfigBuilder:
        section = self._section("fallback")
        section["strategy"] = strategy.value if isinstance(strategy, Enum) else strategy
        section.update(options)
        return self

    def with_cache(self, policy: str = "lru", max_size: int = 100, ttl_seconds: float = 3600.0) -> ConfigBuilder:
        self._section("cache").update(
            {"policy": policy, "max_size": max_size, "ttl_seconds": ttl_seconds}
        )
        return self

    def with_budget(
        self,
        budget_id: str,
        limit: float,
        warning_threshold: float = 80.0,
        provider: str | None = None,
        project_id: str | None = None,
    ) -> ConfigBuilder:
        budgets = self._section("cost").setdefault("budgets", [])
        budgets.append(
            {
                "id": budget_id,
                "name": budget_id,
                "limit": limit,
                "warning_threshold": warning_threshold,
                "provider": provider,
                "project_id": project_id,
            }
        )
        return self

    def with_persistence(self, directory: str, enabled: bool = True) -> ConfigBuilder:
        self._section("persistence").update({"directory": directory, "enabled": enabled})
        return self

    def from_file(self, path: str) -> ConfigBuilder:
        """Load from file as base"""
        loader = ConfigLoader()
        file_config = loader.load_from_file(path)
        self._config_dict = loader.deep_merge(file_config, self._config_dict)
        return self

    def build(self) -> ArbiterConfig:
        config = ConfigConverter.dict_to_config(self._config_dict)

        warnings, errors = ConfigValidator().validate(config)
        for warning in warnings:
            logging.getLogger("arbiter.config").warning(warning)

        if errors:
            raise ConfigurationError(
                message="Configuration validation failed",
                details={"errors": errors},
            )

        return config

    def to_yaml(self, path: str) -> None:
        content = yaml.safe_dump(self.build().to_dict(), default_flow_style=False)
        atomic_write(path, content)

    def to_json(self, path: str) -> None:
        content = json.dumps(self.build().to_dict(), indent=2)
        atomic_write(path, content)


# =============================================================================
# Convenience Functions
# =============================================================================


def get_default_config() -> ArbiterConfig:
    return ArbiterConfig()


def apply_logging_config(system: SystemConfig) -> None:
    """Apply the system log level and format to the arbiter logger tree"""
    configure_logging(
        level=getattr(logging, system.log_level.upper()),
        json_format=system.log_format == "json",
    )


def load_config(config_path: str | None = None, env_prefix: str = "ARBITER_") -> ArbiterConfig:
    """
    Load configuration from available sources.

    Args:
        config_path: Path to configuration file (optional)
        env_prefix: Environment variable prefix

    Returns:
        Configuration object
    """
    return ConfigManager(config_path=config_path, env_prefix=env_prefix).config
