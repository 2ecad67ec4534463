"""
Tests for Arbiter configuration
"""

import json
import logging

import pytest
import yaml

from arbiter.core.config import (
    ArbiterConfig,
    CircuitBreakerConfig,
    ConfigBuilder,
    ConfigConverter,
    ConfigLoader,
    ConfigManager,
    ConfigValidator,
    RetryConfig,
    RoutingConfig,
    load_config,
)
from arbiter.core.exceptions import ConfigLoadError, ConfigurationError
from arbiter.core.logging import ROOT_LOGGER_NAME, JSONFormatter, get_standard_logger
from arbiter.core.types import FallbackStrategy, RoutingStrategy


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "ARBITER_LOG_LEVEL",
        "ARBITER_LOG_FORMAT",
        "ARBITER_STRATEGY",
        "ARBITER_MAX_ATTEMPTS",
        "ARBITER_CACHE_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestDefaults:
    def test_routing_defaults(self):
        config = RoutingConfig()
        assert config.strategy == RoutingStrategy.BALANCED
        assert config.exploration_rate == 0.1
        assert config.decision_cache_ttl_seconds == 300.0
        assert config.learning_enabled is True

    def test_resilience_defaults(self):
        assert CircuitBreakerConfig().failure_threshold == 5
        assert CircuitBreakerConfig().timeout_seconds == 60.0
        retry = RetryConfig()
        assert retry.max_attempts == 3
        assert retry.initial_delay == 1.0
        assert retry.max_delay == 10.0

    def test_to_dict_uses_enum_values(self):
        data = ArbiterConfig().to_dict()
        assert data["routing"]["strategy"] == "balanced"
        assert data["fallback"]["strategy"] == "sequential"
        assert data["routing"]["custom_weights"]["quality"] == 0.35


class TestConfigLoader:
    def test_load_yaml(self, tmp_path):
        path = tmp_path / "arbiter.yaml"
        path.write_text(yaml.safe_dump({"routing": {"strategy": "speed_first"}}))
        assert ConfigLoader().load_from_file(str(path)) == {"routing": {"strategy": "speed_first"}}

    def test_load_json(self, tmp_path):
        path = tmp_path / "arbiter.json"
        path.write_text(json.dumps({"retry": {"max_attempts": 5}}))
        assert ConfigLoader().load_from_file(str(path))["retry"]["max_attempts"] == 5

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigLoadError) as exc_info:
            ConfigLoader().load_from_file(str(tmp_path / "nope.yaml"))
        assert exc_info.value.details["reason"] == "File does not exist"

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "arbiter.toml"
        path.write_text("")
        with pytest.raises(ConfigLoadError):
            ConfigLoader().load_from_file(str(path))

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "arbiter.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigLoadError):
            ConfigLoader().load_from_file(str(path))

    def test_broken_json(self, tmp_path):
        path = tmp_path / "arbiter.json"
        path.write_text("{not json")
        with pytest.raises(ConfigLoadError) as exc_info:
            ConfigLoader().load_from_file(str(path))
        assert exc_info.value.details["reason"].startswith("JSON error")

    def test_load_from_env(self, monkeypatch):
        monkeypatch.setenv("ARBITER_STRATEGY", "cost_optimized")
        monkeypatch.setenv("ARBITER_MAX_ATTEMPTS", "4")
        monkeypatch.setenv("ARBITER_CACHE_ENABLED", "false")

        config = ConfigLoader().load_from_env()
        assert config["routing"]["strategy"] == "cost_optimized"
        assert config["retry"]["max_attempts"] == 4
        assert config["cache"]["enabled"] is False

    def test_invalid_env_value_ignored(self, monkeypatch):
        monkeypatch.setenv("ARBITER_MAX_ATTEMPTS", "many")
        assert "retry" not in ConfigLoader().load_from_env()

    def test_deep_merge(self):
        loader = ConfigLoader()
        base = {"routing": {"strategy": "balanced", "exploration_rate": 0.1}}
        merged = loader.deep_merge(base, {"routing": {"strategy": "speed_first"}})

        assert merged == {"routing": {"strategy": "speed_first", "exploration_rate": 0.1}}
        assert base["routing"]["strategy"] == "balanced"


class TestConfigValidator:
    def test_defaults_are_clean(self):
        assert ConfigValidator().validate(ArbiterConfig()) == ([], [])

    def test_exploration_rate_normalized(self):
        config = ArbiterConfig()
        config.routing.exploration_rate = 1.5
        warnings, errors = ConfigValidator().validate(config)

        assert errors == []
        assert len(warnings) == 1
        assert config.routing.exploration_rate == 0.1

    def test_custom_weights_normalized(self):
        config = ArbiterConfig()
        config.routing.custom_weights.cost = 2.0
        config.routing.custom_weights.quality = 2.0
        config.routing.custom_weights.speed = 0.0
        config.routing.custom_weights.reliability = 0.0
        ConfigValidator().validate(config)

        assert config.routing.custom_weights.cost == pytest.approx(0.5)
        assert config.routing.custom_weights.quality == pytest.approx(0.5)

    def test_hard_errors(self):
        config = ArbiterConfig()
        config.retry.max_attempts = 0
        config.circuit_breaker.failure_threshold = 0
        _, errors = ConfigValidator().validate(config)
        assert len(errors) == 2

    def test_log_format_reset(self):
        config = ArbiterConfig()
        config.system.log_format = "xml"
        warnings, errors = ConfigValidator().validate(config)

        assert errors == []
        assert warnings == ["Invalid log_format: xml, defaulting to console"]
        assert config.system.log_format == "console"

    def test_invalid_cache_policy_reset(self):
        config = ArbiterConfig()
        config.cache.policy = "fifo"
        warnings, _ = ConfigValidator().validate(config)
        assert warnings
        assert config.cache.policy == "lru"


class TestConfigConverter:
    def test_enums_and_budgets(self):
        config = ConfigConverter.dict_to_config(
            {
                "routing": {"strategy": "custom", "custom_weights": {"cost": 1.0}},
                "fallback": {"strategy": "cascade"},
                "cost": {"budgets": [{"id": "daily", "limit": 5.0}]},
            }
        )
        assert config.routing.strategy == RoutingStrategy.CUSTOM
        assert config.routing.custom_weights.cost == 1.0
        assert config.fallback.strategy == FallbackStrategy.CASCADE
        assert config.cost.budgets[0].limit == 5.0

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError):
            ConfigConverter.dict_to_config({"routing": {"nonsense": True}})

    def test_unknown_strategy(self):
        with pytest.raises(ConfigurationError):
            ConfigConverter.dict_to_config({"routing": {"strategy": "cheapest"}})


class TestConfigBuilder:
    def test_fluent_build(self):
        config = (
            ConfigBuilder()
            .with_routing(strategy=RoutingStrategy.QUALITY_FIRST, exploration_rate=0.0)
            .with_retry(max_attempts=2)
            .with_fallback("parallel", parallel_attempts=3)
            .with_cache(policy="lfu", max_size=10)
            .with_budget("monthly", limit=50.0)
            .build()
        )

        assert config.routing.strategy == RoutingStrategy.QUALITY_FIRST
        assert config.routing.exploration_rate == 0.0
        assert config.retry.max_attempts == 2
        assert config.fallback.strategy == FallbackStrategy.PARALLEL
        assert config.fallback.parallel_attempts == 3
        assert config.cache.policy == "lfu"
        assert config.cost.budgets[0].id == "monthly"

    def test_build_rejects_invalid(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ConfigBuilder().with_budget("broken", limit=0.0).build()
        assert exc_info.value.details["errors"]

    def test_duplicate_budget(self):
        builder = ConfigBuilder().with_budget("b", limit=1.0).with_budget("b", limit=2.0)
        with pytest.raises(ConfigurationError):
            builder.build()

    def test_from_file_and_to_yaml(self, tmp_path):
        source = tmp_path / "base.yaml"
        source.write_text(yaml.safe_dump({"retry": {"max_attempts": 7}}))

        builder = ConfigBuilder().from_file(str(source)).with_routing(exploration_rate=0.2)
        config = builder.build()
        assert config.retry.max_attempts == 7
        assert config.routing.exploration_rate == 0.2

        target = tmp_path / "out.yaml"
        builder.to_yaml(str(target))
        dumped = yaml.safe_load(target.read_text())
        assert dumped["retry"]["max_attempts"] == 7


class TestConfigManager:
    def test_file_then_env(self, tmp_path, monkeypatch):
        path = tmp_path / "arbiter.yaml"
        path.write_text(yaml.safe_dump({"retry": {"max_attempts": 5}, "routing": {"fallback_size": 2}}))
        monkeypatch.setenv("ARBITER_MAX_ATTEMPTS", "6")

        manager = ConfigManager(config_path=str(path))
        assert manager.config.retry.max_attempts == 6
        assert manager.get("routing.fallback_size") == 2
        assert manager.get("routing.missing", "fallback") == "fallback"

    def test_invalid_file_raises(self, tmp_path):
        path = tmp_path / "arbiter.yaml"
        path.write_text(yaml.safe_dump({"retry": {"max_attempts": 0}}))
        with pytest.raises(ConfigurationError):
            ConfigManager(config_path=str(path))

    def test_reload_notifies_watchers(self, tmp_path):
        path = tmp_path / "arbiter.yaml"
        path.write_text(yaml.safe_dump({"retry": {"max_attempts": 2}}))
        manager = ConfigManager(config_path=str(path), auto_reload=True)
        seen = []
        manager.add_watcher(seen.append)

        assert not manager.check_and_reload()
        path.write_text(yaml.safe_dump({"retry": {"max_attempts": 4}}))
        assert manager.check_and_reload()

        assert [c.retry.max_attempts for c in seen] == [4]

    def test_load_config_defaults(self):
        config = load_config()
        assert config.routing.strategy == RoutingStrategy.BALANCED

    def test_system_logging_settings_applied(self, tmp_path, restore_root_logger):
        component = get_standard_logger("arbiter.test.config_component")
        path = tmp_path / "arbiter.yaml"
        path.write_text(yaml.safe_dump({"system": {"log_level": "DEBUG", "log_format": "json"}}))

        ConfigManager(config_path=str(path))

        assert restore_root_logger.level == logging.DEBUG
        assert isinstance(restore_root_logger.handlers[0].formatter, JSONFormatter)
        assert component.level == logging.NOTSET
        assert component.isEnabledFor(logging.DEBUG)

    def test_env_log_level_applied(self, monkeypatch, restore_root_logger):
        monkeypatch.setenv("ARBITER_LOG_LEVEL", "ERROR")
        config = load_config()

        assert config.system.log_level == "ERROR"
        assert restore_root_logger.level == logging.ERROR

    def test_logging_left_alone_when_disabled(self, restore_root_logger):
        restore_root_logger.setLevel(logging.WARNING)
        ConfigManager(apply_logging=False)
        assert restore_root_logger.level == logging.WARNING
