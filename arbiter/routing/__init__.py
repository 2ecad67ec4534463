"""
Routing Module
==============

Classification, scoring, selection, resilience and the routing engine:

    - TaskClassifier: keyword/length task classification
    - ScoringEngine / StrategyWeights: multi-criteria provider scoring
    - ProviderSelector: epsilon-greedy selection
    - CircuitBreaker / HealthTracker: per-provider health and circuit breaking
    - RetryPolicy: bounded retries with exponential backoff
    - FallbackOrchestrator: sequential, parallel, cascade, adaptive execution
    - LearningModule: outcome feedback into scoring
    - RoutingRule / RuleAction: custom per-request rules
    - RoutingEngine: the public route / route_and_execute API
"""

from arbiter.routing.circuit_breaker import CircuitBreaker
from arbiter.routing.classifier import (
    DEFAULT_KEYWORD_TABLES,
    KeywordTables,
    TaskClassifier,
    create_classifier,
)
from arbiter.routing.fallback import FallbackOrchestrator, create_fallback_orchestrator
from arbiter.routing.health import HealthTracker
from arbiter.routing.learning import CategoryPerformance, LearningModule, ProviderPerformance
from arbiter.routing.retry import RetryPolicy
from arbiter.routing.router import RoutingEngine, create_engine
from arbiter.routing.rules import RoutingRule, RuleAction, RuleOutcome, RuleSet
from arbiter.routing.scoring import (
    STRATEGY_WEIGHTS,
    ProviderProfile,
    ProviderScore,
    ScoreBreakdown,
    ScoringContext,
    ScoringEngine,
    StrategyWeights,
    weights_for,
)
from arbiter.routing.selector import ProviderSelector, Selection

__all__ = [
    "CircuitBreaker",
    "DEFAULT_KEYWORD_TABLES",
    "KeywordTables",
    "TaskClassifier",
    "create_classifier",
    "FallbackOrchestrator",
    "create_fallback_orchestrator",
    "HealthTracker",
    "CategoryPerformance",
    "LearningModule",
    "ProviderPerformance",
    "RetryPolicy",
    "RoutingEngine",
    "create_engine",
    "RoutingRule",
    "RuleAction",
    "RuleOutcome",
    "RuleSet",
    "STRATEGY_WEIGHTS",
    "ProviderProfile",
    "ProviderScore",
    "ScoreBreakdown",
    "ScoringContext",
    "ScoringEngine",
    "StrategyWeights",
    "weights_for",
    "ProviderSelector",
    "Selection",
]
