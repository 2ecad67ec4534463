"""
Scoring Engine
==============

Scores every eligible provider on six 0-100 sub-scores and combines them
with a strategy-specific weight vector.

Sub-scores:
    cost         inverse-linear in estimated request cost ($0.10 scores 0)
    quality      base 50, specialization match, learned category quality
    speed        inverse-linear in predicted latency (30s scores 0)
    reliability  success rate from the health snapshot
    capability   0 or 100; providers scoring 0 are dropped, not down-ranked
    context fit  in-flight load penalty and caller preference bonus

Learned preference (``historical``) contributes alongside capability and
context fit at a fixed 0.1 weight each.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from arbiter.core.exceptions import InvalidConfigValueError
from arbiter.core.logging import get_standard_logger as get_logger
from arbiter.core.types import (
    ProviderCapabilities,
    ProviderHealthStatus,
    ProviderPricing,
    RoutingRequest,
    RoutingStrategy,
    TaskCategory,
    TaskClassification,
    TaskComplexity,
    TimeConstraint,
)

from .learning import LearningModule

# =============================================================================
# Scoring Constants
# =============================================================================

COST_ZERO_POINT = 0.10
LATENCY_ZERO_POINT_MS = 30_000.0
BASE_QUALITY = 50.0
SPECIALIZATION_BONUS = 25.0
LEARNED_QUALITY_WEIGHT = 25.0
UNTESTED_RELIABILITY = 80.0
BASE_CONTEXT_FIT = 70.0
HIGH_LOAD_THRESHOLD = 10
HIGH_LOAD_PENALTY = 20.0
PREFERRED_BONUS = 20.0
AUXILIARY_WEIGHT = 0.1
UNLEARNED_CONFIDENCE_FACTOR = 0.8

CODE_CATEGORIES = frozenset({TaskCategory.CODE_GENERATION, TaskCategory.CODE_REVIEW})


# =============================================================================
# Strategy Weights
# =============================================================================


@dataclass(frozen=True)
class StrategyWeights:
    """Weights of the four primary sub-scores; always sum to 1.0"""

    cost: float
    quality: float
    speed: float
    reliability: float

    def normalized(self) -> "StrategyWeights":
        total = self.cost + self.quality + self.speed + self.reliability
        if total <= 0:
            raise InvalidConfigValueError(
                "weights", str(self.as_dict()), "non-negative weights with a positive sum"
            )
        return StrategyWeights(
            cost=self.cost / total,
            quality=self.quality / total,
            speed=self.speed / total,
            reliability=self.reliability / total,
        )

    def adjusted(self, changes: Mapping[str, float]) -> "StrategyWeights":
        """Replace some weights and renormalize"""
        values = self.as_dict()
        for key, value in changes.items():
            if key not in values:
                raise InvalidConfigValueError("weights", key, "cost, quality, speed or reliability")
            values[key] = value
        return StrategyWeights(**values).normalized()

    def as_dict(self) -> dict[str, float]:
        return {
            "cost": self.cost,
            "quality": self.quality,
            "speed": self.speed,
            "reliability": self.reliability,
        }


STRATEGY_WEIGHTS: dict[RoutingStrategy, StrategyWeights] = {
    RoutingStrategy.COST_OPTIMIZED: StrategyWeights(0.6, 0.2, 0.1, 0.1),
    RoutingStrategy.QUALITY_FIRST: StrategyWeights(0.1, 0.6, 0.15, 0.15),
    RoutingStrategy.SPEED_FIRST: StrategyWeights(0.1, 0.2, 0.5, 0.2),
    RoutingStrategy.BALANCED: StrategyWeights(0.25, 0.35, 0.2, 0.2),
}

ADAPTIVE_DEMANDING = StrategyWeights(0.15, 0.5, 0.15, 0.2)
ADAPTIVE_REALTIME = StrategyWeights(0.2, 0.25, 0.4, 0.15)
ADAPTIVE_DEFAULT = StrategyWeights(0.4, 0.3, 0.15, 0.15)


def weights_for(
    strategy: RoutingStrategy,
    classification: TaskClassification,
    custom: Mapping[str, float] | None = None,
) -> StrategyWeights:
    """Weight vector for ``strategy``; adaptive looks at complexity first, then time"""
    if strategy == RoutingStrategy.ADAPTIVE:
        if classification.complexity >= TaskComplexity.COMPLEX:
            return ADAPTIVE_DEMANDING
        if classification.time_constraint == TimeConstraint.REALTIME:
            return ADAPTIVE_REALTIME
        return ADAPTIVE_DEFAULT

    if strategy == RoutingStrategy.CUSTOM:
        if not custom:
            raise InvalidConfigValueError(
                "routing.custom_weights", "None", "weights for the custom strategy"
            )
        return StrategyWeights(
            cost=custom.get("cost", 0.0),
            quality=custom.get("quality", 0.0),
            speed=custom.get("speed", 0.0),
            reliability=custom.get("reliability", 0.0),
        ).normalized()

    return STRATEGY_WEIGHTS[strategy]


# =============================================================================
# Score Types
# =============================================================================


@dataclass(frozen=True)
class ProviderProfile:
    """Registration metadata the engine scores against"""

    name: str
    capabilities: ProviderCapabilities
    pricing: ProviderPricing


@dataclass
class ScoreBreakdown:
    cost: float
    quality: float
    speed: float
    reliability: float
    capability: float
    historical: float
    context_fit: float

    def to_dict(self) -> dict[str, float]:
        return {
            "cost": round(self.cost, 2),
            "quality": round(self.quality, 2),
            "speed": round(self.speed, 2),
            "reliability": round(self.reliability, 2),
            "capability": round(self.capability, 2),
            "historical": round(self.historical, 2),
            "context_fit": round(self.context_fit, 2),
        }


@dataclass
class ProviderScore:
    provider: str
    total_score: float
    breakdown: ScoreBreakdown
    estimated_cost: float
    estimated_latency_ms: float
    confidence: float
    reasoning: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "total_score": round(self.total_score, 2),
            "breakdown": self.breakdown.to_dict(),
            "estimated_cost": self.estimated_cost,
            "estimated_latency_ms": self.estimated_latency_ms,
            "confidence": round(self.confidence, 3),
            "reasoning": list(self.reasoning),
        }


@dataclass
class ScoringContext:
    """Per-request inputs that are not part of the classification"""

    load: Mapping[str, int] = field(default_factory=dict)
    preferred: frozenset[str] = frozenset()


# =============================================================================
# Scoring Engine
# =============================================================================


class ScoringEngine:
    """
    Usage:
        engine = ScoringEngine(learning)
        ranked = engine.score(profiles, classification, health.snapshot(), request,
                              weights_for(RoutingStrategy.BALANCED, classification))
    """

    def __init__(self, learning: LearningModule | None = None):
        self._learning = learning or LearningModule()
        self._logger = get_logger("arbiter.scoring")

    def score(
        self,
        providers: Iterable[ProviderProfile],
        classification: TaskClassification,
        health_snapshot: Mapping[str, ProviderHealthStatus],
        request: RoutingRequest,
        weights: StrategyWeights,
        context: ScoringContext | None = None,
    ) -> list[ProviderScore]:
        """Score eligible providers; result sorted by total descending, then name"""
        context = context or ScoringContext()
        scores: list[ProviderScore] = []

        for profile in providers:
            capability = self.capability_score(profile.capabilities, classification, request)
            if capability == 0:
                self._logger.debug(f"{profile.name} lacks a required capability, excluded")
                continue
            scores.append(
                self._score_one(
                    profile,
                    classification,
                    health_snapshot.get(profile.name),
                    weights,
                    context,
                    capability,
                )
            )

        scores.sort(key=lambda s: (-s.total_score, s.provider))
        return scores

    def _score_one(
        self,
        profile: ProviderProfile,
        classification: TaskClassification,
        status: ProviderHealthStatus | None,
        weights: StrategyWeights,
        context: ScoringContext,
        capability: float,
    ) -> ProviderScore:
        name = profile.name
        tokens = classification.estimated_tokens
        estimated_cost = profile.pricing.calculate_cost(tokens.input, tokens.output)
        learned_latency = self._learning.predicted_latency(name)
        estimated_latency = (
            learned_latency
            if learned_latency is not None
            else profile.capabilities.average_latency_ms
        )

        cost = max(0.0, 100 * (1 - estimated_cost / COST_ZERO_POINT))
        speed = max(0.0, 100 * (1 - estimated_latency / LATENCY_ZERO_POINT_MS))
        reliability = self.reliability_score(status)
        specialized = self.specialization_match(profile.capabilities, classification)
        quality = BASE_QUALITY + (SPECIALIZATION_BONUS if specialized else 0.0)
        learned_quality = self._learning.category_quality(name, classification.category)
        if learned_quality is not None:
            quality += learned_quality * LEARNED_QUALITY_WEIGHT
        historical = self._learning.historical_score(name, classification.category)
        context_fit = self.context_fit_score(name, context)

        total = (
            cost * weights.cost
            + quality * weights.quality
            + speed * weights.speed
            + reliability * weights.reliability
            + AUXILIARY_WEIGHT * (capability + historical + context_fit)
        )

        history_factor = 1.0 if self._learning.has_history(name) else UNLEARNED_CONFIDENCE_FACTOR
        confidence = min(1.0, (reliability / 100) * (capability / 100) * history_factor)

        reasoning: list[str] = []
        if cost > 80:
            reasoning.append(f"Low cost (${estimated_cost:.4f})")
        if specialized:
            reasoning.append(f"Specialized for {classification.category.value}")
        if speed > 80:
            reasoning.append(f"Fast response (~{estimated_latency:.0f}ms)")
        if reliability > 95:
            reasoning.append(f"High reliability ({reliability:.0f}%)")
        if name in context.preferred:
            reasoning.append("Preferred provider")

        return ProviderScore(
            provider=name,
            total_score=total,
            breakdown=ScoreBreakdown(
                cost=cost,
                quality=quality,
                speed=speed,
                reliability=reliability,
                capability=capability,
                historical=historical,
                context_fit=context_fit,
            ),
            estimated_cost=estimated_cost,
            estimated_latency_ms=estimated_latency,
            confidence=confidence,
            reasoning=reasoning,
        )

    # =========================================================================
    # Sub-scores
    # =========================================================================

    @staticmethod
    def capability_score(
        capabilities: ProviderCapabilities,
        classification: TaskClassification,
        request: RoutingRequest,
    ) -> float:
        if capabilities.max_context_window < classification.context_window:
            return 0.0
        if request.stream and not capabilities.supports_streaming:
            return 0.0
        if request.requires_tools and not capabilities.supports_tool_calling:
            return 0.0
        if request.requires_vision and not capabilities.supports_vision:
            return 0.0
        return 100.0

    @staticmethod
    def reliability_score(status: ProviderHealthStatus | None) -> float:
        if status is None or status.total_requests == 0:
            return UNTESTED_RELIABILITY
        return (1 - status.failure_rate) * 100

    @staticmethod
    def specialization_match(
        capabilities: ProviderCapabilities, classification: TaskClassification
    ) -> bool:
        specs = capabilities.specializations
        if classification.category in CODE_CATEGORIES and "code" in specs:
            return True
        if classification.requires_reasoning and "reasoning" in specs:
            return True
        return classification.category == TaskCategory.DOCUMENTATION and "creative" in specs

    @staticmethod
    def context_fit_score(provider: str, context: ScoringContext) -> float:
        score = BASE_CONTEXT_FIT
        if context.load.get(provider, 0) > HIGH_LOAD_THRESHOLD:
            score -= HIGH_LOAD_PENALTY
        if provider in context.preferred:
            score += PREFERRED_BONUS
        return max(0.0, min(100.0, score))
