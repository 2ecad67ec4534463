"""
Tests for provider scoring and strategy weights
"""

import pytest

from arbiter.core.exceptions import InvalidConfigValueError
from arbiter.core.types import (
    Message,
    MessageRole,
    ProviderCapabilities,
    ProviderHealthStatus,
    ProviderPricing,
    QualityRequirement,
    RoutingDecision,
    RoutingFeedback,
    RoutingRequest,
    RoutingStrategy,
    TaskCategory,
    TaskClassification,
    TaskComplexity,
    TimeConstraint,
    TokenEstimate,
)
from arbiter.routing.learning import LearningModule
from arbiter.routing.scoring import (
    ADAPTIVE_DEFAULT,
    ADAPTIVE_DEMANDING,
    ADAPTIVE_REALTIME,
    STRATEGY_WEIGHTS,
    ProviderProfile,
    ScoringContext,
    ScoringEngine,
    StrategyWeights,
    weights_for,
)


def _classification(
    complexity=TaskComplexity.MEDIUM,
    category=TaskCategory.GENERAL,
    time_constraint=TimeConstraint.NORMAL,
    requires_reasoning=False,
) -> TaskClassification:
    return TaskClassification(
        complexity=complexity,
        category=category,
        estimated_tokens=TokenEstimate(input=1000, output=1000),
        requires_reasoning=requires_reasoning,
        time_constraint=time_constraint,
        quality_requirement=QualityRequirement.MEDIUM,
    )


def _profile(name: str, price: float = 10.0, **capabilities) -> ProviderProfile:
    return ProviderProfile(
        name=name,
        capabilities=ProviderCapabilities(**capabilities),
        pricing=ProviderPricing(input_cost_per_1m=price, output_cost_per_1m=price),
    )


def _request(**kwargs) -> RoutingRequest:
    return RoutingRequest(messages=[Message(role=MessageRole.USER, content="hi")], **kwargs)


BALANCED = STRATEGY_WEIGHTS[RoutingStrategy.BALANCED]


class TestStrategyWeights:
    @pytest.mark.parametrize("strategy", list(STRATEGY_WEIGHTS))
    def test_fixed_weights_sum_to_one(self, strategy):
        weights = STRATEGY_WEIGHTS[strategy]
        assert sum(weights.as_dict().values()) == pytest.approx(1.0)

    def test_cost_optimized_favours_cost(self):
        weights = weights_for(RoutingStrategy.COST_OPTIMIZED, _classification())
        assert weights.cost == pytest.approx(0.6)

    def test_adaptive_complex_task(self):
        weights = weights_for(
            RoutingStrategy.ADAPTIVE, _classification(complexity=TaskComplexity.EXPERT)
        )
        assert weights == ADAPTIVE_DEMANDING

    def test_adaptive_complexity_checked_before_realtime(self):
        classification = _classification(
            complexity=TaskComplexity.COMPLEX, time_constraint=TimeConstraint.REALTIME
        )
        assert weights_for(RoutingStrategy.ADAPTIVE, classification) == ADAPTIVE_DEMANDING

    def test_adaptive_realtime(self):
        classification = _classification(time_constraint=TimeConstraint.REALTIME)
        assert weights_for(RoutingStrategy.ADAPTIVE, classification) == ADAPTIVE_REALTIME

    def test_adaptive_default(self):
        assert weights_for(RoutingStrategy.ADAPTIVE, _classification()) == ADAPTIVE_DEFAULT

    def test_custom_weights_are_normalized(self):
        weights = weights_for(
            RoutingStrategy.CUSTOM,
            _classification(),
            {"cost": 2, "quality": 2, "speed": 0, "reliability": 0},
        )
        assert weights.cost == pytest.approx(0.5)
        assert weights.quality == pytest.approx(0.5)
        assert weights.speed == 0

    def test_custom_without_weights_raises(self):
        with pytest.raises(InvalidConfigValueError):
            weights_for(RoutingStrategy.CUSTOM, _classification())

    def test_zero_sum_raises(self):
        with pytest.raises(InvalidConfigValueError):
            StrategyWeights(0, 0, 0, 0).normalized()

    def test_adjusted_renormalizes(self):
        weights = BALANCED.adjusted({"cost": 1.0})
        assert sum(weights.as_dict().values()) == pytest.approx(1.0)
        assert weights.cost > BALANCED.cost

    def test_adjusted_rejects_unknown_key(self):
        with pytest.raises(InvalidConfigValueError):
            BALANCED.adjusted({"vibes": 1.0})


class TestSubScores:
    def test_total_combines_weighted_sub_scores(self):
        engine = ScoringEngine()
        [score] = engine.score([_profile("alpha")], _classification(), {}, _request(), BALANCED)

        breakdown = score.breakdown
        assert breakdown.cost == pytest.approx(80.0)
        assert breakdown.quality == pytest.approx(50.0)
        assert breakdown.speed == pytest.approx(100 * (1 - 2000 / 30000))
        assert breakdown.reliability == pytest.approx(80.0)
        assert breakdown.capability == 100.0
        assert breakdown.historical == 50.0
        assert breakdown.context_fit == 70.0
        assert score.total_score == pytest.approx(94.1667, abs=1e-3)
        assert score.estimated_cost == pytest.approx(0.02)
        assert score.confidence == pytest.approx(0.64)

    def test_cost_score_floors_at_zero(self):
        engine = ScoringEngine()
        [score] = engine.score(
            [_profile("pricey", price=1000.0)], _classification(), {}, _request(), BALANCED
        )
        assert score.breakdown.cost == 0.0

    def test_reliability_from_health(self):
        status = ProviderHealthStatus(provider="alpha", total_requests=10, failure_rate=0.4)
        assert ScoringEngine.reliability_score(status) == pytest.approx(60.0)
        assert ScoringEngine.reliability_score(None) == 80.0

    def test_specialization_bonus(self):
        engine = ScoringEngine()
        [score] = engine.score(
            [_profile("coder", specializations=frozenset({"code"}))],
            _classification(category=TaskCategory.CODE_GENERATION),
            {},
            _request(),
            BALANCED,
        )
        assert score.breakdown.quality == pytest.approx(75.0)
        assert "Specialized for code_generation" in score.reasoning

    def test_reasoning_specialization(self):
        capabilities = ProviderCapabilities(specializations=frozenset({"reasoning"}))
        assert ScoringEngine.specialization_match(
            capabilities, _classification(requires_reasoning=True)
        )
        assert not ScoringEngine.specialization_match(capabilities, _classification())

    def test_context_fit(self):
        busy = ScoringContext(load={"alpha": 11})
        assert ScoringEngine.context_fit_score("alpha", busy) == 50.0
        preferred = ScoringContext(preferred=frozenset({"alpha"}))
        assert ScoringEngine.context_fit_score("alpha", preferred) == 90.0

    def test_learned_latency_overrides_nominal(self):
        learning = LearningModule()
        learning.learn(
            RoutingDecision(
                provider="alpha",
                reasoning=[],
                confidence=1.0,
                estimated_cost=0.0,
                estimated_latency_ms=0.0,
            ),
            RoutingFeedback(
                decision_id="d1", provider="alpha", success=True, actual_latency_ms=15000.0
            ),
        )
        engine = ScoringEngine(learning)
        [score] = engine.score([_profile("alpha")], _classification(), {}, _request(), BALANCED)

        assert score.breakdown.speed == pytest.approx(50.0)
        assert score.estimated_latency_ms == 15000.0
        # history removes the untested confidence discount
        assert score.confidence == pytest.approx(0.8)


class TestEligibility:
    def test_small_context_window_excluded(self):
        engine = ScoringEngine()
        scores = engine.score(
            [_profile("tiny", max_context_window=100), _profile("big")],
            _classification(),
            {},
            _request(),
            BALANCED,
        )
        assert [s.provider for s in scores] == ["big"]

    @pytest.mark.parametrize(
        "request_kwargs,capabilities",
        [
            ({"stream": True}, {"supports_streaming": False}),
            ({"tools": [{"name": "lookup"}]}, {"supports_tool_calling": False}),
            ({"requires_vision": True}, {"supports_vision": False}),
        ],
    )
    def test_missing_capability_excluded(self, request_kwargs, capabilities):
        engine = ScoringEngine()
        scores = engine.score(
            [_profile("alpha", **capabilities)],
            _classification(),
            {},
            _request(**request_kwargs),
            BALANCED,
        )
        assert scores == []

    def test_sorted_by_total_then_name(self):
        engine = ScoringEngine()
        scores = engine.score(
            [_profile("b"), _profile("a"), _profile("cheap", price=1.0)],
            _classification(),
            {},
            _request(),
            BALANCED,
        )
        assert [s.provider for s in scores] == ["cheap", "a", "b"]

    def test_to_dict_is_rounded(self):
        engine = ScoringEngine()
        [score] = engine.score([_profile("alpha")], _classification(), {}, _request(), BALANCED)
        data = score.to_dict()
        assert data["provider"] == "alpha"
        assert data["total_score"] == pytest.approx(94.17)
        assert set(data["breakdown"]) == {
            "cost",
            "quality",
            "speed",
            "reliability",
            "capability",
            "historical",
            "context_fit",
        }
