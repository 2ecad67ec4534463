"""
Routing Engine
==============

Public entry point tying classification, scoring, selection, fallback
execution, caching, cost tracking and learning together.

Request flow (``route_and_execute``):
    1. Response cache lookup; a hit returns immediately and touches nothing
       but cache statistics
    2. Classify the request
    3. Apply custom rules, pick strategy weights
    4. Score eligible providers from a health snapshot
    5. Select the primary and fallback chain (epsilon-greedy)
    6. Run the chain through the fallback orchestrator
    7. Record cost, feed learning, cache the response

Usage:
    from arbiter import RoutingEngine, ProviderRegistry

    engine = RoutingEngine(ProviderRegistry([alpha, beta]))
    outcome = await engine.route_and_execute(request)
    print(outcome.decision.provider, outcome.response.content)
"""

import asyncio
import contextlib
import dataclasses
import random
import time
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from arbiter.cache.memory_cache import LRUCache
from arbiter.cache.response_cache import ResponseCache
from arbiter.core.config import ArbiterConfig
from arbiter.core.exceptions import (
    AllProvidersFailedError,
    BudgetExceededError,
    NoAvailableProviderError,
)
from arbiter.core.logging import get_standard_logger as get_logger
from arbiter.core.types import (
    CircuitState,
    ExecutionOutcome,
    FallbackChain,
    FallbackResult,
    ProviderHealthStatus,
    ProviderResponse,
    RiskTolerance,
    RoutingDecision,
    RoutingFeedback,
    RoutingOptions,
    RoutingRequest,
    RoutingStrategy,
    TaskClassification,
)
from arbiter.cost.ledger import Budget, CostFilter, CostLedger, CostReport
from arbiter.providers.registry import ProviderRegistry
from arbiter.storage.atomic import AtomicWriter
from arbiter.storage.snapshot import (
    AttemptModel,
    BudgetModel,
    CostRecordModel,
    ProviderHealthModel,
    ProviderPerformanceModel,
    StatisticsSnapshot,
)

from .classifier import TaskClassifier
from .fallback import FallbackOrchestrator
from .health import HealthTracker
from .learning import LearningModule
from .rules import RoutingRule, RuleOutcome, RuleSet
from .scoring import ProviderProfile, ProviderScore, ScoringContext, ScoringEngine, weights_for
from .selector import ProviderSelector

DECISION_CACHE_PROMPT_CHARS = 50
LOW_SUCCESS_RATE = 0.8
HIGH_AVERAGE_COST = 0.05
MIN_REQUESTS_FOR_RECOMMENDATION = 10
LOW_CACHE_HIT_RATE = 0.2
MIN_LOOKUPS_FOR_CACHE_HINT = 50


class RoutingEngine:
    """
    Routing & resilience engine.

    Every collaborator is constructed from ``config`` unless injected, and
    nothing is process-global: two engines never share state.

    Attributes:
        registry: Provider registry the engine routes over
        config: Engine configuration
        classifier: Task classifier
        learning: Learning module feeding historical scores
        health: Health tracker and circuit breakers
        scoring: Scoring engine
        selector: Epsilon-greedy selector
        orchestrator: Fallback orchestrator
        ledger: Cost ledger
        response_cache: Response cache, or None when disabled
        rules: Custom routing rules

    Usage:
        engine = RoutingEngine(registry, config=load_config("arbiter.yaml"))
        await engine.start()
        try:
            outcome = await engine.route_and_execute(request)
        finally:
            await engine.stop()
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        config: ArbiterConfig | None = None,
        classifier: TaskClassifier | None = None,
        rules: list[RoutingRule] | None = None,
        clock: Callable[[], float] | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        """
        Initialize RoutingEngine.

        Args:
            registry: Registered provider adapters
            config: Engine configuration (default: ArbiterConfig())
            classifier: Task classifier (default: stock keyword tables)
            rules: Initial custom routing rules
            clock: Time source in seconds (default: time.time)
            rng: Random source for exploration and jitter
            sleep: Awaitable used between retries (default: asyncio.sleep)
        """
        self.registry = registry
        self.config = config or ArbiterConfig()
        self._clock = clock or time.time
        self._logger = get_logger("arbiter.router")

        routing = self.config.routing
        self.classifier = classifier or TaskClassifier()
        self.learning = LearningModule(
            learning_rate=routing.learning_rate,
            decay_factor=routing.decay_factor,
            clock=self._clock,
        )
        self.health = HealthTracker(
            self.config.circuit_breaker,
            clock=self._clock,
            sweep_interval=self.config.health.sweep_interval_seconds,
        )
        self.scoring = ScoringEngine(self.learning)
        self.selector = ProviderSelector(
            exploration_rate=routing.exploration_rate,
            fallback_size=routing.fallback_size,
            rng=rng,
        )
        self.orchestrator = FallbackOrchestrator(
            self.health,
            retry_config=self.config.retry,
            config=self.config.fallback,
            clock=self._clock,
            sleep=sleep,
            rng=rng,
        )
        self.ledger = CostLedger(
            max_records=self.config.cost.max_records,
            max_alerts=self.config.cost.max_alerts,
            alert_window_seconds=self.config.cost.alert_window_seconds,
            clock=self._clock,
        )
        for settings in self.config.cost.budgets:
            self.ledger.set_budget(
                Budget(
                    id=settings.id,
                    name=settings.name or settings.id,
                    limit=settings.limit,
                    warning_threshold=settings.warning_threshold,
                    active=settings.active,
                    provider=settings.provider,
                    project_id=settings.project_id,
                )
            )

        cache_config = self.config.cache
        self.response_cache: ResponseCache | None = (
            ResponseCache(
                policy=cache_config.policy,
                max_size=cache_config.max_size,
                ttl_seconds=cache_config.ttl_seconds,
                clock=self._clock,
            )
            if cache_config.enabled
            else None
        )
        self._decision_cache = LRUCache(
            ttl_seconds=routing.decision_cache_ttl_seconds,
            max_size=routing.decision_cache_size,
            clock=self._clock,
        )
        self.rules = RuleSet(rules)

        self._load: dict[str, int] = defaultdict(int)
        self._background: list[asyncio.Task[None]] = []
        self._total_routes = 0
        self._decision_cache_hits = 0
        self._response_cache_hits = 0
        self._failed_executions = 0

    def __repr__(self) -> str:
        return (
            f"RoutingEngine(providers={len(self.registry)}, "
            f"strategy={self.config.routing.strategy.value})"
        )

    # =========================================================================
    # Routing
    # =========================================================================

    async def route(
        self, request: RoutingRequest, options: RoutingOptions | None = None
    ) -> RoutingDecision:
        """
        Choose a provider and fallback chain for a request.

        Args:
            request: Normalized request
            options: Per-call options (strategy override, budget, quality,
                latency, preferred/excluded providers, risk tolerance)

        Returns:
            RoutingDecision with provider, reasoning, confidence, estimates
            and the fallback chain

        Raises:
            BudgetExceededError: an active budget is exceeded and
                ``routing.block_on_budget_exceeded`` is set
            NoAvailableProviderError: no provider survives filtering

        Example:
            >>> decision = await engine.route(request, RoutingOptions(cost_budget=0.01))
            >>> decision.provider
            'alpha'
        """
        options = options or RoutingOptions()
        self._check_budget_block()

        classification = self.classifier.classify(request)
        rule_outcome = self.rules.evaluate(classification, request)
        strategy = options.strategy or rule_outcome.strategy or self.config.routing.strategy

        cache_key = self._decision_cache_key(classification, strategy, options, request)
        cached = self._cached_decision(cache_key, options, classification, request)
        if cached is not None:
            return cached

        scores = self._score(request, classification, strategy, options, rule_outcome)
        if not scores:
            raise NoAvailableProviderError(
                {
                    "category": classification.category.value,
                    "complexity": classification.complexity.value,
                    "context_window": classification.context_window,
                    "excluded": sorted(set(options.excluded_providers) | rule_outcome.excluded),
                    "cost_budget": options.cost_budget,
                    "min_quality": options.min_quality,
                    "max_latency_ms": options.max_latency_ms,
                }
            )

        selection = self.selector.select(scores, self._exploration_rate(options))
        primary = selection.primary

        reasoning = list(primary.reasoning)
        if selection.explored:
            reasoning.append("Exploration pick to refresh performance estimates")
        if rule_outcome.applied:
            reasoning.append(f"Custom rules applied: {', '.join(rule_outcome.applied)}")
        if not reasoning:
            reasoning.append(f"Best {strategy.value} score ({primary.total_score:.1f})")

        decision = RoutingDecision(
            provider=primary.provider,
            reasoning=reasoning,
            confidence=primary.confidence,
            estimated_cost=primary.estimated_cost,
            estimated_latency_ms=primary.estimated_latency_ms,
            fallback_chain=selection.fallback_chain,
            strategy=strategy,
            classification=classification,
            scores=[s.to_dict() for s in scores],
            explored=selection.explored,
            created_at=datetime.fromtimestamp(self._clock()),
        )

        self._total_routes += 1
        if self.config.routing.decision_cache_enabled and not selection.explored:
            self._decision_cache.set(cache_key, decision)

        self._logger.info(
            f"Routed to {primary.provider} (score: {primary.total_score:.2f}, "
            f"cost: ${primary.estimated_cost:.4f}, strategy: {strategy.value}"
            f"{', explored' if selection.explored else ''})"
        )
        return decision

    async def route_and_execute(
        self, request: RoutingRequest, options: RoutingOptions | None = None
    ) -> ExecutionOutcome:
        """
        Route a request and execute it through the fallback chain.

        A response cache hit returns immediately: no provider is selected or
        invoked and health, cost and learning state are left untouched.

        Raises:
            AllProvidersFailedError: the chain was exhausted; carries the
                complete attempt log
            NoAvailableProviderError / BudgetExceededError: from ``route``
        """
        cache_key: str | None = None
        if self.response_cache is not None:
            cache_key = self.response_cache.key_for_request(request)
            cached = self.response_cache.get(cache_key)
            if cached is not None:
                self._response_cache_hits += 1
                return self._cached_outcome(cached, options)

        decision = await self.route(request, options)
        chain = FallbackChain(
            primary=decision.provider,
            fallbacks=decision.fallback_chain,
            strategy=self.config.fallback.strategy,
            attempt_timeout=self.config.retry.attempt_timeout,
            parallel_attempts=self.config.fallback.parallel_attempts,
        )

        async def call(provider: str) -> ProviderResponse:
            self._load[provider] += 1
            try:
                return await self.registry.get(provider).execute(request)
            finally:
                self._load[provider] -= 1

        result = await self.orchestrator.run(chain, call)
        self._learn_failures(decision, result)

        if not result.success:
            self._failed_executions += 1
            raise AllProvidersFailedError(
                attempts=result.attempts, strategy=chain.strategy, last_error=result.error
            )

        response: ProviderResponse = result.result
        provider = result.provider_used or response.provider
        cost = response.cost or 0.0
        usage = response.usage
        self.ledger.record(
            provider,
            cost,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=response.model,
            project_id=request.metadata.get("project_id"),
            user_id=request.metadata.get("user_id"),
            metadata={"decision_id": decision.decision_id},
        )

        feedback = RoutingFeedback(
            decision_id=decision.decision_id,
            provider=provider,
            success=True,
            actual_latency_ms=response.latency_ms,
            actual_cost=cost,
            actual_quality=response.quality,
        )
        self.record_feedback(decision, feedback)

        if self.response_cache is not None and cache_key is not None:
            self.response_cache.put(cache_key, response, cost=cost, provider=provider)

        return ExecutionOutcome(
            decision=decision, response=response, feedback=feedback, fallback_result=result
        )

    def record_feedback(self, decision: RoutingDecision, feedback: RoutingFeedback) -> None:
        """Feed an execution outcome into learning (no-op when learning is disabled)"""
        if self.config.routing.learning_enabled:
            self.learning.learn(decision, feedback)

    # =========================================================================
    # Routing Internals
    # =========================================================================

    def _check_budget_block(self) -> None:
        if not self.config.routing.block_on_budget_exceeded:
            return
        exceeded = self.ledger.exceeded_budgets()
        if exceeded:
            status = exceeded[0]
            raise BudgetExceededError(status.budget_id, status.limit, status.spent)

    @staticmethod
    def _decision_cache_key(
        classification: TaskClassification,
        strategy: RoutingStrategy,
        options: RoutingOptions,
        request: RoutingRequest,
    ) -> str:
        flags = "".join(
            "1" if flag else "0"
            for flag in (request.stream, request.requires_tools, request.requires_vision)
        )
        return "-".join(
            [
                classification.category.value,
                classification.complexity.value,
                strategy.value,
                options.cache_fragment(),
                flags,
                request.prompt[:DECISION_CACHE_PROMPT_CHARS],
            ]
        )

    def _cached_decision(
        self,
        key: str,
        options: RoutingOptions,
        classification: TaskClassification,
        request: RoutingRequest,
    ) -> RoutingDecision | None:
        if not self.config.routing.decision_cache_enabled:
            return None
        decision: RoutingDecision | None = self._decision_cache.get(key)
        if decision is None:
            return None
        if (
            decision.provider not in self.registry
            or not self._selectable(decision.provider, options)
            or not self._capable(decision.provider, classification, request)
        ):
            self._decision_cache.delete(key)
            return None

        self._decision_cache_hits += 1
        self._total_routes += 1
        self._logger.debug(f"Decision cache hit: {decision.provider}")
        return dataclasses.replace(
            decision,
            fallback_chain=[
                p
                for p in decision.fallback_chain
                if p in self.registry
                and not self.health.is_open(p)
                and self._capable(p, classification, request)
            ],
            classification=classification,
            reasoning=list(decision.reasoning),
            cached=True,
            decision_id=uuid.uuid4().hex,
            created_at=datetime.fromtimestamp(self._clock()),
        )

    def _capable(
        self, provider: str, classification: TaskClassification, request: RoutingRequest
    ) -> bool:
        capabilities = self.registry.capabilities(provider)
        return ScoringEngine.capability_score(capabilities, classification, request) > 0

    def _selectable(self, provider: str, options: RoutingOptions) -> bool:
        state = self.health.get_circuit_state(provider)
        if state == CircuitState.OPEN:
            return False
        return not (
            state == CircuitState.HALF_OPEN
            and options.risk_tolerance == RiskTolerance.CONSERVATIVE
        )

    def _score(
        self,
        request: RoutingRequest,
        classification: TaskClassification,
        strategy: RoutingStrategy,
        options: RoutingOptions,
        rule_outcome: RuleOutcome,
    ) -> list[ProviderScore]:
        excluded = set(options.excluded_providers) | rule_outcome.excluded
        names = [
            name
            for name in self.registry.names()
            if name not in excluded and self._selectable(name, options)
        ]
        profiles = [
            ProviderProfile(
                name=name,
                capabilities=self.registry.capabilities(name),
                pricing=self.registry.pricing(name),
            )
            for name in names
        ]

        weights = weights_for(
            strategy,
            classification,
            dataclasses.asdict(self.config.routing.custom_weights),
        )
        if rule_outcome.weight_changes:
            weights = weights.adjusted(rule_outcome.weight_changes)

        context = ScoringContext(
            load=dict(self._load),
            preferred=frozenset(set(options.preferred_providers) | rule_outcome.preferred),
        )
        scores = self.scoring.score(
            profiles,
            classification,
            self.health.snapshot(names),
            request,
            weights,
            context,
        )
        return [s for s in scores if self._within_limits(s, options)]

    @staticmethod
    def _within_limits(score: ProviderScore, options: RoutingOptions) -> bool:
        if options.cost_budget is not None and score.estimated_cost > options.cost_budget:
            return False
        if options.max_latency_ms is not None and score.estimated_latency_ms > options.max_latency_ms:
            return False
        return not (
            options.min_quality is not None
            and score.breakdown.reliability / 100 < options.min_quality
        )

    def _exploration_rate(self, options: RoutingOptions) -> float:
        rate = self.config.routing.exploration_rate
        if options.risk_tolerance == RiskTolerance.CONSERVATIVE:
            return 0.0
        if options.risk_tolerance == RiskTolerance.AGGRESSIVE:
            return min(1.0, rate * 2)
        return rate

    def _cached_outcome(
        self, response: ProviderResponse, options: RoutingOptions | None
    ) -> ExecutionOutcome:
        strategy = (options.strategy if options else None) or self.config.routing.strategy
        decision = RoutingDecision(
            provider=response.provider,
            reasoning=["Served from response cache"],
            confidence=1.0,
            estimated_cost=0.0,
            estimated_latency_ms=0.0,
            strategy=strategy,
            cached=True,
            created_at=datetime.fromtimestamp(self._clock()),
        )
        feedback = RoutingFeedback(
            decision_id=decision.decision_id,
            provider=response.provider,
            success=True,
            actual_latency_ms=0.0,
            actual_cost=0.0,
            cached=True,
        )
        self._logger.debug(f"Response cache hit ({response.provider})")
        return ExecutionOutcome(decision=decision, response=response, feedback=feedback)

    def _learn_failures(self, decision: RoutingDecision, result: FallbackResult) -> None:
        for attempt in result.executed_attempts:
            if attempt.success:
                continue
            self.record_feedback(
                decision,
                RoutingFeedback(
                    decision_id=decision.decision_id,
                    provider=attempt.provider,
                    success=False,
                    actual_latency_ms=attempt.duration_ms,
                    error=attempt.error,
                ),
            )

    # =========================================================================
    # Rules
    # =========================================================================

    def add_rule(self, rule: RoutingRule) -> None:
        self.rules.add(rule)
        self._decision_cache.clear()
        self._logger.info(f"Added routing rule: {rule.name} (priority {rule.priority})")

    def remove_rule(self, name: str) -> bool:
        removed = self.rules.remove(name)
        if removed:
            self._decision_cache.clear()
        return removed

    # =========================================================================
    # Telemetry & Management
    # =========================================================================

    def get_health(self, provider: str | None = None) -> list[ProviderHealthStatus]:
        """Health of one provider, or of every registered provider"""
        if provider is not None:
            return [self.health.get_status(provider)]
        return [self.health.get_status(name) for name in self.registry.names()]

    def get_cost_report(self, cost_filter: CostFilter | None = None) -> CostReport:
        return self.ledger.get_report(cost_filter)

    def reset_learning(self) -> None:
        self.learning.reset()
        self._decision_cache.clear()

    def build_snapshot(self) -> StatisticsSnapshot:
        return StatisticsSnapshot(
            exported_at=self._clock(),
            learning={
                name: ProviderPerformanceModel.model_validate(data)
                for name, data in self.learning.export().items()
            },
            health={
                name: ProviderHealthModel.model_validate(data)
                for name, data in self.health.export_state().items()
            },
            cost_records=[
                CostRecordModel.model_validate(r.to_dict()) for r in self.ledger.export_records()
            ],
            budgets=[BudgetModel.model_validate(b.to_dict()) for b in self.ledger.get_budgets()],
            history=[AttemptModel.from_attempt(a) for a in self.orchestrator.history()],
        )

    def export_statistics(self) -> str:
        """Serialized snapshot (JSON) of learning, health, cost and recent attempts"""
        return self.build_snapshot().model_dump_json(indent=2)

    def import_statistics(self, snapshot: StatisticsSnapshot | str | bytes | dict[str, Any]) -> None:
        """
        Restore state previously produced by ``export_statistics``.

        Raises:
            pydantic.ValidationError: the snapshot does not match the schema
        """
        if isinstance(snapshot, (str, bytes)):
            snapshot = StatisticsSnapshot.model_validate_json(snapshot)
        elif isinstance(snapshot, dict):
            snapshot = StatisticsSnapshot.model_validate(snapshot)

        self.learning.import_data(
            {name: model.model_dump() for name, model in snapshot.learning.items()}
        )
        self.health.import_state(
            {name: model.model_dump(mode="json") for name, model in snapshot.health.items()}
        )
        self.ledger.load_records([model.to_record() for model in snapshot.cost_records])
        for budget in snapshot.budgets:
            self.ledger.set_budget(budget.to_budget())
        self.orchestrator.load_history([model.to_attempt() for model in snapshot.history])
        self._decision_cache.clear()

        self._logger.info(
            f"Imported statistics: {len(snapshot.learning)} providers, "
            f"{len(snapshot.cost_records)} cost records, {len(snapshot.history)} attempts"
        )

    def _writer(self, directory: str | Path | None) -> AtomicWriter:
        persistence = self.config.persistence
        return AtomicWriter(directory or persistence.directory, max_backups=persistence.max_backups)

    def save_state(self, directory: str | Path | None = None) -> bool:
        """Atomically write the snapshot, keeping a backup of the previous one"""
        writer = self._writer(directory)
        saved = writer.write_model(
            self.config.persistence.snapshot_name, self.build_snapshot(), backup=True
        )
        if saved:
            self._logger.info(f"State saved to {writer.path_for(self.config.persistence.snapshot_name)}")
        return saved

    def load_state(self, directory: str | Path | None = None) -> bool:
        """Restore a saved snapshot; False when none exists or it fails validation"""
        writer = self._writer(directory)
        snapshot = writer.read_model(self.config.persistence.snapshot_name, StatisticsSnapshot)
        if snapshot is None:
            return False
        self.import_statistics(snapshot)
        return True

    def get_analytics(self) -> dict[str, Any]:
        providers: dict[str, Any] = {}
        for name in self.registry.names():
            performance = self.learning.get_performance(name)
            status = self.health.get_status(name)
            providers[name] = {
                "requests": performance.total_requests if performance else 0,
                "success_rate": performance.success_rate if performance else None,
                "average_latency_ms": performance.average_latency_ms if performance else None,
                "total_cost": performance.total_cost if performance else 0.0,
                "preference": performance.preference_score if performance else None,
                "circuit_state": status.circuit_state.value,
                "health_score": self.health.health_score(name),
                "in_flight": self._load.get(name, 0),
            }

        return {
            "total_routes": self._total_routes,
            "decision_cache_hits": self._decision_cache_hits,
            "response_cache_hits": self._response_cache_hits,
            "failed_executions": self._failed_executions,
            "providers": providers,
            "response_cache": self.response_cache.get_stats() if self.response_cache else None,
            "decision_cache": self._decision_cache.get_stats(),
            "cost": {
                "total": self.ledger.total_cost(),
                "by_provider": self.ledger.cost_by_provider(),
            },
            "fallback": self.orchestrator.get_stats(),
            "selector": self.selector.get_stats(),
        }

    def get_recommendations(self) -> list[str]:
        recommendations: list[str] = []

        for name in self.registry.names():
            performance = self.learning.get_performance(name)
            if performance and performance.total_requests >= MIN_REQUESTS_FOR_RECOMMENDATION:
                if performance.success_rate < LOW_SUCCESS_RATE:
                    recommendations.append(
                        f"Provider {name} has low success rate "
                        f"({performance.success_rate * 100:.1f}%); consider lowering its priority"
                    )
                if performance.average_cost is not None and performance.average_cost > HIGH_AVERAGE_COST:
                    recommendations.append(
                        f"Provider {name} has high average cost "
                        f"(${performance.average_cost:.4f}); consider cheaper alternatives"
                    )
            if self.health.is_open(name):
                recommendations.append(
                    f"Circuit open for {name}; retrying in "
                    f"{self.health.breaker(name).time_until_half_open():.0f}s"
                )

        if self.response_cache is not None:
            stats = self.response_cache.get_stats()
            lookups = stats["hits"] + stats["misses"]
            if lookups >= MIN_LOOKUPS_FOR_CACHE_HINT and stats["hit_rate"] < LOW_CACHE_HIT_RATE:
                recommendations.append(
                    f"Low response cache hit rate ({stats['hit_rate'] * 100:.1f}%); "
                    "consider a longer TTL or a larger cache"
                )

        for status in self.ledger.exceeded_budgets():
            recommendations.append(
                f"Budget '{status.budget_id}' exceeded (${status.spent:.4f} of ${status.limit:.4f})"
            )

        return recommendations

    # =========================================================================
    # Background Sweeps
    # =========================================================================

    async def _periodic(self, interval: float, action: Callable[[], Any]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                action()
            except Exception as e:
                self._logger.error(f"Background sweep failed: {e}")

    async def start(self) -> None:
        """Start the circuit, cache and history sweeps"""
        if self._background:
            return
        self.health.start()
        loop = asyncio.get_running_loop()
        interval = self.config.cache.sweep_interval_seconds
        if self.response_cache is not None:
            self._background.append(
                loop.create_task(self._periodic(interval, self.response_cache.cleanup_expired))
            )
        self._background.append(
            loop.create_task(self._periodic(interval, self._decision_cache.cleanup_expired))
        )
        self._background.append(
            loop.create_task(
                self._periodic(self.config.health.sweep_interval_seconds, self.orchestrator.trim_history)
            )
        )
        self._logger.info("Background sweeps started")

    async def stop(self) -> None:
        for task in self._background:
            task.cancel()
        for task in self._background:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._background.clear()
        await self.health.stop()
        if self.config.persistence.enabled:
            self.save_state()
        self._logger.info("Background sweeps stopped")

    @property
    def running(self) -> bool:
        return bool(self._background)

    async def __aenter__(self) -> "RoutingEngine":
        if self.config.persistence.enabled:
            self.load_state()
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()


# =============================================================================
# Convenience Functions
# =============================================================================


def create_engine(
    registry: ProviderRegistry,
    strategy: str = "balanced",
    config: ArbiterConfig | None = None,
) -> RoutingEngine:
    """
    Create a RoutingEngine with a strategy given by name.

    Example:
        >>> engine = create_engine(registry, strategy="cost_optimized")
    """
    config = config or ArbiterConfig()
    config.routing.strategy = RoutingStrategy(strategy.lower())
    return RoutingEngine(registry, config=config)
