"""
Learning Module
===============

Feeds execution outcomes back into scoring.

Per provider and per (provider, category) it keeps exponential moving
averages of latency, quality and cost (``decay_factor`` weight on history,
the rest on the new sample; the first sample seeds the average) and a
preference score in [0, 1]. Success raises the preference by
``learning_rate * 0.1``; failure lowers it by ``learning_rate * 0.2``.
"""

import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field, replace
from typing import Any

from arbiter.core.logging import get_standard_logger as get_logger
from arbiter.core.types import RoutingDecision, RoutingFeedback, TaskCategory

SUCCESS_STEP = 0.1
FAILURE_STEP = 0.2
INITIAL_PREFERENCE = 0.5
NEUTRAL_HISTORICAL_SCORE = 50.0
MIN_PROVIDER_REQUESTS = 10
MIN_CATEGORY_REQUESTS = 5


def _ema(current: float | None, sample: float, decay: float) -> float:
    if current is None:
        return sample
    return decay * current + (1 - decay) * sample


@dataclass
class CategoryPerformance:
    category: str
    count: int = 0
    successes: int = 0
    average_quality: float | None = None
    average_latency_ms: float | None = None
    average_cost: float | None = None
    preference_score: float = INITIAL_PREFERENCE

    @property
    def success_rate(self) -> float:
        return self.successes / self.count if self.count else 0.0


@dataclass
class ProviderPerformance:
    provider: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_latency_ms: float | None = None
    average_quality: float | None = None
    average_cost: float | None = None
    total_cost: float = 0.0
    last_used: float | None = None
    categories: dict[str, CategoryPerformance] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        return self.successful_requests / self.total_requests if self.total_requests else 0.0

    @property
    def preference_score(self) -> float:
        """Request-weighted mean of the category preferences"""
        if not self.categories:
            return INITIAL_PREFERENCE
        total = sum(c.count for c in self.categories.values())
        if total == 0:
            return INITIAL_PREFERENCE
        return sum(c.preference_score * c.count for c in self.categories.values()) / total


class LearningModule:
    """
    Usage:
        learning = LearningModule()
        learning.learn(decision, feedback)
        learning.historical_score("alpha", TaskCategory.DEBUGGING)
    """

    def __init__(
        self,
        learning_rate: float = 0.1,
        decay_factor: float = 0.95,
        clock: Callable[[], float] | None = None,
    ):
        self.learning_rate = learning_rate
        self.decay_factor = decay_factor
        self._clock = clock or time.time
        self._performance: dict[str, ProviderPerformance] = {}
        self._logger = get_logger("arbiter.learning")

    # =========================================================================
    # Learning
    # =========================================================================

    def learn(self, decision: RoutingDecision, feedback: RoutingFeedback) -> None:
        """Update the provider that actually served (or failed) the request"""
        if feedback.cached:
            return

        provider = feedback.provider or decision.provider
        history = self._performance.setdefault(provider, ProviderPerformance(provider))
        decay = self.decay_factor

        history.total_requests += 1
        history.last_used = self._clock()

        if feedback.success:
            history.successful_requests += 1
            if feedback.actual_latency_ms is not None:
                history.average_latency_ms = _ema(
                    history.average_latency_ms, feedback.actual_latency_ms, decay
                )
            if feedback.actual_quality is not None:
                history.average_quality = _ema(
                    history.average_quality, feedback.actual_quality, decay
                )
            if feedback.actual_cost is not None:
                history.average_cost = _ema(history.average_cost, feedback.actual_cost, decay)
                history.total_cost += feedback.actual_cost
        else:
            history.failed_requests += 1

        if decision.classification is not None:
            self._learn_category(history, decision.classification.category.value, feedback)

        self._logger.debug(
            f"Learned from {provider}: success={feedback.success}, "
            f"quality={feedback.actual_quality if feedback.actual_quality is not None else 'N/A'}"
        )

    def _learn_category(
        self, history: ProviderPerformance, category: str, feedback: RoutingFeedback
    ) -> None:
        perf = history.categories.setdefault(category, CategoryPerformance(category))
        decay = self.decay_factor
        perf.count += 1

        if feedback.success:
            perf.successes += 1
            if feedback.actual_latency_ms is not None:
                perf.average_latency_ms = _ema(
                    perf.average_latency_ms, feedback.actual_latency_ms, decay
                )
            if feedback.actual_quality is not None:
                perf.average_quality = _ema(perf.average_quality, feedback.actual_quality, decay)
            if feedback.actual_cost is not None:
                perf.average_cost = _ema(perf.average_cost, feedback.actual_cost, decay)
            perf.preference_score = min(
                1.0, perf.preference_score + self.learning_rate * SUCCESS_STEP
            )
        else:
            perf.preference_score = max(
                0.0, perf.preference_score - self.learning_rate * FAILURE_STEP
            )

    # =========================================================================
    # Accessors
    # =========================================================================

    def get_performance(self, provider: str) -> ProviderPerformance | None:
        history = self._performance.get(provider)
        if history is None:
            return None
        return replace(
            history, categories={k: replace(v) for k, v in history.categories.items()}
        )

    def get_category_performance(
        self, provider: str, category: TaskCategory | str
    ) -> CategoryPerformance | None:
        history = self._performance.get(provider)
        if history is None:
            return None
        key = category.value if isinstance(category, TaskCategory) else category
        perf = history.categories.get(key)
        return replace(perf) if perf else None

    def has_history(self, provider: str) -> bool:
        history = self._performance.get(provider)
        return history is not None and history.total_requests > 0

    def historical_score(self, provider: str, category: TaskCategory | str) -> float:
        """preference * 100 once there is enough history, otherwise neutral 50"""
        history = self._performance.get(provider)
        if history is None or history.total_requests <= MIN_PROVIDER_REQUESTS:
            return NEUTRAL_HISTORICAL_SCORE
        key = category.value if isinstance(category, TaskCategory) else category
        perf = history.categories.get(key)
        if perf is None or perf.count <= MIN_CATEGORY_REQUESTS:
            return NEUTRAL_HISTORICAL_SCORE
        return perf.preference_score * 100

    def category_quality(self, provider: str, category: TaskCategory | str) -> float | None:
        perf = self.get_category_performance(provider, category)
        return perf.average_quality if perf else None

    def predicted_latency(self, provider: str) -> float | None:
        history = self._performance.get(provider)
        return history.average_latency_ms if history else None

    def providers(self) -> list[str]:
        return list(self._performance)

    # =========================================================================
    # Management
    # =========================================================================

    def reset(self) -> None:
        self._performance.clear()
        self._logger.info("Learning data reset")

    def export(self) -> dict[str, Any]:
        return {name: asdict(history) for name, history in self._performance.items()}

    def import_data(self, data: dict[str, Any]) -> None:
        imported: dict[str, ProviderPerformance] = {}
        for name, raw in data.items():
            raw = dict(raw)
            categories = {
                key: CategoryPerformance(**value)
                for key, value in raw.pop("categories", {}).items()
            }
            raw["provider"] = name
            imported[name] = ProviderPerformance(**raw, categories=categories)
        self._performance = imported
        self._logger.info(f"Learning data imported for {len(imported)} providers")

    def get_stats(self) -> dict[str, Any]:
        return {
            name: {
                "requests": h.total_requests,
                "success_rate": h.success_rate,
                "average_latency_ms": h.average_latency_ms,
                "average_cost": h.average_cost,
                "preference": h.preference_score,
            }
            for name, h in self._performance.items()
        }
