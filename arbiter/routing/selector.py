"""
Provider Selector
=================

Epsilon-greedy choice over a ranked score list. With probability
``exploration_rate`` the primary is drawn at random, weighted by score;
otherwise the top-ranked provider wins. The fallback chain is the next
``fallback_size`` ranked providers with a nonzero capability score.
"""

import random
from dataclasses import dataclass, field

from arbiter.core.exceptions import NoAvailableProviderError
from arbiter.core.logging import get_standard_logger as get_logger

from .scoring import ProviderScore


@dataclass
class Selection:
    primary: ProviderScore
    fallback_chain: list[str] = field(default_factory=list)
    explored: bool = False

    @property
    def providers(self) -> list[str]:
        return [self.primary.provider, *self.fallback_chain]


class ProviderSelector:
    def __init__(
        self,
        exploration_rate: float = 0.1,
        fallback_size: int = 3,
        rng: random.Random | None = None,
    ):
        self.exploration_rate = exploration_rate
        self.fallback_size = fallback_size
        self._rng = rng or random.Random()
        self._logger = get_logger("arbiter.selector")

        self._selections = 0
        self._explorations = 0

    def select(
        self, scores: list[ProviderScore], exploration_rate: float | None = None
    ) -> Selection:
        """
        Pick the primary provider and its fallback chain.

        Args:
            scores: Ranked scores (best first) as returned by ScoringEngine.score
            exploration_rate: Per-call override of the configured rate

        Raises:
            NoAvailableProviderError: ``scores`` is empty
        """
        eligible = [s for s in scores if s.breakdown.capability > 0]
        if not eligible:
            raise NoAvailableProviderError({"eligible_providers": 0})

        rate = self.exploration_rate if exploration_rate is None else exploration_rate
        explored = False
        primary = eligible[0]

        if len(eligible) > 1 and rate > 0 and self._rng.random() < rate:
            primary = self._weighted_pick(eligible)
            explored = True
            self._explorations += 1
            self._logger.debug(f"Exploring {primary.provider} instead of {eligible[0].provider}")

        fallbacks = [s.provider for s in eligible if s.provider != primary.provider]
        self._selections += 1
        return Selection(
            primary=primary,
            fallback_chain=fallbacks[: self.fallback_size],
            explored=explored,
        )

    def _weighted_pick(self, scores: list[ProviderScore]) -> ProviderScore:
        total = sum(max(s.total_score, 0.0) for s in scores)
        if total <= 0:
            return self._rng.choice(scores)

        point = self._rng.random() * total
        for score in scores:
            point -= max(score.total_score, 0.0)
            if point <= 0:
                return score
        return scores[-1]

    def get_stats(self) -> dict[str, float]:
        return {
            "selections": self._selections,
            "explorations": self._explorations,
            "exploration_ratio": (
                self._explorations / self._selections if self._selections else 0.0
            ),
        }
