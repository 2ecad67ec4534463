"""
Custom Routing Rules
====================

Caller-supplied rules evaluated before scoring, highest priority first.
A matching rule can prefer or exclude providers, adjust strategy weights or
override the strategy for that one request. Rules never mutate engine
configuration; their combined effect is returned as a RuleOutcome.

Where matching rules conflict, the higher-priority rule wins.
"""

from collections.abc import Callable
from dataclasses import dataclass, field

from arbiter.core.logging import get_standard_logger as get_logger
from arbiter.core.types import RoutingRequest, RoutingStrategy, TaskClassification

RuleCondition = Callable[[TaskClassification, RoutingRequest], bool]


@dataclass(frozen=True)
class RuleAction:
    prefer_providers: tuple[str, ...] = ()
    exclude_providers: tuple[str, ...] = ()
    adjust_weights: dict[str, float] = field(default_factory=dict)
    override_strategy: RoutingStrategy | None = None


@dataclass(frozen=True)
class RoutingRule:
    """
    Usage:
        RoutingRule(
            name="security-to-beta",
            condition=lambda c, r: c.category == TaskCategory.SECURITY,
            action=RuleAction(prefer_providers=("beta",)),
            priority=10,
        )
    """

    name: str
    condition: RuleCondition
    action: RuleAction
    priority: int = 0


@dataclass
class RuleOutcome:
    applied: list[str] = field(default_factory=list)
    preferred: set[str] = field(default_factory=set)
    excluded: set[str] = field(default_factory=set)
    weight_changes: dict[str, float] = field(default_factory=dict)
    strategy: RoutingStrategy | None = None


class RuleSet:
    def __init__(self, rules: list[RoutingRule] | None = None):
        self._rules: list[RoutingRule] = []
        self._logger = get_logger("arbiter.rules")
        for rule in rules or []:
            self.add(rule)

    def add(self, rule: RoutingRule) -> None:
        self._rules = [r for r in self._rules if r.name != rule.name]
        self._rules.append(rule)
        self._rules.sort(key=lambda r: r.priority, reverse=True)

    def remove(self, name: str) -> bool:
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.name != name]
        return len(self._rules) < before

    @property
    def rules(self) -> list[RoutingRule]:
        return list(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def evaluate(
        self, classification: TaskClassification, request: RoutingRequest
    ) -> RuleOutcome:
        outcome = RuleOutcome()

        for rule in self._rules:
            try:
                matched = rule.condition(classification, request)
            except Exception as e:
                self._logger.warning(f"Failed to evaluate rule {rule.name}: {e}")
                continue
            if not matched:
                continue

            action = rule.action
            outcome.applied.append(rule.name)
            outcome.preferred.update(action.prefer_providers)
            outcome.excluded.update(action.exclude_providers)
            for key, value in action.adjust_weights.items():
                outcome.weight_changes.setdefault(key, value)
            if outcome.strategy is None and action.override_strategy is not None:
                outcome.strategy = action.override_strategy
            self._logger.debug(f"Applied custom rule: {rule.name}")

        return outcome
