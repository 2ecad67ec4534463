"""
Cost Ledger
===========

Append-only record of actual spend with budget evaluation.

Features:
- Filtered totals (provider, model, project, user, time window, cost range)
- Named budgets scoped by provider, project and time window
- WARNING / EXCEEDED alerts with de-duplication
- Alert listeners
- Per-provider cost reports

Alert de-duplication: an alert of a given type is not raised again for the
same budget while an unacknowledged alert of that type, younger than
``alert_window_seconds``, exists.
"""

import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from arbiter.core.logging import get_standard_logger as get_logger

# Float sums such as 0.1 * 8 land a hair under the nominal threshold.
_PERCENT_EPSILON = 1e-9


# =============================================================================
# Records & Budgets
# =============================================================================


@dataclass(frozen=True)
class CostRecord:
    """One immutable ledger entry"""

    id: str
    timestamp: float
    provider: str
    model: str
    cost: float
    input_tokens: int = 0
    output_tokens: int = 0
    project_id: str | None = None
    user_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CostFilter:
    provider: str | None = None
    model: str | None = None
    project_id: str | None = None
    user_id: str | None = None
    start_time: float | None = None
    end_time: float | None = None
    min_cost: float | None = None
    max_cost: float | None = None

    def matches(self, record: CostRecord) -> bool:
        if self.provider and record.provider != self.provider:
            return False
        if self.model and record.model != self.model:
            return False
        if self.project_id and record.project_id != self.project_id:
            return False
        if self.user_id and record.user_id != self.user_id:
            return False
        if self.start_time is not None and record.timestamp < self.start_time:
            return False
        if self.end_time is not None and record.timestamp > self.end_time:
            return False
        if self.min_cost is not None and record.cost < self.min_cost:
            return False
        if self.max_cost is not None and record.cost > self.max_cost:
            return False
        return True


@dataclass
class Budget:
    """
    A named spending limit.

    Attributes:
        limit: Ceiling in USD
        warning_threshold: Percentage of the limit that raises a WARNING
        provider / project_id: Optional scope; unset means every record
        start_time / end_time: Optional window in clock seconds
    """

    id: str
    name: str
    limit: float
    warning_threshold: float = 80.0
    active: bool = True
    provider: str | None = None
    project_id: str | None = None
    start_time: float | None = None
    end_time: float | None = None

    def applies_to(self, record: CostRecord) -> bool:
        if not self.active:
            return False
        if self.provider and self.provider != record.provider:
            return False
        if self.project_id and self.project_id != record.project_id:
            return False
        return True

    def as_filter(self) -> CostFilter:
        return CostFilter(
            provider=self.provider,
            project_id=self.project_id,
            start_time=self.start_time,
            end_time=self.end_time,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class AlertType(Enum):
    WARNING = "WARNING"
    EXCEEDED = "EXCEEDED"


@dataclass
class BudgetAlert:
    id: str
    timestamp: float
    budget_id: str
    type: AlertType
    message: str
    current_cost: float
    limit: float
    percentage: float
    acknowledged: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data


@dataclass(frozen=True)
class BudgetStatus:
    budget_id: str
    within_limit: bool
    remaining: float
    spent: float
    limit: float
    percentage: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# =============================================================================
# Reports
# =============================================================================


@dataclass
class ProviderCostSummary:
    provider: str
    requests: int = 0
    total_cost: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def average_cost(self) -> float:
        return self.total_cost / self.requests if self.requests else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "requests": self.requests,
            "total_cost": self.total_cost,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "average_cost": self.average_cost,
        }


@dataclass
class CostReport:
    total_cost: float
    total_requests: int
    total_tokens: int
    by_provider: dict[str, ProviderCostSummary]
    by_project: dict[str, float]
    budgets: list[BudgetStatus] = field(default_factory=list)
    active_alerts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_cost": self.total_cost,
            "total_requests": self.total_requests,
            "total_tokens": self.total_tokens,
            "by_provider": {name: s.to_dict() for name, s in self.by_provider.items()},
            "by_project": dict(self.by_project),
            "budgets": [b.to_dict() for b in self.budgets],
            "active_alerts": self.active_alerts,
        }


AlertListener = Callable[[BudgetAlert], None]


# =============================================================================
# Ledger
# =============================================================================


class CostLedger:
    """
    Thread-safe spend ledger.

    Usage:
        ledger = CostLedger()
        ledger.set_budget(Budget(id="monthly", name="Monthly", limit=50.0))
        ledger.record("alpha", cost=0.02, input_tokens=800, output_tokens=200)
        ledger.check_budget("monthly").remaining
    """

    def __init__(
        self,
        max_records: int = 10000,
        max_alerts: int = 1000,
        alert_window_seconds: float = 3600.0,
        clock: Callable[[], float] | None = None,
    ):
        self.max_records = max_records
        self.max_alerts = max_alerts
        self.alert_window_seconds = alert_window_seconds
        self._clock = clock or time.time

        self._lock = threading.RLock()
        self._records: list[CostRecord] = []
        self._budgets: dict[str, Budget] = {}
        self._alerts: list[BudgetAlert] = []
        self._listeners: list[AlertListener] = []
        self._logger = get_logger("arbiter.cost")

    # =========================================================================
    # Recording
    # =========================================================================

    def record(
        self,
        provider: str,
        cost: float,
        input_tokens: int = 0,
        output_tokens: int = 0,
        model: str = "",
        project_id: str | None = None,
        user_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CostRecord:
        if cost < 0:
            raise ValueError(f"Cost cannot be negative: {cost}")

        with self._lock:
            entry = CostRecord(
                id=uuid.uuid4().hex,
                timestamp=self._clock(),
                provider=provider,
                model=model,
                cost=cost,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                project_id=project_id,
                user_id=user_id,
                metadata=dict(metadata or {}),
            )
            self._records.append(entry)

            if len(self._records) > self.max_records:
                self._records = self._records[-self.max_records :]

            raised = self._check_budgets(entry)

        for alert in raised:
            self._notify(alert)

        return entry

    def load_records(self, records: list[CostRecord]) -> None:
        """Replace the log with previously exported records; raises no alerts"""
        with self._lock:
            self._records = list(records)[-self.max_records :]

    # =========================================================================
    # Queries
    # =========================================================================

    def _filtered(self, cost_filter: CostFilter | None) -> list[CostRecord]:
        if cost_filter is None:
            return list(self._records)
        return [r for r in self._records if cost_filter.matches(r)]

    def total_cost(self, cost_filter: CostFilter | None = None) -> float:
        with self._lock:
            return sum(r.cost for r in self._filtered(cost_filter))

    def cost_by_provider(self, cost_filter: CostFilter | None = None) -> dict[str, float]:
        with self._lock:
            totals: dict[str, float] = {}
            for r in self._filtered(cost_filter):
                totals[r.provider] = totals.get(r.provider, 0.0) + r.cost
            return totals

    def cost_by_project(self, cost_filter: CostFilter | None = None) -> dict[str, float]:
        with self._lock:
            totals: dict[str, float] = {}
            for r in self._filtered(cost_filter):
                if r.project_id:
                    totals[r.project_id] = totals.get(r.project_id, 0.0) + r.cost
            return totals

    def get_report(self, cost_filter: CostFilter | None = None) -> CostReport:
        with self._lock:
            records = self._filtered(cost_filter)
            by_provider: dict[str, ProviderCostSummary] = {}
            for r in records:
                summary = by_provider.setdefault(r.provider, ProviderCostSummary(r.provider))
                summary.requests += 1
                summary.total_cost += r.cost
                summary.input_tokens += r.input_tokens
                summary.output_tokens += r.output_tokens

            return CostReport(
                total_cost=sum(r.cost for r in records),
                total_requests=len(records),
                total_tokens=sum(r.tokens for r in records),
                by_provider=by_provider,
                by_project=self.cost_by_project(cost_filter),
                budgets=[self.check_budget(b) for b in self._budgets],
                active_alerts=len(self.get_alerts(acknowledged=False)),
            )

    def export_records(self) -> list[CostRecord]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    # =========================================================================
    # Budgets
    # =========================================================================

    def set_budget(self, budget: Budget) -> None:
        if budget.limit <= 0:
            raise ValueError(f"Budget limit must be positive: {budget.limit}")
        with self._lock:
            self._budgets[budget.id] = budget
        self._logger.info(f"Budget {budget.id} set: ${budget.limit:.2f}")

    def get_budget(self, budget_id: str) -> Budget | None:
        return self._budgets.get(budget_id)

    def remove_budget(self, budget_id: str) -> bool:
        with self._lock:
            return self._budgets.pop(budget_id, None) is not None

    def get_budgets(self) -> list[Budget]:
        return list(self._budgets.values())

    def check_budget(self, budget_id: str) -> BudgetStatus:
        with self._lock:
            budget = self._budgets.get(budget_id)
            if budget is None:
                raise KeyError(f"Unknown budget: {budget_id}")

            spent = self.total_cost(budget.as_filter())
            percentage = spent / budget.limit * 100
            return BudgetStatus(
                budget_id=budget_id,
                within_limit=percentage < 100 - _PERCENT_EPSILON,
                remaining=max(0.0, budget.limit - spent),
                spent=spent,
                limit=budget.limit,
                percentage=percentage,
            )

    def exceeded_budgets(self) -> list[BudgetStatus]:
        """Statuses of every active budget at or over its limit"""
        with self._lock:
            statuses = [self.check_budget(b.id) for b in self._budgets.values() if b.active]
            return [s for s in statuses if not s.within_limit]

    def _check_budgets(self, entry: CostRecord) -> list[BudgetAlert]:
        raised: list[BudgetAlert] = []

        for budget in self._budgets.values():
            if not budget.applies_to(entry):
                continue

            status = self.check_budget(budget.id)
            percentage = status.percentage

            if percentage >= 100 - _PERCENT_EPSILON:
                if not self._has_active_alert(budget.id, AlertType.EXCEEDED):
                    raised.append(
                        self._create_alert(
                            budget,
                            AlertType.EXCEEDED,
                            f"Budget {budget.name} exceeded: "
                            f"${status.spent:.4f} / ${budget.limit}",
                            status,
                        )
                    )
            elif percentage >= budget.warning_threshold - _PERCENT_EPSILON:
                if not self._has_active_alert(budget.id, AlertType.WARNING):
                    raised.append(
                        self._create_alert(
                            budget,
                            AlertType.WARNING,
                            f"Budget {budget.name} at {percentage:.1f}%: "
                            f"${status.spent:.4f} / ${budget.limit}",
                            status,
                        )
                    )

        return raised

    # =========================================================================
    # Alerts
    # =========================================================================

    def _create_alert(
        self, budget: Budget, alert_type: AlertType, message: str, status: BudgetStatus
    ) -> BudgetAlert:
        alert = BudgetAlert(
            id=uuid.uuid4().hex,
            timestamp=self._clock(),
            budget_id=budget.id,
            type=alert_type,
            message=message,
            current_cost=status.spent,
            limit=budget.limit,
            percentage=min(status.percentage, 100.0)
            if alert_type == AlertType.EXCEEDED
            else status.percentage,
        )
        self._alerts.append(alert)

        if len(self._alerts) > self.max_alerts:
            self._alerts = self._alerts[-self.max_alerts :]

        self._logger.warning(message)
        return alert

    def _has_active_alert(self, budget_id: str, alert_type: AlertType) -> bool:
        now = self._clock()
        return any(
            a.budget_id == budget_id
            and a.type == alert_type
            and not a.acknowledged
            and now - a.timestamp < self.alert_window_seconds
            for a in self._alerts
        )

    def _notify(self, alert: BudgetAlert) -> None:
        for listener in list(self._listeners):
            try:
                listener(alert)
            except Exception as e:
                self._logger.warning(f"Alert listener failed: {e}")

    def get_alerts(self, acknowledged: bool | None = None) -> list[BudgetAlert]:
        with self._lock:
            if acknowledged is None:
                return list(self._alerts)
            return [a for a in self._alerts if a.acknowledged == acknowledged]

    def acknowledge_alert(self, alert_id: str) -> bool:
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id:
                    alert.acknowledged = True
                    return True
            return False

    def add_alert_listener(self, listener: AlertListener) -> None:
        self._listeners.append(listener)

    def remove_alert_listener(self, listener: AlertListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear(self) -> None:
        """Drop all records; budgets and alerts are kept"""
        with self._lock:
            self._records = []

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "records": len(self._records),
                "total_cost": self.total_cost(),
                "budgets": len(self._budgets),
                "alerts": len(self._alerts),
                "unacknowledged_alerts": len(self.get_alerts(acknowledged=False)),
            }
