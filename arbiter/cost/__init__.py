from arbiter.cost.ledger import (
    AlertType,
    Budget,
    BudgetAlert,
    BudgetStatus,
    CostFilter,
    CostLedger,
    CostRecord,
    CostReport,
    ProviderCostSummary,
)

__all__ = [
    "AlertType",
    "Budget",
    "BudgetAlert",
    "BudgetStatus",
    "CostFilter",
    "CostLedger",
    "CostRecord",
    "CostReport",
    "ProviderCostSummary",
]
