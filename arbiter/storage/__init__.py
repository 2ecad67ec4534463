"""
Storage Module

Atomic file persistence and the exported statistics schema.
"""

from .atomic import AtomicWriter, atomic_write
from .snapshot import (
    SNAPSHOT_VERSION,
    AttemptModel,
    BudgetModel,
    CostRecordModel,
    ProviderHealthModel,
    ProviderPerformanceModel,
    StatisticsSnapshot,
)

__all__ = [
    "atomic_write",
    "AtomicWriter",
    "SNAPSHOT_VERSION",
    "AttemptModel",
    "BudgetModel",
    "CostRecordModel",
    "ProviderHealthModel",
    "ProviderPerformanceModel",
    "StatisticsSnapshot",
]
