"""Unified health daily reconciliation.

This package turns provider exports into one canonical record per day, with
every value tagged by the device that produced it.

Subpackages:
    adapters/  — Provider normalizers (Apple Health, Oura, Strava)

Core modules:
    base                  — Metric catalogue, Sourced values, record types, SourceAdapter ABC
    sleep_night           — Night attribution and main-sleep selection
    priority              — Load/validate/hot-reload source_priority.yaml
    reconciliation_engine — Priority-ordered per-metric merge
    aggregation           — Null-safe averages, moving averages, period summaries
    store                 — Read/write the daily.json artifact
    pipeline              — Load sources, reconcile, persist
"""

from unifiedhealth.wearables.base import (
    UNIFIED_METRICS,
    MetricSpec,
    Sourced,
    SourceAdapter,
    SourceDailyRecord,
    SourceLoadError,
    UnifiedDailyRecord,
    get_metric,
)
from unifiedhealth.wearables.priority import PriorityConfigError, PriorityTable, get_priority_table
from unifiedhealth.wearables.reconciliation_engine import (
    ReconciliationEngine,
    ReconciliationResult,
    reconcile,
)

__all__ = [
    "UNIFIED_METRICS",
    "MetricSpec",
    "Sourced",
    "SourceAdapter",
    "SourceDailyRecord",
    "SourceLoadError",
    "UnifiedDailyRecord",
    "get_metric",
    "PriorityConfigError",
    "PriorityTable",
    "get_priority_table",
    "ReconciliationEngine",
    "ReconciliationResult",
    "reconcile",
]
