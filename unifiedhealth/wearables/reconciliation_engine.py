"""Core reconciliation engine.

Merges the per-source daily maps produced by the adapters into one canonical
UnifiedDailyRecord per calendar day.  For every day and metric the engine
walks the metric's configured source order and keeps the first valid reading,
tagged with the source it came from.  There is no averaging across sources:
the priority table in source_priority.yaml decides, per metric, which device
is trusted.

The merge is pure.  Inputs are never mutated, nothing is logged per value,
and diagnostics come back in the result rather than in module state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Mapping

from unifiedhealth.wearables.aggregation import round_value
from unifiedhealth.wearables.base import (
    UNIFIED_METRICS,
    MetricSpec,
    Sourced,
    SourceDailyRecord,
    UnifiedDailyRecord,
    round_half_up,
)
from unifiedhealth.wearables.priority import PriorityTable, get_priority_table

logger = logging.getLogger("unifiedhealth.wearables.reconcile")

SourceMaps = Mapping[str, Mapping[date, SourceDailyRecord]]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class SourceUsageReport:
    """How many days each source won, per metric.

    Attributes:
        counts: metric name → source → number of days that source was selected.
    """

    counts: dict[str, dict[str, int]] = field(default_factory=dict)

    def record(self, metric: str, source: str) -> None:
        per_source = self.counts.setdefault(metric, {})
        per_source[source] = per_source.get(source, 0) + 1

    def total(self, metric: str) -> int:
        return sum(self.counts.get(metric, {}).values())

    @classmethod
    def from_records(cls, records: list[UnifiedDailyRecord]) -> SourceUsageReport:
        """Rebuild the report from already-reconciled records (e.g. a stored artifact)."""
        report = cls()
        for record in records:
            for spec in UNIFIED_METRICS:
                sourced = getattr(record, spec.name)
                if sourced is not None:
                    report.record(spec.name, sourced.source)
        return report

    def to_dict(self) -> dict[str, dict[str, int]]:
        """Counts keyed by wire key, every metric present, in catalogue order."""
        return {spec.wire_key: dict(self.counts.get(spec.name, {})) for spec in UNIFIED_METRICS}

    def format_lines(self) -> list[str]:
        """One human-readable line per metric.

        Example::

            steps: 92 days — apple_health: 90 (98%), oura: 2 (2%)
            sleepScore: no data
        """
        lines: list[str] = []
        for spec in UNIFIED_METRICS:
            per_source = self.counts.get(spec.name, {})
            total = sum(per_source.values())
            if total == 0:
                lines.append(f"{spec.wire_key}: no data")
                continue
            ranked = sorted(per_source.items(), key=lambda item: (-item[1], item[0]))
            parts = ", ".join(f"{src}: {n} ({round_half_up(n / total * 100)}%)" for src, n in ranked)
            lines.append(f"{spec.wire_key}: {total} days — {parts}")
        return lines


@dataclass
class ReconciliationResult:
    """Output of one reconciliation pass.

    Attributes:
        records:      One UnifiedDailyRecord per date, strictly ascending.
        source_usage: Per-metric count of days each source was selected.
    """

    records: list[UnifiedDailyRecord]
    source_usage: SourceUsageReport

    @property
    def date_range(self) -> tuple[date, date] | None:
        if not self.records:
            return None
        return self.records[0].day, self.records[-1].day


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def resolve_metric(
    spec: MetricSpec,
    order: list[str],
    source_maps: SourceMaps,
    day: date,
) -> Sourced | None:
    """Return the first valid reading for *spec* on *day* following *order*.

    A source is skipped when it has no map, no record for the day, or a
    reading that fails the metric's validity predicate.

    Args:
        spec:        Metric being resolved.
        order:       ``[primary, *fallback]`` from the priority table.
        source_maps: source id → date → per-source record.
        day:         Calendar date being resolved.

    Returns:
        The selected reading rounded to the metric precision, or None.
    """
    for source in order:
        record = source_maps.get(source, {}).get(day)
        if record is None:
            continue
        value = record.value_for(spec.name)
        if not spec.is_valid(value):
            continue
        rounded = round_value(value, spec.decimals)
        # 0.4 steps rounds to 0, which reads as "not worn"
        if spec.is_valid(rounded):
            return Sourced.of(rounded, source)
    return None


def reconcile(source_maps: SourceMaps, table: PriorityTable) -> ReconciliationResult:
    """Merge per-source daily maps into the unified daily sequence.

    Algorithm:
    1. Check the table covers every unified metric.
    2. Build the date axis: the sorted union of every map's dates.
    3. For each date and metric, take the first valid reading in priority order.
    4. Count which source won each (date, metric) cell.

    A date present in any source map yields a record, even if every metric on
    it resolves to None.

    Args:
        source_maps: source id → date → per-source record.
        table:       Complete priority table.

    Returns:
        ReconciliationResult with records in ascending date order.

    Raises:
        PriorityConfigError: If *table* lacks an entry for some metric.
    """
    table.check_complete()
    orders = {spec.name: table.order_for(spec.name) for spec in UNIFIED_METRICS}

    all_dates: set[date] = set()
    for days in source_maps.values():
        all_dates.update(days.keys())

    usage = SourceUsageReport()
    records: list[UnifiedDailyRecord] = []
    for day in sorted(all_dates):
        values: dict[str, Sourced | None] = {}
        for spec in UNIFIED_METRICS:
            sourced = resolve_metric(spec, orders[spec.name], source_maps, day)
            values[spec.name] = sourced
            if sourced is not None:
                usage.record(spec.name, sourced.source)
        records.append(UnifiedDailyRecord(day=day, **values))

    logger.info(
        "Reconciled %d days from %d source(s): %s",
        len(records),
        len(source_maps),
        ", ".join(f"{src}={len(days)}" for src, days in sorted(source_maps.items())),
    )
    return ReconciliationResult(records=records, source_usage=usage)


# ---------------------------------------------------------------------------
# Top-level orchestrator
# ---------------------------------------------------------------------------


class ReconciliationEngine:
    """Reconciles source maps against a priority table.

    Usage::

        engine = ReconciliationEngine()
        result = engine.run({"oura": oura_days, "apple_health": apple_days})
    """

    def __init__(self, table: PriorityTable | None = None) -> None:
        self._table = table or get_priority_table()

    @property
    def table(self) -> PriorityTable:
        return self._table

    def run(self, source_maps: SourceMaps) -> ReconciliationResult:
        return reconcile(source_maps, self._table)
