"""Null-safe aggregation over unified daily records.

These helpers back the report cards and trend charts: 90-day averages,
30-day moving averages, and "which device is this number coming from".
Every function accepts sparse input (missing days, ``None`` values) and
returns ``None`` rather than raising when there is nothing to aggregate.
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Sequence

from unifiedhealth.wearables.base import Sourced, UnifiedDailyRecord, get_metric, round_half_up

logger = logging.getLogger("unifiedhealth.wearables.aggregation")


def round_value(value: float | None, decimals: int) -> float | int | None:
    """Round half up to *decimals*; zero decimals yields an int.  None/NaN/inf → None."""
    if value is None or isinstance(value, bool):
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return round_half_up(number, decimals)


def present_values(values: Iterable[Sourced | float | None]) -> list[float]:
    """Drop ``None`` and non-finite entries; ``Sourced`` wrappers are unwrapped."""
    present = []
    for value in values:
        if isinstance(value, Sourced):
            value = value.value
        if value is not None and math.isfinite(value):
            present.append(value)
    return present


def average(values: Iterable[Sourced | float | None], decimals: int = 1) -> float | None:
    """Mean of the present values, or None when there are none.

    Example::

        average([70, None, 72])   # 71.0
        average([None, None])     # None
    """
    present = present_values(values)
    if not present:
        return None
    return round_value(sum(present) / len(present), decimals)


def median(values: Iterable[Sourced | float | None]) -> float | None:
    present = present_values(values)
    if not present:
        return None
    return statistics.median(present)


def moving_average(
    points: Sequence[tuple[date, float | None]],
    window_days: int = 30,
    decimals: int = 1,
) -> list[tuple[date, float]]:
    """Trailing calendar-window average for each present point.

    For every point, walks backward over earlier points and includes each one
    whose date lies within ``window_days`` of the current date, stopping at
    the first point outside the window.  Gaps in the series shrink the window
    population rather than being filled.

    Args:
        points:      ``(date, value)`` pairs in ascending date order.
        window_days: Calendar span of the trailing window.
        decimals:    Output precision.

    Returns:
        ``(date, average)`` for every point whose value was present.
    """
    if window_days < 0:
        raise ValueError(f"window_days must be non-negative, got {window_days}")

    series = [(d, v) for d, v in points if v is not None and math.isfinite(v)]
    result: list[tuple[date, float]] = []
    for i, (current, _) in enumerate(series):
        cutoff = current - timedelta(days=window_days)
        window: list[float] = []
        for j in range(i, -1, -1):
            day, value = series[j]
            if day < cutoff:
                break
            window.append(value)
        result.append((current, round_value(sum(window) / len(window), decimals)))
    return result


def metric_points(records: Iterable[UnifiedDailyRecord], metric: str) -> list[tuple[date, float]]:
    """``(date, value)`` pairs for the days where *metric* is present."""
    name = get_metric(metric).name
    points = []
    for record in records:
        sourced = getattr(record, name)
        if sourced is not None:
            points.append((record.day, sourced.value))
    return points


def dominant_source(records: Sequence[UnifiedDailyRecord], metric: str) -> str | None:
    """Source of the most recent record carrying *metric*, or None."""
    name = get_metric(metric).name
    for record in sorted(records, key=lambda r: r.day, reverse=True):
        sourced = getattr(record, name)
        if sourced is not None:
            return sourced.source
    return None


def records_since(
    records: Iterable[UnifiedDailyRecord],
    days: int,
    as_of: date | None = None,
) -> list[UnifiedDailyRecord]:
    """Records in the trailing *days*-day window ending at *as_of* (inclusive).

    *as_of* defaults to the latest record's date so a stale artifact still
    produces a meaningful window.
    """
    if days < 1:
        raise ValueError(f"days must be at least 1, got {days}")
    records = list(records)
    if not records:
        return []
    end = as_of or max(r.day for r in records)
    start = end - timedelta(days=days - 1)
    return [r for r in records if start <= r.day <= end]


# ---------------------------------------------------------------------------
# Period summary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MetricSummary:
    """Descriptive statistics for one metric over a trailing window."""

    metric: str
    days: int
    start: date | None
    end: date | None
    count: int
    average: float | None
    minimum: float | None
    maximum: float | None
    median: float | None
    latest: float | None
    dominant_source: str | None

    def to_dict(self) -> dict:
        return {
            "metric": self.metric,
            "days": self.days,
            "start": self.start.isoformat() if self.start else None,
            "end": self.end.isoformat() if self.end else None,
            "count": self.count,
            "average": self.average,
            "min": self.minimum,
            "max": self.maximum,
            "median": self.median,
            "latest": self.latest,
            "dominantSource": self.dominant_source,
        }


def summarize_metric(
    records: Sequence[UnifiedDailyRecord],
    metric: str,
    days: int = 90,
    as_of: date | None = None,
) -> MetricSummary:
    """Summarize *metric* over the trailing *days* window.

    Raises:
        KeyError: If *metric* is not a unified metric.
    """
    spec = get_metric(metric)
    window = records_since(records, days, as_of)
    points = metric_points(window, spec.name)
    values = [v for _, v in points]

    end = as_of or (max(r.day for r in records) if records else None)
    start = end - timedelta(days=days - 1) if end else None
    decimals = max(spec.decimals, 1)

    summary = MetricSummary(
        metric=spec.name,
        days=days,
        start=start,
        end=end,
        count=len(values),
        average=average(values, decimals),
        minimum=min(values) if values else None,
        maximum=max(values) if values else None,
        median=round_value(median(values), decimals),
        latest=points[-1][1] if points else None,
        dominant_source=dominant_source(window, spec.name),
    )
    logger.debug("summarize_metric %s over %d days: %d values", spec.name, days, summary.count)
    return summary
