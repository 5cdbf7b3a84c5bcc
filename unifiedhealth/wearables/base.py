"""Base classes and canonical data models for the unified health dataset.

Every source adapter must subclass SourceAdapter and return a date-keyed map
of its own SourceDailyRecord subclass.  The reconciliation engine only ever
sees those records plus the metric catalogue defined here, so adding a new
provider never touches the merge algorithm.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Callable, ClassVar

logger = logging.getLogger("unifiedhealth.wearables")


# ---------------------------------------------------------------------------
# Source identifiers
# ---------------------------------------------------------------------------

APPLE_HEALTH = "apple_health"
OURA = "oura"
STRAVA = "strava"

KNOWN_SOURCES: tuple[str, ...] = (APPLE_HEALTH, OURA, STRAVA)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SourceLoadError(ValueError):
    """Raised when a provider export is corrupt or structurally invalid.

    Always fatal for that source's load step.  Reconciliation must not run on
    a partially-loaded source because a corrupt file would otherwise look
    like legitimate absence.
    """

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"[{source}] {message}")
        self.source = source


# ---------------------------------------------------------------------------
# Rounding
# ---------------------------------------------------------------------------


def round_half_up(value: float, decimals: int = 0) -> float | int:
    """Round with halves going up (2.5 → 3, -2.5 → -2); zero decimals yields an int.

    Halves always move toward positive infinity, unlike the built-in
    half-to-even ``round()``.  Negative zero comes back as 0.
    """
    exact = Decimal(repr(float(value)))
    rounding = ROUND_HALF_UP if exact >= 0 else ROUND_HALF_DOWN
    quantum = Decimal(1).scaleb(-max(decimals, 0))
    rounded = exact.quantize(quantum, rounding=rounding)
    if decimals <= 0:
        return int(rounded)
    return float(rounded) + 0.0


# ---------------------------------------------------------------------------
# Metric catalogue
# ---------------------------------------------------------------------------


def _positive(value: float) -> bool:
    return value > 0


def _non_negative(value: float) -> bool:
    return value >= 0


def _any_finite(value: float) -> bool:
    return True


@dataclass(frozen=True)
class MetricSpec:
    """Static description of one unified metric.

    Attributes:
        name:      Python attribute name on UnifiedDailyRecord.
        wire_key:  Key used in the persisted daily.json artifact.
        unit:      Canonical unit every adapter converts into.
        decimals:  Output precision applied when a value is selected.
        validity:  Predicate a finite reading must pass to count as present.
                   ``_positive`` encodes the "0 means not worn" sentinel.
    """

    name: str
    wire_key: str
    unit: str
    decimals: int
    validity: Callable[[float], bool] = _positive

    def is_valid(self, value: object) -> bool:
        """True if *value* is a usable reading for this metric."""
        if value is None or isinstance(value, bool):
            return False
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False
        if not math.isfinite(number):
            return False
        return self.validity(number)


UNIFIED_METRICS: tuple[MetricSpec, ...] = (
    # Activity
    MetricSpec("steps", "steps", "count", 0),
    MetricSpec("active_calories", "activeCalories", "kcal", 0),
    MetricSpec("distance_meters", "distanceMeters", "m", 0),
    MetricSpec("exercise_minutes", "exerciseMinutes", "min", 0),
    # Heart
    MetricSpec("resting_heart_rate", "restingHeartRate", "bpm", 1),
    MetricSpec("avg_heart_rate", "avgHeartRate", "bpm", 1),
    MetricSpec("hrv", "hrv", "ms", 1),
    # Sleep
    MetricSpec("sleep_duration_minutes", "sleepDurationMinutes", "min", 0),
    MetricSpec("sleep_score", "sleepScore", "score", 0, _non_negative),
    MetricSpec("sleep_deep_minutes", "sleepDeepMinutes", "min", 0),
    MetricSpec("sleep_rem_minutes", "sleepREMMinutes", "min", 0),
    MetricSpec("sleep_light_minutes", "sleepLightMinutes", "min", 0),
    MetricSpec("sleep_awake_minutes", "sleepAwakeMinutes", "min", 0),
    MetricSpec("sleep_efficiency", "sleepEfficiency", "pct", 0),
    # Respiratory & blood
    MetricSpec("respiratory_rate", "respiratoryRate", "brpm", 1),
    MetricSpec("oxygen_saturation", "oxygenSaturation", "pct", 1),
    MetricSpec("breathing_disturbance_index", "breathingDisturbanceIndex", "events_per_hour", 1, _non_negative),
    # Recovery
    MetricSpec("readiness_score", "readinessScore", "score", 0, _non_negative),
    MetricSpec("temperature_deviation", "temperatureDeviation", "celsius", 2, _any_finite),
    # Fitness
    MetricSpec("vo2_max", "vo2Max", "ml_kg_min", 1),
    # Body
    MetricSpec("wrist_temperature", "wristTemperature", "celsius", 2, _any_finite),
)

METRICS_BY_NAME: dict[str, MetricSpec] = {m.name: m for m in UNIFIED_METRICS}
METRICS_BY_WIRE_KEY: dict[str, MetricSpec] = {m.wire_key: m for m in UNIFIED_METRICS}


def get_metric(key: str) -> MetricSpec:
    """Look up a metric by attribute name or wire key.

    Raises:
        KeyError: If *key* names no unified metric.
    """
    spec = METRICS_BY_NAME.get(key) or METRICS_BY_WIRE_KEY.get(key)
    if spec is None:
        raise KeyError(f"Unknown metric '{key}'")
    return spec


# ---------------------------------------------------------------------------
# Provenance-tagged value
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Sourced:
    """A present, valid reading paired with the provider that produced it.

    Never constructed for a missing reading: absence is ``None`` in place of
    the whole wrapper, so every live instance is known-good.
    """

    value: float
    source: str

    def __post_init__(self) -> None:
        if self.value is None or isinstance(self.value, (bool, str)):
            raise ValueError(f"Sourced value from {self.source!r} must be a number")
        try:
            number = float(self.value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Sourced value from {self.source!r} must be a number") from exc
        if not math.isfinite(number):
            raise ValueError(f"Sourced value from {self.source!r} must be finite, got {self.value!r}")

    @classmethod
    def of(cls, value: float | None, source: str) -> Sourced | None:
        """Wrap *value*, or return None if it is missing, NaN or infinite.

        Numeric strings are coerced to float; ints and floats are kept as given.
        """
        if value is None or isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(number):
            return None
        if not isinstance(value, (int, float)):
            value = number
        return cls(value=value, source=source)

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "source": self.source}


# ---------------------------------------------------------------------------
# Per-source daily records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceDailyRecord:
    """One provider's readings for one provider-local calendar day.

    Subclasses add explicit optional fields and declare ``METRIC_FIELDS``:
    unified metric name → attribute holding the reading in canonical units.
    Metrics absent from ``METRIC_FIELDS`` are never supplied by that source.
    """

    SOURCE_ID: ClassVar[str] = "unknown"
    METRIC_FIELDS: ClassVar[dict[str, str]] = {}

    day: date

    def value_for(self, metric: str) -> float | None:
        """Return the raw reading for a unified metric, or None."""
        attr = self.METRIC_FIELDS.get(metric)
        if attr is None:
            return None
        return getattr(self, attr, None)

    def supplied_metrics(self) -> list[str]:
        """Unified metrics with a non-None reading on this record."""
        return [m for m in self.METRIC_FIELDS if self.value_for(m) is not None]


SourceMap = dict[date, SourceDailyRecord]


# ---------------------------------------------------------------------------
# Unified record
# ---------------------------------------------------------------------------


@dataclass
class UnifiedDailyRecord:
    """Canonical per-day record; each metric is Sourced or None.

    Field order matches UNIFIED_METRICS and is the serialization order.
    """

    day: date
    steps: Sourced | None = None
    active_calories: Sourced | None = None
    distance_meters: Sourced | None = None
    exercise_minutes: Sourced | None = None
    resting_heart_rate: Sourced | None = None
    avg_heart_rate: Sourced | None = None
    hrv: Sourced | None = None
    sleep_duration_minutes: Sourced | None = None
    sleep_score: Sourced | None = None
    sleep_deep_minutes: Sourced | None = None
    sleep_rem_minutes: Sourced | None = None
    sleep_light_minutes: Sourced | None = None
    sleep_awake_minutes: Sourced | None = None
    sleep_efficiency: Sourced | None = None
    respiratory_rate: Sourced | None = None
    oxygen_saturation: Sourced | None = None
    breathing_disturbance_index: Sourced | None = None
    readiness_score: Sourced | None = None
    temperature_deviation: Sourced | None = None
    vo2_max: Sourced | None = None
    wrist_temperature: Sourced | None = None

    def get(self, metric: str) -> Sourced | None:
        """Return the Sourced value for a metric name or wire key."""
        return getattr(self, get_metric(metric).name)

    def present_metrics(self) -> list[str]:
        return [m.name for m in UNIFIED_METRICS if getattr(self, m.name) is not None]

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the artifact shape: ISO date + wire keys."""
        out: dict[str, Any] = {"date": self.day.isoformat()}
        for spec in UNIFIED_METRICS:
            sourced = getattr(self, spec.name)
            out[spec.wire_key] = sourced.to_dict() if sourced is not None else None
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UnifiedDailyRecord:
        """Parse one artifact entry.  Unknown keys are ignored, missing keys are None.

        Raises:
            ValueError: If the date or a present metric value is malformed.
        """
        raw_date = data.get("date")
        if not isinstance(raw_date, str):
            raise ValueError(f"Unified record has no ISO date: {raw_date!r}")
        record = cls(day=date.fromisoformat(raw_date))
        for spec in UNIFIED_METRICS:
            entry = data.get(spec.wire_key)
            if entry is None:
                continue
            if not isinstance(entry, dict) or "value" not in entry or "source" not in entry:
                raise ValueError(f"{raw_date}.{spec.wire_key} must be null or {{value, source}}")
            setattr(record, spec.name, Sourced(value=entry["value"], source=str(entry["source"])))
        return record


# ---------------------------------------------------------------------------
# Abstract base adapter
# ---------------------------------------------------------------------------


class SourceAdapter(ABC):
    """Abstract base class for all provider normalizers.

    Subclasses must implement ``load()``, which reads the provider's export
    from disk and returns a date-keyed map of that provider's records.  The
    pure ``normalize_*`` helpers each adapter exposes take already-parsed data
    so they can be tested without touching the filesystem.
    """

    #: Unique slug used as the Sourced.source tag (e.g. 'oura').
    SOURCE_ID: str = "unknown"

    #: Human-readable name for logging.
    DISPLAY_NAME: str = "Unknown Source"

    @abstractmethod
    def load(self, path: Path) -> dict[date, SourceDailyRecord]:
        """Read and normalize the export at *path*.

        Args:
            path: File or directory holding the provider export.

        Returns:
            Map of provider-local date → record.

        Raises:
            FileNotFoundError: If *path* does not exist.
            SourceLoadError:   If the export is malformed.
        """

    # ------------------------------------------------------------------
    # Shared helpers available to all adapters
    # ------------------------------------------------------------------

    @staticmethod
    def _safe_float(value: object) -> float | None:
        """Coerce to a finite float, returning None on failure or NaN."""
        if value is None or isinstance(value, bool):
            return None
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        return number if math.isfinite(number) else None

    @staticmethod
    def _mean(values: list[float], decimals: int = 1) -> float | None:
        """Arithmetic mean rounded to *decimals*, None for an empty list."""
        if not values:
            return None
        return round_half_up(sum(values) / len(values), decimals)

    def _fail(self, message: str) -> SourceLoadError:
        logger.error("%s load failed: %s", self.DISPLAY_NAME, message)
        return SourceLoadError(self.SOURCE_ID, message)


@dataclass
class DayAccumulator:
    """Mutable per-day bucket used while streaming events, frozen into a record afterwards."""

    sums: dict[str, float] = field(default_factory=dict)
    samples: dict[str, list[float]] = field(default_factory=dict)

    def add(self, key: str, value: float) -> None:
        self.sums[key] = self.sums.get(key, 0.0) + value

    def sample(self, key: str, value: float) -> None:
        self.samples.setdefault(key, []).append(value)
