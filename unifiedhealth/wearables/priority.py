"""Load, validate, and hot-reload the per-metric source priority table.

The table lives in ``source_priority.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_priority_table()`` to re-read from
disk after an edit — no restart required.

Usage::

    from unifiedhealth.wearables.priority import get_priority_table

    table = get_priority_table()
    table.order_for("hrv")            # ['oura', 'apple_health']
    table.entry_for("steps").reason   # 'Apple Watch captures all-day motion; ...'
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import yaml

from unifiedhealth.wearables.base import KNOWN_SOURCES, UNIFIED_METRICS, get_metric

logger = logging.getLogger("unifiedhealth.wearables.priority")

# Path to the YAML file sitting next to this module
_PRIORITY_PATH = Path(__file__).parent / "source_priority.yaml"


class PriorityConfigError(ValueError):
    """Raised when the priority table is malformed or does not cover every metric."""


# ---------------------------------------------------------------------------
# Typed table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourcePriority:
    """Ranking of sources for one unified metric.

    Attributes:
        metric:    Unified metric attribute name (e.g. 'resting_heart_rate').
        primary:   Source consulted first.
        fallback:  Sources consulted in order when the primary has no valid reading.
        reason:    Human-readable justification, shown by the CLI and API.
    """

    metric: str
    primary: str
    fallback: tuple[str, ...] = ()
    reason: str = ""

    @property
    def order(self) -> list[str]:
        """Full lookup order: primary first, then fallbacks."""
        return [self.primary, *self.fallback]

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "primary": self.primary,
            "fallback": list(self.fallback),
            "reason": self.reason,
        }


@dataclass
class PriorityTable:
    """Complete, validated source priority table.

    This is the single in-memory representation of source_priority.yaml.
    Entries are keyed by metric attribute name; lookups also accept wire keys.
    """

    entries: dict[str, SourcePriority]
    version: str = "1.0"

    @classmethod
    def from_entries(cls, entries: Iterable[SourcePriority], version: str = "1.0") -> PriorityTable:
        """Build a table directly from entries, without completeness checks."""
        return cls(entries={e.metric: e for e in entries}, version=version)

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------

    def entry_for(self, metric: str) -> SourcePriority | None:
        """Return the entry for a metric name or wire key, or None if absent."""
        try:
            name = get_metric(metric).name
        except KeyError:
            return None
        return self.entries.get(name)

    def order_for(self, metric: str) -> list[str]:
        """Return ``[primary, *fallback]`` for a metric.

        Raises:
            PriorityConfigError: If the table has no entry for *metric*.
        """
        entry = self.entry_for(metric)
        if entry is None:
            raise PriorityConfigError(f"No source priority configured for metric '{metric}'")
        return entry.order

    def missing_metrics(self) -> list[str]:
        """Unified metrics the table has no entry for, in catalogue order."""
        return [m.name for m in UNIFIED_METRICS if m.name not in self.entries]

    def check_complete(self) -> None:
        """Raise PriorityConfigError unless every unified metric has an entry."""
        missing = self.missing_metrics()
        if missing:
            raise PriorityConfigError(
                f"Source priority table is missing {len(missing)} metric(s): {', '.join(missing)}"
            )

    def to_list(self) -> list[dict[str, Any]]:
        """Entries in catalogue order, as plain dicts."""
        return [self.entries[m.name].to_dict() for m in UNIFIED_METRICS if m.name in self.entries]


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError:   If the file does not exist.
        PriorityConfigError: If the YAML is malformed or not a mapping.
    """
    if not path.exists():
        raise FileNotFoundError(f"Source priority config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise PriorityConfigError(f"YAML parse error in {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise PriorityConfigError(f"{path} must contain a mapping at the top level")
    return raw


def _validate_and_build(raw: dict) -> PriorityTable:
    """Validate the raw YAML dict and construct a PriorityTable.

    Collects every problem before failing so one edit can fix them all.

    Raises:
        PriorityConfigError: If any entry is invalid or a metric is uncovered.
    """
    errors: list[str] = []
    version = str(raw.get("version", "1.0"))

    entries_raw = raw.get("priorities")
    if not isinstance(entries_raw, list) or not entries_raw:
        errors.append("'priorities' section is missing or empty")
        entries_raw = []

    entries: dict[str, SourcePriority] = {}
    for index, item in enumerate(entries_raw):
        where = f"priorities[{index}]"
        if not isinstance(item, dict):
            errors.append(f"{where} must be a mapping")
            continue

        metric_key = item.get("metric")
        try:
            metric = get_metric(str(metric_key)).name
        except KeyError:
            errors.append(f"{where}.metric: unknown metric {metric_key!r}")
            continue
        where = f"priorities.{metric}"

        if metric in entries:
            errors.append(f"{where}: duplicate entry")
            continue

        primary = item.get("primary")
        fallback_raw = item.get("fallback") or []
        if not isinstance(fallback_raw, list):
            errors.append(f"{where}.fallback must be a list, got {fallback_raw!r}")
            continue
        order = [primary, *fallback_raw]

        bad = [s for s in order if s not in KNOWN_SOURCES]
        if bad:
            errors.append(
                f"{where}: unknown source(s) {bad!r} (known: {', '.join(KNOWN_SOURCES)})"
            )
            continue
        if len(set(order)) != len(order):
            errors.append(f"{where}: a source appears more than once in {order!r}")
            continue

        entries[metric] = SourcePriority(
            metric=metric,
            primary=primary,
            fallback=tuple(fallback_raw),
            reason=str(item.get("reason") or ""),
        )

    table = PriorityTable(entries=entries, version=version)
    if entries_raw:
        for name in table.missing_metrics():
            errors.append(f"priorities.{name}: no entry for this metric")

    if errors:
        raise PriorityConfigError(
            f"source_priority.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return table


def load_priority_table(path: Path | None = None) -> PriorityTable:
    """Load and validate the priority table from disk.

    Args:
        path: Override path to YAML. Uses the bundled source_priority.yaml by default.

    Returns:
        Validated PriorityTable instance.
    """
    target = path or _PRIORITY_PATH
    raw = _load_yaml(target)
    table = _validate_and_build(raw)
    logger.info("Loaded source priority table v%s from %s", table.version, target)
    return table


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_table: PriorityTable | None = None
_table_lock = threading.Lock()


def get_priority_table() -> PriorityTable:
    """Return the global PriorityTable singleton, loading it on first call.

    Thread-safe.  Use ``reload_priority_table()`` to refresh after YAML changes.
    """
    global _table
    if _table is None:
        with _table_lock:
            if _table is None:  # double-checked locking
                _table = load_priority_table()
    return _table


def reload_priority_table(path: Path | None = None) -> PriorityTable:
    """Reload the table from disk and replace the global singleton.

    If validation fails, the old table is retained and the error is re-raised.

    Raises:
        PriorityConfigError: If the new table is invalid.
        FileNotFoundError:   If the file is missing.
    """
    global _table
    new_table = load_priority_table(path)  # validate before acquiring lock
    with _table_lock:
        old_version = _table.version if _table else "none"
        _table = new_table
    logger.info("Reloaded source priority table: %s → %s", old_version, new_table.version)
    return new_table
