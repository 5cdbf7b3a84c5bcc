"""Build pipeline: load every source export, reconcile, persist.

This is the only place that touches the filesystem for a build.  Loading is
all-or-nothing per run: a corrupt export aborts before reconciliation so a
broken file never masquerades as a day without data.
"""

from __future__ import annotations

import logging
from datetime import date

from unifiedhealth.config import Settings
from unifiedhealth.wearables.adapters import get_adapter
from unifiedhealth.wearables.adapters.apple_health import AppleHealthAdapter
from unifiedhealth.wearables.base import SourceAdapter, SourceDailyRecord
from unifiedhealth.wearables.priority import PriorityTable, get_priority_table, load_priority_table
from unifiedhealth.wearables.reconciliation_engine import ReconciliationResult, reconcile
from unifiedhealth.wearables.store import UnifiedStore

logger = logging.getLogger("unifiedhealth.wearables.pipeline")


def build_adapter(source_id: str, settings: Settings) -> SourceAdapter:
    """Instantiate the adapter for *source_id* with settings applied."""
    adapter_cls = get_adapter(source_id)
    if adapter_cls is AppleHealthAdapter:
        return AppleHealthAdapter(
            sleep_cutoff_hour=settings.sleep_day_cutoff_hour,
            resting_hr_min_samples=settings.resting_hr_min_samples,
            resting_hr_lowest_fraction=settings.resting_hr_lowest_fraction,
        )
    return adapter_cls()


def load_source_maps(settings: Settings) -> dict[str, dict[date, SourceDailyRecord]]:
    """Load every configured source export.

    A source whose export is missing contributes an empty map and a warning.

    Raises:
        SourceLoadError: If any export exists but is malformed.
    """
    source_maps: dict[str, dict[date, SourceDailyRecord]] = {}
    for source_id, path in settings.source_paths().items():
        adapter = build_adapter(source_id, settings)
        if not path.exists():
            logger.warning("%s export not found at %s, skipping", adapter.DISPLAY_NAME, path)
            source_maps[source_id] = {}
            continue
        source_maps[source_id] = adapter.load(path)
        logger.info("%s: %d days", adapter.DISPLAY_NAME, len(source_maps[source_id]))
    return source_maps


def resolve_priority_table(settings: Settings) -> PriorityTable:
    """The table at ``settings.priority_config_path`` if set, else the bundled one."""
    if settings.priority_config_path is not None:
        return load_priority_table(settings.priority_config_path)
    return get_priority_table()


def build_unified_dataset(
    settings: Settings,
    table: PriorityTable | None = None,
) -> ReconciliationResult:
    """Rebuild the unified artifact from scratch.

    Args:
        settings: Paths and normalization parameters.
        table:    Priority table override; defaults to the configured one.

    Returns:
        The reconciliation result that was written.

    Raises:
        SourceLoadError:     If a source export is malformed.
        PriorityConfigError: If the priority table is invalid or incomplete.
    """
    table = table or resolve_priority_table(settings)
    source_maps = load_source_maps(settings)
    result = reconcile(source_maps, table)

    UnifiedStore(settings.unified_path).write(result.records)

    logger.info("=== Source Usage Report ===")
    for line in result.source_usage.format_lines():
        logger.info("  %s", line)
    return result
