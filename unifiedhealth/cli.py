"""
Command-line interface for the unified health dataset.

Provides subcommands for rebuilding the unified artifact, summarizing a
metric over a trailing window, and inspecting source usage and priorities.
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from unifiedhealth.config import Settings, get_settings
from unifiedhealth.wearables.aggregation import summarize_metric
from unifiedhealth.wearables.base import SourceLoadError, get_metric
from unifiedhealth.wearables.pipeline import build_unified_dataset, resolve_priority_table
from unifiedhealth.wearables.priority import PriorityConfigError
from unifiedhealth.wearables.reconciliation_engine import SourceUsageReport
from unifiedhealth.wearables.store import UnifiedStore, UnifiedStoreError

logger = logging.getLogger("unifiedhealth.cli")


def _settings_from_args(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    overrides = {}
    if args.data_dir:
        overrides["data_dir"] = Path(args.data_dir)
    if args.output:
        overrides["unified_output"] = Path(args.output)
    if args.priority_config:
        overrides["priority_config_path"] = Path(args.priority_config)
    return settings.model_copy(update=overrides) if overrides else settings


def cmd_build(args: argparse.Namespace) -> int:
    """Rebuild the unified artifact from every source export."""
    settings = _settings_from_args(args)
    try:
        result = build_unified_dataset(settings)
    except (SourceLoadError, PriorityConfigError, FileNotFoundError) as e:
        logger.error("Build aborted: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Saved {len(result.records)} unified daily records to {settings.unified_path}")
    if result.date_range:
        first, last = result.date_range
        print(f"Date range: {first.isoformat()} to {last.isoformat()}")
    print()
    print("=== Source Usage Report ===")
    for line in result.source_usage.format_lines():
        print(f"  {line}")
    return 0


def cmd_summary(args: argparse.Namespace) -> int:
    """Summarize one metric over a trailing window."""
    settings = _settings_from_args(args)
    try:
        spec = get_metric(args.metric)
    except KeyError as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        return 1
    if args.days < 1:
        print(f"Error: --days must be at least 1, got {args.days}", file=sys.stderr)
        return 1

    try:
        records = UnifiedStore(settings.unified_path).read()
    except UnifiedStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    summary = summarize_metric(records, spec.name, days=args.days, as_of=args.as_of)

    print(f"{spec.wire_key} ({spec.unit}), last {summary.days} days")
    if summary.count == 0:
        print("  no data")
        return 0
    print(f"  window:  {summary.start} to {summary.end}")
    print(f"  days:    {summary.count}")
    print(f"  average: {summary.average}")
    print(f"  min:     {summary.minimum}")
    print(f"  max:     {summary.maximum}")
    print(f"  median:  {summary.median}")
    print(f"  latest:  {summary.latest} ({summary.dominant_source})")
    return 0


def cmd_sources(args: argparse.Namespace) -> int:
    """Show which source supplied each metric in the stored artifact."""
    settings = _settings_from_args(args)
    try:
        records = UnifiedStore(settings.unified_path).read()
    except UnifiedStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not records:
        print(f"No unified records at {settings.unified_path}; run 'build' first")
        return 0

    print(f"=== Source Usage ({len(records)} days) ===")
    for line in SourceUsageReport.from_records(records).format_lines():
        print(f"  {line}")
    return 0


def cmd_priorities(args: argparse.Namespace) -> int:
    """Print the source priority table."""
    settings = _settings_from_args(args)
    try:
        table = resolve_priority_table(settings)
    except (PriorityConfigError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Source priority table v{table.version}")
    for entry in table.to_list():
        order = " > ".join([entry["primary"], *entry["fallback"]])
        print(f"  {get_metric(entry['metric']).wire_key}: {order}")
        if args.verbose and entry["reason"]:
            print(f"      {entry['reason']}")
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="unifiedhealth",
        description="Unified Health - multi-source daily reconciliation"
    )

    # Global options
    parser.add_argument("--data-dir", help="Root of the source exports (default: settings.data_dir)")
    parser.add_argument("--output", help="Path of the unified daily.json artifact")
    parser.add_argument("--priority-config", help="Override source_priority.yaml")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # build command
    build_parser = subparsers.add_parser("build", help="Rebuild the unified daily artifact")
    build_parser.set_defaults(func=cmd_build)

    # summary command
    summary_parser = subparsers.add_parser("summary", help="Summarize a metric over a trailing window")
    summary_parser.add_argument("--metric", required=True, help="Metric name or wire key (e.g. restingHeartRate)")
    summary_parser.add_argument("--days", type=int, default=90, help="Window length in days")
    summary_parser.add_argument("--as-of", type=date.fromisoformat, help="Window end date, YYYY-MM-DD (default: latest record)")
    summary_parser.set_defaults(func=cmd_summary)

    # sources command
    sources_parser = subparsers.add_parser("sources", help="Show per-metric source usage of the artifact")
    sources_parser.set_defaults(func=cmd_sources)

    # priorities command
    priorities_parser = subparsers.add_parser("priorities", help="Print the source priority table")
    priorities_parser.set_defaults(func=cmd_priorities)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else get_settings().log_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
