"""Tests for source_priority.yaml loading and validation."""

from __future__ import annotations

import dataclasses
import textwrap
from pathlib import Path

import pytest
import yaml

from unifiedhealth.wearables import priority as priority_module
from unifiedhealth.wearables.base import KNOWN_SOURCES, UNIFIED_METRICS
from unifiedhealth.wearables.priority import (
    PriorityConfigError,
    PriorityTable,
    _PRIORITY_PATH,
    _validate_and_build,
    get_priority_table,
    load_priority_table,
    reload_priority_table,
)


def _bundled_raw() -> dict:
    return yaml.safe_load(_PRIORITY_PATH.read_text(encoding="utf-8"))


class TestPriorityLoading:
    """Tests for loading the bundled table."""

    def test_load_default_table(self, priority_table: PriorityTable) -> None:
        assert priority_table.version == "1.0"
        assert priority_table.missing_metrics() == []

    def test_every_metric_has_one_entry(self, priority_table: PriorityTable) -> None:
        assert set(priority_table.entries) == {m.name for m in UNIFIED_METRICS}

    def test_only_known_sources(self, priority_table: PriorityTable) -> None:
        for entry in priority_table.entries.values():
            for source in entry.order:
                assert source in KNOWN_SOURCES, f"{entry.metric} ranks unknown source {source}"

    def test_oura_first_for_overnight_metrics(self, priority_table: PriorityTable) -> None:
        for metric in ("resting_heart_rate", "hrv", "sleep_duration_minutes", "respiratory_rate"):
            assert priority_table.order_for(metric)[0] == "oura"

    def test_apple_first_for_activity(self, priority_table: PriorityTable) -> None:
        assert priority_table.order_for("steps") == ["apple_health", "oura"]
        assert priority_table.order_for("distance_meters") == ["apple_health", "oura", "strava"]

    def test_lookup_by_wire_key(self, priority_table: PriorityTable) -> None:
        assert priority_table.order_for("restingHeartRate") == ["oura", "apple_health"]
        assert priority_table.entry_for("sleepREMMinutes").metric == "sleep_rem_minutes"

    def test_oura_exclusive_metrics_have_no_fallback(self, priority_table: PriorityTable) -> None:
        for metric in ("sleep_score", "readiness_score", "temperature_deviation"):
            assert priority_table.entry_for(metric).fallback == ()

    def test_unknown_metric_lookup(self, priority_table: PriorityTable) -> None:
        assert priority_table.entry_for("body_battery") is None
        with pytest.raises(PriorityConfigError):
            priority_table.order_for("body_battery")

    def test_to_list_in_catalogue_order(self, priority_table: PriorityTable) -> None:
        metrics = [e["metric"] for e in priority_table.to_list()]
        assert metrics == [m.name for m in UNIFIED_METRICS]

    def test_table_holds_only_entries_and_version(self, priority_table: PriorityTable) -> None:
        assert [f.name for f in dataclasses.fields(priority_table)] == ["entries", "version"]


class TestPriorityValidation:
    """Validation failures are collected and reported together."""

    def test_missing_metric(self) -> None:
        raw = _bundled_raw()
        raw["priorities"] = [e for e in raw["priorities"] if e["metric"] != "vo2_max"]
        with pytest.raises(PriorityConfigError, match="priorities.vo2_max: no entry"):
            _validate_and_build(raw)

    def test_unknown_source(self) -> None:
        raw = _bundled_raw()
        raw["priorities"][0]["fallback"] = ["garmin"]
        with pytest.raises(PriorityConfigError, match="unknown source"):
            _validate_and_build(raw)

    def test_unknown_metric(self) -> None:
        raw = _bundled_raw()
        raw["priorities"].append({"metric": "stress", "primary": "oura", "fallback": []})
        with pytest.raises(PriorityConfigError, match="unknown metric 'stress'"):
            _validate_and_build(raw)

    def test_duplicate_entry(self) -> None:
        raw = _bundled_raw()
        raw["priorities"].append(dict(raw["priorities"][0]))
        with pytest.raises(PriorityConfigError, match="duplicate entry"):
            _validate_and_build(raw)

    def test_repeated_source_in_order(self) -> None:
        raw = _bundled_raw()
        raw["priorities"][0]["fallback"] = ["apple_health"]
        with pytest.raises(PriorityConfigError, match="more than once"):
            _validate_and_build(raw)

    def test_errors_are_collected(self) -> None:
        raw = _bundled_raw()
        raw["priorities"][0]["primary"] = "fitbit"
        raw["priorities"][1]["fallback"] = "oura"
        with pytest.raises(PriorityConfigError, match="4 validation error"):
            # two bad entries, each of which also leaves its metric uncovered
            _validate_and_build(raw)

    def test_empty_priorities(self) -> None:
        with pytest.raises(PriorityConfigError, match="missing or empty"):
            _validate_and_build({"version": "1.0"})

    def test_wire_keys_accepted(self) -> None:
        raw = _bundled_raw()
        raw["priorities"][0]["metric"] = "steps"
        raw["priorities"][1]["metric"] = "activeCalories"
        table = _validate_and_build(raw)
        assert "active_calories" in table.entries


class TestPriorityFiles:
    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_priority_table(tmp_path / "nope.yaml")

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("priorities: [unclosed\n", encoding="utf-8")
        with pytest.raises(PriorityConfigError, match="YAML parse error"):
            load_priority_table(path)

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(PriorityConfigError, match="mapping"):
            load_priority_table(path)


class TestPriorityReload:
    def test_singleton_is_cached(self) -> None:
        assert get_priority_table() is get_priority_table()

    def test_reload_replaces_singleton(self, tmp_path: Path) -> None:
        raw = _bundled_raw()
        raw["version"] = "2.0"
        path = tmp_path / "source_priority.yaml"
        path.write_text(yaml.safe_dump(raw), encoding="utf-8")
        try:
            reloaded = reload_priority_table(path)
            assert reloaded.version == "2.0"
            assert get_priority_table() is reloaded
        finally:
            reload_priority_table()

    def test_failed_reload_keeps_old_table(self, tmp_path: Path) -> None:
        current = get_priority_table()
        path = tmp_path / "broken.yaml"
        path.write_text(
            textwrap.dedent(
                """
                version: "9.9"
                priorities:
                  - metric: steps
                    primary: apple_health
                """
            ),
            encoding="utf-8",
        )
        with pytest.raises(PriorityConfigError):
            reload_priority_table(path)
        assert priority_module._table is current
