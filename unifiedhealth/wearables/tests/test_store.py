"""Tests for the unified artifact store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from unifiedhealth.wearables.base import Sourced, UnifiedDailyRecord
from unifiedhealth.wearables.store import UnifiedStore, UnifiedStoreError
from unifiedhealth.wearables.tests.conftest import DAY_1, DAY_2


def _records() -> list[UnifiedDailyRecord]:
    first = UnifiedDailyRecord(day=DAY_1)
    first.steps = Sourced(8000, "apple_health")
    first.resting_heart_rate = Sourced(52.0, "oura")
    second = UnifiedDailyRecord(day=DAY_2)
    second.temperature_deviation = Sourced(-0.12, "oura")
    return [first, second]


@pytest.fixture
def store(tmp_path: Path) -> UnifiedStore:
    return UnifiedStore(tmp_path / "unified" / "daily.json")


class TestUnifiedStoreWrite:
    def test_creates_parent_directory(self, store: UnifiedStore) -> None:
        path = store.write(_records())
        assert path == store.path
        assert store.exists()

    def test_envelope_and_indent(self, store: UnifiedStore) -> None:
        store.write(_records())
        text = store.path.read_text(encoding="utf-8")
        assert text.startswith('{\n  "data": [\n')
        assert text.endswith("}\n")
        payload = json.loads(text)
        assert payload["data"][0]["date"] == "2024-03-01"
        assert payload["data"][0]["steps"] == {"value": 8000, "source": "apple_health"}
        # absent metrics are written as null, never omitted
        assert payload["data"][0]["hrv"] is None
        assert len(payload["data"][0]) == 22

    def test_output_is_byte_identical_across_writes(self, store: UnifiedStore) -> None:
        store.write(_records())
        first = store.path.read_bytes()
        store.write(_records())
        assert store.path.read_bytes() == first

    def test_no_temp_files_left_behind(self, store: UnifiedStore) -> None:
        store.write(_records())
        assert [p.name for p in store.path.parent.iterdir()] == ["daily.json"]

    def test_empty_dataset(self, store: UnifiedStore) -> None:
        store.write([])
        assert json.loads(store.path.read_text(encoding="utf-8")) == {"data": []}


class TestUnifiedStoreRead:
    def test_round_trip(self, store: UnifiedStore) -> None:
        records = _records()
        store.write(records)
        assert store.read() == records

    def test_missing_artifact_reads_empty(self, store: UnifiedStore) -> None:
        assert not store.exists()
        assert store.read() == []

    def test_invalid_json(self, store: UnifiedStore) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{", encoding="utf-8")
        with pytest.raises(UnifiedStoreError, match="not valid JSON"):
            store.read()

    def test_missing_data_list(self, store: UnifiedStore) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text('{"records": []}', encoding="utf-8")
        with pytest.raises(UnifiedStoreError, match="no 'data' list"):
            store.read()

    def test_malformed_metric_entry(self, store: UnifiedStore) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text(json.dumps({"data": [{"date": "2024-03-01", "steps": 8000}]}), encoding="utf-8")
        with pytest.raises(UnifiedStoreError, match=r"data\[0\]"):
            store.read()

    def test_unknown_keys_ignored(self, store: UnifiedStore) -> None:
        store.path.parent.mkdir(parents=True)
        entry = {"date": "2024-03-01", "stress": {"value": 3, "source": "oura"}}
        store.path.write_text(json.dumps({"data": [entry]}), encoding="utf-8")
        assert store.read() == [UnifiedDailyRecord(day=DAY_1)]
