"""Tests for the Apple Health adapter — streaming XML export normalization."""

from __future__ import annotations

import io
from datetime import date
from pathlib import Path
from xml.etree import ElementTree as ET

import pytest

from unifiedhealth.wearables.adapters.apple_health import AppleHealthAdapter, AppleHealthDay
from unifiedhealth.wearables.base import SourceLoadError
from unifiedhealth.wearables.tests.conftest import DAY_1, DAY_2, DAY_3


def _record(rec_type: str, value: str, start: str, unit: str = "", end: str | None = None) -> dict:
    rec = {
        "type": f"HKQuantityTypeIdentifier{rec_type}",
        "value": value,
        "unit": unit,
        "startDate": start,
        "endDate": end or start,
    }
    return rec


def _sleep(stage: str, start: str, end: str) -> dict:
    return {
        "type": "HKCategoryTypeIdentifierSleepAnalysis",
        "value": f"HKCategoryValueSleepAnalysis{stage}",
        "startDate": start,
        "endDate": end,
    }


# ---------------------------------------------------------------------------
# Fixture export
# ---------------------------------------------------------------------------


class TestAppleHealthExport:
    def test_days_loaded(self, apple_days: dict[date, AppleHealthDay]) -> None:
        assert list(apple_days) == [DAY_1, DAY_2, DAY_3]
        assert all(isinstance(d, AppleHealthDay) for d in apple_days.values())

    def test_additive_totals(self, apple_days: dict[date, AppleHealthDay]) -> None:
        day = apple_days[DAY_1]
        assert day.steps == 8000
        assert day.active_calories == 300
        assert day.distance_m == 5000
        assert day.exercise_minutes == 35

    def test_sample_averages(self, apple_days: dict[date, AppleHealthDay]) -> None:
        day = apple_days[DAY_1]
        assert day.avg_heart_rate == 80.3
        assert day.hrv == 45.0
        assert day.oxygen_saturation == 96.0

    def test_resting_hr_estimated_from_lowest_samples(self, apple_days: dict[date, AppleHealthDay]) -> None:
        # 12 samples, lowest ceil(1.2) = 2 are 60 and 62
        assert apple_days[DAY_1].resting_heart_rate == 61.0

    def test_recorded_resting_hr_preferred(self, apple_days: dict[date, AppleHealthDay]) -> None:
        assert apple_days[DAY_2].resting_heart_rate == 56.5

    def test_non_numeric_value_dropped(self, apple_days: dict[date, AppleHealthDay]) -> None:
        assert apple_days[DAY_2].steps == 10000

    def test_night_attribution(self, apple_days: dict[date, AppleHealthDay]) -> None:
        night = apple_days[DAY_1]
        assert night.sleep_core_minutes == 120
        assert night.sleep_deep_minutes == 60
        assert night.sleep_rem_minutes == 60
        assert night.sleep_awake_minutes == 15
        assert night.sleep_in_bed_minutes == 480
        assert night.sleep_minutes == 240
        assert apple_days[DAY_2].sleep_minutes is None

    def test_zero_steps_kept_for_engine_to_reject(self, apple_days: dict[date, AppleHealthDay]) -> None:
        assert apple_days[DAY_3].steps == 0
        assert apple_days[DAY_3].value_for("steps") == 0

    def test_value_for_maps_unified_metrics(self, apple_days: dict[date, AppleHealthDay]) -> None:
        day = apple_days[DAY_1]
        assert day.value_for("sleep_light_minutes") == 120
        assert day.value_for("sleep_duration_minutes") == 240
        assert day.value_for("sleep_score") is None

    def test_missing_file(self, apple_adapter: AppleHealthAdapter, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            apple_adapter.load(tmp_path / "export.xml")

    def test_malformed_xml_is_fatal(self, apple_adapter: AppleHealthAdapter, tmp_path: Path) -> None:
        path = tmp_path / "export.xml"
        path.write_text('<HealthData><Record type="x" value="1"></HealthData>', encoding="utf-8")
        with pytest.raises(SourceLoadError, match="apple_health"):
            apple_adapter.load(path)


# ---------------------------------------------------------------------------
# Record normalization
# ---------------------------------------------------------------------------


class TestAppleHealthNormalization:
    def test_sleep_at_0130_counts_for_previous_night(self, apple_adapter: AppleHealthAdapter) -> None:
        days = apple_adapter.normalize_records(
            [_sleep("AsleepDeep", "2024-03-02 01:30:00 -0800", "2024-03-02 02:30:00 -0800")]
        )
        assert list(days) == [date(2024, 3, 1)]
        assert days[date(2024, 3, 1)].sleep_deep_minutes == 60

    def test_unspecified_sleep_used_without_stages(self, apple_adapter: AppleHealthAdapter) -> None:
        days = apple_adapter.normalize_records(
            [_sleep("AsleepUnspecified", "2024-03-01 23:00:00 -0800", "2024-03-02 06:00:00 -0800")]
        )
        assert days[date(2024, 3, 1)].sleep_minutes == 420

    def test_overlong_sleep_interval_dropped(self, apple_adapter: AppleHealthAdapter) -> None:
        days = apple_adapter.normalize_records(
            [_sleep("InBed", "2024-03-01 22:00:00 -0800", "2024-03-02 22:00:00 -0800")]
        )
        assert days == {}

    def test_distance_units_converted(self, apple_adapter: AppleHealthAdapter) -> None:
        days = apple_adapter.normalize_records([
            _record("DistanceWalkingRunning", "1", "2024-03-01 10:00:00 -0800", unit="mi"),
            _record("DistanceWalkingRunning", "500", "2024-03-01 11:00:00 -0800", unit="m"),
        ])
        assert days[date(2024, 3, 1)].distance_m == 2109

    def test_energy_kj_converted(self, apple_adapter: AppleHealthAdapter) -> None:
        days = apple_adapter.normalize_records(
            [_record("ActiveEnergyBurned", "418.4", "2024-03-01 10:00:00 -0800", unit="kJ")]
        )
        assert days[date(2024, 3, 1)].active_calories == 100

    def test_spo2_percent_left_alone(self, apple_adapter: AppleHealthAdapter) -> None:
        days = apple_adapter.normalize_records(
            [_record("OxygenSaturation", "97", "2024-03-01 02:00:00 -0800", unit="%")]
        )
        assert days[date(2024, 3, 1)].oxygen_saturation == 97.0

    def test_negative_additive_dropped(self, apple_adapter: AppleHealthAdapter) -> None:
        days = apple_adapter.normalize_records([
            _record("StepCount", "-50", "2024-03-01 10:00:00 -0800", unit="count"),
            _record("StepCount", "1200", "2024-03-01 11:00:00 -0800", unit="count"),
        ])
        assert days[date(2024, 3, 1)].steps == 1200

    def test_too_few_samples_no_resting_estimate(self, apple_adapter: AppleHealthAdapter) -> None:
        records = [
            _record("HeartRate", str(60 + i), f"2024-03-01 {10 + i:02d}:00:00 -0800", unit="count/min")
            for i in range(9)
        ]
        days = apple_adapter.normalize_records(records)
        assert days[date(2024, 3, 1)].resting_heart_rate is None
        assert days[date(2024, 3, 1)].avg_heart_rate == 64.0

    def test_configurable_resting_threshold(self) -> None:
        adapter = AppleHealthAdapter(resting_hr_min_samples=3, resting_hr_lowest_fraction=0.5)
        assert adapter.estimate_resting_hr([80.0, 60.0, 70.0, 90.0]) == 65.0

    def test_untracked_types_ignored(self, apple_adapter: AppleHealthAdapter) -> None:
        days = apple_adapter.normalize_records(
            [_record("BodyMass", "64.2", "2024-03-01 07:00:00 -0800", unit="kg")]
        )
        assert days == {}

    def test_bad_timestamp_is_fatal(self, apple_adapter: AppleHealthAdapter) -> None:
        with pytest.raises(SourceLoadError, match="timestamp"):
            apple_adapter.normalize_records([_record("StepCount", "10", "yesterday", unit="count")])

    def test_missing_metric_is_none_not_zero(self, apple_adapter: AppleHealthAdapter) -> None:
        days = apple_adapter.normalize_records(
            [_record("StepCount", "10", "2024-03-01 10:00:00 -0800", unit="count")]
        )
        day = days[date(2024, 3, 1)]
        assert day.hrv is None
        assert day.active_calories is None
        assert day.supplied_metrics() == ["steps"]


class TestAppleHealthStreaming:
    def test_records_streamed_in_document_order(self, apple_adapter: AppleHealthAdapter) -> None:
        xml = (
            b'<HealthData locale="en_US">'
            b'<Record type="HKQuantityTypeIdentifierStepCount" value="1" startDate="2024-03-01 08:00:00 -0800"/>'
            b'<Workout workoutActivityType="HKWorkoutActivityTypeRunning"><WorkoutEvent type="pause"/></Workout>'
            b'<Correlation type="HKCorrelationTypeIdentifierBloodPressure">'
            b'<Record type="HKQuantityTypeIdentifierBloodPressureSystolic" value="118" startDate="2024-03-01 09:00:00 -0800"/>'
            b'</Correlation>'
            b'<Record type="HKQuantityTypeIdentifierStepCount" value="2" startDate="2024-03-01 10:00:00 -0800"/>'
            b'</HealthData>'
        )
        values = [rec["value"] for rec in apple_adapter.iter_records(io.BytesIO(xml))]
        assert values == ["1", "118", "2"]

    def test_consumed_records_released_from_root(
        self, apple_adapter: AppleHealthAdapter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        roots = []
        real_iterparse = ET.iterparse

        def _tracking_iterparse(source, events=None):
            for event, elem in real_iterparse(source, events=events):
                if not roots:
                    roots.append(elem)
                yield event, elem

        monkeypatch.setattr(ET, "iterparse", _tracking_iterparse)
        rows = b"".join(
            b'<Record type="HKQuantityTypeIdentifierStepCount" value="%d" startDate="2024-03-01 08:00:00 -0800"/>' % i
            for i in range(50)
        )
        seen = [rec["value"] for rec in apple_adapter.iter_records(io.BytesIO(b"<HealthData>" + rows + b"</HealthData>"))]
        assert len(seen) == 50
        assert roots[0].tag == "HealthData"
        assert len(roots[0]) == 0
