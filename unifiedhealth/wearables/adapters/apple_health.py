"""Apple HealthKit adapter.

Apple does not provide a server-side API — data is exported from the phone
(Health → Export All Health Data) and the resulting ``export.xml`` is read
from disk.  The export is a flat stream of ``<Record>`` events, one per
sample, so everything here is per-event aggregation:

- additive quantities (steps, energy, distance, exercise time) are summed
  per calendar day;
- point samples (heart rate, HRV, SpO2, …) are averaged per calendar day;
- sleep stage intervals are attributed to a night, not a calendar day.

The calendar day is the wall-clock date printed in ``startDate``; the UTC
offset is only used to validate the timestamp.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import IO, ClassVar, Iterable, Iterator, Mapping
from xml.etree import ElementTree as ET

from unifiedhealth.wearables.base import (
    APPLE_HEALTH,
    DayAccumulator,
    SourceAdapter,
    SourceDailyRecord,
    round_half_up,
)
from unifiedhealth.wearables.sleep_night import interval_minutes, night_date_for

logger = logging.getLogger("unifiedhealth.wearables.apple_health")

# HKQuantityTypeIdentifier / HKCategoryTypeIdentifier constants
_HK_STEP_COUNT = "HKQuantityTypeIdentifierStepCount"
_HK_ACTIVE_ENERGY = "HKQuantityTypeIdentifierActiveEnergyBurned"
_HK_DISTANCE = "HKQuantityTypeIdentifierDistanceWalkingRunning"
_HK_EXERCISE_TIME = "HKQuantityTypeIdentifierAppleExerciseTime"
_HK_HEART_RATE = "HKQuantityTypeIdentifierHeartRate"
_HK_RESTING_HR = "HKQuantityTypeIdentifierRestingHeartRate"
_HK_HRV = "HKQuantityTypeIdentifierHeartRateVariabilitySDNN"
_HK_RESPIRATORY = "HKQuantityTypeIdentifierRespiratoryRate"
_HK_SPO2 = "HKQuantityTypeIdentifierOxygenSaturation"
_HK_VO2_MAX = "HKQuantityTypeIdentifierVO2Max"
_HK_WRIST_TEMP = "HKQuantityTypeIdentifierAppleSleepingWristTemperature"
_HK_SLEEP_ANALYSIS = "HKCategoryTypeIdentifierSleepAnalysis"

# HK type → accumulator key, summed per day
_ADDITIVE_TYPES: dict[str, str] = {
    _HK_STEP_COUNT: "steps",
    _HK_ACTIVE_ENERGY: "active_calories",
    _HK_DISTANCE: "distance_m",
    _HK_EXERCISE_TIME: "exercise_minutes",
}

# HK type → accumulator key, averaged per day
_SAMPLED_TYPES: dict[str, str] = {
    _HK_HEART_RATE: "heart_rate",
    _HK_RESTING_HR: "resting_hr",
    _HK_HRV: "hrv",
    _HK_RESPIRATORY: "respiratory_rate",
    _HK_SPO2: "spo2",
    _HK_VO2_MAX: "vo2_max",
    _HK_WRIST_TEMP: "wrist_temperature",
}

# Wrist temperature is a signed reading; every other sample must be positive
_SIGNED_SAMPLES = frozenset({"wrist_temperature"})

# Sleep stage value → accumulator key
_SLEEP_STAGE_MAP: dict[str, str] = {
    "HKCategoryValueSleepAnalysisInBed": "in_bed",
    "HKCategoryValueSleepAnalysisAsleepUnspecified": "asleep",
    "HKCategoryValueSleepAnalysisAsleep": "asleep",
    "HKCategoryValueSleepAnalysisAsleepCore": "core",
    "HKCategoryValueSleepAnalysisAsleepDeep": "deep",
    "HKCategoryValueSleepAnalysisAsleepREM": "rem",
    "HKCategoryValueSleepAnalysisAwake": "awake",
}

_DISTANCE_TO_METERS: dict[str, float] = {"m": 1.0, "km": 1000.0, "mi": 1609.344, "ft": 0.3048}
_ENERGY_TO_KCAL: dict[str, float] = {"kcal": 1.0, "Cal": 1.0, "kJ": 1 / 4.184}

_APPLE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S %z"


@dataclass(frozen=True)
class AppleHealthDay(SourceDailyRecord):
    """One calendar day of Apple Health readings, in canonical units.

    Sleep fields describe the night that *began* on ``day``.
    """

    SOURCE_ID: ClassVar[str] = APPLE_HEALTH
    METRIC_FIELDS: ClassVar[dict[str, str]] = {
        "steps": "steps",
        "active_calories": "active_calories",
        "distance_meters": "distance_m",
        "exercise_minutes": "exercise_minutes",
        "resting_heart_rate": "resting_heart_rate",
        "avg_heart_rate": "avg_heart_rate",
        "hrv": "hrv",
        "respiratory_rate": "respiratory_rate",
        "oxygen_saturation": "oxygen_saturation",
        "sleep_duration_minutes": "sleep_minutes",
        "sleep_deep_minutes": "sleep_deep_minutes",
        "sleep_rem_minutes": "sleep_rem_minutes",
        "sleep_light_minutes": "sleep_core_minutes",
        "sleep_awake_minutes": "sleep_awake_minutes",
        "vo2_max": "vo2_max",
        "wrist_temperature": "wrist_temperature",
    }

    steps: int | None = None
    active_calories: int | None = None
    distance_m: int | None = None
    exercise_minutes: int | None = None
    resting_heart_rate: float | None = None
    avg_heart_rate: float | None = None
    hrv: float | None = None
    respiratory_rate: float | None = None
    oxygen_saturation: float | None = None
    sleep_minutes: int | None = None
    sleep_in_bed_minutes: int | None = None
    sleep_core_minutes: int | None = None
    sleep_deep_minutes: int | None = None
    sleep_rem_minutes: int | None = None
    sleep_awake_minutes: int | None = None
    vo2_max: float | None = None
    wrist_temperature: float | None = None


class AppleHealthAdapter(SourceAdapter):
    """Apple Health XML export normalizer.

    Args:
        sleep_cutoff_hour:         Stage intervals starting before this hour
                                   belong to the previous night.
        resting_hr_min_samples:    Minimum heart-rate samples needed to
                                   estimate resting HR when Apple did not
                                   record one.
        resting_hr_lowest_fraction: Fraction of the lowest samples averaged
                                   for that estimate.
    """

    SOURCE_ID = APPLE_HEALTH
    DISPLAY_NAME = "Apple Health"

    def __init__(
        self,
        sleep_cutoff_hour: int = 6,
        resting_hr_min_samples: int = 10,
        resting_hr_lowest_fraction: float = 0.1,
    ) -> None:
        self._sleep_cutoff_hour = sleep_cutoff_hour
        self._resting_hr_min_samples = resting_hr_min_samples
        self._resting_hr_lowest_fraction = resting_hr_lowest_fraction

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, path: Path) -> dict[date, AppleHealthDay]:
        """Stream ``export.xml`` from disk and normalize it.

        Args:
            path: Path to Apple Health's export.xml.

        Returns:
            Map of calendar date → AppleHealthDay.
        """
        if not path.is_file():
            raise FileNotFoundError(f"Apple Health export not found: {path}")

        with path.open("rb") as fh:
            days = self.normalize_records(self.iter_records(fh))

        logger.info("Apple Health: loaded %d days from %s", len(days), path)
        return days

    def iter_records(self, fh: IO[bytes]) -> Iterator[dict[str, str]]:
        """Yield the attribute dict of every ``<Record>`` element.

        The root is cleared after each consumed record, so finished elements
        are released instead of accumulating under ``<HealthData>``.

        Raises:
            SourceLoadError: If the XML is malformed.
        """
        root: ET.Element | None = None
        try:
            for event, elem in ET.iterparse(fh, events=("start", "end")):
                if root is None:
                    root = elem
                if event != "end":
                    continue
                if elem.tag == "Record":
                    yield dict(elem.attrib)
                    root.clear()
                elif elem.tag in ("Workout", "ActivitySummary"):
                    root.clear()
        except ET.ParseError as exc:
            raise self._fail(f"Invalid Apple Health XML: {exc}") from exc

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize_records(
        self, records: Iterable[Mapping[str, str]]
    ) -> dict[date, AppleHealthDay]:
        """Aggregate raw ``<Record>`` attribute dicts into daily records.

        Records of untracked types are skipped.  A record whose value is
        missing, non-numeric, in an unknown unit, or out of domain is dropped
        rather than counted as zero.

        Raises:
            SourceLoadError: If a tracked record has an unparsable date.
        """
        buckets: dict[date, DayAccumulator] = {}
        seen = 0
        dropped = 0

        for rec in records:
            rec_type = rec.get("type", "")
            if rec_type == _HK_SLEEP_ANALYSIS:
                if not self._add_sleep(rec, buckets):
                    dropped += 1
                seen += 1
                continue

            key = _ADDITIVE_TYPES.get(rec_type) or _SAMPLED_TYPES.get(rec_type)
            if key is None:
                continue
            seen += 1

            start = self._parse_timestamp(rec.get("startDate"))
            value = self._convert(rec_type, self._safe_float(rec.get("value")), rec.get("unit", ""))
            if value is None:
                dropped += 1
                continue

            bucket = buckets.setdefault(start.date(), DayAccumulator())
            if rec_type in _ADDITIVE_TYPES:
                if value < 0:
                    dropped += 1
                    continue
                bucket.add(key, value)
            else:
                if key not in _SIGNED_SAMPLES and value <= 0:
                    dropped += 1
                    continue
                bucket.sample(key, value)

        logger.info(
            "Apple Health: %d tracked records, %d dropped, %d days",
            seen, dropped, len(buckets),
        )
        return {day: self._build_day(day, buckets[day]) for day in sorted(buckets)}

    def _add_sleep(self, rec: Mapping[str, str], buckets: dict[date, DayAccumulator]) -> bool:
        stage = _SLEEP_STAGE_MAP.get(rec.get("value", ""))
        if stage is None:
            return False
        start = self._parse_timestamp(rec.get("startDate"))
        end = self._parse_timestamp(rec.get("endDate") or rec.get("startDate"))
        minutes = interval_minutes(start, end)
        if minutes is None:
            return False
        night = night_date_for(start, self._sleep_cutoff_hour)
        buckets.setdefault(night, DayAccumulator()).add(f"sleep_{stage}", minutes)
        return True

    def _build_day(self, day: date, bucket: DayAccumulator) -> AppleHealthDay:
        sums = bucket.sums
        samples = bucket.samples

        def _total(key: str) -> int | None:
            return round_half_up(sums[key]) if key in sums else None

        def _avg(key: str) -> float | None:
            return self._mean(samples.get(key, []))

        resting_hr = _avg("resting_hr")
        if resting_hr is None:
            resting_hr = self.estimate_resting_hr(samples.get("heart_rate", []))

        core = sums.get("sleep_core", 0.0)
        deep = sums.get("sleep_deep", 0.0)
        rem = sums.get("sleep_rem", 0.0)
        staged = core + deep + rem
        total_sleep = staged if staged > 0 else sums.get("sleep_asleep", 0.0)

        def _stage(minutes: float) -> int | None:
            return round_half_up(minutes) if minutes > 0 else None

        return AppleHealthDay(
            day=day,
            steps=_total("steps"),
            active_calories=_total("active_calories"),
            distance_m=_total("distance_m"),
            exercise_minutes=_total("exercise_minutes"),
            resting_heart_rate=resting_hr,
            avg_heart_rate=_avg("heart_rate"),
            hrv=_avg("hrv"),
            respiratory_rate=_avg("respiratory_rate"),
            oxygen_saturation=_avg("spo2"),
            sleep_minutes=_stage(total_sleep),
            sleep_in_bed_minutes=_stage(sums.get("sleep_in_bed", 0.0)),
            sleep_core_minutes=_stage(core),
            sleep_deep_minutes=_stage(deep),
            sleep_rem_minutes=_stage(rem),
            sleep_awake_minutes=_stage(sums.get("sleep_awake", 0.0)),
            vo2_max=_avg("vo2_max"),
            wrist_temperature=_avg("wrist_temperature"),
        )

    def estimate_resting_hr(self, heart_rates: list[float]) -> float | None:
        """Estimate resting HR as the mean of the lowest slice of the day's samples.

        Returns None when fewer than ``resting_hr_min_samples`` samples exist.
        """
        if len(heart_rates) < self._resting_hr_min_samples:
            return None
        lowest = sorted(heart_rates)[: math.ceil(len(heart_rates) * self._resting_hr_lowest_fraction)]
        return self._mean(lowest)

    # ------------------------------------------------------------------
    # Value helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _convert(rec_type: str, value: float | None, unit: str) -> float | None:
        """Convert a raw sample into the canonical unit for its metric."""
        if value is None:
            return None
        if rec_type == _HK_DISTANCE:
            factor = _DISTANCE_TO_METERS.get(unit or "m")
            return value * factor if factor is not None else None
        if rec_type == _HK_ACTIVE_ENERGY:
            factor = _ENERGY_TO_KCAL.get(unit or "kcal")
            return value * factor if factor is not None else None
        if rec_type == _HK_SPO2:
            # HealthKit stores saturation as a 0–1 fraction
            return value * 100 if value <= 1 else value
        if rec_type == _HK_WRIST_TEMP and unit == "degF":
            return (value - 32) * 5 / 9
        return value

    def _parse_timestamp(self, value: str | None) -> datetime:
        """Parse an export timestamp to a naive provider-local datetime.

        Raises:
            SourceLoadError: If the timestamp is missing or unparsable.
        """
        if not value:
            raise self._fail("Record is missing startDate")
        try:
            parsed = datetime.strptime(value, _APPLE_DATETIME_FORMAT)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(value)
            except ValueError as exc:
                raise self._fail(f"Unparsable record timestamp {value!r}") from exc
        return parsed.replace(tzinfo=None)
