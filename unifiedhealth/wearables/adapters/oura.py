"""Oura Ring API v2 export adapter.

Reads the per-endpoint JSON files written by the Oura downloader (one file per
``/v2/usercollection/<endpoint>`` response, each shaped ``{"data": [...]}``):

    daily_sleep.json      — Nightly sleep score
    sleep.json            — Detailed sleep sessions (durations in seconds)
    daily_activity.json   — Steps, calories, walking distance, activity time
    daily_readiness.json  — Readiness score and temperature deviation
    daily_spo2.json       — Overnight SpO2 and breathing disturbance index

Oura already labels each session and summary with the ``day`` it belongs to,
so no night attribution is done here.  When one day holds several sleep
sessions only the longest main sleep is kept.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, ClassVar

from unifiedhealth.wearables.base import OURA, SourceAdapter, SourceDailyRecord, round_half_up
from unifiedhealth.wearables.sleep_night import select_main_sleep

logger = logging.getLogger("unifiedhealth.wearables.oura")

# Endpoint name → file name inside the Oura export directory
OURA_EXPORT_FILES: dict[str, str] = {
    "daily_sleep": "daily_sleep.json",
    "sleep": "sleep.json",
    "daily_activity": "daily_activity.json",
    "daily_readiness": "daily_readiness.json",
    "daily_spo2": "daily_spo2.json",
}


@dataclass(frozen=True)
class OuraDay(SourceDailyRecord):
    """One Oura day, merged across endpoints, in canonical units."""

    SOURCE_ID: ClassVar[str] = OURA
    METRIC_FIELDS: ClassVar[dict[str, str]] = {
        "steps": "steps",
        "active_calories": "active_calories",
        "distance_meters": "walking_distance_m",
        "exercise_minutes": "exercise_minutes",
        "resting_heart_rate": "lowest_heart_rate",
        "avg_heart_rate": "average_heart_rate",
        "hrv": "average_hrv",
        "sleep_duration_minutes": "total_sleep_minutes",
        "sleep_score": "sleep_score",
        "sleep_deep_minutes": "deep_sleep_minutes",
        "sleep_rem_minutes": "rem_sleep_minutes",
        "sleep_light_minutes": "light_sleep_minutes",
        "sleep_awake_minutes": "awake_minutes",
        "sleep_efficiency": "sleep_efficiency",
        "respiratory_rate": "average_breath",
        "oxygen_saturation": "spo2_average",
        "breathing_disturbance_index": "breathing_disturbance_index",
        "readiness_score": "readiness_score",
        "temperature_deviation": "temperature_deviation",
    }

    # Sleep session
    total_sleep_minutes: int | None = None
    deep_sleep_minutes: int | None = None
    rem_sleep_minutes: int | None = None
    light_sleep_minutes: int | None = None
    awake_minutes: int | None = None
    sleep_efficiency: float | None = None
    lowest_heart_rate: float | None = None
    average_heart_rate: float | None = None
    average_hrv: float | None = None
    average_breath: float | None = None
    # Daily sleep
    sleep_score: int | None = None
    # Activity
    steps: int | None = None
    active_calories: int | None = None
    walking_distance_m: int | None = None
    exercise_minutes: int | None = None
    # Readiness
    readiness_score: int | None = None
    temperature_deviation: float | None = None
    # SpO2
    spo2_average: float | None = None
    breathing_disturbance_index: float | None = None


class OuraAdapter(SourceAdapter):
    """Oura export directory normalizer.

    Oura is the authoritative source for sleep staging, overnight HRV and
    resting heart rate: the ring's finger PPG measures continuously during
    sleep with a stable sensor position.
    """

    SOURCE_ID = OURA
    DISPLAY_NAME = "Oura Ring"

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, path: Path) -> dict[date, OuraDay]:
        """Read every endpoint file under *path* and normalize them.

        A missing endpoint file contributes nothing; the directory itself
        must exist.

        Args:
            path: Oura export directory.

        Returns:
            Map of Oura day → OuraDay.
        """
        if not path.is_dir():
            raise FileNotFoundError(f"Oura export directory not found: {path}")

        collections: dict[str, list[dict]] = {}
        for endpoint, filename in OURA_EXPORT_FILES.items():
            file_path = path / filename
            if not file_path.is_file():
                logger.warning("Oura: %s not found, skipping %s", file_path, endpoint)
                collections[endpoint] = []
                continue
            collections[endpoint] = self._read_collection(file_path)

        days = self.normalize(**collections)
        logger.info("Oura: loaded %d days from %s", len(days), path)
        return days

    def _read_collection(self, file_path: Path) -> list[dict]:
        """Parse one ``{"data": [...]}`` endpoint file.

        Raises:
            SourceLoadError: If the file is not valid JSON or has no data list.
        """
        try:
            payload = json.loads(file_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise self._fail(f"{file_path.name} is not valid JSON: {exc}") from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise self._fail(f"{file_path.name} has no 'data' list")
        if not all(isinstance(item, dict) for item in data):
            raise self._fail(f"{file_path.name} 'data' must contain objects")
        return data

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize(
        self,
        daily_sleep: list[dict] | None = None,
        sleep: list[dict] | None = None,
        daily_activity: list[dict] | None = None,
        daily_readiness: list[dict] | None = None,
        daily_spo2: list[dict] | None = None,
    ) -> dict[date, OuraDay]:
        """Merge already-parsed endpoint lists into one record per day.

        Raises:
            SourceLoadError: If an entry carries a missing or invalid ``day``.
        """
        fields: dict[date, dict[str, Any]] = {}

        def _slot(entry: dict, endpoint: str) -> dict[str, Any]:
            return fields.setdefault(self._parse_day(entry, endpoint), {})

        for entry in daily_sleep or []:
            _slot(entry, "daily_sleep")["sleep_score"] = self._safe_int(entry.get("score"))

        for entry in sleep or []:
            self._parse_day(entry, "sleep")
        for entry in select_main_sleep(sleep or []).values():
            _slot(entry, "sleep").update(self.normalize_sleep_session(entry))

        for entry in daily_activity or []:
            _slot(entry, "daily_activity").update(self.normalize_activity(entry))

        for entry in daily_readiness or []:
            _slot(entry, "daily_readiness").update(
                readiness_score=self._safe_int(entry.get("score")),
                temperature_deviation=self._safe_float(entry.get("temperature_deviation")),
            )

        for entry in daily_spo2 or []:
            spo2 = entry.get("spo2_percentage") or {}
            _slot(entry, "daily_spo2").update(
                spo2_average=self._safe_float(spo2.get("average") if isinstance(spo2, dict) else None),
                breathing_disturbance_index=self._safe_float(entry.get("breathing_disturbance_index")),
            )

        return {day: OuraDay(day=day, **fields[day]) for day in sorted(fields)}

    def normalize_sleep_session(self, session: dict) -> dict[str, Any]:
        """Convert one detailed sleep session to OuraDay fields (seconds → minutes)."""
        return {
            "total_sleep_minutes": self._seconds_to_minutes(session.get("total_sleep_duration")),
            "deep_sleep_minutes": self._seconds_to_minutes(session.get("deep_sleep_duration")),
            "rem_sleep_minutes": self._seconds_to_minutes(session.get("rem_sleep_duration")),
            "light_sleep_minutes": self._seconds_to_minutes(session.get("light_sleep_duration")),
            "awake_minutes": self._seconds_to_minutes(session.get("awake_time")),
            "sleep_efficiency": self._safe_float(session.get("efficiency")),
            "lowest_heart_rate": self._safe_float(session.get("lowest_heart_rate")),
            "average_heart_rate": self._safe_float(session.get("average_heart_rate")),
            "average_hrv": self._safe_float(session.get("average_hrv")),
            "average_breath": self._safe_float(session.get("average_breath")),
        }

    def normalize_activity(self, activity: dict) -> dict[str, Any]:
        """Convert one daily_activity entry to OuraDay fields."""
        high = self._safe_float(activity.get("high_activity_time"))
        medium = self._safe_float(activity.get("medium_activity_time"))
        exercise = None
        if high is not None or medium is not None:
            exercise = self._seconds_to_minutes((high or 0.0) + (medium or 0.0))

        distance = self._safe_float(activity.get("equivalent_walking_distance"))
        return {
            "steps": self._non_negative_int(activity.get("steps")),
            "active_calories": self._non_negative_int(activity.get("active_calories")),
            "walking_distance_m": round_half_up(distance) if distance is not None and distance >= 0 else None,
            "exercise_minutes": exercise,
        }

    # ------------------------------------------------------------------
    # Value helpers
    # ------------------------------------------------------------------

    def _parse_day(self, entry: dict, endpoint: str) -> date:
        raw = entry.get("day")
        if not isinstance(raw, str):
            raise self._fail(f"{endpoint} entry has no 'day': {entry.get('id', entry)!r}")
        try:
            return date.fromisoformat(raw)
        except ValueError as exc:
            raise self._fail(f"{endpoint} entry has invalid day {raw!r}") from exc

    @classmethod
    def _safe_int(cls, value: object) -> int | None:
        number = cls._safe_float(value)
        return round_half_up(number) if number is not None else None

    @classmethod
    def _non_negative_int(cls, value: object) -> int | None:
        number = cls._safe_int(value)
        return number if number is not None and number >= 0 else None

    @classmethod
    def _seconds_to_minutes(cls, value: object) -> int | None:
        seconds = cls._safe_float(value)
        if seconds is None or seconds < 0:
            return None
        return round_half_up(seconds / 60)
