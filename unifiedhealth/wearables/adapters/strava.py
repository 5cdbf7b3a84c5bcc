"""Strava activity-list adapter.

Reads ``activities.json`` — the list returned by ``GET /athlete/activities``
(summary representation).  Each activity carries its own local start time in
``start_date_local``, so activities are bucketed by that wall-clock date.

Strava records workouts, not whole days: it only ever contributes training
volume (moving time, distance, calories) and is ranked last for those
metrics.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, ClassVar

from unifiedhealth.wearables.base import (
    STRAVA,
    DayAccumulator,
    SourceAdapter,
    SourceDailyRecord,
    round_half_up,
)

logger = logging.getLogger("unifiedhealth.wearables.strava")


@dataclass(frozen=True)
class StravaDay(SourceDailyRecord):
    """Training volume summed over every activity started on one local day."""

    SOURCE_ID: ClassVar[str] = STRAVA
    METRIC_FIELDS: ClassVar[dict[str, str]] = {
        "exercise_minutes": "moving_minutes",
        "distance_meters": "distance_m",
        "active_calories": "calories",
    }

    activity_count: int = 0
    moving_minutes: int | None = None
    distance_m: float | None = None
    calories: float | None = None


class StravaAdapter(SourceAdapter):
    """Strava summary-activity normalizer."""

    SOURCE_ID = STRAVA
    DISPLAY_NAME = "Strava"

    def load(self, path: Path) -> dict[date, StravaDay]:
        """Read ``activities.json`` and bucket activities by local start day.

        Raises:
            FileNotFoundError: If *path* does not exist.
            SourceLoadError:   If the file is not a JSON list of activities.
        """
        if not path.is_file():
            raise FileNotFoundError(f"Strava activities file not found: {path}")

        try:
            activities = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise self._fail(f"{path.name} is not valid JSON: {exc}") from exc

        days = self.normalize_activities(activities)
        logger.info("Strava: loaded %d days from %s", len(days), path)
        return days

    def normalize_activities(self, activities: Any) -> dict[date, StravaDay]:
        """Aggregate already-parsed summary activities per local day.

        Raises:
            SourceLoadError: If *activities* is not a list of objects, or an
                activity has no parsable ``start_date_local``.
        """
        if not isinstance(activities, list):
            raise self._fail("activities must be a JSON list")

        buckets: dict[date, DayAccumulator] = {}
        counts: dict[date, int] = {}
        for activity in activities:
            if not isinstance(activity, dict):
                raise self._fail(f"activity entries must be objects, got {type(activity).__name__}")
            day = self._activity_day(activity)
            bucket = buckets.setdefault(day, DayAccumulator())
            counts[day] = counts.get(day, 0) + 1

            for key in ("moving_time", "distance", "calories"):
                value = self._safe_float(activity.get(key))
                if value is not None and value >= 0:
                    bucket.add(key, value)

        return {day: self._build_day(day, buckets[day], counts[day]) for day in sorted(buckets)}

    def _build_day(self, day: date, bucket: DayAccumulator, count: int) -> StravaDay:
        moving = bucket.sums.get("moving_time")
        distance = bucket.sums.get("distance")
        calories = bucket.sums.get("calories")
        return StravaDay(
            day=day,
            activity_count=count,
            moving_minutes=round_half_up(moving / 60) if moving is not None else None,
            distance_m=round_half_up(distance, 1) if distance is not None else None,
            calories=round_half_up(calories, 1) if calories is not None else None,
        )

    def _activity_day(self, activity: dict) -> date:
        raw = activity.get("start_date_local")
        if not isinstance(raw, str) or len(raw) < 10:
            raise self._fail(f"activity {activity.get('id')!r} has no start_date_local")
        try:
            # Strava appends Z to start_date_local even though the value is local time
            return date.fromisoformat(raw[:10])
        except ValueError as exc:
            raise self._fail(
                f"activity {activity.get('id')!r} has invalid start_date_local {raw!r}"
            ) from exc
