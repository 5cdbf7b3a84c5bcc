"""Pydantic schemas for the unified daily API.

Field names are snake_case in Python and camelCase on the wire, matching
the keys of the ``daily.json`` artifact.
"""

from __future__ import annotations

from datetime import date

from pydantic import Field

from unifiedhealth.models.base import HealthBase


class SourcedValue(HealthBase):
    value: int | float
    source: str


class UnifiedDailyRead(HealthBase):
    day: date = Field(alias="date")

    # Activity
    steps: SourcedValue | None = None
    active_calories: SourcedValue | None = Field(default=None, alias="activeCalories")
    distance_meters: SourcedValue | None = Field(default=None, alias="distanceMeters")
    exercise_minutes: SourcedValue | None = Field(default=None, alias="exerciseMinutes")

    # Heart
    resting_heart_rate: SourcedValue | None = Field(default=None, alias="restingHeartRate")
    avg_heart_rate: SourcedValue | None = Field(default=None, alias="avgHeartRate")
    hrv: SourcedValue | None = None

    # Sleep
    sleep_duration_minutes: SourcedValue | None = Field(default=None, alias="sleepDurationMinutes")
    sleep_score: SourcedValue | None = Field(default=None, alias="sleepScore")
    sleep_deep_minutes: SourcedValue | None = Field(default=None, alias="sleepDeepMinutes")
    sleep_rem_minutes: SourcedValue | None = Field(default=None, alias="sleepREMMinutes")
    sleep_light_minutes: SourcedValue | None = Field(default=None, alias="sleepLightMinutes")
    sleep_awake_minutes: SourcedValue | None = Field(default=None, alias="sleepAwakeMinutes")
    sleep_efficiency: SourcedValue | None = Field(default=None, alias="sleepEfficiency")

    # Respiratory & blood
    respiratory_rate: SourcedValue | None = Field(default=None, alias="respiratoryRate")
    oxygen_saturation: SourcedValue | None = Field(default=None, alias="oxygenSaturation")
    breathing_disturbance_index: SourcedValue | None = Field(
        default=None, alias="breathingDisturbanceIndex"
    )

    # Recovery
    readiness_score: SourcedValue | None = Field(default=None, alias="readinessScore")
    temperature_deviation: SourcedValue | None = Field(default=None, alias="temperatureDeviation")

    # Fitness & body
    vo2_max: SourcedValue | None = Field(default=None, alias="vo2Max")
    wrist_temperature: SourcedValue | None = Field(default=None, alias="wristTemperature")


class UnifiedDailyEnvelope(HealthBase):
    data: list[UnifiedDailyRead]


class MetricSummaryRead(HealthBase):
    metric: str
    days: int
    start: date | None = None
    end: date | None = None
    count: int
    average: float | None = None
    minimum: float | None = Field(default=None, alias="min")
    maximum: float | None = Field(default=None, alias="max")
    median: float | None = None
    latest: float | None = None
    dominant_source: str | None = Field(default=None, alias="dominantSource")


class MovingAveragePoint(HealthBase):
    day: date = Field(alias="date")
    value: float


class MovingAverageRead(HealthBase):
    metric: str
    window_days: int = Field(alias="windowDays")
    points: list[MovingAveragePoint]


class SourcePriorityRead(HealthBase):
    metric: str
    primary: str
    fallback: list[str]
    reason: str = ""


class PriorityTableRead(HealthBase):
    version: str
    priorities: list[SourcePriorityRead]
