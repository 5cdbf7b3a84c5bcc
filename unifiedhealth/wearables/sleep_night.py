"""Sleep night attribution — decide which calendar night a sleep interval belongs to.

Providers disagree on where a night starts.  Event-log sources (Apple Health)
stamp each sleep stage with its own wall-clock start, so a stage beginning at
01:30 lands on the next calendar day unless it is pulled back.  Session-based
sources (Oura) already label each session with a day, but emit several
sessions per night when the wearer naps or wakes up.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping

logger = logging.getLogger("unifiedhealth.wearables.sleep_night")

#: Session types that count toward a night's aggregates.
MAIN_SLEEP_TYPES: frozenset[str] = frozenset({"long_sleep", "sleep"})

#: Stage intervals at or beyond a full day are export glitches.
MAX_STAGE_MINUTES = 1440


def night_date_for(start: datetime, cutoff_hour: int = 6) -> date:
    """Return the night a sleep interval starting at *start* belongs to.

    Intervals starting before ``cutoff_hour`` (provider-local wall clock) are
    part of the previous evening's night.  The interval is never split across
    the boundary.

    Args:
        start:        Provider-local start of the interval.
        cutoff_hour:  Hour (0–23) below which sleep counts for the prior day.

    Returns:
        The calendar date of the night.

    Example::

        night_date_for(datetime(2024, 3, 2, 1, 30))   # date(2024, 3, 1)
        night_date_for(datetime(2024, 3, 1, 23, 10))  # date(2024, 3, 1)
    """
    if not 0 <= cutoff_hour <= 23:
        raise ValueError(f"cutoff_hour must be between 0 and 23, got {cutoff_hour}")
    day = start.date()
    if start.hour < cutoff_hour:
        return day - timedelta(days=1)
    return day


def interval_minutes(start: datetime, end: datetime) -> float | None:
    """Duration of a stage interval in minutes, or None if it is not sane.

    Non-positive intervals and intervals of a day or longer are rejected.
    """
    minutes = (end - start).total_seconds() / 60.0
    if minutes <= 0 or minutes >= MAX_STAGE_MINUTES:
        return None
    return minutes


def is_main_sleep(session: Mapping) -> bool:
    """True for long/primary sleep sessions; naps and rest periods are ignored."""
    return session.get("type") in MAIN_SLEEP_TYPES


def select_main_sleep(sessions: Iterable[Mapping]) -> dict[str, Mapping]:
    """Keep the longest main-sleep session per day label.

    Args:
        sessions: Session dicts carrying ``day``, ``type`` and
                  ``total_sleep_duration`` (seconds).

    Returns:
        Map of day string → the winning session.  Ties keep the first seen.
    """
    nights: dict[str, Mapping] = {}
    skipped = 0
    for session in sessions:
        if not is_main_sleep(session):
            skipped += 1
            continue
        day = session.get("day")
        duration = session.get("total_sleep_duration") or 0
        existing = nights.get(day)
        if existing is None or duration > (existing.get("total_sleep_duration") or 0):
            nights[day] = session

    logger.debug(
        "select_main_sleep: %d nights kept, %d non-main sessions skipped",
        len(nights), skipped,
    )
    return nights
