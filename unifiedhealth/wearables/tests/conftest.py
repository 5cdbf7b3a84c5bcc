"""Shared fixtures and realistic provider exports for reconciliation tests."""

from __future__ import annotations

import shutil
from datetime import date
from pathlib import Path

import pytest

from unifiedhealth.config import Settings
from unifiedhealth.wearables.adapters.apple_health import AppleHealthAdapter, AppleHealthDay
from unifiedhealth.wearables.adapters.oura import OuraAdapter, OuraDay
from unifiedhealth.wearables.adapters.strava import StravaAdapter, StravaDay
from unifiedhealth.wearables.priority import PriorityTable, load_priority_table

# Fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

# Dates covered by the fixture exports
DAY_1 = date(2024, 3, 1)
DAY_2 = date(2024, 3, 2)
DAY_3 = date(2024, 3, 3)  # Apple only, a single zero step count
DAY_4 = date(2024, 3, 4)  # Strava only


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def priority_table() -> PriorityTable:
    """Load the real source priority table for tests."""
    return load_priority_table()


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """A DATA/ tree laid out the way the exporters write it."""
    root = tmp_path / "DATA"
    shutil.copytree(FIXTURES_DIR, root)
    return root


@pytest.fixture
def settings(data_dir: Path) -> Settings:
    return Settings(data_dir=data_dir, _env_file=None)


# ---------------------------------------------------------------------------
# Adapters and loaded source maps
# ---------------------------------------------------------------------------


@pytest.fixture
def apple_adapter() -> AppleHealthAdapter:
    return AppleHealthAdapter()


@pytest.fixture
def oura_adapter() -> OuraAdapter:
    return OuraAdapter()


@pytest.fixture
def strava_adapter() -> StravaAdapter:
    return StravaAdapter()


@pytest.fixture
def apple_days(apple_adapter: AppleHealthAdapter) -> dict[date, AppleHealthDay]:
    return apple_adapter.load(FIXTURES_DIR / "apple_health" / "export.xml")


@pytest.fixture
def oura_days(oura_adapter: OuraAdapter) -> dict[date, OuraDay]:
    return oura_adapter.load(FIXTURES_DIR / "oura")


@pytest.fixture
def strava_days(strava_adapter: StravaAdapter) -> dict[date, StravaDay]:
    return strava_adapter.load(FIXTURES_DIR / "strava" / "activities.json")


@pytest.fixture
def source_maps(apple_days, oura_days, strava_days) -> dict:
    return {"apple_health": apple_days, "oura": oura_days, "strava": strava_days}
