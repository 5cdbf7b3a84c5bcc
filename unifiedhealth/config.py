"""Application configuration loaded from environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file).

    Source paths left unset resolve relative to ``data_dir`` using the layout
    the exporters write (``DATA/apple_health/export.xml``, ``DATA/oura/`` ...).
    """

    # --- App ---
    app_name: str = "Unified Health"
    app_version: str = "0.1.0"
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Data layout ---
    data_dir: Path = Path("DATA")
    apple_health_export: Path | None = None
    oura_dir: Path | None = None
    strava_activities: Path | None = None
    unified_output: Path | None = None

    # --- Normalization ---
    sleep_day_cutoff_hour: int = 6  # sleep starting before this hour counts for the prior night
    resting_hr_min_samples: int = 10
    resting_hr_lowest_fraction: float = 0.1

    # --- Reconciliation ---
    priority_config_path: Path | None = None  # override for the bundled source_priority.yaml

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def apple_health_path(self) -> Path:
        return self.apple_health_export or self.data_dir / "apple_health" / "export.xml"

    @property
    def oura_path(self) -> Path:
        return self.oura_dir or self.data_dir / "oura"

    @property
    def strava_path(self) -> Path:
        return self.strava_activities or self.data_dir / "strava" / "activities.json"

    @property
    def unified_path(self) -> Path:
        return self.unified_output or self.data_dir / "unified" / "daily.json"

    def source_paths(self) -> dict[str, Path]:
        """Configured export location per source slug."""
        return {
            "apple_health": self.apple_health_path,
            "oura": self.oura_path,
            "strava": self.strava_path,
        }


@lru_cache
def get_settings() -> Settings:
    return Settings()
