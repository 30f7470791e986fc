"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_tuple(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    sqlite_timeout_seconds: float
    booking_clock_skew_seconds: int
    desk_id_regex: str
    elevated_roles: tuple[str, ...]
    override_roles: tuple[str, ...]
    recommendation_base_score: float
    recommendation_vertical_penalty: float
    recommendation_usage_weight: float
    seed_demo_data: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings once per process; tests derive variants via `replace`."""
    return Settings(
        app_name=os.getenv("FLOORBOOK_APP_NAME", "Floorbook Booking Engine"),
        app_version=os.getenv("FLOORBOOK_APP_VERSION", "1.0.0"),
        log_level=os.getenv("FLOORBOOK_LOG_LEVEL", "INFO"),
        database_path=Path(os.getenv("FLOORBOOK_DATABASE_PATH", "data/floorbook.db")),
        sqlite_timeout_seconds=float(os.getenv("FLOORBOOK_SQLITE_TIMEOUT_SECONDS", "30")),
        booking_clock_skew_seconds=int(os.getenv("FLOORBOOK_BOOKING_CLOCK_SKEW_SECONDS", "60")),
        desk_id_regex=os.getenv("FLOORBOOK_DESK_ID_REGEX", r"^S-\d+$"),
        elevated_roles=_env_tuple("FLOORBOOK_ELEVATED_ROLES", ("admin", "superadmin")),
        override_roles=_env_tuple("FLOORBOOK_OVERRIDE_ROLES", ("superadmin",)),
        recommendation_base_score=float(os.getenv("FLOORBOOK_RECOMMENDATION_BASE_SCORE", "1000")),
        recommendation_vertical_penalty=float(
            os.getenv("FLOORBOOK_RECOMMENDATION_VERTICAL_PENALTY", "20")
        ),
        recommendation_usage_weight=float(os.getenv("FLOORBOOK_RECOMMENDATION_USAGE_WEIGHT", "10")),
        seed_demo_data=_env_bool("FLOORBOOK_SEED_DEMO_DATA", True),
    )
