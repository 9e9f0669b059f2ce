from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_CELL_SIZE_ENV = "SENSMAP_GRID_CELL_SIZE"
_GRID_PATH_ENV = "SENSMAP_GRID_PERSISTENCE_PATH"
_PROFILE_PATH_ENV = "SENSMAP_PROFILE_PATH"
_ROUTING_URL_ENV = "ROUTING_BASE_URL"
_ROUTING_TIMEOUT_ENV = "ROUTING_TIMEOUT_SECONDS"
_COMPACTION_INTERVAL_ENV = "COMPACTION_INTERVAL_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    grid_cell_size: float
    grid_persistence_path: Optional[str]
    profile_path: Optional[str]
    routing_base_url: str
    routing_timeout: float
    compaction_interval: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        grid_cell_size=_read_positive_float(_CELL_SIZE_ENV, 15.0),
        grid_persistence_path=_read_optional_env(_GRID_PATH_ENV, "./tmp/sensmap_grid.json"),
        profile_path=_read_optional_env(_PROFILE_PATH_ENV, "./tmp/sensmap_profile.json"),
        routing_base_url=_read_str_env(_ROUTING_URL_ENV, "https://router.project-osrm.org"),
        routing_timeout=_read_positive_float(_ROUTING_TIMEOUT_ENV, 8.0),
        compaction_interval=_read_positive_float(_COMPACTION_INTERVAL_ENV, 60.0),
        log_level=_read_log_level("INFO"),
    )
