from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

from pydantic import ValidationError

from app.schemas import ProfileModel
from models.records import SensitivityProfile
from settings import get_settings

logger = logging.getLogger(__name__)

# Flat record keys on disk, mapped to ProfileModel fields.
_FIELD_KEYS: Dict[str, str] = {
    "noiseThreshold": "noise_threshold",
    "lightThreshold": "light_threshold",
    "odorThreshold": "odor_threshold",
    "crowdThreshold": "crowd_threshold",
}


class ProfileStore:
    """Holds the process-wide sensitivity profile and mirrors it to a JSON file."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path
        self._lock = Lock()
        self._profile = SensitivityProfile()
        if path:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._profile = self._load_from_disk()

    def load(self) -> SensitivityProfile:
        with self._lock:
            return self._profile

    def save(self, profile: SensitivityProfile) -> None:
        with self._lock:
            self._profile = profile
            if self.path:
                payload = {
                    disk_key: getattr(profile, field_name)
                    for disk_key, field_name in _FIELD_KEYS.items()
                }
                self.path.write_text(json.dumps(payload, indent=2))

    def _load_from_disk(self) -> SensitivityProfile:
        assert self.path is not None
        if not self.path.exists():
            return SensitivityProfile()

        try:
            data = json.loads(self.path.read_text() or "{}")
        except (OSError, json.JSONDecodeError):
            logger.warning("Profile unreadable; using defaults", extra={"path": str(self.path)})
            return SensitivityProfile()

        if not isinstance(data, dict):
            logger.warning("Profile is not a record; using defaults", extra={"path": str(self.path)})
            return SensitivityProfile()

        try:
            model = ProfileModel.model_validate(
                {field_name: data[disk_key] for disk_key, field_name in _FIELD_KEYS.items()}
            )
        except (KeyError, ValidationError):
            logger.warning("Profile incomplete or out of range; using defaults", extra={"path": str(self.path)})
            return SensitivityProfile()
        return model.to_record()


@lru_cache
def build_default_profile_store(path: Optional[str] = None) -> ProfileStore:
    settings = get_settings()
    profile_path = settings.profile_path if path is None else path
    return ProfileStore(path=Path(profile_path) if profile_path else None)
