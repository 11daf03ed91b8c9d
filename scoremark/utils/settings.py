"""
Application settings, stored as JSON in the user's config directory.
"""
import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from scoremark.core.errors import ValidationError

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"

BACKENDS = ("local", "rest")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class AppSettings:
    """Top-level application settings, serializable to JSON."""
    backend: str = "local"              # local | rest
    rest_url: str = ""
    api_key: str = ""
    sticker_bucket: str = "stickers"

    # Conflict handling
    conflict_distance: float = 30.0
    gate_keep_both: bool = True         # students may not "keep both" against a teacher

    history_limit: Optional[int] = None

    # Sticker detection
    detection_scale: float = 2.0
    detection_threshold: int = 30
    min_region_pixels: int = 50
    region_padding: int = 10

    log_level: str = "INFO"

    def validate(self) -> None:
        """Raise ValidationError for settings the application cannot run with."""
        if self.backend not in BACKENDS:
            raise ValidationError(f"Unknown backend {self.backend!r}; use one of {BACKENDS}")
        if self.backend == "rest" and not self.rest_url:
            raise ValidationError("The rest backend needs rest_url")
        if self.conflict_distance <= 0:
            raise ValidationError("conflict_distance must be positive")
        if self.history_limit is not None and self.history_limit < 1:
            raise ValidationError("history_limit must be at least 1")
        if self.detection_scale <= 0:
            raise ValidationError("detection_scale must be positive")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValidationError(f"Unknown log level {self.log_level!r}")

    def save(self, path: Optional[Path] = None) -> None:
        """Persist settings to a JSON file."""
        target = path or default_settings_path()
        with open(target, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AppSettings":
        """
        Load settings from a JSON file, falling back to defaults.

        Unknown keys are ignored. ``SCOREMARK_REST_URL`` and
        ``SCOREMARK_API_KEY`` override the file.

        Raises:
            ValidationError: If the file holds invalid values
        """
        target = path or default_settings_path()
        data = {}
        if target.exists():
            try:
                with open(target, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValidationError(f"Settings file {target} is not valid JSON: {e}") from e

        known = {f.name for f in fields(cls)}
        ignored = sorted(set(data) - known)
        if ignored:
            logger.warning("Ignoring unknown settings: %s", ", ".join(ignored))

        settings = cls(**{key: value for key, value in data.items() if key in known})

        if os.environ.get("SCOREMARK_REST_URL"):
            settings.rest_url = os.environ["SCOREMARK_REST_URL"]
        if os.environ.get("SCOREMARK_API_KEY"):
            settings.api_key = os.environ["SCOREMARK_API_KEY"]

        settings.validate()
        return settings


def default_settings_path() -> Path:
    from scoremark.utils.resource_loader import get_config_dir
    return get_config_dir() / SETTINGS_FILE
