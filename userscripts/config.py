"""Settings service - manages settings.json."""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class BuildChannel(str, Enum):
    """Remote distribution track used to build download URLs."""

    RELEASE = "release"
    BETA = "beta"


class SettingsService:
    """Manages the settings.json file.

    Settings format:
    {
        "build_channel": "release",
        "external_folder": "/Users/me/Scripts",
        "scripts_enabled": true
    }
    """

    DEFAULTS: Dict[str, Any] = {
        "build_channel": BuildChannel.RELEASE.value,
        "external_folder": None,
        "scripts_enabled": False,
    }

    def __init__(self, settings_file: Path):
        self.settings_file = settings_file
        self._settings: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        """Load settings from file, using defaults if not found."""
        if self.settings_file.exists():
            try:
                with open(self.settings_file, "r", encoding="utf-8") as f:
                    return {**self.DEFAULTS, **json.load(f)}
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading settings: {e}")

        return dict(self.DEFAULTS)

    def _save(self) -> None:
        """Save settings to file."""
        self.settings_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.settings_file, "w", encoding="utf-8") as f:
            json.dump(self._settings, f, indent=2, ensure_ascii=False)
        logger.debug(f"Saved settings to {self.settings_file}")

    @property
    def build_channel(self) -> BuildChannel:
        """Selected build channel; unknown values fall back to release."""
        raw = self._settings.get("build_channel")
        try:
            return BuildChannel(raw)
        except ValueError:
            logger.warning(f"Unknown build channel '{raw}', using release")
            return BuildChannel.RELEASE

    @build_channel.setter
    def build_channel(self, channel: BuildChannel) -> None:
        self._settings["build_channel"] = BuildChannel(channel).value
        self._save()
        logger.info(f"Build channel set to: {channel.value}")

    @property
    def external_folder(self) -> Optional[Path]:
        raw = self._settings.get("external_folder")
        return Path(raw) if raw else None

    @external_folder.setter
    def external_folder(self, folder: Optional[Path]) -> None:
        self._settings["external_folder"] = str(folder) if folder else None
        self._save()
        if folder:
            logger.info(f"External folder set to: {folder}")
        else:
            logger.info("External folder cleared")

    @property
    def scripts_enabled(self) -> bool:
        return bool(self._settings.get("scripts_enabled", False))

    @scripts_enabled.setter
    def scripts_enabled(self, enabled: bool) -> None:
        self._settings["scripts_enabled"] = bool(enabled)
        self._save()

    def reload(self) -> None:
        """Reload settings from disk."""
        self._settings = self._load()
