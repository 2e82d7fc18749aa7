"""
Persisted user settings for procmon.

Values are layered: built-in defaults, then the YAML settings file, then
PROCMON_* environment variables (PROCMON_PROC_INTERVAL=5 sets
proc.interval).
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "PROCMON_"
COVER_PAGE_COUNT = 3

DEFAULTS: dict[str, Any] = {
    "proc": {
        "interval": 2,
    },
    "cover": {
        "page": 0,
    },
}


def default_settings_path() -> Path:
    """Location of the settings file, honouring XDG_CONFIG_HOME."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "procmon" / "settings.yaml"


class Settings:
    """Dot-notation access to layered settings."""

    def __init__(self, path: str | Path | None = None, env: bool = True) -> None:
        self._path = Path(path) if path else default_settings_path()
        self._data: dict[str, Any] = copy.deepcopy(DEFAULTS)
        self._load_file()
        if env:
            self._load_env_overrides()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dotted key, e.g. "proc.interval"."""
        value: Any = self._data
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a value by dotted key, creating intermediate sections."""
        parts = key.split(".")
        data = self._data
        for part in parts[:-1]:
            if not isinstance(data.get(part), dict):
                data[part] = {}
            data = data[part]
        data[parts[-1]] = value

    def save(self) -> None:
        """Write the current settings to the YAML file."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as f:
                yaml.safe_dump(self._data, f, default_flow_style=False, sort_keys=False)
        except OSError as exc:
            logger.error("Unable to save settings to %s: %s", self._path, exc)
            return
        logger.info("Settings saved to %s", self._path)

    @property
    def interval(self) -> float:
        """Polling interval in seconds."""
        value = self.get("proc.interval", DEFAULTS["proc"]["interval"])
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid interval %r", value)
            return float(DEFAULTS["proc"]["interval"])

    @interval.setter
    def interval(self, value: float) -> None:
        self.set("proc.interval", value)

    @property
    def cover_page(self) -> int:
        """Selected summary page, 0 to COVER_PAGE_COUNT - 1."""
        value = self.get("cover.page", 0)
        return value if isinstance(value, int) and 0 <= value < COVER_PAGE_COUNT else 0

    @cover_page.setter
    def cover_page(self, page: int) -> None:
        # Stepping past either end wraps around
        if page < 0:
            page = COVER_PAGE_COUNT - 1
        elif page >= COVER_PAGE_COUNT:
            page = 0
        self.set("cover.page", page)

    def _load_file(self) -> None:
        if not self._path.exists():
            return
        try:
            with open(self._path, encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("Unable to load settings from %s: %s", self._path, exc)
            return
        if not isinstance(file_data, dict):
            logger.error("Ignoring settings file %s: not a mapping", self._path)
            return
        self._deep_merge(self._data, file_data)
        logger.debug("Settings loaded from %s", self._path)

    def _load_env_overrides(self) -> None:
        for name, value in os.environ.items():
            if name.startswith(ENV_PREFIX):
                key = name[len(ENV_PREFIX):].lower().replace("_", ".")
                self.set(key, self._parse_value(value))

    @staticmethod
    def _parse_value(value: str) -> Any:
        """Parse an environment string into int, float or str."""
        for convert in (int, float):
            try:
                return convert(value)
            except ValueError:
                pass
        return value

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> None:
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                Settings._deep_merge(base[key], value)
            else:
                base[key] = value
