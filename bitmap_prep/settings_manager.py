from __future__ import annotations

import json
import os
from typing import Any

from .logger import get_logger

_logger = get_logger("settings")


class SettingsManager:
    """JSON-backed settings for the preparation pipeline.

    Missing or invalid values fall back to ``DEFAULTS``; a missing settings
    file is not an error.
    """

    DEFAULTS: dict[str, Any] = {
        "max_width": 1280,
        "max_height": 1280,
        "blur_radius": 110,
        "profile_max_side": 640,
        "apply_rotation": True,
        "max_workers": None,
    }

    def __init__(self, settings_path: str | None = None):
        self.settings_path = settings_path
        self._settings: dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        if not self.settings_path:
            self._settings = {}
            return
        try:
            if os.path.exists(self.settings_path):
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    self._settings = data
                    _logger.debug("settings loaded: %s", self.settings_path)
                    return
                _logger.warning("settings file is not a JSON object: %s", self.settings_path)
        except (OSError, ValueError) as e:
            _logger.warning("settings load failed: %s", e)
        self._settings = {}

    def save(self) -> None:
        if not self.settings_path:
            return
        try:
            parent = os.path.dirname(self.settings_path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(self.settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings, f, ensure_ascii=False, indent=2)
            _logger.debug("settings saved: %s", self.settings_path)
        except OSError as e:
            _logger.error("settings save failed: %s", e)

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._settings:
            return self._settings[key]
        if default is not None:
            return default
        return self.DEFAULTS.get(key)

    def set(self, key: str, value: Any) -> None:
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings

    def _positive_int(self, key: str) -> int:
        val = self.get(key)
        if isinstance(val, int) and not isinstance(val, bool) and val > 0:
            return val
        _logger.warning("invalid %s=%r, using %s", key, val, self.DEFAULTS[key])
        return self.DEFAULTS[key]

    @property
    def max_width(self) -> int:
        return self._positive_int("max_width")

    @property
    def max_height(self) -> int:
        return self._positive_int("max_height")

    @property
    def blur_radius(self) -> int:
        return self._positive_int("blur_radius")

    @property
    def profile_max_side(self) -> int:
        return self._positive_int("profile_max_side")

    @property
    def apply_rotation(self) -> bool:
        return bool(self.get("apply_rotation"))

    @property
    def max_workers(self) -> int | None:
        val = self.get("max_workers")
        return val if isinstance(val, int) and not isinstance(val, bool) and val > 0 else None
