"""Configuration loading utilities for the night-skip engine."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "data" / "settings.yaml"
SETTINGS_PATH_ENV = "NIGHTSKIP_SETTINGS_PATH"

DAY_LENGTH_TICKS = 24000

_GAME_MODE_KEYS = {
    "exclude-adventure": "ADVENTURE",
    "exclude-creative": "CREATIVE",
    "exclude-spectator": "SPECTATOR",
    "exclude-survival": "SURVIVAL",
}


def as_bool(value: Any, default: bool = False) -> bool:
    """Parse YAML-ish booleans, treating strings like ``"false"`` as false."""

    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in {"false", "0", "off", "no", ""}
    return bool(value)


def _as_int(key: str, value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for '%s' (%r); using %s", key, value, default)
        return default


def _as_float(key: str, value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid number for '%s' (%r); using %s", key, value, default)
        return default


@dataclass(frozen=True)
class Settings:
    """Typed view over the settings YAML file."""

    interval: int = 1
    reset_delay_ticks: int = 20
    ticks_per_second: int = 20
    blacklisted_worlds: FrozenSet[str] = frozenset()
    whitelist_mode: bool = False
    ignored_permission: bool = True
    exclude_vanished: bool = False
    exclude_afk: bool = False
    excluded_game_modes: FrozenSet[str] = frozenset()
    skip_enabled: bool = True
    instant_skip: bool = False
    percentage: float = 50.0
    daytime_ticks: int = 1200
    night_start: int = 12950
    night_end: int = 23950
    clear_rain: bool = True
    clear_thunder: bool = True
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @property
    def reset_delay_seconds(self) -> float:
        return self.reset_delay_ticks / float(self.ticks_per_second)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a dotted key such as ``messages.bossbar.night-skipping.color``."""

        node: Any = self.raw
        for part in key.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return default
            node = node[part]
        return node

    def get_string(self, key: str, default: str = "") -> str:
        value = self.get(key, default)
        return default if value is None else str(value)

    def get_string_list(self, key: str) -> List[str]:
        value = self.get(key)
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(item) for item in value]
        return [str(value)]

    @staticmethod
    def from_dict(data: Dict[str, Any] | None) -> "Settings":
        data = dict(data or {})
        exclusions = data.get("exclusions") or {}
        night = data.get("night-skip") or {}

        interval = _as_int("interval", data.get("interval"), 1)
        if interval <= 0:
            logger.warning("Scan interval %s is not positive; using 1 second", interval)
            interval = 1

        reset_delay = _as_int("reset-delay-ticks", data.get("reset-delay-ticks"), 20)
        if reset_delay < 0:
            logger.warning("Reset delay %s is negative; using 0 ticks", reset_delay)
            reset_delay = 0

        ticks_per_second = _as_int("ticks-per-second", data.get("ticks-per-second"), 20)
        if ticks_per_second <= 0:
            logger.warning("Tick rate %s is not positive; using 20", ticks_per_second)
            ticks_per_second = 20

        percentage = _as_float("night-skip.percentage", night.get("percentage"), 50.0)
        if not 0.0 <= percentage <= 100.0:
            clamped = min(100.0, max(0.0, percentage))
            logger.warning("Skip percentage %s outside [0, 100]; using %s", percentage, clamped)
            percentage = clamped

        night_start = _as_int("night-skip.night-start", night.get("night-start"), 12950)
        night_end = _as_int("night-skip.night-end", night.get("night-end"), 23950)

        game_modes = frozenset(
            mode
            for key, mode in _GAME_MODE_KEYS.items()
            if as_bool(exclusions.get(key), False)
        )

        return Settings(
            interval=interval,
            reset_delay_ticks=reset_delay,
            ticks_per_second=ticks_per_second,
            blacklisted_worlds=frozenset(str(name) for name in data.get("blacklisted-worlds") or []),
            whitelist_mode=as_bool(data.get("whitelist-mode"), False),
            ignored_permission=as_bool(exclusions.get("ignored-permission"), True),
            exclude_vanished=as_bool(exclusions.get("exclude-vanished"), False),
            exclude_afk=as_bool(exclusions.get("exclude-afk"), False),
            excluded_game_modes=game_modes,
            skip_enabled=as_bool(night.get("enabled"), True),
            instant_skip=as_bool(night.get("instant-skip"), False),
            percentage=percentage,
            daytime_ticks=_as_int("night-skip.daytime-ticks", night.get("daytime-ticks"), 1200),
            night_start=night_start % DAY_LENGTH_TICKS,
            night_end=night_end % DAY_LENGTH_TICKS,
            clear_rain=as_bool(night.get("clear-rain"), True),
            clear_thunder=as_bool(night.get("clear-thunder"), True),
            raw=data,
        )


class SettingsLoader:
    """Loads and caches settings from YAML configuration files."""

    def __init__(self, path: Path | None = None) -> None:
        env_path = os.getenv(SETTINGS_PATH_ENV)
        self._path = path or (Path(env_path) if env_path else DEFAULT_SETTINGS_PATH)
        self._cache: Settings | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> Settings:
        if self._cache is not None and not force:
            return self._cache
        with self._path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        self._cache = Settings.from_dict(data)
        return self._cache


def get_settings() -> Settings:
    """Convenience accessor for default settings."""

    return SettingsLoader().load()


__all__ = ["DAY_LENGTH_TICKS", "Settings", "SettingsLoader", "as_bool", "get_settings"]
