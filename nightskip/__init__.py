"""Night-skip decision engine for multi-world game servers."""

from .config import Settings, SettingsLoader, get_settings
from .errors import NightSkipError, SkipStateError
from .scheduler import NightSkipScheduler

__all__ = [
    "NightSkipError",
    "NightSkipScheduler",
    "Settings",
    "SettingsLoader",
    "SkipStateError",
    "get_settings",
]
