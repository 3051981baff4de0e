"""Exclusion providers deciding which occupants are ignored for quorum.

A provider is any object with an ``is_excluded(occupant) -> bool`` method.
Registered providers are ORed together: an occupant excluded by any single
provider is excluded overall.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Iterable, Optional, Set, Tuple

from .config import Settings, as_bool

logger = logging.getLogger(__name__)

IGNORED_PERMISSION = "nightskip.ignored"
VANISHED_METADATA_KEY = "vanished"


class GameModeExclusion:
    """Excludes occupants whose game mode is in the configured disallowed set."""

    def __init__(self, settings: Callable[[], Settings]) -> None:
        self._settings = settings

    def is_excluded(self, occupant: Any) -> bool:
        modes = self._settings().excluded_game_modes
        if not modes:
            return False
        mode = getattr(occupant, "game_mode", None)
        return mode is not None and str(mode).upper() in modes


class PermissionExclusion:
    def __init__(self, settings: Callable[[], Settings], permission: str = IGNORED_PERMISSION) -> None:
        self._settings = settings
        self._permission = permission

    def is_excluded(self, occupant: Any) -> bool:
        return self._settings().ignored_permission and bool(
            occupant.has_permission(self._permission)
        )


class VanishExclusion:
    """Excludes occupants carrying a truthy ``vanished`` metadata value."""

    def __init__(self, settings: Callable[[], Settings]) -> None:
        self._settings = settings

    def is_excluded(self, occupant: Any) -> bool:
        return self._settings().exclude_vanished and is_vanished(occupant)


class AfkExclusion:
    def __init__(self, settings: Callable[[], Settings], player_manager: Any) -> None:
        self._settings = settings
        self._player_manager = player_manager

    def is_excluded(self, occupant: Any) -> bool:
        if not self._settings().exclude_afk or self._player_manager is None:
            return False
        return bool(self._player_manager.is_afk(occupant))


def is_vanished(occupant: Any) -> bool:
    """Return whether any attached ``vanished`` metadata value parses as true."""

    values = occupant.get_metadata(VANISHED_METADATA_KEY) or []
    return any(as_bool(value) for value in values)


class ExclusionRegistry:
    """Thread-safe set of exclusion providers."""

    def __init__(self, providers: Optional[Iterable[Any]] = None) -> None:
        self._lock = threading.Lock()
        self._providers: Set[Any] = set(providers or ())

    def register(self, provider: Any) -> None:
        with self._lock:
            self._providers.add(provider)

    def unregister(self, provider: Any) -> None:
        with self._lock:
            self._providers.discard(provider)

    def providers(self) -> Tuple[Any, ...]:
        with self._lock:
            return tuple(self._providers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)

    def __contains__(self, provider: object) -> bool:
        with self._lock:
            return provider in self._providers

    def is_excluded(self, occupant: Any) -> bool:
        # Evaluated against a snapshot so providers can change mid-scan.
        return any(provider.is_excluded(occupant) for provider in self.providers())


def default_registry(settings: Callable[[], Settings], player_manager: Any = None) -> ExclusionRegistry:
    """Build a registry holding the built-in providers."""

    return ExclusionRegistry(
        [
            GameModeExclusion(settings),
            PermissionExclusion(settings),
            VanishExclusion(settings),
            AfkExclusion(settings, player_manager),
        ]
    )


__all__ = [
    "AfkExclusion",
    "ExclusionRegistry",
    "GameModeExclusion",
    "IGNORED_PERMISSION",
    "PermissionExclusion",
    "VanishExclusion",
    "default_registry",
    "is_vanished",
]
