"""Checks deciding whether a world is evaluated on a scan tick."""
from __future__ import annotations

from typing import Any

from .config import DAY_LENGTH_TICKS, Settings
from .state import SkipStateTracker


def is_blacklisted(world: Any, settings: Settings) -> bool:
    """Whether the world is excluded by the configured world list.

    In whitelist mode the list is inverted and only listed worlds are eligible.
    Membership is by world name.
    """

    listed = world.name in settings.blacklisted_worlds
    if settings.whitelist_mode:
        return not listed
    return listed


def is_night(time: int, settings: Settings) -> bool:
    """Whether ``time`` falls in the half-open cyclic window ``[night_start, night_end)``."""

    start, end = settings.night_start, settings.night_end
    time = int(time) % DAY_LENGTH_TICKS
    if start == end:
        return False
    if start < end:
        return start <= time < end
    return time >= start or time < end


def is_eligible(world: Any, settings: Settings, tracker: SkipStateTracker) -> bool:
    """Cheapest checks first: skip state, world list, then the clock."""

    return (
        not tracker.is_skipping(world.uid)
        and not is_blacklisted(world, settings)
        and is_night(world.time, settings)
    )


__all__ = ["is_blacklisted", "is_eligible", "is_night"]
