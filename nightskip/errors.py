"""Exception types raised by the night-skip engine."""
from __future__ import annotations


class NightSkipError(RuntimeError):
    """Base error for the night-skip engine."""


class SkipStateError(NightSkipError):
    """Raised when a world would be marked as skipping a second time."""


__all__ = ["NightSkipError", "SkipStateError"]
