"""Message template rendering and the default logging message sink."""
from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

_PLACEHOLDERS = ("sleeping", "players", "needed", "world")


def render(template: str, **values: Any) -> str:
    """Substitute ``[sleeping]``-style placeholders in a message template."""

    text = template or ""
    for key in _PLACEHOLDERS:
        if key in values and values[key] is not None:
            text = text.replace(f"[{key}]", str(values[key]))
    return text


class LogMessenger:
    """Messenger that writes every notification to the log.

    Hosts with a real UI pass their own object exposing the same four methods.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def clear_bar(self, world: Any) -> None:
        self._log.debug("[%s] progress cleared", world.name)

    def send_action_bar(self, world: Any, text: str) -> None:
        if text:
            self._log.info("[%s] action bar: %s", world.name, text)

    def send_boss_bar(self, world: Any, text: str, color: str, progress: float) -> None:
        self._log.info("[%s] boss bar (%s, %.2f): %s", world.name, color, progress, text)

    def broadcast(self, world: Any, text: str) -> None:
        if text:
            self._log.info("[%s] chat: %s", world.name, text)


__all__ = ["LogMessenger", "render"]
