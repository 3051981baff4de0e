"""Thread-safe tracking of worlds that are mid-skip."""
from __future__ import annotations

import threading
from typing import Hashable, Set


class SkipStateTracker:
    """Authoritative set of world ids currently skipping the night.

    A world absent from the set is not skipping. Resets in flight are tracked
    separately so concurrent reset requests collapse into one follow-up.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._skipping: Set[Hashable] = set()
        self._resetting: Set[Hashable] = set()

    def mark(self, world_id: Hashable) -> bool:
        """Mark a world as skipping; ``False`` when it already was."""

        with self._lock:
            if world_id in self._skipping:
                return False
            self._skipping.add(world_id)
            return True

    def is_skipping(self, world_id: Hashable) -> bool:
        with self._lock:
            return world_id in self._skipping

    def clear(self, world_id: Hashable) -> bool:
        with self._lock:
            if world_id not in self._skipping:
                return False
            self._skipping.discard(world_id)
            return True

    def begin_reset(self, world_id: Hashable) -> bool:
        """Claim the pending reset for a world; ``False`` when one is already queued."""

        with self._lock:
            if world_id in self._resetting:
                return False
            self._resetting.add(world_id)
            return True

    def finish_reset(self, world_id: Hashable) -> bool:
        """Clear both the skip flag and the pending reset claim."""

        with self._lock:
            claimed = world_id in self._resetting
            self._resetting.discard(world_id)
            self._skipping.discard(world_id)
            return claimed

    def is_resetting(self, world_id: Hashable) -> bool:
        with self._lock:
            return world_id in self._resetting

    def skipping(self) -> frozenset:
        with self._lock:
            return frozenset(self._skipping)


__all__ = ["SkipStateTracker"]
