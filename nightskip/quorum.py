"""Quorum math for deciding how many sleepers a world still needs.

All helpers are pure and operate on a snapshot of a world's occupants. The
sleeper count is taken over every occupant, while the occupant count used
for the target drops excluded occupants.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Callable, Iterable, List, Sequence


def _exact(percentage: float) -> Fraction:
    # Decimal percentages such as 33.3 are taken at face value.
    return Fraction(str(percentage))


def sleeping_occupants(occupants: Iterable[Any]) -> List[Any]:
    """Return the occupants currently in the resting pose."""

    return [occupant for occupant in occupants if occupant.sleeping]


def excluded_occupants(occupants: Iterable[Any], is_excluded: Callable[[Any], bool]) -> List[Any]:
    return [occupant for occupant in occupants if is_excluded(occupant)]


def effective_occupants(total: int, excluded: int) -> int:
    """Occupants counted toward quorum, never negative."""

    return max(0, total - excluded)


def quorum_target(effective: int, percentage: float) -> int:
    """Sleepers required to skip: ``ceil(effective * percentage / 100)``."""

    return int(math.ceil(effective * _exact(percentage) / 100))


def needed(effective: int, sleeping: int, percentage: float) -> int:
    """Sleepers still missing before the night can be skipped."""

    return max(0, quorum_target(effective, percentage) - sleeping)


def progress(sleeping: int, target: int) -> float:
    """Fraction of the target already asleep, capped at 1."""

    if target <= 0:
        return 1.0
    return min(1.0, sleeping / float(target))


@dataclass(frozen=True)
class QuorumSnapshot:
    """Quorum figures for one world at one instant."""

    total: int
    excluded: int
    sleeping: int
    percentage: float

    @property
    def effective(self) -> int:
        return effective_occupants(self.total, self.excluded)

    @property
    def target(self) -> int:
        return quorum_target(self.effective, self.percentage)

    @property
    def needed(self) -> int:
        return needed(self.effective, self.sleeping, self.percentage)

    @property
    def progress(self) -> float:
        return progress(self.sleeping, self.target)

    @classmethod
    def capture(
        cls,
        occupants: Sequence[Any],
        is_excluded: Callable[[Any], bool],
        percentage: float,
    ) -> "QuorumSnapshot":
        return cls(
            total=len(occupants),
            excluded=len(excluded_occupants(occupants, is_excluded)),
            sleeping=len(sleeping_occupants(occupants)),
            percentage=percentage,
        )


__all__ = [
    "QuorumSnapshot",
    "effective_occupants",
    "excluded_occupants",
    "needed",
    "progress",
    "quorum_target",
    "sleeping_occupants",
]
