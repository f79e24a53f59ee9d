"""Converts a load profile into timed scale commands."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from healthprobe.patterns.stages import StagedPattern

if TYPE_CHECKING:
    from collections.abc import Iterator

    from healthprobe.patterns.base import LoadPattern


class ScaleDirection(Enum):
    """Direction of a concurrency scale event."""

    UP = auto()
    DOWN = auto()
    HOLD = auto()


@dataclass(frozen=True)
class ScaleCommand:
    """A command to adjust the number of active virtual users.

    Attributes:
        elapsed_seconds: Time offset from run start.
        target_concurrency: Desired number of active virtual users.
        direction: Whether this is scaling up, down, or holding steady.
        delta: Absolute change in virtual user count (always >= 0).
        stage: Index of the profile stage active at this tick (0 for
            profiles without stages).
    """

    elapsed_seconds: float
    target_concurrency: int
    direction: ScaleDirection
    delta: int
    stage: int = 0


class Scheduler:
    """Turns ``LoadPattern.iter_concurrency()`` ticks into ``ScaleCommand``s.

    Args:
        pattern: The load profile to follow.
        tick_interval: Seconds between concurrency adjustments.
    """

    def __init__(self, pattern: LoadPattern, tick_interval: float = 1.0) -> None:
        self._pattern = pattern
        self._tick_interval = tick_interval

    def iter_commands(self) -> Iterator[ScaleCommand]:
        """Yield one ScaleCommand per tick, with the change from the previous tick."""
        prev_concurrency = 0
        for elapsed, target in self._pattern.iter_concurrency(self._tick_interval):
            delta = target - prev_concurrency
            if delta > 0:
                direction = ScaleDirection.UP
            elif delta < 0:
                direction = ScaleDirection.DOWN
            else:
                direction = ScaleDirection.HOLD

            yield ScaleCommand(
                elapsed_seconds=elapsed,
                target_concurrency=target,
                direction=direction,
                delta=abs(delta),
                stage=self._stage_at(elapsed),
            )
            prev_concurrency = target

    def _stage_at(self, elapsed: float) -> int:
        if isinstance(self._pattern, StagedPattern):
            return self._pattern.stage_at(elapsed)
        return 0

    @property
    def duration_seconds(self) -> float:
        return self._pattern.duration_seconds
