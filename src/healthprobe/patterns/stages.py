"""Staged load profile: piecewise-linear ramps between target user counts."""

from __future__ import annotations

import itertools
import math
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from healthprobe._internal.errors import ConfigError
from healthprobe.patterns.base import LoadPattern, _validate_non_negative, _validate_positive

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

# Float tolerance when comparing tick times against the profile end.
_EPSILON = 1e-9


def parse_duration(value: str | float) -> float:
    """Convert a duration such as ``"30s"``, ``"1m30s"`` or ``45`` to seconds.

    Bare numbers (and numeric strings) are taken as seconds.

    Args:
        value: Duration as seconds or as a string of ``<number><unit>`` parts
            with units ``ms``, ``s``, ``m`` or ``h``.

    Returns:
        Duration in seconds.

    Raises:
        ConfigError: If the string is malformed or the duration is negative.
    """
    if isinstance(value, int | float):
        seconds = float(value)
    else:
        text = value.strip()
        try:
            seconds = float(text)
        except ValueError:
            seconds = _parse_duration_string(text)

    _validate_non_negative(seconds, "duration")
    return seconds


def _parse_duration_string(text: str) -> float:
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        msg = f"Invalid duration {text!r}; expected e.g. '30s', '1m', '1m30s' or '500ms'"
        raise ConfigError(msg)
    return total


def format_duration(seconds: float) -> str:
    """Render *seconds* in the compact ``1m30s`` form used by :func:`parse_duration`."""
    if 0 < seconds < 1:
        return f"{seconds * 1000:g}ms"
    minutes, secs = divmod(seconds, 60.0)
    if minutes and secs:
        return f"{minutes:g}m{secs:g}s"
    if minutes:
        return f"{minutes:g}m"
    return f"{secs:g}s"


@dataclass(frozen=True)
class Stage:
    """One segment of a staged profile.

    Attributes:
        duration: Seconds spent moving from the previous target to ``target``.
        target: Virtual user count reached at the end of the stage.
    """

    duration: float
    target: int

    def __post_init__(self) -> None:
        _validate_non_negative(self.duration, "stage duration")
        _validate_non_negative(self.target, "stage target")

    @classmethod
    def parse(cls, text: str) -> Stage:
        """Build a stage from ``"<duration>:<target>"``, e.g. ``"30s:2"``.

        Raises:
            ConfigError: If the text is not of that form.
        """
        duration_str, sep, target_str = text.rpartition(":")
        if not sep or not duration_str:
            msg = f"Stage must look like '<duration>:<target>', got {text!r}"
            raise ConfigError(msg)
        try:
            target = int(target_str)
        except ValueError:
            msg = f"Stage target must be an integer, got {target_str!r}"
            raise ConfigError(msg) from None
        return cls(duration=parse_duration(duration_str), target=target)


class StagedPattern(LoadPattern):
    """Ramp concurrency linearly through a sequence of stages.

    The profile starts at 0 users.  During each stage the target moves
    linearly from the previous stage's target to this stage's target;
    a zero-duration stage jumps straight to its target.  Values are rounded
    half up to the nearest integer.

    Args:
        stages: Sequence of :class:`Stage` or ``(duration, target)`` tuples,
            where *duration* is seconds or a string accepted by
            :func:`parse_duration`.

    Raises:
        ConfigError: If *stages* is empty, any value is negative, or the total
            duration is zero.

    Example::

        pattern = StagedPattern([("30s", 2), ("1m", 4), ("30s", 0)])
        assert pattern.duration_seconds == 120.0
        assert pattern.target_at(30.0) == 2
        assert pattern.target_at(90.0) == 4
    """

    def __init__(self, stages: Sequence[Stage | tuple[str | float, int]]) -> None:
        if not stages:
            msg = "stages must contain at least one (duration, target) entry"
            raise ConfigError(msg)

        normalized: list[Stage] = []
        for stage in stages:
            if isinstance(stage, Stage):
                normalized.append(stage)
            else:
                duration, target = stage
                normalized.append(Stage(duration=parse_duration(duration), target=target))

        total = sum(s.duration for s in normalized)
        _validate_positive(total, "total stage duration")

        self._stages = tuple(normalized)
        self._total = total

    @property
    def stages(self) -> tuple[Stage, ...]:
        return self._stages

    @property
    def duration_seconds(self) -> float:
        return self._total

    @property
    def max_target(self) -> int:
        """Highest target reached by any stage."""
        return max(s.target for s in self._stages)

    def target_at(self, elapsed: float) -> int:
        """Return the interpolated user count at *elapsed* seconds."""
        start = 0.0
        previous = 0
        for stage in self._stages:
            end = start + stage.duration
            if elapsed < end:
                fraction = (elapsed - start) / stage.duration
                return math.floor(previous + (stage.target - previous) * fraction + 0.5)
            previous = stage.target
            start = end
        return previous

    def stage_at(self, elapsed: float) -> int:
        """Return the index of the stage active at *elapsed* seconds.

        After the profile ends the last index is returned.
        """
        start = 0.0
        for index, stage in enumerate(self._stages):
            start += stage.duration
            if elapsed < start:
                return index
        return len(self._stages) - 1

    def iter_concurrency(
        self,
        tick_interval: float = 1.0,
    ) -> Iterator[tuple[float, int]]:
        """Yield ``(elapsed, target_concurrency)`` from 0 to the profile end.

        Args:
            tick_interval: Seconds between ticks.

        Yields:
            ``(elapsed_seconds, target_concurrency)`` tuples.
        """
        _validate_positive(tick_interval, "tick_interval")
        last_elapsed = 0.0
        for tick in itertools.count():
            elapsed = tick * tick_interval
            if elapsed > self._total + _EPSILON:
                break
            last_elapsed = elapsed
            yield (elapsed, max(self.target_at(elapsed), 0))

        # Finish on the final target even when the profile is off the tick grid
        if last_elapsed < self._total - _EPSILON:
            yield (self._total, self._stages[-1].target)

    def describe(self) -> str:
        parts = ", ".join(f"{format_duration(s.duration)} -> {s.target}" for s in self._stages)
        return f"Stages: {parts} ({format_duration(self._total)} total)"
