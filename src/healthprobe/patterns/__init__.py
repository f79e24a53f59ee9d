"""Load profiles for healthprobe.

A load profile defines how the number of active virtual users changes over
the course of a run.  All profiles implement the :class:`LoadPattern`
interface and yield ``(elapsed_seconds, target_concurrency)`` tuples via
:meth:`LoadPattern.iter_concurrency`.
"""

from __future__ import annotations

from healthprobe.patterns.base import LoadPattern
from healthprobe.patterns.stages import Stage, StagedPattern, format_duration, parse_duration

__all__ = [
    "LoadPattern",
    "Stage",
    "StagedPattern",
    "format_duration",
    "parse_duration",
]
