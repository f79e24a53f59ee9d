"""Shared type aliases for healthprobe."""

from __future__ import annotations

from collections.abc import Mapping

# HTTP headers dictionary.
Headers = dict[str, str]

# Read-only headers, as handed to iterations.
ReadOnlyHeaders = Mapping[str, str]

# Think time range (min_seconds, max_seconds).
ThinkTime = tuple[float, float]
