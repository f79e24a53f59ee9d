"""Thread-safe metric primitives and the global metric registry.

Scenario code obtains metrics by name from the module-level ``registry``::

    from healthprobe.metrics.custom import registry

    error_rate = registry.rate("errors")
    error_rate.add(1)

Every ``add`` is guarded by a ``threading.Lock``, so increments from any
number of concurrent virtual users are never lost.  Metrics are get-or-create:
importing the same scenario module twice yields the same objects, and the
engine resets their values at the start of each run.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import TypeVar

from hdrh.histogram import HdrHistogram  # type: ignore[import-untyped]

from healthprobe._internal.errors import ConfigError
from healthprobe.metrics.models import (
    CheckResult,
    CounterSummary,
    MetricSummary,
    RateSummary,
    TrendSummary,
)

# Trend range: 1 microsecond to 60 seconds (stored in microseconds)
_LOWEST_TRACKABLE_US = 1
_HIGHEST_TRACKABLE_US = 60_000_000
_SIGNIFICANT_DIGITS = 3

DEFAULT_PERCENTILES = (50.0, 90.0, 95.0, 99.0)

_M = TypeVar("_M", bound="Metric")


class Metric(ABC):
    """Base class for named, resettable metrics."""

    kind: str = ""

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()

    @abstractmethod
    def reset(self) -> None:
        """Discard all recorded samples."""

    @abstractmethod
    def summary(
        self,
        elapsed_seconds: float,
        percentiles: tuple[float, ...] = DEFAULT_PERCENTILES,
    ) -> MetricSummary:
        """Return the aggregated value of this metric.

        Args:
            elapsed_seconds: Run time, used by per-second rates.
            percentiles: Percentiles to compute for trends.
        """


class Counter(Metric):
    """Monotonically increasing sum (e.g., number of iterations)."""

    kind = "counter"

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._count = 0.0

    @property
    def count(self) -> float:
        with self._lock:
            return self._count

    def add(self, value: float = 1) -> None:
        """Add *value* to the counter.

        Raises:
            ValueError: If *value* is negative.
        """
        if value < 0:
            msg = f"Counter {self.name!r} cannot be decremented (got {value})"
            raise ValueError(msg)
        with self._lock:
            self._count += value

    def reset(self) -> None:
        with self._lock:
            self._count = 0.0

    def summary(
        self,
        elapsed_seconds: float,
        percentiles: tuple[float, ...] = DEFAULT_PERCENTILES,  # noqa: ARG002
    ) -> CounterSummary:
        count = self.count
        rate = count / elapsed_seconds if elapsed_seconds > 0 else 0.0
        return CounterSummary(name=self.name, count=count, rate=rate)


class Rate(Metric):
    """Fraction of samples that are non-zero.

    ``add(1)`` (or any truthy value) counts a hit, ``add(0)`` counts a miss;
    both count towards the total.
    """

    kind = "rate"

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._hits = 0
        self._total = 0

    @property
    def hits(self) -> int:
        with self._lock:
            return self._hits

    @property
    def total(self) -> int:
        with self._lock:
            return self._total

    @property
    def rate(self) -> float:
        with self._lock:
            return self._hits / self._total if self._total > 0 else 0.0

    def add(self, value: float | bool) -> None:
        with self._lock:
            self._total += 1
            if value:
                self._hits += 1

    def reset(self) -> None:
        with self._lock:
            self._hits = 0
            self._total = 0

    def summary(
        self,
        elapsed_seconds: float,  # noqa: ARG002
        percentiles: tuple[float, ...] = DEFAULT_PERCENTILES,  # noqa: ARG002
    ) -> RateSummary:
        with self._lock:
            return RateSummary(name=self.name, hits=self._hits, total=self._total)


class Trend(Metric):
    """Distribution of millisecond samples backed by an HDR histogram.

    Values are stored as integer microseconds and clamped to the trackable
    range (1 µs to 60 s).
    """

    kind = "trend"

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._histogram: HdrHistogram = HdrHistogram(  # type: ignore[no-any-unimported]
            _LOWEST_TRACKABLE_US, _HIGHEST_TRACKABLE_US, _SIGNIFICANT_DIGITS
        )

    @property
    def count(self) -> int:
        with self._lock:
            return int(self._histogram.total_count)

    def add(self, value_ms: float) -> None:
        value_us = int(value_ms * 1000)
        value_us = max(_LOWEST_TRACKABLE_US, min(value_us, _HIGHEST_TRACKABLE_US))
        with self._lock:
            self._histogram.record_value(value_us)

    def reset(self) -> None:
        with self._lock:
            self._histogram.reset()

    def summary(
        self,
        elapsed_seconds: float,  # noqa: ARG002
        percentiles: tuple[float, ...] = DEFAULT_PERCENTILES,
    ) -> TrendSummary:
        wanted = sorted({50.0, *percentiles})
        with self._lock:
            count = int(self._histogram.total_count)
            if count == 0:
                return TrendSummary(
                    name=self.name,
                    count=0,
                    percentiles=dict.fromkeys(wanted, 0.0),
                )
            return TrendSummary(
                name=self.name,
                count=count,
                avg=float(self._histogram.get_mean_value()) / 1000.0,
                min=float(self._histogram.get_min_value()) / 1000.0,
                max=float(self._histogram.get_max_value()) / 1000.0,
                percentiles={
                    pct: float(self._histogram.get_value_at_percentile(pct)) / 1000.0
                    for pct in wanted
                },
            )


class CheckTally:
    """Pass/fail counts per ``(group, check name)``."""

    def __init__(self) -> None:
        self._counts: dict[tuple[str, str], list[int]] = defaultdict(lambda: [0, 0])
        self._lock = threading.Lock()

    def record(self, group: str, name: str, *, passed: bool) -> None:
        with self._lock:
            self._counts[(group, name)][0 if passed else 1] += 1

    def results(self) -> list[CheckResult]:
        """Return tallies in first-seen order."""
        with self._lock:
            return [
                CheckResult(group=group, name=name, passes=passes, fails=fails)
                for (group, name), (passes, fails) in self._counts.items()
            ]

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()


class MetricRegistry:
    """Registry of named metrics shared by the engine and scenario code.

    Built-in metrics (``http_reqs``, ``http_req_duration``,
    ``http_req_failed``, ``checks``, ``iterations``, ``iteration_duration``)
    are created up front; custom ones on first request.
    """

    def __init__(self) -> None:
        self._metrics: dict[str, Metric] = {}
        self._lock = threading.Lock()
        self.check_tally = CheckTally()
        self._register_builtins()

    def _register_builtins(self) -> None:
        self.http_reqs = self.counter("http_reqs")
        self.http_req_duration = self.trend("http_req_duration")
        self.http_req_failed = self.rate("http_req_failed")
        self.checks = self.rate("checks")
        self.iterations = self.counter("iterations")
        self.iteration_duration = self.trend("iteration_duration")

    def counter(self, name: str) -> Counter:
        return self._get_or_create(name, Counter)

    def rate(self, name: str) -> Rate:
        return self._get_or_create(name, Rate)

    def trend(self, name: str) -> Trend:
        return self._get_or_create(name, Trend)

    def _get_or_create(self, name: str, cls: type[_M]) -> _M:
        with self._lock:
            existing = self._metrics.get(name)
            if existing is None:
                metric = cls(name)
                self._metrics[name] = metric
                return metric
        if not isinstance(existing, cls):
            msg = f"Metric {name!r} is already registered as a {existing.kind}, not a {cls.kind}"
            raise ConfigError(msg)
        return existing

    def get(self, name: str) -> Metric | None:
        with self._lock:
            return self._metrics.get(name)

    def get_all(self) -> list[Metric]:
        with self._lock:
            return list(self._metrics.values())

    def reset(self) -> None:
        """Zero every metric and check tally, keeping registrations."""
        for metric in self.get_all():
            metric.reset()
        self.check_tally.reset()

    def summaries(
        self,
        elapsed_seconds: float,
        percentiles: tuple[float, ...] = DEFAULT_PERCENTILES,
    ) -> dict[str, MetricSummary]:
        """Summarize every registered metric, keyed by name."""
        return {
            metric.name: metric.summary(elapsed_seconds, percentiles)
            for metric in self.get_all()
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._metrics)


# Global singleton registry.
registry = MetricRegistry()
