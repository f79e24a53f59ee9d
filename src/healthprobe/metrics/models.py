"""Metric aggregation dataclasses for healthprobe."""

from __future__ import annotations

from dataclasses import dataclass, field

from healthprobe._internal.errors import ConfigError

# NOTE: RequestMetric lives in dsl/http_client.py. Imported here for
# re-export convenience; consumers can import from either location.
from healthprobe.dsl.http_client import RequestMetric

__all__ = [
    "CheckResult",
    "CounterSummary",
    "EndpointMetrics",
    "MetricSnapshot",
    "MetricSummary",
    "RateSummary",
    "RequestMetric",
    "RunResult",
    "ThresholdResult",
    "TrendSummary",
]


def _unsupported(name: str, kind: str, aggregation: str, supported: str) -> ConfigError:
    msg = (
        f"Metric {name!r} is a {kind}; aggregation {aggregation!r} is not "
        f"supported (use {supported})"
    )
    return ConfigError(msg)


@dataclass(frozen=True)
class CounterSummary:
    """Final value of a counter metric.

    Attributes:
        name: Metric name (e.g., "iterations").
        count: Sum of all added values.
        rate: ``count`` per second of run time.
    """

    name: str
    count: float
    rate: float

    kind = "counter"

    def value(self, aggregation: str) -> float:
        if aggregation == "count":
            return self.count
        if aggregation == "rate":
            return self.rate
        raise _unsupported(self.name, self.kind, aggregation, "count or rate")


@dataclass(frozen=True)
class RateSummary:
    """Final value of a rate metric.

    Attributes:
        name: Metric name (e.g., "errors").
        hits: Number of non-zero samples.
        total: Number of samples.
    """

    name: str
    hits: int
    total: int

    kind = "rate"

    @property
    def rate(self) -> float:
        return self.hits / self.total if self.total > 0 else 0.0

    def value(self, aggregation: str) -> float:
        if aggregation == "rate":
            return self.rate
        raise _unsupported(self.name, self.kind, aggregation, "rate")


@dataclass(frozen=True)
class TrendSummary:
    """Final statistics of a trend metric, in milliseconds.

    Attributes:
        name: Metric name (e.g., "http_req_duration").
        count: Number of samples.
        avg: Mean sample value.
        min: Smallest sample value.
        max: Largest sample value.
        percentiles: Sample value keyed by percentile (0-100).
    """

    name: str
    count: int
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    percentiles: dict[float, float] = field(default_factory=dict)

    kind = "trend"

    @property
    def med(self) -> float:
        return self.percentile(50.0)

    def percentile(self, pct: float) -> float:
        """Return the value at *pct*.

        Raises:
            ConfigError: If *pct* was not computed for this summary.
        """
        try:
            return self.percentiles[pct]
        except KeyError:
            msg = f"Percentile {pct:g} was not computed for metric {self.name!r}"
            raise ConfigError(msg) from None

    def value(self, aggregation: str) -> float:
        if aggregation in ("avg", "min", "max", "med"):
            return float(getattr(self, aggregation))
        if aggregation.startswith("p(") and aggregation.endswith(")"):
            return self.percentile(float(aggregation[2:-1]))
        raise _unsupported(self.name, self.kind, aggregation, "avg, min, max, med or p(N)")


MetricSummary = CounterSummary | RateSummary | TrendSummary


@dataclass(frozen=True)
class CheckResult:
    """Pass/fail tally of one named check within a group.

    Attributes:
        group: ``::``-joined group path, empty for top-level checks.
        name: Check name (e.g., "status is 200").
        passes: Number of evaluations that returned true.
        fails: Number of evaluations that returned false.
    """

    group: str
    name: str
    passes: int
    fails: int

    @property
    def pass_rate(self) -> float:
        total = self.passes + self.fails
        return self.passes / total if total > 0 else 0.0


@dataclass(frozen=True)
class ThresholdResult:
    """Outcome of one threshold expression evaluated after the run.

    Attributes:
        metric: Metric the threshold applies to.
        expression: Original expression, e.g. ``"p(95)<500"``.
        observed: Aggregated value the expression was evaluated on, or None
            if the metric received no samples.
        passed: Whether the expression held.
    """

    metric: str
    expression: str
    observed: float | None
    passed: bool


@dataclass
class EndpointMetrics:
    """Aggregated metrics for a single endpoint (logical request name).

    Attributes:
        name: Logical endpoint name (e.g., "Readiness Check").
        request_count: Total number of requests to this endpoint.
        error_count: Number of failed requests (status >= 400 or error).
        error_rate: Fraction of requests that failed (0.0 to 1.0).
        requests_per_second: Requests per second to this endpoint.
        latency_min: Minimum response time in milliseconds.
        latency_max: Maximum response time in milliseconds.
        latency_avg: Mean response time in milliseconds.
        latency_p50: 50th percentile response time in milliseconds.
        latency_p90: 90th percentile response time in milliseconds.
        latency_p95: 95th percentile response time in milliseconds.
        latency_p99: 99th percentile response time in milliseconds.
    """

    name: str
    request_count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    requests_per_second: float = 0.0
    latency_min: float = 0.0
    latency_max: float = 0.0
    latency_avg: float = 0.0
    latency_p50: float = 0.0
    latency_p90: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0


@dataclass
class MetricSnapshot:
    """Point-in-time aggregated request metrics, emitted every tick.

    Attributes:
        timestamp: Monotonic timestamp of the snapshot.
        elapsed_seconds: Seconds since the run started.
        active_users: Number of active virtual users.
        total_requests: Total requests in this interval.
        requests_per_second: Overall RPS in this interval.
        latency_min: Minimum latency in milliseconds.
        latency_max: Maximum latency in milliseconds.
        latency_avg: Mean latency in milliseconds.
        latency_p50: 50th percentile latency (ms).
        latency_p90: 90th percentile latency (ms).
        latency_p95: 95th percentile latency (ms).
        latency_p99: 99th percentile latency (ms).
        total_errors: Total failed requests in this interval.
        error_rate: Fraction of requests that failed (0.0 to 1.0).
        errors_by_status: Error count breakdown by HTTP status code.
        errors_by_type: Error count breakdown by exception type name.
        endpoints: Per-endpoint metrics keyed by endpoint name.
    """

    timestamp: float
    elapsed_seconds: float
    active_users: int
    total_requests: int = 0
    requests_per_second: float = 0.0
    latency_min: float = 0.0
    latency_max: float = 0.0
    latency_avg: float = 0.0
    latency_p50: float = 0.0
    latency_p90: float = 0.0
    latency_p95: float = 0.0
    latency_p99: float = 0.0
    total_errors: int = 0
    error_rate: float = 0.0
    errors_by_status: dict[int, int] = field(default_factory=dict)
    errors_by_type: dict[str, int] = field(default_factory=dict)
    endpoints: dict[str, EndpointMetrics] = field(default_factory=dict)


@dataclass
class RunResult:
    """Complete result of a load run.

    Attributes:
        scenario_name: Name of the scenario that was executed.
        start_time: Monotonic time when the run started.
        end_time: Monotonic time when the run completed.
        duration_seconds: Total wall-clock duration of the run.
        pattern_description: Human-readable description of the load profile.
        snapshots: Time-series of MetricSnapshot objects (one per tick).
        final_summary: Cumulative request metrics for the whole run.
        metrics: Final summary of every metric, keyed by metric name.
        checks: Per-check pass/fail tallies.
        thresholds: Outcome of every declared threshold.
    """

    scenario_name: str
    start_time: float
    end_time: float
    duration_seconds: float
    pattern_description: str
    snapshots: list[MetricSnapshot] = field(default_factory=list)
    final_summary: MetricSnapshot | None = None
    metrics: dict[str, MetricSummary] = field(default_factory=dict)
    checks: list[CheckResult] = field(default_factory=list)
    thresholds: list[ThresholdResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        """True when every threshold passed (vacuously true without thresholds)."""
        return all(t.passed for t in self.thresholds)

    @property
    def failed_thresholds(self) -> list[ThresholdResult]:
        return [t for t in self.thresholds if not t.passed]
