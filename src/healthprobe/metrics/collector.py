"""Request metric collection for a load session."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from typing import TYPE_CHECKING

import numpy as np

from healthprobe._internal.logging import get_logger
from healthprobe.metrics.custom import Trend, registry
from healthprobe.metrics.models import EndpointMetrics, MetricSnapshot

if TYPE_CHECKING:
    from healthprobe.dsl.http_client import RequestMetric
    from healthprobe.metrics.custom import MetricRegistry

logger = get_logger("metrics.collector")

_PERCENTILES = (50.0, 90.0, 95.0, 99.0)


def is_failed_request(metric: RequestMetric) -> bool:
    """A request fails on a transport error or an HTTP status >= 400."""
    return metric.error is not None or metric.status_code >= 400


def _compute_percentiles(
    latencies: list[float],
) -> tuple[float, float, float, float, float, float, float]:
    """Compute interval latency statistics.

    Args:
        latencies: Latency values in milliseconds.

    Returns:
        Tuple of (min, max, avg, p50, p90, p95, p99).
    """
    if not latencies:
        return (0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    arr = np.array(latencies, dtype=np.float64)
    p50, p90, p95, p99 = np.percentile(arr, _PERCENTILES)

    return (
        float(np.min(arr)),
        float(np.max(arr)),
        float(np.mean(arr)),
        float(p50),
        float(p90),
        float(p95),
        float(p99),
    )


class _EndpointTotals:
    """Cumulative per-endpoint counts and latency distribution."""

    def __init__(self, name: str) -> None:
        self.latency = Trend(name)
        self.requests = 0
        self.errors = 0


class MetricCollector:
    """Collects ``RequestMetric`` objects for one load session.

    ``record`` is passed to every ``HttpClient`` as its metric callback.
    Each request updates the cumulative built-in metrics
    (``http_reqs``, ``http_req_duration``, ``http_req_failed``) right away
    and is buffered for the next per-tick ``flush``.

    Per-tick snapshots are computed with numpy over the drained buffer;
    the cumulative snapshot comes from HDR histograms, so memory does not
    grow with the number of requests.
    """

    def __init__(self, metrics: MetricRegistry | None = None) -> None:
        """Initialize the collector.

        Args:
            metrics: Registry holding the built-in request metrics.
                Defaults to the global registry.
        """
        self._metrics = metrics if metrics is not None else registry
        self._buffer: deque[RequestMetric] = deque()
        self._last_flush_time = time.monotonic()
        self._lock = threading.Lock()
        self._endpoints: dict[str, _EndpointTotals] = {}
        self._errors_by_status: dict[int, int] = defaultdict(int)
        self._errors_by_type: dict[str, int] = defaultdict(int)

    @property
    def pending_count(self) -> int:
        """Return the number of metrics waiting for the next flush."""
        return len(self._buffer)

    def record(self, metric: RequestMetric) -> None:
        """Record one request.

        Args:
            metric: The request metric to record.
        """
        failed = is_failed_request(metric)

        self._metrics.http_reqs.add(1)
        self._metrics.http_req_duration.add(metric.latency_ms)
        self._metrics.http_req_failed.add(failed)

        with self._lock:
            totals = self._endpoints.get(metric.name)
            if totals is None:
                totals = self._endpoints[metric.name] = _EndpointTotals(metric.name)
            totals.requests += 1
            totals.latency.add(metric.latency_ms)
            if failed:
                totals.errors += 1
                _count_error(metric, self._errors_by_status, self._errors_by_type)

        self._buffer.append(metric)

    def flush(
        self,
        elapsed_seconds: float,
        active_users: int,
    ) -> MetricSnapshot:
        """Drain the buffer and compute a snapshot for the interval.

        Args:
            elapsed_seconds: Seconds elapsed since the run started.
            active_users: Current number of active virtual users.

        Returns:
            A MetricSnapshot over the metrics recorded since the last flush.
        """
        drained: list[RequestMetric] = []
        while self._buffer:
            drained.append(self._buffer.popleft())

        now = time.monotonic()
        interval = max(now - self._last_flush_time, 0.001)
        self._last_flush_time = now

        return self._build_interval_snapshot(drained, elapsed_seconds, active_users, interval)

    def get_cumulative_snapshot(
        self,
        elapsed_seconds: float,
        active_users: int,
    ) -> MetricSnapshot:
        """Return a snapshot over every request recorded since creation.

        Does not drain the buffer.

        Args:
            elapsed_seconds: Total elapsed seconds, used for RPS.
            active_users: Active virtual user count to report.

        Returns:
            A cumulative MetricSnapshot.
        """
        interval = max(elapsed_seconds, 0.001)
        overall = self._metrics.http_req_duration.summary(interval, _PERCENTILES)

        with self._lock:
            endpoints = {
                name: _endpoint_from_totals(totals, interval)
                for name, totals in self._endpoints.items()
            }
            total_errors = sum(t.errors for t in self._endpoints.values())
            errors_by_status = dict(self._errors_by_status)
            errors_by_type = dict(self._errors_by_type)

        total_requests = overall.count
        return MetricSnapshot(
            timestamp=time.monotonic(),
            elapsed_seconds=elapsed_seconds,
            active_users=active_users,
            total_requests=total_requests,
            requests_per_second=total_requests / interval,
            latency_min=overall.min,
            latency_max=overall.max,
            latency_avg=overall.avg,
            latency_p50=overall.percentile(50.0),
            latency_p90=overall.percentile(90.0),
            latency_p95=overall.percentile(95.0),
            latency_p99=overall.percentile(99.0),
            total_errors=total_errors,
            error_rate=total_errors / total_requests if total_requests > 0 else 0.0,
            errors_by_status=errors_by_status,
            errors_by_type=errors_by_type,
            endpoints=endpoints,
        )

    def reset(self) -> None:
        """Clear all internal state. Primarily for testing."""
        self._buffer.clear()
        with self._lock:
            self._endpoints.clear()
            self._errors_by_status.clear()
            self._errors_by_type.clear()
        self._last_flush_time = time.monotonic()

    def _build_interval_snapshot(
        self,
        metrics: list[RequestMetric],
        elapsed_seconds: float,
        active_users: int,
        interval: float,
    ) -> MetricSnapshot:
        if not metrics:
            return MetricSnapshot(
                timestamp=time.monotonic(),
                elapsed_seconds=elapsed_seconds,
                active_users=active_users,
            )

        by_endpoint: dict[str, list[RequestMetric]] = defaultdict(list)
        errors_by_status: dict[int, int] = defaultdict(int)
        errors_by_type: dict[str, int] = defaultdict(int)
        total_errors = 0

        for metric in metrics:
            by_endpoint[metric.name].append(metric)
            if is_failed_request(metric):
                total_errors += 1
                _count_error(metric, errors_by_status, errors_by_type)

        lat_min, lat_max, lat_avg, lat_p50, lat_p90, lat_p95, lat_p99 = _compute_percentiles(
            [m.latency_ms for m in metrics]
        )

        endpoints: dict[str, EndpointMetrics] = {}
        for name, ep_metrics in by_endpoint.items():
            ep_count = len(ep_metrics)
            ep_errors = sum(1 for m in ep_metrics if is_failed_request(m))
            ep_min, ep_max, ep_avg, ep_p50, ep_p90, ep_p95, ep_p99 = _compute_percentiles(
                [m.latency_ms for m in ep_metrics]
            )
            endpoints[name] = EndpointMetrics(
                name=name,
                request_count=ep_count,
                error_count=ep_errors,
                error_rate=ep_errors / ep_count,
                requests_per_second=ep_count / interval,
                latency_min=ep_min,
                latency_max=ep_max,
                latency_avg=ep_avg,
                latency_p50=ep_p50,
                latency_p90=ep_p90,
                latency_p95=ep_p95,
                latency_p99=ep_p99,
            )

        total_requests = len(metrics)
        return MetricSnapshot(
            timestamp=time.monotonic(),
            elapsed_seconds=elapsed_seconds,
            active_users=active_users,
            total_requests=total_requests,
            requests_per_second=total_requests / interval,
            latency_min=lat_min,
            latency_max=lat_max,
            latency_avg=lat_avg,
            latency_p50=lat_p50,
            latency_p90=lat_p90,
            latency_p95=lat_p95,
            latency_p99=lat_p99,
            total_errors=total_errors,
            error_rate=total_errors / total_requests,
            errors_by_status=dict(errors_by_status),
            errors_by_type=dict(errors_by_type),
            endpoints=endpoints,
        )


def _count_error(
    metric: RequestMetric,
    by_status: dict[int, int],
    by_type: dict[str, int],
) -> None:
    if metric.status_code >= 400:
        by_status[metric.status_code] += 1
    if metric.error is not None:
        # "ClientConnectorError: Cannot connect..." -> "ClientConnectorError"
        by_type[metric.error.split(":")[0].strip()] += 1


def _endpoint_from_totals(totals: _EndpointTotals, interval: float) -> EndpointMetrics:
    latency = totals.latency.summary(interval, _PERCENTILES)
    return EndpointMetrics(
        name=latency.name,
        request_count=totals.requests,
        error_count=totals.errors,
        error_rate=totals.errors / totals.requests if totals.requests > 0 else 0.0,
        requests_per_second=totals.requests / interval,
        latency_min=latency.min,
        latency_max=latency.max,
        latency_avg=latency.avg,
        latency_p50=latency.percentile(50.0),
        latency_p90=latency.percentile(90.0),
        latency_p95=latency.percentile(95.0),
        latency_p99=latency.percentile(99.0),
    )
