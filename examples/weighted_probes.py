"""Liveness-heavy health probe mix with a stricter latency budget.

Each iteration probes one endpoint, picked by weight: liveness is polled
three times as often as readiness, mirroring how an orchestrator checks a
pod.  Run with:

    HEALTHPROBE_API_URL=http://localhost:8080 \\
        healthprobe run examples/weighted_probes.py
"""

from __future__ import annotations

import logging

from healthprobe import HttpClient, registry, scenario, setup, task, teardown
from healthprobe._internal.config import load_config
from healthprobe.probes.context import RunContext
from healthprobe.probes.endpoints import LIVENESS, READINESS, probe_endpoint

logger = logging.getLogger("healthprobe.examples.weighted_probes")

GROUP = "Orchestrator Probes"


@scenario(
    name="Weighted Health Probes",
    stages=[("20s", 5), ("1m", 5), ("10s", 0)],
    thresholds={
        "http_req_duration": ["p(95)<200", "p(99)<400"],
        "errors": "rate<0.01",
        "checks": "rate>0.99",
    },
    think_time=(0.5, 1.5),
)
class WeightedProbeScenario:
    """Poll liveness often and readiness occasionally."""

    error_rate = registry.rate("errors")

    @setup
    async def on_start(self) -> RunContext:
        """Read the target and headers from HEALTHPROBE_* variables."""
        return RunContext.from_config(load_config())

    @task(weight=3, name="liveness")
    async def liveness(self, client: HttpClient, context: RunContext) -> None:
        await probe_endpoint(client, context, LIVENESS, error_rate=self.error_rate, parent_group=GROUP)

    @task(weight=1, name="readiness")
    async def readiness(self, client: HttpClient, context: RunContext) -> None:
        await probe_endpoint(client, context, READINESS, error_rate=self.error_rate, parent_group=GROUP)

    @teardown
    async def on_stop(self, context: RunContext) -> None:
        logger.info(
            "Finished probing %s: error rate %.2f%% over %d probes",
            context.api_url,
            self.error_rate.rate * 100,
            self.error_rate.total,
        )
