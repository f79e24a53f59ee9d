"""Built-in scenario: ramped load against the three health endpoints."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from healthprobe._internal.config import load_config
from healthprobe._internal.logging import get_logger
from healthprobe.dsl.decorators import scenario, setup, task
from healthprobe.metrics.custom import registry
from healthprobe.probes.context import RunContext
from healthprobe.probes.endpoints import HEALTH_ENDPOINTS, probe_endpoint

if TYPE_CHECKING:
    from healthprobe.dsl.http_client import HttpClient

logger = get_logger("probes.scenario")

ERROR_RATE_METRIC = "errors"


@scenario(
    name="Health Check Endpoints",
    stages=[("30s", 2), ("1m", 4), ("30s", 0)],
    thresholds={
        "http_req_duration": "p(95)<500",
        ERROR_RATE_METRIC: "rate<0.01",
    },
)
class HealthCheckScenario:
    """Probe readiness, liveness and general health once per iteration."""

    error_rate = registry.rate(ERROR_RATE_METRIC)
    pause_seconds = 1.0

    @setup
    async def build_context(self) -> RunContext:
        config = load_config()
        logger.info("Probing %s", config.api_url)
        return RunContext.from_config(config)

    @task(name="health endpoints")
    async def probe_all(self, client: HttpClient, context: RunContext) -> None:
        for endpoint in HEALTH_ENDPOINTS:
            await probe_endpoint(client, context, endpoint, error_rate=self.error_rate)
        await asyncio.sleep(self.pause_seconds)
