"""healthprobe: ramped load tests against service health endpoints."""

from __future__ import annotations

from healthprobe.dsl.checks import check, group_path
from healthprobe.dsl.decorators import scenario, setup, task, teardown
from healthprobe.dsl.http_client import HttpClient, RequestMetric
from healthprobe.metrics.custom import registry
from healthprobe.patterns.base import LoadPattern
from healthprobe.patterns.stages import Stage, StagedPattern

__version__ = "0.1.0"

__all__ = [
    "HttpClient",
    "LoadPattern",
    "RequestMetric",
    "Stage",
    "StagedPattern",
    "check",
    "group_path",
    "registry",
    "scenario",
    "setup",
    "task",
    "teardown",
]
