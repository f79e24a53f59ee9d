"""Process entry point: uvloop, logging, and one load session."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from healthprobe._internal.logging import get_logger, setup_logging
from healthprobe.engine.session import LoadSession

if TYPE_CHECKING:
    from collections.abc import Callable

    from healthprobe.dsl.scenario import ScenarioDefinition
    from healthprobe.metrics.models import MetricSnapshot, RunResult
    from healthprobe.metrics.thresholds import Threshold
    from healthprobe.patterns.base import LoadPattern

logger = get_logger("engine.worker")


def _install_uvloop() -> None:
    """Install uvloop as the default event loop policy if available.

    Falls back silently to the default asyncio event loop on Windows
    or if uvloop is not installed.
    """
    if sys.platform == "win32":
        return

    try:
        import uvloop

        uvloop.install()
        logger.debug("uvloop installed as event loop policy")
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")


def run_scenario(
    scenario: ScenarioDefinition,
    *,
    pattern: LoadPattern | None = None,
    thresholds: list[Threshold] | None = None,
    tick_interval: float = 1.0,
    request_timeout: float | None = None,
    on_snapshot: Callable[[MetricSnapshot], None] | None = None,
    log_level: int = logging.INFO,
    json_logs: bool = False,
) -> RunResult:
    """Execute a scenario to completion in the current process.

    Installs uvloop, configures logging, creates a ``LoadSession`` and runs
    it inside a fresh event loop.

    Args:
        scenario: The scenario definition to execute.
        pattern: Load profile override. Defaults to the scenario's stages.
        thresholds: Threshold override. Defaults to the scenario's.
        tick_interval: Seconds between concurrency adjustments.
        request_timeout: Per-request timeout in seconds. Defaults to
            ``HEALTHPROBE_TIMEOUT``.
        on_snapshot: Optional callback invoked with each tick snapshot.
        log_level: Logging level for the ``healthprobe`` logger.
        json_logs: Emit logs as JSON lines.

    Returns:
        RunResult containing snapshots, summaries and threshold outcomes.

    Raises:
        ConfigError: If a threshold cannot be evaluated against the metrics.
        EngineError: If the run fails to execute.
    """
    _install_uvloop()
    setup_logging(level=log_level, json_format=json_logs)

    return asyncio.run(
        _run_session(
            scenario,
            pattern=pattern,
            thresholds=thresholds,
            tick_interval=tick_interval,
            request_timeout=request_timeout,
            on_snapshot=on_snapshot,
        )
    )


async def _run_session(
    scenario: ScenarioDefinition,
    *,
    pattern: LoadPattern | None,
    thresholds: list[Threshold] | None,
    tick_interval: float,
    request_timeout: float | None,
    on_snapshot: Callable[[MetricSnapshot], None] | None,
) -> RunResult:
    session = LoadSession(
        scenario,
        pattern=pattern,
        thresholds=thresholds,
        tick_interval=tick_interval,
        request_timeout=request_timeout,
        on_snapshot=on_snapshot,
    )
    return await session.run()
