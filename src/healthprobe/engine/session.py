"""Load session lifecycle: setup, ramping virtual users, teardown, thresholds."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
import time
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from healthprobe._internal.config import load_config
from healthprobe._internal.errors import EngineError
from healthprobe._internal.logging import get_logger
from healthprobe.dsl.http_client import HttpClient
from healthprobe.engine._user_utils import pick_weighted_task, shutdown_all_users, think_seconds
from healthprobe.engine.scheduler import ScaleDirection, Scheduler
from healthprobe.metrics.collector import MetricCollector
from healthprobe.metrics.custom import DEFAULT_PERCENTILES, registry
from healthprobe.metrics.models import MetricSnapshot, RunResult
from healthprobe.metrics.thresholds import (
    evaluate_thresholds,
    required_percentiles,
    validate_thresholds,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from healthprobe.dsl.scenario import ScenarioDefinition
    from healthprobe.metrics.thresholds import Threshold
    from healthprobe.patterns.base import LoadPattern

logger = get_logger("engine.session")


class SessionState(Enum):
    """State machine for a load session."""

    CREATED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()
    COMPLETED = auto()
    FAILED = auto()


class LoadSession:
    """Runs one scenario through its load profile in the current event loop.

    The setup hook runs once and its return value (the run context) is
    handed to every iteration of every virtual user.  Virtual users are
    asyncio tasks, spawned and cancelled (newest first) as the profile
    ramps.  After the profile ends, users finish their current iteration
    (or are cancelled after a grace period), the teardown hook runs once,
    and thresholds are evaluated against the accumulated metrics.

    State machine: CREATED -> STARTING -> RUNNING -> STOPPING -> COMPLETED
                                       -> FAILED (on error)

    Attributes:
        scenario: The scenario being executed.
    """

    def __init__(
        self,
        scenario: ScenarioDefinition,
        *,
        pattern: LoadPattern | None = None,
        thresholds: list[Threshold] | None = None,
        tick_interval: float = 1.0,
        request_timeout: float | None = None,
        on_snapshot: Callable[[MetricSnapshot], None] | None = None,
        handle_signals: bool = True,
    ) -> None:
        """Initialize a load session.

        Args:
            scenario: The scenario definition to execute.
            pattern: Load profile override. Defaults to the scenario's.
            thresholds: Threshold override. Defaults to the scenario's.
            tick_interval: Seconds between concurrency adjustments.
            request_timeout: Per-request timeout in seconds. Defaults to
                ``HEALTHPROBE_TIMEOUT`` as read by ``load_config()``.
            on_snapshot: Optional callback invoked with each tick snapshot.
            handle_signals: Install SIGINT/SIGTERM handlers for graceful stop.
        """
        self.scenario = scenario
        self._pattern = pattern if pattern is not None else scenario.pattern
        self._thresholds = thresholds if thresholds is not None else list(scenario.thresholds)
        self._tick_interval = tick_interval
        self._request_timeout = request_timeout
        # Scenario code writes its checks and custom metrics to the global registry
        self._metrics = registry
        self._on_snapshot = on_snapshot
        self._handle_signals = handle_signals

        self._state = SessionState.CREATED
        self._collector = MetricCollector(self._metrics)
        self._user_tasks: list[tuple[int, asyncio.Task[None]]] = []
        self._next_user_id = 0
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def active_user_count(self) -> int:
        return len(self._user_tasks)

    @property
    def pattern(self) -> LoadPattern:
        return self._pattern

    @property
    def thresholds(self) -> list[Threshold]:
        return list(self._thresholds)

    async def run(self) -> RunResult:
        """Execute the full session lifecycle.

        Returns:
            RunResult with snapshots, metric summaries, check tallies and
            threshold outcomes.

        Raises:
            ConfigError: If a threshold names an unknown metric or an
                unsupported aggregation, or if no request timeout was given
                and ``HEALTHPROBE_TIMEOUT`` is invalid.
            EngineError: If the setup hook fails or the session hits an
                unrecoverable error.
        """
        self._state = SessionState.STARTING
        logger.info(
            "Starting session: scenario=%s, profile=%s",
            self.scenario.name,
            self._pattern.describe(),
        )

        if self._request_timeout is None:
            self._request_timeout = load_config().request_timeout

        self._metrics.reset()
        validate_thresholds(
            self._thresholds,
            {m.name: m.kind for m in self._metrics.get_all()},
        )

        context = await self._run_setup()

        if self._handle_signals:
            self._install_signal_handlers()

        scheduler = Scheduler(self._pattern, self._tick_interval)
        start_time = time.monotonic()
        snapshots: list[MetricSnapshot] = []
        current_stage = -1

        self._state = SessionState.RUNNING

        try:
            for command in scheduler.iter_commands():
                if self._stop_event.is_set():
                    break

                target_time = start_time + command.elapsed_seconds
                now = time.monotonic()
                if target_time > now:
                    await asyncio.sleep(target_time - now)

                if self._stop_event.is_set():
                    break

                if command.stage != current_stage:
                    current_stage = command.stage
                    logger.info(
                        "Stage %d started at %.1fs (target %d users)",
                        current_stage + 1,
                        command.elapsed_seconds,
                        command.target_concurrency,
                    )

                if command.direction is not ScaleDirection.HOLD:
                    await self._scale_users(command.target_concurrency, context)

                elapsed = time.monotonic() - start_time
                snapshot = self._collector.flush(
                    elapsed_seconds=elapsed,
                    active_users=self.active_user_count,
                )
                snapshots.append(snapshot)
                if self._on_snapshot is not None:
                    self._on_snapshot(snapshot)

                logger.debug(
                    "Tick %.1fs: users=%d, rps=%.1f, p95=%.1fms, failed=%d",
                    elapsed,
                    self.active_user_count,
                    snapshot.requests_per_second,
                    snapshot.latency_p95,
                    snapshot.total_errors,
                )

        except Exception as exc:
            self._state = SessionState.FAILED
            logger.exception("Load session failed")
            raise EngineError("Load session failed") from exc
        finally:
            if self._state != SessionState.FAILED:
                self._state = SessionState.STOPPING
            await shutdown_all_users(self._user_tasks, self._stop_event)
            await self._run_teardown(context)
            if self._handle_signals:
                self._remove_signal_handlers()

        end_time = time.monotonic()
        total_duration = end_time - start_time

        self._collector.flush(elapsed_seconds=total_duration, active_users=0)
        final_summary = self._collector.get_cumulative_snapshot(
            elapsed_seconds=total_duration,
            active_users=0,
        )

        percentiles = tuple(
            sorted({*DEFAULT_PERCENTILES, *required_percentiles(self._thresholds)})
        )
        summaries = self._metrics.summaries(total_duration, percentiles)
        threshold_results = evaluate_thresholds(self._thresholds, summaries)

        for result in threshold_results:
            log = logger.info if result.passed else logger.warning
            log(
                "Threshold %s %s: %s (observed %s)",
                result.metric,
                result.expression,
                "passed" if result.passed else "FAILED",
                "no samples" if result.observed is None else f"{result.observed:.4g}",
            )

        self._state = SessionState.COMPLETED
        logger.info(
            "Session completed: duration=%.1fs, iterations=%d, requests=%d, "
            "p95=%.1fms, failed_requests=%.2f%%",
            total_duration,
            int(self._metrics.iterations.count),
            final_summary.total_requests,
            final_summary.latency_p95,
            final_summary.error_rate * 100,
        )

        return RunResult(
            scenario_name=self.scenario.name,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=total_duration,
            pattern_description=self._pattern.describe(),
            snapshots=snapshots,
            final_summary=final_summary,
            metrics=summaries,
            checks=self._metrics.check_tally.results(),
            thresholds=threshold_results,
        )

    async def stop(self) -> None:
        """Request graceful shutdown; the main loop exits at the next tick."""
        if self._state == SessionState.RUNNING:
            logger.info("Graceful shutdown requested")
            self._state = SessionState.STOPPING
            self._stop_event.set()

    async def _run_setup(self) -> Any:
        if self.scenario.setup_func is None:
            return None
        instance = self.scenario.cls()
        try:
            return await self.scenario.setup_func(instance)
        except Exception as exc:
            self._state = SessionState.FAILED
            logger.exception("Setup failed for scenario %s", self.scenario.name)
            raise EngineError(f"Setup failed: {exc}") from exc

    async def _run_teardown(self, context: Any) -> None:
        if self.scenario.teardown_func is None:
            return
        instance = self.scenario.cls()
        try:
            await self.scenario.teardown_func(instance, context)
        except Exception:
            logger.warning("Teardown failed for scenario %s", self.scenario.name, exc_info=True)

    async def _run_virtual_user(self, user_id: int, context: Any) -> None:
        """Loop iterations for one virtual user until stopped or cancelled.

        Args:
            user_id: Unique identifier for this virtual user.
            context: Setup context passed to every iteration.
        """
        instance = self.scenario.cls()
        async with HttpClient(
            metric_callback=self._collector.record,
            user_id=user_id,
            timeout=self._request_timeout,
        ) as client:
            try:
                while not self._stop_event.is_set():
                    task_def = pick_weighted_task(self.scenario.tasks)
                    started = time.monotonic()
                    try:
                        await task_def.func(instance, client, context)
                    except asyncio.CancelledError:
                        raise
                    except Exception:
                        logger.warning(
                            "Iteration %s failed for user %d",
                            task_def.name,
                            user_id,
                            exc_info=True,
                            extra={"user_id": user_id},
                        )

                    self._metrics.iterations.add(1)
                    self._metrics.iteration_duration.add((time.monotonic() - started) * 1000)

                    # sleep(0) still yields so a failing iteration cannot starve the loop
                    await asyncio.sleep(think_seconds(self.scenario.think_time))

            except asyncio.CancelledError:
                pass

    async def _scale_users(self, target: int, context: Any) -> None:
        """Adjust the number of active virtual users to match target."""
        self._user_tasks = [(uid, t) for uid, t in self._user_tasks if not t.done()]
        current = self.active_user_count

        if target > current:
            for _ in range(target - current):
                user_id = self._next_user_id
                self._next_user_id += 1
                task = asyncio.create_task(
                    self._run_virtual_user(user_id, context),
                    name=f"virtual-user-{user_id}",
                )
                self._user_tasks.append((user_id, task))

        elif target < current:
            # Newest users leave first
            for _ in range(current - target):
                _uid, task = self._user_tasks.pop()
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError, TimeoutError):
                    await asyncio.wait_for(asyncio.shield(task), timeout=2.0)

    def _install_signal_handlers(self) -> None:
        """Install SIGINT and SIGTERM handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def _signal_handler() -> None:
            logger.info("Signal received, initiating graceful shutdown")
            self._state = SessionState.STOPPING
            self._stop_event.set()

        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, _signal_handler)
            loop.add_signal_handler(signal.SIGTERM, _signal_handler)
        else:
            signal.signal(signal.SIGINT, lambda _s, _f: _signal_handler())
            signal.signal(signal.SIGTERM, lambda _s, _f: _signal_handler())

    def _remove_signal_handlers(self) -> None:
        """Remove custom signal handlers, restoring defaults."""
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
