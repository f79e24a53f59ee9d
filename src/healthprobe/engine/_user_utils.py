"""Virtual user helpers shared by the load session."""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING

from healthprobe._internal.logging import get_logger

if TYPE_CHECKING:
    from healthprobe._internal.types import ThinkTime
    from healthprobe.dsl.scenario import TaskDefinition

logger = get_logger("engine.user_utils")

# Seconds in-flight iterations get to finish before being cancelled.
GRACEFUL_STOP_SECONDS = 5.0
_CANCEL_WAIT_SECONDS = 2.0


def pick_weighted_task(tasks: list[TaskDefinition]) -> TaskDefinition:
    """Select a task using weighted-random distribution.

    A single task is returned without consulting the random generator.
    """
    if len(tasks) == 1:
        return tasks[0]
    weights = [t.weight for t in tasks]
    return random.choices(tasks, weights=weights, k=1)[0]  # noqa: S311


def think_seconds(think_time: ThinkTime) -> float:
    """Draw a pause from the ``(min, max)`` think time range."""
    min_t, max_t = think_time
    if max_t <= min_t:
        return min_t
    return random.uniform(min_t, max_t)  # noqa: S311


async def shutdown_all_users(
    user_tasks: list[tuple[int, asyncio.Task[None]]],
    stop_event: asyncio.Event,
    grace_seconds: float = GRACEFUL_STOP_SECONDS,
) -> None:
    """Stop every virtual user.

    Sets the stop event so users exit after their current iteration, waits
    up to *grace_seconds*, then cancels whatever is still running.

    Args:
        user_tasks: List of (user_id, task) tuples to shut down. Cleared
            on return.
        stop_event: Event signalling users to stop looping.
        grace_seconds: How long in-flight iterations may keep running.
    """
    stop_event.set()

    if user_tasks:
        tasks = [t for _, t in user_tasks]
        _done, pending = await asyncio.wait(tasks, timeout=grace_seconds)

        for task in pending:
            task.cancel()

        if pending:
            logger.debug("Cancelled %d virtual users still in an iteration", len(pending))
            await asyncio.wait(pending, timeout=_CANCEL_WAIT_SECONDS)

    user_tasks.clear()
    logger.debug("All virtual users shut down")
