"""Decorators for defining load scenarios."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from healthprobe._internal.errors import ScenarioError
from healthprobe.dsl.scenario import ScenarioDefinition, TaskDefinition, registry
from healthprobe.metrics.thresholds import parse_thresholds
from healthprobe.patterns.base import LoadPattern
from healthprobe.patterns.stages import StagedPattern

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from typing import Any

    from healthprobe._internal.types import ThinkTime
    from healthprobe.dsl.scenario import IterationMethod, SetupMethod, TeardownMethod
    from healthprobe.patterns.stages import Stage

# Marker attribute names set on decorated methods.
_TASK_MARKER = "_healthprobe_task"
_TASK_WEIGHT = "_healthprobe_task_weight"
_TASK_NAME = "_healthprobe_task_name"
_SETUP_MARKER = "_healthprobe_setup"
_TEARDOWN_MARKER = "_healthprobe_teardown"


def scenario(
    *,
    name: str,
    stages: Sequence[Stage | tuple[str | float, int]] | LoadPattern,
    thresholds: Mapping[str, str | Sequence[str]] | None = None,
    think_time: ThinkTime = (0.0, 0.0),
) -> Callable[[type], ScenarioDefinition]:
    """Decorate a class as a load scenario.

    The decorator introspects the class for ``@task``, ``@setup`` and
    ``@teardown`` methods, builds a ``ScenarioDefinition`` and registers it
    in the global scenario registry.

    Args:
        name: Human-readable name for this scenario.
        stages: Load profile as ``(duration, target)`` stages, e.g.
            ``[("30s", 2), ("1m", 4), ("30s", 0)]``, or a ready-made
            ``LoadPattern``.
        thresholds: Post-run conditions by metric name, e.g.
            ``{"http_req_duration": "p(95)<500", "errors": "rate<0.01"}``.
        think_time: Random pause range (min, max) in seconds between
            iterations of one virtual user.

    Returns:
        A class decorator that transforms the class into a
        ScenarioDefinition.

    Raises:
        ScenarioError: If the class has no ``@task`` methods, a hook is not a
            coroutine function, a hook is declared twice, or think_time is
            invalid.
        ConfigError: If the stages or thresholds are malformed.
    """
    min_think, max_think = think_time
    if min_think < 0 or max_think < min_think:
        msg = f"think_time must satisfy 0 <= min <= max, got {think_time}"
        raise ScenarioError(msg)

    pattern = stages if isinstance(stages, LoadPattern) else StagedPattern(stages)
    parsed_thresholds = parse_thresholds(thresholds or {})

    def decorator(cls: type) -> ScenarioDefinition:
        tasks: list[TaskDefinition] = []
        setup_func: SetupMethod | None = None
        teardown_func: TeardownMethod | None = None

        for attr_name in dir(cls):
            if attr_name.startswith("__"):
                continue

            attr = getattr(cls, attr_name, None)
            if attr is None or not callable(attr):
                continue

            if getattr(attr, _TASK_MARKER, False):
                _require_coroutine(cls, attr_name, attr, "Task")
                tasks.append(
                    TaskDefinition(
                        name=getattr(attr, _TASK_NAME, attr_name),
                        func=attr,
                        weight=getattr(attr, _TASK_WEIGHT, 1),
                    )
                )

            if getattr(attr, _SETUP_MARKER, False):
                _require_coroutine(cls, attr_name, attr, "Setup")
                if setup_func is not None:
                    msg = f"Scenario {cls.__name__} has multiple @setup methods"
                    raise ScenarioError(msg)
                setup_func = attr

            if getattr(attr, _TEARDOWN_MARKER, False):
                _require_coroutine(cls, attr_name, attr, "Teardown")
                if teardown_func is not None:
                    msg = f"Scenario {cls.__name__} has multiple @teardown methods"
                    raise ScenarioError(msg)
                teardown_func = attr

        if not tasks:
            msg = f"Scenario {cls.__name__} has no @task methods. At least one @task is required."
            raise ScenarioError(msg)

        definition = ScenarioDefinition(
            name=name,
            cls=cls,
            pattern=pattern,
            thresholds=parsed_thresholds,
            tasks=tasks,
            setup_func=setup_func,
            teardown_func=teardown_func,
            think_time=think_time,
        )

        registry.register(definition)
        return definition

    return decorator


def _require_coroutine(cls: type, attr_name: str, attr: Any, kind: str) -> None:
    if not asyncio.iscoroutinefunction(attr):
        msg = f"{kind} method {cls.__name__}.{attr_name} must be an async function"
        raise ScenarioError(msg)


def task(
    *,
    weight: int = 1,
    name: str | None = None,
) -> Callable[[IterationMethod], IterationMethod]:
    """Mark a method as one iteration of a virtual user.

    The method is called as ``await method(self, client, context)``, where
    *context* is whatever the ``@setup`` hook returned (None without one).
    With several tasks, each iteration picks one by weight.

    Args:
        weight: Relative selection weight. Must be >= 1.
        name: Optional display name. Defaults to the method name.

    Raises:
        ScenarioError: If weight is less than 1.
    """
    if weight < 1:
        msg = f"Task weight must be >= 1, got {weight}"
        raise ScenarioError(msg)

    def decorator(func: IterationMethod) -> IterationMethod:
        setattr(func, _TASK_MARKER, True)
        setattr(func, _TASK_WEIGHT, weight)
        setattr(func, _TASK_NAME, name or func.__name__)
        return func

    return decorator


def setup(func: SetupMethod) -> SetupMethod:
    """Mark a method as the scenario setup hook.

    Called once per run, before any virtual user starts.  Its return value
    is passed read-only to every iteration and to the teardown hook.
    """
    setattr(func, _SETUP_MARKER, True)
    return func


def teardown(func: TeardownMethod) -> TeardownMethod:
    """Mark a method as the scenario teardown hook.

    Called once per run, after every virtual user has stopped, with the
    setup context.
    """
    setattr(func, _TEARDOWN_MARKER, True)
    return func
