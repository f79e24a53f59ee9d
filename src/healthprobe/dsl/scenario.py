"""Scenario and task definition dataclasses and the global scenario registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from healthprobe._internal.errors import ScenarioError

if TYPE_CHECKING:
    from healthprobe._internal.types import ThinkTime
    from healthprobe.metrics.thresholds import Threshold
    from healthprobe.patterns.base import LoadPattern


class IterationMethod(Protocol):
    """Unbound async task method: ``(self, client, context) -> None``."""

    @property
    def __name__(self) -> str: ...

    async def __call__(self, instance: object, client: Any, context: Any) -> None: ...


class SetupMethod(Protocol):
    """Unbound async setup hook: ``(self) -> context``."""

    @property
    def __name__(self) -> str: ...

    async def __call__(self, instance: object) -> Any: ...


class TeardownMethod(Protocol):
    """Unbound async teardown hook: ``(self, context) -> None``."""

    @property
    def __name__(self) -> str: ...

    async def __call__(self, instance: object, context: Any) -> None: ...


@dataclass
class TaskDefinition:
    """Definition of a single task within a scenario.

    Each invocation of a task is one iteration of a virtual user.

    Attributes:
        name: Human-readable name for this task.
        func: The unbound async method implementing this task.
        weight: Relative weight for weighted-random task selection.
    """

    name: str
    func: IterationMethod
    weight: int = 1


@dataclass
class ScenarioDefinition:
    """Complete definition of a load scenario.

    Created by the ``@scenario`` class decorator.

    Attributes:
        name: Human-readable name for this scenario.
        cls: The original class that was decorated.
        pattern: Load profile the run follows.
        thresholds: Pass/fail conditions evaluated after the run.
        tasks: Task definitions discovered from @task-decorated methods.
        setup_func: Optional coroutine run once per run; its return value is
            the context handed to every iteration.
        teardown_func: Optional coroutine run once after all virtual users
            have stopped.
        think_time: Random pause range (min, max) in seconds between
            iterations of one virtual user.
    """

    name: str
    cls: type
    pattern: LoadPattern
    thresholds: list[Threshold] = field(default_factory=list)
    tasks: list[TaskDefinition] = field(default_factory=list)
    setup_func: SetupMethod | None = None
    teardown_func: TeardownMethod | None = None
    think_time: ThinkTime = (0.0, 0.0)


class ScenarioRegistry:
    """Registry of all discovered scenario definitions.

    Scenarios are registered automatically by the ``@scenario`` decorator.
    The registry is a module-level singleton.
    """

    def __init__(self) -> None:
        self._scenarios: dict[str, ScenarioDefinition] = {}

    def register(self, definition: ScenarioDefinition) -> None:
        """Register a scenario definition.

        Raises:
            ScenarioError: If a different scenario with the same name is
                already registered.
        """
        existing = self._scenarios.get(definition.name)
        if existing is not None and existing.cls.__qualname__ != definition.cls.__qualname__:
            msg = f"Scenario {definition.name!r} is already registered"
            raise ScenarioError(msg)
        self._scenarios[definition.name] = definition

    def get(self, name: str) -> ScenarioDefinition | None:
        return self._scenarios.get(name)

    def get_all(self) -> list[ScenarioDefinition]:
        return list(self._scenarios.values())

    def clear(self) -> None:
        """Remove all registered scenarios. Primarily for testing."""
        self._scenarios.clear()

    def __len__(self) -> int:
        return len(self._scenarios)


# Global singleton registry.
registry = ScenarioRegistry()
