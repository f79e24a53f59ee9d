"""Tests for the scenario registry, dataclasses, and scenario loader."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pathlib import Path

from healthprobe._internal.errors import ScenarioError
from healthprobe.dsl.decorators import scenario, task
from healthprobe.dsl.loader import load_scenario
from healthprobe.dsl.scenario import (
    ScenarioDefinition,
    ScenarioRegistry,
    TaskDefinition,
    registry,
)
from healthprobe.patterns.stages import StagedPattern


@pytest.fixture(autouse=True)
def _clear_registry():
    """Clear the global scenario registry before each test."""
    registry.clear()
    yield
    registry.clear()


def _definition(name: str, cls: type) -> ScenarioDefinition:
    return ScenarioDefinition(name=name, cls=cls, pattern=StagedPattern([(1, 1)]))


# =========================================================================
# ScenarioRegistry
# =========================================================================


class TestScenarioRegistry:
    """Tests for the ScenarioRegistry class."""

    def test_register_and_get(self):
        """Registered scenarios can be retrieved by name."""
        reg = ScenarioRegistry()
        definition = _definition("Lookup", type("Lookup", (), {}))
        reg.register(definition)
        assert reg.get("Lookup") is definition

    def test_get_nonexistent_returns_none(self):
        assert ScenarioRegistry().get("nonexistent") is None

    def test_get_all_and_len(self):
        reg = ScenarioRegistry()
        reg.register(_definition("First", type("First", (), {})))
        reg.register(_definition("Second", type("Second", (), {})))
        assert [d.name for d in reg.get_all()] == ["First", "Second"]
        assert len(reg) == 2

    def test_reregistering_same_class_replaces(self):
        """Loading the same scenario module twice does not raise."""
        reg = ScenarioRegistry()
        cls = type("Again", (), {})
        reg.register(_definition("Again", cls))
        replacement = _definition("Again", cls)
        reg.register(replacement)
        assert reg.get("Again") is replacement
        assert len(reg) == 1

    def test_duplicate_name_raises_error(self):
        """A different class under a registered name raises ScenarioError."""
        reg = ScenarioRegistry()
        reg.register(_definition("Dup", type("First", (), {})))
        with pytest.raises(ScenarioError, match="already registered"):
            reg.register(_definition("Dup", type("Second", (), {})))

    def test_clear(self):
        reg = ScenarioRegistry()
        reg.register(_definition("Clearable", type("Clearable", (), {})))
        reg.clear()
        assert len(reg) == 0


# =========================================================================
# Dataclass integrity
# =========================================================================


class TestDataclasses:
    """Tests for TaskDefinition and ScenarioDefinition dataclasses."""

    def test_task_definition_default_weight(self):
        async def dummy(self: object, client: object, context: object) -> None:
            pass

        td = TaskDefinition(name="test", func=dummy)
        assert td.weight == 1
        assert td.func is dummy

    def test_scenario_definition_defaults(self):
        sd = _definition("test", type("Dummy", (), {}))
        assert sd.thresholds == []
        assert sd.tasks == []
        assert sd.setup_func is None
        assert sd.teardown_func is None
        assert sd.think_time == (0.0, 0.0)


# =========================================================================
# Scenario Loader
# =========================================================================

_TWO_SCENARIOS = """\
from __future__ import annotations

from healthprobe import scenario, task


@scenario(name="Loaded", stages=[("1s", 1)], thresholds={"errors": "rate<0.5"})
class LoadedScenario:
    @task()
    async def iteration(self, client, context) -> None:
        pass


@scenario(name="Other", stages=[("2s", 2)])
class OtherScenario:
    @task()
    async def iteration(self, client, context) -> None:
        pass
"""


class TestLoader:
    """Tests for the load_scenario function."""

    def test_load_scenario_from_file(self, tmp_path: Path):
        """load_scenario returns the first scenario in the file."""
        path = tmp_path / "valid_scenario.py"
        path.write_text(_TWO_SCENARIOS)

        result = load_scenario(path)
        assert isinstance(result, ScenarioDefinition)
        assert result.name == "Loaded"
        assert result.thresholds[0].metric == "errors"

    def test_load_scenario_by_name(self, tmp_path: Path):
        path = tmp_path / "named_scenario.py"
        path.write_text(_TWO_SCENARIOS)
        assert load_scenario(path, name="Other").pattern.duration_seconds == 2.0

    def test_load_scenario_unknown_name(self, tmp_path: Path):
        path = tmp_path / "unknown_name.py"
        path.write_text(_TWO_SCENARIOS)
        with pytest.raises(ScenarioError, match="available: 'Loaded', 'Other'"):
            load_scenario(path, name="Missing")

    def test_load_scenario_nonexistent_file(self, tmp_path: Path):
        """load_scenario raises ScenarioError for missing files."""
        with pytest.raises(ScenarioError, match="not found"):
            load_scenario(tmp_path / "does_not_exist.py")

    def test_load_scenario_not_python_file(self, tmp_path: Path):
        """load_scenario raises ScenarioError for non-.py files."""
        path = tmp_path / "scenario.txt"
        path.write_text("not python")
        with pytest.raises(ScenarioError, match=r"must be a \.py file"):
            load_scenario(path)

    def test_load_scenario_no_scenario_in_file(self, tmp_path: Path):
        """load_scenario raises ScenarioError if no @scenario found."""
        path = tmp_path / "empty_scenario.py"
        path.write_text("x = 42\n")
        with pytest.raises(ScenarioError, match="No @scenario-decorated class"):
            load_scenario(path)

    def test_load_scenario_import_error(self, tmp_path: Path):
        """load_scenario raises ScenarioError on import failures."""
        path = tmp_path / "broken_scenario.py"
        path.write_text("import nonexistent_module_12345  # noqa: F401\n")
        with pytest.raises(ScenarioError, match="Failed to import"):
            load_scenario(path)
