"""Named boolean assertions recorded into the ``checks`` metric."""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from healthprobe.metrics.custom import registry

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from healthprobe.metrics.custom import MetricRegistry

T = TypeVar("T")

GROUP_SEPARATOR = "::"


def group_path(*names: str) -> str:
    """Join nested group names, e.g. ``"Health Check Endpoints::Readiness Check"``."""
    return GROUP_SEPARATOR.join(name for name in names if name)


def check(
    value: T,
    predicates: Mapping[str, Callable[[T], bool]],
    *,
    group: str = "",
    metrics: MetricRegistry | None = None,
) -> bool:
    """Evaluate every named predicate against *value* and record the results.

    All predicates run, even after one fails.  Each outcome is added to the
    ``checks`` rate and tallied under ``(group, name)``.  An exception raised
    by a predicate propagates to the caller; outcomes recorded before it
    are kept.

    Args:
        value: Object the predicates inspect (typically a response).
        predicates: Predicate by check name, evaluated in mapping order.
        group: Group path the checks are tagged with.
        metrics: Registry to record into. Defaults to the global registry.

    Returns:
        True if every predicate returned a truthy value.
    """
    metrics = metrics if metrics is not None else registry
    all_passed = True
    for name, predicate in predicates.items():
        passed = bool(predicate(value))
        metrics.checks.add(passed)
        metrics.check_tally.record(group, name, passed=passed)
        all_passed = all_passed and passed
    return all_passed
