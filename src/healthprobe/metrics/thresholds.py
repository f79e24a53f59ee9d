"""Post-run pass/fail conditions over aggregated metrics.

A threshold pairs a metric name with an expression such as ``p(95)<500``
(95th percentile of a trend under 500 ms) or ``rate<0.01`` (under 1% of rate
samples non-zero).  Thresholds are declared on the scenario, validated
against the registered metrics before the run starts, and evaluated once
against the final metric summaries.
"""

from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from healthprobe._internal.errors import ConfigError
from healthprobe.metrics.models import RateSummary, ThresholdResult, TrendSummary

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from healthprobe.metrics.models import MetricSummary

_EXPRESSION = re.compile(
    r"^\s*(?P<agg>avg|min|max|med|count|rate|p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\))"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*(?P<value>-?\d+(?:\.\d+)?)\s*$"
)

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

_TREND_AGGREGATIONS = frozenset({"avg", "min", "max", "med"})

# Aggregations each metric kind supports; "p" stands for any p(N).
_SUPPORTED: dict[str, frozenset[str]] = {
    "counter": frozenset({"count", "rate"}),
    "rate": frozenset({"rate"}),
    "trend": _TREND_AGGREGATIONS | {"p"},
}


@dataclass(frozen=True)
class Threshold:
    """A parsed threshold expression bound to one metric.

    Attributes:
        metric: Name of the metric the threshold applies to.
        expression: Original expression text.
        aggregation: ``avg``, ``min``, ``max``, ``med``, ``count``, ``rate``
            or ``p(N)``.
        operator: Comparison operator.
        value: Right-hand side of the comparison.
    """

    metric: str
    expression: str
    aggregation: str
    operator: str
    value: float

    @classmethod
    def parse(cls, metric: str, expression: str) -> Threshold:
        """Parse *expression* for *metric*.

        Raises:
            ConfigError: If the expression is malformed.
        """
        match = _EXPRESSION.match(expression)
        if match is None:
            msg = (
                f"Invalid threshold {expression!r} for metric {metric!r}; "
                f"expected e.g. 'p(95)<500' or 'rate<0.01'"
            )
            raise ConfigError(msg)

        aggregation = match.group("agg")
        pct = match.group("pct")
        if pct is not None:
            percentile = float(pct)
            if not 0 < percentile <= 100:
                msg = f"Percentile must be in (0, 100], got {pct} in {expression!r}"
                raise ConfigError(msg)
            aggregation = f"p({percentile:g})"

        return cls(
            metric=metric,
            expression=expression.strip(),
            aggregation=aggregation,
            operator=match.group("op"),
            value=float(match.group("value")),
        )

    @property
    def percentile(self) -> float | None:
        """Percentile requested by a ``p(N)`` aggregation, else None."""
        if self.aggregation.startswith("p("):
            return float(self.aggregation[2:-1])
        return None

    def supports(self, kind: str) -> bool:
        """Return True if this threshold's aggregation applies to metrics of *kind*."""
        key = "p" if self.percentile is not None else self.aggregation
        return key in _SUPPORTED.get(kind, frozenset())

    def evaluate(self, summaries: Mapping[str, MetricSummary]) -> ThresholdResult:
        """Evaluate the threshold against final metric summaries.

        A rate or trend that received no samples fails the threshold.

        Raises:
            ConfigError: If the metric is unknown or the aggregation does not
                apply to it.
        """
        summary = summaries.get(self.metric)
        if summary is None:
            msg = f"Threshold declared on unknown metric {self.metric!r}"
            raise ConfigError(msg)

        if _is_empty(summary):
            return ThresholdResult(
                metric=self.metric,
                expression=self.expression,
                observed=None,
                passed=False,
            )

        observed = summary.value(self.aggregation)
        return ThresholdResult(
            metric=self.metric,
            expression=self.expression,
            observed=observed,
            passed=_OPERATORS[self.operator](observed, self.value),
        )


def _is_empty(summary: MetricSummary) -> bool:
    if isinstance(summary, RateSummary):
        return summary.total == 0
    if isinstance(summary, TrendSummary):
        return summary.count == 0
    return False


def parse_thresholds(declared: Mapping[str, str | Sequence[str]]) -> list[Threshold]:
    """Parse a ``{metric: expression | [expressions]}`` mapping.

    Args:
        declared: Threshold declarations, as written on a scenario.

    Returns:
        Parsed thresholds in declaration order.

    Raises:
        ConfigError: If any expression is malformed.
    """
    thresholds: list[Threshold] = []
    for metric, expressions in declared.items():
        if isinstance(expressions, str):
            expressions = [expressions]
        thresholds.extend(Threshold.parse(metric, expr) for expr in expressions)
    return thresholds


def parse_threshold_option(text: str) -> Threshold:
    """Parse a CLI-style ``metric=expression`` threshold.

    Raises:
        ConfigError: If *text* has no ``=`` separator or the expression is
            malformed.
    """
    metric, sep, expression = text.partition("=")
    if not sep or not metric.strip():
        msg = f"Threshold must look like '<metric>=<expression>', got {text!r}"
        raise ConfigError(msg)
    return Threshold.parse(metric.strip(), expression)


def validate_thresholds(thresholds: Iterable[Threshold], kinds: Mapping[str, str]) -> None:
    """Check thresholds against registered metric kinds before a run.

    Args:
        thresholds: Thresholds to validate.
        kinds: Metric kind (``counter``, ``rate``, ``trend``) by metric name.

    Raises:
        ConfigError: If a threshold names an unknown metric or uses an
            aggregation its metric kind does not support.
    """
    for threshold in thresholds:
        kind = kinds.get(threshold.metric)
        if kind is None:
            msg = f"Threshold declared on unknown metric {threshold.metric!r}"
            raise ConfigError(msg)
        if not threshold.supports(kind):
            msg = (
                f"Threshold {threshold.expression!r} uses aggregation "
                f"{threshold.aggregation!r}, which a {kind} metric "
                f"({threshold.metric!r}) does not support"
            )
            raise ConfigError(msg)


def required_percentiles(thresholds: Iterable[Threshold]) -> tuple[float, ...]:
    """Return the extra percentiles trend summaries must compute."""
    return tuple(sorted({t.percentile for t in thresholds if t.percentile is not None}))


def evaluate_thresholds(
    thresholds: Iterable[Threshold],
    summaries: Mapping[str, MetricSummary],
) -> list[ThresholdResult]:
    """Evaluate every threshold against the final summaries."""
    return [t.evaluate(summaries) for t in thresholds]
