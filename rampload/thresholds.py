"""
Threshold parsing and end-of-run evaluation.

Thresholds use the k6 expression syntax, keyed by metric name::

    http_req_duration: p(95)<500
    http_req_failed:   rate<0.05

Supported metrics and aggregations:

- ``http_req_duration`` (milliseconds): ``p(N)``, ``avg``, ``min``,
  ``med``, ``max``
- ``http_req_failed``: ``rate`` (share of non-2xx or transport failures)
- ``checks``: ``rate`` (share of passed checks)
- ``http_reqs``: ``count``

A threshold breach is not an exception.  Each threshold yields a
:class:`ThresholdResult`, and the run's :class:`Verdict` passes only if
every result passes.  With zero recorded requests there is nothing to
judge, so every threshold is reported as ``indeterminate`` and the
verdict fails rather than passing vacuously.
"""

from __future__ import annotations

import logging
import operator
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from rampload.errors import ConfigError
from rampload.metrics import MetricsSnapshot

logger = logging.getLogger(__name__)

PASS = "pass"
FAIL = "fail"
INDETERMINATE = "indeterminate"

OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}

METRIC_AGGREGATIONS: dict[str, frozenset[str]] = {
    "http_req_duration": frozenset({"p", "avg", "min", "med", "max"}),
    "http_req_failed": frozenset({"rate"}),
    "checks": frozenset({"rate"}),
    "http_reqs": frozenset({"count"}),
}

_EXPRESSION_RE = re.compile(
    r"^\s*(?:p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\)|(?P<agg>avg|min|med|max|count|rate))"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*(?P<value>-?\d+(?:\.\d+)?)\s*$"
)


@dataclass(frozen=True)
class Threshold:
    """
    One parsed threshold expression.

    Attributes:
        metric: Metric name, e.g. ``"http_req_duration"``.
        expression: Expression text as written, e.g. ``"p(95)<500"``.
        aggregation: ``"p"`` for percentiles, otherwise the aggregation name.
        operator: Comparison operator symbol.
        value: Right-hand side of the comparison.
        percentile: Percentile for ``"p"`` aggregations, else ``None``.
    """

    metric: str
    expression: str
    aggregation: str
    operator: str
    value: float
    percentile: float | None = None

    @property
    def name(self) -> str:
        return f"{self.metric}: {self.expression}"


@dataclass(frozen=True)
class ThresholdResult:
    threshold: Threshold
    observed: float | None
    status: str

    @property
    def passed(self) -> bool:
        return self.status == PASS


@dataclass(frozen=True)
class Verdict:
    """Outcome of evaluating every threshold against the final snapshot."""

    results: tuple[ThresholdResult, ...]

    @property
    def overall_pass(self) -> bool:
        return all(result.passed for result in self.results)

    @property
    def per_threshold(self) -> dict[str, bool]:
        return {result.threshold.name: result.passed for result in self.results}


def parse_threshold(metric: str, expression: str) -> Threshold:
    """
    Parse a single k6-style threshold expression.

    Args:
        metric: Metric the expression applies to.
        expression: Expression text, e.g. ``"p(95)<500"`` or ``"rate<0.05"``.

    Returns:
        The parsed :class:`Threshold`.

    Raises:
        ConfigError: For an unknown metric, an unsupported aggregation for
            that metric, or text that does not match the grammar.
    """
    allowed = METRIC_AGGREGATIONS.get(metric)
    if allowed is None:
        raise ConfigError(
            f"Unknown threshold metric {metric!r}; expected one of {sorted(METRIC_AGGREGATIONS)}"
        )

    match = _EXPRESSION_RE.match(expression)
    if match is None:
        raise ConfigError(f"Invalid threshold expression for {metric}: {expression!r}")

    percentile = None
    if match.group("pct") is not None:
        aggregation = "p"
        percentile = float(match.group("pct"))
        if percentile > 100:
            raise ConfigError(f"Percentile must be within [0, 100]: {expression!r}")
    else:
        aggregation = match.group("agg")

    if aggregation not in allowed:
        raise ConfigError(f"Aggregation {aggregation!r} is not available for {metric}")

    return Threshold(
        metric=metric,
        expression=expression.strip(),
        aggregation=aggregation,
        operator=match.group("op"),
        value=float(match.group("value")),
        percentile=percentile,
    )


def parse_thresholds(thresholds: Mapping[str, Sequence[str]]) -> tuple[Threshold, ...]:
    """Parse a ``{metric: [expression, ...]}`` mapping, preserving order."""
    return tuple(
        parse_threshold(metric, expression)
        for metric, expressions in thresholds.items()
        for expression in expressions
    )


def observe(threshold: Threshold, snapshot: MetricsSnapshot) -> float | None:
    """Return the aggregated value *threshold* compares against, if any."""
    if threshold.metric == "http_req_duration":
        if threshold.aggregation == "p":
            return snapshot.percentile(threshold.percentile)
        return getattr(snapshot, threshold.aggregation)
    if threshold.metric == "http_req_failed":
        return snapshot.error_rate
    if threshold.metric == "checks":
        return snapshot.checks_rate
    return float(snapshot.count)


class ThresholdEvaluator:
    """Evaluates a fixed set of thresholds; deterministic for a given snapshot."""

    def __init__(self, thresholds: Sequence[Threshold]):
        self.thresholds = tuple(thresholds)

    def evaluate(self, snapshot: MetricsSnapshot) -> Verdict:
        if snapshot.count == 0:
            logger.warning("No requests were recorded; all thresholds are indeterminate")
            return Verdict(
                results=tuple(
                    ThresholdResult(threshold, None, INDETERMINATE) for threshold in self.thresholds
                )
            )

        results = []
        for threshold in self.thresholds:
            observed = observe(threshold, snapshot)
            if observed is None:
                status = INDETERMINATE
            elif OPERATORS[threshold.operator](observed, threshold.value):
                status = PASS
            else:
                status = FAIL
            if status != PASS:
                logger.info("Threshold %s %s (observed %s)", threshold.name, status, observed)
            results.append(ThresholdResult(threshold, observed, status))
        return Verdict(results=tuple(results))
