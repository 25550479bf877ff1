"""
Unit tests for threshold parsing and verdict evaluation.

Includes the reference scenarios: an all-200 run passes, a run with 10%
server errors breaches ``rate<0.05``, and a run with no requests fails
as indeterminate instead of passing vacuously.
"""

from __future__ import annotations

import pytest

from rampload.errors import ConfigError
from rampload.scenario import DEFAULT_THRESHOLDS, build_scenario
from rampload.thresholds import (
    FAIL,
    INDETERMINATE,
    PASS,
    ThresholdEvaluator,
    parse_threshold,
    parse_thresholds,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def default_evaluator() -> ThresholdEvaluator:
    return ThresholdEvaluator(parse_thresholds(DEFAULT_THRESHOLDS))


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------

def test_parse_percentile_threshold():
    threshold = parse_threshold("http_req_duration", "p(95)<500")

    assert threshold.aggregation == "p"
    assert threshold.percentile == 95.0
    assert threshold.operator == "<"
    assert threshold.value == 500.0
    assert threshold.name == "http_req_duration: p(95)<500"


@pytest.mark.parametrize(
    ("metric", "expression", "aggregation", "op", "value"),
    [
        ("http_req_failed", "rate<0.05", "rate", "<", 0.05),
        ("http_req_duration", "avg <= 200", "avg", "<=", 200.0),
        ("http_req_duration", "p(99.9)<1500", "p", "<", 1500.0),
        ("checks", "rate>0.9", "rate", ">", 0.9),
        ("http_reqs", "count>=100", "count", ">=", 100.0),
    ],
)
def test_parse_supported_expressions(metric, expression, aggregation, op, value):
    threshold = parse_threshold(metric, expression)

    assert (threshold.aggregation, threshold.operator, threshold.value) == (aggregation, op, value)


@pytest.mark.parametrize(
    ("metric", "expression"),
    [
        ("http_req_waiting", "p(95)<500"),
        ("http_req_duration", "rate<0.05"),
        ("http_req_failed", "p(95)<500"),
        ("http_req_duration", "p(95)<fast"),
        ("http_req_duration", "p(95)=<500"),
        ("http_req_duration", "p(101)<500"),
        ("http_req_duration", ""),
    ],
)
def test_parse_rejects_invalid_thresholds(metric, expression):
    with pytest.raises(ConfigError):
        parse_threshold(metric, expression)


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------

def test_all_fast_200s_pass(make_snapshot):
    """VUS=5, DURATION=1m, every request 200 in 100ms → overall pass."""
    scenario = build_scenario({"SERVICE_URL": "http://svc.test", "VUS": "5", "DURATION": "1m"})
    evaluator = ThresholdEvaluator(scenario.thresholds)
    snapshot = make_snapshot([(200, 100.0)] * 300)

    verdict = evaluator.evaluate(snapshot)

    assert snapshot.error_rate == 0.0
    assert verdict.overall_pass is True
    assert all(result.status == PASS for result in verdict.results)


def test_ten_percent_errors_breach_rate_threshold(default_evaluator, make_snapshot):
    """VUS=5, DURATION=1m, 10% of requests return 500 → fails rate<0.05."""
    samples = [(500 if i % 10 == 0 else 200, 100.0) for i in range(300)]
    snapshot = make_snapshot(samples)

    verdict = default_evaluator.evaluate(snapshot)

    assert snapshot.error_rate == pytest.approx(0.10)
    assert verdict.overall_pass is False
    assert verdict.per_threshold == {
        "http_req_duration: p(95)<500": True,
        "http_req_failed: rate<0.05": False,
    }


def test_slow_p95_breaches_duration_threshold(default_evaluator, make_snapshot):
    samples = [(200, 100.0)] * 90 + [(200, 900.0)] * 10
    snapshot = make_snapshot(samples)

    verdict = default_evaluator.evaluate(snapshot)

    duration_result = verdict.results[0]
    assert duration_result.status == FAIL
    assert duration_result.observed == pytest.approx(900.0)
    assert verdict.overall_pass is False


def test_transport_failures_count_as_errors(default_evaluator, make_snapshot):
    snapshot = make_snapshot([(0, 30_000.0)] * 3 + [(200, 50.0)] * 97)

    verdict = default_evaluator.evaluate(snapshot)

    assert snapshot.error_rate == pytest.approx(0.03)
    assert verdict.per_threshold["http_req_failed: rate<0.05"] is True


def test_no_requests_is_indeterminate_not_pass(default_evaluator, make_snapshot):
    """count=0 → every threshold indeterminate and the verdict fails."""
    verdict = default_evaluator.evaluate(make_snapshot([]))

    assert [result.status for result in verdict.results] == [INDETERMINATE, INDETERMINATE]
    assert all(result.observed is None for result in verdict.results)
    assert verdict.overall_pass is False


def test_evaluation_is_deterministic(default_evaluator, make_snapshot):
    snapshot = make_snapshot([(200, float(ms)) for ms in range(1, 400, 7)] + [(503, 12.0)])

    verdicts = {default_evaluator.evaluate(snapshot) for _ in range(5)}

    assert len(verdicts) == 1


def test_checks_and_count_thresholds(make_snapshot):
    evaluator = ThresholdEvaluator(
        parse_thresholds({"checks": ["rate>0.99"], "http_reqs": ["count>=4"]})
    )
    snapshot = make_snapshot([(200, 10.0)] * 3 + [(200, 700.0)])

    verdict = evaluator.evaluate(snapshot)

    assert verdict.per_threshold == {"checks: rate>0.99": False, "http_reqs: count>=4": True}
