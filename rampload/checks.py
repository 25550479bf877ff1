"""
Named per-request checks.

Checks are a closed set of typed predicates over the status code and
duration of a single response.  Their pass/fail counts feed the
``checks`` metric but, as in k6, a failing check never fails the
request itself; only thresholds decide the verdict.
"""

from __future__ import annotations

from collections.abc import Callable

STATUS_IS_200 = "status is 200"
RESPONSE_TIME_UNDER_500MS = "response time < 500ms"


def status_is_200(status_code: int, duration_ms: float) -> bool:
    return status_code == 200


def response_time_under_500ms(status_code: int, duration_ms: float) -> bool:
    return duration_ms < 500


CHECKS: dict[str, Callable[[int, float], bool]] = {
    STATUS_IS_200: status_is_200,
    RESPONSE_TIME_UNDER_500MS: response_time_under_500ms,
}


def evaluate_checks(status_code: int, duration_ms: float) -> dict[str, bool]:
    """Run every registered check and return ``{check name: passed}``."""
    return {name: check(status_code, duration_ms) for name, check in CHECKS.items()}
