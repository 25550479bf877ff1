"""
End-of-run reporting.

Prints a fixed-width summary table for CI logs, optionally writes a JSON
summary for machines, and maps the verdict onto a three-state exit code
so CI can tell "thresholds breached" apart from "the run never started":

- ``0``: every threshold passed
- ``1``: at least one threshold failed or was indeterminate
- ``2``: configuration or script error
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, TextIO

from rampload.durations import format_duration
from rampload.runner import RunResult
from rampload.thresholds import ThresholdResult, Verdict

EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2


def exit_code_for(verdict: Verdict) -> int:
    return EXIT_PASS if verdict.overall_pass else EXIT_THRESHOLD_BREACH


def _fmt(value: float | None) -> str:
    return "n/a" if value is None else f"{value:.2f}"


def print_summary(result: RunResult, stream: TextIO | None = None) -> None:
    """Print a human-readable results table to *stream* (stdout by default)."""
    out = stream or sys.stdout
    snapshot = result.snapshot

    print("Load Test Summary", file=out)
    print("-" * 72, file=out)
    print(f"Target:   {result.scenario.target_url}", file=out)
    print(
        f"Elapsed:  {format_duration(result.elapsed)}   VUs max: {snapshot.vus_max}",
        file=out,
    )
    print(f"Requests: {snapshot.count}   Failed: {snapshot.error_count}", file=out)
    print(f"{'Error rate (%)':<34}{snapshot.error_rate * 100:>12.2f}", file=out)
    print(f"{'P95 latency (ms)':<34}{_fmt(snapshot.percentile(95)):>12}", file=out)
    print(f"{'Checks passed (%)':<34}{snapshot.checks_rate * 100:>12.2f}", file=out)
    print("-" * 72, file=out)
    print(f"{'Threshold':<34}{'Actual':>12}{'Limit':>14}{'Status':>12}", file=out)
    print("-" * 72, file=out)
    for item in result.verdict.results:
        threshold = item.threshold
        limit = f"{threshold.operator}{threshold.value:g}"
        print(
            f"{threshold.name:<34}{_fmt(item.observed):>12}{limit:>14}{item.status.upper():>12}",
            file=out,
        )
    print("-" * 72, file=out)
    print(f"Overall: {'PASS' if result.verdict.overall_pass else 'FAIL'}", file=out)


def _threshold_entry(item: ThresholdResult) -> dict[str, Any]:
    return {
        "metric": item.threshold.metric,
        "expression": item.threshold.expression,
        "observed": item.observed,
        "status": item.status,
        "ok": item.passed,
    }


def build_summary(result: RunResult) -> dict[str, Any]:
    """Return the JSON-serialisable summary of a run."""
    snapshot = result.snapshot
    return {
        "target": result.scenario.target_url,
        "elapsed_seconds": round(result.elapsed, 3),
        "metrics": {
            "http_reqs": {"count": snapshot.count},
            "http_req_failed": {
                "fails": snapshot.error_count,
                "rate": snapshot.error_rate,
            },
            "http_req_duration": {
                "avg": snapshot.avg,
                "min": snapshot.min,
                "med": snapshot.med,
                "max": snapshot.max,
                "p(90)": snapshot.percentile(90),
                "p(95)": snapshot.percentile(95),
            },
            "checks": {
                "passes": snapshot.checks_passed,
                "fails": snapshot.checks_failed,
                "rate": snapshot.checks_rate,
            },
            "vus_max": snapshot.vus_max,
        },
        "thresholds": [_threshold_entry(item) for item in result.verdict.results],
        "passed": result.verdict.overall_pass,
    }


def write_summary(result: RunResult, path: Path) -> None:
    """Write :func:`build_summary` output to *path* as indented JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        json.dump(build_summary(result), handle, indent=2)
        handle.write("\n")
