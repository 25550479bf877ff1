"""
Command-line entry point.

Usage examples::

    # Target an in-cluster service, 20 VUs for 10 minutes:
    DEPLOYMENT=checkout NAMESPACE=shop VUS=20 DURATION=10m rampload

    # Explicit URL passed as -e style overrides, JSON summary for CI:
    rampload --env SERVICE_URL=http://localhost:8080/health --env VUS=5 \\
        --summary-export results/summary.json

The process environment is read exactly once, here, and merged with any
``--env`` overrides; every other component receives explicit settings.
"""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from collections.abc import Mapping, Sequence
from pathlib import Path

from rampload.config import config as config_classes
from rampload.config import get_config
from rampload.errors import ConfigError
from rampload.report import EXIT_SCRIPT_ERROR, exit_code_for, print_summary, write_summary
from rampload.runner import LoadTest
from rampload.scenario import build_scenario, load_thresholds_file

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for a load-test run."""
    parser = argparse.ArgumentParser(
        prog="rampload",
        description="Ramp virtual users against an HTTP target and gate on latency/error thresholds.",
    )
    parser.add_argument(
        "-e",
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Scenario setting overriding the process environment (repeatable)",
    )
    parser.add_argument(
        "--thresholds",
        type=Path,
        help="YAML file mapping metric names to threshold expressions",
    )
    parser.add_argument(
        "--summary-export",
        type=Path,
        help="Write a JSON summary of the run to this path",
    )
    parser.add_argument(
        "--config",
        choices=sorted(name for name in config_classes if name != "default"),
        help="Engine configuration profile (defaults to RAMPLOAD_ENV)",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Skip the summary table on stdout",
    )
    return parser.parse_args(argv)


def parse_env_overrides(pairs: Sequence[str]) -> dict[str, str]:
    """Turn ``["KEY=VALUE", ...]`` into a dict, rejecting entries without ``=``."""
    overrides: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ConfigError(f"--env expects KEY=VALUE, got {pair!r}")
        overrides[key.strip()] = value
    return overrides


def configure_logging(level_name: str) -> None:
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        raise ConfigError(f"Unknown log level: {level_name!r}")
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _run(load_test: LoadTest):
    """Run *load_test*, turning Ctrl+C into a cooperative early stop."""
    if threading.current_thread() is not threading.main_thread():
        return load_test.run()

    previous = signal.signal(signal.SIGINT, lambda *_: load_test.stop())
    try:
        return load_test.run()
    finally:
        signal.signal(signal.SIGINT, previous)


def main(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> int:
    """
    Entry point: build settings, run the test, report, and pick an exit code.

    Args:
        argv: Command-line arguments (``sys.argv[1:]`` when *None*).
        environ: Settings mapping (the process environment when *None*).

    Returns:
        ``EXIT_PASS`` (0) if every threshold passed,
        ``EXIT_THRESHOLD_BREACH`` (1) otherwise, or
        ``EXIT_SCRIPT_ERROR`` (2) when the run could not be started.
    """
    args = parse_args(argv)
    settings_env = dict(os.environ if environ is None else environ)

    try:
        settings_env.update(parse_env_overrides(args.env))
        settings = get_config(args.config, settings_env)
        configure_logging(settings.LOG_LEVEL)
        thresholds = load_thresholds_file(args.thresholds) if args.thresholds else None
        scenario = build_scenario(
            settings_env,
            ramp=settings.RAMP_DURATION,
            thresholds=thresholds,
        )
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR

    try:
        result = _run(LoadTest(scenario, settings))
        if not args.quiet:
            print_summary(result)
        if args.summary_export:
            write_summary(result, args.summary_export)
    except Exception as exc:  # pragma: no cover - defensive CLI guard
        logger.exception("Load test aborted")
        print(f"Load test failed: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR

    return exit_code_for(result.verdict)


if __name__ == "__main__":
    raise SystemExit(main())
