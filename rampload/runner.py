"""
Load-test lifecycle.

:class:`LoadTest` wires the pieces together and runs them in a fixed
order:

1. :meth:`LoadTest.on_start` logs the resolved scenario.
2. :class:`~rampload.scheduler.VUScheduler` runs every stage and drains
   all VUs.
3. :meth:`LoadTest.on_end` runs once the drain has finished.
4. :class:`~rampload.thresholds.ThresholdEvaluator` produces the verdict
   from the final snapshot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

import requests

from rampload.config import Config
from rampload.durations import format_duration
from rampload.executor import RequestExecutor
from rampload.metrics import MetricsAggregator, MetricsSnapshot
from rampload.scenario import ScenarioConfig
from rampload.scheduler import VUScheduler
from rampload.thresholds import ThresholdEvaluator, Verdict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    scenario: ScenarioConfig
    snapshot: MetricsSnapshot
    verdict: Verdict
    elapsed: float


class LoadTest:
    """
    One configured run against one target.

    Args:
        scenario: Stages, thresholds and target URL.
        settings: Engine settings (timeout, think-time, scheduler tick).
        session_factory: Creates the per-VU HTTP session; tests swap this
            for a fake.
    """

    def __init__(
        self,
        scenario: ScenarioConfig,
        settings: Config,
        *,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.scenario = scenario
        self.settings = settings
        self.aggregator = MetricsAggregator()
        self.executor = RequestExecutor(
            scenario.target_url,
            self.aggregator,
            timeout=settings.REQUEST_TIMEOUT,
            think_time=settings.THINK_TIME,
            session_factory=session_factory,
        )
        self.scheduler = VUScheduler(
            scenario.stages,
            self.executor.run_vu,
            tick=settings.SCHEDULER_TICK,
            on_scale=self.aggregator.note_vus,
        )
        self.evaluator = ThresholdEvaluator(scenario.thresholds)

    def on_start(self) -> None:
        """Record the resolved configuration before any VU is scheduled."""
        logger.info("Starting load test...")
        logger.info("Target: %s", self.scenario.target_url)
        logger.info(
            "VUs: %d, Duration: %s (total %s including ramps)",
            self.scenario.vus,
            format_duration(self.scenario.sustain),
            format_duration(self.scenario.total_duration),
        )
        for index, stage in enumerate(self.scenario.stages, start=1):
            logger.debug(
                "Stage %d: %s -> %d VUs", index, format_duration(stage.duration), stage.target
            )

    def on_end(self) -> None:
        """Runs after every VU has drained, before the verdict is computed."""
        snapshot = self.aggregator.snapshot()
        logger.info("Load test completed: %d requests, %d failed", snapshot.count, snapshot.error_count)

    def run(self) -> RunResult:
        self.on_start()
        elapsed = self.scheduler.run()
        self.on_end()
        snapshot = self.aggregator.snapshot()
        verdict = self.evaluator.evaluate(snapshot)
        return RunResult(
            scenario=self.scenario,
            snapshot=snapshot,
            verdict=verdict,
            elapsed=elapsed,
        )

    def stop(self) -> None:
        """End the run early; VUs still drain cooperatively."""
        self.scheduler.stop()
