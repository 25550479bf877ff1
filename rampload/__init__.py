"""
Ramp-profile HTTP load generator.

Ramps virtual users up to a target population, holds it, ramps back
down, and judges the run against latency and error-rate thresholds:

- :mod:`rampload.scenario`: stages, thresholds and target URL
- :mod:`rampload.scheduler`: VU threads following the ramp
- :mod:`rampload.executor`: one timed GET per iteration
- :mod:`rampload.metrics`: thread-safe outcome aggregation
- :mod:`rampload.thresholds`: end-of-run pass/fail verdict
- :mod:`rampload.runner`: lifecycle tying the pieces together
"""

__version__ = "0.1.0"
