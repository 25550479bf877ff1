"""
Request outcomes and their thread-safe aggregation.

Every VU thread reports into one shared :class:`MetricsAggregator`.  All
mutation happens inside :meth:`MetricsAggregator.record` under a single
lock, and readers only ever see an immutable :class:`MetricsSnapshot`
copied under that same lock, so counts are never torn or lost.

Percentiles use linear interpolation between the closest ranks of the
sorted samples, the same method k6 uses for trend metrics.  Keeping
every sample is fine at the scale a single-process generator reaches.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field

# Status recorded when no HTTP response was received at all.
TRANSPORT_FAILURE_STATUS = 0


@dataclass(frozen=True)
class RequestOutcome:
    """
    Result of one request issued by one VU iteration.

    Attributes:
        status_code: HTTP status, or ``TRANSPORT_FAILURE_STATUS`` when the
            request never produced a response.
        duration_ms: Wall-clock time of the request in milliseconds.
        checks: ``{check name: passed}`` for this response.
        error: Transport error text, ``None`` when a response arrived.
    """

    status_code: int
    duration_ms: float
    checks: dict[str, bool] = field(default_factory=dict)
    error: str | None = None

    @property
    def failed(self) -> bool:
        """True for transport failures and any non-2xx status."""
        return not 200 <= self.status_code < 300


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time, read-only view of the aggregated metrics."""

    count: int = 0
    error_count: int = 0
    durations: tuple[float, ...] = ()
    checks_passed: int = 0
    checks_failed: int = 0
    vus_max: int = 0

    @property
    def error_rate(self) -> float:
        """Failed share of requests in ``[0, 1]``; ``0.0`` when nothing ran."""
        if self.count == 0:
            return 0.0
        return self.error_count / self.count

    @property
    def checks_rate(self) -> float:
        total = self.checks_passed + self.checks_failed
        if total == 0:
            return 0.0
        return self.checks_passed / total

    def percentile(self, p: float) -> float | None:
        """
        Return the *p*-th percentile of request durations in milliseconds.

        Args:
            p: Percentile in ``[0, 100]``.

        Returns:
            The interpolated value, or ``None`` when no samples exist.

        Raises:
            ValueError: If *p* is outside ``[0, 100]``.
        """
        if not 0 <= p <= 100:
            raise ValueError(f"Percentile must be within [0, 100], got {p}")
        if not self.durations:
            return None

        rank = (len(self.durations) - 1) * p / 100.0
        lower = math.floor(rank)
        upper = math.ceil(rank)
        if lower == upper:
            return self.durations[lower]
        weight = rank - lower
        return self.durations[lower] + (self.durations[upper] - self.durations[lower]) * weight

    @property
    def min(self) -> float | None:
        return self.durations[0] if self.durations else None

    @property
    def max(self) -> float | None:
        return self.durations[-1] if self.durations else None

    @property
    def med(self) -> float | None:
        return self.percentile(50)

    @property
    def avg(self) -> float | None:
        if not self.durations:
            return None
        return sum(self.durations) / len(self.durations)


class MetricsAggregator:
    """
    Accumulates :class:`RequestOutcome` objects from concurrent VUs.

    The aggregator is the only mutable state shared between VU threads.
    Outcomes from different VUs interleave in any order; outcomes from one
    VU are recorded in the order its iterations complete because each VU
    calls :meth:`record` synchronously.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0
        self._error_count = 0
        self._durations: list[float] = []
        self._checks_passed = 0
        self._checks_failed = 0
        self._vus_max = 0

    def record(self, outcome: RequestOutcome) -> None:
        """Add one outcome to the running totals."""
        passed = sum(1 for ok in outcome.checks.values() if ok)
        failed = len(outcome.checks) - passed
        with self._lock:
            self._count += 1
            if outcome.failed:
                self._error_count += 1
            self._durations.append(outcome.duration_ms)
            self._checks_passed += passed
            self._checks_failed += failed

    def note_vus(self, active: int) -> None:
        """Remember the highest number of simultaneously active VUs."""
        with self._lock:
            if active > self._vus_max:
                self._vus_max = active

    def snapshot(self) -> MetricsSnapshot:
        """Return an immutable copy of the current totals."""
        with self._lock:
            durations = sorted(self._durations)
            return MetricsSnapshot(
                count=self._count,
                error_count=self._error_count,
                durations=tuple(durations),
                checks_passed=self._checks_passed,
                checks_failed=self._checks_failed,
                vus_max=self._vus_max,
            )
