"""
Virtual-user scheduling.

The scheduler turns an ordered list of :class:`~rampload.scenario.Stage`
objects into a piecewise-linear VU population over time and keeps that
many VU threads alive.  A control loop wakes every ``tick`` seconds,
computes the target for the elapsed time and starts new VUs or signals
the most recently started ones to stop.

Stopping is always cooperative: a VU receives its own
``threading.Event`` and checks it between iterations, so an in-flight
request finishes (or times out) and is recorded before the thread exits.
Once the last stage has elapsed every VU is signalled and joined.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from rampload.scenario import Stage

logger = logging.getLogger(__name__)

# Absorbs float error such as 2.9999999999999996 when the exact value is 3.
_EPSILON = 1e-9


def target_vus_at(stages: Sequence[Stage], elapsed: float) -> int | None:
    """
    Return the VU target at *elapsed* seconds into the run.

    Within a stage the target moves linearly from the previous stage's
    target (``0`` before the first stage) to the stage's own target and
    is rounded down, so the live population never exceeds the ramp.  At
    every stage boundary the result is exactly that stage's target.

    Args:
        stages: Ordered stages of the run.
        elapsed: Seconds since the run started.

    Returns:
        The target VU count, or ``None`` once every stage has elapsed.
    """
    elapsed = max(elapsed, 0.0)
    previous_target = 0
    stage_start = 0.0

    for stage in stages:
        stage_end = stage_start + stage.duration
        if elapsed < stage_end:
            fraction = (elapsed - stage_start) / stage.duration
            value = previous_target + (stage.target - previous_target) * fraction
            return max(math.floor(value + _EPSILON), 0)
        previous_target = stage.target
        stage_start = stage_end

    if stages and elapsed == stage_start:
        return previous_target
    return None


@dataclass
class _VirtualUser:
    vu_id: int
    thread: threading.Thread
    stop_event: threading.Event


class VUScheduler:
    """
    Drives VU threads through the configured stages.

    Args:
        stages: Ordered ramp profile.
        vu_body: Callable run on each VU thread as ``vu_body(vu_id,
            stop_event)``; it must return soon after ``stop_event`` is set.
        tick: Seconds between target re-evaluations.
        clock: Monotonic time source, injectable for tests.
        on_scale: Optional callback receiving the active VU count after
            every adjustment.
    """

    def __init__(
        self,
        stages: Sequence[Stage],
        vu_body: Callable[[int, threading.Event], None],
        *,
        tick: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
        on_scale: Callable[[int], None] | None = None,
    ):
        self.stages = tuple(stages)
        self.vu_body = vu_body
        self.tick = tick
        self.clock = clock
        self.on_scale = on_scale

        self._active: list[_VirtualUser] = []
        self._stopping: list[_VirtualUser] = []
        self._next_id = 1
        self._halt = threading.Event()
        self.peak_vus = 0

    @property
    def active_vus(self) -> int:
        """VUs running and not yet signalled to stop, as of the last adjustment."""
        return len(self._active)

    def run(self) -> float:
        """
        Run every stage to completion, then drain all VUs.

        Blocks the calling thread.  :meth:`stop` (or an exception such as
        ``KeyboardInterrupt`` in the calling thread) ends the run early;
        VUs are drained either way.

        Returns:
            Elapsed wall-clock seconds, including the drain.
        """
        started = self.clock()
        try:
            while not self._halt.is_set():
                target = target_vus_at(self.stages, self.clock() - started)
                if target is None:
                    break
                self._scale_to(target)
                self._halt.wait(self.tick)
        finally:
            self._drain()
        elapsed = self.clock() - started
        logger.info("All stages complete after %.1fs (peak %d VUs)", elapsed, self.peak_vus)
        return elapsed

    def stop(self) -> None:
        """Ask :meth:`run` to end early; safe to call from any thread."""
        self._halt.set()

    def _scale_to(self, target: int) -> None:
        # A VU whose body crashed is replaced on the next adjustment.
        alive = [vu for vu in self._active if vu.thread.is_alive()]
        changed = len(alive) != len(self._active)
        self._active = alive

        while len(self._active) < target:
            self._start_vu()
            changed = True
        while len(self._active) > target:
            vu = self._active.pop()
            vu.stop_event.set()
            self._stopping.append(vu)
            changed = True

        self._stopping = [vu for vu in self._stopping if vu.thread.is_alive()]
        if changed:
            self.peak_vus = max(self.peak_vus, len(self._active))
            logger.debug("Scaled to %d VUs", len(self._active))
            if self.on_scale is not None:
                self.on_scale(len(self._active))

    def _start_vu(self) -> None:
        vu_id = self._next_id
        self._next_id += 1
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._run_vu,
            args=(vu_id, stop_event),
            name=f"vu-{vu_id}",
            daemon=True,
        )
        self._active.append(_VirtualUser(vu_id, thread, stop_event))
        thread.start()

    def _run_vu(self, vu_id: int, stop_event: threading.Event) -> None:
        try:
            self.vu_body(vu_id, stop_event)
        except Exception:
            # Nothing can propagate out of a thread; keep the rest of the run alive.
            logger.exception("VU %d terminated unexpectedly", vu_id)

    def _drain(self) -> None:
        remaining = self._active + self._stopping
        self._active = []
        self._stopping = []
        for vu in remaining:
            vu.stop_event.set()
        for vu in remaining:
            vu.thread.join()
        if remaining:
            logger.debug("Drained %d VUs", len(remaining))
        if self.on_scale is not None:
            self.on_scale(0)
