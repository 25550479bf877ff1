"""
Per-iteration request execution.

Each VU owns one ``requests.Session`` for its whole lifetime and, on
every iteration, issues a single ``GET`` to the target, times it, runs
the named checks and hands the outcome to the shared aggregator.  A
transport failure (refused connection, DNS error, timeout) is recorded
as an outcome with status ``0``; it never escapes the VU loop, and the
request is never retried.

After each request the VU pauses for the configured think-time.  The
pause waits on the VU's stop event, so a stop signal cuts the pause
short but never interrupts a request that is already in flight.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

import requests

from rampload.checks import evaluate_checks
from rampload.errors import RequestError
from rampload.metrics import TRANSPORT_FAILURE_STATUS, MetricsAggregator, RequestOutcome

logger = logging.getLogger(__name__)


def send_request(session: requests.Session, url: str, timeout: float) -> int:
    """
    Issue one ``GET`` and return the response status code.

    The body is read in full (``requests`` does so unless streaming), so
    the measured duration covers the complete response.

    Args:
        session: The calling VU's HTTP session.
        url: Fully-resolved target URL.
        timeout: Seconds to wait for connect and for each read.

    Returns:
        The HTTP status code of the response.

    Raises:
        RequestError: On any transport-level failure.
    """
    try:
        response = session.get(url, timeout=timeout)
    except requests.Timeout as exc:
        raise RequestError(f"Request timed out after {timeout}s", timed_out=True) from exc
    except requests.RequestException as exc:
        # DNS resolution, connection refused, TLS errors and friends.
        raise RequestError(f"Transport failure: {exc}") from exc

    status_code = response.status_code
    response.close()
    return status_code


class RequestExecutor:
    """
    Runs the request → check → think-time loop for one VU at a time.

    Args:
        target_url: URL every iteration requests.
        aggregator: Shared sink for outcomes.
        timeout: Request timeout in seconds.
        think_time: Pause between iterations in seconds.
        session_factory: Callable creating a fresh session per VU.
    """

    def __init__(
        self,
        target_url: str,
        aggregator: MetricsAggregator,
        *,
        timeout: float = 30.0,
        think_time: float = 1.0,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.target_url = target_url
        self.aggregator = aggregator
        self.timeout = timeout
        self.think_time = think_time
        self.session_factory = session_factory

    def execute(self, session: requests.Session) -> RequestOutcome:
        """Send one request, record its outcome and return it."""
        started = time.perf_counter()
        error = None
        try:
            status_code = send_request(session, self.target_url, self.timeout)
        except RequestError as exc:
            status_code = TRANSPORT_FAILURE_STATUS
            error = str(exc)
        duration_ms = (time.perf_counter() - started) * 1000.0

        outcome = RequestOutcome(
            status_code=status_code,
            duration_ms=duration_ms,
            checks=evaluate_checks(status_code, duration_ms),
            error=error,
        )
        self.aggregator.record(outcome)
        if error is not None:
            logger.debug("GET %s failed after %.1fms: %s", self.target_url, duration_ms, error)
        return outcome

    def run_iteration(self, session: requests.Session, stop_event: threading.Event) -> RequestOutcome:
        """One full iteration: request, record, then think-time."""
        outcome = self.execute(session)
        if self.think_time > 0:
            stop_event.wait(self.think_time)
        return outcome

    def run_vu(self, vu_id: int, stop_event: threading.Event) -> None:
        """
        Iterate until *stop_event* is set.

        This is the body of a VU thread.  The session is closed when the
        loop ends, after the last outcome has been recorded.
        """
        logger.debug("VU %d started", vu_id)
        iterations = 0
        with self.session_factory() as session:
            while not stop_event.is_set():
                self.run_iteration(session, stop_event)
                iterations += 1
        logger.debug("VU %d stopped after %d iterations", vu_id, iterations)
