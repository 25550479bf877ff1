"""
Exception types shared across the load generator.

Only configuration problems are fatal.  Transport failures are caught by
the executor and recorded as failed outcomes, and threshold breaches are
never raised at all; they surface as failed entries in the verdict.
"""

from __future__ import annotations


class ConfigError(ValueError):
    """Raised when the scenario cannot be built from the supplied settings."""


class RequestError(Exception):
    """
    A single request failed at the transport level.

    Raised by :func:`rampload.executor.send_request` and always caught by
    the executor, which turns it into a failed
    :class:`~rampload.metrics.RequestOutcome` (status ``0``).

    Attributes:
        timed_out: ``True`` when the request exceeded its timeout.
    """

    def __init__(self, message: str, *, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out
