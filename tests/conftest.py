"""
Shared pytest fixtures for the load generator test suite.

Provides engine settings, outcome factories and a live Flask target
server that end-to-end runs can point their VUs at.  The target runs on
werkzeug's threaded server in a background thread, bound to an
ephemeral port so parallel sessions never collide.

Key Concepts Demonstrated:
- Session-scoped live server with clean shutdown
- Factory fixtures for building outcomes and snapshots
- Fake ``requests`` sessions that never touch the network
"""

from __future__ import annotations

import itertools
import socket
import threading
import time
from collections.abc import Callable, Generator
from types import SimpleNamespace

import pytest
import requests
from flask import Flask, jsonify, request
from werkzeug.serving import make_server

from rampload.checks import evaluate_checks
from rampload.config import Config, get_config
from rampload.metrics import MetricsAggregator, MetricsSnapshot, RequestOutcome


# -----------------------------------------------------------------------------
# Target Application Fixtures
# -----------------------------------------------------------------------------

def create_target_app() -> Flask:
    """
    Build the Flask app that plays the service under test.

    Routes:
        ``/ok``: always 200.
        ``/flaky?every=N``: 500 on every N-th request, 200 otherwise.
        ``/error``: always 500.
        ``/slow?ms=N``: sleeps N milliseconds, then 200.
    """
    app = Flask(__name__)
    counter = itertools.count(1)
    counter_lock = threading.Lock()

    @app.route("/ok")
    def ok():
        return jsonify({"status": "ok"}), 200

    @app.route("/flaky")
    def flaky():
        every = int(request.args.get("every", "10"))
        with counter_lock:
            n = next(counter)
        if n % every == 0:
            return jsonify({"error": "injected failure"}), 500
        return jsonify({"status": "ok"}), 200

    @app.route("/error")
    def error():
        return jsonify({"error": "always fails"}), 500

    @app.route("/slow")
    def slow():
        time.sleep(int(request.args.get("ms", "100")) / 1000.0)
        return jsonify({"status": "ok"}), 200

    return app


@pytest.fixture(scope="session")
def live_server() -> Generator[str, None, None]:
    """
    Serve the target app on an ephemeral port for the whole session.

    Yields:
        str: Base URL of the running server, e.g. ``http://127.0.0.1:54321``.
    """
    server = make_server("127.0.0.1", 0, create_target_app(), threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield f"http://127.0.0.1:{server.server_port}"

    server.shutdown()
    thread.join(timeout=5)


@pytest.fixture
def unused_port_url() -> str:
    """Return a URL on a local port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"http://127.0.0.1:{port}/"


# -----------------------------------------------------------------------------
# Engine Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def settings() -> Config:
    """Fast engine settings: short timeout, no think-time, quick ticks."""
    return get_config("testing")


@pytest.fixture
def aggregator() -> MetricsAggregator:
    return MetricsAggregator()


# -----------------------------------------------------------------------------
# Test Data Factory Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def make_outcome() -> Callable[..., RequestOutcome]:
    """
    Factory fixture for :class:`RequestOutcome` instances.

    Example:
        def test_something(make_outcome):
            outcome = make_outcome(status_code=500, duration_ms=120.0)
    """

    def _make(status_code: int = 200, duration_ms: float = 100.0, error: str | None = None):
        return RequestOutcome(
            status_code=status_code,
            duration_ms=duration_ms,
            checks=evaluate_checks(status_code, duration_ms),
            error=error,
        )

    return _make


@pytest.fixture
def make_snapshot(make_outcome) -> Callable[..., MetricsSnapshot]:
    """Factory that records ``(status, duration_ms)`` pairs and returns the snapshot."""

    def _make(samples: list[tuple[int, float]]) -> MetricsSnapshot:
        sink = MetricsAggregator()
        for status_code, duration_ms in samples:
            sink.record(make_outcome(status_code=status_code, duration_ms=duration_ms))
        return sink.snapshot()

    return _make


# -----------------------------------------------------------------------------
# Fake HTTP Session
# -----------------------------------------------------------------------------

class FakeSession:
    """
    Minimal stand-in for ``requests.Session`` used by the executor.

    Each call to :meth:`get` pops the next scripted result: an ``int`` is
    returned as a status code, an exception instance is raised.  Once the
    script runs out the last entry repeats.
    """

    def __init__(self, script: list, on_get: Callable[[], None] | None = None):
        self.script = list(script)
        self.on_get = on_get
        self.calls: list[dict] = []
        self.closed = False

    def get(self, url: str, timeout: float):
        self.calls.append({"url": url, "timeout": timeout})
        if self.on_get is not None:
            self.on_get()
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        return SimpleNamespace(status_code=item, close=lambda: None)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True
        return False


@pytest.fixture
def fake_session_factory() -> Callable[..., FakeSession]:
    return FakeSession


@pytest.fixture
def connection_refused() -> requests.ConnectionError:
    return requests.ConnectionError("Connection refused")
