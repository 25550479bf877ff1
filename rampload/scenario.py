"""
Scenario construction: stages, thresholds and target URL.

A scenario is built once, before any VU starts, from an explicit
key-value mapping (normally the process environment captured by the CLI)
and is read-only for the rest of the run.  The profile is fixed to three
stages, mirroring the classic k6 ramp script:

1. ramp up to ``VUS`` over the ramp duration (30s by default),
2. hold ``VUS`` for ``DURATION``,
3. ramp down to zero over the ramp duration.

Recognised keys:

=============== ================================================ =========
Key             Effect                                           Default
=============== ================================================ =========
``VUS``         VU count during the sustain stage                ``10``
``DURATION``    Sustain stage length (``"5m"``, ``"90s"`` ...)   ``"5m"``
``SERVICE_URL`` Full target URL, takes precedence                (none)
``DEPLOYMENT``  Combined with ``NAMESPACE`` into a cluster URL   (none)
``NAMESPACE``   Combined with ``DEPLOYMENT`` into a cluster URL  (none)
=============== ================================================ =========
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import yaml

from rampload.durations import parse_duration
from rampload.errors import ConfigError
from rampload.thresholds import Threshold, parse_thresholds

DEFAULT_VUS = "10"
DEFAULT_DURATION = "5m"
RAMP_DURATION = "30s"

# ASCII digits only; int() would also accept "+5" or "1_000".
_VUS_RE = re.compile(r"[0-9]+\Z")

# Same shape as k6 ``options.thresholds``: metric name -> expressions.
DEFAULT_THRESHOLDS: dict[str, list[str]] = {
    "http_req_duration": ["p(95)<500"],
    "http_req_failed": ["rate<0.05"],
}


@dataclass(frozen=True)
class Stage:
    """One segment of the ramp: reach ``target`` VUs over ``duration`` seconds."""

    duration: float
    target: int

    def __post_init__(self) -> None:
        if self.duration < 0:
            raise ConfigError(f"Stage duration must not be negative: {self.duration}")
        if self.target < 0:
            raise ConfigError(f"Stage target must not be negative: {self.target}")


@dataclass(frozen=True)
class ScenarioConfig:
    """
    Fully-resolved, immutable description of one load test.

    Attributes:
        stages: Ordered ramp profile.
        thresholds: Pass/fail criteria evaluated at the end of the run.
        target_url: URL every iteration requests.
        vus: Sustain-stage VU count, kept for reporting.
        sustain: Sustain-stage length in seconds, kept for reporting.
    """

    stages: tuple[Stage, ...]
    thresholds: tuple[Threshold, ...]
    target_url: str
    vus: int
    sustain: float

    @property
    def total_duration(self) -> float:
        return sum(stage.duration for stage in self.stages)


def resolve_target_url(env: Mapping[str, str]) -> str:
    """
    Work out the URL under test.

    ``SERVICE_URL`` is used verbatim when set.  Otherwise the in-cluster
    service address ``http://{DEPLOYMENT}.{NAMESPACE}.svc.cluster.local``
    is synthesised.

    Raises:
        ConfigError: If neither form can be resolved.
    """
    service_url = (env.get("SERVICE_URL") or "").strip()
    if service_url:
        return service_url

    deployment = (env.get("DEPLOYMENT") or "").strip()
    namespace = (env.get("NAMESPACE") or "").strip()
    if not deployment or not namespace:
        raise ConfigError("Set SERVICE_URL, or both DEPLOYMENT and NAMESPACE, to choose a target")
    return f"http://{deployment}.{namespace}.svc.cluster.local"


def parse_vus(raw: str | None) -> int:
    """
    Parse the ``VUS`` setting, failing loudly on anything non-numeric.

    An unset or empty value falls back to ``DEFAULT_VUS``.
    """
    text = (raw or "").strip() or DEFAULT_VUS
    if not _VUS_RE.match(text):
        raise ConfigError(f"VUS must be a non-negative whole number, got {raw!r}")
    return int(text)


def build_stages(vus: int, sustain: float, ramp: float) -> tuple[Stage, ...]:
    """Return the ramp-up / sustain / ramp-down profile."""
    return (
        Stage(duration=ramp, target=vus),
        Stage(duration=sustain, target=vus),
        Stage(duration=ramp, target=0),
    )


def load_thresholds_file(path: Path) -> dict[str, list[str]]:
    """
    Read threshold expressions from a YAML file.

    The file maps metric names to one expression or a list of them::

        http_req_duration:
          - "p(95)<500"
          - "p(99)<1500"
        http_req_failed: "rate<0.05"

    An empty file, or a metric with no expressions, is rejected.

    Raises:
        ConfigError: If the file is missing, unparsable, empty or mis-shaped.
    """
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigError(f"Cannot read thresholds file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Thresholds file {path} is not valid YAML: {exc}") from exc

    if not data:
        raise ConfigError(f"Thresholds file {path} defines no thresholds")
    if not isinstance(data, dict):
        raise ConfigError(f"Thresholds file {path} must contain a mapping of metric -> expressions")

    thresholds: dict[str, list[str]] = {}
    for metric, expressions in data.items():
        if isinstance(expressions, str):
            expressions = [expressions]
        if not isinstance(expressions, list) or not all(isinstance(e, str) for e in expressions):
            raise ConfigError(f"Thresholds for {metric!r} must be a string or list of strings")
        if not expressions:
            raise ConfigError(f"Thresholds for {metric!r} must list at least one expression")
        thresholds[str(metric)] = expressions
    return thresholds


def build_scenario(
    env: Mapping[str, str],
    *,
    ramp: str = RAMP_DURATION,
    thresholds: Mapping[str, Sequence[str]] | None = None,
) -> ScenarioConfig:
    """
    Build the scenario from explicit settings.

    Args:
        env: Scenario keys (see module docstring).
        ramp: Duration string for the ramp-up and ramp-down stages.
        thresholds: Optional replacement for ``DEFAULT_THRESHOLDS``.

    Returns:
        The immutable :class:`ScenarioConfig`.

    Raises:
        ConfigError: On an unresolvable target, a non-numeric ``VUS``, a
            malformed duration, or an invalid threshold expression.
    """
    target_url = resolve_target_url(env)
    vus = parse_vus(env.get("VUS"))
    sustain = parse_duration((env.get("DURATION") or "").strip() or DEFAULT_DURATION)
    ramp_seconds = parse_duration(ramp)

    return ScenarioConfig(
        stages=build_stages(vus, sustain, ramp_seconds),
        thresholds=parse_thresholds(thresholds if thresholds is not None else DEFAULT_THRESHOLDS),
        target_url=target_url,
        vus=vus,
        sustain=sustain,
    )
