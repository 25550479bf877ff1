"""
Runtime settings for the load generator.

Defines environment-specific configuration classes in the same shape as a
Flask-style config module: a ``Config`` base carrying the defaults and a
small set of subclasses for development, testing and production.  Unlike
the scenario keys (``VUS``, ``DURATION`` ...), these settings tune the
engine itself: request timeout, think-time, scheduler tick and logging.

Nothing in this module reads ``os.environ``.  The CLI hands the process
environment to :func:`get_config` once at startup; every other component
receives the resulting object explicitly.
"""

from __future__ import annotations

from collections.abc import Mapping

from rampload.errors import ConfigError

# Prefix for every engine override, e.g. RAMPLOAD_REQUEST_TIMEOUT=10.
ENV_PREFIX = "RAMPLOAD_"


class Config:
    """
    Base (shared) configuration.

    Attributes:
        REQUEST_TIMEOUT: Seconds before an outbound request is abandoned
            and recorded as a timeout failure.
        THINK_TIME: Seconds each VU pauses between iterations.
        SCHEDULER_TICK: Seconds between re-evaluations of the VU target.
        RAMP_DURATION: Length of the ramp-up and ramp-down stages.
        LOG_LEVEL: Root logging level name.
    """

    REQUEST_TIMEOUT: float = 30.0
    THINK_TIME: float = 1.0
    SCHEDULER_TICK: float = 0.1
    RAMP_DURATION: str = "30s"
    LOG_LEVEL: str = "INFO"

    _FLOAT_FIELDS = ("REQUEST_TIMEOUT", "THINK_TIME", "SCHEDULER_TICK")
    # A zero timeout is rejected by requests and a zero tick spins the loop.
    _POSITIVE_FIELDS = ("REQUEST_TIMEOUT", "SCHEDULER_TICK")
    _STR_FIELDS = ("RAMP_DURATION", "LOG_LEVEL")

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> "Config":
        """
        Build an instance with ``RAMPLOAD_*`` overrides applied.

        Args:
            environ: Key-value settings, typically the process environment.

        Returns:
            A new instance of *cls* whose attributes reflect any overrides.

        Raises:
            ConfigError: If a numeric override is malformed or out of range.
        """
        settings = cls()
        for name in cls._FLOAT_FIELDS:
            raw = environ.get(ENV_PREFIX + name)
            if raw in (None, ""):
                continue
            try:
                value = float(raw)
            except ValueError as exc:
                raise ConfigError(f"{ENV_PREFIX}{name} must be numeric, got {raw!r}") from exc
            if name in cls._POSITIVE_FIELDS and value <= 0:
                raise ConfigError(f"{ENV_PREFIX}{name} must be greater than zero, got {raw!r}")
            if value < 0:
                raise ConfigError(f"{ENV_PREFIX}{name} must not be negative, got {raw!r}")
            setattr(settings, name, value)

        for name in cls._STR_FIELDS:
            raw = environ.get(ENV_PREFIX + name)
            if raw:
                setattr(settings, name, raw)
        return settings


class DevelopmentConfig(Config):
    """Development defaults: verbose logging, otherwise identical to ``Config``."""

    LOG_LEVEL: str = "DEBUG"


class TestingConfig(Config):
    """
    Test-suite overrides.

    Short timeouts and sub-second ramps keep end-to-end runs against a
    local target fast; think-time is disabled so a handful of VUs still
    produce a useful number of samples.
    """

    REQUEST_TIMEOUT: float = 2.0
    THINK_TIME: float = 0.0
    SCHEDULER_TICK: float = 0.02
    RAMP_DURATION: str = "200ms"
    LOG_LEVEL: str = "WARNING"


class ProductionConfig(Config):
    """Production settings; values are expected to come from the environment."""


# Lookup table mapping environment name strings to their config classes.
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": ProductionConfig,
}


def get_config(env: str | None = None, environ: Mapping[str, str] | None = None) -> Config:
    """
    Return the configuration for the given environment.

    Args:
        env: One of ``"development"``, ``"testing"`` or ``"production"``.
            When *None*, ``RAMPLOAD_ENV`` from *environ* is consulted.
        environ: Settings mapping used for the environment name and
            ``RAMPLOAD_*`` overrides.  Defaults to an empty mapping.

    Returns:
        A ``Config`` instance; unknown environment names fall back to
        ``ProductionConfig``.
    """
    environ = environ or {}
    if env is None:
        env = environ.get(ENV_PREFIX + "ENV", "default")
    config_class = config.get(env, config["default"])
    return config_class.from_environ(environ)
