"""Parsing for k6-style duration strings such as ``"30s"`` or ``"1h30m"``."""

from __future__ import annotations

import re

from rampload.errors import ConfigError

# Longest unit first so "ms" is never read as "m" followed by "s".
_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")


def parse_duration(text: str) -> float:
    """
    Convert a duration string to seconds.

    Accepts one or more ``<number><unit>`` parts (``ms``, ``s``, ``m``,
    ``h``), e.g. ``"250ms"``, ``"5m"``, ``"1h30m"``.  A bare number is
    read as seconds.

    Args:
        text: The duration string.

    Returns:
        The duration in seconds as a float.

    Raises:
        ConfigError: If the string is empty, negative, or malformed.
    """
    value = str(text).strip().lower()
    if not value:
        raise ConfigError("Duration must not be empty")

    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        if seconds < 0:
            raise ConfigError(f"Duration must not be negative: {text!r}")
        return seconds

    position = 0
    total = 0.0
    for match in _PART_RE.finditer(value):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(value):
        raise ConfigError(f"Invalid duration: {text!r}")
    return total


def format_duration(seconds: float) -> str:
    """Render *seconds* compactly for log lines and reports (``"1m30s"``)."""
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"

    # Millisecond precision; the fraction is kept on the seconds part.
    total = round(seconds, 3)
    hours, rest = divmod(int(total), 3600)
    minutes = rest // 60
    secs = round(total - hours * 3600 - minutes * 60, 3)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs:g}s")
    return "".join(parts)
