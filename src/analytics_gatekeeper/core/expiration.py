"""
Expiration Policy for Analytics Gatekeeper.

Turns a human-readable TTL ("30d", "1y", "12h", "1h30m") into an absolute
expiry instant. An empty TTL means the credential never expires.

Years are 365 days. Leap years are not accounted for; "1y" is an
approximation, not a calendar year.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta

DAY = timedelta(days=1)
YEAR = timedelta(days=365)

# Units accepted in a general duration expression
_UNIT_SECONDS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_TERM = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


class ExpirationParseError(ValueError):
    """TTL string could not be parsed."""


def parse_duration(spec: str) -> timedelta:
    """
    Parse a duration specification into a timedelta.

    Args:
        spec: "<int>d", "<int>y" or a sequence of "<number><unit>" terms

    Returns:
        Positive timedelta

    Raises:
        ExpirationParseError: If the spec matches no known form or is
            out of range
    """
    try:
        total = _to_timedelta(spec)
    except OverflowError:
        raise ExpirationParseError(f"duration out of range: {spec}") from None

    if total <= timedelta():
        raise ExpirationParseError(f"duration must be positive: {spec}")

    return total


def _to_timedelta(spec: str) -> timedelta:
    if spec.endswith("d"):
        return _count(spec[:-1], spec) * DAY

    if spec.endswith("y"):
        return _count(spec[:-1], spec) * YEAR

    seconds = 0.0
    pos = 0
    while pos < len(spec):
        match = _TERM.match(spec, pos)
        if match is None:
            raise ExpirationParseError(f"invalid duration format: {spec}")
        magnitude, unit = match.groups()
        seconds += float(magnitude) * _UNIT_SECONDS[unit]
        pos = match.end()

    return timedelta(seconds=seconds)


def _count(magnitude: str, spec: str) -> int:
    """Parse the integer magnitude of a day/year spec."""
    if not magnitude.isdigit():
        raise ExpirationParseError(f"invalid duration format: {spec}")
    try:
        value = int(magnitude)
    except ValueError:
        raise ExpirationParseError(f"duration out of range: {spec}") from None
    if value <= 0:
        raise ExpirationParseError(f"duration must be positive: {spec}")
    return value


def resolve(spec: str | None, now: datetime) -> datetime | None:
    """
    Resolve a TTL specification into an absolute expiry instant.

    Args:
        spec: TTL string, or None/empty for no expiration
        now: Reference instant (tz-aware)

    Returns:
        Expiry instant, or None if the credential never expires

    Raises:
        ExpirationParseError: If the spec is not empty and cannot be parsed,
            or the expiry would fall outside the supported date range
    """
    if spec is None:
        return None

    spec = spec.strip()
    if not spec:
        return None

    duration = parse_duration(spec)
    try:
        return now + duration
    except OverflowError:
        raise ExpirationParseError(f"duration out of range: {spec}") from None
