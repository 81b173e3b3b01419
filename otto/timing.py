"""
Clock helpers shared by logging, observations and boundary adapters.

Durations come from the monotonic clock; wall-clock values are only used for
stamps (observation timestamps, log lines).
"""
from __future__ import annotations

import time
from datetime import datetime, timezone

_START_MONOTONIC = time.monotonic()
_START_WALL = time.time()


def _iso_z(dt: datetime) -> str:
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def uptime_seconds() -> float:
    """Seconds since this module was first imported."""
    return time.monotonic() - _START_MONOTONIC


def elapsed_ms(start_monotonic: float) -> int:
    """Whole milliseconds since a ``time.monotonic()`` reading."""
    return int((time.monotonic() - start_monotonic) * 1000)


def now_millis() -> int:
    """UNIX time in milliseconds; stamps screen observations."""
    return int(time.time() * 1000)


def now_utc_iso() -> str:
    return _iso_z(datetime.now(timezone.utc))


def process_start_utc_iso() -> str:
    return _iso_z(datetime.fromtimestamp(_START_WALL, tz=timezone.utc))
