"""Miscellaneous helpers."""

from __future__ import annotations

import asyncio
import time

_DURATION_UNITS = {"s": 1.0, "m": 60.0, "h": 3600.0}


class RateLimiter:
    """Simple rate limiter using sleep between events."""

    def __init__(self, rate_per_second: float):
        self.update_rate(rate_per_second)
        self._lock = asyncio.Lock()
        self._next_time = 0.0

    def update_rate(self, rate_per_second: float) -> None:
        self._interval = 0.0 if rate_per_second <= 0 else 1.0 / rate_per_second

    async def wait(self) -> None:
        async with self._lock:
            if self._interval <= 0:
                return
            now = time.perf_counter()
            if now < self._next_time:
                await asyncio.sleep(self._next_time - now)
            self._next_time = time.perf_counter() + self._interval


def parse_duration(value: str | None, default: float) -> float:
    """Parse a duration in seconds.

    Accepts plain numbers (``120``, ``1.5``) or a single unit suffix
    (``90s``, ``5m``, ``1h``). Empty, invalid or non-positive values return
    ``default``.
    """

    if value is None:
        return default
    stripped = value.strip().lower()
    if not stripped:
        return default
    multiplier = 1.0
    if stripped[-1] in _DURATION_UNITS:
        multiplier = _DURATION_UNITS[stripped[-1]]
        stripped = stripped[:-1].strip()
    try:
        parsed = float(stripped) * multiplier
    except ValueError:
        return default
    if parsed <= 0:
        return default
    return parsed


def parse_port(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        port = int(value.strip())
    except ValueError:
        return default
    if not 0 < port < 65536:
        return default
    return port
