"""
portfolio_sdk.tier1_runtime.clock
──────────────────────────────────
Mockable millisecond time source. Code that needs the current time (the id
generator above all) should read it through a Clock instead of calling
time.time() directly. This makes time fully controllable in tests: frozen,
stepped, or rolled backwards.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable


def _wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


# ── Clock implementation ───────────────────────────────────────────────────

class Clock:
    """Mockable clock. Pass ms_fn to control time in tests."""

    def __init__(self, ms_fn: Callable[[], int] | None = None) -> None:
        self._ms_fn = ms_fn or _wall_clock_ms

    def timestamp_ms(self) -> int:
        """Return the current Unix timestamp in milliseconds."""
        return int(self._ms_fn())

    def timestamp(self) -> float:
        """Return the current Unix timestamp (float seconds)."""
        return self.timestamp_ms() / 1000

    def now(self) -> datetime:
        """Return the current UTC datetime."""
        return datetime.fromtimestamp(self.timestamp(), tz=timezone.utc)

    def freeze(self, dt: datetime) -> "Clock":
        """Return a new Clock frozen at the given datetime."""
        ms = int(dt.timestamp() * 1000)
        return Clock(ms_fn=lambda: ms)

    def freeze_ms(self, ms: int) -> "Clock":
        """Return a new Clock frozen at the given millisecond timestamp."""
        return Clock(ms_fn=lambda: ms)

    def advance(self, seconds: float) -> "Clock":
        """Return a new Clock running *seconds* ahead of this one."""
        offset = int(seconds * 1000)
        return Clock(ms_fn=lambda: self.timestamp_ms() + offset)


# ── Module-level default ───────────────────────────────────────────────────

_clock = Clock()


def get_clock() -> Clock:
    """Return the global clock instance."""
    return _clock


def set_clock(clock: Clock) -> None:
    """Replace the global clock (use in tests)."""
    global _clock
    _clock = clock


def now() -> datetime:
    """Return the current UTC datetime."""
    return _clock.now()


def timestamp_ms() -> int:
    """Return the current Unix timestamp in milliseconds."""
    return _clock.timestamp_ms()


__all__ = ["Clock", "get_clock", "set_clock", "now", "timestamp_ms"]
