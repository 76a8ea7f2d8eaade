"""
portfolio_sdk.tier1_runtime.retry
───────────────────────────────────
Standard retry policies. Backed by Tenacity.

Usage:
    for attempt in rollback_retrying(max_wait_ms=5):
        with attempt:
            return generator.next_id()
"""
from __future__ import annotations

import time
from collections.abc import Callable

from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
)

from portfolio_sdk.tier0_core.errors import ClockRollbackError


def rollback_retrying(
    max_wait_ms: int,
    sleep: Callable[[float], None] = time.sleep,
) -> Retrying:
    """
    Retry policy for small wall-clock rollbacks.

    Retries only ClockRollbackError whose magnitude is within *max_wait_ms*,
    waiting one millisecond between attempts, and re-raises the last error
    once roughly *max_wait_ms* (plus one tick of slack) has elapsed.
    """
    def _tolerable(exc: BaseException) -> bool:
        return isinstance(exc, ClockRollbackError) and exc.rollback_ms <= max_wait_ms

    return Retrying(
        stop=stop_after_delay((max_wait_ms + 1) / 1000) | stop_after_attempt(max_wait_ms + 2),
        wait=wait_fixed(0.001),
        retry=retry_if_exception(_tolerable),
        sleep=sleep,
        reraise=True,
    )


__all__ = ["rollback_retrying"]
