"""
portfolio_sdk test configuration.

All tests run with deterministic settings by default; no external services
required. Override by setting environment variables before running pytest.
"""
from __future__ import annotations

import os

import pytest

# ── Force test settings ────────────────────────────────────────────────────
# These must be set before any portfolio_sdk modules are imported.

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("PLATFORM_ERROR_BACKEND", "none")
os.environ.setdefault("PLATFORM_LOG_FORMAT", "console")

EPOCH_MS = 1704067200000


# ── Fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def reset_module_singletons():
    """
    Reset cached singletons between tests so no config or generator state
    bleeds from one test into the next.
    """
    from portfolio_sdk.tier0_core.config import _reset_config
    from portfolio_sdk.tier1_runtime.clock import get_clock, set_clock
    from portfolio_sdk.tier1_runtime.snowflake import _reset_generator

    orig_clock = get_clock()
    _reset_config()
    _reset_generator()

    yield

    set_clock(orig_clock)
    _reset_config()
    _reset_generator()


@pytest.fixture
def manual_ms():
    """A mutable millisecond value plus a Clock reading it."""
    from portfolio_sdk.tier1_runtime.clock import Clock

    class _Manual:
        def __init__(self) -> None:
            self.value = EPOCH_MS + 123
            self.clock = Clock(ms_fn=lambda: self.value)

    return _Manual()


@pytest.fixture
def no_sleep():
    """Sleep replacement recording requested pauses."""
    calls: list[float] = []

    def _sleep(seconds: float) -> None:
        calls.append(seconds)

    _sleep.calls = calls  # type: ignore[attr-defined]
    return _sleep
