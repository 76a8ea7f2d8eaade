"""
portfolio_sdk.tier0_core.errors
────────────────────────────────
Standard error taxonomy, error codes, user-safe messages, and optional
Sentry error capture. Raising a PlatformError here automatically reports it
if an error backend is configured.

Minimal stack: Sentry OSS (optional)
Select via:    PLATFORM_ERROR_BACKEND=sentry|none
"""
from __future__ import annotations

import os
from typing import Any


# ── Base error ────────────────────────────────────────────────────────────────

class PlatformError(Exception):
    """
    Base class for all portfolio errors. Every error has:
    - code: stable machine-readable string (snake_case)
    - user_message: safe to surface to end users
    - detail: internal context, never shown to users
    - retryable: whether an automatic retry can succeed
    """

    code: str = "internal_error"
    retryable: bool = False

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "An unexpected error occurred.",
        detail: str | None = None,
        **metadata: Any,
    ) -> None:
        self.code = code or self.__class__.code
        self.user_message = user_message
        self.detail = detail or user_message
        self.metadata = metadata
        super().__init__(self.detail)
        _capture(self)

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.user_message,
            }
        }


# ── Typed error classes ───────────────────────────────────────────────────────

class ValidationError(PlatformError):
    """Input validation failure."""
    code = "validation_error"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "Validation failed.",
        fields: dict | None = None,
        **metadata: Any,
    ) -> None:
        self.fields = fields or {}
        super().__init__(code, user_message, **metadata)

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.fields:
            d["error"]["fields"] = self.fields
        return d


class ConfigurationError(PlatformError):
    """Misconfiguration detected at startup. Fix the config and restart."""
    code = "configuration_error"


class ClockRollbackError(PlatformError):
    """The wall clock moved backwards between two id generation calls."""
    code = "clock_rollback"

    def __init__(
        self,
        rollback_ms: int,
        user_message: str = "Clock moved backwards; refusing to generate id.",
        **metadata: Any,
    ) -> None:
        self.rollback_ms = rollback_ms
        super().__init__(
            None,
            user_message,
            detail=f"Clock moved backwards by {rollback_ms} ms. "
                   f"Refusing to generate id for {rollback_ms} milliseconds.",
            rollback_ms=rollback_ms,
            **metadata,
        )


class SequenceExhaustedError(PlatformError, TimeoutError):
    """The clock did not advance past an exhausted millisecond in time."""
    code = "sequence_exhausted"
    retryable = True


class TimestampOutOfRangeError(PlatformError):
    """Current time cannot be encoded in the 41-bit timestamp field."""
    code = "timestamp_out_of_range"


# ── Error capture backend ─────────────────────────────────────────────────────

def _capture(error: PlatformError) -> None:
    """Send error to configured backend. Called automatically by PlatformError.__init__."""
    backend = os.getenv("PLATFORM_ERROR_BACKEND", "none").lower()
    if backend == "sentry":
        _capture_sentry(error)


def _capture_sentry(error: PlatformError) -> None:
    try:
        import sentry_sdk
    except ImportError:
        return
    if isinstance(error, ValidationError):
        sentry_sdk.capture_message(
            str(error),
            level="warning",
            extras={"code": error.code, **error.metadata},
        )
    else:
        sentry_sdk.capture_exception(error)


def configure_sentry(dsn: str, **kwargs: Any) -> None:
    """Initialize Sentry — call once at application startup."""
    import sentry_sdk
    sentry_sdk.init(dsn=dsn, **kwargs)
    os.environ["PLATFORM_ERROR_BACKEND"] = "sentry"


__all__ = [
    "PlatformError", "ValidationError", "ConfigurationError",
    "ClockRollbackError", "SequenceExhaustedError", "TimestampOutOfRangeError",
    "configure_sentry",
]
