"""
portfolio_sdk.tier0_core.logging
────────────────────────────────
Structured logs with levels, routed through the stdlib root logger. Callers
attach their own context with BoundLogger.bind().

Minimal stack: structlog (stdout JSON or console)
Configure via: PLATFORM_LOG_LEVEL, PLATFORM_LOG_FORMAT=json|console
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog


# ── Configuration ─────────────────────────────────────────────────────────────

def _configure_structlog() -> None:
    log_level = os.getenv("PLATFORM_LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("PLATFORM_LOG_FORMAT", "json").lower()

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))


# ── Public API ────────────────────────────────────────────────────────────────

_configured = False


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Return a structured logger bound to the given name.

    Usage:
        log = get_logger(__name__)
        log.info("snowflake.generator_created", worker_id=1, datacenter_id=1)
        log.bind(worker_id=1).warning("snowflake.clock_rollback", rollback_ms=10)
    """
    global _configured
    if not _configured:
        _configure_structlog()
        _configured = True
    return structlog.get_logger(name or __name__)
