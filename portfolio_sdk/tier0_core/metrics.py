"""
portfolio_sdk.tier0_core.metrics
─────────────────────────────────
Counters with standard naming and labels, exported via the Prometheus
default registry (scrape it with prometheus_client's exposition helpers).

Minimal stack: prometheus-client
"""
from __future__ import annotations

import os
from typing import Callable

from prometheus_client import Counter

# Standard labels applied to every metric
_DEFAULT_LABELS = ["service", "env"]
_SERVICE = os.getenv("APP_NAME", "portfolio")
_ENV = os.getenv("APP_ENV", "development")
_DEFAULT_LABEL_VALUES = [_SERVICE, _ENV]
_DEFAULT_LABEL_MAP = dict(zip(_DEFAULT_LABELS, _DEFAULT_LABEL_VALUES))


def counter(name: str, description: str, labels: list[str] | None = None) -> Callable:
    """
    Create a counter with standard portfolio labels.

    Usage:
        ids_total = counter("snowflake_ids_generated_total", "Ids issued", ["path"])
        ids_total(path="structured").inc()
    """
    all_labels = _DEFAULT_LABELS + (labels or [])
    c = Counter(name, description, all_labels)

    def _counter(**extra_labels: str) -> Counter:
        # prometheus-client refuses positional and keyword label values in one call.
        return c.labels(**_DEFAULT_LABEL_MAP, **extra_labels)

    return _counter
