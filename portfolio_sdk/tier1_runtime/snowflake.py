"""
portfolio_sdk.tier1_runtime.snowflake
──────────────────────────────────────
Snowflake-style 64-bit id generation. Ids are time-ordered, decodable, and
unique across generators as long as every running process owns a distinct
(worker_id, datacenter_id) pair.

Layout, most significant bit first:

    0 | 41-bit ms since EPOCH_MS | 5-bit datacenter | 5-bit worker | 12-bit sequence

Many storage layers (JSON, float-backed numeric columns) cannot round-trip
a full 64-bit integer. next_id_as_safe_number() therefore switches to the
unstructured fallback_id() shape once the packed id exceeds the safe
integer range, instead of truncating bits. Fallback ids are best-effort
unique only; rely on a storage-level uniqueness constraint as the backstop.

Usage (composition root):
    generator = SnowflakeIdGenerator.from_config(get_config())
    post_id = generator.next_id()
    generator.parse(post_id).created_at
"""
from __future__ import annotations

import random
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from portfolio_sdk.tier0_core.config import ROLLBACK_STRATEGIES, PortfolioConfig, get_config
from portfolio_sdk.tier0_core.errors import (
    ClockRollbackError,
    ConfigurationError,
    SequenceExhaustedError,
    TimestampOutOfRangeError,
    ValidationError,
)
from portfolio_sdk.tier0_core.logging import get_logger
from portfolio_sdk.tier0_core.metrics import counter
from portfolio_sdk.tier1_runtime.clock import Clock, get_clock
from portfolio_sdk.tier1_runtime.retry import rollback_retrying

logger = get_logger(__name__)

# ── Bit layout ─────────────────────────────────────────────────────────────

# 2024-01-01T00:00:00Z. Changing it reorders every id already in storage.
EPOCH_MS = 1704067200000

TIMESTAMP_BITS = 41
DATACENTER_ID_BITS = 5
WORKER_ID_BITS = 5
SEQUENCE_BITS = 12

MAX_WORKER_ID = (1 << WORKER_ID_BITS) - 1
MAX_DATACENTER_ID = (1 << DATACENTER_ID_BITS) - 1
MAX_TIMESTAMP_DELTA = (1 << TIMESTAMP_BITS) - 1
SEQUENCE_MASK = (1 << SEQUENCE_BITS) - 1

WORKER_ID_SHIFT = SEQUENCE_BITS
DATACENTER_ID_SHIFT = SEQUENCE_BITS + WORKER_ID_BITS
TIMESTAMP_SHIFT = SEQUENCE_BITS + WORKER_ID_BITS + DATACENTER_ID_BITS

MAX_ID = (1 << (TIMESTAMP_BITS + TIMESTAMP_SHIFT)) - 1

# IEEE-754 double safe integer limit (JavaScript Number.MAX_SAFE_INTEGER).
MAX_SAFE_INTEGER = 2**53 - 1

FALLBACK_MULTIPLIER = 1_000_000

# ── Metrics ────────────────────────────────────────────────────────────────

_ids_generated = counter(
    "snowflake_ids_generated_total", "Ids issued by the snowflake generator", ["path"]
)
_clock_rollbacks = counter(
    "snowflake_clock_rollbacks_total", "Wall clock rollbacks observed by the generator"
)
_sequence_exhausted = counter(
    "snowflake_sequence_exhausted_total", "Milliseconds whose 4096-id sequence ran out"
)


# ── Data model ─────────────────────────────────────────────────────────────

def _check_range(name: str, value: Any, maximum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(
            user_message=f"{name} must be an integer between 0 and {maximum}, got {value!r}",
            field=name,
        )
    if not 0 <= value <= maximum:
        raise ConfigurationError(
            user_message=f"{name} must be between 0 and {maximum}, got {value}",
            field=name,
            value=value,
        )


@dataclass(frozen=True)
class GeneratorConfig:
    """Static identity of a generator. Immutable once built."""

    worker_id: int = 1
    datacenter_id: int = 1
    epoch_ms: int = EPOCH_MS

    def __post_init__(self) -> None:
        _check_range("worker_id", self.worker_id, MAX_WORKER_ID)
        _check_range("datacenter_id", self.datacenter_id, MAX_DATACENTER_ID)


@dataclass(frozen=True)
class ParsedId:
    """Decomposition of a structured id."""

    timestamp_ms: int
    datacenter_id: int
    worker_id: int
    sequence: int

    @property
    def created_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp_ms / 1000, tz=timezone.utc)

    def to_dict(self) -> dict:
        return asdict(self)


# ── Generator ──────────────────────────────────────────────────────────────

class SnowflakeIdGenerator:
    """
    Issues strictly increasing ids for one (worker_id, datacenter_id) pair.

    Thread-safe: the read-modify-write of the last timestamp and sequence is
    done under a lock. One instance should live for the whole process and be
    shared by every call site; two instances with the same identity in one
    process can issue duplicates.

    Args:
        worker_id:            0–31, unique per process within a datacenter.
        datacenter_id:        0–31.
        clock:                Millisecond time source. Defaults to the global clock.
        rollback_strategy:    "raise", "wait" or "fallback"; see next_id().
        max_rollback_wait_ms: Largest rollback the "wait" strategy rides out.
        spin_timeout_ms:      How long an exhausted millisecond may spin
                              before SequenceExhaustedError is raised.
        spin_sleep_s:         Pause between clock reads while spinning (0 yields).
        safe_integer_max:     Largest id next_id_as_safe_number() returns as-is.
        sleep:                Sleep function, replaceable in tests.
    """

    def __init__(
        self,
        worker_id: int = 1,
        datacenter_id: int = 1,
        *,
        clock: Clock | None = None,
        rollback_strategy: str = "raise",
        max_rollback_wait_ms: int = 5,
        spin_timeout_ms: int = 50,
        spin_sleep_s: float = 0.0,
        safe_integer_max: int = MAX_SAFE_INTEGER,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = GeneratorConfig(worker_id=worker_id, datacenter_id=datacenter_id)
        if rollback_strategy not in ROLLBACK_STRATEGIES:
            raise ConfigurationError(
                user_message=f"rollback_strategy must be one of {ROLLBACK_STRATEGIES}, "
                             f"got {rollback_strategy!r}",
            )
        if spin_timeout_ms <= 0:
            raise ConfigurationError(user_message="spin_timeout_ms must be positive")
        if spin_sleep_s < 0:
            raise ConfigurationError(user_message="spin_sleep_s must not be negative")
        if max_rollback_wait_ms < 0:
            raise ConfigurationError(user_message="max_rollback_wait_ms must not be negative")

        self._clock = clock or get_clock()
        self.rollback_strategy = rollback_strategy
        self.max_rollback_wait_ms = max_rollback_wait_ms
        self._spin_timeout_s = spin_timeout_ms / 1000
        self._spin_sleep_s = spin_sleep_s
        self.safe_integer_max = safe_integer_max
        self._sleep = sleep

        self._lock = threading.Lock()
        self._last_timestamp = -1
        self._sequence = 0
        self._fallback_warned = False

        self._log = logger.bind(worker_id=worker_id, datacenter_id=datacenter_id)
        self._log.info("snowflake.generator_created", rollback_strategy=rollback_strategy)

    @classmethod
    def from_config(
        cls, config: PortfolioConfig | None = None, **overrides: Any
    ) -> "SnowflakeIdGenerator":
        """Build a generator from PortfolioConfig; keyword args win over config."""
        config = config or get_config()
        kwargs: dict[str, Any] = {
            "worker_id": config.id_worker_id,
            "datacenter_id": config.id_datacenter_id,
            "rollback_strategy": config.id_rollback_strategy,
            "max_rollback_wait_ms": config.id_max_rollback_wait_ms,
            "spin_timeout_ms": config.id_spin_timeout_ms,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    @property
    def worker_id(self) -> int:
        return self.config.worker_id

    @property
    def datacenter_id(self) -> int:
        return self.config.datacenter_id

    # ── Primary path ─────────────────────────────────────────────────────────

    def next_id(self) -> int:
        """
        Return the next structured 64-bit id.

        Raises:
            ClockRollbackError: the clock went backwards. With the "wait"
                strategy, rollbacks up to max_rollback_wait_ms are retried first.
            SequenceExhaustedError: 4096 ids were issued this millisecond and
                the clock did not advance within spin_timeout_ms.
            TimestampOutOfRangeError: now is before the epoch or past the
                41-bit horizon.
        """
        if self.rollback_strategy != "wait":
            return self._generate()
        for attempt in rollback_retrying(self.max_rollback_wait_ms, sleep=self._sleep):
            with attempt:
                return self._generate()
        raise AssertionError("unreachable")  # pragma: no cover

    def _generate(self) -> int:
        with self._lock:
            timestamp = self._clock.timestamp_ms()

            if timestamp < self._last_timestamp:
                rollback_ms = self._last_timestamp - timestamp
                _clock_rollbacks().inc()
                self._log.warning(
                    "snowflake.clock_rollback",
                    rollback_ms=rollback_ms,
                    last_timestamp=self._last_timestamp,
                )
                raise ClockRollbackError(rollback_ms)

            if timestamp == self._last_timestamp:
                self._sequence = (self._sequence + 1) & SEQUENCE_MASK
                if self._sequence == 0:
                    timestamp = self._wait_next_millis(self._last_timestamp)
            else:
                self._sequence = 0

            delta = timestamp - self.config.epoch_ms
            if not 0 <= delta <= MAX_TIMESTAMP_DELTA:
                raise TimestampOutOfRangeError(
                    user_message="Current time cannot be encoded in a snowflake id.",
                    timestamp_ms=timestamp,
                    epoch_ms=self.config.epoch_ms,
                )

            value = (
                (delta << TIMESTAMP_SHIFT)
                | (self.datacenter_id << DATACENTER_ID_SHIFT)
                | (self.worker_id << WORKER_ID_SHIFT)
                | self._sequence
            )
            _ids_generated(path="structured").inc()
            self._last_timestamp = timestamp
            return value

    def _wait_next_millis(self, last_timestamp: int) -> int:
        """Spin until the clock passes *last_timestamp*. Caller holds the lock."""
        _sequence_exhausted().inc()
        self._log.debug("snowflake.sequence_exhausted", last_timestamp=last_timestamp)
        deadline = time.monotonic() + self._spin_timeout_s
        while True:
            timestamp = self._clock.timestamp_ms()
            if timestamp > last_timestamp:
                return timestamp
            if time.monotonic() >= deadline:
                # Leave the counter where a retry in the same millisecond wraps again.
                self._sequence = SEQUENCE_MASK
                raise SequenceExhaustedError(
                    user_message="Id sequence exhausted and the clock did not advance.",
                    last_timestamp=last_timestamp,
                    spin_timeout_ms=int(self._spin_timeout_s * 1000),
                )
            self._sleep(self._spin_sleep_s)

    # ── Safe-number path ─────────────────────────────────────────────────────

    def next_id_as_safe_number(self) -> int:
        """
        Return next_id() if it fits in safe_integer_max, else a fallback id.

        With the "fallback" rollback strategy a clock rollback is also
        answered with a fallback id instead of an error.
        """
        try:
            value = self.next_id()
        except ClockRollbackError:
            if self.rollback_strategy != "fallback":
                raise
            return self._fallback("clock_rollback")
        if value > self.safe_integer_max:
            return self._fallback("unsafe_integer")
        return value

    def fallback_id(self) -> int:
        """now_ms * 1_000_000 + random 0–999_999. May collide within one millisecond."""
        return fallback_id(self._clock)

    def _fallback(self, reason: str) -> int:
        if self._fallback_warned:
            self._log.debug("snowflake.fallback_engaged", reason=reason)
        else:
            self._fallback_warned = True
            self._log.warning("snowflake.fallback_engaged", reason=reason)
        _ids_generated(path="fallback").inc()
        return self.fallback_id()

    # ── Inspection ───────────────────────────────────────────────────────────

    def parse(self, snowflake_id: int) -> ParsedId:
        """Decode an id issued by next_id(). Pure; generator state is untouched."""
        return parse_id(snowflake_id, epoch_ms=self.config.epoch_ms)


# ── Module-level helpers ───────────────────────────────────────────────────

def fallback_id(clock: Clock | None = None) -> int:
    """Unstructured id: current ms * 1_000_000 + a random six-digit suffix."""
    now_ms = (clock or get_clock()).timestamp_ms()
    return now_ms * FALLBACK_MULTIPLIER + random.randint(0, FALLBACK_MULTIPLIER - 1)


def parse_id(snowflake_id: int, epoch_ms: int = EPOCH_MS) -> ParsedId:
    """Split a structured id into timestamp, datacenter, worker and sequence."""
    if isinstance(snowflake_id, bool) or not isinstance(snowflake_id, int):
        raise ValidationError(
            user_message="Snowflake id must be an integer.",
            fields={"id": f"expected int, got {type(snowflake_id).__name__}"},
        )
    if not 0 <= snowflake_id <= MAX_ID:
        raise ValidationError(
            user_message="Snowflake id is out of range.",
            fields={"id": f"must be between 0 and {MAX_ID}"},
        )
    return ParsedId(
        timestamp_ms=(snowflake_id >> TIMESTAMP_SHIFT) + epoch_ms,
        datacenter_id=(snowflake_id >> DATACENTER_ID_SHIFT) & MAX_DATACENTER_ID,
        worker_id=(snowflake_id >> WORKER_ID_SHIFT) & MAX_WORKER_ID,
        sequence=snowflake_id & SEQUENCE_MASK,
    )


# ── Process-wide accessor ──────────────────────────────────────────────────

_generator: SnowflakeIdGenerator | None = None
_generator_lock = threading.Lock()


def get_id_generator(
    worker_id: int | None = None, datacenter_id: int | None = None
) -> SnowflakeIdGenerator:
    """
    Return the process-wide generator, building it on first call.

    The first call fixes the identity (explicit arguments, else
    PortfolioConfig). Later calls return the same instance; passing an
    explicit worker_id/datacenter_id that differs from it raises
    ConfigurationError rather than being ignored. Prefer building one
    generator with SnowflakeIdGenerator.from_config() at startup and
    passing it to call sites.
    """
    global _generator
    with _generator_lock:
        if _generator is None:
            overrides: dict[str, int] = {}
            if worker_id is not None:
                overrides["worker_id"] = worker_id
            if datacenter_id is not None:
                overrides["datacenter_id"] = datacenter_id
            _generator = SnowflakeIdGenerator.from_config(**overrides)
            return _generator

        conflicts = {
            name: (requested, current)
            for name, requested, current in (
                ("worker_id", worker_id, _generator.worker_id),
                ("datacenter_id", datacenter_id, _generator.datacenter_id),
            )
            if requested is not None and requested != current
        }
        if conflicts:
            raise ConfigurationError(
                user_message="Process id generator already configured with a different identity.",
                detail=f"Requested {conflicts} (requested, current); "
                       "the generator identity is fixed for the process lifetime.",
            )
        return _generator


def generate_snowflake_id() -> int:
    """Convenience: a storage-safe id from the process-wide generator."""
    return get_id_generator().next_id_as_safe_number()


def _reset_generator() -> None:
    """For tests — drop the process-wide generator."""
    global _generator
    with _generator_lock:
        _generator = None


__all__ = [
    "EPOCH_MS", "MAX_SAFE_INTEGER", "MAX_WORKER_ID", "MAX_DATACENTER_ID",
    "GeneratorConfig", "ParsedId", "SnowflakeIdGenerator",
    "fallback_id", "parse_id", "get_id_generator", "generate_snowflake_id",
]
