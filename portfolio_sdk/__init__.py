"""
portfolio_sdk
─────────────
Stable top-level exports. Import from here, not from sub-modules directly.
Every name exported here is part of the public API and subject to semver.
"""
from portfolio_sdk.tier0_core.logging import get_logger
from portfolio_sdk.tier0_core.errors import (
    PlatformError,
    ValidationError,
    ConfigurationError,
    ClockRollbackError,
    SequenceExhaustedError,
    TimestampOutOfRangeError,
)
from portfolio_sdk.tier0_core.config import get_config, PortfolioConfig

from portfolio_sdk.tier1_runtime.clock import Clock, get_clock, set_clock
from portfolio_sdk.tier1_runtime.snowflake import (
    EPOCH_MS,
    GeneratorConfig,
    ParsedId,
    SnowflakeIdGenerator,
    fallback_id,
    parse_id,
    get_id_generator,
    generate_snowflake_id,
)

__version__ = "0.1.0"
__all__ = [
    # logging
    "get_logger",
    # errors
    "PlatformError", "ValidationError", "ConfigurationError",
    "ClockRollbackError", "SequenceExhaustedError", "TimestampOutOfRangeError",
    # config
    "get_config", "PortfolioConfig",
    # clock
    "Clock", "get_clock", "set_clock",
    # snowflake
    "EPOCH_MS", "GeneratorConfig", "ParsedId", "SnowflakeIdGenerator",
    "fallback_id", "parse_id", "get_id_generator", "generate_snowflake_id",
]
