"""
portfolio_sdk.tier0_core.config
────────────────────────────────
Typed configuration with env layering. Reads from .env → environment
variables. All fields are typed via Pydantic.

The id generator's worker/datacenter assignment comes from here; the
mapping from deployment topology to those two integers belongs to whoever
sets PLATFORM_ID_WORKER_ID / PLATFORM_ID_DATACENTER_ID.

Minimal stack: pydantic-settings + python-dotenv
"""
from __future__ import annotations

from functools import lru_cache

import pydantic
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from portfolio_sdk.tier0_core.errors import ConfigurationError

ROLLBACK_STRATEGIES = ("raise", "wait", "fallback")


class PortfolioConfig(BaseSettings):
    """
    Typed portfolio configuration. Add fields here as the platform grows.
    All env vars are prefixed with PLATFORM_ unless overridden.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ───────────────────────────────────────────────────────────
    app_name: str = Field(default="portfolio", alias="APP_NAME")
    app_version: str = Field(default="0.0.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="APP_ENV")

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", alias="PLATFORM_LOG_LEVEL")
    log_format: str = Field(default="json", alias="PLATFORM_LOG_FORMAT")

    # ── Error reporting ───────────────────────────────────────────────────────
    error_backend: str = Field(default="none", alias="PLATFORM_ERROR_BACKEND")

    # ── Id generation ─────────────────────────────────────────────────────────
    # Range checks live in the generator so failures surface as ConfigurationError.
    id_worker_id: int = Field(default=1, alias="PLATFORM_ID_WORKER_ID")
    id_datacenter_id: int = Field(default=1, alias="PLATFORM_ID_DATACENTER_ID")
    id_rollback_strategy: str = Field(
        default="raise", alias="PLATFORM_ID_ROLLBACK_STRATEGY"
    )
    id_max_rollback_wait_ms: int = Field(
        default=5, ge=0, alias="PLATFORM_ID_MAX_ROLLBACK_WAIT_MS"
    )
    id_spin_timeout_ms: int = Field(
        default=50, gt=0, alias="PLATFORM_ID_SPIN_TIMEOUT_MS"
    )

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if v.lower() not in allowed:
            raise ValueError(f"environment must be one of {allowed}, got {v!r}")
        return v.lower()

    @field_validator("id_rollback_strategy")
    @classmethod
    def validate_rollback_strategy(cls, v: str) -> str:
        if v.lower() not in ROLLBACK_STRATEGIES:
            raise ValueError(
                f"id_rollback_strategy must be one of {ROLLBACK_STRATEGIES}, got {v!r}"
            )
        return v.lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_test(self) -> bool:
        return self.environment == "test"


@lru_cache(maxsize=1)
def get_config() -> PortfolioConfig:
    """
    Return the singleton portfolio config. Cached after first call.
    Call _reset_config() in tests to pick up new env vars.

    Raises:
        ConfigurationError: an env var or .env entry has the wrong type or value.
    """
    try:
        return PortfolioConfig()
    except pydantic.ValidationError as exc:
        fields = {
            ".".join(str(part) for part in error["loc"]): error["msg"]
            for error in exc.errors()
        }
        raise ConfigurationError(
            user_message="Invalid portfolio configuration.",
            detail=str(exc),
            fields=fields,
        ) from exc


def _reset_config() -> None:
    """For tests — clear the config cache."""
    get_config.cache_clear()
