"""
Core configuration module for the Inference Router.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the
INFERENCE_ROUTER_ prefix.

Reference:
- Pydantic BaseSettings pattern (Sinha pp. 193-195)
- Release It! (Nygard): timeouts and circuit breakers are configuration, not code
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All fields use the INFERENCE_ROUTER_ prefix for environment variables.
    Example: INFERENCE_ROUTER_CACHE_TTL_SECONDS=3600

    Dict-valued fields (provider URLs and keys) are read as JSON, e.g.
    INFERENCE_ROUTER_PROVIDER_BASE_URLS='{"groq": "https://api.groq.com/openai/v1"}'
    """

    # =========================================================================
    # Service Configuration
    # =========================================================================
    service_name: str = Field(
        default="inference-router",
        description="Name of the service for logging and identification",
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port the service listens on",
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    cors_origins: list[str] = Field(
        default_factory=list,
        description="Allowed CORS origins outside development (JSON list)",
    )

    # =========================================================================
    # Response Cache Configuration
    # Pattern: optional dependency, absent URL means no cache
    # =========================================================================
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL for the response cache (unset disables it)",
    )
    cache_enabled: bool = Field(
        default=True,
        description="Master switch for the response cache",
    )
    cache_ttl_seconds: int = Field(
        default=86400,
        ge=1,
        description="Response cache time-to-live in seconds",
    )

    # =========================================================================
    # Circuit Breaker Configuration
    # =========================================================================
    circuit_breaker_failure_threshold: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Number of consecutive failures before circuit opens",
    )
    circuit_breaker_reset_timeout_seconds: float = Field(
        default=30.0,
        ge=0.0,
        le=3600.0,
        description="Seconds an open circuit waits before admitting a trial call",
    )
    circuit_breaker_half_open_max_calls: Optional[int] = Field(
        default=None,
        ge=1,
        description="Concurrent trial calls admitted while half-open (unset = unlimited)",
    )

    # =========================================================================
    # Rate Limiting Configuration
    # =========================================================================
    rate_limit_use_queue: bool = Field(
        default=False,
        description="Queue for a token instead of skipping to the next backend",
    )
    rate_limit_acquire_timeout_ms: int = Field(
        default=2000,
        ge=0,
        description="Longest time a routed call waits for a token when queueing",
    )
    rate_limit_daily_reset_timezone: Literal["local", "utc"] = Field(
        default="local",
        description="Clock used to find the midnight that resets daily quotas",
    )

    # =========================================================================
    # Backend Call and Retry Configuration
    # =========================================================================
    backend_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        le=600.0,
        description="Deadline for a single backend call",
    )
    transient_retries: int = Field(
        default=1,
        ge=0,
        le=10,
        description="Retries of a transient backend error before moving down the chain",
    )
    retry_max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries of rate-limit-like errors in execute_with_retry",
    )
    retry_initial_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="First backoff delay in milliseconds",
    )
    retry_max_delay_ms: int = Field(
        default=30000,
        ge=0,
        description="Upper bound on any backoff delay in milliseconds",
    )
    retry_backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Growth factor between consecutive backoff delays",
    )
    retry_jitter_ms: int = Field(
        default=1000,
        ge=0,
        description="Random jitter added to each backoff delay in milliseconds",
    )

    # =========================================================================
    # Provider Endpoints
    # Pattern: SecretStr for sensitive values, use .get_secret_value() to access
    # =========================================================================
    provider_base_urls: dict[str, str] = Field(
        default_factory=dict,
        description="OpenAI-compatible base URL per provider name",
    )
    provider_api_keys: dict[str, SecretStr] = Field(
        default_factory=dict,
        description="API key per provider name",
    )

    # =========================================================================
    # Routing Tables
    # =========================================================================
    fallback_chains_file: Optional[str] = Field(
        default=None,
        description="JSON file overriding the built-in fallback chains",
    )
    rate_limits_file: Optional[str] = Field(
        default=None,
        description="JSON file overriding the built-in per-backend rate limits",
    )

    model_config = {
        "env_prefix": "INFERENCE_ROUTER_",
        "case_sensitive": False,
        "extra": "ignore",
    }

    # =========================================================================
    # Field Validators
    # =========================================================================
    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate Redis URL format."""
        if v is None or v == "":
            return None
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("Redis URL must start with redis:// or rediss://")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if level not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return level


# =============================================================================
# Settings Singleton
# =============================================================================


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Pattern: Singleton via lru_cache. Tests call get_settings.cache_clear()
    after changing the environment.

    Returns:
        Settings: Application settings loaded from the environment
    """
    return Settings()
