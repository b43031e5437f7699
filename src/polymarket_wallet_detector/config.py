"""Configuration management service with Pydantic Settings.

This module provides centralized configuration for the detection engine,
loading and validating environment variables at startup. Detection
thresholds live in :mod:`polymarket_wallet_detector.thresholds`; the
settings here cover the application layer (cache sizing, concurrency,
logging) and the handful of thresholds operators commonly tune via env.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class VolumeBaselineSettings(BaseSettings):
    """Volume baseline calculator settings."""

    model_config = SettingsConfigDict(env_prefix="VOLUME_BASELINE_", extra="ignore")

    cache_ttl_seconds: int = Field(
        default=15 * 60,
        alias="VOLUME_BASELINE_CACHE_TTL_SECONDS",
        ge=1,
        le=7 * 24 * 3600,
        description="TTL for cached market baselines",
    )
    cache_max_size: int = Field(
        default=1000,
        alias="VOLUME_BASELINE_CACHE_MAX_SIZE",
        ge=1,
        le=1_000_000,
        description="Maximum number of cached market baselines",
    )
    lookback_days: int = Field(
        default=30,
        alias="VOLUME_BASELINE_LOOKBACK_DAYS",
        ge=1,
        le=3650,
        description="History window used when computing baselines",
    )


class FundingPatternSettings(BaseSettings):
    """Funding pattern analyzer settings."""

    model_config = SettingsConfigDict(env_prefix="FUNDING_PATTERN_", extra="ignore")

    cache_ttl_seconds: int = Field(
        default=5 * 60,
        alias="FUNDING_PATTERN_CACHE_TTL_SECONDS",
        ge=1,
        le=7 * 24 * 3600,
        description="TTL for cached funding pattern results",
    )
    cache_max_size: int = Field(
        default=1000,
        alias="FUNDING_PATTERN_CACHE_MAX_SIZE",
        ge=1,
        le=1_000_000,
        description="Maximum number of cached funding pattern results",
    )
    token_decimals: int = Field(
        default=6,
        alias="FUNDING_PATTERN_TOKEN_DECIMALS",
        ge=0,
        le=36,
        description="Decimals of the collateral token when a deposit omits them",
    )


class ClusteringSettings(BaseSettings):
    """Fresh-wallet clustering settings."""

    model_config = SettingsConfigDict(env_prefix="CLUSTERING_", extra="ignore")

    cache_ttl_seconds: int = Field(
        default=5 * 60,
        alias="CLUSTERING_CACHE_TTL_SECONDS",
        ge=1,
        le=7 * 24 * 3600,
        description="TTL for cached per-wallet clustering results",
    )
    cache_max_size: int = Field(
        default=500,
        alias="CLUSTERING_CACHE_MAX_SIZE",
        ge=1,
        le=1_000_000,
        description="Maximum number of cached per-wallet clustering results",
    )
    min_cluster_size: int | None = Field(
        default=None,
        alias="CLUSTERING_MIN_CLUSTER_SIZE",
        ge=2,
        le=1000,
        description="Override for the minimum number of wallets per cluster",
    )
    temporal_window_hours: float | None = Field(
        default=None,
        alias="CLUSTERING_TEMPORAL_WINDOW_HOURS",
        gt=0.0,
        le=24 * 365,
        description="Override for the first-trade proximity window",
    )
    high_coordination_threshold: float | None = Field(
        default=None,
        alias="CLUSTERING_HIGH_COORDINATION_THRESHOLD",
        ge=0.0,
        le=100.0,
        description="Override for the HIGH coordination score band",
    )

    def threshold_overrides(self) -> dict[str, Any]:
        """Return the env-provided clustering threshold overrides."""
        overrides: dict[str, Any] = {}
        if self.min_cluster_size is not None:
            overrides["min_cluster_size"] = self.min_cluster_size
        if self.temporal_window_hours is not None:
            overrides["temporal_window_hours"] = self.temporal_window_hours
        if self.high_coordination_threshold is not None:
            overrides["high_coordination_threshold"] = self.high_coordination_threshold
        return overrides


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from polymarket_wallet_detector.config import get_settings

        settings = get_settings()
        print(settings.clustering.cache_ttl_seconds)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    volume_baseline: VolumeBaselineSettings = Field(
        default_factory=lambda: VolumeBaselineSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    funding_pattern: FundingPatternSettings = Field(
        default_factory=lambda: FundingPatternSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    clustering: ClusteringSettings = Field(
        default_factory=lambda: ClusteringSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    concurrency: int = Field(
        default=8,
        alias="DETECTION_CONCURRENCY",
        ge=1,
        le=256,
        description="Maximum per-entity analyses running at once in batch helpers",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a printable summary of the effective settings."""
        return {
            "log_level": self.log_level,
            "concurrency": str(self.concurrency),
            "volume_baseline": {
                "cache_ttl_seconds": str(self.volume_baseline.cache_ttl_seconds),
                "cache_max_size": str(self.volume_baseline.cache_max_size),
                "lookback_days": str(self.volume_baseline.lookback_days),
            },
            "funding_pattern": {
                "cache_ttl_seconds": str(self.funding_pattern.cache_ttl_seconds),
                "cache_max_size": str(self.funding_pattern.cache_max_size),
                "token_decimals": str(self.funding_pattern.token_decimals),
            },
            "clustering": {
                "cache_ttl_seconds": str(self.clustering.cache_ttl_seconds),
                "cache_max_size": str(self.clustering.cache_max_size),
                "min_cluster_size": str(self.clustering.min_cluster_size or "(default)"),
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
