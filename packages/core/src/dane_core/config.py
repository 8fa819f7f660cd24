"""Process configuration for dane.

This module provides Pydantic Settings-based configuration with environment
variable support. It only governs ambient concerns (environment name and
logging); statutory constants live in :mod:`dane_core.tax_constants` and are
passed explicitly to the engines.

Usage:
    from dane_core.config import DaneSettings

    settings = DaneSettings()
    print(settings.log_level)
"""

from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogFormat(str, Enum):
    """Supported log renderers."""

    CONSOLE = "console"
    JSON = "json"


class DaneSettings(BaseSettings):
    """Root settings for dane.

    Environment Variables:
        DANE_ENV: Environment name (development, staging, production, test)
        DANE_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        DANE_LOG_FORMAT: Log renderer (console, json)
    """

    model_config = SettingsConfigDict(
        env_prefix="DANE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    env: str = Field(
        default="development",
        description="Environment name (development, staging, production, test)",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: LogFormat = Field(
        default=LogFormat.CONSOLE,
        description="Renderer used for log output",
    )

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment name."""
        valid_envs = {"development", "staging", "production", "test"}
        v_lower = v.lower().strip()
        if v_lower not in valid_envs:
            raise ValueError(f"Invalid environment: {v}. Must be one of: {valid_envs}")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper().strip()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {valid_levels}")
        return v_upper

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.env == "production"

    @property
    def is_debug(self) -> bool:
        """Check if debug logging is enabled."""
        return self.log_level == "DEBUG"
