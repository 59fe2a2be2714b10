"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_log_settings() -> "LogSettings":
    """Build log settings from environment."""

    return LogSettings()


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment."""

    return AppSettings()


class LogSettings(BaseSettings):
    """Logging configuration (format, destination, correlation header)."""

    level: str = Field(
        "INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    format: str = Field(
        "json",
        description="Log output format: 'json' or 'plain'",
    )
    output: str = Field(
        "stdout",
        description="Log destination: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output is 'file' (default logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_prefix: str = Field(
        "/api/v1",
        description="Path prefix for the task routes",
    )
    api_version: str = Field(
        "1.0.0",
        description="Version reported in the X-API-Version header and health checks",
    )
    seed_sample_tasks: bool = Field(
        False,
        description="Load a handful of sample tasks at startup (development aid)",
    )
    trust_proxy: bool = Field(
        False,
        description="Use the first X-Forwarded-For hop as the client address",
    )

    cors_origins: str = Field(
        "http://localhost:3000,http://127.0.0.1:3000",
        description="Comma-separated list of allowed CORS origins ('*' allows any)",
    )
    cors_allow_credentials: bool = Field(
        False,
        description="Whether CORS responses allow credentials",
    )
    enable_csp: bool = Field(
        False,
        description="Emit a restrictive Content-Security-Policy header",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable request rate limiting",
    )
    rate_limit_window_ms: int = Field(
        15 * 60 * 1000,
        description="Fixed window size in milliseconds shared by all limiters",
        ge=1,
    )
    rate_limit_max_requests: int = Field(
        200,
        description="Requests allowed per window on the task API (per client)",
        ge=1,
    )
    global_rate_limit_max_requests: int = Field(
        1000,
        description="Requests allowed per window across all non-exempt paths",
        ge=1,
    )
    strict_rate_limit_max_requests: int = Field(
        20,
        description="Requests allowed per window on mutating task endpoints",
        ge=1,
    )
    lenient_rate_limit_max_requests: int = Field(
        500,
        description="Requests allowed per window on read-only task endpoints",
        ge=1,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers",
    )
    rate_limit_sweep_interval_seconds: float = Field(
        300.0,
        description="How often expired rate limit counters are swept from memory",
        gt=0,
    )
    max_body_bytes: int = Field(
        10 * 1024 * 1024,
        description="Largest accepted request body (Content-Length) in bytes",
        ge=1,
    )
    gzip_minimum_size: int = Field(
        1024,
        description="Responses smaller than this many bytes are sent uncompressed",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )

    @property
    def cors_origin_list(self) -> list[str]:
        """Parsed CORS origins, whitespace trimmed and empties dropped."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.

    Environments:
    - development: Local development (DEBUG=true)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=_build_log_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
