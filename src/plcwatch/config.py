"""Application settings loaded from environment variables.

Uses pydantic-settings; every field can be overridden with a
``PLCWATCH_``-prefixed environment variable or a ``.env`` file.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the CLI, API server and simulated backend."""

    model_config = SettingsConfigDict(
        env_prefix="PLCWATCH_",
        env_file=".env",
        extra="ignore",
    )

    # Simulated Connection Service
    config_path: Path = Path("plcwatch.json")
    telemetry_interval_s: float = Field(default=1.0, gt=0)
    error_every: int = Field(default=0, ge=0)

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    # HTTP server
    api_host: str = "127.0.0.1"
    api_port: int = Field(default=8000, ge=1, le=65535)


@lru_cache
def get_settings() -> Settings:
    """Return the cached process-wide settings."""
    return Settings()
