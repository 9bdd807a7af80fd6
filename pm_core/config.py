# PM Core Configuration
"""
Configuration management for PM Core.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_cache_path() -> Path:
    return Path.home() / ".cache" / "pm-cli" / "cache.json"


class Settings(BaseSettings):
    """PM Core settings."""

    model_config = SettingsConfigDict(env_prefix="PM_CORE_", env_file=".env", extra="ignore")

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    # Task cache (persisted)
    cache_path: Path = _default_cache_path()
    cache_ttl: int = 300  # 5 minutes

    # Provider metadata cache (in-memory)
    metadata_cache_ttl: int = 300  # 5 minutes


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
