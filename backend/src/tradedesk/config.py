"""
Application configuration loaded from environment variables.

All configuration is validated at startup to fail fast on misconfiguration.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with validation.
    
    All settings are loaded from environment variables with the same name.
    Use .env file for local development.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )
    
    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./tradedesk.db",
        description="SQLAlchemy async connection URL (asyncpg or aiosqlite driver)"
    )
    db_pool_size: int = Field(
        default=5,
        ge=1,
        description="Connection pool size for pooled database backends"
    )
    db_max_overflow: int = Field(
        default=10,
        ge=0,
        description="Connections allowed above the pool size under load"
    )
    
    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root logging level"
    )
    
    # Server
    debug: bool = Field(
        default=False,
        description="Enable debug mode with detailed error messages"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.
    
    Settings are loaded once at startup and cached for subsequent calls.
    This ensures consistent configuration across the application lifecycle.
    """
    return Settings()
