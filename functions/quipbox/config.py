"""
Configuration and settings for the quipbox service.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing."""


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="")
    log_level: str = Field(default="INFO")

    # Local dev server
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000)

    # Database (SQLAlchemy URL without the database part, plus its name)
    database_url: Optional[str] = Field(default=None)
    database_name: Optional[str] = Field(default=None)
    db_pool_size: int = Field(default=3, ge=1)
    db_connect_timeout_seconds: float = Field(default=5.0, gt=0)

    # Admin routes are locked when this is unset.
    admin_api_key: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "QUIPBOX_USE_IN_MEMORY_BACKENDS", "use_in_memory_backends"
        ),
    )

    def require_database(self) -> tuple[str, str]:
        """Return (url, name) or fail if either is missing."""
        if not self.database_url:
            raise ConfigurationError("DATABASE_URL is not set")
        if not self.database_name:
            raise ConfigurationError("DATABASE_NAME is not set")
        return self.database_url, self.database_name


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
