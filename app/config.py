# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all configuration values.
#
# Usage:
#   from app.config import settings
#   print(settings.database_url)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# The Settings class validates all values at startup, catching configuration
# errors early rather than at runtime.
# =============================================================================

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses pydantic-settings to:
    - Automatically load from .env file
    - Validate types and constraints
    - Provide sensible defaults for development (and docker-compose)

    All settings are accessed via the global `settings` instance.
    """

    # -------------------------------------------------------------------------
    # MySQL Configuration
    # -------------------------------------------------------------------------
    # Individual parts are combined into a SQLAlchemy URL unless DATABASE_URL
    # is set, in which case it wins.

    DB_HOST: str = Field(
        default="localhost",
        description="Database host (the service name when running in compose)"
    )

    DB_PORT: int = Field(
        default=3306,
        ge=1,
        le=65535,
        description="Database port"
    )

    DB_NAME: str = Field(
        default="app",
        description="Database (schema) name"
    )

    DB_USER: str = Field(
        default="root",
        description="Database user"
    )

    DB_PASSWORD: str = Field(
        default="",
        description="Database password"
    )

    DATABASE_URL: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL, overrides the DB_* parts when set"
    )

    # -------------------------------------------------------------------------
    # Connection Pool
    # -------------------------------------------------------------------------

    DB_POOL_MAX: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum number of pooled connections"
    )

    DB_POOL_ACQUIRE_TIMEOUT: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for a free pooled connection"
    )

    DB_POOL_RECYCLE_SECONDS: int = Field(
        default=10,
        ge=1,
        description="Maximum age in seconds of a pooled connection before it is replaced (age, not idle time)"
    )

    # -------------------------------------------------------------------------
    # Startup Synchronization
    # -------------------------------------------------------------------------
    # The database container may come up after the API container, so the
    # connect + schema sync is retried on a fixed interval.

    DB_SYNC_MAX_ATTEMPTS: int = Field(
        default=10,
        ge=0,
        description="Attempts before giving up (0 = retry forever)"
    )

    DB_SYNC_RETRY_DELAY_SECONDS: float = Field(
        default=5.0,
        ge=0,
        description="Fixed delay between sync attempts"
    )

    DB_SYNC_BLOCKING: bool = Field(
        default=False,
        description="Hold back the HTTP listener until the sync has finished"
    )

    DB_SCHEMA_ALTER: bool = Field(
        default=False,
        description="Allow non-destructive ALTER TABLE when the users table is out of date"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Current environment"
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging, auto-reload)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server to"
    )

    PORT: int = Field(
        default=3000,
        ge=1,
        le=65535,
        description="Port for the API server"
    )

    DOCS_ENABLED: bool = Field(
        default=True,
        description="Serve generated API docs at /docs and /redoc"
    )

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        # Load from .env file in project root
        env_file=".env",
        env_file_encoding="utf-8",
        # Treat empty variables as unset so defaults still apply
        env_ignore_empty=True,
        # Case-sensitive environment variable names
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy URL for the configured database.

        Example: mysql+pymysql://root:secret@db:3306/app
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return URL.create(
            "mysql+pymysql",
            username=self.DB_USER,
            password=self.DB_PASSWORD or None,
            host=self.DB_HOST,
            port=self.DB_PORT,
            database=self.DB_NAME,
        ).render_as_string(hide_password=False)

    @property
    def sync_max_attempts(self) -> int | None:
        """Attempt ceiling for the startup sync, None when unbounded."""
        return self.DB_SYNC_MAX_ATTEMPTS or None


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once,
    not on every access. This is the recommended pattern for
    pydantic-settings.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
# Usage: from app.config import settings
settings = get_settings()
