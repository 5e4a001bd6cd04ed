"""
Configuration management for calsync.

Uses Pydantic Settings for type-safe environment variable loading.
Configured via .env file in project root.
"""

from datetime import time
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be configured via .env file or environment variables.
    """

    # Python & Application
    python_env: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./data/calsync.db",
        description="Database connection URL"
    )

    # API Configuration
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8000,
        description="API server port"
    )
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Externally reachable base URL, used to build feed links"
    )

    # Google OAuth Configuration
    google_oauth_client_id: str = Field(
        default="",
        description="Google OAuth 2.0 client ID"
    )
    google_oauth_client_secret: str = Field(
        default="",
        description="Google OAuth 2.0 client secret"
    )
    google_oauth_redirect_uri: str = Field(
        default="http://localhost:8000/auth/google/callback",
        description="OAuth redirect URI (must match Google Cloud Console)"
    )

    # Token lifecycle
    token_refresh_buffer_seconds: int = Field(
        default=300,
        ge=0,
        description="Refresh access tokens this many seconds before they expire"
    )
    provider_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for every call to the calendar provider"
    )

    # Event mapping
    timezone: str = Field(
        default="Europe/Prague",
        description="Default timezone for entities and the feed (IANA name)"
    )
    default_start_time: time = Field(
        default=time(9, 0),
        description="Start time used when an entity has a date but no time"
    )
    default_event_duration_minutes: Optional[int] = Field(
        default=None,
        gt=0,
        description="Duration used when an entity has neither end time nor duration"
    )

    # Domain collaborator
    entity_source: Optional[str] = Field(
        default=None,
        description="Import path ('module:attribute') of the EntitySource factory"
    )

    # Feed
    feed_calendar_name: str = Field(
        default="Bookings",
        description="Calendar name advertised in the feed (X-WR-CALNAME)"
    )
    feed_product_id: str = Field(
        default="-//calsync//Calendar Feed//EN",
        description="PRODID of generated feeds"
    )
    feed_uid_domain: str = Field(
        default="calsync.local",
        description="Domain part of feed event UIDs"
    )
    feed_token_ttl_days: Optional[int] = Field(
        default=None,
        gt=0,
        description="Lifetime of newly created feed tokens (None = no expiry)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.python_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.python_env == "production"

    @property
    def uses_postgresql(self) -> bool:
        """Check if PostgreSQL is the configured database."""
        return "postgresql" in self.database_url.lower()

    @property
    def uses_google_oauth(self) -> bool:
        """Check if Google OAuth is configured."""
        return bool(self.google_oauth_client_id and self.google_oauth_client_secret)

    def validate_production_config(self) -> None:
        """
        Validate configuration for production environment.

        Raises:
            ValueError: If required production settings are missing or invalid
        """
        if not self.is_production:
            return

        errors = []

        if not self.uses_postgresql:
            errors.append(
                "Production requires PostgreSQL. "
                "Set DATABASE_URL to a PostgreSQL connection string."
            )

        if not self.uses_google_oauth:
            errors.append(
                "GOOGLE_OAUTH_CLIENT_ID and GOOGLE_OAUTH_CLIENT_SECRET are required in production."
            )

        if errors:
            raise ValueError("Production configuration errors:\n- " + "\n- ".join(errors))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure we only load settings once.
    Use this function throughout the application to access settings.

    Returns:
        Settings instance loaded from environment
    """
    return Settings()
