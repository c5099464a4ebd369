from functools import lru_cache
from threading import Lock
from typing import Optional
import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import model_validator
from app.shared.core.constants import (
    AGGREGATION_DEFAULT_REGIONS,
    GLOBAL_RESOURCE_REGION,
    is_aws_region,
)

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"
ENV_LOCAL = "local"


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


_settings_reload_lock = Lock()


def reload_settings_from_environment() -> "Settings":
    """
    Atomically rebuild and replace cached settings from environment values.

    This avoids mutating the cached singleton instance in-place.
    """
    logger = structlog.get_logger()
    with _settings_reload_lock:
        logger.info("settings_reload_started")
        get_settings.cache_clear()
        refreshed = get_settings()
        logger.info("settings_reload_completed")
        return refreshed


class Settings(BaseSettings):
    """
    Main configuration for CloudForge.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "CloudForge"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: local, development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False
    CORS_ORIGINS: list[str] = []

    # Database
    DATABASE_URL: Optional[str] = None  # Required in prod, optional in dev/test
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600
    DB_ECHO: bool = False

    # Encryption at rest for confirmation secrets (AssumeRole ExternalId)
    ENCRYPTION_KEY: Optional[str] = None

    # AWS
    AWS_DEFAULT_REGION: str = "us-east-1"
    AWS_ENDPOINT_URL: Optional[str] = None  # LocalStack / moto server

    # Resource aggregation
    AGGREGATION_DEFAULT_REGIONS: list[str] = AGGREGATION_DEFAULT_REGIONS
    GLOBAL_RESOURCE_REGION: str = GLOBAL_RESOURCE_REGION
    AGGREGATION_MAX_CONCURRENCY: int = 8
    AGGREGATION_UNIT_TIMEOUT_SECONDS: float = 60.0
    AGGREGATION_MAX_PAGES: int = 100

    # Credential federation (STS AssumeRole)
    FEDERATION_SESSION_PREFIX: str = "CloudForge"
    FEDERATION_DURATION_SECONDS: int = 900
    FEDERATION_TIMEOUT_SECONDS: float = 10.0
    FEDERATION_CACHE_ENABLED: bool = False
    FEDERATION_CACHE_TTL_SECONDS: int = 600

    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True)

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        """Centralized validation, grouped by concern."""
        if self.TESTING and self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}:
            raise ValueError(
                "TESTING must be false in staging/production runtime environments."
            )
        self._validate_database_config()
        self._validate_encryption_config()
        self._validate_region_config()
        self._validate_federation_config()
        return self

    def _validate_database_config(self) -> None:
        if self.is_production and not self.DATABASE_URL:
            raise ValueError("DATABASE_URL is required in production.")

    def _validate_encryption_config(self) -> None:
        if self.TESTING:
            return
        if not self.ENCRYPTION_KEY or len(self.ENCRYPTION_KEY) < 32:
            raise ValueError("ENCRYPTION_KEY must be set and at least 32 characters long.")

    def _validate_region_config(self) -> None:
        if not self.AGGREGATION_DEFAULT_REGIONS:
            raise ValueError("AGGREGATION_DEFAULT_REGIONS must not be empty.")
        malformed = [r for r in self.AGGREGATION_DEFAULT_REGIONS if not is_aws_region(r)]
        if malformed:
            raise ValueError(
                f"AGGREGATION_DEFAULT_REGIONS contains malformed regions: {malformed}"
            )
        for name in ("GLOBAL_RESOURCE_REGION", "AWS_DEFAULT_REGION"):
            if not is_aws_region(getattr(self, name)):
                raise ValueError(f"{name} must be an AWS region name such as us-east-1.")
        if self.AGGREGATION_MAX_CONCURRENCY < 1:
            raise ValueError("AGGREGATION_MAX_CONCURRENCY must be >= 1.")
        if self.AGGREGATION_UNIT_TIMEOUT_SECONDS <= 0:
            raise ValueError("AGGREGATION_UNIT_TIMEOUT_SECONDS must be > 0.")
        if self.AGGREGATION_MAX_PAGES < 1:
            raise ValueError("AGGREGATION_MAX_PAGES must be >= 1.")

    def _validate_federation_config(self) -> None:
        # STS rejects AssumeRole durations below 15 minutes.
        if not 900 <= self.FEDERATION_DURATION_SECONDS <= 43200:
            raise ValueError("FEDERATION_DURATION_SECONDS must be between 900 and 43200.")
        if self.FEDERATION_TIMEOUT_SECONDS <= 0:
            raise ValueError("FEDERATION_TIMEOUT_SECONDS must be > 0.")
        if self.FEDERATION_CACHE_TTL_SECONDS < 60:
            raise ValueError("FEDERATION_CACHE_TTL_SECONDS must be >= 60.")
        if not self.FEDERATION_SESSION_PREFIX.strip():
            raise ValueError("FEDERATION_SESSION_PREFIX must not be empty.")

    @property
    def is_production(self) -> bool:
        """
        True only when ENVIRONMENT is explicitly set to 'production'.
        Staging/Development use DEBUG=False but are NOT 'production'.
        """
        return self.ENVIRONMENT == ENV_PRODUCTION
