"""
Settings for the catalog, its metadata providers and the enrichment run.

Every section is a pydantic-settings model with its own environment
prefix, so any field can be overridden without touching code.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CatalogConfig(BaseSettings):
    """Catalog database configuration."""

    model_config = SettingsConfigDict(env_prefix="CATALOG_")

    database_path: Path = Field(
        default=Path("master_catalog.db"),
        description="SQLite file holding the reference catalog",
    )
    echo_sql: bool = Field(
        default=False,
        description="Echo SQL statements (debugging only)",
    )


class RawgAPIConfig(BaseSettings):
    """RAWG game database configuration."""

    model_config = SettingsConfigDict(env_prefix="RAWG_")

    api_key: SecretStr | None = Field(
        default=None,
        description="RAWG API key from https://rawg.io/apidocs (provider disabled without it)",
    )
    base_url: str = Field(
        default="https://api.rawg.io/api",
        description="Base URL for the RAWG API",
    )
    requests_per_minute: int = Field(
        default=40,
        ge=1,
        le=200,
        description="Rate limit for RAWG requests per minute",
    )

    @field_validator("api_key")
    @classmethod
    def blank_key_is_none(cls, v: SecretStr | None) -> SecretStr | None:
        """Treat an empty or whitespace key as not configured."""
        if v is not None and not v.get_secret_value().strip():
            return None
        return v

    @property
    def is_configured(self) -> bool:
        """Check whether a usable API key is present."""
        return self.api_key is not None


class ProviderConfig(BaseSettings):
    """Settings shared by the metadata providers."""

    model_config = SettingsConfigDict(env_prefix="PROVIDER_")

    timeout_seconds: float = Field(
        default=20.0,
        ge=1.0,
        le=120.0,
        description="Upper bound for a single provider lookup",
    )
    user_agent: str = Field(
        default="SoftwareCatalog/0.1 (metadata enrichment)",
        description="User-Agent sent to HTTP providers",
    )
    winget_executable: str = Field(
        default="winget",
        description="Name or path of the winget CLI",
    )
    cnet_search_url: str = Field(
        default="https://www.cnet.com/search/",
        description="CNET search page used by the scraper",
    )
    cnet_min_interval_seconds: float = Field(
        default=2.0,
        ge=0.0,
        le=60.0,
        description="Minimum delay between two CNET requests",
    )
    wikipedia_api_url: str = Field(
        default="https://en.wikipedia.org/w/api.php",
        description="MediaWiki API endpoint",
    )


class EnrichmentConfig(BaseSettings):
    """Enrichment sweep configuration."""

    model_config = SettingsConfigDict(env_prefix="ENRICHMENT_")

    cooldown_hours: float = Field(
        default=24.0,
        ge=0.0,
        le=24.0 * 365,
        description="Minimum time between two enrichment attempts for one entry",
    )
    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=32,
        description="Number of entries enriched in parallel",
    )
    batch_delay_seconds: float = Field(
        default=0.5,
        ge=0.0,
        le=30.0,
        description="Pause after each entry inside a worker slot",
    )
    sweep_limit: int = Field(
        default=100,
        ge=1,
        le=100_000,
        description="Maximum entries selected by one sweep",
    )
    max_age_days: int = Field(
        default=30,
        ge=1,
        le=3650,
        description="Re-enrich entries whose last enrichment is older than this",
    )


class RetryConfig(BaseSettings):
    """Backoff policy for provider HTTP calls."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts per request, first one included")
    base_delay_seconds: float = Field(default=1.0, ge=0.1, le=30.0, description="First backoff step")
    max_delay_seconds: float = Field(default=10.0, ge=1.0, le=300.0, description="Cap on a single backoff sleep")
    exponential_base: float = Field(default=2.0, ge=1.5, le=4.0, description="Growth factor between backoff steps")


class LoggingConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = Field(default="console", description="Renderer for stderr output")
    include_timestamp: bool = True


class Settings(BaseSettings):
    """All configuration sections, read from the environment and an optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: Literal["development", "staging", "production"] = "development"

    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    rawg: RawgAPIConfig = Field(default_factory=RawgAPIConfig)
    providers: ProviderConfig = Field(default_factory=ProviderConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, built once on first use."""
    return Settings()
