"""
Application configuration using pydantic-settings.

Nested settings use their own env prefix, e.g. INGEST__PARSE_WORKERS=8
or PACK__STORE_FILENAME=store.sqlite.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PackSettings(BaseSettings):
    """Layout and versioning of a memory pack directory."""

    model_config = SettingsConfigDict(
        env_prefix="PACK__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    store_filename: str = "store.sqlite"
    manifest_filename: str = "manifest.json"
    schema_version: int = 1
    smoke_token: str = "test"  # Default token for verify when none is given


class IngestSettings(BaseSettings):
    """Tuning for the ingestion run."""

    model_config = SettingsConfigDict(
        env_prefix="INGEST__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    parse_workers: int = 4
    # Numeric timestamps below this are epoch seconds, not milliseconds
    seconds_threshold: int = 10_000_000_000
    # Files larger than this are parsed item by item instead of loaded whole
    streaming_threshold_bytes: int = 200 * 1024 * 1024

    @field_validator("parse_workers")
    @classmethod
    def validate_parse_workers(cls, v):
        """At least one parser must run."""
        if v < 1:
            raise ValueError("parse_workers must be >= 1")
        return v


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App Settings
    log_level: str = "INFO"
    json_logs: bool = False  # Set to True for JSON output in production
    log_file: Optional[str] = None

    # Nested settings
    pack: PackSettings = Field(default_factory=PackSettings)
    ingest: IngestSettings = Field(default_factory=IngestSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
