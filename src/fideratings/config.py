"""
Configuration management for FIDE Ratings.

Uses Pydantic Settings to load configuration from environment variables
with sensible defaults for development. The database URL may point at
SQLite (development) or PostgreSQL (production).

Usage:
    from fideratings.config import settings
    print(settings.database_url)
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables can be set directly or via a .env file
    in the project root directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ==========================================================================
    # Database Configuration
    # ==========================================================================

    database_url: str = Field(
        default="sqlite:///data/fide_ratings.db",
        description="SQLAlchemy URL (sqlite:/// for development, postgresql:// in production)",
    )
    db_pool_size: int = Field(
        default=5,
        description="Number of connections to keep in the pool (ignored for SQLite)",
    )
    db_max_overflow: int = Field(
        default=10,
        description="Max additional connections beyond pool_size (ignored for SQLite)",
    )

    # ==========================================================================
    # FIDE Download Configuration
    # ==========================================================================

    fide_download_url: str = Field(
        default="https://ratings.fide.com/download/",
        description="Base URL of FIDE's rating-list archive directory",
    )
    download_dir: str = Field(
        default="data/downloads",
        description="Where archives are downloaded and extracted",
    )
    download_timeout: float = Field(
        default=60.0,
        description="Per-request timeout for archive downloads (seconds)",
    )
    download_max_retries: int = Field(
        default=3,
        description="Attempts per archive before treating the source as unavailable",
    )
    download_retry_delay: float = Field(
        default=2.0,
        description="Base delay between download attempts (seconds, multiplied by attempt)",
    )

    # ==========================================================================
    # Import Configuration
    # ==========================================================================

    import_batch_size: int = Field(
        default=1000,
        description="Records upserted per batch (and per commit in batch mode)",
    )
    import_progress_interval: int = Field(
        default=10000,
        description="Log import progress every N records",
    )
    import_transaction_mode: str = Field(
        default="batch",
        description="'batch' commits per batch with per-record isolation, 'atomic' uses one transaction per file",
    )
    historical_start_year: int = Field(
        default=2015,
        description="Default first year for historical sweeps",
    )
    lock_timeout_seconds: float = Field(
        default=300.0,
        description="How long an import waits for another import of the same list",
    )

    # ==========================================================================
    # Activity Inference
    # ==========================================================================

    inactivity_months: int = Field(
        default=24,
        description="Months without a rated game before a player is marked inactive",
    )

    # ==========================================================================
    # API Configuration
    # ==========================================================================

    api_host: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server to",
    )
    api_port: int = Field(
        default=8000,
        description="Port for the API server",
    )
    api_reload: bool = Field(
        default=False,
        description="Enable auto-reload for development",
    )

    # ==========================================================================
    # Logging Configuration
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    # ==========================================================================
    # Validators
    # ==========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper_v = v.upper()
        if upper_v not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return upper_v

    @field_validator("import_transaction_mode")
    @classmethod
    def validate_transaction_mode(cls, v: str) -> str:
        lower_v = v.lower()
        if lower_v not in {"batch", "atomic"}:
            raise ValueError("import_transaction_mode must be 'batch' or 'atomic'")
        return lower_v

    @field_validator("import_batch_size", "import_progress_interval", "download_max_retries")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures we only load settings once,
    which is important because loading from .env can be slow.
    """
    return Settings()


# Convenience alias for importing
settings = get_settings()
