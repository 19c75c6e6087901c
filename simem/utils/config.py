"""
Configuration - Extraction Service Settings

Endpoints, retry and pacing knobs, cache and output paths, read from the
environment or a .env file through pydantic-settings.

Usage:
    from simem.utils.config import settings

    api_base = settings.SIMEM_API_BASE
    db_path = settings.CACHE_DB_PATH
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ACCESS_PATH_TEMPLATES = [
    "{url}",
    "https://corsproxy.io/?{encoded_url}",
    "https://api.allorigins.win/raw?url={encoded_url}",
    "https://cors-anywhere.herokuapp.com/{url}",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Upstream API Configuration
    SIMEM_API_BASE: str = Field(default="https://www.simem.co/backend-files/api/PublicData")
    SIMEM_DATASET_ID: str = Field(default="EC6945")
    ACCESS_PATH_TEMPLATES: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ACCESS_PATH_TEMPLATES)
    )
    API_TIMEOUT: float = Field(default=30.0)

    # Retry and Pacing (seconds)
    FETCH_MAX_RETRIES: int = Field(default=3, ge=0)
    FETCH_RETRY_DELAY: float = Field(default=1.0, ge=0)
    PATH_FALLBACK_DELAY: float = Field(default=0.5, ge=0)
    DAY_PACING_DELAY: float = Field(default=0.3, ge=0)
    PROGRESS_DRAIN_TIMEOUT: float = Field(default=5.0, ge=0)

    # Extraction Limits
    LARGE_RANGE_DAYS: int = Field(default=31, ge=1)

    # File System Paths
    CACHE_DB_PATH: str = Field(default="data/cache/simem_cache.db")
    OUTPUT_DIR: str = Field(default="data/extractions")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="text")

    # Application Metadata
    ENVIRONMENT: str = Field(default="development")
    APP_NAME: str = Field(default="simem-backend")
    APP_VERSION: str = Field(default="0.1.0")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
