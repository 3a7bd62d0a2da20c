"""Application settings and configuration"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Civitai Reaction Stats Collector"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Collector identity (the Civitai username whose images are tracked)
    CIVITAI_USERNAME: Optional[str] = None

    # Gist document store
    GIST_ID: Optional[str] = None
    GIST_TOKEN: Optional[str] = None
    GIST_FILENAME: str = "stats.json"
    GIST_API_BASE: str = "https://api.github.com"

    # Civitai API
    CIVITAI_API_BASE: str = "https://civitai.com/api/v1"
    CIVITAI_API_KEY: Optional[str] = None
    CIVITAI_IMAGES_PER_PAGE: int = 200
    CIVITAI_PAGE_DELAY_SECONDS: float = 0.5
    CIVITAI_MAX_PAGES: int = 500

    # HTTP client resilience controls (shared by Civitai and Gist clients)
    HTTP_TIMEOUT_SECONDS: float = 30.0
    HTTP_MAX_RETRIES: int = 3
    HTTP_BACKOFF_BASE_SECONDS: float = 1.0
    HTTP_BACKOFF_MAX_SECONDS: float = 16.0

    # Authoritative per-image refetch of stale listing counters
    REFETCH_CONCURRENCY: int = 5
    REFETCH_BATCH_DELAY_SECONDS: float = 1.0
    REFETCH_MAX_IMAGES: int = 100

    # History retention tiers
    RETENTION_FULL_RESOLUTION_DAYS: int = 7
    RETENTION_SIX_HOUR_DAYS: int = 30
    RETENTION_SIX_HOUR_BUCKET_HOURS: int = 6
    RETENTION_DAILY_BUCKET_HOURS: int = 24

    USER_AGENT: str = "CivitaiStatsCollector/1.0"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env


settings = Settings()
