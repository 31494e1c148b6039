"""
Application Configuration
Loads settings from environment variables.
"""

from typing import List
from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    APP_NAME: str = "PixelQueue API"
    API_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Database - SQLite for local dev, PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./pixelqueue.db"

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Dispatch queue
    QUEUE_NAME: str = "image_processing_queue"
    QUEUE_POLL_TIMEOUT: int = 5  # Seconds per BLPOP before re-checking for shutdown
    QUEUE_RETRY_BASE_DELAY: float = 1.0
    QUEUE_RETRY_MAX_DELAY: float = 30.0
    QUEUE_RELIABLE: bool = False  # Ack + recovery via per-worker processing lists

    # Local artifact storage
    LOCAL_STORAGE_PATH: str = "./storage"
    MAX_UPLOAD_BYTES: int = 25 * 1024 * 1024
    OUTPUT_JPEG_QUALITY: int = 90

    # Worker settings
    STORE_RETRY_ATTEMPTS: int = 5
    STORE_RETRY_DELAY: float = 0.5

    # Monitoring / recovery
    STALE_JOB_SECONDS: int = 600
    ORPHAN_MIN_AGE_SECONDS: int = 300
    ORPHAN_SWEEP_INTERVAL: int = 60

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    @field_validator('LOG_LEVEL', mode='before')
    @classmethod
    def normalize_log_level(cls, v):
        """Accept log levels in any case."""
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator('OUTPUT_JPEG_QUALITY')
    @classmethod
    def check_quality(cls, v):
        if not 1 <= v <= 95:
            raise ValueError("OUTPUT_JPEG_QUALITY must be between 1 and 95")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
