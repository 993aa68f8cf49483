"""Application settings using Pydantic."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Retry policy for transient capacity errors (throttling, overload)
    retry_max_attempts: int = 5
    retry_base_delay_seconds: float = 1.0
    retry_multiplier: float = 2.0

    # Record storage
    data_dir: Path = Path("data")

    # Image preprocessing (applied before images reach the model)
    image_max_width: int = 1920
    image_max_height: int = 1080
    image_jpeg_quality: int = 70

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
