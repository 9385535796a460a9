"""Application configuration."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_env: str = "development"
    database_url: str

    # Redis (for Celery, progress events and cancellation flags)
    redis_url: str = "redis://localhost:6379/0"
    redis_events_enabled: bool = True

    # Welcome / report notifications
    notification_webhook_url: Optional[str] = None
    notification_timeout_seconds: float = 3.0

    # Uploads
    max_upload_bytes: int = 5 * 1024 * 1024
    upload_temp_dir: str = "/tmp/onboarding_uploads"
    progress_interval: int = 50
    temporary_password_length: int = 12
    bcrypt_rounds: int = 12

    # Logging
    log_level: str = "INFO"
    log_file: str = "app.log"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
