"""
Application configuration using pydantic-settings.

Loads configuration from environment variables with sensible defaults.
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database (SQLite for local dev, PostgreSQL for production)
    database_url: str = "sqlite:///./banksheet.db"

    # Redis (Celery broker and rate limiter storage)
    redis_url: str = "redis://localhost:6379/0"

    # Intake
    max_upload_size_mb: int = 25
    estimated_processing_seconds: int = 15
    rate_limit_enabled: bool = True
    upload_rate_limit: str = "20/hour"
    rate_limit_storage_uri: Optional[str] = None  # e.g. redis://localhost:6379/1

    # Processing
    processing_timeout_seconds: int = 60
    max_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    worker_concurrency: int = 5
    preview_row_limit: int = 5

    # Structuring backend (any OpenAI-compatible endpoint)
    structuring_api_key: Optional[str] = None
    structuring_base_url: Optional[str] = "https://generativelanguage.googleapis.com/v1beta/openai/"
    structuring_model: str = "gemini-2.5-flash"
    structuring_max_chars: int = 10000
    structuring_min_confidence: float = 0.3
    ai_confidence_threshold: float = 0.85

    # Payments
    public_base_url: str = "http://localhost:3000"
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    xendit_secret_key: str = ""
    xendit_callback_secret: str = ""
    xendit_api_base: str = "https://api.xendit.co"
    price_usd: float = 5.0
    price_idr: float = 40000

    # Application
    debug: bool = False
    log_level: str = "INFO"
    sentry_dsn: Optional[str] = None
    environment: str = "development"

    @property
    def max_upload_size_bytes(self) -> int:
        """Get maximum upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024

    def unlock_url(self, job_id: str) -> str:
        """Checkout page the user is sent to before downloading."""
        return f"/checkout?jobId={job_id}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
