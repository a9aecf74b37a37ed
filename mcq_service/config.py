"""Configuration management for the MCQ generation service."""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    env: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    port: int = 5000

    # Gemini API
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash-latest"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    generation_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=4096, ge=1)
    check_connection_on_startup: bool = True

    # Batching and pacing
    max_batch_size: int = Field(default=5, ge=1)
    pacing_delay_seconds: float = Field(default=1.5, ge=0.0)
    max_questions_per_request: int = Field(default=50, ge=1)

    # Result cache
    cache_ttl_seconds: float = Field(default=30 * 60, gt=0)

    # Topic catalogue served to clients
    topics_config_path: str = "./config/topics.yaml"

    # CORS
    cors_origins: List[str] = ["https://mcqgeneratorapp232.onrender.com"]

    # Error tracking
    sentry_dsn: Optional[str] = None
    sentry_traces_sample_rate: float = Field(default=0.0, ge=0.0, le=1.0)


# Global settings instance
settings = Settings()
