"""Application configuration using pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MONACO_RENTALS_",
        extra="ignore",
    )

    # Database
    database_path: str = Field(default="data/listings.db")

    # Ingestion
    notify_min_score: int = Field(
        default=50,
        ge=0,
        le=100,
        description="New listings scoring strictly above this are notification candidates",
    )
    record_delay_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Pause between records when ingesting a batch",
    )

    # Logging
    log_json: bool = Field(default=False, description="Emit JSON logs instead of console output")
