"""Configuration management for the memory benchmark."""

import os
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # ===========================
    # AWS Configuration
    # ===========================
    aws_region: str = Field(default="us-west-2", alias="AWS_REGION")
    aws_profile: Optional[str] = Field(default=None, alias="AWS_PROFILE")

    # ===========================
    # Model Configuration
    # ===========================
    bedrock_model_id: str = Field(
        default="anthropic.claude-3-5-haiku-20241022-v1:0",
        alias="BEDROCK_MODEL_ID"
    )
    model_temperature: float = Field(default=0.0, alias="MODEL_TEMPERATURE")
    max_tokens: int = Field(default=1024, alias="MAX_TOKENS")
    model_timeout_seconds: int = Field(default=300, alias="MODEL_TIMEOUT_SECONDS")

    # ===========================
    # Logging Configuration
    # ===========================
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # ===========================
    # Benchmark Configuration
    # ===========================
    results_dir: str = Field(default="results", alias="RESULTS_DIR")
    default_concurrency: int = Field(default=8, alias="DEFAULT_CONCURRENCY")
    compress_every: int = Field(default=8, alias="COMPRESS_EVERY")
    recent_window: int = Field(default=4, alias="RECENT_WINDOW")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        populate_by_name = True
        extra = "ignore"

    def get_results_path(self, filename: str = "") -> str:
        """Get the full path to a file in the results directory."""
        return os.path.join(self.results_dir, filename)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global settings
    settings = Settings()
    return settings
