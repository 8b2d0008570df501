"""
Application settings using Pydantic.

Provides environment-based configuration loading with STACKWIRE_ prefix.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Templates
    templates_dir: str = "res"

    # Orchestrator-supplied pseudo parameters
    stack_name: str | None = None
    aws_region: str = "us-east-1"
    aws_account_id: str | None = None

    # Provisioning bridge
    provisioning_timeout_seconds: float = 3600.0  # custom resource response window
    best_effort_delete: bool = True
    provisioning_backend: str = "memory"  # memory, sqs
    sqs_queue_url: str | None = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json, console

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "STACKWIRE_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
