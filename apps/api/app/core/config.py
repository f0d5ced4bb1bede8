"""Environment-driven API configuration."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = "AMI Trust Layer API"
    app_version: str = "0.1.0"
    database_url: str = "sqlite:///.data/ami_submissions.sqlite"
    runtime_environment: str = "development"
    data_root: Path = Path("data/ami")
    source_catalog_path: Path = Path("data/source-catalog.json")
    profiles_path: Path = Path("data/ami/profiles.json")
    meta_path: Path = Path("data/ami/meta.json")
    internal_api_token: str = ""
    stale_evidence_days: int = 180
    request_id_header: str = "X-Request-ID"
    cors_allowed_origins: str = "*"

    model_config = SettingsConfigDict(
        env_prefix="AMI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""
    return Settings()
