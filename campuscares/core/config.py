"""Application configuration via environment variables."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Campus Cares"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database
    database_url: str = "sqlite:///./campus_cares.db"

    # Which persistent store backs the engine: the local database or a remote backend
    store_backend: Literal["sql", "remote"] = "sql"
    remote_api_url: str = ""
    remote_api_token: str = ""
    remote_timeout_seconds: float = 10.0

    # Opportunity policy
    cancellation_window_hours: float = 7.0
    event_timezone: str = "America/New_York"


settings = Settings()
