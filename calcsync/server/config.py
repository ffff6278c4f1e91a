"""Configuration for the sync service."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration read from environment variables or ``.env``."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Database
    database_url: str = Field(default="sqlite:///./calcsync.db")

    # Identity
    auth_url: str = Field(default="http://localhost:8001/verify")
    auth_timeout: float = Field(default=10.0)

    # Sync log pagination
    logs_default_page_size: int = Field(default=20, ge=1)
    logs_max_page_size: int = Field(default=100, ge=1)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    log_level: str = Field(default="INFO")
