"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    vendor_provider: Literal["mock", "tavus"] = "tavus"
    vendor_api_key: str | None = None
    vendor_base_url: str = "https://api.tavus.io/v2"
    vendor_timeout_seconds: float = 15.0
    vendor_max_attempts: int = 3
    vendor_backoff_base_seconds: float = 0.5
    vendor_backoff_jitter: float = 0.2

    public_base_url: str = "http://localhost:8000"
    webhook_secret: str | None = None
    status_staleness_seconds: float = 30.0

    database_url: str | None = None
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="SYNTHJOBS_", extra="ignore")

    @property
    def webhook_callback_url(self) -> str:
        return f"{self.public_base_url.rstrip('/')}/api/v1/webhooks/vendor"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
