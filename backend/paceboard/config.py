from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SSM_BASE_URL = "https://screenshotmonitor.com/api/v2"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")
    """Application runtime configuration."""

    app_name: str = "Paceboard"
    environment: str = "development"
    host: str = os.getenv("PB_HOST", "127.0.0.1")
    port: int = int(os.getenv("PB_PORT", "8080"))

    sqlite_path: Path = Path(os.getenv("PB_SQLITE_PATH", "./data/paceboard.db"))
    timezone: str = os.getenv("TZ", "UTC")

    ssm_base_url: str = os.getenv("PB_SSM_BASE_URL", DEFAULT_SSM_BASE_URL)
    ssm_timeout_seconds: float = float(os.getenv("PB_SSM_TIMEOUT", "15"))
    # The upstream certificate chain is not trusted by default installations.
    ssm_verify_tls: bool = os.getenv("PB_SSM_VERIFY_TLS", "false").lower() == "true"

    cache_ttl_daily: int = Field(default=int(os.getenv("PB_CACHE_TTL_DAILY", "600")), ge=1)
    cache_ttl_week_chart: int = Field(default=int(os.getenv("PB_CACHE_TTL_WEEK_CHART", "3600")), ge=1)
    cache_ttl_monthly: int = Field(default=int(os.getenv("PB_CACHE_TTL_MONTHLY", "1800")), ge=1)

    log_level: str = os.getenv("PB_LOG_LEVEL", "INFO")
    log_format: str = os.getenv("PB_LOG_FORMAT", "text")

    @field_validator("ssm_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        lowered = value.lower()
        if lowered not in {"json", "text"}:
            raise ValueError("log_format must be 'json' or 'text'")
        return lowered


settings = Settings()

settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
