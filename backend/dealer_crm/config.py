"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ---------------- DATABASE ----------------
    database_url: str = "sqlite+aiosqlite:///./dealer_crm.db"

    # ---------------- AUTH ----------------
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24
    cron_secret: str = ""

    # ---------------- APP ----------------
    app_name: str = "AutoExplora"
    app_version: str = "1.0.0"
    debug: bool = False
    app_url: str = "https://autoexplora.cl"
    timezone: str = "America/Santiago"
    cors_origins: List[str] = []

    # ---------------- EMAIL ----------------
    email_api_url: str = "https://api.resend.com/emails"
    email_api_key: str = ""
    email_from: str = "AutoExplora <noreply@autoexplora.cl>"
    email_timeout_seconds: float = 10.0

    # ---------------- LEADS ----------------
    dedup_window_days: int = 30
    auto_response_config_ttl_seconds: float = 60.0

    # ---------------- WORKER ----------------
    worker_enabled: bool = True
    worker_poll_seconds: float = 15.0
    worker_batch_size: int = 50
    reminder_lookahead_minutes: int = 60

    @computed_field
    @property
    def email_configured(self) -> bool:
        return bool(self.email_api_key and self.email_api_url)


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
