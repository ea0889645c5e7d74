from functools import lru_cache
from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service configuration, read from the environment or a local .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./finance.db"

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    log_level: str = "INFO"
    enable_scheduler: bool = True
    cors_origins: List[str] = ["*"]

    # Amounts are stored in the base currency; rates read as 1 base = X currency.
    base_currency: str = "IDR"
    currency_rates: Dict[str, float] = Field(default_factory=lambda: {"IDR": 1.0})

    backup_reminder_days: int = 7


@lru_cache
def get_settings() -> Settings:
    return Settings()
