"""
MealSync - Configuration and settings.

Settings come from the environment and an optional .env file.
Credentials are only required when the remote store or the
generator is actually built.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    Supabase backs the remote store, OpenAI backs the generation
    gateway. Both are optional so the sync core can run against the
    in-memory store without any credentials.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase
    supabase_url: str | None = None
    supabase_anon_key: str | None = None

    # OpenAI
    openai_api_key: str | None = None
    generation_model: str = "gpt-4.1-mini"
    generation_temperature: float = 0.7

    # Application
    mealsync_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Planning defaults
    default_meals_per_day: int = 3

    # Dev user for the CLI
    dev_user_id: str = "00000000-0000-0000-0000-000000000001"

    @property
    def is_development(self) -> bool:
        return self.mealsync_env == "development"

    @property
    def is_production(self) -> bool:
        return self.mealsync_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: Settings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
