"""
AromaChat - Configuration and settings.

All settings come from the environment (or .env). The recipe webhook and
OpenAI credentials are optional at load time so the CLI and health endpoints
work on an unconfigured install; the endpoints that need them report 503/500.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """AromaChat application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # External recipe webhook (n8n)
    create_recipe_apikey: str | None = None
    create_recipe_base_url: str | None = None

    # OpenAI (recipe-wizard endpoint)
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"

    # Application
    aromachat_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Prompt logging
    # AROMACHAT_LOG_PROMPTS=1 - log LLM calls to local markdown files (dev only)
    aromachat_log_prompts: bool = False

    # Outbound API behaviour
    api_timeout_seconds: float = 30.0
    api_max_attempts: int = 3
    api_retry_delay_seconds: float = 1.0
    api_backoff_multiplier: float = 2.0

    # Wizard client
    internal_api_url: str = "http://127.0.0.1:8000/api/create-recipe"
    user_language: str = "PT_BR"
    storage_path: Path = Path("~/.aromachat/storage.json")
    persistence_mode: Literal["aggressive", "balanced", "conservative"] = "balanced"

    # Web server
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    @property
    def is_development(self) -> bool:
        return self.aromachat_env == "development"

    @property
    def is_production(self) -> bool:
        return self.aromachat_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience singleton - lazy loaded
class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: Settings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
