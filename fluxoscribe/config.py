"""
Application configuration via pydantic-settings.

Values come from the environment or a ``.env`` file. Use ``get_settings()``
to obtain the cached instance.
"""

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """FluxoScribe settings loaded from environment / `.env` file.

    Attributes:
        api_key: Gemini API key, read from ``API_KEY`` or ``GEMINI_API_KEY``.
            Left empty, every transcription fails with a configuration error.
        gemini_model: Model identifier sent with each request.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Gemini ---
    api_key: str = Field(default="", validation_alias=AliasChoices("api_key", "gemini_api_key"))
    gemini_model: str = "gemini-2.5-flash"

    # --- Application ---
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"
    session_ttl_seconds: float = 3600.0  # idle sessions are evicted after this


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings singleton."""
    return Settings()
