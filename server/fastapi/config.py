"""
Application settings.

Resolved once from the process environment (and an optional .env file) when
the app is created, then passed to whatever needs it.
"""

from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    google_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("google_api_key", "api_key"),
    )
    gemini_model: str = "gemini-2.5-flash"
    gemini_temperature: float = 0.0
    llm_timeout_seconds: float = 30.0
    issue_api_url: str | None = None
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:3000"]
    log_level: str = "INFO"

    # In-memory chat sessions
    session_max_count: int = 1000
    session_idle_ttl_seconds: float = 3600.0

    @field_validator("cors_origins", mode="before")
    @classmethod
    def split_origins(cls, v):
        """Accept a comma separated CORS_ORIGINS value."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper()

    @field_validator("issue_api_url")
    @classmethod
    def blank_url_is_unset(cls, v):
        return v or None
