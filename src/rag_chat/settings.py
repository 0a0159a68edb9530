"""Deployment settings loaded from the environment."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _sanitize_secret(value: str) -> str:
    """Strip a leading BOM and surrounding whitespace from a secret."""
    if not value:
        return value
    return value.lstrip("\ufeff").strip()


class Settings(BaseSettings):
    """Environment-sourced deployment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    openai_api_key: str = ""
    openai_api_base: str | None = None
    supabase_url: str = ""
    supabase_private_key: str = ""
    demo_mode: bool = False

    chat_model: str = "deepseek-ai/DeepSeek-V2.5"
    chat_temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    embedding_model: str = "Pro/BAAI/bge-m3"
    embedding_dimension: int = Field(default=1024, ge=1)

    vector_table: str = "documents"
    vector_query: str = "match_documents"

    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("openai_api_key", "supabase_url", "supabase_private_key", mode="after")
    @classmethod
    def sanitize_secrets(cls, value: str) -> str:
        return _sanitize_secret(value)


@lru_cache
def get_settings() -> Settings:
    return Settings()
