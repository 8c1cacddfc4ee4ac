"""Runtime configuration loaded from ``MILEAGE_*`` environment variables or ``.env``."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MILEAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    supabase_url: str | None = Field(default=None, description="Base URL of the hosted data/identity service")
    supabase_anon_key: str | None = Field(default=None, description="Public API key of the hosted service")
    backend: Literal["sqlite", "rest"] = Field(
        default="sqlite",
        description="Where travel entries are stored",
    )
    database_path: str = Field(default="mileage.db", description="sqlite database file")
    template_path: Path | None = Field(
        default=None,
        description="Spreadsheet template; the built-in layout is generated when unset",
    )
    request_timeout: float | None = Field(default=None, ge=0)
    log_level: str = Field(default="INFO")

    @field_validator("supabase_url", "supabase_anon_key", mode="before")
    @classmethod
    def strip_quotes(cls, value: str | None) -> str | None:
        if isinstance(value, str):
            value = value.strip().strip("'\"")
        return value or None

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings()
