"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="FlixSync", alias="APP_NAME")
    server_host: str = Field(default="127.0.0.1", alias="HOST")
    server_port: int = Field(default=4200, alias="PORT")

    movie_api_url: HttpUrl = Field(
        default="https://tonys-flix-9de78e076f9d.herokuapp.com/",
        alias="MOVIE_API_URL",
    )
    request_timeout_seconds: float = Field(
        default=20.0, alias="REQUEST_TIMEOUT", gt=0, le=300
    )
    connect_timeout_seconds: float = Field(
        default=10.0, alias="CONNECT_TIMEOUT", gt=0, le=120
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./flixsync.db", alias="DATABASE_URL"
    )
    session_backend: Literal["memory", "database"] = Field(
        default="database", alias="SESSION_BACKEND"
    )
    session_key: str = Field(default="session", alias="SESSION_KEY")

    feedback_duration_ms: int = Field(
        default=2_000, alias="FEEDBACK_DURATION_MS", ge=0, le=60_000
    )
    profile_feedback_duration_ms: int = Field(
        default=5_000, alias="PROFILE_FEEDBACK_DURATION_MS", ge=0, le=60_000
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("session_backend", mode="before")
    @classmethod
    def _normalise_backend(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"sqlite", "db", "sql"}:
                return "database"
            return lowered
        return value

    @field_validator("session_key")
    @classmethod
    def _require_session_key(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("SESSION_KEY must not be blank")
        return cleaned

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
