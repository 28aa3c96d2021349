"""Environment-driven configuration for the client portal.

Every setting is read once, when this module is imported, from the process
environment or from ``.env``/``.env.local`` files. Importing ``settings`` from
here anywhere in the package gives the same cached instance.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "Client Portal"
    BASE_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2])
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).resolve().parents[2] / "data")
    TEMPLATES_DIR: Path | None = None
    STATIC_DIR: Path | None = None
    TZ: str = "Europe/Madrid"
    LOG_LEVEL: str = "INFO"

    # ---- Browser sessions
    # The cookie keeps the same name the request gate has always read.
    APP_SECRET: str = "dev-insecure-secret-change-me"
    SESSION_COOKIE_NAME: str = "session"
    SESSION_MAX_AGE: int = 60 * 60 * 24 * 14
    SESSION_HTTPS_ONLY: bool = False

    # ---- Headless API tokens
    JWT_SECRET: str = "change-me"
    JWT_ACCESS_TTL_MIN: int = 15
    JWT_REFRESH_TTL_DAYS: int = 7
    ALLOWED_ORIGINS: list[str] = Field(default_factory=list)

    # ---- Document store
    DB_URL: str = Field(default="", validation_alias=AliasChoices("DB_URL", "DATABASE_URL"))

    # ---- Identity provider (email/password REST API)
    IDENTITY_BASE_URL: str = "https://identitytoolkit.googleapis.com/v1"
    IDENTITY_API_KEY: str = ""
    IDENTITY_TIMEOUT: float = 10.0

    # ---- Backend callable functions
    FUNCTIONS_BASE_URL: str = "http://localhost:5001/functions"
    FUNCTIONS_TIMEOUT: float = 20.0

    # ---- Portal behaviour
    OTP_RESEND_SECONDS: int = 59
    CHAT_POLL_SECONDS: float = 2.0
    DEFAULT_CURRENCY: str = "EUR"

    HOST: str = "0.0.0.0"
    PORT: int = 8089

    def _resolve_path(self, base: Path | None, fallback: Path) -> Path:
        return base if base is not None else fallback

    @property
    def templates_dir(self) -> Path:
        return self._resolve_path(self.TEMPLATES_DIR, self.BASE_DIR / "client_portal" / "templates")

    @property
    def static_dir(self) -> Path:
        return self._resolve_path(self.STATIC_DIR, self.BASE_DIR / "client_portal" / "static")

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, Iterable):
            return [str(item).strip() for item in value if str(item).strip()]
        raise TypeError("ALLOWED_ORIGINS must be a comma separated string or list")

    @field_validator("FUNCTIONS_BASE_URL", "IDENTITY_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    settings = AppSettings()
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    if settings.TEMPLATES_DIR is None:
        settings.TEMPLATES_DIR = settings.templates_dir
    if settings.STATIC_DIR is None:
        settings.STATIC_DIR = settings.static_dir
    if not settings.DB_URL:
        settings.DB_URL = f"sqlite:///{settings.DATA_DIR}/portal.db"
    return settings


settings = get_settings()
