"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the scheduler and the
operational scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional
from urllib.parse import urlsplit

import os

from pydantic import AnyHttpUrl, Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


class SlackSettings(BaseSettings):
    """Configuration required for interacting with the Slack APIs."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    client_id: str = Field(..., alias="SLACK_CLIENT_ID")
    client_secret: str = Field(..., alias="SLACK_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., alias="SLACK_REDIRECT_URI")
    api_base_url: str = Field("https://slack.com/api", alias="SLACK_API_BASE_URL")
    request_timeout_seconds: float = Field(
        10.0,
        alias="SLACK_REQUEST_TIMEOUT",
        gt=0,
        description="Upper bound for every outbound Slack call.",
    )


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    state_ttl_seconds: int = Field(900, alias="OAUTH_STATE_TTL")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        ("chat:write", "channels:read"),
        alias="OAUTH_SCOPES",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())


class SchedulerSettings(BaseSettings):
    """Storage settings for credentials and scheduled messages."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    db_path: str = Field(
        "data/scheduler.db",
        alias="SCHEDULER_DB_PATH",
        description="SQLite file holding credentials and scheduled messages.",
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(
        populate_by_name=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    slack: SlackSettings = Field(default_factory=SlackSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    def cors_origins(self) -> List[str]:
        """Origins allowed to call the API from a browser."""
        if self.frontend_base_url is None:
            return ["*"]
        parsed = urlsplit(str(self.frontend_base_url))
        return [f"{parsed.scheme}://{parsed.netloc}"]


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "OAuthSettings",
    "SchedulerSettings",
    "SlackSettings",
    "get_settings",
]
