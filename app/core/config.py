"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the services and the
maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"
CALLBACK_PATH = "/api/profile/google_callback"


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


def _split_csv(value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
    if isinstance(value, tuple):
        return value
    if isinstance(value, list):
        return tuple(value)
    return tuple(item.strip() for item in value.split(",") if item.strip())


class GoogleSettings(BaseSettings):
    """Client registration with the identity provider."""

    client_id: str = Field(..., validation_alias="GOOGLE_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="GOOGLE_CLIENT_SECRET")
    base_domain: str = Field(
        ...,
        validation_alias="BASE_DOMAIN",
        description="Public origin of this service, e.g. https://jukebox.example.com.",
    )

    @field_validator("base_domain")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_domain}{CALLBACK_PATH}"


class OAuthSettings(BaseSettings):
    """OAuth flow configuration."""

    discovery_url: str = Field(GOOGLE_DISCOVERY_URL, validation_alias="OAUTH_DISCOVERY_URL")
    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    http_timeout_seconds: float = Field(10.0, validation_alias="OAUTH_HTTP_TIMEOUT")
    bind_state_to_client: bool = Field(
        True,
        validation_alias="OAUTH_BIND_STATE_TO_CLIENT",
        description="Reject callbacks whose client uid differs from the one that started the flow.",
    )
    jwks_cache_ttl_seconds: int = Field(3600, validation_alias="OAUTH_JWKS_CACHE_TTL")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        ("openid", "profile", "email"),
        validation_alias="OAUTH_SCOPES",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(cls, value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        return _split_csv(value)


class SessionSettings(BaseSettings):
    """Session cookie configuration."""

    cookie_name: str = Field("jukebox_session", validation_alias="SESSION_COOKIE_NAME")
    cookie_secure: bool = Field(False, validation_alias="SESSION_COOKIE_SECURE")


class StorageSettings(BaseSettings):
    """Where accounts and stored documents live."""

    account_db_path: str = Field("data/accounts.db", validation_alias="ACCOUNT_DB_PATH")
    storage_db_path: str = Field("data/storage.db", validation_alias="STORAGE_DB_PATH")
    storage_types: Annotated[tuple[str, ...], NoDecode] = Field(
        ("profile",),
        validation_alias="STORAGE_TYPES",
        description="Storage classes the configured backend accepts.",
    )

    @field_validator("storage_types", mode="before")
    @classmethod
    def _split_types(cls, value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
        return tuple(item.lower() for item in _split_csv(value))


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    token_encryption_secret: str | None = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored provider tokens."
        ),
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "CALLBACK_PATH",
    "GOOGLE_DISCOVERY_URL",
    "GoogleSettings",
    "OAuthSettings",
    "SecuritySettings",
    "SessionSettings",
    "StorageSettings",
    "get_settings",
]
