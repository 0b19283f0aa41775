"""
Application configuration models and helpers.

Settings are grouped per concern and assembled into ``AppSettings`` so the
FastAPI app, the vault services and the operator scripts share one surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal, Optional

import os

from pydantic import AliasChoices, AnyHttpUrl, Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from oauth_vault.core.keys import decode_key


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file into the process env."""
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

_SETTINGS_CONFIG = SettingsConfigDict(populate_by_name=True, extra="ignore")


class GoogleSettings(BaseSettings):
    """OAuth client registration for Google APIs."""

    model_config = _SETTINGS_CONFIG

    client_id: str = Field(..., validation_alias="GOOGLE_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="GOOGLE_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="GOOGLE_REDIRECT_URI")


class OAuthSettings(BaseSettings):
    """OAuth flow and refresh policy configuration."""

    model_config = _SETTINGS_CONFIG

    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    scopes: Annotated[tuple[str, ...], NoDecode] = Field(
        (
            "https://www.googleapis.com/auth/analytics.readonly",
            "https://www.googleapis.com/auth/webmasters.readonly",
            "https://www.googleapis.com/auth/business.manage",
        ),
        validation_alias="OAUTH_SCOPES",
    )
    refresh_buffer_seconds: int = Field(
        60,
        ge=0,
        validation_alias="OAUTH_REFRESH_BUFFER_SECONDS",
        description="Margin before expiry at which an access token counts as stale.",
    )
    token_timeout_seconds: float = Field(
        10.0,
        gt=0,
        validation_alias="OAUTH_TOKEN_TIMEOUT_SECONDS",
    )

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(cls, value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(value)
        return tuple(scope.strip() for scope in value.split(",") if scope.strip())


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    model_config = _SETTINGS_CONFIG

    token_encryption_key: str = Field(
        ...,
        validation_alias=AliasChoices("TOKEN_ENCRYPTION_KEY", "ENCRYPTION_KEY_BASE64"),
        description="Base64-encoded 32-byte master key for sealing stored tokens.",
        repr=False,
    )

    @field_validator("token_encryption_key")
    @classmethod
    def _check_key(cls, value: str) -> str:
        decode_key(value)
        return value


class StoreSettings(BaseSettings):
    """Credential record store selection."""

    model_config = _SETTINGS_CONFIG

    backend: Literal["sqlite", "supabase"] = Field(
        "sqlite", validation_alias="CREDENTIAL_STORE_BACKEND"
    )
    sqlite_path: str = Field("data/credentials.db", validation_alias="CREDENTIAL_DB_PATH")
    supabase_url: Optional[AnyHttpUrl] = Field(None, validation_alias="SUPABASE_URL")
    supabase_service_role_key: Optional[str] = Field(
        None, validation_alias="SUPABASE_SERVICE_ROLE_KEY", repr=False
    )
    supabase_table: str = Field("google_oauth_tokens", validation_alias="SUPABASE_TOKENS_TABLE")
    supabase_timeout_seconds: float = Field(10.0, gt=0, validation_alias="SUPABASE_TIMEOUT_SECONDS")

    @model_validator(mode="after")
    def _require_supabase_credentials(self) -> "StoreSettings":
        if self.backend == "supabase" and not (self.supabase_url and self.supabase_service_role_key):
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for the supabase backend."
            )
        return self


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = _SETTINGS_CONFIG

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the dashboard.",
    )
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "GoogleSettings",
    "OAuthSettings",
    "SecuritySettings",
    "StoreSettings",
    "get_settings",
]
