"""Library settings and logging configuration."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from fireplace.assertion import ASSERTION_LIFETIME_SECONDS, DEFAULT_SCOPES
from fireplace.cache import DEFAULT_KEY_SET_TTL_SECONDS, PUBLIC_KEYS_URL
from fireplace.credentials import CredentialStore
from fireplace.exceptions import CredentialParseError
from fireplace.id_token import DEFAULT_LEEWAY_SECONDS, ISSUER_PREFIX

_LOG_CONTEXT: dict[str, str] = {"environment": "development", "service": "fireplace-auth"}


class AppSettings(BaseModel):
    """Runtime identity settings used in log output."""

    environment: Literal["development", "staging", "production"] = "development"
    service: str = "fireplace-auth"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


class CredentialSettings(BaseModel):
    """Where to load the service-account document from."""

    model_config = ConfigDict(populate_by_name=True)

    file: Path | None = None
    json_document: SecretStr | None = Field(default=None, alias="json")

    def load_store(self) -> CredentialStore:
        """Build a credential store from inline JSON or the configured file."""
        if self.json_document is not None:
            return CredentialStore.from_json(self.json_document.get_secret_value())
        if self.file is not None:
            return CredentialStore.from_file(self.file)
        raise CredentialParseError("No service account credentials configured.")


class TokenSettings(BaseModel):
    """Access token refresh settings."""

    refresh_margin_seconds: int = Field(default=300, ge=0)
    assertion_lifetime_seconds: int = Field(default=ASSERTION_LIFETIME_SECONDS, ge=1, le=3600)
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES), min_length=1)


class PublicKeySettings(BaseModel):
    """Public key set endpoint and fallback cache lifetime."""

    url: str = PUBLIC_KEYS_URL
    default_ttl_seconds: int = Field(default=DEFAULT_KEY_SET_TTL_SECONDS, ge=1)


class IdTokenSettings(BaseModel):
    """ID token claim validation settings."""

    clock_skew_leeway_seconds: int = Field(default=DEFAULT_LEEWAY_SECONDS, ge=0, le=300)
    issuer_prefix: str = ISSUER_PREFIX


class HTTPSettings(BaseModel):
    """Outbound HTTP timeouts in seconds."""

    connect_timeout: float = Field(default=2.0, gt=0)
    read_timeout: float = Field(default=5.0, gt=0)
    write_timeout: float = Field(default=5.0, gt=0)
    pool_timeout: float = Field(default=5.0, gt=0)

    def timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.connect_timeout,
            read=self.read_timeout,
            write=self.write_timeout,
            pool=self.pool_timeout,
        )


class Settings(BaseSettings):
    """Root settings loaded from ``FIREPLACE_``-prefixed environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FIREPLACE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    credentials: CredentialSettings = Field(default_factory=CredentialSettings)
    tokens: TokenSettings = Field(default_factory=TokenSettings)
    public_keys: PublicKeySettings = Field(default_factory=PublicKeySettings)
    id_tokens: IdTokenSettings = Field(default_factory=IdTokenSettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)


def _standard_log_fields(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Inject required structured logging fields."""
    event_dict.setdefault("environment", _LOG_CONTEXT["environment"])
    event_dict.setdefault("service", _LOG_CONTEXT["service"])
    event_dict.setdefault("timestamp", datetime.now(UTC).isoformat())
    return event_dict


def configure_structlog(settings: Settings) -> None:
    """Configure structlog for JSON output with required fields."""
    _LOG_CONTEXT["environment"] = settings.app.environment
    _LOG_CONTEXT["service"] = settings.app.service

    log_level = getattr(logging, settings.app.log_level, logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _standard_log_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Load and cache settings from environment variables."""
    return Settings()
