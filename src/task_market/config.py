"""
Configuration management for the task market service.

Loads configuration from YAML with ZERO defaults.
Every value must be explicitly specified or startup fails.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

REDACTION_MARKER = "***REDACTED***"

_SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = ("password", "secret", "token", "api_key")


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")
    name: str
    version: str


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")
    host: str
    port: int
    log_level: str


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")
    level: str
    directory: str


class DatabaseConfig(BaseModel):
    """Database configuration."""

    model_config = ConfigDict(extra="forbid")
    path: str


class IdentityConfig(BaseModel):
    """Identity gateway connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    resolve_path: str
    timeout_seconds: int


class ProfilesConfig(BaseModel):
    """User profile lookup connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    profile_path: str
    timeout_seconds: int


class RequestConfig(BaseModel):
    """Request handling configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class PaginationConfig(BaseModel):
    """List endpoint paging bounds."""

    model_config = ConfigDict(extra="forbid")
    default_limit: int = Field(ge=1)
    max_limit: int = Field(ge=1)


class NotificationsConfig(BaseModel):
    """Notification retention configuration."""

    model_config = ConfigDict(extra="forbid")
    retention_days: int = Field(ge=1)
    clear_read_after_days: int = Field(ge=0)


class DisputesConfig(BaseModel):
    """Dispute resolution configuration."""

    model_config = ConfigDict(extra="forbid")
    resolver_policy: Literal["admin_role", "any_authenticated"]
    admin_role: str
    auto_close_days: int = Field(ge=1)


class Settings(BaseModel):
    """
    Root configuration container.

    All fields are REQUIRED. No defaults exist.
    Missing fields cause immediate startup failure.
    """

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    identity: IdentityConfig
    profiles: ProfilesConfig
    request: RequestConfig
    pagination: PaginationConfig
    notifications: NotificationsConfig
    disputes: DisputesConfig


def get_config_path() -> Path:
    """Determine configuration file path."""
    env_path = os.environ.get("CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return Path.cwd() / "config.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and validate settings from the YAML file.

    Cached after the first call; use clear_settings_cache() to reload.

    Raises:
        FileNotFoundError: If the config file does not exist
        ValueError: If the file does not contain a YAML mapping
        pydantic.ValidationError: If any section is missing or malformed
    """
    config_path = get_config_path()
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise FileNotFoundError(msg)

    raw = yaml.safe_load(config_path.read_text())
    if not isinstance(raw, dict):
        msg = f"Invalid config file: {config_path}"
        raise ValueError(msg)
    return Settings(**raw)


def clear_settings_cache() -> None:
    """Drop cached settings so the next get_settings() call reloads the file."""
    get_settings.cache_clear()


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTION_MARKER
            if any(fragment in key.lower() for fragment in _SENSITIVE_KEY_FRAGMENTS)
            else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    return value


def get_safe_config() -> dict[str, Any]:
    """Get configuration with sensitive values redacted."""
    return _redact(get_settings().model_dump())
