"""Environment-driven settings for the api-tester server."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_API_BASE_URL = "https://api.example.com"
DEFAULT_TIMEOUT_MS = 12_000
DEFAULT_MAX_RETRIES = 2
DEFAULT_HTTP_HOST = "127.0.0.1"
DEFAULT_HTTP_PORT = 3000
DEFAULT_LOG_LEVEL = "INFO"


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


@dataclass(frozen=True, slots=True)
class Settings:
    """Process-wide configuration shared by every session."""

    api_base_url: str = DEFAULT_API_BASE_URL
    api_token: str = ""
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    http_host: str = DEFAULT_HTTP_HOST
    http_port: int = DEFAULT_HTTP_PORT
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from `environ` (defaults to `os.environ` plus `.env`)."""
        if environ is None:
            load_dotenv()
            environ = os.environ
        return cls(
            api_base_url=environ.get("API_BASE_URL") or DEFAULT_API_BASE_URL,
            api_token=environ.get("API_TOKEN", ""),
            timeout_ms=_int_setting(environ, "API_TIMEOUT_MS", DEFAULT_TIMEOUT_MS, minimum=1),
            max_retries=_int_setting(environ, "API_MAX_RETRIES", DEFAULT_MAX_RETRIES, minimum=0),
            http_host=environ.get("MCP_HTTP_HOST") or DEFAULT_HTTP_HOST,
            http_port=_int_setting(environ, "MCP_HTTP_PORT", DEFAULT_HTTP_PORT, minimum=1),
            log_level=(environ.get("LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        )


def _int_setting(environ: Mapping[str, str], key: str, default: int, *, minimum: int) -> int:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        msg = f"{key} must be an integer, got {raw!r}"
        raise ConfigError(msg) from exc
    if value < minimum:
        msg = f"{key} must be >= {minimum}, got {value}"
        raise ConfigError(msg)
    return value
