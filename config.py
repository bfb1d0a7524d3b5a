# config.py

"""Application configuration utilities.

Values may be provided in an optional ``config.json`` next to this file and
are overridden by environment variables (or a ``.env`` file). The
:func:`get_settings` helper merges the sources and caches the result.
"""

from __future__ import annotations

import json
import os
from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewayEnvironment(str, Enum):
    """Select which QRIS gateway endpoint the adapter talks to.

    ``SANDBOX`` is the default so that a fresh checkout never charges real
    money. ``PRODUCTION`` must be set explicitly.
    """

    SANDBOX = "sandbox"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Application settings merged from JSON and environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./kasir.db"
    db_fallback_to_memory: bool = True
    redis_url: str = "redis://localhost:6379/0"
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    gateway_server_key: str | None = None
    gateway_client_key: str | None = None
    gateway_environment: GatewayEnvironment = GatewayEnvironment.SANDBOX
    gateway_timeout_secs: float = 10.0
    qris_expiry_minutes: int = 15
    idempotency_ttl_secs: int = 86400
    log_level: str = "INFO"
    slow_query_ms: int = 200

    @property
    def gateway_production(self) -> bool:
        return self.gateway_environment is GatewayEnvironment.PRODUCTION


# Cached singleton to avoid repeated file reads
@lru_cache
def get_settings() -> Settings:
    """Return merged settings with environment variable precedence.

    ``config.json`` is optional; when present its keys seed :class:`Settings`
    and environment variables override them.
    """

    config_path = Path(__file__).with_name("config.json")
    data = json.loads(config_path.read_text()) if config_path.exists() else {}
    env_override = {
        k.lower(): v
        for k, v in os.environ.items()
        if k.lower() in Settings.model_fields
    }
    merged = {**data, **env_override}
    return Settings(**merged)
