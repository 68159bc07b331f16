"""
fulfillment.config.postgres – PostgreSQL connection config (dataclass + validators).

Env vars: DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_TIMEOUT, DB_POOL_RECYCLE,
DB_ECHO, DB_APPLICATION_NAME.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

_DEFAULT_URL = "postgresql://localhost/fulfillment"
_DEFAULT_APP_NAME = "fulfillment-core"


def _validate_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise ValueError("DATABASE_URL is required and must be non-empty")
    if not (
        url.startswith("postgresql://")
        or url.startswith("postgres://")
        or url.startswith("postgresql+asyncpg://")
    ):
        raise ValueError(
            "DATABASE_URL must start with postgresql://, postgres:// or postgresql+asyncpg://"
        )
    return url


def _validate_positive_int(value: int, name: str) -> int:
    if not isinstance(value, int) or value < 1:
        raise ValueError(f"{name} must be an integer >= 1, got {value!r}")
    return value


@dataclass(frozen=True)
class PostgresConfig:
    """
    PostgreSQL connection and pool configuration.

    All fields are validated on construction. Use load_postgres_config()
    to build from environment variables.
    """

    url: str
    """DSN; converted to postgresql+asyncpg:// by the engine."""

    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    """Seconds to wait for a pooled connection."""

    pool_recycle: int = 1800
    echo: bool = False
    application_name: str = _DEFAULT_APP_NAME

    def __post_init__(self) -> None:
        _validate_url(self.url)
        _validate_positive_int(self.pool_size, "pool_size")
        if not isinstance(self.max_overflow, int) or self.max_overflow < 0:
            raise ValueError(f"max_overflow must be a non-negative integer, got {self.max_overflow!r}")
        _validate_positive_int(self.pool_timeout, "pool_timeout")
        _validate_positive_int(self.pool_recycle, "pool_recycle")
        if not self.application_name.strip():
            raise ValueError("application_name must be a non-empty string")

    @classmethod
    def from_env(cls, **overrides: object) -> PostgresConfig:
        """Build config from environment variables; keyword overrides win over env."""

        def _get(attr: str, env_name: str, default: str) -> str:
            value = overrides.get(attr)
            if value is not None:
                return str(value)
            return os.environ.get(env_name, default)

        echo_raw = overrides.get("echo")
        if echo_raw is None:
            echo = os.environ.get("DB_ECHO", "").strip().lower() in ("1", "true", "yes")
        else:
            echo = bool(echo_raw)

        return cls(
            url=_validate_url(_get("url", "DATABASE_URL", _DEFAULT_URL)),
            pool_size=int(_get("pool_size", "DB_POOL_SIZE", "10")),
            max_overflow=int(_get("max_overflow", "DB_MAX_OVERFLOW", "20")),
            pool_timeout=int(_get("pool_timeout", "DB_POOL_TIMEOUT", "30")),
            pool_recycle=int(_get("pool_recycle", "DB_POOL_RECYCLE", "1800")),
            echo=echo,
            application_name=_get("application_name", "DB_APPLICATION_NAME", _DEFAULT_APP_NAME),
        )


def load_postgres_config(**overrides: object) -> PostgresConfig:
    """Load and validate PostgreSQL config from environment (with optional overrides)."""
    return PostgresConfig.from_env(**overrides)
