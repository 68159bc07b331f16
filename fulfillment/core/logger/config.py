"""
Logger configuration, built in code or from the environment.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True)
class LoggerConfig:
    """
    Configuration for the service logger.

    Use LoggerConfig.from_env() for env-based config, or build explicitly.
    """

    # DEBUG, INFO, WARNING, ERROR, CRITICAL
    level: str = "INFO"
    # Rotating JSON file handler is skipped when None
    log_dir: Optional[str] = None
    log_file_basename: str = "fulfillment"
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 5
    # Handlers attach here; module loggers (fulfillment.*) inherit them
    root_name: str = "fulfillment"
    console: bool = True
    file_rotating: bool = True
    # Quiet noisy third-party loggers (httpx, sqlalchemy.engine) to this level
    third_party_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "LoggerConfig":
        """Build config from LOG_* environment variables."""
        env = os.environ
        return cls(
            level=env.get("LOG_LEVEL", "INFO").upper(),
            log_dir=env.get("LOG_DIR") or None,
            log_file_basename=env.get("LOG_FILE_BASENAME", "fulfillment"),
            max_bytes=int(env.get("LOG_MAX_BYTES", str(5 * 1024 * 1024))),
            backup_count=int(env.get("LOG_BACKUP_COUNT", "5")),
            root_name=env.get("LOG_ROOT_NAME", "fulfillment"),
            console=env.get("LOG_CONSOLE", "true").lower() in _TRUTHY,
            file_rotating=env.get("LOG_FILE_ROTATING", "true").lower() in _TRUTHY,
            third_party_level=env.get("LOG_THIRD_PARTY_LEVEL", "WARNING").upper(),
        )
