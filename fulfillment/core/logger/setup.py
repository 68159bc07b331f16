"""
Logger setup: attach console and rotating JSON file handlers from config.
"""
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from fulfillment.core.logger.config import LoggerConfig
from fulfillment.core.logger.formatters import JsonFormatter, PlainConsoleFormatter

_THIRD_PARTY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "openai", "google_genai")

_configured: Optional[LoggerConfig] = None


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def configure(config: Optional[LoggerConfig] = None) -> LoggerConfig:
    """
    Configure the service root logger. Safe to call more than once (handlers
    are replaced, not duplicated). Returns the effective config.
    """
    global _configured
    config = config or LoggerConfig.from_env()
    _configured = config

    root = logging.getLogger(config.root_name)
    root.setLevel(_level(config.level))
    root.handlers.clear()

    if config.console:
        root.addHandler(build_console_handler(config.level))

    if config.file_rotating and config.log_dir and config.log_dir.strip():
        try:
            root.addHandler(
                build_rotating_file_handler(
                    config.log_dir,
                    basename=config.log_file_basename,
                    max_bytes=config.max_bytes,
                    backup_count=config.backup_count,
                    level=config.level,
                )
            )
        except OSError:
            root.warning("Could not open log dir %s, file logging disabled", config.log_dir)

    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(_level(config.third_party_level))

    root.propagate = False
    return config


def get_logger(name: str) -> logging.Logger:
    """Return a logger, configuring from env on first use."""
    if _configured is None:
        configure()
    return logging.getLogger(name)


def build_rotating_file_handler(
    log_dir: str,
    basename: str = "fulfillment",
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 5,
    level: str = "INFO",
) -> RotatingFileHandler:
    """Rotating file handler writing JSON lines to ``<log_dir>/<basename>.log``."""
    os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(log_dir, f"{basename}.log"),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(_level(level))
    handler.setFormatter(JsonFormatter())
    return handler


def build_console_handler(level: str = "INFO", fmt: Optional[str] = None) -> logging.StreamHandler:
    handler = logging.StreamHandler()
    handler.setLevel(_level(level))
    handler.setFormatter(PlainConsoleFormatter(fmt=fmt))
    return handler
