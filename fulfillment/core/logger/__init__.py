"""
Service logger: console + optional rotating JSON file.

Usage:
    from fulfillment.core.logger import configure, LoggerConfig

    configure()  # LoggerConfig.from_env(): LOG_LEVEL, LOG_DIR, ...
    configure(LoggerConfig(level="DEBUG", log_dir="/var/log/fulfillment"))

Modules keep using ``logging.getLogger(__name__)``; everything under the
``fulfillment`` package inherits the configured handlers.
"""
from fulfillment.core.logger.config import LoggerConfig
from fulfillment.core.logger.formatters import JsonFormatter, PlainConsoleFormatter
from fulfillment.core.logger.setup import (
    build_console_handler,
    build_rotating_file_handler,
    configure,
    get_logger,
)

__all__ = [
    "LoggerConfig",
    "JsonFormatter",
    "PlainConsoleFormatter",
    "configure",
    "get_logger",
    "build_rotating_file_handler",
    "build_console_handler",
]
