"""
Service config: load from env.

load_postgres_config(), load_redis_config(), load_dispatch_config().
"""
from fulfillment.config.dispatch import DispatchConfig, load_dispatch_config, parse_window
from fulfillment.config.postgres import PostgresConfig, load_postgres_config
from fulfillment.config.redis import RedisConfig, load_redis_config

__all__ = [
    "PostgresConfig",
    "load_postgres_config",
    "RedisConfig",
    "load_redis_config",
    "DispatchConfig",
    "load_dispatch_config",
    "parse_window",
]
