"""
fulfillment.infra.database.engine – Async SQLAlchemy 2.0 engine and session factory.

Accepts PostgresConfig; if not provided, loads from env via load_postgres_config().

On first run, ensure_database_exists() creates the target database if it does not exist
(connects to "postgres", then CREATE DATABASE).
"""
from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlparse, urlunparse

import asyncpg
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Register every model with Base.metadata before create_all()
import fulfillment.infra.database.models  # noqa: F401
from fulfillment.infra.database.models.base import Base

if TYPE_CHECKING:
    from fulfillment.config import PostgresConfig

logger = logging.getLogger(__name__)

_DBNAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _make_async_url(url: str) -> str:
    """Convert postgresql:// or postgres:// to postgresql+asyncpg://."""
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix) and "+asyncpg" not in url:
            return url.replace(prefix, "postgresql+asyncpg://", 1)
    return url


def _split_database_url(url: str) -> tuple[str, str]:
    """Return (target database name, URL of the maintenance "postgres" database)."""
    parsed = urlparse(url.replace("+asyncpg", ""))
    dbname = (parsed.path or "/postgres").strip("/").split("?")[0].strip() or "postgres"
    admin_url = urlunparse((parsed.scheme, parsed.netloc, "/postgres", parsed.params, parsed.query, parsed.fragment))
    return dbname, admin_url


async def ensure_database_exists(config: Optional["PostgresConfig"] = None) -> None:
    """Create the target database when missing. Names outside [A-Za-z0-9_] are skipped."""
    if config is None:
        from fulfillment.config import load_postgres_config
        config = load_postgres_config()
    dbname, admin_url = _split_database_url(config.url)
    if dbname == "postgres":
        return
    if not _DBNAME_PATTERN.match(dbname):
        logger.warning("ensure_database_exists: skipping unsafe database name %r", dbname)
        return
    try:
        conn = await asyncpg.connect(admin_url)
    except (OSError, asyncpg.PostgresError) as exc:
        logger.debug("ensure_database_exists: cannot reach postgres (%s), skipping", exc)
        return
    try:
        row = await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", dbname)
        if row is None:
            await conn.execute(f'CREATE DATABASE "{dbname}"')
            logger.info("Database created: %s", dbname)
    finally:
        await conn.close()


def build_engine(
    config: Optional["PostgresConfig"] = None,
    *,
    echo: Optional[bool] = None,
    use_null_pool: bool = False,
) -> AsyncEngine:
    """
    Create and cache the async SQLAlchemy engine.

    Args:
        config: PostgresConfig (url, pool_size, etc.). If None, loaded from env.
        echo: Override SQL echo (default: use config.echo).
        use_null_pool: Use NullPool, e.g. for one-off scripts.
    """
    global _engine
    if _engine is not None:
        return _engine

    if config is None:
        from fulfillment.config import load_postgres_config
        config = load_postgres_config()

    url = _make_async_url(config.url)
    connect_args: dict = {
        "server_settings": {
            "application_name": config.application_name,
            "jit": "off",
        }
    }
    do_echo = echo if echo is not None else config.echo

    if use_null_pool:
        _engine = create_async_engine(url, echo=do_echo, poolclass=NullPool, connect_args=connect_args)
        logger.info("AsyncEngine created with NullPool")
    else:
        _engine = create_async_engine(
            url,
            echo=do_echo,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            pool_timeout=config.pool_timeout,
            pool_recycle=config.pool_recycle,
            pool_pre_ping=True,
            connect_args=connect_args,
        )
        logger.info(
            "AsyncEngine created: pool_size=%d max_overflow=%d",
            config.pool_size, config.max_overflow,
        )
    return _engine


def build_session_factory(
    engine: Optional[AsyncEngine] = None,
) -> async_sessionmaker[AsyncSession]:
    """Create the session factory used by request handlers and the schedulers."""
    global _session_factory
    if _session_factory is not None:
        return _session_factory
    if engine is None:
        engine = build_engine()
    _session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    logger.debug("AsyncSessionFactory created")
    return _session_factory


async def _migrate_db(conn: AsyncConnection) -> None:
    """Add columns introduced after the first release. Safe to re-run."""
    migrations = [
        "ALTER TABLE orders ADD COLUMN IF NOT EXISTS short_code VARCHAR(8)",
        "CREATE UNIQUE INDEX IF NOT EXISTS ix_orders_short_code ON orders(short_code)",
        "ALTER TABLE orders ADD COLUMN IF NOT EXISTS evidence_ref TEXT",
        "ALTER TABLE orders ADD COLUMN IF NOT EXISTS cancel_reason TEXT",
        "ALTER TABLE orders ADD COLUMN IF NOT EXISTS taken_at TIMESTAMPTZ",
        "ALTER TABLE couriers ADD COLUMN IF NOT EXISTS device_id VARCHAR(64)",
        "CREATE INDEX IF NOT EXISTS ix_couriers_device_id ON couriers(device_id)",
        "ALTER TABLE couriers ADD COLUMN IF NOT EXISTS current_order_id VARCHAR(50)",
    ]
    for stmt in migrations:
        try:
            await conn.execute(text(stmt))
        except Exception as exc:
            logger.warning("Migration statement skipped (%s): %s", exc.__class__.__name__, stmt)
    logger.info("Database migration complete")


async def init_db(
    config: Optional["PostgresConfig"] = None,
    *,
    drop_all: bool = False,
) -> None:
    """Create all ORM tables and run schema migrations."""
    if config is None:
        from fulfillment.config import load_postgres_config
        config = load_postgres_config()
    engine = build_engine(config)
    async with engine.begin() as conn:
        if drop_all:
            logger.warning("Dropping all ORM tables (drop_all=True)")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
        await _migrate_db(conn)
    logger.info("Database initialised")


async def close_engine() -> None:
    """Dispose the connection pool. Call on app shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("AsyncEngine disposed")
        _engine = None
        _session_factory = None
