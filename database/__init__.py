"""Database module for managing connections to PostgreSQL.

This module handles:
- Database connection pool initialization
- Schema management
- Connection lifecycle
"""

import logging
from typing import Optional

import asyncpg
import backoff

from .exceptions import DatabaseError, DatabaseNotInitializedError, DatabaseSchemaError
from .lib.schema_manager import SchemaManager

logger = logging.getLogger(__name__)

DEFAULT_DB_URL = 'postgresql://postgres@localhost:5432/moonplace'

_pool: Optional[asyncpg.Pool] = None
_schema_manager: Optional[SchemaManager] = None


@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError, OSError),
    max_tries=5
)
async def _create_pool(db_url: str) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        db_url,
        min_size=1,
        max_size=10,
        max_inactive_connection_lifetime=300.0,  # 5 minutes
        command_timeout=60.0  # 1 minute command timeout
    )


async def init_db(db_url: Optional[str] = None, force_recreate: bool = False) -> asyncpg.Pool:
    """Initialize the database connection pool and schema.

    Args:
        db_url: Optional database URL, defaults to a local moonplace database
        force_recreate: If True, drop and recreate all tables

    Returns:
        The connection pool

    Raises:
        DatabaseSchemaError: If the schema cannot be created or migrated
        Exception: If connecting fails after retries
    """
    global _pool, _schema_manager

    url = db_url or DEFAULT_DB_URL

    try:
        _pool = await _create_pool(url)
        _schema_manager = SchemaManager(_pool)

        if force_recreate:
            logger.warning("Force recreate requested, dropping all tables")
            await _schema_manager.reset()

        await _schema_manager.initialize()

    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        await close()
        raise

    return _pool


async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool.

    Returns:
        The connection pool

    Raises:
        DatabaseNotInitializedError: If init_db() has not been called
    """
    if not _pool:
        raise DatabaseNotInitializedError("Database pool not initialized, call init_db() first")
    return _pool


async def close() -> None:
    """Close the database connection pool."""
    global _pool, _schema_manager

    if _pool:
        await _pool.close()
        _pool = None
        _schema_manager = None


# Export public interface
__all__ = [
    'init_db',
    'get_pool',
    'close',
    'SchemaManager',
    'DatabaseError',
    'DatabaseSchemaError',
    'DatabaseNotInitializedError',
]
