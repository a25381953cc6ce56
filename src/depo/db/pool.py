"""Database connection pool factory and health check."""

import asyncio
import logging
from typing import Optional

import asyncpg

from depo.config.settings import AppConfig

logger = logging.getLogger(__name__)


_pool: Optional[asyncpg.Pool] = None


async def get_pool(config: AppConfig) -> asyncpg.Pool:
    """
    Get or create the database connection pool.

    On first call, initializes the pool from config and runs a health check.
    Subsequent calls return the existing pool.

    Args:
        config: Supplies the DSN and pool bounds

    Returns:
        asyncpg.Pool: Initialized database connection pool

    Raises:
        RuntimeError: If the health check fails
        asyncio.TimeoutError: If connection attempt exceeds 5 seconds
    """
    global _pool

    if _pool is not None:
        return _pool

    dsn = str(config.db_dsn)

    try:
        _pool = await asyncio.wait_for(
            asyncpg.create_pool(
                dsn,
                min_size=config.db_pool_min,
                max_size=config.db_pool_max,
            ),
            timeout=5.0,
        )
    except asyncio.TimeoutError:
        raise asyncio.TimeoutError(
            "Database connection timed out after 5 seconds. "
            "Check DB_DSN and that the database accepts connections."
        )

    if _pool is None:
        raise RuntimeError("Failed to create database pool")

    try:
        async with _pool.acquire() as conn:
            result = await conn.fetchval("SELECT 1")
            if result != 1:
                raise RuntimeError(f"Health check failed: expected 1, got {result}")
    except Exception as e:
        await _pool.close()
        _pool = None
        raise RuntimeError(f"Database health check failed: {e}") from e

    logger.info(
        f"Database pool initialized: min={config.db_pool_min}, max={config.db_pool_max}"
    )
    return _pool


async def close_pool() -> None:
    """
    Close the database connection pool if it exists.

    Attempts graceful close with a 5-second timeout, then terminates.
    """
    global _pool
    if _pool is not None:
        try:
            await asyncio.wait_for(_pool.close(), timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning(
                "Pool close timed out after 5 seconds. "
                "Forcing termination (likely leaked connection)."
            )
            _pool.terminate()
        finally:
            _pool = None
