"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import asyncio
import logging

from quipbox.config import Settings, get_settings
from quipbox.db import DbClient, InMemoryDbClient, SqlDbClient

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_db_client_lock = asyncio.Lock()


async def _create_db_client(settings: Settings) -> DbClient:
    if settings.use_in_memory_backends:
        logger.info("Using in-memory database backend")
        return InMemoryDbClient()

    database_url, database_name = settings.require_database()
    client = SqlDbClient(
        database_url,
        database_name,
        pool_size=settings.db_pool_size,
        connect_timeout=settings.db_connect_timeout_seconds,
    )
    try:
        await client.connect()
    except Exception:
        await client.dispose()
        raise
    logger.info("Connected to database %s", database_name)
    return client


async def get_db_client() -> DbClient:
    """
    Return the process-wide DB client, creating it on first use.

    Concurrent first calls wait on a lock so only one client is built.
    """
    global _db_client
    if _db_client:
        return _db_client

    async with _db_client_lock:
        if _db_client is None:
            _db_client = await _create_db_client(get_settings())
    return _db_client


async def reset_db_client() -> None:
    """Drop the cached client, disposing its engine if it has one."""
    global _db_client, _db_client_lock
    client, _db_client = _db_client, None
    _db_client_lock = asyncio.Lock()
    if isinstance(client, SqlDbClient):
        await client.dispose()
