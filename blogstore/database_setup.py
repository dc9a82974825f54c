"""
Database setup utilities: pool creation and collection bootstrap
"""

import logging

import asyncpg

from blogstore.config import DatabaseSettings, StoreConfig
from blogstore.db_context import DatabaseManager
from blogstore.entities import UserSchema
from blogstore.postgres_backend import PostgresBackend

logger = logging.getLogger(__name__)


async def connect(
    settings: DatabaseSettings | None = None, pool_name: str = "default"
) -> asyncpg.Pool:
    """
    Create a connection pool and register it with DatabaseManager.

    Connection parameters come from ``settings``, or from the environment
    (``BLOGSTORE_DB_HOST``, ``BLOGSTORE_DB_PORT``, ...) when omitted.
    """
    settings = settings or DatabaseSettings()
    pool = await asyncpg.create_pool(
        settings.dsn,
        min_size=settings.min_pool_size,
        max_size=settings.max_pool_size,
    )
    await DatabaseManager.add_pool(pool_name, pool)
    logger.info(
        "Connected to PostgreSQL at %s:%s/%s as %s",
        settings.host,
        settings.port,
        settings.database,
        settings.user,
    )
    return pool


async def create_collections(
    config: StoreConfig | None = None, pool_name: str = "default"
) -> None:
    """
    Create the users and posts tables if they don't exist.
    """
    config = config or StoreConfig()
    backend = PostgresBackend(db_name=pool_name, db_schema=config.db_schema)
    unique_fields = (UserSchema.name.name,) if config.unique_user_names else ()
    await backend.create_collection(config.users_collection, unique_fields)
    await backend.create_collection(config.posts_collection)


async def clear_collections(
    config: StoreConfig | None = None, pool_name: str = "default"
) -> None:
    """
    Remove every user and post (for tests and clean runs).
    """
    config = config or StoreConfig()
    backend = PostgresBackend(db_name=pool_name, db_schema=config.db_schema)
    await backend.truncate_collection(config.users_collection)
    await backend.truncate_collection(config.posts_collection)


async def close_connections(pool_name: str | None = None) -> None:
    """
    Close one registered pool, or all of them when ``pool_name`` is omitted.
    """
    if pool_name is None:
        await DatabaseManager.close_all()
        logger.info("Closed all database pools")
        return
    pool = await DatabaseManager.remove_pool(pool_name)
    if pool is not None:
        await pool.close()
        logger.info("Closed database pool %s", pool_name)
