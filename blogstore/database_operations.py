import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from blogstore.db_context import DatabaseManager, DocumentOperation

logger = logging.getLogger(__name__)


class DatabaseOperations:
    """Composition class for database operations"""

    def __init__(self, db_name: str = "default"):
        self.db_name = db_name

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        """Yield the connection bound by the current transaction, or a pooled one.

        Inside a transaction the bound connection is held under its lock for
        the duration of the block.
        """
        conn = DatabaseManager.get_current_connection()
        if conn is not None:
            lock = DatabaseManager.get_connection_lock()
            if lock is None:
                yield conn
                return
            async with lock:
                yield conn
            return

        pool = await DatabaseManager.get_pool(self.db_name)
        async with pool.acquire() as pooled:
            yield pooled

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[asyncpg.Connection]:
        """Run a block of statements on one connection inside a (nested) transaction"""
        async with self.connection() as conn, conn.transaction():
            yield conn

    async def fetch_all(
        self,
        query: str,
        params: list[Any],
        conn: asyncpg.Connection | None = None,
        operation: DocumentOperation | None = None,
    ) -> list[Any]:
        """Execute query and fetch all rows"""
        DatabaseManager.log_query(query, params, operation)
        logger.debug("fetch_all [%s] %s %r", operation, query, params)
        if conn is not None:
            return await conn.fetch(query, *params)
        async with self.connection() as conn:
            return await conn.fetch(query, *params)

    async def fetch_one(
        self,
        query: str,
        params: list[Any],
        conn: asyncpg.Connection | None = None,
        operation: DocumentOperation | None = None,
    ) -> Any:
        """Execute a query and fetch one row"""
        DatabaseManager.log_query(query, params, operation)
        logger.debug("fetch_one [%s] %s %r", operation, query, params)
        if conn is not None:
            return await conn.fetchrow(query, *params)
        async with self.connection() as conn:
            return await conn.fetchrow(query, *params)

    async def fetch_value(
        self,
        query: str,
        params: list[Any],
        conn: asyncpg.Connection | None = None,
        operation: DocumentOperation | None = None,
    ) -> Any:
        """Execute query and fetch single value"""
        DatabaseManager.log_query(query, params, operation)
        logger.debug("fetch_value [%s] %s %r", operation, query, params)
        if conn is not None:
            return await conn.fetchval(query, *params)
        async with self.connection() as conn:
            return await conn.fetchval(query, *params)

    async def execute_query(
        self,
        query: str,
        params: list[Any],
        conn: asyncpg.Connection | None = None,
        operation: DocumentOperation | None = None,
    ) -> str:
        """Execute query and return result"""
        DatabaseManager.log_query(query, params, operation)
        logger.debug("execute [%s] %s %r", operation, query, params)
        if conn is not None:
            return await conn.execute(query, *params)
        async with self.connection() as conn:
            return await conn.execute(query, *params)
