"""
Pool registry, transaction-bound connections and statement tracking.

A transaction binds one asyncpg connection to the current context; every
document operation issued inside it, including those of gathered tasks,
runs on that connection. A QueryTracker in the context records each SQL
statement together with the document operation that issued it.
"""

import asyncio
import traceback
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import wraps
from typing import Any

import asyncpg

_db_pools: dict[str, asyncpg.Pool] = {}
_current_connection: ContextVar[asyncpg.Connection | None] = ContextVar(
    "current_connection", default=None
)
# An asyncpg connection runs one statement at a time
_connection_lock: ContextVar[asyncio.Lock | None] = ContextVar(
    "connection_lock", default=None
)


@dataclass(frozen=True)
class DocumentOperation:
    """The store call a statement belongs to, e.g. ``update posts/abc``"""

    kind: str  # get, set, update, delete, add, query, bootstrap, truncate
    collection: str
    doc_id: str | None = None

    def __str__(self) -> str:
        if self.doc_id is None:
            return f"{self.kind} {self.collection}"
        return f"{self.kind} {self.collection}/{self.doc_id}"


@dataclass
class QueryLog:
    query: str
    params: list[Any]
    operation: DocumentOperation | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    stack_trace: str | None = None


class QueryTracker:
    """Statements executed while the tracker is bound to the context"""

    def __init__(self):
        self.queries: list[QueryLog] = []

    def log_query(
        self,
        query: str,
        params: list[Any],
        operation: DocumentOperation | None = None,
        stack_trace: str | None = None,
    ):
        self.queries.append(QueryLog(query, params, operation, stack_trace=stack_trace))

    def get_queries(self) -> list[QueryLog]:
        return self.queries.copy()

    def count(self) -> int:
        return len(self.queries)

    def operations(self) -> list[DocumentOperation]:
        """Document operations in the order they first issued a statement.

        An update issues a locking read and a write; it is listed once.
        """
        seen: list[DocumentOperation] = []
        for log in self.queries:
            if log.operation is not None and (not seen or seen[-1] != log.operation):
                seen.append(log.operation)
        return seen


_query_tracker: ContextVar[QueryTracker | None] = ContextVar(
    "query_tracker", default=None
)


class DatabaseManager:
    """Registry of named pools and access to the context-bound connection"""

    @classmethod
    async def add_pool(cls, name: str, pool: asyncpg.Pool):
        _db_pools[name] = pool

    @classmethod
    async def get_pool(cls, name: str = "default") -> asyncpg.Pool:
        if name not in _db_pools:
            raise ValueError(f"Database pool '{name}' not found")
        return _db_pools[name]

    @classmethod
    async def remove_pool(cls, name: str) -> asyncpg.Pool | None:
        """Unregister a pool and return it. The pool is not closed."""
        return _db_pools.pop(name, None)

    @classmethod
    async def close_all(cls):
        pools = list(_db_pools.values())
        _db_pools.clear()
        for pool in pools:
            await pool.close()

    @classmethod
    def get_current_connection(cls) -> asyncpg.Connection | None:
        return _current_connection.get()

    @classmethod
    def get_connection_lock(cls) -> asyncio.Lock | None:
        return _connection_lock.get()

    @classmethod
    def get_query_tracker(cls) -> QueryTracker | None:
        return _query_tracker.get()

    @classmethod
    def log_query(
        cls, query: str, params: list[Any], operation: DocumentOperation | None = None
    ):
        """Record a statement with the tracker bound to the context, if any"""
        tracker = _query_tracker.get()
        if tracker is None:
            return
        # Drop this frame and the DatabaseOperations frame
        stack_trace = "".join(traceback.format_list(traceback.extract_stack()[:-2]))
        tracker.log_query(query, params, operation, stack_trace)

    @classmethod
    @asynccontextmanager
    async def transaction(cls, db_name: str = "default", track_queries: bool = False):
        """Run the block in a transaction on one connection from ``db_name``.

        Entered inside another transaction, it opens a savepoint on the bound
        connection instead; nested blocks must be entered one at a time. The
        pooled connection is released when the outermost block exits.

        Args:
            db_name: Name of the database pool to use
            track_queries: Bind a QueryTracker for the block unless one is bound already
        """
        current_conn = _current_connection.get()
        if current_conn is not None:
            async with current_conn.transaction():
                yield current_conn
            return

        pool = await cls.get_pool(db_name)
        async with pool.acquire() as conn, conn.transaction():
            conn_token = _current_connection.set(conn)
            lock_token = _connection_lock.set(asyncio.Lock())
            tracker_token = None
            if track_queries and _query_tracker.get() is None:
                tracker_token = _query_tracker.set(QueryTracker())
            try:
                yield conn
            finally:
                _connection_lock.reset(lock_token)
                _current_connection.reset(conn_token)
                if tracker_token is not None:
                    _query_tracker.reset(tracker_token)

    @classmethod
    @asynccontextmanager
    async def track_queries(cls):
        """Track the statements of the block, inside or outside a transaction:

        async with DatabaseManager.track_queries() as tracker:
            await repository.get_user(user_id)
        [str(op) for op in tracker.operations()]  # ["get users/u1", "get posts/p1", ...]
        """
        current = _query_tracker.get()
        if current is not None:
            yield current
            return
        tracker = QueryTracker()
        token = _query_tracker.set(tracker)
        try:
            yield tracker
        finally:
            _query_tracker.reset(token)


def transactional(db_name: str = "default", query_logs: bool = False):
    """Decorator running a coroutine inside DatabaseManager.transaction().

    Example:
        @transactional(query_logs=True)
        async def publish_first_post(user_id):
            post_id = await repository.create_post_for_user(user_id)
            logger.info("%s", DatabaseManager.get_query_tracker().operations())
            return post_id
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            async with DatabaseManager.transaction(db_name, track_queries=query_logs):
                return await func(*args, **kwargs)

        return wrapper

    return decorator
