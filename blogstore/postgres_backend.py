"""PostgreSQL backend: one JSONB table per collection"""

import logging
import re
from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager
from typing import Any

import asyncpg

from blogstore import serialization
from blogstore.database_operations import DatabaseOperations
from blogstore.db_context import DatabaseManager, DocumentOperation
from blogstore.document_store import (
    DocumentBackend,
    DocumentSnapshot,
    Query,
    generate_document_id,
)
from blogstore.entities import SortOrder
from blogstore.errors import DocumentNotFound
from blogstore.field_values import apply_field_transforms
from blogstore.query_builder import DocumentQueryBuilder

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def qualified_table_name(collection: str, db_schema: str | None = None) -> str:
    """Table name for a collection, schema-qualified when ``db_schema`` is set"""
    for identifier in (collection, db_schema):
        if identifier is not None and not _IDENTIFIER.match(identifier):
            raise ValueError(f"Invalid collection or schema name: {identifier!r}")
    return f"{db_schema}.{collection}" if db_schema else collection


class PostgresBackend(DocumentBackend):
    """Stores each collection in a table ``(id TEXT PRIMARY KEY, data JSONB NOT NULL)``.

    Statements run on the connection bound by the current transaction, if
    any, otherwise on a connection borrowed from the pool ``db_name``.
    """

    def __init__(self, db_name: str = "default", db_schema: str | None = None):
        self.db_name = db_name
        self.db_schema = db_schema
        self.db_ops = DatabaseOperations(db_name)

    def _table(self, collection: str) -> str:
        return qualified_table_name(collection, self.db_schema)

    def _snapshot(self, row: Any) -> DocumentSnapshot:
        return DocumentSnapshot(row["id"], serialization.loads(row["data"]))

    async def get_document(self, collection: str, doc_id: str) -> DocumentSnapshot:
        row = await self.db_ops.fetch_one(
            f"SELECT id, data FROM {self._table(collection)} WHERE id = $1",
            [doc_id],
            operation=DocumentOperation("get", collection, doc_id),
        )
        if row is None:
            return DocumentSnapshot(doc_id)
        return self._snapshot(row)

    async def set_document(
        self, collection: str, doc_id: str, data: Mapping[Any, Any]
    ) -> None:
        document = apply_field_transforms({}, data)
        await self.db_ops.execute_query(
            f"INSERT INTO {self._table(collection)} (id, data) VALUES ($1, $2::jsonb) "
            "ON CONFLICT (id) DO UPDATE SET data = EXCLUDED.data",
            [doc_id, serialization.dumps(document)],
            operation=DocumentOperation("set", collection, doc_id),
        )

    async def update_document(
        self, collection: str, doc_id: str, fields: Mapping[Any, Any]
    ) -> None:
        table = self._table(collection)
        operation = DocumentOperation("update", collection, doc_id)
        # Read-modify-write under a row lock so transforms see the latest value
        async with self.db_ops.atomic() as conn:
            row = await self.db_ops.fetch_one(
                f"SELECT id, data FROM {table} WHERE id = $1 FOR UPDATE",
                [doc_id],
                conn=conn,
                operation=operation,
            )
            if row is None:
                raise DocumentNotFound(collection, doc_id)
            document = apply_field_transforms(serialization.loads(row["data"]), fields)
            await self.db_ops.execute_query(
                f"UPDATE {table} SET data = $2::jsonb WHERE id = $1",
                [doc_id, serialization.dumps(document)],
                conn=conn,
                operation=operation,
            )

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        result = await self.db_ops.execute_query(
            f"DELETE FROM {self._table(collection)} WHERE id = $1",
            [doc_id],
            operation=DocumentOperation("delete", collection, doc_id),
        )
        return result != "DELETE 0"

    async def add_document(self, collection: str, data: Mapping[Any, Any]) -> str:
        doc_id = generate_document_id()
        document = apply_field_transforms({}, data)
        await self.db_ops.execute_query(
            f"INSERT INTO {self._table(collection)} (id, data) VALUES ($1, $2::jsonb)",
            [doc_id, serialization.dumps(document)],
            operation=DocumentOperation("add", collection, doc_id),
        )
        return doc_id

    def build_query(self, query: Query) -> DocumentQueryBuilder:
        """Translate a store query into a SQL builder"""
        builder = DocumentQueryBuilder(self._table(query.collection))
        for condition in query.conditions:
            builder = builder.where(condition.field, condition.operator, condition.value)
        for ordering in query.orderings:
            if ordering.direction == SortOrder.DESC:
                builder = builder.order_by_desc(ordering.field)
            else:
                builder = builder.order_by(ordering.field)
        builder = builder.order_by_id()
        if query.limit_count is not None:
            builder = builder.limit(query.limit_count)
        return builder

    async def run_query(self, query: Query) -> list[DocumentSnapshot]:
        sql, params = self.build_query(query).build()
        rows = await self.db_ops.fetch_all(
            sql, params, operation=DocumentOperation("query", query.collection)
        )
        return [self._snapshot(row) for row in rows]

    def transaction(self) -> AbstractAsyncContextManager[asyncpg.Connection]:
        return DatabaseManager.transaction(self.db_name)

    async def create_collection(self, collection: str, unique_fields: tuple[str, ...] = ()):
        """Create the table of a collection if it does not exist.

        Each field in ``unique_fields`` gets a unique expression index on its text value.
        """
        table = self._table(collection)
        bootstrap = DocumentOperation("bootstrap", collection)
        statements = []
        if self.db_schema:
            statements.append(f"CREATE SCHEMA IF NOT EXISTS {self.db_schema}")
        statements.append(
            f"CREATE TABLE IF NOT EXISTS {table} (id TEXT PRIMARY KEY, data JSONB NOT NULL)"
        )
        for field_name in unique_fields:
            if not _IDENTIFIER.match(field_name):
                raise ValueError(f"Invalid field name: {field_name!r}")
            statements.append(
                f"CREATE UNIQUE INDEX IF NOT EXISTS {collection}_{field_name}_unique "
                f"ON {table} ((data ->> '{field_name}'))"
            )
        for statement in statements:
            await self.db_ops.execute_query(statement, [], operation=bootstrap)
        logger.info("Collection %s ready", table)

    async def truncate_collection(self, collection: str):
        """Remove every document of a collection"""
        await self.db_ops.execute_query(
            f"TRUNCATE TABLE {self._table(collection)}",
            [],
            operation=DocumentOperation("truncate", collection),
        )
