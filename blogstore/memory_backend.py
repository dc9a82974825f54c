"""In-process backend with the same document semantics as the PostgreSQL backend"""

import asyncio
import copy
import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any

from blogstore import serialization
from blogstore.document_store import (
    DocumentBackend,
    DocumentSnapshot,
    Query,
    generate_document_id,
)
from blogstore.entities import SortOrder
from blogstore.errors import DocumentNotFound
from blogstore.field_values import apply_field_transforms

logger = logging.getLogger(__name__)

# Marks a document that did not exist before the transaction wrote it
_ABSENT = object()


class UndoJournal:
    """Prior state of every document a transaction block wrote.

    Only the first write to a document is recorded, so rolling back restores
    the state at the point the block first touched it. Documents the block
    never wrote are left alone, including writes other tasks made meanwhile.
    """

    def __init__(self, backend: "MemoryBackend", parent: "UndoJournal | None" = None):
        self.backend = backend
        self.parent = parent
        self.entries: dict[tuple[str, str], Any] = {}

    def record(self, collection: str, doc_id: str, prior: Any) -> None:
        key = (collection, doc_id)
        if key not in self.entries:
            self.entries[key] = _ABSENT if prior is None else copy.deepcopy(prior)

    def commit(self) -> None:
        """Hand the entries to the enclosing journal of the same backend, if any"""
        outer = self.parent
        while outer is not None and outer.backend is not self.backend:
            outer = outer.parent
        if outer is None:
            return
        for key, prior in self.entries.items():
            outer.entries.setdefault(key, prior)

    def rollback(self) -> None:
        for (collection, doc_id), prior in self.entries.items():
            documents = self.backend._collection(collection)
            if prior is _ABSENT:
                documents.pop(doc_id, None)
            else:
                documents[doc_id] = prior
        logger.debug("transaction rolled back %d documents", len(self.entries))


_undo_journal: ContextVar[UndoJournal | None] = ContextVar("undo_journal", default=None)


class MemoryBackend(DocumentBackend):
    """Keeps collections in dictionaries.

    Every operation yields to the event loop once before touching data, so
    concurrently gathered operations interleave like real I/O. Each single
    operation is atomic.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _journal(self, collection: str, doc_id: str) -> None:
        """Record the prior state of a document in the innermost open transaction"""
        journal = _undo_journal.get()
        while journal is not None and journal.backend is not self:
            journal = journal.parent
        if journal is not None:
            journal.record(collection, doc_id, self._collection(collection).get(doc_id))

    async def get_document(self, collection: str, doc_id: str) -> DocumentSnapshot:
        await asyncio.sleep(0)
        data = self._collection(collection).get(doc_id)
        return DocumentSnapshot(doc_id, copy.deepcopy(data))

    async def set_document(
        self, collection: str, doc_id: str, data: Mapping[Any, Any]
    ) -> None:
        await asyncio.sleep(0)
        self._journal(collection, doc_id)
        self._collection(collection)[doc_id] = apply_field_transforms({}, data)
        logger.debug("set %s/%s", collection, doc_id)

    async def update_document(
        self, collection: str, doc_id: str, fields: Mapping[Any, Any]
    ) -> None:
        await asyncio.sleep(0)
        documents = self._collection(collection)
        if doc_id not in documents:
            raise DocumentNotFound(collection, doc_id)
        self._journal(collection, doc_id)
        documents[doc_id] = apply_field_transforms(documents[doc_id], fields)
        logger.debug("update %s/%s %r", collection, doc_id, list(fields))

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        await asyncio.sleep(0)
        self._journal(collection, doc_id)
        existed = self._collection(collection).pop(doc_id, None) is not None
        logger.debug("delete %s/%s existed=%s", collection, doc_id, existed)
        return existed

    async def add_document(self, collection: str, data: Mapping[Any, Any]) -> str:
        await asyncio.sleep(0)
        documents = self._collection(collection)
        doc_id = generate_document_id()
        while doc_id in documents:
            doc_id = generate_document_id()
        self._journal(collection, doc_id)
        documents[doc_id] = apply_field_transforms({}, data)
        logger.debug("add %s/%s", collection, doc_id)
        return doc_id

    @staticmethod
    def _matches(data: dict[str, Any], field_name: str, operator: str, value: Any) -> bool:
        if field_name not in data:
            return False
        current = data[field_name]
        if operator == "==":
            return current == serialization.encode_value(value)
        if operator == "!=":
            return current != serialization.encode_value(value)
        return current in serialization.encode_value(list(value))

    async def run_query(self, query: Query) -> list[DocumentSnapshot]:
        await asyncio.sleep(0)
        items = sorted(self._collection(query.collection).items())
        for condition in query.conditions:
            items = [
                (doc_id, data)
                for doc_id, data in items
                if self._matches(data, condition.field, condition.operator, condition.value)
            ]
        # Stable sorts applied from the last ordering to the first
        for ordering in reversed(query.orderings):
            items = [(doc_id, data) for doc_id, data in items if ordering.field in data]
            items.sort(
                key=lambda item, name=ordering.field: item[1][name],
                reverse=ordering.direction == SortOrder.DESC,
            )
        if query.limit_count is not None:
            items = items[: query.limit_count]
        return [DocumentSnapshot(doc_id, copy.deepcopy(data)) for doc_id, data in items]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["MemoryBackend"]:
        """Undo the writes made inside the block if it raises.

        Tasks gathered inside the block share its journal. A nested block keeps
        its own journal and hands it to the enclosing one when it succeeds.
        """
        journal = UndoJournal(self, _undo_journal.get())
        token = _undo_journal.set(journal)
        try:
            yield self
        except BaseException:
            journal.rollback()
            raise
        else:
            journal.commit()
        finally:
            _undo_journal.reset(token)
