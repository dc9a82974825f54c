"""Document store client.

A thin, collection/document addressed handle over a storage backend:

    store = DocumentStore.postgres("default")
    ref = await store.collection("posts").add({"title": ""})
    await ref.update({"slug": ref.id})
    snapshots = await store.collection("users").where("name", "==", "alice").get()
"""

import copy
import secrets
import string
from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any

from blogstore.entities import SortOrder

_AUTO_ID_ALPHABET = string.ascii_letters + string.digits
_AUTO_ID_LENGTH = 20
QUERY_OPERATORS = ("==", "!=", "in")


def generate_document_id() -> str:
    """Generate a random 20 character alphanumeric document ID"""
    return "".join(secrets.choice(_AUTO_ID_ALPHABET) for _ in range(_AUTO_ID_LENGTH))


@dataclass(frozen=True)
class DocumentSnapshot:
    """The state of a document at read time. ``data`` is None when it does not exist."""

    id: str
    data: dict[str, Any] | None = None

    @property
    def exists(self) -> bool:
        return self.data is not None

    def to_dict(self) -> dict[str, Any] | None:
        """Return a copy of the document data"""
        return copy.deepcopy(self.data)

    def get(self, field_name: Any, default: Any = None) -> Any:
        """Return a single field of the document"""
        if self.data is None:
            return default
        return self.data.get(str(field_name), default)


@dataclass(frozen=True)
class Condition:
    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class Ordering:
    field: str
    direction: SortOrder = SortOrder.ASC


class DocumentBackend:
    """
    Base class for storage backends.

    Backends receive unencoded data that may contain field transforms and
    return snapshots holding decoded JSON data.
    """

    async def get_document(self, collection: str, doc_id: str) -> DocumentSnapshot:
        raise NotImplementedError

    async def set_document(
        self, collection: str, doc_id: str, data: Mapping[Any, Any]
    ) -> None:
        """Create or fully overwrite a document"""
        raise NotImplementedError

    async def update_document(
        self, collection: str, doc_id: str, fields: Mapping[Any, Any]
    ) -> None:
        """Merge fields into an existing document, raising DocumentNotFound if absent"""
        raise NotImplementedError

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        """Delete a document, returning whether it existed"""
        raise NotImplementedError

    async def add_document(self, collection: str, data: Mapping[Any, Any]) -> str:
        """Create a document under a store-assigned ID and return the ID"""
        raise NotImplementedError

    async def run_query(self, query: "Query") -> list[DocumentSnapshot]:
        """Return the documents matching the query, ordered by document ID unless ordered otherwise"""
        raise NotImplementedError

    def transaction(self) -> AbstractAsyncContextManager[Any]:
        """Context manager making the writes of the block atomic"""
        raise NotImplementedError


class Query:
    """An immutable query over one collection"""

    def __init__(
        self,
        backend: DocumentBackend,
        collection: str,
        conditions: tuple[Condition, ...] = (),
        orderings: tuple[Ordering, ...] = (),
        limit_count: int | None = None,
    ):
        self._backend = backend
        self.collection = collection
        self.conditions = conditions
        self.orderings = orderings
        self.limit_count = limit_count

    def _clone(self, **changes: Any) -> "Query":
        values = {
            "conditions": self.conditions,
            "orderings": self.orderings,
            "limit_count": self.limit_count,
        }
        values.update(changes)
        return Query(self._backend, self.collection, **values)

    def where(self, field_name: Any, *args: Any) -> "Query":
        """Add a condition.

        Supports both where(field, value) and where(field, operator, value).
        Operators: '==', '!=', 'in'.
        """
        if len(args) == 2:
            operator, value = args
        elif len(args) == 1:
            operator, value = "==", args[0]
        else:
            raise TypeError(
                "where() expects (field, value) or (field, operator, value)"
            )
        if operator not in QUERY_OPERATORS:
            raise ValueError(f"Unsupported query operator: {operator!r}")
        if operator == "in" and not isinstance(value, list | tuple):
            raise ValueError("'in' expects a list of values")
        condition = Condition(str(field_name), operator, value)
        return self._clone(conditions=(*self.conditions, condition))

    def order_by(
        self, field_name: Any, direction: SortOrder | str = SortOrder.ASC
    ) -> "Query":
        """Order by a field. Documents missing the field are excluded."""
        if not isinstance(direction, SortOrder):
            direction = SortOrder(direction.upper())
        ordering = Ordering(str(field_name), direction)
        return self._clone(orderings=(*self.orderings, ordering))

    def limit(self, count: int) -> "Query":
        """Return at most ``count`` documents"""
        if count < 0:
            raise ValueError("Limit must be 0 or greater")
        return self._clone(limit_count=count)

    async def get(self) -> list[DocumentSnapshot]:
        """Execute the query"""
        return await self._backend.run_query(self)

    def __repr__(self) -> str:
        return (
            f"Query(collection={self.collection!r}, conditions={self.conditions!r}, "
            f"orderings={self.orderings!r}, limit={self.limit_count!r})"
        )


@dataclass(frozen=True)
class DocumentReference:
    """Address of one document"""

    backend: DocumentBackend = field(repr=False)
    collection: str
    id: str

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"

    async def get(self) -> DocumentSnapshot:
        return await self.backend.get_document(self.collection, self.id)

    async def set(self, data: Mapping[Any, Any]) -> None:
        """Create or fully overwrite the document (no merge)"""
        await self.backend.set_document(self.collection, self.id, data)

    async def update(self, fields: Mapping[Any, Any]) -> None:
        """Merge top-level fields into the existing document"""
        await self.backend.update_document(self.collection, self.id, fields)

    async def delete(self) -> bool:
        return await self.backend.delete_document(self.collection, self.id)


class CollectionReference(Query):
    """A named collection; also the unfiltered query over it"""

    def __init__(self, backend: DocumentBackend, name: str):
        super().__init__(backend, name)

    @property
    def name(self) -> str:
        return self.collection

    def doc(self, doc_id: str | None = None) -> DocumentReference:
        """Reference a document; without an ID a new random one is assigned"""
        return DocumentReference(
            self._backend, self.collection, doc_id or generate_document_id()
        )

    async def add(self, data: Mapping[Any, Any]) -> DocumentReference:
        """Create a document under a store-assigned ID"""
        doc_id = await self._backend.add_document(self.collection, data)
        return DocumentReference(self._backend, self.collection, doc_id)

    def __repr__(self) -> str:
        return f"CollectionReference({self.collection!r})"


class DocumentStore:
    """Entry point: addresses collections on a backend"""

    def __init__(self, backend: DocumentBackend):
        self.backend = backend

    @classmethod
    def postgres(
        cls, db_name: str = "default", db_schema: str | None = None
    ) -> "DocumentStore":
        """Store over the registered asyncpg pool ``db_name``"""
        from blogstore.postgres_backend import PostgresBackend

        return cls(PostgresBackend(db_name=db_name, db_schema=db_schema))

    @classmethod
    def in_memory(cls) -> "DocumentStore":
        """Store kept in process memory"""
        from blogstore.memory_backend import MemoryBackend

        return cls(MemoryBackend())

    def collection(self, name: str) -> CollectionReference:
        return CollectionReference(self.backend, name)

    def transaction(self) -> AbstractAsyncContextManager[Any]:
        """Make every write issued inside the block atomic"""
        return self.backend.transaction()

