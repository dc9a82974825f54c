from typing import Generic, TypeVar

from pydantic import BaseModel

from blogstore.document_store import DocumentSnapshot


T = TypeVar("T", bound=BaseModel)


class EntityMapper(Generic[T]):
    """Composition class for entity mapping operations"""

    def __init__(self, entity_class: type[T]):
        self.entity_class = entity_class

    def map_snapshot_to_entity(self, snapshot: DocumentSnapshot) -> T:
        """Map an existing document snapshot to an entity, adding its ID"""
        if not snapshot.exists:
            raise ValueError(f"Document '{snapshot.id}' does not exist")
        return self.entity_class.model_validate({**snapshot.data, "id": snapshot.id})

    def map_snapshots_to_entities(self, snapshots: list[DocumentSnapshot]) -> list[T]:
        """Map document snapshots to entities"""
        return [self.map_snapshot_to_entity(snapshot) for snapshot in snapshots]
