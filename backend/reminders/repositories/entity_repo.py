"""Entity Repository - Snapshot provider over the portfolio collections"""
from typing import Dict, Iterator, Optional, Set
from pydantic import ValidationError as PydanticValidationError
from pymongo.collection import Collection

from .mongo_client import get_collection, from_document
from ..domain.entities import EntitySnapshotBase, parse_entity
from ..domain.enums import EntityKind
from ..domain.errors import MalformedEntityError
from ..utils.logger import get_logger

logger = get_logger(__name__)


ENTITY_COLLECTIONS: Dict[EntityKind, str] = {
    EntityKind.MILESTONE: "milestones",
    EntityKind.DELIVERABLE: "deliverables",
    EntityKind.PURCHASE_ORDER: "purchase_orders",
    EntityKind.INVOICE: "invoices",
    EntityKind.TASK: "tasks",
    EntityKind.ISSUE: "issues",
}


class EntityRepository:
    """
    Reads watchable entities written by the portfolio CRUD layer

    Documents are keyed by ``entity_id``; ``kind`` is implied by the
    collection. Malformed documents are skipped with a warning so one bad
    record cannot hide the rest of its kind, but they still exist: their ids
    are reported by ``list_entity_ids`` and ``get_entity`` raises for them.
    """

    def __init__(self, collections: Optional[Dict[EntityKind, Collection]] = None):
        collections = collections or {}
        self._collections: Dict[EntityKind, Collection] = {
            kind: collections.get(kind) if collections.get(kind) is not None else get_collection(name)
            for kind, name in ENTITY_COLLECTIONS.items()
        }

    def _to_snapshot(self, kind: EntityKind, doc: dict) -> EntitySnapshotBase:
        """
        Raises:
            MalformedEntityError: the document fails snapshot validation
        """
        doc = from_document(doc)
        doc["kind"] = kind.value
        try:
            return parse_entity(doc)
        except PydanticValidationError as e:
            raise MalformedEntityError(
                f"Malformed {kind.value} document: {e.error_count()} errors",
                details={"entity_type": kind.value, "entity_id": doc.get("entity_id")}
            )

    def list_watchable_entities(self, kind: EntityKind) -> Iterator[EntitySnapshotBase]:
        """Stream the current snapshots of one kind"""
        for doc in self._collections[kind].find({}):
            try:
                yield self._to_snapshot(kind, doc)
            except MalformedEntityError as e:
                logger.warning(
                    f"Skipping {e.message}",
                    extra={"entity_type": kind.value, "entity_id": e.details.get("entity_id")}
                )

    def list_entity_ids(self, kind: EntityKind) -> Set[str]:
        """Ids of every stored document of one kind, parseable or not"""
        return {
            doc["entity_id"]
            for doc in self._collections[kind].find({}, {"entity_id": 1})
            if doc.get("entity_id")
        }

    def get_entity(self, kind: EntityKind, entity_id: str) -> Optional[EntitySnapshotBase]:
        """
        Fresh snapshot of one entity, or None if it was deleted

        Raises:
            MalformedEntityError: the document exists but does not parse
        """
        doc = self._collections[kind].find_one({"entity_id": entity_id})
        if doc is None:
            return None
        return self._to_snapshot(kind, doc)
