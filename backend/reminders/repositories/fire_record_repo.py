"""Fire Record Repository - Persistent State Tracker bookkeeping

Writes are optimistic: inserts rely on the unique (rule, entity) index and
updates are guarded by the record ``version``, so two processes sweeping at
the same time can never both commit the same trigger edge.
"""
from typing import Any, Dict, Iterable, List, Optional
from pymongo import ASCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection, to_document, from_document
from ..domain.enums import EntityKind
from ..domain.errors import ConcurrencyError
from ..domain.models import FireRecord
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _key_query(rule_id: str, entity_type: EntityKind, entity_id: str) -> Dict[str, Any]:
    return {
        "rule_id": rule_id,
        "entity_type": EntityKind(entity_type).value,
        "entity_id": entity_id,
    }


class FireRecordRepository:
    """Repository for (rule, entity) fire records"""

    COLLECTION_NAME = "fire_records"

    def __init__(self, collection: Optional[Collection] = None):
        self._collection: Collection = (
            collection if collection is not None else get_collection(self.COLLECTION_NAME)
        )
        self._ensure_indexes()

    def _ensure_indexes(self):
        """Ensure required indexes exist"""
        try:
            self._collection.create_index(
                [("rule_id", ASCENDING), ("entity_type", ASCENDING), ("entity_id", ASCENDING)],
                unique=True,
                name="fire_record_key"
            )
        except Exception as e:
            logger.debug(f"Index creation skipped (may already exist): {e}")

    def get(self, rule_id: str, entity_type: EntityKind, entity_id: str) -> Optional[FireRecord]:
        """Get the record for a key"""
        doc = from_document(self._collection.find_one(_key_query(rule_id, entity_type, entity_id)))
        if doc:
            return FireRecord.model_validate(doc)
        return None

    def insert(self, record: FireRecord) -> FireRecord:
        """
        Insert a first record for a key

        Raises:
            ConcurrencyError: another writer created the record first
        """
        try:
            self._collection.insert_one(to_document(record))
        except DuplicateKeyError:
            raise ConcurrencyError(
                f"Fire record {record.key} already exists",
                details={"rule_id": record.rule_id, "entity_id": record.entity_id}
            )
        return record

    def compare_and_set(self, record: FireRecord, expected_version: int) -> FireRecord:
        """
        Replace the record only if it is still at ``expected_version``

        Raises:
            ConcurrencyError: the record changed (or vanished) since it was read
        """
        query = _key_query(record.rule_id, record.entity_type, record.entity_id)
        query["version"] = expected_version

        doc = to_document(record)
        result = self._collection.find_one_and_update(
            query,
            {"$set": doc},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise ConcurrencyError(
                f"Fire record {record.key} changed concurrently",
                details={"rule_id": record.rule_id, "entity_id": record.entity_id,
                         "expected_version": expected_version}
            )
        return FireRecord.model_validate(from_document(result))

    def list_pending_escalations(self) -> List[FireRecord]:
        """Fired, unacknowledged, not yet escalated records"""
        cursor = self._collection.find({
            "escalation_level": 0,
            "acknowledged_at": None,
            "last_fired_at": {"$ne": None},
        }).sort([("rule_id", ASCENDING), ("entity_id", ASCENDING)])
        return [FireRecord.model_validate(from_document(doc)) for doc in cursor]

    def list_records(
        self,
        rule_id: Optional[str] = None,
        entity_type: Optional[EntityKind] = None,
        entity_id: Optional[str] = None,
        limit: int = 200
    ) -> List[FireRecord]:
        """List records, optionally filtered"""
        query: Dict[str, Any] = {}
        if rule_id:
            query["rule_id"] = rule_id
        if entity_type:
            query["entity_type"] = EntityKind(entity_type).value
        if entity_id:
            query["entity_id"] = entity_id

        cursor = self._collection.find(query).sort(
            [("rule_id", ASCENDING), ("entity_id", ASCENDING)]
        ).limit(limit)
        return [FireRecord.model_validate(from_document(doc)) for doc in cursor]

    def delete_for_entity(self, entity_type: EntityKind, entity_id: str) -> int:
        """Remove every rule's record for an entity"""
        result = self._collection.delete_many({
            "entity_type": EntityKind(entity_type).value,
            "entity_id": entity_id,
        })
        return result.deleted_count

    def delete_for_rule(self, rule_id: str) -> int:
        result = self._collection.delete_many({"rule_id": rule_id})
        return result.deleted_count

    def delete_missing(self, entity_type: EntityKind, live_ids: Iterable[str]) -> int:
        """Remove records of this kind whose entity is no longer listed"""
        result = self._collection.delete_many({
            "entity_type": EntityKind(entity_type).value,
            "entity_id": {"$nin": list(live_ids)},
        })
        if result.deleted_count:
            logger.info(
                f"Removed {result.deleted_count} fire records for deleted entities",
                extra={"entity_type": EntityKind(entity_type).value}
            )
        return result.deleted_count
