"""Reminder Rule Repository - Rule Store backed by MongoDB"""
from typing import Any, Dict, List, Optional
from pymongo import ASCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection, to_document, from_document
from ..domain.enums import EntityKind
from ..domain.errors import AlreadyExistsError, RuleNotFoundError
from ..domain.models import ReminderRule
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class RuleRepository:
    """Repository for reminder rule operations"""

    COLLECTION_NAME = "reminder_rules"

    def __init__(self, collection: Optional[Collection] = None):
        self._collection: Collection = (
            collection if collection is not None else get_collection(self.COLLECTION_NAME)
        )
        self._ensure_indexes()

    def _ensure_indexes(self):
        """Ensure required indexes exist"""
        try:
            self._collection.create_index("rule_id", unique=True)
        except Exception as e:
            logger.debug(f"Index creation skipped (may already exist): {e}")

    def create_rule(self, rule: ReminderRule) -> ReminderRule:
        """Insert a new rule"""
        doc = to_document(rule)
        doc["_id"] = rule.rule_id

        try:
            self._collection.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(f"Rule {rule.rule_id} already exists")

        logger.info(
            f"Created reminder rule: {rule.name}",
            extra={"rule_id": rule.rule_id, "entity_type": rule.entity_type.value}
        )
        return rule

    def get_rule(self, rule_id: str) -> Optional[ReminderRule]:
        """Get rule by ID"""
        doc = from_document(self._collection.find_one({"rule_id": rule_id}))
        if doc:
            return ReminderRule.model_validate(doc)
        return None

    def list_rules(
        self,
        active_only: bool = False,
        entity_type: Optional[EntityKind] = None
    ) -> List[ReminderRule]:
        """List rules ordered by rule ID"""
        query: Dict[str, Any] = {}
        if active_only:
            query["is_active"] = True
        if entity_type:
            query["entity_type"] = entity_type.value

        cursor = self._collection.find(query).sort("rule_id", ASCENDING)
        return [ReminderRule.model_validate(from_document(doc)) for doc in cursor]

    def replace_rule(self, rule: ReminderRule) -> ReminderRule:
        """Replace a stored rule with a new definition"""
        doc = to_document(rule)
        result = self._collection.find_one_and_update(
            {"rule_id": rule.rule_id},
            {"$set": doc},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise RuleNotFoundError(f"Rule {rule.rule_id} not found")

        logger.info("Updated reminder rule", extra={"rule_id": rule.rule_id})
        return ReminderRule.model_validate(from_document(result))

    def set_active(self, rule_id: str, is_active: bool) -> ReminderRule:
        """Toggle the active flag"""
        result = self._collection.find_one_and_update(
            {"rule_id": rule_id},
            {"$set": {"is_active": is_active, "updated_at": utc_now()}},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise RuleNotFoundError(f"Rule {rule_id} not found")

        logger.info(
            f"Rule {'activated' if is_active else 'deactivated'}",
            extra={"rule_id": rule_id}
        )
        return ReminderRule.model_validate(from_document(result))

    def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule. Returns True if deleted."""
        result = self._collection.delete_one({"rule_id": rule_id})
        return result.deleted_count > 0
