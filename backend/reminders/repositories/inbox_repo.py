"""Notification Inbox Repository - Per-user notification store"""
from typing import Any, Dict, List, Optional
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection

from .mongo_client import get_collection, to_document, from_document
from ..domain.enums import Channel, DeliveryStatus
from ..domain.errors import NotificationNotFoundError
from ..domain.models import Notification
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)


class InboxRepository:
    """Repository for notification inbox operations"""

    COLLECTION_NAME = "notifications"

    def __init__(self, collection: Optional[Collection] = None):
        self._collection: Collection = (
            collection if collection is not None else get_collection(self.COLLECTION_NAME)
        )
        self._ensure_indexes()

    def _ensure_indexes(self):
        """Ensure required indexes exist"""
        try:
            self._collection.create_index("notification_id", unique=True)
            # Index for fetching user's notifications
            self._collection.create_index(
                [("recipient_id", ASCENDING), ("created_at", DESCENDING)],
                name="recipient_notifications"
            )
            # Index for unread count
            self._collection.create_index(
                [("recipient_id", ASCENDING), ("is_read", ASCENDING)],
                name="unread_notifications"
            )
        except Exception as e:
            logger.debug(f"Index creation skipped (may already exist): {e}")

    # =========================================================================
    # Engine side
    # =========================================================================

    def append(self, notification: Notification) -> Notification:
        """Append a notification to the recipient's inbox"""
        doc = to_document(notification)
        doc["_id"] = notification.notification_id
        self._collection.insert_one(doc)

        logger.debug(
            f"Appended {notification.channel.value} notification for {notification.recipient_id}",
            extra={
                "notification_id": notification.notification_id,
                "rule_id": notification.rule_id,
                "channel": notification.channel.value,
            }
        )
        return notification

    def mark_delivered(self, notification_id: str, attempts: int) -> Notification:
        """Record a successful delivery"""
        return self._update(notification_id, {
            "delivery_status": DeliveryStatus.DELIVERED.value,
            "attempts": attempts,
            "delivered_at": utc_now(),
        })

    def record_attempt(self, notification_id: str, attempts: int, error: str) -> Notification:
        """Record a failed attempt that will be retried"""
        return self._update(notification_id, {
            "attempts": attempts,
            "last_error": error,
        })

    def mark_failed(self, notification_id: str, attempts: int, error: str) -> Notification:
        """Record a terminal delivery failure"""
        notification = self._update(notification_id, {
            "delivery_status": DeliveryStatus.FAILED.value,
            "attempts": attempts,
            "last_error": error,
        })
        logger.warning(
            f"Notification delivery failed permanently: {notification_id}",
            extra={
                "notification_id": notification_id,
                "channel": notification.channel.value,
                "recipient_id": notification.recipient_id,
                "status": DeliveryStatus.FAILED.value,
            }
        )
        return notification

    def list_failed(self, skip: int = 0, limit: int = 50) -> List[Notification]:
        """Failed deliveries for operator review"""
        cursor = self._collection.find({
            "delivery_status": DeliveryStatus.FAILED.value
        }).sort("created_at", ASCENDING).skip(skip).limit(limit)
        return [Notification.model_validate(from_document(doc)) for doc in cursor]

    # =========================================================================
    # Recipient side
    # =========================================================================

    def _user_query(
        self,
        recipient_id: str,
        unread_only: bool = False,
        include_archived: bool = False,
        channel: Optional[Channel] = Channel.IN_APP
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {"recipient_id": recipient_id}
        if channel:
            query["channel"] = channel.value
        if unread_only:
            query["is_read"] = False
        if not include_archived:
            query["is_archived"] = False
        return query

    def get_notifications_for_user(
        self,
        recipient_id: str,
        skip: int = 0,
        limit: int = 50,
        unread_only: bool = False,
        include_archived: bool = False,
        channel: Optional[Channel] = Channel.IN_APP
    ) -> List[Notification]:
        """Get notifications for a user, newest first"""
        query = self._user_query(recipient_id, unread_only, include_archived, channel)
        cursor = self._collection.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
        return [Notification.model_validate(from_document(doc)) for doc in cursor]

    def count_for_user(
        self,
        recipient_id: str,
        unread_only: bool = False,
        include_archived: bool = False,
        channel: Optional[Channel] = Channel.IN_APP
    ) -> int:
        return self._collection.count_documents(
            self._user_query(recipient_id, unread_only, include_archived, channel)
        )

    def get_unread_count(self, recipient_id: str) -> int:
        """Get count of unread in-app notifications for a user"""
        return self.count_for_user(recipient_id, unread_only=True)

    def get_notification(self, notification_id: str) -> Optional[Notification]:
        """Get a single notification by ID"""
        doc = from_document(self._collection.find_one({"notification_id": notification_id}))
        if doc:
            return Notification.model_validate(doc)
        return None

    def mark_as_read(self, notification_id: str, recipient_id: str) -> Notification:
        """Mark a notification as read"""
        return self._update(
            notification_id,
            {"is_read": True, "read_at": utc_now()},
            recipient_id=recipient_id
        )

    def mark_all_as_read(self, recipient_id: str) -> List[Notification]:
        """Mark all unread notifications as read. Returns the updated ones."""
        unread = [
            Notification.model_validate(from_document(doc))
            for doc in self._collection.find({"recipient_id": recipient_id, "is_read": False})
        ]
        if unread:
            self._collection.update_many(
                {"notification_id": {"$in": [n.notification_id for n in unread]}},
                {"$set": {"is_read": True, "read_at": utc_now()}}
            )
        logger.info(f"Marked {len(unread)} notifications as read for {recipient_id}")
        return unread

    def archive(self, notification_id: str, recipient_id: str) -> Notification:
        """Archive a notification"""
        return self._update(notification_id, {"is_archived": True}, recipient_id=recipient_id)

    def delete_notification(self, notification_id: str, recipient_id: str) -> bool:
        """Delete a notification. Returns True if deleted."""
        result = self._collection.delete_one({
            "notification_id": notification_id,
            "recipient_id": recipient_id
        })
        return result.deleted_count > 0

    def _update(
        self,
        notification_id: str,
        fields: Dict[str, Any],
        recipient_id: Optional[str] = None
    ) -> Notification:
        query: Dict[str, Any] = {"notification_id": notification_id}
        if recipient_id is not None:
            query["recipient_id"] = recipient_id

        result = self._collection.find_one_and_update(
            query,
            {"$set": fields},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise NotificationNotFoundError(f"Notification {notification_id} not found")
        return Notification.model_validate(from_document(result))
