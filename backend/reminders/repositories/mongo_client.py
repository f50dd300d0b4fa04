"""MongoDB Client - Connection and Collection Management"""
from enum import Enum
from typing import Any, Dict, Optional
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure
from pydantic import BaseModel

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = PyMongoClient(
            settings.mongo_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        # Test connection
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    db = get_database()
    return db[name]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def _plain(value: Any) -> Any:
    """Convert enums (recursively) to their values; datetimes stay native"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_plain(v) for v in value]
    return value


def to_document(model: BaseModel, **dump_kwargs: Any) -> Dict[str, Any]:
    """
    Serialize a pydantic model for MongoDB

    Unlike ``model_dump(mode="json")`` this keeps datetimes as BSON dates so
    they sort and compare natively.
    """
    return _plain(model.model_dump(**dump_kwargs))


def from_document(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Strip the Mongo ``_id`` from a fetched document"""
    if doc is None:
        return None
    doc.pop("_id", None)
    return doc


def create_indexes() -> None:
    """Create all required indexes"""
    db = get_database()
    logger.info("Creating MongoDB indexes...")

    # Reminder rules
    rules = db["reminder_rules"]
    rules.create_index("rule_id", unique=True)
    rules.create_index([("entity_type", ASCENDING), ("is_active", ASCENDING)])

    # Fire records - one per (rule, entity)
    fire_records = db["fire_records"]
    fire_records.create_index(
        [("rule_id", ASCENDING), ("entity_type", ASCENDING), ("entity_id", ASCENDING)],
        unique=True,
        name="fire_record_key"
    )
    fire_records.create_index([("escalation_level", ASCENDING), ("acknowledged_at", ASCENDING)])

    # Notification inbox
    notifications = db["notifications"]
    notifications.create_index("notification_id", unique=True)
    notifications.create_index([("recipient_id", ASCENDING), ("created_at", DESCENDING)])
    notifications.create_index([("recipient_id", ASCENDING), ("is_read", ASCENDING)])
    notifications.create_index("delivery_status")

    # Directory
    db["users"].create_index("user_id", unique=True)
    db["users"].create_index("roles")
    db["projects"].create_index("project_id", unique=True)

    # Watchable entities
    from .entity_repo import ENTITY_COLLECTIONS
    for name in ENTITY_COLLECTIONS.values():
        db[name].create_index("entity_id", unique=True)

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        client = get_client()
        client.admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except Exception as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
