"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection, create_indexes
from .rule_repo import RuleRepository
from .fire_record_repo import FireRecordRepository
from .inbox_repo import InboxRepository
from .entity_repo import EntityRepository
from .directory_repo import DirectoryRepository

__all__ = [
    "get_database",
    "get_collection",
    "create_indexes",
    "RuleRepository",
    "FireRecordRepository",
    "InboxRepository",
    "EntityRepository",
    "DirectoryRepository",
]
