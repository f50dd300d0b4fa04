"""Engine Factory - Wires the MongoDB-backed reminder engine"""
from typing import Dict, Optional

from .dispatcher import Dispatcher
from .evaluator import RuleEvaluator
from .interfaces import ChannelTransport, Directory, EntityProvider
from .state_tracker import StateTracker
from .sweep import ReminderEngine
from ..domain.enums import Channel
from ..repositories.directory_repo import DirectoryRepository
from ..repositories.entity_repo import EntityRepository
from ..repositories.fire_record_repo import FireRecordRepository
from ..repositories.inbox_repo import InboxRepository
from ..repositories.rule_repo import RuleRepository
from ..services.channel_transports import build_transports


def build_engine(
    rules: Optional[RuleRepository] = None,
    provider: Optional[EntityProvider] = None,
    directory: Optional[Directory] = None,
    fire_records: Optional[FireRecordRepository] = None,
    inbox: Optional[InboxRepository] = None,
    transports: Optional[Dict[Channel, ChannelTransport]] = None,
    evaluator: Optional[RuleEvaluator] = None
) -> ReminderEngine:
    """
    Build a ReminderEngine

    Any collaborator not passed in is created against the shared MongoDB
    client (and the configured webhooks, for transports).
    """
    inbox = inbox or InboxRepository()
    return ReminderEngine(
        rules=rules or RuleRepository(),
        provider=provider or EntityRepository(),
        directory=directory or DirectoryRepository(),
        tracker=StateTracker(fire_records or FireRecordRepository()),
        dispatcher=Dispatcher(inbox, build_transports() if transports is None else transports),
        evaluator=evaluator
    )
