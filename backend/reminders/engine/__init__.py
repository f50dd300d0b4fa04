"""Reminder Engine - Rule evaluation, dedup, dispatch and escalation"""
from .evaluator import RuleEvaluator
from .state_tracker import StateTracker
from .recipient_resolver import RecipientResolver
from .composer import NotificationComposer
from .dispatcher import Dispatcher
from .escalation import EscalationController
from .sweep import ReminderEngine
from .factory import build_engine

__all__ = [
    "RuleEvaluator",
    "StateTracker",
    "RecipientResolver",
    "NotificationComposer",
    "Dispatcher",
    "EscalationController",
    "ReminderEngine",
    "build_engine",
]
