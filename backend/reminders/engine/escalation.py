"""Escalation Controller - Normal -> Escalated for unacknowledged fires

A record escalates when it exists, has not been acknowledged, is still at
level 0, its rule is active with an escalation policy, its entity is still
watchable, and ``after_days`` have passed since the first fire of the current
trigger edge (daily overdue re-fires do not restart the count). The level is
promoted with a compare-and-set *before* dispatching, so concurrent sweeps
escalate each edge exactly once.
"""
from datetime import datetime
from typing import Dict, Mapping, Optional

from .composer import NotificationComposer, notification_type_for
from .dispatcher import Dispatcher
from .evaluator import RuleEvaluator
from .interfaces import Directory
from .recipient_resolver import RecipientResolver
from .state_tracker import StateTracker
from ..domain.entities import EntitySnapshotBase
from ..domain.enums import NotificationKind
from ..domain.models import DispatchContext, FireRecord, ReminderRule
from ..utils.logger import get_logger
from ..utils.time import calendar_days_between

logger = get_logger(__name__)

ESCALATED_LEVEL = 1


def cycle_start(record: FireRecord) -> datetime:
    return record.cycle_started_at or record.last_fired_at


class EscalationController:
    """Promote and notify escalation targets for stale fire records"""

    def __init__(
        self,
        tracker: StateTracker,
        resolver: RecipientResolver,
        composer: NotificationComposer,
        dispatcher: Dispatcher,
        evaluator: RuleEvaluator,
        directory: Optional[Directory] = None
    ):
        self.tracker = tracker
        self.resolver = resolver
        self.composer = composer
        self.dispatcher = dispatcher
        self.evaluator = evaluator
        self.directory = directory

    def is_due(self, record: FireRecord, rule: ReminderRule, now: datetime) -> bool:
        """Whether a record should move from Normal to Escalated at ``now``"""
        if rule.escalation is None or not rule.is_active:
            return False
        if record.last_fired_at is None or record.is_acknowledged:
            return False
        if record.escalation_level >= ESCALATED_LEVEL:
            return False
        return self.evaluator.distance(cycle_start(record), now) >= rule.escalation.after_days

    async def run(
        self,
        now: datetime,
        rules_by_id: Mapping[str, ReminderRule],
        snapshots_by_key: Mapping[str, EntitySnapshotBase]
    ) -> Dict[str, int]:
        """
        Escalate every due record

        Args:
            now: The tick instant
            rules_by_id: Active rules of this tick
            snapshots_by_key: Watchable snapshots of this tick, keyed by ``kind:id``

        Returns:
            Counters: escalated, notifications, errors
        """
        stats = {"escalated": 0, "notifications": 0, "errors": 0}

        for record in self.tracker.pending_escalations():
            rule = rules_by_id.get(record.rule_id)
            entity = snapshots_by_key.get(f"{record.entity_type.value}:{record.entity_id}")
            if rule is None or entity is None or not self.is_due(record, rule, now):
                continue

            try:
                sent = await self._escalate(record, rule, entity, now)
            except Exception as e:
                stats["errors"] += 1
                logger.error(
                    f"Escalation failed: {e}",
                    extra={"rule_id": record.rule_id, "entity_id": record.entity_id},
                    exc_info=True
                )
                continue

            if sent is not None:
                stats["escalated"] += 1
                stats["notifications"] += sent

        return stats

    async def _escalate(
        self,
        record: FireRecord,
        rule: ReminderRule,
        entity: EntitySnapshotBase,
        now: datetime
    ) -> Optional[int]:
        promoted = self.tracker.promote(record, ESCALATED_LEVEL, now)
        if promoted is None:
            # Acknowledged, re-fired or escalated by another sweep
            return None

        recipients = self.resolver.resolve_roles(rule.escalation.escalate_to, entity)
        if not recipients:
            logger.warning(
                "Escalation resolved no recipients",
                extra={"rule_id": rule.rule_id, "entity_id": entity.entity_id}
            )
            return 0

        project = self.directory.get_project(entity.project_id) if self.directory else None
        days = self.evaluator.compute_days(rule, entity, now)
        message = self.composer.compose_escalation(
            rule.message_template,
            entity,
            days=days,
            unacknowledged_days=calendar_days_between(cycle_start(record), now),
            project=project,
            rule_name=rule.name
        )
        outcomes = await self.dispatcher.dispatch(
            recipients,
            rule.channels,
            message,
            DispatchContext(
                rule_id=rule.rule_id,
                entity_type=record.entity_type,
                entity_id=entity.entity_id,
                project_id=entity.project_id,
                kind=NotificationKind.ESCALATION,
                notification_type=notification_type_for(entity.kind, rule.trigger, days, escalation=True),
                action_url=entity.action_url(),
                escalation_level=ESCALATED_LEVEL
            )
        )

        logger.info(
            f"Escalated to {len(recipients)} recipients",
            extra={"rule_id": rule.rule_id, "entity_id": entity.entity_id, "status": "escalated"}
        )
        return len(outcomes)
