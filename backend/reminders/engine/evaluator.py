"""Rule Evaluator - Time-window evaluation of reminder rules

Safe, side-effect free: the evaluator only reads rules, snapshots and (for
recurring rules) the last fire instant. Whether a satisfied condition is a
*new* trigger edge is decided by the State Tracker.
"""
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from ..config.settings import settings
from ..domain.entities import EntitySnapshotBase
from ..domain.enums import TriggerType
from ..domain.models import FireRecord, ReminderRule, TriggerEvent
from ..utils.logger import get_logger
from ..utils.time import calendar_days_between, elapsed_days, same_day

logger = get_logger(__name__)

RecordLookup = Callable[[ReminderRule, EntitySnapshotBase], Optional[FireRecord]]


class RuleEvaluator:
    """
    Evaluate trigger conditions for (rule, entity) pairs

    Boundary policy:
        inclusive: "within n days" / "n days overdue" include day n itself
        calendar_days: measure whole calendar days instead of 24h multiples
    """

    def __init__(
        self,
        inclusive: Optional[bool] = None,
        calendar_days: Optional[bool] = None
    ):
        self.inclusive = settings.trigger_window_inclusive if inclusive is None else inclusive
        self.calendar_days = settings.uses_calendar_days if calendar_days is None else calendar_days

    def evaluate(
        self,
        now: datetime,
        rules: Iterable[ReminderRule],
        snapshots: Iterable[EntitySnapshotBase],
        record_lookup: Optional[RecordLookup] = None
    ) -> List[TriggerEvent]:
        """
        Produce trigger events for every satisfied (rule, entity) pair

        Args:
            now: The tick instant
            rules: Rule store contents (inactive rules are ignored)
            snapshots: Current entity snapshots (frozen ones are ignored)
            record_lookup: Fire record accessor, needed by recurring rules

        Returns:
            Events ordered by (project_id, rule_id, entity_id)
        """
        rules_by_kind: Dict[str, List[ReminderRule]] = {}
        for rule in rules:
            if rule.is_active:
                rules_by_kind.setdefault(rule.entity_type.value, []).append(rule)

        events: List[TriggerEvent] = []
        for entity in snapshots:
            if entity.is_frozen():
                continue
            for rule in rules_by_kind.get(entity.kind, []):
                record = None
                if rule.trigger == TriggerType.RECURRING and record_lookup is not None:
                    record = record_lookup(rule, entity)

                if self.is_satisfied(rule, entity, now, record):
                    events.append(TriggerEvent(
                        rule=rule,
                        entity=entity,
                        trigger_instant=now,
                        days=self.compute_days(rule, entity, now)
                    ))

        events.sort(key=lambda event: event.sort_key)
        logger.debug(f"Evaluator produced {len(events)} trigger events")
        return events

    def is_satisfied(
        self,
        rule: ReminderRule,
        entity: EntitySnapshotBase,
        now: datetime,
        record: Optional[FireRecord] = None
    ) -> bool:
        """Whether the rule's trigger condition holds for the entity at ``now``"""
        if not rule.is_active or rule.entity_type.value != entity.kind or entity.is_frozen():
            return False

        anchor = entity.anchor_date()
        n = rule.trigger_days

        if rule.trigger == TriggerType.DAYS_BEFORE:
            # Overdue entities belong to days_after
            if anchor <= now:
                return False
            return self._within(self.distance(now, anchor), n)

        if rule.trigger == TriggerType.DAYS_AFTER:
            if anchor > now:
                return False
            return self._reached(self.distance(anchor, now), n)

        if rule.trigger == TriggerType.ON_DATE:
            return same_day(anchor, now)

        if rule.trigger == TriggerType.RECURRING:
            if record is None or record.last_fired_at is None:
                return True
            return self.distance(record.last_fired_at, now) >= n

        logger.warning(f"Unknown trigger type: {rule.trigger}", extra={"rule_id": rule.rule_id})
        return False

    def compute_days(self, rule: ReminderRule, entity: EntitySnapshotBase, now: datetime) -> int:
        """
        Day distance rendered as ``{days}``

        Elapsed days for days_after, remaining days otherwise (negative once
        the anchor has passed).
        """
        anchor = entity.anchor_date()
        if rule.trigger == TriggerType.DAYS_AFTER:
            return calendar_days_between(anchor, now)
        return calendar_days_between(now, anchor)

    def distance(self, start: datetime, end: datetime) -> float:
        """Days from start to end under the configured granularity"""
        if self.calendar_days:
            return float(calendar_days_between(start, end))
        return elapsed_days(start, end)

    def _within(self, distance: float, n: int) -> bool:
        return distance <= n if self.inclusive else distance < n

    def _reached(self, distance: float, n: int) -> bool:
        return distance >= n if self.inclusive else distance > n
