"""State Tracker - Dedup gate and escalation bookkeeping per (rule, entity)

The tracker is the only writer of fire records. ``should_fire`` + ``commit``
for one key run under a per-key lock in this process, and every repository
write is a compare-and-set, so overlapping sweeps (or servers) cannot commit
the same trigger edge twice.
"""
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional

from ..domain.entities import EntitySnapshotBase
from ..domain.enums import EntityKind, TriggerType
from ..domain.errors import ConcurrencyError, FireRecordNotFoundError
from ..domain.models import FireRecord, ReminderRule, fire_key
from ..repositories.fire_record_repo import FireRecordRepository
from ..utils.logger import get_logger
from ..utils.time import same_day, utc_now

logger = get_logger(__name__)


class StateTracker:
    """Guarantees at-most-one notification per trigger edge"""

    def __init__(self, repo: FireRecordRepository):
        self.repo = repo
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # =========================================================================
    # Locking
    # =========================================================================

    @contextmanager
    def _key_lock(self, key: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield

    # =========================================================================
    # Dedup gate
    # =========================================================================

    def get(self, rule: ReminderRule, entity: EntitySnapshotBase) -> Optional[FireRecord]:
        return self.repo.get(rule.rule_id, EntityKind(entity.kind), entity.entity_id)

    def should_fire(
        self,
        rule: ReminderRule,
        entity: EntitySnapshotBase,
        trigger_instant: datetime
    ) -> bool:
        """
        Whether a satisfied condition is a new trigger edge

        days_before / on_date: once per (rule, entity), re-armed only when the
            entity's anchor date moves.
        days_after: once per calendar day until the edge is acknowledged.
        recurring: once per calendar day (the interval is the evaluator's job).
        """
        return self._is_new_edge(rule, entity, trigger_instant, self.get(rule, entity))

    def _is_new_edge(
        self,
        rule: ReminderRule,
        entity: EntitySnapshotBase,
        trigger_instant: datetime,
        record: Optional[FireRecord]
    ) -> bool:
        if record is None or record.last_fired_at is None:
            return True

        if rule.trigger in (TriggerType.DAYS_BEFORE, TriggerType.ON_DATE):
            return record.anchor_at is not None and record.anchor_at != entity.anchor_date()

        if rule.trigger == TriggerType.DAYS_AFTER:
            if record.is_acknowledged and record.anchor_at == entity.anchor_date():
                return False
            return not same_day(record.last_fired_at, trigger_instant)

        if rule.trigger == TriggerType.RECURRING:
            return not same_day(record.last_fired_at, trigger_instant)

        return False

    def commit(
        self,
        rule: ReminderRule,
        entity: EntitySnapshotBase,
        trigger_instant: datetime
    ) -> FireRecord:
        """
        Record a fire. A new trigger edge starts a fresh escalation cycle; a
        daily days_after re-fire of the same unacknowledged edge keeps it.

        Raises:
            ConcurrencyError: another writer committed this key first
        """
        return self._write(rule, entity, trigger_instant, self.get(rule, entity))

    def _write(
        self,
        rule: ReminderRule,
        entity: EntitySnapshotBase,
        trigger_instant: datetime,
        record: Optional[FireRecord]
    ) -> FireRecord:
        """Insert or compare-and-set against the record the caller read"""
        now = utc_now()
        if record is None:
            created = FireRecord(
                rule_id=rule.rule_id,
                entity_type=EntityKind(entity.kind),
                entity_id=entity.entity_id,
                project_id=entity.project_id,
                last_fired_at=trigger_instant,
                cycle_started_at=trigger_instant,
                anchor_at=entity.anchor_date(),
                fire_count=1,
                version=1,
                created_at=now,
                updated_at=now
            )
            return self.repo.insert(created)

        changes = {
            "project_id": entity.project_id,
            "last_fired_at": trigger_instant,
            "anchor_at": entity.anchor_date(),
            "fire_count": record.fire_count + 1,
            "version": record.version + 1,
            "updated_at": now,
        }
        if not self._continues_cycle(rule, entity, record):
            changes.update({
                "cycle_started_at": trigger_instant,
                "escalation_level": 0,
                "escalated_at": None,
                "acknowledged_at": None,
            })
        updated = record.model_copy(update=changes)
        return self.repo.compare_and_set(updated, expected_version=record.version)

    @staticmethod
    def _continues_cycle(rule: ReminderRule, entity: EntitySnapshotBase, record: FireRecord) -> bool:
        """A daily overdue re-fire of a still unacknowledged edge"""
        return (
            rule.trigger == TriggerType.DAYS_AFTER
            and record.cycle_started_at is not None
            and not record.is_acknowledged
            and record.anchor_at == entity.anchor_date()
        )

    def try_fire(
        self,
        rule: ReminderRule,
        entity: EntitySnapshotBase,
        trigger_instant: datetime
    ) -> Optional[FireRecord]:
        """
        Atomically gate and commit a trigger edge

        Returns:
            The committed record, or None if the edge already fired (here or
            in a concurrent sweep)
        """
        key = fire_key(rule.rule_id, entity.kind, entity.entity_id)
        with self._key_lock(key):
            record = self.get(rule, entity)
            if not self._is_new_edge(rule, entity, trigger_instant, record):
                return None
            try:
                return self._write(rule, entity, trigger_instant, record)
            except ConcurrencyError:
                logger.info(
                    "Trigger edge committed by a concurrent sweep",
                    extra={"rule_id": rule.rule_id, "entity_id": entity.entity_id}
                )
                return None

    # =========================================================================
    # Escalation / acknowledgement
    # =========================================================================

    def pending_escalations(self) -> List[FireRecord]:
        return self.repo.list_pending_escalations()

    def promote(self, record: FireRecord, level: int, at: datetime) -> Optional[FireRecord]:
        """
        Raise the escalation level of a still-pending record

        Returns:
            The promoted record, or None if it was acknowledged, re-fired or
            promoted concurrently
        """
        with self._key_lock(record.key):
            current = self.repo.get(record.rule_id, record.entity_type, record.entity_id)
            if (
                current is None
                or current.version != record.version
                or current.is_acknowledged
                or current.escalation_level >= level
            ):
                return None

            promoted = current.model_copy(update={
                "escalation_level": level,
                "escalated_at": at,
                "version": current.version + 1,
                "updated_at": utc_now(),
            })
            try:
                return self.repo.compare_and_set(promoted, expected_version=current.version)
            except ConcurrencyError:
                return None

    def acknowledge(
        self,
        rule_id: str,
        entity_type: EntityKind,
        entity_id: str,
        at: Optional[datetime] = None
    ) -> FireRecord:
        """
        Close the escalation state machine for the current trigger edge

        Raises:
            FireRecordNotFoundError: the pair never fired (or was purged)
        """
        key = fire_key(rule_id, entity_type, entity_id)
        with self._key_lock(key):
            current = self.repo.get(rule_id, entity_type, entity_id)
            if current is None:
                raise FireRecordNotFoundError(
                    f"No fire record for rule {rule_id} and {EntityKind(entity_type).value} {entity_id}"
                )
            if current.is_acknowledged:
                return current

            acknowledged = current.model_copy(update={
                "acknowledged_at": at or utc_now(),
                "version": current.version + 1,
                "updated_at": utc_now(),
            })
            record = self.repo.compare_and_set(acknowledged, expected_version=current.version)

        logger.info(
            "Fire record acknowledged",
            extra={"rule_id": rule_id, "entity_id": entity_id}
        )
        return record

    # =========================================================================
    # Garbage collection
    # =========================================================================

    def forget_entity(self, entity_type: EntityKind, entity_id: str) -> int:
        """Drop every record of a frozen or deleted entity"""
        return self.repo.delete_for_entity(entity_type, entity_id)

    def forget_rule(self, rule_id: str) -> int:
        return self.repo.delete_for_rule(rule_id)

    def purge_missing(self, entity_type: EntityKind, live_ids: Iterable[str]) -> int:
        return self.repo.delete_missing(entity_type, live_ids)

    def list_records(self, **filters) -> List[FireRecord]:
        return self.repo.list_records(**filters)
