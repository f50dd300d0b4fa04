"""Reminder Engine - One periodic sweep over rules and watchable entities

A sweep is one logical tick with a fixed ``now``:

1. Load active rules, list snapshots of every entity kind
2. Drop fire records of frozen entities
3. Evaluate rules into trigger events
4. Process events concurrently: dedup gate, re-read the entity, resolve
   recipients, compose, commit, dispatch
5. Escalate stale unacknowledged fires
6. Garbage-collect fire records of deleted entities

Faults are isolated per (rule, entity) pair and per entity kind; nothing
raised while handling one pair aborts the tick.
"""
import asyncio
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from .composer import NotificationComposer, notification_type_for
from .dispatcher import Dispatcher
from .escalation import EscalationController
from .evaluator import RuleEvaluator
from .interfaces import Directory, EntityProvider
from .recipient_resolver import RecipientResolver
from .state_tracker import StateTracker
from ..config.settings import settings
from ..domain.entities import EntitySnapshotBase
from ..domain.enums import DeliveryStatus, EntityKind, NotificationKind
from ..domain.errors import FireRecordNotFoundError, MalformedEntityError
from ..domain.models import (
    DispatchContext,
    FireRecord,
    Notification,
    SweepResult,
    TriggerEvent,
)
from ..repositories.rule_repo import RuleRepository
from ..utils.idgen import generate_sweep_id
from ..utils.logger import correlation_scope, get_logger
from ..utils.time import ensure_utc, utc_now

logger = get_logger(__name__)


class ReminderEngine:
    """
    Periodic reminder sweep and acknowledgement entry point

    All collaborators are injected; ``reminders.engine.factory.build_engine``
    wires the MongoDB-backed ones.
    """

    def __init__(
        self,
        rules: RuleRepository,
        provider: EntityProvider,
        directory: Directory,
        tracker: StateTracker,
        dispatcher: Dispatcher,
        evaluator: Optional[RuleEvaluator] = None,
        resolver: Optional[RecipientResolver] = None,
        composer: Optional[NotificationComposer] = None,
        escalation: Optional[EscalationController] = None,
        concurrency: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.rules = rules
        self.provider = provider
        self.directory = directory
        self.tracker = tracker
        self.dispatcher = dispatcher
        self.evaluator = evaluator or RuleEvaluator()
        self.resolver = resolver or RecipientResolver(directory)
        self.composer = composer or NotificationComposer()
        self.escalation = escalation or EscalationController(
            tracker, self.resolver, self.composer, dispatcher, self.evaluator, directory
        )
        self.concurrency = max(1, concurrency or settings.evaluation_concurrency)
        self.timeout_seconds = timeout_seconds or settings.sweep_timeout_seconds
        self._clock = clock
        self._last_now: Optional[datetime] = None

    @property
    def inbox(self):
        return self.dispatcher.inbox

    # =========================================================================
    # Sweep
    # =========================================================================

    def _tick_instant(self, now: Optional[datetime]) -> datetime:
        """Fixed ``now`` of a tick, never earlier than the previous tick's"""
        instant = ensure_utc(now) if now is not None else self._clock()
        if self._last_now is not None and instant < self._last_now:
            logger.warning(
                f"Clock went backwards ({instant} < {self._last_now}), reusing previous tick instant"
            )
            instant = self._last_now
        self._last_now = instant
        return instant

    async def run_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """
        Run one tick

        Args:
            now: Tick instant (defaults to the clock)

        Returns:
            SweepResult with per-stage counters
        """
        sweep_id = generate_sweep_id()
        with correlation_scope(sweep_id):
            return await self._sweep(sweep_id, now)

    async def _sweep(self, sweep_id: str, now: Optional[datetime]) -> SweepResult:
        started = time.monotonic()
        deadline = started + self.timeout_seconds

        result = SweepResult(sweep_id=sweep_id, now=self._tick_instant(now))
        now = result.now

        logger.info(f"Sweep started at {now.isoformat()}", extra={"sweep_id": sweep_id})

        rules = self.rules.list_rules(active_only=True)
        rules_by_id = {rule.rule_id: rule for rule in rules}
        result.rules_evaluated = len(rules)

        snapshots, listed_ids = self._load_snapshots(result)
        snapshots_by_key = {snapshot.key: snapshot for snapshot in snapshots}
        result.entities_seen = len(snapshots)

        events = self.evaluator.evaluate(now, rules, snapshots, record_lookup=self.tracker.get)
        result.events = len(events)

        await self._process_events(events, deadline, result)

        if time.monotonic() < deadline:
            stats = await self.escalation.run(now, rules_by_id, snapshots_by_key)
            result.escalations = stats["escalated"]
            result.notifications_created += stats["notifications"]
            result.errors += stats["errors"]
        else:
            logger.warning("Sweep timed out before escalation pass", extra={"sweep_id": sweep_id})

        for kind, live_ids in listed_ids.items():
            result.records_removed += self.tracker.purge_missing(kind, live_ids)

        result.duration_ms = round((time.monotonic() - started) * 1000, 2)
        logger.info(
            f"Sweep finished: {result.fired} fired, {result.suppressed} suppressed, "
            f"{result.escalations} escalated, {result.errors} errors",
            extra={"sweep_id": sweep_id, "status": "completed"}
        )
        return result

    def _load_snapshots(self, result: SweepResult):
        """
        List every kind once

        Returns:
            (watchable snapshots, {kind: ids of every stored entity}) where
            kinds whose listing failed are absent from the id map
        """
        watchable: List[EntitySnapshotBase] = []
        listed_ids: Dict[EntityKind, Set[str]] = {}

        for kind in EntityKind:
            try:
                snapshots = list(self.provider.list_watchable_entities(kind))
                live_ids = set(self.provider.list_entity_ids(kind))
            except Exception as e:
                result.errors += 1
                logger.error(
                    f"Listing {kind.value} entities failed: {e}",
                    extra={"entity_type": kind.value, "sweep_id": result.sweep_id},
                    exc_info=True
                )
                continue

            # Unparseable documents still exist and keep their fire records
            listed_ids[kind] = live_ids | {snapshot.entity_id for snapshot in snapshots}
            for snapshot in snapshots:
                if snapshot.is_frozen():
                    result.records_removed += self.tracker.forget_entity(kind, snapshot.entity_id)
                else:
                    watchable.append(snapshot)

        return watchable, listed_ids

    async def _process_events(
        self,
        events: List[TriggerEvent],
        deadline: float,
        result: SweepResult
    ) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(event: TriggerEvent) -> None:
            async with semaphore:
                if time.monotonic() >= deadline:
                    result.abandoned += 1
                    return
                try:
                    await self._process_event(event, result)
                except Exception as e:
                    result.errors += 1
                    logger.error(
                        f"Processing trigger event failed: {e}",
                        extra={
                            "rule_id": event.rule.rule_id,
                            "entity_type": event.entity.kind,
                            "entity_id": event.entity.entity_id,
                        },
                        exc_info=True
                    )

        await asyncio.gather(*(run(event) for event in events))

        if result.abandoned:
            logger.warning(
                f"Sweep timed out, {result.abandoned} events left for the next tick",
                extra={"sweep_id": result.sweep_id}
            )

    async def _process_event(self, event: TriggerEvent, result: SweepResult) -> None:
        rule = event.rule
        now = event.trigger_instant
        kind = EntityKind(event.entity.kind)
        log_extra = {"rule_id": rule.rule_id, "entity_type": kind.value, "entity_id": event.entity.entity_id}

        if not self.tracker.should_fire(rule, event.entity, now):
            result.suppressed += 1
            return

        # The entity may have changed or vanished since it was listed
        try:
            entity = self.provider.get_entity(kind, event.entity.entity_id)
        except MalformedEntityError as e:
            result.dropped += 1
            logger.warning(f"Entity unreadable, skipping this tick: {e.message}", extra=log_extra)
            return
        if entity is None or entity.is_frozen():
            result.dropped += 1
            self.tracker.forget_entity(kind, event.entity.entity_id)
            logger.info("Entity no longer watchable, dropping event", extra=log_extra)
            return

        record = self.tracker.get(rule, entity)
        if not self.evaluator.is_satisfied(rule, entity, now, record):
            result.dropped += 1
            return

        recipients = self.resolver.resolve(rule.recipients, entity)
        days = self.evaluator.compute_days(rule, entity, now)
        project = self.directory.get_project(entity.project_id)
        message = self.composer.compose(
            rule.message_template, entity, days=days, project=project, rule_name=rule.name
        )

        committed = self.tracker.try_fire(rule, entity, now)
        if committed is None:
            result.suppressed += 1
            return
        result.fired += 1

        if not recipients:
            result.recipients_missing += 1
            logger.warning("Rule fired but resolved no recipients", extra=log_extra)
            return

        outcomes = await self.dispatcher.dispatch(
            recipients,
            rule.channels,
            message,
            DispatchContext(
                rule_id=rule.rule_id,
                entity_type=kind,
                entity_id=entity.entity_id,
                project_id=entity.project_id,
                kind=NotificationKind.REMINDER,
                notification_type=notification_type_for(entity.kind, rule.trigger, days),
                action_url=entity.action_url()
            )
        )
        result.notifications_created += len(outcomes)
        result.deliveries_failed += sum(
            1 for outcome in outcomes if outcome.status == DeliveryStatus.FAILED
        )

    # =========================================================================
    # Acknowledgement
    # =========================================================================

    def acknowledge(
        self,
        rule_id: str,
        entity_type: EntityKind,
        entity_id: str,
        at: Optional[datetime] = None
    ) -> FireRecord:
        """Acknowledge the current fire edge of a (rule, entity) pair"""
        return self.tracker.acknowledge(rule_id, entity_type, entity_id, at)

    def acknowledge_notification(self, notification: Notification) -> Optional[FireRecord]:
        """
        Acknowledge the edge a reminder notification was sent for

        Notifications without a rule origin (or whose record was already
        purged) are ignored.
        """
        if not notification.rule_id or notification.entity_type is None or not notification.entity_id:
            return None
        try:
            return self.tracker.acknowledge(
                notification.rule_id,
                notification.entity_type,
                notification.entity_id,
                notification.read_at
            )
        except FireRecordNotFoundError:
            logger.debug(
                "No fire record to acknowledge",
                extra={"notification_id": notification.notification_id, "rule_id": notification.rule_id}
            )
            return None
