"""Reminder Engine sweep tests - end-to-end over fakes and mongomock"""
from datetime import timedelta

import pytest

from reminders.domain.enums import Channel, DeliveryStatus, EntityKind, NotificationKind
from reminders.domain.errors import MalformedEntityError
from reminders.engine.sweep import ReminderEngine

from .factories import NOW, days, make_milestone, make_rule, make_task, run

ESCALATING = {"after_days": 7, "escalate_to": ["pmo"]}


@pytest.fixture
def add_rule(rule_repo):
    def add(**overrides):
        return rule_repo.create_rule(make_rule(**overrides))
    return add


def sweep(engine, at):
    return run(engine.run_sweep(at))


class TestFiring:

    def test_ten_day_window(self, engine, provider, add_rule, inbox):
        add_rule()
        for offset in (9, 10, 11):
            provider.put(make_milestone(f"MS-{offset}", due=NOW + days(offset)))

        result = sweep(engine, NOW)

        assert result.events == 2
        assert result.fired == 2
        assert result.notifications_created == 2
        messages = sorted(n.message for n in inbox.get_notifications_for_user("u-owner"))
        assert messages == [
            'Milestone "Milestone MS-10" is due in 10 days',
            'Milestone "Milestone MS-9" is due in 9 days',
        ]

    def test_at_most_once_per_edge(self, engine, provider, add_rule, inbox):
        add_rule()
        provider.put(make_milestone())

        first = sweep(engine, NOW)
        second = sweep(engine, NOW)
        third = sweep(engine, NOW + days(1))

        assert first.fired == 1
        assert (second.fired, second.suppressed) == (0, 1)
        assert (third.fired, third.suppressed) == (0, 1)
        assert inbox.count_for_user("u-owner") == 1

    def test_notification_carries_origin(self, engine, provider, add_rule, inbox):
        add_rule()
        provider.put(make_milestone())

        sweep(engine, NOW)

        [notification] = inbox.get_notifications_for_user("u-owner")
        assert notification.kind == NotificationKind.REMINDER
        assert notification.title == "Milestone Due Reminder"
        assert (notification.rule_id, notification.entity_type, notification.entity_id) == (
            "RULE-1", EntityKind.MILESTONE, "MS-1"
        )
        assert notification.action_url == "/projects/P-1/milestones"

    def test_days_after_rearms_daily_until_acknowledged(self, engine, provider, add_rule, tracker):
        add_rule(entity_type="task", trigger="days_after", trigger_days=1)
        provider.put(make_task())

        assert sweep(engine, NOW).fired == 1
        assert sweep(engine, NOW + timedelta(hours=2)).fired == 0
        assert sweep(engine, NOW + days(1)).fired == 1

        engine.acknowledge("RULE-1", EntityKind.TASK, "T-1", NOW + days(1))

        result = sweep(engine, NOW + days(2))
        assert (result.fired, result.suppressed) == (0, 1)
        assert tracker.list_records()[0].fire_count == 2

    def test_recurring_interval(self, engine, provider, add_rule):
        add_rule(trigger="recurring", trigger_days=2)
        provider.put(make_milestone())

        assert [sweep(engine, NOW + days(d)).fired for d in (0, 1, 2)] == [1, 0, 1]

    def test_rescheduled_entity_fires_again(self, engine, provider, add_rule):
        add_rule()
        provider.put(make_milestone(due=NOW + days(10)))
        sweep(engine, NOW)

        provider.put(make_milestone(due=NOW + days(6)))

        assert sweep(engine, NOW + days(1)).fired == 1


class TestEscalation:

    def test_escalates_exactly_once(self, engine, provider, add_rule, inbox, tracker):
        add_rule(escalation=ESCALATING)
        provider.put(make_milestone())

        sweep(engine, NOW)
        assert sweep(engine, NOW + days(6)).escalations == 0

        result = sweep(engine, NOW + days(7))
        assert result.escalations == 1
        assert result.notifications_created == 1
        assert sweep(engine, NOW + days(10)).escalations == 0

        [escalation] = inbox.get_notifications_for_user("u-pmo")
        assert escalation.kind == NotificationKind.ESCALATION
        assert escalation.escalation_level == 1
        assert escalation.title == "Escalation: Milestone Due Reminder"
        assert escalation.message == (
            'Milestone "Milestone MS-1" is due in 3 days (unacknowledged for 7 days)'
        )
        assert tracker.list_records()[0].escalation_level == 1

    def test_acknowledged_edge_never_escalates(self, engine, provider, add_rule, inbox):
        add_rule(escalation=ESCALATING)
        provider.put(make_milestone())
        sweep(engine, NOW)

        engine.acknowledge("RULE-1", EntityKind.MILESTONE, "MS-1", NOW + days(1))

        assert sweep(engine, NOW + days(8)).escalations == 0
        assert inbox.count_for_user("u-pmo") == 0

    def test_reading_the_reminder_acknowledges_it(self, engine, provider, add_rule, inbox, tracker):
        add_rule(escalation=ESCALATING)
        provider.put(make_milestone())
        sweep(engine, NOW)

        [notification] = inbox.get_notifications_for_user("u-owner")
        read = inbox.mark_as_read(notification.notification_id, "u-owner")
        record = engine.acknowledge_notification(read)

        assert record.is_acknowledged
        assert sweep(engine, NOW + days(8)).escalations == 0

    def test_overdue_streak_escalates_once(self, engine, provider, add_rule, inbox, tracker):
        add_rule(
            entity_type="task",
            trigger="days_after",
            trigger_days=1,
            recipients={"project_roles": ["assignee"]},
            escalation=ESCALATING
        )
        provider.put(make_task(assignee_id="u-dev"))

        escalations = [sweep(engine, NOW + days(d)).escalations for d in range(11)]

        assert escalations == [0, 0, 0, 0, 0, 0, 0, 1, 0, 0, 0]
        assert inbox.count_for_user("u-dev") == 11
        assert inbox.count_for_user("u-pmo") == 1
        [record] = tracker.list_records()
        assert (record.fire_count, record.escalation_level) == (11, 1)
        assert record.cycle_started_at == NOW

    def test_recurring_cycle_resets_escalation(self, engine, provider, add_rule, inbox, tracker):
        add_rule(trigger="recurring", trigger_days=2, escalation={"after_days": 1, "escalate_to": ["pmo"]})
        provider.put(make_milestone())

        escalations = [sweep(engine, NOW + days(d)).escalations for d in (0, 1, 2, 3)]

        assert escalations == [0, 1, 0, 1]
        assert inbox.count_for_user("u-pmo") == 2
        assert tracker.list_records()[0].cycle_started_at == NOW + days(2)

    def test_deactivated_rule_does_not_escalate(self, engine, provider, add_rule, rule_repo):
        add_rule(escalation=ESCALATING)
        provider.put(make_milestone())
        sweep(engine, NOW)

        rule_repo.set_active("RULE-1", False)

        assert sweep(engine, NOW + days(8)).escalations == 0


class TestFaultIsolation:

    def test_failed_channel_keeps_in_app(self, engine, provider, add_rule, email_transport, inbox):
        add_rule(channels=["in_app", "email"])
        provider.put(make_milestone())
        email_transport.default = False

        result = sweep(engine, NOW)

        assert result.fired == 1
        assert result.notifications_created == 2
        assert result.deliveries_failed == 1
        assert [n.delivery_status for n in inbox.get_notifications_for_user("u-owner")] == [
            DeliveryStatus.DELIVERED
        ]
        assert [n.channel for n in inbox.list_failed()] == [Channel.EMAIL]

    def test_no_recipients_still_commits(self, engine, provider, add_rule, tracker):
        add_rule(
            entity_type="task",
            trigger="days_after",
            trigger_days=1,
            recipients={"project_roles": ["assignee"]}
        )
        provider.put(make_task(assignee_id=None))

        result = sweep(engine, NOW)

        assert (result.fired, result.notifications_created, result.recipients_missing) == (1, 0, 1)
        assert len(tracker.list_records()) == 1

    def test_vanished_entity_is_dropped(self, engine, provider, add_rule, tracker):
        add_rule()
        provider.put(make_milestone())
        provider.vanished.add("MS-1")

        result = sweep(engine, NOW)

        assert (result.events, result.fired, result.dropped) == (1, 0, 1)
        assert tracker.list_records() == []

    def test_unparseable_entity_keeps_its_record(self, engine, provider, add_rule, tracker, inbox):
        add_rule()
        provider.put(make_milestone())
        sweep(engine, NOW)

        provider.malformed.add("MS-1")
        broken = sweep(engine, NOW + days(1))
        provider.malformed.clear()
        repaired = sweep(engine, NOW + days(2))

        assert (broken.events, broken.records_removed) == (0, 0)
        assert (repaired.fired, repaired.suppressed) == (0, 1)
        assert len(tracker.list_records()) == 1
        assert inbox.count_for_user("u-owner") == 1

    def test_entity_unreadable_on_reread_is_skipped(self, engine, provider, add_rule, tracker, monkeypatch):
        add_rule()
        provider.put(make_milestone())

        def unreadable(kind, entity_id):
            raise MalformedEntityError("Malformed milestone document")

        monkeypatch.setattr(provider, "get_entity", unreadable)
        result = sweep(engine, NOW)
        monkeypatch.undo()

        assert (result.events, result.fired, result.dropped, result.errors) == (1, 0, 1, 0)
        assert sweep(engine, NOW + days(1)).fired == 1

    def test_directory_failure_is_isolated_to_its_pair(self, engine, provider, add_rule, directory, tracker):
        add_rule(recipients={"project_roles": ["pm"]})
        provider.put(make_milestone("MS-1", project_id="P-1"))
        provider.put(make_milestone("MS-2", project_id="P-2"))
        directory.failing_projects.add("P-2")

        result = sweep(engine, NOW)

        assert (result.fired, result.errors) == (1, 1)
        assert [r.entity_id for r in tracker.list_records()] == ["MS-1"]

    def test_provider_failure_is_isolated_to_its_kind(self, engine, provider, add_rule, tracker):
        add_rule(rule_id="RULE-MS")
        add_rule(rule_id="RULE-TASK", entity_type="task", trigger="days_after", trigger_days=1)
        provider.put(make_milestone())
        provider.put(make_task())
        sweep(engine, NOW)

        provider.failing_kinds.add(EntityKind.TASK)
        provider.put(make_milestone("MS-2"))
        result = sweep(engine, NOW + days(1))

        assert result.errors == 1
        assert result.fired == 1
        assert result.records_removed == 0
        assert {r.entity_id for r in tracker.list_records(entity_type=EntityKind.TASK)} == {"T-1"}


class TestHousekeeping:

    def test_frozen_entity_records_are_removed(self, engine, provider, add_rule, tracker):
        add_rule()
        provider.put(make_milestone())
        sweep(engine, NOW)

        provider.put(make_milestone(status="achieved"))
        result = sweep(engine, NOW + days(1))

        assert result.records_removed == 1
        assert tracker.list_records() == []

    def test_deleted_entity_records_are_removed(self, engine, provider, add_rule, tracker):
        add_rule()
        milestone = make_milestone()
        provider.put(milestone)
        sweep(engine, NOW)

        provider.remove(milestone)
        result = sweep(engine, NOW + days(1))

        assert result.records_removed == 1
        assert tracker.list_records() == []

    def test_timed_out_sweep_abandons_events(
        self, rule_repo, provider, directory, tracker, dispatcher, evaluator, add_rule
    ):
        engine = ReminderEngine(
            rules=rule_repo,
            provider=provider,
            directory=directory,
            tracker=tracker,
            dispatcher=dispatcher,
            evaluator=evaluator,
            timeout_seconds=1e-6
        )
        add_rule()
        provider.put(make_milestone("MS-1"))
        provider.put(make_milestone("MS-2"))

        result = sweep(engine, NOW)

        assert (result.events, result.abandoned, result.fired) == (2, 2, 0)
        assert tracker.list_records() == []

    def test_tick_instant_never_goes_backwards(self, engine):
        later = sweep(engine, NOW + days(1))
        earlier = sweep(engine, NOW)

        assert earlier.now == later.now == NOW + days(1)
