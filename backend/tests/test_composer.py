"""Notification Composer tests"""
import pytest

from reminders.domain.enums import NotificationType, TriggerType
from reminders.domain.models import ProjectInfo
from reminders.engine.composer import NotificationComposer, notification_type_for, render_value

from .factories import make_invoice, make_milestone, make_po

PROJECT = ProjectInfo(project_id="P-1", code="PRJ-001", name="Harbour Expansion", pm_id="u-pm")


@pytest.fixture
def composer():
    return NotificationComposer()


class TestCompose:

    def test_entity_days_project_and_rule_placeholders(self, composer):
        message = composer.compose(
            'Milestone "{entity.name}" of {project.name} ({project.code}) is due in {days} days [{rule.name}]',
            make_milestone(name="Quay wall poured"),
            days=9,
            project=PROJECT,
            rule_name="Milestone Due Reminder"
        )

        assert message.title == "Milestone Due Reminder"
        assert message.message == (
            'Milestone "Quay wall poured" of Harbour Expansion (PRJ-001) is due in 9 days '
            "[Milestone Due Reminder]"
        )

    def test_unknown_placeholders_are_left_verbatim(self, composer):
        message = composer.compose(
            "{entity.nope} / {Days} / {days} / { spaced }",
            make_milestone(),
            days=3
        )

        assert message.message == "{entity.nope} / {Days} / 3 / { spaced }"

    def test_amounts_and_dates_are_formatted(self, composer):
        message = composer.compose(
            "Invoice {entity.code} for ${entity.amount} is due on {entity.due_date}",
            make_invoice(),
            days=7
        )

        assert message.message == "Invoice INV-2026-001 for $1,234.50 is due on 2026-03-17"
        assert message.title == "Invoice reminder"

    def test_display_name_and_anchor_are_exposed(self, composer):
        message = composer.compose("{entity.display_name} by {entity.anchor}", make_po(), days=5)

        assert message.message == "PO-2026-014 by 2026-03-15"

    def test_escalation_flavour(self, composer):
        message = composer.compose_escalation(
            'Milestone "{entity.name}" is due in {days} days',
            make_milestone(name="Quay wall poured"),
            days=3,
            unacknowledged_days=1,
            rule_name="Milestone Due Reminder"
        )

        assert message.title == "Escalation: Milestone Due Reminder"
        assert message.message == 'Milestone "Quay wall poured" is due in 3 days (unacknowledged for 1 day)'


@pytest.mark.parametrize("value,expected", [
    (None, ""),
    (True, "yes"),
    (98000.0, "98,000.00"),
    (12, "12"),
    (TriggerType.ON_DATE, "on_date"),
])
def test_render_value(value, expected):
    assert render_value(value) == expected


class TestNotificationType:

    def test_reminder_categories(self):
        assert notification_type_for("milestone", TriggerType.DAYS_BEFORE, 5) == NotificationType.MILESTONE_UPCOMING
        assert notification_type_for("task", TriggerType.DAYS_AFTER, 2) == NotificationType.TASK_OVERDUE
        assert notification_type_for("issue", TriggerType.DAYS_BEFORE, 1) == NotificationType.ISSUE_SLA_WARNING
        assert notification_type_for("po", TriggerType.DAYS_AFTER, 1) == NotificationType.PO_DELIVERY_DATE

    def test_recurring_follows_the_sign_of_days(self):
        assert notification_type_for("invoice", TriggerType.RECURRING, 4) == NotificationType.INVOICE_DUE
        assert notification_type_for("invoice", TriggerType.RECURRING, -1) == NotificationType.INVOICE_OVERDUE

    def test_escalation_overrides_kind(self):
        assert notification_type_for(
            "deliverable", TriggerType.DAYS_AFTER, 3, escalation=True
        ) == NotificationType.ESCALATION
