"""Notification Composer - Renders rule templates into notification text

Pure functions of their inputs: no I/O, no clock. Placeholders are
``{entity.<field>}``, ``{days}``, ``{project.name}``, ``{project.code}`` and
``{rule.name}``. Unknown placeholders are left untouched so a template typo
degrades the text instead of blocking delivery.
"""
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..domain.entities import EntitySnapshotBase
from ..domain.enums import EntityKind, NotificationType, TriggerType
from ..domain.models import ComposedMessage, ProjectInfo

PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][\w.]*)\}")

DEFAULT_TITLES: Dict[str, str] = {
    EntityKind.MILESTONE.value: "Milestone reminder",
    EntityKind.DELIVERABLE.value: "Deliverable reminder",
    EntityKind.PURCHASE_ORDER.value: "Purchase order reminder",
    EntityKind.INVOICE.value: "Invoice reminder",
    EntityKind.TASK.value: "Task reminder",
    EntityKind.ISSUE.value: "Issue reminder",
}

# (upcoming, overdue) per kind
NOTIFICATION_TYPES: Dict[str, tuple] = {
    EntityKind.MILESTONE.value: (NotificationType.MILESTONE_UPCOMING, NotificationType.MILESTONE_OVERDUE),
    EntityKind.DELIVERABLE.value: (NotificationType.DELIVERABLE_DUE, NotificationType.DELIVERABLE_OVERDUE),
    EntityKind.PURCHASE_ORDER.value: (NotificationType.PO_DELIVERY_DATE, NotificationType.PO_DELIVERY_DATE),
    EntityKind.INVOICE.value: (NotificationType.INVOICE_DUE, NotificationType.INVOICE_OVERDUE),
    EntityKind.TASK.value: (NotificationType.TASK_DUE, NotificationType.TASK_OVERDUE),
    EntityKind.ISSUE.value: (NotificationType.ISSUE_SLA_WARNING, NotificationType.ISSUE_ESCALATED),
}

ESCALATION_TITLE_PREFIX = "Escalation: "


def render_value(value: Any) -> str:
    """Format a placeholder value for display"""
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:,.2f}"
    return str(value)


def build_context(
    entity: EntitySnapshotBase,
    days: int,
    project: Optional[ProjectInfo] = None,
    rule_name: Optional[str] = None
) -> Dict[str, Any]:
    """Flat placeholder -> value mapping for one entity"""
    context: Dict[str, Any] = {
        f"entity.{name}": value for name, value in entity.template_fields().items()
    }
    context["days"] = days
    if project is not None:
        context["project.name"] = project.name
        context["project.code"] = project.code
    if rule_name is not None:
        context["rule.name"] = rule_name
    return context


def render_template(template: str, context: Dict[str, Any]) -> str:
    """Substitute known placeholders, leaving the rest verbatim"""
    def replace(match: "re.Match") -> str:
        name = match.group(1)
        if name not in context:
            return match.group(0)
        return render_value(context[name])

    return PLACEHOLDER_PATTERN.sub(replace, template)


def notification_type_for(
    entity_kind: str,
    trigger: TriggerType,
    days: int,
    escalation: bool = False
) -> NotificationType:
    """Inbox category of a reminder or escalation"""
    if escalation:
        return NotificationType.ESCALATION
    types = NOTIFICATION_TYPES.get(EntityKind(entity_kind).value)
    if types is None:
        return NotificationType.GENERAL
    upcoming, overdue = types
    if trigger == TriggerType.DAYS_AFTER:
        return overdue
    if trigger == TriggerType.RECURRING and days < 0:
        return overdue
    return upcoming


class NotificationComposer:
    """Compose reminder and escalation messages"""

    def compose(
        self,
        template: str,
        entity: EntitySnapshotBase,
        days: int,
        project: Optional[ProjectInfo] = None,
        rule_name: Optional[str] = None
    ) -> ComposedMessage:
        """
        Render a reminder

        Args:
            template: The rule's message template
            entity: Snapshot the reminder is about
            days: Signed day distance for ``{days}``
            project: Project details, if known
            rule_name: Used as the title

        Returns:
            ComposedMessage with title and message
        """
        context = build_context(entity, days, project, rule_name)
        title = rule_name or DEFAULT_TITLES.get(entity.kind, "Reminder")
        return ComposedMessage(title=title, message=render_template(template, context))

    def compose_escalation(
        self,
        template: str,
        entity: EntitySnapshotBase,
        days: int,
        unacknowledged_days: int,
        project: Optional[ProjectInfo] = None,
        rule_name: Optional[str] = None
    ) -> ComposedMessage:
        """Render the escalation flavour of a reminder"""
        base = self.compose(template, entity, days, project, rule_name)
        suffix = "day" if unacknowledged_days == 1 else "days"
        return ComposedMessage(
            title=f"{ESCALATION_TITLE_PREFIX}{base.title}",
            message=f"{base.message} (unacknowledged for {unacknowledged_days} {suffix})"
        )
