"""Default Rules - Starter rule set for a fresh portfolio"""
from typing import Any, Dict, List

from .rule_service import RuleService
from ..utils.logger import get_logger

logger = get_logger(__name__)


DEFAULT_RULES: List[Dict[str, Any]] = [
    {
        "name": "Milestone Due Reminder",
        "description": "Notify PM and Finance before milestone due date",
        "entity_type": "milestone",
        "trigger": "days_before",
        "trigger_days": 10,
        "recipients": {"roles": ["pm", "finance"], "project_roles": ["pm", "owner"]},
        "channels": ["in_app", "email"],
        "escalation": {"after_days": 7, "escalate_to": ["pmo"]},
        "message_template": 'Milestone "{entity.name}" is due in {days} days',
    },
    {
        "name": "Deliverable Overdue Alert",
        "description": "Escalate overdue deliverables to Director",
        "entity_type": "deliverable",
        "trigger": "days_after",
        "trigger_days": 3,
        "recipients": {"project_roles": ["owner", "assignee"]},
        "channels": ["in_app", "email", "slack"],
        "escalation": {"after_days": 7, "escalate_to": ["admin"]},
        "message_template": 'Deliverable "{entity.name}" is {days} days overdue',
    },
    {
        "name": "PO Delivery Warning",
        "description": "Alert before PO expected delivery date",
        "entity_type": "po",
        "trigger": "days_before",
        "trigger_days": 5,
        "recipients": {"roles": ["procurement"], "project_roles": ["pm"]},
        "channels": ["in_app", "email"],
        "message_template": 'PO "{entity.code}" delivery expected in {days} days',
    },
    {
        "name": "Invoice Due Reminder",
        "description": "Remind about upcoming invoice due dates",
        "entity_type": "invoice",
        "trigger": "days_before",
        "trigger_days": 7,
        "recipients": {"roles": ["finance"]},
        "channels": ["in_app", "email"],
        "escalation": {"after_days": 0, "escalate_to": ["admin"]},
        "message_template": 'Invoice "{entity.code}" for ${entity.amount} is due in {days} days',
    },
    {
        "name": "Task Overdue Notification",
        "description": "Notify assignee and PM when tasks are overdue",
        "is_active": False,
        "entity_type": "task",
        "trigger": "days_after",
        "trigger_days": 1,
        "recipients": {"project_roles": ["assignee", "pm"]},
        "channels": ["in_app"],
        "message_template": 'Task "{entity.title}" is {days} day(s) overdue',
    },
    {
        "name": "Issue SLA Warning",
        "description": "Alert when issue SLA is at risk",
        "entity_type": "issue",
        "trigger": "days_before",
        "trigger_days": 1,
        "recipients": {"project_roles": ["owner", "assignee"]},
        "channels": ["in_app", "email", "teams"],
        "escalation": {"after_days": 0, "escalate_to": ["pm"]},
        "message_template": 'Issue "{entity.code}" SLA deadline is in {days} day(s)',
    },
]


def seed_default_rules(service: RuleService) -> int:
    """
    Create the default rules that do not exist yet (matched by name)

    Returns:
        Number of rules created
    """
    existing = {rule.name for rule in service.list_rules()}
    created = 0
    for definition in DEFAULT_RULES:
        if definition["name"] in existing:
            continue
        service.create_rule(definition)
        created += 1

    logger.info(f"Seeded {created} default reminder rules")
    return created
