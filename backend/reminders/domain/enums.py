"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class EntityKind(str, Enum):
    """Kinds of watchable entities a reminder rule can target"""
    MILESTONE = "milestone"
    DELIVERABLE = "deliverable"
    PURCHASE_ORDER = "po"
    INVOICE = "invoice"
    TASK = "task"
    ISSUE = "issue"


class TriggerType(str, Enum):
    """When a reminder rule fires relative to the entity anchor date"""
    DAYS_BEFORE = "days_before"
    DAYS_AFTER = "days_after"
    ON_DATE = "on_date"
    RECURRING = "recurring"


class Channel(str, Enum):
    """Notification delivery channels"""
    IN_APP = "in_app"
    EMAIL = "email"
    SLACK = "slack"
    TEAMS = "teams"


class UserRole(str, Enum):
    """Organisation roles used for role-based recipients"""
    ADMIN = "admin"
    PM = "pm"
    PMO = "pmo"
    FINANCE = "finance"
    PROCUREMENT = "procurement"
    SITE_ENGINEER = "site_engineer"
    VENDOR = "vendor"
    CUSTOMER = "customer"


class ProjectRole(str, Enum):
    """Recipients resolved from the entity and its project"""
    PM = "pm"
    OWNER = "owner"
    ASSIGNEE = "assignee"


class NotificationKind(str, Enum):
    """Why a notification was produced"""
    REMINDER = "reminder"
    ESCALATION = "escalation"


class NotificationType(str, Enum):
    """Notification category shown in the inbox"""
    MILESTONE_UPCOMING = "milestone_upcoming"
    MILESTONE_OVERDUE = "milestone_overdue"
    DELIVERABLE_DUE = "deliverable_due"
    DELIVERABLE_OVERDUE = "deliverable_overdue"
    PO_DELIVERY_DATE = "po_delivery_date"
    INVOICE_DUE = "invoice_due"
    INVOICE_OVERDUE = "invoice_overdue"
    TASK_DUE = "task_due"
    TASK_OVERDUE = "task_overdue"
    ISSUE_SLA_WARNING = "issue_sla_warning"
    ISSUE_ESCALATED = "issue_escalated"
    ESCALATION = "escalation"
    GENERAL = "general"


class DeliveryStatus(str, Enum):
    """Per (recipient, channel) delivery state"""
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


# Entity statuses
class MilestoneStatus(str, Enum):
    UPCOMING = "upcoming"
    AT_RISK = "at_risk"
    ACHIEVED = "achieved"
    MISSED = "missed"
    DEFERRED = "deferred"


class DeliverableStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    SENT = "sent"
    ACKNOWLEDGED = "acknowledged"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    PAID = "paid"
    OVERDUE = "overdue"
    DISPUTED = "disputed"


class TaskStatus(str, Enum):
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    REVIEW = "review"
    DONE = "done"


class IssueStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    CLOSED = "closed"
