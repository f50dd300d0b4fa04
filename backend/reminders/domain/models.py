"""Domain Models - Pydantic models for rules, fire records and notifications"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .entities import EntitySnapshotBase
from .enums import (
    Channel,
    DeliveryStatus,
    EntityKind,
    NotificationKind,
    NotificationType,
    ProjectRole,
    TriggerType,
    UserRole,
)
from ..utils.time import ensure_utc


def _dedupe(values: List[Any]) -> List[Any]:
    """Drop duplicates, keeping first-seen order"""
    seen = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class UtcModel(BaseModel):
    """Base model that normalizes every datetime field to aware UTC"""

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


# ============================================================================
# Actor / Directory
# ============================================================================

class ActorContext(BaseModel):
    """Caller identity for API requests"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="User identifier")


class ProjectInfo(BaseModel):
    """Project details needed by recipient resolution and templates"""
    model_config = ConfigDict(extra="ignore")

    project_id: str
    code: str = ""
    name: str = ""
    pm_id: Optional[str] = None


# ============================================================================
# Reminder Rule
# ============================================================================

class RecipientSpec(BaseModel):
    """Abstract recipients of a rule"""
    model_config = ConfigDict(extra="forbid")

    roles: List[UserRole] = Field(default_factory=list, description="Organisation roles")
    project_roles: List[ProjectRole] = Field(default_factory=list, description="pm / owner / assignee")
    specific_users: List[str] = Field(default_factory=list, description="Explicit user IDs")

    @field_validator("roles", "project_roles", "specific_users")
    @classmethod
    def _collapse_duplicates(cls, value: List[Any]) -> List[Any]:
        return _dedupe(value)

    @property
    def is_empty(self) -> bool:
        return not (self.roles or self.project_roles or self.specific_users)


class EscalationPolicy(BaseModel):
    """Escalate unacknowledged reminders after a number of days"""
    model_config = ConfigDict(extra="forbid")

    after_days: int = Field(..., ge=0, description="Days without acknowledgement before escalating")
    escalate_to: List[UserRole] = Field(..., min_length=1, description="Roles notified on escalation")

    @field_validator("escalate_to")
    @classmethod
    def _collapse_duplicates(cls, value: List[UserRole]) -> List[UserRole]:
        return _dedupe(value)


class ReminderRuleBase(BaseModel):
    """Configurable fields of a reminder rule"""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    is_active: bool = True
    entity_type: EntityKind
    trigger: TriggerType
    trigger_days: int = Field(default=0, ge=0, description="n for before/after, interval for recurring")
    recipients: RecipientSpec = Field(default_factory=RecipientSpec)
    channels: List[Channel] = Field(default_factory=list)
    escalation: Optional[EscalationPolicy] = None
    message_template: str = Field(..., min_length=1)

    @field_validator("channels")
    @classmethod
    def _collapse_duplicate_channels(cls, value: List[Channel]) -> List[Channel]:
        return _dedupe(value)

    @model_validator(mode="after")
    def _check_active_rule(self) -> "ReminderRuleBase":
        if self.is_active and not self.channels:
            raise ValueError("an active rule needs at least one channel")
        return self


class ReminderRuleCreate(ReminderRuleBase):
    """Payload for creating or replacing a rule"""


class ReminderRule(UtcModel, ReminderRuleBase):
    """Stored reminder rule"""
    model_config = ConfigDict(extra="ignore")

    rule_id: str
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Fire Record (State Tracker)
# ============================================================================

class FireRecord(UtcModel):
    """Per (rule, entity) bookkeeping preventing duplicate notifications"""
    model_config = ConfigDict(extra="ignore")

    rule_id: str
    entity_type: EntityKind
    entity_id: str
    project_id: Optional[str] = None
    last_fired_at: Optional[datetime] = None
    # First fire of the current trigger edge; escalation age counts from here
    cycle_started_at: Optional[datetime] = None
    anchor_at: Optional[datetime] = None
    fire_count: int = 0
    escalation_level: int = Field(default=0, ge=0)
    escalated_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    version: int = 0
    created_at: datetime
    updated_at: datetime

    @property
    def key(self) -> str:
        return fire_key(self.rule_id, self.entity_type, self.entity_id)

    @property
    def is_acknowledged(self) -> bool:
        return self.acknowledged_at is not None


def fire_key(rule_id: str, entity_type: Any, entity_id: str) -> str:
    """Stable string key of a (rule, entity) pair"""
    kind = entity_type.value if isinstance(entity_type, EntityKind) else str(entity_type)
    return f"{rule_id}|{kind}:{entity_id}"


# ============================================================================
# Trigger Events / Composition / Dispatch
# ============================================================================

class TriggerEvent(BaseModel):
    """A rule whose condition is satisfied for an entity at a tick"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    rule: ReminderRule
    entity: EntitySnapshotBase
    trigger_instant: datetime
    days: int = Field(..., description="Signed day distance shown as {days}")

    @property
    def key(self) -> str:
        return fire_key(self.rule.rule_id, self.entity.kind, self.entity.entity_id)

    @property
    def sort_key(self):
        return (self.entity.project_id, self.rule.rule_id, self.entity.entity_id)


class ComposedMessage(BaseModel):
    """Rendered notification text"""
    title: str
    message: str


class DispatchContext(BaseModel):
    """What a dispatched notification refers to"""
    rule_id: str
    entity_type: EntityKind
    entity_id: str
    project_id: Optional[str] = None
    kind: NotificationKind = NotificationKind.REMINDER
    notification_type: NotificationType = NotificationType.GENERAL
    action_url: Optional[str] = None
    escalation_level: int = 0


class Notification(UtcModel):
    """Notification delivered to one recipient over one channel"""
    model_config = ConfigDict(extra="ignore")

    notification_id: str = Field(..., description="Unique notification ID")
    recipient_id: str = Field(..., description="User who receives the notification")
    notification_type: NotificationType = NotificationType.GENERAL
    kind: NotificationKind = NotificationKind.REMINDER
    channel: Channel

    # Origin
    rule_id: Optional[str] = None
    entity_type: Optional[EntityKind] = None
    entity_id: Optional[str] = None
    project_id: Optional[str] = None
    escalation_level: int = 0

    # Content
    title: str
    message: str
    action_url: Optional[str] = None

    # Inbox state (mutated by the recipient)
    is_read: bool = False
    read_at: Optional[datetime] = None
    is_archived: bool = False

    # Delivery bookkeeping (mutated by the dispatcher)
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    attempts: int = 0
    last_error: Optional[str] = None
    delivered_at: Optional[datetime] = None

    created_at: datetime


class DeliveryOutcome(BaseModel):
    """Result of delivering one (recipient, channel) pair"""
    notification_id: str
    recipient_id: str
    channel: Channel
    status: DeliveryStatus
    attempts: int = 0
    error: Optional[str] = None

    @property
    def delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED


# ============================================================================
# Sweep Result
# ============================================================================

class SweepResult(BaseModel):
    """Summary of one engine tick"""
    sweep_id: str
    now: datetime
    rules_evaluated: int = 0
    entities_seen: int = 0
    events: int = 0
    fired: int = 0
    suppressed: int = 0
    dropped: int = 0
    abandoned: int = 0
    errors: int = 0
    notifications_created: int = 0
    deliveries_failed: int = 0
    recipients_missing: int = 0
    escalations: int = 0
    records_removed: int = 0
    duration_ms: float = 0.0
    details: Dict[str, Any] = Field(default_factory=dict)
