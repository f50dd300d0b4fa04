"""Watchable Entities - Snapshots of due-dated business records

Each kind is a flat pydantic model tagged by ``kind``; ``WatchableEntity`` is
the discriminated union over all of them. The evaluator only talks to the
shared accessors on ``EntitySnapshotBase``.
"""
from datetime import datetime
from typing import Annotated, Any, ClassVar, Dict, FrozenSet, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from .enums import (
    DeliverableStatus,
    InvoiceStatus,
    IssueStatus,
    MilestoneStatus,
    PurchaseOrderStatus,
    TaskStatus,
)
from ..utils.time import ensure_utc


class EntitySnapshotBase(BaseModel):
    """Accessors shared by every watchable entity kind"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    FROZEN_STATUSES: ClassVar[FrozenSet[str]] = frozenset()
    ROUTE: ClassVar[str] = ""

    entity_id: str
    project_id: str
    status: str

    @field_validator("*", mode="after")
    @classmethod
    def _normalize_datetimes(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.entity_id}"

    def anchor_date(self) -> datetime:
        raise NotImplementedError

    def is_frozen(self) -> bool:
        return self.status in self.FROZEN_STATUSES

    def owner_id(self) -> Optional[str]:
        return None

    def assignee_id(self) -> Optional[str]:
        return None

    def display_name(self) -> str:
        return self.entity_id

    def template_fields(self) -> Dict[str, Any]:
        """Values exposed to ``{entity.<field>}`` placeholders"""
        fields = self.model_dump(by_alias=True)
        fields["id"] = self.entity_id
        fields["anchor"] = self.anchor_date()
        fields["display_name"] = self.display_name()
        return fields

    def action_url(self) -> str:
        return f"/projects/{self.project_id}/{self.ROUTE}"


class MilestoneSnapshot(EntitySnapshotBase):
    FROZEN_STATUSES: ClassVar[FrozenSet[str]] = frozenset({MilestoneStatus.ACHIEVED.value})
    ROUTE: ClassVar[str] = "milestones"

    kind: Literal["milestone"] = "milestone"
    code: str = ""
    name: str
    status: str = MilestoneStatus.UPCOMING.value
    planned_date: datetime
    forecast_date: Optional[datetime] = None
    owner: Optional[str] = None
    owner_user_id: str = Field(..., alias="owner_id")
    is_payment_milestone: bool = False
    payment_amount: Optional[float] = None

    def anchor_date(self) -> datetime:
        return self.forecast_date or self.planned_date

    def owner_id(self) -> Optional[str]:
        return self.owner_user_id

    def display_name(self) -> str:
        return self.name


class DeliverableSnapshot(EntitySnapshotBase):
    FROZEN_STATUSES: ClassVar[FrozenSet[str]] = frozenset({DeliverableStatus.ACCEPTED.value})
    ROUTE: ClassVar[str] = "deliverables"

    kind: Literal["deliverable"] = "deliverable"
    code: str = ""
    name: str
    status: str = DeliverableStatus.NOT_STARTED.value
    due_date: datetime
    milestone_id: Optional[str] = None
    owner_user_id: str = Field(..., alias="owner_id")
    reviewer_id: Optional[str] = None

    def anchor_date(self) -> datetime:
        return self.due_date

    def owner_id(self) -> Optional[str]:
        return self.owner_user_id

    def assignee_id(self) -> Optional[str]:
        return self.reviewer_id

    def display_name(self) -> str:
        return self.name


class PurchaseOrderSnapshot(EntitySnapshotBase):
    FROZEN_STATUSES: ClassVar[FrozenSet[str]] = frozenset({
        PurchaseOrderStatus.COMPLETED.value,
        PurchaseOrderStatus.CANCELLED.value,
    })
    ROUTE: ClassVar[str] = "po"

    kind: Literal["po"] = "po"
    code: str
    description: str = ""
    vendor_name: str = ""
    status: str = PurchaseOrderStatus.DRAFT.value
    required_date: datetime
    expected_delivery_date: Optional[datetime] = None
    requested_by_id: str
    total_amount: float = 0.0
    currency: str = "USD"

    def anchor_date(self) -> datetime:
        return self.expected_delivery_date or self.required_date

    def owner_id(self) -> Optional[str]:
        return self.requested_by_id

    def display_name(self) -> str:
        return self.code

    def template_fields(self) -> Dict[str, Any]:
        fields = super().template_fields()
        fields["amount"] = self.total_amount
        return fields


class InvoiceSnapshot(EntitySnapshotBase):
    FROZEN_STATUSES: ClassVar[FrozenSet[str]] = frozenset({InvoiceStatus.PAID.value})
    ROUTE: ClassVar[str] = "invoices"

    kind: Literal["invoice"] = "invoice"
    code: str
    party_name: str = ""
    description: str = ""
    status: str = InvoiceStatus.SUBMITTED.value
    due_date: datetime
    grace_period_days: int = 0
    total_amount: float = 0.0
    currency: str = "USD"
    owner_user_id: str = Field(..., alias="owner_id")

    def anchor_date(self) -> datetime:
        return self.due_date

    def owner_id(self) -> Optional[str]:
        return self.owner_user_id

    def display_name(self) -> str:
        return self.code

    def template_fields(self) -> Dict[str, Any]:
        fields = super().template_fields()
        fields["amount"] = self.total_amount
        return fields


class TaskSnapshot(EntitySnapshotBase):
    FROZEN_STATUSES: ClassVar[FrozenSet[str]] = frozenset({TaskStatus.DONE.value})
    ROUTE: ClassVar[str] = "tasks"

    kind: Literal["task"] = "task"
    title: str
    status: str = TaskStatus.TODO.value
    priority: str = "medium"
    planned_end: datetime
    reporter_id: str
    task_assignee_id: Optional[str] = Field(None, alias="assignee_id")

    def anchor_date(self) -> datetime:
        return self.planned_end

    def owner_id(self) -> Optional[str]:
        return self.reporter_id

    def assignee_id(self) -> Optional[str]:
        return self.task_assignee_id

    def display_name(self) -> str:
        return self.title


class IssueSnapshot(EntitySnapshotBase):
    FROZEN_STATUSES: ClassVar[FrozenSet[str]] = frozenset({
        IssueStatus.RESOLVED.value,
        IssueStatus.CLOSED.value,
    })
    ROUTE: ClassVar[str] = "issues"

    kind: Literal["issue"] = "issue"
    code: str
    title: str
    status: str = IssueStatus.OPEN.value
    priority: str = "medium"
    sla_deadline: datetime
    owner_user_id: str = Field(..., alias="owner_id")
    issue_assignee_id: Optional[str] = Field(None, alias="assignee_id")

    def anchor_date(self) -> datetime:
        return self.sla_deadline

    def owner_id(self) -> Optional[str]:
        return self.owner_user_id

    def assignee_id(self) -> Optional[str]:
        return self.issue_assignee_id

    def display_name(self) -> str:
        return self.code


WatchableEntity = Annotated[
    Union[
        MilestoneSnapshot,
        DeliverableSnapshot,
        PurchaseOrderSnapshot,
        InvoiceSnapshot,
        TaskSnapshot,
        IssueSnapshot,
    ],
    Field(discriminator="kind"),
]

_entity_adapter: TypeAdapter = TypeAdapter(WatchableEntity)


def parse_entity(data: Dict[str, Any]) -> EntitySnapshotBase:
    """Validate a raw document (with ``kind``) into its snapshot model"""
    return _entity_adapter.validate_python(data)
