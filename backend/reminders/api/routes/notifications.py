"""User Notifications API - In-app inbox endpoints"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..deps import get_current_user_dep, get_engine
from ...domain.errors import NotificationNotFoundError
from ...domain.models import ActorContext, Notification
from ...engine.sweep import ReminderEngine
from ...utils.logger import get_logger
from ...utils.time import format_iso

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Response Models
# =============================================================================

class NotificationResponse(BaseModel):
    """Single notification response"""
    notification_id: str
    notification_type: str
    kind: str
    title: str
    message: str
    rule_id: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    project_id: Optional[str] = None
    action_url: Optional[str] = None
    escalation_level: int = 0
    is_read: bool
    is_archived: bool
    created_at: str


class NotificationListResponse(BaseModel):
    """List of notifications with metadata"""
    items: List[NotificationResponse]
    unread_count: int
    total: int


class UnreadCountResponse(BaseModel):
    """Just the unread count"""
    unread_count: int


class MarkReadResponse(BaseModel):
    """Response after marking notifications read"""
    success: bool
    marked_count: int
    acknowledged_count: int = 0


def _to_response(n: Notification) -> NotificationResponse:
    return NotificationResponse(
        notification_id=n.notification_id,
        notification_type=n.notification_type.value,
        kind=n.kind.value,
        title=n.title,
        message=n.message,
        rule_id=n.rule_id,
        entity_type=n.entity_type.value if n.entity_type else None,
        entity_id=n.entity_id,
        project_id=n.project_id,
        action_url=n.action_url,
        escalation_level=n.escalation_level,
        is_read=n.is_read,
        is_archived=n.is_archived,
        created_at=format_iso(n.created_at)
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=NotificationListResponse)
async def get_notifications(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    include_archived: bool = Query(False),
    actor: ActorContext = Depends(get_current_user_dep),
    engine: ReminderEngine = Depends(get_engine)
):
    """
    Get in-app notifications for the current user.

    - Sorted by newest first
    - Supports filtering by unread only
    """
    inbox = engine.inbox
    notifications = inbox.get_notifications_for_user(
        actor.user_id,
        skip=skip,
        limit=limit,
        unread_only=unread_only,
        include_archived=include_archived
    )

    return NotificationListResponse(
        items=[_to_response(n) for n in notifications],
        unread_count=inbox.get_unread_count(actor.user_id),
        total=inbox.count_for_user(
            actor.user_id, unread_only=unread_only, include_archived=include_archived
        )
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    actor: ActorContext = Depends(get_current_user_dep),
    engine: ReminderEngine = Depends(get_engine)
):
    """
    Get just the unread notification count.

    This is a lightweight endpoint for polling the notification badge.
    """
    return UnreadCountResponse(unread_count=engine.inbox.get_unread_count(actor.user_id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: ReminderEngine = Depends(get_engine)
):
    """
    Mark a single notification as read.

    Reading a reminder acknowledges it, which stops escalation and
    daily overdue repeats for that reminder.
    """
    notification = engine.inbox.mark_as_read(notification_id, actor.user_id)
    engine.acknowledge_notification(notification)
    return _to_response(notification)


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_read(
    actor: ActorContext = Depends(get_current_user_dep),
    engine: ReminderEngine = Depends(get_engine)
):
    """
    Mark all notifications as read for the current user.
    """
    updated = engine.inbox.mark_all_as_read(actor.user_id)

    acknowledged = set()
    for notification in updated:
        key = (notification.rule_id, notification.entity_type, notification.entity_id)
        if key in acknowledged:
            continue
        if engine.acknowledge_notification(notification) is not None:
            acknowledged.add(key)

    return MarkReadResponse(
        success=True,
        marked_count=len(updated),
        acknowledged_count=len(acknowledged)
    )


@router.post("/{notification_id}/archive", response_model=NotificationResponse)
async def archive_notification(
    notification_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: ReminderEngine = Depends(get_engine)
):
    """
    Archive a notification (hide it from the default list).
    """
    return _to_response(engine.inbox.archive(notification_id, actor.user_id))


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: ReminderEngine = Depends(get_engine)
):
    """
    Delete a notification.
    """
    if not engine.inbox.delete_notification(notification_id, actor.user_id):
        raise NotificationNotFoundError(f"Notification {notification_id} not found")
    return {"success": True}
