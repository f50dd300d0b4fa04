"""Engine API Routes - Operator endpoints for sweeps, failures and fire records"""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..deps import get_current_user_dep, get_engine
from ...domain.enums import EntityKind
from ...domain.models import ActorContext, FireRecord, Notification, SweepResult
from ...engine.sweep import ReminderEngine
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class SweepRequest(BaseModel):
    """Run a sweep at a given instant (defaults to now)"""
    now: Optional[datetime] = None


class AcknowledgeRequest(BaseModel):
    """Acknowledge the current fire edge of a (rule, entity) pair"""
    rule_id: str
    entity_type: EntityKind
    entity_id: str


class FailedDeliveriesResponse(BaseModel):
    items: List[Notification]
    count: int


class FireRecordListResponse(BaseModel):
    items: List[FireRecord]
    count: int


# ============================================================================
# Routes
# ============================================================================

@router.post("/sweep", response_model=SweepResult)
async def run_sweep(
    request: Optional[SweepRequest] = None,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: ReminderEngine = Depends(get_engine)
):
    """Run one reminder sweep immediately"""
    logger.info(f"Manual sweep requested by {actor.user_id}", extra={"user_id": actor.user_id})
    return await engine.run_sweep(request.now if request else None)


@router.get("/deliveries/failed", response_model=FailedDeliveriesResponse)
async def list_failed_deliveries(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    actor: ActorContext = Depends(get_current_user_dep),
    engine: ReminderEngine = Depends(get_engine)
):
    """Notifications whose delivery failed permanently"""
    items = engine.inbox.list_failed(skip=skip, limit=limit)
    return FailedDeliveriesResponse(items=items, count=len(items))


@router.get("/fire-records", response_model=FireRecordListResponse)
async def list_fire_records(
    rule_id: Optional[str] = Query(None),
    entity_type: Optional[EntityKind] = Query(None),
    entity_id: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    actor: ActorContext = Depends(get_current_user_dep),
    engine: ReminderEngine = Depends(get_engine)
):
    """Inspect fire records"""
    items = engine.tracker.list_records(
        rule_id=rule_id, entity_type=entity_type, entity_id=entity_id, limit=limit
    )
    return FireRecordListResponse(items=items, count=len(items))


@router.post("/fire-records/acknowledge", response_model=FireRecord)
async def acknowledge_fire_record(
    request: AcknowledgeRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: ReminderEngine = Depends(get_engine)
):
    """Acknowledge a reminder without reading a notification (e.g. entity resolved elsewhere)"""
    return engine.acknowledge(request.rule_id, request.entity_type, request.entity_id)
