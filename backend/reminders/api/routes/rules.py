"""Reminder Rule API Routes - Management surface for rules"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel

from ..deps import get_current_user_dep, get_rule_service
from ...domain.enums import EntityKind
from ...domain.models import ActorContext, ReminderRule
from ...services.rule_service import RuleService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================

class ToggleRuleRequest(BaseModel):
    """Set the active flag explicitly (omit to flip it)"""
    is_active: Optional[bool] = None


class RuleListResponse(BaseModel):
    """Response for rule list"""
    items: List[ReminderRule]
    total: int


# ============================================================================
# Routes
# ============================================================================

@router.get("", response_model=RuleListResponse)
async def list_rules(
    active_only: bool = Query(False),
    entity_type: Optional[EntityKind] = Query(None),
    actor: ActorContext = Depends(get_current_user_dep),
    service: RuleService = Depends(get_rule_service)
):
    """List reminder rules"""
    rules = service.list_rules(active_only=active_only, entity_type=entity_type)
    return RuleListResponse(items=rules, total=len(rules))


@router.post("", response_model=ReminderRule, status_code=status.HTTP_201_CREATED)
async def create_rule(
    payload: Dict[str, Any] = Body(...),
    actor: ActorContext = Depends(get_current_user_dep),
    service: RuleService = Depends(get_rule_service)
):
    """
    Create a reminder rule

    Malformed rules (unknown entity type, empty channels while active,
    negative day counts) are rejected with 400.
    """
    return service.create_rule(payload, actor)


@router.get("/{rule_id}", response_model=ReminderRule)
async def get_rule(
    rule_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    service: RuleService = Depends(get_rule_service)
):
    """Get a rule by ID"""
    return service.get_rule(rule_id)


@router.put("/{rule_id}", response_model=ReminderRule)
async def update_rule(
    rule_id: str,
    payload: Dict[str, Any] = Body(...),
    actor: ActorContext = Depends(get_current_user_dep),
    service: RuleService = Depends(get_rule_service)
):
    """Replace a rule's definition"""
    return service.update_rule(rule_id, payload, actor)


@router.post("/{rule_id}/toggle", response_model=ReminderRule)
async def toggle_rule(
    rule_id: str,
    request: Optional[ToggleRuleRequest] = None,
    actor: ActorContext = Depends(get_current_user_dep),
    service: RuleService = Depends(get_rule_service)
):
    """Activate or deactivate a rule"""
    rule = service.toggle_rule(rule_id, request.is_active if request else None)
    logger.info(
        f"Rule toggled by {actor.user_id}",
        extra={"rule_id": rule_id, "user_id": actor.user_id}
    )
    return rule


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    service: RuleService = Depends(get_rule_service)
):
    """Delete a rule and its fire history"""
    service.delete_rule(rule_id)
