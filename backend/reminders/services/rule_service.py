"""Rule Service - Management surface for reminder rules

Validation happens here, at save time: a malformed rule never reaches the
evaluator.
"""
from typing import Any, Dict, List, Optional, Union
from pydantic import ValidationError as PydanticValidationError

from ..domain.enums import EntityKind
from ..domain.errors import RuleNotFoundError, RuleValidationError
from ..domain.models import ActorContext, ReminderRule, ReminderRuleCreate
from ..engine.state_tracker import StateTracker
from ..repositories.rule_repo import RuleRepository
from ..utils.idgen import generate_rule_id
from ..utils.logger import get_logger
from ..utils.time import utc_now

logger = get_logger(__name__)

RulePayload = Union[ReminderRuleCreate, Dict[str, Any]]


def _validation_details(error: PydanticValidationError) -> Dict[str, Any]:
    return {
        "errors": [
            {"field": ".".join(str(part) for part in err["loc"]) or "rule", "message": err["msg"]}
            for err in error.errors()
        ]
    }


def validate_rule_payload(payload: RulePayload) -> ReminderRuleCreate:
    """
    Validate a rule definition

    Raises:
        RuleValidationError: unknown entity type / channel / role, negative
            day counts, or an active rule without channels
    """
    data = payload.model_dump() if isinstance(payload, ReminderRuleCreate) else payload
    try:
        return ReminderRuleCreate.model_validate(data)
    except PydanticValidationError as e:
        raise RuleValidationError("Invalid reminder rule", details=_validation_details(e))


class RuleService:
    """Service for reminder rule CRUD and toggling"""

    def __init__(self, repo: Optional[RuleRepository] = None, tracker: Optional[StateTracker] = None):
        self.repo = repo or RuleRepository()
        self.tracker = tracker

    def create_rule(self, payload: RulePayload, actor: Optional[ActorContext] = None) -> ReminderRule:
        """Validate and store a new rule"""
        definition = validate_rule_payload(payload)
        now = utc_now()
        rule = ReminderRule(
            **definition.model_dump(),
            rule_id=generate_rule_id(),
            created_at=now,
            updated_at=now
        )
        self.repo.create_rule(rule)
        logger.info(
            f"Rule {rule.rule_id} created by {actor.user_id if actor else 'system'}",
            extra={"rule_id": rule.rule_id, "user_id": actor.user_id if actor else None}
        )
        return rule

    def get_rule(self, rule_id: str) -> ReminderRule:
        rule = self.repo.get_rule(rule_id)
        if rule is None:
            raise RuleNotFoundError(f"Rule {rule_id} not found", details={"rule_id": rule_id})
        return rule

    def list_rules(
        self,
        active_only: bool = False,
        entity_type: Optional[EntityKind] = None
    ) -> List[ReminderRule]:
        return self.repo.list_rules(active_only=active_only, entity_type=entity_type)

    def update_rule(
        self,
        rule_id: str,
        payload: RulePayload,
        actor: Optional[ActorContext] = None
    ) -> ReminderRule:
        """
        Replace a rule's definition

        Changing what a rule watches (entity type or trigger) starts its fire
        history over.
        """
        current = self.get_rule(rule_id)
        definition = validate_rule_payload(payload)

        updated = ReminderRule(
            **definition.model_dump(),
            rule_id=rule_id,
            created_at=current.created_at,
            updated_at=utc_now()
        )
        stored = self.repo.replace_rule(updated)

        if self.tracker is not None and (
            current.entity_type != updated.entity_type or current.trigger != updated.trigger
        ):
            removed = self.tracker.forget_rule(rule_id)
            logger.info(f"Rule target changed, cleared {removed} fire records", extra={"rule_id": rule_id})

        logger.info(
            f"Rule {rule_id} updated by {actor.user_id if actor else 'system'}",
            extra={"rule_id": rule_id}
        )
        return stored

    def toggle_rule(self, rule_id: str, is_active: Optional[bool] = None) -> ReminderRule:
        """
        Flip (or set) the active flag

        Raises:
            RuleValidationError: activating a rule that has no channels
        """
        current = self.get_rule(rule_id)
        target = (not current.is_active) if is_active is None else is_active

        if target:
            data = current.model_dump(include=set(ReminderRuleCreate.model_fields))
            data["is_active"] = True
            validate_rule_payload(data)

        return self.repo.set_active(rule_id, target)

    def delete_rule(self, rule_id: str) -> None:
        """Delete a rule and its fire records"""
        if not self.repo.delete_rule(rule_id):
            raise RuleNotFoundError(f"Rule {rule_id} not found", details={"rule_id": rule_id})
        if self.tracker is not None:
            self.tracker.forget_rule(rule_id)
        logger.info("Rule deleted", extra={"rule_id": rule_id})
