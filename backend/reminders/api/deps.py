"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Header, Request

from ..domain.models import ActorContext
from ..domain.errors import AuthenticationError
from ..engine.sweep import ReminderEngine
from ..services.rule_service import RuleService
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


async def get_current_user_dep(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id")
) -> ActorContext:
    """
    Identify the caller from the X-User-Id header

    Authentication is done upstream (gateway / portfolio app); this service
    trusts the forwarded identity.

    Raises:
        AuthenticationError: 401 if the header is missing
    """
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("X-User-Id header is missing")
    return ActorContext(user_id=x_user_id.strip())


def get_engine(request: Request) -> ReminderEngine:
    """Reminder engine built at startup"""
    return request.app.state.engine


def get_rule_service(request: Request) -> RuleService:
    """Rule service built at startup"""
    return request.app.state.rule_service
