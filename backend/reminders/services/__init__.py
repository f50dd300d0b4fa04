"""Services Layer - Rule management, default rules and channel transports"""
from .channel_transports import WebhookTransport, build_transports
from .rule_service import RuleService, validate_rule_payload
from .default_rules import DEFAULT_RULES, seed_default_rules

__all__ = [
    "WebhookTransport",
    "build_transports",
    "RuleService",
    "validate_rule_payload",
    "DEFAULT_RULES",
    "seed_default_rules",
]
