"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authentication Errors
class AuthenticationError(DomainError):
    """Caller identity missing"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class RuleValidationError(ValidationError):
    """Reminder rule configuration is malformed"""
    error_code = "RULE_VALIDATION_ERROR"


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class RuleNotFoundError(NotFoundError):
    """Reminder rule not found"""
    error_code = "RULE_NOT_FOUND"


class NotificationNotFoundError(NotFoundError):
    """Notification not found"""
    error_code = "NOTIFICATION_NOT_FOUND"


class FireRecordNotFoundError(NotFoundError):
    """No fire record for the (rule, entity) key"""
    error_code = "FIRE_RECORD_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict (e.g., concurrent modification)"""
    error_code = "CONFLICT"
    http_status = 409


class ConcurrencyError(ConflictError):
    """Optimistic concurrency conflict"""
    error_code = "CONCURRENCY_CONFLICT"


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


# Entity Errors
class MalformedEntityError(DomainError):
    """Entity document exists but does not parse into a snapshot"""
    error_code = "MALFORMED_ENTITY"
    http_status = 422


# External Service Errors
class ExternalServiceError(DomainError):
    """External service failure"""
    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class ChannelDeliveryError(ExternalServiceError):
    """Channel transport rejected or failed a delivery"""
    error_code = "CHANNEL_DELIVERY_ERROR"
