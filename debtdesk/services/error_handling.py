"""
Error taxonomy for DebtDesk.

Every failure that can reach a user is one of: a validation error (operation
not attempted), a gateway error (operation rolled back, no retry), an
authentication/authorization error (access denied with a static message) or
a not-found error. Partial failures inside multi-step flows are logged and
never raised.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger()


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    VALIDATION = "validation"
    GATEWAY = "gateway"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    PARTIAL_FAILURE = "partial_failure"
    UNKNOWN = "unknown"


ACCESS_DENIED_MESSAGE = "You don't have permission to view this case."


class DebtDeskError(Exception):
    """Base class for errors surfaced to users."""

    category = ErrorCategory.UNKNOWN
    severity = ErrorSeverity.MEDIUM
    status_code = 500
    default_user_message = "An unexpected error occurred."

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.user_message = user_message or self.default_user_message


class ValidationError(DebtDeskError):
    """Required field missing or invalid."""
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.LOW
    status_code = 422
    default_user_message = "Please fill in all required fields."

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message, user_message or message)


class AuthenticationError(DebtDeskError):
    """No authenticated user."""
    category = ErrorCategory.AUTHENTICATION
    severity = ErrorSeverity.HIGH
    status_code = 401
    default_user_message = "User not authenticated"


class AuthorizationError(DebtDeskError):
    """Role or identity check failed."""
    category = ErrorCategory.AUTHORIZATION
    severity = ErrorSeverity.HIGH
    status_code = 403
    default_user_message = ACCESS_DENIED_MESSAGE


class NotFoundError(DebtDeskError):
    """Row does not exist."""
    category = ErrorCategory.NOT_FOUND
    severity = ErrorSeverity.LOW
    status_code = 404
    default_user_message = "The requested record was not found."


class GatewayError(DebtDeskError):
    """Failure reported by the data gateway."""
    category = ErrorCategory.GATEWAY
    severity = ErrorSeverity.HIGH
    status_code = 502
    default_user_message = "The service is temporarily unavailable. Please try again."

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        collection: Optional[str] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, user_message)
        self.operation = operation
        self.collection = collection


@dataclass
class ErrorInfo:
    """Detailed error information."""
    error_type: str
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    timestamp: datetime
    status_code: int = 500
    context: Dict[str, Any] = field(default_factory=dict)
    user_message: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        """Body returned to API callers."""
        return {
            "detail": self.user_message,
            "category": self.category.value,
        }


def classify_error(error: Exception, context: Optional[Dict[str, Any]] = None) -> ErrorInfo:
    """Classify an error and return detailed information."""
    now = datetime.now(timezone.utc)
    context = context or {}

    if isinstance(error, DebtDeskError):
        if isinstance(error, GatewayError):
            context = {**context, "operation": error.operation, "collection": error.collection}
        return ErrorInfo(
            error_type=type(error).__name__,
            category=error.category,
            severity=error.severity,
            message=error.message,
            timestamp=now,
            status_code=error.status_code,
            context=context,
            user_message=error.user_message,
        )

    return ErrorInfo(
        error_type=type(error).__name__,
        category=ErrorCategory.UNKNOWN,
        severity=ErrorSeverity.CRITICAL,
        message=str(error),
        timestamp=now,
        status_code=500,
        context=context,
        user_message="Internal server error",
    )
