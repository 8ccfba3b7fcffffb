"""
Exception classes for DaggerGM.

Every error raised by the credit ledger, the regeneration limiter, the rate
limiter and the adventure workflow inherits from DaggerGMError so the HTTP
layer can map it to a status code and a consistent response body.

Exception Hierarchy:
    DaggerGMError (base, 500)
    ├── ValidationError (400)
    ├── AuthenticationRequiredError (401)
    ├── CreditError (503)
    │   └── InsufficientCreditsError (402)
    ├── RegenerationLimitError (403)
    ├── AdventureAccessError (403)
    ├── ResourceNotFoundError (404)
    │   ├── AdventureNotFoundError
    │   └── MovementNotFoundError
    ├── ConflictError (409)
    ├── RateLimitError (429)
    ├── PaymentError (400)
    │   └── PaymentNotConfiguredError (503)
    └── ProviderError (502)

Storage failures are raised as daggergm.storage.errors.StoreError, which
also derives from DaggerGMError.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes returned in API responses."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_ID = "INVALID_ID"
    INVALID_AMOUNT = "INVALID_AMOUNT"

    # Authentication errors (401)
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"

    # Credits (402 / 503)
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    CREDIT_ERROR = "CREDIT_ERROR"

    # Authorization errors (403)
    PERMISSION_DENIED = "PERMISSION_DENIED"
    REGENERATION_LIMIT_EXCEEDED = "REGENERATION_LIMIT_EXCEEDED"

    # Resource errors (404)
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    ADVENTURE_NOT_FOUND = "ADVENTURE_NOT_FOUND"
    MOVEMENT_NOT_FOUND = "MOVEMENT_NOT_FOUND"

    # Conflict errors (409)
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    MOVEMENT_NOT_EXPANDED = "MOVEMENT_NOT_EXPANDED"

    # Rate limiting errors (429)
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Payments
    WEBHOOK_ERROR = "WEBHOOK_ERROR"
    INVALID_PACKAGE = "INVALID_PACKAGE"
    PAYMENTS_NOT_CONFIGURED = "PAYMENTS_NOT_CONFIGURED"

    # External services / storage
    LLM_PROVIDER_ERROR = "LLM_PROVIDER_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"


class DaggerGMError(Exception):
    """
    Base exception class for all DaggerGM errors.

    Attributes:
        message: Human-readable error message (safe for clients).
        error_code: Machine-readable error code from ErrorCode.
        status_code: HTTP status code to return.
        details: Structured context (limit, used, retry_after, ...).
        internal_message: Detailed message for logging only.
    """

    status_code: int = 500
    default_error_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        self.internal_message = internal_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the exception to an API response body."""
        response = {
            "success": False,
            "error": self.message,
            "error_code": self.error_code.value,
        }
        if self.details:
            response["details"] = self.details
        return response

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code.value!r}, "
            f"status_code={self.status_code})"
        )


# =============================================================================
# Validation Errors (400 Bad Request)
# =============================================================================

class ValidationError(DaggerGMError):
    """
    Raised when an argument is malformed.

    Covers non-UUID identifiers and non-positive credit amounts. Raised
    before any store interaction.
    """

    status_code = 400
    default_error_code = ErrorCode.VALIDATION_ERROR
    default_message = "Invalid request data"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            # Truncate long values
            str_value = str(value)
            details["value"] = str_value[:100] + "..." if len(str_value) > 100 else str_value
        self.field = field

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            internal_message=internal_message,
        )


# =============================================================================
# Authentication Errors (401 Unauthorized)
# =============================================================================

class AuthenticationRequiredError(DaggerGMError):
    """Raised when a guest calls an action that is billed to an account."""

    status_code = 401
    default_error_code = ErrorCode.AUTHENTICATION_REQUIRED
    default_message = "Authentication required"


# =============================================================================
# Credit Errors
# =============================================================================

class CreditError(DaggerGMError):
    """
    Raised when the credit ledger cannot complete an operation.

    This is an infrastructure failure (the store was unreachable or answered
    with an unexpected shape). It is retryable at the caller's discretion.
    """

    status_code = 503
    default_error_code = ErrorCode.CREDIT_ERROR
    default_message = "Credit service is temporarily unavailable"


class InsufficientCreditsError(CreditError):
    """Raised when a user's balance is below the cost of an action."""

    status_code = 402
    default_error_code = ErrorCode.INSUFFICIENT_CREDITS
    default_message = "Insufficient credits to perform this action"

    def __init__(
        self,
        message: Optional[str] = None,
        credit_type: Optional[str] = None,
        required: Optional[int] = None,
        available: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        internal_message: Optional[str] = None,
    ):
        details = details or {}
        if credit_type:
            details["credit_type"] = credit_type
        if required is not None:
            details["required"] = required
        if available is not None:
            details["available"] = available
        details.setdefault("purchase_url", "/api/credits/packages")
        self.credit_type = credit_type
        self.required = required
        self.available = available

        super().__init__(
            message=message,
            details=details,
            internal_message=internal_message,
        )


# =============================================================================
# Authorization Errors (403 Forbidden)
# =============================================================================

class RegenerationLimitError(DaggerGMError):
    """
    Raised when an adventure has used its free regeneration budget.

    Carries limit_type ("scaffold" or "expansion"), used and limit so the
    caller can render "X/Y regenerations used".
    """

    status_code = 403
    default_error_code = ErrorCode.REGENERATION_LIMIT_EXCEEDED

    def __init__(
        self,
        limit_type: str,
        used: int,
        limit: int,
        message: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        self.limit_type = limit_type
        self.used = used
        self.limit = limit
        details = {"limit_type": limit_type, "used": used, "limit": limit}
        if suggestion:
            details["suggestion"] = suggestion

        super().__init__(
            message=message or f"{limit_type} regeneration limit exceeded: {used}/{limit} used",
            details=details,
        )


class AdventureAccessError(DaggerGMError):
    """Raised when a user acts on an adventure they do not own."""

    status_code = 403
    default_error_code = ErrorCode.PERMISSION_DENIED
    default_message = "You do not have access to this adventure"


# =============================================================================
# Resource Errors (404 Not Found)
# =============================================================================

class ResourceNotFoundError(DaggerGMError):
    """Raised when a requested resource does not exist."""

    status_code = 404
    default_error_code = ErrorCode.RESOURCE_NOT_FOUND
    default_message = "Resource not found"
    resource_type: str = "resource"

    def __init__(
        self,
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ):
        details = {"resource_type": self.resource_type}
        if resource_id:
            details["resource_id"] = resource_id
        self.resource_id = resource_id
        super().__init__(message=message, details=details)


class AdventureNotFoundError(ResourceNotFoundError):
    default_error_code = ErrorCode.ADVENTURE_NOT_FOUND
    default_message = "Adventure not found"
    resource_type = "adventure"


class MovementNotFoundError(ResourceNotFoundError):
    default_error_code = ErrorCode.MOVEMENT_NOT_FOUND
    default_message = "Movement not found"
    resource_type = "movement"


# =============================================================================
# Conflict Errors (409 Conflict)
# =============================================================================

class ConflictError(DaggerGMError):
    """Raised when an action does not fit the current state of a resource."""

    status_code = 409
    default_error_code = ErrorCode.RESOURCE_CONFLICT
    default_message = "Resource conflict"


# =============================================================================
# Rate Limiting Errors (429 Too Many Requests)
# =============================================================================

class RateLimitError(DaggerGMError):
    """
    Raised when an identity exhausts its window for an operation.

    Attributes:
        reset_time: Epoch seconds when the current window ends.
        retry_after: Whole seconds until a retry can succeed.
    """

    status_code = 429
    default_error_code = ErrorCode.RATE_LIMIT_EXCEEDED

    def __init__(
        self,
        reset_time: float,
        retry_after: int,
        operation: Optional[str] = None,
        limit: Optional[int] = None,
        message: Optional[str] = None,
    ):
        self.reset_time = reset_time
        self.retry_after = retry_after
        self.operation = operation
        self.limit = limit
        details: Dict[str, Any] = {
            "reset_time": int(reset_time),
            "retry_after": retry_after,
        }
        if limit is not None:
            details["limit"] = limit

        if message is None:
            target = operation or "this operation"
            message = f"Rate limit exceeded for {target}. Try again in {retry_after} seconds."

        super().__init__(message=message, details=details)


# =============================================================================
# Payment Errors
# =============================================================================

class PaymentError(DaggerGMError):
    """Raised for invalid checkout requests and unverifiable webhooks."""

    status_code = 400
    default_error_code = ErrorCode.WEBHOOK_ERROR
    default_message = "Payment request could not be processed"


class PaymentNotConfiguredError(PaymentError):
    status_code = 503
    default_error_code = ErrorCode.PAYMENTS_NOT_CONFIGURED
    default_message = "Payments are not configured"


# =============================================================================
# External Service Errors (502 Bad Gateway)
# =============================================================================

class ProviderError(DaggerGMError):
    """Raised when the LLM provider fails or returns unusable output."""

    status_code = 502
    default_error_code = ErrorCode.LLM_PROVIDER_ERROR
    default_message = "Adventure generation failed. Please try again."
