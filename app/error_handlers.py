"""
FastAPI exception handlers for the DaggerGM API.

This module provides centralized exception handling that:
- Maps DaggerGMError subclasses to their HTTP status codes
- Handles Pydantic validation errors with clean messages
- Reports unexpected exceptions to Sentry
- Prevents sensitive information leakage

All error responses follow the format:
{
    "success": false,
    "error": "Human-readable message",
    "error_code": "MACHINE_READABLE_CODE",
    "details": {}  # Optional additional context
}
"""

import logging
import re
import uuid
from typing import Any, Dict, List, Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from daggergm.config import get_settings
from daggergm.errors import DaggerGMError, ErrorCode, RateLimitError

logger = logging.getLogger(__name__)

SENSITIVE_PATTERNS = [
    r"api[_-]?key",
    r"secret",
    r"password",
    r"token",
    r"credential",
    r"bearer",
    r"service_role",
    r"sk_(live|test)_",
    r"whsec_",
    r"postgres(ql)?://",
    r"/home/",
    r"/Users/",
    r"/etc/",
]

SENSITIVE_REGEX = re.compile("|".join(SENSITIVE_PATTERNS), re.IGNORECASE)

SAFE_DETAIL_KEYS = {
    "field", "value", "resource_type", "resource_id",
    "limit", "used", "limit_type", "suggestion",
    "reset_time", "retry_after",
    "credit_type", "required", "available", "purchase_url",
    "error_reference", "sentry_event_id", "errors",
}


def sanitize_error_message(message: str) -> str:
    """
    Remove potentially sensitive information from error messages.

    Messages that mention secrets are replaced wholesale; file paths and IP
    addresses are masked.
    """
    if not message:
        return message

    if SENSITIVE_REGEX.search(message):
        return "An error occurred while processing your request"

    message = re.sub(r'[/\\][\w./\\-]+\.\w+', '[path]', message)
    message = re.sub(r'\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b', '[ip]', message)

    if len(message) > 500:
        message = message[:500] + "..."

    return message


def sanitize_details(details: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only whitelisted detail keys with primitive values."""
    if not details:
        return {}

    sanitized = {}
    for key, value in details.items():
        if key not in SAFE_DETAIL_KEYS:
            continue

        if isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        elif isinstance(value, (int, float, bool)):
            sanitized[key] = value
        elif isinstance(value, list):
            # Validation error lists hold small {field, message} dicts
            sanitized[key] = [
                v for v in value
                if isinstance(v, (str, int, float, bool, dict))
            ][:10]

    return sanitized


def format_pydantic_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Format Pydantic validation errors into a clean, consistent format.

    Args:
        errors: List of Pydantic error dictionaries.

    Returns:
        List of formatted error dictionaries with field and message.
    """
    formatted = []
    for error in errors:
        loc = error.get("loc", [])
        field_parts = [str(p) for p in loc if p != "body"]
        field = ".".join(field_parts) if field_parts else "request"

        error_type = error.get("type", "")
        msg = error.get("msg", "Invalid value")

        if error_type == "missing":
            msg = f"Field '{field}' is required"
        elif error_type == "string_type":
            msg = f"Field '{field}' must be a string"
        elif error_type in ("int_type", "int_parsing"):
            msg = f"Field '{field}' must be an integer"
        elif "enum" in error_type.lower() or error_type == "literal_error":
            msg = f"Field '{field}' has an invalid value"
        else:
            msg = sanitize_error_message(msg)

        formatted.append({"field": field, "message": msg})

    return formatted[:10]


def create_error_response(
    status_code: int,
    error: str,
    error_code: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Create a standardized error response."""
    content = {
        "success": False,
        "error": sanitize_error_message(error),
        "error_code": error_code,
    }

    if details:
        sanitized_details = sanitize_details(details)
        if sanitized_details:
            content["details"] = sanitized_details

    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers,
    )


def report_to_sentry(
    exc: Exception,
    request: Optional[Request] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Report an exception to Sentry with request context.

    Returns:
        Sentry event ID if reported, None otherwise.
    """
    client = sentry_sdk.get_client()
    if not client.is_active():
        return None

    with sentry_sdk.new_scope() as scope:
        if request:
            scope.set_context("request", {
                "method": request.method,
                "path": request.url.path,
            })
            user_id = getattr(request.state, "user_id", None)
            if user_id:
                scope.set_user({"id": user_id})
            request_id = getattr(request.state, "request_id", None)
            if request_id:
                scope.set_tag("request_id", request_id)

        if extra_context:
            scope.set_context("extra", extra_context)

        return sentry_sdk.capture_exception(exc)


# =============================================================================
# Exception Handlers
# =============================================================================

async def daggergm_exception_handler(
    request: Request,
    exc: DaggerGMError,
) -> JSONResponse:
    """
    Handle DaggerGMError and subclasses.

    Internal messages are logged, never returned.
    """
    log_message = f"{exc.__class__.__name__}: {exc.message}"
    if exc.internal_message:
        log_message += f" | Internal: {exc.internal_message}"

    if exc.status_code >= 500:
        logger.error(log_message)
        report_to_sentry(exc, request)
    else:
        logger.warning(log_message)

    headers = {}
    if isinstance(exc, RateLimitError):
        headers["Retry-After"] = str(exc.retry_after)
        if exc.limit is not None:
            headers["X-RateLimit-Limit"] = str(exc.limit)
        headers["X-RateLimit-Remaining"] = "0"
        headers["X-RateLimit-Reset"] = str(int(exc.reset_time))

    return create_error_response(
        status_code=exc.status_code,
        error=exc.message,
        error_code=exc.error_code.value,
        details=exc.details,
        headers=headers or None,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Handle request body, path and query validation errors."""
    errors = format_pydantic_errors(exc.errors())

    logger.warning(
        f"Validation error on {request.method} {request.url.path}: "
        f"{len(errors)} error(s)"
    )

    if len(errors) == 1:
        error_message = errors[0]["message"]
    else:
        error_message = f"Validation failed with {len(errors)} error(s)"

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        error=error_message,
        error_code=ErrorCode.VALIDATION_ERROR.value,
        details={"errors": errors},
    )


async def pydantic_validation_handler(
    request: Request,
    exc: PydanticValidationError,
) -> JSONResponse:
    """Handle a Pydantic ValidationError raised outside request parsing."""
    errors = format_pydantic_errors(exc.errors())

    logger.warning(
        f"Pydantic validation error on {request.method} {request.url.path}: "
        f"{len(errors)} error(s)"
    )

    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        error=errors[0]["message"] if len(errors) == 1 else f"Validation failed with {len(errors)} error(s)",
        error_code=ErrorCode.VALIDATION_ERROR.value,
        details={"errors": errors},
    )


HTTP_STATUS_ERROR_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.AUTHENTICATION_REQUIRED,
    403: ErrorCode.PERMISSION_DENIED,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    405: ErrorCode.VALIDATION_ERROR,
    409: ErrorCode.RESOURCE_CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
    500: ErrorCode.INTERNAL_ERROR,
}


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """Convert HTTPException (including routing 404/405) to the standard format."""
    error_code = HTTP_STATUS_ERROR_CODES.get(exc.status_code, ErrorCode.UNKNOWN_ERROR)
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {detail}")
    else:
        logger.warning(f"HTTP {exc.status_code}: {detail}")

    headers = None
    if exc.headers:
        safe_headers = {"Retry-After", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"}
        headers = {k: v for k, v in exc.headers.items() if k in safe_headers} or None

    return create_error_response(
        status_code=exc.status_code,
        error=detail,
        error_code=error_code.value,
        headers=headers,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all for unexpected errors.

    Logs the traceback, reports to Sentry and returns a reference the user
    can quote to support.
    """
    error_reference = str(uuid.uuid4())[:8]

    logger.error(
        f"Unhandled exception [ref:{error_reference}] on "
        f"{request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )

    event_id = report_to_sentry(
        exc,
        request,
        extra_context={"error_reference": error_reference},
    )

    details: Dict[str, Any] = {"error_reference": error_reference}
    if get_settings().is_production:
        message = "An unexpected error occurred. Please try again later."
    else:
        message = f"Internal server error: {type(exc).__name__}"
        if event_id:
            details["sentry_event_id"] = event_id

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error=message,
        error_code=ErrorCode.INTERNAL_ERROR.value,
        details=details,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    app.add_exception_handler(DaggerGMError, daggergm_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, pydantic_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    logger.info("Exception handlers registered successfully")
