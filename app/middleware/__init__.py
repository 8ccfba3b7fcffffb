"""Middleware components for the DaggerGM API."""

from .logging import RequestLoggingMiddleware
from .rate_limit import (
    USER_ID_HEADER,
    apply_rate_limit_headers,
    build_rate_limit_context,
    get_client_ip,
)

__all__ = [
    "RequestLoggingMiddleware",
    "USER_ID_HEADER",
    "apply_rate_limit_headers",
    "build_rate_limit_context",
    "get_client_ip",
]
