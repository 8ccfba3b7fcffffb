"""
HTTP side of rate limiting.

Resolves the caller identity for daggergm.ratelimit from request headers and
reports the caller's window in X-RateLimit-* response headers. Enforcement
itself happens inside the adventure workflow, so a request is counted once.

Usage:
    @router.post("/adventures")
    async def create(
        response: Response,
        context: RateLimitContext = Depends(get_rate_limit_context),
    ):
        ...
        await apply_rate_limit_headers(response, limiter, operation, context)
"""

import logging
from typing import Optional

from fastapi import Request, Response

from daggergm.ratelimit import (
    RateLimitContext,
    RateLimiter,
    RateLimitOperation,
    get_rate_limit,
)
from daggergm.ratelimit.context import DEFAULT_FALLBACK_IP
from daggergm.utils.validation import validate_uuid

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-ID"


def get_client_ip(request: Request, fallback: str = DEFAULT_FALLBACK_IP) -> str:
    """
    Extract the client IP, handling proxy headers.

    X-Forwarded-For may hold a chain; the first entry is the original client.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    for header in ("X-Real-IP", "CF-Connecting-IP"):
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()

    return fallback


def build_rate_limit_context(
    request: Request,
    fallback_ip: str = DEFAULT_FALLBACK_IP,
) -> RateLimitContext:
    """
    Build the caller identity from X-User-ID and the client IP.

    A present but malformed user id raises ValidationError rather than
    silently treating the caller as a guest.
    """
    raw_user_id = request.headers.get(USER_ID_HEADER)
    user_id: Optional[str] = None
    if raw_user_id and raw_user_id.strip():
        user_id = validate_uuid(raw_user_id.strip())
        request.state.user_id = user_id

    return RateLimitContext(
        user_id=user_id,
        ip_address=get_client_ip(request, fallback_ip),
    )


async def apply_rate_limit_headers(
    response: Response,
    limiter: RateLimiter,
    operation: RateLimitOperation,
    context: RateLimitContext,
) -> None:
    """Report the caller's remaining allowance without counting a request."""
    options = get_rate_limit(operation, context.is_authenticated)
    remaining, reset_time = await limiter.get_remaining_credits(
        context.identity, RateLimitOperation(operation).value, options
    )
    response.headers["X-RateLimit-Limit"] = str(options.max_requests)
    response.headers["X-RateLimit-Remaining"] = str(remaining)
    response.headers["X-RateLimit-Reset"] = str(int(reset_time))
