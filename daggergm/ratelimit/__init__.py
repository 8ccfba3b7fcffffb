"""Per-identity, per-operation fixed-window rate limiting."""

from daggergm.ratelimit.context import (
    RateLimitContext,
    enforce_for_context,
    with_rate_limit,
)
from daggergm.ratelimit.limiter import RateLimiter, RateLimitOptions, RateLimitResult
from daggergm.ratelimit.policies import (
    RATE_LIMITS,
    RateLimitOperation,
    get_rate_limit,
)

__all__ = [
    "RATE_LIMITS",
    "RateLimitContext",
    "RateLimitOperation",
    "RateLimitOptions",
    "RateLimitResult",
    "RateLimiter",
    "enforce_for_context",
    "get_rate_limit",
    "with_rate_limit",
]
