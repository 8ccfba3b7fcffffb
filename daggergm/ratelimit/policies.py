"""
Default rate limit policy table.

Authenticated callers are keyed by user id. Guests are keyed by client IP and
get tighter daily allowances for everything except adventure generation,
which needs an account anyway.
"""

from enum import Enum
from typing import Dict

from daggergm.ratelimit.limiter import RateLimitOptions

HOUR = 60 * 60
DAY = 24 * HOUR


class RateLimitOperation(str, Enum):
    ADVENTURE_GENERATION = "adventure_generation"
    MOVEMENT_EXPANSION = "movement_expansion"
    MOVEMENT_REGENERATION = "movement_regeneration"
    CONTENT_REFINEMENT = "content_refinement"
    EXPORT = "export"


RATE_LIMITS: Dict[RateLimitOperation, Dict[str, RateLimitOptions]] = {
    RateLimitOperation.ADVENTURE_GENERATION: {
        "authenticated": RateLimitOptions(max_requests=10, window_seconds=HOUR),
        "guest": RateLimitOptions(max_requests=10, window_seconds=HOUR),
    },
    RateLimitOperation.MOVEMENT_EXPANSION: {
        "authenticated": RateLimitOptions(max_requests=50, window_seconds=HOUR),
        "guest": RateLimitOptions(max_requests=5, window_seconds=DAY),
    },
    RateLimitOperation.MOVEMENT_REGENERATION: {
        "authenticated": RateLimitOptions(max_requests=30, window_seconds=HOUR),
        "guest": RateLimitOptions(max_requests=5, window_seconds=DAY),
    },
    RateLimitOperation.CONTENT_REFINEMENT: {
        "authenticated": RateLimitOptions(max_requests=100, window_seconds=HOUR),
        "guest": RateLimitOptions(max_requests=10, window_seconds=DAY),
    },
    RateLimitOperation.EXPORT: {
        "authenticated": RateLimitOptions(max_requests=20, window_seconds=HOUR),
        "guest": RateLimitOptions(max_requests=3, window_seconds=DAY),
    },
}


def get_rate_limit(operation: RateLimitOperation, is_authenticated: bool) -> RateLimitOptions:
    """Look up the policy for an operation and caller kind."""
    policy = RATE_LIMITS[RateLimitOperation(operation)]
    return policy["authenticated" if is_authenticated else "guest"]
