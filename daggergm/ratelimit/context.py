"""
Caller identity for rate limiting.

Authenticated callers are limited per user id. Guests are limited per client
IP, so anonymous clients behind one proxy or NAT share a bucket.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from daggergm.ratelimit.limiter import RateLimiter, RateLimitResult
from daggergm.ratelimit.policies import RateLimitOperation, get_rate_limit

T = TypeVar("T")

DEFAULT_FALLBACK_IP = "127.0.0.1"


@dataclass(frozen=True)
class RateLimitContext:
    user_id: Optional[str] = None
    ip_address: str = DEFAULT_FALLBACK_IP

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def identity(self) -> str:
        if self.user_id:
            return f"user:{self.user_id}"
        return f"ip:{self.ip_address}"


async def enforce_for_context(
    limiter: RateLimiter,
    operation: RateLimitOperation,
    context: RateLimitContext,
) -> RateLimitResult:
    """Enforce the policy for operation and the caller's kind."""
    operation = RateLimitOperation(operation)
    options = get_rate_limit(operation, context.is_authenticated)
    return await limiter.enforce_limit(context.identity, operation.value, options)


async def with_rate_limit(
    limiter: RateLimiter,
    operation: RateLimitOperation,
    context: RateLimitContext,
    fn: Callable[[], Awaitable[T]],
) -> T:
    """
    Run fn only if the caller is within its limit for operation.

    Raises:
        RateLimitError: The caller's window is exhausted; fn is not called.
    """
    await enforce_for_context(limiter, operation, context)
    return await fn()
