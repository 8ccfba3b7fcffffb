"""
Rate limit status endpoint.
"""

from fastapi import APIRouter, Depends

from app.dependencies import get_rate_limit_context, get_rate_limiter
from app.models import RateLimitStatusResponse
from daggergm.errors import ValidationError
from daggergm.ratelimit import RateLimitContext, RateLimiter, RateLimitOperation, get_rate_limit

router = APIRouter(prefix="/api/rate-limits", tags=["rate-limits"])


@router.get("/{operation}", response_model=RateLimitStatusResponse)
async def get_rate_limit_status(
    operation: str,
    context: RateLimitContext = Depends(get_rate_limit_context),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> RateLimitStatusResponse:
    """Remaining allowance for the caller. Does not count as a request."""
    try:
        op = RateLimitOperation(operation)
    except ValueError:
        raise ValidationError(
            "Unknown operation",
            field="operation",
            value=operation,
        ) from None

    options = get_rate_limit(op, context.is_authenticated)
    remaining, reset_time = await limiter.get_remaining_credits(context.identity, op.value, options)
    return RateLimitStatusResponse(
        operation=op.value,
        limit=options.max_requests,
        remaining=remaining,
        reset_time=int(reset_time),
        window_seconds=options.window_seconds,
        identity_type="user" if context.is_authenticated else "guest",
    )
