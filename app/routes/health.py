"""
Health check and root endpoints.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

import sentry_sdk
from fastapi import APIRouter, Depends

from app.dependencies import get_app_settings, get_rate_limiter
from daggergm import __version__
from daggergm.config import Settings
from daggergm.ratelimit import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _service_status(configured: bool) -> str:
    return "up" if configured else "unconfigured"


@router.get("/", include_in_schema=False)
async def root() -> Dict[str, str]:
    return {"service": "daggergm-api", "version": __version__}


@router.get(
    "/health",
    summary="System health check",
    description="""
Health check endpoint for monitoring and load balancers.

Reports the storage backend, whether Stripe, the LLM provider and Sentry
are configured, and how many rate limit windows are being tracked.

**Authentication**: Not required.
    """,
)
async def health_check(
    settings: Settings = Depends(get_app_settings),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Dict[str, Any]:
    """Liveness plus a summary of configured backends. Never exposes secrets."""
    database_ready = not settings.uses_supabase or settings.is_supabase_configured
    sentry_active = settings.is_sentry_configured and sentry_sdk.get_client().is_active()

    return {
        "status": "healthy" if database_ready else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "environment": settings.security.environment,
        "services": {
            "database": {
                "backend": settings.database.storage_backend,
                "status": "up" if database_ready else "down",
            },
            "stripe": {
                "status": _service_status(settings.is_stripe_configured),
                "webhooks": settings.stripe.has_webhook_secret,
            },
            "llm": {
                "status": _service_status(settings.llm.is_configured),
                "model": settings.llm.openai_model,
            },
            "sentry": {"status": "up" if sentry_active else "unconfigured"},
            "rate_limiter": limiter.get_stats(),
        },
    }
