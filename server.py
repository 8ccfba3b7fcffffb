"""
API server for DaggerGM, the Daggerheart adventure generator.

This is the main entry point. It configures logging and Sentry, builds the
credit ledger, regeneration limiter, rate limiter and adventure workflow, and
assembles the routes from the app package.
"""

import logging
import os
import re
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from daggergm.utils.logging import setup_logging

# Configure structured logging FIRST, before other imports that use logging
logger = setup_logging(service_name="daggergm-api")

from daggergm import __version__
from daggergm.adventures import (
    AdventureRepository,
    AdventureWorkflow,
    InMemoryAdventureRepository,
    SupabaseAdventureRepository,
)
from daggergm.config import Settings, get_settings
from daggergm.credits import CreditLedger, CreditStore, InMemoryCreditStore, SupabaseCreditStore
from daggergm.generation import (
    AdventureGenerator,
    OpenAIAdventureGenerator,
    UnconfiguredAdventureGenerator,
)
from daggergm.payments import (
    InMemoryPaymentEventLog,
    PaymentEventLog,
    PaymentFulfillment,
    StripeService,
    SupabasePaymentEventLog,
)
from daggergm.ratelimit import RateLimiter
from daggergm.regeneration import (
    InMemoryRegenerationStore,
    RegenerationLimiter,
    RegenerationStore,
    SupabaseRegenerationStore,
)
from daggergm.storage import create_supabase_client

from app.error_handlers import register_exception_handlers
from app.middleware import RequestLoggingMiddleware
from app.routes import (
    adventures_router,
    credits_router,
    health_router,
    payments_router,
    rate_limits_router,
)

settings: Settings = get_settings()

# =============================================================================
# Sentry Error Tracking Configuration
# =============================================================================

SENSITIVE_BREADCRUMB_KEYS = [
    "password", "api_key", "apikey", "secret", "token",
    "authorization", "bearer", "credential", "stripe-signature",
]


def filter_sensitive_breadcrumbs(crumb, hint):
    """Strip secrets from HTTP and log breadcrumbs before they reach Sentry."""
    if crumb.get("category") == "http" and isinstance(crumb.get("data"), dict):
        data = crumb["data"]
        headers = data.get("headers")
        if isinstance(headers, dict):
            for key in list(headers.keys()):
                if any(s in key.lower() for s in SENSITIVE_BREADCRUMB_KEYS):
                    headers[key] = "[FILTERED]"
        if "url" in data:
            for key in SENSITIVE_BREADCRUMB_KEYS:
                pattern = re.compile(f"({key}=)[^&]*", re.IGNORECASE)
                data["url"] = pattern.sub(r"\1[FILTERED]", data["url"])

    if crumb.get("category") in ("console", "log") and "message" in crumb:
        message = str(crumb["message"]).lower()
        if any(key in message for key in SENSITIVE_BREADCRUMB_KEYS):
            crumb["message"] = "[FILTERED - may contain sensitive data]"

    return crumb


if settings.is_sentry_configured:
    sentry_sdk.init(
        dsn=settings.sentry.sentry_dsn,
        environment=settings.sentry.sentry_environment,
        sample_rate=1.0,
        traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        before_breadcrumb=filter_sensitive_breadcrumbs,
        send_default_pii=False,
        release=settings.sentry.sentry_release,
    )
    logger.info(f"Sentry initialized for environment: {settings.sentry.sentry_environment}")
else:
    logger.info("Sentry DSN not configured, error tracking disabled")


# =============================================================================
# Application Factory
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release the LLM client on shutdown."""
    yield
    close = getattr(app.state.generator, "close", None)
    if close is not None:
        await close()


def create_app(
    app_settings: Optional[Settings] = None,
    *,
    credit_store: Optional[CreditStore] = None,
    regeneration_store: Optional[RegenerationStore] = None,
    adventures: Optional[AdventureRepository] = None,
    generator: Optional[AdventureGenerator] = None,
    event_log: Optional[PaymentEventLog] = None,
    rate_limiter: Optional[RateLimiter] = None,
    stripe_service: Optional[StripeService] = None,
) -> FastAPI:
    """
    Build the application and its services.

    Stores default to the backend named by STORAGE_BACKEND. Keyword overrides
    let tests inject in-memory stores and a fake generator.
    """
    app_settings = app_settings or settings

    if app_settings.uses_supabase and None in (credit_store, regeneration_store, adventures, event_log):
        client = create_supabase_client(app_settings.database)
        credit_store = credit_store or SupabaseCreditStore(client)
        regeneration_store = regeneration_store or SupabaseRegenerationStore(client)
        adventures = adventures or SupabaseAdventureRepository(client)
        event_log = event_log or SupabasePaymentEventLog(client)
    else:
        credit_store = credit_store or InMemoryCreditStore()
        regeneration_store = regeneration_store or InMemoryRegenerationStore()
        adventures = adventures or InMemoryAdventureRepository()
        event_log = event_log or InMemoryPaymentEventLog()
        if not app_settings.uses_supabase:
            logger.warning("Using in-memory stores; balances and counters are lost on restart")

    if generator is None:
        if app_settings.llm.is_configured:
            generator = OpenAIAdventureGenerator(app_settings.llm)
        else:
            logger.warning("OPENAI_API_KEY not configured - adventure generation disabled")
            generator = UnconfiguredAdventureGenerator()

    rate_limiter = rate_limiter or RateLimiter(
        max_tracked_keys=app_settings.rate_limit.rate_limit_max_tracked_keys
    )
    regeneration = RegenerationLimiter(regeneration_store)
    ledger = CreditLedger(credit_store)
    stripe_service = stripe_service or StripeService(app_settings.stripe)

    app = FastAPI(
        title="DaggerGM API",
        description="""
## Daggerheart Adventure Generation API

Generate adventure scaffolds, expand movements into full scenes and refine
them. Adventure generation costs one credit; each adventure includes free
scaffold and expansion regenerations, after which one credit is charged.

### Identity

The upstream auth layer forwards the authenticated user id in `X-User-ID`.
Requests without it are treated as guests and limited per client IP.

### Rate Limiting

Rate limit headers are included on generation responses:
- `X-RateLimit-Limit`: Maximum requests allowed in the window
- `X-RateLimit-Remaining`: Requests remaining in current window
- `X-RateLimit-Reset`: Unix timestamp when the window resets
""",
        version=__version__,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "health", "description": "Health checks and system status"},
            {"name": "adventures", "description": "Adventure generation and movement editing"},
            {"name": "credits", "description": "Credit balance, history and purchases"},
            {"name": "payments", "description": "Stripe webhooks"},
            {"name": "rate-limits", "description": "Remaining request allowance"},
        ],
    )

    app.state.settings = app_settings
    app.state.rate_limiter = rate_limiter
    app.state.regeneration = regeneration
    app.state.ledger = ledger
    app.state.adventures = adventures
    app.state.generator = generator
    app.state.stripe_service = stripe_service
    app.state.fulfillment = PaymentFulfillment(ledger, event_log)
    app.state.workflow = AdventureWorkflow(
        rate_limiter=rate_limiter,
        regeneration=regeneration,
        ledger=ledger,
        adventures=adventures,
        generator=generator,
        paid_regeneration_fallback=app_settings.regeneration.regeneration_paid_fallback,
        rate_limiting_enabled=app_settings.rate_limit.rate_limit_enabled,
    )

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.security.origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "X-User-ID",
            "X-Request-ID",
            "Accept",
            "Origin",
        ],
        expose_headers=[
            "X-Request-ID",
            "X-Response-Time",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
        max_age=600,
    )

    # Added last so it wraps everything else and times the full request
    if app_settings.logging.request_logging_enabled:
        app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router)
    app.include_router(credits_router)
    app.include_router(payments_router)
    app.include_router(adventures_router)
    app.include_router(rate_limits_router)

    @app.get("/config-status", tags=["health"])
    async def config_status():
        """Configuration summary without secrets."""
        return app_settings.get_config_summary()

    logger.info(
        "DaggerGM API configured",
        extra={"event": "config_summary", **app_settings.get_config_summary()},
    )
    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("server:app", host="0.0.0.0", port=port, reload=not settings.is_production)
