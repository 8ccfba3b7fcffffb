"""
FastAPI dependencies for the DaggerGM API.

Services are built once in server.create_app and stored on app.state; these
dependencies hand them to route handlers so tests can swap them per app.

Usage:
    from app.dependencies import get_ledger, get_rate_limit_context
"""

from fastapi import Depends, Request

from app.middleware.rate_limit import build_rate_limit_context
from daggergm.adventures.workflow import AdventureWorkflow
from daggergm.config import Settings
from daggergm.credits.ledger import CreditLedger
from daggergm.errors import AuthenticationRequiredError
from daggergm.payments import PaymentFulfillment, StripeService
from daggergm.ratelimit import RateLimitContext, RateLimiter
from daggergm.regeneration import RegenerationLimiter


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_ledger(request: Request) -> CreditLedger:
    return request.app.state.ledger


def get_workflow(request: Request) -> AdventureWorkflow:
    return request.app.state.workflow


def get_regeneration_limiter(request: Request) -> RegenerationLimiter:
    return request.app.state.regeneration


def get_stripe_service(request: Request) -> StripeService:
    return request.app.state.stripe_service


def get_fulfillment(request: Request) -> PaymentFulfillment:
    return request.app.state.fulfillment


async def get_rate_limit_context(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> RateLimitContext:
    """Caller identity: X-User-ID when present, otherwise the client IP."""
    return build_rate_limit_context(request, settings.rate_limit.rate_limit_fallback_ip)


async def require_user_id(
    context: RateLimitContext = Depends(get_rate_limit_context),
) -> str:
    """
    Require an authenticated caller.

    Raises:
        AuthenticationRequiredError: No X-User-ID header was sent.
    """
    if not context.is_authenticated:
        raise AuthenticationRequiredError()
    return context.user_id


__all__ = [
    "get_app_settings",
    "get_fulfillment",
    "get_ledger",
    "get_rate_limit_context",
    "get_rate_limiter",
    "get_regeneration_limiter",
    "get_stripe_service",
    "get_workflow",
    "require_user_id",
]
