"""API routes for the DaggerGM API."""

from .adventures import router as adventures_router
from .credits import router as credits_router
from .health import router as health_router
from .payments import router as payments_router
from .rate_limits import router as rate_limits_router

__all__ = [
    "adventures_router",
    "credits_router",
    "health_router",
    "payments_router",
    "rate_limits_router",
]
