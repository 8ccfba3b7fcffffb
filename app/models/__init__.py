"""Pydantic models for the DaggerGM API."""

from .requests import (
    CheckoutSessionResponse,
    CreditPackagesResponse,
    GenerateAdventureRequest,
    MovementUpdateResponse,
    PurchaseCreditsRequest,
    RateLimitStatusResponse,
    RefineMovementRequest,
    RegenerateMovementRequest,
    RegenerationCountsResponse,
    WebhookResponse,
)

__all__ = [
    "CheckoutSessionResponse",
    "CreditPackagesResponse",
    "GenerateAdventureRequest",
    "MovementUpdateResponse",
    "PurchaseCreditsRequest",
    "RateLimitStatusResponse",
    "RefineMovementRequest",
    "RegenerateMovementRequest",
    "RegenerationCountsResponse",
    "WebhookResponse",
]
