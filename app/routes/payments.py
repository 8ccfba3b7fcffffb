"""
Stripe webhook endpoint.

Called by Stripe directly, so there is no user header; the signature is
the authentication.
"""

import logging

from fastapi import APIRouter, Depends, Header, Request

from app.dependencies import get_fulfillment, get_stripe_service
from app.models import WebhookResponse
from daggergm.payments import PaymentFulfillment, StripeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post(
    "/webhook",
    response_model=WebhookResponse,
    responses={
        400: {"description": "Invalid webhook signature or payload"},
        503: {"description": "Webhook secret not configured"},
    },
)
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None, alias="Stripe-Signature"),
    stripe_service: StripeService = Depends(get_stripe_service),
    fulfillment: PaymentFulfillment = Depends(get_fulfillment),
) -> WebhookResponse:
    """
    Verify a Stripe event and credit paid purchases.

    Unhandled event types and repeated deliveries are acknowledged with 200
    so Stripe stops retrying them.
    """
    payload = await request.body()
    event = stripe_service.construct_event(payload, stripe_signature)
    logger.info(f"Received Stripe webhook {event['type']} ({event['id']})")

    result = await fulfillment.handle_event(event)
    return WebhookResponse(fulfilled=result.fulfilled, event_type=result.event_type)
