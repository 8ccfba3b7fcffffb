"""
Stripe integration for one-time credit purchases.

This module provides:
- Checkout sessions for the credit packages in daggergm.credits.costs
- Webhook signature verification and payload parsing
"""

import asyncio
import json
import logging
from functools import partial
from typing import Any, Dict, Optional

import stripe
from stripe import SignatureVerificationError, StripeError, WebhookSignature

from daggergm.config import StripeSettings
from daggergm.credits.costs import get_credit_package
from daggergm.errors import ErrorCode, PaymentError, PaymentNotConfiguredError, ValidationError
from daggergm.utils.logging import mask_id

logger = logging.getLogger(__name__)


class StripeService:
    """
    Service class for Stripe payment operations.

    Sessions carry the buyer and the package in their metadata so the
    webhook can credit the right account without a lookup.
    """

    def __init__(self, settings: StripeSettings) -> None:
        self._api_key = settings.stripe_secret_key.get_secret_value() if settings.stripe_secret_key else None
        self._webhook_secret = (
            settings.stripe_webhook_secret.get_secret_value()
            if settings.stripe_webhook_secret
            else None
        )
        self._site_url = settings.site_url.rstrip("/")

        if self._api_key:
            stripe.api_key = self._api_key
            logger.info("Stripe initialized successfully")
        else:
            logger.warning("STRIPE_SECRET_KEY not configured - credit purchases disabled")

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _ensure_configured(self) -> None:
        if not self.is_configured:
            raise PaymentNotConfiguredError(
                internal_message="Set STRIPE_SECRET_KEY to enable credit purchases"
            )

    async def create_credit_checkout_session(
        self,
        user_id: str,
        package_id: str,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Create a one-time payment checkout session for a credit package.

        Returns:
            Dictionary with session_id and url
        """
        self._ensure_configured()

        package = get_credit_package(package_id)
        if package is None:
            raise ValidationError(
                "Unknown credit package",
                field="package_id",
                value=package_id,
                error_code=ErrorCode.INVALID_PACKAGE,
            )

        metadata = {
            "user_id": user_id,
            "package_id": package.id,
            "credit_amount": str(package.credits),
        }

        try:
            session = await asyncio.to_thread(
                partial(
                    stripe.checkout.Session.create,
                    mode="payment",
                    payment_method_types=["card"],
                    line_items=[
                        {
                            "price_data": {
                                "currency": "usd",
                                "unit_amount": package.price_cents,
                                "product_data": {"name": package.name},
                            },
                            "quantity": 1,
                        }
                    ],
                    client_reference_id=user_id,
                    metadata=metadata,
                    success_url=success_url or f"{self._site_url}/dashboard?purchase=success",
                    cancel_url=cancel_url or f"{self._site_url}/dashboard?purchase=cancelled",
                )
            )
        except StripeError as e:
            logger.error(f"Error creating checkout session: {e}")
            raise PaymentError(
                "Could not start checkout. Please try again.",
                internal_message=str(e),
            ) from e

        logger.info(
            f"Created checkout session {session.id} for user {mask_id(user_id)} ({package.id})"
        )
        return {"session_id": session.id, "url": session.url}

    def construct_event(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """
        Verify a webhook delivery and return the event as a plain dict.

        Raises:
            PaymentNotConfiguredError: No webhook secret configured.
            PaymentError: Missing or invalid signature, or unparseable body.
        """
        if not self._webhook_secret:
            raise PaymentNotConfiguredError(internal_message="STRIPE_WEBHOOK_SECRET is not set")
        if not sig_header:
            raise PaymentError("Missing Stripe-Signature header")

        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            WebhookSignature.verify_header(body, sig_header, self._webhook_secret)
        except SignatureVerificationError as e:
            logger.error(f"Webhook signature verification failed: {e}")
            raise PaymentError("Invalid webhook signature") from e

        try:
            event = json.loads(body)
        except json.JSONDecodeError as e:
            raise PaymentError("Invalid webhook payload") from e

        if not isinstance(event, dict) or "type" not in event or "id" not in event:
            raise PaymentError("Invalid webhook payload")
        return event
