"""Stripe credit purchases and webhook fulfillment."""

from daggergm.payments.fulfillment import (
    FulfillmentResult,
    InMemoryPaymentEventLog,
    PaymentEventLog,
    PaymentFulfillment,
    SupabasePaymentEventLog,
)
from daggergm.payments.stripe_service import StripeService

__all__ = [
    "FulfillmentResult",
    "InMemoryPaymentEventLog",
    "PaymentEventLog",
    "PaymentFulfillment",
    "StripeService",
    "SupabasePaymentEventLog",
]
