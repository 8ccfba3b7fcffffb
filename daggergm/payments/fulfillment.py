"""
Credit fulfillment for verified Stripe webhook events.

Stripe retries deliveries, so each event id is claimed before credits are
added and released again if adding fails; a retried delivery of an event that
was already fulfilled is acknowledged without crediting twice.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from supabase import Client

from daggergm.credits.ledger import CreditLedger
from daggergm.credits.store import PURCHASE_SOURCE
from daggergm.errors import PaymentError
from daggergm.storage.errors import StoreError, StoreErrorKind
from daggergm.storage.supabase_client import run_query
from daggergm.utils.logging import mask_id

logger = logging.getLogger(__name__)

PAYMENT_EVENTS_TABLE = "daggerheart_payment_events"

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"


@dataclass
class FulfillmentResult:
    event_id: str
    event_type: str
    fulfilled: bool
    user_id: Optional[str] = None
    credits_added: int = 0
    new_balance: Optional[int] = None
    reason: Optional[str] = None


class PaymentEventLog(ABC):
    """Remembers which webhook events have been fulfilled."""

    @abstractmethod
    async def claim(self, event_id: str, event_type: str, user_id: Optional[str]) -> bool:
        """Mark an event as being fulfilled. False if it was claimed before."""

    @abstractmethod
    async def release(self, event_id: str) -> None:
        """Forget a claim so a retried delivery can be fulfilled."""


class InMemoryPaymentEventLog(PaymentEventLog):
    def __init__(self):
        self._claimed: Set[str] = set()
        self._lock = threading.RLock()

    async def claim(self, event_id, event_type, user_id) -> bool:
        with self._lock:
            if event_id in self._claimed:
                return False
            self._claimed.add(event_id)
            return True

    async def release(self, event_id: str) -> None:
        with self._lock:
            self._claimed.discard(event_id)


class SupabasePaymentEventLog(PaymentEventLog):
    """Claims are rows in daggerheart_payment_events keyed by event id."""

    def __init__(self, client: Client):
        self._client = client

    async def claim(self, event_id, event_type, user_id) -> bool:
        try:
            await run_query(
                "claim_payment_event",
                lambda: self._client.table(PAYMENT_EVENTS_TABLE)
                .insert({"id": event_id, "event_type": event_type, "user_id": user_id})
                .execute(),
            )
        except StoreError as e:
            if e.kind == StoreErrorKind.DUPLICATE:
                return False
            raise
        return True

    async def release(self, event_id: str) -> None:
        await run_query(
            "release_payment_event",
            lambda: self._client.table(PAYMENT_EVENTS_TABLE).delete().eq("id", event_id).execute(),
        )


def _purchase_from_metadata(metadata: Dict[str, Any]) -> tuple:
    user_id = metadata.get("user_id")
    raw_amount = metadata.get("credit_amount")
    if not user_id or raw_amount in (None, ""):
        return None, None
    try:
        amount = int(raw_amount)
    except (TypeError, ValueError):
        raise PaymentError("Invalid credit amount in payment metadata") from None
    return user_id, amount


class PaymentFulfillment:
    """Applies paid checkout sessions and payment intents to the ledger."""

    def __init__(self, ledger: CreditLedger, events: PaymentEventLog):
        self._ledger = ledger
        self._events = events

    async def handle_event(self, event: Dict[str, Any]) -> FulfillmentResult:
        """
        Fulfill a verified webhook event.

        Checkout sessions must carry user_id and credit_amount metadata.
        Payment intents created by Checkout carry none and are acknowledged
        without crediting, since their session is fulfilled instead.

        Raises:
            PaymentError: A checkout session without purchase metadata.
            ValidationError / CreditError: From the ledger.
        """
        event_id = event["id"]
        event_type = event["type"]
        data = (event.get("data") or {}).get("object") or {}
        metadata = data.get("metadata") or {}

        if event_type == CHECKOUT_COMPLETED:
            if data.get("payment_status") != "paid":
                logger.info(f"Checkout {data.get('id')} not paid yet ({data.get('payment_status')})")
                return FulfillmentResult(event_id, event_type, False, reason="not_paid")
            user_id, amount = _purchase_from_metadata(metadata)
            if user_id is None:
                logger.error(f"Checkout {data.get('id')} is missing purchase metadata")
                raise PaymentError("Missing purchase metadata")
        elif event_type == PAYMENT_INTENT_SUCCEEDED:
            user_id, amount = _purchase_from_metadata(metadata)
            if user_id is None:
                return FulfillmentResult(event_id, event_type, False, reason="no_purchase_metadata")
        else:
            logger.debug(f"Ignoring webhook event {event_type}")
            return FulfillmentResult(event_id, event_type, False, reason="ignored_event_type")

        if not await self._events.claim(event_id, event_type, user_id):
            logger.info(f"Webhook event {event_id} already fulfilled")
            return FulfillmentResult(event_id, event_type, False, user_id=user_id, reason="duplicate")

        try:
            result = await self._ledger.add_credits(
                user_id,
                amount,
                PURCHASE_SOURCE,
                metadata={
                    "stripe_event_id": event_id,
                    "stripe_object_id": data.get("id"),
                    "package_id": metadata.get("package_id"),
                },
            )
        except Exception:
            await self._events.release(event_id)
            raise

        logger.info(f"Credited {amount} purchased credit(s) to user {mask_id(user_id)}")
        return FulfillmentResult(
            event_id,
            event_type,
            True,
            user_id=user_id,
            credits_added=amount,
            new_balance=result.new_balance,
        )
