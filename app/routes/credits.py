"""
Credit balance, history and purchase endpoints.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_ledger, get_stripe_service, require_user_id
from app.models import CheckoutSessionResponse, CreditPackagesResponse, PurchaseCreditsRequest
from daggergm.credits.costs import CREDIT_COSTS, list_credit_packages
from daggergm.credits.ledger import CreditLedger
from daggergm.credits.models import CreditBalance
from daggergm.payments import StripeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/credits", tags=["credits"])


@router.get("/balance", response_model=CreditBalance)
async def get_balance(
    user_id: str = Depends(require_user_id),
    ledger: CreditLedger = Depends(get_ledger),
) -> CreditBalance:
    """Current credit balance of the caller."""
    credits = await ledger.get_balance(user_id)
    return CreditBalance(user_id=user_id, credits=credits)


@router.get("/transactions")
async def get_transactions(
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(require_user_id),
    ledger: CreditLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    """Balance history, newest first."""
    transactions = await ledger.get_transactions(user_id, limit)
    return {
        "transactions": [t.model_dump(mode="json") for t in transactions],
        "count": len(transactions),
    }


@router.get("/packages", response_model=CreditPackagesResponse)
async def get_packages() -> CreditPackagesResponse:
    """Purchasable credit packages and what each action costs."""
    return CreditPackagesResponse(
        packages=[package.to_dict() for package in list_credit_packages()],
    )


@router.get("/costs")
async def get_costs() -> Dict[str, int]:
    return {credit_type.value: cost for credit_type, cost in CREDIT_COSTS.items()}


@router.post(
    "/purchase",
    response_model=CheckoutSessionResponse,
    responses={
        400: {"description": "Unknown credit package"},
        503: {"description": "Payments not configured"},
    },
)
async def purchase_credits(
    body: PurchaseCreditsRequest,
    user_id: str = Depends(require_user_id),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> CheckoutSessionResponse:
    """
    Start a Stripe checkout for a credit package.

    Credits are added by the webhook once Stripe reports the session paid.
    """
    session = await stripe_service.create_credit_checkout_session(
        user_id,
        body.package_id,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
    )
    return CheckoutSessionResponse(session_id=session["session_id"], url=session["url"])
