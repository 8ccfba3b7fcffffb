"""
Pydantic models for credit balances and the credit transaction history.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from daggergm.credits.costs import CreditType


class TransactionType(str, Enum):
    CONSUMPTION = "consumption"
    REFUND = "refund"
    PURCHASE = "purchase"
    GRANT = "grant"


class CreditTransaction(BaseModel):
    """One balance mutation, written together with the mutation itself."""

    id: str
    user_id: str
    type: TransactionType
    credit_type: Optional[CreditType] = None
    amount: int = Field(..., description="Signed change applied to the balance")
    balance_after: int = Field(..., ge=0)
    source: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class CreditConsumptionResult(BaseModel):
    success: bool = True
    remaining_credits: int = Field(..., ge=0)


class CreditRefundResult(BaseModel):
    success: bool = True
    new_balance: int = Field(..., ge=0)


class CreditAddResult(BaseModel):
    success: bool = True
    new_balance: int = Field(..., ge=0)


class CreditBalance(BaseModel):
    """Balance response for the credits API."""

    user_id: str
    credits: int = Field(..., ge=0)
