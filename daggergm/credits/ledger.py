"""
Credit ledger: per-user balances that never go negative.

Operations:
- get_balance: current balance (0 for users without a profile)
- consume: atomically charge the cost of a credit type
- refund: give back a cost after the billed operation failed
- add_credits: credit a purchase or grant
- check_sufficiency: advisory pre-check, never a guarantee
- get_transactions: balance history, newest first

Costs come from daggergm.credits.costs. Zero-cost types succeed without
touching the store.
"""

import logging
from typing import Any, Dict, List, Optional

from daggergm.credits.costs import CreditType, get_credit_cost
from daggergm.credits.models import (
    CreditAddResult,
    CreditConsumptionResult,
    CreditRefundResult,
    CreditTransaction,
)
from daggergm.credits.store import CreditStore
from daggergm.errors import CreditError, InsufficientCreditsError, ValidationError
from daggergm.storage.errors import StoreError, StoreErrorKind
from daggergm.utils.logging import mask_id
from daggergm.utils.validation import validate_positive_amount, validate_uuid

logger = logging.getLogger(__name__)

MAX_TRANSACTION_PAGE = 200


class CreditLedger:
    """Credit operations on top of a CreditStore."""

    def __init__(self, store: CreditStore, default_balance: int = 0):
        self._store = store
        self._default_balance = default_balance

    @staticmethod
    def _credit_type(credit_type) -> CreditType:
        try:
            return CreditType(credit_type)
        except ValueError:
            raise ValidationError(
                "Invalid credit type",
                field="credit_type",
                value=credit_type,
            ) from None

    def _storage_failure(self, operation: str, user_id: str, error: StoreError) -> CreditError:
        logger.error(f"Credit {operation} failed for user {mask_id(user_id)}: {error}")
        return CreditError(
            message=f"Failed to {operation} credits",
            internal_message=str(error),
        )

    async def get_balance(self, user_id: str) -> int:
        """
        Return the user's balance.

        Users without a profile row have the default balance.

        Raises:
            ValidationError: user_id is not a UUID.
            CreditError: The store could not be read.
        """
        user_id = validate_uuid(user_id)
        try:
            balance = await self._store.get_balance(user_id)
        except StoreError as e:
            raise self._storage_failure("read", user_id, e) from e
        return self._default_balance if balance is None else balance

    async def consume(
        self,
        user_id: str,
        credit_type: CreditType,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditConsumptionResult:
        """
        Charge the cost of credit_type.

        The balance check and the decrement are one store operation, so
        concurrent calls for the same user cannot overdraw the balance.

        Raises:
            InsufficientCreditsError: Balance is below the cost. Balance unchanged.
            CreditError: The store failed.
        """
        user_id = validate_uuid(user_id)
        credit_type = self._credit_type(credit_type)
        cost = get_credit_cost(credit_type)

        if cost == 0:
            return CreditConsumptionResult(remaining_credits=await self.get_balance(user_id))

        try:
            remaining = await self._store.consume(user_id, credit_type, cost, dict(metadata or {}))
        except StoreError as e:
            if e.kind == StoreErrorKind.INSUFFICIENT_BALANCE:
                logger.info(
                    f"Insufficient credits for {credit_type.value} (user {mask_id(user_id)})"
                )
                raise InsufficientCreditsError(
                    credit_type=credit_type.value,
                    required=cost,
                ) from e
            raise self._storage_failure("consume", user_id, e) from e

        logger.info(
            f"Consumed {cost} {credit_type.value} credit(s) for user {mask_id(user_id)}, "
            f"{remaining} remaining"
        )
        return CreditConsumptionResult(remaining_credits=remaining)

    async def refund(
        self,
        user_id: str,
        credit_type: CreditType,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditRefundResult:
        """
        Give back the cost of credit_type.

        Compensates a consume whose operation failed afterwards. The caller
        issues at most one refund per failed consumption.
        """
        user_id = validate_uuid(user_id)
        credit_type = self._credit_type(credit_type)
        cost = get_credit_cost(credit_type)

        if cost == 0:
            return CreditRefundResult(new_balance=await self.get_balance(user_id))

        try:
            balance = await self._store.refund(user_id, credit_type, cost, dict(metadata or {}))
        except StoreError as e:
            raise self._storage_failure("refund", user_id, e) from e

        logger.info(
            f"Refunded {cost} {credit_type.value} credit(s) to user {mask_id(user_id)}, "
            f"balance {balance}"
        )
        return CreditRefundResult(new_balance=balance)

    async def add_credits(
        self,
        user_id: str,
        amount: int,
        source: str = "manual",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> CreditAddResult:
        """
        Add amount credits from a purchase or grant.

        Raises:
            ValidationError: amount is not a positive integer.
            CreditError: The store failed.
        """
        user_id = validate_uuid(user_id)
        amount = validate_positive_amount(amount)

        try:
            balance = await self._store.add(user_id, amount, source, dict(metadata or {}))
        except StoreError as e:
            raise self._storage_failure("add", user_id, e) from e

        logger.info(f"Added {amount} credit(s) to user {mask_id(user_id)} from {source}")
        return CreditAddResult(new_balance=balance)

    async def check_sufficiency(self, user_id: str, credit_type: CreditType) -> bool:
        """
        Whether the balance currently covers credit_type.

        Advisory only: the balance can change before consume() runs.
        """
        credit_type = self._credit_type(credit_type)
        cost = get_credit_cost(credit_type)
        if cost == 0:
            validate_uuid(user_id)
            return True
        return await self.get_balance(user_id) >= cost

    async def get_transactions(self, user_id: str, limit: int = 50) -> List[CreditTransaction]:
        user_id = validate_uuid(user_id)
        limit = max(1, min(limit, MAX_TRANSACTION_PAGE))
        try:
            return await self._store.list_transactions(user_id, limit)
        except StoreError as e:
            raise self._storage_failure("list", user_id, e) from e
