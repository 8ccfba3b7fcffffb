"""
Storage backends for credit balances.

Every mutation is a single atomic operation in the backend: a lock-protected
update in memory, or one SQL function call in Supabase (see
supabase/migrations). The ledger never reads a balance and writes it back.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from supabase import Client

from daggergm.credits.costs import CreditType
from daggergm.credits.models import CreditTransaction, TransactionType
from daggergm.storage.errors import StoreError, StoreErrorKind
from daggergm.storage.supabase_client import first_row, run_query

logger = logging.getLogger(__name__)

PROFILES_TABLE = "daggerheart_user_profiles"
TRANSACTIONS_TABLE = "daggerheart_credit_transactions"

PURCHASE_SOURCE = "stripe_purchase"


def _transaction_type_for_source(source: str) -> TransactionType:
    return TransactionType.PURCHASE if source == PURCHASE_SOURCE else TransactionType.GRANT


class CreditStore(ABC):
    """Abstract base class for credit balance storage."""

    @abstractmethod
    async def get_balance(self, user_id: str) -> Optional[int]:
        """Return the balance, or None when the user has no profile yet."""

    @abstractmethod
    async def consume(
        self,
        user_id: str,
        credit_type: CreditType,
        cost: int,
        metadata: Dict[str, Any],
    ) -> int:
        """
        Subtract cost if the balance covers it, in one atomic step.

        Returns:
            The remaining balance.

        Raises:
            StoreError: kind INSUFFICIENT_BALANCE when balance < cost.
        """

    @abstractmethod
    async def refund(
        self,
        user_id: str,
        credit_type: CreditType,
        amount: int,
        metadata: Dict[str, Any],
    ) -> int:
        """Add back a previously consumed amount. Returns the new balance."""

    @abstractmethod
    async def add(
        self,
        user_id: str,
        amount: int,
        source: str,
        metadata: Dict[str, Any],
    ) -> int:
        """Add purchased or granted credits. Returns the new balance."""

    @abstractmethod
    async def list_transactions(self, user_id: str, limit: int) -> List[CreditTransaction]:
        """Return the newest transactions first."""


class InMemoryCreditStore(CreditStore):
    """
    Thread-safe in-process balances for development and tests.

    Balances and history are lost on restart.
    """

    def __init__(self, default_balance: int = 0):
        self._balances: Dict[str, int] = {}
        self._transactions: Dict[str, List[CreditTransaction]] = {}
        self._default_balance = default_balance
        self._lock = threading.RLock()

    def _record(
        self,
        user_id: str,
        type_: TransactionType,
        amount: int,
        balance_after: int,
        credit_type: Optional[CreditType] = None,
        source: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._transactions.setdefault(user_id, []).append(
            CreditTransaction(
                id=str(uuid.uuid4()),
                user_id=user_id,
                type=type_,
                credit_type=credit_type,
                amount=amount,
                balance_after=balance_after,
                source=source,
                metadata=dict(metadata or {}),
                created_at=datetime.now(timezone.utc),
            )
        )

    async def get_balance(self, user_id: str) -> Optional[int]:
        with self._lock:
            return self._balances.get(user_id)

    async def consume(self, user_id, credit_type, cost, metadata) -> int:
        with self._lock:
            balance = self._balances.setdefault(user_id, self._default_balance)
            if balance < cost:
                raise StoreError(
                    StoreErrorKind.INSUFFICIENT_BALANCE,
                    internal_message=f"balance {balance} < cost {cost}",
                )
            balance -= cost
            self._balances[user_id] = balance
            self._record(
                user_id, TransactionType.CONSUMPTION, -cost, balance,
                credit_type=credit_type, metadata=metadata,
            )
            return balance

    async def refund(self, user_id, credit_type, amount, metadata) -> int:
        with self._lock:
            balance = self._balances.get(user_id, self._default_balance) + amount
            self._balances[user_id] = balance
            self._record(
                user_id, TransactionType.REFUND, amount, balance,
                credit_type=credit_type, metadata=metadata,
            )
            return balance

    async def add(self, user_id, amount, source, metadata) -> int:
        with self._lock:
            balance = self._balances.get(user_id, self._default_balance) + amount
            self._balances[user_id] = balance
            self._record(
                user_id, _transaction_type_for_source(source), amount, balance,
                source=source, metadata=metadata,
            )
            return balance

    async def list_transactions(self, user_id: str, limit: int) -> List[CreditTransaction]:
        with self._lock:
            history = self._transactions.get(user_id, [])
            return list(reversed(history))[:limit]

    def set_balance(self, user_id: str, credits: int) -> None:
        """Seed a balance directly without writing history."""
        with self._lock:
            self._balances[user_id] = credits


class SupabaseCreditStore(CreditStore):
    """Balances in daggerheart_user_profiles, mutated through SQL functions."""

    def __init__(self, client: Client):
        self._client = client

    @staticmethod
    def _balance_from(data: Any, field: str, function: str) -> int:
        row = first_row(data)
        try:
            value = row[field] if isinstance(row, dict) else row
            return int(value)
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(
                StoreErrorKind.INVALID_RESPONSE,
                internal_message=f"{function} returned {data!r}",
            ) from e

    async def get_balance(self, user_id: str) -> Optional[int]:
        response = await run_query(
            "get_balance",
            lambda: self._client.table(PROFILES_TABLE)
            .select("credits")
            .eq("id", user_id)
            .limit(1)
            .execute(),
        )
        row = first_row(response.data)
        if row is None:
            return None
        return self._balance_from(row, "credits", "get_balance")

    async def consume(self, user_id, credit_type, cost, metadata) -> int:
        response = await run_query(
            "consume_credits",
            lambda: self._client.rpc(
                "consume_credits",
                {
                    "p_user_id": user_id,
                    "p_credit_type": CreditType(credit_type).value,
                    "p_cost": cost,
                    "p_metadata": metadata,
                },
            ).execute(),
        )
        return self._balance_from(response.data, "remaining_credits", "consume_credits")

    async def refund(self, user_id, credit_type, amount, metadata) -> int:
        response = await run_query(
            "refund_credits",
            lambda: self._client.rpc(
                "refund_credits",
                {
                    "p_user_id": user_id,
                    "p_credit_type": CreditType(credit_type).value,
                    "p_amount": amount,
                    "p_metadata": metadata,
                },
            ).execute(),
        )
        return self._balance_from(response.data, "new_balance", "refund_credits")

    async def add(self, user_id, amount, source, metadata) -> int:
        response = await run_query(
            "add_user_credits",
            lambda: self._client.rpc(
                "add_user_credits",
                {
                    "p_user_id": user_id,
                    "p_amount": amount,
                    "p_source": source,
                    "p_metadata": metadata,
                },
            ).execute(),
        )
        return self._balance_from(response.data, "new_balance", "add_user_credits")

    async def list_transactions(self, user_id: str, limit: int) -> List[CreditTransaction]:
        response = await run_query(
            "list_transactions",
            lambda: self._client.table(TRANSACTIONS_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute(),
        )
        try:
            return [CreditTransaction.model_validate(row) for row in response.data or []]
        except PydanticValidationError as e:
            raise StoreError(
                StoreErrorKind.INVALID_RESPONSE,
                internal_message=f"Unexpected transaction row: {e.error_count()} error(s)",
            ) from e
