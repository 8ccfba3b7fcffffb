"""
Storage backends for per-adventure regeneration counters.

Both backends report failures as StoreError so the limiter can switch on
StoreErrorKind: NOT_FOUND for an unknown adventure, LIMIT_REACHED when an
increment would pass the cap.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict

from supabase import Client

from daggergm.regeneration.limits import LimitType
from daggergm.storage.errors import StoreError, StoreErrorKind
from daggergm.storage.supabase_client import first_row, run_query

logger = logging.getLogger(__name__)

ADVENTURES_TABLE = "daggerheart_adventures"

_COLUMNS = {
    LimitType.SCAFFOLD: "scaffold_regenerations_used",
    LimitType.EXPANSION: "expansion_regenerations_used",
}

_INCREMENT_FUNCTIONS = {
    LimitType.SCAFFOLD: "increment_scaffold_regenerations",
    LimitType.EXPANSION: "increment_expansion_regenerations",
}


@dataclass
class CounterSnapshot:
    scaffold: int
    expansion: int


class RegenerationStore(ABC):
    """Abstract base class for regeneration counter storage."""

    @abstractmethod
    async def get_counts(self, adventure_id: str) -> CounterSnapshot:
        """Read both counters for an adventure."""

    @abstractmethod
    async def increment(self, adventure_id: str, limit_type: LimitType, limit: int) -> int:
        """
        Atomically add one to a counter unless it is already at limit.

        Returns:
            The counter value after the increment.
        """

    @abstractmethod
    async def create_counters(self, adventure_id: str) -> None:
        """Register a new adventure with both counters at zero."""


class InMemoryRegenerationStore(RegenerationStore):
    """Thread-safe in-process counters for development and tests."""

    def __init__(self):
        self._counters: Dict[str, Dict[LimitType, int]] = {}
        self._lock = threading.RLock()

    def _require(self, adventure_id: str) -> Dict[LimitType, int]:
        counters = self._counters.get(adventure_id)
        if counters is None:
            raise StoreError(StoreErrorKind.NOT_FOUND, internal_message="Adventure not found")
        return counters

    async def get_counts(self, adventure_id: str) -> CounterSnapshot:
        with self._lock:
            counters = self._require(adventure_id)
            return CounterSnapshot(
                scaffold=counters[LimitType.SCAFFOLD],
                expansion=counters[LimitType.EXPANSION],
            )

    async def increment(self, adventure_id: str, limit_type: LimitType, limit: int) -> int:
        with self._lock:
            counters = self._require(adventure_id)
            if counters[limit_type] >= limit:
                raise StoreError(
                    StoreErrorKind.LIMIT_REACHED,
                    internal_message=f"{limit_type.value} counter at {limit}",
                )
            counters[limit_type] += 1
            return counters[limit_type]

    async def create_counters(self, adventure_id: str) -> None:
        with self._lock:
            self._counters.setdefault(
                adventure_id,
                {LimitType.SCAFFOLD: 0, LimitType.EXPANSION: 0},
            )

    def set_counts(self, adventure_id: str, scaffold: int = 0, expansion: int = 0) -> None:
        """Seed counters directly (fixtures and admin tooling)."""
        with self._lock:
            self._counters[adventure_id] = {
                LimitType.SCAFFOLD: scaffold,
                LimitType.EXPANSION: expansion,
            }


class SupabaseRegenerationStore(RegenerationStore):
    """
    Counters stored as columns of daggerheart_adventures.

    Increments go through the increment_*_regenerations SQL functions, which
    add one and check the cap in a single UPDATE.
    """

    def __init__(self, client: Client):
        self._client = client

    async def get_counts(self, adventure_id: str) -> CounterSnapshot:
        response = await run_query(
            "get_regeneration_counts",
            lambda: self._client.table(ADVENTURES_TABLE)
            .select(f"{_COLUMNS[LimitType.SCAFFOLD]}, {_COLUMNS[LimitType.EXPANSION]}")
            .eq("id", adventure_id)
            .limit(1)
            .execute(),
        )
        row = first_row(response.data)
        if row is None:
            raise StoreError(StoreErrorKind.NOT_FOUND, internal_message="Adventure not found")

        try:
            return CounterSnapshot(
                scaffold=int(row[_COLUMNS[LimitType.SCAFFOLD]] or 0),
                expansion=int(row[_COLUMNS[LimitType.EXPANSION]] or 0),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(
                StoreErrorKind.INVALID_RESPONSE,
                internal_message=f"Unexpected counter row: {e}",
            ) from e

    async def increment(self, adventure_id: str, limit_type: LimitType, limit: int) -> int:
        function = _INCREMENT_FUNCTIONS[limit_type]
        response = await run_query(
            function,
            lambda: self._client.rpc(
                function,
                {"p_adventure_id": adventure_id, "p_limit": limit},
            ).execute(),
        )
        value = first_row(response.data)
        if isinstance(value, dict):
            value = next(iter(value.values()), None)
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise StoreError(
                StoreErrorKind.INVALID_RESPONSE,
                internal_message=f"{function} returned {value!r}",
            ) from e

    async def create_counters(self, adventure_id: str) -> None:
        # Columns default to 0 when the adventure row is inserted.
        return None
