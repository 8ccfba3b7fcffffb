"""
Free regeneration budget per adventure.

Each adventure may regenerate its scaffold 10 times and its expanded
movements 20 times without spending credits. Checks are read-only; the
caller increments only after the regeneration itself succeeded:

    await limiter.check_scaffold_limit(adventure_id)
    movement = await generator.regenerate_movement(...)
    await limiter.increment_scaffold_count(adventure_id)

Two concurrent requests can both pass a check before either increments.
The store refuses increments past the cap, so a counter never exceeds its
limit, but both regenerations will already have run. Callers that need
strict enforcement can serialize through guard().
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional
from weakref import WeakValueDictionary

from daggergm.errors import AdventureNotFoundError, RegenerationLimitError
from daggergm.regeneration.limits import LIMIT_MESSAGES, REGENERATION_LIMITS, LimitType
from daggergm.regeneration.store import RegenerationStore
from daggergm.storage.errors import StoreError, StoreErrorKind
from daggergm.utils.logging import mask_id
from daggergm.utils.validation import validate_uuid

logger = logging.getLogger(__name__)


@dataclass
class RegenerationCounts:
    """Snapshot of an adventure's regeneration usage for display."""

    scaffold: int
    expansion: int
    scaffold_remaining: int
    expansion_remaining: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "scaffold": self.scaffold,
            "expansion": self.expansion,
            "scaffold_remaining": self.scaffold_remaining,
            "expansion_remaining": self.expansion_remaining,
        }


class RegenerationLimiter:
    """Checks and records free regenerations against per-adventure caps."""

    def __init__(
        self,
        store: RegenerationStore,
        limits: Optional[Dict[LimitType, int]] = None,
    ):
        self._store = store
        self._limits = dict(limits or REGENERATION_LIMITS)
        self._locks: "WeakValueDictionary[str, asyncio.Lock]" = WeakValueDictionary()

    def limit_for(self, limit_type: LimitType) -> int:
        return self._limits[limit_type]

    async def _counts(self, adventure_id: str):
        adventure_id = validate_uuid(adventure_id, field="adventure_id")
        try:
            return await self._store.get_counts(adventure_id)
        except StoreError as e:
            if e.kind == StoreErrorKind.NOT_FOUND:
                raise AdventureNotFoundError(adventure_id) from e
            raise

    async def _check(self, adventure_id: str, limit_type: LimitType) -> None:
        snapshot = await self._counts(adventure_id)
        used = getattr(snapshot, limit_type.value)
        limit = self._limits[limit_type]
        if used >= limit:
            logger.info(
                f"{limit_type.value} regeneration limit reached for adventure "
                f"{mask_id(adventure_id)} ({used}/{limit})"
            )
            raise RegenerationLimitError(
                limit_type=limit_type.value,
                used=used,
                limit=limit,
                suggestion=LIMIT_MESSAGES[limit_type],
            )

    async def _increment(self, adventure_id: str, limit_type: LimitType) -> int:
        adventure_id = validate_uuid(adventure_id, field="adventure_id")
        limit = self._limits[limit_type]
        try:
            used = await self._store.increment(adventure_id, limit_type, limit)
        except StoreError as e:
            if e.kind == StoreErrorKind.NOT_FOUND:
                raise AdventureNotFoundError(adventure_id) from e
            if e.kind == StoreErrorKind.LIMIT_REACHED:
                raise RegenerationLimitError(
                    limit_type=limit_type.value,
                    used=limit,
                    limit=limit,
                    suggestion=LIMIT_MESSAGES[limit_type],
                ) from e
            raise
        logger.debug(
            f"{limit_type.value} regenerations for adventure {mask_id(adventure_id)}: {used}/{limit}"
        )
        return used

    async def check_scaffold_limit(self, adventure_id: str) -> None:
        """
        Raise RegenerationLimitError if the scaffold budget is spent.

        Raises:
            RegenerationLimitError: limit_type "scaffold", used >= 10.
            AdventureNotFoundError: Unknown adventure.
            ValidationError: adventure_id is not a UUID.
        """
        await self._check(adventure_id, LimitType.SCAFFOLD)

    async def check_expansion_limit(self, adventure_id: str) -> None:
        """Raise RegenerationLimitError if the expansion budget is spent."""
        await self._check(adventure_id, LimitType.EXPANSION)

    async def increment_scaffold_count(self, adventure_id: str) -> int:
        """Record one successful scaffold regeneration. Returns the new count."""
        return await self._increment(adventure_id, LimitType.SCAFFOLD)

    async def increment_expansion_count(self, adventure_id: str) -> int:
        """Record one successful expansion or refinement. Returns the new count."""
        return await self._increment(adventure_id, LimitType.EXPANSION)

    async def get_regeneration_counts(self, adventure_id: str) -> RegenerationCounts:
        snapshot = await self._counts(adventure_id)
        scaffold_limit = self._limits[LimitType.SCAFFOLD]
        expansion_limit = self._limits[LimitType.EXPANSION]
        return RegenerationCounts(
            scaffold=snapshot.scaffold,
            expansion=snapshot.expansion,
            scaffold_remaining=max(0, scaffold_limit - snapshot.scaffold),
            expansion_remaining=max(0, expansion_limit - snapshot.expansion),
        )

    async def create_counters(self, adventure_id: str) -> None:
        adventure_id = validate_uuid(adventure_id, field="adventure_id")
        await self._store.create_counters(adventure_id)

    @asynccontextmanager
    async def guard(self, adventure_id: str) -> AsyncIterator[None]:
        """
        Serialize check/regenerate/increment for one adventure in this process.

        Locks are held weakly and disappear once no request is using them.
        """
        lock = self._locks.get(adventure_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[adventure_id] = lock
        async with lock:
            yield
