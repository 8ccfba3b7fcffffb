"""
Persistence for adventures and their movements.

Regeneration counters live on the same Supabase row but are owned by
daggergm.regeneration; this repository never reads or writes them.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from supabase import Client

from daggergm.errors import AdventureNotFoundError, MovementNotFoundError
from daggergm.generation.models import AdventureConfig, Movement
from daggergm.storage.errors import StoreError, StoreErrorKind
from daggergm.storage.supabase_client import first_row, run_query

logger = logging.getLogger(__name__)

ADVENTURES_TABLE = "daggerheart_adventures"
ADVENTURE_COLUMNS = "id, user_id, title, frame, focus, state, config, movements, created_at, updated_at"


class AdventureState(str, Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"


class Adventure(BaseModel):
    id: str
    user_id: str
    title: str
    frame: Optional[str] = None
    focus: Optional[str] = None
    state: AdventureState = AdventureState.DRAFT
    config: AdventureConfig
    movements: List[Movement] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def get_movement(self, movement_id: str) -> Movement:
        for movement in self.movements:
            if movement.id == movement_id:
                return movement
        raise MovementNotFoundError(movement_id)

    def replace_movement(self, updated: Movement) -> None:
        """Swap in a new version of a movement, keeping its position."""
        for index, movement in enumerate(self.movements):
            if movement.id == updated.id:
                self.movements[index] = updated
                return
        raise MovementNotFoundError(updated.id)

    def locked_movements(self, exclude_id: Optional[str] = None) -> List[Movement]:
        return [m for m in self.movements if m.locked and m.id != exclude_id]

    def movements_before(self, movement: Movement) -> List[Movement]:
        return [m for m in self.movements if m.order_index < movement.order_index]


def new_adventure_id() -> str:
    return str(uuid.uuid4())


class AdventureRepository(ABC):
    """Abstract base class for adventure storage."""

    @abstractmethod
    async def create(self, adventure: Adventure) -> Adventure:
        """Insert a new adventure."""

    @abstractmethod
    async def get(self, adventure_id: str) -> Adventure:
        """
        Raises:
            AdventureNotFoundError: No adventure with that id.
        """

    @abstractmethod
    async def save_movements(self, adventure: Adventure) -> Adventure:
        """Persist the adventure's movement list."""

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Adventure]:
        """Newest first."""


class InMemoryAdventureRepository(AdventureRepository):
    def __init__(self):
        self._adventures: Dict[str, Adventure] = {}
        self._lock = threading.RLock()

    async def create(self, adventure: Adventure) -> Adventure:
        with self._lock:
            self._adventures[adventure.id] = adventure.model_copy(deep=True)
            return adventure

    async def get(self, adventure_id: str) -> Adventure:
        with self._lock:
            adventure = self._adventures.get(adventure_id)
            if adventure is None:
                raise AdventureNotFoundError(adventure_id)
            return adventure.model_copy(deep=True)

    async def save_movements(self, adventure: Adventure) -> Adventure:
        with self._lock:
            stored = self._adventures.get(adventure.id)
            if stored is None:
                raise AdventureNotFoundError(adventure.id)
            stored.movements = [m.model_copy() for m in adventure.movements]
            stored.updated_at = datetime.now(timezone.utc)
            return stored.model_copy(deep=True)

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Adventure]:
        with self._lock:
            owned = [a for a in self._adventures.values() if a.user_id == user_id]
        owned.sort(key=lambda a: a.created_at, reverse=True)
        return [a.model_copy(deep=True) for a in owned[:limit]]


class SupabaseAdventureRepository(AdventureRepository):
    def __init__(self, client: Client):
        self._client = client

    @staticmethod
    def _parse(row: dict) -> Adventure:
        try:
            return Adventure.model_validate(row)
        except PydanticValidationError as e:
            raise StoreError(
                StoreErrorKind.INVALID_RESPONSE,
                internal_message=f"Unexpected adventure row: {e.error_count()} error(s)",
            ) from e

    async def create(self, adventure: Adventure) -> Adventure:
        payload = adventure.model_dump(mode="json", exclude={"created_at", "updated_at"})
        response = await run_query(
            "create_adventure",
            lambda: self._client.table(ADVENTURES_TABLE).insert(payload).execute(),
        )
        row = first_row(response.data)
        return self._parse(row) if row else adventure

    async def get(self, adventure_id: str) -> Adventure:
        try:
            response = await run_query(
                "get_adventure",
                lambda: self._client.table(ADVENTURES_TABLE)
                .select(ADVENTURE_COLUMNS)
                .eq("id", adventure_id)
                .limit(1)
                .execute(),
            )
        except StoreError as e:
            if e.kind in (StoreErrorKind.NOT_FOUND, StoreErrorKind.INVALID_INPUT):
                raise AdventureNotFoundError(adventure_id) from e
            raise
        row = first_row(response.data)
        if row is None:
            raise AdventureNotFoundError(adventure_id)
        return self._parse(row)

    async def save_movements(self, adventure: Adventure) -> Adventure:
        movements = [m.model_dump(mode="json") for m in adventure.movements]
        response = await run_query(
            "save_movements",
            lambda: self._client.table(ADVENTURES_TABLE)
            .update({
                "movements": movements,
                "updated_at": datetime.now(timezone.utc).isoformat(),
            })
            .eq("id", adventure.id)
            .execute(),
        )
        row = first_row(response.data)
        if row is None:
            raise AdventureNotFoundError(adventure.id)
        return self._parse(row)

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[Adventure]:
        response = await run_query(
            "list_adventures",
            lambda: self._client.table(ADVENTURES_TABLE)
            .select(ADVENTURE_COLUMNS)
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute(),
        )
        return [self._parse(row) for row in response.data or []]
