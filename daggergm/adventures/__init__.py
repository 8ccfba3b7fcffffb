"""Adventure persistence and the generation workflow."""

from daggergm.adventures.repository import (
    Adventure,
    AdventureRepository,
    AdventureState,
    InMemoryAdventureRepository,
    SupabaseAdventureRepository,
)
from daggergm.adventures.workflow import AdventureWorkflow, MovementUpdate

__all__ = [
    "Adventure",
    "AdventureRepository",
    "AdventureState",
    "AdventureWorkflow",
    "InMemoryAdventureRepository",
    "MovementUpdate",
    "SupabaseAdventureRepository",
]
