"""Adventure content generation and its data models."""

from daggergm.generation.models import (
    AdventureConfig,
    Movement,
    MovementExpansion,
    MovementType,
    ScaffoldMovement,
    ScaffoldResult,
)
from daggergm.generation.provider import (
    AdventureGenerator,
    OpenAIAdventureGenerator,
    UnconfiguredAdventureGenerator,
)

__all__ = [
    "AdventureConfig",
    "AdventureGenerator",
    "Movement",
    "MovementExpansion",
    "MovementType",
    "OpenAIAdventureGenerator",
    "ScaffoldMovement",
    "ScaffoldResult",
    "UnconfiguredAdventureGenerator",
]
