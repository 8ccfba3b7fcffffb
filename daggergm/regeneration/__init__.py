"""Per-adventure free regeneration budgets."""

from daggergm.regeneration.limiter import RegenerationCounts, RegenerationLimiter
from daggergm.regeneration.limits import (
    EXPANSION_REGENERATION_LIMIT,
    LIMIT_MESSAGES,
    REFINEMENT_LIMIT_MESSAGE,
    SCAFFOLD_REGENERATION_LIMIT,
    LimitType,
)
from daggergm.regeneration.store import (
    InMemoryRegenerationStore,
    RegenerationStore,
    SupabaseRegenerationStore,
)

__all__ = [
    "EXPANSION_REGENERATION_LIMIT",
    "LIMIT_MESSAGES",
    "REFINEMENT_LIMIT_MESSAGE",
    "SCAFFOLD_REGENERATION_LIMIT",
    "InMemoryRegenerationStore",
    "LimitType",
    "RegenerationCounts",
    "RegenerationLimiter",
    "RegenerationStore",
    "SupabaseRegenerationStore",
]
