"""Free regeneration caps per adventure and the messages shown when they run out."""

from enum import Enum


class LimitType(str, Enum):
    SCAFFOLD = "scaffold"
    EXPANSION = "expansion"


SCAFFOLD_REGENERATION_LIMIT = 10
EXPANSION_REGENERATION_LIMIT = 20

REGENERATION_LIMITS = {
    LimitType.SCAFFOLD: SCAFFOLD_REGENERATION_LIMIT,
    LimitType.EXPANSION: EXPANSION_REGENERATION_LIMIT,
}

LIMIT_MESSAGES = {
    LimitType.SCAFFOLD: (
        f"Scaffold regeneration limit reached ({SCAFFOLD_REGENERATION_LIMIT} maximum). "
        "Consider starting a new adventure or manually editing the structure."
    ),
    LimitType.EXPANSION: (
        f"Expansion regeneration limit reached ({EXPANSION_REGENERATION_LIMIT} maximum). "
        "Consider locking components you're satisfied with."
    ),
}

# Refinements draw from the expansion budget.
REFINEMENT_LIMIT_MESSAGE = (
    f"Refinement limit reached ({EXPANSION_REGENERATION_LIMIT} maximum). "
    "Consider manual editing instead."
)
